"""External provider blueprint."""

from abc import ABC, abstractmethod

from harvester_provider.base.params import BootstrapRequest, ProviderInstance


class ProviderBlueprint(ABC):
    """Abstract interface for a GARM external provider.

    One method per GARM command.  Each call performs exactly one logical
    operation against the backing cluster.
    """

    @abstractmethod
    def create_instance(self, request: BootstrapRequest) -> ProviderInstance:
        """Create a runner VM from a bootstrap request.

        Args:
            request: Bootstrap parameters sent by GARM.

        Returns:
            The newly created instance.
        """

    @abstractmethod
    def delete_instance(self, instance: str) -> None:
        """Delete an instance.  Deleting a missing instance succeeds."""

    @abstractmethod
    def get_instance(self, instance: str) -> ProviderInstance:
        """Return details for a single instance."""

    @abstractmethod
    def list_instances(self, pool_id: str | None = None) -> list[ProviderInstance]:
        """List instances, optionally restricted to one pool."""

    @abstractmethod
    def remove_all_instances(self) -> None:
        """Delete every instance owned by this controller."""

    @abstractmethod
    def start_instance(self, instance: str) -> None:
        """Power on an instance.  Starting a started instance is a no-op."""

    @abstractmethod
    def stop_instance(self, instance: str) -> None:
        """Power off an instance.  Stopping a stopped instance is a no-op."""

    @abstractmethod
    def get_version(self) -> str:
        """Return the provider version string."""
