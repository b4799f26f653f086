"""Cluster capability blueprint.

The lifecycle controller talks to the cluster only through this narrow
interface, so a test double can stand in for a real cluster.
"""

from abc import ABC, abstractmethod
from typing import Any


class ClusterClient(ABC):
    """Abstract interface for the cluster calls the provider needs.

    Resources are exchanged as plain manifest dicts, the shape returned by
    the Kubernetes custom-objects API.  Implementations translate transport
    errors into :mod:`harvester_provider.base.exceptions` types:
    a missing resource raises a :class:`NotFoundError` subclass, anything
    else an :class:`UpstreamError`.
    """

    # ── VirtualMachine ───────────────────────────────────────────────

    @abstractmethod
    def create_virtual_machine(self, namespace: str, body: dict[str, Any]) -> dict[str, Any]:
        """Submit a VirtualMachine manifest and return the stored object.

        Raises:
            InstanceAlreadyExistsError: If a VM with that name exists.
        """

    @abstractmethod
    def get_virtual_machine(self, namespace: str, name: str) -> dict[str, Any]:
        """Return a VirtualMachine.

        Raises:
            InstanceNotFoundError: If the VM does not exist.
        """

    @abstractmethod
    def list_virtual_machines(self, namespace: str) -> list[dict[str, Any]]:
        """List every VirtualMachine in *namespace*."""

    @abstractmethod
    def update_virtual_machine(
        self, namespace: str, name: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        """Replace a VirtualMachine with *body* and return the stored object."""

    @abstractmethod
    def delete_virtual_machine(
        self, namespace: str, name: str, propagation_policy: str = "Foreground"
    ) -> None:
        """Delete a VirtualMachine.

        Raises:
            InstanceNotFoundError: If the VM does not exist.
        """

    # ── VirtualMachineInstance ───────────────────────────────────────

    @abstractmethod
    def get_virtual_machine_instance(self, namespace: str, name: str) -> dict[str, Any]:
        """Return the live VirtualMachineInstance of a VM.

        Raises:
            InstanceNotFoundError: If no instance is running for that name.
        """

    @abstractmethod
    def list_virtual_machine_instances(self, namespace: str) -> list[dict[str, Any]]:
        """List every VirtualMachineInstance in *namespace*."""

    # ── Companion resources ──────────────────────────────────────────

    @abstractmethod
    def create_secret(self, namespace: str, body: dict[str, Any]) -> dict[str, Any]:
        """Create a core/v1 Secret."""

    @abstractmethod
    def delete_persistent_volume_claim(
        self, namespace: str, name: str, propagation_policy: str = "Foreground"
    ) -> None:
        """Delete a PersistentVolumeClaim.

        Raises:
            NotFoundError: If the claim does not exist.
        """

    @abstractmethod
    def list_virtual_machine_images(self, namespace: str) -> list[dict[str, Any]]:
        """List Harvester VirtualMachineImage objects in *namespace*."""
