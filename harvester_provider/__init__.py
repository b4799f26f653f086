"""harvester-provider: GARM external provider for Harvester / KubeVirt.

Entry point for the library. Import :func:`build_provider` to get a
provider for one namespace and one controller::

    from harvester_provider import build_provider, load_config

    provider = build_provider(load_config("harvester.toml"), controller_id)
    provider.list_instances()
"""

from .base import (
    ProviderBlueprint,
    ClusterClient,
    BootstrapRequest,
    InstanceStatus,
    ProviderInstance,
)
from .base.config import load_config
from .base.wait import wait_for_status
from .factory import build_provider
from .version import __version__

__all__ = [
    "ProviderBlueprint",
    "ClusterClient",
    "BootstrapRequest",
    "InstanceStatus",
    "ProviderInstance",
    "load_config",
    "wait_for_status",
    "build_provider",
    "__version__",
]
