"""Abstract blueprints and core utilities.

The lifecycle controller implements :class:`ProviderBlueprint` and reaches
the cluster only through :class:`ClusterClient`.  Import them to type-hint
your own code or to plug in a test double.
"""

from .provider import ProviderBlueprint
from .cluster import ClusterClient
from .params import (
    Address,
    AddressType,
    BootstrapRequest,
    InstanceStatus,
    ProviderInstance,
    RunnerApplicationDownload,
)
from .supported_commands import garm_commands, existing_commands, static_commands


__all__ = [
    "ProviderBlueprint",
    "ClusterClient",
    "Address",
    "AddressType",
    "BootstrapRequest",
    "InstanceStatus",
    "ProviderInstance",
    "RunnerApplicationDownload",
    "garm_commands",
    "existing_commands",
    "static_commands",
]
