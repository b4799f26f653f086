"""Translation between KubeVirt objects and :class:`ProviderInstance`.

Platform → provider: VM / VMI manifests become provider instances with a
normalized status.  Provider → platform: the label set and resource name
stamped on a new VM.
"""

from __future__ import annotations

from typing import Any

from harvester_provider.base.params import (
    Address,
    AddressType,
    BootstrapRequest,
    InstanceStatus,
    ProviderInstance,
)

LABEL_PREFIX = "harvesterhci.io"
OS_TYPE_LABEL = f"{LABEL_PREFIX}/os-type"
POOL_ID_LABEL = f"{LABEL_PREFIX}/pool-id"
CONTROLLER_ID_LABEL = f"{LABEL_PREFIX}/controller-id"

# Keys are upper-cased; lookups upper-case the reported value first.
STATUS_MAP: dict[str, InstanceStatus] = {
    # OpenStack-style names kept for older callers
    "ACTIVE": InstanceStatus.RUNNING,
    "SHUTOFF": InstanceStatus.STOPPED,
    "BUILD": InstanceStatus.PENDING_CREATE,
    "ERROR": InstanceStatus.ERROR,
    "DELETING": InstanceStatus.PENDING_DELETE,
    # VMI phases and VM printable statuses
    "RUNNING": InstanceStatus.RUNNING,
    "STARTING": InstanceStatus.RUNNING,
    "STOPPED": InstanceStatus.STOPPED,
    "STOPPING": InstanceStatus.STOPPED,
    "HALTED": InstanceStatus.STOPPED,
    "SUCCEEDED": InstanceStatus.STOPPED,
    "PAUSED": InstanceStatus.STOPPED,
    "PENDING": InstanceStatus.PENDING_CREATE,
    "SCHEDULING": InstanceStatus.PENDING_CREATE,
    "SCHEDULED": InstanceStatus.PENDING_CREATE,
    "PROVISIONING": InstanceStatus.PENDING_CREATE,
    "WAITINGFORVOLUMEBINDING": InstanceStatus.PENDING_CREATE,
    "FAILED": InstanceStatus.ERROR,
    "CRASHLOOPBACKOFF": InstanceStatus.ERROR,
    "ERRORUNSCHEDULABLE": InstanceStatus.ERROR,
    "ERRIMAGEPULL": InstanceStatus.ERROR,
    "IMAGEPULLBACKOFF": InstanceStatus.ERROR,
    "ERRORPVCNOTFOUND": InstanceStatus.ERROR,
    "ERRORDATAVOLUMENOTFOUND": InstanceStatus.ERROR,
    "DATAVOLUMEERROR": InstanceStatus.ERROR,
    "TERMINATING": InstanceStatus.PENDING_DELETE,
}


def vm_name(name: str) -> str:
    """Kubernetes object name for a runner."""
    return name.lower()


def instance_labels(request: BootstrapRequest, controller_id: str) -> dict[str, str]:
    """Ownership and bookkeeping labels stamped on every runner VM."""
    return {
        OS_TYPE_LABEL: request.os_type,
        POOL_ID_LABEL: request.pool_id,
        CONTROLLER_ID_LABEL: controller_id,
    }


def owner_of(obj: dict[str, Any]) -> str | None:
    """Controller ID an object is labelled with, if any."""
    return (obj.get("metadata", {}).get("labels") or {}).get(CONTROLLER_ID_LABEL)


def normalize_status(value: str | None) -> InstanceStatus:
    """Translate a VMI phase or VM printable status.

    Unknown values map to :attr:`InstanceStatus.UNKNOWN`.
    """
    if not value:
        return InstanceStatus.UNKNOWN
    return STATUS_MAP.get(value.upper(), InstanceStatus.UNKNOWN)


def _addresses(status: dict[str, Any]) -> list[Address]:
    seen: list[str] = []
    for iface in status.get("interfaces") or []:
        ips = list(iface.get("ipAddresses") or [])
        if not ips and iface.get("ipAddress"):
            ips = [iface["ipAddress"]]
        for ip in ips:
            if ip and ip not in seen:
                seen.append(ip)
    return [Address(address=ip, type=AddressType.PRIVATE) for ip in seen]


def to_provider_instance(obj: dict[str, Any], fallback_name: str = "") -> ProviderInstance:
    """Map a VirtualMachine or VirtualMachineInstance manifest.

    Args:
        obj: Manifest dict as returned by the cluster.
        fallback_name: Request name used when the object carries no name.

    Returns:
        The provider-neutral instance view.  ``provider_id`` is the
        lower-cased VM name, which every other operation accepts as the
        instance ID.
    """
    metadata = obj.get("metadata") or {}
    spec = obj.get("spec") or {}
    status = obj.get("status") or {}
    labels = metadata.get("labels") or {}
    name = vm_name(metadata.get("name") or fallback_name)

    if obj.get("kind") == "VirtualMachine" or "template" in spec:
        arch = ((spec.get("template") or {}).get("spec") or {}).get("architecture", "")
        reported = status.get("printableStatus")
        # A freshly created VM has no status block yet.
        normalized = (
            normalize_status(reported) if reported else InstanceStatus.PENDING_CREATE
        )
    else:
        arch = spec.get("architecture", "")
        normalized = normalize_status(status.get("phase"))

    return ProviderInstance(
        provider_id=name,
        name=name,
        os_type=labels.get(OS_TYPE_LABEL, ""),
        os_arch=arch or "",
        status=normalized,
        addresses=_addresses(status),
    )
