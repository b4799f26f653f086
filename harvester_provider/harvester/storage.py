"""Backing image → storage class resolution."""

from __future__ import annotations

from harvester_provider.base.cluster import ClusterClient
from harvester_provider.base.exceptions import ImageNotFoundError


def split_image_id(image_id: str) -> tuple[str, str]:
    """Split ``<namespace>/<name>`` into its two parts.

    Raises:
        ImageNotFoundError: If *image_id* has no namespace component.
    """
    namespace, sep, name = image_id.partition("/")
    if not sep or not namespace or not name:
        raise ImageNotFoundError(
            f"Backing image '{image_id}' is not of the form <namespace>/<name>"
        )
    return namespace, name


def resolve_storage_class(cluster: ClusterClient, image_id: str) -> str:
    """Return the storage class recorded on a Harvester VirtualMachineImage.

    Equivalent to::

        kubectl get virtualmachineimages.harvesterhci.io -n <namespace> \\
            -o jsonpath='{.items[?(@.metadata.name=="<name>")].status.storageClassName}'

    Args:
        cluster: Cluster client used for the metadata query.
        image_id: Image identifier, ``<namespace>/<name>``.

    Raises:
        ImageNotFoundError: If no image of that name exists, or it has no
            storage class yet.
        UpstreamError: If the metadata query fails.
    """
    namespace, name = split_image_id(image_id)
    for image in cluster.list_virtual_machine_images(namespace):
        if image.get("metadata", {}).get("name") != name:
            continue
        storage_class = (image.get("status") or {}).get("storageClassName")
        if not storage_class:
            raise ImageNotFoundError(
                f"Backing image '{image_id}' has no storage class recorded"
            )
        return storage_class
    raise ImageNotFoundError(f"Backing image '{image_id}' not found")
