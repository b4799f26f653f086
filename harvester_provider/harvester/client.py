"""Kubernetes implementation of the ClusterClient blueprint."""

from __future__ import annotations

from typing import Any, NoReturn

from kubernetes import client as k8s
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from harvester_provider.base.cluster import ClusterClient
from harvester_provider.base.exceptions import (
    ImageNotFoundError,
    InstanceAlreadyExistsError,
    InstanceNotFoundError,
    NotFoundError,
    UpstreamError,
)

KUBEVIRT_GROUP = "kubevirt.io"
KUBEVIRT_VERSION = "v1"
VM_PLURAL = "virtualmachines"
VMI_PLURAL = "virtualmachineinstances"

HARVESTER_GROUP = "harvesterhci.io"
HARVESTER_VERSION = "v1beta1"
IMAGE_PLURAL = "virtualmachineimages"


def _handle(
    e: Exception,
    msg: str,
    not_found: type[NotFoundError] = InstanceNotFoundError,
    conflict: type[UpstreamError] | None = None,
) -> NoReturn:
    if isinstance(e, ApiException):
        if e.status == 404:
            raise not_found(msg) from e
        if e.status == 409 and conflict is not None:
            raise conflict(msg) from e
        raise UpstreamError(f"{msg}: {e.status} {e.reason}") from e
    raise UpstreamError(f"{msg}: {e}") from e


class KubernetesClusterClient(ClusterClient):
    """Cluster access through the official ``kubernetes`` client.

    KubeVirt and Harvester objects go through the custom-objects API and
    are returned as dicts; Secrets and PVCs through the core v1 API.

    Attributes:
        custom: CustomObjectsApi for VM / VMI / image objects.
        core: CoreV1Api for Secrets and PersistentVolumeClaims.
    """

    def __init__(self, api_client: k8s.ApiClient) -> None:
        self.api_client = api_client
        self.custom = k8s.CustomObjectsApi(api_client)
        self.core = k8s.CoreV1Api(api_client)

    # ── VirtualMachine ───────────────────────────────────────────────

    def create_virtual_machine(self, namespace: str, body: dict[str, Any]) -> dict[str, Any]:
        name = body.get("metadata", {}).get("name", "")
        try:
            return self.custom.create_namespaced_custom_object(
                KUBEVIRT_GROUP, KUBEVIRT_VERSION, namespace, VM_PLURAL, body
            )
        except (ApiException, HTTPError) as e:
            _handle(
                e,
                f"Failed to create virtual machine '{namespace}/{name}'",
                conflict=InstanceAlreadyExistsError,
            )

    def get_virtual_machine(self, namespace: str, name: str) -> dict[str, Any]:
        try:
            return self.custom.get_namespaced_custom_object(
                KUBEVIRT_GROUP, KUBEVIRT_VERSION, namespace, VM_PLURAL, name
            )
        except (ApiException, HTTPError) as e:
            _handle(e, f"Failed to get virtual machine '{namespace}/{name}'")

    def list_virtual_machines(self, namespace: str) -> list[dict[str, Any]]:
        try:
            resp = self.custom.list_namespaced_custom_object(
                KUBEVIRT_GROUP, KUBEVIRT_VERSION, namespace, VM_PLURAL
            )
        except (ApiException, HTTPError) as e:
            _handle(e, f"Failed to list virtual machines in '{namespace}'")
        return list(resp.get("items") or [])

    def update_virtual_machine(
        self, namespace: str, name: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        try:
            return self.custom.replace_namespaced_custom_object(
                KUBEVIRT_GROUP, KUBEVIRT_VERSION, namespace, VM_PLURAL, name, body
            )
        except (ApiException, HTTPError) as e:
            _handle(e, f"Failed to update virtual machine '{namespace}/{name}'")

    def delete_virtual_machine(
        self, namespace: str, name: str, propagation_policy: str = "Foreground"
    ) -> None:
        try:
            self.custom.delete_namespaced_custom_object(
                KUBEVIRT_GROUP,
                KUBEVIRT_VERSION,
                namespace,
                VM_PLURAL,
                name,
                body=k8s.V1DeleteOptions(propagation_policy=propagation_policy),
            )
        except (ApiException, HTTPError) as e:
            _handle(e, f"Failed to delete virtual machine '{namespace}/{name}'")

    # ── VirtualMachineInstance ───────────────────────────────────────

    def get_virtual_machine_instance(self, namespace: str, name: str) -> dict[str, Any]:
        try:
            return self.custom.get_namespaced_custom_object(
                KUBEVIRT_GROUP, KUBEVIRT_VERSION, namespace, VMI_PLURAL, name
            )
        except (ApiException, HTTPError) as e:
            _handle(e, f"Failed to get instance '{namespace}/{name}'")

    def list_virtual_machine_instances(self, namespace: str) -> list[dict[str, Any]]:
        try:
            resp = self.custom.list_namespaced_custom_object(
                KUBEVIRT_GROUP, KUBEVIRT_VERSION, namespace, VMI_PLURAL
            )
        except (ApiException, HTTPError) as e:
            _handle(e, f"Failed to list instances in '{namespace}'")
        return list(resp.get("items") or [])

    # ── Companion resources ──────────────────────────────────────────

    def create_secret(self, namespace: str, body: dict[str, Any]) -> dict[str, Any]:
        name = body.get("metadata", {}).get("name", "")
        try:
            created = self.core.create_namespaced_secret(namespace, body)
        except (ApiException, HTTPError) as e:
            _handle(
                e,
                f"Failed to create secret '{namespace}/{name}'",
                conflict=UpstreamError,
            )
        return self.api_client.sanitize_for_serialization(created)

    def delete_persistent_volume_claim(
        self, namespace: str, name: str, propagation_policy: str = "Foreground"
    ) -> None:
        try:
            self.core.delete_namespaced_persistent_volume_claim(
                name,
                namespace,
                body=k8s.V1DeleteOptions(propagation_policy=propagation_policy),
            )
        except (ApiException, HTTPError) as e:
            _handle(e, f"Failed to delete volume claim '{namespace}/{name}'", not_found=NotFoundError)

    def list_virtual_machine_images(self, namespace: str) -> list[dict[str, Any]]:
        try:
            resp = self.custom.list_namespaced_custom_object(
                HARVESTER_GROUP, HARVESTER_VERSION, namespace, IMAGE_PLURAL
            )
        except (ApiException, HTTPError) as e:
            _handle(
                e,
                f"Failed to query virtual machine images in '{namespace}'",
                not_found=ImageNotFoundError,
            )
        return list(resp.get("items") or [])
