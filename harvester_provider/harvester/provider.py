"""Harvester implementation of the provider blueprint.

This is the only component with side effects against the cluster.  Every
destructive call is preceded by an ownership check on the
``harvesterhci.io/controller-id`` label, the sole guard between controllers
sharing one namespace.
"""

from __future__ import annotations

import copy
import json
import uuid
from typing import Any

from harvester_provider.base.cluster import ClusterClient
from harvester_provider.base.config import DEFAULT_NETWORK_NAME, ExtraOptions, ProviderConfig
from harvester_provider.base.exceptions import (
    CleanupError,
    ImageNotFoundError,
    InstanceNotFoundError,
    NotFoundError,
    OwnershipError,
    UpstreamError,
    ValidationError,
)
from harvester_provider.base.logger import provider_logger
from harvester_provider.base.params import (
    BootstrapRequest,
    ProviderInstance,
    RunnerApplicationDownload,
)
from harvester_provider.base.provider import ProviderBlueprint
from harvester_provider.harvester.client import KUBEVIRT_GROUP, KUBEVIRT_VERSION
from harvester_provider.harvester.cloudinit import BootPayload, build_boot_payload
from harvester_provider.harvester.flavor import Flavor, parse_flavor
from harvester_provider.harvester.mapper import (
    CONTROLLER_ID_LABEL,
    POOL_ID_LABEL,
    instance_labels,
    owner_of,
    to_provider_instance,
    vm_name,
)
from harvester_provider.harvester.storage import resolve_storage_class, split_image_id
from harvester_provider.version import __version__

VM_API_VERSION = f"{KUBEVIRT_GROUP}/{KUBEVIRT_VERSION}"
VM_KIND = "VirtualMachine"

RUN_STRATEGY_ON_CREATE = "RerunOnFailure"
RUN_STRATEGY_START = "Always"
RUN_STRATEGY_STOP = "Halted"

ROOT_DISK = "rootdisk"
CLOUD_INIT_DISK = "cloudinitdisk"
NIC_NAME = "nic-0"

VOLUME_CLAIM_TEMPLATES_ANNOTATION = "harvesterhci.io/volumeClaimTemplates"
IMAGE_ID_ANNOTATION = "harvesterhci.io/imageId"
AUTO_DELETE_ANNOTATION = "terraform-provider-harvester-auto-delete"
VM_NAME_LABEL = "harvesterhci.io/vmName"

# GARM architecture names → GitHub runner download architectures.
GITHUB_ARCH: dict[str, str] = {
    "amd64": "x64",
    "x86_64": "x64",
    "x64": "x64",
    "arm64": "arm64",
    "aarch64": "arm64",
    "arm": "arm",
    "armv7l": "arm",
    "386": "x86",
    "i386": "x86",
    "x86": "x86",
}


def resolve_github_arch(arch: str) -> str:
    """Map an OS architecture to the name GitHub uses for runner tools.

    Raises:
        ValidationError: If the architecture is not known.
    """
    github_arch = GITHUB_ARCH.get(arch.lower())
    if github_arch is None:
        raise ValidationError(f"Unsupported architecture '{arch}'")
    return github_arch


def select_tool(request: BootstrapRequest) -> RunnerApplicationDownload:
    """Pick the runner download matching the request's OS and architecture.

    Raises:
        ValidationError: If no offered tool matches.
    """
    github_arch = resolve_github_arch(request.os_arch)
    for tool in request.tools:
        if (tool.os or "").lower() == request.os_type.lower() and (
            tool.architecture or ""
        ).lower() == github_arch:
            return tool
    raise ValidationError(
        f"No tools found for {request.os_type}/{github_arch} ({request.name})"
    )


def claims_to_remove(vm: dict[str, Any]) -> list[str]:
    """Names of the PersistentVolumeClaims backing a VM's volumes."""
    volumes = ((vm.get("spec") or {}).get("template") or {}).get("spec", {}).get("volumes") or []
    claims: list[str] = []
    for volume in volumes:
        claim = (volume.get("persistentVolumeClaim") or {}).get("claimName")
        if claim and claim not in claims:
            claims.append(claim)
    return claims


def current_run_strategy(vm: dict[str, Any]) -> str | None:
    """Run strategy of a VM, honouring the legacy ``spec.running`` flag."""
    spec = vm.get("spec") or {}
    if spec.get("runStrategy"):
        return spec["runStrategy"]
    if "running" in spec:
        return RUN_STRATEGY_START if spec["running"] else RUN_STRATEGY_STOP
    return None


def _network(options: ExtraOptions) -> dict[str, Any]:
    if options.network_name == DEFAULT_NETWORK_NAME:
        return {"name": NIC_NAME, "pod": {}}
    return {"name": NIC_NAME, "multus": {"networkName": options.network_name}}


def build_virtual_machine(
    namespace: str,
    request: BootstrapRequest,
    labels: dict[str, str],
    flavor: Flavor,
    options: ExtraOptions,
    storage_class: str,
    payload: BootPayload,
) -> dict[str, Any]:
    """Assemble the VirtualMachine manifest for a runner.

    The boot disk is a block-mode PVC cloned from the backing image through
    Harvester's volume-claim-template annotation; the second disk carries the
    cloud-init payload, inline or via its Secret.
    """
    name = vm_name(request.name)
    claim_name = f"{name}-{ROOT_DISK}-{uuid.uuid4().hex[:5]}"
    claim_template = {
        "metadata": {
            "name": claim_name,
            "annotations": {
                IMAGE_ID_ANNOTATION: request.image,
                AUTO_DELETE_ANNOTATION: "true",
            },
        },
        "spec": {
            "accessModes": ["ReadWriteMany"],
            "resources": {"requests": {"storage": flavor.disk}},
            "volumeMode": "Block",
            "storageClassName": storage_class,
        },
    }

    template_spec: dict[str, Any] = {
        "evictionStrategy": "LiveMigrate",
        "domain": {
            "cpu": {"cores": flavor.cores, "sockets": 1, "threads": 1},
            "memory": {"guest": flavor.memory},
            "resources": {"limits": {"cpu": str(flavor.cores), "memory": flavor.memory}},
            "devices": {
                "disks": [
                    {
                        "name": ROOT_DISK,
                        "bootOrder": 1,
                        "disk": {"bus": options.disk_connector_type},
                    },
                    {"name": CLOUD_INIT_DISK, "disk": {"bus": "virtio"}},
                ],
                "interfaces": [
                    {
                        "name": NIC_NAME,
                        "model": options.network_adapter_type,
                        options.network_type: {},
                    }
                ],
            },
        },
        "networks": [_network(options)],
        "volumes": [
            {"name": ROOT_DISK, "persistentVolumeClaim": {"claimName": claim_name}},
            {"name": CLOUD_INIT_DISK, "cloudInitNoCloud": payload.volume_source()},
        ],
    }
    if request.os_arch:
        template_spec["architecture"] = request.os_arch

    return {
        "apiVersion": VM_API_VERSION,
        "kind": VM_KIND,
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": dict(labels),
            "annotations": {
                VOLUME_CLAIM_TEMPLATES_ANNOTATION: json.dumps([claim_template]),
            },
        },
        "spec": {
            "runStrategy": RUN_STRATEGY_ON_CREATE,
            "template": {
                "metadata": {"labels": {**labels, VM_NAME_LABEL: name}},
                "spec": template_spec,
            },
        },
    }


def validate_pool_info(image: str, flavor: str, extra_specs: str | None = None) -> None:
    """Check a pool definition offline, before GARM stores it.

    Only the shape of the values is checked; whether the image exists is
    left to ``CreateInstance``.

    Raises:
        ValidationError: If the image ID, flavor or extra specs are malformed.
    """
    try:
        split_image_id(image)
    except ImageNotFoundError as e:
        raise ValidationError(str(e)) from e
    parse_flavor(flavor)
    ExtraOptions.from_json(extra_specs)


class HarvesterProvider(ProviderBlueprint):
    """GARM external provider backed by a Harvester / KubeVirt cluster.

    Attributes:
        config: Validated provider configuration.
        namespace: Namespace holding the runner VMs.
        controller_id: ID of the GARM controller this process acts for.
        cluster: Cluster capability interface.
    """

    def __init__(
        self,
        config: ProviderConfig,
        controller_id: str,
        cluster: ClusterClient,
        version: str = __version__,
    ) -> None:
        self.config = config
        self.namespace = config.namespace
        self.controller_id = controller_id
        self.cluster = cluster
        self.version = version

    def _log(self, message: str, operation: str, instance: str | None = None) -> None:
        provider_logger.info(
            message, controller_id=self.controller_id, operation=operation, instance=instance
        )

    def _check_owner(self, vm: dict[str, Any], name: str) -> None:
        owner = owner_of(vm)
        if owner != self.controller_id:
            raise OwnershipError(
                f"Found instance '{name}' but it is not labelled "
                f"{CONTROLLER_ID_LABEL}={self.controller_id} (owner: {owner or 'none'})"
            )

    def _delete_claims(self, name: str, claims: list[str]) -> None:
        failed: list[str] = []
        for claim in claims:
            try:
                self.cluster.delete_persistent_volume_claim(self.namespace, claim)
            except NotFoundError:
                continue
            except UpstreamError as e:
                provider_logger.error(
                    f"Failed to remove volume claim {claim}: {e}",
                    controller_id=self.controller_id,
                    operation="delete_claims",
                    instance=name,
                )
                failed.append(claim)
        if failed:
            raise CleanupError(
                f"Instance '{name}' was removed but volume claims {', '.join(failed)} were not"
            )

    # ── create ───────────────────────────────────────────────────────

    def create_instance(self, request: BootstrapRequest) -> ProviderInstance:
        """Create a runner VM.

        Validation (extra specs, flavor, tools, boot payload, image) happens
        before anything is submitted.  When the payload is too large to
        inline, a Secret owned by the new VM carries it.

        Raises:
            ValidationError: Bad extra specs, flavor, tools or repo URL.
            ImageNotFoundError: The backing image does not exist.
            InstanceAlreadyExistsError: A VM with that name exists.
            UpstreamError: Any other cluster failure.
        """
        name = vm_name(request.name)
        self._log("Create instance", "create_instance", name)

        options = ExtraOptions.from_json(request.extra_specs)
        flavor = parse_flavor(request.flavor)
        tool = select_tool(request)
        payload = build_boot_payload(request, tool.download_url or "")
        self._log(
            f"Cloud-init ready ({'secret' if payload.externalized else 'inline'})",
            "create_instance",
            name,
        )
        storage_class = resolve_storage_class(self.cluster, request.image)
        self._log(f"Boot image resolved to storage class {storage_class}", "create_instance", name)

        body = build_virtual_machine(
            self.namespace,
            request,
            instance_labels(request, self.controller_id),
            flavor,
            options,
            storage_class,
            payload,
        )
        created = self.cluster.create_virtual_machine(self.namespace, body)
        self._log("Instance created", "create_instance", name)

        if payload.externalized:
            owner = {
                "apiVersion": VM_API_VERSION,
                "kind": VM_KIND,
                "name": name,
                "uid": (created.get("metadata") or {}).get("uid", ""),
            }
            self.cluster.create_secret(
                self.namespace, payload.secret_manifest(self.namespace, [owner])
            )
            self._log(f"Cloud-init secret {payload.secret_name} created", "create_instance", name)

        return to_provider_instance(created, request.name)

    # ── delete ───────────────────────────────────────────────────────

    def delete_instance(self, instance: str) -> None:
        """Delete a runner VM and the volume claims behind it.

        A missing VM counts as deleted.  When a claim cannot be removed the
        VM is already gone and :class:`CleanupError` is raised.

        Raises:
            OwnershipError: The VM belongs to another controller.
            CleanupError: The VM was removed but a claim was not.
        """
        name = vm_name(instance)
        try:
            vm = self.cluster.get_virtual_machine(self.namespace, name)
        except InstanceNotFoundError:
            self._log("Instance not found, nothing to delete", "delete_instance", name)
            return
        self._check_owner(vm, name)

        claims = claims_to_remove(vm)
        try:
            self.cluster.delete_virtual_machine(self.namespace, name, propagation_policy="Foreground")
        except InstanceNotFoundError:
            self._log("Instance disappeared before deletion", "delete_instance", name)
        self._delete_claims(name, claims)
        self._log("Instance deleted", "delete_instance", name)

    # ── read ─────────────────────────────────────────────────────────

    def get_instance(self, instance: str) -> ProviderInstance:
        """Return the live view of a runner.

        The VirtualMachineInstance is preferred; a halted VM has none, so the
        VirtualMachine itself is reported instead.

        Raises:
            InstanceNotFoundError: Neither object exists.
        """
        name = vm_name(instance)
        try:
            vmi = self.cluster.get_virtual_machine_instance(self.namespace, name)
        except InstanceNotFoundError:
            vm = self.cluster.get_virtual_machine(self.namespace, name)
            return to_provider_instance(vm, instance)
        return to_provider_instance(vmi, instance)

    def list_instances(self, pool_id: str | None = None) -> list[ProviderInstance]:
        """List runners in the namespace.

        Live instances come from VirtualMachineInstances; VMs without one
        (halted) are reported from the VirtualMachine.  When *pool_id* is
        given only objects labelled with that pool are returned.
        """
        vmis = self.cluster.list_virtual_machine_instances(self.namespace)
        live = {(v.get("metadata") or {}).get("name") for v in vmis}
        halted = [
            vm
            for vm in self.cluster.list_virtual_machines(self.namespace)
            if (vm.get("metadata") or {}).get("name") not in live
        ]

        result: list[ProviderInstance] = []
        for obj in [*vmis, *halted]:
            labels = (obj.get("metadata") or {}).get("labels") or {}
            if pool_id and labels.get(POOL_ID_LABEL) != pool_id:
                continue
            result.append(to_provider_instance(obj))
        return result

    # ── bulk delete ──────────────────────────────────────────────────

    def remove_all_instances(self) -> None:
        """Delete every VM labelled with this controller's ID.

        VMs owned by other controllers, or unlabelled, are left untouched.
        Every owned VM is attempted; failures are reported together at the
        end.

        Raises:
            CleanupError: Every VM was removed but some volume claims were not.
            UpstreamError: At least one VM could not be removed.
        """
        failures: list[UpstreamError] = []
        for vm in self.cluster.list_virtual_machines(self.namespace):
            name = (vm.get("metadata") or {}).get("name", "")
            if owner_of(vm) != self.controller_id:
                provider_logger.debug(
                    f"Skipping instance {name}: not labelled {CONTROLLER_ID_LABEL}={self.controller_id}",
                    controller_id=self.controller_id,
                    operation="remove_all_instances",
                    instance=name,
                )
                continue

            claims = claims_to_remove(vm)
            try:
                try:
                    self.cluster.delete_virtual_machine(
                        self.namespace, name, propagation_policy="Foreground"
                    )
                except InstanceNotFoundError:
                    self._log("Instance disappeared before deletion", "remove_all_instances", name)
                self._delete_claims(name, claims)
            except UpstreamError as e:
                provider_logger.error(
                    f"Failed to remove instance {name}: {e}",
                    controller_id=self.controller_id,
                    operation="remove_all_instances",
                    instance=name,
                )
                failures.append(e)
                continue
            self._log("Instance deleted", "remove_all_instances", name)

        if not failures:
            return
        summary = "; ".join(str(e) for e in failures)
        if all(isinstance(e, CleanupError) for e in failures):
            raise CleanupError(summary)
        raise UpstreamError(f"Failed to remove {len(failures)} instance(s): {summary}")

    # ── power ────────────────────────────────────────────────────────

    def _set_run_strategy(self, instance: str, strategy: str, operation: str) -> None:
        name = vm_name(instance)
        vm = self.cluster.get_virtual_machine(self.namespace, name)
        self._check_owner(vm, name)

        if current_run_strategy(vm) == strategy:
            self._log(f"Run strategy already {strategy}, nothing to do", operation, name)
            return

        updated = copy.deepcopy(vm)
        spec = updated.setdefault("spec", {})
        spec["runStrategy"] = strategy
        # runStrategy and the legacy running flag are mutually exclusive.
        spec.pop("running", None)
        self.cluster.update_virtual_machine(self.namespace, name, updated)
        self._log(f"Run strategy set to {strategy}", operation, name)

    def start_instance(self, instance: str) -> None:
        """Set the VM's run strategy to ``Always``.  Idempotent.

        Raises:
            InstanceNotFoundError: The VM does not exist.
            OwnershipError: The VM belongs to another controller.
        """
        self._set_run_strategy(instance, RUN_STRATEGY_START, "start_instance")

    def stop_instance(self, instance: str) -> None:
        """Set the VM's run strategy to ``Halted``.  Idempotent.

        Raises:
            InstanceNotFoundError: The VM does not exist.
            OwnershipError: The VM belongs to another controller.
        """
        self._set_run_strategy(instance, RUN_STRATEGY_STOP, "stop_instance")

    def get_version(self) -> str:
        return self.version
