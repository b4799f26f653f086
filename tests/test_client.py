"""Tests for the Kubernetes cluster client."""

from unittest.mock import patch, MagicMock

import pytest
from kubernetes.client.rest import ApiException
from urllib3.exceptions import MaxRetryError

from harvester_provider.base.exceptions import (
    ImageNotFoundError,
    InstanceAlreadyExistsError,
    InstanceNotFoundError,
    NotFoundError,
    UpstreamError,
)
from harvester_provider.harvester.client import (
    HARVESTER_GROUP,
    IMAGE_PLURAL,
    KUBEVIRT_GROUP,
    VM_PLURAL,
    VMI_PLURAL,
    KubernetesClusterClient,
)


def _api_error(status: int, reason: str = "error") -> ApiException:
    return ApiException(status=status, reason=reason)


@pytest.fixture
def svc():
    with patch("harvester_provider.harvester.client.k8s") as mock_k8s:
        custom = MagicMock()
        core = MagicMock()
        mock_k8s.CustomObjectsApi.return_value = custom
        mock_k8s.CoreV1Api.return_value = core
        api_client = MagicMock()
        yield KubernetesClusterClient(api_client), custom, core, mock_k8s


# --- VirtualMachine ---

class TestVirtualMachine:
    def test_create(self, svc):
        client, custom, _, _ = svc
        body = {"metadata": {"name": "runner-1"}}
        custom.create_namespaced_custom_object.return_value = {"metadata": {"name": "runner-1", "uid": "u"}}
        created = client.create_virtual_machine("runners", body)
        assert created["metadata"]["uid"] == "u"
        custom.create_namespaced_custom_object.assert_called_once_with(
            KUBEVIRT_GROUP, "v1", "runners", VM_PLURAL, body
        )

    def test_create_conflict(self, svc):
        client, custom, _, _ = svc
        custom.create_namespaced_custom_object.side_effect = _api_error(409, "AlreadyExists")
        with pytest.raises(InstanceAlreadyExistsError):
            client.create_virtual_machine("runners", {"metadata": {"name": "runner-1"}})

    def test_create_server_error(self, svc):
        client, custom, _, _ = svc
        custom.create_namespaced_custom_object.side_effect = _api_error(500, "Internal")
        with pytest.raises(UpstreamError, match="500 Internal"):
            client.create_virtual_machine("runners", {"metadata": {"name": "runner-1"}})

    def test_get_not_found(self, svc):
        client, custom, _, _ = svc
        custom.get_namespaced_custom_object.side_effect = _api_error(404, "NotFound")
        with pytest.raises(InstanceNotFoundError):
            client.get_virtual_machine("runners", "runner-1")

    def test_get_transport_error(self, svc):
        client, custom, _, _ = svc
        custom.get_namespaced_custom_object.side_effect = MaxRetryError(None, "/apis", "refused")
        with pytest.raises(UpstreamError):
            client.get_virtual_machine("runners", "runner-1")

    def test_list(self, svc):
        client, custom, _, _ = svc
        custom.list_namespaced_custom_object.return_value = {"items": [{"metadata": {"name": "a"}}]}
        assert client.list_virtual_machines("runners") == [{"metadata": {"name": "a"}}]
        custom.list_namespaced_custom_object.assert_called_once_with(
            KUBEVIRT_GROUP, "v1", "runners", VM_PLURAL
        )

    def test_list_empty(self, svc):
        client, custom, _, _ = svc
        custom.list_namespaced_custom_object.return_value = {"items": None}
        assert client.list_virtual_machines("runners") == []

    def test_update(self, svc):
        client, custom, _, _ = svc
        body = {"spec": {"runStrategy": "Always"}}
        client.update_virtual_machine("runners", "runner-1", body)
        custom.replace_namespaced_custom_object.assert_called_once_with(
            KUBEVIRT_GROUP, "v1", "runners", VM_PLURAL, "runner-1", body
        )

    def test_delete_foreground(self, svc):
        client, custom, _, mock_k8s = svc
        client.delete_virtual_machine("runners", "runner-1")
        mock_k8s.V1DeleteOptions.assert_called_once_with(propagation_policy="Foreground")
        kwargs = custom.delete_namespaced_custom_object.call_args[1]
        assert kwargs["body"] is mock_k8s.V1DeleteOptions.return_value

    def test_delete_not_found(self, svc):
        client, custom, _, _ = svc
        custom.delete_namespaced_custom_object.side_effect = _api_error(404)
        with pytest.raises(InstanceNotFoundError):
            client.delete_virtual_machine("runners", "runner-1")


# --- VirtualMachineInstance ---

class TestVirtualMachineInstance:
    def test_get(self, svc):
        client, custom, _, _ = svc
        custom.get_namespaced_custom_object.return_value = {"status": {"phase": "Running"}}
        assert client.get_virtual_machine_instance("runners", "runner-1")["status"]["phase"] == "Running"
        assert custom.get_namespaced_custom_object.call_args[0][3] == VMI_PLURAL

    def test_list_forbidden(self, svc):
        client, custom, _, _ = svc
        custom.list_namespaced_custom_object.side_effect = _api_error(403, "Forbidden")
        with pytest.raises(UpstreamError, match="403"):
            client.list_virtual_machine_instances("runners")


# --- Companion resources ---

class TestCompanionResources:
    def test_create_secret(self, svc):
        client, _, core, _ = svc
        client.api_client.sanitize_for_serialization.return_value = {"metadata": {"name": "s"}}
        body = {"metadata": {"name": "s"}, "stringData": {"userdata": "x"}}
        assert client.create_secret("runners", body) == {"metadata": {"name": "s"}}
        core.create_namespaced_secret.assert_called_once_with("runners", body)

    def test_create_secret_conflict(self, svc):
        client, _, core, _ = svc
        core.create_namespaced_secret.side_effect = _api_error(409)
        with pytest.raises(UpstreamError):
            client.create_secret("runners", {"metadata": {"name": "s"}})

    def test_delete_pvc(self, svc):
        client, _, core, _ = svc
        client.delete_persistent_volume_claim("runners", "runner-1-rootdisk-abcde")
        args = core.delete_namespaced_persistent_volume_claim.call_args[0]
        assert args == ("runner-1-rootdisk-abcde", "runners")

    def test_delete_pvc_not_found(self, svc):
        client, _, core, _ = svc
        core.delete_namespaced_persistent_volume_claim.side_effect = _api_error(404)
        with pytest.raises(NotFoundError) as exc_info:
            client.delete_persistent_volume_claim("runners", "claim")
        assert not isinstance(exc_info.value, InstanceNotFoundError)

    def test_list_images(self, svc):
        client, custom, _, _ = svc
        custom.list_namespaced_custom_object.return_value = {"items": [{"metadata": {"name": "img"}}]}
        assert client.list_virtual_machine_images("default") == [{"metadata": {"name": "img"}}]
        custom.list_namespaced_custom_object.assert_called_once_with(
            HARVESTER_GROUP, "v1beta1", "default", IMAGE_PLURAL
        )

    def test_list_images_not_found(self, svc):
        client, custom, _, _ = svc
        custom.list_namespaced_custom_object.side_effect = _api_error(404)
        with pytest.raises(ImageNotFoundError):
            client.list_virtual_machine_images("default")
