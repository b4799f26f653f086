"""Shared fixtures."""

from unittest.mock import MagicMock
import base64

import pytest

from harvester_provider.base.cluster import ClusterClient
from harvester_provider.base.config import Credentials, ProviderConfig
from harvester_provider.base.params import BootstrapRequest, RunnerApplicationDownload

KUBECONFIG_YAML = b"""\
apiVersion: v1
kind: Config
clusters:
- name: harvester
  cluster:
    server: https://harvester.example.com:6443
contexts:
- name: harvester
  context:
    cluster: harvester
    user: garm
current-context: harvester
users:
- name: garm
  user:
    token: abc
"""

KUBECONFIG_B64 = base64.b64encode(KUBECONFIG_YAML).decode()


@pytest.fixture
def kubeconfig_b64():
    return KUBECONFIG_B64


@pytest.fixture
def provider_config():
    return ProviderConfig(
        namespace="runners",
        credentials=Credentials(kubeconfig=KUBECONFIG_B64),
    )


@pytest.fixture
def cluster():
    return MagicMock(spec=ClusterClient)


@pytest.fixture
def make_request():
    def _make(**overrides):
        params = {
            "name": "Runner-1",
            "os_type": "linux",
            "os_arch": "amd64",
            "pool_id": "pool-1",
            "flavor": "small",
            "image": "default/ubuntu-22.04",
            "labels": ["self-hosted", "linux"],
            "tools": [
                RunnerApplicationDownload(
                    os="linux",
                    architecture="x64",
                    download_url="https://example.com/actions-runner-linux-x64.tar.gz",
                ),
                RunnerApplicationDownload(
                    os="linux",
                    architecture="arm64",
                    download_url="https://example.com/actions-runner-linux-arm64.tar.gz",
                ),
            ],
            "instance_token": "token-123",
            "callback_url": "https://garm.example.com/api/v1/callbacks",
            "repo_url": "https://github.com/acme/widgets",
        }
        params.update(overrides)
        return BootstrapRequest(**params)

    return _make
