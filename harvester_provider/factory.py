"""Provider factory.

Provides :func:`build_provider`, the single entry-point for turning a
validated config and a controller ID into a ready provider.  Kubernetes
client bootstrapping lives here so the lifecycle controller only ever sees
the :class:`~harvester_provider.base.cluster.ClusterClient` interface.
"""

from __future__ import annotations

from kubernetes import client as k8s
from kubernetes import config as k8s_config
from kubernetes.config.config_exception import ConfigException

from harvester_provider.base.config import Credentials, ProviderConfig
from harvester_provider.base.exceptions import ConfigError
from harvester_provider.base.logger import provider_logger
from harvester_provider.harvester.client import KubernetesClusterClient
from harvester_provider.harvester.provider import HarvesterProvider


def build_api_client(credentials: Credentials) -> k8s.ApiClient:
    """Create a Kubernetes API client from the configured kubeconfig.

    Base64 content is tried first; a value that does not decode to a
    kubeconfig document is read as a path.

    Raises:
        ConfigError: If the kubeconfig cannot be loaded.
    """
    content = credentials.kubeconfig_content()
    try:
        if content is not None:
            provider_logger.debug("Loading kubeconfig from base64 content")
            return k8s_config.new_client_from_config_dict(content)
        path = credentials.kubeconfig_path()
        provider_logger.debug(f"Loading kubeconfig from {path}")
        return k8s_config.new_client_from_config(config_file=str(path))
    except (ConfigException, OSError) as e:
        raise ConfigError(f"Failed to load kubeconfig: {e}") from e


def build_provider(config: ProviderConfig, controller_id: str) -> HarvesterProvider:
    """Create a provider bound to one namespace and one controller.

    Args:
        config: Validated provider configuration.
        controller_id: ID of the GARM controller invoking us.

    Returns:
        A :class:`HarvesterProvider` backed by the real cluster.

    Raises:
        ConfigError: If the controller ID is empty or the kubeconfig is bad.
    """
    if not controller_id:
        raise ConfigError("Controller ID is required")
    provider_logger.debug(
        "Creating new harvester provider", controller_id=controller_id
    )
    cluster = KubernetesClusterClient(build_api_client(config.credentials))
    return HarvesterProvider(config, controller_id, cluster)
