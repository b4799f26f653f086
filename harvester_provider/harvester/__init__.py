"""Harvester / KubeVirt implementation of the provider blueprint."""

from harvester_provider.harvester.client import KubernetesClusterClient
from harvester_provider.harvester.provider import HarvesterProvider

__all__ = [
    "KubernetesClusterClient",
    "HarvesterProvider",
]
