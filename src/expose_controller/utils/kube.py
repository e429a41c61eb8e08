# ABOUTME: Kubernetes API client construction for the expose controller
# ABOUTME: Loads in-cluster or kubeconfig credentials and bundles the typed API handles

"""Kubernetes client helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from kubernetes import client, config
from kubernetes.client import ApiException

if TYPE_CHECKING:
    from pathlib import Path

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class KubeClients:
    """API handles passed explicitly to every component that talks to the cluster."""

    core: client.CoreV1Api
    networking: client.NetworkingV1Api
    custom: client.CustomObjectsApi
    apis: client.ApisApi


def load_kube_config(kubeconfig: Path | None = None) -> None:
    """Load in-cluster credentials, falling back to a kubeconfig file."""
    if kubeconfig is None:
        try:
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes configuration")
            return
        except config.ConfigException:
            logger.debug("Not running in-cluster, trying kubeconfig")
    config.load_kube_config(config_file=str(kubeconfig) if kubeconfig else None)
    logger.info("Loaded kubeconfig", path=str(kubeconfig) if kubeconfig else "default")


def build_clients(kubeconfig: Path | None = None) -> KubeClients:
    """Load credentials and create the API handles."""
    load_kube_config(kubeconfig)
    api_client = client.ApiClient()
    return KubeClients(
        core=client.CoreV1Api(api_client),
        networking=client.NetworkingV1Api(api_client),
        custom=client.CustomObjectsApi(api_client),
        apis=client.ApisApi(api_client),
    )


def is_not_found(exc: BaseException) -> bool:
    return isinstance(exc, ApiException) and exc.status == 404


def describe_api_error(exc: ApiException) -> str:
    """Short human-readable form of an ApiException for logs."""
    reason = exc.reason or "Unknown"
    return f"Kubernetes API error ({exc.status}): {reason}"
