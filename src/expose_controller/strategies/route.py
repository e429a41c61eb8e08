# ABOUTME: OpenShift route exposure strategy
# ABOUTME: Maintains one route.openshift.io/v1 Route per exposed service

"""Expose services through OpenShift Routes."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from kubernetes.client import ApiException

from expose_controller.config import ExposeRule
from expose_controller.model import PROVIDER_LABELS, ServiceKey
from expose_controller.strategies.base import ExposureOutcome, ExposureStrategy, service_host
from expose_controller.utils.kube import is_not_found

if TYPE_CHECKING:
    from kubernetes.client import CustomObjectsApi, V1Service

logger = structlog.get_logger(__name__)

ROUTE_GROUP = "route.openshift.io"
ROUTE_VERSION = "v1"
ROUTE_PLURAL = "routes"

# The API server's own service is never routed
KUBERNETES_SERVICE_NAME = "kubernetes"


def build_route(key: ServiceKey, host: str) -> dict[str, Any]:
    return {
        "apiVersion": f"{ROUTE_GROUP}/{ROUTE_VERSION}",
        "kind": "Route",
        "metadata": {
            "name": key.name,
            "namespace": key.namespace,
            "labels": dict(PROVIDER_LABELS),
        },
        "spec": {
            "host": host,
            "to": {"kind": "Service", "name": key.name},
        },
    }


class RouteStrategy(ExposureStrategy):
    """Creates ``<service>.<namespace>.<domain>`` routes."""

    rule = ExposeRule.ROUTE

    def __init__(self, custom_api: CustomObjectsApi) -> None:
        self._custom_api = custom_api

    def _get(self, namespace: str, name: str) -> dict[str, Any] | None:
        try:
            return self._custom_api.get_namespaced_custom_object(
                group=ROUTE_GROUP,
                version=ROUTE_VERSION,
                namespace=namespace,
                plural=ROUTE_PLURAL,
                name=name,
            )
        except ApiException as e:
            if is_not_found(e):
                return None
            raise

    def _ensure(self, service: V1Service, domain: str) -> ExposureOutcome:
        key = ServiceKey.of(service)
        if key.name == KUBERNETES_SERVICE_NAME:
            return ExposureOutcome(service=service, host=None, action="skipped")

        host = service_host(key, domain)
        existing = self._get(key.namespace, key.name)

        if existing is None:
            self._custom_api.create_namespaced_custom_object(
                group=ROUTE_GROUP,
                version=ROUTE_VERSION,
                namespace=key.namespace,
                plural=ROUTE_PLURAL,
                body=build_route(key, host),
            )
            logger.info("Exposed service using openshift route", service=str(key), host=host)
            return ExposureOutcome(service=service, host=host, changed=True, action="created")

        if existing.get("spec", {}).get("host") != host:
            self._custom_api.patch_namespaced_custom_object(
                group=ROUTE_GROUP,
                version=ROUTE_VERSION,
                namespace=key.namespace,
                plural=ROUTE_PLURAL,
                name=key.name,
                body={"spec": {"host": host}},
            )
            logger.info("Updated route hostname", route=str(key), host=host)
            return ExposureOutcome(service=service, host=host, changed=True, action="updated")

        return ExposureOutcome(service=service, host=host)

    def retract(self, namespace: str, name: str) -> bool:
        if self._get(namespace, name) is None:
            logger.debug("No route to delete", route=f"{namespace}/{name}")
            return False

        try:
            self._custom_api.delete_namespaced_custom_object(
                group=ROUTE_GROUP,
                version=ROUTE_VERSION,
                namespace=namespace,
                plural=ROUTE_PLURAL,
                name=name,
            )
        except ApiException as e:
            if is_not_found(e):
                return False
            raise
        logger.info("Deleted openshift route", route=f"{namespace}/{name}")
        return True
