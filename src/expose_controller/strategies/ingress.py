# ABOUTME: Ingress exposure strategy
# ABOUTME: Maintains one networking.k8s.io/v1 Ingress per exposed service

"""Expose services through Ingress rules (plain Kubernetes only)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from kubernetes import client

from expose_controller.config import ExposeRule
from expose_controller.model import PROVIDER_LABELS, ServiceKey
from expose_controller.strategies.base import ExposureOutcome, ExposureStrategy, service_host
from expose_controller.utils.kube import is_not_found

if TYPE_CHECKING:
    from kubernetes.client import NetworkingV1Api, V1Service, V1ServicePort

logger = structlog.get_logger(__name__)


def _backend_port(port: V1ServicePort) -> client.V1ServiceBackendPort:
    # Route to the target port when it is numeric, otherwise the service port
    if isinstance(port.target_port, int):
        return client.V1ServiceBackendPort(number=port.target_port)
    return client.V1ServiceBackendPort(number=port.port)


def build_ingress(key: ServiceKey, host: str, ports: list[V1ServicePort]) -> client.V1Ingress:
    """One rule per service port, all on the same host."""
    rules = [
        client.V1IngressRule(
            host=host,
            http=client.V1HTTPIngressRuleValue(
                paths=[
                    client.V1HTTPIngressPath(
                        path="/",
                        path_type="Prefix",
                        backend=client.V1IngressBackend(
                            service=client.V1IngressServiceBackend(
                                name=key.name,
                                port=_backend_port(port),
                            )
                        ),
                    )
                ]
            ),
        )
        for port in ports
    ]
    return client.V1Ingress(
        api_version="networking.k8s.io/v1",
        kind="Ingress",
        metadata=client.V1ObjectMeta(
            name=key.name,
            namespace=key.namespace,
            labels=dict(PROVIDER_LABELS),
        ),
        spec=client.V1IngressSpec(rules=rules),
    )


class IngressStrategy(ExposureStrategy):
    """Creates ``<service>.<namespace>.<domain>`` ingress rules."""

    rule = ExposeRule.INGRESS

    def __init__(self, networking_api: NetworkingV1Api) -> None:
        self._networking_api = networking_api

    def _ensure(self, service: V1Service, domain: str) -> ExposureOutcome:
        key = ServiceKey.of(service)
        host = service_host(key, domain)

        try:
            existing = self._networking_api.read_namespaced_ingress(
                name=key.name, namespace=key.namespace
            )
        except client.ApiException as e:
            if not is_not_found(e):
                raise
            existing = None

        if existing is None:
            ports = (service.spec.ports if service.spec else None) or []
            if not ports:
                logger.warning("Service declares no ports, not creating ingress", service=str(key))
                return ExposureOutcome(service=service, host=None, action="skipped")

            self._networking_api.create_namespaced_ingress(
                namespace=key.namespace,
                body=build_ingress(key, host, ports),
            )
            logger.info("Exposed service using ingress rule", service=str(key), host=host)
            return ExposureOutcome(service=service, host=host, changed=True, action="created")

        rules = (existing.spec.rules if existing.spec else None) or []
        host_patch = [
            {"op": "add", "path": f"/spec/rules/{index}/host", "value": host}
            for index, rule in enumerate(rules)
            if rule.host != host
        ]
        if host_patch:
            # JSON patch: only the rule hosts change
            self._networking_api.patch_namespaced_ingress(
                name=key.name,
                namespace=key.namespace,
                body=host_patch,
            )
            logger.info("Updated ingress hostname", ingress=str(key), host=host)
            return ExposureOutcome(service=service, host=host, changed=True, action="updated")

        return ExposureOutcome(service=service, host=host)

    def retract(self, namespace: str, name: str) -> bool:
        try:
            self._networking_api.read_namespaced_ingress(name=name, namespace=namespace)
        except client.ApiException as e:
            if is_not_found(e):
                logger.debug("No ingress to delete", ingress=f"{namespace}/{name}")
                return False
            raise

        try:
            self._networking_api.delete_namespaced_ingress(name=name, namespace=namespace)
        except client.ApiException as e:
            # Removed between read and delete
            if is_not_found(e):
                return False
            raise
        logger.info("Deleted ingress rule", ingress=f"{namespace}/{name}")
        return True
