# ABOUTME: LoadBalancer exposure strategy
# ABOUTME: Switches services to type LoadBalancer and records the address once assigned

"""Expose services through a cloud load balancer."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from expose_controller.config import ExposeRule
from expose_controller.model import ServiceKey
from expose_controller.strategies.base import ExposureOutcome, ExposureStrategy

if TYPE_CHECKING:
    from kubernetes.client import CoreV1Api, V1Service

logger = structlog.get_logger(__name__)

LOAD_BALANCER_TYPE = "LoadBalancer"


def load_balancer_host(service: V1Service) -> str | None:
    """First ingress IP or hostname from the service status, else ``spec.loadBalancerIP``."""
    status = service.status
    lb_status = status.load_balancer if status else None
    for entry in (lb_status.ingress if lb_status else None) or []:
        if entry.ip:
            return entry.ip
        if entry.hostname:
            return entry.hostname
    return service.spec.load_balancer_ip or None


class LoadBalancerStrategy(ExposureStrategy):
    """Uses the platform-assigned load balancer address as the host."""

    rule = ExposeRule.LOAD_BALANCER

    def __init__(self, core_api: CoreV1Api) -> None:
        self._core_api = core_api

    def _ensure(self, service: V1Service, domain: str) -> ExposureOutcome:  # noqa: ARG002
        key = ServiceKey.of(service)

        changed = False
        if service.spec.type != LOAD_BALANCER_TYPE:
            service = self._core_api.patch_namespaced_service(
                name=key.name,
                namespace=key.namespace,
                body={"spec": {"type": LOAD_BALANCER_TYPE}},
            )
            changed = True
            logger.info(
                "Updated service to use LoadBalancer; the cloud provider can take a few minutes",
                service=str(key),
            )

        host = load_balancer_host(service)
        if not host:
            # A later update event carries the address
            logger.info("Load balancer address not assigned yet", service=str(key))
        return ExposureOutcome(
            service=service,
            host=host,
            changed=changed,
            action="updated" if changed else ("unchanged" if host else "pending"),
        )

    def retract(self, namespace: str, name: str) -> bool:
        # The service type is left as is; it may have been chosen for other reasons
        return False
