# ABOUTME: NodePort exposure strategy
# ABOUTME: Switches services to type NodePort and derives the host from the single node's external IP

"""Expose services on a node port of a single-node cluster."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from expose_controller.config import ExposeRule
from expose_controller.errors import ExposureError
from expose_controller.model import NODE_EXTERNAL_IP_ANNOTATION, ServiceKey
from expose_controller.strategies.base import ExposureOutcome, ExposureStrategy

if TYPE_CHECKING:
    from kubernetes.client import CoreV1Api, V1Service

logger = structlog.get_logger(__name__)

NODE_PORT_TYPE = "NodePort"


class NodePortStrategy(ExposureStrategy):
    """Uses ``<external-ip>:<node-port>`` as the host.

    Only single-node clusters are supported: with several nodes there is no
    rule for picking the address to publish, so the service is left untouched.
    """

    rule = ExposeRule.NODE_PORT

    def __init__(self, core_api: CoreV1Api) -> None:
        self._core_api = core_api

    def _external_ip(self, key: ServiceKey) -> str:
        nodes = self._core_api.list_node().items or []
        if len(nodes) != 1:
            raise ExposureError(
                key.namespace,
                key.name,
                f"NodePorts on clusters of {len(nodes)} nodes are not supported; "
                "exactly one node is required",
            )

        annotations = nodes[0].metadata.annotations or {}
        ip = annotations.get(NODE_EXTERNAL_IP_ANNOTATION)
        if not ip:
            raise ExposureError(
                key.namespace,
                key.name,
                f"node has no {NODE_EXTERNAL_IP_ANNOTATION} annotation",
            )
        return ip

    def _ensure(self, service: V1Service, domain: str) -> ExposureOutcome:  # noqa: ARG002
        key = ServiceKey.of(service)
        ip = self._external_ip(key)

        changed = False
        if service.spec.type != NODE_PORT_TYPE:
            service = self._core_api.patch_namespaced_service(
                name=key.name,
                namespace=key.namespace,
                body={"spec": {"type": NODE_PORT_TYPE}},
            )
            changed = True
            logger.info("Updated service to use NodePort", service=str(key))

        ports = service.spec.ports or []
        if len(ports) > 1:
            logger.warning(
                "Service has several ports, recording the first",
                service=str(key),
                ports=len(ports),
            )
        if not ports or not ports[0].node_port:
            logger.info("Node port not assigned yet", service=str(key))
            return ExposureOutcome(
                service=service, host=None, changed=changed, action="updated" if changed else "pending"
            )

        host = f"{ip}:{ports[0].node_port}"
        return ExposureOutcome(
            service=service,
            host=host,
            changed=changed,
            action="updated" if changed else "unchanged",
        )

    def retract(self, namespace: str, name: str) -> bool:
        # The service type is left as is; it may have been chosen for other reasons
        return False
