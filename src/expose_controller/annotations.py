# ABOUTME: Annotation recorder for the expose controller
# ABOUTME: Computes the external URL and writes it onto the service only when it changed

"""Writes the ``fabric8.io/exposeUrl`` annotation.

The annotation is bookkeeping, not the exposure mechanism itself, so write
failures are logged and never raised.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from kubernetes.client import ApiException

from expose_controller.model import EXPOSE_URL_ANNOTATION, ServiceKey, service_annotations
from expose_controller.utils.kube import describe_api_error

if TYPE_CHECKING:
    from kubernetes.client import CoreV1Api, V1Service

    from expose_controller.utils.logging import AuditLogger

logger = structlog.get_logger(__name__)

HTTPS_PORTS = frozenset({"443", "8443"})


def infer_scheme(service: V1Service, host: str) -> str:
    """
    Pick ``https`` or ``http`` for a host.

    https when the host ends in port 443 or 8443, or when any service port is
    named ``https``; http otherwise.

    Example:
        "1.2.3.4:443"  -> "https"
        "1.2.3.4:8080" -> "http" (unless a port is named "https")
    """
    _, sep, port = host.rpartition(":")
    if sep and port in HTTPS_PORTS:
        return "https"

    ports = (service.spec.ports if service.spec else None) or []
    if any(port.name == "https" for port in ports):
        return "https"
    return "http"


def build_expose_url(service: V1Service, host: str) -> str:
    return f"{infer_scheme(service, host)}://{host}"


class AnnotationRecorder:
    """Writes the computed external URL onto the service."""

    def __init__(self, core_api: CoreV1Api, audit: AuditLogger | None = None) -> None:
        self._core_api = core_api
        self._audit = audit

    def record(self, service: V1Service, host: str, host_changed: bool = False) -> bool:
        """
        Store the URL for ``host`` on the service.

        The write happens only when the stored URL differs from the computed
        one, or when ``host_changed`` says the exposure resource itself was
        just created or updated.

        Args:
            service: Service as last observed (its annotations are compared).
            host: Host, or ``host:port``, the service is reachable on.
            host_changed: The backend created or modified its resource.

        Returns:
            True if the annotation was written.
        """
        key = ServiceKey.of(service)
        new_url = build_expose_url(service, host)
        existing_url = service_annotations(service).get(EXPOSE_URL_ANNOTATION)

        if existing_url == new_url and not host_changed:
            logger.debug("Expose URL unchanged", service=str(key), url=new_url)
            return False

        logger.info(
            "Updating expose URL",
            service=str(key),
            existing_url=existing_url,
            new_url=new_url,
            host_changed=host_changed,
        )
        body = {"metadata": {"annotations": {EXPOSE_URL_ANNOTATION: new_url}}}
        try:
            self._core_api.patch_namespaced_service(
                name=key.name,
                namespace=key.namespace,
                body=body,
            )
        except ApiException as e:
            logger.warning(
                "Failed to add annotation to service",
                annotation=EXPOSE_URL_ANNOTATION,
                service=str(key),
                error=describe_api_error(e),
            )
            if self._audit:
                self._audit.log_error("annotate", str(key), describe_api_error(e))
            return False

        # Keep the in-memory object consistent for later comparisons
        if service.metadata.annotations is None:
            service.metadata.annotations = {}
        service.metadata.annotations[EXPOSE_URL_ANNOTATION] = new_url

        logger.info("Added exposeUrl annotation", service=str(key), url=new_url)
        if self._audit:
            self._audit.log("annotate", str(key), "annotated", {"url": new_url})
        return True
