# ABOUTME: Common interface shared by the four exposure strategies
# ABOUTME: Defines the ensure/retract contract and the outcome returned to the dispatcher

"""Exposure strategy interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

import structlog

from expose_controller.model import ServiceKey, exposure_requested

if TYPE_CHECKING:
    from kubernetes.client import V1Service

    from expose_controller.config import ExposeRule

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ExposureOutcome:
    """Result of ``ensure``.

    ``host`` is None when nothing should be recorded this round (the service
    was skipped, or a load balancer has no address yet). ``changed`` is True
    when the strategy created or modified a cluster object.
    """

    service: V1Service
    host: str | None
    changed: bool = False
    action: str = "unchanged"


def service_host(key: ServiceKey, domain: str) -> str:
    """``<service>.<namespace>.<domain>``"""
    return f"{key.name}.{key.namespace}.{domain}"


class ExposureStrategy(ABC):
    """One way of making a service reachable from outside the cluster."""

    rule: ClassVar[ExposeRule]

    def ensure(self, service: V1Service, domain: str) -> ExposureOutcome:
        """Create or update the external-access resource for ``service``.

        Services without ``expose=true`` are skipped here as well as in the
        engine, since strategies can be driven by callers that did not filter.
        """
        if not exposure_requested(service):
            logger.info("Skipping service", service=str(ServiceKey.of(service)), rule=self.rule.value)
            return ExposureOutcome(service=service, host=None, action="skipped")
        return self._ensure(service, domain)

    @abstractmethod
    def _ensure(self, service: V1Service, domain: str) -> ExposureOutcome: ...

    @abstractmethod
    def retract(self, namespace: str, name: str) -> bool:
        """Remove the external-access resource. Returns True if something was deleted."""
