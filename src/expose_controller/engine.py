# ABOUTME: Reconciliation engine for the expose controller
# ABOUTME: Decides per service event whether to expose, retract or do nothing

"""
Reconciliation engine.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

The engine receives one event at a time from the event source and turns it
into one of three intents:

    ServiceAdded(svc)           -> expose
    ServiceUpdated(old, new)    -> retract, expose or nothing (see below)
    ServiceDeleted(target)      -> retract

=============================================================================
UPDATE TRANSITIONS
=============================================================================

    old labels         new labels          intent
    ----------         ----------          ------
    expose=<any>       (no expose)         retract
    expose=<any>       expose=false        retract
    *                  expose=true         expose
    anything else                          nothing

Retraction ends the update; no exposure is attempted afterwards.

=============================================================================
STATE
=============================================================================

The engine holds no state between events. The exposure ConfigMap is read
again on every expose/retract, and everything else lives in the cluster.
Because of that, re-delivering an event (resync) is always safe: strategies
only write when the cluster differs from the desired state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from expose_controller.config import ExposeRule
from expose_controller.model import (
    ServiceAdded,
    ServiceDeleted,
    ServiceKey,
    ServiceUpdated,
    exposure_requested,
    exposure_withdrawn,
    service_labels,
)

if TYPE_CHECKING:
    from kubernetes.client import V1Service

    from expose_controller.config import ConfigResolver
    from expose_controller.dispatcher import StrategyDispatcher
    from expose_controller.model import LiveService, ServiceEvent, Tombstone
    from expose_controller.platform import PlatformDetector
    from expose_controller.strategies import ExposureOutcome
    from expose_controller.utils.logging import AuditLogger

logger = structlog.get_logger(__name__)


class ReconciliationEngine:
    """Add/update/delete handlers driving the strategy dispatcher."""

    def __init__(
        self,
        config_resolver: ConfigResolver,
        platform: PlatformDetector,
        dispatcher: StrategyDispatcher,
        audit: AuditLogger | None = None,
    ) -> None:
        self._config = config_resolver
        self._platform = platform
        self._dispatcher = dispatcher
        self._audit = audit

    # -------------------------------------------------------------------------
    # EVENT HANDLERS
    # -------------------------------------------------------------------------

    def handle(self, event: ServiceEvent) -> None:
        """Route an event to its handler."""
        if isinstance(event, ServiceAdded):
            self.on_added(event.service)
        elif isinstance(event, ServiceUpdated):
            self.on_updated(event.old, event.new)
        elif isinstance(event, ServiceDeleted):
            self.on_deleted(event.target)
        else:
            raise TypeError(f"Unsupported event {type(event).__name__}")

    def on_added(self, service: V1Service) -> None:
        self.apply_exposure(service)

    def on_updated(self, old: V1Service, new: V1Service) -> None:
        """
        Handle a label or spec change.

        Label churn unrelated to ``expose`` is ignored, and so is any update of
        a service that is not (or no longer) exposed.
        """
        old_labels = service_labels(old)
        new_labels = service_labels(new)

        if exposure_withdrawn(old_labels, new_labels):
            key = ServiceKey.of(new)
            logger.info("Expose label removed", service=str(key))
            self.retract_exposure(key.namespace, key.name)
            return

        if exposure_requested(new):
            self.apply_exposure(new)

    def on_deleted(self, target: LiveService | Tombstone) -> None:
        """Live objects and tombstones resolve to the same key and the same retraction."""
        key = target.key
        self.retract_exposure(key.namespace, key.name)

    # -------------------------------------------------------------------------
    # INTENTS
    # -------------------------------------------------------------------------

    def apply_exposure(self, service: V1Service) -> ExposureOutcome | None:
        """
        Expose a service with the configured strategy.

        Raises:
            ConfigurationError: The exposure ConfigMap is missing or invalid.
        """
        config = self._config.require()
        key = ServiceKey.of(service)

        if not exposure_requested(service):
            logger.debug("Service not labelled for exposure", service=str(key))
            return None

        mismatch = self._platform_mismatch(config.expose_rule)
        if mismatch:
            logger.warning(mismatch, service=str(key), rule=config.expose_rule.value)
            if self._audit:
                self._audit.log_skipped("expose", str(key), mismatch)
            return None

        logger.debug("Applying exposure", service=str(key), rule=config.expose_rule.value)
        return self._dispatcher.apply(config.expose_rule, service, config.domain)

    def retract_exposure(self, namespace: str, name: str) -> bool:
        """
        Remove exposure for a service.

        Raises:
            ConfigurationError: The exposure ConfigMap is missing or invalid.
        """
        config = self._config.require()
        logger.debug(
            "Retracting exposure",
            service=f"{namespace}/{name}",
            rule=config.expose_rule.value,
        )
        return self._dispatcher.retract(config.expose_rule, namespace, name)

    def _platform_mismatch(self, rule: ExposeRule) -> str | None:
        if rule is ExposeRule.INGRESS and self._platform.is_openshift():
            return "Ingress is not currently supported on OpenShift, please use Routes"
        if rule is ExposeRule.ROUTE and not self._platform.is_openshift():
            return "Routes are only available on OpenShift, please use Ingress"
        return None
