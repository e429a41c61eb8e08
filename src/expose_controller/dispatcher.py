# ABOUTME: Strategy dispatcher for the expose controller
# ABOUTME: Looks up the configured strategy, runs it and contains its failures

"""Maps an ``expose-rule`` to its strategy.

Backend failures stop here: they are logged and audited, and the watch loop
keeps running. Only configuration errors propagate.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from kubernetes.client import ApiException

from expose_controller.errors import ConfigurationError, ExposureError
from expose_controller.model import ServiceKey
from expose_controller.utils.kube import describe_api_error

if TYPE_CHECKING:
    from collections.abc import Iterable

    from kubernetes.client import V1Service

    from expose_controller.annotations import AnnotationRecorder
    from expose_controller.config import ExposeRule
    from expose_controller.strategies import ExposureOutcome, ExposureStrategy
    from expose_controller.utils.logging import AuditLogger

logger = structlog.get_logger(__name__)


class StrategyDispatcher:
    """Runs ``ensure``/``retract`` on the strategy registered for a rule."""

    def __init__(
        self,
        strategies: Iterable[ExposureStrategy],
        recorder: AnnotationRecorder,
        audit: AuditLogger | None = None,
    ) -> None:
        self._strategies = {strategy.rule: strategy for strategy in strategies}
        self._recorder = recorder
        self._audit = audit

    def strategy_for(self, rule: ExposeRule) -> ExposureStrategy:
        try:
            return self._strategies[rule]
        except KeyError:
            raise ConfigurationError(f"No strategy registered for expose-rule {rule!r}") from None

    def apply(self, rule: ExposeRule, service: V1Service, domain: str) -> ExposureOutcome | None:
        """
        Expose ``service`` with the strategy for ``rule`` and record its URL.

        Returns:
            The strategy outcome, or None if the strategy failed.
        """
        strategy = self.strategy_for(rule)
        target = str(ServiceKey.of(service))

        try:
            outcome = strategy.ensure(service, domain)
        except ExposureError as e:
            logger.error("Unable to expose service", service=target, rule=rule.value, error=e.reason)
            self._audit_error("expose", target, str(e))
            return None
        except ApiException as e:
            logger.error(
                "Unable to expose service",
                service=target,
                rule=rule.value,
                error=describe_api_error(e),
            )
            self._audit_error("expose", target, describe_api_error(e))
            return None

        if outcome.changed and self._audit:
            self._audit.log(
                "expose",
                target,
                outcome.action,
                {"strategy": rule.value, "host": outcome.host},
            )

        if outcome.host:
            self._recorder.record(outcome.service, outcome.host, host_changed=outcome.changed)
        return outcome

    def retract(self, rule: ExposeRule, namespace: str, name: str) -> bool:
        """Remove exposure for ``namespace/name``. Returns True if a resource was deleted."""
        strategy = self.strategy_for(rule)
        target = f"{namespace}/{name}"

        try:
            deleted = strategy.retract(namespace, name)
        except ApiException as e:
            logger.error(
                "Unable to retract exposure",
                service=target,
                rule=rule.value,
                error=describe_api_error(e),
            )
            self._audit_error("retract", target, describe_api_error(e))
            return False

        if deleted and self._audit:
            self._audit.log("retract", target, "deleted", {"strategy": rule.value})
        return deleted

    def _audit_error(self, action: str, target: str, error: str) -> None:
        if self._audit:
            self._audit.log_error(action, target, error)
