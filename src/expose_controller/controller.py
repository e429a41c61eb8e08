# ABOUTME: Process entry point for the expose controller
# ABOUTME: Wires settings, Kubernetes clients, engine and event source, and owns process exit codes

"""Expose Controller - exposes labelled services outside the cluster."""

from __future__ import annotations

import signal
import sys
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from expose_controller.annotations import AnnotationRecorder
from expose_controller.config import ConfigResolver, ControllerSettings, load_settings, resolve_namespace
from expose_controller.dispatcher import StrategyDispatcher
from expose_controller.engine import ReconciliationEngine
from expose_controller.errors import FatalError
from expose_controller.health import HealthServer
from expose_controller.informer import ServiceInformer
from expose_controller.platform import PlatformDetector
from expose_controller.strategies import build_strategies
from expose_controller.utils.kube import build_clients
from expose_controller.utils.logging import AuditLogger, configure_logging

if TYPE_CHECKING:
    from expose_controller.utils.kube import KubeClients

logger = structlog.get_logger(__name__)


def build_engine(
    clients: KubeClients,
    namespace: str,
    settings: ControllerSettings,
) -> tuple[ReconciliationEngine, ConfigResolver]:
    """Assemble the engine from explicit client handles."""
    audit = AuditLogger(settings.audit_log)
    resolver = ConfigResolver(clients.core, namespace, settings.config_map_name)
    dispatcher = StrategyDispatcher(
        build_strategies(clients),
        AnnotationRecorder(clients.core, audit),
        audit,
    )
    engine = ReconciliationEngine(resolver, PlatformDetector(clients.apis), dispatcher, audit)
    return engine, resolver


def run(settings: ControllerSettings) -> None:
    """
    Run the controller until SIGINT/SIGTERM.

    Raises:
        FatalError: Misconfiguration detected at startup or during reconciliation.
    """
    clients = build_clients(settings.kubeconfig)
    logger.info("Connected")

    namespace = resolve_namespace(settings)
    engine, resolver = build_engine(clients, namespace, settings)

    resync_seconds = resolver.resync_seconds()
    logger.info("Resync period", seconds=resync_seconds, namespace=namespace)

    informer = ServiceInformer(clients.core, engine.handle, resync_seconds)

    def _request_stop(signum: int, _frame: Any) -> None:
        logger.info("Stop requested", signal=signal.Signals(signum).name)
        informer.stop()

    signal.signal(signal.SIGTERM, _request_stop)
    signal.signal(signal.SIGINT, _request_stop)

    health = HealthServer(port=settings.health_port)
    health.start()
    try:
        informer.run()
    finally:
        health.stop()


def main() -> None:
    """Run the expose controller."""
    configure_logging(level="INFO")

    try:
        settings = load_settings()
    except ValidationError as e:
        logger.error("Invalid controller settings", error=str(e))
        sys.exit(1)

    configure_logging(level=settings.log_level, json_output=settings.json_logs)
    logger.info("Expose controller starting")

    try:
        run(settings)
    except FatalError as e:
        logger.critical("Fatal configuration error", error=str(e))
        sys.exit(1)
    except Exception as e:
        logger.error("Controller error", error=str(e))
        sys.exit(1)

    logger.info("Expose controller stopped")


if __name__ == "__main__":
    main()
