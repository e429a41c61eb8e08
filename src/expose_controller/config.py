# ABOUTME: Configuration management for the expose controller
# ABOUTME: Handles process settings, the exposure ConfigMap and namespace resolution

"""
Configuration management using pydantic and pydantic-settings.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

The controller has two independent sources of configuration:

1. PROCESS SETTINGS (ControllerSettings)
   Read once at startup from environment variables. They describe how the
   process runs: which namespace holds the exposure ConfigMap, where the
   liveness listener binds, how logs are rendered.

2. EXPOSURE CONFIGURATION (ExposureConfig)
   Read from the ``exposecontroller`` ConfigMap on EVERY reconciliation.
   Re-reading it each time lets an operator switch strategy or domain
   without restarting the controller.

=============================================================================
THE EXPOSURE CONFIGMAP
=============================================================================

    apiVersion: v1
    kind: ConfigMap
    metadata:
      name: exposecontroller
    data:
      domain: 192.168.99.100.nip.io     # required
      expose-rule: ingress              # ingress | route | node-port | load-balancer
      watch-rate-milliseconds: "5000"   # optional resync interval

A missing ConfigMap, a missing ``domain`` or an unknown ``expose-rule`` means
the controller was not deployed correctly. ConfigResolver raises
ConfigurationError in all three cases; ``main()`` turns that into a process
exit.

=============================================================================
ENVIRONMENT VARIABLE MAPPING
=============================================================================

    KUBERNETES_NAMESPACE               -> Namespace holding the ConfigMap
    EXPOSECONTROLLER_CONFIG_MAP_NAME   -> ConfigMap name (default: exposecontroller)
    EXPOSECONTROLLER_HEALTH_PORT       -> Liveness listener port (default: 8080)
    EXPOSECONTROLLER_LOG_LEVEL         -> DEBUG | INFO | WARNING | ERROR | CRITICAL
    EXPOSECONTROLLER_JSON_LOGS         -> Render logs as JSON lines
    EXPOSECONTROLLER_AUDIT_LOG         -> Path to JSON-lines audit log
    EXPOSECONTROLLER_KUBECONFIG        -> Kubeconfig path when not in-cluster
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path  # noqa: TC003 - Required at runtime for Pydantic
from typing import TYPE_CHECKING, Annotated

import structlog
from kubernetes import config as kube_config
from kubernetes.client import ApiException
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from expose_controller.errors import ConfigurationError

if TYPE_CHECKING:
    from kubernetes.client import CoreV1Api

logger = structlog.get_logger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_CONFIG_MAP_NAME = "exposecontroller"

DOMAIN_KEY = "domain"
EXPOSE_RULE_KEY = "expose-rule"
WATCH_RATE_KEY = "watch-rate-milliseconds"

DEFAULT_WATCH_RATE_MS = 5000

SERVICE_ACCOUNT_NAMESPACE_FILE = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")


class ExposeRule(str, Enum):
    """The four exposure strategies."""

    INGRESS = "ingress"
    ROUTE = "route"
    NODE_PORT = "node-port"
    LOAD_BALANCER = "load-balancer"


# =============================================================================
# PROCESS SETTINGS
# =============================================================================


class ControllerSettings(BaseSettings):
    """
    Process-level configuration read from the environment.

    USAGE:
    ------
        settings = load_settings()
        namespace = resolve_namespace(settings)
    """

    model_config = SettingsConfigDict(
        env_prefix="EXPOSECONTROLLER_",
        extra="ignore",
        populate_by_name=True,
        # Allows ControllerSettings(namespace=...) as well as KUBERNETES_NAMESPACE
    )

    namespace: str | None = Field(
        default=None,
        validation_alias="KUBERNETES_NAMESPACE",
        description="Namespace holding the exposure ConfigMap",
    )
    # When unset, resolve_namespace() falls back to the service account
    # namespace and then the kubeconfig context.

    config_map_name: str = Field(
        default=DEFAULT_CONFIG_MAP_NAME,
        description="Name of the exposure ConfigMap",
    )

    health_port: int = Field(
        default=8080,
        ge=0,
        le=65535,
        description="Port of the liveness listener",
    )

    log_level: Annotated[str, Field(pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")] = Field(
        default="INFO",
        description="Logging level",
    )

    json_logs: bool = Field(
        default=False,
        description="Render logs as JSON lines instead of console output",
    )

    audit_log: Path | None = Field(
        default=None,
        description="Path to audit log file",
    )
    # When None, audit entries go to stdout through structlog.

    kubeconfig: Path | None = Field(
        default=None,
        description="Kubeconfig used when not running inside a cluster",
    )


def load_settings() -> ControllerSettings:
    """
    Load settings from environment with validation.

    If EXPOSECONTROLLER_ENV_FILE is set, additional variables are read from
    that file, which is handy when running the controller from a workstation.

    Raises:
        pydantic.ValidationError: If configuration is invalid.
    """
    return ControllerSettings(
        _env_file=os.environ.get("EXPOSECONTROLLER_ENV_FILE"),
    )


def resolve_namespace(settings: ControllerSettings) -> str:
    """
    Determine the namespace the controller operates in.

    Order of precedence:
    1. KUBERNETES_NAMESPACE
    2. The mounted service account namespace (in-cluster)
    3. The namespace of the active kubeconfig context
    4. ``default``
    """
    if settings.namespace:
        return settings.namespace

    if SERVICE_ACCOUNT_NAMESPACE_FILE.is_file():
        namespace = SERVICE_ACCOUNT_NAMESPACE_FILE.read_text().strip()
        if namespace:
            return namespace

    try:
        _, active = kube_config.list_kube_config_contexts(
            config_file=str(settings.kubeconfig) if settings.kubeconfig else None
        )
    except (kube_config.ConfigException, OSError) as e:
        raise ConfigurationError(
            "No $KUBERNETES_NAMESPACE environment variable set and no kubeconfig context found"
        ) from e

    return (active or {}).get("context", {}).get("namespace") or "default"


# =============================================================================
# EXPOSURE CONFIGURATION
# =============================================================================


def parse_watch_rate(raw: str | None) -> int:
    """
    Parse ``watch-rate-milliseconds``.

    Absent, unparsable and non-positive values all fall back to 5000ms. A bad
    value is logged but never fatal: the resync interval only controls how
    quickly drift is healed.

    Example:
        >>> parse_watch_rate("2500")
        2500
        >>> parse_watch_rate("soon")
        5000
    """
    if raw is None:
        return DEFAULT_WATCH_RATE_MS
    try:
        milliseconds = int(str(raw).strip())
    except ValueError:
        logger.warning("Error parsing watch rate, using default", value=raw)
        return DEFAULT_WATCH_RATE_MS
    if milliseconds <= 0:
        logger.warning("Watch rate must be positive, using default", value=raw)
        return DEFAULT_WATCH_RATE_MS
    return milliseconds


class ExposureConfig(BaseModel):
    """
    Validated contents of the exposure ConfigMap.

    WHY ALIASES?
    ------------
    ConfigMap keys use dashes (``expose-rule``) which are not valid Python
    identifiers. The aliases map them onto snake_case fields:

        ExposureConfig.model_validate({"domain": "example.com", "expose-rule": "route"})

    ``watch-rate-milliseconds`` is not part of the model: the resync interval
    is read once at startup by ``ConfigResolver.resync_seconds``.
    """

    model_config = {"extra": "ignore", "populate_by_name": True, "frozen": True}

    domain: str = Field(min_length=1, description="Domain suffix for generated hosts")

    expose_rule: ExposeRule = Field(alias=EXPOSE_RULE_KEY, description="Exposure strategy")

    @field_validator("domain")
    @classmethod
    def strip_domain(cls, v: str) -> str:
        """Strip whitespace and leading dots so hosts never contain ``..``."""
        v = v.strip().lstrip(".")
        if not v:
            raise ValueError("domain must not be empty")
        return v


class ConfigResolver:
    """
    The single "must configure" accessor for the exposure ConfigMap.

    The resolver never caches: each call reads the ConfigMap again so strategy
    and domain changes take effect on the next event.

    Failures raise ConfigurationError instead of exiting, so tests (and any
    embedding code) decide what "fatal" means. ``main()`` exits the process.
    """

    def __init__(
        self,
        core_api: CoreV1Api,
        namespace: str,
        config_map_name: str = DEFAULT_CONFIG_MAP_NAME,
    ) -> None:
        self._core_api = core_api
        self._namespace = namespace
        self._config_map_name = config_map_name

    def _read_data(self) -> dict[str, str]:
        try:
            config_map = self._core_api.read_namespaced_config_map(
                name=self._config_map_name,
                namespace=self._namespace,
            )
        except ApiException as e:
            raise ConfigurationError(
                f"No ConfigMap with name {self._config_map_name} found in namespace "
                f"{self._namespace}. Was the exposecontroller namespace set up? ({e.status})"
            ) from e
        return dict(config_map.data or {})

    def require(self) -> ExposureConfig:
        """
        Read and validate the exposure ConfigMap.

        Raises:
            ConfigurationError: ConfigMap missing, ``domain`` missing or empty,
                or ``expose-rule`` not one of the four known strategies.
        """
        data = self._read_data()

        if not data.get(DOMAIN_KEY, "").strip():
            raise ConfigurationError(
                f"No ConfigMap data with name {DOMAIN_KEY} found in ConfigMap "
                f"{self._namespace}/{self._config_map_name}"
            )

        try:
            return ExposureConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid exposure configuration in ConfigMap "
                f"{self._namespace}/{self._config_map_name}: "
                f"no match for {EXPOSE_RULE_KEY}={data.get(EXPOSE_RULE_KEY)!r} "
                f"({e.error_count()} error(s))"
            ) from e

    def resync_seconds(self) -> float:
        """
        Read the resync interval.

        Only the ConfigMap's existence is mandatory here; the interval itself
        falls back to the default when absent or invalid.
        """
        milliseconds = parse_watch_rate(self._read_data().get(WATCH_RATE_KEY))
        return milliseconds / 1000.0
