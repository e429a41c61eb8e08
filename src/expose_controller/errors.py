# ABOUTME: Error taxonomy for the expose controller
# ABOUTME: Separates process-terminating misconfiguration from recoverable exposure failures

"""Exception hierarchy.

FatalError subclasses mean the controller is not deployed correctly and cannot
make progress; they propagate to ``main()`` which terminates the process.
ExposureError means a single service could not be reconciled; it is logged and
the next event or resync tries again.
"""

from __future__ import annotations


class ExposeControllerError(Exception):
    """Base class for all controller errors."""


class FatalError(ExposeControllerError):
    """Error that terminates the controller process."""


class ConfigurationError(FatalError):
    """The exposure ConfigMap or a mandatory setting is missing or invalid."""


class MalformedEventError(FatalError):
    """A delete event could not be resolved to a namespace/name key."""


class ExposureError(ExposeControllerError):
    """A backend could not expose a service; reconciliation for this event is skipped."""

    def __init__(self, namespace: str, name: str, reason: str) -> None:
        self.namespace = namespace
        self.name = name
        self.reason = reason
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"Unable to expose service {self.namespace}/{self.name}: {self.reason}"
