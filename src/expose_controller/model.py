# ABOUTME: Service identity, exposure label accessors and event variants
# ABOUTME: Gives the engine typed events instead of raw informer payloads

"""Domain model shared by the event source, engine and strategies.

Services themselves are the ``kubernetes.client.V1Service`` models returned by
the API. This module only adds what the API models lack:

- a typed accessor for the ``expose=true`` label
- a hashable identity (``ServiceKey``)
- the three event kinds delivered to the engine, with deletions modelled as
  either a live object or a tombstone carrying only ``namespace/name``
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, NamedTuple

from expose_controller.errors import MalformedEventError

if TYPE_CHECKING:
    from kubernetes.client import V1Service

# =============================================================================
# WELL-KNOWN KEYS
# =============================================================================

EXPOSE_LABEL_KEY = "expose"
EXPOSE_LABEL_VALUE = "true"

EXPOSE_URL_ANNOTATION = "fabric8.io/exposeUrl"
NODE_EXTERNAL_IP_ANNOTATION = "kubernetes.io/externalIP"

PROVIDER_LABELS = {"provider": "fabric8"}


def service_labels(service: V1Service) -> dict[str, str]:
    """Return the service labels, never None."""
    metadata = service.metadata
    if metadata is None or metadata.labels is None:
        return {}
    return dict(metadata.labels)


def service_annotations(service: V1Service) -> dict[str, str]:
    """Return the service annotations, never None."""
    metadata = service.metadata
    if metadata is None or metadata.annotations is None:
        return {}
    return dict(metadata.annotations)


def exposure_requested(service: V1Service) -> bool:
    """True when the service carries ``expose=true``."""
    return service_labels(service).get(EXPOSE_LABEL_KEY) == EXPOSE_LABEL_VALUE


def exposure_withdrawn(old_labels: dict[str, str], new_labels: dict[str, str]) -> bool:
    """True when the expose label was present before and is now gone or ``false``."""
    if EXPOSE_LABEL_KEY not in old_labels:
        return False
    new_value = new_labels.get(EXPOSE_LABEL_KEY)
    return new_value is None or new_value == "false"


# =============================================================================
# IDENTITY
# =============================================================================


class ServiceKey(NamedTuple):
    """(namespace, name) identity of a service."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def parse(cls, key: str) -> ServiceKey:
        """Parse a ``namespace/name`` cache key."""
        namespace, sep, name = key.partition("/")
        if not sep or not namespace or not name or "/" in name:
            raise MalformedEventError(f"Cannot resolve service key {key!r} to namespace/name")
        return cls(namespace, name)

    @classmethod
    def of(cls, service: V1Service) -> ServiceKey:
        metadata = service.metadata
        if metadata is None or not metadata.name or not metadata.namespace:
            raise MalformedEventError("Service object has no namespace/name metadata")
        return cls(metadata.namespace, metadata.name)


# =============================================================================
# EVENTS
# =============================================================================


@dataclass(frozen=True)
class LiveService:
    """Deleted service whose final state is known."""

    service: V1Service

    @property
    def key(self) -> ServiceKey:
        return ServiceKey.of(self.service)


@dataclass(frozen=True)
class Tombstone:
    """Deleted service whose final state is unknown; only the cache key survives."""

    cache_key: str

    @property
    def key(self) -> ServiceKey:
        return ServiceKey.parse(self.cache_key)


@dataclass(frozen=True)
class ServiceAdded:
    service: V1Service


@dataclass(frozen=True)
class ServiceUpdated:
    old: V1Service
    new: V1Service


@dataclass(frozen=True)
class ServiceDeleted:
    target: LiveService | Tombstone


ServiceEvent = ServiceAdded | ServiceUpdated | ServiceDeleted
