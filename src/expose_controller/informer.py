# ABOUTME: Service event source for the expose controller
# ABOUTME: Lists, watches and periodically resyncs services, delivering typed events one at a time

"""
List/watch event source for Services across all namespaces.

=============================================================================
HOW IT WORKS
=============================================================================

1. LIST every service and deliver ServiceAdded for each (seeding the store).
2. WATCH from the list's resourceVersion, translating events:
       ADDED    -> ServiceAdded (ServiceUpdated if the key is already cached)
       MODIFIED -> ServiceUpdated(cached old, new)
       DELETED  -> ServiceDeleted(LiveService(obj))
3. Every resync interval, deliver ServiceAdded again for every cached
   service. This re-drives exposure and heals drift such as a manually
   deleted ingress.
4. On ``410 Gone`` or a broken stream, LIST again. Cached services missing
   from the fresh list were deleted while we were not watching; their final
   state is unknown, so they are delivered as ServiceDeleted(Tombstone).

Events are delivered sequentially on the calling thread. The handler is
never invoked concurrently.
"""

from __future__ import annotations

import math
import threading
import time
from typing import TYPE_CHECKING, Any

import structlog
import urllib3
from kubernetes import watch
from kubernetes.client import ApiException
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from expose_controller.errors import FatalError
from expose_controller.model import (
    LiveService,
    ServiceAdded,
    ServiceDeleted,
    ServiceUpdated,
    Tombstone,
)
from expose_controller.utils.logging import new_correlation_id

if TYPE_CHECKING:
    from collections.abc import Callable

    from kubernetes.client import CoreV1Api, V1Service

    from expose_controller.model import ServiceEvent

logger = structlog.get_logger(__name__)

AUTH_FAILURE_STATUSES = frozenset({401, 403})


def cache_key(service: V1Service) -> str:
    """``namespace/name``, the key tombstones carry."""
    return f"{service.metadata.namespace}/{service.metadata.name}"


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, ApiException):
        return exc.status not in AUTH_FAILURE_STATUSES
    return isinstance(exc, urllib3.exceptions.HTTPError)


class ServiceInformer:
    """Single-consumer list/watch loop over Services."""

    def __init__(
        self,
        core_api: CoreV1Api,
        handler: Callable[[ServiceEvent], None],
        resync_seconds: float,
        max_watch_seconds: int = 300,
    ) -> None:
        """
        Args:
            core_api: CoreV1Api used for list and watch.
            handler: Receives every event, one at a time.
            resync_seconds: Interval between full re-deliveries.
            max_watch_seconds: Upper bound for a single watch request.
        """
        self._core_api = core_api
        self._handler = handler
        self._resync_seconds = resync_seconds
        self._max_watch_seconds = max_watch_seconds

        self._store: dict[str, V1Service] = {}
        self._resource_version: str | None = None
        self._next_resync = 0.0

        self._stop = threading.Event()
        self._active_watcher: watch.Watch | None = None
        self.synced = threading.Event()

    # -------------------------------------------------------------------------
    # STORE
    # -------------------------------------------------------------------------

    @property
    def store(self) -> dict[str, V1Service]:
        return dict(self._store)

    def _deliver(self, event: ServiceEvent) -> None:
        """Hand one event to the handler, containing everything but fatal errors."""
        new_correlation_id()
        try:
            self._handler(event)
        except FatalError:
            raise
        except Exception:
            logger.exception("Unhandled error while reconciling", event_type=type(event).__name__)

    # -------------------------------------------------------------------------
    # LIST / RESYNC
    # -------------------------------------------------------------------------

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=1, min=1, max=30),
        reraise=True,
    )
    def _list(self) -> Any:
        return self._core_api.list_service_for_all_namespaces()

    def relist(self) -> None:
        """
        Replace the store with a fresh listing and deliver the difference.

        New keys produce ServiceAdded, changed resourceVersions produce
        ServiceUpdated, vanished keys produce tombstone deletions.
        """
        listing = self._list()
        fresh = {cache_key(svc): svc for svc in (listing.items or [])}
        previous = self._store

        self._store = fresh
        self._resource_version = listing.metadata.resource_version if listing.metadata else None
        self._next_resync = time.monotonic() + self._resync_seconds
        logger.info("Listed services", count=len(fresh), resource_version=self._resource_version)

        for key, service in fresh.items():
            old = previous.get(key)
            if old is None:
                self._deliver(ServiceAdded(service))
            elif old.metadata.resource_version != service.metadata.resource_version:
                self._deliver(ServiceUpdated(old, service))

        for key in previous.keys() - fresh.keys():
            self._deliver(ServiceDeleted(Tombstone(key)))

        self.synced.set()

    def resync(self) -> None:
        """Re-deliver ServiceAdded for every cached service."""
        logger.debug("Resyncing services", count=len(self._store))
        self._next_resync = time.monotonic() + self._resync_seconds
        for service in list(self._store.values()):
            if self._stop.is_set():
                return
            self._deliver(ServiceAdded(service))

    # -------------------------------------------------------------------------
    # WATCH
    # -------------------------------------------------------------------------

    def handle_watch_event(self, event_type: str, service: V1Service) -> None:
        """Translate one watch event into an engine event and update the store."""
        key = cache_key(service)
        if service.metadata.resource_version:
            self._resource_version = service.metadata.resource_version

        if event_type in {"ADDED", "MODIFIED"}:
            old = self._store.get(key)
            self._store[key] = service
            self._deliver(ServiceAdded(service) if old is None else ServiceUpdated(old, service))
        elif event_type == "DELETED":
            self._store.pop(key, None)
            self._deliver(ServiceDeleted(LiveService(service)))
        else:
            logger.debug("Ignoring watch event", type=event_type, service=key)

    def _watch_timeout(self) -> int:
        remaining = self._next_resync - time.monotonic()
        return max(1, min(self._max_watch_seconds, math.ceil(remaining)))

    def _watch_once(self) -> bool:
        """
        Run one watch request until it times out.

        Returns:
            False when the resourceVersion expired and a re-list is needed.
        """
        watcher = watch.Watch()
        self._active_watcher = watcher
        try:
            stream = watcher.stream(
                self._core_api.list_service_for_all_namespaces,
                resource_version=self._resource_version,
                timeout_seconds=self._watch_timeout(),
            )
            for event in stream:
                if self._stop.is_set():
                    break
                event_type = str(event.get("type", ""))
                if event_type == "ERROR":
                    logger.warning("Watch returned an error event, re-listing")
                    return False
                obj = event.get("object")
                if obj is None or getattr(obj, "metadata", None) is None:
                    continue
                self.handle_watch_event(event_type, obj)
        except ApiException as e:
            if e.status == 410:
                logger.warning("Watch resource version expired, re-listing")
                return False
            raise
        finally:
            watcher.stop()
            if self._active_watcher is watcher:
                self._active_watcher = None
        return True

    # -------------------------------------------------------------------------
    # LOOP
    # -------------------------------------------------------------------------

    def stop(self) -> None:
        """
        Request a stop and interrupt any open watch stream.

        Called from signal handlers, which run on the thread that may be
        inside the watch loop, so this takes no locks.
        """
        self._stop.set()
        active_watcher = self._active_watcher
        if active_watcher is not None:
            active_watcher.stop()

    def run(self) -> None:
        """
        List, then watch and resync until stopped.

        FatalError raised by the handler ends the loop and propagates. Auth
        failures (401/403) also propagate: retrying cannot fix RBAC.
        """
        needs_list = True
        backoff_seconds = 1
        while not self._stop.is_set():
            try:
                if needs_list:
                    self.relist()
                    needs_list = False
                if time.monotonic() >= self._next_resync:
                    self.resync()
                needs_list = not self._watch_once()
                backoff_seconds = 1
            except FatalError:
                raise
            except ApiException as e:
                if e.status in AUTH_FAILURE_STATUSES:
                    logger.error(
                        "Kubernetes API access denied; check controller RBAC",
                        status=e.status,
                    )
                    raise
                logger.exception("Kubernetes API watch error")
                needs_list = True
                self._stop.wait(timeout=backoff_seconds)
                backoff_seconds = min(backoff_seconds * 2, 30)
            except Exception:
                logger.exception("Unexpected watch error")
                needs_list = True
                self._stop.wait(timeout=backoff_seconds)
                backoff_seconds = min(backoff_seconds * 2, 30)

        logger.info("Service informer stopped")
