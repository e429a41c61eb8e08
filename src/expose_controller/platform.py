# ABOUTME: Detects whether the controller runs on OpenShift or plain Kubernetes
# ABOUTME: Used to reject ingress on OpenShift and routes elsewhere

"""Platform capability query."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from kubernetes.client import ApiException

from expose_controller.utils.kube import describe_api_error

if TYPE_CHECKING:
    from kubernetes.client import ApisApi

logger = structlog.get_logger(__name__)

OPENSHIFT_ROUTE_GROUP = "route.openshift.io"


class PlatformDetector:
    """Reports whether the API server is an OpenShift master."""

    def __init__(self, apis_api: ApisApi) -> None:
        self._apis_api = apis_api
        self._openshift: bool | None = None

    def is_openshift(self) -> bool:
        """True when the API server serves the route.openshift.io group.

        A successful answer is remembered; a failed lookup is not, so the
        next reconciliation asks again.
        """
        if self._openshift is not None:
            return self._openshift

        try:
            group_list = self._apis_api.get_api_versions()
        except ApiException as e:
            logger.warning(
                "Unable to query API groups, assuming plain Kubernetes",
                error=describe_api_error(e),
            )
            return False

        groups = {group.name for group in (group_list.groups or [])}
        self._openshift = OPENSHIFT_ROUTE_GROUP in groups
        logger.info(
            "Detected platform",
            platform="openshift" if self._openshift else "kubernetes",
        )
        return self._openshift
