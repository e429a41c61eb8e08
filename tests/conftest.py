# ABOUTME: Pytest fixtures and configuration for expose controller tests
# ABOUTME: Provides Kubernetes model factories and mocked API handles shared by unit tests

from types import SimpleNamespace
from typing import Any, Callable
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client import ApiException

from expose_controller.annotations import AnnotationRecorder
from expose_controller.config import ConfigResolver
from expose_controller.dispatcher import StrategyDispatcher
from expose_controller.engine import ReconciliationEngine
from expose_controller.platform import OPENSHIFT_ROUTE_GROUP, PlatformDetector
from expose_controller.strategies import (
    IngressStrategy,
    LoadBalancerStrategy,
    NodePortStrategy,
    RouteStrategy,
)
from expose_controller.utils.logging import AuditLogger


def api_error(status: int) -> ApiException:
    """Create an ApiException with the given HTTP status."""
    return ApiException(status=status, reason="Not Found" if status == 404 else "Error")


def make_service(
    name: str = "web",
    namespace: str = "default",
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
    ports: list[client.V1ServicePort] | None = None,
    service_type: str = "ClusterIP",
    resource_version: str = "1",
    load_balancer_ip: str | None = None,
) -> client.V1Service:
    """Build a V1Service the way the API returns it."""
    status = None
    if load_balancer_ip:
        status = client.V1ServiceStatus(
            load_balancer=client.V1LoadBalancerStatus(
                ingress=[client.V1LoadBalancerIngress(ip=load_balancer_ip)]
            )
        )
    return client.V1Service(
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=namespace,
            labels=labels,
            annotations=annotations,
            resource_version=resource_version,
        ),
        spec=client.V1ServiceSpec(
            type=service_type,
            ports=ports if ports is not None else [client.V1ServicePort(name="http", port=80, target_port=8080)],
        ),
        status=status,
    )


def make_node(name: str = "node-1", external_ip: str | None = "1.2.3.4") -> client.V1Node:
    annotations = {"kubernetes.io/externalIP": external_ip} if external_ip else None
    return client.V1Node(metadata=client.V1ObjectMeta(name=name, annotations=annotations))


def api_groups(*names: str) -> SimpleNamespace:
    """Stand-in for the V1APIGroupList returned by ApisApi.get_api_versions."""
    return SimpleNamespace(groups=[SimpleNamespace(name=n) for n in names])


@pytest.fixture
def exposed_service() -> client.V1Service:
    """Service in namespace bar named foo, carrying expose=true."""
    return make_service(name="foo", namespace="bar", labels={"expose": "true"})


@pytest.fixture
def config_data() -> dict[str, str]:
    """Contents of the exposecontroller ConfigMap; tests mutate it to switch strategy."""
    return {"domain": "example.com", "expose-rule": "ingress"}


@pytest.fixture
def core_api(config_data: dict[str, str]) -> MagicMock:
    """Mocked CoreV1Api serving the exposecontroller ConfigMap and a single node."""
    api = MagicMock(spec=client.CoreV1Api)
    api.read_namespaced_config_map.side_effect = lambda name, namespace: client.V1ConfigMap(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace),
        data=dict(config_data),
    )
    api.list_node.return_value = client.V1NodeList(items=[make_node()])
    return api


@pytest.fixture
def networking_api() -> MagicMock:
    """Mocked NetworkingV1Api with no existing ingresses."""
    api = MagicMock(spec=client.NetworkingV1Api)
    api.read_namespaced_ingress.side_effect = api_error(404)
    return api


@pytest.fixture
def custom_api() -> MagicMock:
    """Mocked CustomObjectsApi with no existing routes."""
    api = MagicMock(spec=client.CustomObjectsApi)
    api.get_namespaced_custom_object.side_effect = api_error(404)
    return api


@pytest.fixture
def apis_api() -> MagicMock:
    """Mocked ApisApi reporting a plain Kubernetes cluster."""
    api = MagicMock(spec=client.ApisApi)
    api.get_api_versions.return_value = api_groups("apps", "networking.k8s.io")
    return api


@pytest.fixture
def openshift_apis_api(apis_api: MagicMock) -> MagicMock:
    apis_api.get_api_versions.return_value = api_groups("apps", OPENSHIFT_ROUTE_GROUP)
    return apis_api


@pytest.fixture
def audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


@pytest.fixture
def recorder(core_api: MagicMock, audit_logger: MagicMock) -> AnnotationRecorder:
    return AnnotationRecorder(core_api, audit_logger)


@pytest.fixture
def dispatcher(
    core_api: MagicMock,
    networking_api: MagicMock,
    custom_api: MagicMock,
    recorder: AnnotationRecorder,
    audit_logger: MagicMock,
) -> StrategyDispatcher:
    strategies = [
        IngressStrategy(networking_api),
        RouteStrategy(custom_api),
        NodePortStrategy(core_api),
        LoadBalancerStrategy(core_api),
    ]
    return StrategyDispatcher(strategies, recorder, audit_logger)


@pytest.fixture
def engine(
    core_api: MagicMock,
    apis_api: MagicMock,
    dispatcher: StrategyDispatcher,
    audit_logger: MagicMock,
) -> ReconciliationEngine:
    resolver = ConfigResolver(core_api, namespace="fabric8")
    return ReconciliationEngine(resolver, PlatformDetector(apis_api), dispatcher, audit_logger)


def echo_patched_service(service: client.V1Service) -> Callable[..., Any]:
    """side_effect for patch_namespaced_service that applies spec.type to ``service``."""

    def _patch(name: str, namespace: str, body: dict[str, Any]) -> client.V1Service:
        spec = body.get("spec", {})
        if "type" in spec:
            service.spec.type = spec["type"]
        return service

    return _patch
