# ABOUTME: Exposure strategies package for the expose controller
# ABOUTME: One module per way of reaching a service from outside the cluster

"""
Exposure Strategies Package

    - ingress.py: networking.k8s.io/v1 Ingress per service (plain Kubernetes)
    - route.py: route.openshift.io/v1 Route per service (OpenShift)
    - node_port.py: service type NodePort on a single-node cluster
    - load_balancer.py: service type LoadBalancer
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from expose_controller.strategies.base import ExposureOutcome, ExposureStrategy
from expose_controller.strategies.ingress import IngressStrategy
from expose_controller.strategies.load_balancer import LoadBalancerStrategy
from expose_controller.strategies.node_port import NodePortStrategy
from expose_controller.strategies.route import RouteStrategy

if TYPE_CHECKING:
    from expose_controller.utils.kube import KubeClients


def build_strategies(clients: KubeClients) -> list[ExposureStrategy]:
    return [
        IngressStrategy(clients.networking),
        RouteStrategy(clients.custom),
        NodePortStrategy(clients.core),
        LoadBalancerStrategy(clients.core),
    ]


__all__ = [
    "ExposureOutcome",
    "ExposureStrategy",
    "IngressStrategy",
    "LoadBalancerStrategy",
    "NodePortStrategy",
    "RouteStrategy",
    "build_strategies",
]
