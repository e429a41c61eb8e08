# ABOUTME: Expose controller package initialization
# ABOUTME: Exposes version information for the controller process

"""
Expose Controller - automatic external access for labelled Kubernetes services.

=============================================================================
WHAT IS THIS PACKAGE?
=============================================================================

The controller watches every Service in the cluster. When a Service carries
the label ``expose=true`` it provisions an external-access mechanism for it
and writes the resulting URL back onto the Service as the
``fabric8.io/exposeUrl`` annotation. When the label goes away (or the Service
is deleted) the external-access resource is removed again.

Four exposure strategies are supported, chosen by the ``expose-rule`` key of
the ``exposecontroller`` ConfigMap:

- ingress:       a networking.k8s.io/v1 Ingress per Service (plain Kubernetes)
- route:         an OpenShift Route per Service (OpenShift only)
- node-port:     switch the Service to type NodePort (single-node clusters)
- load-balancer: switch the Service to type LoadBalancer

=============================================================================
PACKAGE STRUCTURE OVERVIEW
=============================================================================

expose_controller/
├── __init__.py          <- YOU ARE HERE: Package entry point
├── config.py            <- Process settings and the exposure ConfigMap
├── model.py             <- Label accessors, service identity, event variants
├── errors.py            <- Fatal vs recoverable error taxonomy
├── platform.py          <- OpenShift detection
├── annotations.py       <- Writes the exposeUrl annotation
├── dispatcher.py        <- Maps expose-rule to a strategy
├── engine.py            <- Add/update/delete reconciliation decisions
├── informer.py          <- List/watch/resync event source
├── health.py            <- Liveness listener
├── controller.py        <- Process entry point
├── strategies/
│   ├── base.py          <- Common strategy interface
│   ├── ingress.py
│   ├── route.py
│   ├── node_port.py
│   └── load_balancer.py
└── utils/
    ├── kube.py          <- Kubernetes client construction helpers
    └── logging.py       <- Structured logging with audit trails
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
