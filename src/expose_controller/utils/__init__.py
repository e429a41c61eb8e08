# ABOUTME: Utilities package initialization for the expose controller
# ABOUTME: Contains shared utilities for Kubernetes clients and logging

"""
Expose Controller Utilities Package

Shared utilities:
    - kube.py: Kubernetes API client construction and ApiException helpers
    - logging.py: Structured logging with correlation IDs and audit trail
"""
