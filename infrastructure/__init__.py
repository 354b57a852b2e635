"""Infrastructure layer — observability for the transposition service.

Modules:
    metrics     Prometheus metrics registry.
"""
