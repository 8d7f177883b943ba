"""Observability helpers for the echo server.

structlog request context + JSON logs, and the Prometheus request metrics that are
served on their own port.
"""
