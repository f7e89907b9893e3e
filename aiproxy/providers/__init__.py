"""
Upstream provider access.
"""
from aiproxy.providers.upstream import (
    ConnectionTestResult,
    UpstreamForwarder,
    UpstreamResponse,
    classify_transport_error,
)

__all__ = [
    "ConnectionTestResult",
    "UpstreamForwarder",
    "UpstreamResponse",
    "classify_transport_error",
]
