"""
API layer for the posprint relay.

Adapts HTTP requests to the ingestion service.
"""

from .http_server import RelayAPI, build_response, CORS_HEADERS

__all__ = [
    "RelayAPI",
    "build_response",
    "CORS_HEADERS"
]
