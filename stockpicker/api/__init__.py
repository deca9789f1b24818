"""API module with routers and dependencies."""

from .app import create_api_app
from .dependencies import get_client_ip, get_service, rate_limit_api, rate_limit_write


__all__ = [
    "create_api_app",
    "get_client_ip",
    "get_service",
    "rate_limit_api",
    "rate_limit_write",
]
