"""HTTP client construction for outbound collaborator calls."""

import httpx

from guard.app.core.config import settings


def create_http_client(**kwargs) -> httpx.AsyncClient:
    """Create a new HTTP client with default settings.

    The returned client should be closed when done:
        async with create_http_client() as client:
            ...

    Args:
        **kwargs: Override default settings. Can include:
            - timeout: Overall timeout in seconds
            - connect_timeout: Connection timeout
            - max_connections: Maximum connections
            - transport: Custom httpx transport (e.g. httpx.MockTransport)

    Returns:
        A new httpx.AsyncClient instance.
    """
    total = kwargs.get("timeout", settings.audit_timeout_seconds)
    timeout = httpx.Timeout(
        total,
        connect=kwargs.get("connect_timeout", min(total, 5.0)),
    )
    limits = httpx.Limits(
        max_connections=kwargs.get("max_connections", 10),
        max_keepalive_connections=kwargs.get("max_keepalive_connections", 5),
    )

    config = {"timeout": timeout, "limits": limits}
    if "transport" in kwargs:
        config["transport"] = kwargs["transport"]
    return httpx.AsyncClient(**config)
