"""Raw ASGI header helpers shared by the middleware."""

from __future__ import annotations

from typing import Any


def extract_header(headers: list[tuple[bytes, bytes]], name: bytes) -> str:
    """Extract a header value from raw ASGI headers."""
    for key, value in headers:
        if key.lower() == name:
            return value.decode("latin-1")
    return ""


def request_host(scope: dict[str, Any]) -> str:
    """Lower-cased request host without the port.

    Falls back to the server address when no ``Host`` header was sent.
    """
    host = extract_header(scope.get("headers", []), b"host")
    if not host:
        server = scope.get("server")
        return str(server[0]).lower() if server else ""
    if host.startswith("["):
        return host[1:].split("]", 1)[0].lower()
    return host.split(":", 1)[0].lower()
