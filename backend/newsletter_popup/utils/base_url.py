"""
Resolve the public base URL of this service for a request.
"""

from fastapi import Request

from newsletter_popup.config import settings


def _first(header_value: str) -> str:
    return header_value.split(",")[0].strip()


def resolve_public_base_url(request: Request) -> str:
    """
    Work out the URL storefronts should use to reach this service.

    PUBLIC_BASE_URL wins when configured. Otherwise the forwarded scheme
    and host set by a reverse proxy are used, then the Host header.
    """
    if settings.public_base_url:
        return settings.public_base_url

    scheme = request.headers.get("x-forwarded-proto")
    scheme = _first(scheme) if scheme else request.url.scheme

    host = request.headers.get("x-forwarded-host") or request.headers.get("host")
    host = _first(host) if host else request.url.netloc

    return f"{scheme}://{host}".rstrip("/")
