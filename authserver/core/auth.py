"""
Request helpers shared by the protocol endpoints.

This module provides:
- Caller identification (IP address, user agent) for audit and rate limiting
- Bearer token extraction from the Authorization header
"""

import re
from typing import Any

from fastapi import Request

from authserver.services.audit import RequestInfo

_BEARER_PATTERN = re.compile(r"^Bearer\s+(\S+)\s*$", re.IGNORECASE)


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    Checks proxy headers first (Cloudflare, nginx, load balancers),
    falls back to direct client IP.

    Args:
        request: FastAPI request object

    Returns:
        Client IP address string
    """
    connecting_ip = request.headers.get("CF-Connecting-IP")
    if connecting_ip:
        return connecting_ip.strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, take the first (client)
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_user_agent(request: Request) -> str:
    """
    Extract User-Agent header from request.

    Args:
        request: FastAPI request object

    Returns:
        User-Agent string (or "unknown" if not present)
    """
    return request.headers.get("User-Agent", "unknown")


def get_request_info(request: Request) -> RequestInfo:
    """Dependency bundling the caller's IP and user agent for audit logging."""
    return RequestInfo(ip=get_client_ip(request), user_agent=get_user_agent(request))


def extract_bearer_token(authorization: str | None) -> str | None:
    """
    Pull the token out of an `Authorization: Bearer <token>` header.

    Returns:
        The token, or None if the header is missing or malformed
    """
    if not authorization:
        return None
    match = _BEARER_PATTERN.match(authorization)
    return match.group(1) if match else None


def wants_json(request: Request) -> bool:
    """True when the caller asked for a machine (JSON) response."""
    return "application/json" in request.headers.get("Accept", "")


async def read_json_body(request: Request) -> dict[str, Any] | None:
    """Parse a JSON object body; None if the body is empty, malformed, or not an object."""
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None
