"""
Security utilities for the authorization server.

This module provides:
- High-entropy identifier generation (client ids, secrets, codes, tokens)
- PKCE challenge derivation and verification
- Constant-time secret comparison
- Signed JWTs for dashboard session cookies
"""

import base64
import hashlib
import hmac
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from authserver.config import PKCEMethod, settings


def generate_client_id() -> str:
    """Public client identifier: `gla_` followed by 32 URL-safe characters."""
    return f"gla_{secrets.token_urlsafe(24)}"


def generate_client_secret() -> str:
    """Confidential client secret (32 random bytes, hex encoded)."""
    return secrets.token_hex(32)


def generate_api_key() -> str:
    """Public API key: `gla_api_` followed by 40 URL-safe characters."""
    return f"gla_api_{secrets.token_urlsafe(30)}"


def generate_session_id() -> str:
    """128-bit OAuth session identifier (32 hex characters)."""
    return secrets.token_hex(16)


def generate_rotation_id() -> str:
    """Compact per-client rotating identifier (16 URL-safe characters)."""
    return secrets.token_urlsafe(12)


def generate_authorization_code() -> str:
    """One-time authorization code (32 URL-safe characters)."""
    return secrets.token_urlsafe(24)


def generate_access_token() -> str:
    """Opaque bearer access token (32 random bytes, hex encoded)."""
    return secrets.token_hex(32)


def generate_refresh_token() -> str:
    """Opaque refresh token (32 random bytes, hex encoded)."""
    return secrets.token_hex(32)


def secrets_match(provided: str | None, expected: str | None) -> bool:
    """
    Compare two secrets in constant time.

    Args:
        provided: Value supplied by the caller
        expected: Stored value

    Returns:
        True only if both are present and identical
    """
    if provided is None or expected is None:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def generate_code_verifier() -> str:
    """
    Create a PKCE code verifier.

    Returns:
        43-character URL-safe random string
    """
    return secrets.token_urlsafe(32)


def generate_code_challenge(verifier: str) -> str:
    """
    Derive the S256 code challenge for a verifier.

    The challenge is base64url(SHA256(verifier)) without padding.
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def verify_code_challenge(verifier: str, challenge: str, method: str | None = PKCEMethod.S256) -> bool:
    """
    Check a PKCE verifier against the challenge recorded at authorization time.

    Args:
        verifier: code_verifier from the token request
        challenge: code_challenge stored with the authorization code
        method: "S256" (default when unspecified) or "plain"

    Returns:
        True if the verifier proves possession of the challenge
    """
    if method == PKCEMethod.PLAIN:
        return secrets_match(verifier, challenge)
    if method in (None, PKCEMethod.S256):
        try:
            computed = generate_code_challenge(verifier)
        except UnicodeEncodeError:
            return False
        return secrets_match(computed, challenge)
    return False


def create_session_token(
    claims: dict[str, Any],
    token_type: str,
    expires_delta: timedelta,
) -> str:
    """
    Create a signed dashboard session JWT.

    Args:
        claims: Payload claims (session id, user id, ...)
        token_type: "session" or "refresh"
        expires_delta: Lifetime of the token

    Returns:
        Encoded JWT string
    """
    now = datetime.now(UTC)
    payload = {
        **claims,
        "type": token_type,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_session_token(token: str) -> dict[str, Any]:
    """
    Verify and decode a dashboard session JWT.

    Raises:
        jwt.ExpiredSignatureError: Token is past its expiry
        jwt.InvalidTokenError: Signature or format is invalid
    """
    return jwt.decode(
        token,
        settings.SECRET_KEY,
        algorithms=[settings.ALGORITHM],
        options={"verify_exp": True, "verify_signature": True},
    )
