"""Scope parsing and filtering."""

from authserver.config import OAuthScope


def validate_scopes(requested: list[str]) -> list[str]:
    """
    Keep only recognized scopes, in request order and without duplicates.

    Unrecognized scopes are dropped rather than rejected.
    """
    seen: list[str] = []
    for scope in requested:
        if scope in OAuthScope.SUPPORTED and scope not in seen:
            seen.append(scope)
    return seen


def parse_scopes(scope_string: str | None) -> list[str]:
    """Split a space-delimited scope string and filter it to recognized scopes."""
    if not scope_string:
        return []
    return validate_scopes(scope_string.split())


def scopes_to_string(scopes: list[str]) -> str:
    return " ".join(scopes)


def has_any_scope(granted: list[str], required: tuple[str, ...]) -> bool:
    return any(scope in granted for scope in required)
