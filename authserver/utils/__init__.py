"""
Utility functions
"""

from authserver.utils.dates import as_naive_utc, is_expired, seconds_until, utcnow
from authserver.utils.scopes import has_any_scope, parse_scopes, scopes_to_string, validate_scopes
from authserver.utils.urls import (
    SessionUrlComponents,
    add_query_params,
    build_session_url,
    is_absolute_url,
    is_registered_redirect_uri,
    parse_session_url,
    sanitize_origin_list,
    sanitize_uri_list,
)

__all__ = [
    "SessionUrlComponents",
    "add_query_params",
    "as_naive_utc",
    "build_session_url",
    "has_any_scope",
    "is_absolute_url",
    "is_expired",
    "is_registered_redirect_uri",
    "parse_scopes",
    "parse_session_url",
    "sanitize_origin_list",
    "sanitize_uri_list",
    "scopes_to_string",
    "seconds_until",
    "utcnow",
    "validate_scopes",
]
