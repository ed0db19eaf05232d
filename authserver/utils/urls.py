"""URL helpers for redirect URI handling and session URLs."""

import re
from urllib.parse import urlencode, urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict

from authserver.config import settings


def is_absolute_url(value: str) -> bool:
    """True if `value` parses as an absolute URL (scheme and host present)."""
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return bool(parts.scheme) and bool(parts.netloc)


def is_registered_redirect_uri(uri: str, registered: list[str]) -> bool:
    """
    Match a redirect URI against a client's registered URIs.

    A registered URI matches on exact string equality, or, when it contains
    `*`, as an anchored pattern where each `*` stands for any run of characters
    and everything else is literal.
    """
    if not is_absolute_url(uri):
        return False

    for allowed in registered:
        if allowed == uri:
            return True
        if "*" in allowed:
            pattern = ".*".join(re.escape(part) for part in allowed.split("*"))
            if re.fullmatch(pattern, uri):
                return True
    return False


def add_query_params(url: str, params: dict[str, str | None]) -> str:
    """Append query parameters to a URL, leaving its existing query untouched."""
    parts = urlsplit(url)
    extra = urlencode([(key, value) for key, value in params.items() if value is not None])
    if not extra:
        return url
    query = f"{parts.query}&{extra}" if parts.query else extra
    return urlunsplit(parts._replace(query=query))


def sanitize_uri_list(raw: str | list[str]) -> list[str]:
    """Split a comma-separated list (or clean a list) of URIs, dropping invalid entries."""
    items = raw.split(",") if isinstance(raw, str) else raw
    return [item.strip() for item in items if item.strip() and is_absolute_url(item.strip())]


def sanitize_origin_list(raw: str | list[str]) -> list[str]:
    """Split a comma-separated list (or clean a list) of origins, dropping blanks."""
    items = raw.split(",") if isinstance(raw, str) else raw
    return [item.strip() for item in items if item.strip()]


class SessionUrlComponents(BaseModel):
    """The three path segments of a machine-facing session URL."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    rotation_id: str
    login_number: int


def build_session_url(components: SessionUrlComponents, domain: str | None = None) -> str:
    """Render `https://{domain}/{session_id}/{rotation_id}/{login_number}`."""
    domain = domain or settings.APP_DOMAIN
    return (
        f"https://{domain}/{components.session_id}/"
        f"{components.rotation_id}/{components.login_number}"
    )


def parse_session_url(url: str) -> SessionUrlComponents | None:
    """Split a session URL back into its components; None if it is malformed."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return None

    segments = [segment for segment in parts.path.split("/") if segment]
    if len(segments) != 3:
        return None

    session_id, rotation_id, login_number = segments
    try:
        number = int(login_number)
    except ValueError:
        return None

    return SessionUrlComponents(session_id=session_id, rotation_id=rotation_id, login_number=number)
