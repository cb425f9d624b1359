from __future__ import annotations

import re
from urllib.parse import SplitResult, urlsplit

from pydantic import BaseModel, field_validator

MAX_TITLE_LENGTH = 255
ALLOWED_SCHEMES = frozenset({"http", "https"})
FAVICON_SERVICE = "https://icons.duckduckgo.com/ip3/{hostname}.ico"

_TAG_RE = re.compile(r"<[^>]*>")


def parse_http_url(url: str) -> SplitResult:
    """Split ``url`` and require an absolute http(s) URL with a host.

    Raises ``ValueError`` for anything else, including ``javascript:`` and
    other script-bearing schemes.
    """
    try:
        parts = urlsplit(url)
        # Accessing .port validates it; urlsplit alone defers that check.
        parts.port  # noqa: B018
        hostname = parts.hostname
    except ValueError as exc:
        raise ValueError(f"unparsable url: {url!r}") from exc
    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        raise ValueError("url must use http or https scheme")
    if not hostname or any(ch.isspace() for ch in parts.netloc):
        raise ValueError("url must include a valid host")
    return parts


def sanitize_title(title: str) -> str:
    """Strip tag-like markup, trim, and truncate to MAX_TITLE_LENGTH UTF-16 code units.

    Characters outside the BMP count as two units. A surrogate pair split by
    the cut is dropped whole.
    """
    cleaned = _TAG_RE.sub("", title).strip()
    encoded = cleaned.encode("utf-16-le", "surrogatepass")
    if len(encoded) <= MAX_TITLE_LENGTH * 2:
        return cleaned
    return encoded[: MAX_TITLE_LENGTH * 2].decode("utf-16-le", "ignore")


def favicon_url_for(url: str) -> str | None:
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return None
    if not hostname:
        return None
    return FAVICON_SERVICE.format(hostname=hostname)


class AddItemInput(BaseModel):
    url: str
    title: str

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        parse_http_url(v)
        return v

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return sanitize_title(v)
