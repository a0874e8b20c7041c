"""Room code normalization and share links."""

from __future__ import annotations

import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

ROOM_CODE_LENGTH = 6
ROOM_QUERY_PARAM = "room"

_NOT_ALPHANUMERIC = re.compile(r"[^A-Za-z0-9]")


def normalize_room_code(value: str | None) -> str:
    """Strip non-alphanumerics, fold to upper case and keep the first six characters."""
    if not value:
        return ""
    return _NOT_ALPHANUMERIC.sub("", value).upper()[:ROOM_CODE_LENGTH]


def build_share_url(base_url: str, room_code: str) -> str:
    """Return ``base_url`` with its ``room`` query parameter set to the normalized code."""
    parts = urlsplit(base_url)
    query = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key != ROOM_QUERY_PARAM]
    query.append((ROOM_QUERY_PARAM, normalize_room_code(room_code)))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))
