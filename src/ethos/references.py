"""
Reference extraction for Ethos records.

Ethos hands out references in several shapes depending on the endpoint and
tenant: raw ids, IRIs ("/v1/users/<id>" or absolute URLs), embedded objects
with an "id" field, or JSON-LD objects with an "@id" field. Everything here
reduces those to a canonical id string and never raises.
"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import urlsplit

UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    re.IGNORECASE,
)


def last_path_segment(iri: Any) -> str | None:
    """Return the last non-empty path segment of an IRI-like string."""
    if iri is None:
        return None
    text = str(iri).strip()
    if not text:
        return None
    if text.startswith(("http://", "https://")):
        text = urlsplit(text).path
    parts = [p for p in text.split("/") if p]
    return parts[-1] if parts else None


def extract_uuid(value: Any) -> str | None:
    """Return the first UUID found in the string form of value, if any."""
    if value is None or isinstance(value, (dict, list)):
        return None
    match = UUID_PATTERN.search(str(value))
    return match.group(0) if match else None


def extract_id(value: Any) -> str | None:
    """
    Canonical id from any reference shape.

    Accepts:
        "3f0c...-..."                    -> the UUID
        "https://host/v1/users/abc-123"  -> "abc-123"
        {"id": "abc-123"}                -> "abc-123"
        {"@id": "/v1/users/abc-123"}     -> "abc-123"
        None / unresolvable              -> None

    A UUID anywhere in a string wins over path splitting.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return str(value)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        uuid = extract_uuid(text)
        if uuid:
            return uuid
        if "/" in text:
            return last_path_segment(text)
        return text

    if isinstance(value, dict):
        for key in ("id", "@id"):
            if value.get(key):
                return extract_id(value[key])

    return None
