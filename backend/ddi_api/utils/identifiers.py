"""
Identifier and URN helpers for raw DDI JSON objects.

Works on plain mappings so that references carrying only a URN (no id)
are handled the same way as fully populated identifiers.
"""

from collections.abc import Mapping
from typing import Any

from ddi_api.schemas.ddi import URN_PREFIX, canonical_urn

IDENTIFIER_FIELDS = frozenset({"urn", "id", "agencyID", "version"})
TYPE_TAG_FIELDS = ("typeOfObject", "type")


def type_tag(obj: Any) -> str | None:
    """Return the explicit typeOfObject/type tag of an object, if any."""
    if not isinstance(obj, Mapping):
        return None
    for field in TYPE_TAG_FIELDS:
        tag = obj.get(field)
        if tag:
            return tag
    return None


def entity_urn(obj: Any) -> str | None:
    """
    URN for an entity, reference or bare identifier.

    Uses the stored urn when present, otherwise the canonical
    urn:ddi:<agencyID>:<id>:<version> form. Strings are taken as URNs.
    """
    if isinstance(obj, str):
        return obj
    if not isinstance(obj, Mapping):
        return None
    return obj.get("urn") or canonical_urn(
        obj.get("agencyID"), obj.get("id"), obj.get("version")
    )


def parse_urn(urn: str) -> dict[str, str] | None:
    """
    Split urn:ddi:<agencyID>:<id>:<version> into its parts.

    Returns None for strings that are not DDI URNs.
    """
    if not isinstance(urn, str) or not urn.startswith(URN_PREFIX + ":"):
        return None
    parts = urn[len(URN_PREFIX) + 1 :].split(":")
    if len(parts) < 2:
        return None
    result = {"agencyID": parts[0], "id": parts[1]}
    if len(parts) >= 3:
        result["version"] = ":".join(parts[2:])
    return result


def extract_id(obj: Any) -> str | None:
    """
    Resource id of an identifier-like object.

    Prefers the explicit id, falls back to the id segment of the URN.
    """
    if isinstance(obj, str):
        parsed = parse_urn(obj)
        return parsed["id"] if parsed else obj
    if not isinstance(obj, Mapping):
        return None
    if obj.get("id"):
        return obj["id"]
    parsed = parse_urn(obj.get("urn"))
    return parsed["id"] if parsed else None
