"""
Collection filtering and pagination.

Narrows a collection slice before it is handed to the resolver.
"""

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from pydantic import BaseModel, Field

from ddi_api.utils.identifiers import entity_urn, extract_id


class CollectionQuery(BaseModel):
    """Filter and pagination parameters of a collection request."""

    urn: str | None = None
    agencyID: list[str] | None = None
    resourceID: list[str] | None = None
    version: list[str] | None = None
    variableID: list[str] | None = None
    conceptID: list[str] | None = None
    conceptReference: list[str] | None = None
    search: str | None = None
    offset: int = Field(default=0, ge=0)
    limit: int | None = Field(default=None, ge=0)


def _matches_any_id(item: Mapping[str, Any], wanted: Iterable[str]) -> bool:
    item_id = extract_id(item)
    return any(item_id == value or item_id == extract_id(value) for value in wanted)


def _text_values(item: Mapping[str, Any], fields: Sequence[str]) -> Iterable[str]:
    for field in fields:
        entries = item.get(field)
        if not isinstance(entries, list):
            continue
        for entry in entries:
            if isinstance(entry, Mapping) and isinstance(entry.get("value"), str):
                yield entry["value"]


def matches_search(item: Mapping[str, Any], search: str) -> bool:
    """Case-insensitive substring match on label and name values."""
    search_lower = search.lower()
    return any(search_lower in text.lower() for text in _text_values(item, ("label", "name")))


def apply_filters(
    items: Sequence[Mapping[str, Any]],
    query: CollectionQuery,
) -> list[Mapping[str, Any]]:
    """
    Filter and paginate a collection.

    Args:
        items: Collection entities in store order
        query: Filter values, unset filters are ignored

    Returns:
        The matching slice, offset applied before limit
    """
    filtered = list(items)

    if query.urn:
        filtered = [item for item in filtered if entity_urn(item) == query.urn]

    if query.agencyID:
        filtered = [item for item in filtered if item.get("agencyID") in query.agencyID]

    if query.resourceID:
        filtered = [item for item in filtered if item.get("id") in query.resourceID]

    if query.version:
        filtered = [item for item in filtered if item.get("version") in query.version]

    if query.variableID:
        filtered = [item for item in filtered if _matches_any_id(item, query.variableID)]

    if query.conceptID:
        filtered = [item for item in filtered if _matches_any_id(item, query.conceptID)]

    if query.conceptReference:
        filtered = [
            item
            for item in filtered
            if isinstance(item.get("conceptReference"), Mapping)
            and _matches_any_id(item["conceptReference"], query.conceptReference)
        ]

    if query.search:
        filtered = [item for item in filtered if matches_search(item, query.search)]

    if query.limit is not None:
        return filtered[query.offset : query.offset + query.limit]
    return filtered[query.offset :]
