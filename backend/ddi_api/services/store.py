"""
Read-only DDI collection store.

Holds one collection per resource kind, loaded once from JSON fixture
files and addressed by id or URN. Nothing in the store is mutated after
construction; callers receive entities that they must treat as read-only.
"""

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from pydantic import ValidationError

from ddi_api.schemas.ddi import Identifier, Kind, canonical_urn
from ddi_api.utils.identifiers import entity_urn, extract_id, parse_urn, type_tag

logger = logging.getLogger(__name__)

# Fixture file per collection
COLLECTION_FILES: dict[Kind, str] = {
    Kind.CONCEPT: "concepts.json",
    Kind.CONCEPT_SCHEME: "concept-schemes.json",
    Kind.VARIABLE: "variables.json",
    Kind.VARIABLE_SCHEME: "variable-schemes.json",
    Kind.CODE_LIST: "code-lists.json",
    Kind.CODE_LIST_SCHEME: "code-list-schemes.json",
    Kind.CATEGORY: "categories.json",
    Kind.CATEGORY_SCHEME: "category-schemes.json",
    Kind.CODE: "codes.json",
}

Entity = Mapping[str, Any]


class DataStoreError(Exception):
    """Raised when a collection file cannot be loaded."""


class _Collection:
    """Entities of one kind with id and URN indexes."""

    def __init__(self, kind: Kind, entities: Iterable[Entity]):
        self.kind = kind
        items: list[Entity] = []
        self._by_id: dict[str, Entity] = {}
        self._by_urn: dict[str, Entity] = {}

        for index, entity in enumerate(entities):
            try:
                identifier = Identifier.model_validate(entity)
            except ValidationError as e:
                logger.warning(
                    f"Skipping invalid {kind.value} entry #{index}: "
                    f"{e.error_count()} validation error(s)"
                )
                continue

            if identifier.id in self._by_id:
                logger.warning(f"Duplicate {kind.value} id '{identifier.id}', keeping the first")
                continue

            items.append(entity)
            self._by_id[identifier.id] = entity
            derived = canonical_urn(identifier.agencyID, identifier.id, identifier.version)
            for urn in (identifier.urn, derived):
                if urn:
                    self._by_urn.setdefault(urn, entity)

        self.items: tuple[Entity, ...] = tuple(items)

    def find(self, id_or_urn: str) -> Entity | None:
        found = self._by_id.get(id_or_urn) or self._by_urn.get(id_or_urn)
        if found is None:
            parsed = parse_urn(id_or_urn)
            if parsed:
                found = self._by_id.get(parsed["id"])
        return found


class DataStore:
    """
    Immutable handle over the per-kind DDI collections.

    Create it once per process, from a directory of fixture files or from
    in-memory collections, and pass it to the services that need lookups.
    """

    def __init__(self, collections: Mapping[Kind, Iterable[Entity]] | None = None):
        collections = collections or {}
        self._collections = MappingProxyType(
            {
                kind: _Collection(kind, collections.get(kind, ()))
                for kind in COLLECTION_FILES
            }
        )

    @classmethod
    def from_directory(cls, data_dir: Path) -> "DataStore":
        """
        Load every collection file found in a directory.

        Missing files yield empty collections.

        Raises:
            DataStoreError: If a file is not valid JSON or not a JSON array
        """
        collections: dict[Kind, list[Entity]] = {}
        for kind, filename in COLLECTION_FILES.items():
            path = Path(data_dir) / filename
            if not path.exists():
                logger.debug(f"No {filename} in {data_dir}, {kind.value} collection is empty")
                continue
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                raise DataStoreError(f"Could not read {path}: {e}") from e
            if not isinstance(data, list):
                raise DataStoreError(f"{path} must contain a JSON array")
            collections[kind] = data

        store = cls(collections)
        counts = ", ".join(f"{k.value}={len(store.collection(k))}" for k in COLLECTION_FILES)
        logger.info(f"Loaded DDI collections from {data_dir}: {counts}")
        return store

    def collection(self, kind: Kind) -> tuple[Entity, ...]:
        """All entities of a kind, in file order."""
        collection = self._collections.get(kind)
        return collection.items if collection else ()

    def lookup(self, kind: Kind, id_or_urn: str | None) -> Entity | None:
        """
        Find an entity by id or URN.

        An entity whose explicit type tag names a different kind is
        reported as not found.
        """
        collection = self._collections.get(kind)
        if collection is None or not id_or_urn:
            return None

        found = collection.find(id_or_urn)
        if found is None:
            return None

        tag = type_tag(found)
        if tag is not None and tag != kind.value:
            logger.debug(f"'{id_or_urn}' is tagged {tag}, not {kind.value}")
            return None
        return found

    def lookup_reference(self, kind: Kind, reference: Mapping[str, Any]) -> Entity | None:
        """Find the target of a reference by its urn, canonical URN, then id."""
        for key in (reference.get("urn"), entity_urn(reference), extract_id(reference)):
            if key:
                found = self.lookup(kind, key)
                if found is not None:
                    return found
        return None
