"""
Reference resolution for DDI entity graphs.

Expands reference fields (conceptReference, codeListReference, ...) into
the entities they name, to the depth selected by a ResolutionLevel:

- none: structural copy, nothing expanded
- children: reference fields and scheme member arrays of the root entity
  are expanded, embedded targets are left as found
- all: every reference at every depth is expanded, refusing to re-enter
  an entity already on the current branch

The input graph is never modified. Every call builds a new tree.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from ddi_api.schemas.ddi import Kind, ResolutionLevel
from ddi_api.services.classifier import classify, explicit_kind, is_bare_identifier
from ddi_api.services.store import DataStore
from ddi_api.utils.identifiers import IDENTIFIER_FIELDS, TYPE_TAG_FIELDS, entity_urn, type_tag

logger = logging.getLogger(__name__)

# Copied verbatim, never resolved
SKIPPED_FIELDS = IDENTIFIER_FIELDS | set(TYPE_TAG_FIELDS)

# Known reference fields and the kind they point to when untagged
REFERENCE_FIELDS: dict[str, Kind] = {
    "conceptReference": Kind.CONCEPT,
    "subclassOfReference": Kind.CONCEPT,
    "sourceVariableReference": Kind.VARIABLE,
    "variableReference": Kind.VARIABLE,
    "codeListReference": Kind.CODE_LIST,
    "categoryReference": Kind.CATEGORY,
    "conceptSchemeReference": Kind.CONCEPT_SCHEME,
    "variableSchemeReference": Kind.VARIABLE_SCHEME,
    "codeListSchemeReference": Kind.CODE_LIST_SCHEME,
    "categorySchemeReference": Kind.CATEGORY_SCHEME,
}

# Looked up in this collection whatever the reference's tag says
FORCED_REFERENCE_KINDS: dict[str, Kind] = {
    "categoryReference": Kind.CATEGORY,
}

# Scheme arrays whose elements may be bare member identifiers
MEMBER_FIELDS: dict[str, Kind] = {
    "concepts": Kind.CONCEPT,
    "variables": Kind.VARIABLE,
    "codeLists": Kind.CODE_LIST,
    "categories": Kind.CATEGORY,
}

REFERENCE_SUFFIX = "Reference"


def resolved_field_name(field_name: str) -> str:
    """
    Name a reference field takes once resolved.

    conceptReference -> concept, categorySchemeReference -> categoryScheme,
    subclassOfReference -> subclassOf.
    """
    if field_name == "subclassOfReference":
        return "subclassOf"
    if "SchemeReference" in field_name:
        return field_name.replace("SchemeReference", "Scheme")
    if field_name.endswith(REFERENCE_SUFFIX):
        return field_name[: -len(REFERENCE_SUFFIX)]
    return field_name


# Kind of an already embedded entity, by the field holding it
EMBEDDED_FIELD_KINDS: dict[str, Kind] = {
    **{resolved_field_name(name): kind for name, kind in REFERENCE_FIELDS.items()},
    **MEMBER_FIELDS,
    "codes": Kind.CODE,
}


def is_reference_field(field_name: str, value: Any) -> bool:
    """Whether a field holds an unresolved reference."""
    if not isinstance(value, Mapping) or field_name in SKIPPED_FIELDS:
        return False
    if field_name in REFERENCE_FIELDS:
        return True
    return field_name.endswith(REFERENCE_SUFFIX) and field_name != REFERENCE_SUFFIX


def _clone(value: Any) -> Any:
    """Structural copy of a JSON value."""
    if isinstance(value, Mapping):
        return {key: _clone(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_clone(item) for item in value]
    return value


@dataclass(frozen=True)
class TraversalContext:
    """
    State handed down one branch of the traversal.

    Passed by value: descend() and enter() return new contexts, so sibling
    branches never see each other's path.
    """

    level: ResolutionLevel
    depth: int = 0
    path: frozenset[tuple[Kind, str]] = field(default_factory=frozenset)

    @property
    def recursive(self) -> bool:
        return self.level is ResolutionLevel.ALL

    @property
    def expands(self) -> bool:
        """Whether reference fields at this depth get resolved."""
        if self.level is ResolutionLevel.ALL:
            return True
        return self.level is ResolutionLevel.CHILDREN and self.depth == 0

    def descend(self) -> "TraversalContext":
        return replace(self, depth=self.depth + 1)

    def enter(self, kind: Kind, entity_id: str) -> "TraversalContext":
        return replace(self, path=self.path | {(kind, entity_id)})

    def closes_cycle(self, kind: Kind, entity_id: str) -> bool:
        return self.recursive and (kind, entity_id) in self.path


class ReferenceResolver:
    """
    Service expanding references against a DataStore.

    The store is injected and only read. resolve() may be called
    concurrently from several requests.
    """

    def __init__(self, store: DataStore):
        self.store = store

    def resolve(
        self,
        entity: Mapping[str, Any],
        level: ResolutionLevel | str = ResolutionLevel.NONE,
    ) -> dict[str, Any]:
        """
        Produce a reference-expanded copy of an entity.

        Args:
            entity: Entity as loaded from a collection
            level: Resolution level, enum or its string value

        Returns:
            New entity tree. References whose target cannot be found, or
            that would close a cycle, are left as they are.
        """
        level = ResolutionLevel(level)
        if level is ResolutionLevel.NONE or not isinstance(entity, Mapping):
            return _clone(entity)
        return self._build_entity(entity, TraversalContext(level), hint=None)

    def resolve_many(
        self,
        entities: Sequence[Mapping[str, Any]],
        level: ResolutionLevel | str = ResolutionLevel.NONE,
    ) -> list[dict[str, Any]]:
        """Resolve each entity of a collection slice independently."""
        return [self.resolve(entity, level) for entity in entities]

    def _build_entity(
        self,
        obj: Mapping[str, Any],
        ctx: TraversalContext,
        hint: Kind | None,
    ) -> dict[str, Any]:
        key = _path_key(obj, hint)
        if key is not None:
            ctx = ctx.enter(*key)
        return self._build_object(obj, ctx)

    def _build_object(self, obj: Mapping[str, Any], ctx: TraversalContext) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for name, value in obj.items():
            if name in SKIPPED_FIELDS:
                result[name] = _clone(value)
            elif is_reference_field(name, value):
                resolved_name, resolved = self._resolve_field(name, value, ctx)
                result[resolved_name] = resolved
            elif name == "representation" and isinstance(value, Mapping):
                result[name] = self._build_representation(value, ctx)
            elif isinstance(value, list):
                result[name] = self._build_array(name, value, ctx)
            elif isinstance(value, Mapping):
                result[name] = self._build_entity(
                    value, ctx.descend(), EMBEDDED_FIELD_KINDS.get(name)
                )
            else:
                result[name] = value
        return result

    def _build_array(self, name: str, items: list, ctx: TraversalContext) -> list:
        if name in MEMBER_FIELDS:
            return [self._build_member(item, MEMBER_FIELDS[name], ctx) for item in items]

        if name == "codes" and ctx.expands and not ctx.recursive:
            return [self._shallow_resolve(code, ("categoryReference",), ctx) for code in items]

        hint = EMBEDDED_FIELD_KINDS.get(name)
        return [self._build_item(item, ctx, hint) for item in items]

    def _build_item(self, item: Any, ctx: TraversalContext, hint: Kind | None) -> Any:
        if isinstance(item, Mapping):
            return self._build_entity(item, ctx.descend(), hint)
        if isinstance(item, list):
            return [self._build_item(sub, ctx, hint) for sub in item]
        return item

    def _build_member(self, item: Any, kind: Kind, ctx: TraversalContext) -> Any:
        """Expand a bare scheme member identifier into the member entity."""
        if not (ctx.expands and is_bare_identifier(item)):
            return self._build_item(item, ctx, kind)

        target = self.store.lookup_reference(kind, item)
        if target is None:
            logger.debug(f"{kind.value} member {entity_urn(item)} not found, left as identifier")
            return _clone(item)
        if ctx.closes_cycle(kind, target["id"]):
            logger.debug(f"{kind.value} member {target['id']} already on path, left as identifier")
            return _clone(item)
        return self._materialize(target, kind, ctx)

    def _build_representation(
        self, representation: Mapping[str, Any], ctx: TraversalContext
    ) -> dict[str, Any]:
        if ctx.recursive:
            return self._build_entity(representation, ctx.descend(), None)
        if not ctx.expands:
            return _clone(representation)

        result: dict[str, Any] = {}
        for name, value in representation.items():
            if name == "codeRepresentation" and isinstance(value, Mapping):
                result[name] = self._shallow_resolve(value, ("codeListReference",), ctx)
            else:
                result[name] = _clone(value)
        return result

    def _shallow_resolve(
        self, obj: Any, fields: tuple[str, ...], ctx: TraversalContext
    ) -> Any:
        """Copy an object, resolving only the named reference fields."""
        if not isinstance(obj, Mapping):
            return _clone(obj)

        result: dict[str, Any] = {}
        for name, value in obj.items():
            if name in fields and is_reference_field(name, value):
                resolved_name, resolved = self._resolve_field(name, value, ctx)
                result[resolved_name] = resolved
            else:
                result[name] = _clone(value)
        return result

    def _resolve_field(
        self,
        name: str,
        reference: Mapping[str, Any],
        ctx: TraversalContext,
    ) -> tuple[str, Any]:
        """
        Resolve one reference field.

        Returns the field name and value to emit: the renamed field with the
        embedded target, or the original field unchanged on a miss.
        """
        if not ctx.expands:
            return name, _clone(reference)

        kind = self._reference_kind(name, reference)
        target = None
        if kind is not Kind.UNKNOWN:
            target = self.store.lookup_reference(kind, reference)

        if target is None:
            logger.debug(f"{name} {entity_urn(reference)} not found, left unresolved")
            return name, _clone(reference)
        if ctx.closes_cycle(kind, target["id"]):
            logger.debug(f"{name} {target['id']} closes a cycle, left unresolved")
            return name, _clone(reference)

        return resolved_field_name(name), self._materialize(target, kind, ctx)

    def _materialize(
        self, target: Mapping[str, Any], kind: Kind, ctx: TraversalContext
    ) -> dict[str, Any]:
        if ctx.recursive:
            return self._build_object(target, ctx.descend().enter(kind, target["id"]))
        return _clone(target)

    @staticmethod
    def _reference_kind(name: str, reference: Mapping[str, Any]) -> Kind:
        if name in FORCED_REFERENCE_KINDS:
            return FORCED_REFERENCE_KINDS[name]
        tag = type_tag(reference)
        if tag is not None:
            return Kind.from_tag(tag)
        return REFERENCE_FIELDS.get(name, Kind.UNKNOWN)


def _path_key(obj: Mapping[str, Any], hint: Kind | None) -> tuple[Kind, str] | None:
    """(kind, id) an embedded entity occupies on the traversal path."""
    entity_id = obj.get("id")
    if not isinstance(entity_id, str) or not entity_id:
        return None
    kind = explicit_kind(obj) or hint or classify(obj)
    if kind is Kind.UNKNOWN:
        return None
    return kind, entity_id
