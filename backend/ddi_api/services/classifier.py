"""
Type classification for loosely typed DDI JSON objects.

An explicit typeOfObject/type tag always wins. Untagged objects are
classified from their structure, first matching rule wins.
"""

from collections.abc import Mapping
from typing import Any

from ddi_api.schemas.ddi import Kind
from ddi_api.utils.identifiers import IDENTIFIER_FIELDS, type_tag

BARE_IDENTIFIER_FIELDS = IDENTIFIER_FIELDS | {"isUniversallyUnique"}


def _has(obj: Mapping, key: str) -> bool:
    return obj.get(key) is not None


def explicit_kind(obj: Any) -> Kind | None:
    """Kind named by the object's tag, None when the object is untagged."""
    tag = type_tag(obj)
    if tag is None:
        return None
    return Kind.from_tag(tag)


def classify(obj: Any) -> Kind:
    """
    Determine the semantic kind of a DDI JSON object.

    Args:
        obj: Entity, reference or arbitrary JSON value

    Returns:
        The matching Kind, or Kind.UNKNOWN
    """
    if not isinstance(obj, Mapping):
        return Kind.UNKNOWN

    kind = explicit_kind(obj)
    if kind is not None:
        return kind

    if _has(obj, "concepts"):
        return Kind.CONCEPT_SCHEME
    if _has(obj, "variables"):
        return Kind.VARIABLE_SCHEME
    if _has(obj, "codeLists"):
        return Kind.CODE_LIST_SCHEME
    if _has(obj, "categories"):
        return Kind.CATEGORY_SCHEME
    if _has(obj, "codes"):
        return Kind.CODE_LIST
    if _has(obj, "value") and (_has(obj, "categoryReference") or _has(obj, "category")):
        return Kind.CODE
    if any(_has(obj, key) for key in ("definition", "subclassOfReference", "subclassOf")):
        return Kind.CONCEPT
    if _has(obj, "representation"):
        return Kind.VARIABLE
    if _has(obj, "label") and not any(_has(obj, key) for key in ("name", "value", "definition")):
        return Kind.CATEGORY
    # Only name and label: could be a Concept too, Variable is the default
    if (
        _has(obj, "name")
        and _has(obj, "label")
        and not any(_has(obj, key) for key in ("definition", "value", "codes"))
    ):
        return Kind.VARIABLE

    return Kind.UNKNOWN


def is_bare_identifier(obj: Any) -> bool:
    """
    Whether an object is a bare member identifier rather than an entity.

    A bare identifier has no type tag, carries an id or urn, and has no
    keys beyond the identifier block.
    """
    if not isinstance(obj, Mapping) or type_tag(obj) is not None:
        return False
    if not (obj.get("id") or obj.get("urn")):
        return False
    return all(key in BARE_IDENTIFIER_FIELDS for key in obj)
