"""
Pydantic models for DDI resources.

Entities travel through the resolver and the XML mapper as plain JSON
mappings; these models describe their shared substructures and are used to
validate collection entries at load time.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

URN_PREFIX = "urn:ddi"


class Kind(str, Enum):
    """Semantic kind of a DDI resource, valued by its typeOfObject tag."""

    CONCEPT = "Concept"
    CONCEPT_SCHEME = "ConceptScheme"
    VARIABLE = "Variable"
    VARIABLE_SCHEME = "VariableScheme"
    CODE_LIST = "CodeList"
    CODE_LIST_SCHEME = "CodeListScheme"
    CATEGORY = "Category"
    CATEGORY_SCHEME = "CategoryScheme"
    CODE = "Code"
    UNKNOWN = "Unknown"

    @classmethod
    def from_tag(cls, tag: Any) -> "Kind":
        """Match an explicit typeOfObject/type tag, UNKNOWN when unmatched."""
        if isinstance(tag, str):
            for kind in cls:
                if kind is not cls.UNKNOWN and kind.value == tag:
                    return kind
        return cls.UNKNOWN


class ResolutionLevel(str, Enum):
    """How far reference fields are expanded."""

    NONE = "none"
    CHILDREN = "children"
    ALL = "all"


def canonical_urn(agency_id: str | None, resource_id: str | None, version: str | None) -> str | None:
    """Derive urn:ddi:<agencyID>:<id>:<version>, None if a part is missing."""
    if not (agency_id and resource_id and version):
        return None
    return f"{URN_PREFIX}:{agency_id}:{resource_id}:{version}"


class LocalizedText(BaseModel):
    """A string value tagged with its language."""

    value: str
    lang: str = "en"


class UserID(BaseModel):
    value: str
    typeOfUserID: str | None = None


class Identifier(BaseModel):
    """Identification block shared by every resource and reference."""

    id: str = Field(..., min_length=1)
    agencyID: str | None = None
    version: str | None = None
    urn: str | None = None
    isUniversallyUnique: bool | None = None

    model_config = {"extra": "allow"}

    @property
    def canonical_urn(self) -> str | None:
        return self.urn or canonical_urn(self.agencyID, self.id, self.version)


class HealthResponse(BaseModel):
    status: str
    service: str | None = None
    version: str | None = None
    timestamp: str | None = None


class ServiceInfo(BaseModel):
    """Document returned by the service root."""

    status: str = "ok"
    service: str
    version: str
    endpoints: dict[str, dict[str, str]]
    queryParameters: dict[str, Any]
