"""
Pydantic schemas for DDI resources and API responses.
"""

from ddi_api.schemas.ddi import (
    HealthResponse,
    Identifier,
    Kind,
    LocalizedText,
    ResolutionLevel,
    ServiceInfo,
    UserID,
)

__all__ = [
    "Kind",
    "ResolutionLevel",
    "Identifier",
    "LocalizedText",
    "UserID",
    "HealthResponse",
    "ServiceInfo",
]
