"""
FastAPI dependency injection setup.

Provides factory functions for service instances used across routes.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from ddi_api.config import get_settings
from ddi_api.services.resolver import ReferenceResolver
from ddi_api.services.store import DataStore
from ddi_api.services.xml_mapper import XmlMapper


@lru_cache
def get_data_store() -> DataStore:
    """Load the mock collections once per process."""
    settings = get_settings()
    return DataStore.from_directory(settings.data_dir)


def get_resolver(
    store: Annotated[DataStore, Depends(get_data_store)],
) -> ReferenceResolver:
    """Get a resolver bound to the loaded collections."""
    return ReferenceResolver(store)


@lru_cache
def get_xml_mapper() -> XmlMapper:
    """Get cached XML mapper instance."""
    return XmlMapper(indent=get_settings().xml_indent)
