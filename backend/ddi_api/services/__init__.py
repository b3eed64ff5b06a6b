"""
Backend services for the DDI API mock server.

- Store: per-kind collections addressed by id or URN
- Resolver: reference expansion to a resolution level
- XML mapper: DDI 3.3 XML rendering
"""

from ddi_api.services.classifier import classify
from ddi_api.services.resolver import ReferenceResolver
from ddi_api.services.store import DataStore
from ddi_api.services.xml_mapper import XmlMapper

__all__ = ["DataStore", "ReferenceResolver", "XmlMapper", "classify"]
