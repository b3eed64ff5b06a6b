"""
Utility modules for the DDI API mock server.
"""

from ddi_api.utils.identifiers import entity_urn, extract_id

__all__ = ["entity_urn", "extract_id"]
