# DDI API Mock Server
"""
DDI REST API mock server

Serves DDI 3.3 metadata resources (concepts, variables, code lists,
categories and their schemes) from JSON fixture collections.

Architecture:
- DataStore: read-only per-kind collections loaded once at startup
- ReferenceResolver: expands references to a requested depth
- XmlMapper: renders resolved entities as DDI 3.3 XML
"""

__version__ = "1.0.0"
