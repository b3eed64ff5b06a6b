"""
FastAPI routers for the DDI API mock server.
"""

from ddi_api.routers import resources

__all__ = ["resources"]
