"""
DDI resource endpoints.

Serves the mock collections with filtering, pagination, reference
resolution and JSON or DDI XML output. One list and one item endpoint
are registered per resource collection.
"""

import logging
from dataclasses import dataclass
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi import Path, Query
from fastapi.responses import JSONResponse, Response

from ddi_api.config import get_settings
from ddi_api.dependencies import get_data_store, get_resolver, get_xml_mapper
from ddi_api.schemas.ddi import Kind, ResolutionLevel
from ddi_api.services.filters import CollectionQuery, apply_filters
from ddi_api.services.resolver import ReferenceResolver
from ddi_api.services.store import DataStore
from ddi_api.services.xml_mapper import XmlMapper, XmlSerializationError

logger = logging.getLogger(__name__)

XML_MEDIA_TYPES = ("application/xml", "text/xml")

router = APIRouter()


@dataclass(frozen=True)
class ResourceRoute:
    """A served collection: its kind, URL segment and display label."""

    kind: Kind
    path: str
    id_name: str
    label: str


RESOURCE_ROUTES: tuple[ResourceRoute, ...] = (
    ResourceRoute(Kind.VARIABLE, "variables", "variableID", "Variable"),
    ResourceRoute(Kind.CONCEPT, "concepts", "conceptID", "Concept"),
    ResourceRoute(Kind.CONCEPT_SCHEME, "concept-schemes", "conceptSchemeID", "Concept scheme"),
    ResourceRoute(Kind.VARIABLE_SCHEME, "variable-schemes", "variableSchemeID", "Variable scheme"),
    ResourceRoute(Kind.CODE_LIST, "code-lists", "codeListID", "Code list"),
    ResourceRoute(Kind.CODE_LIST_SCHEME, "code-list-schemes", "codeListSchemeID", "Code list scheme"),
    ResourceRoute(Kind.CATEGORY, "categories", "categoryID", "Category"),
    ResourceRoute(Kind.CATEGORY_SCHEME, "category-schemes", "categorySchemeID", "Category scheme"),
)

ReferencesParam = Annotated[
    ResolutionLevel | None,
    Query(description="Resolve referenced objects: none (default), children or all"),
]
FormatParam = Annotated[
    Literal["json", "xml"] | None,
    Query(description="Response format, takes precedence over the Accept header"),
]
MultiParam = Annotated[list[str] | None, Query()]


def wants_xml(request: Request, format: str | None) -> bool:
    """
    Decide whether the response should be DDI XML.

    An explicit format parameter wins; otherwise the first JSON or XML
    media type named in the Accept header decides. Defaults to JSON.
    """
    if format is not None:
        return format == "xml"

    ddi_media_type = get_settings().xml_media_type.split(";")[0].strip().lower()
    for media_range in request.headers.get("accept", "").split(","):
        media_type = media_range.split(";")[0].strip().lower()
        if media_type == ddi_media_type or media_type in XML_MEDIA_TYPES:
            return True
        if media_type == "application/json":
            return False
    return False


def render(
    payload: Any,
    kind: Kind,
    request: Request,
    format: str | None,
    mapper: XmlMapper,
) -> Response:
    """Return the payload as JSON, or as DDI XML when negotiated."""
    if wants_xml(request, format):
        try:
            content = mapper.to_xml(payload, kind)
        except XmlSerializationError as e:
            logger.warning(f"Falling back to JSON for {request.url.path}: {e}")
        else:
            media_type = get_settings().xml_media_type
            return Response(content=content, media_type=f"{media_type}; charset=utf-8")
    return JSONResponse(content=payload)


def _list_endpoint(route: ResourceRoute):
    async def list_resources(
        request: Request,
        store: Annotated[DataStore, Depends(get_data_store)],
        resolver: Annotated[ReferenceResolver, Depends(get_resolver)],
        mapper: Annotated[XmlMapper, Depends(get_xml_mapper)],
        references: ReferencesParam = None,
        format: FormatParam = None,
        urn: Annotated[str | None, Query(description="Filter by URN")] = None,
        agencyID: MultiParam = None,
        resourceID: MultiParam = None,
        ids: Annotated[list[str] | None, Query(alias="id")] = None,
        version: MultiParam = None,
        variableID: MultiParam = None,
        conceptID: MultiParam = None,
        conceptReference: MultiParam = None,
        search: Annotated[str | None, Query(description="Search in labels and names")] = None,
        offset: Annotated[int, Query(ge=0)] = 0,
        limit: Annotated[int | None, Query(ge=0)] = None,
    ) -> Response:
        try:
            query = CollectionQuery(
                urn=urn,
                agencyID=agencyID,
                resourceID=[*(resourceID or []), *(ids or [])] or None,
                version=version,
                variableID=variableID,
                conceptID=conceptID,
                conceptReference=conceptReference,
                search=search,
                offset=offset,
                limit=limit,
            )
            items = apply_filters(store.collection(route.kind), query)
            level = references or get_settings().default_references
            resolved = resolver.resolve_many(items, level)
            return render(resolved, route.kind, request, format, mapper)
        except Exception as e:
            logger.exception(f"Failed to list {route.path}")
            raise HTTPException(status_code=500, detail=str(e))

    list_resources.__doc__ = f"List {route.label.lower()} resources."
    return list_resources


def _item_endpoint(route: ResourceRoute):
    async def get_resource(
        request: Request,
        resource_id: Annotated[str, Path(description=f"{route.id_name}: id or URN")],
        store: Annotated[DataStore, Depends(get_data_store)],
        resolver: Annotated[ReferenceResolver, Depends(get_resolver)],
        mapper: Annotated[XmlMapper, Depends(get_xml_mapper)],
        references: ReferencesParam = None,
        format: FormatParam = None,
    ) -> Response:
        entity = store.lookup(route.kind, resource_id)
        if entity is None:
            raise HTTPException(status_code=404, detail=f"{route.label} not found")

        try:
            level = references or get_settings().default_references
            resolved = resolver.resolve(entity, level)
            return render(resolved, route.kind, request, format, mapper)
        except Exception as e:
            logger.exception(f"Failed to get {route.path}/{resource_id}")
            raise HTTPException(status_code=500, detail=str(e))

    get_resource.__doc__ = f"Get a single {route.label.lower()} by id or URN."
    return get_resource


for _route in RESOURCE_ROUTES:
    router.add_api_route(
        f"/{_route.path}",
        _list_endpoint(_route),
        methods=["GET"],
        name=f"list_{_route.path.replace('-', '_')}",
        tags=[_route.path],
    )
    router.add_api_route(
        f"/{_route.path}/{{resource_id}}",
        _item_endpoint(_route),
        methods=["GET"],
        name=f"get_{_route.path.replace('-', '_')}",
        tags=[_route.path],
    )
