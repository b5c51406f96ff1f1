"""
CRUD router factory.

Registers the routes a data provider supports:

    GET    /products          list   {"data": [...], "count": N}
    GET    /products/{id}     get
    POST   /products          create (201)
    PUT    /products/{id}     full update
    PATCH  /products/{id}     partial update
    DELETE /products/{id}     delete

Usage:
    app.include_router(create_crud_router(provider, prefix="/products"))

The caller's auth metadata comes from the `get_auth_context` dependency,
which reads a JSON `X-Auth-Metadata` header. Services behind a real auth
layer pass their own dependency.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Optional

from fastapi import APIRouter, Body, Depends, Header, Path, Request

from ..core.errors import BadRequestError
from ..core.query_types import ListRequest, ListResponse
from ..runtime.context import AuthContext
from ..runtime.dataprovider import DataProvider
from ..viewsets.base import Capability
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)


AUTH_METADATA_HEADER = "X-Auth-Metadata"


def get_auth_context(
    x_auth_metadata: Optional[str] = Header(default=None, alias=AUTH_METADATA_HEADER),
) -> AuthContext:
    """Auth context from the JSON metadata header (empty when absent)."""
    if not x_auth_metadata:
        return AuthContext()
    try:
        metadata = json.loads(x_auth_metadata)
    except ValueError:
        raise BadRequestError(f"Header '{AUTH_METADATA_HEADER}' is not valid JSON.")
    if not isinstance(metadata, dict):
        raise BadRequestError(f"Header '{AUTH_METADATA_HEADER}' should be a JSON object.")
    return AuthContext(metadata)


def item_key_dependency(provider: DataProvider) -> Callable[..., Any]:
    """Dependency converting the `{item_id}` path segment to the entity's primary key type."""
    try:
        key_type = provider.repository.primary_key.type.python_type
    except NotImplementedError:
        key_type = str

    def item_key(item_id: str = Path(...)) -> Any:
        try:
            return key_type(item_id)
        except (TypeError, ValueError):
            raise BadRequestError(f"Invalid id '{item_id}'.")

    return item_key


def parse_list_request(request: Request, settings: Settings) -> ListRequest:
    """ListRequest from the query string, repeated parameters kept as lists."""
    query: dict[str, Any] = {}
    for key, value in request.query_params.multi_items():
        if key in query:
            previous = query[key]
            query[key] = previous + [value] if isinstance(previous, list) else [previous, value]
        else:
            query[key] = value
    return ListRequest.from_query(
        query,
        default_page_size=settings.default_page_size,
        maximum_page_size=settings.maximum_page_size,
    )


def create_crud_router(
    provider: DataProvider,
    *,
    prefix: str = "",
    tags: Optional[list[str]] = None,
    auth_dependency: Callable[..., AuthContext] = get_auth_context,
    settings: Optional[Settings] = None,
) -> APIRouter:
    """
    Create the CRUD routes of one entity.

    Args:
        provider: Data provider of the entity
        prefix: Route prefix (e.g. "/products")
        tags: OpenAPI tags, defaults to the entity name
        auth_dependency: FastAPI dependency returning the AuthContext
        settings: Pagination settings, process settings when omitted

    Returns:
        APIRouter with the routes the provider supports
    """
    router = APIRouter(prefix=prefix, tags=tags or [provider.name])

    def current_settings() -> Settings:
        return settings or get_settings()

    item_key = item_key_dependency(provider)

    if provider.supports(Capability.LIST):
        @router.get("", response_model=ListResponse)
        async def get_list(request: Request, auth: AuthContext = Depends(auth_dependency)):
            params = parse_list_request(request, current_settings())
            items, count = await provider.get_list(auth, params)
            return {"data": items, "count": count}

    if provider.supports(Capability.GET):
        @router.get("/{item_id}")
        async def get_item(item_id: Any = Depends(item_key), auth: AuthContext = Depends(auth_dependency)):
            return await provider.get_item(auth, item_id)

    if provider.supports(Capability.CREATE):
        @router.post("", status_code=201)
        async def create_item(
            payload: dict[str, Any] = Body(...),
            auth: AuthContext = Depends(auth_dependency),
        ):
            return await provider.create_item(auth, payload)

    if provider.supports(Capability.UPDATE):
        @router.put("/{item_id}")
        async def update_item(
            item_id: Any = Depends(item_key),
            payload: dict[str, Any] = Body(...),
            auth: AuthContext = Depends(auth_dependency),
        ):
            return await provider.update_item(auth, item_id, payload, is_partial=False)

        @router.patch("/{item_id}")
        async def partial_update_item(
            item_id: Any = Depends(item_key),
            payload: dict[str, Any] = Body(...),
            auth: AuthContext = Depends(auth_dependency),
        ):
            return await provider.update_item(auth, item_id, payload, is_partial=True)

    if provider.supports(Capability.DELETE):
        @router.delete("/{item_id}")
        async def delete_item(item_id: Any = Depends(item_key), auth: AuthContext = Depends(auth_dependency)):
            return await provider.delete_item(auth, item_id)

    logger.debug(f"CRUD routes of {provider.name} registered under '{prefix}'")
    return router
