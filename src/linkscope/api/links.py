"""Link CRUD, view and reorder endpoints."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Header, HTTPException, Query, Response
from pydantic import BaseModel, Field

from ..config import is_placeholder_secret
from ..core.analyzer import LinkAnalyzer
from ..core.errors import (
    ExternalServiceError,
    LinkNotFoundError,
    LinkValidationError,
    MalformedResponseError,
    StorageError,
)
from ..core.link_board import LinkBoard
from ..core.link_store import LinkStore
from ..core.views import Tab, all_tags, filter_links, tab_counts
from ..models.config import Session
from ..models.link import LinkRecord, LinkStatus, LinkType, LinkUpdate, OrderUpdate

logger = logging.getLogger(__name__)

router = APIRouter()

USER_HEADER = "X-LinkScope-User"


def _store_for(username: Optional[str]) -> LinkStore:
    """Build a store scoped to the caller's username header."""
    from . import link_table

    if not username or not username.strip():
        raise HTTPException(status_code=400, detail=f"No username set ({USER_HEADER} header)")

    return LinkStore(link_table, Session(username=username.strip()))


def _server_analyzer() -> Optional[LinkAnalyzer]:
    from . import runtime_config, runtime_env_settings

    api_key = runtime_env_settings.openai_api_key if runtime_env_settings else None
    if is_placeholder_secret(api_key):
        return None
    return LinkAnalyzer(runtime_config, api_key)


def _http_error(e: Exception, action: str) -> HTTPException:
    """Map LinkScope errors onto HTTP status codes."""
    if isinstance(e, LinkValidationError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, LinkNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ExternalServiceError):
        return HTTPException(
            status_code=502,
            detail={"message": str(e), "upstream_status": e.status_code},
        )
    if isinstance(e, MalformedResponseError):
        return HTTPException(status_code=502, detail=str(e))
    if isinstance(e, StorageError):
        return HTTPException(status_code=500, detail=f"Storage error: {e}")

    logger.error(f"Failed to {action}: {e}")
    return HTTPException(status_code=500, detail=f"Internal error: {e}")


# Request/Response Models
class CreateLinkRequest(BaseModel):
    """Request model for creating a link."""

    url: str
    title: Optional[str] = None
    summary: Optional[str] = None  # Required when use_ai is false
    tags: Optional[List[str]] = None
    context: Optional[str] = None
    status: LinkStatus = LinkStatus.ACTIVE
    use_ai: bool = True


class ReorderRequest(BaseModel):
    """New positions for the visible list."""

    updates: List[OrderUpdate] = Field(default_factory=list)


# Endpoints
@router.get("/links", response_model=dict)
async def list_links(
    x_linkscope_user: Optional[str] = Header(None),
    link_type: Optional[LinkType] = Query(None, alias="type", description="Only links of this type"),
):
    """List every link visible to the caller, newest first."""
    store = _store_for(x_linkscope_user)
    try:
        if link_type is not None:
            links = await store.list_by_type(link_type)
        else:
            links = await store.list()
    except Exception as e:
        raise _http_error(e, "list links")

    return {"links": links, "total": len(links), "user": store.username}


@router.get("/links/view", response_model=dict)
async def view_links(
    x_linkscope_user: Optional[str] = Header(None),
    tab: Tab = Query(Tab.LINKS, description="links or todos"),
    q: str = Query("", description="Search text"),
    tag: Optional[str] = Query(None, description="Exact tag filter"),
):
    """Visible records for one tab, searched and tag-filtered."""
    store = _store_for(x_linkscope_user)
    try:
        links = await store.list()
    except Exception as e:
        raise _http_error(e, "view links")

    visible = filter_links(links, tab, q, tag)
    return {
        "links": visible,
        "total": len(visible),
        "tab": tab.value,
        "tags": all_tags(links),
        "counts": tab_counts(links),
    }


@router.get("/links/search", response_model=dict)
async def search_links(
    q: str = Query(..., description="Search text"),
    x_linkscope_user: Optional[str] = Header(None),
):
    """Search visible links by url, summary, title or exact tag."""
    store = _store_for(x_linkscope_user)
    try:
        links = await store.search(q)
    except Exception as e:
        raise _http_error(e, "search links")

    return {"links": links, "total": len(links), "query": q}


@router.get("/links/tags", response_model=dict)
async def list_tags(x_linkscope_user: Optional[str] = Header(None)):
    """Sorted unique tags across visible links."""
    store = _store_for(x_linkscope_user)
    try:
        links = await store.list()
    except Exception as e:
        raise _http_error(e, "list tags")

    return {"tags": all_tags(links)}


@router.post("/links/reorder", response_model=dict)
async def reorder_links(
    request: ReorderRequest,
    x_linkscope_user: Optional[str] = Header(None),
):
    """Apply new manual positions; partial failure is reported, not rolled back."""
    store = _store_for(x_linkscope_user)
    try:
        failed = await store.reorder(request.updates)
    except Exception as e:
        raise _http_error(e, "reorder links")

    return {"updated": len(request.updates) - len(failed), "failed": failed}


@router.post("/links", response_model=LinkRecord, status_code=201)
async def create_link(
    request: CreateLinkRequest,
    x_linkscope_user: Optional[str] = Header(None),
):
    """Create a link, through the AI analyzer unless use_ai is false."""
    store = _store_for(x_linkscope_user)
    board = LinkBoard(store, _server_analyzer())

    try:
        await board.load()
        return await board.add_link(
            url=request.url,
            context=request.context,
            title=request.title,
            summary=request.summary,
            tags=request.tags,
            status=request.status,
            use_ai=request.use_ai,
        )
    except Exception as e:
        raise _http_error(e, "create link")


@router.get("/links/{link_id}", response_model=LinkRecord)
async def get_link(link_id: str, x_linkscope_user: Optional[str] = Header(None)):
    """Get one visible link."""
    store = _store_for(x_linkscope_user)
    for record in await store.list():
        if record.id == link_id:
            return record
    raise HTTPException(status_code=404, detail=f"Link not found: {link_id}")


@router.patch("/links/{link_id}", response_model=LinkRecord)
async def update_link(
    link_id: str,
    request: LinkUpdate,
    x_linkscope_user: Optional[str] = Header(None),
):
    """Partially update a link owned by the caller."""
    store = _store_for(x_linkscope_user)
    try:
        return await store.update(link_id, request)
    except Exception as e:
        raise _http_error(e, f"update link {link_id}")


@router.post("/links/{link_id}/toggle", response_model=LinkRecord)
async def toggle_link(link_id: str, x_linkscope_user: Optional[str] = Header(None)):
    """Flip todo/completed; other statuses are returned unchanged."""
    store = _store_for(x_linkscope_user)
    board = LinkBoard(store)
    try:
        await board.load()
        return await board.toggle(link_id)
    except Exception as e:
        raise _http_error(e, f"toggle link {link_id}")


@router.delete("/links/{link_id}", status_code=204)
async def delete_link(link_id: str, x_linkscope_user: Optional[str] = Header(None)):
    """Permanently delete a link owned by the caller."""
    store = _store_for(x_linkscope_user)
    try:
        await store.delete(link_id)
    except Exception as e:
        raise _http_error(e, f"delete link {link_id}")

    return Response(status_code=204)


@router.post("/links/{link_id}/access", status_code=204)
async def track_link_access(link_id: str, x_linkscope_user: Optional[str] = Header(None)):
    """Count an open of the link; never fails the caller's navigation."""
    store = _store_for(x_linkscope_user)
    await store.track_access(link_id)
    return Response(status_code=204)
