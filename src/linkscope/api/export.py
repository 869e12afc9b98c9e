"""CSV and JSON export endpoints."""

from typing import Optional

from fastapi import APIRouter, Header, Response

from ..core.exporter import export_filename, to_csv, to_json
from .links import _http_error, _store_for

router = APIRouter()


async def _visible_links(username: Optional[str]):
    store = _store_for(username)
    try:
        return await store.list()
    except Exception as e:
        raise _http_error(e, "export links")


@router.get("/export.csv")
async def export_csv(x_linkscope_user: Optional[str] = Header(None)):
    """Every visible link as CSV."""
    links = await _visible_links(x_linkscope_user)
    return Response(
        content=to_csv(links),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename("csv")}"'},
    )


@router.get("/export.json")
async def export_json(x_linkscope_user: Optional[str] = Header(None)):
    """Every visible link as JSON."""
    links = await _visible_links(x_linkscope_user)
    return Response(
        content=to_json(links),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{export_filename("json")}"'},
    )
