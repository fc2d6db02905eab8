"""Search API: lines by prefix, stops by name."""

from fastapi import APIRouter

from sl_tracker.schemas.search import SearchResult

router = APIRouter(prefix="/api/search", tags=["search"])

# Will be set by main.py
search_index = None
catalog = None


@router.get("", response_model=list[SearchResult])
async def search(q: str = "", route: str | None = None):
    """Search lines and stops; with ``route`` stop hits come from that line only."""
    if search_index is None:
        return []
    active_route = None
    if route and catalog is not None:
        active_route = await catalog.get_line_route(route)
    return await search_index.search(q, active_route)
