"""Tab filtering, search, tag filter and manual ordering of link records."""

from enum import Enum
from typing import Dict, List, Optional, Sequence, TypeVar

from ..models.link import LinkRecord, LinkStatus, OrderUpdate

T = TypeVar("T")


class Tab(str, Enum):
    """The two mutually exclusive status views."""

    LINKS = "links"
    TODOS = "todos"


TAB_STATUSES = {
    Tab.LINKS: frozenset({LinkStatus.ACTIVE, LinkStatus.ARCHIVED}),
    Tab.TODOS: frozenset({LinkStatus.TODO, LinkStatus.COMPLETED}),
}


def in_tab(record: LinkRecord, tab: Tab) -> bool:
    return record.status in TAB_STATUSES[Tab(tab)]


def matches_search(record: LinkRecord, search: str) -> bool:
    """Case-insensitive substring match on url, summary, title or any tag."""
    needle = search.lower()
    if needle in record.url.lower() or needle in record.summary.lower():
        return True
    if record.title and needle in record.title.lower():
        return True
    return any(needle in tag.lower() for tag in record.tags)


def filter_links(
    records: Sequence[LinkRecord],
    tab: Tab,
    search: str = "",
    tag: Optional[str] = None,
) -> List[LinkRecord]:
    """Derive the visible, ordered list for one tab.

    The todos tab puts every todo before every completed record and keeps
    input order inside each group. Tag matching is exact and case-sensitive.

    Args:
        records: Full in-memory collection
        tab: Active tab
        search: Settled search text (empty means no search)
        tag: Selected tag, if any

    Returns:
        Visible records in display order
    """
    tab = Tab(tab)
    visible = [r for r in records if in_tab(r, tab)]

    if tab == Tab.TODOS:
        # sorted() is stable, so each group keeps its input order
        visible = sorted(visible, key=lambda r: r.status == LinkStatus.COMPLETED)

    if search:
        visible = [r for r in visible if matches_search(r, search)]

    if tag:
        visible = [r for r in visible if tag in r.tags]

    return visible


def move_item(items: Sequence[T], old_index: int, new_index: int) -> List[T]:
    """Return a copy with one item moved from old_index to new_index."""
    moved = list(items)
    item = moved.pop(old_index)
    moved.insert(new_index, item)
    return moved


def order_updates(records: Sequence[LinkRecord]) -> List[OrderUpdate]:
    """0-based positions for every record in its current visual sequence."""
    return [OrderUpdate(id=r.id, order=index) for index, r in enumerate(records)]


def toggle_status(status: LinkStatus) -> Optional[LinkStatus]:
    """Flip todo/completed; other statuses are not toggleable."""
    if status == LinkStatus.TODO:
        return LinkStatus.COMPLETED
    if status == LinkStatus.COMPLETED:
        return LinkStatus.TODO
    return None


def all_tags(records: Sequence[LinkRecord]) -> List[str]:
    """Sorted unique tags across the collection."""
    return sorted({tag for r in records for tag in r.tags})


def tab_counts(records: Sequence[LinkRecord]) -> Dict[str, int]:
    return {tab.value: sum(1 for r in records if in_tab(r, tab)) for tab in Tab}


def status_counts(records: Sequence[LinkRecord]) -> Dict[str, int]:
    return {
        status.value: sum(1 for r in records if r.status == status)
        for status in LinkStatus
    }
