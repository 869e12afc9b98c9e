"""Client-side link collection: a cache over the link store."""

import logging
from typing import List, Optional, Union

from ..models.link import LinkRecord, LinkStatus, LinkUpdate
from ..utils.url_utils import normalize_url
from .classifier import classify
from .errors import LinkNotFoundError, LinkValidationError
from .link_store import LinkStore
from .views import Tab, filter_links, move_item, order_updates, toggle_status

logger = logging.getLogger(__name__)


class LinkBoard:
    """Holds the in-memory collection and dispatches user actions.

    The collection is replaced wholesale by load() and patched with the
    record returned by each mutating call. Drag reordering is optimistic:
    the visible list changes before the reorder batch is written.
    """

    def __init__(self, store: LinkStore, analyzer=None):
        """Initialize link board.

        Args:
            store: LinkStore for the current user
            analyzer: LinkAnalyzer or ProxyLinkAnalyzer; None disables AI mode
        """
        self.store = store
        self.analyzer = analyzer
        self.links: List[LinkRecord] = []
        self.visible: List[LinkRecord] = []

    async def load(self) -> List[LinkRecord]:
        self.links = await self.store.list()
        return self.links

    def view(self, tab: Tab = Tab.LINKS, search: str = "", tag: Optional[str] = None) -> List[LinkRecord]:
        self.visible = filter_links(self.links, tab, search, tag)
        return self.visible

    def find(self, link_id: str) -> LinkRecord:
        for record in self.links:
            if record.id == link_id:
                return record
        raise LinkNotFoundError(f"Link not found: {link_id}")

    async def add_link(
        self,
        url: str,
        context: Optional[str] = None,
        title: Optional[str] = None,
        summary: Optional[str] = None,
        tags: Optional[List[str]] = None,
        status: LinkStatus = LinkStatus.ACTIVE,
        use_ai: bool = True,
    ) -> LinkRecord:
        """Create a link through the analyzer or from manual input.

        In AI mode the analyzer's summary and tags win; the caller's values
        are only used when the analyzer returns none.

        Raises:
            LinkValidationError: Empty url, missing summary in manual mode,
                or AI mode without an analyzer
            ExternalServiceError: If the analyzer or store fails
            MalformedResponseError: If the analyzer reply is unreadable
        """
        if not url or not url.strip():
            raise LinkValidationError("Please enter a URL")
        if not use_ai and not (summary or "").strip():
            raise LinkValidationError("Please enter a summary")

        if use_ai:
            if self.analyzer is None:
                raise LinkValidationError("AI analysis is not configured")

            normalized = normalize_url(url)
            link_type, platform = classify(normalized)
            result = await self.analyzer.analyze(normalized, context, link_type, platform)

            record = await self.store.create(
                url=normalized,
                summary=result.summary or summary or "",
                tags=result.tags or tags or [],
                context=context,
                title=title,
                status=status,
                order=len(self.links),
                manual=False,
            )
        else:
            record = await self.store.create(
                url=url,
                summary=summary,
                tags=tags,
                context=context,
                title=title,
                status=status,
                manual=True,
            )

        self.links.insert(0, record)
        return record

    async def edit_link(self, link_id: str, changes: Union[LinkUpdate, dict]) -> LinkRecord:
        updated = await self.store.update(link_id, changes)
        self._replace(updated)
        return updated

    async def delete_link(self, link_id: str) -> None:
        await self.store.delete(link_id)
        self.links = [r for r in self.links if r.id != link_id]
        self.visible = [r for r in self.visible if r.id != link_id]

    async def change_status(self, link_id: str, status: LinkStatus) -> LinkRecord:
        return await self.edit_link(link_id, LinkUpdate(status=status))

    async def toggle(self, link_id: str) -> LinkRecord:
        """Flip a todo/completed record; other statuses are left as they are."""
        record = self.find(link_id)
        new_status = toggle_status(record.status)
        if new_status is None:
            return record
        return await self.change_status(link_id, new_status)

    async def mark_todo(self, link_id: str) -> LinkRecord:
        return await self.change_status(link_id, LinkStatus.TODO)

    async def remove_from_todos(self, link_id: str) -> LinkRecord:
        return await self.change_status(link_id, LinkStatus.ACTIVE)

    async def drag(self, active_id: str, over_id: str) -> List[str]:
        """Move active_id to over_id's slot in the current visible list.

        Returns:
            Ids whose new position failed to persist
        """
        if active_id == over_id:
            return []

        ids = [r.id for r in self.visible]
        if active_id not in ids or over_id not in ids:
            return []

        moved = move_item(self.visible, ids.index(active_id), ids.index(over_id))
        updates = order_updates(moved)

        reordered = {
            r.id: r.model_copy(update={"order": u.order}) for r, u in zip(moved, updates)
        }
        self.visible = [reordered[r.id] for r in moved]
        self.links = [reordered.get(r.id, r) for r in self.links]

        failed = await self.store.reorder(updates)
        if failed:
            logger.warning(f"Reorder left {len(failed)} link(s) with stale order")
        return failed

    async def open_link(self, link_id: str) -> str:
        """Record an open and return the URL to navigate to."""
        record = self.find(link_id)
        await self.store.track_access(link_id)
        return record.url

    def _replace(self, updated: LinkRecord) -> None:
        self.links = [updated if r.id == updated.id else r for r in self.links]
        self.visible = [updated if r.id == updated.id else r for r in self.visible]
