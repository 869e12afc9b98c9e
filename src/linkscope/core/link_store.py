"""Link store gateway: owner-scoped CRUD over the link table."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Union

from ..models.config import Session
from ..models.link import (
    PRIVATE_STATUSES,
    SHARED_STATUSES,
    LinkRecord,
    LinkStatus,
    LinkType,
    LinkUpdate,
    OrderUpdate,
)
from ..utils.url_utils import normalize_url
from .classifier import classify
from .errors import LinkNotFoundError, LinkValidationError
from .link_table import LinkTable

logger = logging.getLogger(__name__)


class LinkStore:
    """Maps LinkRecords to table rows for one user.

    Shared records (active, archived) are readable by everyone; todo and
    completed records are visible to their owner only. Every write is scoped
    to (id, username), so a shared record still belongs to its creator.
    """

    def __init__(self, table: LinkTable, session: Session):
        """Initialize link store.

        Args:
            table: Link table collaborator
            session: Caller identity
        """
        self.table = table
        self.session = session

    @property
    def username(self) -> str:
        return self.session.username

    async def list(self) -> List[LinkRecord]:
        """Return every record visible to the current user, newest first."""
        return self._visible()

    async def search(self, query: str) -> List[LinkRecord]:
        """Visible records matching url/summary/title or an exact tag."""
        query = (query or "").strip()
        if not query:
            return self._visible()

        matched = {r.id: r for r in self._visible(pattern=query)}
        for record in self._visible(tag=query):
            matched.setdefault(record.id, record)

        return sorted(matched.values(), key=lambda r: r.created_at, reverse=True)

    async def list_by_type(self, link_type: LinkType) -> List[LinkRecord]:
        """Visible records of one type."""
        return self._visible(link_type=link_type)

    async def create(
        self,
        url: str,
        summary: str,
        tags: Optional[List[str]] = None,
        context: Optional[str] = None,
        title: Optional[str] = None,
        status: LinkStatus = LinkStatus.ACTIVE,
        order: Optional[int] = None,
        manual: bool = False,
    ) -> LinkRecord:
        """Create a new record owned by the current user.

        Args:
            url: URL to bookmark; https:// is prefixed when no scheme is given
            summary: One-sentence summary
            tags: Category tags, kept as given
            context: Free-text context
            title: Optional title
            status: Initial status
            order: Manual position; defaults to the end of the visible list
            manual: True when created without the analyzer

        Returns:
            Created LinkRecord

        Raises:
            LinkValidationError: If url is empty, or summary is empty in manual mode
            StorageError: If the table write fails
        """
        normalized_url = normalize_url(url)

        if manual and not (summary or "").strip():
            raise LinkValidationError("Summary is required for manually added links")

        link_type, platform = classify(normalized_url)
        now = datetime.now(timezone.utc)

        if order is None:
            order = len(self._visible())

        record = LinkRecord(
            url=normalized_url,
            title=title or None,
            summary=summary or "",
            tags=list(tags or []),
            context=context or None,
            type=link_type,
            platform=platform,
            status=status,
            user_id=self.username,
            is_manually_added=manual,
            access_count=0,
            order=order,
            created_at=now,
            updated_at=now,
        )

        await self.table.insert(record)

        logger.info(f"Created link {record.id} for {self.username}: {record.url}")

        return record

    async def update(self, link_id: str, changes: Union[LinkUpdate, dict]) -> LinkRecord:
        """Apply a partial update to a record owned by the current user.

        Raises:
            LinkNotFoundError: If no record matches (id, username)
            StorageError: If the table write fails
        """
        if not isinstance(changes, LinkUpdate):
            changes = LinkUpdate(**changes)

        update_data = changes.changes()
        update_data["updated_at"] = datetime.now(timezone.utc)

        updated = await self.table.update(link_id, self.username, update_data)
        if updated is None:
            raise LinkNotFoundError(f"Link not found: {link_id}")

        logger.info(f"Updated link {link_id}")

        return updated

    async def delete(self, link_id: str) -> None:
        """Permanently delete a record owned by the current user.

        Raises:
            LinkNotFoundError: If no record matches (id, username)
        """
        removed = await self.table.delete(link_id, self.username)
        if not removed:
            raise LinkNotFoundError(f"Link not found: {link_id}")

        logger.warning(f"Deleted link {link_id} permanently")

    async def track_access(self, link_id: str) -> None:
        """Count an open of the record's URL.

        Any visible record can be counted, including shared records owned
        by someone else. Failures are logged and never raised, so the
        caller's navigation always proceeds.
        """
        try:
            current = self.table.get(link_id)
            if current is None or (current.is_private and current.user_id != self.username):
                raise LinkNotFoundError(f"Link not found: {link_id}")

            if await self.table.increment_access(link_id) is None:
                raise LinkNotFoundError(f"Link not found: {link_id}")
            logger.debug(f"Tracked access for link {link_id}")
        except Exception as e:
            logger.warning(f"Failed to track access for {link_id}: {e}")

    async def reorder(self, updates: Iterable[Union[OrderUpdate, dict]]) -> List[str]:
        """Write new manual positions as independent concurrent updates.

        There is no rollback: when some updates fail the others stay applied.

        Returns:
            Ids whose update failed
        """
        items = [u if isinstance(u, OrderUpdate) else OrderUpdate(**u) for u in updates]

        results = await asyncio.gather(
            *(self.update(item.id, LinkUpdate(order=item.order)) for item in items),
            return_exceptions=True,
        )

        failed: List[str] = []
        for item, result in zip(items, results):
            if isinstance(result, Exception):
                logger.error(f"Failed to reorder link {item.id}: {result}")
                failed.append(item.id)

        return failed

    def _visible(self, **filters) -> List[LinkRecord]:
        shared = self.table.select(statuses=SHARED_STATUSES, **filters)
        private = self.table.select(
            user_id=self.username, statuses=PRIVATE_STATUSES, **filters
        )
        return sorted(shared + private, key=lambda r: r.created_at, reverse=True)
