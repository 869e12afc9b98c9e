"""Row-level link table backed by one YAML file per row."""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..models.link import LinkRecord, LinkStatus, LinkType
from ..utils.yaml_handler import YAMLError, load_link_from_file, save_link_to_file
from .errors import StorageError

logger = logging.getLogger(__name__)


class LinkTable:
    """Keyed table of link rows with an in-memory index.

    Rows can be filtered by equality on user_id, status and type, by tag
    containment, and by a case-insensitive pattern over url/summary/title.
    Results are ordered by created_at, newest first.

    The row files are the source of truth. Every read and write first syncs
    the index with files added, changed or removed by another process
    sharing the same storage directory (the server and the CLI).
    """

    def __init__(self, root: Path):
        """Initialize link table.

        Args:
            root: Storage directory; rows live under root/links
        """
        self.root = Path(root)
        self.rows_path = self.root / "links"
        self.index: Dict[str, LinkRecord] = {}
        # row file -> (mtime_ns, id loaded from it, None when corrupt)
        self._files: Dict[Path, Tuple[int, Optional[str]]] = {}
        self._errors: Dict[Path, str] = {}
        self._write_lock = asyncio.Lock()

    @property
    def load_errors(self) -> List[str]:
        return list(self._errors.values())

    async def initialize(self) -> None:
        """Create the directory layout and load every row into memory.

        Raises:
            StorageError: If the storage directory cannot be created
        """
        try:
            self.rows_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create link table at {self.rows_path}: {e}") from e

        self.index = {}
        self._files = {}
        self._errors = {}

        await asyncio.to_thread(self.sync)

        logger.info(
            f"Loaded {len(self.index)} links from {self.rows_path} "
            f"({len(self._errors)} errors)"
        )

    def sync(self) -> None:
        """Reload row files whose mtime changed and drop rows whose file is gone."""
        seen = set()
        for yaml_file in self.rows_path.glob("*.yaml"):
            try:
                mtime = yaml_file.stat().st_mtime_ns
            except FileNotFoundError:
                continue
            seen.add(yaml_file)

            known = self._files.get(yaml_file)
            if known is not None and known[0] == mtime:
                continue

            if known is not None and known[1] is not None:
                self.index.pop(known[1], None)

            try:
                record = load_link_from_file(yaml_file)
            except YAMLError as e:
                error_msg = f"Corrupted row {yaml_file.name}: {e}"
                logger.warning(error_msg)
                self._errors[yaml_file] = error_msg
                self._files[yaml_file] = (mtime, None)
                continue

            self._errors.pop(yaml_file, None)
            self._files[yaml_file] = (mtime, record.id)
            self.index[record.id] = record

        for gone in set(self._files) - seen:
            _, row_id = self._files.pop(gone)
            self._errors.pop(gone, None)
            if row_id is not None:
                self.index.pop(row_id, None)

    def select(
        self,
        user_id: Optional[str] = None,
        statuses: Optional[Iterable[LinkStatus]] = None,
        link_type: Optional[LinkType] = None,
        tag: Optional[str] = None,
        pattern: Optional[str] = None,
    ) -> List[LinkRecord]:
        """Query rows with optional filters.

        Args:
            user_id: Keep rows owned by this user
            statuses: Keep rows whose status is one of these
            link_type: Keep rows of this type
            tag: Keep rows whose tags contain this exact value
            pattern: Case-insensitive substring over url, summary and title

        Returns:
            Matching rows, newest first
        """
        self.sync()
        rows: List[LinkRecord] = list(self.index.values())

        if user_id is not None:
            rows = [r for r in rows if r.user_id == user_id]

        if statuses is not None:
            allowed = set(statuses)
            rows = [r for r in rows if r.status in allowed]

        if link_type is not None:
            rows = [r for r in rows if r.type == link_type]

        if tag is not None:
            rows = [r for r in rows if tag in r.tags]

        if pattern:
            needle = pattern.lower()
            rows = [
                r
                for r in rows
                if needle in r.url.lower()
                or needle in r.summary.lower()
                or (r.title is not None and needle in r.title.lower())
            ]

        rows.sort(key=lambda r: r.created_at, reverse=True)
        return rows

    def get(self, row_id: str, user_id: Optional[str] = None) -> Optional[LinkRecord]:
        """Return the row with this id, optionally requiring an owner."""
        self.sync()
        return self._lookup(row_id, user_id)

    async def insert(self, record: LinkRecord) -> LinkRecord:
        """Insert a new row.

        Raises:
            StorageError: If the id already exists or the write fails
        """
        async with self._write_lock:
            self.sync()
            if record.id in self.index:
                raise StorageError(f"Duplicate link id: {record.id}")
            await self._write(record)
        return record

    async def update(
        self, row_id: str, user_id: str, changes: Dict[str, Any]
    ) -> Optional[LinkRecord]:
        """Apply changes to the row matching (id, user_id).

        Returns:
            Updated row, or None if no row matches

        Raises:
            StorageError: If the write fails
        """
        async with self._write_lock:
            self.sync()
            current = self._lookup(row_id, user_id)
            if current is None:
                return None

            try:
                updated = LinkRecord.model_validate({**current.model_dump(), **changes})
            except ValueError as e:
                raise StorageError(f"Invalid update for {row_id}: {e}") from e

            await self._write(updated)
        return updated

    async def increment_access(self, row_id: str) -> Optional[LinkRecord]:
        """Add one to access_count and stamp last_accessed, whoever owns the row.

        The count is read under the write lock, so concurrent opens are
        all counted.

        Returns:
            Updated row, or None if no row has this id
        """
        async with self._write_lock:
            self.sync()
            current = self._lookup(row_id)
            if current is None:
                return None

            now = datetime.now(timezone.utc)
            updated = current.model_copy(
                update={
                    "access_count": current.access_count + 1,
                    "last_accessed": now,
                    "updated_at": now,
                }
            )
            await self._write(updated)
        return updated

    async def delete(self, row_id: str, user_id: str) -> bool:
        """Delete the row matching (id, user_id).

        Returns:
            True if a row was removed, False if none matched

        Raises:
            StorageError: If the file cannot be removed
        """
        async with self._write_lock:
            self.sync()
            if self._lookup(row_id, user_id) is None:
                return False

            file_path = self._row_path(row_id)
            try:
                await asyncio.to_thread(file_path.unlink, missing_ok=True)
            except OSError as e:
                raise StorageError(f"Failed to delete link {row_id}: {e}") from e

            self._files.pop(file_path, None)
            self.index.pop(row_id, None)
        return True

    def stats(self) -> Dict[str, int]:
        """Row and error counts for health reporting."""
        self.sync()
        return {"rows": len(self.index), "errors": len(self._errors)}

    def _lookup(self, row_id: str, user_id: Optional[str] = None) -> Optional[LinkRecord]:
        row = self.index.get(row_id)
        if row is None:
            return None
        if user_id is not None and row.user_id != user_id:
            return None
        return row

    def _row_path(self, row_id: str) -> Path:
        return self.rows_path / f"{row_id}.yaml"

    async def _write(self, record: LinkRecord) -> None:
        file_path = self._row_path(record.id)
        try:
            await asyncio.to_thread(save_link_to_file, record, file_path)
            mtime = file_path.stat().st_mtime_ns
        except YAMLError as e:
            raise StorageError(f"Failed to save link {record.id}: {e}") from e
        except OSError as e:
            raise StorageError(f"Failed to stat link {record.id}: {e}") from e

        self._files[file_path] = (mtime, record.id)
        self.index[record.id] = record
