"""CSV and JSON export of the link collection."""

import csv
import io
import json
from datetime import datetime, timezone
from typing import Optional, Sequence

from ..models.link import LinkRecord

CSV_HEADER = ["URL", "Title", "Summary", "Tags", "Status", "Created At", "Context"]


def to_csv(records: Sequence[LinkRecord]) -> str:
    """Render records as CSV with every field quoted.

    Created At is the calendar date in the local timezone.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for record in records:
        writer.writerow(
            [
                record.url,
                record.title or "",
                record.summary,
                ", ".join(record.tags),
                record.status.value,
                record.created_at.astimezone().date().isoformat(),
                record.context or "",
            ]
        )
    return buffer.getvalue()


def to_json(records: Sequence[LinkRecord]) -> str:
    """Serialize the full records, indented."""
    return json.dumps(
        [record.model_dump(mode="json") for record in records],
        indent=2,
        ensure_ascii=False,
    )


def export_filename(extension: str, now: Optional[datetime] = None) -> str:
    """linkscope-links-<date>.<extension>"""
    now = now or datetime.now(timezone.utc)
    return f"linkscope-links-{now.date().isoformat()}.{extension}"
