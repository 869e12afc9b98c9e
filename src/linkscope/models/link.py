"""Link record data model."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LinkType(str, Enum):
    """Content kind derived from the URL."""

    VIDEO = "video"
    LINK = "link"


class Platform(str, Enum):
    """Hosting platform derived from the URL."""

    YOUTUBE = "youtube"
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"
    OTHER = "other"


class LinkStatus(str, Enum):
    """Lifecycle status; decides which tab shows the record."""

    ACTIVE = "active"
    TODO = "todo"
    COMPLETED = "completed"
    ARCHIVED = "archived"


SHARED_STATUSES = frozenset({LinkStatus.ACTIVE, LinkStatus.ARCHIVED})
PRIVATE_STATUSES = frozenset({LinkStatus.TODO, LinkStatus.COMPLETED})


class LinkRecord(BaseModel):
    """One bookmarked link with its derived and user metadata."""

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique identifier (UUID), assigned on creation",
    )
    url: str = Field(..., min_length=1, description="The bookmarked URL")
    title: Optional[str] = Field(None, description="User supplied title")
    summary: str = Field(..., description="One-sentence summary")
    tags: List[str] = Field(default_factory=list, description="Category tags, order kept")
    context: Optional[str] = Field(None, description="Free-text hint given to the analyzer")
    type: LinkType = Field(default=LinkType.LINK, description="Derived from url")
    platform: Platform = Field(default=Platform.OTHER, description="Derived from url")
    status: LinkStatus = Field(default=LinkStatus.ACTIVE)
    user_id: str = Field(..., min_length=1, description="Username of the creator")
    is_manually_added: bool = Field(default=False)
    access_count: int = Field(default=0, ge=0)
    last_accessed: Optional[datetime] = None
    order: int = Field(default=0, description="Manual position within its status group")

    thumbnail: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    priority: Optional[str] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "550e8400-e29b-41d4-a716-446655440000",
                "url": "https://youtu.be/dQw4w9WgXcQ",
                "summary": "A music video that became an internet meme.",
                "tags": ["music", "meme", "80s"],
                "type": "video",
                "platform": "youtube",
                "status": "active",
                "user_id": "alice",
                "order": 0,
                "created_at": "2026-02-03T10:30:00Z",
            }
        },
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Reject whitespace-only URLs."""
        if not v.strip():
            raise ValueError("URL cannot be empty")
        return v.strip()

    @property
    def is_private(self) -> bool:
        return self.status in PRIVATE_STATUSES


class LinkUpdate(BaseModel):
    """Partial update; fields left unset are not touched.

    url, id, user_id and created_at are immutable and therefore rejected.
    """

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    summary: Optional[str] = None
    tags: Optional[List[str]] = None
    context: Optional[str] = None
    status: Optional[LinkStatus] = None
    order: Optional[int] = None
    thumbnail: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    priority: Optional[str] = None

    def changes(self) -> dict:
        """Return only the fields the caller explicitly set.

        An explicit None clears optional fields but is ignored for the
        non-nullable ones.
        """
        data = self.model_dump(exclude_unset=True)
        for key in _NON_NULLABLE_UPDATES:
            if key in data and data[key] is None:
                del data[key]
        return data


_NON_NULLABLE_UPDATES = ("summary", "tags", "status", "order")


class OrderUpdate(BaseModel):
    """New manual position for one record."""

    id: str
    order: int


class AnalysisResult(BaseModel):
    """Summary and tags produced by the AI analyzer."""

    summary: str = ""
    tags: List[str] = Field(default_factory=list)
