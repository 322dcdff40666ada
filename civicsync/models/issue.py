"""
Issue report data models.

An issue record is stored as one Firestore document under the shared issues
collection. Media is a tagged union (`Media`); documents written by older
clients carry one of ``imageUrl``/``photoUrl``/``videoUrl``/``audioUrl``
instead and are folded into the same shape on read.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

NO_MEDIA_PLACEHOLDER = "https://placehold.co/600x400/EEE/31343C?text=No+Media+Provided"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class IssueStatus(str, Enum):
    """Lifecycle states; only an external actor moves a report past ACKNOWLEDGED"""
    ACKNOWLEDGED = "Acknowledged"
    IN_PROGRESS = "In-Progress"
    RESOLVED = "Resolved"


class MediaKind(str, Enum):
    PHOTO = "photo"
    VIDEO = "video"
    AUDIO = "audio"
    NONE = "none"


class Media(BaseModel):
    kind: MediaKind = MediaKind.NONE
    locator: str = NO_MEDIA_PLACEHOLDER

    @property
    def present(self) -> bool:
        return self.kind is not MediaKind.NONE


NO_MEDIA = Media()

# Display precedence for legacy documents: video wins over any image field
_LEGACY_MEDIA_FIELDS = (
    ("videoUrl", MediaKind.VIDEO),
    ("imageUrl", MediaKind.PHOTO),
    ("photoUrl", MediaKind.PHOTO),
    ("audioUrl", MediaKind.AUDIO),
)


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class IssueDraft(BaseModel):
    """What the report form hands to the synchronizer."""
    title: str = ""
    description: str = ""
    location: str = ""
    coordinates: Optional[Coordinates] = None
    media: Media = Field(default_factory=Media)

    def missing_fields(self) -> List[str]:
        return [
            name for name in ("title", "description", "location")
            if not getattr(self, name).strip()
        ]


class IssueRecord(BaseModel):
    id: str
    title: str = ""
    description: str = ""
    location: str = ""
    coordinates: Optional[Coordinates] = None
    media: Media = Field(default_factory=Media)
    status: Optional[IssueStatus] = None
    upvotes: int = Field(0, ge=0)
    created_at: Optional[datetime] = None
    reporter_id: Optional[str] = None

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "IssueRecord":
        status = data.get("status")
        try:
            status = IssueStatus(status) if status is not None else None
        except ValueError:
            status = None

        created = data.get("createdAt")
        if isinstance(created, (int, float)):
            # epoch milliseconds from clients that could not write a timestamp
            created = datetime.fromtimestamp(created / 1000, tz=timezone.utc)
        elif not isinstance(created, datetime):
            created = None

        coords = data.get("coordinates")
        if not (isinstance(coords, dict) and coords.get("lat") is not None and coords.get("lng") is not None):
            coords = None

        return cls(
            id=doc_id,
            title=data.get("title") or "",
            description=data.get("description") or "",
            location=data.get("location") or "",
            coordinates=coords,
            media=_media_from_document(data),
            status=status,
            upvotes=max(0, int(data.get("upvotes") or 0)),
            created_at=created,
            reporter_id=data.get("reporterId"),
        )

    @property
    def sort_created(self) -> float:
        ts = self.created_at or _EPOCH
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts.timestamp()

    @property
    def primary_media(self) -> Media:
        """Media shown on the card; records without media show the placeholder image."""
        if self.media.present:
            return self.media
        return Media(kind=MediaKind.PHOTO, locator=self.media.locator or NO_MEDIA_PLACEHOLDER)

    def to_public(self, viewer_uid: Optional[str] = None) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "location": self.location,
            "coordinates": self.coordinates.model_dump() if self.coordinates else None,
            "media": self.media.model_dump(mode="json"),
            "primaryMedia": self.primary_media.model_dump(mode="json"),
            "status": self.status.value if self.status else None,
            "upvotes": self.upvotes,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "reporterId": self.reporter_id,
            "isOwner": bool(viewer_uid and viewer_uid == self.reporter_id),
        }


def _media_from_document(data: Dict[str, Any]) -> Media:
    raw = data.get("media")
    if isinstance(raw, dict) and raw.get("kind"):
        try:
            kind = MediaKind(raw["kind"])
        except ValueError:
            kind = MediaKind.NONE
        return Media(kind=kind, locator=raw.get("locator") or NO_MEDIA_PLACEHOLDER)

    for field, kind in _LEGACY_MEDIA_FIELDS:
        url = data.get(field)
        if not url:
            continue
        if url == NO_MEDIA_PLACEHOLDER:
            return Media()
        return Media(kind=kind, locator=url)
    return Media()


def sort_issues(records: List[IssueRecord]) -> List[IssueRecord]:
    """Upvotes descending, then newest first; equal keys keep store arrival order."""
    return sorted(records, key=lambda r: (-r.upvotes, -r.sort_created))
