# civicsync/models/profile.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

POINTS_PER_REPORT = 10

# report-count threshold -> badge; order is award order
BADGE_THRESHOLDS = {
    1: "First Report",
    5: "Neighborhood Hero",
}

GUEST_DISPLAY_NAME = "Guest User"


class Identity(BaseModel):
    """Authenticated (or anonymous) principal. Tokens never leave the server."""
    uid: str
    email: Optional[str] = None
    is_anonymous: bool = False
    id_token: Optional[str] = Field(None, repr=False)
    refresh_token: Optional[str] = Field(None, repr=False)

    @property
    def display_name(self) -> str:
        return self.email or GUEST_DISPLAY_NAME


class ProfileAggregate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    uid: str = ""
    points: int = 0
    reported_issues: int = Field(0, alias="reportedIssues")
    badges: List[str] = Field(default_factory=list)
    display_name: str = Field(GUEST_DISPLAY_NAME, alias="name")

    @classmethod
    def zero(cls, identity: Optional[Identity] = None) -> "ProfileAggregate":
        if identity is None:
            return cls()
        return cls(uid=identity.uid, display_name=identity.display_name)

    @classmethod
    def from_document(cls, uid: str, data: Dict[str, Any]) -> "ProfileAggregate":
        return cls(
            uid=uid,
            points=int(data.get("points") or 0),
            reported_issues=int(data.get("reportedIssues") or 0),
            badges=list(data.get("badges") or []),
            display_name=data.get("name") or GUEST_DISPLAY_NAME,
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "points": self.points,
            "badges": list(self.badges),
            "reportedIssues": self.reported_issues,
            "name": self.display_name,
        }


def badges_for(report_count: int) -> List[str]:
    return [badge for threshold, badge in sorted(BADGE_THRESHOLDS.items()) if report_count >= threshold]


def merge_badges(existing: List[str], report_count: int) -> List[str]:
    """Badges only ever grow: keep what is held, append newly earned ones."""
    merged = list(existing)
    for badge in badges_for(report_count):
        if badge not in merged:
            merged.append(badge)
    return merged
