"""Domain models for tracked activities."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from ulid import ULID

from .timing import live_duration


class ActivityKind(str, Enum):
    WORK = "work"
    INTERMISSION = "intermission"


class ActivityStatus(str, Enum):
    ACTIVE = "active"
    HELD = "held"
    ENDED = "ended"


def new_activity_id() -> str:
    """Return a new lexicographically sortable identifier."""
    return str(ULID())


@dataclass(slots=True)
class Activity:
    """A timed unit of work, or a pause (intermission) within one."""

    id: str
    kind: ActivityKind
    category: str
    description: str
    begin: datetime
    status: ActivityStatus = ActivityStatus.ACTIVE
    tags: Tuple[str, ...] = ()
    end: Optional[datetime] = None
    duration: Optional[int] = None
    parent: Optional[str] = None

    @property
    def is_work(self) -> bool:
        return self.kind is ActivityKind.WORK

    @property
    def is_intermission(self) -> bool:
        return self.kind is ActivityKind.INTERMISSION

    @property
    def is_active(self) -> bool:
        return self.status is ActivityStatus.ACTIVE

    @property
    def is_held(self) -> bool:
        return self.status is ActivityStatus.HELD

    @property
    def is_ended(self) -> bool:
        return self.status is ActivityStatus.ENDED

    def current_duration(self, now: datetime) -> int:
        """Stored duration once ended, live duration otherwise."""
        if self.duration is not None:
            return self.duration
        return live_duration(self.begin, now)

    def copy(self) -> "Activity":
        return dataclasses.replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "category": self.category,
            "description": self.description,
            "tags": list(self.tags),
            "begin": self.begin.isoformat(),
            "end": self.end.isoformat() if self.end else None,
            "duration": self.duration,
            "status": self.status.value,
            "parent": self.parent,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Activity":
        return cls(
            id=data["id"],
            kind=ActivityKind(data["kind"]),
            category=data["category"],
            description=data["description"],
            tags=tuple(data.get("tags") or ()),
            begin=datetime.fromisoformat(data["begin"]),
            end=datetime.fromisoformat(data["end"]) if data.get("end") else None,
            duration=data.get("duration"),
            status=ActivityStatus(data["status"]),
            parent=data.get("parent"),
        )


class ActivityUpdate(BaseModel):
    """A partial change to an activity; only explicitly set fields apply."""

    category: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[Tuple[str, ...]] = None
    begin: Optional[datetime] = None
    end: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, ge=0)
    status: Optional[ActivityStatus] = None

    model_config = ConfigDict(extra="forbid")

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)

    def apply(self, activity: Activity) -> Activity:
        return dataclasses.replace(activity, **self.changes())
