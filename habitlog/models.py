from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from habitlog.dates import parse_day

CATEGORIES = ("health", "work", "personal", "fitness", "learning")
FREQUENCIES = ("daily", "weekly", "monthly")
MOOD_TAGS = ("stressed", "energetic", "tired", "happy", "anxious", "calm", "motivated", "sad")
REQUEST_STATUSES = ("pending", "accepted", "rejected")
ACTIVE_REQUEST_STATUSES = ("pending", "accepted")

MOOD_MIN = 1
MOOD_MAX = 10


def _decode_tags(raw) -> List[str]:
    if not raw:
        return []
    if isinstance(raw, (list, tuple)):
        return [str(tag) for tag in raw]
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError):
        return []
    if not isinstance(payload, list):
        return []
    return [str(tag) for tag in payload]


@dataclass
class Identity:
    user_id: str
    email: str = ""


@dataclass
class Habit:
    id: str
    name: str
    category: str
    frequency: str
    created_at: str

    @classmethod
    def from_row(cls, row: dict) -> "Habit":
        return cls(
            id=str(row["id"]),
            name=row["name"],
            category=row["category"],
            frequency=row["frequency"],
            created_at=str(row.get("created_at") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class HabitCompletion:
    habit_id: str
    date: date
    completed: bool
    duration_seconds: Optional[int] = None

    @classmethod
    def from_row(cls, row: dict) -> "HabitCompletion":
        duration = row.get("duration_seconds")
        return cls(
            habit_id=str(row["habit_id"]),
            date=parse_day(row["date"]),
            completed=bool(int(row.get("completed") or 0)),
            duration_seconds=int(duration) if duration is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "habit_id": self.habit_id,
            "date": self.date.isoformat(),
            "completed": self.completed,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class MoodEntry:
    date: date
    mood: int
    notes: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    created_at: str = ""

    @classmethod
    def from_row(cls, row: dict) -> "MoodEntry":
        return cls(
            date=parse_day(row["date"]),
            mood=int(row["mood"]),
            notes=row.get("notes"),
            tags=_decode_tags(row.get("tags_json")),
            created_at=str(row.get("created_at") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "mood": self.mood,
            "notes": self.notes,
            "tags": list(self.tags),
            "created_at": self.created_at,
        }


@dataclass
class DailyProgress:
    date: date
    completed: int
    total: int
    rate: float

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date.isoformat(), "completed": self.completed, "total": self.total, "rate": self.rate}


@dataclass
class Profile:
    user_id: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict | None) -> Optional["Profile"]:
        if not row:
            return None
        return cls(user_id=str(row["user_id"]), display_name=row.get("display_name"), avatar_url=row.get("avatar_url"))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Message:
    id: str
    conversation_id: str
    sender_id: str
    content: str
    created_at: str
    seq: int = 0

    @classmethod
    def from_row(cls, row: dict | None) -> Optional["Message"]:
        if not row:
            return None
        return cls(
            id=str(row["id"]),
            conversation_id=str(row["conversation_id"]),
            sender_id=str(row["sender_id"]),
            content=row["content"],
            created_at=str(row["created_at"]),
            seq=int(row.get("seq") or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ChatRequest:
    id: str
    from_user_id: str
    to_user_id: str
    status: str
    created_at: str
    from_profile: Optional[Profile] = None
    to_profile: Optional[Profile] = None

    @classmethod
    def from_row(cls, row: dict) -> "ChatRequest":
        return cls(
            id=str(row["id"]),
            from_user_id=str(row["from_user_id"]),
            to_user_id=str(row["to_user_id"]),
            status=row["status"],
            created_at=str(row["created_at"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Conversation:
    id: str
    user1_id: str
    user2_id: str
    created_at: str
    updated_at: str
    other_user: Optional[Profile] = None
    last_message: Optional[Message] = None

    @classmethod
    def from_row(cls, row: dict) -> "Conversation":
        return cls(
            id=str(row["id"]),
            user1_id=str(row["user1_id"]),
            user2_id=str(row["user2_id"]),
            created_at=str(row["created_at"]),
            updated_at=str(row["updated_at"]),
        )

    def other_user_id(self, user_id: str) -> str:
        return self.user2_id if self.user1_id == user_id else self.user1_id

    def has_participant(self, user_id: str) -> bool:
        return user_id in (self.user1_id, self.user2_id)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
