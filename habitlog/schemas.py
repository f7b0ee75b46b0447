from __future__ import annotations

from typing import Optional, List, Literal

from pydantic import BaseModel, Field

Category = Literal["health", "work", "personal", "fitness", "learning"]
Frequency = Literal["daily", "weekly", "monthly"]


class HabitCreate(BaseModel):
    name: str
    category: Category = "personal"
    frequency: Frequency = "daily"


class HabitPatch(BaseModel):
    name: Optional[str] = None
    category: Optional[Category] = None
    frequency: Optional[Frequency] = None


class TogglePayload(BaseModel):
    duration_seconds: Optional[int] = Field(default=None, ge=0)


class MoodPayload(BaseModel):
    mood: int
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class ProfilePayload(BaseModel):
    display_name: str
    avatar_url: Optional[str] = None


class ChatRequestCreate(BaseModel):
    to_user_id: str


class ChatRequestAccept(BaseModel):
    from_user_id: str


class MessageCreate(BaseModel):
    content: str


class DeviceTokenPayload(BaseModel):
    token: str
