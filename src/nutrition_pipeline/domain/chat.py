"""Models for the nutrition chat assistant."""

from typing import Literal

from pydantic import BaseModel, Field

MAX_HISTORY_TURNS = 8


class ChatTurn(BaseModel):
    """Previous message in the conversation."""

    role: Literal["user", "assistant"]
    content: str


class ChatContext(BaseModel):
    """Personalization data for the assistant."""

    name: str | None = None
    age: int | None = Field(default=None, ge=0)
    weight_kg: float | None = Field(default=None, ge=0)
    height_cm: float | None = Field(default=None, ge=0)
    main_goal: str | None = None
    dietary_preferences: list[str] = Field(default_factory=list)
    allergies: list[str] = Field(default_factory=list)
    target_calories_daily: float | None = Field(default=None, ge=0)
    target_protein_daily: float | None = Field(default=None, ge=0)
    consumed_calories_today: float = Field(default=0.0, ge=0)
    consumed_protein_today: float = Field(default=0.0, ge=0)
    meals_logged_today: int = Field(default=0, ge=0)
    streak_days: int = Field(default=0, ge=0)


class ChatReply(BaseModel):
    """Assistant reply; degraded replies come from the canned fallback."""

    text: str
    degraded: bool = False
    locale: str = "en"
