"""Personalized nutrition chat with canned fallbacks."""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from nutrition_pipeline.domain.chat import (
    MAX_HISTORY_TURNS,
    ChatContext,
    ChatReply,
    ChatTurn,
)
from nutrition_pipeline.errors import InvalidRequestError
from nutrition_pipeline.services.completion import (
    CompletionClient,
    classify_model_error,
    clip_prompt,
)

_logger = logging.getLogger(__name__)

_CALORIE_KEYWORDS = ("calories", "קלוריות", "כמה")
_RECOMMENDATION_KEYWORDS = ("recommendation", "המלצה", "מה לאכול")

_FALLBACKS = {
    "en": {
        "calories": (
            "To give you accurate calorie information, I need more details about "
            "the food or quantity. You can photograph the product or enter "
            "additional details."
        ),
        "recommendation": (
            "I'd be happy to recommend meals for you! Based on the information I have, "
            "I suggest focusing on meals with quality protein, fresh vegetables, and "
            "complex carbohydrates. You can tell me about your goals or dietary "
            "restrictions and I'll give more specific recommendations."
        ),
        "general": (
            "I'm here to help with nutrition questions! You can ask me about "
            "nutritional values, meal recommendations, or any other "
            "nutrition-related questions. "
            "Important to remember this is general advice and not a substitute for "
            "licensed medical consultation."
        ),
    },
    "he": {
        "calories": (
            "כדי לתת לך מידע מדויק על קלוריות, אני צריך פרטים נוספים על המזון "
            "או הכמות. אתה יכול לצלם את המוצר או להכניס פרטים נוספים."
        ),
        "recommendation": (
            "אני אשמח להמליץ לך על ארוחות! בהתבסס על המידע שיש לי, אני מציע להתמקד "
            "בארוחות עם חלבון איכותי, ירקות טריים ופחמימות מורכבות. אתה יכול לספר לי "
            "על המטרות שלך או הגבלות תזונתיות ואתן המלצות ספציפיות יותר."
        ),
        "general": (
            "אני כאן לעזור לך עם שאלות תזונה! אתה יכול לשאול אותי על ערכים תזונתיים, "
            "המלצות לארוחות, או כל שאלה אחרת הקשורה לתזונה. חשוב לזכור שזה ייעוץ כללי "
            "ולא תחליף לייעוץ רפואי מוסמך."
        ),
    },
}

_BASE_PROMPTS = {
    "en": (
        "You are a personal AI nutrition coach. Every response must be personalized "
        "and actionable.\n"
        "- NEVER suggest foods containing the user's allergens.\n"
        "- Align every recommendation with the user's calorie target and goal.\n"
        "- Refer to a doctor only for medical issues.\n"
        "- Go straight to the answer, at most 250 words.\n"
        "- Reply in English."
    ),
    "he": (
        "אתה יועץ תזונה AI אישי. כל תשובה חייבת להיות מותאמת אישית ומעשית.\n"
        "- לעולם אל תציע מזונות עם האלרגנים של המשתמש.\n"
        "- התאם כל המלצה ליעד הקלורי ולמטרה של המשתמש.\n"
        "- הפנה לרופא לבעיות רפואיות בלבד.\n"
        "- תן תשובות ישירות, עד 250 מילה.\n"
        "- ענה בעברית."
    ),
}


def _local_now() -> datetime:
    return datetime.now().astimezone()


@dataclass
class ChatService:
    """Answer nutrition questions using the user's profile and today's intake."""

    client: CompletionClient | None
    model: str
    max_tokens: int = 700
    temperature: float = 0.55
    timeout_seconds: float = 30.0
    prompt_max_chars: int = 8000
    now: Callable[[], datetime] = _local_now

    async def reply(
        self,
        message: str,
        context: ChatContext | None = None,
        *,
        locale: str = "en",
        history: Sequence[ChatTurn] = (),
    ) -> ChatReply:
        """Return the assistant's reply; failures yield a canned answer."""
        if not message or not message.strip():
            raise InvalidRequestError("Message is empty")
        if locale not in _FALLBACKS:
            locale = "en"
        if self.client is None:
            _logger.info("No completion client configured, using canned chat reply")
            return _fallback_reply(message, locale)

        prompt = build_system_prompt(context or ChatContext(), locale, self.now())
        messages: list[dict[str, object]] = [{"role": "system", "content": prompt}]
        messages.extend(
            {
                "role": turn.role,
                "content": clip_prompt(turn.content, self.prompt_max_chars),
            }
            for turn in list(history)[-MAX_HISTORY_TURNS:]
        )
        messages.append(
            {
                "role": "user",
                "content": clip_prompt(message.strip(), self.prompt_max_chars),
            }
        )
        try:
            content = await self.client.complete(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                timeout_seconds=self.timeout_seconds,
            )
        except Exception as exc:
            _logger.warning(
                "Chat model call failed (kind=%s): %s", classify_model_error(exc), exc
            )
            return _fallback_reply(message, locale)

        if not content or not content.strip():
            _logger.warning("Chat model returned empty content")
            return _fallback_reply(message, locale)
        return ChatReply(text=content.strip(), locale=locale)


def build_system_prompt(context: ChatContext, locale: str, now: datetime) -> str:
    """Embed the user's profile, today's progress and the time of day."""
    hour = now.hour
    time_of_day = _time_of_day(hour)
    lines = [_BASE_PROMPTS.get(locale, _BASE_PROMPTS["en"]), "", "=== USER PROFILE ==="]
    if context.name:
        lines.append(f"Name: {context.name}")
    lines.append(
        f"Age: {_or_unknown(context.age)} | "
        f"Weight: {_or_unknown(context.weight_kg)}kg | "
        f"Height: {_or_unknown(context.height_cm)}cm"
    )
    lines.append(f"Goal: {context.main_goal or 'Not specified'}")
    lines.append(
        "Dietary preferences: "
        + (", ".join(context.dietary_preferences) or "No restrictions")
    )
    lines.append(
        "ALLERGIES (NEVER SUGGEST THESE): " + (", ".join(context.allergies) or "None")
    )

    lines.append("")
    lines.append(f"=== TODAY'S PROGRESS (current time: {time_of_day}) ===")
    lines.append(
        f"Consumed: {context.consumed_calories_today:g}kcal, "
        f"{context.consumed_protein_today:g}g protein | "
        f"Meals logged: {context.meals_logged_today}"
    )
    if context.target_calories_daily is not None:
        target = context.target_calories_daily
        consumed = context.consumed_calories_today
        remaining = max(target - consumed, 0)
        lines.append(f"Daily target: {target:g}kcal | Remaining: {remaining:g}kcal")
        expected = round(target * min(1.0, hour / 21))
        lines.append(f"Calorie pacing: {_pace(consumed, expected)}")
    if context.target_protein_daily is not None:
        remaining_protein = max(
            context.target_protein_daily - context.consumed_protein_today, 0
        )
        lines.append(
            f"Protein target: {context.target_protein_daily:g}g | "
            f"Remaining: {remaining_protein:g}g"
        )
    lines.append(f"Next logical meal: {_next_meal(hour)}")
    lines.append(f"Streak: {context.streak_days} days")
    return "\n".join(lines)


def _fallback_reply(message: str, locale: str) -> ChatReply:
    lowered = message.lower()
    texts = _FALLBACKS.get(locale, _FALLBACKS["en"])
    if any(keyword in lowered for keyword in _CALORIE_KEYWORDS):
        text = texts["calories"]
    elif any(keyword in lowered for keyword in _RECOMMENDATION_KEYWORDS):
        text = texts["recommendation"]
    else:
        text = texts["general"]
    return ChatReply(text=text, degraded=True, locale=locale)


def _time_of_day(hour: int) -> str:
    if hour < 10:
        return "morning"
    if hour < 13:
        return "late morning"
    if hour < 15:
        return "midday"
    if hour < 18:
        return "afternoon"
    if hour < 21:
        return "evening"
    return "night"


def _next_meal(hour: int) -> str:
    if hour < 10:
        return "breakfast"
    if hour < 12:
        return "mid-morning snack"
    if hour < 15:
        return "lunch"
    if hour < 17:
        return "afternoon snack"
    if hour < 20:
        return "dinner"
    return "light evening snack"


def _pace(consumed: float, expected: float) -> str:
    if consumed < expected * 0.8:
        return f"behind pace (expected ~{expected:g}kcal by now)"
    if consumed > expected * 1.2:
        return f"ahead of pace (expected ~{expected:g}kcal by now)"
    return "on track"


def _or_unknown(value: object) -> object:
    return "unknown" if value is None else value
