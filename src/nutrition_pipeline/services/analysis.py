"""Meal analysis with a fallback ladder around the external model."""

import base64
import binascii
import json
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from enum import StrEnum

from nutrition_pipeline.domain.nutrition import (
    IngredientRecord,
    NutritionRecord,
    calorie_deviation,
)
from nutrition_pipeline.domain.parsing import ParseFailure, ParseTier
from nutrition_pipeline.errors import InvalidImageError, InvalidRequestError
from nutrition_pipeline.services.completion import (
    CompletionClient,
    ModelErrorKind,
    classify_model_error,
    clip_prompt,
    status_code_from_exception,
)
from nutrition_pipeline.services.normalizer import (
    EditedIngredient,
    normalize_meal,
    overlay_fields,
)
from nutrition_pipeline.services.recovery import parse_meal_response
from nutrition_pipeline.services.synthetic import SyntheticEstimator

MIN_IMAGE_BYTES = 1024
MAX_IMAGE_BYTES = 10 * 1024 * 1024

_BASE64_PATTERN = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")
_WHITESPACE = re.compile(r"\s+")

_logger = logging.getLogger(__name__)

_LANGUAGE_NAMES = {"en": "English", "he": "Hebrew"}

ANALYSIS_SYSTEM_PROMPT = """You are an expert clinical nutritionist. Analyze the \
meal and respond with ONLY one JSON object, no markdown and no explanations. If \
unsure, give a calibrated estimate instead of refusing.

All string values must be in {language}.

Use Atwater factors: calories = protein*4 + carbs*4 + fats*9.

JSON fields:
meal_name, description, calories, protein_g, carbs_g, fats_g, fiber_g, sugar_g,
sodium_mg, cholesterol_mg, saturated_fats_g, polyunsaturated_fats_g,
monounsaturated_fats_g, omega_3_g, omega_6_g, soluble_fiber_g, insoluble_fiber_g,
alcohol_g, caffeine_mg, liquids_ml, serving_size_g, glycemic_index, insulin_index,
vitamins (object of numbers), micronutrients (object of numbers),
allergens (array of strings), food_category, processing_level, cooking_method,
health_notes, confidence (0-1),
ingredients: array of {{name, calories, protein_g, carbs_g, fats_g, fiber_g,
sugar_g, sodium_mg, estimated_portion_g, glycemic_index, allergens}}."""

UPDATE_SYSTEM_PROMPT = """You are a nutritionist. Update an existing meal analysis \
using the user's correction. Respond with ONLY one JSON object with meal_name, \
calories, protein_g, carbs_g, fats_g, fiber_g, sugar_g, sodium_mg and an \
ingredients array. All string values must be in {language}."""


class AnalysisStatus(StrEnum):
    """Whether the record came from the model or from a fallback."""

    SUCCESS = "success"
    DEGRADED = "degraded"


class DegradeReason(StrEnum):
    """Why the ladder fell back."""

    NO_MODEL = "no_model"
    MODEL_ERROR = "model_error"
    EMPTY_RESPONSE = "empty_response"
    REFUSAL = "refusal"
    PARSE_ERROR = "parse_error"


@dataclass(frozen=True)
class AnalysisOutcome:
    """Nutrition record plus how it was obtained."""

    record: NutritionRecord
    status: AnalysisStatus
    tier: ParseTier
    reason: DegradeReason | None = None
    error_kind: ModelErrorKind | None = None


@dataclass
class MealAnalysisService:
    """Turn meal photos and descriptions into nutrition records."""

    client: CompletionClient | None
    model: str
    estimator: SyntheticEstimator = field(default_factory=SyntheticEstimator)
    max_tokens: int = 3000
    update_max_tokens: int = 1024
    temperature: float = 0.3
    timeout_seconds: float = 30.0
    prompt_max_chars: int = 8000
    calorie_tolerance: float = 0.10

    async def analyze_image(
        self,
        image_base64: str,
        *,
        note: str | None = None,
        edited_ingredients: Sequence[EditedIngredient] | None = None,
        locale: str = "en",
    ) -> AnalysisOutcome:
        """Analyze a meal photo; only invalid input raises."""
        image_bytes = validate_image_payload(image_base64)
        user_text = self._user_prompt(
            "Analyze the meal in this photo.", note, edited_ingredients
        )
        messages = [
            {"role": "system", "content": self._system_prompt(locale)},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": user_text},
                    {
                        "type": "image_url",
                        "image_url": {"url": _to_data_url(image_bytes)},
                    },
                ],
            },
        ]
        return await self._run_ladder(messages, note, edited_ingredients, locale)

    async def analyze_text(
        self,
        description: str,
        *,
        edited_ingredients: Sequence[EditedIngredient] | None = None,
        locale: str = "en",
    ) -> AnalysisOutcome:
        """Analyze a meal from a free-text description."""
        if not description or not description.strip():
            raise InvalidRequestError("Meal description is empty")
        user_text = self._user_prompt(
            f"Analyze this meal: {description.strip()}", None, edited_ingredients
        )
        messages = [
            {"role": "system", "content": self._system_prompt(locale)},
            {"role": "user", "content": user_text},
        ]
        return await self._run_ladder(messages, description, edited_ingredients, locale)

    async def update_analysis(
        self, record: NutritionRecord, update_text: str, *, locale: str = "en"
    ) -> AnalysisOutcome:
        """Revise an existing record with the user's correction."""
        if not update_text or not update_text.strip():
            raise InvalidRequestError("Update text is empty")
        if self.client is None:
            return _mock_update(record, update_text, DegradeReason.NO_MODEL)

        summary = (
            f"Original: meal_name={record.name}, calories={record.calories}, "
            f"protein_g={record.protein_g}, carbs_g={record.carbs_g}, "
            f"fats_g={record.fats_g}"
        )
        messages = [
            {
                "role": "system",
                "content": UPDATE_SYSTEM_PROMPT.format(language=_language(locale)),
            },
            {
                "role": "user",
                "content": clip_prompt(
                    f'{summary}\nUser update: "{update_text.strip()}"',
                    self.prompt_max_chars,
                ),
            },
        ]
        try:
            content = await self.client.complete(
                model=self.model,
                messages=messages,
                max_tokens=self.update_max_tokens,
                temperature=self.temperature,
                timeout_seconds=self.timeout_seconds,
            )
        except Exception as exc:
            kind = classify_model_error(exc)
            _log_model_failure("update", exc, kind)
            return _mock_update(record, update_text, DegradeReason.MODEL_ERROR, kind)

        try:
            parsed = parse_meal_response(content)
            if isinstance(parsed, ParseFailure):
                return _mock_update(record, update_text, DegradeReason.REFUSAL)
            if parsed.tier == ParseTier.PARTIAL:
                return _mock_update(record, update_text, DegradeReason.PARSE_ERROR)
            fields = overlay_fields(record.to_dict(), parsed.fields)
            updated = normalize_meal(fields, locale=locale)
        except Exception:
            _logger.exception("Failed to apply model update to meal analysis")
            return _mock_update(record, update_text, DegradeReason.PARSE_ERROR)
        self._check_calories(updated)
        return AnalysisOutcome(
            record=updated, status=AnalysisStatus.SUCCESS, tier=parsed.tier
        )

    async def _run_ladder(
        self,
        messages: list[dict[str, object]],
        note: str | None,
        edited_ingredients: Sequence[EditedIngredient] | None,
        locale: str,
    ) -> AnalysisOutcome:
        if self.client is None:
            _logger.info("No completion client configured, using synthetic estimate")
            return self._synthetic(
                note, edited_ingredients, locale, DegradeReason.NO_MODEL
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
            kind = classify_model_error(exc)
            _log_model_failure("analysis", exc, kind)
            return self._synthetic(
                note, edited_ingredients, locale, DegradeReason.MODEL_ERROR, kind
            )

        if not content or not content.strip():
            _logger.warning("Meal analysis model returned empty content")
            return self._synthetic(
                note, edited_ingredients, locale, DegradeReason.EMPTY_RESPONSE
            )

        try:
            parsed = parse_meal_response(content)
            if isinstance(parsed, ParseFailure):
                return self._synthetic(
                    note,
                    edited_ingredients,
                    locale,
                    DegradeReason.REFUSAL,
                    ModelErrorKind.REFUSAL,
                )
            record = normalize_meal(parsed, edited_ingredients, locale=locale)
        except Exception:
            _logger.exception("Failed to parse or normalize meal analysis")
            return self._synthetic(
                note, edited_ingredients, locale, DegradeReason.PARSE_ERROR
            )

        self._check_calories(record)
        return AnalysisOutcome(
            record=record, status=AnalysisStatus.SUCCESS, tier=parsed.tier
        )

    def _synthetic(  # noqa: PLR0913
        self,
        note: str | None,
        edited_ingredients: Sequence[EditedIngredient] | None,
        locale: str,
        reason: DegradeReason,
        error_kind: ModelErrorKind | None = None,
    ) -> AnalysisOutcome:
        fields = self.estimator.estimate_fields(note, locale=locale)
        record = normalize_meal(fields, edited_ingredients, locale=locale)
        _logger.info("Synthetic meal estimate used (reason=%s)", reason)
        return AnalysisOutcome(
            record=record,
            status=AnalysisStatus.DEGRADED,
            tier=ParseTier.SYNTHETIC,
            reason=reason,
            error_kind=error_kind,
        )

    def _system_prompt(self, locale: str) -> str:
        return ANALYSIS_SYSTEM_PROMPT.format(language=_language(locale))

    def _user_prompt(
        self,
        instruction: str,
        note: str | None,
        edited_ingredients: Sequence[EditedIngredient] | None,
    ) -> str:
        parts = [instruction]
        if note and note.strip():
            parts.append(f"User note: {note.strip()}")
        if edited_ingredients:
            rows = [
                json.dumps(_ingredient_context(item), ensure_ascii=False, default=str)
                for item in edited_ingredients
            ]
            parts.append("User provided ingredients: " + "; ".join(rows))
        return clip_prompt("\n".join(parts), self.prompt_max_chars)

    def _check_calories(self, record: NutritionRecord) -> None:
        deviation = calorie_deviation(record)
        if deviation > self.calorie_tolerance:
            _logger.warning(
                "Calories deviate from macros by %.0f%%: meal=%s calories=%s macros=%s",
                deviation * 100,
                record.name,
                record.calories,
                record.macro_calories,
            )


def validate_image_payload(image_base64: str) -> bytes:
    """Decode and size-check a base64 image, raising on caller mistakes."""
    if not image_base64 or not image_base64.strip():
        raise InvalidImageError("Empty image data provided")
    cleaned = image_base64.strip()
    if cleaned.startswith("data:"):
        comma_index = cleaned.find(",")
        if comma_index == -1:
            raise InvalidImageError("Invalid data URL format - missing comma")
        cleaned = cleaned[comma_index + 1 :]
    cleaned = _WHITESPACE.sub("", cleaned)
    if not _BASE64_PATTERN.fullmatch(cleaned):
        raise InvalidImageError("Invalid base64 format - contains invalid characters")
    if len(cleaned) * 3 // 4 > MAX_IMAGE_BYTES + 2:
        raise InvalidImageError("Image too large - must be under 10MB")
    try:
        image_bytes = base64.b64decode(cleaned, validate=True)
    except binascii.Error as exc:
        raise InvalidImageError("Image data is not valid base64") from exc
    if len(image_bytes) < MIN_IMAGE_BYTES:
        raise InvalidImageError("Image data too small - likely not a valid image")
    if len(image_bytes) > MAX_IMAGE_BYTES:
        raise InvalidImageError("Image too large - must be under 10MB")
    return image_bytes


def _mock_update(
    record: NutritionRecord,
    update_text: str,
    reason: DegradeReason,
    error_kind: ModelErrorKind | None = None,
) -> AnalysisOutcome:
    """Scale the portion by keywords in the update text."""
    lowered = update_text.lower()
    multiplier = 1.0
    if any(word in lowered for word in ("more", "big", "large")):
        multiplier = 1.3
    elif any(word in lowered for word in ("less", "small", "little")):
        multiplier = 0.7

    ingredients = tuple(
        replace(
            item,
            calories=item.calories * multiplier,
            protein_g=item.protein_g * multiplier,
            carbs_g=item.carbs_g * multiplier,
            fats_g=item.fats_g * multiplier,
        )
        for item in record.ingredients
    )
    updated = replace(
        record,
        name=f"{record.name} (Updated)",
        calories=float(round(record.calories * multiplier)),
        protein_g=float(round(record.protein_g * multiplier)),
        carbs_g=float(round(record.carbs_g * multiplier)),
        fats_g=float(round(record.fats_g * multiplier)),
        ingredients=ingredients,
    )
    return AnalysisOutcome(
        record=updated,
        status=AnalysisStatus.DEGRADED,
        tier=ParseTier.SYNTHETIC,
        reason=reason,
        error_kind=error_kind,
    )


def _ingredient_context(item: EditedIngredient) -> dict[str, object]:
    if isinstance(item, IngredientRecord):
        return {
            "name": item.name,
            "calories": item.calories,
            "protein_g": item.protein_g,
            "carbs_g": item.carbs_g,
            "fats_g": item.fats_g,
        }
    return {str(key): value for key, value in item.items()}


def _language(locale: str) -> str:
    return _LANGUAGE_NAMES.get(locale, "English")


def _log_model_failure(action: str, exc: Exception, kind: ModelErrorKind) -> None:
    _logger.warning(
        "Meal %s model call failed (kind=%s, status=%s): %s",
        action,
        kind,
        status_code_from_exception(exc) or "n/a",
        exc,
    )


def _to_data_url(image_bytes: bytes) -> str:
    """Convert bytes to a base64 data URL for image input."""
    mime_type = _detect_mime_type(image_bytes)
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def _detect_mime_type(image_bytes: bytes) -> str:
    """Infer a basic image MIME type from file signatures."""
    if image_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"
