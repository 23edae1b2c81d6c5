"""Normalize loosely parsed meal data into nutrition records."""

import logging
import math
from collections.abc import Iterable, Mapping, Sequence

from nutrition_pipeline.domain.nutrition import IngredientRecord, NutritionRecord
from nutrition_pipeline.domain.parsing import ParsedMeal
from nutrition_pipeline.services.recovery import ingredients_for_meal_name
from nutrition_pipeline.services.visuals import ingredient_color, ingredient_emoji

EditedIngredient = Mapping[str, object] | IngredientRecord

_logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 85
EDITED_CONFIDENCE = 95

# Canonical field -> accepted keys, first present wins.
_MEAL_ALIASES: dict[str, tuple[str, ...]] = {
    "name": ("meal_name", "name"),
    "calories": ("calories",),
    "protein_g": ("protein_g", "protein"),
    "carbs_g": ("carbs_g", "carbs"),
    "fats_g": ("fats_g", "fats", "fat"),
    "fiber_g": ("fiber_g", "fiber"),
    "sugar_g": ("sugar_g", "sugar"),
    "sodium_mg": ("sodium_mg", "sodium"),
    "cholesterol_mg": ("cholesterol_mg", "cholesterol"),
    "vitamins": ("vitamins", "vitamins_json"),
    "micronutrients": ("micronutrients", "micronutrients_json"),
    "allergens": ("allergens", "allergens_json"),
    "ingredients": ("ingredients", "ingredients_list"),
    "health_notes": ("health_notes", "health_risk_notes", "healthNotes"),
    "cooking_method": ("cooking_method", "cookingMethod"),
}

_INGREDIENT_ALIASES: dict[str, tuple[str, ...]] = {
    "name": ("name", "ingredient", "food"),
    "calories": ("calories", "kcal"),
    "protein_g": ("protein_g", "protein"),
    "carbs_g": ("carbs_g", "carbs"),
    "fats_g": ("fats_g", "fats", "fat"),
    "fiber_g": ("fiber_g", "fiber"),
    "sugar_g": ("sugar_g", "sugar"),
    "sodium_mg": ("sodium_mg", "sodium"),
    "cholesterol_mg": ("cholesterol_mg", "cholesterol"),
    "estimated_portion_g": ("estimated_portion_g", "portion_g", "quantity_g"),
    "vitamins": ("vitamins", "vitamins_json"),
    "micronutrients": ("micronutrients", "micronutrients_json"),
    "allergens": ("allergens", "allergens_json"),
}

# Totals that can be filled from ingredient sums.
_SUMMABLE = (
    "calories",
    "protein_g",
    "carbs_g",
    "fats_g",
    "fiber_g",
    "sugar_g",
    "sodium_mg",
    "cholesterol_mg",
)

_SPLIT_KEYS = ("calories", "protein_g", "carbs_g", "fats_g")

_EXTENDED = (
    "saturated_fats_g",
    "polyunsaturated_fats_g",
    "monounsaturated_fats_g",
    "omega_3_g",
    "omega_6_g",
    "soluble_fiber_g",
    "insoluble_fiber_g",
    "alcohol_g",
    "caffeine_mg",
    "liquids_ml",
    "serving_size_g",
)

_MESSAGES = {
    "en": {
        "default_name": "Analyzed Meal",
        "custom_name": "Custom Meal",
        "meal_with": "Meal with {names}",
        "joiner": " and ",
        "sides": "{name} sides",
        "high_protein": "High in protein.",
        "fiber": "Good source of fiber.",
        "sodium": "High sodium content.",
        "balanced": "Balanced meal based on custom ingredients.",
        "recalculated": "Recalculated meal with custom ingredients",
        "custom_preparation": "Custom preparation",
        "mixed_ingredients": "Mixed ingredients",
        "unknown_ingredient": "Unknown ingredient",
    },
    "he": {
        "default_name": "ארוחה מנותחת",
        "custom_name": "ארוחה מותאמת",
        "meal_with": "ארוחה עם {names}",
        "joiner": " ו",
        "sides": "תוספות {name}",
        "high_protein": "עשיר בחלבון.",
        "fiber": "עשיר בסיבים תזונתיים.",
        "sodium": "רמת נתרן גבוהה.",
        "balanced": "ארוחה מאוזנת מבוססת רכיבים מותאמים.",
        "recalculated": "ארוחה מחושבת מחדש עם רכיבים מותאמים",
        "custom_preparation": "הכנה מותאמת",
        "mixed_ingredients": "רכיבים מעורבים",
        "unknown_ingredient": "רכיב לא ידוע",
    },
}


def normalize_meal(
    parsed: ParsedMeal | Mapping[str, object],
    edited_ingredients: Sequence[EditedIngredient] | None = None,
    *,
    locale: str = "en",
) -> NutritionRecord:
    """Build a nutrition record from parsed fields.

    Non-empty edited ingredients replace the model's totals with exact sums.
    """
    fields = parsed.fields if isinstance(parsed, ParsedMeal) else parsed
    messages = _MESSAGES.get(locale, _MESSAGES["en"])
    if edited_ingredients:
        return _from_edited(fields, edited_ingredients, messages)

    name = _text(_first(fields, _MEAL_ALIASES["name"])) or messages["default_name"]
    raw_ingredients = _first(fields, _MEAL_ALIASES["ingredients"])
    ingredients = normalize_ingredients(_iterable(raw_ingredients))

    totals: dict[str, float] = {}
    for key in _SUMMABLE:
        raw = _first(fields, _MEAL_ALIASES[key])
        if raw is None and ingredients:
            totals[key] = sum(getattr(item, key) for item in ingredients)
        else:
            totals[key] = _number(raw)

    if not ingredients:
        ingredients = _synthesize_ingredients(name, totals, messages)

    return NutritionRecord(
        name=name,
        **totals,
        **{key: _number(fields.get(key)) for key in _EXTENDED},
        vitamins=_nutrient_map(_first(fields, _MEAL_ALIASES["vitamins"])),
        micronutrients=_nutrient_map(_first(fields, _MEAL_ALIASES["micronutrients"])),
        allergens=_allergens(_first(fields, _MEAL_ALIASES["allergens"])),
        glycemic_index=_optional_number(fields.get("glycemic_index")),
        insulin_index=_optional_number(fields.get("insulin_index")),
        confidence=normalize_confidence(fields.get("confidence")),
        ingredients=tuple(ingredients),
        description=_text(fields.get("description")),
        food_category=_text(fields.get("food_category")),
        processing_level=_text(fields.get("processing_level")),
        cooking_method=_text(_first(fields, _MEAL_ALIASES["cooking_method"])),
        health_notes=_text(_first(fields, _MEAL_ALIASES["health_notes"])),
    )


def normalize_ingredients(items: Iterable[object]) -> list[IngredientRecord]:
    """Normalize ingredient entries, dropping ones without a usable name."""
    records = []
    for item in items:
        record = normalize_ingredient(item)
        if record is not None:
            records.append(record)
    return records


def normalize_ingredient(item: object) -> IngredientRecord | None:
    """Normalize one ingredient given as a record, mapping or bare name."""
    if isinstance(item, IngredientRecord):
        return item
    if isinstance(item, str):
        item = {"name": item}
    if not isinstance(item, Mapping):
        return None
    name = _text(_first(item, _INGREDIENT_ALIASES["name"]))
    if not name:
        return None
    return IngredientRecord(
        name=name,
        calories=_number(_first(item, _INGREDIENT_ALIASES["calories"])),
        protein_g=_number(_first(item, _INGREDIENT_ALIASES["protein_g"])),
        carbs_g=_number(_first(item, _INGREDIENT_ALIASES["carbs_g"])),
        fats_g=_number(_first(item, _INGREDIENT_ALIASES["fats_g"])),
        fiber_g=_number(_first(item, _INGREDIENT_ALIASES["fiber_g"])),
        sugar_g=_number(_first(item, _INGREDIENT_ALIASES["sugar_g"])),
        sodium_mg=_number(_first(item, _INGREDIENT_ALIASES["sodium_mg"])),
        cholesterol_mg=_number(_first(item, _INGREDIENT_ALIASES["cholesterol_mg"])),
        estimated_portion_g=_optional_number(
            _first(item, _INGREDIENT_ALIASES["estimated_portion_g"])
        ),
        glycemic_index=_optional_number(item.get("glycemic_index")),
        insulin_index=_optional_number(item.get("insulin_index")),
        vitamins=_nutrient_map(_first(item, _INGREDIENT_ALIASES["vitamins"])),
        micronutrients=_nutrient_map(
            _first(item, _INGREDIENT_ALIASES["micronutrients"])
        ),
        allergens=_allergens(_first(item, _INGREDIENT_ALIASES["allergens"])),
        emoji=ingredient_emoji(name),
        color=ingredient_color(name),
    )


def normalize_confidence(value: object) -> int:
    """Return confidence on a 0-100 integer scale.

    Fractions in (0, 1] are read as probabilities; integers are percentages.
    """
    if value is None or isinstance(value, bool):
        return DEFAULT_CONFIDENCE
    number = _optional_number(value, clamp=False)
    if number is None:
        return DEFAULT_CONFIDENCE
    if not isinstance(value, int) and 0 < number <= 1:
        number *= 100
    return int(round(min(max(number, 0.0), 100.0)))


def overlay_fields(
    base: Mapping[str, object], update: Mapping[str, object]
) -> dict[str, object]:
    """Apply non-null updated fields over base, treating alternate keys as one."""
    merged = dict(base)
    for aliases in _MEAL_ALIASES.values():
        if any(update.get(key) is not None for key in aliases):
            for key in aliases:
                merged.pop(key, None)
    merged.update({key: value for key, value in update.items() if value is not None})
    totals_changed = any(
        update.get(key) is not None
        for canonical in _SPLIT_KEYS
        for key in _MEAL_ALIASES[canonical]
    )
    has_ingredients = any(
        update.get(key) is not None for key in _MEAL_ALIASES["ingredients"]
    )
    if totals_changed and not has_ingredients:
        for key in _MEAL_ALIASES["ingredients"]:
            merged.pop(key, None)
    return merged


def _from_edited(
    fields: Mapping[str, object],
    edited: Sequence[EditedIngredient],
    messages: dict[str, str],
) -> NutritionRecord:
    # Every edited row counts toward the totals, named or not.
    rows: list[EditedIngredient] = []
    for item in edited:
        if isinstance(item, IngredientRecord):
            rows.append(item)
            continue
        row = dict(item) if isinstance(item, Mapping) else {"name": item}
        if not _text(_first(row, _INGREDIENT_ALIASES["name"])):
            row["name"] = messages["unknown_ingredient"]
        rows.append(row)
    ingredients = normalize_ingredients(rows)
    totals = {key: sum(getattr(item, key) for item in ingredients) for key in _SUMMABLE}
    extended = {
        key: sum(
            _number(row.get(key)) for row in rows if isinstance(row, Mapping)
        )
        for key in _EXTENDED
    }

    names = [item.name for item in ingredients]
    if names:
        name = messages["meal_with"].format(names=messages["joiner"].join(names[:2]))
    else:
        name = messages["custom_name"]

    notes = []
    if totals["protein_g"] > 25:
        notes.append(messages["high_protein"])
    if totals["fiber_g"] > 10:
        notes.append(messages["fiber"])
    if totals["sodium_mg"] > 800:
        notes.append(messages["sodium"])

    return NutritionRecord(
        name=name,
        **totals,
        **extended,
        vitamins=_sum_maps(item.vitamins for item in ingredients),
        micronutrients=_sum_maps(item.micronutrients for item in ingredients),
        allergens=_allergens([a for item in ingredients for a in item.allergens]),
        glycemic_index=_mean(item.glycemic_index for item in ingredients),
        insulin_index=_mean(item.insulin_index for item in ingredients),
        confidence=EDITED_CONFIDENCE,
        ingredients=tuple(ingredients),
        description=messages["recalculated"],
        food_category=messages["mixed_ingredients"],
        processing_level=_text(fields.get("processing_level")),
        cooking_method=messages["custom_preparation"],
        health_notes=" ".join(notes) if notes else messages["balanced"],
    )


def _synthesize_ingredients(
    name: str, totals: dict[str, float], messages: dict[str, str]
) -> list[IngredientRecord]:
    """Invent an ingredient list when the model returned none."""
    by_name = ingredients_for_meal_name(name)
    if by_name:
        return normalize_ingredients(by_name)
    _logger.debug("Splitting totals 60/40 for meal without ingredients: %s", name)
    main = {key: math.floor(totals[key] * 0.6) for key in _SPLIT_KEYS}
    sides = {key: math.floor(totals[key] * 0.4) for key in _SPLIT_KEYS}
    return normalize_ingredients(
        [
            {"name": name, **main},
            {"name": messages["sides"].format(name=name), **sides},
        ]
    )


def _first(fields: Mapping[str, object], keys: tuple[str, ...]) -> object | None:
    for key in keys:
        value = fields.get(key)
        if value is not None:
            return value
    return None


def _number(value: object, default: float = 0.0) -> float:
    number = _optional_number(value)
    return default if number is None else number


def _optional_number(value: object, *, clamp: bool = True) -> float | None:
    """Coerce to a finite float, or None when the value is unusable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().rstrip("%").strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return max(number, 0.0) if clamp else number


def _text(value: object) -> str:
    if value is None:
        return ""
    return value.strip() if isinstance(value, str) else str(value)


def _iterable(value: object) -> list[object]:
    if isinstance(value, list | tuple):
        return list(value)
    return []


def _nutrient_map(value: object) -> dict[str, float]:
    if not isinstance(value, Mapping):
        return {}
    result = {}
    for key, raw in value.items():
        number = _optional_number(raw)
        if number is not None:
            result[str(key)] = number
    return result


def _allergens(value: object) -> tuple[str, ...]:
    if isinstance(value, Mapping):
        value = value.get("possible_allergens")
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list | tuple):
        return ()
    seen: list[str] = []
    for item in value:
        text = _text(item)
        if text and text not in seen:
            seen.append(text)
    return tuple(seen)


def _sum_maps(maps: Iterable[Mapping[str, float]]) -> dict[str, float]:
    result: dict[str, float] = {}
    for mapping in maps:
        for key, value in mapping.items():
            result[key] = result.get(key, 0.0) + value
    return result


def _mean(values: Iterable[float | None]) -> float | None:
    present = [value for value in values if value is not None]
    if not present:
        return None
    return sum(present) / len(present)