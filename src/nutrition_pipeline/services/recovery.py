"""Recovery parser turning raw model text into meal fields."""

import ast
import json
import logging
import re

from nutrition_pipeline.domain.parsing import ParsedMeal, ParseFailure, ParseTier

_logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*\s*")
_FENCE_CLOSE = re.compile(r"\s*```\s*$")
_ENGLISH_REFUSAL = re.compile(r"\b(?:sorry|cannot|unable|can['’]t)\b", re.IGNORECASE)
_HEBREW_REFUSAL_MARKERS = ("מצטער", "לא יכול")
_CLOSERS = {"{": "}", "[": "]"}
_JSON_STRING = re.compile(r'"(?:[^"\\\n]|\\.)*"')
_NESTED_VALUE_PREFIXES = (":", ",", "[", "{")
_MAX_REPAIR_STARTS = 8

DEFAULT_MEAL_NAME = "Analyzed Meal"

PARTIAL_DEFAULTS: dict[str, float] = {
    "calories": 250,
    "protein_g": 15,
    "carbs_g": 30,
    "fats_g": 10,
    "fiber_g": 5,
    "sugar_g": 8,
    "sodium_mg": 400,
    "saturated_fats_g": 3,
    "polyunsaturated_fats_g": 2,
    "monounsaturated_fats_g": 4,
    "omega_3_g": 0.5,
    "omega_6_g": 1.5,
    "soluble_fiber_g": 2,
    "insoluble_fiber_g": 3,
    "cholesterol_mg": 20,
    "alcohol_g": 0,
    "caffeine_mg": 0,
    "liquids_ml": 0,
    "serving_size_g": 200,
    "glycemic_index": 55,
    "insulin_index": 45,
}

PARTIAL_VITAMINS: dict[str, float] = {
    "vitamin_a_mcg": 100,
    "vitamin_c_mg": 10,
    "vitamin_d_mcg": 1,
    "vitamin_e_mg": 2,
    "vitamin_k_mcg": 20,
    "vitamin_b12_mcg": 0.5,
    "folate_mcg": 40,
    "niacin_mg": 3,
    "thiamin_mg": 0.2,
    "riboflavin_mg": 0.3,
    "pantothenic_acid_mg": 0.8,
    "vitamin_b6_mg": 0.4,
}

PARTIAL_MICRONUTRIENTS: dict[str, float] = {
    "iron_mg": 2,
    "magnesium_mg": 50,
    "zinc_mg": 1.5,
    "calcium_mg": 80,
    "potassium_mg": 200,
    "phosphorus_mg": 100,
    "selenium_mcg": 10,
    "copper_mg": 0.2,
    "manganese_mg": 0.5,
}

_PARTIAL_TEXT_DEFAULTS: dict[str, str] = {
    "food_category": "Mixed",
    "processing_level": "Minimally processed",
    "cooking_method": "Mixed",
    "health_notes": "Generally healthy meal",
}

# Alternate spellings accepted for each canonical field, most specific first.
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "calories": ("calories", "kcal"),
    "protein_g": ("protein_g", "protein"),
    "carbs_g": ("carbs_g", "carbohydrates", "carbs"),
    "fats_g": ("fats_g", "fats", "fat"),
    "fiber_g": ("fiber_g", "fiber"),
    "sugar_g": ("sugar_g", "sugar"),
    "sodium_mg": ("sodium_mg", "sodium"),
    "confidence": ("confidence",),
    "food_category": ("food_category",),
    "processing_level": ("processing_level",),
    "cooking_method": ("cooking_method", "cookingMethod"),
    "health_notes": ("health_notes", "health_risk_notes", "healthNotes"),
}

_COMMON_FOODS = (
    "chicken",
    "beef",
    "pork",
    "fish",
    "salmon",
    "tuna",
    "eggs",
    "rice",
    "pasta",
    "bread",
    "quinoa",
    "oats",
    "cheese",
    "milk",
    "yogurt",
    "butter",
    "tomato",
    "onion",
    "garlic",
    "lettuce",
    "spinach",
    "broccoli",
    "carrot",
    "apple",
    "banana",
    "orange",
    "berries",
    "olive oil",
    "salt",
    "pepper",
    "herbs",
    "spices",
)

_IngredientRow = tuple[str, float, float, float, float]

_MEAL_NAME_RULES: tuple[tuple[str, tuple[_IngredientRow, ...]], ...] = (
    (
        "pie",
        (
            ("pie crust", 150, 2, 20, 8),
            ("fruit filling", 120, 1, 30, 1),
            ("sugar", 50, 0, 13, 0),
        ),
    ),
    (
        "salad",
        (
            ("lettuce", 20, 2, 4, 0),
            ("tomato & cucumber", 30, 2, 7, 0),
            ("olive oil dressing", 80, 0, 2, 9),
        ),
    ),
)


def parse_meal_response(raw: str) -> ParsedMeal | ParseFailure:
    """Parse model output into meal fields, repairing it where possible."""
    text = raw or ""
    # Markers inside JSON string values such as health notes are not refusals.
    if is_refusal(_JSON_STRING.sub('""', text)):
        _logger.info("Model output contains a refusal marker")
        return ParseFailure(reason="refusal")

    strict = _strict_parse(text, "{")
    if isinstance(strict, dict):
        return ParsedMeal(fields=strict, tier=ParseTier.STRICT)

    for candidate in _repair_candidates(text, "{"):
        repaired = _loads(candidate)
        if isinstance(repaired, dict):
            _logger.info("Recovered model output with structural repair")
            return ParsedMeal(fields=repaired, tier=ParseTier.REPAIRED)

    _logger.warning("Falling back to partial field extraction")
    fields, notes = extract_partial_fields(text)
    return ParsedMeal(fields=fields, tier=ParseTier.PARTIAL, notes=notes)


def recover_json(raw: str) -> object | None:
    """Return the first JSON value recoverable from text, or None."""
    text = raw or ""
    strict = _strict_parse(text, "{[")
    if strict is not None:
        return strict
    for candidate in _repair_candidates(text, "{["):
        value = _loads(candidate)
        if value is not None:
            return value
    return None


def is_refusal(text: str) -> bool:
    """Return True when text reads like a refusal to answer."""
    if any(marker in text for marker in _HEBREW_REFUSAL_MARKERS):
        return True
    return _ENGLISH_REFUSAL.search(text) is not None


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence."""
    cleaned = text.strip()
    cleaned = _FENCE_OPEN.sub("", cleaned)
    return _FENCE_CLOSE.sub("", cleaned)


def extract_partial_fields(text: str) -> tuple[dict[str, object], tuple[str, ...]]:
    """Pull individual fields out of unparseable text, filling defaults."""
    notes: list[str] = []
    fields: dict[str, object] = {}

    name = _extract_string(text, ("meal_name", "name"))
    fields["meal_name"] = name or DEFAULT_MEAL_NAME
    if name is None:
        notes.append("meal_name")

    for key, default in PARTIAL_DEFAULTS.items():
        value = _extract_number(text, _FIELD_ALIASES.get(key, (key,)))
        if value is None:
            notes.append(key)
            value = float(default)
        fields[key] = value

    confidence = _extract_number(text, _FIELD_ALIASES["confidence"])
    fields["confidence"] = 0.7 if confidence is None else confidence

    for key, default in _PARTIAL_TEXT_DEFAULTS.items():
        fields[key] = _extract_string(text, _FIELD_ALIASES[key]) or default

    fields["vitamins"] = dict(PARTIAL_VITAMINS)
    fields["micronutrients"] = dict(PARTIAL_MICRONUTRIENTS)
    fields["allergens"] = []
    fields["ingredients"] = mine_ingredients(text, name)
    return fields, tuple(notes)


def mine_ingredients(
    text: str, meal_name: str | None = None
) -> list[dict[str, object]]:
    """Recover an ingredient list from text, from most to least specific."""
    match = re.search(r'"ingredients"\s*:\s*(\[)', text)
    if match:
        value = recover_json(text[match.start(1) :])
        if isinstance(value, list):
            ingredients = [_ingredient_entry(item) for item in value]
            ingredients = [item for item in ingredients if item is not None]
            if ingredients:
                return ingredients

    lowered = text.lower()
    found = [
        food for food in _COMMON_FOODS if re.search(rf"\b{re.escape(food)}", lowered)
    ]
    if found:
        return [_stub(food, 50, 2, 8, 2) for food in found]

    if meal_name:
        by_name = ingredients_for_meal_name(meal_name)
        if by_name:
            return by_name
    return [_stub(meal_name or "mixed dish", 200, 10, 25, 8)]


def ingredients_for_meal_name(meal_name: str) -> list[dict[str, object]] | None:
    """Return template ingredients for well-known dish names."""
    lowered = meal_name.lower()
    for keyword, rows in _MEAL_NAME_RULES:
        if keyword in lowered:
            return [_stub(*row) for row in rows]
    return None


def _stub(
    name: str, calories: float, protein: float, carbs: float, fats: float
) -> dict[str, object]:
    return {
        "name": name,
        "calories": calories,
        "protein_g": protein,
        "carbs_g": carbs,
        "fats_g": fats,
    }


def _ingredient_entry(item: object) -> dict[str, object] | None:
    if isinstance(item, str):
        return {"name": item} if item.strip() else None
    if isinstance(item, dict):
        return item
    return None


def _strict_parse(text: str, openers: str) -> object | None:
    """Parse the outermost JSON value after stripping fences and prose."""
    cleaned = strip_code_fences(text)
    start = _first_opener(cleaned, openers)
    if start is None:
        return None
    end = cleaned.rfind(_CLOSERS[cleaned[start]])
    if end > start:
        try:
            return json.loads(cleaned[start : end + 1])
        except ValueError:
            pass
    # Prose around the value may hold stray braces of its own.
    decoder = json.JSONDecoder()
    for position in _opener_positions(cleaned, openers, start):
        try:
            value, _ = decoder.raw_decode(cleaned, position)
        except ValueError:
            continue
        if value:
            return value
    return None


def _repair_candidates(text: str, openers: str) -> list[str]:
    """Build repaired variants of text, most faithful first."""
    cleaned = strip_code_fences(text)
    start = _first_opener(cleaned, openers)
    if start is None:
        return []
    candidates = []
    for position in _opener_positions(cleaned, openers, start)[:_MAX_REPAIR_STARTS]:
        sanitized = _sanitize_json_like(cleaned[position:])
        closed, cut = _balance(sanitized)
        candidates.append(_remove_trailing_commas(closed))
        if cut is not None:
            candidates.append(_remove_trailing_commas(cut))
    return candidates


def _first_opener(text: str, openers: str) -> int | None:
    positions = [pos for pos in (text.find(opener) for opener in openers) if pos != -1]
    return min(positions) if positions else None


def _opener_positions(text: str, openers: str, start: int) -> list[int]:
    """Return start plus each later opener outside strings and nested values."""
    positions = [start]
    in_string = escaped = False
    previous = text[start]
    for index in range(start + 1, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char in openers and previous not in _NESTED_VALUE_PREFIXES:
            positions.append(index)
        if not char.isspace():
            previous = char
    return positions


def _loads(candidate: str) -> object | None:
    """Parse a repaired candidate as JSON, then as a Python literal."""
    try:
        return json.loads(candidate)
    except ValueError:
        pass
    literal = re.sub(r"\bnull\b", "None", candidate)
    literal = re.sub(r"\btrue\b", "True", literal)
    literal = re.sub(r"\bfalse\b", "False", literal)
    try:
        value = ast.literal_eval(literal)
    except (ValueError, TypeError, SyntaxError, MemoryError, RecursionError):
        return None
    return value if isinstance(value, dict | list) else None


def _balance(text: str) -> tuple[str, str | None]:
    """Close unbalanced JSON text.

    Returns the text closed at its end, and a second variant cut back to the
    last member separator, for when the final member itself is truncated.
    """
    out: list[str] = []
    stack: list[str] = []
    in_str = False
    escaped = False
    last_separator: tuple[int, list[str]] | None = None

    for ch in text:
        if in_str:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_str = False
            continue

        if ch == '"':
            in_str = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in "}]":
            if not stack:
                break
            if ch not in stack:
                continue
            while stack[-1] != ch:
                out.append(stack.pop())
            stack.pop()
            out.append(ch)
            if not stack:
                return "".join(out), None
            continue
        elif ch == "," and stack:
            last_separator = (len(out), list(stack))
        out.append(ch)

    closed = "".join(out)
    if in_str:
        closed += '"'
    closed = closed.rstrip()
    if closed.endswith(":"):
        closed += " null"
    closed += "".join(reversed(stack))

    cut = None
    if last_separator is not None:
        position, open_stack = last_separator
        cut = "".join(out[:position]) + "".join(reversed(open_stack))
    return closed, cut


def _remove_trailing_commas(text: str) -> str:
    """Remove trailing commas while preserving string literals."""
    out: list[str] = []
    in_str = False
    escaped = False
    i = 0
    while i < len(text):
        ch = text[i]
        if in_str:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_str = False
            i += 1
            continue

        if ch == '"':
            in_str = True
            out.append(ch)
            i += 1
            continue

        if ch == ",":
            j = i + 1
            while j < len(text) and text[j] in " \t\r\n":
                j += 1
            if j >= len(text) or text[j] in "}]":
                i += 1
                continue

        out.append(ch)
        i += 1
    return "".join(out)


def _sanitize_json_like(text: str) -> str:
    # Typographic quotes, full-width punctuation and non-finite numbers.
    cleaned = text.replace("：", ":").replace("，", ",")
    cleaned = cleaned.replace("“", '"').replace("”", '"')
    cleaned = re.sub(r"\bNaN\b", "null", cleaned, flags=re.IGNORECASE)
    return re.sub(r"-?\bInfinity\b", "null", cleaned, flags=re.IGNORECASE)


def _extract_number(text: str, keys: tuple[str, ...]) -> float | None:
    for key in keys:
        pattern = rf'(?<![\w])"?{re.escape(key)}"?\s*[:=]\s*"?(-?\d+(?:\.\d+)?)'
        match = re.search(pattern, text, flags=re.IGNORECASE)
        if match:
            return max(float(match.group(1)), 0.0)
    return None


def _extract_string(text: str, keys: tuple[str, ...]) -> str | None:
    for key in keys:
        match = re.search(rf'"{re.escape(key)}"\s*:\s*"([^"\n]+)', text)
        if match:
            value = match.group(1).strip()
            if value:
                return value
    return None
