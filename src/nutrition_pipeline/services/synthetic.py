"""Synthetic meal estimates used when the model cannot be used."""

import random
from dataclasses import dataclass, field

from nutrition_pipeline.domain.nutrition import NutritionRecord
from nutrition_pipeline.services.normalizer import normalize_meal

SYNTHETIC_CONFIDENCE = 75

_TEXT = {
    "en": {
        "name": "Mixed Meal",
        "description": "Nutritious and balanced meal",
        "bread": "Meal with Bread",
        "meat": "Meat Meal",
        "salad": "Vegetable Salad",
        "carbs": "Carbohydrate Meal",
        "notes": "Healthy and balanced meal",
    },
    "he": {
        "name": "ארוחה מעורבת",
        "description": "ארוחה מזינה ומאוזנת",
        "bread": "ארוחה עם לחם",
        "meat": "ארוחת בשר",
        "salad": "סלט ירקות",
        "carbs": "ארוחת פחמימות",
        "notes": "ארוחה בריאה ומאוזנת",
    },
}

# (english name, hebrew name, calories, protein, carbs, fat)
_NOTE_INGREDIENTS = {
    "salad": (
        ("Lettuce", "חסה", 15, 1, 3, 0),
        ("Tomatoes", "עגבניות", 25, 1, 5, 0),
        ("Cucumber", "מלפפון", 12, 1, 3, 0),
        ("Olive oil", "שמן זית", 120, 0, 0, 14),
    ),
    "pasta": (
        ("Pasta", "פסטה", 220, 8, 44, 1),
        ("Tomato sauce", "רוטב עגבניות", 35, 2, 8, 0),
        ("Parmesan cheese", "פרמזן", 110, 10, 1, 7),
    ),
    "rice": (
        ("White rice", "אורז לבן", 180, 4, 37, 0),
        ("Steamed vegetables", "ירקות מבושלים", 35, 2, 7, 0),
        ("Chicken breast", "חזה עוף", 165, 31, 0, 4),
    ),
}

# (english name, hebrew name, calorie, protein, carbs, fat shares)
_DEFAULT_SPLIT = (
    ("chicken", "עוף", 0.4, 0.6, 0.2, 0.3),
    ("rice", "אורז", 0.3, 0.2, 0.6, 0.1),
    ("mixed vegetables", "ירקות מעורבים", 0.2, 0.15, 0.15, 0.1),
    ("olive oil", "שמן זית", 0.1, 0.0, 0.0, 0.5),
)


@dataclass
class SyntheticEstimator:
    """Produce plausible, bounded meal estimates without calling a model."""

    rng: random.Random = field(default_factory=random.Random)

    def estimate(
        self, note: str | None = None, *, locale: str = "en"
    ) -> NutritionRecord:
        """Return a normalized synthetic record, nudged by the user's note."""
        return normalize_meal(self.estimate_fields(note, locale=locale), locale=locale)

    def estimate_fields(
        self, note: str | None = None, *, locale: str = "en"
    ) -> dict[str, object]:
        """Return raw synthetic meal fields before normalization."""
        text = _TEXT.get(locale, _TEXT["en"])
        rng = self.rng
        meal: dict[str, object] = {
            "meal_name": text["name"],
            "description": text["description"],
            "calories": 420 + rng.randrange(200),
            "protein_g": 25 + rng.randrange(15),
            "carbs_g": 45 + rng.randrange(25),
            "fats_g": 15 + rng.randrange(10),
            "fiber_g": 8 + rng.randrange(6),
            "sugar_g": 12 + rng.randrange(8),
            "sodium_mg": 600 + rng.randrange(400),
            "confidence": SYNTHETIC_CONFIDENCE,
            "saturated_fats_g": 5 + rng.randrange(3),
            "polyunsaturated_fats_g": rng.uniform(3, 5),
            "monounsaturated_fats_g": rng.uniform(7, 10),
            "omega_3_g": rng.uniform(0.5, 1.3),
            "omega_6_g": rng.uniform(2, 3.5),
            "soluble_fiber_g": 3 + rng.randrange(2),
            "insoluble_fiber_g": 5 + rng.randrange(3),
            "cholesterol_mg": 25 + rng.randrange(50),
            "alcohol_g": 0,
            "caffeine_mg": rng.randrange(20),
            "liquids_ml": 50 + rng.randrange(100),
            "serving_size_g": 250 + rng.randrange(200),
            "glycemic_index": 45 + rng.randrange(25),
            "insulin_index": 40 + rng.randrange(30),
            "food_category": "Homemade",
            "processing_level": "Minimally processed",
            "cooking_method": "Mixed methods",
            "health_notes": text["notes"],
            "allergens": [],
            "vitamins": {
                "vitamin_a_mcg": 200 + rng.randrange(300),
                "vitamin_c_mg": 15 + rng.randrange(25),
                "vitamin_d_mcg": rng.uniform(2, 5),
                "vitamin_e_mg": rng.uniform(3, 8),
                "vitamin_k_mcg": 25 + rng.randrange(50),
                "vitamin_b12_mcg": rng.uniform(1, 3),
                "folate_mcg": 50 + rng.randrange(100),
                "niacin_mg": rng.uniform(5, 13),
                "thiamin_mg": rng.uniform(0.3, 0.8),
                "riboflavin_mg": rng.uniform(0.4, 1.0),
                "pantothenic_acid_mg": rng.uniform(1, 3),
                "vitamin_b6_mg": rng.uniform(0.5, 1.5),
            },
            "micronutrients": {
                "iron_mg": rng.uniform(3, 8),
                "magnesium_mg": 80 + rng.randrange(60),
                "zinc_mg": rng.uniform(2, 6),
                "calcium_mg": 150 + rng.randrange(200),
                "potassium_mg": 400 + rng.randrange(300),
                "phosphorus_mg": 200 + rng.randrange(150),
            },
        }
        lowered = (note or "").lower()
        if lowered:
            _apply_note(meal, lowered, text)
        meal["ingredients"] = _ingredients_for(meal, lowered, locale)
        return meal


def _apply_note(meal: dict[str, object], note: str, text: dict[str, str]) -> None:
    """Nudge totals by keywords in the user's note."""

    def has(*words: str) -> bool:
        return any(word in note for word in words)

    def add(key: str, amount: float) -> None:
        meal[key] = meal[key] + amount  # type: ignore[operator]

    def lower_to(key: str, amount: float, floor: float) -> None:
        meal[key] = max(floor, meal[key] - amount)  # type: ignore[operator]

    if has("toast", "bread"):
        add("carbs_g", 20)
        add("calories", 80)
        meal["meal_name"] = text["bread"]
    if has("butter", "oil"):
        add("fats_g", 10)
        add("calories", 90)
    if has("cheese", "dairy"):
        add("protein_g", 8)
        add("fats_g", 6)
        add("calories", 80)
    if has("big", "large", "גדול"):
        add("calories", 150)
        add("protein_g", 10)
        add("carbs_g", 15)
        add("fats_g", 8)
    if has("small", "little", "קטן"):
        lower_to("calories", 100, 200)
        lower_to("protein_g", 5, 10)
        lower_to("carbs_g", 10, 20)
        lower_to("fats_g", 5, 8)
    if has("meat", "chicken", "beef", "בשר"):
        add("protein_g", 15)
        add("fats_g", 5)
        meal["meal_name"] = text["meat"]
    if has("salad", "vegetable", "סלט"):
        lower_to("calories", 200, 150)
        lower_to("carbs_g", 20, 15)
        add("fiber_g", 5)
        meal["meal_name"] = text["salad"]
    if has("pasta", "rice", "bread", "פסטה", "אורז"):
        add("carbs_g", 20)
        add("calories", 100)
        meal["meal_name"] = text["carbs"]


def _ingredients_for(
    meal: dict[str, object], note: str, locale: str
) -> list[dict[str, object]]:
    """Pick ingredients biased by the note, else split the totals four ways."""
    use_hebrew = locale == "he"
    rows = next(
        (rows for keyword, rows in _NOTE_INGREDIENTS.items() if keyword in note), None
    )
    if rows is not None:
        return [
            _row(hebrew if use_hebrew else english, *values)
            for english, hebrew, *values in rows
        ]
    totals = [
        float(meal[key])  # type: ignore[arg-type]
        for key in ("calories", "protein_g", "carbs_g", "fats_g")
    ]
    ingredients = []
    for english, hebrew, *shares in _DEFAULT_SPLIT:
        values = [
            int(total * share) for total, share in zip(totals, shares, strict=True)
        ]
        ingredients.append(_row(hebrew if use_hebrew else english, *values))
    return ingredients


def _row(
    name: str, calories: float, protein: float, carbs: float, fat: float
) -> dict[str, object]:
    return {
        "name": name,
        "calories": calories,
        "protein_g": protein,
        "carbs_g": carbs,
        "fats_g": fat,
    }
