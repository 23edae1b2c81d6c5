"""Nutrition domain models."""

from dataclasses import asdict, dataclass, field


@dataclass(frozen=True)
class IngredientRecord:
    """Single ingredient of an analyzed meal."""

    name: str
    calories: float = 0.0
    protein_g: float = 0.0
    carbs_g: float = 0.0
    fats_g: float = 0.0
    fiber_g: float = 0.0
    sugar_g: float = 0.0
    sodium_mg: float = 0.0
    cholesterol_mg: float = 0.0
    estimated_portion_g: float | None = None
    glycemic_index: float | None = None
    insulin_index: float | None = None
    vitamins: dict[str, float] = field(default_factory=dict)
    micronutrients: dict[str, float] = field(default_factory=dict)
    allergens: tuple[str, ...] = ()
    emoji: str = ""
    color: str = ""


@dataclass(frozen=True)
class NutritionRecord:
    """Normalized nutrition facts for a whole meal."""

    name: str
    calories: float
    protein_g: float
    carbs_g: float
    fats_g: float
    fiber_g: float = 0.0
    sugar_g: float = 0.0
    sodium_mg: float = 0.0
    cholesterol_mg: float = 0.0
    saturated_fats_g: float = 0.0
    polyunsaturated_fats_g: float = 0.0
    monounsaturated_fats_g: float = 0.0
    omega_3_g: float = 0.0
    omega_6_g: float = 0.0
    soluble_fiber_g: float = 0.0
    insoluble_fiber_g: float = 0.0
    alcohol_g: float = 0.0
    caffeine_mg: float = 0.0
    liquids_ml: float = 0.0
    serving_size_g: float = 0.0
    vitamins: dict[str, float] = field(default_factory=dict)
    micronutrients: dict[str, float] = field(default_factory=dict)
    allergens: tuple[str, ...] = ()
    glycemic_index: float | None = None
    insulin_index: float | None = None
    confidence: int = 85
    ingredients: tuple[IngredientRecord, ...] = ()
    description: str = ""
    food_category: str = ""
    processing_level: str = ""
    cooking_method: str = ""
    health_notes: str = ""

    @property
    def macro_calories(self) -> float:
        """Calories implied by the macronutrients (4/4/9 kcal per gram)."""
        return self.protein_g * 4 + self.carbs_g * 4 + self.fats_g * 9

    def to_dict(self) -> dict[str, object]:
        """Return a plain mapping that normalizes back to the same record."""
        return asdict(self)


def calorie_deviation(record: NutritionRecord) -> float:
    """Relative gap between stated calories and macro-derived calories."""
    expected = record.macro_calories
    if expected == 0:
        return 0.0 if record.calories == 0 else 1.0
    return abs(record.calories - expected) / expected
