"""Meal plan request and response models."""

import math

from pydantic import BaseModel, Field, field_validator

from nutrition_pipeline.domain.nutrition import NutritionRecord
from nutrition_pipeline.services.normalizer import normalize_meal

DAYS_IN_PLAN = 7
WEEKDAYS = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)


def _non_negative(value: object) -> object:
    """Coerce numeric-looking input to a non-negative float."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return max(number, 0.0)


class PlanIngredient(BaseModel):
    """Ingredient line of a planned meal."""

    name: str
    quantity: float = 0.0
    unit: str = "g"
    category: str = ""

    _clamp_quantity = field_validator("quantity", mode="before")(_non_negative)


class PlanInstruction(BaseModel):
    """Single preparation step."""

    step: int
    text: str


class PlannedMeal(BaseModel):
    """One meal slot in a plan."""

    name: str
    description: str = ""
    meal_timing: str = "LUNCH"
    dietary_category: str = "BALANCED"
    prep_time_minutes: float = 0.0
    difficulty_level: int = Field(default=2, ge=1, le=5)
    calories: float = 0.0
    protein_g: float = 0.0
    carbs_g: float = 0.0
    fats_g: float = 0.0
    fiber_g: float = 0.0
    sugar_g: float = 0.0
    sodium_mg: float = 0.0
    ingredients: list[PlanIngredient] = Field(default_factory=list)
    instructions: list[PlanInstruction] = Field(default_factory=list)
    allergens: list[str] = Field(default_factory=list)
    portion_multiplier: float = 1.0
    is_optional: bool = False
    replacement_reason: str | None = None

    _clamp_numbers = field_validator(
        "prep_time_minutes",
        "calories",
        "protein_g",
        "carbs_g",
        "fats_g",
        "fiber_g",
        "sugar_g",
        "sodium_mg",
        "portion_multiplier",
        mode="before",
    )(_non_negative)

    def to_record(self) -> NutritionRecord:
        """Return the meal as a normalized nutrition record."""
        return normalize_meal(
            {
                "meal_name": self.name,
                "description": self.description,
                "calories": self.calories,
                "protein_g": self.protein_g,
                "carbs_g": self.carbs_g,
                "fats_g": self.fats_g,
                "fiber_g": self.fiber_g,
                "sugar_g": self.sugar_g,
                "sodium_mg": self.sodium_mg,
                "allergens": self.allergens,
                "confidence": 90,
            }
        )


class PlanDay(BaseModel):
    """All meals of one day."""

    day: str
    day_index: int = Field(ge=0, lt=DAYS_IN_PLAN)
    meals: list[PlannedMeal] = Field(min_length=1)


class WeeklyNutritionSummary(BaseModel):
    """Average daily intake the plan aims for."""

    avg_daily_calories: float = 0.0
    avg_daily_protein: float = 0.0
    avg_daily_carbs: float = 0.0
    avg_daily_fats: float = 0.0
    goal_adherence_percentage: float = Field(default=90.0, ge=0, le=100)

    _clamp_numbers = field_validator(
        "avg_daily_calories",
        "avg_daily_protein",
        "avg_daily_carbs",
        "avg_daily_fats",
        mode="before",
    )(_non_negative)


class MealPlan(BaseModel):
    """Seven-day meal plan."""

    weekly_plan: list[PlanDay]
    weekly_nutrition_summary: WeeklyNutritionSummary = Field(
        default_factory=WeeklyNutritionSummary
    )
    shopping_tips: list[str] = Field(default_factory=list)
    meal_prep_suggestions: list[str] = Field(default_factory=list)


class MealPlanRequest(BaseModel):
    """User profile and constraints for plan generation."""

    age: int | None = Field(default=None, ge=0)
    weight_kg: float | None = Field(default=None, ge=0)
    height_cm: float | None = Field(default=None, ge=0)
    main_goal: str = "general health"
    physical_activity_level: str = "moderate"
    sport_frequency: str = "none"
    target_calories_daily: float = Field(default=2000, ge=0)
    target_protein_daily: float = Field(default=120, ge=0)
    target_carbs_daily: float = Field(default=220, ge=0)
    target_fats_daily: float = Field(default=70, ge=0)
    meals_per_day: int = Field(default=3, ge=1, le=3)
    snacks_per_day: int = Field(default=0, ge=0, le=3)
    allergies: list[str] = Field(default_factory=list)
    excluded_ingredients: list[str] = Field(default_factory=list)
    dietary_preferences: list[str] = Field(default_factory=list)
    meal_texture_preference: str | None = None
    cooking_skill_level: str = "intermediate"
    available_cooking_time: str = "30 minutes"
    kitchen_equipment: list[str] = Field(default_factory=list)
    include_leftovers: bool = False
    fixed_meal_times: bool = False
    rotation_frequency_days: int = Field(default=7, ge=1)


class ReplacementMealRequest(BaseModel):
    """Request to swap a single planned meal for an alternative."""

    current_meal: PlannedMeal
    reason: str | None = None
    dietary_preferences: list[str] = Field(default_factory=list)
    excluded_ingredients: list[str] = Field(default_factory=list)
    allergies: list[str] = Field(default_factory=list)


def meal_timings(meals_per_day: int, snacks_per_day: int) -> list[str]:
    """Return the meal slots for a day in serving order."""
    timings = ["BREAKFAST", "LUNCH", "DINNER"][:meals_per_day]
    snacks = ["MORNING_SNACK", "AFTERNOON_SNACK", "EVENING_SNACK"][:snacks_per_day]
    return timings + snacks
