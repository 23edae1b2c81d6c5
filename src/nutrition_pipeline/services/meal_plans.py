"""Weekly meal plan generation with a deterministic template fallback."""

import json
import logging
import random
from dataclasses import dataclass, field

from pydantic import ValidationError

from nutrition_pipeline.domain.meal_plan import (
    DAYS_IN_PLAN,
    WEEKDAYS,
    MealPlan,
    MealPlanRequest,
    PlanDay,
    PlanIngredient,
    PlanInstruction,
    PlannedMeal,
    ReplacementMealRequest,
    WeeklyNutritionSummary,
    meal_timings,
)
from nutrition_pipeline.services.completion import (
    CompletionClient,
    classify_model_error,
)
from nutrition_pipeline.services.recovery import recover_json

_logger = logging.getLogger(__name__)

MEAL_PLAN_SYSTEM_PROMPT = """You are an expert clinical nutritionist and meal plan \
designer. Create a complete 7-day meal plan as a single valid JSON object. Return ONLY \
the JSON, no markdown and no text outside the JSON.

- Total daily calories must be within 50 kcal of the target.
- calories = protein*4 + carbs*4 + fats*9 for every meal.
- Give realistic portions: grams for solids, ml for liquids.
- No meal should repeat more than twice in the week.
- Never include the user's allergens or excluded ingredients."""

REPLACEMENT_SYSTEM_PROMPT = """You are a nutritionist. Suggest one replacement \
meal with similar calories and macros. Return ONLY one JSON object with name, \
description, calories, protein_g, carbs_g, fats_g, fiber_g, sugar_g, sodium_mg, \
prep_time_minutes, ingredients [{name, quantity, unit, category}] and \
instructions [{step, text}]."""

# name, description, calories, protein, carbs, fats, prep minutes, ingredients
_TEMPLATE_OPTIONS: dict[str, tuple[tuple, ...]] = {
    "BREAKFAST": (
        (
            "Scrambled Eggs with Avocado Toast",
            "Protein-rich eggs with healthy fats from avocado",
            420, 22, 28, 24, 15,
            (
                ("eggs", 2, "piece", "Protein"),
                ("whole grain bread", 2, "slice", "Grains"),
                ("avocado", 0.5, "piece", "Fats"),
            ),
        ),
        (
            "Greek Yogurt with Berries",
            "High-protein yogurt with antioxidant-rich berries",
            280, 20, 25, 8, 5,
            (
                ("greek yogurt", 200, "g", "Dairy"),
                ("mixed berries", 100, "g", "Fruits"),
                ("honey", 1, "tbsp", "Sweeteners"),
            ),
        ),
        (
            "Oatmeal with Nuts and Banana",
            "Fiber-rich oats with protein from nuts",
            350, 12, 45, 14, 10,
            (
                ("rolled oats", 50, "g", "Grains"),
                ("banana", 1, "piece", "Fruits"),
                ("almonds", 30, "g", "Nuts"),
            ),
        ),
    ),
    "LUNCH": (
        (
            "Grilled Chicken Salad",
            "Lean protein with fresh vegetables",
            380, 35, 15, 20, 20,
            (
                ("chicken breast", 150, "g", "Protein"),
                ("mixed greens", 100, "g", "Vegetables"),
                ("olive oil", 2, "tbsp", "Fats"),
            ),
        ),
        (
            "Quinoa Buddha Bowl",
            "Complete protein quinoa with colorful vegetables",
            420, 18, 55, 15, 25,
            (
                ("quinoa", 80, "g", "Grains"),
                ("roasted vegetables", 200, "g", "Vegetables"),
                ("tahini", 2, "tbsp", "Fats"),
            ),
        ),
        (
            "Turkey and Hummus Wrap",
            "Lean protein with Mediterranean flavors",
            390, 28, 35, 16, 10,
            (
                ("whole wheat tortilla", 1, "piece", "Grains"),
                ("turkey breast", 120, "g", "Protein"),
                ("hummus", 3, "tbsp", "Legumes"),
            ),
        ),
    ),
    "DINNER": (
        (
            "Baked Salmon with Sweet Potato",
            "Omega-3 rich fish with complex carbohydrates",
            520, 40, 35, 22, 30,
            (
                ("salmon fillet", 150, "g", "Protein"),
                ("sweet potato", 200, "g", "Vegetables"),
                ("broccoli", 150, "g", "Vegetables"),
            ),
        ),
        (
            "Lentil Curry with Rice",
            "Plant-based protein with aromatic spices",
            450, 22, 65, 12, 35,
            (
                ("red lentils", 100, "g", "Legumes"),
                ("brown rice", 80, "g", "Grains"),
                ("coconut milk", 100, "ml", "Dairy"),
            ),
        ),
        (
            "Chicken Stir-fry with Vegetables",
            "Quick and nutritious one-pan meal",
            410, 32, 25, 18, 20,
            (
                ("chicken breast", 150, "g", "Protein"),
                ("mixed stir-fry vegetables", 200, "g", "Vegetables"),
                ("sesame oil", 1, "tbsp", "Fats"),
            ),
        ),
    ),
    "SNACK": (
        (
            "Apple with Peanut Butter",
            "Crunchy fruit with protein-rich spread",
            190, 5, 22, 9, 3,
            (
                ("apple", 1, "piece", "Fruits"),
                ("peanut butter", 1, "tbsp", "Fats"),
            ),
        ),
        (
            "Cottage Cheese with Cucumber",
            "Light high-protein snack",
            150, 14, 6, 6, 5,
            (
                ("cottage cheese", 120, "g", "Dairy"),
                ("cucumber", 100, "g", "Vegetables"),
            ),
        ),
        (
            "Hummus with Carrot Sticks",
            "Fiber-rich legumes with fresh vegetables",
            170, 6, 18, 8, 5,
            (
                ("hummus", 3, "tbsp", "Legumes"),
                ("carrots", 100, "g", "Vegetables"),
            ),
        ),
    ),
}

# name, description, calories, protein, carbs, fats
_REPLACEMENT_OPTIONS = (
    (
        "Healthy Protein Bowl",
        "A balanced meal with lean protein and vegetables",
        400, 30, 35, 15,
    ),
    (
        "Mediterranean Style Meal",
        "Fresh ingredients with Mediterranean flavors",
        450, 25, 40, 20,
    ),
    (
        "Asian Inspired Dish",
        "Light and flavorful with Asian cooking techniques",
        380, 28, 30, 18,
    ),
)

SHOPPING_TIPS = [
    "Plan your shopping list based on the weekly meals",
    "Buy seasonal produce for better prices and freshness",
    "Prepare proteins in bulk on weekends to save time",
]

MEAL_PREP_SUGGESTIONS = [
    "Cook grains in batches and store in the refrigerator",
    "Pre-cut vegetables for quick meal assembly",
    "Prepare protein sources in advance for easy cooking",
]

REPLACEMENT_REASON = (
    "Generated as a healthy alternative that meets your nutritional needs"
)


@dataclass(frozen=True)
class MealPlanOutcome:
    """Generated plan and whether it came from the template."""

    plan: MealPlan
    degraded: bool = False


@dataclass
class MealPlanService:
    """Generate weekly meal plans and single-meal replacements."""

    client: CompletionClient | None
    model: str
    max_tokens: int = 4096
    replacement_max_tokens: int = 1024
    temperature: float = 0.5
    timeout_seconds: float = 30.0
    rng: random.Random = field(default_factory=random.Random)

    async def generate(self, request: MealPlanRequest) -> MealPlanOutcome:
        """Return a 7-day plan; the template stands in for any model failure."""
        if self.client is None:
            _logger.info("No completion client configured, using template meal plan")
            return MealPlanOutcome(plan=template_meal_plan(request), degraded=True)

        messages = [
            {"role": "system", "content": MEAL_PLAN_SYSTEM_PROMPT},
            {"role": "user", "content": _plan_prompt(request)},
        ]
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
                "Meal plan model call failed (kind=%s): %s",
                classify_model_error(exc),
                exc,
            )
            return MealPlanOutcome(plan=template_meal_plan(request), degraded=True)

        plan = _parse_plan(content)
        if plan is None:
            return MealPlanOutcome(plan=template_meal_plan(request), degraded=True)
        _logger.info("Generated meal plan with %s days", len(plan.weekly_plan))
        return MealPlanOutcome(plan=plan)

    async def generate_replacement_meal(
        self, request: ReplacementMealRequest
    ) -> PlannedMeal:
        """Suggest an alternative for one planned meal."""
        current = request.current_meal
        if self.client is not None:
            messages = [
                {"role": "system", "content": REPLACEMENT_SYSTEM_PROMPT},
                {"role": "user", "content": _replacement_prompt(request)},
            ]
            try:
                content = await self.client.complete(
                    model=self.model,
                    messages=messages,
                    max_tokens=self.replacement_max_tokens,
                    temperature=self.temperature,
                    timeout_seconds=self.timeout_seconds,
                )
            except Exception as exc:
                _logger.warning(
                    "Replacement meal model call failed (kind=%s): %s",
                    classify_model_error(exc),
                    exc,
                )
            else:
                data = recover_json(content)
                if isinstance(data, dict):
                    data.setdefault("replacement_reason", REPLACEMENT_REASON)
                    data["meal_timing"] = current.meal_timing
                    data.setdefault("dietary_category", current.dietary_category)
                    try:
                        return PlannedMeal.model_validate(data)
                    except ValidationError as exc:
                        _logger.warning("Replacement meal failed validation: %s", exc)

        name, description, calories, protein, carbs, fats = self.rng.choice(
            _REPLACEMENT_OPTIONS
        )
        return PlannedMeal(
            name=name,
            description=description,
            meal_timing=current.meal_timing,
            dietary_category=current.dietary_category,
            prep_time_minutes=25,
            difficulty_level=2,
            calories=calories,
            protein_g=protein,
            carbs_g=carbs,
            fats_g=fats,
            fiber_g=8,
            sugar_g=5,
            sodium_mg=600,
            ingredients=[
                PlanIngredient(
                    name="Mixed healthy ingredients",
                    quantity=100,
                    unit="g",
                    category="Mixed",
                )
            ],
            instructions=[
                PlanInstruction(
                    step=1,
                    text="Prepare ingredients according to your dietary preferences",
                ),
                PlanInstruction(step=2, text="Cook using your preferred method"),
            ],
            replacement_reason=REPLACEMENT_REASON,
        )


def template_meal_plan(request: MealPlanRequest) -> MealPlan:
    """Build the deterministic fallback plan from the built-in meal options."""
    timings = meal_timings(request.meals_per_day, request.snacks_per_day)
    days = []
    for day_index, day in enumerate(WEEKDAYS):
        meals = []
        for timing in timings:
            options = _TEMPLATE_OPTIONS.get(timing) or _TEMPLATE_OPTIONS["SNACK"]
            meals.append(_template_meal(options[day_index % len(options)], timing))
        days.append(PlanDay(day=day, day_index=day_index, meals=meals))
    return MealPlan(
        weekly_plan=days,
        weekly_nutrition_summary=WeeklyNutritionSummary(
            avg_daily_calories=request.target_calories_daily,
            avg_daily_protein=request.target_protein_daily,
            avg_daily_carbs=request.target_carbs_daily,
            avg_daily_fats=request.target_fats_daily,
            goal_adherence_percentage=90,
        ),
        shopping_tips=list(SHOPPING_TIPS),
        meal_prep_suggestions=list(MEAL_PREP_SUGGESTIONS),
    )


def _template_meal(option: tuple, timing: str) -> PlannedMeal:
    name, description, calories, protein, carbs, fats, prep, ingredients = option
    return PlannedMeal(
        name=name,
        description=description,
        meal_timing=timing,
        dietary_category="BALANCED",
        prep_time_minutes=prep,
        difficulty_level=2,
        calories=calories,
        protein_g=protein,
        carbs_g=carbs,
        fats_g=fats,
        fiber_g=6,
        sugar_g=8,
        sodium_mg=500,
        ingredients=[
            PlanIngredient(name=item, quantity=quantity, unit=unit, category=category)
            for item, quantity, unit, category in ingredients
        ],
        instructions=[
            PlanInstruction(step=1, text=f"Prepare {name} according to recipe"),
            PlanInstruction(step=2, text="Cook ingredients as needed"),
            PlanInstruction(step=3, text="Serve and enjoy"),
        ],
    )


def _parse_plan(content: str) -> MealPlan | None:
    data = recover_json(content)
    if not isinstance(data, dict):
        _logger.warning("Meal plan response was not a JSON object")
        return None
    try:
        plan = MealPlan.model_validate(data)
    except ValidationError as exc:
        _logger.warning("Meal plan failed validation: %s", exc.error_count())
        return None
    if len(plan.weekly_plan) != DAYS_IN_PLAN:
        _logger.warning(
            "Meal plan has %s days, expected %s", len(plan.weekly_plan), DAYS_IN_PLAN
        )
        return None
    return plan


def _joined(values: list[str], empty: str) -> str:
    return ", ".join(values) if values else empty


def _plan_prompt(request: MealPlanRequest) -> str:
    timings = meal_timings(request.meals_per_day, request.snacks_per_day)
    example = {
        "weekly_plan": [
            {
                "day": "Sunday",
                "day_index": 0,
                "meals": [
                    {
                        "name": "meal name",
                        "description": "brief description",
                        "meal_timing": timings[0],
                        "dietary_category": "BALANCED",
                        "prep_time_minutes": 15,
                        "difficulty_level": 1,
                        "calories": 400,
                        "protein_g": 30,
                        "carbs_g": 35,
                        "fats_g": 15,
                        "fiber_g": 5,
                        "sugar_g": 8,
                        "sodium_mg": 400,
                        "ingredients": [
                            {
                                "name": "chicken breast",
                                "quantity": 150,
                                "unit": "g",
                                "category": "Protein",
                            }
                        ],
                        "instructions": [{"step": 1, "text": "instruction text"}],
                        "allergens": [],
                        "portion_multiplier": 1,
                        "is_optional": False,
                    }
                ],
            }
        ],
        "weekly_nutrition_summary": {
            "avg_daily_calories": request.target_calories_daily,
            "avg_daily_protein": request.target_protein_daily,
            "avg_daily_carbs": request.target_carbs_daily,
            "avg_daily_fats": request.target_fats_daily,
            "goal_adherence_percentage": 95,
        },
        "shopping_tips": ["tip"],
        "meal_prep_suggestions": ["suggestion"],
    }
    no_limits = "No restrictions"
    no_pref = "No preference"
    standard = "Standard kitchen"
    return "\n".join(
        [
            "Create a personalized 7-day meal plan for this user:",
            f"- Age: {request.age} | Weight: {request.weight_kg}kg | "
            f"Height: {request.height_cm}cm",
            f"- Goal: {request.main_goal}",
            f"- Activity: {request.physical_activity_level} | "
            f"Sport: {request.sport_frequency}",
            f"- Calories: {request.target_calories_daily:g} kcal",
            f"- Protein: {request.target_protein_daily:g}g | Carbs: "
            f"{request.target_carbs_daily:g}g | Fats: {request.target_fats_daily:g}g",
            f"- Meal timings: {', '.join(timings)}",
            f"- Allergies (NEVER include): {_joined(request.allergies, 'None')}",
            f"- Excluded ingredients: {_joined(request.excluded_ingredients, 'None')}",
            f"- Dietary preferences: {_joined(request.dietary_preferences, no_limits)}",
            f"- Texture preference: {request.meal_texture_preference or no_pref}",
            f"- Cooking skill: {request.cooking_skill_level}",
            f"- Available cooking time: {request.available_cooking_time}",
            f"- Kitchen equipment: {_joined(request.kitchen_equipment, standard)}",
            f"- Include leftovers: {'Yes' if request.include_leftovers else 'No'}",
            f"- Fixed meal times: {'Yes' if request.fixed_meal_times else 'No'}",
            f"- Meal rotation every: {request.rotation_frequency_days} days",
            "",
            f"Fill all 7 days, each with {len(timings)} meals, using this structure:",
            json.dumps(example),
        ]
    )


def _replacement_prompt(request: ReplacementMealRequest) -> str:
    current = request.current_meal
    no_limits = "No restrictions"
    return "\n".join(
        [
            f"Current meal: {current.name} ({current.meal_timing}), "
            f"{current.calories:g} kcal, protein {current.protein_g:g}g, "
            f"carbs {current.carbs_g:g}g, fats {current.fats_g:g}g",
            f"Reason for replacement: {request.reason or 'variety'}",
            f"Dietary preferences: {_joined(request.dietary_preferences, no_limits)}",
            f"Excluded ingredients: {_joined(request.excluded_ingredients, 'None')}",
            f"Allergies (NEVER include): {_joined(request.allergies, 'None')}",
        ]
    )
