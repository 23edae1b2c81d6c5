"""Tests for the nutrition normalizer."""

import math
from dataclasses import fields

from nutrition_pipeline.domain.nutrition import IngredientRecord, NutritionRecord
from nutrition_pipeline.domain.parsing import ParsedMeal, ParseTier
from nutrition_pipeline.services.normalizer import (
    DEFAULT_CONFIDENCE,
    EDITED_CONFIDENCE,
    normalize_confidence,
    normalize_ingredient,
    normalize_meal,
    overlay_fields,
)


def _numeric_values(record: NutritionRecord) -> list[float]:
    values = []
    for item in fields(record):
        value = getattr(record, item.name)
        if isinstance(value, float | int) and not isinstance(value, bool):
            values.append(value)
    values.extend(record.vitamins.values())
    values.extend(record.micronutrients.values())
    return values


def test_normalize_is_idempotent() -> None:
    record = normalize_meal(
        {
            "meal_name": "Chicken Bowl",
            "calories": "520",
            "protein": 40,
            "carbs_g": 45.5,
            "fat": 18,
            "vitamins": {"vitamin_c_mg": 12},
            "allergens": ["sesame", "sesame"],
            "confidence": 0.82,
            "glycemic_index": 50,
            "ingredients": [
                {"name": "chicken", "calories": 300, "protein_g": 35, "portion_g": 150},
                "rice",
            ],
        }
    )

    again = normalize_meal(record.to_dict())

    assert again == record
    assert record.allergens == ("sesame",)
    assert record.confidence == 82


def test_all_numerics_are_non_negative() -> None:
    record = normalize_meal(
        {
            "meal_name": "Odd",
            "calories": -50,
            "protein_g": "abc",
            "carbs_g": float("nan"),
            "fats_g": float("inf"),
            "sodium_mg": None,
            "omega_3_g": -1,
            "vitamins": {"vitamin_a_mcg": -3, "iron": "x"},
            "ingredients": [{"name": "mystery", "calories": -10}],
        }
    )

    values = _numeric_values(record)
    assert all(math.isfinite(value) and value >= 0 for value in values)
    assert record.calories == 0
    assert record.ingredients[0].calories == 0


def test_missing_totals_are_summed_from_ingredients() -> None:
    record = normalize_meal(
        {
            "meal_name": "Plate",
            "ingredients": [
                {"name": "egg", "calories": 70, "protein_g": 6},
                {"name": "toast", "calories": 90, "carbs_g": 15},
            ],
        }
    )

    assert record.calories == 160
    assert record.protein_g == 6
    assert record.carbs_g == 15


def test_stated_totals_win_over_ingredient_sums() -> None:
    record = normalize_meal(
        {
            "meal_name": "Plate",
            "calories": 500,
            "ingredients": [{"name": "egg", "calories": 70}],
        }
    )

    assert record.calories == 500


def test_edited_ingredients_give_exact_sums() -> None:
    edited = [
        {"name": "Chicken", "calories": 231.5, "protein_g": 43.4, "fats_g": 5},
        {"name": "Rice", "calories": 206, "carbs_g": 45, "fiber_g": 0.6},
        IngredientRecord(
            name="Broccoli", calories=55, protein_g=3.7, carbs_g=11, fiber_g=5
        ),
    ]
    parsed = ParsedMeal(
        fields={"meal_name": "Model name", "calories": 999}, tier=ParseTier.STRICT
    )

    record = normalize_meal(parsed, edited)

    assert record.calories == 231.5 + 206 + 55
    assert record.protein_g == 43.4 + 3.7
    assert record.carbs_g == 45 + 11
    assert record.name == "Meal with Chicken and Rice"
    assert record.confidence == EDITED_CONFIDENCE
    assert record.health_notes == "High in protein."
    assert [item.name for item in record.ingredients] == ["Chicken", "Rice", "Broccoli"]


def test_edited_ingredients_hebrew_name() -> None:
    record = normalize_meal({}, [{"name": "עוף"}, {"name": "אורז"}], locale="he")

    assert record.name == "ארוחה עם עוף ואורז"


def test_nameless_edited_ingredient_still_counts() -> None:
    record = normalize_meal(
        {"calories": 999},
        [{"name": "rice", "calories": 200}, {"name": "", "calories": 100}],
    )

    assert record.calories == 300
    assert [item.name for item in record.ingredients] == [
        "rice",
        "Unknown ingredient",
    ]


def test_totals_and_extended_fields_cover_the_same_rows() -> None:
    record = normalize_meal({}, [{"calories": 100, "saturated_fats_g": 5}])

    assert record.calories == 100
    assert record.saturated_fats_g == 5
    assert len(record.ingredients) == 1


def test_nameless_edited_ingredient_hebrew_label() -> None:
    record = normalize_meal({}, [{"calories": 80}], locale="he")

    assert record.ingredients[0].name == "רכיב לא ידוע"
    assert record.calories == 80


def test_missing_ingredients_synthesized_by_meal_name() -> None:
    record = normalize_meal({"meal_name": "Greek Salad", "calories": 130})

    assert [item.name for item in record.ingredients] == [
        "lettuce",
        "tomato & cucumber",
        "olive oil dressing",
    ]


def test_missing_ingredients_split_sixty_forty() -> None:
    record = normalize_meal(
        {
            "meal_name": "Stew",
            "calories": 500,
            "protein_g": 31,
            "carbs_g": 40,
            "fats_g": 20,
        }
    )

    main, sides = record.ingredients
    assert main.name == "Stew"
    assert sides.name == "Stew sides"
    assert main.calories == 300
    assert sides.calories == 200
    assert main.protein_g == 18
    assert sides.protein_g == 12


def test_ingredient_gets_emoji_and_color() -> None:
    item = normalize_ingredient({"ingredient": "Chicken breast", "kcal": 165})

    assert item is not None
    assert item.name == "Chicken breast"
    assert item.calories == 165
    assert item.emoji == "🍗"
    assert item.color.startswith("#")


def test_ingredient_without_name_is_dropped() -> None:
    assert normalize_ingredient({"calories": 100}) is None
    assert normalize_ingredient(42) is None


def test_confidence_scales() -> None:
    assert normalize_confidence(0.85) == 85
    assert normalize_confidence("0.5") == 50
    assert normalize_confidence(90) == 90
    assert normalize_confidence(1) == 1
    assert normalize_confidence(250) == 100
    assert normalize_confidence(-5) == 0
    assert normalize_confidence(None) == DEFAULT_CONFIDENCE
    assert normalize_confidence("high") == DEFAULT_CONFIDENCE


def test_overlay_replaces_alias_groups() -> None:
    base = {"meal_name": "Toast", "calories": 200, "ingredients": [{"name": "bread"}]}
    update = {"name": "Big Toast", "calories": 300, "protein": None}

    merged = overlay_fields(base, update)

    assert "meal_name" not in merged
    assert merged["name"] == "Big Toast"
    assert merged["calories"] == 300
    assert "ingredients" not in merged


def test_overlay_keeps_ingredients_when_totals_unchanged() -> None:
    base = {"meal_name": "Toast", "calories": 200, "ingredients": [{"name": "bread"}]}

    merged = overlay_fields(base, {"meal_name": "Rye Toast"})

    assert merged["ingredients"] == [{"name": "bread"}]
    assert merged["meal_name"] == "Rye Toast"
