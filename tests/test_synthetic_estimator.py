"""Tests for the synthetic meal estimator."""

import random

from nutrition_pipeline.services.synthetic import (
    SYNTHETIC_CONFIDENCE,
    SyntheticEstimator,
)


def test_estimate_stays_within_ranges() -> None:
    for seed in range(20):
        record = SyntheticEstimator(rng=random.Random(seed)).estimate()

        assert 420 <= record.calories <= 619
        assert 25 <= record.protein_g <= 39
        assert 45 <= record.carbs_g <= 69
        assert 15 <= record.fats_g <= 24
        assert record.confidence == SYNTHETIC_CONFIDENCE
        assert [item.name for item in record.ingredients] == [
            "chicken",
            "rice",
            "mixed vegetables",
            "olive oil",
        ]


def test_same_seed_gives_same_estimate() -> None:
    first = SyntheticEstimator(rng=random.Random(42)).estimate("toast")
    second = SyntheticEstimator(rng=random.Random(42)).estimate("toast")

    assert first == second


def test_note_nudges_totals() -> None:
    plain = SyntheticEstimator(rng=random.Random(5)).estimate_fields()
    large = SyntheticEstimator(rng=random.Random(5)).estimate_fields("a large steak")

    assert large["calories"] == plain["calories"] + 150  # type: ignore[operator]
    assert large["protein_g"] == plain["protein_g"] + 10  # type: ignore[operator]


def test_salad_note_lowers_calories_and_picks_salad_ingredients() -> None:
    plain = SyntheticEstimator(rng=random.Random(9)).estimate_fields()
    salad = SyntheticEstimator(rng=random.Random(9)).estimate_fields("green salad")

    assert salad["meal_name"] == "Vegetable Salad"
    plain_calories = plain["calories"]
    assert isinstance(plain_calories, int | float)
    assert salad["calories"] == max(150, plain_calories - 200)
    assert salad["fiber_g"] == plain["fiber_g"] + 5  # type: ignore[operator]
    names = [row["name"] for row in salad["ingredients"]]  # type: ignore[union-attr]
    assert names == [
        "Lettuce",
        "Tomatoes",
        "Cucumber",
        "Olive oil",
    ]


def test_hebrew_estimate_uses_hebrew_names() -> None:
    record = SyntheticEstimator(rng=random.Random(1)).estimate("אורז", locale="he")

    assert record.name == "ארוחת פחמימות"
    assert record.ingredients[0].name == "עוף"
