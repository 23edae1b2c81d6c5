"""Tests for the recovery parser."""

import json

from nutrition_pipeline.domain.parsing import ParsedMeal, ParseFailure, ParseTier
from nutrition_pipeline.services.normalizer import normalize_meal
from nutrition_pipeline.services.recovery import (
    DEFAULT_MEAL_NAME,
    PARTIAL_DEFAULTS,
    extract_partial_fields,
    ingredients_for_meal_name,
    is_refusal,
    mine_ingredients,
    parse_meal_response,
    recover_json,
    strip_code_fences,
)


def test_refusal_short_circuits_before_repair() -> None:
    raw = 'I\'m sorry, I cannot analyze this image. {"calories": 300}'

    result = parse_meal_response(raw)

    assert isinstance(result, ParseFailure)
    assert result.reason == "refusal"


def test_hebrew_refusal_detected() -> None:
    assert is_refusal("מצטער, אני לא יכול לנתח את התמונה")
    assert isinstance(parse_meal_response("מצטער, לא יכול"), ParseFailure)


def test_plain_text_is_not_refusal() -> None:
    assert not is_refusal('{"meal_name": "Toast", "calories": 200}')


def test_refusal_words_inside_string_values_are_not_refusals() -> None:
    raw = json.dumps(
        {
            "meal_name": "Burger",
            "calories": 650,
            "health_notes": "Portion size cannot be verified from the photo.",
        }
    )

    result = parse_meal_response(raw)

    assert isinstance(result, ParsedMeal)
    assert result.tier == ParseTier.STRICT
    assert result.fields["calories"] == 650


def test_prose_brace_before_json_parses_strictly() -> None:
    core = {
        "meal_name": "Pasta",
        "calories": 450,
        "ingredients": [{"name": "pasta", "calories": 300}],
    }
    raw = f"Values are per serving {{approx}}. {json.dumps(core)}"

    result = parse_meal_response(raw)

    assert isinstance(result, ParsedMeal)
    assert result.tier == ParseTier.STRICT
    assert result.fields == core


def test_prose_brace_before_truncated_json_is_repaired() -> None:
    raw = 'Estimate {rough}. {"meal_name": "Pasta", "calories": 450, "protein_g": 15'

    result = parse_meal_response(raw)

    assert isinstance(result, ParsedMeal)
    assert result.tier == ParseTier.REPAIRED
    assert result.fields["meal_name"] == "Pasta"
    assert result.fields["calories"] == 450


def test_recover_json_skips_prose_braces() -> None:
    text = 'Note {see below} then [{"name": "milk", "price_per_100g": 0.6}]'

    value = recover_json(text)

    assert value == [{"name": "milk", "price_per_100g": 0.6}]


def test_wrapped_json_parses_like_the_core_object() -> None:
    core = {"meal_name": "Toast", "calories": 200, "ingredients": [{"name": "bread"}]}
    raw = f"Here is the analysis:\n```json\n{json.dumps(core)}\n```\nEnjoy!"

    result = parse_meal_response(raw)

    assert isinstance(result, ParsedMeal)
    assert result.tier == ParseTier.STRICT
    assert result.fields == core


def test_fenced_json_parses_strictly() -> None:
    raw = '```json\n{"meal_name": "Soup", "calories": 150}\n```'

    result = parse_meal_response(raw)

    assert isinstance(result, ParsedMeal)
    assert result.tier == ParseTier.STRICT
    assert result.fields["meal_name"] == "Soup"


def test_unbalanced_delimiters_are_closed() -> None:
    raw = (
        '{"meal_name": "Salad", "ingredients": [{"name": "lettuce", "calories": 20}, '
        '{"name": "tomato"'
    )

    result = parse_meal_response(raw)

    assert isinstance(result, ParsedMeal)
    assert result.tier == ParseTier.REPAIRED
    assert result.fields["ingredients"] == [
        {"name": "lettuce", "calories": 20},
        {"name": "tomato"},
    ]
    assert json.loads(json.dumps(result.fields)) == result.fields


def test_truncated_pasta_keeps_calories() -> None:
    result = parse_meal_response('{"meal_name":"Pasta","calories":450,...')

    assert isinstance(result, ParsedMeal)
    assert result.tier == ParseTier.REPAIRED
    assert normalize_meal(result).calories == 450


def test_dangling_key_is_closed_with_null() -> None:
    result = parse_meal_response('{"meal_name":"Pasta","calories":450,"protein_g":')

    assert isinstance(result, ParsedMeal)
    assert result.fields["calories"] == 450
    assert result.fields["protein_g"] is None


def test_truncated_string_value_is_cut_back() -> None:
    result = parse_meal_response('{"meal_name": "Pasta", "calories": 450, "descr')

    assert isinstance(result, ParsedMeal)
    assert result.tier == ParseTier.REPAIRED
    assert result.fields == {"meal_name": "Pasta", "calories": 450}


def test_trailing_commas_removed() -> None:
    result = parse_meal_response('{"calories": 300, "allergens": ["gluten",],}')

    assert isinstance(result, ParsedMeal)
    assert result.fields == {"calories": 300, "allergens": ["gluten"]}


def test_python_literal_output_is_accepted() -> None:
    result = parse_meal_response(
        "{'meal_name': 'Soup', 'calories': 150, 'vegan': True}"
    )

    assert isinstance(result, ParsedMeal)
    assert result.tier == ParseTier.REPAIRED
    assert result.fields == {"meal_name": "Soup", "calories": 150, "vegan": True}


def test_mismatched_closer_closes_inner_levels() -> None:
    assert recover_json('{"a": [1, 2}') == {"a": [1, 2]}


def test_braces_inside_strings_are_ignored() -> None:
    value = recover_json('{"note": "use {curly} and [square]", "calories": 100')

    assert value == {"note": "use {curly} and [square]", "calories": 100}


def test_recover_json_handles_arrays() -> None:
    value = recover_json('Prices: [{"name": "milk", "price_per_100g": 0.6}')

    assert value == [{"name": "milk", "price_per_100g": 0.6}]


def test_recover_json_without_json_returns_none() -> None:
    assert recover_json("no structured data here") is None
    assert recover_json("") is None


def test_strip_code_fences() -> None:
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('{"a": 1}') == '{"a": 1}'


def test_partial_extraction_reads_loose_fields() -> None:
    raw = (
        'Result -> "meal_name": "Burger", calories: 650, protein: 30, fat: 35, '
        "confidence: 0.6"
    )

    result = parse_meal_response(raw)

    assert isinstance(result, ParsedMeal)
    assert result.tier == ParseTier.PARTIAL
    assert result.fields["meal_name"] == "Burger"
    assert result.fields["calories"] == 650
    assert result.fields["protein_g"] == 30
    assert result.fields["fats_g"] == 35
    assert result.fields["carbs_g"] == PARTIAL_DEFAULTS["carbs_g"]
    assert result.fields["confidence"] == 0.6
    assert "carbs_g" in result.notes
    assert result.fields["ingredients"] == [
        {"name": "Burger", "calories": 200, "protein_g": 10, "carbs_g": 25, "fats_g": 8}
    ]


def test_partial_extraction_defaults() -> None:
    fields, notes = extract_partial_fields("nothing useful")

    assert fields["meal_name"] == DEFAULT_MEAL_NAME
    assert fields["calories"] == PARTIAL_DEFAULTS["calories"]
    assert fields["confidence"] == 0.7
    assert "meal_name" in notes
    assert "calories" in notes


def test_partial_extraction_clamps_negative_numbers() -> None:
    fields, _ = extract_partial_fields('"calories": -120')

    assert fields["calories"] == 0


def test_mine_ingredients_from_truncated_array() -> None:
    text = (
        '{"meal_name": "Bowl", "ingredients": '
        '[{"name": "rice", "calories": 200}, "beans"'
    )

    assert mine_ingredients(text) == [
        {"name": "rice", "calories": 200},
        {"name": "beans"},
    ]


def test_mine_ingredients_from_food_vocabulary() -> None:
    ingredients = mine_ingredients("I can see chicken with rice on the plate")

    assert [item["name"] for item in ingredients] == ["chicken", "rice"]
    assert ingredients[0]["calories"] == 50


def test_meal_name_rules() -> None:
    pie = ingredients_for_meal_name("Apple Pie")
    assert pie is not None
    assert [item["name"] for item in pie] == ["pie crust", "fruit filling", "sugar"]
    assert ingredients_for_meal_name("Steak") is None
