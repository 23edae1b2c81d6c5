"""Tests for grocery price estimation."""

import asyncio
import json

import httpx
import openai

from nutrition_pipeline.domain.pricing import (
    MenuMeal,
    PriceConfidence,
    PriceRequestItem,
)
from nutrition_pipeline.services.cache import PriceCache, price_cache_key
from nutrition_pipeline.services.pricing import PricingService
from tests.conftest import FakeClock, FakeCompletionClient


def _service(
    client: FakeCompletionClient | None, batch_size: int = 50
) -> PricingService:
    return PricingService(
        client=client,
        cache=PriceCache(clock=FakeClock()),
        model="gpt-4o-mini",
        batch_size=batch_size,
    )


def _batch_reply(names: list[str]) -> str:
    return json.dumps(
        [
            {"name": name, "price_per_100g": index + 1, "confidence": "high"}
            for index, name in enumerate(names)
        ]
    )


def test_batch_of_unseen_items_uses_one_call() -> None:
    names = [f"Item {index}" for index in range(25)]
    client = FakeCompletionClient(responses=[_batch_reply([n.lower() for n in names])])
    service = _service(client)

    results = asyncio.run(
        service.batch_estimate_products([PriceRequestItem(name=n) for n in names])
    )

    assert len(client.calls) == 1
    assert len(service.cache) == 25
    assert results["Item 0"].price_per_100g == 1
    assert results["Item 24"].estimated_price == 25
    assert results["Item 24"].confidence == PriceConfidence.HIGH
    assert results["Item 9"].price_range == "₪9-12"


def test_batch_repeat_is_served_from_cache() -> None:
    names = ["Milk", "Eggs"]
    client = FakeCompletionClient(responses=[_batch_reply(names)])
    service = _service(client)
    items = [PriceRequestItem(name=n, category="dairy") for n in names]

    asyncio.run(service.batch_estimate_products(items))
    again = asyncio.run(
        service.batch_estimate_products(
            [PriceRequestItem(name="milk", category="Dairy", quantity=250)]
        )
    )

    assert len(client.calls) == 1
    assert again["milk"].estimated_price == 2.5


def test_batch_unanswered_items_get_uncached_default() -> None:
    client = FakeCompletionClient(responses=[_batch_reply(["Bread"])])
    service = _service(client)

    results = asyncio.run(
        service.batch_estimate_products(
            [PriceRequestItem(name="Bread"), PriceRequestItem(name="Saffron")]
        )
    )

    assert results["Saffron"].estimated_price == 10
    assert results["Saffron"].confidence == PriceConfidence.LOW
    assert results["Saffron"].price_range == "₪8-15"
    assert service.cache.get(price_cache_key("Saffron", "general")) is None
    assert service.cache.get(price_cache_key("Bread", "general")) is not None


def test_batch_name_under_two_categories_prices_the_first() -> None:
    client = FakeCompletionClient(responses=[_batch_reply(["Feta"])])
    service = _service(client)

    results = asyncio.run(
        service.batch_estimate_products(
            [
                PriceRequestItem(name="Feta", category="dairy"),
                PriceRequestItem(name="Feta", category="cheese"),
            ]
        )
    )

    assert len(client.calls) == 1
    prompt = str(client.calls[0]["messages"])
    assert "Feta (dairy)" in prompt
    assert "Feta (cheese)" not in prompt
    assert list(results) == ["Feta"]
    assert results["Feta"].price_per_100g == 1
    assert service.cache.get(price_cache_key("Feta", "dairy")) is not None
    assert service.cache.get(price_cache_key("Feta", "cheese")) is None


def test_batch_is_chunked() -> None:
    names = [f"p{index}" for index in range(25)]
    client = FakeCompletionClient(default=_batch_reply(names))
    service = _service(client, batch_size=10)

    items = [PriceRequestItem(name=name) for name in names]
    asyncio.run(service.batch_estimate_products(items))

    assert len(client.calls) == 3
    assert len(service.cache) == 25


def test_batch_failure_falls_back_to_defaults() -> None:
    error = openai.APIError(
        "boom", request=httpx.Request("POST", "https://api.openai.com"), body=None
    )
    client = FakeCompletionClient(responses=[error])
    service = _service(client)

    items = [PriceRequestItem(name="Tea")]
    results = asyncio.run(service.batch_estimate_products(items))

    assert results["Tea"].estimated_price == 10
    assert len(service.cache) == 0


def test_batch_without_client_makes_no_calls() -> None:
    service = _service(None)

    items = [PriceRequestItem(name="Tea")]
    results = asyncio.run(service.batch_estimate_products(items))

    assert results["Tea"].confidence == PriceConfidence.LOW
    assert len(service.cache) == 0


def test_estimate_product_caches_per_100g_price() -> None:
    reply = json.dumps(
        {
            "estimated_price": 12,
            "price_per_100g": 1.2,
            "confidence": "medium",
            "price_range": "₪10-14",
        }
    )
    client = FakeCompletionClient(responses=[reply])
    service = _service(client)

    first = asyncio.run(service.estimate_product("Rice", "grains", 1000))
    second = asyncio.run(service.estimate_product("rice", "Grains", 500))

    assert first.estimated_price == 12
    assert first.price_range == "₪10-14"
    assert second.estimated_price == 6
    assert second.confidence == PriceConfidence.MEDIUM
    assert len(client.calls) == 1


def test_estimate_product_failure_is_not_cached() -> None:
    client = FakeCompletionClient(responses=["no idea"])
    service = _service(client)

    estimate = asyncio.run(service.estimate_product("Caviar"))

    assert estimate.estimated_price == 5
    assert estimate.price_per_100g == 3
    assert estimate.price_range == "₪3-8"
    assert len(service.cache) == 0


def test_estimate_ingredient_bypasses_cache() -> None:
    reply = json.dumps(
        {"estimated_price": 4, "price_per_100g": 2, "confidence": "bogus"}
    )
    client = FakeCompletionClient(default=reply)
    service = _service(client)
    item = PriceRequestItem(name="Carrots", quantity=200)

    asyncio.run(service.estimate_ingredient(item))
    estimate = asyncio.run(service.estimate_ingredient(item))

    assert len(client.calls) == 2
    assert len(service.cache) == 0
    assert estimate.confidence == PriceConfidence.MEDIUM
    assert estimate.price_range == "₪3-5"
    assert client.calls[0]["max_tokens"] == 150


def test_meal_price_from_model() -> None:
    reply = json.dumps(
        {
            "total_estimated_cost": 18.5,
            "ingredient_costs": [
                {"name": "chicken", "estimated_cost": 14},
                {"name": "rice", "estimated_cost": 4.5},
            ],
            "confidence": "high",
        }
    )
    service = _service(FakeCompletionClient(responses=[reply]))

    estimate = asyncio.run(
        service.estimate_meal_price(
            [
                PriceRequestItem(name="chicken", quantity=150),
                PriceRequestItem(name="rice"),
            ]
        )
    )

    assert estimate.total_cost == 18.5
    assert estimate.ingredient_costs == {"chicken": 14, "rice": 4.5}
    assert estimate.confidence == PriceConfidence.HIGH


def test_meal_price_defaults() -> None:
    client = FakeCompletionClient(responses=[TimeoutError("slow")])
    service = _service(client)

    empty = asyncio.run(service.estimate_meal_price([]))
    fallback = asyncio.run(
        service.estimate_meal_price(
            [PriceRequestItem(name="a"), PriceRequestItem(name="b")]
        )
    )

    assert empty.total_cost == 0
    assert fallback.total_cost == 10
    assert fallback.confidence == PriceConfidence.LOW
    assert len(client.calls) == 1


def test_menu_cost_prices_unique_ingredients_once() -> None:
    reply = json.dumps(
        {"ingredients": {"Chicken": 20, "rice": 4}, "confidence": "medium"}
    )
    client = FakeCompletionClient(responses=[reply])
    service = _service(client)
    chicken = PriceRequestItem(name="chicken")
    meals = [
        MenuMeal(name="Lunch", ingredients=(chicken, PriceRequestItem(name="rice"))),
        MenuMeal(name="Dinner", ingredients=(chicken, PriceRequestItem(name="kale"))),
    ]

    estimate = asyncio.run(service.estimate_menu_cost(meals))

    assert len(client.calls) == 1
    prompt = client.calls[0]["messages"][1]["content"]
    assert prompt.count("chicken") == 1
    assert estimate.meal_costs == {"Lunch": 24, "Dinner": 25}
    assert estimate.total_cost == 49
    assert estimate.ingredient_costs["kale"] == 5
    assert estimate.confidence == PriceConfidence.MEDIUM


def test_menu_cost_falls_back_per_meal() -> None:
    service = _service(FakeCompletionClient(responses=["not json"]))
    meals = [
        MenuMeal(name="Lunch", ingredients=(PriceRequestItem(name="x"),)),
        MenuMeal(name="Dinner", ingredients=()),
    ]

    estimate = asyncio.run(service.estimate_menu_cost(meals))

    assert estimate.total_cost == 40
    assert estimate.meal_costs == {"Lunch": 20, "Dinner": 20}
    assert estimate.confidence == PriceConfidence.LOW
