"""Grocery price estimation backed by the completion model and a price cache."""

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, replace

from nutrition_pipeline.domain.pricing import (
    MealPriceEstimate,
    MenuCostEstimate,
    MenuMeal,
    PriceConfidence,
    PriceEstimate,
    PriceRequestItem,
)
from nutrition_pipeline.services.cache import PriceCache, price_cache_key
from nutrition_pipeline.services.completion import (
    CompletionClient,
    classify_model_error,
)
from nutrition_pipeline.services.recovery import recover_json

_logger = logging.getLogger(__name__)

DEFAULT_INGREDIENT_PRICE = 5.0
DEFAULT_PRICE_PER_100G = 3.0
DEFAULT_BATCH_PRICE = 10.0
DEFAULT_MEAL_COST = 20.0

PRICING_SYSTEM_PROMPT = """You are a grocery pricing expert for Israeli supermarkets \
(Shufersal, Rami Levy, Victory, Mega). Estimate current retail prices in {currency}. \
Respond with ONLY valid JSON, no markdown and no explanations."""


@dataclass
class PricingService:
    """Estimate grocery prices, caching per-product answers."""

    client: CompletionClient | None
    cache: PriceCache
    model: str
    currency: str = "ILS"
    currency_symbol: str = "₪"
    batch_size: int = 50
    max_tokens: int = 800
    single_max_tokens: int = 150
    temperature: float = 0.3
    timeout_seconds: float = 30.0
    max_menu_ingredients: int = 50

    async def estimate_ingredient(self, item: PriceRequestItem) -> PriceEstimate:
        """Price one ingredient without touching the cache."""
        estimate = await self._request_single(item)
        if estimate is None:
            return self._ingredient_default(item.name)
        return estimate

    async def estimate_product(
        self, name: str, category: str = "general", quantity_g: float = 100.0
    ) -> PriceEstimate:
        """Price a product, serving repeat lookups from the cache."""
        key = price_cache_key(name, category)
        cached = self.cache.get(key)
        if cached is not None:
            _logger.debug("Price cache hit for %s", key)
            return _scaled(cached, quantity_g)

        item = PriceRequestItem(name=name, category=category, quantity=quantity_g)
        estimate = await self._request_single(item)
        if estimate is None:
            return self._ingredient_default(name)
        self.cache.put(key, _scaled(estimate, 100.0))
        return estimate

    async def batch_estimate_products(
        self, items: Sequence[PriceRequestItem]
    ) -> dict[str, PriceEstimate]:
        """Price many products, one model call per chunk of cache misses.

        Results are keyed by product name; when a name is requested under
        several categories, the first request decides which one is priced.
        Items the model does not answer for get a low-confidence default that
        is not cached.
        """
        requested: dict[str, PriceRequestItem] = {}
        for item in items:
            requested.setdefault(item.name, item)

        results: dict[str, PriceEstimate] = {}
        misses: dict[str, PriceRequestItem] = {}
        for item in requested.values():
            key = price_cache_key(item.name, item.category)
            cached = self.cache.get(key)
            if cached is not None:
                results[item.name] = _scaled(cached, item.quantity)
            elif key not in misses:
                misses[key] = item

        _logger.info(
            "Batch price lookup: %s cached, %s to estimate", len(results), len(misses)
        )
        pending = list(misses.values())
        for start in range(0, len(pending), max(self.batch_size, 1)):
            chunk = pending[start : start + max(self.batch_size, 1)]
            resolved = await self._request_batch(chunk)
            for item in chunk:
                estimate = resolved.get(item.name.strip().lower())
                if estimate is None:
                    results[item.name] = self._batch_default(item.name)
                    continue
                self.cache.put(price_cache_key(item.name, item.category), estimate)
                results[item.name] = _scaled(estimate, item.quantity)

        # Names that share a cache key with an estimated miss reuse its answer.
        for item in requested.values():
            if item.name not in results:
                key = price_cache_key(item.name, item.category)
                cached = self.cache.get(key)
                results[item.name] = (
                    _scaled(cached, item.quantity)
                    if cached is not None
                    else self._batch_default(item.name)
                )
        return results

    async def estimate_meal_price(
        self, ingredients: Sequence[PriceRequestItem]
    ) -> MealPriceEstimate:
        """Estimate the total cost of one meal's ingredients."""
        if not ingredients:
            return MealPriceEstimate(
                total_cost=0.0,
                currency=self.currency,
                ingredient_costs={},
                confidence=PriceConfidence.LOW,
            )

        listing = "\n".join(
            f"- {item.name}: {item.quantity:g} {item.unit}" for item in ingredients
        )
        prompt = (
            "Estimate the cost of these meal ingredients in Israeli supermarkets.\n"
            f"{listing}\n\n"
            'Respond with JSON: {"total_estimated_cost": number, '
            '"ingredient_costs": [{"name": string, "estimated_cost": number}], '
            '"confidence": "high" | "medium" | "low"}'
        )
        data = await self._request_json(prompt, self.max_tokens, "meal price")
        if isinstance(data, dict):
            costs = _named_costs(data.get("ingredient_costs"), "estimated_cost")
            total = _as_price(data.get("total_estimated_cost"))
            if total is None and costs:
                total = sum(costs.values())
            if total is not None:
                return MealPriceEstimate(
                    total_cost=round(total, 2),
                    currency=self.currency,
                    ingredient_costs=costs,
                    confidence=_confidence(data.get("confidence")),
                )

        costs = {item.name: DEFAULT_INGREDIENT_PRICE for item in ingredients}
        return MealPriceEstimate(
            total_cost=DEFAULT_INGREDIENT_PRICE * len(ingredients),
            currency=self.currency,
            ingredient_costs=costs,
            confidence=PriceConfidence.LOW,
        )

    async def estimate_menu_cost(self, meals: Sequence[MenuMeal]) -> MenuCostEstimate:
        """Estimate a menu's cost by pricing its unique ingredients once."""
        unique: dict[str, PriceRequestItem] = {}
        for meal in meals:
            for item in meal.ingredients:
                key = item.name.strip().lower()
                if key and key not in unique:
                    unique[key] = item
        selected = list(unique.values())[: self.max_menu_ingredients]

        prices: dict[str, float] | None = None
        confidence = PriceConfidence.LOW
        if selected:
            listing = "\n".join(
                f"- {item.name} ({item.quantity:g} {item.unit})" for item in selected
            )
            prompt = (
                "Estimate the price of each ingredient below in Israeli supermarkets.\n"
                f"{listing}\n\n"
                'Respond with JSON: {"ingredients": {"<name>": price}, '
                '"confidence": "high" | "medium" | "low"}'
            )
            data = await self._request_json(prompt, self.max_tokens, "menu cost")
            if isinstance(data, dict) and isinstance(data.get("ingredients"), dict):
                prices = {
                    str(name).strip().lower(): value
                    for name, raw in data["ingredients"].items()
                    if (value := _as_price(raw)) is not None
                }
                confidence = _confidence(data.get("confidence"))

        if prices is None:
            meal_costs = {meal.name: DEFAULT_MEAL_COST for meal in meals}
            return MenuCostEstimate(
                total_cost=DEFAULT_MEAL_COST * len(meals),
                currency=self.currency,
                meal_costs=meal_costs,
                ingredient_costs={},
                confidence=PriceConfidence.LOW,
            )

        ingredient_costs: dict[str, float] = {}
        meal_costs: dict[str, float] = {}
        for meal in meals:
            meal_total = 0.0
            for item in meal.ingredients:
                price = prices.get(item.name.strip().lower(), DEFAULT_INGREDIENT_PRICE)
                ingredient_costs[item.name] = price
                meal_total += price
            meal_costs[meal.name] = round(meal_total, 2)
        return MenuCostEstimate(
            total_cost=round(sum(meal_costs.values()), 2),
            currency=self.currency,
            meal_costs=meal_costs,
            ingredient_costs=ingredient_costs,
            confidence=confidence,
        )

    async def _request_single(self, item: PriceRequestItem) -> PriceEstimate | None:
        prompt = (
            f'Estimate the price of "{item.name}" (category: {item.category}, '
            f"quantity: {item.quantity:g} {item.unit}).\n"
            'Respond with JSON: {"estimated_price": number, "price_per_100g": number, '
            '"confidence": "high" | "medium" | "low", "price_range": string}'
        )
        data = await self._request_json(
            prompt, self.single_max_tokens, "ingredient price"
        )
        if not isinstance(data, dict):
            return None
        per_100g = _as_price(data.get("price_per_100g"))
        price = _as_price(data.get("estimated_price"))
        if per_100g is None and price is None:
            return None
        if per_100g is None:
            quantity = item.quantity if item.quantity > 0 else 100
            per_100g = price * 100 / quantity  # type: ignore[operator]
        if price is None:
            price = per_100g * item.quantity / 100
        price_range = data.get("price_range")
        return PriceEstimate(
            name=item.name,
            estimated_price=round(price, 2),
            price_per_100g=round(per_100g, 2),
            currency=self.currency,
            confidence=_confidence(data.get("confidence")),
            price_range=(
                price_range
                if isinstance(price_range, str) and price_range.strip()
                else self._price_range(price)
            ),
        )

    async def _request_batch(
        self, chunk: Sequence[PriceRequestItem]
    ) -> dict[str, PriceEstimate]:
        if self.client is None:
            return {}
        listing = "\n".join(f"- {item.name} ({item.category})" for item in chunk)
        prompt = (
            "Estimate the price per 100g of each product below.\n"
            f"{listing}\n\n"
            'Respond with a JSON array: [{"name": string, "price_per_100g": number, '
            '"confidence": "high" | "medium" | "low"}]'
        )
        data = await self._request_json(prompt, self.max_tokens, "batch price")
        if isinstance(data, dict):
            data = data.get("products") or data.get("items")
        if not isinstance(data, list):
            return {}

        resolved: dict[str, PriceEstimate] = {}
        for row in data:
            if not isinstance(row, dict) or not isinstance(row.get("name"), str):
                continue
            per_100g = _as_price(row.get("price_per_100g"))
            if per_100g is None:
                continue
            key = row["name"].strip().lower()
            resolved[key] = PriceEstimate(
                name=row["name"].strip(),
                estimated_price=round(per_100g, 2),
                price_per_100g=round(per_100g, 2),
                currency=self.currency,
                confidence=_confidence(row.get("confidence")),
                price_range=self._price_range(per_100g),
            )
        return resolved

    async def _request_json(
        self, prompt: str, max_tokens: int, action: str
    ) -> object | None:
        if self.client is None:
            return None
        messages = [
            {
                "role": "system",
                "content": PRICING_SYSTEM_PROMPT.format(currency=self.currency),
            },
            {"role": "user", "content": prompt},
        ]
        try:
            content = await self.client.complete(
                model=self.model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=self.temperature,
                timeout_seconds=self.timeout_seconds,
            )
        except Exception as exc:
            _logger.warning(
                "Price %s model call failed (kind=%s): %s",
                action,
                classify_model_error(exc),
                exc,
            )
            return None
        data = recover_json(content)
        if data is None:
            _logger.warning("Price %s response was not valid JSON", action)
        return data

    def _price_range(self, price: float) -> str:
        low = _round_half_up(price * 0.85)
        high = _round_half_up(price * 1.15)
        return f"{self.currency_symbol}{low}-{high}"

    def _ingredient_default(self, name: str) -> PriceEstimate:
        return PriceEstimate(
            name=name,
            estimated_price=DEFAULT_INGREDIENT_PRICE,
            price_per_100g=DEFAULT_PRICE_PER_100G,
            currency=self.currency,
            confidence=PriceConfidence.LOW,
            price_range=f"{self.currency_symbol}3-8",
        )

    def _batch_default(self, name: str) -> PriceEstimate:
        return PriceEstimate(
            name=name,
            estimated_price=DEFAULT_BATCH_PRICE,
            price_per_100g=DEFAULT_BATCH_PRICE,
            currency=self.currency,
            confidence=PriceConfidence.LOW,
            price_range=f"{self.currency_symbol}8-15",
        )


def _scaled(estimate: PriceEstimate, quantity_g: float) -> PriceEstimate:
    """Reprice a per-100g estimate for the requested quantity."""
    return replace(
        estimate,
        estimated_price=round(estimate.price_per_100g * quantity_g / 100, 2),
    )


def _named_costs(rows: object, value_key: str) -> dict[str, float]:
    costs: dict[str, float] = {}
    if not isinstance(rows, list):
        return costs
    for row in rows:
        if not isinstance(row, dict) or not isinstance(row.get("name"), str):
            continue
        value = _as_price(row.get(value_key))
        if value is not None:
            costs[row["name"]] = value
    return costs


def _as_price(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().lstrip("₪$").strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return number


def _confidence(value: object) -> PriceConfidence:
    try:
        return PriceConfidence(str(value).strip().lower())
    except ValueError:
        return PriceConfidence.MEDIUM


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)
