"""Price estimation domain models."""

from dataclasses import dataclass
from enum import StrEnum


class PriceConfidence(StrEnum):
    """How much the estimate can be trusted."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class PriceEstimate:
    """Estimated retail price for a product or ingredient."""

    name: str
    estimated_price: float
    price_per_100g: float
    currency: str
    confidence: PriceConfidence
    price_range: str


@dataclass(frozen=True)
class PriceRequestItem:
    """Product to price, with the quantity the caller plans to buy."""

    name: str
    category: str = "general"
    quantity: float = 100.0
    unit: str = "g"


@dataclass(frozen=True)
class MealPriceEstimate:
    """Total cost estimate of the ingredients of one meal."""

    total_cost: float
    currency: str
    ingredient_costs: dict[str, float]
    confidence: PriceConfidence


@dataclass(frozen=True)
class MenuCostEstimate:
    """Cost estimate for a whole menu of meals."""

    total_cost: float
    currency: str
    meal_costs: dict[str, float]
    ingredient_costs: dict[str, float]
    confidence: PriceConfidence


@dataclass(frozen=True)
class MenuMeal:
    """Meal of a menu with the ingredients to price."""

    name: str
    ingredients: tuple[PriceRequestItem, ...]
