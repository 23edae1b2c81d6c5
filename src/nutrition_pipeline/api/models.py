"""Pydantic request and response models for the HTTP API."""

from pydantic import BaseModel, Field

from nutrition_pipeline.domain.chat import ChatContext, ChatTurn
from nutrition_pipeline.domain.meal_plan import MealPlan
from nutrition_pipeline.domain.pricing import (
    MealPriceEstimate,
    MenuCostEstimate,
    PriceEstimate,
    PriceRequestItem,
)
from nutrition_pipeline.services.analysis import AnalysisOutcome


class ImageAnalysisRequest(BaseModel):
    """Meal photo to analyze."""

    image_base64: str
    note: str | None = None
    edited_ingredients: list[dict[str, object]] | None = None
    language: str | None = None


class TextAnalysisRequest(BaseModel):
    """Free-text meal description to analyze."""

    description: str
    edited_ingredients: list[dict[str, object]] | None = None
    language: str | None = None


class UpdateAnalysisRequest(BaseModel):
    """Correction to apply to a previous analysis."""

    analysis: dict[str, object]
    update_text: str
    language: str | None = None


class AnalysisResponse(BaseModel):
    """Nutrition record with how it was obtained."""

    status: str
    tier: str
    reason: str | None = None
    data: dict[str, object]

    @classmethod
    def from_outcome(cls, outcome: AnalysisOutcome) -> "AnalysisResponse":
        """Build a response from a service outcome."""
        return cls(
            status=str(outcome.status),
            tier=str(outcome.tier),
            reason=str(outcome.reason) if outcome.reason else None,
            data=outcome.record.to_dict(),
        )


class MealPlanResponse(BaseModel):
    """Generated plan; ``degraded`` marks the template fallback."""

    degraded: bool
    plan: MealPlan


class ChatRequest(BaseModel):
    """User message with optional personalization."""

    message: str
    context: ChatContext | None = None
    history: list[ChatTurn] = Field(default_factory=list)
    language: str | None = None


class PriceItemModel(BaseModel):
    """Product to price."""

    name: str = Field(min_length=1)
    category: str = "general"
    quantity: float = Field(default=100.0, gt=0)
    unit: str = "g"

    def to_item(self) -> PriceRequestItem:
        """Convert to the domain request item."""
        return PriceRequestItem(
            name=self.name,
            category=self.category,
            quantity=self.quantity,
            unit=self.unit,
        )


class BatchPriceRequest(BaseModel):
    """Products to price in one request."""

    items: list[PriceItemModel] = Field(min_length=1)


class MealPriceRequest(BaseModel):
    """Ingredients of one meal."""

    ingredients: list[PriceItemModel] = Field(default_factory=list)


class MenuMealModel(BaseModel):
    """Meal of a menu to price."""

    name: str
    ingredients: list[PriceItemModel] = Field(default_factory=list)


class MenuCostRequest(BaseModel):
    """Meals of a menu to price."""

    meals: list[MenuMealModel] = Field(default_factory=list)


class PriceResponse(BaseModel):
    """Price estimate for one product."""

    name: str
    estimated_price: float
    price_per_100g: float
    currency: str
    confidence: str
    price_range: str

    @classmethod
    def from_estimate(cls, estimate: PriceEstimate) -> "PriceResponse":
        """Build a response from a domain estimate."""
        return cls(
            name=estimate.name,
            estimated_price=estimate.estimated_price,
            price_per_100g=estimate.price_per_100g,
            currency=estimate.currency,
            confidence=str(estimate.confidence),
            price_range=estimate.price_range,
        )


class MealPriceResponse(BaseModel):
    """Cost estimate for one meal."""

    total_cost: float
    currency: str
    ingredient_costs: dict[str, float]
    confidence: str

    @classmethod
    def from_estimate(cls, estimate: MealPriceEstimate) -> "MealPriceResponse":
        """Build a response from a domain estimate."""
        return cls(
            total_cost=estimate.total_cost,
            currency=estimate.currency,
            ingredient_costs=estimate.ingredient_costs,
            confidence=str(estimate.confidence),
        )


class MenuCostResponse(BaseModel):
    """Cost estimate for a menu."""

    total_cost: float
    currency: str
    meal_costs: dict[str, float]
    ingredient_costs: dict[str, float]
    confidence: str

    @classmethod
    def from_estimate(cls, estimate: MenuCostEstimate) -> "MenuCostResponse":
        """Build a response from a domain estimate."""
        return cls(
            total_cost=estimate.total_cost,
            currency=estimate.currency,
            meal_costs=estimate.meal_costs,
            ingredient_costs=estimate.ingredient_costs,
            confidence=str(estimate.confidence),
        )
