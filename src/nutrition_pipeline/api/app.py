"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from nutrition_pipeline.api.admin import router as admin_router
from nutrition_pipeline.api.models import (
    AnalysisResponse,
    BatchPriceRequest,
    ChatRequest,
    ImageAnalysisRequest,
    MealPlanResponse,
    MealPriceRequest,
    MealPriceResponse,
    MenuCostRequest,
    MenuCostResponse,
    PriceItemModel,
    PriceResponse,
    TextAnalysisRequest,
    UpdateAnalysisRequest,
)
from nutrition_pipeline.app_logging import configure_logging
from nutrition_pipeline.config import normalize_locale
from nutrition_pipeline.containers import AppContainer
from nutrition_pipeline.domain.chat import ChatReply
from nutrition_pipeline.domain.meal_plan import (
    MealPlanRequest,
    PlannedMeal,
    ReplacementMealRequest,
)
from nutrition_pipeline.domain.pricing import MenuMeal
from nutrition_pipeline.errors import InvalidRequestError
from nutrition_pipeline.services.normalizer import normalize_meal


def create_app(container: AppContainer) -> FastAPI:  # noqa: PLR0915
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)
    default_locale = container.settings.default_locale

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Starting nutrition pipeline (model configured: %s)",
            app.state.container.completion_client is not None,
        )
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.exception_handler(InvalidRequestError)
    async def invalid_request_handler(
        request: Request, exc: InvalidRequestError
    ) -> JSONResponse:
        logger.info("Rejected request to %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)}
        )

    def _container(request: Request) -> AppContainer:
        return request.app.state.container

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/analysis/image")
    async def analyze_image(
        body: ImageAnalysisRequest, request: Request
    ) -> AnalysisResponse:
        """Analyze a meal photo."""
        outcome = await _container(request).analysis_service.analyze_image(
            body.image_base64,
            note=body.note,
            edited_ingredients=body.edited_ingredients,
            locale=normalize_locale(body.language, default_locale),
        )
        return AnalysisResponse.from_outcome(outcome)

    @app.post("/analysis/text")
    async def analyze_text(
        body: TextAnalysisRequest, request: Request
    ) -> AnalysisResponse:
        """Analyze a meal description."""
        outcome = await _container(request).analysis_service.analyze_text(
            body.description,
            edited_ingredients=body.edited_ingredients,
            locale=normalize_locale(body.language, default_locale),
        )
        return AnalysisResponse.from_outcome(outcome)

    @app.post("/analysis/update")
    async def update_analysis(
        body: UpdateAnalysisRequest, request: Request
    ) -> AnalysisResponse:
        """Apply a user correction to a previous analysis."""
        locale = normalize_locale(body.language, default_locale)
        record = normalize_meal(body.analysis, locale=locale)
        outcome = await _container(request).analysis_service.update_analysis(
            record, body.update_text, locale=locale
        )
        return AnalysisResponse.from_outcome(outcome)

    @app.post("/meal-plans")
    async def create_meal_plan(
        body: MealPlanRequest, request: Request
    ) -> MealPlanResponse:
        """Generate a 7-day meal plan."""
        outcome = await _container(request).meal_plan_service.generate(body)
        return MealPlanResponse(degraded=outcome.degraded, plan=outcome.plan)

    @app.post("/meal-plans/replacement")
    async def replace_meal(
        body: ReplacementMealRequest, request: Request
    ) -> PlannedMeal:
        """Suggest a replacement for one planned meal."""
        return await _container(request).meal_plan_service.generate_replacement_meal(
            body
        )

    @app.post("/chat")
    async def chat(body: ChatRequest, request: Request) -> ChatReply:
        """Answer a nutrition question."""
        return await _container(request).chat_service.reply(
            body.message,
            body.context,
            locale=normalize_locale(body.language, default_locale),
            history=body.history,
        )

    @app.post("/prices/product")
    async def price_product(body: PriceItemModel, request: Request) -> PriceResponse:
        """Estimate the price of one product."""
        estimate = await _container(request).pricing_service.estimate_product(
            body.name, body.category, body.quantity
        )
        return PriceResponse.from_estimate(estimate)

    @app.post("/prices/batch")
    async def price_batch(
        body: BatchPriceRequest, request: Request
    ) -> dict[str, PriceResponse]:
        """Estimate prices for many products."""
        estimates = await _container(request).pricing_service.batch_estimate_products(
            [item.to_item() for item in body.items]
        )
        return {
            name: PriceResponse.from_estimate(estimate)
            for name, estimate in estimates.items()
        }

    @app.post("/prices/meal")
    async def price_meal(body: MealPriceRequest, request: Request) -> MealPriceResponse:
        """Estimate the cost of one meal's ingredients."""
        estimate = await _container(request).pricing_service.estimate_meal_price(
            [item.to_item() for item in body.ingredients]
        )
        return MealPriceResponse.from_estimate(estimate)

    @app.post("/prices/menu")
    async def price_menu(body: MenuCostRequest, request: Request) -> MenuCostResponse:
        """Estimate the cost of a whole menu."""
        meals = [
            MenuMeal(
                name=meal.name,
                ingredients=tuple(item.to_item() for item in meal.ingredients),
            )
            for meal in body.meals
        ]
        estimate = await _container(request).pricing_service.estimate_menu_cost(meals)
        return MenuCostResponse.from_estimate(estimate)

    return app
