"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from nutrition_pipeline.adapters.openai_completion_client import OpenAICompletionClient
from nutrition_pipeline.config import Settings
from nutrition_pipeline.services.analysis import MealAnalysisService
from nutrition_pipeline.services.cache import PriceCache
from nutrition_pipeline.services.chat import ChatService
from nutrition_pipeline.services.completion import CompletionClient
from nutrition_pipeline.services.meal_plans import MealPlanService
from nutrition_pipeline.services.pricing import PricingService
from nutrition_pipeline.services.synthetic import SyntheticEstimator


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    completion_client: CompletionClient | None
    price_cache: PriceCache
    analysis_service: MealAnalysisService
    pricing_service: PricingService
    meal_plan_service: MealPlanService
    chat_service: ChatService
    close_resources: Callable[[], Awaitable[None]]


def build_container(
    settings: Settings | None = None,
    completion_client: CompletionClient | None = None,
) -> AppContainer:
    """Create the default dependency container.

    Without an OpenAI key and without an injected client every service runs
    on its offline fallbacks.
    """
    resolved_settings = settings or Settings()
    openai_client: OpenAICompletionClient | None = None
    client = completion_client
    if client is None and resolved_settings.openai_api_key:
        openai_client = OpenAICompletionClient.create(
            resolved_settings.openai_api_key,
            timeout_seconds=resolved_settings.openai_timeout_seconds,
        )
        client = openai_client

    model = resolved_settings.openai_model
    timeout = resolved_settings.openai_timeout_seconds
    price_cache = PriceCache(
        ttl_seconds=resolved_settings.price_cache_ttl_seconds,
        max_entries=resolved_settings.price_cache_max_entries,
    )
    analysis_service = MealAnalysisService(
        client=client,
        model=model,
        estimator=SyntheticEstimator(),
        max_tokens=resolved_settings.analysis_max_tokens,
        update_max_tokens=resolved_settings.update_max_tokens,
        timeout_seconds=timeout,
        prompt_max_chars=resolved_settings.prompt_max_chars,
    )
    pricing_service = PricingService(
        client=client,
        cache=price_cache,
        model=model,
        currency=resolved_settings.currency,
        currency_symbol=resolved_settings.currency_symbol,
        batch_size=resolved_settings.price_batch_size,
        max_tokens=resolved_settings.price_max_tokens,
        timeout_seconds=timeout,
    )
    meal_plan_service = MealPlanService(
        client=client,
        model=model,
        max_tokens=resolved_settings.meal_plan_max_tokens,
        timeout_seconds=timeout,
    )
    chat_service = ChatService(
        client=client,
        model=model,
        max_tokens=resolved_settings.chat_max_tokens,
        timeout_seconds=timeout,
        prompt_max_chars=resolved_settings.prompt_max_chars,
    )

    async def close_resources() -> None:
        if openai_client is not None:
            await openai_client.close()

    return AppContainer(
        settings=resolved_settings,
        completion_client=client,
        price_cache=price_cache,
        analysis_service=analysis_service,
        pricing_service=pricing_service,
        meal_plan_service=meal_plan_service,
        chat_service=chat_service,
        close_resources=close_resources,
    )
