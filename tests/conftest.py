"""Shared test fixtures."""

import logging
import random
from dataclasses import dataclass, field

import pytest

from nutrition_pipeline.config import Settings
from nutrition_pipeline.containers import AppContainer
from nutrition_pipeline.services.analysis import MealAnalysisService
from nutrition_pipeline.services.cache import PriceCache
from nutrition_pipeline.services.chat import ChatService
from nutrition_pipeline.services.completion import CompletionClient
from nutrition_pipeline.services.meal_plans import MealPlanService
from nutrition_pipeline.services.pricing import PricingService
from nutrition_pipeline.services.synthetic import SyntheticEstimator

# Smallest payload that passes image validation, with a JPEG signature.
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 2044


@dataclass
class FakeCompletionClient(CompletionClient):
    """Completion client that replays scripted replies and records calls."""

    responses: list[str | Exception] = field(default_factory=list)
    default: str = ""
    calls: list[dict[str, object]] = field(default_factory=list)

    async def complete(  # noqa: PLR0913
        self,
        *,
        model: str,
        messages: list[dict[str, object]],
        max_tokens: int,
        temperature: float,
        timeout_seconds: float,
    ) -> str:
        self.calls.append(
            {
                "model": model,
                "messages": messages,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "timeout_seconds": timeout_seconds,
            }
        )
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        return response


@dataclass
class FakeClock:
    """Manually advanced monotonic clock."""

    now: float = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _propagate_app_logs() -> None:
    # create_app stops propagation, which would hide records from caplog.
    logging.getLogger("nutrition_pipeline").propagate = True


@pytest.fixture
def settings() -> Settings:
    return Settings(
        openai_api_key=None,
        admin_token="admin-token",
        environment="test",
    )


@pytest.fixture
def completion_client() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def container(
    settings: Settings, completion_client: FakeCompletionClient, clock: FakeClock
) -> AppContainer:
    price_cache = PriceCache(ttl_seconds=300, max_entries=500, clock=clock)
    analysis_service = MealAnalysisService(
        client=completion_client,
        model=settings.openai_model,
        estimator=SyntheticEstimator(rng=random.Random(7)),
    )
    pricing_service = PricingService(
        client=completion_client,
        cache=price_cache,
        model=settings.openai_model,
    )
    meal_plan_service = MealPlanService(
        client=completion_client,
        model=settings.openai_model,
        rng=random.Random(7),
    )
    chat_service = ChatService(client=completion_client, model=settings.openai_model)

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        completion_client=completion_client,
        price_cache=price_cache,
        analysis_service=analysis_service,
        pricing_service=pricing_service,
        meal_plan_service=meal_plan_service,
        chat_service=chat_service,
        close_resources=close_resources,
    )
