"""OpenAI Chat Completions client for text generation."""

from dataclasses import dataclass

import httpx
from openai import AsyncOpenAI

from nutrition_pipeline.services.completion import CompletionClient


@dataclass
class OpenAICompletionClient(CompletionClient):
    """Completion client backed by the OpenAI Chat Completions API."""

    client: AsyncOpenAI

    @classmethod
    def create(
        cls, api_key: str, timeout_seconds: float = 30.0
    ) -> "OpenAICompletionClient":
        """Create an OpenAI completion client that never retries."""
        return cls(
            client=AsyncOpenAI(
                api_key=api_key,
                max_retries=0,
                timeout=httpx.Timeout(timeout_seconds),
            )
        )

    async def complete(  # noqa: PLR0913
        self,
        *,
        model: str,
        messages: list[dict[str, object]],
        max_tokens: int,
        temperature: float,
        timeout_seconds: float,
    ) -> str:
        """Call Chat Completions and return the first choice's text."""
        response = await self.client.chat.completions.create(
            model=model,
            messages=messages,
            max_completion_tokens=max_tokens,
            temperature=temperature,
            timeout=timeout_seconds,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.close()
