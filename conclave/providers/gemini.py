"""Gemini provider using google-genai SDK with native async streaming."""

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence

from google import genai
from google.genai import types as genai_types

from conclave.models import Agent, Message, MessageRole, ProviderConfig
from conclave.provider_configs import resolve_secret
from conclave.providers.base import AIProvider, ProviderError, system_message

logger = logging.getLogger(__name__)


class GeminiProvider(AIProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, config: ProviderConfig, timeout_sec: int = 120, max_tokens: int = 4096) -> None:
        self._config = config
        self._timeout_sec = timeout_sec
        self._max_tokens = max_tokens
        api_key = resolve_secret(config)
        if not api_key:
            raise ProviderError(config.name, "Missing API key")
        http_options = genai_types.HttpOptions(base_url=config.base_url) if config.base_url else None
        self._client = genai.Client(api_key=api_key, http_options=http_options)

    def name(self) -> str:
        return self._config.name

    @staticmethod
    def _contents(prompt: str, history: Sequence[Message]) -> list[genai_types.Content]:
        contents = [
            genai_types.Content(
                role="user" if m.role is MessageRole.USER else "model",
                parts=[genai_types.Part(text=m.content)],
            )
            for m in history
            if m.content
        ]
        contents.append(genai_types.Content(role="user", parts=[genai_types.Part(text=prompt)]))
        return contents

    async def stream(self, prompt: str, agent: Agent, history: Sequence[Message]) -> AsyncIterator[str]:
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content_stream(
                    model=agent.model,
                    contents=self._contents(prompt, history),
                    config=genai_types.GenerateContentConfig(
                        max_output_tokens=self._max_tokens,
                        system_instruction=system_message(agent),
                    ),
                ),
                timeout=self._timeout_sec,
            )
            async for chunk in response:
                if chunk.text:
                    yield chunk.text
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

    async def list_models(self) -> list[str]:
        try:
            pager = await self._client.aio.models.list()
            return [(model.name or "").removeprefix("models/") async for model in pager]
        except Exception as exc:
            raise ProviderError(self._config.name, f"Model listing failed: {exc}") from exc
