"""OpenAI provider using openai SDK with native async streaming.

Also serves OpenAI-compatible endpoints (xAI, Groq, DeepSeek, Ollama, Azure
gateways) through the configuration's base URL.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence

from openai import AsyncOpenAI

from conclave.models import Agent, Message, ProviderConfig
from conclave.provider_configs import resolve_secret
from conclave.providers.base import AIProvider, ProviderError, system_message

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """OpenAI provider via openai SDK."""

    def __init__(self, config: ProviderConfig, timeout_sec: int = 120, max_tokens: int = 4096) -> None:
        self._config = config
        self._timeout_sec = timeout_sec
        self._max_tokens = max_tokens
        api_key = resolve_secret(config)
        if not api_key:
            raise ProviderError(config.name, "Missing API key")
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=config.base_url or None,
            timeout=timeout_sec,
            max_retries=0,
        )

    def name(self) -> str:
        return self._config.name

    def _messages(self, prompt: str, agent: Agent, history: Sequence[Message]) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": system_message(agent)}]
        messages += [{"role": m.role.value, "content": m.content} for m in history]
        messages.append({"role": "user", "content": prompt})
        return messages

    async def stream(self, prompt: str, agent: Agent, history: Sequence[Message]) -> AsyncIterator[str]:
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=agent.model,
                    messages=self._messages(prompt, agent, history),
                    max_tokens=self._max_tokens,
                    stream=True,
                ),
                timeout=self._timeout_sec,
            )
            async for chunk in response:
                delta = chunk.choices[0].delta.content if chunk.choices else None
                if delta:
                    yield delta
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

    async def list_models(self) -> list[str]:
        try:
            return [model.id async for model in self._client.models.list()]
        except Exception as exc:
            raise ProviderError(self._config.name, f"Model listing failed: {exc}") from exc
