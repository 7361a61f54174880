"""Anthropic Claude provider using anthropic SDK with native async streaming."""

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence

import anthropic as anthropic_sdk

from conclave.models import Agent, Message, MessageRole, ProviderConfig
from conclave.provider_configs import resolve_secret
from conclave.providers.base import AIProvider, ProviderError, system_message

logger = logging.getLogger(__name__)


class AnthropicProvider(AIProvider):
    """Anthropic Claude provider via anthropic SDK."""

    def __init__(self, config: ProviderConfig, timeout_sec: int = 120, max_tokens: int = 4096) -> None:
        self._config = config
        self._timeout_sec = timeout_sec
        self._max_tokens = max_tokens
        api_key = resolve_secret(config)
        if not api_key:
            raise ProviderError(config.name, "Missing API key")
        self._client = anthropic_sdk.AsyncAnthropic(
            api_key=api_key,
            base_url=config.base_url or None,
            timeout=timeout_sec,
            max_retries=0,
        )

    def name(self) -> str:
        return self._config.name

    @staticmethod
    def _messages(prompt: str, history: Sequence[Message]) -> list[dict[str, str]]:
        # The Messages API requires the first turn to come from the user
        messages = [{"role": m.role.value, "content": m.content} for m in history if m.content]
        while messages and messages[0]["role"] != MessageRole.USER.value:
            messages.pop(0)
        messages.append({"role": "user", "content": prompt})
        return messages

    async def stream(self, prompt: str, agent: Agent, history: Sequence[Message]) -> AsyncIterator[str]:
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(
                    model=agent.model,
                    max_tokens=self._max_tokens,
                    system=system_message(agent),
                    messages=self._messages(prompt, history),
                    stream=True,
                ),
                timeout=self._timeout_sec,
            )
            async for event in response:
                if event.type == "content_block_delta" and event.delta.type == "text_delta":
                    if event.delta.text:
                        yield event.delta.text
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

    async def list_models(self) -> list[str]:
        try:
            return [model.id async for model in self._client.models.list()]
        except Exception as exc:
            raise ProviderError(self._config.name, f"Model listing failed: {exc}") from exc
