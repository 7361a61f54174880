"""Abstract base for all AI model providers."""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass

from conclave.models import Agent, Message

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


@dataclass
class ProviderReply:
    content: str
    latency_sec: float


def system_message(agent: Agent) -> str:
    """Persona instructions sent ahead of the conversation."""
    parts: list[str] = []
    if agent.system_prompt:
        parts.append(agent.system_prompt)
    if agent.personality and agent.personality not in (agent.system_prompt or ""):
        parts.append(f"You are {agent.name}. Your personality: {agent.personality}")
    p = agent.params
    parts.append(
        f"Style: formality {p.formality}/100, detail {p.detail}/100, "
        f"approach {p.approach}/100, creativity {p.creativity}/100."
    )
    return "\n\n".join(parts)


class AIProvider(ABC):
    """Abstract base for all AI model providers.

    ``stream`` yields content fragments as they arrive; ``send`` drains the
    stream into one reply and optionally reports every fragment.
    """

    @abstractmethod
    def name(self) -> str:
        """Return the configuration name this provider was built from."""
        ...

    @abstractmethod
    def stream(self, prompt: str, agent: Agent, history: Sequence[Message]) -> AsyncIterator[str]:
        """Yield response fragments for ``prompt`` spoken by ``agent``.

        Args:
            prompt: The full prompt text for this call.
            agent: The agent persona (system prompt, model, sliders).
            history: Recent transcript messages, oldest first.

        Raises:
            ProviderError: On API failure, timeout, or invalid response.
        """
        ...

    @abstractmethod
    async def list_models(self) -> list[str]:
        """Return the model identifiers this configuration can reach."""
        ...

    async def send(
        self,
        prompt: str,
        agent: Agent,
        history: Sequence[Message],
        on_chunk: Callable[[str], None] | None = None,
    ) -> ProviderReply:
        start = time.monotonic()
        fragments: list[str] = []
        async for fragment in self.stream(prompt, agent, history):
            fragments.append(fragment)
            if on_chunk:
                on_chunk(fragment)
        content = "".join(fragments)
        if not content:
            raise ProviderError(self.name(), "Empty response content")
        latency = time.monotonic() - start
        logger.info("%s reply for %s: %.2fs, %d chars", self.name(), agent.name, latency, len(content))
        return ProviderReply(content=content, latency_sec=latency)
