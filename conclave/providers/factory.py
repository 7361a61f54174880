"""Map provider configurations to provider instances and resolve agents to them."""

import logging

from conclave.models import Agent, ProviderConfig, ProviderType
from conclave.provider_configs import ProviderConfigStore
from conclave.providers.anthropic import AnthropicProvider
from conclave.providers.base import AIProvider
from conclave.providers.gemini import GeminiProvider
from conclave.providers.openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[ProviderType, type[AIProvider]] = {
    ProviderType.OPENAI: OpenAIProvider,
    ProviderType.ANTHROPIC: AnthropicProvider,
    ProviderType.GEMINI: GeminiProvider,
}


def build_provider(config: ProviderConfig, timeout_sec: int = 120, max_tokens: int = 4096) -> AIProvider:
    """Instantiate the provider class for ``config``.

    Raises:
        ProviderError: If the configuration has no usable secret.
    """
    return PROVIDER_CLASSES[config.provider_type](config, timeout_sec=timeout_sec, max_tokens=max_tokens)


class ProviderPool:
    """Resolves agents to providers, one cached instance per configuration.

    Only validated configurations resolve; anything else yields None and the
    caller skips the agent.
    """

    def __init__(self, configs: ProviderConfigStore, timeout_sec: int = 120, max_tokens: int = 4096) -> None:
        self._configs = configs
        self._timeout_sec = timeout_sec
        self._max_tokens = max_tokens
        self._cache: dict[str, tuple[ProviderConfig, AIProvider]] = {}

    def for_agent(self, agent: Agent) -> AIProvider | None:
        if not self._configs.is_agent_usable(agent):
            return None
        config = self._configs.get(agent.provider_config_id)
        cached = self._cache.get(config.id)
        # Rebuild when the configuration was edited since it was cached
        if cached is not None and cached[0] == config:
            return cached[1]
        try:
            provider = build_provider(config, self._timeout_sec, self._max_tokens)
        except Exception as exc:
            logger.warning("Failed to instantiate provider '%s': %s", config.name, exc)
            return None
        self._cache[config.id] = (config, provider)
        return provider

    def __call__(self, agent: Agent) -> AIProvider | None:
        return self.for_agent(agent)
