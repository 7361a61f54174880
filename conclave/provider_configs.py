"""Named provider configurations and the agent usability check."""

import logging
import os
import threading
from pathlib import Path

import yaml

from conclave.clock import new_id
from conclave.models import Agent, ProviderConfig, ProviderType
from conclave.records import provider_config_from_record, provider_config_to_record

logger = logging.getLogger(__name__)

# A secret written as "env:NAME" is read from the environment at call time
ENV_SECRET_PREFIX = "env:"

DEFAULT_BASE_URLS: dict[ProviderType, tuple[str, str, str]] = {
    # type -> (display name, base url, endpoint template)
    ProviderType.OPENAI: ("OpenAI", "https://api.openai.com/v1", "/chat/completions"),
    ProviderType.GEMINI: (
        "Google Gemini",
        "https://generativelanguage.googleapis.com",
        "/v1/models/{model}:generateContent",
    ),
    ProviderType.ANTHROPIC: ("Anthropic Claude", "https://api.anthropic.com", "/v1/messages"),
}


def default_provider_config(provider_type: ProviderType, secret_key: str = "", name: str | None = None) -> ProviderConfig:
    """Unvalidated configuration pre-filled with the vendor's public endpoint."""
    display_name, base_url, endpoint = DEFAULT_BASE_URLS[provider_type]
    return ProviderConfig(
        id=new_id(),
        name=name or display_name,
        provider_type=provider_type,
        base_url=base_url,
        secret_key=secret_key,
        endpoint_template=endpoint,
    )


def resolve_secret(config: ProviderConfig) -> str:
    """Return the usable secret, expanding ``env:NAME`` references."""
    secret = config.secret_key.strip()
    if secret.startswith(ENV_SECRET_PREFIX):
        return os.environ.get(secret[len(ENV_SECRET_PREFIX):], "").strip()
    return secret


class ProviderConfigStore:
    """Whole-list read-modify-write owner of provider configurations."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._memory: tuple[ProviderConfig, ...] = ()

    def _read(self) -> tuple[ProviderConfig, ...]:
        if self._path is None:
            return self._memory
        if not self._path.exists():
            return ()
        with self._path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        return tuple(provider_config_from_record(r) for r in raw.get("apiConfigs") or [])

    def _write(self, configs: tuple[ProviderConfig, ...]) -> None:
        if self._path is None:
            self._memory = configs
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"apiConfigs": [provider_config_to_record(c) for c in configs]}
        self._path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")

    def list_configs(self) -> tuple[ProviderConfig, ...]:
        with self._lock:
            return self._read()

    def get(self, config_id: str) -> ProviderConfig | None:
        return next((c for c in self.list_configs() if c.id == config_id), None)

    def verified(self) -> tuple[ProviderConfig, ...]:
        return tuple(c for c in self.list_configs() if c.is_validated)

    def upsert(self, config: ProviderConfig) -> tuple[ProviderConfig, ...]:
        with self._lock:
            configs = self._read()
            if any(c.id == config.id for c in configs):
                configs = tuple(config if c.id == config.id else c for c in configs)
            else:
                configs = configs + (config,)
            self._write(configs)
            return configs

    def replace_all(self, configs: tuple[ProviderConfig, ...]) -> tuple[ProviderConfig, ...]:
        with self._lock:
            self._write(tuple(configs))
            return self._read()

    def remove(self, config_id: str) -> tuple[ProviderConfig, ...]:
        with self._lock:
            configs = tuple(c for c in self._read() if c.id != config_id)
            self._write(configs)
            return configs

    def is_agent_usable(self, agent: Agent) -> bool:
        """An agent may take part in a turn only through a validated configuration."""
        config = self.get(agent.provider_config_id)
        return config is not None and config.is_validated
