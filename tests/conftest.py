"""Shared pytest fixtures."""

import asyncio
from collections.abc import AsyncIterator, Sequence
from pathlib import Path

import pytest

from config.config_loader import AppConfig, DefaultsConfig, PromptsConfig
from conclave import storage
from conclave.chat_session import ChatSession
from conclave.models import Agent, AgentRole, ChatState, Message, ProviderConfig, ProviderType, SessionInfo
from conclave.orchestrator import TurnOrchestrator
from conclave.providers.base import AIProvider
from conclave.registry import AgentRegistry
from conclave.sessions import SessionStore
from conclave.storage import open_storage, reset_storage_alert


class MockProvider(AIProvider):
    """Test double AIProvider that streams scripted fragments or raises."""

    def __init__(
        self,
        provider_name: str = "mock",
        fragments: Sequence[str] = ("Mock response",),
        error: Exception | None = None,
        delay: float = 0.0,
        models: Sequence[str] = ("mock-model",),
        script: Sequence[Sequence[str]] | None = None,
        events: list[str] | None = None,
    ) -> None:
        self._name = provider_name
        self._fragments = list(fragments)
        # Per-call fragment lists; the last one repeats once exhausted
        self._script = [list(s) for s in script] if script else None
        self._error = error
        self._delay = delay
        self._models = list(models)
        self.calls: list[tuple[str, str]] = []  # (agent name, prompt)
        self.events = events if events is not None else []

    def name(self) -> str:
        return self._name

    async def stream(self, prompt: str, agent: Agent, history: Sequence[Message]) -> AsyncIterator[str]:
        self.calls.append((agent.name, prompt))
        self.events.append(f"start:{agent.name}")
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            self.events.append(f"fail:{agent.name}")
            raise self._error
        fragments = self._fragments
        if self._script:
            fragments = self._script[min(len(self.calls), len(self._script)) - 1]
        for fragment in fragments:
            yield fragment
        self.events.append(f"end:{agent.name}")

    async def list_models(self) -> list[str]:
        if self._error is not None:
            raise self._error
        return list(self._models)


class Resolver:
    """Maps agent ids to providers; unknown agents are unusable."""

    def __init__(self, providers: dict[str, AIProvider] | None = None) -> None:
        self.providers = dict(providers or {})

    def __call__(self, agent: Agent) -> AIProvider | None:
        return self.providers.get(agent.id)


@pytest.fixture(autouse=True)
def _isolate_storage_alert():
    reset_storage_alert()
    storage._listeners.clear()
    yield
    reset_storage_alert()
    storage._listeners.clear()


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        primary="Previous context:\n{context}\n\nUser: {user_input}",
        observer=(
            "Previous context:\n{context}\n\nUser asked: {user_input}\n\n"
            "Primary agent responded:\n{primary_responses}\n\nSEVERITY line first."
        ),
        summary="Summarize with ACTION: items.\n\nConversation:\n{conversation}",
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(data_dir=tmp_path / "data", default_model="test-model")


@pytest.fixture
def sample_app_config(sample_defaults_config: DefaultsConfig, sample_prompts_config: PromptsConfig) -> AppConfig:
    return AppConfig(defaults=sample_defaults_config, prompts=sample_prompts_config)


@pytest.fixture
def facilitator() -> Agent:
    return Agent(
        id="facilitator",
        name="Facilitator",
        role=AgentRole.PRIMARY,
        color="bg-indigo-500",
        model="test-model",
        provider_config_id="cfg",
    )


@pytest.fixture
def critic() -> Agent:
    return Agent(id="critic", name="Critic", role=AgentRole.OBSERVER, model="test-model", provider_config_id="cfg")


@pytest.fixture
def validated_config() -> ProviderConfig:
    return ProviderConfig(
        id="cfg",
        name="Test OpenAI",
        provider_type=ProviderType.OPENAI,
        base_url="https://api.openai.com/v1",
        secret_key="sk-test",
        is_validated=True,
        last_validated=1,
    )


@pytest.fixture
def memory_store() -> SessionStore:
    return SessionStore(open_storage(None))


@pytest.fixture
def registry(facilitator: Agent, critic: Agent) -> AgentRegistry:
    reg = AgentRegistry(None, seed_defaults=False)
    reg.replace_all((facilitator, critic))
    return reg


@pytest.fixture
def make_session(memory_store: SessionStore):
    def factory(agents: Sequence[Agent], messages: Sequence[Message] = (), read_only: bool = False) -> ChatSession:
        info = SessionInfo(id="session-1", title="Test", created_at=1, last_active=1)
        state = ChatState(session_id=info.id, messages=tuple(messages), model="test-model")
        return ChatSession(info, state, tuple(agents), read_only=read_only)

    return factory


@pytest.fixture
def make_orchestrator(sample_prompts_config: PromptsConfig, memory_store: SessionStore):
    def factory(providers: dict[str, AIProvider], **kwargs) -> TurnOrchestrator:
        return TurnOrchestrator(Resolver(providers), sample_prompts_config, memory_store, **kwargs)

    return factory
