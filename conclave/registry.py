"""Agent roster: role exclusivity, templates, whole-roster YAML persistence."""

import dataclasses
import logging
import threading
from collections.abc import Callable
from pathlib import Path

import yaml

from conclave.agent_state import reset_agent_session_state
from conclave.clock import new_id
from conclave.models import Agent, AgentParams, AgentRole, Participation
from conclave.records import agent_from_record, agent_to_record

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_CONFIG_ID = "default-api-config"

# Roles that at most one agent may hold at a time
EXCLUSIVE_ROLES = (AgentRole.PRIMARY, AgentRole.SUMMARIZER)

TEMPLATE_PRESETS: dict[str, dict] = {
    "researcher": {
        "name": "Researcher",
        "icon": "Beaker",
        "color": "bg-green-500",
        "personality": "Fact-focused, provides data and evidence.",
        "model": "gemini-2.5-pro",
        "params": AgentParams(70, 80, 30, 10, Participation.RELEVANT),
    },
    "analyst": {
        "name": "Analyst",
        "icon": "Scale",
        "color": "bg-sky-500",
        "personality": "Data-driven and strategic, identifies trends.",
        "model": "gemini-2.5-pro",
        "params": AgentParams(80, 70, 20, 20, Participation.RELEVANT),
    },
    "creative": {
        "name": "Creative",
        "icon": "Lightbulb",
        "color": "bg-amber-500",
        "personality": "Generates out-of-the-box ideas.",
        "model": "gemini-2.5-flash",
        "params": AgentParams(20, 60, 80, 90, Participation.RELEVANT),
    },
    "critic": {
        "name": "Critic",
        "icon": "ThumbsDown",
        "color": "bg-rose-500",
        "personality": "Plays devil's advocate, assesses risks.",
        "model": "gemini-2.5-flash",
        "params": AgentParams(60, 50, 90, 30, Participation.RELEVANT),
    },
    "optimist": {
        "name": "Optimist",
        "icon": "Smile",
        "color": "bg-yellow-400",
        "personality": "Provides positive perspectives and encouragement.",
        "model": "gemini-2.5-flash",
        "params": AgentParams(30, 40, 70, 60, Participation.RELEVANT),
    },
    "pragmatist": {
        "name": "Pragmatist",
        "icon": "Hammer",
        "color": "bg-gray-500",
        "personality": "Focuses on practical solutions and implementation.",
        "model": "gemini-2.5-flash",
        "params": AgentParams(50, 70, 40, 20, Participation.RELEVANT),
    },
}


def default_agents() -> tuple[Agent, ...]:
    """Roster seeded on first use: one Facilitator plus two Observers."""
    return (
        Agent(
            id="agent-primary-facilitator",
            name="Facilitator",
            role=AgentRole.PRIMARY,
            icon="Bot",
            color="bg-indigo-500",
            personality=(
                "A helpful and neutral facilitator that guides the conversation, asks clarifying "
                "questions, and summarizes key points."
            ),
            system_prompt=(
                "You are a helpful AI assistant. Your primary role is to facilitate the conversation "
                "between the user and other AI agents. Keep the discussion on track, summarize key "
                "points, and ask clarifying questions when needed."
            ),
            model="gemini-2.5-flash",
            provider_config_id=DEFAULT_PROVIDER_CONFIG_ID,
            params=AgentParams(50, 50, 50, 30, Participation.ALWAYS),
        ),
        Agent(
            id="agent-observer-researcher",
            name="Researcher",
            role=AgentRole.OBSERVER,
            icon="Beaker",
            color="bg-green-500",
            personality=(
                "A fact-focused researcher that provides data, evidence, and sources to support "
                "claims. Prioritizes accuracy and objectivity."
            ),
            model="gemini-2.5-pro",
            provider_config_id=DEFAULT_PROVIDER_CONFIG_ID,
            params=AgentParams(70, 80, 30, 10, Participation.RELEVANT),
        ),
        Agent(
            id="agent-observer-creative",
            name="Creative",
            role=AgentRole.OBSERVER,
            icon="Brush",
            color="bg-amber-500",
            personality=(
                "An imaginative and out-of-the-box thinker that suggests innovative ideas, "
                "alternative perspectives, and creative solutions."
            ),
            model="gemini-2.5-flash",
            provider_config_id=DEFAULT_PROVIDER_CONFIG_ID,
            params=AgentParams(20, 60, 80, 90, Participation.RELEVANT),
        ),
    )


def _enforce_single_holder(agents: tuple[Agent, ...], holder_id: str) -> tuple[Agent, ...]:
    """Demote every other holder of the holder's exclusive role to Observer."""
    holder = next((a for a in agents if a.id == holder_id), None)
    if holder is None or holder.role not in EXCLUSIVE_ROLES:
        return agents
    return tuple(
        dataclasses.replace(a, role=AgentRole.OBSERVER)
        if a.id != holder_id and a.role is holder.role
        else a
        for a in agents
    )


def promote_in(agents: tuple[Agent, ...], agent_id: str, role: AgentRole) -> tuple[Agent, ...]:
    """Pure promotion over a roster. Unknown ids leave the roster unchanged."""
    if not any(a.id == agent_id for a in agents):
        return agents
    promoted = tuple(dataclasses.replace(a, role=role) if a.id == agent_id else a for a in agents)
    return _enforce_single_holder(promoted, agent_id)


class AgentRegistry:
    """Single owner of the agent roster.

    Every mutation is a read-modify-write of the whole roster under one lock,
    so edits arriving from different surfaces never lose each other's changes.
    With ``path=None`` the roster lives in memory only.
    """

    def __init__(self, path: Path | None = None, seed_defaults: bool = True) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._memory: tuple[Agent, ...] = ()
        with self._lock:
            if path is None:
                self._memory = default_agents() if seed_defaults else ()
            elif not path.exists():
                self._write(default_agents() if seed_defaults else ())
                logger.info("Seeded agent roster at %s", path)

    def _read(self) -> tuple[Agent, ...]:
        if self._path is None:
            return self._memory
        with self._path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        return tuple(agent_from_record(r) for r in raw.get("agents") or [])

    def _write(self, agents: tuple[Agent, ...]) -> None:
        if self._path is None:
            self._memory = tuple(reset_agent_session_state(a) for a in agents)
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"agents": [agent_to_record(a) for a in agents]}
        self._path.write_text(yaml.safe_dump(payload, sort_keys=False, allow_unicode=True), encoding="utf-8")

    def _mutate(self, fn: Callable[[tuple[Agent, ...]], tuple[Agent, ...]]) -> tuple[Agent, ...]:
        with self._lock:
            current = self._read()
            updated = fn(current)
            if updated != current:
                self._write(updated)
            return self._read()

    def list_agents(self) -> tuple[Agent, ...]:
        with self._lock:
            return self._read()

    def get(self, agent_id: str) -> Agent | None:
        return next((a for a in self.list_agents() if a.id == agent_id), None)

    def promote(self, agent_id: str, role: AgentRole) -> tuple[Agent, ...]:
        """Give ``agent_id`` the role, demoting any prior holder to Observer."""
        logger.info("Promoting agent %s to %s", agent_id, role.value)
        return self._mutate(lambda agents: promote_in(agents, agent_id, role))

    def upsert(self, agent: Agent) -> tuple[Agent, ...]:
        def apply(agents: tuple[Agent, ...]) -> tuple[Agent, ...]:
            if any(a.id == agent.id for a in agents):
                updated = tuple(agent if a.id == agent.id else a for a in agents)
            else:
                updated = agents + (agent,)
            return _enforce_single_holder(updated, agent.id)

        return self._mutate(apply)

    def remove(self, agent_id: str) -> tuple[Agent, ...]:
        return self._mutate(lambda agents: tuple(a for a in agents if a.id != agent_id))

    def replace_all(self, agents: tuple[Agent, ...]) -> tuple[Agent, ...]:
        return self._mutate(lambda _: tuple(agents))

    def set_active(self, agent_id: str, is_active: bool) -> tuple[Agent, ...]:
        def apply(agents: tuple[Agent, ...]) -> tuple[Agent, ...]:
            toggled = tuple(
                dataclasses.replace(a, is_active=is_active) if a.id == agent_id else a for a in agents
            )
            return _enforce_single_holder(toggled, agent_id) if is_active else toggled

        return self._mutate(apply)

    def create_agent(self, name: str, **fields) -> Agent:
        """Add a new active Observer and return it."""
        agent = Agent(id=new_id(), name=name, role=AgentRole.OBSERVER, is_active=True, **fields)
        self._mutate(lambda agents: agents + (agent,))
        return agent

    def create_from_template(
        self,
        template_id: str,
        provider_config_id: str = DEFAULT_PROVIDER_CONFIG_ID,
    ) -> Agent | None:
        template = TEMPLATE_PRESETS.get(template_id)
        if template is None:
            return None
        return self.create_agent(provider_config_id=provider_config_id, **template)
