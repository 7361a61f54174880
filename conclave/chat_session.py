"""Single state-owner for one open session.

Transcript and roster view are tuples of frozen dataclasses; every update
replaces the whole value. Updates run synchronously between awaits, so
observers completing concurrently on one event loop never clobber each other.
"""

import dataclasses
import logging
from collections.abc import Callable

from conclave.agent_state import apply_session_state, extract_session_state
from conclave.models import Agent, ChatState, Message, SessionInfo
from conclave.registry import AgentRegistry
from conclave.sessions import SessionStore

logger = logging.getLogger(__name__)


class ChatSession:
    def __init__(
        self,
        info: SessionInfo,
        state: ChatState,
        agents: tuple[Agent, ...],
        read_only: bool = False,
    ) -> None:
        self.info = info
        self.messages: tuple[Message, ...] = state.messages
        self.model = state.model
        self.agents = agents
        self.in_flight = False
        self.read_only = read_only
        self.draft_input = ""

    @classmethod
    async def open(
        cls,
        store: SessionStore,
        registry: AgentRegistry,
        session_id: str | None = None,
        default_model: str = "",
        read_only: bool = False,
    ) -> "ChatSession":
        """Load a session (creating it when unknown) and overlay its agent state."""
        info = await store.get_session(session_id) if session_id else None
        if info is None:
            info = await store.create_session(session_id=session_id)
        state = await store.get_session_state(info.id, default_model)
        states = await store.get_session_agent_states(info.id)
        agents = apply_session_state(registry.list_agents(), states)
        logger.debug("Opened session %s with %d messages", info.id, len(state.messages))
        return cls(info, state, agents, read_only=read_only)

    @property
    def id(self) -> str:
        return self.info.id

    def snapshot(self) -> ChatState:
        return ChatState(
            session_id=self.info.id,
            messages=self.messages,
            model=self.model,
            is_processing=self.in_flight,
        )

    # -- transcript -----------------------------------------------------------

    def message(self, message_id: str) -> Message | None:
        return next((m for m in self.messages if m.id == message_id), None)

    def append_message(self, message: Message) -> None:
        self.messages = self.messages + (message,)

    def append_chunk(self, message_id: str, fragment: str) -> None:
        """Grow one message's content; earlier content is never rewritten."""
        self.messages = tuple(
            dataclasses.replace(m, content=m.content + fragment) if m.id == message_id else m
            for m in self.messages
        )

    def remove_message(self, message_id: str) -> bool:
        remaining = tuple(m for m in self.messages if m.id != message_id)
        removed = len(remaining) != len(self.messages)
        self.messages = remaining
        return removed

    # -- roster view ----------------------------------------------------------

    def agent(self, agent_id: str) -> Agent | None:
        return next((a for a in self.agents if a.id == agent_id), None)

    def update_agent(self, agent_id: str, fn: Callable[[Agent], Agent]) -> Agent | None:
        """Replace one agent with ``fn(agent)``. Unknown ids change nothing."""
        updated: Agent | None = None
        agents: list[Agent] = []
        for agent in self.agents:
            if agent.id == agent_id:
                updated = fn(agent)
                agents.append(updated)
            else:
                agents.append(agent)
        self.agents = tuple(agents)
        return updated

    def refresh_roster(self, registry: AgentRegistry) -> None:
        """Pick up roster edits while keeping this session's agent state."""
        self.agents = apply_session_state(registry.list_agents(), extract_session_state(self.agents))

    # -- persistence ----------------------------------------------------------

    async def persist(self, store: SessionStore) -> None:
        stored = await store.save_session_state(self.info.id, self.snapshot())
        self.messages = stored.messages
        await store.save_session_agent_states(self.info.id, extract_session_state(self.agents))
        await store.touch_session(self.info.id)

    async def rename(self, store: SessionStore, title: str) -> None:
        if await store.update_session_title(self.info.id, title):
            self.info = dataclasses.replace(self.info, title=title)
