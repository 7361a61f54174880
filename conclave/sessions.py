"""Session State Store: transcripts, session headers and per-session agent state.

Every method is async and runs the backend call in a worker thread. The
backend is normally a ``FallbackStorage``; callers never learn whether
records went to SQLite or to memory.
"""

import asyncio
import dataclasses
import logging
from collections.abc import Iterable
from datetime import datetime

from conclave.agent_state import is_baseline
from conclave.clock import new_id, now_ms
from conclave.models import AgentSessionState, ChatState, Message, SessionInfo
from conclave.records import (
    agent_states_from_record,
    agent_states_to_record,
    chat_state_from_record,
    chat_state_to_record,
    session_from_record,
    session_to_record,
)
from conclave.storage import (
    STORE_AGENT_STATES,
    STORE_SESSIONS,
    STORE_STATES,
    FallbackStorage,
    StorageBackend,
)

logger = logging.getLogger(__name__)

MAX_MESSAGES = 200
TITLE_MAX_LEN = 40
# Presentation warns once the transcript passes this share of MAX_MESSAGES
WARNING_RATIO = 0.8


def prune_messages(messages: Iterable[Message], max_messages: int = MAX_MESSAGES) -> tuple[Message, ...]:
    """Drop hidden messages, then keep the newest ``max_messages`` by timestamp."""
    visible = sorted((m for m in messages if m.visible_in_chat), key=lambda m: m.timestamp)
    if max_messages <= 0:
        return ()
    return tuple(visible[-max_messages:])


def near_message_limit(count: int, max_messages: int = MAX_MESSAGES) -> bool:
    return count > int(max_messages * WARNING_RATIO)


def generate_session_title(
    first_message: str | None = None,
    now: datetime | None = None,
    max_len: int = TITLE_MAX_LEN,
) -> str:
    """Title from the first message's opening words plus the time of day."""
    now = now or datetime.now()
    clean = " ".join((first_message or "").split())
    if not clean:
        return f"Chat {now.strftime('%m/%d %H:%M')}"
    snippet = f"{clean[: max_len - 3]}..." if len(clean) > max_len else clean
    return f"{snippet} • {now.strftime('%H:%M')}"


class SessionStore:
    """Async contract over a storage backend."""

    def __init__(
        self,
        storage: StorageBackend,
        max_messages: int = MAX_MESSAGES,
        title_max_len: int = TITLE_MAX_LEN,
    ) -> None:
        self._storage = storage
        self.max_messages = max_messages
        self.title_max_len = title_max_len

    @property
    def degraded(self) -> bool:
        return isinstance(self._storage, FallbackStorage) and self._storage.degraded

    # -- session headers ----------------------------------------------------

    async def list_sessions(self) -> list[SessionInfo]:
        """All session headers, most recently active first."""
        records = await asyncio.to_thread(self._storage.get_all, STORE_SESSIONS)
        sessions = [session_from_record(r) for r in records]
        return sorted(sessions, key=lambda s: s.last_active, reverse=True)

    async def get_session(self, session_id: str) -> SessionInfo | None:
        record = await asyncio.to_thread(self._storage.get, STORE_SESSIONS, session_id)
        return session_from_record(record) if record else None

    async def save_session_meta(self, session: SessionInfo) -> None:
        await asyncio.to_thread(self._storage.put, STORE_SESSIONS, session.id, session_to_record(session))

    async def create_session(
        self,
        title: str | None = None,
        session_id: str | None = None,
        first_message: str | None = None,
    ) -> SessionInfo:
        now = now_ms()
        session = SessionInfo(
            id=session_id or new_id(),
            title=title or generate_session_title(first_message, max_len=self.title_max_len),
            created_at=now,
            last_active=now,
        )
        await self.save_session_meta(session)
        logger.info("Created session %s (%s)", session.id, session.title)
        return session

    async def update_session_title(self, session_id: str, title: str) -> bool:
        session = await self.get_session(session_id)
        if session is None:
            return False
        await self.save_session_meta(dataclasses.replace(session, title=title, last_active=now_ms()))
        return True

    async def touch_session(self, session_id: str) -> None:
        session = await self.get_session(session_id)
        if session is not None:
            await self.save_session_meta(dataclasses.replace(session, last_active=now_ms()))

    async def delete_session(self, session_id: str) -> bool:
        """Delete a session with its transcript and agent state. False if it did not exist."""
        existed = await self.get_session(session_id) is not None
        await asyncio.to_thread(self._storage.delete, STORE_SESSIONS, session_id)
        await asyncio.to_thread(self._storage.delete, STORE_STATES, session_id)
        await asyncio.to_thread(self._storage.delete, STORE_AGENT_STATES, session_id)
        logger.info("Deleted session %s", session_id)
        return existed

    async def clear_all_sessions(self) -> int:
        count = len(await self.list_sessions())
        for store in (STORE_SESSIONS, STORE_STATES, STORE_AGENT_STATES):
            await asyncio.to_thread(self._storage.clear, store)
        logger.info("Cleared %d sessions", count)
        return count

    # -- transcripts --------------------------------------------------------

    async def get_session_state(self, session_id: str, fallback_model: str) -> ChatState:
        record = await asyncio.to_thread(self._storage.get, STORE_STATES, session_id)
        if record is None:
            return ChatState(session_id=session_id, messages=(), model=fallback_model, is_processing=False)
        return chat_state_from_record(record)

    async def save_session_state(self, session_id: str, state: ChatState) -> ChatState:
        """Persist a pruned copy of ``state`` and return exactly what was stored."""
        pruned = dataclasses.replace(
            state,
            session_id=session_id,
            messages=prune_messages(state.messages, self.max_messages),
        )
        if len(pruned.messages) < len(state.messages):
            logger.debug(
                "Pruned session %s transcript from %d to %d messages",
                session_id,
                len(state.messages),
                len(pruned.messages),
            )
        await asyncio.to_thread(self._storage.put, STORE_STATES, session_id, chat_state_to_record(pruned))
        return pruned

    # -- agent runtime state --------------------------------------------------

    async def get_session_agent_states(self, session_id: str) -> dict[str, AgentSessionState]:
        record = await asyncio.to_thread(self._storage.get, STORE_AGENT_STATES, session_id)
        return agent_states_from_record(record)

    async def save_session_agent_states(self, session_id: str, states: dict[str, AgentSessionState]) -> None:
        """Store only deviating agents; a session with none keeps no record at all."""
        deviating = {agent_id: s for agent_id, s in states.items() if not is_baseline(s)}
        if not deviating:
            await self.clear_session_agent_states(session_id)
            return
        await asyncio.to_thread(
            self._storage.put,
            STORE_AGENT_STATES,
            session_id,
            agent_states_to_record(session_id, deviating),
        )

    async def clear_session_agent_states(self, session_id: str) -> None:
        await asyncio.to_thread(self._storage.delete, STORE_AGENT_STATES, session_id)

    # -- recovery -------------------------------------------------------------

    async def reset_storage(self) -> None:
        """Drop the local database and re-arm the degraded notification."""
        if isinstance(self._storage, FallbackStorage):
            await asyncio.to_thread(self._storage.reset)
