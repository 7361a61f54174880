"""Accept, dismiss or insert queued observer contributions."""

import logging

from conclave.agent_state import remove_pending
from conclave.chat_session import ChatSession
from conclave.clock import new_id, now_ms
from conclave.models import Agent, Message, MessageRole, PendingMessage, TurnOutcome, TurnResult
from conclave.orchestrator import TurnOrchestrator

logger = logging.getLogger(__name__)


def observer_text(agent: Agent, entry: PendingMessage) -> str:
    return f"{agent.name} (Observer): {entry.content}"


def find_pending(session: ChatSession, agent_id: str, message_id: str) -> tuple[Agent, PendingMessage] | None:
    agent = session.agent(agent_id)
    if agent is None:
        return None
    entry = next((m for m in agent.pending_messages if m.id == message_id), None)
    return (agent, entry) if entry else None


def pending_entries(session: ChatSession) -> list[tuple[Agent, PendingMessage]]:
    """Every queued entry across the roster, oldest first."""
    entries = [(a, m) for a in session.agents for m in a.pending_messages]
    return sorted(entries, key=lambda pair: pair[1].timestamp)


class HandRaiseQueue:
    """The three actions available on a raised hand."""

    def __init__(self, session: ChatSession, orchestrator: TurnOrchestrator) -> None:
        self._session = session
        self._orchestrator = orchestrator

    async def accept(self, agent_id: str, message_id: str) -> TurnResult:
        """Post the entry as a user turn so the Primary answers the observer.

        Rejected with no queue change while a turn is in flight, in read-only
        mode, or for an unknown entry.
        """
        session = self._session
        found = find_pending(session, agent_id, message_id)
        if found is None or session.in_flight or session.read_only:
            logger.debug("Accept rejected for %s/%s", agent_id, message_id)
            return TurnResult(outcome=TurnOutcome.REJECTED)

        agent, entry = found
        session.update_agent(agent_id, lambda a: remove_pending(a, message_id))
        message = Message(
            id=new_id(),
            role=MessageRole.USER,
            content=observer_text(agent, entry),
            timestamp=now_ms(),
            agent_id=agent.id,
        )
        logger.info("Accepted contribution from %s", agent.name)
        return await self._orchestrator.run_turn(session, message.content, input_message=message)

    async def dismiss(self, agent_id: str, message_id: str) -> bool:
        session = self._session
        if session.read_only or find_pending(session, agent_id, message_id) is None:
            return False
        session.update_agent(agent_id, lambda a: remove_pending(a, message_id))
        await session.persist(self._orchestrator.store)
        return True

    async def insert_to_input(self, agent_id: str, message_id: str) -> str | None:
        """Move the entry into the compose draft and return the draft text."""
        session = self._session
        if session.read_only:
            return None
        found = find_pending(session, agent_id, message_id)
        if found is None:
            return None
        agent, entry = found
        session.draft_input = observer_text(agent, entry)
        session.update_agent(agent_id, lambda a: remove_pending(a, message_id))
        await session.persist(self._orchestrator.store)
        return session.draft_input
