"""Turn orchestration: sequential primaries, then concurrent observers."""

import asyncio
import logging
from collections.abc import Callable, Sequence

from config.config_loader import PromptsConfig
from conclave.agent_state import raise_hand, set_status, silence
from conclave.chat_session import ChatSession
from conclave.clock import new_id, now_ms
from conclave.models import (
    Agent,
    AgentRole,
    AgentStatus,
    Message,
    MessageRole,
    PendingMessage,
    TurnOutcome,
    TurnResult,
)
from conclave.providers.base import AIProvider
from conclave.sessions import SessionStore, generate_session_title
from conclave.severity import parse_severity, should_stay_silent

logger = logging.getLogger(__name__)

CONTEXT_WINDOW = 15
HISTORY_MESSAGES = 5
EMPTY_CONTEXT = "New conversation."
TURN_FAILED_MESSAGE = "Error: Could not generate a complete response. An agent failed."

ProviderResolver = Callable[[Agent], AIProvider | None]
ChunkCallback = Callable[[Agent, str], None]
NoticeCallback = Callable[[str], None]


def build_context_window(messages: Sequence[Message], size: int = CONTEXT_WINDOW) -> str:
    """Render the last ``size`` messages as ``speaker: content`` lines, oldest first."""
    recent = list(messages)[-size:] if size > 0 else []
    lines = [f"{m.agent_name or m.role.value}: {m.content}" for m in recent]
    return "\n".join(lines) or EMPTY_CONTEXT


def provider_history(messages: Sequence[Message], size: int = HISTORY_MESSAGES) -> list[Message]:
    """Recent non-error messages handed to providers as chat history."""
    usable = [m for m in messages if m.content and not m.is_error]
    return usable[-size:] if size > 0 else []


class TurnOrchestrator:
    """Runs one user turn at a time against a ChatSession.

    Args:
        resolve_provider: Maps an agent to its provider, or None when the
            agent's configuration is missing or unvalidated.
        prompts: Prompt templates from config.
        store: Where the session is persisted after every turn.
        on_chunk: Called with (agent, fragment) as primary output streams in.
        on_notice: Called with user-facing notices (skipped agents, failures).
    """

    def __init__(
        self,
        resolve_provider: ProviderResolver,
        prompts: PromptsConfig,
        store: SessionStore,
        context_window: int = CONTEXT_WINDOW,
        history_messages: int = HISTORY_MESSAGES,
        on_chunk: ChunkCallback | None = None,
        on_notice: NoticeCallback | None = None,
    ) -> None:
        self._resolve_provider = resolve_provider
        self._prompts = prompts
        self._store = store
        self._context_window = context_window
        self._history_messages = history_messages
        self._on_chunk = on_chunk
        self._on_notice = on_notice

    @property
    def store(self) -> SessionStore:
        return self._store

    def _notify(self, text: str) -> None:
        if self._on_notice:
            self._on_notice(text)

    def _partition(
        self, session: ChatSession
    ) -> tuple[list[tuple[Agent, AIProvider]], list[tuple[Agent, AIProvider]], list[str]]:
        """Split active, usable agents into primaries and observers in roster order."""
        primaries: list[tuple[Agent, AIProvider]] = []
        observers: list[tuple[Agent, AIProvider]] = []
        skipped: list[str] = []
        for agent in session.agents:
            if not agent.is_active or agent.role not in (AgentRole.PRIMARY, AgentRole.OBSERVER):
                continue
            provider = self._resolve_provider(agent)
            if provider is None:
                skipped.append(agent.name)
                continue
            (primaries if agent.role is AgentRole.PRIMARY else observers).append((agent, provider))
        return primaries, observers, skipped

    async def run_turn(
        self,
        session: ChatSession,
        user_input: str,
        input_message: Message | None = None,
    ) -> TurnResult:
        """Run the full turn protocol for one input.

        ``input_message`` replaces the default user message, so an accepted
        observer contribution becomes the turn's input without duplication.

        Returns:
            TurnResult. Rejected turns leave the session untouched.
        """
        text = input_message.content if input_message else user_input
        if not text.strip() or session.in_flight or session.read_only:
            logger.debug("Turn rejected for session %s", session.id)
            return TurnResult(outcome=TurnOutcome.REJECTED)

        session.in_flight = True
        added: list[str] = []
        result = TurnResult(outcome=TurnOutcome.COMPLETED)
        try:
            is_first = not session.messages
            context = build_context_window(session.messages, self._context_window)
            message = input_message or Message(
                id=new_id(),
                role=MessageRole.USER,
                content=user_input,
                timestamp=now_ms(),
            )
            session.append_message(message)
            added.append(message.id)
            if is_first:
                await session.rename(self._store, generate_session_title(text, max_len=self._store.title_max_len))

            primaries, observers, skipped = self._partition(session)
            result.skipped_agents = skipped
            if skipped:
                self._notify(f"Skipped {', '.join(skipped)}: validate their provider credentials to include them.")

            history = provider_history(session.messages[:-1], self._history_messages)
            logger.info(
                "Turn in session %s: %d primaries, %d observers", session.id, len(primaries), len(observers)
            )
            try:
                contributions = await self._primary_phase(session, primaries, context, text, history, added)
            except Exception as exc:
                logger.error("Turn aborted in session %s: %s", session.id, exc)
                error_message = Message(
                    id=new_id(),
                    role=MessageRole.ASSISTANT,
                    content=TURN_FAILED_MESSAGE,
                    timestamp=now_ms(),
                    is_error=True,
                )
                session.append_message(error_message)
                added.append(error_message.id)
                result.outcome = TurnOutcome.FAILED
                result.error = str(exc)
                self._notify(TURN_FAILED_MESSAGE)
                return result

            await self._observer_phase(session, observers, context, text, contributions, history)
            return result
        finally:
            result.added_messages = [m for m in session.messages if m.id in added]
            session.in_flight = False
            await session.persist(self._store)

    async def _primary_phase(
        self,
        session: ChatSession,
        primaries: list[tuple[Agent, AIProvider]],
        context: str,
        user_input: str,
        history: list[Message],
        added: list[str],
    ) -> list[str]:
        """Stream every primary in order. The first failure propagates."""
        prompt = self._prompts.primary.format(context=context, user_input=user_input)
        contributions: list[str] = []
        for agent, provider in primaries:
            session.update_agent(agent.id, lambda a: set_status(a, AgentStatus.THINKING))
            reply_message = Message(
                id=new_id(),
                role=MessageRole.ASSISTANT,
                content="",
                timestamp=now_ms(),
                agent_id=agent.id,
                agent_name=agent.name,
                agent_color=agent.color,
            )
            session.append_message(reply_message)
            added.append(reply_message.id)

            def on_chunk(fragment: str, agent: Agent = agent, message_id: str = reply_message.id) -> None:
                session.append_chunk(message_id, fragment)
                if self._on_chunk:
                    self._on_chunk(agent, fragment)

            try:
                reply = await provider.send(prompt, agent, history, on_chunk=on_chunk)
            except Exception:
                session.update_agent(agent.id, lambda a: set_status(a, AgentStatus.READY))
                raise
            session.update_agent(agent.id, lambda a: set_status(a, AgentStatus.READY))
            contributions.append(f"{agent.name}: {reply.content}")
        return contributions

    async def _observer_phase(
        self,
        session: ChatSession,
        observers: list[tuple[Agent, AIProvider]],
        context: str,
        user_input: str,
        contributions: list[str],
        history: list[Message],
    ) -> None:
        if not observers:
            return
        prompt = self._prompts.observer.format(
            context=context,
            user_input=user_input,
            primary_responses="\n".join(contributions),
        )
        await asyncio.gather(
            *(self._call_observer(session, agent, provider, prompt, history) for agent, provider in observers)
        )

    async def _call_observer(
        self,
        session: ChatSession,
        agent: Agent,
        provider: AIProvider,
        prompt: str,
        history: list[Message],
    ) -> None:
        """Ask one observer for feedback. Never raises."""
        try:
            reply = await provider.send(prompt, agent, history)
        except Exception as exc:
            logger.warning("Observer %s failed: %s", agent.name, exc)
            session.update_agent(agent.id, lambda a: set_status(a, AgentStatus.READY))
            return

        severity, clean = parse_severity(reply.content)
        if should_stay_silent(severity, clean):
            logger.debug("Observer %s stays silent", agent.name)
            session.update_agent(agent.id, silence)
            return

        entry = PendingMessage(id=new_id(), content=clean, timestamp=now_ms())
        session.update_agent(agent.id, lambda a: raise_hand(a, entry))
        logger.info("Observer %s raised a hand (%s)", agent.name, severity.value)
