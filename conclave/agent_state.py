"""Overlay of per-session ephemeral agent state onto the static roster."""

import dataclasses
from collections.abc import Iterable

from conclave.models import Agent, AgentSessionState, AgentStatus, PendingMessage

BASELINE = AgentSessionState()


def session_state_of(agent: Agent) -> AgentSessionState:
    return AgentSessionState(
        status=agent.status,
        pending_messages=agent.pending_messages,
        hand_raise_count=agent.hand_raise_count,
    )


def is_baseline(state: AgentSessionState) -> bool:
    """True for Ready with no pending messages and no raises."""
    return (
        state.status is AgentStatus.READY
        and not state.pending_messages
        and state.hand_raise_count == 0
    )


def apply_session_state(
    agents: Iterable[Agent],
    states: dict[str, AgentSessionState],
) -> tuple[Agent, ...]:
    """Overlay a session's agent states onto the registry roster.

    Agents without a stored state come back at baseline, so state left over
    from another session never leaks through.
    """
    return tuple(
        dataclasses.replace(
            agent,
            status=states.get(agent.id, BASELINE).status,
            pending_messages=states.get(agent.id, BASELINE).pending_messages,
            hand_raise_count=states.get(agent.id, BASELINE).hand_raise_count,
        )
        for agent in agents
    )


def extract_session_state(agents: Iterable[Agent]) -> dict[str, AgentSessionState]:
    """Return only the agents whose state deviates from baseline."""
    states: dict[str, AgentSessionState] = {}
    for agent in agents:
        state = session_state_of(agent)
        if not is_baseline(state):
            states[agent.id] = state
    return states


def reset_agent_session_state(agent: Agent) -> Agent:
    return dataclasses.replace(
        agent,
        status=AgentStatus.READY,
        pending_messages=(),
        hand_raise_count=0,
    )


def set_status(agent: Agent, status: AgentStatus) -> Agent:
    return dataclasses.replace(agent, status=status)


def raise_hand(agent: Agent, entry: PendingMessage) -> Agent:
    """Queue an observer contribution and raise the agent's hand."""
    return dataclasses.replace(
        agent,
        status=AgentStatus.HAND_RAISED,
        pending_messages=agent.pending_messages + (entry,),
        hand_raise_count=agent.hand_raise_count + 1,
    )


def silence(agent: Agent) -> Agent:
    """The observer had nothing to say: empty queue, Ready, zero raises."""
    return reset_agent_session_state(agent)


def remove_pending(agent: Agent, message_id: str) -> Agent:
    """Drop one queued entry. Emptying the queue also resets status and count."""
    remaining = tuple(m for m in agent.pending_messages if m.id != message_id)
    if not remaining:
        return reset_agent_session_state(agent)
    return dataclasses.replace(agent, pending_messages=remaining)
