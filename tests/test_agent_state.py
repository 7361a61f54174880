"""Tests for conclave/agent_state.py."""

import dataclasses

from conclave.agent_state import (
    apply_session_state,
    extract_session_state,
    is_baseline,
    reset_agent_session_state,
    session_state_of,
)
from conclave.models import AgentSessionState, AgentStatus, PendingMessage

RAISED = AgentSessionState(
    status=AgentStatus.HAND_RAISED,
    pending_messages=(PendingMessage("p1", "Consider budget risk.", 1),),
    hand_raise_count=1,
)


def test_baseline_detection():
    assert is_baseline(AgentSessionState()) is True
    assert is_baseline(RAISED) is False
    assert is_baseline(AgentSessionState(hand_raise_count=1)) is False


def test_apply_overlays_stored_state(facilitator, critic):
    agents = apply_session_state((facilitator, critic), {"critic": RAISED})
    assert session_state_of(agents[1]) == RAISED
    assert session_state_of(agents[0]) == AgentSessionState()
    # Static fields are untouched
    assert agents[1].name == "Critic" and agents[1].model == critic.model


def test_apply_resets_agents_without_stored_state(critic):
    stale = dataclasses.replace(critic, status=AgentStatus.HAND_RAISED, hand_raise_count=3)
    (agent,) = apply_session_state((stale,), {})
    assert is_baseline(session_state_of(agent))


def test_apply_ignores_states_for_unknown_agents(facilitator):
    agents = apply_session_state((facilitator,), {"ghost": RAISED})
    assert [a.id for a in agents] == ["facilitator"]


def test_extract_keeps_only_deviating(facilitator, critic):
    raised = dataclasses.replace(critic, status=RAISED.status, pending_messages=RAISED.pending_messages, hand_raise_count=1)
    assert extract_session_state((facilitator, raised)) == {"critic": RAISED}
    assert extract_session_state((facilitator, critic)) == {}


def test_extract_then_apply_round_trip(facilitator, critic):
    raised = apply_session_state((facilitator, critic), {"critic": RAISED})
    assert apply_session_state((facilitator, critic), extract_session_state(raised)) == raised


def test_reset_agent_session_state(critic):
    raised = dataclasses.replace(critic, status=AgentStatus.THINKING, hand_raise_count=2)
    assert is_baseline(session_state_of(reset_agent_session_state(raised)))
