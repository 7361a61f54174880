"""Tests for conclave/hand_raise.py and the queue transitions in conclave/agent_state.py."""

import dataclasses

import pytest

from conclave.agent_state import raise_hand, remove_pending, session_state_of, silence
from conclave.hand_raise import HandRaiseQueue, find_pending, observer_text, pending_entries
from conclave.models import AgentStatus, MessageRole, PendingMessage, TurnOutcome
from tests.conftest import MockProvider


@pytest.fixture
def raised_critic(critic):
    return dataclasses.replace(
        critic,
        status=AgentStatus.HAND_RAISED,
        pending_messages=(PendingMessage("p1", "Consider budget risk.", 100),),
        hand_raise_count=1,
    )


def test_raise_hand_appends_and_counts(critic):
    once = raise_hand(critic, PendingMessage("a", "First", 1))
    twice = raise_hand(once, PendingMessage("b", "Second", 2))
    assert twice.status is AgentStatus.HAND_RAISED
    assert [m.id for m in twice.pending_messages] == ["a", "b"]
    assert twice.hand_raise_count == 2


def test_silence_resets_everything(raised_critic):
    quiet = silence(raised_critic)
    assert quiet.status is AgentStatus.READY
    assert quiet.pending_messages == ()
    assert quiet.hand_raise_count == 0


def test_remove_last_entry_resets_status_and_count(raised_critic):
    drained = remove_pending(raised_critic, "p1")
    assert drained.pending_messages == ()
    assert drained.status is AgentStatus.READY
    assert drained.hand_raise_count == 0


def test_remove_one_of_two_keeps_hand_raised(raised_critic):
    two = raise_hand(raised_critic, PendingMessage("p2", "Also timing.", 200))
    remaining = remove_pending(two, "p1")
    assert [m.id for m in remaining.pending_messages] == ["p2"]
    assert remaining.status is AgentStatus.HAND_RAISED
    assert remaining.hand_raise_count == 2


def test_observer_text(raised_critic):
    assert observer_text(raised_critic, raised_critic.pending_messages[0]) == "Critic (Observer): Consider budget risk."


def test_pending_entries_sorted_by_time(make_session, facilitator, raised_critic):
    other = dataclasses.replace(
        raised_critic, id="other", name="Other", pending_messages=(PendingMessage("o1", "Earliest", 50),)
    )
    session = make_session([facilitator, raised_critic, other])
    assert [e.id for _, e in pending_entries(session)] == ["o1", "p1"]
    assert find_pending(session, "critic", "missing") is None


async def test_accept_runs_nested_turn(make_session, make_orchestrator, facilitator, raised_critic):
    session = make_session([facilitator, raised_critic])
    facilitator_provider = MockProvider("fac", fragments=["Good point, budget is tight."])
    critic_provider = MockProvider("crit", fragments=["SEVERITY: NONE"])
    orchestrator = make_orchestrator({"facilitator": facilitator_provider, "critic": critic_provider})
    queue = HandRaiseQueue(session, orchestrator)

    result = await queue.accept("critic", "p1")

    assert result.outcome is TurnOutcome.COMPLETED
    user, reply = session.messages
    assert user.role is MessageRole.USER
    assert user.content == "Critic (Observer): Consider budget risk."
    assert user.agent_id == "critic"
    assert reply.content == "Good point, budget is tight."
    _, prompt = facilitator_provider.calls[0]
    assert "User: Critic (Observer): Consider budget risk." in prompt

    critic_state = session.agent("critic")
    assert critic_state.pending_messages == ()
    assert critic_state.status is AgentStatus.READY
    assert critic_state.hand_raise_count == 0


async def test_accept_rejected_while_turn_in_flight(make_session, make_orchestrator, facilitator, raised_critic):
    session = make_session([facilitator, raised_critic])
    session.in_flight = True
    queue = HandRaiseQueue(session, make_orchestrator({"facilitator": MockProvider("fac")}))

    result = await queue.accept("critic", "p1")

    assert result.outcome is TurnOutcome.REJECTED
    assert session.agent("critic").pending_messages == raised_critic.pending_messages
    assert session.messages == ()


async def test_accept_rejected_in_read_only(make_session, make_orchestrator, facilitator, raised_critic):
    session = make_session([facilitator, raised_critic], read_only=True)
    queue = HandRaiseQueue(session, make_orchestrator({"facilitator": MockProvider("fac")}))
    result = await queue.accept("critic", "p1")
    assert result.outcome is TurnOutcome.REJECTED
    assert session.agent("critic").status is AgentStatus.HAND_RAISED


async def test_accept_unknown_entry_rejected(make_session, make_orchestrator, facilitator, raised_critic):
    session = make_session([facilitator, raised_critic])
    queue = HandRaiseQueue(session, make_orchestrator({"facilitator": MockProvider("fac")}))
    assert (await queue.accept("critic", "nope")).outcome is TurnOutcome.REJECTED
    assert (await queue.accept("ghost", "p1")).outcome is TurnOutcome.REJECTED


async def test_dismiss_removes_without_posting(make_session, make_orchestrator, facilitator, raised_critic):
    session = make_session([facilitator, raised_critic])
    provider = MockProvider("fac")
    queue = HandRaiseQueue(session, make_orchestrator({"facilitator": provider}))

    assert await queue.dismiss("critic", "p1") is True

    assert session.messages == ()
    assert provider.calls == []
    critic_state = session.agent("critic")
    assert critic_state.status is AgentStatus.READY
    assert critic_state.hand_raise_count == 0
    assert await queue.dismiss("critic", "p1") is False


async def test_insert_to_input_fills_draft(make_session, make_orchestrator, facilitator, raised_critic):
    session = make_session([facilitator, raised_critic])
    queue = HandRaiseQueue(session, make_orchestrator({"facilitator": MockProvider("fac")}))

    text = await queue.insert_to_input("critic", "p1")

    assert text == "Critic (Observer): Consider budget risk."
    assert session.draft_input == text
    assert session.messages == ()
    assert session.agent("critic").status is AgentStatus.READY
    assert await queue.insert_to_input("critic", "p1") is None


async def test_dismiss_refused_in_read_only(make_session, make_orchestrator, memory_store, facilitator, raised_critic):
    session = make_session([facilitator, raised_critic], read_only=True)
    stored = {"critic": session_state_of(raised_critic)}
    await memory_store.save_session_agent_states(session.id, stored)
    queue = HandRaiseQueue(session, make_orchestrator({"facilitator": MockProvider("fac")}))

    assert await queue.dismiss("critic", "p1") is False

    assert session.agent("critic").status is AgentStatus.HAND_RAISED
    assert await memory_store.get_session_agent_states(session.id) == stored


async def test_insert_to_input_refused_in_read_only(make_session, make_orchestrator, facilitator, raised_critic):
    session = make_session([facilitator, raised_critic], read_only=True)
    queue = HandRaiseQueue(session, make_orchestrator({"facilitator": MockProvider("fac")}))

    assert await queue.insert_to_input("critic", "p1") is None

    assert session.draft_input == ""
    assert session.agent("critic").pending_messages == raised_critic.pending_messages
