"""Tests for conclave/sessions.py."""

from datetime import datetime
from pathlib import Path

import pytest

from conclave.models import AgentSessionState, AgentStatus, ChatState, Message, MessageRole, PendingMessage
from conclave.sessions import (
    MAX_MESSAGES,
    SessionStore,
    generate_session_title,
    near_message_limit,
    prune_messages,
)
from conclave.storage import FallbackStorage, open_storage
from tests.test_storage import BrokenBackend

NOW = datetime(2025, 3, 7, 14, 5)


def _msg(i: int, visible: bool = True) -> Message:
    return Message(id=f"m{i}", role=MessageRole.USER, content=f"message {i}", timestamp=i, visible_in_chat=visible)


def test_prune_drops_hidden_and_keeps_newest():
    messages = [_msg(i, visible=(i % 10 != 0)) for i in range(1, 301)]
    pruned = prune_messages(messages, MAX_MESSAGES)
    assert len(pruned) == MAX_MESSAGES
    assert all(m.visible_in_chat for m in pruned)
    visible = [m for m in messages if m.visible_in_chat]
    assert [m.id for m in pruned] == [m.id for m in visible[-MAX_MESSAGES:]]


def test_prune_orders_by_timestamp():
    messages = [_msg(3), _msg(1), _msg(2)]
    assert [m.id for m in prune_messages(messages, 2)] == ["m2", "m3"]


def test_near_message_limit():
    assert near_message_limit(160) is False
    assert near_message_limit(161) is True
    assert near_message_limit(9, max_messages=10) is True


def test_title_short_message():
    assert generate_session_title("Plan the offsite", now=NOW) == "Plan the offsite • 14:05"


def test_title_truncates_long_message():
    text = "How should we structure the quarterly planning process for the whole team?"
    title = generate_session_title(text, now=NOW)
    assert title == f"{text[:37]}... • 14:05"


def test_title_collapses_whitespace():
    assert generate_session_title("  Hello\n\n   world  ", now=NOW) == "Hello world • 14:05"


@pytest.mark.parametrize("text", [None, "", "   "])
def test_title_without_text(text):
    assert generate_session_title(text, now=NOW) == "Chat 03/07 14:05"


async def test_session_state_round_trip(memory_store: SessionStore):
    state = ChatState(session_id="s1", messages=(_msg(1), _msg(2)), model="gemini-2.5-flash")
    stored = await memory_store.save_session_state("s1", state)
    loaded = await memory_store.get_session_state("s1", "fallback")
    assert loaded == stored == state


async def test_missing_state_uses_fallback_model(memory_store: SessionStore):
    state = await memory_store.get_session_state("unknown", "fallback-model")
    assert state == ChatState(session_id="unknown", messages=(), model="fallback-model", is_processing=False)


async def test_save_returns_pruned_state():
    store = SessionStore(open_storage(None), max_messages=5)
    state = ChatState(session_id="s1", messages=tuple(_msg(i) for i in range(10)), model="m")
    stored = await store.save_session_state("s1", state)
    assert [m.id for m in stored.messages] == ["m5", "m6", "m7", "m8", "m9"]
    assert (await store.get_session_state("s1", "m")).messages == stored.messages


async def test_list_sessions_most_recent_first(memory_store: SessionStore):
    first = await memory_store.create_session(title="First")
    second = await memory_store.create_session(title="Second")
    await memory_store.touch_session(first.id)
    sessions = await memory_store.list_sessions()
    assert {s.id for s in sessions} == {first.id, second.id}
    assert sessions[0].last_active >= sessions[1].last_active


async def test_update_title(memory_store: SessionStore):
    session = await memory_store.create_session(title="Old")
    assert await memory_store.update_session_title(session.id, "New") is True
    assert (await memory_store.get_session(session.id)).title == "New"
    assert await memory_store.update_session_title("missing", "New") is False


async def test_create_session_titles_from_first_message(memory_store: SessionStore):
    session = await memory_store.create_session(first_message="Budget review")
    assert session.title.startswith("Budget review • ")


async def test_agent_states_store_only_deviating(memory_store: SessionStore):
    states = {
        "critic": AgentSessionState(AgentStatus.HAND_RAISED, (PendingMessage("p1", "Point", 1),), 1),
        "facilitator": AgentSessionState(),
    }
    await memory_store.save_session_agent_states("s1", states)
    assert await memory_store.get_session_agent_states("s1") == {"critic": states["critic"]}


async def test_agent_states_cleared_when_all_baseline(memory_store: SessionStore):
    await memory_store.save_session_agent_states(
        "s1", {"critic": AgentSessionState(AgentStatus.HAND_RAISED, (PendingMessage("p1", "Point", 1),), 1)}
    )
    await memory_store.save_session_agent_states("s1", {"critic": AgentSessionState()})
    assert await memory_store.get_session_agent_states("s1") == {}


async def test_delete_session_removes_everything(memory_store: SessionStore):
    session = await memory_store.create_session(title="Doomed")
    await memory_store.save_session_state(session.id, ChatState(session.id, (_msg(1),), "m"))
    await memory_store.save_session_agent_states(
        session.id, {"critic": AgentSessionState(AgentStatus.HAND_RAISED, (PendingMessage("p1", "x", 1),), 1)}
    )

    assert await memory_store.delete_session(session.id) is True

    assert await memory_store.get_session(session.id) is None
    assert (await memory_store.get_session_state(session.id, "m")).messages == ()
    assert await memory_store.get_session_agent_states(session.id) == {}
    assert await memory_store.delete_session(session.id) is False


async def test_clear_all_sessions_returns_count(memory_store: SessionStore):
    await memory_store.create_session(title="A")
    await memory_store.create_session(title="B")
    assert await memory_store.clear_all_sessions() == 2
    assert await memory_store.list_sessions() == []


async def test_sqlite_backed_store_persists_across_instances(tmp_path: Path):
    path = tmp_path / "conclave.db"
    store = SessionStore(open_storage(path))
    session = await store.create_session(title="Kept")
    await store.save_session_state(session.id, ChatState(session.id, (_msg(1),), "m"))

    reopened = SessionStore(open_storage(path))
    assert (await reopened.get_session(session.id)).title == "Kept"
    assert (await reopened.get_session_state(session.id, "m")).messages == (_msg(1),)


async def test_fallback_round_trip_through_store():
    events = []
    from conclave.storage import on_storage_degraded

    on_storage_degraded(events.append)
    store = SessionStore(FallbackStorage(BrokenBackend()))
    state = ChatState(session_id="s1", messages=(_msg(1),), model="m")

    stored = await store.save_session_state("s1", state)
    assert await store.get_session_state("s1", "m") == stored
    await store.save_session_state("s1", state)

    assert store.degraded is True
    assert len(events) == 1
