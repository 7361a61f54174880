"""Tests for conclave/export.py."""

import json
from pathlib import Path

import frontmatter
import pytest

from conclave.export import export_transcript, save_to_file, usage_metrics
from conclave.models import Message, MessageRole, SessionInfo

SESSION = SessionInfo(id="s1", title="Launch Plan: Q3!", created_at=1, last_active=2)
MESSAGES = (
    Message("m1", MessageRole.USER, "Plan the launch", 1_700_000_000_000),
    Message("m2", MessageRole.ASSISTANT, "Four steps.", 1_700_000_001_000, agent_id="f", agent_name="Facilitator"),
    Message("m3", MessageRole.ASSISTANT, "Mind the budget.", 1_700_000_002_000, agent_id="c", agent_name="Critic"),
    Message("m4", MessageRole.ASSISTANT, "Add a timeline.", 1_700_000_003_000, agent_id="f", agent_name="Facilitator"),
)


def test_json_export_uses_message_records():
    records = json.loads(export_transcript(SESSION, MESSAGES, "json"))
    assert [r["id"] for r in records] == ["m1", "m2", "m3", "m4"]
    assert records[1]["agentName"] == "Facilitator"


def test_text_export():
    text = export_transcript(SESSION, MESSAGES[:2], "text")
    assert text == "USER: Plan the launch\n\nFacilitator: Four steps."


def test_markdown_export_has_front_matter():
    post = frontmatter.loads(export_transcript(SESSION, MESSAGES, "markdown"))
    assert post["sessionId"] == "s1"
    assert post["title"] == "Launch Plan: Q3!"
    assert "exportedAt" in post.metadata
    assert "**You**" in post.content
    assert "**Critic**" in post.content


def test_unknown_format_raises():
    with pytest.raises(ValueError, match="Unknown export format"):
        export_transcript(SESSION, MESSAGES, "pdf")


def test_usage_metrics():
    metrics = usage_metrics(MESSAGES)
    assert metrics.agent_usage == {"f": 2, "c": 1}
    assert metrics.total_messages == 4
    expected = (len("Four steps.") + len("Mind the budget.") + len("Add a timeline.")) / 3
    assert metrics.avg_response_length == pytest.approx(expected)


def test_usage_metrics_empty():
    metrics = usage_metrics(())
    assert metrics.agent_usage == {}
    assert metrics.avg_response_length == 0.0


@pytest.mark.parametrize("fmt,ext", [("json", ".json"), ("text", ".txt"), ("markdown", ".md")])
def test_save_to_file(tmp_path: Path, fmt, ext):
    path = save_to_file(SESSION, MESSAGES, fmt, tmp_path / "out")
    assert path.parent == tmp_path / "out"
    assert path.suffix == ext
    assert path.name.endswith(f"_launch-plan-q3{ext}")
    assert path.read_text(encoding="utf-8") != ""


def test_save_to_file_untitled_slug(tmp_path: Path):
    path = save_to_file(SessionInfo("s2", "???", 1, 1), MESSAGES, "text", tmp_path)
    assert path.name.endswith("_chat.txt")
