"""Transcript export (json / text / markdown) and usage metrics."""

import json
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import frontmatter

from conclave.models import Message, MessageRole, SessionInfo
from conclave.records import message_to_record

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("json", "text", "markdown")
_EXTENSIONS = {"json": "json", "text": "txt", "markdown": "md"}


@dataclass
class UsageMetrics:
    agent_usage: dict[str, int] = field(default_factory=dict)  # agent_id -> assistant messages
    total_messages: int = 0
    avg_response_length: float = 0.0


def usage_metrics(messages: Sequence[Message]) -> UsageMetrics:
    agent_messages = [m for m in messages if m.role is MessageRole.ASSISTANT and m.agent_id]
    usage: dict[str, int] = {}
    for m in agent_messages:
        usage[m.agent_id] = usage.get(m.agent_id, 0) + 1
    total_length = sum(len(m.content) for m in agent_messages)
    return UsageMetrics(
        agent_usage=usage,
        total_messages=len(messages),
        avg_response_length=total_length / len(agent_messages) if agent_messages else 0.0,
    )


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len] or "chat"


def _markdown_body(messages: Sequence[Message]) -> str:
    blocks: list[str] = []
    for m in messages:
        author = "**You**" if m.role is MessageRole.USER else f"**{m.agent_name or 'Assistant'}**"
        time_str = datetime.fromtimestamp(m.timestamp / 1000).strftime("%H:%M:%S")
        blocks.append(f"{author} (*{time_str}*):\n\n{m.content}\n\n---\n")
    return "\n".join(blocks)


def export_transcript(session: SessionInfo, messages: Sequence[Message], fmt: str) -> str:
    """Render a transcript in one of EXPORT_FORMATS.

    Raises:
        ValueError: For an unknown format.
    """
    if fmt == "json":
        return json.dumps([message_to_record(m) for m in messages], indent=2, ensure_ascii=False)
    if fmt == "text":
        return "\n\n".join(f"{m.agent_name or m.role.value.upper()}: {m.content}" for m in messages)
    if fmt == "markdown":
        post = frontmatter.Post(
            _markdown_body(messages),
            sessionId=session.id,
            title=session.title,
            exportedAt=datetime.now().isoformat(timespec="seconds"),
        )
        return frontmatter.dumps(post)
    raise ValueError(f"Unknown export format: {fmt}")


def save_to_file(session: SessionInfo, messages: Sequence[Message], fmt: str, output_dir: Path) -> Path:
    """Write the export into ``output_dir`` and return the file path."""
    content = export_transcript(session, messages, fmt)
    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(session.title)}.{_EXTENSIONS[fmt]}"
    filepath.write_text(content, encoding="utf-8")
    logger.info("Transcript saved to: %s", filepath)
    return filepath
