"""Severity tag extraction and the trivial-reply rule for observer output."""

import re

from conclave.models import Severity

_SEVERITY_RE = re.compile(r"^\s*SEVERITY:\s*(NONE|MINOR|IMPORTANT|CRITICAL)\b[ \t]*\n?", re.IGNORECASE)

PASS_PHRASES = frozenset({"PASS", "✓"})
TRIVIAL_MAX_CHARS = 5


def parse_severity(content: str) -> tuple[Severity, str]:
    """Split a leading ``SEVERITY: <level>`` line off an observer reply.

    Returns (severity, clean_content). A reply without a recognized tag is
    NONE with its content unchanged.
    """
    match = _SEVERITY_RE.match(content)
    if not match:
        return Severity.NONE, content
    return Severity(match.group(1).upper()), content[match.end():].strip()


def is_trivial_reply(clean_content: str) -> bool:
    """Pass-phrases and replies of five characters or fewer say nothing."""
    output = clean_content.strip()
    return output.upper() in PASS_PHRASES or len(output) <= TRIVIAL_MAX_CHARS


def should_stay_silent(severity: Severity, clean_content: str) -> bool:
    return severity is Severity.NONE or is_trivial_reply(clean_content)
