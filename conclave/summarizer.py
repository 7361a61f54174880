"""Out-of-band conversation summary by the Summarizer agent."""

import logging
from collections.abc import Iterable, Sequence

from config.config_loader import PromptsConfig
from conclave.models import Agent, AgentRole, Message
from conclave.providers.base import AIProvider

logger = logging.getLogger(__name__)

SUMMARY_FAILED = "Summarization failed."


def find_summarizer(agents: Iterable[Agent]) -> Agent | None:
    return next((a for a in agents if a.is_active and a.role is AgentRole.SUMMARIZER), None)


def format_conversation(messages: Sequence[Message]) -> str:
    """Visible, non-error transcript as ``speaker: content`` lines."""
    return "\n".join(
        f"{m.agent_name or m.role.value}: {m.content}"
        for m in messages
        if m.visible_in_chat and not m.is_error
    )


async def summarize(
    messages: Sequence[Message],
    agent: Agent,
    provider: AIProvider,
    prompts: PromptsConfig,
) -> str:
    """Summarize the conversation with key points and ACTION: items.

    Never raises. Failures are logged and return SUMMARY_FAILED.
    """
    prompt = prompts.summary.format(conversation=format_conversation(messages))
    logger.info("Running summary via %s", agent.name)
    try:
        reply = await provider.send(prompt, agent, [])
    except Exception as exc:
        logger.warning("Summary by %s failed: %s", agent.name, exc)
        return SUMMARY_FAILED
    return reply.content.strip()
