"""Rich console rendering for the chat CLI."""

import logging
from collections.abc import Sequence
from datetime import datetime

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from conclave.export import UsageMetrics
from conclave.models import Agent, AgentStatus, Message, MessageRole, PendingMessage, ProviderConfig, SessionInfo

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_STATUS_STYLES = {
    AgentStatus.READY: "green",
    AgentStatus.THINKING: "yellow",
    AgentStatus.PAUSED: "dim",
    AgentStatus.HAS_FEEDBACK: "cyan",
    AgentStatus.HAND_RAISED: "bold magenta",
}


def _time(timestamp_ms: int | None, fmt: str = "%Y-%m-%d %H:%M") -> str:
    if not timestamp_ms:
        return "-"
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime(fmt)


def _preview(text: str, words: int = 12) -> str:
    """Return first N words of a text."""
    all_words = text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def print_sessions(sessions: Sequence[SessionInfo]) -> None:
    table = Table(title="Sessions", show_lines=False)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Title")
    table.add_column("Last active", style="dim")
    table.add_column("Id", style="dim")
    for i, s in enumerate(sessions, start=1):
        table.add_row(str(i), s.title, _time(s.last_active), s.id)
    console.print(table)


def print_agents(agents: Sequence[Agent]) -> None:
    table = Table(title="Agents")
    table.add_column("Name", style="bold")
    table.add_column("Role")
    table.add_column("Status")
    table.add_column("Active", justify="center")
    table.add_column("Model", style="dim")
    table.add_column("Pending", justify="right")
    table.add_column("Id", style="dim")
    for a in agents:
        table.add_row(
            a.name,
            a.role.value,
            Text(a.status.value, style=_STATUS_STYLES.get(a.status, "")),
            "yes" if a.is_active else "no",
            a.model,
            str(len(a.pending_messages)),
            a.id,
        )
    console.print(table)


def print_provider_configs(configs: Sequence[ProviderConfig]) -> None:
    table = Table(title="Provider configurations")
    table.add_column("Name", style="bold")
    table.add_column("Type")
    table.add_column("Base URL", style="dim")
    table.add_column("Validated")
    table.add_column("Models", justify="right")
    table.add_column("Id", style="dim")
    for c in configs:
        validated = f"[green]{_time(c.last_validated)}[/green]" if c.is_validated else "[red]no[/red]"
        table.add_row(c.name, c.provider_type.value, c.base_url, validated, str(len(c.available_models)), c.id)
    console.print(table)


def print_message(message: Message) -> None:
    if message.is_error:
        console.print(f"[bold red]{escape(message.content)}[/bold red]")
        return
    if message.role is MessageRole.USER:
        console.print(Text(f"You: {message.content}", style="bold"))
        return
    console.print(
        Panel(
            Markdown(message.content),
            title=f"[bold]{escape(message.agent_name or 'Assistant')}[/bold]",
            subtitle=_time(message.timestamp, "%H:%M"),
            border_style="dim",
        )
    )


def print_transcript(messages: Sequence[Message]) -> None:
    for message in messages:
        print_message(message)


def print_pending(entries: Sequence[tuple[Agent, PendingMessage]]) -> None:
    """Numbered raised hands, as referenced by /accept, /dismiss and /insert."""
    if not entries:
        return
    console.print(Rule("[bold magenta]Raised hands[/bold magenta]"))
    for i, (agent, entry) in enumerate(entries, start=1):
        console.print(f"  [magenta]{i}.[/magenta] [bold]{escape(agent.name)}[/bold]: {escape(_preview(entry.content))}")


def print_summary(summary: str) -> None:
    console.print(Rule("[bold green]Summary[/bold green]"))
    console.print(Markdown(summary))


def print_metrics(metrics: UsageMetrics, agents: Sequence[Agent]) -> None:
    names = {a.id: a.name for a in agents}
    usage = ", ".join(f"{names.get(agent_id, agent_id)}: {count}" for agent_id, count in metrics.agent_usage.items())
    console.print(
        Text(
            f"Messages: {metrics.total_messages} | "
            f"Avg response: {metrics.avg_response_length:.0f} chars | "
            f"By agent: {usage or '-'}",
            style="dim",
        )
    )


def print_notice(text: str) -> None:
    console.print(f"[yellow]{escape(text)}[/yellow]")


class StreamPrinter:
    """Prints primary output as it streams, one header per agent."""

    def __init__(self) -> None:
        self._current: str | None = None

    def __call__(self, agent: Agent, fragment: str) -> None:
        if agent.id != self._current:
            if self._current is not None:
                console.print()
            console.print(f"[bold cyan]{escape(agent.name)}:[/bold cyan] ", end="")
            self._current = agent.id
        console.print(fragment, end="", markup=False, highlight=False)

    def finish(self) -> None:
        if self._current is not None:
            console.print()
        self._current = None
