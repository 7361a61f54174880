"""Click CLI: interactive chat plus session, agent, provider and bundle management."""

import asyncio
import dataclasses
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.logging import RichHandler
from rich.markup import escape

from config.config_loader import AppConfig, load_config
from conclave.bundle import BundleError, SessionBundle, export_config, export_session, import_bundle
from conclave.chat_session import ChatSession
from conclave.export import EXPORT_FORMATS, save_to_file, usage_metrics
from conclave.hand_raise import HandRaiseQueue, pending_entries
from conclave.healthcheck import run_health_checks
from conclave.models import AgentRole, ChatState, MessageRole, ProviderType
from conclave.orchestrator import TurnOrchestrator
from conclave.output import (
    StreamPrinter,
    console,
    print_agents,
    print_metrics,
    print_notice,
    print_pending,
    print_provider_configs,
    print_sessions,
    print_summary,
    print_transcript,
)
from conclave.provider_configs import ProviderConfigStore, default_provider_config
from conclave.providers.factory import ProviderPool
from conclave.registry import TEMPLATE_PRESETS, AgentRegistry
from conclave.sessions import SessionStore, near_message_limit
from conclave.storage import StorageDegraded, on_storage_degraded, open_storage
from conclave.summarizer import find_summarizer, summarize

logger = logging.getLogger(__name__)


@dataclass
class App:
    config: AppConfig
    store: SessionStore
    registry: AgentRegistry
    provider_configs: ProviderConfigStore
    pool: ProviderPool


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_app(config: AppConfig) -> App:
    d = config.defaults
    provider_configs = ProviderConfigStore(d.provider_configs_path)
    return App(
        config=config,
        store=SessionStore(open_storage(d.database_path), d.max_messages, d.title_max_len),
        registry=AgentRegistry(d.roster_path),
        provider_configs=provider_configs,
        pool=ProviderPool(provider_configs, d.timeout_sec, d.max_tokens),
    )


def _on_degraded(event: StorageDegraded) -> None:
    print_notice(f"{event.message} Run 'conclave storage reset' to reformat local storage.")


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Conclave -- chat with a roster of AI agents.

    \b
    Examples:
      conclave chat
      conclave chat --session <id>
      conclave agents add --template critic
      conclave providers add gemini --key env:GEMINI_API_KEY
      conclave providers validate
    """
    # Reconfigure stdout/stderr to UTF-8 on Windows so model responses containing
    # Unicode chars don't crash the ANSI render path.
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    ctx.obj = _build_app(config)
    ctx.call_on_close(on_storage_degraded(_on_degraded))


# -- chat ---------------------------------------------------------------------


_HELP = (
    "/accept N  post raised hand N to the chat\n"
    "/dismiss N drop raised hand N\n"
    "/insert N  copy raised hand N into your next message\n"
    "/summary   summarize the conversation\n"
    "/agents    show the roster\n"
    "/retry     remove the error and stage your last message\n"
    "/quit      leave"
)

# Commands that change the transcript or the raised-hand queue
_WRITE_COMMANDS = ("/accept", "/dismiss", "/insert", "/retry")


def _pick_pending(session: ChatSession, arg: str) -> tuple[str, str] | None:
    entries = pending_entries(session)
    try:
        agent, entry = entries[int(arg) - 1]
    except (ValueError, IndexError):
        print_notice(f"No raised hand #{arg}.")
        return None
    return agent.id, entry.id


async def _summary(app: App, session: ChatSession) -> None:
    agent = find_summarizer(session.agents)
    if agent is None:
        print_notice("No active Summarizer agent. Promote one with 'conclave agents promote <id> Summarizer'.")
        return
    provider = app.pool(agent)
    if provider is None:
        print_notice(f"{agent.name} has no validated provider configuration.")
        return
    print_summary(await summarize(session.messages, agent, provider, app.config.prompts))
    print_metrics(usage_metrics(session.messages), session.agents)


def _retry(session: ChatSession) -> bool:
    """Drop the trailing error message and stage the last user input as the draft."""
    if session.read_only:
        print_notice("This session is read-only.")
        return False
    if not session.messages or not session.messages[-1].is_error:
        print_notice("Nothing to retry.")
        return False
    session.remove_message(session.messages[-1].id)
    last_user = next((m for m in reversed(session.messages) if m.role is MessageRole.USER), None)
    if last_user is not None:
        session.draft_input = last_user.content
    return True


async def _chat_loop(app: App, session_id: str | None, read_only: bool) -> None:
    d = app.config.defaults
    session = await ChatSession.open(app.store, app.registry, session_id, d.default_model, read_only)
    printer = StreamPrinter()
    orchestrator = TurnOrchestrator(
        resolve_provider=app.pool,
        prompts=app.config.prompts,
        store=app.store,
        context_window=d.context_window,
        history_messages=d.history_messages,
        on_chunk=printer,
        on_notice=print_notice,
    )
    queue = HandRaiseQueue(session, orchestrator)

    console.print(f"\n[bold cyan]Conclave[/bold cyan] -- {session.info.title} [dim]({session.id})[/dim]")
    console.print("[dim]Type /help for commands.[/dim]\n")
    print_transcript(session.messages)
    print_pending(pending_entries(session))

    while True:
        if session.draft_input:
            console.print(f"[dim]Draft (Enter to send):[/dim] {escape(session.draft_input)}")
        try:
            line = (await asyncio.to_thread(console.input, "[bold]> [/bold]")).strip()
        except (EOFError, KeyboardInterrupt):
            break
        if not line and session.draft_input:
            line = session.draft_input
        if not line:
            continue

        command, _, arg = line.partition(" ")
        if command in ("/quit", "/exit"):
            break
        if command == "/help":
            console.print(_HELP)
            continue
        if command == "/agents":
            print_agents(session.agents)
            continue
        if command == "/summary":
            await _summary(app, session)
            continue
        if session.read_only and (command in _WRITE_COMMANDS or not command.startswith("/")):
            print_notice("This session is read-only.")
            continue
        if command == "/retry":
            if _retry(session):
                await session.persist(app.store)
            continue
        if command in ("/dismiss", "/insert"):
            picked = _pick_pending(session, arg.strip())
            if picked:
                if command == "/dismiss":
                    await queue.dismiss(*picked)
                else:
                    await queue.insert_to_input(*picked)
            print_pending(pending_entries(session))
            continue

        session.refresh_roster(app.registry)
        if command == "/accept":
            picked = _pick_pending(session, arg.strip())
            if picked is None:
                continue
            result = await queue.accept(*picked)
        else:
            session.draft_input = ""
            result = await orchestrator.run_turn(session, line)
        printer.finish()

        if result.added_messages and result.added_messages[-1].is_error:
            console.print(f"[bold red]{escape(result.added_messages[-1].content)}[/bold red] [dim]/retry to try again[/dim]")
        print_pending(pending_entries(session))
        if near_message_limit(len(session.messages), d.max_messages):
            print_notice(
                f"This session has {len(session.messages)} messages; only the newest {d.max_messages} are kept."
            )


@main.command()
@click.option("--session", "session_id", default=None, help="Resume a session by id (default: new session)")
@click.option("--read-only", is_flag=True, help="Browse the transcript without sending")
@click.pass_obj
def chat(app: App, session_id: str | None, read_only: bool) -> None:
    """Start or resume an interactive chat."""
    asyncio.run(_chat_loop(app, session_id, read_only))


# -- sessions -------------------------------------------------------------------


@main.group()
def sessions() -> None:
    """Manage stored sessions."""


@sessions.command("list")
@click.pass_obj
def sessions_list(app: App) -> None:
    items = asyncio.run(app.store.list_sessions())
    if not items:
        click.echo("No sessions.")
        return
    print_sessions(items)


@sessions.command("delete")
@click.argument("session_id")
@click.pass_obj
def sessions_delete(app: App, session_id: str) -> None:
    if not asyncio.run(app.store.delete_session(session_id)):
        raise click.ClickException(f"Unknown session: {session_id}")
    click.echo(f"Deleted session {session_id}")


@sessions.command("clear")
@click.confirmation_option(prompt="Delete every session?")
@click.pass_obj
def sessions_clear(app: App) -> None:
    count = asyncio.run(app.store.clear_all_sessions())
    click.echo(f"Deleted {count} sessions")


@sessions.command("rename")
@click.argument("session_id")
@click.argument("title")
@click.pass_obj
def sessions_rename(app: App, session_id: str, title: str) -> None:
    if not asyncio.run(app.store.update_session_title(session_id, title)):
        raise click.ClickException(f"Unknown session: {session_id}")
    click.echo(f"Renamed session {session_id}")


@sessions.command("export")
@click.argument("session_id")
@click.option("--format", "fmt", type=click.Choice(EXPORT_FORMATS), default="markdown", show_default=True)
@click.option("--output", "output_dir", type=click.Path(file_okay=False, path_type=Path), default=Path("."))
@click.pass_obj
def sessions_export(app: App, session_id: str, fmt: str, output_dir: Path) -> None:
    """Export a session transcript to a file."""

    async def load() -> tuple:
        info = await app.store.get_session(session_id)
        state = await app.store.get_session_state(session_id, app.config.defaults.default_model)
        return info, state

    info, state = asyncio.run(load())
    if info is None:
        raise click.ClickException(f"Unknown session: {session_id}")
    path = save_to_file(info, state.messages, fmt, output_dir)
    click.echo(f"Saved to: {path}")


# -- agents ---------------------------------------------------------------------


@main.group()
def agents() -> None:
    """Manage the agent roster."""


@agents.command("list")
@click.pass_obj
def agents_list(app: App) -> None:
    print_agents(app.registry.list_agents())


@agents.command("promote")
@click.argument("agent_id")
@click.argument("role", type=click.Choice([r.value for r in AgentRole]))
@click.pass_obj
def agents_promote(app: App, agent_id: str, role: str) -> None:
    """Give an agent a role; the previous Primary or Summarizer becomes an Observer."""
    if app.registry.get(agent_id) is None:
        raise click.ClickException(f"Unknown agent: {agent_id}")
    print_agents(app.registry.promote(agent_id, AgentRole(role)))


@agents.command("add")
@click.argument("name", required=False)
@click.option("--template", type=click.Choice(sorted(TEMPLATE_PRESETS)), default=None)
@click.option("--personality", default="", help="Persona description")
@click.option("--model", default=None, help="Model id (default: from config)")
@click.option("--provider", "provider_config_id", default=None, help="Provider configuration id")
@click.pass_obj
def agents_add(
    app: App,
    name: str | None,
    template: str | None,
    personality: str,
    model: str | None,
    provider_config_id: str | None,
) -> None:
    """Add an Observer, from a template or from scratch."""
    if provider_config_id is None:
        verified = app.provider_configs.verified()
        provider_config_id = verified[0].id if verified else ""
    if template:
        agent = app.registry.create_from_template(template, provider_config_id)
    elif name:
        agent = app.registry.create_agent(
            name,
            personality=personality,
            model=model or app.config.defaults.default_model,
            provider_config_id=provider_config_id,
        )
    else:
        raise click.UsageError("Give a NAME or --template.")
    click.echo(f"Added {agent.name} ({agent.id})")


@agents.command("remove")
@click.argument("agent_id")
@click.pass_obj
def agents_remove(app: App, agent_id: str) -> None:
    if app.registry.get(agent_id) is None:
        raise click.ClickException(f"Unknown agent: {agent_id}")
    app.registry.remove(agent_id)
    click.echo(f"Removed {agent_id}")


@agents.command("toggle")
@click.argument("agent_id")
@click.pass_obj
def agents_toggle(app: App, agent_id: str) -> None:
    """Activate or deactivate an agent."""
    agent = app.registry.get(agent_id)
    if agent is None:
        raise click.ClickException(f"Unknown agent: {agent_id}")
    app.registry.set_active(agent_id, not agent.is_active)
    click.echo(f"{agent.name} is now {'inactive' if agent.is_active else 'active'}")


# -- providers ------------------------------------------------------------------


@main.group()
def providers() -> None:
    """Manage provider configurations."""


@providers.command("list")
@click.pass_obj
def providers_list(app: App) -> None:
    print_provider_configs(app.provider_configs.list_configs())


@providers.command("add")
@click.argument("provider_type", type=click.Choice([t.value for t in ProviderType]))
@click.option("--key", "secret_key", required=True, help="API key, or env:VAR_NAME to read it from the environment")
@click.option("--name", default=None)
@click.option("--base-url", default=None, help="Override the vendor endpoint (OpenAI-compatible gateways)")
@click.option("--id", "config_id", default=None, help="Use a fixed id, e.g. default-api-config")
@click.pass_obj
def providers_add(
    app: App,
    provider_type: str,
    secret_key: str,
    name: str | None,
    base_url: str | None,
    config_id: str | None,
) -> None:
    config = default_provider_config(ProviderType(provider_type), secret_key=secret_key, name=name)
    if base_url:
        config = dataclasses.replace(config, base_url=base_url)
    if config_id:
        config = dataclasses.replace(config, id=config_id)
    app.provider_configs.upsert(config)
    click.echo(f"Added {config.name} ({config.id}). Run 'conclave providers validate' before chatting.")


@providers.command("validate")
@click.argument("config_id", required=False)
@click.pass_obj
def providers_validate(app: App, config_id: str | None) -> None:
    """Check connectivity and list models for one or all configurations."""
    console.print("\n[bold]Checking providers...[/bold]")
    results = asyncio.run(run_health_checks(app.provider_configs, [config_id] if config_id else None))
    if not results:
        click.echo("No provider configurations.")
        return
    for name in sorted(results):
        ok, err = results[name]
        if ok:
            console.print(f"  [green]OK  [/green] {escape(name)}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {escape(name)}: {escape(short_err)}")


# -- bundles --------------------------------------------------------------------


@main.group()
def bundle() -> None:
    """Export or import YAML bundles of agents, provider configurations and sessions."""


@bundle.command("export")
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--session", "session_id", default=None, help="Include this session's transcript")
@click.confirmation_option(prompt="The bundle contains API keys in plain text. Continue?")
@click.pass_obj
def bundle_export(app: App, path: Path, session_id: str | None) -> None:
    agents_ = app.registry.list_agents()
    configs = app.provider_configs.list_configs()
    if session_id:

        async def load() -> tuple:
            info = await app.store.get_session(session_id)
            state = await app.store.get_session_state(session_id, app.config.defaults.default_model)
            return info, state

        info, state = asyncio.run(load())
        if info is None:
            raise click.ClickException(f"Unknown session: {session_id}")
        text = export_session(info, state.messages, agents_, configs)
    else:
        text = export_config(agents_, configs)
    path.write_text(text, encoding="utf-8")
    click.echo(f"Saved to: {path}")


@bundle.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def bundle_import(app: App, path: Path) -> None:
    """Replace the roster and provider configurations; session bundles also add the session."""
    try:
        parsed = import_bundle(path.read_text(encoding="utf-8"))
    except BundleError as exc:
        raise click.ClickException(str(exc)) from exc

    app.provider_configs.replace_all(parsed.provider_configs)
    app.registry.replace_all(parsed.agents)
    if isinstance(parsed, SessionBundle):

        async def store_session() -> None:
            await app.store.create_session(title=parsed.title, session_id=parsed.session_id)
            await app.store.save_session_state(
                parsed.session_id,
                ChatState(session_id=parsed.session_id, messages=parsed.messages, model=app.config.defaults.default_model),
            )

        asyncio.run(store_session())
        click.echo(f"Imported session {parsed.title} ({parsed.session_id})")
    click.echo(
        f"Imported {len(parsed.agents)} agents and {len(parsed.provider_configs)} provider configurations. "
        "Validate them with 'conclave providers validate'."
    )


# -- storage --------------------------------------------------------------------


@main.group()
def storage() -> None:
    """Local storage maintenance."""


@storage.command("reset")
@click.confirmation_option(prompt="Delete the local database with every session?")
@click.pass_obj
def storage_reset(app: App) -> None:
    """Reformat local storage after a corruption or version error."""
    asyncio.run(app.store.reset_storage())
    click.echo("Storage reset.")


if __name__ == "__main__":
    main()
