from __future__ import annotations

import asyncio
import json
from pathlib import Path

import click

from autopilot.config import AutopilotConfig, load_config, save_config
from autopilot.directives import extract_tasks
from autopilot.errors import AutopilotError
from autopilot.events import (
    AutopilotOff,
    ChatError,
    Event,
    EventBus,
    ForcedMessage,
    PartialReply,
    TaskFinished,
    TaskStarted,
    for_session,
)
from autopilot.host import AgentHost, WorkspaceSelector
from autopilot.logging_setup import configure_logging
from autopilot.orchestrator import partition_tasks
from autopilot.templates import TEMPLATES, build_catalog, get_template

DEFAULT_CONFIG = "autopilot.toml"


def _resolve_config_path(config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = Path.cwd() / config_path
    return config_path.resolve()


def _load(ctx: click.Context, config_value: str) -> AutopilotConfig:
    config = load_config(_resolve_config_path(config_value))
    level = ctx.obj.get("log_level") or config.logging.level
    configure_logging(level, config.logging.format)
    return config


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Overrides [logging] level from the config file.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """Autopilot CLI."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level


@cli.command("init")
@click.option("--config", "config_value", default=DEFAULT_CONFIG, show_default=True)
def init_command(config_value: str) -> None:
    config_path = _resolve_config_path(config_value)
    config = load_config(config_path)
    save_config(config_path, config)
    click.echo(f"Config: {config_path}")
    click.echo(f"Projects: {config.projects_path}")


@cli.command("profiles")
@click.option("--config", "config_value", default=DEFAULT_CONFIG, show_default=True)
@click.pass_context
def profiles_command(ctx: click.Context, config_value: str) -> None:
    config = _load(ctx, config_value)
    for name, profile in config.profiles.items():
        click.echo(f"{name:<20} {profile.vendor:<10} {profile.model}")


@cli.command("extract")
@click.argument("reply_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--kind", default=None, type=click.Choice(sorted(TEMPLATES)))
@click.option("--config", "config_value", default=DEFAULT_CONFIG, show_default=True)
@click.pass_context
def extract_command(
    ctx: click.Context,
    reply_file: Path,
    kind: str | None,
    config_value: str,
) -> None:
    config = _load(ctx, config_value)
    catalog = build_catalog(get_template(kind or config.workspace.default_kind))
    text = reply_file.read_text(encoding="utf-8")
    installs, remaining = partition_tasks(catalog, extract_tasks(catalog, text))

    payload = {
        "kind": catalog.kind,
        "tasks": [
            {
                **task.to_dict(),
                "title": catalog.behaviors[task.marker].title(task),
                "package_install": task in installs,
            }
            for task in [*installs, *remaining]
        ],
        "checks": [behavior.marker for behavior in catalog.convergence_checks()],
    }
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


def _render_event(event: Event) -> None:
    if isinstance(event, PartialReply):
        click.echo(event.text, nl=False)
    elif isinstance(event, TaskStarted):
        click.echo(f"\n* {event.title}")
    elif isinstance(event, TaskFinished):
        click.echo("  done")
    elif isinstance(event, ForcedMessage):
        click.echo(f"\n> {event.content}\n")
    elif isinstance(event, AutopilotOff):
        click.echo("\n[autopilot off]")
    elif isinstance(event, ChatError):
        click.echo(f"\n[error] {event.error}", err=True)


async def _chat_loop(host: AgentHost, profile_id: str, selector: WorkspaceSelector) -> None:
    session = await host.start_chat(profile_id, selector)
    unsubscribe = host.events.subscribe(for_session(session.id, _render_event))
    click.echo(f"Workspace {session.name} ({session.kind}) preview at {session.preview_url}")
    stdin = click.get_text_stream("stdin")
    try:
        while True:
            await session.conversation.wait_idle()
            click.echo()
            line = await asyncio.to_thread(stdin.readline)
            if not line:
                break
            content = line.strip()
            if not content:
                continue
            if content == "/quit":
                break
            if content == "/restart":
                await host.restart_preview(session.id)
                click.echo(f"Preview restarted at {session.preview_url}")
                continue
            await host.post_message(session.id, content)
    finally:
        unsubscribe()
        await host.shutdown()


@cli.command("chat")
@click.argument("name")
@click.option("--profile", "profile_id", required=True)
@click.option("--create/--open", "create", default=False, show_default=True)
@click.option("--kind", default=None, type=click.Choice(sorted(TEMPLATES)))
@click.option("--config", "config_value", default=DEFAULT_CONFIG, show_default=True)
@click.pass_context
def chat_command(
    ctx: click.Context,
    name: str,
    profile_id: str,
    create: bool,
    kind: str | None,
    config_value: str,
) -> None:
    config = _load(ctx, config_value)
    host = AgentHost(config, EventBus())
    selector = WorkspaceSelector(name=name, create=create, kind=kind)
    try:
        asyncio.run(_chat_loop(host, profile_id, selector))
    except (AutopilotError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc
