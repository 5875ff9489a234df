"""Typer CLI entrypoint for gwbridge.

Commands:
  setup            — store the instance address, token and owner
  call             — run one gateway RPC method and print the payload
  history          — show the sanitised chat history of a session
  whatsapp-debug   — show the WhatsApp channel status snapshot
  whatsapp-secure  — restrict WhatsApp DMs to the linked owner
  whatsapp-login-wait — wait for a QR login, then restrict DMs to the owner
  sanitize         — strip chat envelopes from text (argument or stdin)
  command          — parse a /config or /debug slash command
  duration         — convert a duration like 1.5s to milliseconds
  serve            — run the HTTP API in the foreground
"""

from __future__ import annotations

import asyncio
import json
import signal
import sys
from dataclasses import asdict
from typing import Any, Optional

import click
import typer
from rich.console import Console
from rich.table import Table

from . import log_setup
from .chat_sanitize import sanitize_user_text, strip_envelope_from_messages
from .commands import CommandError, parse_command
from .config import (
    CONFIG_FILE,
    LOG_DIR,
    Config,
    load_config,
    load_gateway_override,
    save_config,
)
from .durations import UNIT_MS, InvalidDuration, parse_duration_ms
from .models import GatewayTarget
from .server import configure, run_http_server
from .target import resolve_gateway_target
from .whatsapp_guard import collect_whatsapp_debug, ensure_owner_only, wait_for_whatsapp_login
from .ws_client import build_session_key, fetch_chat_history, gateway_rpc

app = typer.Typer(
    name="gwbridge",
    help="Gateway RPC bridge — call a chat gateway and clean up what it returns.",
    add_completion=False,
)
console = Console()


def _target(config: Config) -> GatewayTarget:
    override = load_gateway_override()
    if not config.instance_url.strip() and not override.url:
        console.print(
            "[red]No gateway configured. Run [bold]gwbridge setup[/bold] "
            "or set LOCAL_GATEWAY_URL.[/red]"
        )
        raise typer.Exit(1)
    return resolve_gateway_target(
        config.instance_url, config.instance_token, config.instance_id, override
    )


def _timeout_ms(raw: Optional[str], config: Config) -> int:
    if raw is None:
        return config.timeout_ms
    try:
        return parse_duration_ms(raw)
    except InvalidDuration as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(2) from exc


def _print_json(value: Any) -> None:
    console.print_json(json.dumps(value, default=str))


# ---------------------------------------------------------------------------
# setup
# ---------------------------------------------------------------------------

@app.command()
def setup(
    instance_url: str = typer.Option(
        None, "--instance-url", "-u", help="Gateway public URL (e.g. https://abc.example.com)"
    ),
    token: str = typer.Option(None, "--token", "-t", help="Gateway bearer token"),
    instance_id: str = typer.Option(None, "--instance-id", help="Instance identifier"),
    user_id: str = typer.Option(None, "--user-id", help="Owner user id for chat history"),
) -> None:
    """Store the gateway address and credentials in ~/.gwbridge/config.json."""
    console.print("[bold cyan]gwbridge setup[/bold cyan]")
    existing = load_config()

    if instance_url is None:
        instance_url = typer.prompt("Gateway URL", default=existing.instance_url or "")
    if token is None:
        token = typer.prompt(
            "Gateway token",
            default=existing.instance_token or "",
            hide_input=True,
            show_default=False,
        )

    config = existing.model_copy(
        update={
            "instance_url": instance_url,
            "instance_token": token,
            "instance_id": instance_id if instance_id is not None else existing.instance_id,
            "user_id": user_id if user_id is not None else existing.user_id,
        }
    )
    save_config(config)
    console.print(f"[green]Config saved to[/green] {CONFIG_FILE}")
    console.print(f"  instance_url: [bold]{config.instance_url}[/bold]")
    console.print(f"  instance_id : [bold]{config.instance_id or '—'}[/bold]")
    console.print(f"  user_id     : [bold]{config.user_id or '—'}[/bold]")


# ---------------------------------------------------------------------------
# call / history
# ---------------------------------------------------------------------------

@app.command()
def call(
    method: str = typer.Argument(..., help="Gateway method, e.g. 'channels.status'"),
    params: str = typer.Option("{}", "--params", "-p", help="JSON params object"),
    timeout: Optional[str] = typer.Option(None, "--timeout", help="Overall timeout, e.g. 30s"),
) -> None:
    """Call one gateway method and print its payload."""
    config = load_config()
    try:
        rpc_params = json.loads(params)
    except json.JSONDecodeError as exc:
        console.print(f"[red]Invalid --params JSON: {exc}[/red]")
        raise typer.Exit(2) from exc

    target = _target(config)
    result = asyncio.run(
        gateway_rpc(
            target.gateway_url,
            target.token,
            method,
            rpc_params,
            timeout_ms=_timeout_ms(timeout, config),
        )
    )
    if not result.ok:
        console.print(f"[red]{method} failed:[/red] {result.error}")
        if result.details:
            console.print(f"[dim]{result.details}[/dim]")
        raise typer.Exit(1)
    _print_json(result.payload)


@app.command()
def history(
    user_id: str = typer.Option(None, "--user-id", help="Owner user id (defaults to config)"),
    limit: int = typer.Option(1000, "--limit", "-n", help="Maximum number of messages"),
    raw: bool = typer.Option(False, "--raw", help="Do not strip chat envelopes"),
) -> None:
    """Show the chat history of the configured user's session."""
    config = load_config()
    owner = user_id or config.user_id
    if not owner:
        console.print("[red]No user id. Pass --user-id or run gwbridge setup.[/red]")
        raise typer.Exit(1)

    target = _target(config)
    session_key = build_session_key(owner, config.agent_id)
    result = asyncio.run(fetch_chat_history(target.gateway_url, target.token, session_key, limit))
    if not result.ok:
        console.print(f"[red]Failed to fetch history:[/red] {result.error}")
        raise typer.Exit(1)

    messages = result.messages if raw else strip_envelope_from_messages(result.messages)
    table = Table(title=session_key, show_header=True, padding=(0, 1))
    table.add_column("Role", style="bold")
    table.add_column("Content")
    for message in messages:
        if not isinstance(message, dict):
            continue
        content = message.get("content", message.get("text", ""))
        if isinstance(content, list):
            content = "\n".join(
                str(block.get("text", "")) for block in content
                if isinstance(block, dict) and block.get("type") == "text"
            )
        table.add_row(str(message.get("role", "?")), str(content))
    console.print(table)


# ---------------------------------------------------------------------------
# whatsapp
# ---------------------------------------------------------------------------

@app.command("whatsapp-debug")
def whatsapp_debug() -> None:
    """Show what the gateway reports about the WhatsApp channel."""
    target = _target(load_config())
    debug = asyncio.run(collect_whatsapp_debug(target.gateway_url, target.token))
    _print_json(debug.model_dump(exclude_none=True))
    if debug.error:
        raise typer.Exit(1)


@app.command("whatsapp-secure")
def whatsapp_secure(
    account_id: str = typer.Option(None, "--account-id", help="Fallback WhatsApp account id"),
) -> None:
    """Allow WhatsApp DMs only from the linked owner number."""
    config = load_config()
    target = _target(config)
    result = asyncio.run(
        ensure_owner_only(
            target.gateway_url,
            target.token,
            account_id or config.whatsapp_account_id,
        )
    )
    if not result.ok:
        console.print(f"[red]Could not secure WhatsApp:[/red] {result.error}")
        raise typer.Exit(1)
    if result.applied:
        console.print(
            f"[green]Restricted[/green] account [bold]{result.accountId}[/bold] "
            f"to {result.ownerE164}."
        )
    elif result.ownerE164:
        console.print(f"[dim]Already restricted to {result.ownerE164}.[/dim]")
    else:
        console.print("[yellow]No linked WhatsApp number yet; nothing to do.[/yellow]")


EXIT_RETRY_LATER = 75  # EX_TEMPFAIL


@app.command("whatsapp-login-wait")
def whatsapp_login_wait(
    wait: str = typer.Option("120s", "--wait", "-w", help="How long the gateway waits for the QR scan"),
    account_id: str = typer.Option(None, "--account-id", help="WhatsApp account id"),
) -> None:
    """Wait for a WhatsApp QR login; once linked, allow DMs only from the owner."""
    config = load_config()
    try:
        wait_ms = parse_duration_ms(wait)
    except InvalidDuration as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(2) from exc

    target = _target(config)
    result = asyncio.run(
        wait_for_whatsapp_login(
            target.gateway_url,
            target.token,
            timeout_ms=wait_ms,
            account_id=account_id or config.whatsapp_account_id,
        )
    )
    if result.retryable:
        console.print(f"[yellow]{result.error}.[/yellow] {result.details}")
        raise typer.Exit(EXIT_RETRY_LATER)
    if not result.ok:
        console.print(f"[red]{result.error}:[/red] {result.details}")
        raise typer.Exit(1)
    if not result.connected:
        console.print(f"[dim]{result.message}[/dim]")
        return
    owner = result.access.ownerE164 if result.access else None
    console.print(f"[green]WhatsApp linked.[/green] DMs restricted to {owner or 'the owner'}.")


# ---------------------------------------------------------------------------
# text helpers
# ---------------------------------------------------------------------------

@app.command()
def sanitize(
    text: Optional[str] = typer.Argument(None, help="Text to clean; read from stdin if omitted"),
) -> None:
    """Strip gateway envelopes and context markers from user text."""
    source = text if text is not None else click.get_text_stream("stdin").read()
    typer.echo(sanitize_user_text(source))


@app.command()
def command(
    raw: str = typer.Argument(..., help="Slash command, e.g. '/config set a.b=5'"),
) -> None:
    """Parse a /config or /debug command and print the result."""
    parsed = parse_command(raw)
    if parsed is None:
        console.print("[yellow]Not a recognised slash command.[/yellow]")
        raise typer.Exit(1)
    if isinstance(parsed, CommandError):
        console.print(f"[red]{parsed.message}[/red]")
        raise typer.Exit(2)
    _print_json(asdict(parsed))


@app.command()
def duration(
    raw: str = typer.Argument(..., help="Duration such as 500ms, 1.5s, 2h"),
    default_unit: str = typer.Option("ms", "--default-unit", help="Unit for bare numbers: ms, s, m or h"),
) -> None:
    """Convert a duration to milliseconds."""
    if default_unit not in UNIT_MS:
        console.print(f"[red]Unknown unit: {default_unit}[/red]")
        raise typer.Exit(2)
    try:
        typer.echo(str(parse_duration_ms(raw, default_unit=default_unit)))  # type: ignore[arg-type]
    except InvalidDuration as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(2) from exc


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------

@app.command()
def serve(
    host: str = typer.Option(None, "--host", "-H", help="Bind host (defaults to config)"),
    port: int = typer.Option(None, "--port", "-p", help="Bind port (defaults to config)"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
    log_file: bool = typer.Option(True, "--log-file/--no-log-file", help="Also write ~/.gwbridge/logs/server.log"),
) -> None:
    """Run the HTTP API in the foreground until interrupted."""
    log_setup.init(
        "server",
        LOG_DIR if log_file else None,
        level="DEBUG" if verbose else "INFO",
        foreground=True,
    )
    config = load_config()
    if host is not None:
        config.http_host = host
    if port is not None:
        config.http_port = port
    configure(config)
    console.print(
        f"[green]Serving[/green] http://{config.http_host}:{config.http_port}/status"
    )
    asyncio.run(_serve(config))


async def _serve(config: Config) -> None:
    stop_event = asyncio.Event()

    def _shutdown(*_: object) -> None:
        stop_event.set()

    if sys.platform != "win32":
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, _shutdown)
    else:
        signal.signal(signal.SIGTERM, _shutdown)
        signal.signal(signal.SIGINT, _shutdown)

    await run_http_server(config, stop_event)


if __name__ == "__main__":
    app()
