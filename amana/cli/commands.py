"""CLI commands for Amana."""

import asyncio
import json
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table
from rich.text import Text

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from prompt_toolkit.patch_stdout import patch_stdout

from amana import __logo__, __version__

app = typer.Typer(
    name="amana",
    help=f"{__logo__} Amana - assistente pessoal no Telegram",
    no_args_is_help=True,
)
context_app = typer.Typer(help="Inspect or reset stored conversations")
app.add_typer(context_app, name="context")

console = Console()
EXIT_COMMANDS = {"exit", "quit", "sair", "/exit", "/quit", ":q"}


def _configure_logging(level: str, enabled: bool = True) -> None:
    """Route loguru to stderr at *level*; silence amana when disabled."""
    from loguru import logger

    logger.remove()
    logger.add(sys.stderr, level=level.upper())
    if enabled:
        logger.enable("amana")
    else:
        logger.disable("amana")


# ---------------------------------------------------------------------------
# CLI input: prompt_toolkit for editing, paste and history
# ---------------------------------------------------------------------------

_PROMPT_SESSION: PromptSession | None = None


def _init_prompt_session(state_dir: Path) -> None:
    """Create the prompt_toolkit session with persistent file history."""
    global _PROMPT_SESSION

    history_file = state_dir / "history" / "cli_history"
    history_file.parent.mkdir(parents=True, exist_ok=True)

    _PROMPT_SESSION = PromptSession(
        history=FileHistory(str(history_file)),
        enable_open_in_editor=False,
        multiline=False,   # Enter submits (single line mode)
    )


async def _read_interactive_input_async() -> str:
    if _PROMPT_SESSION is None:
        raise RuntimeError("Call _init_prompt_session() first")
    try:
        with patch_stdout():
            return await _PROMPT_SESSION.prompt_async(
                HTML("<b fg='ansigreen'>Você:</b> "),
            )
    except EOFError as exc:
        raise KeyboardInterrupt from exc


def _print_reply(reply: str, render_markdown: bool) -> None:
    body = Markdown(reply or "") if render_markdown else Text(reply or "")
    console.print()
    console.print(f"[green]{__logo__} Amana[/green]")
    console.print(body)
    console.print()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} Amana v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """Amana - assistente pessoal no Telegram."""
    pass


# ============================================================================
# Serve (FastAPI HTTP)
# ============================================================================


@app.command()
def serve(
    host: str = typer.Option(None, "--host", help="Bind host (default: AMANA_HOST)"),
    port: int = typer.Option(None, "--port", "-p", help="Bind port (default: AMANA_PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
):
    """Start the webhook server (FastAPI + Uvicorn)."""
    import uvicorn

    from amana.settings import get_settings

    settings = get_settings()
    _configure_logging(settings.log_level)
    host = host or settings.host
    port = port or settings.port

    console.print(f"{__logo__} Starting Amana on {host}:{port} ...")
    uvicorn.run(
        "amana.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
        log_level="warning",
    )


# ============================================================================
# Chat (local orchestrator)
# ============================================================================


@app.command()
def chat(
    message: str = typer.Option(None, "--message", "-m", help="Single message to send"),
    conversation_id: str = typer.Option("cli:local", "--conversation", "-c", help="Conversation id"),
    markdown: bool = typer.Option(True, "--markdown/--no-markdown", help="Render replies as Markdown"),
    logs: bool = typer.Option(False, "--logs/--no-logs", help="Show runtime logs during chat"),
):
    """Talk to the dialog orchestrator without Telegram."""
    from amana.runtime.wiring import build_runtime
    from amana.settings import get_settings

    settings = get_settings()
    _configure_logging(settings.log_level, enabled=logs)
    runtime = build_runtime(settings, with_channel=False)

    def _thinking_ctx():
        if logs:
            from contextlib import nullcontext
            return nullcontext()
        return console.status("[dim]Amana está pensando...[/dim]", spinner="dots")

    async def run_once() -> None:
        try:
            with _thinking_ctx():
                reply = await runtime.orchestrator.handle(conversation_id, message)
            _print_reply(reply, render_markdown=markdown)
        finally:
            await runtime.aclose()

    async def run_interactive() -> None:
        _init_prompt_session(settings.state_dir)
        console.print(f"{__logo__} Modo interativo (digite [bold]sair[/bold] ou [bold]Ctrl+C[/bold] para encerrar)\n")
        try:
            while True:
                try:
                    user_input = (await _read_interactive_input_async()).strip()
                except KeyboardInterrupt:
                    break
                if not user_input:
                    continue
                if user_input.lower() in EXIT_COMMANDS:
                    break
                with _thinking_ctx():
                    reply = await runtime.orchestrator.handle(conversation_id, user_input)
                _print_reply(reply, render_markdown=markdown)
        finally:
            console.print("\nAté logo!")
            await runtime.aclose()

    asyncio.run(run_once() if message else run_interactive())


# ============================================================================
# Exec (dispatcher directly)
# ============================================================================


@app.command("exec")
def exec_command(
    command: str = typer.Argument(..., help="CREATE_EVENT, READ_EMAILS, SEND_EMAIL, SAVE_MEMORY, SHOW_AGENDA, SAVE_FILE"),
    data: str = typer.Option("{}", "--data", "-d", help="Command payload as JSON"),
):
    """Run one command through the action dispatcher."""
    from amana.runtime.wiring import build_dispatcher
    from amana.settings import get_settings

    try:
        payload = json.loads(data)
    except ValueError as e:
        console.print(f"[red]Invalid --data JSON: {e}[/red]")
        raise typer.Exit(2)
    if not isinstance(payload, dict):
        console.print("[red]--data must be a JSON object[/red]")
        raise typer.Exit(2)

    settings = get_settings()
    _configure_logging(settings.log_level)
    dispatcher, _ = build_dispatcher(settings)

    async def run():
        try:
            return await dispatcher.execute(command, payload)
        finally:
            await dispatcher.close()

    result = asyncio.run(run())
    console.print_json(json.dumps(result.to_dict(), ensure_ascii=False, default=str))
    if not result.ok:
        raise typer.Exit(1)


# ============================================================================
# Context Commands
# ============================================================================


@context_app.command("show")
def context_show(conversation_id: str = typer.Argument(..., help="Conversation id (Telegram chat id)")):
    """Print a stored conversation."""
    from amana.runtime.wiring import build_store
    from amana.settings import get_settings

    store = build_store(get_settings())
    conv = asyncio.run(store.load(conversation_id))
    console.print_json(json.dumps(conv.to_dict(), ensure_ascii=False))


@context_app.command("reset")
def context_reset(conversation_id: str = typer.Argument(..., help="Conversation id (Telegram chat id)")):
    """Delete a stored conversation."""
    from amana.runtime.wiring import build_store
    from amana.settings import get_settings

    store = build_store(get_settings())
    if asyncio.run(store.reset(conversation_id)):
        console.print(f"[green]✓[/green] Conversation {conversation_id} reset")
    else:
        console.print(f"[yellow]No stored conversation for {conversation_id}[/yellow]")


@context_app.command("list")
def context_list():
    """List stored conversation ids."""
    from amana.runtime.wiring import build_store
    from amana.settings import get_settings

    ids = build_store(get_settings()).list_ids()
    if not ids:
        console.print("No stored conversations.")
        return
    for cid in ids:
        console.print(cid)


# ============================================================================
# Telegram webhook registration
# ============================================================================


@app.command("webhook-set")
def webhook_set(
    url: str = typer.Argument(None, help="Public URL of /telegram/webhook (default: AMANA_TELEGRAM_WEBHOOK_URL)"),
):
    """Register the Telegram webhook."""
    from amana.channels.telegram import TelegramChannel
    from amana.settings import get_settings

    settings = get_settings()
    url = url or settings.telegram_webhook_url
    if not settings.telegram_token:
        console.print("[red]Error: AMANA_TELEGRAM_TOKEN is not set.[/red]")
        raise typer.Exit(1)
    if not url:
        console.print("[red]Error: pass a URL or set AMANA_TELEGRAM_WEBHOOK_URL.[/red]")
        raise typer.Exit(1)

    channel = TelegramChannel(settings.telegram_token, media_dir=settings.state_dir / "media")

    async def run() -> bool:
        await channel.start()
        try:
            return await channel.set_webhook(url, settings.telegram_webhook_secret)
        finally:
            await channel.stop()

    if asyncio.run(run()):
        console.print(f"[green]✓[/green] Webhook set to {url}")
    else:
        console.print("[red]Telegram refused the webhook[/red]")
        raise typer.Exit(1)


# ============================================================================
# Status
# ============================================================================


@app.command()
def status(
    audit: int = typer.Option(5, "--audit", "-a", help="Recent audit entries to show"),
):
    """Show Amana configuration status."""
    from amana.observability.audit import ActionAudit
    from amana.settings import get_settings

    settings = get_settings()

    def mark(ok: bool) -> str:
        return "[green]✓[/green]" if ok else "[dim]not set[/dim]"

    console.print(f"{__logo__} Amana Status\n")
    console.print(f"State dir: {settings.state_dir} {mark(settings.state_dir.exists())}")
    console.print(f"Context dir: {settings.resolved_context_dir}")
    console.print(f"Timezone: {settings.timezone}")
    console.print(f"Backend: {settings.backend}")
    console.print(f"Classifier: {settings.classifier_backend} (model {settings.llm_model})")
    console.print(f"Confirm before: {', '.join(settings.confirm_intents) or '-'}")
    console.print(f"LLM key: {mark(bool(settings.llm_api_key))}")
    console.print(f"OpenAI (voice): {mark(bool(settings.openai_api_key))}")
    console.print(f"Telegram token: {mark(bool(settings.telegram_token))}")
    google = all([settings.google_client_id, settings.google_client_secret, settings.google_refresh_token])
    console.print(f"Google OAuth: {mark(google)}")
    console.print(f"Memory sheet: {mark(bool(settings.sheets_spreadsheet_id))}")
    console.print(f"Exec endpoint: {'[green]enabled[/green]' if settings.exec_key else '[dim]disabled[/dim]'}")
    console.print(f"Redis locks: {mark(bool(settings.redis_url))}")

    entries = ActionAudit(settings.audit_path).tail(audit) if audit > 0 else []
    if entries:
        table = Table(title="Recent actions")
        table.add_column("When", style="dim")
        table.add_column("Command")
        table.add_column("OK")
        table.add_column("Id / error")
        for e in entries:
            table.add_row(
                str(e.get("timestamp", ""))[:19],
                str(e.get("command", "")),
                "[green]✓[/green]" if e.get("ok") else "[red]✗[/red]",
                str(e.get("id") or e.get("error_kind") or ""),
            )
        console.print()
        console.print(table)


if __name__ == "__main__":
    app()
