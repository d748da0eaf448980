"""CLI entrypoints."""

import signal
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click
import requests
from langsmith import traceable
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from tqdm import tqdm
from werkzeug.serving import make_server

from amv.errors import ProviderConfigurationError
from amv.models.results import BatchOutcome
from amv.processors.collisions import detect_collisions
from amv.processors.session import RenameSession
from amv.providers import DEFAULT_MODEL_IDENTIFIER, check_configuration, resolve_provider
from amv.server import create_app
from amv.settings_store import SettingsStore
from amv.templates import list_templates, load_template


console = Console()

DEFAULT_PORT = 4343
DEFAULT_HOST = "127.0.0.1"

# Health polling before the browser is opened
READY_POLL_ATTEMPTS = 50
READY_POLL_INTERVAL_SECONDS = 0.1


@click.group(context_settings=dict(show_default=True))
@click.version_option(package_name="amv")
def cli() -> None:
    """amv - Quick AI Renamer: bulk rename files and folders with the help of LLMs."""
    pass


def wait_for_server_ready(url: str, attempts: int = READY_POLL_ATTEMPTS) -> bool:
    """Poll the health endpoint until the server answers."""
    for _ in range(attempts):
        try:
            if requests.get(f"{url}/api/health", timeout=1).ok:
                return True
        except requests.RequestException:
            # Not listening yet
            pass
        time.sleep(READY_POLL_INTERVAL_SECONDS)
    return False


@cli.command("serve")
@click.option("-p", "--port", type=int, default=DEFAULT_PORT, envvar="AMV_PORT", help="Port to run the server on.")
@click.option("--host", type=str, default=DEFAULT_HOST, envvar="AMV_HOST", help="Interface to bind to.")
@click.option(
    "-m",
    "--model",
    "model_identifier",
    type=str,
    default=DEFAULT_MODEL_IDENTIFIER,
    envvar="AMV_MODEL",
    help="AI model to use. Supports azure:<deployment> and openai:<model>; anything else is an Ollama model.",
)
@click.option("--open/--no-open", "open_browser", default=True, help="Open the browser automatically.")
@traceable
def serve(port: int, host: str, model_identifier: str, open_browser: bool) -> None:
    """Start the local server and open the renaming UI in a browser."""
    console.print("[bold]Starting amv server...[/bold]")
    console.print(f"Using AI model [bold magenta]{escape(model_identifier)}[/bold magenta]")

    try:
        check_configuration(resolve_provider(model_identifier))
    except ProviderConfigurationError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise SystemExit(1) from e

    try:
        server = make_server(host, port, create_app(model_identifier), threaded=True)
    except OSError as e:
        console.print(f"[bold red]Failed to start server:[/bold red] {escape(str(e))}")
        raise SystemExit(1) from e

    display_host = "localhost" if host in ("127.0.0.1", "0.0.0.0") else host
    url = f"http://{display_host}:{server.server_port}"

    thread = threading.Thread(target=server.serve_forever, name="amv-server", daemon=True)
    thread.start()
    console.print(f"Server running at [bold cyan]{url}[/bold cyan] (press Ctrl-C to stop)")

    try:
        if open_browser:
            if not wait_for_server_ready(url):
                console.print("[yellow]Server may not be fully ready, but continuing...[/yellow]")
            console.print("Opening browser...")
            click.launch(url)

        while thread.is_alive():
            thread.join(0.5)
    except KeyboardInterrupt:
        console.print("\n[cyan]Shutting down server...[/cyan]")
    finally:
        server.shutdown()
        server.server_close()


@contextmanager
def _cancel_on_interrupt(session: RenameSession) -> Iterator[None]:
    """Turn the first Ctrl-C into a cancellation of the running suggestion round."""
    interrupted = False

    def _handler(signum, frame) -> None:
        nonlocal interrupted
        if interrupted:
            raise KeyboardInterrupt
        interrupted = True
        session.cancel_suggestions()
        console.print("\n[yellow]Cancelling after the current file (press Ctrl-C again to abort)...[/yellow]")

    try:
        previous = signal.signal(signal.SIGINT, _handler)
    except ValueError:
        # Not in the main thread: leave Ctrl-C alone
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _proposals_table(session: RenameSession) -> Table:
    collisions = detect_collisions(session.batch)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Original", style="cyan")
    table.add_column("New Name", style="green")
    table.add_column("Note", style="dim")

    for entry in session.batch:
        if entry.path in collisions:
            note = "[red]naming collision[/red]"
        elif not entry.suggested_name:
            note = "[yellow]no suggestion[/yellow]"
        elif not entry.has_new_name:
            note = "unchanged"
        else:
            note = ""
        table.add_row(escape(entry.path), escape(entry.suggested_name or "-"), note)

    return table


@cli.command("rename")
@click.argument("input_paths", type=click.Path(exists=True, path_type=Path), nargs=-1, required=True)
@click.option("-r", "--rules", type=str, default=None, help="Renaming rules. Defaults to the rules used last time.")
@click.option("-t", "--template", type=str, default=None, help="Use a bundled rule template as the rules.")
@click.option(
    "-m",
    "--model",
    "model_identifier",
    type=str,
    default=None,
    envvar="AMV_MODEL",
    help="AI model to use. Defaults to the model used last time.",
)
@click.option(
    "--expand/--no-expand",
    default=True,
    help="Rename the files inside given folders instead of the folders themselves.",
)
@click.option(
    "-y",
    "--yes",
    is_flag=True,
    default=False,
    help="Automatically apply renames without asking for confirmation.",
)
@traceable
def rename(
    input_paths: tuple[Path, ...],
    rules: str | None,
    template: str | None,
    model_identifier: str | None,
    expand: bool,
    yes: bool,
) -> None:
    """Rename files and folders in place using AI suggestions.

    Examples:

        amv rename -r "Convert to kebab-case" ~/Downloads

        amv rename -t date-prefix -m azure:gpt-4o scans/*.pdf
    """
    if template:
        try:
            rules = load_template(template)
        except FileNotFoundError as e:
            console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
            raise SystemExit(1) from e

    session = RenameSession(rules=rules, model_identifier=model_identifier, store=SettingsStore())
    if not session.rules.strip():
        console.print("[bold red]Error:[/bold red] No renaming rules given. Use --rules or --template.")
        raise SystemExit(1)
    session.set_rules(session.rules)
    session.set_model(session.model_identifier)

    session.add_paths(input_paths, expand_directories=expand)
    if not len(session.batch):
        console.print("[yellow]No files to rename.[/yellow]")
        return

    console.print(
        f"Renaming [bold cyan]{len(session.batch)}[/bold cyan] file(s) "
        f"using model [bold magenta]{escape(session.model_identifier)}[/bold magenta]..."
    )
    console.print(f"Rules: [italic]{escape(session.rules)}[/italic]")
    console.print()

    with tqdm(total=len(session.batch), desc="Generating suggestions", unit="file") as progress:
        with _cancel_on_interrupt(session):
            result = session.generate_suggestions(on_update=lambda index, entry: progress.update(1))

    if result is None or result.outcome is BatchOutcome.FAILED:
        detail = result.error if result is not None else "No renaming rules given."
        console.print(f"[bold red]Error:[/bold red] {escape(detail or '')}")
        raise SystemExit(1)
    if result.cancelled:
        console.print(f"[yellow]Cancelled after {result.processed} of {len(session.batch)} file(s).[/yellow]")

    if not session.batch.has_suggestions():
        console.print("[yellow]No rename operations suggested.[/yellow]")
        return

    console.print()
    console.print("[bold]Proposed renames:[/bold]")
    console.print(_proposals_table(session))
    console.print()

    if not yes and not click.confirm("Apply these renames?", default=False):
        console.print("[yellow]Aborted. No files were renamed.[/yellow]")
        return

    console.print("[cyan]Applying renames...[/cyan]")
    summary = session.rename_files()

    if summary.errors:
        console.print(f"[bold red]{escape(summary.message)}[/bold red]")
        raise SystemExit(1)
    style = "bold green" if summary.failed == 0 else "yellow"
    console.print(f"[{style}]{escape(summary.message)}[/{style}]")


@cli.command("templates")
def templates() -> None:
    """List the bundled rule templates."""
    for template in list_templates():
        console.print(f"[bold cyan]{template.name}[/bold cyan]")
        console.print(f"[dim]{escape(load_template(template.name).strip())}[/dim]")
        console.print()
