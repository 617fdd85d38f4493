from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich import print
from rich.markup import escape
from rich.table import Table

from .artifacts import KeyValueStore, StorageError, export_patch
from .config import Settings, load_settings
from .credentials import (
    ChainedCredentialProvider,
    EnvCredentialProvider,
    StoredCredentialProvider,
    clear_api_key,
    save_api_key,
)
from .llm import CompletionClient, CompletionError
from .logging_utils import setup_logging
from .models import Patch
from .session import create_patch, regenerate_patch
from .store import PatchNotFound, RevisionStore
from .validator import Predicate, ValidationReport, validate_patch

app = typer.Typer()
history_app = typer.Typer(help="Browse and manage generated patches.")
key_app = typer.Typer(help="Manage the stored Anthropic API key.")
app.add_typer(history_app, name="history")
app.add_typer(key_app, name="key")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", help="Directory for history, key and logs."),
):
    """Pure Data patch generator."""
    try:
        settings = load_settings(data_dir=data_dir)
    except ValidationError as exc:
        print(f"[red]Invalid configuration:[/red] {escape(str(exc))}")
        raise typer.Exit(code=2)
    ctx.obj = settings
    setup_logging(verbose=verbose, data_dir=settings.data_dir)
    if ctx.invoked_subcommand is None:
        print(ctx.get_help())
        raise typer.Exit(code=0)


def _kv(settings: Settings) -> KeyValueStore:
    return KeyValueStore.in_dir(settings.data_dir)


def _open_store(settings: Settings) -> RevisionStore:
    try:
        return RevisionStore(_kv(settings))
    except (StorageError, ValidationError) as exc:
        print(f"[red]Could not load history:[/red] {escape(str(exc))}")
        raise typer.Exit(code=1)


def _client(settings: Settings) -> CompletionClient:
    credentials = ChainedCredentialProvider(StoredCredentialProvider(_kv(settings)), EnvCredentialProvider())
    return CompletionClient(credentials, settings)


def _get_patch(store: RevisionStore, name: str) -> Patch:
    try:
        return store.get(name)
    except PatchNotFound as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)


def _handle_completion_error(exc: CompletionError) -> None:
    print(f"[red]{exc.message}[/red]")
    if exc.kind in {"missing_credential", "invalid_credential_format", "unauthorized"}:
        print("Set a key with [bold]pdcopilot key set[/bold].")
    raise typer.Exit(code=1)


def _handle_storage_error(exc: StorageError) -> None:
    print(f"[red]Could not save history:[/red] {escape(str(exc))}")
    raise typer.Exit(code=1)


def _print_report(report: ValidationReport) -> None:
    values = report.as_dict()
    for predicate in Predicate:
        mark = "[green]ok[/green]" if values[predicate.value] else "[red]missing[/red]"
        print(f"- {predicate.label}: {mark}")


def _print_patch(patch: Patch, show_explanation: bool = True) -> None:
    print(f"[bold]{patch.name}[/bold] v{patch.version} | {patch.created:%Y-%m-%d %H:%M}")
    print(escape(patch.description))
    if patch.parent:
        print(f"regenerated from [bold]{patch.parent}[/bold]")
    print("\n[bold]Patch[/bold]")
    print(escape(patch.content))
    if show_explanation and patch.explanation:
        print("\n[bold]Explanation[/bold]")
        print(escape(patch.explanation))
    if patch.error_history:
        print("\n[bold]Regeneration History[/bold]")
        for entry in patch.error_history:
            print(f"{entry.timestamp:%H:%M:%S} [orange3]Error:[/orange3] {escape(entry.error)}")
            if entry.regenerated_patch is not None:
                link = entry.regenerated_patch.patch_name or "inline"
                print(f"  [green]Regenerated solution available[/green] ({link})")


def _truncate(text: str, max_length: int = 50) -> str:
    return f"{text[:max_length]}..." if len(text) > max_length else text


@app.command()
def generate(
    ctx: typer.Context,
    prompt: str,
    explain: bool = typer.Option(True, "--explain/--no-explain", help="Print the explanation."),
):
    """Generate a new patch from a description."""
    if not prompt.strip():
        print("[red]Please enter a prompt.[/red]")
        raise typer.Exit(code=2)
    store = _open_store(ctx.obj)
    try:
        created = create_patch(prompt, _client(ctx.obj), store)
    except CompletionError as exc:
        _handle_completion_error(exc)
    except StorageError as exc:
        _handle_storage_error(exc)

    _print_patch(created.patch, show_explanation=explain)
    outcome = created.outcome
    if outcome.validation_incomplete:
        missing = ", ".join(p.label for p in outcome.failed)
        print(f"\n[yellow]Validation incomplete after {outcome.attempts} attempts. Missing: {missing}[/yellow]")
    else:
        print(f"\n[green]Patch generated successfully![/green] ({outcome.attempts} attempt(s))")


@app.command()
def regenerate(
    ctx: typer.Context,
    error: str,
    patch: Optional[str] = typer.Option(None, "--patch", "-p", help="Patch name (defaults to newest)."),
):
    """Regenerate a patch from an error reported by Pd."""
    if not error.strip():
        print("[red]Please describe the error.[/red]")
        raise typer.Exit(code=2)
    store = _open_store(ctx.obj)
    if patch is None:
        latest = store.latest()
        if latest is None:
            print("[red]No patches in history.[/red]")
            raise typer.Exit(code=1)
        patch = latest.name
    else:
        _get_patch(store, patch)

    try:
        result = regenerate_patch(patch, error, _client(ctx.obj), store)
    except CompletionError as exc:
        print("[red]Failed to regenerate patch.[/red]")
        _handle_completion_error(exc)
    except StorageError as exc:
        _handle_storage_error(exc)

    _print_patch(result.patch)
    if not result.report.passed:
        missing = ", ".join(p.label for p in result.report.failed())
        print(f"\n[yellow]Regenerated patch is missing: {missing}[/yellow]")


@app.command()
def validate(file: Path):
    """Run the structural checklist against a .pd file."""
    if not file.exists():
        print("[red]File not found[/red]")
        raise typer.Exit(code=1)
    try:
        text = file.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        print(f"[red]{escape(str(file))} is not a UTF-8 text file[/red]")
        raise typer.Exit(code=1)
    report = validate_patch(text)
    _print_report(report)
    raise typer.Exit(code=0 if report.passed else 3)


@app.command()
def export(
    ctx: typer.Context,
    name: str,
    out: Path = typer.Option(Path("."), "--out", "-o", help="Output directory."),
):
    """Write a patch's content to <name>.pd."""
    store = _open_store(ctx.obj)
    path = export_patch(_get_patch(store, name), out)
    print(f"Saved patch to [bold]{path}[/bold]")


@history_app.command("list")
def history_list(
    ctx: typer.Context,
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Filter by text."),
):
    store = _open_store(ctx.obj)
    patches = store.search(search)
    if not patches:
        print("No generations yet")
        return
    table = Table()
    table.add_column("name", no_wrap=True)
    table.add_column("version", no_wrap=True)
    table.add_column("created", no_wrap=True)
    table.add_column("description")
    table.add_column("errors", no_wrap=True)
    for patch in patches:
        table.add_row(
            patch.name,
            patch.version,
            f"{patch.created:%Y-%m-%d %H:%M}",
            escape(_truncate(patch.description, 40)),
            str(len(patch.error_history)),
        )
    print(table)


@history_app.command("show")
def history_show(ctx: typer.Context, name: str):
    _print_patch(_get_patch(_open_store(ctx.obj), name))


@history_app.command("clear")
def history_clear(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", help="Confirm clearing all history."),
):
    if not yes:
        print("[yellow]Refusing to clear history without --yes.[/yellow]")
        raise typer.Exit(code=2)
    try:
        _open_store(ctx.obj).clear()
    except StorageError as exc:
        _handle_storage_error(exc)
    print("History cleared.")


@key_app.command("set")
def key_set(ctx: typer.Context, api_key: str):
    try:
        save_api_key(_kv(ctx.obj), api_key)
    except CompletionError as exc:
        print(f"[red]{exc.message}[/red]")
        raise typer.Exit(code=2)
    except StorageError as exc:
        print(f"[red]Could not save key:[/red] {escape(str(exc))}")
        raise typer.Exit(code=1)
    print("API key saved successfully")


@key_app.command("clear")
def key_clear(ctx: typer.Context):
    clear_api_key(_kv(ctx.obj))
    print("API key removed.")


if __name__ == "__main__":
    app()
