"""Command-line interface for Walkthrough Studio."""

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import Config
from ..core.errors import ParseError, StoreError
from ..core.models import ActorContext, DocumentStatus, Role
from ..core.sqlite_store import SqliteDocumentStore
from ..parsers import ImportFormat, format_for_filename, parse_source
from ..services.defaults import load_default_scripts, seed_defaults
from ..services.exchange import export_filename, export_json
from ..services.preview import Preview, build_preview, render_preview_html
from ..services.workflow import WalkthroughWorkflow, WorkflowResult
from ..utils.file_handler import FileHandler
from ..utils.logging_setup import configure_logging

app = typer.Typer(
    name="walkthrough-studio",
    help="Author, review and publish pre-trip inspection walkthroughs"
)
console = Console()

STATUS_STYLES = {
    DocumentStatus.DRAFT: "white",
    DocumentStatus.IN_REVIEW: "cyan",
    DocumentStatus.CHANGES_REQUESTED: "yellow",
    DocumentStatus.APPROVED: "blue",
    DocumentStatus.PUBLISHED: "green",
    DocumentStatus.REJECTED: "red",
    DocumentStatus.ARCHIVED: "dim",
}


@app.callback()
def _setup(
    log_level: str = typer.Option(Config.LOG_LEVEL, help="Logging level"),
):
    configure_logging(log_level)


def _workflow(db: Optional[Path]) -> WalkthroughWorkflow:
    return WalkthroughWorkflow(SqliteDocumentStore(db or Config.DB_PATH))


@contextmanager
def _store_errors() -> Iterator[None]:
    """Report a failed database round-trip and exit 1."""
    try:
        yield
    except StoreError as exc:
        hint = " (safe to retry)" if exc.retryable else ""
        console.print(f"[red]Error: Database operation failed: {exc}{hint}[/red]")
        raise typer.Exit(1)


def _actor(role: str, org: Optional[str], actor: Optional[str]) -> ActorContext:
    try:
        parsed = Role(role.strip().lower())
    except ValueError:
        console.print(f"[red]Error: Unknown role '{role}'. "
                      f"Choose from: {', '.join(r.value for r in Role)}[/red]")
        raise typer.Exit(1)
    return ActorContext(role=parsed, organization_id=org, actor_id=actor)


def _read_source(path: Path, fmt: Optional[str]):
    """Return (format, payload) for a file on disk."""
    if not path.exists():
        console.print(f"[red]Error: File not found: {path}[/red]")
        raise typer.Exit(1)
    try:
        import_format = ImportFormat.from_value(fmt) if fmt else format_for_filename(path.name)
    except ValueError:
        import_format = None
    if import_format is None:
        console.print(f"[red]Error: Cannot tell the format of {path.name}; pass --format[/red]")
        raise typer.Exit(1)

    if import_format is ImportFormat.SPREADSHEET:
        return import_format, FileHandler.load_bytes(path)
    if import_format is ImportFormat.STRUCTURED and path.suffix.lower() in (".yaml", ".yml"):
        return import_format, FileHandler.load_yaml(path)
    return import_format, FileHandler.load_text(path)


def _report(result: WorkflowResult, success: str) -> None:
    if not result.ok:
        console.print(Panel(
            "\n".join(f"[red]•[/red] {p}" for p in result.problems),
            title=f"[red]Failed ({result.reason.value})[/red]",
        ))
        raise typer.Exit(1)
    doc = result.document
    lines = [
        f"[green]{success}[/green]\n",
        f"ID: {doc.id}",
        f"Class: {doc.class_code} ({doc.token})",
        f"Status: {doc.status.value}",
        f"Revision: {doc.revision}",
    ]
    if doc.version:
        lines.append(f"Version: {doc.version}")
    for old in result.archived:
        lines.append(f"Archived: {old.id} (v{old.version})")
    if result.validation and result.validation.problems:
        lines.append("\n[yellow]Validation problems:[/yellow]")
        lines.extend(f"  • {p}" for p in result.validation.problems)
    console.print(Panel("\n".join(lines), title=doc.label))


def _print_preview(preview: Preview) -> None:
    stats = preview.stats
    header = (
        f"Class: {preview.class_code or '-'}"
        + (f"  Status: {preview.status}" if preview.status else "")
        + (f"  Version: {preview.version}" if preview.version else "")
        + f"\nSections: {stats.sections}  Steps: {stats.steps}  "
        f"Required: {stats.required}  Pass/Fail: {stats.pass_fail}"
    )
    console.print(Panel(header, title=preview.label or "Walkthrough preview"))

    for section in preview.script:
        flags = []
        if section.critical:
            flags.append("[red]critical[/red]")
        if section.pass_fail:
            flags.append("[yellow]pass/fail[/yellow]")
        table = Table(title=f"{section.title} {' '.join(flags)}".strip(), title_justify="left")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Label")
        table.add_column("Script")
        table.add_column("Flags")
        for i, step in enumerate(section.steps, 1):
            step_flags = [name for name, on in (
                ("say", step.must_say), ("req", step.required),
                ("p/f", step.pass_fail), ("skip", step.skip),
            ) if on]
            table.add_row(str(i), step.label or "", step.script, " ".join(step_flags))
        console.print(table)

    if preview.validation.problems:
        console.print(Panel(
            "\n".join(f"• {p}" for p in preview.validation.problems),
            title="[yellow]Validation problems[/yellow]",
        ))


@app.command()
def check(
    files: Optional[List[Path]] = typer.Argument(None, help="Extra walkthrough files to validate"),
    format: Optional[str] = typer.Option(None, help="Format for the extra files"),
):
    """Validate the bundled defaults and any given files."""
    failures = 0
    for doc in load_default_scripts():
        result = build_preview(doc).validation
        if result.ok:
            console.print(f"[green]✓[/green] default {doc.token}")
        else:
            failures += 1
            console.print(f"[red]✗[/red] default {doc.token}")
            for problem in result.problems:
                console.print(f"    • {problem}")

    for path in files or []:
        import_format, payload = _read_source(path, format)
        try:
            raw = parse_source(import_format, payload)
        except ParseError as exc:
            failures += 1
            console.print(f"[red]✗[/red] {path}: {exc}")
            continue
        result = build_preview(raw).validation
        if result.ok:
            console.print(f"[green]✓[/green] {path}")
        else:
            failures += 1
            console.print(f"[red]✗[/red] {path}")
            for problem in result.problems:
                console.print(f"    • {problem}")

    if failures:
        console.print(f"\n[red]{failures} walkthrough(s) with problems[/red]")
        raise typer.Exit(1)
    console.print("\n[green]All walkthroughs valid[/green]")


@app.command()
def parse(
    source: Path = typer.Argument(..., help="Markdown, CSV, XLSX, JSON or YAML file"),
    format: Optional[str] = typer.Option(None, help="Override format detection"),
    as_json: bool = typer.Option(False, "--json", help="Print the normalized script as JSON"),
):
    """Parse a file and show what would be imported. Nothing is stored."""
    import_format, payload = _read_source(source, format)
    try:
        raw = parse_source(import_format, payload)
    except ParseError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)

    preview = build_preview(raw)
    if as_json:
        console.print_json(json.dumps(preview.to_dict()))
    else:
        _print_preview(preview)


@app.command()
def seed(
    db: Optional[Path] = typer.Option(None, help="SQLite database path"),
):
    """Load the bundled default walkthroughs into the database."""
    with _store_errors():
        seeded = seed_defaults(SqliteDocumentStore(db or Config.DB_PATH))
    if seeded:
        for doc in seeded:
            console.print(f"[green]Seeded[/green] {doc.token} ({doc.label})")
    else:
        console.print("Defaults already present")


@app.command("list")
def list_walkthroughs(
    status: Optional[str] = typer.Option(None, help="Filter by status"),
    class_code: Optional[str] = typer.Option(None, "--class", help="Filter by class"),
    search: Optional[str] = typer.Option(None, help="Search label, class and id"),
    role: str = typer.Option("author", help="Acting role"),
    org: Optional[str] = typer.Option(None, help="Organization id"),
    actor: Optional[str] = typer.Option(None, help="Actor id"),
    db: Optional[Path] = typer.Option(None, help="SQLite database path"),
):
    """List walkthroughs visible to the acting user."""
    try:
        status_filter = DocumentStatus(status) if status else None
    except ValueError:
        console.print(f"[red]Error: Unknown status '{status}'[/red]")
        raise typer.Exit(1)

    with _store_errors():
        docs = _workflow(db).list_documents(
            _actor(role, org, actor), status=status_filter, token=class_code, search=search,
        )
    table = Table(title=f"Walkthroughs ({len(docs)})")
    table.add_column("ID")
    table.add_column("Label")
    table.add_column("Class")
    table.add_column("Status")
    table.add_column("Ver", justify="right")
    table.add_column("Org")
    table.add_column("Updated")
    for doc in docs:
        style = STATUS_STYLES.get(doc.status, "white")
        table.add_row(
            doc.id, doc.label, doc.class_code,
            f"[{style}]{doc.status.value}[/{style}]",
            str(doc.version or ""),
            "default" if doc.is_default else (doc.organization_id or ""),
            doc.updated_at[:19],
        )
    console.print(table)


@app.command("import")
def import_walkthrough(
    source: Path = typer.Argument(..., help="File to import as a draft"),
    class_code: Optional[str] = typer.Option(None, "--class", help="Class code, e.g. A"),
    label: Optional[str] = typer.Option(None, help="Display label"),
    format: Optional[str] = typer.Option(None, help="Override format detection"),
    role: str = typer.Option("author", help="Acting role"),
    org: Optional[str] = typer.Option(None, help="Organization id"),
    actor: Optional[str] = typer.Option(None, help="Actor id"),
    db: Optional[Path] = typer.Option(None, help="SQLite database path"),
):
    """Import a file as a new draft."""
    import_format, payload = _read_source(source, format)
    with _store_errors():
        result = _workflow(db).import_source(
            _actor(role, org, actor), import_format, payload, class_code=class_code, label=label,
        )
    _report(result, "Imported as draft")


@app.command()
def submit(
    document_id: str = typer.Argument(..., help="Walkthrough id"),
    role: str = typer.Option("author", help="Acting role"),
    org: Optional[str] = typer.Option(None, help="Organization id"),
    actor: Optional[str] = typer.Option(None, help="Actor id"),
    db: Optional[Path] = typer.Option(None, help="SQLite database path"),
):
    """Submit a draft for review."""
    ctx = _actor(role, org, actor)
    with _store_errors():
        workflow = _workflow(db)
        current = workflow.get(ctx, document_id)
        if current.ok and current.document.status is DocumentStatus.CHANGES_REQUESTED:
            result = workflow.resubmit(ctx, document_id)
        else:
            result = workflow.submit(ctx, document_id)
    _report(result, "Submitted for review")


@app.command()
def review(
    document_id: str = typer.Argument(..., help="Walkthrough id"),
    approve: bool = typer.Option(False, "--approve", help="Approve"),
    publish: bool = typer.Option(False, "--publish", help="Publish (after approval, or with --approve)"),
    request_changes: Optional[str] = typer.Option(None, "--request-changes", help="Send back with a note"),
    reject: bool = typer.Option(False, "--reject", help="Reject"),
    note: Optional[str] = typer.Option(None, help="Note for --reject"),
    role: str = typer.Option("reviewer", help="Acting role"),
    org: Optional[str] = typer.Option(None, help="Organization id"),
    actor: Optional[str] = typer.Option(None, help="Actor id"),
    db: Optional[Path] = typer.Option(None, help="SQLite database path"),
):
    """Record a review decision."""
    decisions = [approve or publish, request_changes is not None, reject]
    if sum(1 for d in decisions if d) != 1:
        console.print("[red]Error: Choose exactly one of --approve/--publish, "
                      "--request-changes, --reject[/red]")
        raise typer.Exit(1)

    ctx = _actor(role, org, actor)
    with _store_errors():
        workflow = _workflow(db)
        if approve and publish:
            result = workflow.approve_and_publish(ctx, document_id)
            message = "Approved and published"
        elif approve:
            result, message = workflow.approve(ctx, document_id), "Approved"
        elif publish:
            result, message = workflow.publish(ctx, document_id), "Published"
        elif request_changes is not None:
            result = workflow.request_changes(ctx, document_id, request_changes)
            message = "Changes requested"
        else:
            result, message = workflow.reject(ctx, document_id, note), "Rejected"
    _report(result, message)


@app.command()
def export(
    document_id: str = typer.Argument(..., help="Walkthrough id"),
    output: Optional[Path] = typer.Option(None, help="Output file (default <token>.json)"),
    role: str = typer.Option("author", help="Acting role"),
    org: Optional[str] = typer.Option(None, help="Organization id"),
    actor: Optional[str] = typer.Option(None, help="Actor id"),
    db: Optional[Path] = typer.Option(None, help="SQLite database path"),
):
    """Write a walkthrough in the exchange JSON format."""
    with _store_errors():
        result = _workflow(db).export(_actor(role, org, actor), document_id)
    if not result.ok:
        _report(result, "")
    target = output or Config.EXPORT_DIR / export_filename(result.document)
    FileHandler.save_text(target, export_json(result.document))
    console.print(f"[green]Exported[/green] {result.document.id} to {target}")


@app.command()
def preview(
    document_id: str = typer.Argument(..., help="Walkthrough id"),
    html: Optional[Path] = typer.Option(None, help="Also write an HTML preview here"),
    role: str = typer.Option("author", help="Acting role"),
    org: Optional[str] = typer.Option(None, help="Organization id"),
    actor: Optional[str] = typer.Option(None, help="Actor id"),
    db: Optional[Path] = typer.Option(None, help="SQLite database path"),
):
    """Show a stored walkthrough with stats and validation."""
    with _store_errors():
        result = _workflow(db).get(_actor(role, org, actor), document_id)
    if not result.ok:
        _report(result, "")
    view = build_preview(result.document)
    _print_preview(view)
    if html:
        FileHandler.save_text(html, render_preview_html(view))
        console.print(f"[green]HTML preview written to {html}[/green]")


@app.command()
def serve(
    host: str = typer.Option(Config.WEB_HOST, help="Bind address"),
    port: int = typer.Option(Config.WEB_PORT, help="Port"),
    db: Optional[Path] = typer.Option(None, help="SQLite database path"),
    debug: bool = typer.Option(False, help="Flask debug mode"),
):
    """Run the JSON API."""
    from ..web.app import create_app

    with _store_errors():
        store = SqliteDocumentStore(db or Config.DB_PATH)
        seed_defaults(store)
    console.print(f"Serving on http://{host}:{port}")
    create_app(store).run(host=host, port=port, debug=debug, use_reloader=False)


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
