"""CLI for visa-audit: serve / audit / replay commands."""

from __future__ import annotations

import asyncio
import base64
import json
import mimetypes
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from visa_audit.client.reconstructor import AuditView, reconstruct
from visa_audit.client.stream import iter_ndjson_events, iter_sse_events
from visa_audit.core.config import AppSettings, LLMConfig, ObservabilityConfig
from visa_audit.core.startup_checks import validate_settings
from visa_audit.events import Event, event_to_dict
from visa_audit.hooks import end_run, setup_logging, start_run
from visa_audit.models import RequirementsChecklist, UploadedDocument
from visa_audit.pipeline.orchestrator import AuditPipeline
from visa_audit.providers.client import LLMClient

app = typer.Typer(name="visa-audit", help="Streaming compliance audit for visa application documents")
console = Console()

_STATUS_STYLE = {
    "passed": "green",
    "warning": "yellow",
    "flagged": "red",
    "error": "red",
    "analyzing": "cyan",
}


def _build_settings(
    base_url: Optional[str],
    api_key: Optional[str],
    model: Optional[str],
) -> AppSettings:
    """Build settings, overriding env defaults with CLI flags."""
    overrides: dict = {}
    if base_url:
        overrides["base_url"] = base_url
    if api_key:
        overrides["api_key"] = api_key
    if model:
        overrides["model"] = model
    return AppSettings(llm=LLMConfig(**overrides))


def _load_checklist(path: Path) -> RequirementsChecklist:
    return RequirementsChecklist.model_validate_json(path.read_text(encoding="utf-8"))


def _load_document(index: int, path: Path) -> UploadedDocument:
    mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    data = path.read_bytes()
    return UploadedDocument(
        id=f"doc-{index}",
        filename=path.name,
        base64=base64.b64encode(data).decode("ascii"),
        mime_type=mime_type,
        size_bytes=len(data),
    )


def _print_view(view: AuditView) -> None:
    table = Table(title="Requirements")
    table.add_column("#", justify="right")
    table.add_column("Requirement", style="bold")
    table.add_column("Status")
    table.add_column("Document")
    table.add_column("Detail", max_width=60)

    for i, (item, state) in enumerate(zip(view.requirements, view.requirement_states), start=1):
        style = _STATUS_STYLE.get(state.status, "dim")
        detail = state.compliance.detail if state.compliance else ""
        document = state.extraction.doc_type if state.extraction else (state.filename or "")
        table.add_row(str(i), item.name, f"[{style}]{state.status}[/{style}]", document, detail)
    console.print(table)

    for finding in view.cross_doc_findings:
        console.print(f"[magenta]Cross-document ({finding.severity}):[/magenta] {finding.finding}")

    advisory = view.advisory
    if advisory is None:
        console.print("[dim]No advisory yet.[/dim]")
    else:
        console.print(
            f"\n[bold]Assessment ({view.advisory_generation}):[/bold] {advisory.overall.value}"
        )
        fixes = Table(title="Fixes")
        fixes.add_column("Priority", justify="right")
        fixes.add_column("Severity")
        fixes.add_column("Issue", max_width=50)
        fixes.add_column("Fix", max_width=60)
        for fix in advisory.fixes:
            fixes.add_row(str(fix.priority), fix.severity, fix.issue, fix.fix)
        console.print(fixes)
        for tip in advisory.interview_tips:
            console.print(f"  [cyan]tip[/cyan] {tip}")
        for warning in advisory.corridor_warnings:
            console.print(f"  [yellow]warning[/yellow] {warning}")

    if view.reaudit is not None:
        console.print(
            f"\n[bold]Re-audit:[/bold] complete={view.reaudit.overall_complete} "
            f"all_passed={view.reaudit.all_passed}"
        )
    if view.error:
        console.print(f"\n[red]Last error:[/red] {view.error}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (default from VISA_AUDIT_API_HOST)"),
    port: Optional[int] = typer.Option(None, help="Port (default from VISA_AUDIT_API_PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the HTTP API."""
    import uvicorn

    settings = AppSettings()
    uvicorn.run(
        "visa_audit.api.app:app",
        host=host or settings.api.host,
        port=port or settings.api.port,
        reload=reload,
    )


@app.command()
def audit(
    checklist_file: Path = typer.Argument(..., help="JSON requirements checklist"),
    images: list[Path] = typer.Argument(..., help="Document images (PNG or JPEG)"),
    events_out: Optional[Path] = typer.Option(None, "--events-out", help="Write the event log as NDJSON"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="LLM base URL"),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="LLM API key"),
    model: Optional[str] = typer.Option(None, "--model", help="LLM model name"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Run the full pipeline locally and print the folded result."""
    settings = _build_settings(base_url, api_key, model)
    setup_logging(ObservabilityConfig(log_level="DEBUG" if verbose else "WARNING"))
    try:
        validate_settings(settings)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e

    checklist = _load_checklist(checklist_file)
    documents = [_load_document(i, path) for i, path in enumerate(images, start=1)]
    console.print(
        f"[bold]Auditing {len(documents)} documents against {len(checklist.items)} requirements[/bold]"
    )

    events: list[Event] = []

    def emit(event: Event) -> None:
        events.append(event)
        if verbose:
            console.print(f"[dim]{event.type}[/dim]")

    async def _run() -> None:
        client = LLMClient(settings.llm)
        pipeline = AuditPipeline(client, settings)
        start_run()
        try:
            await pipeline.run_full(documents, emit, requirements=checklist)
        finally:
            analytics = end_run()
            await client.close()
        if analytics is not None:
            console.print(f"[dim]Finished in {analytics.total_duration_ms:.0f} ms[/dim]")

    asyncio.run(_run())

    if events_out:
        lines = (json.dumps(event_to_dict(e), ensure_ascii=False) for e in events)
        events_out.write_text("\n".join(lines) + "\n", encoding="utf-8")
        console.print(f"[green]Events saved to {events_out}[/green]")

    _print_view(reconstruct(events, checklist))


@app.command()
def replay(
    events_file: Path = typer.Argument(..., help="SSE capture or NDJSON event log"),
    checklist_file: Optional[Path] = typer.Option(None, "--checklist", help="JSON requirements checklist"),
) -> None:
    """Fold a recorded event stream and print the resulting state."""
    lines = events_file.read_text(encoding="utf-8").splitlines()
    is_sse = any(line.startswith("data:") for line in lines)
    events = list(iter_sse_events(lines) if is_sse else iter_ndjson_events(lines))
    checklist = _load_checklist(checklist_file) if checklist_file else None

    console.print(f"[bold]Replaying {len(events)} events from {events_file}[/bold]")
    _print_view(reconstruct(events, checklist))


if __name__ == "__main__":
    app()
