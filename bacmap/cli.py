"""bacmap CLI.

Commands:
- normalize: Normalize a single BACnet point label
- score: Score every equipment in a data file against its signatures
- auto-assign: Run batch auto-assignment over a data file (dry-run by default)
- init-db: Initialize database schema

Data files are JSON objects with ``equipment``, ``signatures`` and optional
``analytics`` arrays shaped like the corresponding bacmap models.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from bacmap.assignment.service import AutoAssignmentService
from bacmap.config import get_config
from bacmap.core.logging import configure_logging
from bacmap.db.connection import close_db, get_engine
from bacmap.db.memory import InMemoryRepository
from bacmap.db.models import Base
from bacmap.matching.scorer import ConfidenceScorer
from bacmap.models import Equipment, Point, Signature, SignatureAnalytics
from bacmap.normalization.classifier import classify_point
from bacmap.normalization.engine import NormalizationEngine

app = typer.Typer(
    name="bacmap",
    help="bacmap - BACnet point normalization and signature auto-assignment",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main_callback(
    log_level: str | None = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON log lines"),
):
    config = get_config()
    configure_logging(
        level=log_level or config.log_level,
        json_logs=json_logs or config.log_format == "json",
    )


def _load_data(path: Path) -> tuple[list[Equipment], list[Signature], list[SignatureAnalytics]]:
    try:
        raw: dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
        equipment = [Equipment.model_validate(e) for e in raw.get("equipment", [])]
        signatures = [Signature.model_validate(s) for s in raw.get("signatures", [])]
        analytics = [SignatureAnalytics.model_validate(a) for a in raw.get("analytics", [])]
    except (OSError, json.JSONDecodeError, ValidationError, AttributeError) as e:
        console.print(f"[bold red]✗ Cannot load {path}:[/bold red] {e}")
        raise typer.Exit(code=1) from e
    return equipment, signatures, analytics


def _engine() -> NormalizationEngine:
    return NormalizationEngine(config=get_config().normalization)


@app.command()
def normalize(
    label: str = typer.Argument(..., help="Raw point label, e.g. SaTmp"),
    equipment_type: str | None = typer.Option(None, "--type", help="Equipment type (VAV, AHU...)"),
    vendor: str | None = typer.Option(None, "--vendor", help="Controller vendor name"),
    unit: str | None = typer.Option(None, "--unit", help="Engineering unit"),
    writable: bool = typer.Option(False, "--writable", help="Point is writable"),
):
    """Normalize a single point label."""
    point = Point(id=label, label=label, unit=unit, writable=writable)
    result = _engine().normalize(point, source_vendor=vendor, equipment_type=equipment_type)
    classification = classify_point(point, result.canonical_name)

    table = Table(title=f"Normalization: {label}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Canonical name", result.canonical_name)
    table.add_row("Tags", ", ".join(result.tags) or "-")
    table.add_row("Confidence", f"{result.confidence:.1f}")
    table.add_row("Method", result.method.value)
    table.add_row(
        "Classification",
        classification.classification
        + (f" ({classification.sub_classification})" if classification.sub_classification else ""),
    )
    console.print(table)

    if result.reasoning:
        console.print("\n[bold]Reasoning:[/bold]")
        for reason in result.reasoning:
            console.print(f"  • {reason}")


@app.command()
def score(
    data_file: Path = typer.Argument(..., help="JSON data file"),
    top: int = typer.Option(3, "--top", help="Matches to show per equipment"),
):
    """Score each equipment against every signature."""
    equipment_list, signatures, analytics = _load_data(data_file)
    if not signatures:
        console.print("[yellow]No signatures in data file[/yellow]")
        return

    engine = _engine()
    scorer = ConfidenceScorer(config=get_config().scoring)
    names = {s.id: s.name for s in signatures}
    by_signature = {a.signature_id: a for a in analytics}

    table = Table(title="Signature Matches")
    table.add_column("Equipment", style="cyan")
    table.add_column("Signature")
    table.add_column("Confidence", justify="right")
    table.add_column("Eligible", style="green")

    for equipment in equipment_list:
        normalized = engine.normalize_equipment(equipment)
        matches = scorer.get_all_signature_matches(normalized, signatures, by_signature)
        for match in matches[:top]:
            table.add_row(
                equipment.id,
                names.get(match.signature_id, match.signature_id),
                f"{match.confidence:.1f}",
                "yes" if match.auto_assignment_eligible else "no",
            )

    console.print(table)


@app.command(name="auto-assign")
def auto_assign(
    data_file: Path = typer.Argument(..., help="JSON data file"),
    apply: bool = typer.Option(False, "--apply", help="Persist assignments (default: dry run)"),
    max_assignments: int | None = typer.Option(None, "--max", help="Maximum assignments"),
    user_id: str = typer.Option("cli", "--by", help="Actor recorded in the audit log"),
):
    """Run batch auto-assignment over a data file."""
    equipment_list, signatures, analytics = _load_data(data_file)
    config = get_config()

    console.print(
        f"[bold]Auto-assigning[/bold] {len(equipment_list)} equipment against "
        f"{len(signatures)} signatures ({'apply' if apply else 'dry run'})"
    )

    async def _run():
        repository = InMemoryRepository()
        for signature in signatures:
            await repository.save_signature(signature)
        for record in analytics:
            await repository.save_analytics(record)
        for equipment in equipment_list:
            await repository.save_equipment(equipment)

        service = AutoAssignmentService(
            repository,
            scorer=ConfidenceScorer(config=config.scoring),
            engine=NormalizationEngine(config=config.normalization),
            config=config.assignment,
        )
        await service.initialize()
        return await service.batch_process_equipment(
            equipment_list,
            dry_run=not apply,
            user_id=user_id,
            max_assignments=max_assignments,
        )

    result = asyncio.run(_run())

    table = Table(title="Auto-Assignment Results")
    table.add_column("Equipment", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Signature")
    table.add_column("Confidence", justify="right")

    for assignment in result.assignments:
        status = "REVIEW" if assignment.requires_review else "AUTO"
        table.add_row(
            assignment.equipment_id, status, assignment.signature_id, f"{assignment.confidence:.1f}"
        )
    for skipped in result.skipped:
        table.add_row(skipped.equipment_id, "[yellow]SKIPPED[/yellow]", skipped.reason, "-")

    console.print(table)
    console.print("\n[bold]Summary:[/bold]")
    console.print(f"  Total: {result.summary.total}")
    console.print(f"  Assigned: {result.summary.assigned}")
    console.print(f"  Skipped: {result.summary.skipped}")
    console.print(f"  Average confidence: {result.summary.average_confidence:.1f}")


@app.command(name="init-db")
def init_db_cmd(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")

    async def _init():
        engine = get_engine()
        async with engine.begin() as conn:
            if drop:
                console.print("[yellow]Dropping existing tables...[/yellow]")
                await conn.run_sync(Base.metadata.drop_all)
            console.print("[green]Creating tables...[/green]")
            await conn.run_sync(Base.metadata.create_all)
        await close_db()

    asyncio.run(_init())
    console.print("[bold green]✓[/bold green] Database initialized")


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
