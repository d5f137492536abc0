"""
safetygate CLI - operator commands for the rule engine.

Commands:
    safetygate init-db                       Create tables and seed the built-in catalog
    safetygate rules list [--kind K]         Rules with their active version
    safetygate rules history RULE            Version history of a rule (id or key)
    safetygate rules activate VERSION_ID     Activate a draft (--reason required)
    safetygate sandbox TEXT                  Dry-run text against rules, nothing persisted
    safetygate record RECORD_ID              Computed vs effective result for a record
    safetygate serve                         Run the API with uvicorn

Database and logging come from the environment (see config.py);
--db overrides SAFETYGATE_DB_PATH.
"""

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .config import Settings
from .engine.severity import RuleKind
from .errors import EngineError
from .service import SafetyService

app = typer.Typer(help="Versioned safety and validation rule engine")
rules_app = typer.Typer(help="Rule lifecycle")
app.add_typer(rules_app, name="rules")
console = Console()

logger = logging.getLogger(__name__)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _service(db: Path | None, seed: bool | None = None) -> SafetyService:
    settings = Settings.from_env()
    if db is not None:
        settings = replace(settings, db_path=db)
    if seed is not None:
        settings = replace(settings, seed_catalog=seed)
    _setup_logging(settings.log_level)
    return SafetyService(settings)


def _fail(e: EngineError) -> NoReturn:
    console.print(f"[bold red]{e.code}[/bold red] {escape(e.message)}")
    raise typer.Exit(1)


LEVEL_STYLE = {
    "A": "bold red", "critical": "bold red",
    "B": "yellow", "warning": "yellow",
    "C": "cyan", "info": "cyan",
}


def _level(level: str | None) -> str:
    if level is None:
        return "[dim]none[/dim]"
    style = LEVEL_STYLE.get(level, "white")
    return f"[{style}]{level}[/{style}]"


# =============================================================================
# INIT
# =============================================================================


@app.command("init-db")
def init_db(
    db: Path = typer.Option(None, help="SQLite database path"),
    seed: bool = typer.Option(True, help="Seed the built-in rule catalog"),
):
    """Create the database and (by default) seed the built-in rules."""
    service = _service(db, seed=False)
    seeded = service.rules.seed_catalog() if seed else 0
    console.print(f"[bold green]Database ready[/bold green] at {service.settings.db_path} ({seeded} rules seeded)")


# =============================================================================
# RULES
# =============================================================================


@rules_app.command("list")
def rules_list(
    kind: str = typer.Option(None, help="intake_safety or content_validation"),
    db: Path = typer.Option(None, help="SQLite database path"),
):
    """List rules with their active version."""
    service = _service(db)
    table = Table(title="Rules")
    table.add_column("Key", style="bold")
    table.add_column("Kind")
    table.add_column("Active")
    table.add_column("Latest")
    table.add_column("Level")
    table.add_column("Revision", justify="right")

    for summary in service.rules.list_rules(kind):
        active, latest = summary.active_version, summary.latest_version
        level = active.defaults.level_default if active and active.defaults else None
        table.add_row(
            summary.definition.key,
            summary.definition.kind,
            f"v{active.version}" if active else "[red]none[/red]",
            f"v{latest.version} ({latest.status})" if latest else "-",
            _level(level),
            str(summary.definition.active_revision),
        )
    console.print(table)


@rules_app.command("history")
def rules_history(
    rule: str = typer.Argument(help="Rule id or key"),
    db: Path = typer.Option(None, help="SQLite database path"),
):
    """Show every version of a rule, newest first."""
    service = _service(db)
    try:
        versions = service.rules.get_history(rule)
    except EngineError as e:
        _fail(e)

    table = Table(title=f"History: {rule}")
    table.add_column("Version", justify="right")
    table.add_column("Status")
    table.add_column("Version id")
    table.add_column("Created by")
    table.add_column("Change reason")
    table.add_column("Activation reason")
    for v in versions:
        table.add_row(
            f"v{v.version}", v.status, v.id, v.created_by, v.change_reason, v.activation_reason or "-"
        )
    console.print(table)


@rules_app.command("activate")
def rules_activate(
    version_id: str = typer.Argument(help="Draft version id"),
    reason: str = typer.Option(..., "--reason", help="Why this version goes live"),
    actor: str = typer.Option(..., "--actor", help="Who activates it"),
    expected_revision: int = typer.Option(
        None, help="Rule revision last seen (default: the one the draft was created from)"
    ),
    db: Path = typer.Option(None, help="SQLite database path"),
):
    """Activate a draft; the previous active version is archived atomically."""
    service = _service(db)
    try:
        version = service.rules.activate(version_id, reason, actor, expected_revision)
    except EngineError as e:
        _fail(e)
    console.print(f"[bold green]Activated[/bold green] {version.rule_key} v{version.version}")


# =============================================================================
# SANDBOX / RECORDS
# =============================================================================


@app.command()
def sandbox(
    text: str = typer.Argument(help="Input text to evaluate"),
    kind: str = typer.Option(RuleKind.INTAKE_SAFETY, help="intake_safety or content_validation"),
    version_id: str = typer.Option(None, "--version", help="Rule version id (default: active set)"),
    structured: str = typer.Option(None, help="structured_data as JSON"),
    db: Path = typer.Option(None, help="SQLite database path"),
):
    """Dry-run the engine. Nothing is written."""
    service = _service(db)
    try:
        structured_data = json.loads(structured) if structured else None
    except json.JSONDecodeError as e:
        console.print(f"[bold red]Invalid --structured JSON:[/bold red] {e}")
        raise typer.Exit(1)
    try:
        result = service.sandbox(text, kind=kind, rule_version_id=version_id, structured_data=structured_data)
    except EngineError as e:
        _fail(e)

    table = Table(title="Sandbox")
    table.add_column("Rule", style="bold")
    table.add_column("Severity")
    table.add_column("Verified")
    table.add_column("Reason")
    for f in result.triggered_findings:
        table.add_row(f.rule_id, _level(f.severity), "yes" if f.verified else "[red]no[/red]", escape(f.short_reason))
    console.print(table)
    console.print(f"Level: {_level(result.escalation_level)}  Status: {result.status.upper()}")
    if result.decision.inconclusive:
        rule_ids = ", ".join(r.rule_id for r in result.decision.inconclusive)
        console.print(f"[yellow]Inconclusive:[/yellow] {escape(rule_ids)}")


@app.command()
def record(
    record_id: str = typer.Argument(help="Record id"),
    db: Path = typer.Option(None, help="SQLite database path"),
):
    """Show computed and effective results for a stored record."""
    service = _service(db)
    try:
        view = service.read_record(record_id)
    except EngineError as e:
        _fail(e)
    data = view.to_dict()
    console.print(f"[bold]{record_id}[/bold] ({view.record.kind}) evaluation: {view.evaluation_state}")
    if view.error:
        console.print(f"[bold red]{view.error.code}[/bold red] {escape(view.error.message)}")
    if view.decision:
        console.print(view.decision.summary)
        console.print(f"Computed:  {_level(view.decision.policy_result.escalation_level)}")
    if view.effective:
        console.print(f"Effective: {_level(view.effective.escalation_level)} ({view.effective.state})")
    if view.override:
        console.print(f"Override by {view.override.created_by} at {view.override.created_at}: {escape(view.override.reason)}")
    console.print(f"Review: {data['review']['reasons'] or 'none'} {data['review']['priority'] or ''}")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(False, help="Auto-reload on code changes"),
):
    """Run the API gateway with uvicorn."""
    import uvicorn

    _setup_logging(Settings.from_env().log_level)
    uvicorn.run("safetygate.api.gateway:create_app", factory=True, host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
