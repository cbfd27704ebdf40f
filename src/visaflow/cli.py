"""Typer CLI: migrate, seed, check-transitions, add-user, import-people, bulk-update-status, serve-api."""

from __future__ import annotations

import csv
import json
import os
import uuid
from pathlib import Path

import typer
from sqlalchemy import select

from visaflow.audit_context import set_audit_context
from visaflow.auth import ROLE_ADMIN, ROLE_CLIENT
from visaflow.bulk import bulk_import_people, bulk_update_status
from visaflow.catalog import list_case_statuses, load_transition_table
from visaflow.config import get_config, get_transition_overrides
from visaflow.db import init_db, session_scope
from visaflow.errors import WorkflowError
from visaflow.logging_config import setup_logging
from visaflow.migrations import MIGRATIONS, run_migrations
from visaflow.models import UserProfile
from visaflow.transitions import find_untransitionable_codes

app = typer.Typer(help="Visaflow case status workflow CLI")


def _ensure_db(config_path: str | None = None) -> None:
    config = get_config(config_path)
    db_url = config.get("database", {}).get("url", "sqlite:///./data/visaflow.db")
    if db_url.startswith("sqlite:///"):
        Path(db_url.replace("sqlite:///", "")).parent.mkdir(parents=True, exist_ok=True)
    echo = config.get("database", {}).get("echo", False)
    setup_logging(config.get("app", {}).get("log_level", "INFO"))
    init_db(db_url, echo=echo)


def _cli_actor() -> str:
    actor = os.environ.get("VISAFLOW_ACTOR", "cli")
    set_audit_context(str(uuid.uuid4()), actor)
    return actor


@app.command()
def migrate(
    only: str | None = typer.Option(
        None, "--only", help="Comma-separated migration ids (default: all, in order)"
    ),
    force: bool = typer.Option(False, "--force", help="Re-run migrations already in the ledger"),
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """Apply data migrations recorded in the data_migrations ledger."""
    _ensure_db(config)
    _cli_actor()
    ids = [x.strip() for x in only.split(",") if x.strip()] if only else None
    try:
        with session_scope() as session:
            results = run_migrations(session, ids=ids, force=force)
    except ValueError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1) from e
    for r in results:
        summary = json.dumps(r["summary"]) if r["summary"] is not None else ""
        typer.echo(f"{r['migration_id']}: {r['status']} {summary}".rstrip())


@app.command("list-migrations")
def list_migrations() -> None:
    """Show registered data migrations."""
    for m in MIGRATIONS:
        typer.echo(f"{m.migration_id}  {m.description}")


@app.command()
def seed(
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """Insert the fixed case status catalog (entries already present are kept)."""
    _ensure_db(config)
    _cli_actor()
    with session_scope() as session:
        results = run_migrations(session, ids=["0001_seed_case_statuses"], force=True)
    typer.echo(f"Seeded case statuses: {results[0]['summary']}")


@app.command("check-transitions")
def check_transitions(
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
    show_table: bool = typer.Option(False, "--show-table", help="Print the effective table"),
) -> None:
    """Report catalog statuses that no transition leads to, and codes the table does not know."""
    _ensure_db(config)
    cfg = get_config(config)
    with session_scope() as session:
        table = load_transition_table(session, get_transition_overrides(cfg))
        codes = [s.code for s in list_case_statuses(session, include_inactive=False)]
    unreachable = find_untransitionable_codes(table, codes)
    unknown = sorted(c for c in codes if c not in table.known_codes)
    if show_table:
        typer.echo(json.dumps(table.as_dict(), indent=2))
    for code in unknown:
        typer.echo(f"Not in transition table: {code}")
    for code in unreachable:
        typer.echo(f"No incoming transition: {code}")
    if not unknown and not unreachable:
        typer.echo(f"All {len(codes)} active case statuses are reachable.")


@app.command("add-user")
def add_user(
    user_id: str = typer.Option(..., "--user-id", help="Identity bound to an API key"),
    email: str = typer.Option(..., "--email"),
    full_name: str = typer.Option(..., "--name"),
    role: str = typer.Option(ROLE_CLIENT, "--role", help="admin | client"),
    company_id: int | None = typer.Option(None, "--company-id"),
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """Create or update a user profile."""
    if role not in (ROLE_ADMIN, ROLE_CLIENT):
        typer.echo("role must be admin or client", err=True)
        raise typer.Exit(1)
    _ensure_db(config)
    with session_scope() as session:
        profile = session.execute(
            select(UserProfile).where(UserProfile.user_id == user_id)
        ).scalar_one_or_none()
        if profile is None:
            profile = UserProfile(user_id=user_id)
            session.add(profile)
        profile.email = email
        profile.full_name = full_name
        profile.role = role
        profile.company_id = company_id
        profile.is_active = True
    typer.echo(f"User {user_id} saved with role {role}")


@app.command("import-people")
def import_people(
    path: str = typer.Argument(..., help="CSV with full_name,email,cpf,birth_date,nationality,..."),
    encoding: str = typer.Option("utf-8", "--encoding", "-e", help="CSV encoding"),
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """Bulk import people from CSV (acts as VISAFLOW_ACTOR, which must be an admin)."""
    _ensure_db(config)
    actor = _cli_actor()
    with open(path, encoding=encoding, newline="") as f:
        rows = list(csv.DictReader(f))
    try:
        with session_scope() as session:
            result = bulk_import_people(session, actor, rows)
    except WorkflowError as e:
        typer.echo(e.message, err=True)
        raise typer.Exit(1) from e
    typer.echo(
        f"Processed {result['total_processed']}: {len(result['successful'])} created, "
        f"{len(result['failed'])} failed."
    )
    for failure in result["failed"]:
        typer.echo(f"  row {failure['index']} ({failure['name']}): {failure['reason']}", err=True)


@app.command("bulk-update-status")
def bulk_update_status_cmd(
    ids: str = typer.Option(..., "--ids", help="Comma-separated individual process ids"),
    code: str = typer.Option(..., "--code", help="Target case status code"),
    reason: str | None = typer.Option(None, "--reason", help="Note stored on each history row"),
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
) -> None:
    """Move many cases to one status; each case is checked against its own current status."""
    _ensure_db(config)
    actor = _cli_actor()
    cfg = get_config(config)
    case_ids = [int(x.strip()) for x in ids.split(",") if x.strip()]
    try:
        with session_scope() as session:
            table = load_transition_table(session, get_transition_overrides(cfg))
            result = bulk_update_status(session, actor, case_ids, code, reason=reason, table=table)
    except WorkflowError as e:
        typer.echo(e.message, err=True)
        raise typer.Exit(1) from e
    typer.echo(f"Updated {len(result['successful'])} of {result['total_processed']} cases.")
    for failure in result["failed"]:
        typer.echo(f"  case {failure['id']}: {failure['reason']}", err=True)


@app.command("serve-api")
def serve_api(
    config: str | None = typer.Option(None, "--config", "-c", help="Config YAML path"),
    host: str | None = typer.Option(None, "--host", "-h", help="Bind host"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),
) -> None:
    """Start the FastAPI server."""
    cfg = get_config(config)
    h = host or os.environ.get("VISAFLOW_API_HOST") or cfg.get("api", {}).get("host", "0.0.0.0")
    _pe = os.environ.get("VISAFLOW_API_PORT", "")
    p = (
        port
        if port is not None
        else (int(_pe) if _pe and _pe.isdigit() else None) or cfg.get("api", {}).get("port", 8000)
    )
    if config:
        os.environ["VISAFLOW_CONFIG_PATH"] = config
    _ensure_db(config)
    import uvicorn

    uvicorn.run(
        "visaflow.api:app",
        host=h,
        port=p,
        reload=False,
    )


if __name__ == "__main__":
    app()
