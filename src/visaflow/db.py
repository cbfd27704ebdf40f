"""SQLAlchemy 2.x engine and session (SQLite and Postgres)."""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import contextmanager
from logging import getLogger

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker

from visaflow.activity import install_activity_hooks
from visaflow.models import Base

logger = getLogger(__name__)

# Module-level engine/session_factory; set via init_db()
_engine = None
_SessionLocal: sessionmaker[Session] | None = None

_IS_SQLITE = False

# Columns added after the first catalog release (order numbers, fillable fields,
# catalog-driven transitions, dated history rows, case versioning).
_SCHEMA_COLUMNS = (
    (
        "case_statuses",
        [
            ("order_number", "INTEGER"),
            ("fillable_fields", "JSON"),
            ("allowed_next_codes", "JSON"),
        ],
    ),
    (
        "individual_process_statuses",
        [
            ("date", "TEXT"),
            ("fillable_fields", "JSON"),
            ("filled_fields_data", "JSON"),
        ],
    ),
    (
        "individual_processes",
        [
            ("version", "INTEGER"),
            ("date_process", "TEXT"),
        ],
    ),
)


def _get_existing_columns(conn, table: str) -> set[str]:
    """Return set of column names for table (SQLite pragma_table_info)."""
    r = conn.execute(text(f"PRAGMA table_info({table})"))
    return {row[1] for row in r.fetchall()}


def _missing_columns(engine) -> list[tuple[str, str]]:
    """Return list of (table, column) that are expected but missing."""
    missing: list[tuple[str, str]] = []
    with engine.connect() as conn:
        for table, columns in _SCHEMA_COLUMNS:
            existing = _get_existing_columns(conn, table)
            for col_name, _ in columns:
                if col_name not in existing:
                    missing.append((table, col_name))
    return missing


def _upgrade_schema(engine) -> list[tuple[str, str]]:
    """Add late columns if missing (SQLite). Returns list of (table, column) added."""
    added: list[tuple[str, str]] = []
    with engine.connect() as conn:
        for table, columns in _SCHEMA_COLUMNS:
            existing = _get_existing_columns(conn, table)
            for col_name, col_type in columns:
                if col_name in existing:
                    continue
                try:
                    if table == "individual_processes" and col_name == "version":
                        conn.execute(
                            text(f"ALTER TABLE {table} ADD COLUMN {col_name} {col_type} DEFAULT 1")
                        )
                    else:
                        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {col_name} {col_type}"))
                    conn.commit()
                    added.append((table, col_name))
                except Exception:
                    conn.rollback()
                    logger.exception("Could not add column %s.%s", table, col_name)
    if added:
        logger.warning(
            "Schema auto-upgrade ran (VISAFLOW_ALLOW_SCHEMA_UPGRADE=true). Columns added: %s",
            added,
        )
    return added


def _enable_sqlite_savepoints(engine) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT / RELEASE nest inside it (pysqlite)."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")


def init_db(database_url: str, echo: bool = False) -> None:
    """Create engine and session factory. Call once at startup.
    SQLite: create_all + optional schema upgrade gating. Postgres: engine only (schema via Alembic).
    """
    global _engine, _SessionLocal, _IS_SQLITE
    _IS_SQLITE = "sqlite" in database_url
    connect_args = {} if not _IS_SQLITE else {"check_same_thread": False}
    _engine = create_engine(
        database_url,
        echo=echo,
        connect_args=connect_args,
    )
    if _IS_SQLITE:
        _enable_sqlite_savepoints(_engine)
    _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    install_activity_hooks(_SessionLocal)

    if _IS_SQLITE:
        Base.metadata.create_all(bind=_engine)
        allow_upgrade = (
            os.environ.get("VISAFLOW_ALLOW_SCHEMA_UPGRADE", "").strip().lower() == "true"
        )
        if allow_upgrade:
            _upgrade_schema(_engine)
        else:
            missing = _missing_columns(_engine)
            if missing:
                raise RuntimeError(
                    "Schema mismatch detected. Set VISAFLOW_ALLOW_SCHEMA_UPGRADE=true for local dev OR run migrations."
                )
    # Postgres: schema is applied via Alembic; do not create_all here


def get_engine():
    """Return the global engine. Raises if init_db() was not called."""
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _SessionLocal


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Provide a transactional scope for a block."""
    factory = get_session_factory()
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
