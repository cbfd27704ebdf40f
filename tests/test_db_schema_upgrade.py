"""Tests for schema upgrade gating (VISAFLOW_ALLOW_SCHEMA_UPGRADE)."""

from pathlib import Path

import pytest
from sqlalchemy import create_engine, text

from visaflow.db import _missing_columns, init_db


def _create_old_schema_db(path: Path) -> None:
    """Create SQLite DB from before order numbers, fillable fields and case versioning."""
    url = f"sqlite:///{path}"
    engine = create_engine(url)
    with engine.connect() as conn:
        conn.execute(
            text(
                """
            CREATE TABLE case_statuses (
                id INTEGER NOT NULL PRIMARY KEY,
                code VARCHAR(64) NOT NULL UNIQUE,
                name VARCHAR(255) NOT NULL,
                name_en VARCHAR(255),
                description TEXT,
                category VARCHAR(32),
                color VARCHAR(16),
                sort_order INTEGER NOT NULL,
                is_active BOOLEAN NOT NULL DEFAULT 1,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        """
            )
        )
        conn.execute(
            text(
                """
            CREATE TABLE individual_processes (
                id INTEGER NOT NULL PRIMARY KEY,
                collective_process_id INTEGER,
                person_id INTEGER NOT NULL,
                case_status_id INTEGER,
                status VARCHAR(64),
                protocol_number VARCHAR(64),
                rnm_number VARCHAR(64),
                rnm_deadline VARCHAR(10),
                dou_number VARCHAR(64),
                dou_section VARCHAR(32),
                dou_page VARCHAR(32),
                dou_date VARCHAR(10),
                mre_office_number VARCHAR(64),
                appointment_date_time VARCHAR(32),
                deadline_date VARCHAR(10),
                is_active BOOLEAN NOT NULL DEFAULT 1,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                updated_at DATETIME,
                FOREIGN KEY(case_status_id) REFERENCES case_statuses(id)
            )
        """
            )
        )
        conn.execute(
            text(
                """
            CREATE TABLE individual_process_statuses (
                id INTEGER NOT NULL PRIMARY KEY,
                individual_process_id INTEGER NOT NULL,
                case_status_id INTEGER,
                status_name VARCHAR(255) NOT NULL,
                is_active BOOLEAN NOT NULL DEFAULT 1,
                notes TEXT,
                changed_by VARCHAR(128) NOT NULL,
                changed_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY(individual_process_id) REFERENCES individual_processes(id)
            )
        """
            )
        )
        conn.execute(
            text(
                "INSERT INTO individual_processes (id, person_id, status) VALUES (1, 1, 'submitted')"
            )
        )
        conn.commit()
    engine.dispose()


def test_schema_upgrade_does_not_run_without_flag(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Auto-upgrade does NOT run unless VISAFLOW_ALLOW_SCHEMA_UPGRADE=true."""
    monkeypatch.delenv("VISAFLOW_ALLOW_SCHEMA_UPGRADE", raising=False)
    db_path = tmp_path / "old.db"
    _create_old_schema_db(db_path)
    url = f"sqlite:///{db_path}"

    with pytest.raises(
        RuntimeError, match="Schema mismatch detected. Set VISAFLOW_ALLOW_SCHEMA_UPGRADE=true"
    ):
        init_db(url, echo=False)


def test_schema_upgrade_runs_with_flag_and_adds_columns(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """With VISAFLOW_ALLOW_SCHEMA_UPGRADE=true, init_db adds the columns; existing rows get version 1."""
    db_path = tmp_path / "old.db"
    _create_old_schema_db(db_path)
    url = f"sqlite:///{db_path}"
    monkeypatch.setenv("VISAFLOW_ALLOW_SCHEMA_UPGRADE", "true")

    init_db(url, echo=False)

    engine = create_engine(url)
    assert _missing_columns(engine) == []
    with engine.connect() as conn:
        status_columns = {row[1] for row in conn.execute(text("PRAGMA table_info(case_statuses)"))}
        version = conn.execute(text("SELECT version FROM individual_processes WHERE id = 1")).scalar()
    engine.dispose()
    assert {"order_number", "fillable_fields", "allowed_next_codes"} <= status_columns
    assert version == 1
