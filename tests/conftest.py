"""Pytest fixtures: temp SQLite DB, users, seeded catalog, sample cases."""

from __future__ import annotations

import itertools
import os
from collections.abc import Callable
from pathlib import Path

import pytest
from sqlalchemy import select

# Ensure all tests use SQLite by default; ignore DATABASE_URL unless running
# the optional Postgres smoke test (which uses POSTGRES_TEST_URL only).
if "POSTGRES_TEST_URL" not in os.environ:
    os.environ.pop("DATABASE_URL", None)
    os.environ.pop("VISAFLOW_DATABASE_URL", None)

from visaflow.config import get_config
from visaflow.db import init_db, session_scope
from visaflow.migrations.seed import seed_case_statuses
from visaflow.models import (
    CaseStatus,
    CollectiveProcess,
    Company,
    IndividualProcess,
    Person,
    UserProfile,
)
from visaflow.status_history import add_status

ADMIN = "admin-1"
CLIENT = "client-1"
OTHER_CLIENT = "client-2"


@pytest.fixture
def config_path(tmp_path: Path) -> str:
    """Return path to a temporary config dir with default.yaml (file-backed SQLite)."""
    cfg_dir = tmp_path / "config"
    cfg_dir.mkdir()
    db_file = tmp_path / "visaflow_test.db"
    (cfg_dir / "default.yaml").write_text(
        f"""
app:
  log_level: INFO
database:
  url: "sqlite:///{db_file}"
  echo: false
workflow:
  default_status_code: em_preparacao
  transitions: {{}}
"""
    )
    return str(cfg_dir / "default.yaml")


@pytest.fixture
def db(config_path: str) -> str:
    """Initialize the DB; return its URL."""
    config = get_config(config_path)
    url = config["database"]["url"]
    init_db(url, echo=False)
    return url


@pytest.fixture
def db_session(db: str):
    """Yield a session inside session_scope (committed when the test ends)."""
    with session_scope() as session:
        yield session


@pytest.fixture
def statuses(db_session) -> dict[str, CaseStatus]:
    """Seeded catalog by code."""
    seed_case_statuses(db_session)
    return {s.code: s for s in db_session.execute(select(CaseStatus)).scalars()}


@pytest.fixture
def users(db_session) -> dict[str, UserProfile]:
    """An admin, a client of Acme and a client of Globex."""
    acme = Company(name="Acme")
    globex = Company(name="Globex")
    db_session.add_all([acme, globex])
    db_session.flush()
    profiles = {
        "admin": UserProfile(
            user_id=ADMIN, email="admin@example.com", full_name="Ana Admin", role="admin"
        ),
        "client": UserProfile(
            user_id=CLIENT,
            email="client@acme.example",
            full_name="Carla Client",
            role="client",
            company_id=acme.id,
        ),
        "other_client": UserProfile(
            user_id=OTHER_CLIENT,
            email="client@globex.example",
            full_name="Otto Other",
            role="client",
            company_id=globex.id,
        ),
    }
    db_session.add_all(profiles.values())
    db_session.flush()
    return profiles


@pytest.fixture
def collective(db_session, users) -> CollectiveProcess:
    """Collective process owned by the client's company."""
    cp = CollectiveProcess(reference_number="CP-2026-001", company_id=users["client"].company_id)
    db_session.add(cp)
    db_session.flush()
    return cp


@pytest.fixture
def make_case(db_session, statuses, users, collective) -> Callable[..., IndividualProcess]:
    """Factory: new person + case in the collective process, optionally with an active status."""
    counter = itertools.count(1)

    def _make(code: str | None = "em_preparacao", collective_id: int | None = None) -> IndividualProcess:
        n = next(counter)
        person = Person(full_name=f"Applicant {n}", email=f"applicant{n}@example.com")
        db_session.add(person)
        db_session.flush()
        case = IndividualProcess(
            collective_process_id=collective_id if collective_id is not None else collective.id,
            person_id=person.id,
            is_active=True,
        )
        db_session.add(case)
        db_session.flush()
        if code is not None:
            add_status(db_session, ADMIN, case.id, status_name=code)
        return case

    return _make


@pytest.fixture
def committed_case(db: str) -> dict[str, int]:
    """Seeded catalog, users and one em_preparacao case, committed; returns their ids."""
    with session_scope() as session:
        seed_case_statuses(session)
        company = Company(name="Acme")
        session.add(company)
        session.flush()
        session.add_all(
            [
                UserProfile(
                    user_id=ADMIN, email="admin@example.com", full_name="Ana Admin", role="admin"
                ),
                UserProfile(
                    user_id=CLIENT,
                    email="client@acme.example",
                    full_name="Carla Client",
                    role="client",
                    company_id=company.id,
                ),
            ]
        )
        cp = CollectiveProcess(reference_number="CP-2026-002", company_id=company.id)
        person = Person(full_name="Bruno Batch", email="bruno@example.com")
        session.add_all([cp, person])
        session.flush()
        case = IndividualProcess(collective_process_id=cp.id, person_id=person.id, is_active=True)
        session.add(case)
        session.flush()
        add_status(session, ADMIN, case.id, status_name="em_preparacao")
        ids = {"case_id": case.id, "collective_id": cp.id, "person_id": person.id}
    return ids
