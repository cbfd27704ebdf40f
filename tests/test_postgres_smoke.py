"""Postgres checks for the status history constraints; run only when POSTGRES_TEST_URL is set.

Every test works inside one transaction that is rolled back, so the target
database is left as it was.
"""

import os
from collections.abc import Iterator
from uuid import uuid4

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from visaflow.db import get_engine, get_session_factory, init_db
from visaflow.migrations.seed import seed_case_statuses
from visaflow.models import Base, IndividualProcess, IndividualProcessStatus, Person, UserProfile
from visaflow.status_history import add_status

POSTGRES_TEST_URL = os.environ.get("POSTGRES_TEST_URL")
ADMIN = "pg-smoke-admin"

pytestmark = pytest.mark.skipif(
    not POSTGRES_TEST_URL or "postgresql" not in (POSTGRES_TEST_URL or ""),
    reason="POSTGRES_TEST_URL (postgresql URL) not set",
)


@pytest.fixture
def pg_session() -> Iterator[Session]:
    init_db(POSTGRES_TEST_URL, echo=False)
    # Normally applied by Alembic; create_all skips tables that already exist.
    Base.metadata.create_all(bind=get_engine())
    session = get_session_factory()()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def pg_case(pg_session: Session) -> IndividualProcess:
    seed_case_statuses(pg_session)
    pg_session.add(
        UserProfile(user_id=ADMIN, email="pg-admin@example.com", full_name="PG Admin", role="admin")
    )
    person = Person(full_name="Paulo Postgres", email=f"paulo-{uuid4().hex[:8]}@example.com")
    pg_session.add(person)
    pg_session.flush()
    case = IndividualProcess(person_id=person.id, is_active=True)
    pg_session.add(case)
    pg_session.flush()
    return case


def test_active_status_index_is_partial(pg_session: Session) -> None:
    indexdef = pg_session.execute(
        text("SELECT indexdef FROM pg_indexes WHERE indexname = 'uq_active_status_per_process'")
    ).scalar_one()
    assert "UNIQUE" in indexdef
    assert "WHERE is_active" in indexdef


def test_second_active_row_is_rejected(pg_session: Session, pg_case: IndividualProcess) -> None:
    add_status(pg_session, ADMIN, pg_case.id, status_name="em_preparacao")
    first = add_status(pg_session, ADMIN, pg_case.id, status_name="em_tramite")

    with pytest.raises(IntegrityError):
        with pg_session.begin_nested():
            pg_session.add(
                IndividualProcessStatus(
                    individual_process_id=pg_case.id,
                    case_status_id=first.case_status_id,
                    status_name=first.status_name,
                    is_active=True,
                    changed_by=ADMIN,
                )
            )
            pg_session.flush()

    rows = pg_session.execute(
        select(IndividualProcessStatus).where(
            IndividualProcessStatus.individual_process_id == pg_case.id
        )
    ).scalars().all()
    assert len(rows) == 2
    assert [r.id for r in rows if r.is_active] == [first.id]
    assert pg_case.status == "em_tramite"
    assert pg_case.version >= 2
