"""Tests for data migrations: seed, legacy backfill, archive, renumber and the ledger."""

import pytest
from sqlalchemy import select

from visaflow.migrations import MIGRATIONS, get_migration, run_migrations
from visaflow.migrations.backfill import (
    archive_collective_process_status,
    backfill_active_history,
    backfill_case_status_ids,
)
from visaflow.migrations.renumber import renumber_order_numbers
from visaflow.migrations.seed import SEED_CASE_STATUSES, seed_case_statuses
from visaflow.models import (
    ActivityLog,
    CaseStatus,
    CollectiveProcess,
    DataMigration,
    IndividualProcess,
    IndividualProcessStatus,
    Person,
)


def _legacy_case(session, legacy_status, n: int) -> IndividualProcess:
    person = Person(full_name=f"Legacy {n}", email=f"legacy{n}@example.com")
    session.add(person)
    session.flush()
    case = IndividualProcess(person_id=person.id, status=legacy_status, is_active=True)
    session.add(case)
    session.flush()
    return case


def test_seed_is_idempotent(db_session) -> None:
    assert seed_case_statuses(db_session) == {"inserted": len(SEED_CASE_STATUSES), "skipped": 0}
    assert seed_case_statuses(db_session) == {"inserted": 0, "skipped": len(SEED_CASE_STATUSES)}
    deferido = db_session.execute(
        select(CaseStatus).where(CaseStatus.code == "deferido")
    ).scalar_one()
    assert deferido.order_number == 5
    exigencia = db_session.execute(
        select(CaseStatus).where(CaseStatus.code == "exigencia")
    ).scalar_one()
    assert exigencia.order_number is None
    assert exigencia.fillable_fields == ["deadline_date"]


def test_run_migrations_records_ledger_and_skips_reruns(db_session) -> None:
    first = run_migrations(db_session)
    assert [r["migration_id"] for r in first] == [m.migration_id for m in MIGRATIONS]
    assert all(r["status"] == "applied" for r in first)
    assert first[-1]["summary"] == {"updated": 0, "skipped": 17, "not_found": 0}

    second = run_migrations(db_session)
    assert {r["status"] for r in second} == {"skipped"}

    forced = run_migrations(db_session, ids=["0005_renumber_order_numbers"], force=True)
    assert forced == [
        {
            "migration_id": "0005_renumber_order_numbers",
            "status": "applied",
            "summary": {"updated": 0, "skipped": 17, "not_found": 0},
        }
    ]
    ledger = db_session.execute(select(DataMigration)).scalars().all()
    assert len(ledger) == len(MIGRATIONS)


def test_unknown_migration_id(db_session) -> None:
    with pytest.raises(ValueError, match="Unknown migration: 0099_nope"):
        run_migrations(db_session, ids=["0099_nope"])
    assert get_migration("0001_seed_case_statuses").description


def test_backfill_maps_legacy_statuses(db_session, caplog: pytest.LogCaptureFixture) -> None:
    seed_case_statuses(db_session)
    submitted = _legacy_case(db_session, "submitted", 1)
    by_code = _legacy_case(db_session, "Deferido", 2)
    by_name = _legacy_case(db_session, "Em Trâmite", 3)
    unknown = _legacy_case(db_session, "weird_value", 4)
    empty = _legacy_case(db_session, None, 5)
    db_session.add(
        IndividualProcessStatus(
            individual_process_id=submitted.id,
            status_name="approved",
            is_active=False,
            changed_by="legacy",
        )
    )
    db_session.flush()

    with caplog.at_level("WARNING"):
        counts = backfill_case_status_ids(db_session)

    assert counts == {
        "cases_updated": 5,
        "cases_skipped": 0,
        "history_updated": 1,
        "history_skipped": 0,
    }
    codes = {
        c.id: db_session.get(CaseStatus, c.case_status_id).code
        for c in (submitted, by_code, by_name, unknown, empty)
    }
    assert codes == {
        submitted.id: "encaminhado_analise",
        by_code.id: "deferido",
        by_name.id: "em_tramite",
        unknown.id: "em_preparacao",
        empty.id: "em_preparacao",
    }
    assert "Unmapped legacy status 'weird_value'" in caplog.text

    again = backfill_case_status_ids(db_session)
    assert again["cases_updated"] == 0
    assert again["cases_skipped"] == 5


def test_backfill_active_history(db_session) -> None:
    seed_case_statuses(db_session)
    case = _legacy_case(db_session, "submitted", 1)
    case.date_process = "2025-03-10"
    _legacy_case(db_session, None, 2)
    backfill_case_status_ids(db_session)

    assert backfill_active_history(db_session) == {"created": 2, "skipped": 0}
    row = db_session.execute(
        select(IndividualProcessStatus)
        .where(IndividualProcessStatus.individual_process_id == case.id)
        .where(IndividualProcessStatus.is_active.is_(True))
    ).scalar_one()
    assert row.date == "2025-03-10"
    assert row.changed_by == "system"
    assert row.notes == "Backfilled from case status"
    assert row.status_name == "Encaminhado a análise"

    assert backfill_active_history(db_session) == {"created": 0, "skipped": 2}


def test_archive_collective_process_status(db_session) -> None:
    done = CollectiveProcess(reference_number="CP-OLD-1", status="completed")
    blank = CollectiveProcess(reference_number="CP-OLD-2")
    db_session.add_all([done, blank])
    db_session.flush()

    assert archive_collective_process_status(db_session) == {"archived": 1, "skipped": 1}
    assert done.status is None
    entry = db_session.execute(
        select(ActivityLog).where(ActivityLog.action == "migration_archived")
    ).scalar_one()
    assert entry.entity_id == str(done.id)
    assert entry.details_json["status"] == "completed"

    assert archive_collective_process_status(db_session) == {"archived": 0, "skipped": 2}


def test_renumber_order_numbers(db_session, caplog: pytest.LogCaptureFixture) -> None:
    seed_case_statuses(db_session)
    rnm = db_session.execute(select(CaseStatus).where(CaseStatus.code == "rnm")).scalar_one()
    rnm.order_number = 99
    db_session.add(CaseStatus(code="custom_step", name="Etapa Extra", sort_order=50, order_number=20))
    db_session.flush()

    with caplog.at_level("WARNING"):
        result = renumber_order_numbers(db_session)
    assert result == {"updated": 1, "skipped": 16, "not_found": 1}
    assert rnm.order_number == 9
    assert "No order number mapping for case status custom_step" in caplog.text
