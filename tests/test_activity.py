"""Tests for the activity log producer (after-commit writes, discard on rollback)."""

import pytest

from visaflow import activity
from visaflow.activity import (
    activity_mark,
    discard_activity_since,
    list_activity,
    log_activity,
    pending_activity,
)
from visaflow.audit_context import set_audit_context
from visaflow.db import session_scope
from visaflow.models import IndividualProcess
from visaflow.status_history import add_status

ADMIN = "admin-1"


def test_entry_written_after_commit_with_correlation_id(committed_case) -> None:
    case_id = committed_case["case_id"]
    set_audit_context("corr-activity-1", ADMIN)
    with session_scope() as session:
        row = add_status(session, ADMIN, case_id, status_name="em_tramite")
        row_id = row.id
        assert [e["action"] for e in pending_activity(session)] == ["status_added"]

    with session_scope() as session:
        (entry,) = list_activity(
            session, action="status_added", entity_id=row_id, entity_type="individualProcessStatus"
        )
        assert entry.user_id == ADMIN
        assert entry.correlation_id == "corr-activity-1"
        assert entry.details_json["individual_process_id"] == case_id
        assert entry.details_json["case_status_name"] == "Em Trâmite"
        assert len(entry.details_json["deactivated_status_ids"]) == 1


def test_rollback_discards_queued_entries(committed_case) -> None:
    case_id = committed_case["case_id"]
    with session_scope() as session:
        before = len(list_activity(session, action="status_added"))

    with pytest.raises(RuntimeError, match="abort"):
        with session_scope() as session:
            add_status(session, ADMIN, case_id, status_name="em_tramite")
            raise RuntimeError("abort")

    with session_scope() as session:
        assert len(list_activity(session, action="status_added")) == before
        assert session.get(IndividualProcess, case_id).status == "em_preparacao"


def test_discard_since_mark(committed_case) -> None:
    with session_scope() as session:
        log_activity(session, ADMIN, "kept", "test", 1)
        mark = activity_mark(session)
        log_activity(session, ADMIN, "dropped", "test", 2)
        log_activity(session, ADMIN, "dropped", "test", 3)
        discard_activity_since(session, mark)
        assert [e["action"] for e in pending_activity(session)] == ["kept"]

    with session_scope() as session:
        assert len(list_activity(session, action="kept")) == 1
        assert list_activity(session, action="dropped") == []


def test_write_failure_does_not_fail_the_caller(
    committed_case, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    case_id = committed_case["case_id"]

    def _broken(**kwargs):
        raise RuntimeError("activity store down")

    monkeypatch.setattr(activity, "ActivityLog", _broken)
    with caplog.at_level("ERROR"):
        with session_scope() as session:
            add_status(session, ADMIN, case_id, status_name="em_tramite")
    assert "Dropped 1 activity log entries" in caplog.text
    monkeypatch.undo()

    with session_scope() as session:
        assert session.get(IndividualProcess, case_id).status == "em_tramite"


def test_list_activity_newest_first_with_limit(committed_case) -> None:
    with session_scope() as session:
        for n in range(3):
            log_activity(session, ADMIN, "heartbeat", "test", n)

    with session_scope() as session:
        rows = list_activity(session, action="heartbeat", limit=2)
        assert [r.entity_id for r in rows] == ["2", "1"]
        assert list_activity(session, action="heartbeat", user_id="someone-else") == []
