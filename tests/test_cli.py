"""CLI tests with typer's CliRunner."""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from visaflow.cli import app

runner = CliRunner()


def test_migrate_then_skip(config_path: str) -> None:
    r = runner.invoke(app, ["migrate", "--config", config_path])
    assert r.exit_code == 0, r.output
    assert "0001_seed_case_statuses: applied" in r.output
    r = runner.invoke(app, ["migrate", "--config", config_path])
    assert "0001_seed_case_statuses: skipped" in r.output
    r = runner.invoke(app, ["migrate", "--config", config_path, "--only", "0099_nope"])
    assert r.exit_code == 1


def test_check_transitions_after_seed(config_path: str) -> None:
    runner.invoke(app, ["seed", "--config", config_path])
    r = runner.invoke(app, ["check-transitions", "--config", config_path])
    assert r.exit_code == 0, r.output
    assert "All 17 active case statuses are reachable." in r.output


def test_import_people_and_bulk_update(
    config_path: str, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    runner.invoke(app, ["seed", "--config", config_path])
    r = runner.invoke(
        app,
        [
            "add-user",
            "--user-id",
            "admin-1",
            "--email",
            "admin@example.com",
            "--name",
            "Ana Admin",
            "--role",
            "admin",
            "--config",
            config_path,
        ],
    )
    assert r.exit_code == 0, r.output
    monkeypatch.setenv("VISAFLOW_ACTOR", "admin-1")

    csv_path = tmp_path / "people.csv"
    csv_path.write_text(
        "full_name,email,cpf\nMaria Silva,maria@example.com,111\nMaria Dup,MARIA@example.com,222\n",
        encoding="utf-8",
    )
    r = runner.invoke(app, ["import-people", str(csv_path), "--config", config_path])
    assert r.exit_code == 0, r.output
    assert "Processed 2: 1 created, 1 failed." in r.output

    r = runner.invoke(
        app, ["bulk-update-status", "--ids", "999", "--code", "em_tramite", "--config", config_path]
    )
    assert r.exit_code == 0, r.output
    assert "Updated 0 of 1 cases." in r.output

    r = runner.invoke(
        app, ["bulk-update-status", "--ids", "1", "--code", "aprovado", "--config", config_path]
    )
    assert r.exit_code == 1


def test_add_user_rejects_unknown_role(config_path: str) -> None:
    r = runner.invoke(
        app,
        ["add-user", "--user-id", "u", "--email", "u@example.com", "--name", "U", "--role", "root"],
    )
    assert r.exit_code == 1
