"""Tests for the case status transition table."""

from types import SimpleNamespace

import pytest

from visaflow.errors import InvalidTransitionError
from visaflow.migrations.seed import SEED_CASE_STATUSES
from visaflow.transitions import (
    DEFAULT_TABLE,
    TransitionTable,
    build_transition_table,
    find_untransitionable_codes,
    is_valid_status_transition,
    validate_status_transition,
)


def test_happy_path_edges_are_allowed() -> None:
    path = [
        "em_preparacao",
        "em_tramite",
        "encaminhado_analise",
        "proposta_deferimento",
        "deferido",
        "publicado_dou",
        "emissao_vitem",
        "entrada_brasil",
        "rnm",
        "em_renovacao",
    ]
    for current, new in zip(path, path[1:]):
        assert is_valid_status_transition(current, new), (current, new)


def test_skipping_ahead_is_rejected() -> None:
    assert not is_valid_status_transition("em_preparacao", "deferido")
    assert not is_valid_status_transition("em_tramite", "rnm")


def test_new_case_may_start_anywhere() -> None:
    assert is_valid_status_transition(None, "deferido")
    assert is_valid_status_transition(None, "pedido_cancelado")


def test_same_status_is_a_no_op() -> None:
    assert is_valid_status_transition("pedido_cancelado", "pedido_cancelado")
    validate_status_transition("rnm", "rnm")


def test_cancelled_is_terminal() -> None:
    with pytest.raises(
        InvalidTransitionError, match="Invalid transition.*Allowed from pedido_cancelado: none"
    ):
        validate_status_transition("pedido_cancelado", "em_tramite")


def test_error_lists_allowed_targets() -> None:
    with pytest.raises(InvalidTransitionError) as excinfo:
        validate_status_transition("deferido", "rnm")
    assert excinfo.value.message == (
        "Invalid transition: deferido -> rnm. Allowed from deferido: ['publicado_dou']"
    )
    assert excinfo.value.status_code == 422


def test_withdrawal_can_be_reverted() -> None:
    assert is_valid_status_transition("pedido_cancelamento", "em_tramite")
    assert is_valid_status_transition("pedido_arquivamento", "pedido_cancelado")


def test_unknown_current_code_has_no_edges() -> None:
    assert DEFAULT_TABLE.allowed_from("not_a_code") == frozenset()
    assert not is_valid_status_transition("not_a_code", "em_tramite")


def test_merged_replaces_only_named_codes() -> None:
    table = DEFAULT_TABLE.merged({"deferido": ["publicado_dou", "pedido_cancelamento"]})
    assert table.is_allowed("deferido", "pedido_cancelamento")
    assert table.allowed_from("rnm") == DEFAULT_TABLE.allowed_from("rnm")
    # Original table untouched
    assert not DEFAULT_TABLE.is_allowed("deferido", "pedido_cancelamento")


def test_catalog_edges_win_over_config_overrides() -> None:
    overrides = {"rnm": ["em_renovacao", "pedido_cancelamento"]}
    catalog = [
        SimpleNamespace(code="rnm", allowed_next_codes=["em_renovacao"]),
        SimpleNamespace(code="deferido", allowed_next_codes=None),
    ]
    table = build_transition_table(catalog, overrides)
    assert table.allowed_from("rnm") == frozenset({"em_renovacao"})
    assert table.allowed_from("deferido") == DEFAULT_TABLE.allowed_from("deferido")


def test_config_override_applies_without_catalog_edges() -> None:
    table = build_transition_table([], {"rnm": ["em_renovacao", "pedido_cancelamento"]})
    assert table.is_allowed("rnm", "pedido_cancelamento")


def test_build_without_layers_returns_default() -> None:
    assert build_transition_table([]) == DEFAULT_TABLE


def test_every_seeded_code_is_known_and_reachable() -> None:
    codes = [entry["code"] for entry in SEED_CASE_STATUSES]
    assert set(codes) <= DEFAULT_TABLE.known_codes
    assert find_untransitionable_codes(DEFAULT_TABLE, codes) == []


def test_untransitionable_codes_are_reported(caplog: pytest.LogCaptureFixture) -> None:
    table = TransitionTable({"a": ["b"], "b": ["b"], "c": ["a"]})
    with caplog.at_level("WARNING"):
        result = find_untransitionable_codes(table, ["a", "b", "c"])
    # Self-loops do not count as incoming edges
    assert result == ["c"]
    assert "c has no incoming transition" in caplog.text


def test_as_dict_is_sorted() -> None:
    table = TransitionTable({"b": ["z", "a"], "a": []})
    assert table.as_dict() == {"a": [], "b": ["a", "z"]}
