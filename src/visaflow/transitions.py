"""Case status transitions: adjacency table and validation."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from logging import getLogger
from typing import Any

from visaflow.errors import InvalidTransitionError

logger = getLogger(__name__)

# Statuses that can interrupt the sequence at any point before a decision.
_INTERRUPTIONS = frozenset({"exigencia", "juntada_documento"})
_WITHDRAWALS = frozenset({"pedido_cancelamento", "pedido_arquivamento"})

# Valid (from_status -> to_status). pedido_cancelado cannot transition.
DEFAULT_STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    "em_preparacao": frozenset({"em_tramite"}) | _INTERRUPTIONS | _WITHDRAWALS,
    "em_tramite": frozenset({"encaminhado_analise"}) | _INTERRUPTIONS | _WITHDRAWALS,
    "encaminhado_analise": frozenset({"proposta_deferimento", "diario_oficial"})
    | _INTERRUPTIONS
    | _WITHDRAWALS,
    "exigencia": frozenset(
        {"em_tramite", "encaminhado_analise", "juntada_documento", "pedido_cancelamento"}
    ),
    "juntada_documento": frozenset(
        {"em_tramite", "encaminhado_analise", "exigencia", "pedido_cancelamento"}
    ),
    "proposta_deferimento": frozenset({"deferido", "diario_oficial", "exigencia"}),
    "diario_oficial": frozenset({"deferido", "publicado_dou"}),
    "deferido": frozenset({"publicado_dou"}),
    "publicado_dou": frozenset({"emissao_vitem"}),
    "emissao_vitem": frozenset({"entrada_brasil"}),
    "entrada_brasil": frozenset({"rnm"}),
    "rnm": frozenset({"em_renovacao"}),
    "em_renovacao": frozenset({"em_tramite", "nova_solicitacao_visto"}) | _INTERRUPTIONS,
    "nova_solicitacao_visto": frozenset({"em_preparacao"}),
    "pedido_cancelamento": frozenset({"pedido_cancelado", "em_tramite"}),
    "pedido_arquivamento": frozenset({"pedido_cancelado", "em_tramite"}),
    "pedido_cancelado": frozenset(),
}


class TransitionTable:
    """Immutable mapping of status code to the codes it may move to."""

    def __init__(self, edges: Mapping[str, Iterable[str]]) -> None:
        self._edges: dict[str, frozenset[str]] = {k: frozenset(v) for k, v in edges.items()}

    def __contains__(self, code: object) -> bool:
        return code in self._edges

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TransitionTable):
            return NotImplemented
        return self._edges == other._edges

    def __repr__(self) -> str:
        return f"TransitionTable({len(self._edges)} states)"

    @property
    def known_codes(self) -> frozenset[str]:
        """Every code that appears as a source or a target."""
        codes = set(self._edges)
        for targets in self._edges.values():
            codes |= targets
        return frozenset(codes)

    def allowed_from(self, current: str | None) -> frozenset[str]:
        if current is None:
            return self.known_codes
        return self._edges.get(current, frozenset())

    def is_allowed(self, current: str | None, new: str) -> bool:
        # A new case may start anywhere; re-asserting the current status is a no-op.
        if current is None or current == new:
            return True
        return new in self._edges.get(current, frozenset())

    def merged(self, extra: Mapping[str, Iterable[str]]) -> TransitionTable:
        """Return a new table where `extra` replaces the edges of the codes it names."""
        edges = dict(self._edges)
        for code, targets in extra.items():
            edges[code] = frozenset(targets)
        return TransitionTable(edges)

    def unreachable(self, codes: Iterable[str]) -> list[str]:
        """Codes with no incoming edge from any other code."""
        incoming: set[str] = set()
        for source, targets in self._edges.items():
            incoming |= {t for t in targets if t != source}
        return sorted(c for c in codes if c not in incoming)

    def as_dict(self) -> dict[str, list[str]]:
        return {k: sorted(v) for k, v in sorted(self._edges.items())}


DEFAULT_TABLE = TransitionTable(DEFAULT_STATUS_TRANSITIONS)


def is_valid_status_transition(
    current: str | None, new: str, table: TransitionTable = DEFAULT_TABLE
) -> bool:
    """True if a case in `current` (None for a brand-new case) may move to `new`."""
    return table.is_allowed(current, new)


def validate_status_transition(
    current: str | None, new: str, table: TransitionTable = DEFAULT_TABLE
) -> None:
    """Raise InvalidTransitionError if transition from current to new is invalid."""
    if table.is_allowed(current, new):
        return
    allowed = table.allowed_from(current)
    raise InvalidTransitionError(
        f"Invalid transition: {current} -> {new}. Allowed from {current}: {sorted(allowed) or 'none'}"
    )


def build_transition_table(
    catalog_entries: Iterable[Any],
    overrides: Mapping[str, Iterable[str]] | None = None,
    base: TransitionTable = DEFAULT_TABLE,
) -> TransitionTable:
    """Merge config overrides, then catalog `allowed_next_codes`, over the static table.

    `catalog_entries` are CaseStatus rows (anything with `code` and
    `allowed_next_codes`). An entry whose `allowed_next_codes` is None keeps the
    edges of the layers below it.
    """
    table = base.merged(overrides) if overrides else base
    from_catalog = {
        entry.code: entry.allowed_next_codes
        for entry in catalog_entries
        if entry.allowed_next_codes is not None
    }
    return table.merged(from_catalog) if from_catalog else table


def find_untransitionable_codes(table: TransitionTable, catalog_codes: Iterable[str]) -> list[str]:
    """Catalog codes that no other status can move to (only reachable as a first status)."""
    codes = list(catalog_codes)
    result = table.unreachable(codes)
    for code in result:
        logger.warning("Case status %s has no incoming transition", code)
    return result
