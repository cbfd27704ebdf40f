"""Collective-process status: computed from its cases, never stored."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass
from typing import Any

from visaflow.models import IndividualProcess

LOCALES = ("pt", "en")


@dataclass
class StatusBreakdown:
    """Number of cases sitting in one catalog status."""

    case_status_id: int
    case_status_name: str
    case_status_name_en: str | None
    color: str | None
    count: int

    def label(self, locale: str) -> str:
        if locale == "en" and self.case_status_name_en:
            return self.case_status_name_en
        return self.case_status_name


def get_status_breakdown(processes: Iterable[IndividualProcess]) -> list[StatusBreakdown]:
    """Group cases by catalog status; most common first, ties by name."""
    by_id: dict[int, StatusBreakdown] = {}
    for process in processes:
        status = process.case_status
        if status is None or process.case_status_id is None:
            continue
        entry = by_id.get(status.id)
        if entry is None:
            by_id[status.id] = StatusBreakdown(
                case_status_id=status.id,
                case_status_name=status.name,
                case_status_name_en=status.name_en,
                color=status.color,
                count=1,
            )
        else:
            entry.count += 1
    return sorted(by_id.values(), key=lambda b: (-b.count, b.case_status_name.casefold()))


def format_status_breakdown(breakdown: list[StatusBreakdown], locale: str = "pt") -> str:
    """"3 Deferido, 2 Em Trâmite"; a single case in a single status shows just the name."""
    if not breakdown:
        return "No status defined" if locale == "en" else "Sem status definido"
    if len(breakdown) == 1:
        only = breakdown[0]
        return only.label(locale) if only.count == 1 else f"{only.count} {only.label(locale)}"
    return ", ".join(f"{b.count} {b.label(locale)}" for b in breakdown)


def get_most_common_status(breakdown: list[StatusBreakdown]) -> StatusBreakdown | None:
    return breakdown[0] if breakdown else None


def calculate_collective_status(
    processes: Iterable[IndividualProcess], locale: str = "pt"
) -> dict[str, Any]:
    """Summary of a collective process's cases: display text, breakdown and dominant color."""
    if locale not in LOCALES:
        raise ValueError(f"locale must be one of {LOCALES}, got {locale!r}")
    cases = [p for p in processes if p.is_active]
    if not cases:
        return {
            "display_text": "No individual processes"
            if locale == "en"
            else "Sem processos individuais",
            "display_text_pt": "Sem processos individuais",
            "display_text_en": "No individual processes",
            "breakdown": [],
            "total_processes": 0,
            "has_multiple_statuses": False,
            "color": None,
        }
    breakdown = get_status_breakdown(cases)
    most_common = get_most_common_status(breakdown)
    return {
        "display_text": format_status_breakdown(breakdown, locale),
        "display_text_pt": format_status_breakdown(breakdown, "pt"),
        "display_text_en": format_status_breakdown(breakdown, "en"),
        "breakdown": [asdict(b) for b in breakdown],
        "total_processes": len(cases),
        "has_multiple_statuses": len(breakdown) > 1,
        "color": most_common.color if most_common else None,
    }
