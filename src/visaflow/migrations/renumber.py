"""Sequence positions for the catalog."""

from __future__ import annotations

from datetime import UTC, datetime
from logging import getLogger

from sqlalchemy import select
from sqlalchemy.orm import Session

from visaflow.migrations.seed import ORDER_NUMBER_MAPPING
from visaflow.models import CaseStatus

logger = getLogger(__name__)


def renumber_order_numbers(session: Session) -> dict[str, int]:
    """Apply ORDER_NUMBER_MAPPING; codes it does not know keep their current value."""
    updated = 0
    skipped = 0
    not_found = 0
    for status in session.execute(select(CaseStatus).order_by(CaseStatus.id)).scalars():
        if status.code not in ORDER_NUMBER_MAPPING:
            not_found += 1
            logger.warning("No order number mapping for case status %s", status.code)
            continue
        new = ORDER_NUMBER_MAPPING[status.code]
        if status.order_number == new:
            skipped += 1
            continue
        logger.info("Case status %s: order_number %s -> %s", status.code, status.order_number, new)
        status.order_number = new
        status.updated_at = datetime.now(UTC)
        updated += 1
    session.flush()
    return {"updated": updated, "skipped": skipped, "not_found": not_found}
