"""
Report number allocation — ``CRN-001``, ``CRN-002``, …

The counter lives in ``report_sequences`` and is bumped with a single
``UPDATE … SET value = value + 1`` inside the caller's transaction, so
the row stays write-locked until the new checklist is committed (row
lock on PostgreSQL, database write lock on SQLite).  When the counter
row does not exist yet it is seeded from the highest ``CRN-`` suffix
already stored, which keeps numbering continuous for databases that
pre-date the counter.  A concurrent seeder loses on the primary key and
the caller retries.
"""

import logging
import re

from flask import current_app
from sqlalchemy import select, update

from app.models import db
from app.models.checklist import Checklist, ReportSequence

logger = logging.getLogger(__name__)


def format_report_number(prefix: str, value: int) -> str:
    return f"{prefix}-{value:03d}"


def _highest_existing_suffix(prefix: str) -> int:
    pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)$")
    highest = 0
    rows = db.session.execute(
        select(Checklist.dcl_no).where(Checklist.dcl_no.like(f"{prefix}-%"))
    ).scalars()
    for dcl_no in rows:
        match = pattern.match(dcl_no or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


def allocate_report_number(prefix: str | None = None) -> str:
    """Reserve the next report number within the current transaction.

    Does NOT commit: the caller commits together with the row that uses
    the number, and on rollback the number is released again.

    Raises:
        sqlalchemy.exc.IntegrityError: another transaction seeded the
            counter first (retry the whole unit of work).
        sqlalchemy.exc.OperationalError: lock wait timed out.
    """
    prefix = prefix or current_app.config.get("REPORT_NUMBER_PREFIX", "CRN")

    result = db.session.execute(
        update(ReportSequence)
        .where(ReportSequence.name == prefix)
        .values(value=ReportSequence.value + 1)
    )
    if result.rowcount:
        value = db.session.execute(
            select(ReportSequence.value).where(ReportSequence.name == prefix)
        ).scalar_one()
    else:
        value = _highest_existing_suffix(prefix) + 1
        db.session.add(ReportSequence(name=prefix, value=value))
        db.session.flush()
        logger.info("Seeded report sequence %s at %d", prefix, value)

    return format_report_number(prefix, value)
