# Overview: Per-day bill number allocation for B2B and B2C transactions.

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import BillSequence


SERIES_B2B = "B2B"
SERIES_B2C = "B2C"


class BillSequenceError(Exception):
    """Raised when bill sequence operations fail."""
    pass


def format_bill_number(prefix: str, sequence_date: date, number: int, pad: int = 4) -> str:
    """<PREFIX><YYYYMMDD><zero-padded sequence>"""
    return f"{prefix}{sequence_date:%Y%m%d}{number:0{pad}d}"


def _upsert_statement(series: str, sequence_date: date):
    dialect = db.engine.dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        return None

    stmt = insert(BillSequence).values(series=series, sequence_date=sequence_date, last_number=1)
    return stmt.on_conflict_do_update(
        index_elements=["series", "sequence_date"],
        set_={
            "last_number": BillSequence.last_number + 1,
            "updated_at": db.func.now(),
        },
    )


def _increment_or_create(series: str, sequence_date: date) -> None:
    """
    Portable fallback: UPDATE first, INSERT when no row exists yet, and
    retry the UPDATE if a concurrent INSERT won the unique constraint.
    """
    stmt = (
        update(BillSequence)
        .where(
            BillSequence.series == series,
            BillSequence.sequence_date == sequence_date,
        )
        .values(last_number=BillSequence.last_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        return

    try:
        with db.session.begin_nested():
            db.session.add(BillSequence(series=series, sequence_date=sequence_date, last_number=1))
    except IntegrityError:
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise


def allocate_sequence(series: str, sequence_date: date) -> int:
    """
    Atomically increment-or-create the counter for (series, day) and return
    the new value. Runs inside the caller's transaction; the row stays
    locked until that transaction ends, which serializes concurrent callers.
    """
    if not series:
        raise BillSequenceError("series is required")
    if isinstance(sequence_date, datetime):
        sequence_date = sequence_date.date()

    stmt = _upsert_statement(series, sequence_date)
    if stmt is not None:
        db.session.execute(stmt)
    else:
        _increment_or_create(series, sequence_date)

    current = (
        db.session.query(BillSequence.last_number)
        .filter_by(series=series, sequence_date=sequence_date)
        .scalar()
    )
    if current is None:
        raise BillSequenceError(f"Bill sequence for {series} {sequence_date} could not be allocated")
    return current


def next_bill_number(
    *,
    series: str,
    prefix: str,
    sequence_date: date,
    pad: int = 4,
) -> str:
    """Allocate and format the next bill number for a series and day."""
    number = allocate_sequence(series, sequence_date)
    if isinstance(sequence_date, datetime):
        sequence_date = sequence_date.date()
    return format_bill_number(prefix, sequence_date, number, pad)


def current_sequence(series: str, sequence_date: date) -> int:
    """Last number handed out for (series, day); 0 when none yet."""
    if isinstance(sequence_date, datetime):
        sequence_date = sequence_date.date()
    value = (
        db.session.query(BillSequence.last_number)
        .filter_by(series=series, sequence_date=sequence_date)
        .scalar()
    )
    return value or 0
