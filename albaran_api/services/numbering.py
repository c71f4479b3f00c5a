"""
Delivery note numbering and totals.

Numbers look like ALB-2026-0007 and come from a per-scope, per-year counter
row that is bumped with a single UPDATE, so two concurrent creates in the same
scope cannot draw the same sequence value. The counter is also kept above
every number already visible to the caller (archived notes and notes issued
before the caller joined a company included).
"""
from datetime import datetime, timezone
from typing import Iterable, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import ServiceError
from ..models.models import DeliveryNote, DocumentCounter
from .ownership import Principal, owner_filter


logger = structlog.get_logger(__name__)

NUMBER_PREFIX = "ALB"


def format_number(year: int, sequence: int) -> str:
    return f"{NUMBER_PREFIX}-{year}-{sequence:04d}"


def parse_sequence(number: Optional[str]) -> Optional[int]:
    try:
        prefix, _year, seq = (number or "").split("-")
    except ValueError:
        return None
    if prefix != NUMBER_PREFIX or not seq.isdigit():
        return None
    return int(seq)


def compute_total(worked_hours: Optional[Iterable[dict]], materials: Optional[Iterable[dict]]) -> float:
    """Sum of hours * hourly_rate plus quantity * price, rounded to cents; a missing rate or price counts as 0."""
    total = 0.0
    for entry in worked_hours or []:
        total += float(entry.get("hours") or 0) * float(entry.get("hourly_rate") or 0)
    for material in materials or []:
        total += float(material.get("quantity") or 0) * float(material.get("price") or 0)
    return round(total, 2)


def _highest_issued(db: Session, principal: Principal, year: int) -> int:
    # Archived notes keep their numbers, so they count too
    numbers = db.execute(
        select(DeliveryNote.number).where(
            owner_filter(DeliveryNote, principal),
            DeliveryNote.number.like(f"{NUMBER_PREFIX}-{year}-%"),
        )
    ).scalars()
    return max((parse_sequence(n) or 0 for n in numbers), default=0)


def _increment(db: Session, scope_key: str, year: int) -> Optional[int]:
    result = db.execute(
        update(DocumentCounter)
        .where(DocumentCounter.scope_key == scope_key, DocumentCounter.year == year)
        .values(value=DocumentCounter.value + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return None
    return db.execute(
        select(DocumentCounter.value).where(
            DocumentCounter.scope_key == scope_key, DocumentCounter.year == year
        )
    ).scalar_one()


def _set_counter(db: Session, scope_key: str, year: int, value: int) -> None:
    db.execute(
        update(DocumentCounter)
        .where(DocumentCounter.scope_key == scope_key, DocumentCounter.year == year)
        .values(value=value)
        .execution_options(synchronize_session=False)
    )


def next_number(db: Session, principal: Principal, year: Optional[int] = None) -> str:
    """Reserve the next number for the principal's scope.

    The counter never hands out a value at or below the highest number the
    principal can already see. A user who joins a company keeps their
    personal notes visible, so the company counter is lifted past them.

    The reservation joins the caller's transaction; it is released only if
    the caller rolls back.
    """
    year = year or datetime.now(timezone.utc).year
    scope_key = principal.scope_key
    for _ in range(3):
        sequence = _increment(db, scope_key, year)
        if sequence is not None:
            # The UPDATE above holds the counter row until commit
            highest = _highest_issued(db, principal, year)
            if sequence <= highest:
                sequence = highest + 1
                _set_counter(db, scope_key, year, sequence)
                logger.info("counter_lifted", scope=scope_key, year=year, value=sequence)
            return format_number(year, sequence)
        try:
            with db.begin_nested():
                db.add(DocumentCounter(scope_key=scope_key, year=year, value=0))
        except IntegrityError:
            # Another request created the counter first; bump theirs
            logger.info("counter_seed_race", scope=scope_key, year=year)
    raise ServiceError("ERROR_GENERATING_DELIVERY_NOTE_NUMBER", 500)
