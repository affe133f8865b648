"""Year-scoped human readable numbers: ORD-2025-000001, INV-2025-000001.

Two strategies:

* ``counter`` keeps one row per ``<prefix>-<year>`` in ``sequence_counter`` and advances
  it with a single ``UPDATE ... SET value = value + 1``. A missing row is seeded from the
  greatest existing number and never trails it, so switching strategies or a number
  written from outside never causes a reuse.
* ``scan`` reads the greatest existing number for the prefix and adds one. Two requests
  can compute the same value; the unique index on the number column rejects the loser.

Either way a lost race surfaces as ``IntegrityError`` / ``SequenceCollisionError`` and
``with_sequence_retry`` re-runs the whole unit of work with a fresh value.
"""
import logging
from typing import Callable, TypeVar

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cloudkitchen.config import settings
from cloudkitchen.errors import ConflictError, SequenceCollisionError
from cloudkitchen.models.core import Order, SequenceCounter

logger = logging.getLogger(__name__)

ORDER_PREFIX = "ORD"
INVOICE_PREFIX = "INV"
SEQ_WIDTH = 6

T = TypeVar("T")


def format_number(prefix: str, year: int, seq: int) -> str:
    return f"{prefix}-{year}-{seq:0{SEQ_WIDTH}d}"


def parse_sequence(number: str | None) -> int | None:
    if not number:
        return None
    parts = number.split("-")
    if len(parts) != 3 or not parts[2].isdigit():
        return None
    return int(parts[2])


class SequenceAllocator:
    def __init__(self, db: Session, strategy: str | None = None):
        self.db = db
        self.strategy = strategy or settings.SEQUENCE_STRATEGY
        if self.strategy not in ("counter", "scan"):
            raise ValueError(f"unknown sequence strategy: {self.strategy}")

    def next_order_number(self, year: int) -> str:
        return self._next(ORDER_PREFIX, Order.order_number, year)

    def next_invoice_number(self, year: int) -> str:
        return self._next(INVOICE_PREFIX, Order.invoice_number, year)

    # --- internals ---------------------------------------------------------

    def _next(self, prefix: str, column, year: int) -> str:
        if self.strategy == "counter":
            seq = self._bump_counter(f"{prefix}-{year}", lambda: self._greatest(prefix, column, year))
        else:
            seq = self._greatest(prefix, column, year) + 1
        return format_number(prefix, year, seq)

    def _greatest(self, prefix: str, column, year: int) -> int:
        # longest first so a 7-digit overflow still sorts after 999999
        top = (
            self.db.query(column)
            .filter(column.like(f"{prefix}-{year}-%"))
            .order_by(func.length(column).desc(), column.desc())
            .limit(1)
            .scalar()
        )
        return parse_sequence(top) or 0

    def _bump_counter(self, key: str, seed: Callable[[], int]) -> int:
        res = self.db.execute(
            update(SequenceCounter)
            .where(SequenceCounter.key == key)
            .values(value=SequenceCounter.value + 1)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount:
            value = self.db.query(SequenceCounter.value).filter(SequenceCounter.key == key).scalar()
            # numbers written under "scan" or from outside can overtake the counter
            floor = seed() + 1
            if value < floor:
                self.db.execute(
                    update(SequenceCounter)
                    .where(SequenceCounter.key == key)
                    .values(value=floor)
                    .execution_options(synchronize_session=False)
                )
                value = floor
            return value

        # first allocation of the year; a concurrent seeder makes this flush fail
        start = seed() + 1
        self.db.add(SequenceCounter(key=key, value=start))
        try:
            self.db.flush()
        except IntegrityError as exc:
            raise SequenceCollisionError(f"sequence {key} seeded concurrently") from exc
        return start


def with_sequence_retry(db: Session, work: Callable[[], T], attempts: int | None = None) -> T:
    """Run ``work`` (which must allocate, write and commit) until it survives the unique index."""
    max_attempts = attempts or settings.SEQUENCE_MAX_ATTEMPTS
    tries = 0
    while tries < max_attempts:
        try:
            return work()
        except (IntegrityError, SequenceCollisionError) as exc:
            db.rollback()
            tries += 1
            logger.warning("sequence collision (attempt %d/%d): %s", tries, max_attempts, exc)
    raise ConflictError("Could not allocate a unique sequence number")
