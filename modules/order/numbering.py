"""
Order Module - Numbering
==========================
Issues ORD-{year}-{sequence:05d} order numbers from the order_sequences table.

The counter row is bumped with a single UPDATE ... SET last_value = last_value + 1,
which row-locks it until the surrounding transaction ends, so concurrent
checkouts serialize on the row and each reads back its own value. The first
number of a year inserts the row (starting at 1, whatever earlier years did).
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from common.helpers import now_utc
from modules.order.models import OrderSequence

logger = logging.getLogger("storefront.numbering")

ORDER_NUMBER_PREFIX = "ORD"


def format_order_number(year: int, sequence: int) -> str:
    return f"{ORDER_NUMBER_PREFIX}-{year}-{sequence:05d}"


class OrderNumberingService:

    def next_order_number(self, db: Session, at: Optional[datetime] = None) -> str:
        """Allocate the next order number for the calendar year of `at` (default: now)."""
        year = (at or now_utc()).year
        return format_order_number(year, self.next_sequence(db, year))

    def next_sequence(self, db: Session, year: int) -> int:
        value = self._increment(db, year)
        if value is not None:
            return value

        # First number of the year: create the counter row.
        try:
            with db.begin_nested():
                db.add(OrderSequence(year=year, last_value=1))
            logger.info(f"Started order sequence for {year}")
            return 1
        except IntegrityError:
            # Another transaction created it first; its row is now visible.
            value = self._increment(db, year)
            if value is None:
                raise
            return value

    def _increment(self, db: Session, year: int) -> Optional[int]:
        updated = (
            db.query(OrderSequence)
            .filter(OrderSequence.year == year)
            .update({OrderSequence.last_value: OrderSequence.last_value + 1}, synchronize_session=False)
        )
        if updated != 1:
            return None
        return (
            db.query(OrderSequence.last_value)
            .filter(OrderSequence.year == year)
            .scalar()
        )


# Singleton
numbering_service = OrderNumberingService()
