"""
Invoice number allocation.

Numbers are the configured prefix followed by a zero padded ordinal
("BCC001", "BCC042", "BCC1000"). The ``invoice_sequences`` row for the prefix
holds the last ordinal handed out and is bumped with a single atomic UPDATE,
so concurrent transactions queue on its row lock instead of reading the same
"latest" invoice. The unique constraint on ``invoices.invoice_number`` stays
the final guard; the service retries on conflict after ``resync()``.
"""
import logging
import re
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import InvoiceNumberFormatError
from app.common.mixins import utcnow
from app.modules.invoices.models import Invoice, InvoiceSequence

logger = logging.getLogger(__name__)


def format_invoice_number(ordinal: int, prefix: str = None, min_digits: int = None) -> str:
    prefix = settings.INVOICE_NUMBER_PREFIX if prefix is None else prefix
    min_digits = settings.INVOICE_NUMBER_MIN_DIGITS if min_digits is None else min_digits
    if ordinal < 1:
        raise ValueError("Invoice ordinals start at 1")
    return f"{prefix}{ordinal:0{min_digits}d}"


def parse_invoice_ordinal(number: str, prefix: str = None) -> int:
    """Ordinal part of ``number``; it must be the prefix followed by digits only."""
    prefix = settings.INVOICE_NUMBER_PREFIX if prefix is None else prefix
    match = re.fullmatch(re.escape(prefix) + r"(\d+)", number or "")
    if not match:
        raise InvoiceNumberFormatError(f"Unrecognized invoice number format: {number!r}")
    return int(match.group(1))


class InvoiceNumberAllocator:
    def __init__(self, db: Session, prefix: str = None, min_digits: int = None):
        self.db = db
        self.prefix = settings.INVOICE_NUMBER_PREFIX if prefix is None else prefix
        self.min_digits = settings.INVOICE_NUMBER_MIN_DIGITS if min_digits is None else min_digits

    def latest_ordinal(self) -> int:
        """Ordinal of the most recently created invoice, 0 when there is none."""
        latest = (
            self.db.query(Invoice.invoice_number)
            .order_by(Invoice.created_at.desc())
            .first()
        )
        if latest is None:
            return 0
        return parse_invoice_ordinal(latest.invoice_number, self.prefix)

    def highest_ordinal(self) -> int:
        """Highest ordinal used by a stored invoice with this prefix."""
        highest = (
            self.db.query(Invoice.invoice_number)
            .filter(Invoice.invoice_number.like(f"{self.prefix}%"))
            .order_by(func.length(Invoice.invoice_number).desc(), Invoice.invoice_number.desc())
            .first()
        )
        if highest is None:
            return 0
        return parse_invoice_ordinal(highest.invoice_number, self.prefix)

    def _increment(self) -> Optional[int]:
        stmt = (
            update(InvoiceSequence)
            .where(InvoiceSequence.prefix == self.prefix)
            .values(current_number=InvoiceSequence.current_number + 1, updated_at=utcnow())
            .returning(InvoiceSequence.current_number)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def _seed(self, current_number: int) -> None:
        self.db.add(InvoiceSequence(prefix=self.prefix, current_number=current_number))
        # Two first-time seeders collide here on the primary key
        self.db.flush()

    def next_number(self) -> str:
        """
        Reserve the next number inside the caller's transaction.

        The reservation is only final once the caller commits; a rollback
        gives the ordinal back.
        """
        ordinal = self._increment()
        if ordinal is None:
            ordinal = self.latest_ordinal() + 1
            logger.info(f"Seeding invoice sequence {self.prefix} at {ordinal}")
            self._seed(ordinal)
        return format_invoice_number(ordinal, self.prefix, self.min_digits)

    def resync(self) -> int:
        """Move the counter up to the highest number already stored."""
        highest = self.highest_ordinal()
        sequence = (
            self.db.query(InvoiceSequence)
            .filter(InvoiceSequence.prefix == self.prefix)
            .with_for_update()
            .first()
        )
        if sequence is None:
            self._seed(highest)
            current = highest
        else:
            if sequence.current_number < highest:
                sequence.current_number = highest
                self.db.flush()
            current = sequence.current_number
        logger.info(f"Invoice sequence {self.prefix} resynced to {current}")
        return current
