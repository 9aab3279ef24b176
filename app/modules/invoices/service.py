"""
Servicio de facturas.

Único punto de escritura de facturas: asigna el número, copia los datos del
cliente y recalcula los totales a partir de las líneas.
"""
import logging
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.core.config import settings
from app.core.exceptions import InvoiceNumberConflictError, NotFoundError, ValidationError
from app.common.mixins import utcnow
from app.modules.clients.service import ClientService
from app.modules.invoices.formatting import MAX_AMOUNT, round_amount
from app.modules.invoices.models import Invoice, InvoiceLineItem
from app.modules.invoices.numbering import InvoiceNumberAllocator
from app.modules.invoices.schemas import InvoiceCreate, InvoiceUpdate, InvoiceWrite

logger = logging.getLogger(__name__)


def is_number_conflict(error: IntegrityError) -> bool:
    """True when the integrity error comes from invoice number allocation."""
    message = str(error.orig)
    return "invoice_number" in message or "invoice_sequences" in message


def compute_totals(data: InvoiceWrite):
    """
    Line totals and invoice totals, rounded to millimes.

    Returns (lines, total_ht, total_discount, total_ttc) where lines is a list
    of (designation, quantity, unit_price, total_price).
    """
    lines = []
    for item in data.items:
        total_price = round_amount(item.quantity * item.unit_price)
        if total_price > MAX_AMOUNT:
            raise ValidationError(f"Line total for '{item.designation}' exceeds the supported maximum")
        lines.append((item.designation, item.quantity, item.unit_price, total_price))

    total_ht = sum((line[3] for line in lines), Decimal("0"))
    if total_ht > MAX_AMOUNT:
        raise ValidationError("Invoice total exceeds the supported maximum")
    total_ht = round_amount(total_ht)
    total_discount = round_amount(data.total_discount)
    if total_discount > total_ht:
        raise ValidationError("Total discount cannot exceed the invoice total")

    return lines, total_ht, total_discount, total_ht - total_discount


class InvoiceService:
    def __init__(self, db: Session):
        self.db = db

    def _client_snapshot(self, data: InvoiceWrite) -> dict:
        if data.client_id is not None:
            client = ClientService(self.db).get_client(data.client_id)
            return {
                "client_id": client.id,
                "client_name": client.name,
                "client_number": client.client_number,
                "client_address": client.address,
                "client_mf": client.mf,
            }
        return {
            "client_id": None,
            "client_name": data.client_name,
            "client_number": data.client_number,
            "client_address": data.client_address,
            "client_mf": data.client_mf,
        }

    @staticmethod
    def _build_items(lines) -> List[InvoiceLineItem]:
        return [
            InvoiceLineItem(
                position=position,
                designation=designation,
                quantity=quantity,
                unit_price=unit_price,
                total_price=total_price,
            )
            for position, (designation, quantity, unit_price, total_price) in enumerate(lines)
        ]

    def list_invoices(self, search: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[Invoice]:
        query = self.db.query(Invoice).options(selectinload(Invoice.items))
        if search:
            search_term = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    Invoice.invoice_number.ilike(search_term),
                    Invoice.client_name.ilike(search_term),
                    Invoice.client_number.ilike(search_term),
                )
            )
        return query.order_by(Invoice.created_at.desc()).offset(offset).limit(limit).all()

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = (
            self.db.query(Invoice)
            .options(selectinload(Invoice.items))
            .filter(Invoice.id == invoice_id)
            .first()
        )
        if not invoice:
            raise NotFoundError("Invoice not found")
        return invoice

    def create_invoice(self, invoice_data: InvoiceCreate) -> Invoice:
        """
        Crear factura con número asignado por el servidor.

        A number collision rolls the transaction back, resyncs the counter and
        tries again, at most ``INVOICE_NUMBER_MAX_RETRIES`` times.
        """
        snapshot = self._client_snapshot(invoice_data)
        lines, total_ht, total_discount, total_ttc = compute_totals(invoice_data)
        allocator = InvoiceNumberAllocator(self.db)
        max_attempts = settings.INVOICE_NUMBER_MAX_RETRIES

        for attempt in range(1, max_attempts + 1):
            try:
                if attempt > 1:
                    allocator.resync()
                number = allocator.next_number()
                invoice = Invoice(
                    invoice_number=number,
                    delivery_person=invoice_data.delivery_person or settings.DEFAULT_DELIVERY_PERSON,
                    issue_date=invoice_data.issue_date or utcnow(),
                    total_ht=total_ht,
                    total_discount=total_discount,
                    total_ttc=total_ttc,
                    items=self._build_items(lines),
                    **snapshot,
                )
                self.db.add(invoice)
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                if not is_number_conflict(e):
                    raise
                logger.warning(f"Invoice number conflict on attempt {attempt}/{max_attempts}: {e.orig}")
                continue

            self.db.refresh(invoice)
            logger.info(f"Invoice {invoice.invoice_number} created for client {invoice.client_number}")
            return invoice

        logger.error(f"Giving up on invoice number allocation after {max_attempts} attempts")
        raise InvoiceNumberConflictError()

    def update_invoice(self, invoice_id: UUID, invoice_data: InvoiceUpdate) -> Invoice:
        """Replace the invoice content. The number never changes."""
        invoice = self.get_invoice(invoice_id)
        snapshot = self._client_snapshot(invoice_data)
        lines, total_ht, total_discount, total_ttc = compute_totals(invoice_data)

        for field, value in snapshot.items():
            setattr(invoice, field, value)
        invoice.delivery_person = invoice_data.delivery_person or settings.DEFAULT_DELIVERY_PERSON
        if invoice_data.issue_date is not None:
            invoice.issue_date = invoice_data.issue_date
        invoice.total_ht = total_ht
        invoice.total_discount = total_discount
        invoice.total_ttc = total_ttc
        invoice.items = self._build_items(lines)

        self.db.commit()
        self.db.refresh(invoice)
        logger.info(f"Invoice {invoice.invoice_number} updated")
        return invoice

    def delete_invoice(self, invoice_id: UUID) -> None:
        invoice = self.get_invoice(invoice_id)
        invoice_number = invoice.invoice_number
        self.db.delete(invoice)
        self.db.commit()
        logger.info(f"Invoice {invoice_number} deleted")
