from sqlalchemy import (
    Column, String, Integer, DateTime, ForeignKey, Numeric, Uuid, UniqueConstraint
)
from sqlalchemy.orm import relationship
from decimal import Decimal
from uuid import uuid4

from app.database.database import Base
from app.common.mixins import TimestampMixin, utcnow


class Invoice(Base, TimestampMixin):
    """
    Factura con copia de los datos del cliente.

    Los datos del cliente se copian al crear la factura; cambios posteriores
    en el cliente no modifican facturas ya emitidas.
    """
    __tablename__ = "invoices"

    id = Column(Uuid, primary_key=True, default=uuid4)
    invoice_number = Column(String(50), nullable=False)
    client_id = Column(Uuid, ForeignKey("clients.id", ondelete="SET NULL"), nullable=True)

    client_name = Column(String(255), nullable=False)
    client_number = Column(String(100), nullable=False)
    client_address = Column(String(500), nullable=True)
    client_mf = Column(String(100), nullable=True)

    delivery_person = Column(String(255), nullable=False)
    issue_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    total_ht = Column(Numeric(15, 3), nullable=False, default=Decimal("0"))
    total_discount = Column(Numeric(15, 3), nullable=False, default=Decimal("0"))
    total_ttc = Column(Numeric(15, 3), nullable=False, default=Decimal("0"))

    items = relationship(
        "InvoiceLineItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLineItem.position",
    )

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
    )


class InvoiceLineItem(Base):
    __tablename__ = "invoice_line_items"

    id = Column(Uuid, primary_key=True, default=uuid4)
    invoice_id = Column(Uuid, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)
    designation = Column(String(500), nullable=False)
    quantity = Column(Numeric(15, 3), nullable=False)
    unit_price = Column(Numeric(15, 3), nullable=False)
    total_price = Column(Numeric(15, 3), nullable=False)

    invoice = relationship("Invoice", back_populates="items")


class InvoiceSequence(Base):
    """Contador de numeración de facturas por prefijo."""
    __tablename__ = "invoice_sequences"

    prefix = Column(String(10), primary_key=True)
    current_number = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
