from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import Field, field_validator, model_validator

from app.common.schemas import CamelModel, Money, RequestModel
from app.modules.invoices.formatting import MAX_AMOUNT


# ===== REQUEST =====

class InvoiceItemIn(RequestModel):
    designation: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(..., ge=0, le=MAX_AMOUNT)
    unit_price: Decimal = Field(..., ge=0, le=MAX_AMOUNT)
    # Recomputed from quantity x unitPrice
    total_price: Optional[Decimal] = None

    @field_validator("designation", mode="before")
    @classmethod
    def strip_designation(cls, v):
        return v.strip() if isinstance(v, str) else v


class InvoiceWrite(RequestModel):
    """
    Body for creating or replacing an invoice.

    ``invoiceNumber``, ``totalHT`` and ``totalTTC`` are accepted from older
    clients but never trusted: the number is assigned by the server and the
    totals are recomputed from the lines.
    """
    client_id: Optional[UUID] = None
    client_name: Optional[str] = Field(None, max_length=255)
    client_number: Optional[str] = Field(None, max_length=100)
    client_address: Optional[str] = Field(None, max_length=500)
    client_mf: Optional[str] = Field(None, alias="clientMF", max_length=100)
    delivery_person: Optional[str] = Field(None, alias="livreurNom", max_length=255)
    issue_date: Optional[datetime] = Field(None, alias="date")
    items: List[InvoiceItemIn] = Field(..., min_length=1)
    total_discount: Decimal = Field(Decimal("0"), alias="totalRemise", ge=0, le=MAX_AMOUNT)

    invoice_number: Optional[str] = None
    total_ht: Optional[Decimal] = Field(None, alias="totalHT")
    total_ttc: Optional[Decimal] = Field(None, alias="totalTTC")

    @field_validator("client_name", "client_number", "client_address", "client_mf", "delivery_person", mode="before")
    @classmethod
    def strip_text(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @model_validator(mode="after")
    def check_client(self):
        if self.client_id is None and (not self.client_name or not self.client_number):
            raise ValueError("clientName and clientNumber are required")
        return self


class InvoiceCreate(InvoiceWrite):
    pass


class InvoiceUpdate(InvoiceWrite):
    pass


# ===== RESPONSE =====

class InvoiceItemOut(CamelModel):
    id: UUID
    position: int
    designation: str
    quantity: Money
    unit_price: Money
    total_price: Money


class InvoiceOut(CamelModel):
    id: UUID
    invoice_number: str
    client_id: Optional[UUID] = None
    client_name: str
    client_number: str
    client_address: Optional[str] = None
    client_mf: Optional[str] = Field(None, alias="clientMF")
    delivery_person: str = Field(..., alias="livreurNom")
    issue_date: datetime = Field(..., alias="date")
    items: List[InvoiceItemOut]
    total_ht: Money = Field(..., alias="totalHT")
    total_discount: Money = Field(..., alias="totalRemise")
    total_ttc: Money = Field(..., alias="totalTTC")
    created_at: datetime
    updated_at: datetime
