from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status

from app.core.config import settings
from app.core.exceptions import RenderError
from app.common.schemas import MessageResponse
from app.dependencies.dbDependecies import db_dependency
from app.dependencies.userDependencies import invoice_manager_dependency, invoice_renderer_dependency
from app.modules.invoices.rendering import InvoiceRenderer
from app.modules.invoices.schemas import InvoiceCreate, InvoiceUpdate, InvoiceOut
from app.modules.invoices.service import InvoiceService

invoices_router = APIRouter()


def get_renderer(request: Request) -> InvoiceRenderer:
    renderer = getattr(request.app.state, "renderer", None)
    if renderer is None:
        raise RenderError()
    return renderer


@invoices_router.get("/", response_model=List[InvoiceOut])
def list_invoices(
    db: db_dependency,
    current_user: invoice_manager_dependency,
    search: Optional[str] = Query(None, description="Search by invoice number, client name or client number"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
):
    """
    Listar facturas, más recientes primero.
    """
    return InvoiceService(db).list_invoices(search=search, limit=limit, offset=offset)


@invoices_router.post("/", response_model=InvoiceOut, status_code=status.HTTP_201_CREATED)
def create_invoice(invoice_data: InvoiceCreate, db: db_dependency, current_user: invoice_manager_dependency):
    """
    Crear factura. El número lo asigna el servidor; un invoiceNumber enviado se ignora.
    """
    return InvoiceService(db).create_invoice(invoice_data)


@invoices_router.get("/{invoice_id}", response_model=InvoiceOut)
def get_invoice(invoice_id: UUID, db: db_dependency, current_user: invoice_manager_dependency):
    return InvoiceService(db).get_invoice(invoice_id)


@invoices_router.put("/{invoice_id}", response_model=InvoiceOut)
def update_invoice(
    invoice_id: UUID,
    invoice_data: InvoiceUpdate,
    db: db_dependency,
    current_user: invoice_manager_dependency,
):
    return InvoiceService(db).update_invoice(invoice_id, invoice_data)


@invoices_router.delete("/{invoice_id}", response_model=MessageResponse)
def delete_invoice(invoice_id: UUID, db: db_dependency, current_user: invoice_manager_dependency):
    InvoiceService(db).delete_invoice(invoice_id)
    return MessageResponse(message="Invoice deleted successfully")


@invoices_router.get("/{invoice_id}/pdf")
def download_invoice_pdf(
    invoice_id: UUID,
    db: db_dependency,
    current_user: invoice_renderer_dependency,
    renderer: InvoiceRenderer = Depends(get_renderer),
):
    """
    Descargar la factura en PDF.
    """
    invoice = InvoiceService(db).get_invoice(invoice_id)
    rendered = renderer.render(invoice, printed_by=current_user.username)
    return Response(
        content=rendered.content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{rendered.filename}"'},
    )
