"""Invoice router - API endpoints for invoice generation."""
from fastapi import APIRouter, Depends, status

from hourbook.database import get_repository
from hourbook.exceptions import HourbookError
from hourbook.models.invoice import (
    Invoice,
    InvoiceGenerate,
    InvoicePeriodGenerate,
    InvoiceStatusUpdate,
)
from hourbook.routers.errors import http_error
from hourbook.services.invoice_service import InvoiceService


router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post("", response_model=Invoice, status_code=status.HTTP_201_CREATED)
async def generate_invoice(
    request: InvoiceGenerate,
    repository=Depends(get_repository),
):
    """
    Generate an invoice from selected time entries.

    Args:
        request: Entry IDs plus optional invoice number and status
        repository: Storage backend

    Returns:
        Created invoice

    Raises:
        HTTPException: Empty selection (400), unknown entries (404),
            entries from multiple clients or already invoiced (409)
    """
    service = InvoiceService(repository)

    try:
        return await service.generate_invoice(
            entry_ids=request.entry_ids,
            invoice_number=request.invoice_number,
            status=request.status,
        )
    except HourbookError as e:
        raise http_error(e)


@router.post("/period", response_model=Invoice, status_code=status.HTTP_201_CREATED)
async def generate_invoice_for_period(
    request: InvoicePeriodGenerate,
    repository=Depends(get_repository),
):
    """
    Invoice every uninvoiced time entry of a client within a date range.

    Raises:
        HTTPException: No matching entries (404), end before start (400)
    """
    service = InvoiceService(repository)

    try:
        return await service.generate_invoice_for_period(
            client_id=request.client_id,
            start_date=request.start_date,
            end_date=request.end_date,
            invoice_number=request.invoice_number,
            status=request.status,
        )
    except HourbookError as e:
        raise http_error(e)


@router.get("", response_model=list[Invoice])
async def list_invoices(repository=Depends(get_repository)):
    """List invoices, newest first."""
    service = InvoiceService(repository)
    return await service.list_invoices()


@router.get("/{invoice_id}", response_model=Invoice)
async def get_invoice(invoice_id: str, repository=Depends(get_repository)):
    """Get an invoice by ID."""
    service = InvoiceService(repository)

    try:
        return await service.get_invoice(invoice_id)
    except HourbookError as e:
        raise http_error(e)


@router.patch("/{invoice_id}/status", response_model=Invoice)
async def update_invoice_status(
    invoice_id: str,
    status_update: InvoiceStatusUpdate,
    repository=Depends(get_repository),
):
    """Move an invoice to another status (e.g. sent, paid)."""
    service = InvoiceService(repository)

    try:
        return await service.update_invoice_status(invoice_id, status_update.status)
    except HourbookError as e:
        raise http_error(e)


@router.delete("/{invoice_id}")
async def delete_invoice(invoice_id: str, repository=Depends(get_repository)):
    """
    Delete an invoice.

    The time entries are kept and become billable again.
    """
    service = InvoiceService(repository)

    try:
        return await service.delete_invoice(invoice_id)
    except HourbookError as e:
        raise http_error(e)
