"""Invoice service - aggregates billable time entries into invoices."""
import logging
import random
import re
from collections import defaultdict
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from hourbook.clock import Clock, SystemClock
from hourbook.config import settings
from hourbook.exceptions import InvalidInputError, InvariantViolationError, NotFoundError
from hourbook.models.invoice import Invoice, InvoiceLineItem, InvoiceStatus
from hourbook.models.time_entry import BillableEntry
from hourbook.repositories.base import TimerRepository
from hourbook.services.settings_service import SettingsService

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
DEFAULT_NET_DAYS = 30


def hourly_rate_for(entry: BillableEntry) -> Decimal:
    """Project rate, else client rate, else zero."""
    rate = entry.project_hourly_rate or entry.client_hourly_rate or 0
    return Decimal(str(rate))


def entry_amount(entry: BillableEntry) -> Decimal:
    """Unrounded amount billed for one entry."""
    return Decimal(entry.duration_minutes) / Decimal(60) * hourly_rate_for(entry)


def total_amount(entries: Iterable[BillableEntry]) -> Decimal:
    """Sum of entry amounts, rounded to cents once at the total."""
    total = sum((entry_amount(entry) for entry in entries), Decimal(0))
    return total.quantize(CENTS, rounding=ROUND_HALF_UP)


def display_rate(entries: Iterable[BillableEntry]) -> Optional[Decimal]:
    """The shared hourly rate, or None when entries bill at different rates."""
    rates = {hourly_rate_for(entry) for entry in entries}
    rates.discard(Decimal(0))
    return rates.pop().quantize(CENTS) if len(rates) == 1 else None


def parse_net_days(terms: Optional[str]) -> int:
    """
    Parse payment terms into a number of days.

    Examples:
        >>> parse_net_days("Net 15")
        15
        >>> parse_net_days("Due on receipt")
        0
        >>> parse_net_days("whenever")
        30
    """
    if not terms:
        return DEFAULT_NET_DAYS
    lowered = terms.lower()
    if "receipt" in lowered:
        return 0
    match = re.search(r"net\s*(\d+)", lowered)
    return int(match.group(1)) if match else DEFAULT_NET_DAYS


def group_by_day(entries: Iterable[BillableEntry]) -> list[InvoiceLineItem]:
    """Build one line item per calendar day, oldest first."""
    days: dict[date, list[BillableEntry]] = defaultdict(list)
    for entry in entries:
        days[entry.start_time.date()].append(entry)

    line_items = []
    for day in sorted(days):
        day_entries = days[day]
        minutes = sum(entry.duration_minutes for entry in day_entries)
        descriptions = dict.fromkeys(e.description for e in day_entries if e.description)
        line_items.append(InvoiceLineItem(
            day=day,
            description="; ".join(descriptions),
            minutes=minutes,
            hours=(Decimal(minutes) / Decimal(60)).quantize(CENTS, rounding=ROUND_HALF_UP),
            amount=total_amount(day_entries),
        ))
    return line_items


class InvoiceService:
    """Service for generating and managing invoices."""

    def __init__(
        self,
        repository: TimerRepository,
        clock: Optional[Clock] = None,
        project_settings=None,
    ):
        """Initialize service with a repository and time source."""
        self.repository = repository
        self.clock = clock or SystemClock()
        self.settings = project_settings or settings
        self.preferences = SettingsService(repository, project_settings=self.settings)

    def generate_invoice_number(self) -> str:
        """Invoice number in the form INV-YYYYMMDD-NNN."""
        today = self.clock.now()
        return f"INV-{today:%Y%m%d}-{random.randint(0, 999):03d}"

    def _validate_entries(self, entry_ids: list[str], entries: list[BillableEntry]) -> str:
        """Check the selection can be billed together and return its client id."""
        found = {entry.id for entry in entries}
        missing = [entry_id for entry_id in entry_ids if entry_id not in found]
        if missing:
            raise NotFoundError(f"Time entries not found: {', '.join(missing)}")

        client_ids = sorted({entry.client_id for entry in entries}, key=str)
        if len(client_ids) > 1:
            raise InvariantViolationError(
                "Cannot create invoice for multiple clients at once: "
                + ", ".join(str(client_id) for client_id in client_ids)
            )

        client_id = client_ids[0]
        if client_id is None:
            raise InvariantViolationError("Time entries have no client assigned")

        active = [entry.id for entry in entries if entry.is_active]
        if active:
            raise InvariantViolationError(
                f"Cannot invoice running timers: {', '.join(active)}"
            )

        invoiced = [entry.id for entry in entries if entry.is_invoiced]
        if invoiced:
            raise InvariantViolationError(
                f"Time entries already invoiced: {', '.join(invoiced)}"
            )

        return client_id

    async def generate_invoice(
        self,
        entry_ids: Iterable[str],
        invoice_number: Optional[str] = None,
        status: InvoiceStatus = InvoiceStatus.GENERATED,
    ) -> Invoice:
        """
        Create an invoice from a selection of time entries.

        All entries must exist, be stopped, not yet invoiced and belong
        to one client. The invoice is written first and the entries are
        then marked; if marking fails the invoice is rolled back.

        Args:
            entry_ids: IDs of the entries to bill
            invoice_number: Optional invoice number (generated if missing)
            status: Initial invoice status

        Returns:
            Created invoice

        Raises:
            InvalidInputError: If no entries were selected
            NotFoundError: If any entry does not exist
            InvariantViolationError: If entries span clients or cannot be billed
        """
        entry_ids = list(dict.fromkeys(entry_ids))
        if not entry_ids:
            raise InvalidInputError("No time entries selected for invoice generation")

        entries = await self.repository.find_entries_by_ids(entry_ids)
        client_id = self._validate_entries(entry_ids, entries)

        invoice_date = self.clock.now().date()
        terms = await self.preferences.invoice_terms()
        start_dates = [entry.start_time.date() for entry in entries]
        line_items = group_by_day(entries)

        invoice = await self.repository.create_invoice({
            "invoice_number": invoice_number or self.generate_invoice_number(),
            "client_id": client_id,
            "total_amount": total_amount(entries),
            "total_minutes": sum(entry.duration_minutes for entry in entries),
            "hourly_rate": display_rate(entries),
            "status": status.value,
            "period_start": min(start_dates),
            "period_end": max(start_dates),
            "due_date": invoice_date + timedelta(days=parse_net_days(terms)),
            "line_items": [item.model_dump() for item in line_items],
        })

        try:
            await self.repository.mark_entries_invoiced(entry_ids, invoice.id)
        except Exception:
            logger.error("Marking entries for invoice %s failed, rolling back", invoice.id)
            await self._rollback(invoice.id)
            raise

        logger.info(
            "Generated invoice %s for client %s: %s entries, total %s",
            invoice.invoice_number, client_id, len(entries), invoice.total_amount,
        )
        return invoice

    async def _rollback(self, invoice_id: str) -> None:
        try:
            await self.repository.clear_invoice_marking(invoice_id)
            await self.repository.delete_invoice(invoice_id)
        except Exception:
            logger.exception("Rollback of invoice %s failed", invoice_id)

    async def generate_invoice_for_period(
        self,
        client_id: str,
        start_date: date,
        end_date: date,
        invoice_number: Optional[str] = None,
        status: InvoiceStatus = InvoiceStatus.GENERATED,
    ) -> Invoice:
        """
        Invoice every uninvoiced, stopped entry of a client in a date range.

        Both dates are inclusive and compared against the entries' start times.

        Raises:
            InvalidInputError: If end_date is before start_date
            NotFoundError: If no uninvoiced entries match
        """
        if end_date < start_date:
            raise InvalidInputError("end_date must not be before start_date")

        entries = await self.repository.list_entries(
            client_id=client_id,
            start_date=datetime.combine(start_date, time.min),
            end_date=datetime.combine(end_date, time.max),
            is_invoiced=False,
        )
        entry_ids = [entry.id for entry in entries if not entry.is_active]
        if not entry_ids:
            raise NotFoundError(
                f"No uninvoiced time entries found for client {client_id} "
                f"between {start_date} and {end_date}"
            )

        return await self.generate_invoice(entry_ids, invoice_number=invoice_number, status=status)

    async def get_invoice(self, invoice_id: str) -> Invoice:
        """
        Get an invoice by ID.

        Raises:
            NotFoundError: If invoice not found
        """
        invoice = await self.repository.find_invoice_by_id(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice not found: {invoice_id}")
        return invoice

    async def list_invoices(self) -> list[Invoice]:
        """List invoices, newest first."""
        return await self.repository.list_invoices()

    async def update_invoice_status(self, invoice_id: str, status: InvoiceStatus) -> Invoice:
        """
        Move an invoice to another status.

        Raises:
            NotFoundError: If invoice not found
        """
        invoice = await self.repository.update_invoice(invoice_id, {"status": status.value})
        if invoice is None:
            raise NotFoundError(f"Invoice not found: {invoice_id}")
        return invoice

    async def delete_invoice(self, invoice_id: str) -> dict:
        """
        Delete an invoice and release its time entries.

        The entries are kept; only their invoiced marking is cleared.

        Returns:
            Dictionary with deleted_count

        Raises:
            NotFoundError: If invoice not found
        """
        await self.get_invoice(invoice_id)

        # Entries stay marked if the invoice itself cannot be deleted
        deleted = await self.repository.delete_invoice(invoice_id)
        await self.repository.clear_invoice_marking(invoice_id)
        logger.info("Deleted invoice %s and released its time entries", invoice_id)

        return {"deleted_count": 1 if deleted else 0}
