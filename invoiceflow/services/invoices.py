# invoiceflow/services/invoices.py
from datetime import datetime, timezone
from typing import Optional

from invoiceflow.models.invoice import InvoiceData, StoredInvoice
from invoiceflow.services.tax_calculator import compute_invoice_totals


def build_stored_invoice(data: InvoiceData, invoice_number: str,
                         created_at: Optional[datetime] = None) -> StoredInvoice:
    """
    Freezes the totals of an invoice: amount is the final (possibly rounded)
    total and round_off_applied records the rounding choice for later views.
    """
    totals = compute_invoice_totals(data.items, apply_rounding=data.round_off)
    now = datetime.now(timezone.utc)
    fields = data.model_dump(exclude={"invoice_number"})
    return StoredInvoice(
        **fields,
        invoice_number=invoice_number,
        amount=totals.final_total,
        round_off_applied=data.round_off,
        totals=totals,
        created_at=created_at or now,
        updated_at=now,
    )
