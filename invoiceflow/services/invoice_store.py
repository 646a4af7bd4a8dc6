# invoiceflow/services/invoice_store.py
from pathlib import Path
from typing import List, Optional
import logging
import os
import re

from pydantic import ValidationError

from invoiceflow.models.invoice import INVOICE_NUMBER_PATTERN, StoredInvoice
from invoiceflow.services.errors import DuplicateInvoiceNumber, InvoiceNotFound

logger = logging.getLogger(__name__)


class InvoiceStore:
    """One JSON file per invoice, named after its invoice number."""

    def __init__(self, directory):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, invoice_number: str) -> Path:
        if not re.match(INVOICE_NUMBER_PATTERN, invoice_number):
            raise InvoiceNotFound(invoice_number)
        return self.directory / f"{invoice_number}.json"

    def create(self, invoice: StoredInvoice) -> StoredInvoice:
        path = self._path(invoice.invoice_number)
        content = invoice.model_dump_json(indent=2)
        try:
            # "x" fails if another writer already committed this number
            with open(path, "x", encoding="utf-8") as f:
                f.write(content)
        except FileExistsError:
            raise DuplicateInvoiceNumber(invoice.invoice_number)
        logger.info(f"Invoice saved: {path}")
        return invoice

    def update(self, invoice: StoredInvoice) -> StoredInvoice:
        path = self._path(invoice.invoice_number)
        if not path.exists():
            raise InvoiceNotFound(invoice.invoice_number)
        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(invoice.model_dump_json(indent=2))
        os.replace(tmp_path, path)
        logger.info(f"Invoice updated: {path}")
        return invoice

    def get(self, invoice_number: str) -> StoredInvoice:
        path = self._path(invoice_number)
        if not path.exists():
            raise InvoiceNotFound(invoice_number)
        return StoredInvoice.model_validate_json(path.read_text(encoding="utf-8"))

    def list(self, invoice_type: Optional[str] = None,
             payment_status: Optional[str] = None) -> List[StoredInvoice]:
        invoices = []
        for path in self.directory.glob("*.json"):
            try:
                invoice = StoredInvoice.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, ValidationError) as e:
                logger.error(f"Skipping unreadable invoice {path.name}: {e}")
                continue
            if invoice_type and invoice.invoice_type != invoice_type:
                continue
            if payment_status and invoice.payment_status != payment_status:
                continue
            invoices.append(invoice)
        invoices.sort(key=lambda inv: (inv.invoice_date, inv.invoice_number), reverse=True)
        return invoices

    def delete(self, invoice_number: str) -> None:
        try:
            self._path(invoice_number).unlink()
        except FileNotFoundError:
            raise InvoiceNotFound(invoice_number)
        logger.info(f"Invoice deleted: {invoice_number}")
