# invoiceflow/services/errors.py


class InvalidInput(ValueError):
    """A line item carries a negative, NaN or non-numeric quantity, price or rate."""


class MalformedPrefix(ValueError):
    """The invoice prefix does not reduce to three letters and no usable default exists."""


class DuplicateInvoiceNumber(Exception):
    def __init__(self, invoice_number: str):
        super().__init__(f"Invoice number {invoice_number} already exists")
        self.invoice_number = invoice_number


class InvoiceNotFound(Exception):
    def __init__(self, invoice_number: str):
        super().__init__(f"Invoice {invoice_number} not found")
        self.invoice_number = invoice_number
