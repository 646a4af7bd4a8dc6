# invoiceflow/services/invoice_number.py
from datetime import date
from typing import Tuple
import logging
import re

from invoiceflow.models.invoice import DEFAULT_INVOICE_PREFIX, InvoiceNumberCounterState
from invoiceflow.services.errors import MalformedPrefix

logger = logging.getLogger(__name__)

PREFIX_LENGTH = 3
SEQUENCE_WIDTH = 4
_NON_LETTERS = re.compile(r"[^A-Z]")


def normalize_prefix(raw, default=DEFAULT_INVOICE_PREFIX) -> str:
    """
    Uppercases the prefix, drops anything but A-Z and keeps the first 3 letters.
    An empty result falls back to the default; a 1 or 2 letter result is rejected.
    """
    prefix = _NON_LETTERS.sub("", (raw or "").upper())[:PREFIX_LENGTH]
    if not prefix:
        if default is None:
            raise MalformedPrefix(f"Invoice prefix {raw!r} contains no letters and no default is set")
        fallback = _NON_LETTERS.sub("", default.upper())[:PREFIX_LENGTH]
        if len(fallback) != PREFIX_LENGTH:
            raise MalformedPrefix(f"Default invoice prefix {default!r} is not 3 letters")
        if raw:
            logger.warning("Invoice prefix has no letters, using default",
                           extra={"extra": {"prefix": raw, "default": fallback}})
        return fallback
    if len(prefix) != PREFIX_LENGTH:
        raise MalformedPrefix(f"Invoice prefix {raw!r} must contain 3 letters")
    return prefix


def date_key(invoice_date: date) -> str:
    return invoice_date.strftime("%d%m%Y")


def generate_invoice_number(invoice_date: date, counter_state: InvoiceNumberCounterState,
                            increment: bool) -> Tuple[str, InvoiceNumberCounterState]:
    """
    Returns the next number for invoice_date, e.g. INV010520240001, and the
    counter state to persist.

    A preview (increment=False) hands back counter_state itself, unchanged, so
    the number shown while an invoice is being edited is not consumed.
    """
    prefix = normalize_prefix(counter_state.prefix)
    key = date_key(invoice_date)
    next_counter = counter_state.daily_counters.get(key, 0) + 1

    new_state = counter_state
    if increment:
        counters = dict(counter_state.daily_counters)
        counters[key] = next_counter
        new_state = InvoiceNumberCounterState(prefix=prefix, daily_counters=counters)

    return f"{prefix}{key}{next_counter:0{SEQUENCE_WIDTH}d}", new_state
