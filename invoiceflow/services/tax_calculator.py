# invoiceflow/services/tax_calculator.py
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List, Sequence, Tuple
import logging

from invoiceflow.models.invoice import InvoiceLineItem, InvoiceTotals
from invoiceflow.services.errors import InvalidInput

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

IGST_SLABS = {Decimal(r) for r in ("0", "0.25", "3", "5", "12", "18", "28")}
HALF_SLABS = {rate / 2 for rate in IGST_SLABS}


def money(value, decimals=2) -> Decimal:
    """Display rounding only; totals are never rounded per item."""
    q = Decimal("0." + "0" * decimals) if decimals else Decimal("1")
    return Decimal(value).quantize(q, rounding=ROUND_HALF_UP)


def _as_decimal(value, field: str, index: int) -> Decimal:
    if isinstance(value, bool):
        raise InvalidInput(f"Item {index + 1}: {field} must be a number, got {value!r}")
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidInput(f"Item {index + 1}: {field} must be a number, got {value!r}")
    if not number.is_finite():
        raise InvalidInput(f"Item {index + 1}: {field} must be finite, got {value!r}")
    if number < 0:
        raise InvalidInput(f"Item {index + 1}: {field} must not be negative, got {value!r}")
    return number


def compute_invoice_totals(items: Sequence[InvoiceLineItem], apply_rounding: bool) -> InvoiceTotals:
    """
    Sums line amounts and the IGST/CGST/SGST of every flag set on each line.

    The flags are not checked for exclusivity here: a line applying IGST and
    CGST+SGST is taxed under both (see check_tax_schemes for the warning).
    With apply_rounding the payable amount is rounded to the nearest rupee and
    the signed difference is returned as round_off.
    """
    subtotal = igst = cgst = sgst = ZERO

    for index, item in enumerate(items):
        quantity = _as_decimal(item.quantity, "quantity", index)
        unit_price = _as_decimal(item.unit_price, "unit_price", index)
        item_amount = quantity * unit_price
        subtotal += item_amount
        if item.apply_igst:
            igst += item_amount * _as_decimal(item.igst_rate, "igst_rate", index) / HUNDRED
        if item.apply_cgst:
            cgst += item_amount * _as_decimal(item.cgst_rate, "cgst_rate", index) / HUNDRED
        if item.apply_sgst:
            sgst += item_amount * _as_decimal(item.sgst_rate, "sgst_rate", index) / HUNDRED

    total_tax = igst + cgst + sgst
    total = subtotal + total_tax

    if apply_rounding:
        final_total = total.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        round_off = final_total - total
    else:
        final_total = total
        round_off = ZERO

    return InvoiceTotals(
        subtotal=subtotal,
        igst_amount=igst,
        cgst_amount=cgst,
        sgst_amount=sgst,
        total_tax=total_tax,
        total=total,
        round_off=round_off,
        final_total=final_total,
    )


def check_tax_schemes(items: Sequence[InvoiceLineItem]) -> Tuple[List[str], List[str]]:
    """Returns (errors, warnings) about how GST is applied on each line."""
    errors = []
    warnings = []
    for number, item in enumerate(items, start=1):
        if item.quantity == 0:
            errors.append(f"Invalid quantity on item {number}: must be > 0")

        if not (item.apply_igst or item.apply_cgst or item.apply_sgst):
            warnings.append(f"No tax applied on item {number}")
            continue
        if item.apply_igst and (item.apply_cgst or item.apply_sgst):
            warnings.append(f"Item {number} applies IGST together with CGST/SGST")
        if item.apply_cgst != item.apply_sgst:
            warnings.append(f"Item {number} applies CGST and SGST separately, they normally go together")
        elif item.apply_cgst and item.cgst_rate != item.sgst_rate:
            warnings.append(f"Unequal CGST/SGST rates on item {number}: {item.cgst_rate}% / {item.sgst_rate}%")

        if item.apply_igst and item.igst_rate not in IGST_SLABS:
            warnings.append(f"Unusual IGST rate on item {number}: {item.igst_rate}%")
        if item.apply_cgst and item.cgst_rate not in HALF_SLABS:
            warnings.append(f"Unusual CGST rate on item {number}: {item.cgst_rate}%")
        if item.apply_sgst and item.sgst_rate not in HALF_SLABS:
            warnings.append(f"Unusual SGST rate on item {number}: {item.sgst_rate}%")

    if warnings:
        logger.info("Tax scheme warnings", extra={"extra": {"warnings": len(warnings), "errors": len(errors)}})
    return errors, warnings
