"""Shared test fixtures for the InvoiceFlow test suite."""

from decimal import Decimal

import pytest

from invoiceflow.models.invoice import InvoiceItem


def make_item(quantity, unit_price, igst=None, cgst=None, sgst=None, **extra) -> InvoiceItem:
    """Item with the given rates applied; a rate left as None is not applied."""
    return InvoiceItem(
        quantity=Decimal(str(quantity)),
        unit_price=Decimal(str(unit_price)),
        apply_igst=igst is not None,
        apply_cgst=cgst is not None,
        apply_sgst=sgst is not None,
        igst_rate=Decimal(str(igst or 0)),
        cgst_rate=Decimal(str(cgst or 0)),
        sgst_rate=Decimal(str(sgst or 0)),
        **extra,
    )


@pytest.fixture
def laptop_items():
    """Two inter-state lines: 2 x 75000 @ 18% IGST and 1 x 45000 @ 12% IGST."""
    return [make_item(2, 75000, igst=18), make_item(1, 45000, igst=12)]
