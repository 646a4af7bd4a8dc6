import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from pydantic_core import PydanticSerializationError

from invoiceflow.models.invoice import Customer, InvoiceData, ShipmentDetails, StoredInvoice
from invoiceflow.services.errors import DuplicateInvoiceNumber, InvoiceNotFound
from invoiceflow.services.invoice_store import InvoiceStore
from invoiceflow.services.invoices import build_stored_invoice

from conftest import make_item


def _invoice_data(**overrides) -> InvoiceData:
    fields = dict(
        invoice_date=date(2024, 5, 1),
        customer=Customer(name="Acme Innovations", gstin="29AABCU9567M1Z5", state="Karnataka", state_code="29"),
        items=[make_item(1, 50000, cgst=9, sgst=9, description="Website", hsn="998314"),
               make_item(1, "99.5", cgst=9, sgst=9)],
    )
    fields.update(overrides)
    return InvoiceData(**fields)


@pytest.fixture
def store(tmp_path):
    return InvoiceStore(tmp_path / "invoices")


def test_build_stored_invoice_rounded():
    invoice = build_stored_invoice(_invoice_data(), "INV010520240001")
    assert invoice.totals.total == Decimal("59117.41")
    assert invoice.amount == Decimal("59117")
    assert invoice.round_off_applied is True
    assert invoice.totals.round_off == Decimal("-0.41")
    assert invoice.created_at == invoice.updated_at


def test_build_stored_invoice_not_rounded():
    invoice = build_stored_invoice(_invoice_data(round_off=False), "INV010520240001")
    assert invoice.amount == Decimal("59117.41")
    assert invoice.round_off_applied is False
    assert invoice.totals.round_off == 0


def test_build_keeps_created_at():
    created = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
    invoice = build_stored_invoice(_invoice_data(), "INV010520240001", created_at=created)
    assert invoice.created_at == created
    assert invoice.updated_at > created


def test_create_and_get(store):
    shipment = ShipmentDetails(consignee_name="Acme Warehouse", vehicle_no="KA01AB1234",
                               date_of_supply=date(2024, 5, 2))
    invoice = build_stored_invoice(_invoice_data(shipment=shipment), "INV010520240001")
    store.create(invoice)

    loaded = store.get("INV010520240001")
    assert loaded.model_dump() == invoice.model_dump()
    assert loaded.items[0].hsn == "998314"
    assert loaded.shipment.date_of_supply == date(2024, 5, 2)


def test_create_duplicate(store):
    store.create(build_stored_invoice(_invoice_data(), "SMPL-001"))
    with pytest.raises(DuplicateInvoiceNumber) as excinfo:
        store.create(build_stored_invoice(_invoice_data(), "SMPL-001"))
    assert excinfo.value.invoice_number == "SMPL-001"


def test_update(store):
    original = store.create(build_stored_invoice(_invoice_data(), "INV010520240001"))
    edited = build_stored_invoice(_invoice_data(payment_status="Paid", round_off=False), "INV010520240001",
                                  created_at=original.created_at)
    store.update(edited)
    loaded = store.get("INV010520240001")
    assert loaded.payment_status == "Paid"
    assert loaded.amount == Decimal("59117.41")
    assert loaded.created_at == original.created_at


def test_update_missing(store):
    with pytest.raises(InvoiceNotFound):
        store.update(build_stored_invoice(_invoice_data(), "INV010520240001"))


def test_list_sorted_and_filtered(store):
    store.create(build_stored_invoice(_invoice_data(), "INV010520240001"))
    store.create(build_stored_invoice(_invoice_data(invoice_date=date(2024, 5, 3)), "INV030520240001"))
    store.create(build_stored_invoice(_invoice_data(invoice_type="Proforma Invoice", payment_status="Paid"),
                                      "INV010520240002"))

    numbers = [inv.invoice_number for inv in store.list()]
    assert numbers == ["INV030520240001", "INV010520240002", "INV010520240001"]
    assert [inv.invoice_number for inv in store.list(invoice_type="Proforma Invoice")] == ["INV010520240002"]
    assert [inv.invoice_number for inv in store.list(payment_status="Unpaid")] == [
        "INV030520240001", "INV010520240001"]


def test_list_skips_unreadable(store):
    store.create(build_stored_invoice(_invoice_data(), "INV010520240001"))
    (store.directory / "broken.json").write_text("{}")
    assert [inv.invoice_number for inv in store.list()] == ["INV010520240001"]


def test_delete(store):
    store.create(build_stored_invoice(_invoice_data(), "INV010520240001"))
    store.delete("INV010520240001")
    with pytest.raises(InvoiceNotFound):
        store.get("INV010520240001")
    with pytest.raises(InvoiceNotFound):
        store.delete("INV010520240001")


def test_unsafe_number_not_found(store):
    with pytest.raises(InvoiceNotFound):
        store.get("../secrets")


def test_failed_serialization_leaves_no_file(store):
    """A record that cannot be serialized does not block its number."""
    good = build_stored_invoice(_invoice_data(), "INV010520240001")
    broken = StoredInvoice.model_construct(**dict(good.__dict__, amount=object()))
    with pytest.raises(PydanticSerializationError):
        store.create(broken)
    assert not (store.directory / "INV010520240001.json").exists()
    store.create(good)
    assert store.get("INV010520240001").amount == Decimal("59117")
