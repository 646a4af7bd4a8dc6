# invoiceflow/models/invoice.py
from pydantic import BaseModel, Field, field_validator
from typing import Dict, List, Literal, Optional
from decimal import Decimal
from datetime import date, datetime


DEFAULT_INVOICE_PREFIX = "INV"

InvoiceType = Literal["Tax Invoice", "Proforma Invoice", "Quotation"]
PaymentStatus = Literal["Paid", "Unpaid", "Pending", "Overdue", "Draft", "Partially Paid"]

# Used as a file name by the invoice store.
INVOICE_NUMBER_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"


class Product(BaseModel):
    id: str
    name: str
    description: str = ""
    price: Decimal = Field(ge=0)
    hsn: Optional[str] = None
    igst_rate: Decimal = Field(ge=0, le=100)
    cgst_rate: Decimal = Field(ge=0, le=100)
    sgst_rate: Decimal = Field(ge=0, le=100)


class InvoiceLineItem(BaseModel):
    """Quantity, price and GST applicability of one invoice line. No field has a default."""
    quantity: Decimal = Field(ge=0)
    unit_price: Decimal = Field(ge=0)
    apply_igst: bool
    apply_cgst: bool
    apply_sgst: bool
    igst_rate: Decimal = Field(ge=0, le=100)
    cgst_rate: Decimal = Field(ge=0, le=100)
    sgst_rate: Decimal = Field(ge=0, le=100)

    @property
    def amount(self) -> Decimal:
        return self.quantity * self.unit_price


class InvoiceItem(InvoiceLineItem):
    description: str = ""
    product_id: Optional[str] = None
    hsn: Optional[str] = None

    @classmethod
    def from_product(cls, product: Product, quantity: Decimal = Decimal("1"),
                     inter_state: bool = True) -> "InvoiceItem":
        """Line prefilled from a product: IGST for inter-state supply, CGST+SGST otherwise."""
        return cls(
            product_id=product.id,
            description=product.description or product.name,
            hsn=product.hsn,
            quantity=quantity,
            unit_price=product.price,
            apply_igst=inter_state,
            apply_cgst=not inter_state,
            apply_sgst=not inter_state,
            igst_rate=product.igst_rate,
            cgst_rate=product.cgst_rate,
            sgst_rate=product.sgst_rate,
        )


class InvoiceTotals(BaseModel):
    subtotal: Decimal
    igst_amount: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    total_tax: Decimal
    total: Decimal
    round_off: Decimal
    final_total: Decimal


class InvoiceNumberCounterState(BaseModel):
    prefix: str = DEFAULT_INVOICE_PREFIX
    # "DDMMYYYY" -> last number handed out that day
    daily_counters: Dict[str, int] = Field(default_factory=dict)

    @field_validator("daily_counters")
    @classmethod
    def _counters_not_negative(cls, value: Dict[str, int]) -> Dict[str, int]:
        for key, count in value.items():
            if count < 0:
                raise ValueError(f"counter for {key} is negative: {count}")
        return value


class Customer(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    gstin: Optional[str] = None
    state: Optional[str] = None
    state_code: Optional[str] = None


class ShipmentDetails(BaseModel):
    ship_date: Optional[date] = None
    tracking_number: Optional[str] = None
    carrier_name: Optional[str] = None
    consignee_name: Optional[str] = None
    consignee_address: Optional[str] = None
    consignee_gstin: Optional[str] = None
    consignee_state_code: Optional[str] = None
    transportation_mode: Optional[str] = None
    lr_no: Optional[str] = None
    vehicle_no: Optional[str] = None
    date_of_supply: Optional[date] = None
    place_of_supply: Optional[str] = None


class InvoiceData(BaseModel):
    """Invoice as submitted. Without an invoice_number one is reserved when it is committed."""
    invoice_number: Optional[str] = Field(default=None, pattern=INVOICE_NUMBER_PATTERN)
    invoice_type: InvoiceType = "Tax Invoice"
    invoice_date: date
    due_date: Optional[date] = None
    customer: Customer
    items: List[InvoiceItem] = Field(min_length=1)
    round_off: bool = True
    notes: str = ""
    terms_and_conditions: str = ""
    payment_status: PaymentStatus = "Unpaid"
    payment_method: Optional[str] = None
    shipment: Optional[ShipmentDetails] = None


class StoredInvoice(InvoiceData):
    invoice_number: str = Field(pattern=INVOICE_NUMBER_PATTERN)
    amount: Decimal
    round_off_applied: bool
    totals: InvoiceTotals
    created_at: datetime
    updated_at: datetime


class TotalsRequest(BaseModel):
    items: List[InvoiceLineItem]
    apply_rounding: bool = False


class ReserveRequest(BaseModel):
    invoice_date: date


class PrefixUpdate(BaseModel):
    prefix: str
