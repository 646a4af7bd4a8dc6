# invoiceflow/models/report.py
from pydantic import BaseModel
from typing import List
from decimal import Decimal


class MonthlySales(BaseModel):
    month: str  # "YYYY-MM"
    label: str  # "May 2024"
    sales: Decimal
    unpaid: Decimal


class SalesSummary(BaseModel):
    total_revenue: Decimal
    total_unpaid: Decimal
    total_invoices: int
    paid_invoices: int
    overdue_invoices: int
    average_invoice_value: Decimal
    monthly: List[MonthlySales]
