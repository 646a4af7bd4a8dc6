# invoiceflow/services/reports.py
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable

from invoiceflow.models.invoice import StoredInvoice
from invoiceflow.models.report import MonthlySales, SalesSummary

ZERO = Decimal("0")

OPEN_STATUSES = {"Pending", "Unpaid", "Overdue", "Draft", "Partially Paid"}
# statuses that turn into Overdue once the due date has passed
OVERDUE_CANDIDATES = {"Unpaid", "Pending", "Partially Paid"}


def effective_status(invoice: StoredInvoice, today: date) -> str:
    if (invoice.due_date and invoice.due_date < today
            and invoice.payment_status in OVERDUE_CANDIDATES):
        return "Overdue"
    return invoice.payment_status


def _month_back(today: date, months: int) -> date:
    index = today.year * 12 + today.month - 1 - months
    return date(index // 12, index % 12 + 1, 1)


def sales_summary(invoices: Iterable[StoredInvoice], today: date, months: int = 12) -> SalesSummary:
    """
    Paid amounts count as revenue, every open status as unpaid. Monthly
    buckets cover the `months` calendar months ending with today's, oldest
    first; invoices dated outside that window still count in the totals.
    """
    total_revenue = total_unpaid = ZERO
    total_invoices = paid = overdue = 0
    buckets = defaultdict(lambda: {"sales": ZERO, "unpaid": ZERO})

    for invoice in invoices:
        total_invoices += 1
        status = effective_status(invoice, today)
        month_key = invoice.invoice_date.strftime("%Y-%m")
        if status == "Paid":
            paid += 1
            total_revenue += invoice.amount
            buckets[month_key]["sales"] += invoice.amount
        elif status in OPEN_STATUSES:
            if status == "Overdue":
                overdue += 1
            total_unpaid += invoice.amount
            buckets[month_key]["unpaid"] += invoice.amount

    monthly = []
    for back in range(months - 1, -1, -1):
        month = _month_back(today, back)
        key = month.strftime("%Y-%m")
        bucket = buckets.get(key, {"sales": ZERO, "unpaid": ZERO})
        monthly.append(MonthlySales(month=key, label=month.strftime("%b %Y"),
                                    sales=bucket["sales"], unpaid=bucket["unpaid"]))

    return SalesSummary(
        total_revenue=total_revenue,
        total_unpaid=total_unpaid,
        total_invoices=total_invoices,
        paid_invoices=paid,
        overdue_invoices=overdue,
        average_invoice_value=total_revenue / paid if paid else ZERO,
        monthly=monthly,
    )
