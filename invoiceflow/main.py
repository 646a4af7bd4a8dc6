from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Security
from fastapi.security import APIKeyHeader
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from datetime import date
from typing import Optional
import logging
import os
from pathlib import Path

from invoiceflow.models.invoice import (
    DEFAULT_INVOICE_PREFIX,
    InvoiceData,
    InvoiceType,
    PaymentStatus,
    PrefixUpdate,
    ReserveRequest,
    TotalsRequest,
)
from invoiceflow.services.counter_store import CounterStore
from invoiceflow.services.errors import DuplicateInvoiceNumber, InvoiceNotFound
from invoiceflow.services.invoice_store import InvoiceStore
from invoiceflow.services.invoices import build_stored_invoice
from invoiceflow.services.reports import sales_summary
from invoiceflow.services.tax_calculator import check_tax_schemes, compute_invoice_totals, money

import json
import time

class JSONFormatter(logging.Formatter):
    def format(self, record):
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "extra") and isinstance(record.extra, dict):
            log_data.update(record.extra)
        return json.dumps(log_data, ensure_ascii=False, default=str)

# Replace existing handlers with the JSON one
root_logger = logging.getLogger()
root_logger.setLevel(logging.INFO)
for h in root_logger.handlers[:]:
    root_logger.removeHandler(h)
handler = logging.StreamHandler()
handler.setFormatter(JSONFormatter())
root_logger.addHandler(handler)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="InvoiceFlow",
    description="GST invoice totals and sequential invoice numbering",
    version="1.0.0"
)

# Storage
STORAGE_DIR = Path(os.getenv("STORAGE_DIR", "/app/storage"))
INVOICE_CONFIG_FILE = Path(os.getenv("INVOICE_CONFIG_FILE", str(STORAGE_DIR / "invoice_config.json")))
INVOICE_PREFIX = os.getenv("INVOICE_PREFIX", DEFAULT_INVOICE_PREFIX)

# API key
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


# Request validation errors (422)
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    return JSONResponse(
        status_code=422,
        content={
            "error": "Invalid data",
            "detail": str(exc.errors())
        }
    )


def _load_api_keys() -> dict:
    clients_json = os.getenv("CLIENTS", "{}")
    try:
        return json.loads(clients_json)
    except Exception:
        api_key = os.getenv("API_KEY", "dev-secret-key")
        return {"default": api_key}


def verify_api_key(api_key: str = Security(api_key_header)) -> str:
    clients = _load_api_keys()
    for client_name, client_key in clients.items():
        if api_key == client_key:
            return client_name
    raise HTTPException(
        status_code=403,
        detail={"error": "Invalid or missing API key"}
    )


def get_counter_store() -> CounterStore:
    return CounterStore(INVOICE_CONFIG_FILE, default_prefix=INVOICE_PREFIX)


def get_invoice_store() -> InvoiceStore:
    return InvoiceStore(STORAGE_DIR / "invoices")


# v1 prefix for every business endpoint
v1 = APIRouter(prefix="/v1")


@app.get("/health")
def health_check():
    return {"status": "ok", "version": "1.0.0"}


@v1.post("/invoice/totals")
async def invoice_totals(request: TotalsRequest, api_key: str = Security(verify_api_key)):
    try:
        return compute_invoice_totals(request.items, request.apply_rounding)
    except ValueError as e:
        logger.error(f"Validation error: {e}")
        raise HTTPException(status_code=400, detail={"error": str(e)})
    except Exception as e:
        logger.error(f"Internal error: {e}")
        raise HTTPException(status_code=500, detail={"error": "Internal error", "message": str(e)})


@v1.post("/invoice/dry-run")
async def dry_run_invoice(invoice_data: InvoiceData, api_key: str = Security(verify_api_key),
                          counters: CounterStore = Depends(get_counter_store)):
    """Checks an invoice without committing it. Returns errors, warnings and the computed totals."""
    try:
        start = time.time()
        errors, warnings = check_tax_schemes(invoice_data.items)

        if invoice_data.due_date and invoice_data.due_date < invoice_data.invoice_date:
            errors.append("Due date is before the invoice date")
        if invoice_data.invoice_type == "Tax Invoice" and not invoice_data.customer.gstin:
            warnings.append("Customer GSTIN missing - recommended on a tax invoice")
        if not invoice_data.due_date:
            warnings.append("Due date missing")

        totals = compute_invoice_totals(invoice_data.items, invoice_data.round_off)
        invoice_number = invoice_data.invoice_number or counters.preview(invoice_data.invoice_date)

        duration = round((time.time() - start) * 1000)
        logger.info("Dry run done", extra={"extra": {
            "invoice_number": invoice_number,
            "warnings": len(warnings),
            "errors": len(errors),
            "duration_ms": duration
        }})

        return {
            "valid": len(errors) == 0,
            "invoice_number": invoice_number,
            "subtotal": str(money(totals.subtotal)),
            "total_tax": str(money(totals.total_tax)),
            "round_off": str(money(totals.round_off)),
            "final_total": str(money(totals.final_total)),
            "errors": errors,
            "warnings": warnings,
            "duration_ms": duration,
        }
    except ValueError as e:
        logger.error(f"Validation error: {e}")
        raise HTTPException(status_code=400, detail={"error": str(e)})
    except Exception as e:
        raise HTTPException(status_code=500, detail={"error": "Dry run error", "message": str(e)})


@v1.get("/invoice-number/preview")
async def preview_invoice_number(invoice_date: date, api_key: str = Security(verify_api_key),
                                 counters: CounterStore = Depends(get_counter_store)):
    try:
        return {"invoice_number": counters.preview(invoice_date), "reserved": False}
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"error": str(e)})
    except Exception as e:
        raise HTTPException(status_code=500, detail={"error": "Internal error", "message": str(e)})


@v1.post("/invoice-number/reserve")
async def reserve_invoice_number(request: ReserveRequest, api_key: str = Security(verify_api_key),
                                 counters: CounterStore = Depends(get_counter_store)):
    try:
        invoice_number = counters.reserve(request.invoice_date)
        logger.info("Number reserved", extra={"extra": {"client": api_key, "invoice_number": invoice_number}})
        return {"invoice_number": invoice_number, "reserved": True}
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"error": str(e)})
    except Exception as e:
        logger.error(f"Internal error: {e}")
        raise HTTPException(status_code=500, detail={"error": "Internal error", "message": str(e)})


@v1.get("/settings/invoice-prefix")
async def get_invoice_prefix(api_key: str = Security(verify_api_key),
                             counters: CounterStore = Depends(get_counter_store)):
    return {"prefix": counters.get_prefix()}


@v1.put("/settings/invoice-prefix")
async def set_invoice_prefix(update: PrefixUpdate, api_key: str = Security(verify_api_key),
                             counters: CounterStore = Depends(get_counter_store)):
    try:
        return {"prefix": counters.set_prefix(update.prefix)}
    except ValueError as e:
        raise HTTPException(status_code=400, detail={"error": str(e)})
    except Exception as e:
        raise HTTPException(status_code=500, detail={"error": "Internal error", "message": str(e)})


@v1.post("/invoices", status_code=201)
async def create_invoice(invoice_data: InvoiceData, api_key: str = Security(verify_api_key),
                         counters: CounterStore = Depends(get_counter_store),
                         store: InvoiceStore = Depends(get_invoice_store)):
    try:
        start = time.time()
        # invalid items must not consume a number
        compute_invoice_totals(invoice_data.items, invoice_data.round_off)
        invoice_number = invoice_data.invoice_number or counters.reserve(invoice_data.invoice_date)

        invoice = store.create(build_stored_invoice(invoice_data, invoice_number))
        duration = round((time.time() - start) * 1000)
        logger.info("Invoice created", extra={"extra": {
            "client": api_key,
            "invoice_number": invoice.invoice_number,
            "invoice_type": invoice.invoice_type,
            "customer": invoice.customer.name,
            "amount": str(invoice.amount),
            "round_off_applied": invoice.round_off_applied,
            "duration_ms": duration
        }})
        return invoice
    except DuplicateInvoiceNumber as e:
        logger.error(f"Duplicate invoice number: {e.invoice_number}")
        raise HTTPException(status_code=409, detail={"error": str(e)})
    except ValueError as e:
        logger.error(f"Validation error: {e}")
        raise HTTPException(status_code=400, detail={"error": str(e)})
    except Exception as e:
        logger.error(f"Internal error: {e}")
        raise HTTPException(status_code=500, detail={"error": "Internal error", "message": str(e)})


@v1.get("/invoices")
async def list_invoices(invoice_type: Optional[InvoiceType] = None,
                        payment_status: Optional[PaymentStatus] = None,
                        api_key: str = Security(verify_api_key),
                        store: InvoiceStore = Depends(get_invoice_store)):
    try:
        invoices = store.list(invoice_type=invoice_type, payment_status=payment_status)
        return {"count": len(invoices), "invoices": invoices}
    except Exception as e:
        raise HTTPException(status_code=500, detail={"error": "Storage read error", "message": str(e)})


@v1.get("/invoices/{invoice_number}")
async def get_invoice(invoice_number: str, api_key: str = Security(verify_api_key),
                      store: InvoiceStore = Depends(get_invoice_store)):
    try:
        return store.get(invoice_number)
    except InvoiceNotFound as e:
        raise HTTPException(status_code=404, detail={"error": str(e)})
    except Exception as e:
        raise HTTPException(status_code=500, detail={"error": "Storage read error", "message": str(e)})


@v1.put("/invoices/{invoice_number}")
async def update_invoice(invoice_number: str, invoice_data: InvoiceData,
                         api_key: str = Security(verify_api_key),
                         store: InvoiceStore = Depends(get_invoice_store)):
    """Saves an edited invoice. The amount is recomputed from the items."""
    try:
        existing = store.get(invoice_number)
        invoice = store.update(build_stored_invoice(invoice_data, invoice_number,
                                                    created_at=existing.created_at))
        logger.info("Invoice updated", extra={"extra": {
            "invoice_number": invoice_number,
            "amount": str(invoice.amount),
        }})
        return invoice
    except InvoiceNotFound as e:
        raise HTTPException(status_code=404, detail={"error": str(e)})
    except ValueError as e:
        logger.error(f"Validation error: {e}")
        raise HTTPException(status_code=400, detail={"error": str(e)})
    except Exception as e:
        logger.error(f"Internal error: {e}")
        raise HTTPException(status_code=500, detail={"error": "Internal error", "message": str(e)})


@v1.delete("/invoices/{invoice_number}", status_code=204)
async def delete_invoice(invoice_number: str, api_key: str = Security(verify_api_key),
                         store: InvoiceStore = Depends(get_invoice_store)):
    try:
        store.delete(invoice_number)
        return Response(status_code=204)
    except InvoiceNotFound as e:
        raise HTTPException(status_code=404, detail={"error": str(e)})
    except Exception as e:
        raise HTTPException(status_code=500, detail={"error": "Internal error", "message": str(e)})


@v1.get("/reports/sales")
async def sales_report(today: Optional[date] = None, invoice_type: Optional[InvoiceType] = None,
                       months: int = Query(default=12, ge=1, le=60),
                       api_key: str = Security(verify_api_key),
                       store: InvoiceStore = Depends(get_invoice_store)):
    """Revenue, unpaid amounts and monthly buckets over the stored invoices."""
    try:
        invoices = store.list(invoice_type=invoice_type)
        return sales_summary(invoices, today or date.today(), months=months)
    except Exception as e:
        logger.error(f"Report error: {e}")
        raise HTTPException(status_code=500, detail={"error": "Report error", "message": str(e)})


# Register the v1 router
app.include_router(v1)
