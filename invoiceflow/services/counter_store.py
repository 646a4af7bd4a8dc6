# invoiceflow/services/counter_store.py
from datetime import date
from pathlib import Path
from typing import Dict, Optional
import json
import logging
import os
import threading

from pydantic import BaseModel, NonNegativeInt, ValidationError

from invoiceflow.models.invoice import DEFAULT_INVOICE_PREFIX, InvoiceNumberCounterState
from invoiceflow.services.errors import MalformedPrefix
from invoiceflow.services.invoice_number import generate_invoice_number, normalize_prefix

logger = logging.getLogger(__name__)

# One lock per counter file, shared by every store instance of the process.
_LOCKS: Dict[str, threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _LOCKS_GUARD:
        return _LOCKS.setdefault(key, threading.Lock())


class CounterConfig(BaseModel):
    """Shape of the counter file; dailyCounters is the flat single-prefix layout."""
    prefix: Optional[str] = None
    counters: Optional[Dict[str, Dict[str, NonNegativeInt]]] = None
    dailyCounters: Optional[Dict[str, NonNegativeInt]] = None


class CounterStore:
    """
    Invoice numbering settings persisted as JSON:

        {"prefix": "INV", "counters": {"INV": {"01052024": 2}}}

    Daily counters are kept per prefix. reserve() is the only way numbers are
    consumed and runs its read-increment-write under the file's lock.
    """

    def __init__(self, path, default_prefix: str = DEFAULT_INVOICE_PREFIX):
        self.path = Path(path)
        self.default_prefix = normalize_prefix(default_prefix)
        self._lock = _lock_for(self.path)

    def _read(self) -> dict:
        if not self.path.exists():
            return {"prefix": self.default_prefix, "counters": {}}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = CounterConfig.model_validate(json.load(f))
        except ValidationError as e:
            logger.warning(f"Unexpected counter file content in {self.path}, starting empty: {e}")
            return {"prefix": self.default_prefix, "counters": {}}
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable counter file {self.path}, starting empty: {e}")
            return {"prefix": self.default_prefix, "counters": {}}

        try:
            prefix = normalize_prefix(raw.prefix, default=self.default_prefix)
        except MalformedPrefix as e:
            logger.warning(f"{e}, using {self.default_prefix}")
            prefix = self.default_prefix
        counters = raw.counters
        if counters is None:
            # flat layout: a single dailyCounters map for whatever prefix was set
            counters = {prefix: raw.dailyCounters or {}}
        return {"prefix": prefix, "counters": counters}

    def _write(self, config: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(config, f, ensure_ascii=False, indent=2, sort_keys=True)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)

    @staticmethod
    def _state(config: dict, prefix: str) -> InvoiceNumberCounterState:
        return InvoiceNumberCounterState(
            prefix=prefix,
            daily_counters=config["counters"].get(prefix, {}),
        )

    def get_prefix(self) -> str:
        return self._read()["prefix"]

    def set_prefix(self, raw: str) -> str:
        """Changes the configured prefix. Counters of other prefixes are kept as they are."""
        prefix = normalize_prefix(raw, default=None)
        with self._lock:
            config = self._read()
            previous = config["prefix"]
            config["prefix"] = prefix
            self._write(config)
        logger.info("Invoice prefix changed", extra={"extra": {"from": previous, "to": prefix}})
        return prefix

    def load(self, prefix: Optional[str] = None) -> InvoiceNumberCounterState:
        config = self._read()
        return self._state(config, normalize_prefix(prefix) if prefix else config["prefix"])

    def save(self, state: InvoiceNumberCounterState) -> None:
        with self._lock:
            config = self._read()
            config["counters"][normalize_prefix(state.prefix)] = dict(state.daily_counters)
            self._write(config)

    def preview(self, invoice_date: date) -> str:
        invoice_number, _ = generate_invoice_number(invoice_date, self.load(), increment=False)
        return invoice_number

    def reserve(self, invoice_date: date) -> str:
        with self._lock:
            config = self._read()
            state = self._state(config, config["prefix"])
            invoice_number, new_state = generate_invoice_number(invoice_date, state, increment=True)
            config["counters"][new_state.prefix] = new_state.daily_counters
            self._write(config)
        logger.info("Invoice number reserved", extra={"extra": {"invoice_number": invoice_number}})
        return invoice_number
