"""
Persistent invoice history.

The history is a single state object (invoice records plus aggregate tables)
that is read and written as a whole through a storage backend. Reads degrade
to an empty history when the stored state is missing or corrupt; writes that
fail are raised to the caller.

Only one writer at a time is assumed. There is no locking.
"""

import json
import os
import tempfile
import time
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from .config import logger
from .schemas import HistoryState, InvoiceRecord, ParsedInvoice


class HistoryWriteError(Exception):
    """Raised when the history could not be persisted."""


# ============================================================================
# Storage Backends
# ============================================================================

class HistoryBackend(ABC):
    """Load/save port for the serialized history state."""

    @abstractmethod
    def read(self) -> Optional[dict]:
        """Return the stored state, or None if nothing has been stored yet."""

    @abstractmethod
    def write(self, data: dict) -> None:
        """Replace the stored state with ``data`` in one step."""


class JsonFileBackend(HistoryBackend):
    """
    Keeps the history in a single JSON file.

    Writes go to a temporary file in the same directory which is then moved
    over the target, so a reader sees either the old or the new state.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def read(self) -> Optional[dict]:
        if not self.path.exists():
            return None
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def __repr__(self) -> str:
        return f"JsonFileBackend({str(self.path)!r})"


class MemoryBackend(HistoryBackend):
    """Keeps the serialized history in process memory."""

    def __init__(self, data: Optional[dict] = None):
        self._data = json.loads(json.dumps(data)) if data is not None else None

    def read(self) -> Optional[dict]:
        if self._data is None:
            return None
        return json.loads(json.dumps(self._data))

    def write(self, data: dict) -> None:
        self._data = json.loads(json.dumps(data))


# ============================================================================
# History Store
# ============================================================================

def generate_record_id() -> str:
    """Millisecond timestamp plus a random suffix, e.g. ``inv_1718000000000_3f9a1c2b7d4e``."""
    return f"inv_{int(time.time() * 1000)}_{uuid.uuid4().hex[:12]}"


class HistoryStore:
    """Load, save and append operations over a history backend."""

    def __init__(self, backend: HistoryBackend):
        self.backend = backend

    def load(self) -> HistoryState:
        """
        Load the full history.

        A missing, unreadable or corrupt history is logged and replaced by an
        empty one, so detection keeps working without prior data.
        """
        try:
            data = self.backend.read()
        except (OSError, ValueError) as e:
            logger.error(f"Error loading history from {self.backend!r}: {e}")
            return HistoryState()

        if data is None:
            return HistoryState()

        try:
            return HistoryState.model_validate(data)
        except ValidationError as e:
            logger.error(f"Stored history in {self.backend!r} is invalid, starting empty: {e}")
            return HistoryState()

    def save(self, state: HistoryState) -> HistoryState:
        """
        Persist the full history, stamping ``last_updated``.

        Raises:
            HistoryWriteError: If the backend could not store the state
        """
        state.last_updated = datetime.now(timezone.utc)

        try:
            self.backend.write(state.model_dump(mode="json"))
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save history to {self.backend!r}: {e}")
            raise HistoryWriteError(f"Could not save invoice history: {e}") from e

        return state

    def append(self, invoice: ParsedInvoice) -> InvoiceRecord:
        """Add a parsed invoice to history and return the stored record."""
        history = self.load()

        record = InvoiceRecord(
            id=generate_record_id(),
            filename=invoice.filename,
            processed_date=datetime.now(timezone.utc),
            metadata=invoice.metadata.model_copy(deep=True),
            line_items=[item.model_copy() for item in invoice.line_items],
            totals=invoice.totals.model_copy(),
        )

        history.invoices.append(record)
        self.save(history)

        logger.info(f"Added invoice {record.id} to history ({len(history.invoices)} total)")
        return record

    def get_all_invoices(self) -> list[InvoiceRecord]:
        return self.load().invoices

    def get_invoices_by_vendor(self, vendor: str) -> list[InvoiceRecord]:
        """Invoices whose vendor string is exactly ``vendor``."""
        return [inv for inv in self.load().invoices if inv.metadata.vendor == vendor]

    def clear(self) -> HistoryState:
        """Drop every invoice and both aggregate tables."""
        logger.warning(f"Clearing invoice history in {self.backend!r}")
        return self.save(HistoryState())
