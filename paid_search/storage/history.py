"""
History store for payment and request records.

Keeps both append-only logs in memory, keyed by record id, and re-persists
the whole affected collection after every mutation. A mutation whose
persist fails is undone in memory before the error propagates.
"""

import json
import time
from dataclasses import replace
from typing import Dict, List, Optional

from .db import DEFAULT_DB_PATH, initialize_schema, read_value, write_value
from .models import PaymentRecord, PaymentStatus, RequestRecord

REQUEST_HISTORY_KEY = "request_history"
PAYMENT_HISTORY_KEY = "payment_history"
NOTIFICATIONS_ENABLED_KEY = "notifications_enabled"


class HistoryStore:
    """Durable payment/request history plus the notifications toggle.

    Stored state is read once when the store is opened. Collections are
    insertion-ordered dicts so display order matches append order while
    lookups by id stay O(1).
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Open the store and load whatever is durably stored.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._payments: Dict[str, PaymentRecord] = {}
        self._requests: Dict[str, RequestRecord] = {}
        self._notifications_enabled = True
        self._last_id = 0
        initialize_schema(db_path)
        self._load()

    def _load(self) -> None:
        raw_requests = read_value(REQUEST_HISTORY_KEY, self.db_path)
        raw_payments = read_value(PAYMENT_HISTORY_KEY, self.db_path)
        raw_enabled = read_value(NOTIFICATIONS_ENABLED_KEY, self.db_path)

        if raw_requests:
            for item in json.loads(raw_requests):
                record = RequestRecord.from_dict(item)
                self._requests[record.id] = record
        if raw_payments:
            for item in json.loads(raw_payments):
                record = PaymentRecord.from_dict(item)
                self._payments[record.id] = record
        if raw_enabled is not None:
            self._notifications_enabled = bool(json.loads(raw_enabled))

    def _persist_payments(self) -> None:
        payload = [record.to_dict() for record in self._payments.values()]
        write_value(PAYMENT_HISTORY_KEY, json.dumps(payload), self.db_path)

    def _persist_requests(self) -> None:
        payload = [record.to_dict() for record in self._requests.values()]
        write_value(REQUEST_HISTORY_KEY, json.dumps(payload), self.db_path)

    def new_id(self) -> str:
        """Return a millisecond-derived id unique across both collections."""
        candidate = int(time.time() * 1000)
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        while str(candidate) in self._payments or str(candidate) in self._requests:
            candidate += 1
        self._last_id = candidate
        return str(candidate)

    def append_payment(self, record: PaymentRecord) -> PaymentRecord:
        """Append a payment record and persist the payment log.

        Raises:
            ValueError: If a record with the same id already exists
        """
        if record.id in self._payments:
            raise ValueError(f"Duplicate payment record id: {record.id}")
        self._payments[record.id] = record
        try:
            self._persist_payments()
        except Exception:
            del self._payments[record.id]
            raise
        return record

    def append_request(self, record: RequestRecord) -> RequestRecord:
        """Append a request record and persist the request log.

        Raises:
            ValueError: If a record with the same id already exists
        """
        if record.id in self._requests:
            raise ValueError(f"Duplicate request record id: {record.id}")
        self._requests[record.id] = record
        try:
            self._persist_requests()
        except Exception:
            del self._requests[record.id]
            raise
        return record

    def update_payment_status(self, record_id: str, status: PaymentStatus) -> PaymentRecord:
        """Resolve a pending payment record to a terminal status.

        Args:
            record_id: Id of the payment record
            status: CONFIRMED or FAILED

        Returns:
            The updated record

        Raises:
            KeyError: If no record has this id
            ValueError: If the record is no longer pending or status is PENDING
        """
        current = self._payments[record_id]
        if status == PaymentStatus.PENDING:
            raise ValueError("A payment record cannot be moved back to pending")
        if current.status != PaymentStatus.PENDING:
            raise ValueError(
                f"Payment record {record_id} is already {current.status.value}"
            )
        updated = replace(current, status=status)
        self._payments[record_id] = updated
        try:
            self._persist_payments()
        except Exception:
            self._payments[record_id] = current
            raise
        return updated

    def get_payment(self, record_id: str) -> Optional[PaymentRecord]:
        return self._payments.get(record_id)

    def payments(self) -> List[PaymentRecord]:
        """Payment records in append order."""
        return list(self._payments.values())

    def requests(self) -> List[RequestRecord]:
        """Request records in append order."""
        return list(self._requests.values())

    def pending_payments(self) -> List[PaymentRecord]:
        return [p for p in self._payments.values() if p.status == PaymentStatus.PENDING]

    @property
    def notifications_enabled(self) -> bool:
        return self._notifications_enabled

    def set_notifications_enabled(self, enabled: bool) -> None:
        self._notifications_enabled = bool(enabled)
        write_value(
            NOTIFICATIONS_ENABLED_KEY,
            json.dumps(self._notifications_enabled),
            self.db_path
        )
