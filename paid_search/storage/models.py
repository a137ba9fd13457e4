"""
Data models for storage layer.

Defines the payment and request history records and their JSON layout.
"""

from dataclasses import dataclass
from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class PaymentStatus(Enum):
    """Lifecycle of a submitted payment."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class RequestStatus(Enum):
    """Outcome of a paid search request."""
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class PaymentRecord:
    """Record of a value transfer submitted to pay for a search.
    
    Created as PENDING once the transfer is accepted by the wallet and
    resolved exactly once to CONFIRMED or FAILED.
    """
    id: str
    timestamp: str
    amount: float
    tx_hash: str
    status: PaymentStatus = PaymentStatus.PENDING

    def __post_init__(self):
        if self.amount <= 0:
            raise ValueError("amount must be > 0")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "amount": self.amount,
            "txHash": self.tx_hash,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PaymentRecord":
        return cls(
            id=str(data["id"]),
            timestamp=data["timestamp"],
            amount=float(data["amount"]),
            tx_hash=data["txHash"],
            status=PaymentStatus(data["status"]),
        )


@dataclass(frozen=True)
class RequestRecord:
    """Record of a search attempt made after a confirmed payment."""
    id: str
    timestamp: str
    query: str
    cost: float
    results: int
    status: RequestStatus
    error_message: Optional[str] = None

    def __post_init__(self):
        if self.cost <= 0:
            raise ValueError("cost must be > 0")
        if self.results < 0:
            raise ValueError("results must be >= 0")

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "timestamp": self.timestamp,
            "query": self.query,
            "cost": self.cost,
            "results": self.results,
            "status": self.status.value,
        }
        if self.error_message is not None:
            data["errorMessage"] = self.error_message
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RequestRecord":
        return cls(
            id=str(data["id"]),
            timestamp=data["timestamp"],
            query=data["query"],
            cost=float(data["cost"]),
            results=int(data["results"]),
            status=RequestStatus(data["status"]),
            error_message=data.get("errorMessage"),
        )


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
