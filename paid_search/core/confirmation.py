"""
Bounded polling for transaction confirmation.

Looks up the receipt at a fixed interval until it appears, the attempt
budget runs out, or the caller cancels.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum, auto
from typing import Awaitable, Callable, Optional

from ..wallet.session import Receipt

ReceiptFetcher = Callable[[str], Awaitable[Optional[Receipt]]]
Sleeper = Callable[[float], Awaitable[None]]


class ConfirmationStatus(Enum):
    CONFIRMED = auto()
    REVERTED = auto()
    TIMEOUT = auto()
    CANCELLED = auto()


@dataclass(frozen=True)
class PollPolicy:
    """Receipt lookup spacing and budget (defaults: 30 x 2s = 60s)."""
    interval_seconds: float = 2.0
    max_attempts: int = 30

    def __post_init__(self):
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be > 0")


@dataclass(frozen=True)
class Confirmation:
    status: ConfirmationStatus
    attempts: int
    receipt: Optional[Receipt] = None


class CancellationToken:
    """Flag checked before every receipt lookup."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


async def wait_for_receipt(
    fetch: ReceiptFetcher,
    tx_hash: str,
    policy: PollPolicy = PollPolicy(),
    sleep: Sleeper = asyncio.sleep,
    cancel_token: Optional[CancellationToken] = None
) -> Confirmation:
    """Poll for a receipt until it resolves or the attempt budget is spent.

    Performs at most policy.max_attempts lookups and sleeps
    policy.interval_seconds between consecutive lookups, never after the
    last one. Errors raised by fetch propagate to the caller.

    Args:
        fetch: Coroutine returning the receipt or None if not yet mined
        tx_hash: Transaction to wait for
        policy: Interval and attempt budget
        sleep: Awaitable delay, injectable for tests
        cancel_token: Optional token that stops polling before the next lookup

    Returns:
        Confirmation with the terminal status and number of lookups made
    """
    attempts = 0
    while attempts < policy.max_attempts:
        if cancel_token is not None and cancel_token.cancelled:
            return Confirmation(ConfirmationStatus.CANCELLED, attempts)

        attempts += 1
        receipt = await fetch(tx_hash)
        if receipt is not None:
            status = ConfirmationStatus.CONFIRMED if receipt.success else ConfirmationStatus.REVERTED
            return Confirmation(status, attempts, receipt)

        if attempts < policy.max_attempts:
            await sleep(policy.interval_seconds)

    return Confirmation(ConfirmationStatus.TIMEOUT, attempts)
