"""
Payment executor.

Runs one payment attempt through balance gate, transfer submission and
confirmation polling, keeping the payment log in step.

State machine per attempt:
    IDLE -> SUBMITTED -> POLLING -> CONFIRMED | FAILED

A failed attempt is never retried here; the user repeats the search.
"""

import asyncio
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from enum import Enum, auto
from typing import Callable, Optional

from loguru import logger

from ..config.loader import PaymentConfig
from ..services import notifier as events
from ..services.notifier import NotificationEvent, Notifier
from ..storage.history import HistoryStore
from ..storage.models import PaymentRecord, PaymentStatus, utc_now
from ..wallet.session import WalletSession, units_to_wei
from .confirmation import (
    CancellationToken,
    ConfirmationStatus,
    PollPolicy,
    Sleeper,
    wait_for_receipt,
)
from .errors import FailureReason, TransferRejected


class PaymentState(Enum):
    IDLE = auto()
    SUBMITTED = auto()
    POLLING = auto()
    CONFIRMED = auto()
    FAILED = auto()


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of one attempt. success is the only control-flow signal."""
    success: bool
    tx_hash: Optional[str] = None
    reason: Optional[FailureReason] = None
    message: str = ""

    def __bool__(self) -> bool:
        return self.success


_CONFIRMATION_FAILURES = {
    ConfirmationStatus.REVERTED: (
        FailureReason.ON_CHAIN_REVERT, "Transaction reverted on-chain"
    ),
    ConfirmationStatus.TIMEOUT: (
        FailureReason.CONFIRMATION_TIMEOUT, "Transaction confirmation timed out"
    ),
    ConfirmationStatus.CANCELLED: (
        FailureReason.CANCELLED, "Confirmation polling was cancelled"
    ),
}


class PaymentExecutor:
    """Pays the fixed fee from the session wallet and waits for confirmation."""

    def __init__(
        self,
        session: WalletSession,
        store: HistoryStore,
        notifier: Notifier,
        config: PaymentConfig,
        sleep: Sleeper = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now
    ):
        self.session = session
        self.store = store
        self.notifier = notifier
        self.config = config
        self.policy = PollPolicy(
            interval_seconds=config.poll_interval_seconds,
            max_attempts=config.max_poll_attempts
        )
        self.sleep = sleep
        self.clock = clock
        self.state = PaymentState.IDLE

    @property
    def currency(self) -> str:
        return self.session.network.currency_symbol

    async def execute(self, cancel_token: Optional[CancellationToken] = None) -> PaymentResult:
        """Run one payment attempt to a terminal state.

        Args:
            cancel_token: Optional token checked between receipt lookups

        Returns:
            PaymentResult; success is True only when a receipt with a
            success status was observed

        Raises:
            sqlite3.Error: If a confirmed payment cannot be written to the
                history store; the record stays pending and the balance is
                not debited
        """
        self.state = PaymentState.IDLE
        session = self.session
        fee = self.config.fee

        if not session.connected or not session.address:
            return self._reject(
                FailureReason.WALLET_NOT_CONNECTED, "Wallet is not connected"
            )

        if session.balance < fee:
            message = (
                f"Insufficient {self.currency} balance: at least {fee:g} "
                f"{self.currency} is required per search"
            )
            self._emit(events.ERROR, (
                f"Payment failed: insufficient funds ({session.balance:g} "
                f"{self.currency}). User: {session.address}"
            ))
            return self._reject(FailureReason.INSUFFICIENT_FUNDS, message)

        try:
            tx_hash = await session.send_value_transfer(
                session.address,
                self.config.recipient,
                units_to_wei(fee, session.network.currency_decimals),
                self.config.gas_limit
            )
        except TransferRejected as e:
            self._emit(events.ERROR, f"Payment failed: {e}. User: {session.address}",
                       error_details=repr(e))
            return self._reject(FailureReason.TRANSFER_REJECTED, str(e))

        self.state = PaymentState.SUBMITTED
        record = self.store.append_payment(PaymentRecord(
            id=self.store.new_id(),
            timestamp=self.clock().isoformat(),
            amount=fee,
            tx_hash=tx_hash,
        ))
        logger.info(f"Payment submitted: {fee:g} {self.currency}, tx {tx_hash}")
        self._emit(events.PAYMENT,
                   f"Payment initiated: {fee:g} {self.currency} sent for search",
                   tx_hash=tx_hash)

        self.state = PaymentState.POLLING
        try:
            confirmation = await wait_for_receipt(
                session.get_receipt, tx_hash, self.policy, self.sleep, cancel_token
            )
        except Exception as e:
            return self._fail(record, FailureReason.PROVIDER_ERROR,
                              f"Receipt lookup failed: {e}", repr(e))

        if confirmation.status != ConfirmationStatus.CONFIRMED:
            reason, message = _CONFIRMATION_FAILURES[confirmation.status]
            return self._fail(record, reason, message)

        try:
            self.store.update_payment_status(record.id, PaymentStatus.CONFIRMED)
        except sqlite3.Error as e:
            logger.error(f"Payment {tx_hash} confirmed on-chain but could not be recorded: {e}")
            raise
        session.debit(fee)
        self.state = PaymentState.CONFIRMED
        logger.info(
            f"Payment confirmed after {confirmation.attempts} lookup(s): {tx_hash}"
        )
        self._emit(events.PAYMENT_CONFIRMED,
                   f"Payment confirmed: {fee:g} {self.currency} transferred",
                   tx_hash=tx_hash)
        return PaymentResult(success=True, tx_hash=tx_hash)

    def _reject(self, reason: FailureReason, message: str) -> PaymentResult:
        """Fail before anything was submitted; nothing is recorded."""
        self.state = PaymentState.FAILED
        logger.error(f"Payment not attempted ({reason.value}): {message}")
        return PaymentResult(success=False, reason=reason, message=message)

    def _fail(
        self,
        record: PaymentRecord,
        reason: FailureReason,
        message: str,
        error_details: Optional[str] = None
    ) -> PaymentResult:
        current = self.store.get_payment(record.id)
        if current is not None and current.status == PaymentStatus.PENDING:
            self.store.update_payment_status(record.id, PaymentStatus.FAILED)
        self.state = PaymentState.FAILED
        logger.error(f"Payment {record.tx_hash} failed ({reason.value}): {message}")
        self._emit(events.ERROR,
                   f"Payment failed: {message}. User: {self.session.address}",
                   tx_hash=record.tx_hash, error_details=error_details)
        return PaymentResult(success=False, tx_hash=record.tx_hash,
                             reason=reason, message=message)

    def _emit(
        self,
        event_type: str,
        message: str,
        tx_hash: Optional[str] = None,
        error_details: Optional[str] = None
    ) -> None:
        self.notifier.notify(NotificationEvent(
            type=event_type,
            message=message,
            tx_hash=tx_hash,
            user_address=self.session.address,
            error_details=error_details,
        ))
