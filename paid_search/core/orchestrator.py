"""
Search orchestrator.

Top-level entry point: validates the query, pays for it, and only after a
confirmed payment calls the search endpoint and records the outcome.

Callers must not run two searches at once; the orchestrator does not
serialize invocations itself.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from loguru import logger

from ..config.loader import AppConfig
from ..services import notifier as events
from ..services.notifier import HttpNotificationSink, NotificationEvent, Notifier
from ..services.search_client import SearchClient, SearchResponse
from ..storage.history import HistoryStore
from ..storage.models import RequestRecord, RequestStatus, utc_now
from ..wallet.provider import WalletProvider
from ..wallet.session import WalletSession
from .confirmation import CancellationToken, Sleeper
from .errors import EndpointError, ProviderError, ValidationError
from .payment import PaymentExecutor, PaymentResult

DEFAULT_LIMIT = 100
DEFAULT_LANGUAGE = "ru"


def parse_limit(value: Any, default: int = DEFAULT_LIMIT) -> int:
    """Interpret a user-supplied limit as a positive integer.

    Non-numeric input yields the default; values below 1 clamp to 1.
    """
    try:
        limit = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default
    return max(1, limit)


@dataclass(frozen=True)
class SearchOutcome:
    """What the caller displays after a search attempt."""
    success: bool
    response: Optional[SearchResponse] = None
    error: Optional[str] = None
    payment: Optional[PaymentResult] = None
    record: Optional[RequestRecord] = None

    def __bool__(self) -> bool:
        return self.success


class SearchOrchestrator:
    """Owns the wallet session and both history logs for the process."""

    def __init__(
        self,
        session: WalletSession,
        executor: PaymentExecutor,
        search_client: SearchClient,
        store: HistoryStore,
        notifier: Notifier,
        clock: Callable[[], datetime] = utc_now
    ):
        self.session = session
        self.executor = executor
        self.search_client = search_client
        self.store = store
        self.notifier = notifier
        self.clock = clock

    @property
    def fee(self) -> float:
        return self.executor.config.fee

    async def connect(self) -> str:
        """Connect the wallet, select the target network and read the balance.

        Returns:
            The connected address

        Raises:
            ProviderError: If connecting or switching network fails; the
                session is left disconnected
        """
        address = await self.session.connect()
        try:
            await self.session.ensure_network()
        except ProviderError:
            self.session.disconnect()
            raise
        reading = await self.session.refresh_balance()
        logger.info(
            f"Connected to {self.session.network.chain_name} as {address}, "
            f"balance {reading.amount:g} {self.session.network.currency_symbol}"
            + ("" if reading.verified else " (unverified)")
        )
        self.notifier.notify(NotificationEvent(
            type=events.CONNECTION,
            message=f"Wallet connected: {address}",
            user_address=address,
        ))
        return address

    def _validate(self, query: str) -> str:
        if not query or not query.strip():
            raise ValidationError("Please enter a search query")
        if not self.session.connected or not self.session.address:
            raise ValidationError("Please connect your wallet first")
        return query

    async def search(
        self,
        query: str,
        limit: Any = DEFAULT_LIMIT,
        language: str = DEFAULT_LANGUAGE,
        wallet_address: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> SearchOutcome:
        """Pay the fixed fee, then run the query.

        Args:
            query: Search text (required)
            limit: Maximum records per data source; non-numeric means 100
            language: Response language code
            wallet_address: Address reported to the endpoint; defaults to
                the connected address
            cancel_token: Optional token forwarded to confirmation polling

        Returns:
            SearchOutcome carrying the response or a displayable error

        Raises:
            ValidationError: If the query is empty or no wallet is connected;
                nothing is paid or recorded in that case
        """
        self._validate(query)
        limit = parse_limit(limit)
        address = wallet_address or self.session.address

        payment = await self.executor.execute(cancel_token)
        if not payment.success:
            return SearchOutcome(success=False, error=payment.message, payment=payment)

        try:
            response = await self.search_client.search(query, limit, language, address)
        except EndpointError as e:
            record = self._record(query, 0, RequestStatus.ERROR, str(e))
            logger.error(f"Search failed for '{query}': {e}")
            self.notifier.notify(NotificationEvent(
                type=events.API_ERROR,
                message=f"Search failed: {e}. Query: \"{query}\". User: {address}",
                user_address=address,
                error_details=repr(e),
            ))
            return SearchOutcome(success=False, error=str(e), payment=payment, record=record)

        count = response.source_count
        record = self._record(query, count, RequestStatus.SUCCESS)
        logger.info(f"Search for '{query}' returned {count} data source(s)")
        for source in response.sources.values():
            logger.debug(
                f"{source.name}: {source.description} ({len(source.records)} records)"
            )
        self.notifier.notify(NotificationEvent(
            type=events.API_SUCCESS,
            message=f"Search succeeded: {count} data source(s) found for \"{query}\"",
            user_address=address,
        ))
        return SearchOutcome(success=True, response=response, payment=payment, record=record)

    def _record(
        self,
        query: str,
        results: int,
        status: RequestStatus,
        error_message: Optional[str] = None
    ) -> RequestRecord:
        return self.store.append_request(RequestRecord(
            id=self.store.new_id(),
            timestamp=self.clock().isoformat(),
            query=query,
            cost=self.fee,
            results=results,
            status=status,
            error_message=error_message,
        ))

    def set_notifications(self, enabled: bool) -> None:
        self.notifier.set_enabled(enabled)

    def toggle_notifications(self) -> bool:
        enabled = not self.notifier.enabled
        self.notifier.set_enabled(enabled)
        return enabled

    async def aclose(self) -> None:
        """Flush pending notifications and close HTTP clients."""
        await self.notifier.flush()
        await self.search_client.aclose()
        sink_close = getattr(self.notifier.sink, "aclose", None)
        if sink_close is not None:
            await sink_close()


def create_orchestrator(
    config: AppConfig,
    provider: Optional[WalletProvider],
    store: Optional[HistoryStore] = None,
    sleep: Sleeper = asyncio.sleep
) -> SearchOrchestrator:
    """Wire a complete orchestrator from configuration.

    Args:
        config: Application configuration
        provider: Wallet provider, or None when no wallet is available
        store: History store; opened from config.storage.db_path if omitted
        sleep: Delay used between receipt lookups

    Returns:
        Ready-to-connect SearchOrchestrator
    """
    store = store or HistoryStore(config.storage.db_path)
    session = WalletSession(provider, config.network, config.payment.fallback_balance)
    notifier = Notifier(
        HttpNotificationSink(config.endpoints.notifications_url)
        if config.endpoints.notifications_url else None,
        store
    )
    executor = PaymentExecutor(session, store, notifier, config.payment, sleep=sleep)
    search_client = SearchClient(
        config.endpoints.search_url, timeout=config.endpoints.timeout_seconds
    )
    return SearchOrchestrator(session, executor, search_client, store, notifier)
