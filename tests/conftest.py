"""
Shared fakes and fixtures for Paid Search tests.
"""

import json
from typing import Any, Dict, List, Optional

import httpx
import pytest

from paid_search.config.loader import NetworkConfig, PaymentConfig
from paid_search.core.orchestrator import SearchOrchestrator
from paid_search.core.payment import PaymentExecutor
from paid_search.services.notifier import Notifier
from paid_search.services.search_client import SearchClient
from paid_search.storage.history import HistoryStore
from paid_search.wallet.provider import UNRECOGNIZED_CHAIN, ProviderRpcError, WalletProvider
from paid_search.wallet.session import WalletSession

ADDRESS = "0x1111111111111111111111111111111111111111"
RECIPIENT = "0x2222222222222222222222222222222222222222"
TX_HASH = "0x" + "ab" * 32
WEI = 10 ** 18


class FakeWalletProvider(WalletProvider):
    """In-memory wallet with scripted answers and a call log.

    receipts is consumed one entry per lookup; once exhausted every
    further lookup returns None (not yet mined).
    """

    def __init__(
        self,
        accounts: Optional[List[str]] = None,
        balance_wei: int = 10 * WEI,
        chain_id: int = 10143,
        receipts: Optional[List[Optional[Dict[str, Any]]]] = None,
        tx_hash: str = TX_HASH,
    ):
        self.accounts = [ADDRESS] if accounts is None else accounts
        self.balance_wei = balance_wei
        self.chain_id = chain_id
        self.known_chains = {chain_id}
        self.receipts = list(receipts or [])
        self.tx_hash = tx_hash
        self.accounts_error: Optional[ProviderRpcError] = None
        self.switch_error: Optional[ProviderRpcError] = None
        self.add_error: Optional[ProviderRpcError] = None
        self.balance_error: Optional[Exception] = None
        self.send_error: Optional[Exception] = None
        self.receipt_error: Optional[Exception] = None
        self.calls: List[tuple] = []

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    async def request_accounts(self) -> List[str]:
        self.calls.append(("request_accounts",))
        if self.accounts_error:
            raise self.accounts_error
        return list(self.accounts)

    async def switch_chain(self, chain_id: int) -> None:
        self.calls.append(("switch_chain", chain_id))
        if self.switch_error:
            raise self.switch_error
        if chain_id not in self.known_chains:
            raise ProviderRpcError(UNRECOGNIZED_CHAIN, "Unrecognized chain ID")
        self.chain_id = chain_id

    async def add_chain(self, network: NetworkConfig) -> None:
        self.calls.append(("add_chain", network))
        if self.add_error:
            raise self.add_error
        self.known_chains.add(network.chain_id)
        self.chain_id = network.chain_id

    async def get_balance(self, address: str) -> int:
        self.calls.append(("get_balance", address))
        if self.balance_error:
            raise self.balance_error
        return self.balance_wei

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        self.calls.append(("send_transaction", tx))
        if self.send_error:
            raise self.send_error
        return self.tx_hash

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        self.calls.append(("get_transaction_receipt", tx_hash))
        if self.receipt_error:
            raise self.receipt_error
        if self.receipts:
            return self.receipts.pop(0)
        return None


class RecordingSleep:
    """Stand-in for asyncio.sleep that returns immediately."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class RecordingSink:
    """Notification sink that keeps every payload it is sent."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.payloads: List[Dict[str, Any]] = []

    async def send(self, payload: Dict[str, Any]) -> None:
        self.payloads.append(payload)
        if self.fail:
            raise httpx.ConnectError("sink unreachable")

    @property
    def types(self) -> List[str]:
        return [p["type"] for p in self.payloads]


def success_receipt(block: int = 1) -> Dict[str, Any]:
    return {"status": 1, "blockNumber": block, "transactionHash": TX_HASH}


def reverted_receipt() -> Dict[str, Any]:
    return {"status": 0, "blockNumber": 1, "transactionHash": TX_HASH}


def json_handler(status_code: int, body: Any, seen: Optional[list] = None):
    """MockTransport handler answering every request with a fixed JSON body."""
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(json.loads(request.content))
        return httpx.Response(status_code, json=body)
    return handler


@pytest.fixture
def store(tmp_path):
    return HistoryStore(str(tmp_path / "history.db"))


@pytest.fixture
def payment_config():
    return PaymentConfig(recipient=RECIPIENT)


@pytest.fixture
def make_orchestrator(store, payment_config):
    """Factory building a fully wired orchestrator around fakes."""
    def _make(
        provider: Optional[WalletProvider] = None,
        sink: Optional[RecordingSink] = None,
        handler=None,
        sleep: Optional[RecordingSleep] = None,
    ) -> SearchOrchestrator:
        provider = provider if provider is not None else FakeWalletProvider()
        sink = sink if sink is not None else RecordingSink()
        handler = handler or json_handler(200, {"List": {}})
        sleep = sleep or RecordingSleep()

        session = WalletSession(provider, NetworkConfig(), payment_config.fallback_balance)
        notifier = Notifier(sink, store)
        executor = PaymentExecutor(session, store, notifier, payment_config, sleep=sleep)
        client = SearchClient(
            "http://search.test/api/search",
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        return SearchOrchestrator(session, executor, client, store, notifier)
    return _make
