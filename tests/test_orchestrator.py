"""
Unit tests for the search orchestrator.
"""

import asyncio

import httpx
import pytest

from conftest import (
    ADDRESS,
    FakeWalletProvider,
    RecordingSink,
    json_handler,
    reverted_receipt,
    success_receipt,
)
from paid_search.core.errors import FailureReason, NetworkSwitchFailed, ValidationError
from paid_search.core.orchestrator import parse_limit
from paid_search.storage.models import PaymentStatus, RequestStatus
from paid_search.wallet.provider import USER_REJECTED, ProviderRpcError

TWO_SOURCES = {
    "List": {
        "db1": {"InfoLeak": "x", "Data": [{"a": 1}]},
        "db2": {"InfoLeak": "y", "Data": []},
    }
}


def _connect_and_search(orchestrator, query="foo", balance=None, **kwargs):
    async def _run():
        await orchestrator.connect()
        if balance is not None:
            orchestrator.session.balance = balance
        try:
            return await orchestrator.search(query, **kwargs)
        finally:
            await orchestrator.aclose()
    return asyncio.run(_run())


class TestParseLimit:

    @pytest.mark.parametrize("value, expected", [
        (50, 50), ("25", 25), ("7.9", 7), ("abc", 100), (None, 100), ("", 100),
        (0, 1), (-5, 1),
    ])
    def test_parse_limit(self, value, expected):
        assert parse_limit(value) == expected


class TestValidation:

    def test_empty_query_has_no_side_effects(self, make_orchestrator, store):
        provider = FakeWalletProvider()
        sink = RecordingSink()
        orchestrator = make_orchestrator(provider=provider, sink=sink)

        async def _run():
            await orchestrator.connect()
            with pytest.raises(ValidationError, match="search query"):
                await orchestrator.search("   ")
            await orchestrator.aclose()

        asyncio.run(_run())

        assert provider.count("send_transaction") == 0
        assert store.payments() == [] and store.requests() == []
        assert sink.types == ["connection"]

    def test_disconnected_wallet(self, make_orchestrator, store):
        provider = FakeWalletProvider()
        orchestrator = make_orchestrator(provider=provider)

        with pytest.raises(ValidationError, match="connect your wallet"):
            asyncio.run(orchestrator.search("foo"))

        assert provider.calls == []
        assert store.requests() == []

    def test_failed_network_switch_leaves_session_disconnected(self, make_orchestrator, store):
        provider = FakeWalletProvider()
        provider.switch_error = ProviderRpcError(USER_REJECTED, "User rejected the request")
        orchestrator = make_orchestrator(provider=provider)

        with pytest.raises(NetworkSwitchFailed):
            asyncio.run(orchestrator.connect())

        assert orchestrator.session.connected is False
        assert orchestrator.session.address is None
        with pytest.raises(ValidationError, match="connect your wallet"):
            asyncio.run(orchestrator.search("foo"))
        assert provider.count("send_transaction") == 0
        assert store.payments() == []


class TestSearchFlow:

    def test_insufficient_balance_scenario(self, make_orchestrator, store):
        seen = []
        provider = FakeWalletProvider()
        orchestrator = make_orchestrator(
            provider=provider, handler=json_handler(200, TWO_SOURCES, seen)
        )

        outcome = _connect_and_search(orchestrator, "foo", balance=0.5)

        assert outcome.success is False
        assert outcome.payment.reason == FailureReason.INSUFFICIENT_FUNDS
        assert provider.count("send_transaction") == 0
        assert seen == []
        assert store.requests() == []
        assert store.payments() == []

    def test_confirmed_on_third_poll_scenario(self, make_orchestrator, store):
        seen = []
        provider = FakeWalletProvider(receipts=[None, None, success_receipt()])
        orchestrator = make_orchestrator(
            provider=provider, handler=json_handler(200, TWO_SOURCES, seen)
        )

        outcome = _connect_and_search(orchestrator, "foo", limit="abc", language="en")

        assert outcome.success is True
        assert [p.status for p in store.payments()] == [PaymentStatus.CONFIRMED]
        assert orchestrator.session.balance == 9.0
        assert seen == [{
            "request": "foo", "limit": 100, "lang": "en", "userAddress": ADDRESS,
        }]

    def test_two_sources_recorded(self, make_orchestrator, store):
        provider = FakeWalletProvider(receipts=[success_receipt()])
        sink = RecordingSink()
        orchestrator = make_orchestrator(
            provider=provider, sink=sink, handler=json_handler(200, TWO_SOURCES)
        )

        outcome = _connect_and_search(orchestrator)

        [record] = store.requests()
        assert record.status == RequestStatus.SUCCESS
        assert record.results == 2
        assert record.cost == 1.0
        assert record.query == "foo"
        assert outcome.record == record
        assert outcome.response.sources["db1"].description == "x"
        assert outcome.response.sources["db1"].records == [{"a": 1}]
        assert outcome.response.sources["db2"].records == []
        assert sink.types[-1] == "api_success"

    def test_empty_mapping_is_success(self, make_orchestrator, store):
        provider = FakeWalletProvider(receipts=[success_receipt()])
        orchestrator = make_orchestrator(
            provider=provider, handler=json_handler(200, {"List": {}})
        )

        outcome = _connect_and_search(orchestrator)

        assert outcome.success is True
        [record] = store.requests()
        assert record.status == RequestStatus.SUCCESS
        assert record.results == 0

    def test_failed_payment_skips_search(self, make_orchestrator, store):
        seen = []
        provider = FakeWalletProvider(receipts=[reverted_receipt()])
        orchestrator = make_orchestrator(
            provider=provider, handler=json_handler(200, TWO_SOURCES, seen)
        )

        outcome = _connect_and_search(orchestrator)

        assert outcome.success is False
        assert outcome.error == "Transaction reverted on-chain"
        assert seen == []
        assert store.requests() == []
        assert [p.status for p in store.payments()] == [PaymentStatus.FAILED]

    def test_endpoint_error_recorded(self, make_orchestrator, store):
        provider = FakeWalletProvider(receipts=[success_receipt()])
        sink = RecordingSink()
        orchestrator = make_orchestrator(
            provider=provider, sink=sink,
            handler=json_handler(500, {"error": "Upstream unavailable"}),
        )

        outcome = _connect_and_search(orchestrator)

        assert outcome.success is False
        assert outcome.error == "Upstream unavailable"
        [record] = store.requests()
        assert record.status == RequestStatus.ERROR
        assert record.results == 0
        assert record.error_message == "Upstream unavailable"
        assert sink.types[-1] == "api_error"

    def test_malformed_body_after_payment_recorded(self, make_orchestrator, store):
        provider = FakeWalletProvider(receipts=[success_receipt()])
        sink = RecordingSink()
        orchestrator = make_orchestrator(
            provider=provider, sink=sink,
            handler=json_handler(200, {"List": {"db1": "oops"}}),
        )

        outcome = _connect_and_search(orchestrator)

        assert outcome.success is False
        assert "Malformed" in outcome.error
        assert [p.status for p in store.payments()] == [PaymentStatus.CONFIRMED]
        [record] = store.requests()
        assert record.status == RequestStatus.ERROR
        assert record.results == 0
        assert sink.types[-1] == "api_error"

    def test_transport_error_recorded(self, make_orchestrator, store):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = FakeWalletProvider(receipts=[success_receipt()])
        orchestrator = make_orchestrator(provider=provider, handler=handler)

        outcome = _connect_and_search(orchestrator)

        assert outcome.success is False
        assert "connection refused" in outcome.error
        assert [r.status for r in store.requests()] == [RequestStatus.ERROR]

    def test_explicit_wallet_address_sent(self, make_orchestrator):
        seen = []
        provider = FakeWalletProvider(receipts=[success_receipt()])
        orchestrator = make_orchestrator(
            provider=provider, handler=json_handler(200, {"List": {}}, seen)
        )

        _connect_and_search(orchestrator, wallet_address="0xother")

        assert seen[0]["userAddress"] == "0xother"


class TestNotifications:

    def test_disabled_notifications_send_nothing(self, make_orchestrator, store):
        store.set_notifications_enabled(False)
        sink = RecordingSink()
        provider = FakeWalletProvider(receipts=[success_receipt()])
        orchestrator = make_orchestrator(
            provider=provider, sink=sink,
            handler=json_handler(502, {"error": "bad gateway"}),
        )

        outcome = _connect_and_search(orchestrator)

        assert outcome.success is False
        assert sink.payloads == []

    def test_failing_sink_does_not_change_outcome(self, make_orchestrator, store):
        sink = RecordingSink(fail=True)
        provider = FakeWalletProvider(receipts=[success_receipt()])
        orchestrator = make_orchestrator(
            provider=provider, sink=sink, handler=json_handler(200, TWO_SOURCES)
        )

        outcome = _connect_and_search(orchestrator)

        assert outcome.success is True
        assert sink.types == ["connection", "payment", "payment_confirmed", "api_success"]
        assert [r.results for r in store.requests()] == [2]

    def test_toggle_persists(self, make_orchestrator, store):
        orchestrator = make_orchestrator()

        assert orchestrator.toggle_notifications() is False
        assert store.notifications_enabled is False
        orchestrator.set_notifications(True)
        assert store.notifications_enabled is True
