"""Tests for the confirmation poller."""

from __future__ import annotations

import time

import pytest

from conduit_finality.chain.router import DualChannelRouter
from conduit_finality.chain.rpc.client import JsonRpcClient
from conduit_finality.config.settings import PollerConfig
from conduit_finality.errors.chain_errors import ReceiptTimeoutError, RPCError, TransactionFailedError
from conduit_finality.errors.finality_errors import ConfigurationError, ErrorKind
from conduit_finality.metrics.collector import FinalityMetrics
from conduit_finality.transactions.models import ReceiptStatus
from conduit_finality.transactions.poller import ConfirmationPoller

TX = "0xconfirmed"


def _poller(router, interval: float = 0.01, **kwargs) -> ConfirmationPoller:
    return ConfirmationPoller(router, PollerConfig(interval=interval), **kwargs)


class TestWaitForReceipt:
    async def test_mined_after_pending_attempts(self, router, read_channel, ledger):
        read_channel.responses["eth_getTransactionReceipt"] = [None, None, ledger.receipt(TX, status=1, block=120)]
        receipt = await _poller(router).wait_for_receipt(TX, 1_000)
        assert receipt.status is ReceiptStatus.SUCCESS
        assert receipt.block_number == 120
        assert receipt.hash == TX
        assert read_channel.count("eth_getTransactionReceipt") == 3

    async def test_failed_receipt_returned(self, router, read_channel, ledger):
        read_channel.responses["eth_getTransactionReceipt"] = ledger.receipt(TX, status=0)
        receipt = await _poller(router).wait_for_receipt(TX, 1_000)
        assert receipt.status is ReceiptStatus.FAILURE
        assert not receipt.succeeded

    async def test_failed_receipt_raises_when_asked(self, router, read_channel, ledger):
        read_channel.responses["eth_getTransactionReceipt"] = ledger.receipt(TX, status=0, block=5)
        with pytest.raises(TransactionFailedError) as exc_info:
            await _poller(router).wait_for_receipt(TX, 1_000, raise_on_failure=True)
        assert exc_info.value.block_number == 5
        assert exc_info.value.kind is ErrorKind.BUSINESS

    async def test_timeout_raises_distinct_error(self, router, read_channel):
        with pytest.raises(ReceiptTimeoutError) as exc_info:
            await _poller(router).wait_for_receipt(TX, 50)
        err = exc_info.value
        assert err.kind is ErrorKind.TIMEOUT
        assert err.tx_hash == TX
        assert 1 <= err.attempts <= 5

    async def test_timeout_does_not_overrun_deadline(self, router, read_channel):
        interval = 0.05
        start = time.monotonic()
        with pytest.raises(ReceiptTimeoutError):
            await _poller(router, interval=interval).wait_for_receipt(TX, 120)
        assert time.monotonic() - start < 0.12 + interval + 0.05

    async def test_attempts_bounded(self, router, read_channel):
        poller = _poller(router, interval=0.01)
        with pytest.raises(ReceiptTimeoutError):
            await poller.wait_for_receipt(TX, 40)
        assert read_channel.count("eth_getTransactionReceipt") <= poller.max_attempts(40)

    async def test_transient_errors_count_as_pending(self, router, read_channel, ledger):
        read_channel.responses["eth_getTransactionReceipt"] = [RPCError("flaky"), ledger.receipt(TX)]
        receipt = await _poller(router).wait_for_receipt(TX, 1_000)
        assert receipt.succeeded

    async def test_only_read_channel_used(self, router, read_channel, wallet, ledger):
        wallet.connected = False
        read_channel.responses["eth_getTransactionReceipt"] = ledger.receipt(TX)
        await _poller(router).wait_for_receipt(TX, 1_000)
        assert wallet.calls == []

    async def test_default_timeout_from_config(self, router, read_channel, ledger):
        read_channel.responses["eth_getTransactionReceipt"] = ledger.receipt(TX)
        poller = ConfirmationPoller(router, PollerConfig(interval=0.01, timeout_ms=500))
        assert (await poller.wait_for_receipt(TX)).succeeded

    async def test_unconnected_read_channel_fails_fast(self):
        start = time.monotonic()
        router = DualChannelRouter(JsonRpcClient("https://rpc.test"))
        with pytest.raises(ConfigurationError):
            await _poller(router, interval=0.05).wait_for_receipt(TX, 5_000)
        assert time.monotonic() - start < 0.05

    async def test_metrics_observed(self, router, read_channel, ledger):
        metrics = FinalityMetrics()
        read_channel.responses["eth_getTransactionReceipt"] = ledger.receipt(TX)
        await _poller(router, metrics=metrics).wait_for_receipt(TX, 1_000)
        assert metrics.registry.get_sample_value("conduit_receipt_wait_histogram_count") == 1.0


class TestMaxAttempts:
    def test_at_least_one(self, router):
        assert _poller(router, interval=2.0).max_attempts(0) == 1

    def test_timeout_over_interval(self, router):
        assert _poller(router, interval=2.0).max_attempts(120_000) == 60
