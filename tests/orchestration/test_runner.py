"""
Tests for ChainRunner batch and single-symbol flows.
"""

import asyncio
import json
from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest

from chainwatch.config.exchange_config import nse_defaults
from chainwatch.core.errors import DateArithmeticError, RetriesExhausted, TransportError
from chainwatch.core.models import ContractInfo, OptionChainSnapshot, Security
from chainwatch.data.cache import ResultCache
from chainwatch.data.snapshot_writer import SnapshotWriter
from chainwatch.exchanges.nse import NseAdapter
from chainwatch.orchestration.runner import ChainRunner
from tests.fixtures.chain_fixtures import make_chain, make_side, make_strike

STRIKES = (90, 95, 100, 105, 110)
EXPIRIES = ("23-Dec-2025", "30-Dec-2025")


def quiet_snapshot(symbol: str, expiry: str) -> OptionChainSnapshot:
    """Chain with healthy premiums and flat OI: no rule fires."""
    return OptionChainSnapshot(
        symbol=symbol,
        timestamp="15-Dec-2025 10:00:00",
        underlying_value=100.0,
        records=make_chain(STRIKES, ltp=50.0),
        expiry=expiry,
    )


def alerting_snapshot(symbol: str, expiry: str) -> OptionChainSnapshot:
    snapshot = quiet_snapshot(symbol, expiry)
    records = list(snapshot.records)
    records[2] = make_strike(
        100,
        ce=make_side(oi=5000, ltp=50.0, pchange_in_oi=1500.0),
        pe=make_side(ltp=50.0),
    )
    snapshot.records = records
    return snapshot


def quiet_chain(security, expiry):
    return quiet_snapshot(security.symbol, expiry)


def alerting_chain(security, expiry):
    return alerting_snapshot(security.symbol, expiry)


def mock_client(securities, chain):
    client = MagicMock()
    client.adapter = NseAdapter()
    client.name = "nse"
    client.fetch_ticker_list = AsyncMock(return_value=securities)
    client.fetch_contract_info = AsyncMock(
        side_effect=lambda symbol: ContractInfo(symbol=symbol, expiry_dates=EXPIRIES)
    )
    client.fetch_option_chain = AsyncMock(side_effect=chain)
    return client


@pytest.fixture
def securities():
    return [
        Security.equity("RELIANCE"),
        Security.equity("TCS"),
        Security.equity("INFY"),
        Security.index("NIFTY"),
    ]


class TestRunBatch:
    @pytest.mark.asyncio
    async def test_summary_counts_and_alerts(self, market_clock, securities, tmp_path):
        async def chain(security, expiry):
            if security.symbol == "TCS":
                raise RetriesExhausted(3, TransportError("HTTP 503", 503))
            if security.symbol == "RELIANCE":
                return alerting_snapshot(security.symbol, expiry)
            return quiet_snapshot(security.symbol, expiry)

        runner = ChainRunner(
            mock_client(securities, chain),
            nse_defaults(),
            writer=SnapshotWriter(tmp_path),
            clock=market_clock,
        )
        summary = await runner.run_batch()

        assert summary.total == 4
        assert summary.succeeded == 3
        assert summary.failed == 1
        assert summary.timed_out == 0
        assert "TCS" in summary.errors
        assert [o.symbol for o in summary.rules_output] == ["RELIANCE"]
        assert summary.alerts == len(summary.rules_output[0].alerts)
        assert summary.to_dict()["success"] == 3

    @pytest.mark.asyncio
    async def test_writes_processed_files_and_rules(self, market_clock, securities, tmp_path):
        async def chain(security, expiry):
            if security.symbol == "RELIANCE":
                return alerting_snapshot(security.symbol, expiry)
            return quiet_snapshot(security.symbol, expiry)

        runner = ChainRunner(
            mock_client(securities, chain),
            nse_defaults(),
            writer=SnapshotWriter(tmp_path),
            clock=market_clock,
        )
        await runner.run_batch()

        processed = sorted(p.name for p in (tmp_path / "processed_data").iterdir())
        assert processed == ["INFY.json", "NIFTY.json", "RELIANCE.json", "TCS.json"]

        reliance = json.loads((tmp_path / "processed_data" / "RELIANCE.json").read_text())
        assert reliance["record"]["spread"] == 5.0
        assert reliance["record"]["days_to_expiry"] == 8
        assert len(reliance["data"]) == len(STRIKES)

        rules = json.loads((tmp_path / "batch_rules.json").read_text())
        assert [r["symbol"] for r in rules] == ["RELIANCE"]
        assert rules[0]["alerts"][0]["alertType"] == "HUGE_OI_INCREASE"

    @pytest.mark.asyncio
    async def test_empty_rules_file_when_nothing_fires(self, market_clock, securities, tmp_path):
        runner = ChainRunner(
            mock_client(securities, quiet_chain),
            nse_defaults(),
            writer=SnapshotWriter(tmp_path),
            clock=market_clock,
        )
        summary = await runner.run_batch()

        assert summary.alerts == 0
        assert json.loads((tmp_path / "batch_rules.json").read_text()) == []

    @pytest.mark.asyncio
    async def test_processing_error_counts_as_failure(self, market_clock, securities):
        def chain(security, expiry):
            if security.symbol == "INFY":
                return quiet_snapshot(security.symbol, "01-Dec-2025")
            return quiet_snapshot(security.symbol, expiry)

        runner = ChainRunner(mock_client(securities, chain), nse_defaults(), clock=market_clock)
        summary = await runner.run_batch()

        assert summary.succeeded == 3
        assert summary.failed == 1
        assert "INFY" in summary.errors

    @pytest.mark.asyncio
    async def test_deadline_counts_timeouts_in_ci(self, market_clock, securities):
        async def chain(security, expiry):
            if security.symbol == "INFY":
                await asyncio.sleep(10)
            return quiet_snapshot(security.symbol, expiry)

        config = replace(nse_defaults(), batch_timeout=0.2)
        runner = ChainRunner(mock_client(securities, chain), config, ci=True, clock=market_clock)
        summary = await runner.run_batch()

        assert summary.succeeded == 3
        assert summary.timed_out == 1
        assert summary.failed == 0

    @pytest.mark.asyncio
    async def test_symbol_filter(self, market_clock, securities):
        client = mock_client(securities, quiet_chain)
        runner = ChainRunner(client, nse_defaults(), clock=market_clock)
        summary = await runner.run_batch(symbols=["nifty", "tcs"])

        assert summary.total == 2
        fetched = sorted(call.args[0].symbol for call in client.fetch_option_chain.await_args_list)
        assert fetched == ["NIFTY", "TCS"]


class TestRunSingle:
    @pytest.mark.asyncio
    async def test_single_uses_cache(self, market_clock):
        client = mock_client([], alerting_chain)
        runner = ChainRunner(client, nse_defaults(), cache=ResultCache(ttl=300), clock=market_clock)

        first = await runner.run_single("NIFTY")
        second = await runner.run_single("NIFTY")

        assert client.fetch_option_chain.await_count == 1
        assert runner.cache.hits == 1
        assert first.expiry == "23-Dec-2025"
        assert second.to_dict()["alerts"] == first.to_dict()["alerts"]
        assert first.rules is not None

    @pytest.mark.asyncio
    async def test_single_pinned_expiry(self, market_clock):
        client = mock_client([], quiet_chain)
        runner = ChainRunner(client, nse_defaults(), clock=market_clock)

        analysis = await runner.run_single("RELIANCE", expiry="30-Dec-2025")

        assert analysis.expiry == "30-Dec-2025"
        assert analysis.rules is None
        assert analysis.to_dict()["alerts"] == []
        client.fetch_contract_info.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_single_surfaces_errors(self, market_clock):
        client = mock_client([], lambda security, expiry: quiet_snapshot(security.symbol, "01-Dec-2025"))
        runner = ChainRunner(client, nse_defaults(), clock=market_clock)

        with pytest.raises(DateArithmeticError):
            await runner.run_single("NIFTY", expiry="30-Dec-2025")
