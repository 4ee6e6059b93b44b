"""
Tests for the command line entry point.
"""

import json

import httpx
import pytest

from chainwatch import cli
from chainwatch.client.exchange_client import create_client
from chainwatch.config.exchange_config import AppConfig
from tests.fixtures.chain_fixtures import nse_chain_payload

ENV_VARS = (
    "CHAINWATCH_MODE",
    "CHAINWATCH_EXCHANGE",
    "CHAINWATCH_LOG_LEVEL",
    "CHAINWATCH_LOG_FILE",
    "CHAINWATCH_OUTPUT_DIR",
    "CHAINWATCH_SYMBOL",
    "CHAINWATCH_EXPIRY",
    "CHAINWATCH_CACHE_TTL",
    "NSE_MAX_CONCURRENT",
    "CI",
    "GITHUB_ACTIONS",
)


@pytest.fixture
def clean_env(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


class TestArgs:
    def test_defaults_leave_config_untouched(self):
        config = AppConfig(exchange="mcx", output_dir="out")
        assert cli.apply_args(config, cli.parse_args([])) == config

    def test_flags_override_config(self):
        args = cli.parse_args([
            "--mode", "single",
            "--exchange", "mcx",
            "--symbol", "GOLD",
            "--expiry", "05FEB2026",
            "--ci",
            "--verbose",
        ])
        config = cli.apply_args(AppConfig(), args)

        assert config.mode == "single"
        assert config.exchange == "mcx"
        assert config.symbol == "GOLD"
        assert config.expiry == "05FEB2026"
        assert config.ci is True
        assert config.log_level == "DEBUG"

    def test_rejects_unknown_exchange(self):
        with pytest.raises(SystemExit):
            cli.parse_args(["--exchange", "bse"])


class TestMain:
    @pytest.mark.asyncio
    async def test_invalid_config_exits_2(self, clean_env):
        assert await cli.main(["--mode", "single"]) == 2

    @pytest.mark.asyncio
    async def test_missing_config_file_exits_2(self, clean_env, tmp_path):
        assert await cli.main(["--config", str(tmp_path / "nope.yaml")]) == 2

    @pytest.mark.asyncio
    async def test_single_mode_reports_error_as_json(self, clean_env, monkeypatch, capsys):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/option-chain-v3":
                return httpx.Response(200, json=nse_chain_payload())
            return httpx.Response(200, text="<html></html>")

        async def no_sleep(delay: float) -> None:
            return None

        def mock_create_client(exchange, config, ci=False):
            return create_client(exchange, config, ci=ci, transport=httpx.MockTransport(handler), sleep=no_sleep)

        monkeypatch.setattr(cli, "create_client", mock_create_client)

        # A long-expired contract cannot be processed
        code = await cli.main(["--mode", "single", "--symbol", "NIFTY", "--expiry", "02-Jan-2020"])

        assert code == 1
        output = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert output["symbol"] == "NIFTY"
        assert output["error_type"]
