"""
Tests for configuration loading and environment overrides.
"""

from datetime import time

import pytest
import yaml

from chainwatch.config import AppConfig, load_config
from chainwatch.config.loader import clamp_concurrency, is_ci_environment, merge_config_with_env


class TestDefaults:
    def test_exchange_defaults(self):
        config = AppConfig()

        assert config.nse.concurrency() == 10
        assert config.nse.concurrency(ci=True) == 15
        assert config.mcx.concurrency() == 3
        assert config.mcx.concurrency(ci=True) == 2
        assert config.nse.cutoff_time() == time(15, 30)
        assert config.mcx.cutoff_time() == time(17, 0)

    def test_deadline_only_in_ci(self):
        config = AppConfig()

        assert config.nse.deadline() is None
        assert config.nse.deadline(ci=True) == 750.0
        assert config.mcx.deadline(ci=True) == 300.0

    def test_ci_retry_policy(self):
        policy = AppConfig().nse.retry_policy(ci=True)

        assert policy.base_delay == pytest.approx(0.18)
        assert policy.max_delay == 2.0
        assert policy.max_attempts == 3

    def test_exchanges_both(self):
        config = AppConfig(exchange="both")
        assert [c.name for c in config.exchanges()] == ["nse", "mcx"]


class TestEnvironment:
    def test_is_ci_environment(self):
        assert is_ci_environment({"CI": "true"})
        assert is_ci_environment({"GITHUB_ACTIONS": "1"})
        assert not is_ci_environment({"CI": "false"})
        assert not is_ci_environment({})

    def test_env_overrides(self):
        merged = merge_config_with_env(
            {"mode": "batch"},
            {
                "CHAINWATCH_MODE": "Single",
                "CHAINWATCH_EXCHANGE": "MCX",
                "CHAINWATCH_SYMBOL": "CRUDEOIL",
                "CHAINWATCH_CACHE_TTL": "60",
            },
        )

        assert merged["mode"] == "single"
        assert merged["exchange"] == "mcx"
        assert merged["symbol"] == "CRUDEOIL"
        assert merged["cache_ttl"] == 60.0

    def test_concurrency_override_sets_both_caps(self):
        config = load_config(environ={"NSE_MAX_CONCURRENT": "20"})

        assert config.nse.concurrency() == 20
        assert config.nse.concurrency(ci=True) == 20
        assert config.mcx.concurrency() == 3

    @pytest.mark.parametrize("raw,expected", [("0", 1), ("-4", 1), ("500", 50), ("7", 7)])
    def test_concurrency_is_clamped(self, raw, expected):
        config = load_config(environ={"NSE_MAX_CONCURRENT": raw})
        assert config.nse.concurrency() == expected

    def test_non_integer_concurrency_ignored(self):
        config = load_config(environ={"NSE_MAX_CONCURRENT": "lots"})
        assert config.nse.concurrency() == 10

    def test_clamp_concurrency(self):
        assert clamp_concurrency(0) == 1
        assert clamp_concurrency(51) == 50

    def test_ci_flag(self):
        assert load_config(environ={"GITHUB_ACTIONS": "true"}).ci is True
        assert load_config(environ={}).ci is False


class TestYamlFile:
    def test_partial_exchange_overlay(self, tmp_path):
        path = tmp_path / "chainwatch.yaml"
        path.write_text(yaml.safe_dump({
            "exchange": "both",
            "output_dir": "out",
            "mcx": {"max_concurrent": 4, "retry": {"max_attempts": 5}},
        }))

        config = load_config(str(path), environ={})

        assert config.exchange == "both"
        assert config.output_dir == "out"
        assert config.mcx.max_concurrent == 4
        assert config.mcx.retry.max_attempts == 5
        assert config.mcx.retry.base_delay == 0.3
        assert config.mcx.ci_max_concurrent == 2

    def test_env_beats_file(self, tmp_path):
        path = tmp_path / "chainwatch.yaml"
        path.write_text(yaml.safe_dump({"exchange": "mcx"}))

        config = load_config(str(path), environ={"CHAINWATCH_EXCHANGE": "nse"})
        assert config.exchange == "nse"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"), environ={})

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "chainwatch.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ValueError):
            load_config(str(path), environ={})


class TestValidation:
    def test_invalid_mode(self):
        with pytest.raises(ValueError, match="Invalid mode"):
            load_config(environ={"CHAINWATCH_MODE": "stream"})

    def test_single_needs_symbol(self):
        with pytest.raises(ValueError, match="needs a symbol"):
            load_config(environ={"CHAINWATCH_MODE": "single"})

    def test_single_rejects_both(self):
        errors = AppConfig(mode="single", exchange="both", symbol="NIFTY").validate()
        assert any("one exchange" in e for e in errors)

    def test_validation_can_be_deferred(self):
        config = load_config(environ={"CHAINWATCH_MODE": "single"}, validate=False)
        assert config.mode == "single"

    def test_invalid_cutoff(self):
        config = AppConfig()
        config.nse.expiry_cutoff = "25:99"
        assert any("expiry_cutoff" in e for e in config.validate())
