"""
Configuration Loader Module

Loads AppConfig from an optional YAML file and applies environment variable
overrides. This is the only place chainwatch reads the environment.
"""

import os
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from loguru import logger

from chainwatch.config.exchange_config import AppConfig

MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 50


def is_ci_environment(environ: Optional[Mapping[str, str]] = None) -> bool:
    """True when running under CI (CI or GITHUB_ACTIONS set to a truthy value)."""
    environ = os.environ if environ is None else environ
    return any(_truthy(environ.get(var)) for var in ("CI", "GITHUB_ACTIONS"))


def load_config(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    validate: bool = True,
) -> AppConfig:
    """
    Load configuration from YAML (if given) and environment variables.

    Args:
        path: Optional YAML config file
        environ: Environment mapping (defaults to os.environ)
        validate: Reject invalid settings (callers applying further overrides
            validate afterwards)

    Returns:
        AppConfig with env vars applied on top of file settings

    Raises:
        FileNotFoundError: If an explicit config path does not exist
        ValueError: If the resulting config is invalid
    """
    environ = os.environ if environ is None else environ
    config_data: dict[str, Any] = {}

    if path:
        config_file = Path(path)
        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_file}")
        with open(config_file, "r") as f:
            config_data = yaml.safe_load(f) or {}
        if not isinstance(config_data, dict):
            raise ValueError(f"Config file {config_file} must contain a mapping")
        logger.info(f"Loaded config from {config_file}")

    config_data = merge_config_with_env(config_data, environ)
    config = AppConfig.from_dict(config_data)

    errors = config.validate() if validate else []
    if errors:
        raise ValueError("Invalid configuration: " + "; ".join(errors))

    return config


def merge_config_with_env(
    config_data: dict[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> dict[str, Any]:
    """
    Merge configuration with environment variables.

    Environment variables override config file settings.

    Examples:
        CHAINWATCH_MODE=single
        CHAINWATCH_EXCHANGE=mcx
        NSE_MAX_CONCURRENT=20
        CI=true

    Args:
        config_data: Configuration data from file
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Merged configuration with env vars applied
    """
    environ = os.environ if environ is None else environ
    merged = dict(config_data)

    env_mapping = {
        "CHAINWATCH_MODE": "mode",
        "CHAINWATCH_EXCHANGE": "exchange",
        "CHAINWATCH_LOG_LEVEL": "log_level",
        "CHAINWATCH_LOG_FILE": "log_file",
        "CHAINWATCH_OUTPUT_DIR": "output_dir",
        "CHAINWATCH_SYMBOL": "symbol",
        "CHAINWATCH_EXPIRY": "expiry",
        "CHAINWATCH_CACHE_TTL": "cache_ttl",
    }

    for env_var, config_key in env_mapping.items():
        env_value = environ.get(env_var)
        if env_value is None:
            continue
        if config_key == "cache_ttl":
            merged[config_key] = float(env_value)
        elif config_key in ("mode", "exchange"):
            merged[config_key] = env_value.strip().lower()
        else:
            merged[config_key] = env_value
        logger.debug(f"Overriding {config_key} from env: {env_var}")

    if is_ci_environment(environ):
        merged["ci"] = True

    concurrency = environ.get("NSE_MAX_CONCURRENT")
    if concurrency is not None:
        try:
            value = clamp_concurrency(int(concurrency))
        except ValueError:
            logger.warning(f"Ignoring non-integer NSE_MAX_CONCURRENT={concurrency!r}")
        else:
            nse = dict(merged.get("nse") or {})
            # The override applies to whichever cap the run uses.
            nse["max_concurrent"] = value
            nse["ci_max_concurrent"] = value
            merged["nse"] = nse
            logger.debug(f"Overriding nse concurrency from env: {value}")

    return merged


def clamp_concurrency(value: int) -> int:
    return max(MIN_CONCURRENCY, min(MAX_CONCURRENCY, value))


def _truthy(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() in ("true", "1", "yes", "on")
