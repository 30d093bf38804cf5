#!/usr/bin/env python3
import argparse
import json
import os
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

import constants
from scheduler import AlarmTime
from services.retry import RetryPolicy


class ConfigError(Exception):
    """The configuration file is missing or malformed."""


class AppConfig(NamedTuple):
    """Typed configuration object."""
    port: str
    channels: Dict[str, str]
    alarm_time: AlarmTime
    price_file: Path
    show_fear_greed: bool
    show_hashrate: bool
    show_borrow_rates: bool
    rpc_urls: List[str]
    aave_pool_address: Optional[str]
    retry_policy: RetryPolicy
    coingecko_api_key: Optional[str]
    verbose: bool
    run_now: bool


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be an object")
    return value


def _parse_retry_policy(data: Dict[str, Any]) -> RetryPolicy:
    retry = _section(data, 'retry')
    try:
        return RetryPolicy(
            max_attempts=int(retry.get('maxAttempts', constants.RETRY_MAX_ATTEMPTS)),
            initial_delay=float(retry.get('initialDelay', constants.RETRY_INITIAL_DELAY)),
            max_delay=float(retry.get('maxDelay', constants.RETRY_MAX_DELAY)),
            timeout=float(retry.get('timeout', constants.RETRY_TIMEOUT)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid retry settings: {exc}") from exc


def parse_config_data(data: Any, *, port: Optional[str] = None, verbose: bool = False, run_now: bool = False) -> AppConfig:
    """Builds an AppConfig from the decoded JSON config; port overrides the file's."""
    if not isinstance(data, dict):
        raise ConfigError("configuration root must be an object")

    port = port or os.environ.get(constants.PORT_ENV_VAR) or data.get('port')
    if not port:
        raise ConfigError("no serial port given on the command line, in the environment or in the config file")

    channels = _section(data, 'channels')
    if not channels or not all(isinstance(name, str) and name for name in channels.values()):
        raise ConfigError("'channels' must map each category to a channel name")
    if 'bitcoin' not in channels:
        raise ConfigError("'channels' must define a 'bitcoin' channel")

    try:
        alarm_time = AlarmTime.parse(data.get('bitcoinAlarm', ''))
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc

    bitcoin = _section(data, 'bitcoin')
    ethereum = _section(data, 'ethereum')
    rpc_urls = ethereum.get('rpcUrls') or []
    if not isinstance(rpc_urls, list) or not all(isinstance(url, str) for url in rpc_urls):
        raise ConfigError("'ethereum.rpcUrls' must be a list of URLs")

    return AppConfig(
        port=port,
        channels=dict(channels),
        alarm_time=alarm_time,
        price_file=Path(bitcoin.get('priceFile') or constants.DEFAULT_PRICE_FILE),
        show_fear_greed=bool(bitcoin.get('showFearGreed', False)),
        show_hashrate=bool(bitcoin.get('showHashrate', False)),
        show_borrow_rates=bool(bitcoin.get('showBorrowRates', False)),
        rpc_urls=rpc_urls,
        aave_pool_address=ethereum.get('aavePoolAddress') or None,
        retry_policy=_parse_retry_policy(data),
        coingecko_api_key=os.environ.get(constants.COINGECKO_API_KEY_ENV_VAR),
        verbose=verbose,
        run_now=run_now,
    )


def read_config_file(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding='utf-8'))
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {path}") from exc
    except (OSError, ValueError) as exc:
        raise ConfigError(f"could not read {path}: {exc}") from exc


def load_config(argv: Optional[Sequence[str]] = None) -> AppConfig:
    """
    Parses command-line arguments, reads the JSON config file and applies environment overrides.
    """
    parser = argparse.ArgumentParser(
        description="Broadcast a daily bitcoin market summary on a MeshCore channel.",
        epilog="Example: ./main.py /dev/ttyUSB0 --config config.json"
    )
    parser.add_argument('port', nargs='?', help='Serial port of the MeshCore node (overrides the config file).')
    parser.add_argument('--config', default=constants.DEFAULT_CONFIG_FILE, help=f'Path to the JSON config (default: {constants.DEFAULT_CONFIG_FILE}).')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging.')
    parser.add_argument('--run-now', action='store_true', help='Send one update immediately and exit.')

    args = parser.parse_args(argv)

    try:
        return parse_config_data(
            read_config_file(Path(args.config)),
            port=args.port,
            verbose=args.verbose,
            run_now=args.run_now,
        )
    except ConfigError as exc:
        print(f"{constants.C_RED}Configuration error: {exc}{constants.C_RESET}")
        exit(1)
