# surety_oracle/config.py
"""
Oracle node configuration.

Network settings come from a JSON file keyed by network name, the same
shape the dapp uses:

    {"localhost": {"url": "http://localhost:8545", "appAddress": "0x..."}}

The file is `config.json` in the working directory unless SURETY_CONFIG
names another; without one, SURETY_RPC_URL and SURETY_APP_ADDRESS are
required. Every setting can be overridden from the environment (SURETY_*).
"""

import json
import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from surety_oracle.errors import ConfigError
from surety_oracle.status import StatusCode, parse_status

# Relative: resolved against the working directory at load time
DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_NETWORK = "localhost"

DEFAULT_FEE_ETHER = "1"
DEFAULT_GAS = 10_000_000
# Accounts below this offset belong to the owner, airlines and passengers
DEFAULT_ORACLE_OFFSET = 55
DEFAULT_PORT = 3000

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%SZ"


@dataclass(frozen=True)
class OracleConfig:
    rpc_url: str
    app_address: str
    network: str = DEFAULT_NETWORK
    contract_abi_path: Optional[str] = None
    fee_wei: int = 10 ** 18
    gas: int = DEFAULT_GAS
    oracle_offset: int = DEFAULT_ORACLE_OFFSET
    oracle_count: Optional[int] = None
    registration_concurrency: int = 5
    submit_timeout: float = 30.0
    dispatch_concurrency: int = 20
    poll_interval: float = 1.0
    reconnect_delay: float = 1.0
    max_reconnect_delay: float = 30.0
    status_seed: Optional[int] = None
    fixed_status: Optional[StatusCode] = None
    require_oracles: bool = False
    port: int = DEFAULT_PORT
    log_level: str = "INFO"

    def select_candidates(self, accounts):
        """Slice the provisioned accounts down to the oracle candidates."""
        end = None if self.oracle_count is None else self.oracle_offset + self.oracle_count
        return list(accounts[self.oracle_offset:end])


def ether_to_wei(amount) -> int:
    try:
        wei = Decimal(str(amount)) * (10 ** 18)
    except InvalidOperation:
        raise ConfigError(f"Invalid ether amount: {amount!r}") from None
    if not wei.is_finite() or wei < 0 or wei != wei.to_integral_value():
        raise ConfigError(f"Invalid ether amount: {amount!r}")
    return int(wei)


def _network_entry(path: Path, network: str) -> dict:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text())
    except (OSError, ValueError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    if network not in data:
        raise ConfigError(f"Network '{network}' not found in {path} (have: {', '.join(data)})")
    return data[network]


def _int(env, name, default, minimum=0):
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _float(env, name, default):
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _bool(env, name, default=False):
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config(environ=None) -> OracleConfig:
    """Build an OracleConfig from the config file and SURETY_* variables."""
    env = os.environ if environ is None else environ

    network = env.get("SURETY_NETWORK", DEFAULT_NETWORK)
    path = Path(env.get("SURETY_CONFIG", DEFAULT_CONFIG_PATH))
    entry = _network_entry(path, network)

    rpc_url = env.get("SURETY_RPC_URL") or entry.get("url")
    app_address = env.get("SURETY_APP_ADDRESS") or entry.get("appAddress")
    if not rpc_url:
        raise ConfigError("No ledger RPC url: set SURETY_RPC_URL or provide a config file")
    if not app_address:
        raise ConfigError("No contract address: set SURETY_APP_ADDRESS or provide a config file")

    fixed_status = None
    if env.get("SURETY_FIXED_STATUS"):
        try:
            fixed_status = parse_status(env["SURETY_FIXED_STATUS"])
        except ValueError as e:
            raise ConfigError(str(e)) from None

    reconnect_delay = _float(env, "SURETY_RECONNECT_DELAY", 1.0)
    max_reconnect_delay = _float(env, "SURETY_MAX_RECONNECT_DELAY", 30.0)
    if max_reconnect_delay < reconnect_delay:
        raise ConfigError("SURETY_MAX_RECONNECT_DELAY must be >= SURETY_RECONNECT_DELAY")

    return OracleConfig(
        rpc_url=rpc_url,
        app_address=app_address,
        network=network,
        contract_abi_path=env.get("SURETY_CONTRACT_ABI") or None,
        fee_wei=ether_to_wei(env.get("SURETY_FEE_ETHER", DEFAULT_FEE_ETHER)),
        gas=_int(env, "SURETY_GAS", DEFAULT_GAS, minimum=21_000),
        oracle_offset=_int(env, "SURETY_ORACLE_OFFSET", DEFAULT_ORACLE_OFFSET),
        oracle_count=_int(env, "SURETY_ORACLE_COUNT", None, minimum=1),
        registration_concurrency=_int(env, "SURETY_REGISTRATION_CONCURRENCY", 5, minimum=1),
        submit_timeout=_float(env, "SURETY_SUBMIT_TIMEOUT", 30.0),
        dispatch_concurrency=_int(env, "SURETY_DISPATCH_CONCURRENCY", 20, minimum=1),
        poll_interval=_float(env, "SURETY_POLL_INTERVAL", 1.0),
        reconnect_delay=reconnect_delay,
        max_reconnect_delay=max_reconnect_delay,
        status_seed=_int(env, "SURETY_STATUS_SEED", None),
        fixed_status=fixed_status,
        require_oracles=_bool(env, "SURETY_REQUIRE_ORACLES"),
        port=_int(env, "SURETY_PORT", DEFAULT_PORT, minimum=1),
        log_level=env.get("SURETY_LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level="INFO"):
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
