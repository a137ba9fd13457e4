"""
Configuration management and loading.

Handles network, payment, endpoint and storage settings.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml

from ..storage.db import DEFAULT_DB_PATH

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")
PRIVATE_KEY_ENV = "PAID_SEARCH_PRIVATE_KEY"


@dataclass(frozen=True)
class NetworkConfig:
    """Parameters of the single target network."""
    chain_id: int = 10143
    chain_name: str = "Monad Testnet"
    currency_name: str = "MON"
    currency_symbol: str = "MON"
    currency_decimals: int = 18
    rpc_url: str = "https://testnet-rpc.monad.xyz"
    explorer_url: str = "https://testnet-explorer.monad.xyz"

    def __post_init__(self):
        if self.chain_id <= 0:
            raise ValueError("chain_id must be > 0")
        if self.currency_decimals < 0:
            raise ValueError("currency_decimals must be >= 0")
        if not self.rpc_url:
            raise ValueError("rpc_url is required")

    @property
    def chain_id_hex(self) -> str:
        return hex(self.chain_id)

    def explorer_tx_url(self, tx_hash: str) -> str:
        return f"{self.explorer_url.rstrip('/')}/tx/{tx_hash}"


@dataclass(frozen=True)
class PaymentConfig:
    """Fixed fee, destination and confirmation polling bounds."""
    recipient: str
    fee: float = 1.0
    gas_limit: int = 21000
    poll_interval_seconds: float = 2.0
    max_poll_attempts: int = 30
    fallback_balance: float = 10.0

    def __post_init__(self):
        if not ADDRESS_PATTERN.match(self.recipient or ""):
            raise ValueError("recipient must be a 0x-prefixed 20-byte hex address")
        if self.fee <= 0:
            raise ValueError("fee must be > 0")
        if self.gas_limit <= 0:
            raise ValueError("gas_limit must be > 0")
        if self.poll_interval_seconds < 0:
            raise ValueError("poll_interval_seconds must be >= 0")
        if self.max_poll_attempts <= 0:
            raise ValueError("max_poll_attempts must be > 0")


@dataclass(frozen=True)
class EndpointConfig:
    """Remote search and notification endpoints."""
    search_url: str = "http://localhost:3000/api/search"
    notifications_url: str = "http://localhost:3000/api/notifications"
    timeout_seconds: float = 30.0

    def __post_init__(self):
        if not self.search_url:
            raise ValueError("search_url is required")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")


@dataclass(frozen=True)
class StorageConfig:
    db_path: str = DEFAULT_DB_PATH


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    payment: PaymentConfig
    network: NetworkConfig = field(default_factory=NetworkConfig)
    endpoints: EndpointConfig = field(default_factory=EndpointConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)


_SECTIONS = {
    'network': NetworkConfig,
    'payment': PaymentConfig,
    'endpoints': EndpointConfig,
    'storage': StorageConfig,
}


def load_config(path: str) -> AppConfig:
    """Load and validate application configuration from YAML file.

    Only `payment.recipient` is required; every other setting falls back
    to the Monad Testnet defaults. Unknown keys are rejected so typos
    cannot silently change where payments go.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    unknown_keys = set(raw_config.keys()) - set(_SECTIONS)
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    if 'payment' not in raw_config:
        raise ValueError("Missing required 'payment' section")

    sections = {
        name: _parse_section(name, raw_config.get(name) or {})
        for name in _SECTIONS
    }
    return AppConfig(**sections)


def _parse_section(name: str, data: Dict[str, Any]):
    """Build one config section, rejecting unknown keys.

    Args:
        name: Section name for error messages
        data: Raw section data

    Returns:
        The section dataclass instance

    Raises:
        ValueError: If the section is invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")

    section_cls = _SECTIONS[name]
    allowed_keys = set(section_cls.__dataclass_fields__)
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {name}: {unknown_keys}")

    if name == 'payment' and 'recipient' not in data:
        raise ValueError("Missing required 'recipient' in payment")

    try:
        return section_cls(**data)
    except TypeError as e:
        raise ValueError(f"Invalid values in {name}: {e}")
