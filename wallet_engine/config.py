"""
Wallet engine settings

Every value comes from the environment (optionally seeded from a .env file at
the project root, or the file named by WALLET_ENV_FILE). Sections:

    chain    RPC endpoint, chain id, explorer
    gas      estimate buffers and fee caps
    tx       confirmation and polling timeouts
    sponsor  paymaster relay
    balance  snapshot cache
    logging  rotating file + console output tagged with correlation ids
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

from dotenv import load_dotenv

N = TypeVar("N", int, float)

_PROJECT_ROOT = Path(__file__).parent.parent


def _load_env_file() -> None:
    env_file = Path(os.getenv("WALLET_ENV_FILE", _PROJECT_ROOT / ".env"))
    if env_file.is_file():
        # Real environment variables win over the file
        load_dotenv(env_file, override=False)


_load_env_file()


def _get_env(key: str, default: Optional[str] = "") -> Optional[str]:
    return os.environ.get(key, default)


def _get_env_number(key: str, default: N, cast: Callable[[str], N]) -> N:
    raw = os.environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        logging.getLogger(__name__).warning(f"{key}={raw!r} is not a valid {cast.__name__}; keeping {default}")
        return default


def _get_env_float(key: str, default: float) -> float:
    return _get_env_number(key, default, float)


def _get_env_int(key: str, default: int) -> int:
    return _get_env_number(key, default, int)


def _get_env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ChainConfig:
    """Single-chain context: one RPC endpoint, one explorer"""
    rpc_url: str = field(default_factory=lambda: _get_env("WALLET_RPC_URL", "https://ethereum-rpc.publicnode.com"))
    chain_id: int = field(default_factory=lambda: _get_env_int("WALLET_CHAIN_ID", 1))
    native_symbol: str = field(default_factory=lambda: _get_env("WALLET_NATIVE_SYMBOL", "ETH"))
    explorer_url: str = field(default_factory=lambda: _get_env("WALLET_EXPLORER_URL", "https://etherscan.io"))
    timeout_seconds: float = field(default_factory=lambda: _get_env_float("WALLET_RPC_TIMEOUT", 30.0))


@dataclass
class GasConfig:
    """Gas estimation settings"""
    # Multiplier for gas limit estimates to provide buffer
    gas_limit_multiplier: float = field(default_factory=lambda: _get_env_float("GAS_LIMIT_MULTIPLIER", 1.2))
    # maxFeePerGas = base_fee * base_fee_multiplier + priority fee
    base_fee_multiplier: float = field(default_factory=lambda: _get_env_float("GAS_BASE_FEE_MULTIPLIER", 2.0))
    # Used when the node cannot suggest a priority fee
    priority_fee_gwei: float = field(default_factory=lambda: _get_env_float("GAS_PRIORITY_FEE_GWEI", 0.1))
    # An estimate older than this (about one block) is re-derived before signing
    estimate_max_age: float = field(default_factory=lambda: _get_env_float("GAS_ESTIMATE_MAX_AGE", 12.0))
    # Gas limit for calls that depend on an earlier call in the same batch
    dependent_call_gas_limit: int = field(default_factory=lambda: _get_env_int("GAS_DEPENDENT_CALL_LIMIT", 250_000))


@dataclass
class TxConfig:
    """Transaction lifecycle configuration"""
    confirmation_timeout: float = field(default_factory=lambda: _get_env_float("TX_CONFIRMATION_TIMEOUT", 120.0))
    poll_interval: float = field(default_factory=lambda: _get_env_float("TX_POLL_INTERVAL", 2.0))
    # How long to wait for the hash to show up in the pending pool
    pending_timeout: float = field(default_factory=lambda: _get_env_float("TX_PENDING_TIMEOUT", 30.0))
    # Retry settings for read-side steps (estimation, balance refresh)
    read_max_retries: int = field(default_factory=lambda: _get_env_int("TX_READ_MAX_RETRIES", 3))
    retry_delay: float = field(default_factory=lambda: _get_env_float("TX_RETRY_DELAY", 1.0))


@dataclass
class SponsorConfig:
    """Paymaster relay configuration for sponsored smart wallets (URL must be configured in .env)"""
    relay_url: str = field(default_factory=lambda: _get_env("SPONSOR_RELAY_URL", ""))
    api_key: Optional[str] = field(default_factory=lambda: _get_env("SPONSOR_API_KEY", None))
    timeout: float = field(default_factory=lambda: _get_env_float("SPONSOR_TIMEOUT", 30.0))
    poll_interval: float = field(default_factory=lambda: _get_env_float("SPONSOR_POLL_INTERVAL", 2.0))
    # Maximum time to wait for the relay to report a transaction hash
    max_wait: float = field(default_factory=lambda: _get_env_float("SPONSOR_MAX_WAIT", 60.0))


@dataclass
class BalanceConfig:
    """Balance aggregation settings"""
    cache_ttl: float = field(default_factory=lambda: _get_env_float("BALANCE_CACHE_TTL", 30.0))
    verify_token_metadata: bool = field(default_factory=lambda: _get_env_bool("BALANCE_VERIFY_METADATA", True))



@dataclass
class LoggingConfig:
    """
    Log output for the wallet_engine logger tree

    Records carry the active correlation id (see infra.retry.CorrelationContext)
    so every line of one balance refresh or transaction can be grepped together.

    Environment variables:
        LOG_DIR: Directory for per-process log files (default: <project>/log);
            empty disables file output
        LOG_FILE: Explicit log file path (takes precedence over LOG_DIR)
        LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
        LOG_FORMAT: logging format string; may use %(correlation_id)s
        LOG_CONSOLE: Also log to stderr (default: true)
        LOG_MAX_BYTES / LOG_BACKUP_COUNT: Rotation (default: 5MB x 3)
    """
    log_dir: str = field(default_factory=lambda: _get_env("LOG_DIR", str(_PROJECT_ROOT / "log")))
    log_file: str = field(default_factory=lambda: _get_env("LOG_FILE", ""))
    log_level: str = field(default_factory=lambda: _get_env("LOG_LEVEL", "INFO"))
    log_format: str = field(default_factory=lambda: _get_env(
        "LOG_FORMAT",
        "%(asctime)s %(levelname)-7s %(name)s [%(correlation_id)s] %(message)s",
    ))
    console_output: bool = field(default_factory=lambda: _get_env_bool("LOG_CONSOLE", True))
    max_bytes: int = field(default_factory=lambda: _get_env_int("LOG_MAX_BYTES", 5 * 1024 * 1024))
    backup_count: int = field(default_factory=lambda: _get_env_int("LOG_BACKUP_COUNT", 3))

    @property
    def level(self) -> int:
        value = logging.getLevelName(self.log_level.upper())
        return value if isinstance(value, int) else logging.INFO

    def resolve_log_file(self) -> Optional[Path]:
        """Explicit LOG_FILE, else a per-process file in log_dir, else None"""
        if self.log_file:
            return Path(self.log_file)
        if not self.log_dir:
            return None
        from datetime import datetime, timezone
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        return Path(self.log_dir) / f"wallet_engine_{stamp}_{os.getpid()}.log"


@dataclass
class Config:
    """
    All settings, read once at import

    Usage:
        from wallet_engine.config import config

        config.chain.rpc_url
        config.gas.base_fee_multiplier
    """
    chain: ChainConfig = field(default_factory=ChainConfig)
    gas: GasConfig = field(default_factory=GasConfig)
    tx: TxConfig = field(default_factory=TxConfig)
    sponsor: SponsorConfig = field(default_factory=SponsorConfig)
    balance: BalanceConfig = field(default_factory=BalanceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


config = Config()


def reload_config() -> Config:
    """
    Re-read .env and the environment into the global config

    Components that captured section objects at construction keep the old
    values; build new ones after reloading.
    """
    global config
    _load_env_file()
    config = Config()
    return config


def setup_logging(
    log_config: Optional[LoggingConfig] = None,
    logger_name: str = "wallet_engine",
) -> logging.Logger:
    """
    Attach file and console handlers to the wallet_engine logger

    Safe to call again: existing handlers are closed and replaced.

    Returns:
        The configured logger
    """
    from logging.handlers import RotatingFileHandler
    from .infra.retry import CorrelationIdFilter

    log_config = log_config or config.logging
    logger = logging.getLogger(logger_name)
    logger.setLevel(log_config.level)

    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()

    formatter = logging.Formatter(log_config.log_format)
    correlation = CorrelationIdFilter()
    handlers: List[logging.Handler] = []

    log_file = log_config.resolve_log_file()
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(
            log_file,
            maxBytes=log_config.max_bytes,
            backupCount=log_config.backup_count,
            encoding="utf-8",
        ))
    if log_config.console_output:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setLevel(log_config.level)
        handler.setFormatter(formatter)
        handler.addFilter(correlation)
        logger.addHandler(handler)

    logger.debug(f"Logging to {log_file or 'console only'} at {logging.getLevelName(log_config.level)}")
    return logger
