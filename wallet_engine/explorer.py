"""
Block explorer links
"""

from typing import Optional

from .config import config as global_config


def _base(explorer_url: Optional[str]) -> str:
    return (explorer_url or global_config.chain.explorer_url).rstrip("/")


def explorer_tx_url(tx_hash: str, explorer_url: Optional[str] = None) -> str:
    return f"{_base(explorer_url)}/tx/{tx_hash}"


def explorer_address_url(address: str, explorer_url: Optional[str] = None) -> str:
    return f"{_base(explorer_url)}/address/{address}"
