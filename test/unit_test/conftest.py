"""
Shared fixtures for wallet engine unit tests

No fixture touches the network: the chain client is a Mock whose coroutine
methods are AsyncMocks.
"""

import sys
from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from wallet_engine.types import (
    BalanceSnapshot,
    FeeParameters,
    Receipt,
    TokenBalance,
    default_registry,
    format_units,
    parse_units,
)

# Hardhat default accounts - test keys only
WALLET_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
WALLET = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
RECIPIENT = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"

TX_HASH = "0x" + "ab" * 32


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def make_snapshot(registry):
    """
    Build a snapshot from UI amounts

    Usage:
        snapshot = make_snapshot(eth="0.01", USDC="500")
        snapshot = make_snapshot(eth=None)   # native read failed
    """
    def _make(eth="1", **tokens):
        native = registry.native
        native_raw = parse_units(eth, native.decimals) if eth is not None else None
        balances = []
        for symbol, amount in tokens.items():
            token = registry.by_symbol(symbol)
            raw = parse_units(amount, token.decimals)
            balances.append(TokenBalance(
                symbol=token.symbol,
                raw_amount=raw,
                formatted_amount=format_units(raw, token.decimals),
                contract_address=token.contract_address,
                decimals=token.decimals,
            ))
        return BalanceSnapshot(
            wallet_address=WALLET,
            native_symbol=native.symbol,
            native_balance_raw=native_raw,
            native_balance_formatted=format_units(native_raw, native.decimals) if native_raw is not None else None,
            token_balances=tuple(balances),
        )
    return _make


@pytest.fixture
def mock_chain():
    """
    ChainClient stand-in

    Defaults: chain id 1, 21000 gas, 10 gwei base fee + 1 gwei tip, every
    hash visible immediately, successful receipt.
    """
    chain = Mock()
    chain.endpoint = "https://rpc.example.com"
    chain.chain_id = AsyncMock(return_value=1)
    chain.read_balance = AsyncMock(return_value=0)
    chain.read_contract = AsyncMock(return_value=0)
    chain.estimate_gas = AsyncMock(return_value=21_000)
    chain.current_fee_parameters = AsyncMock(
        return_value=FeeParameters(base_fee=10 * 10**9, priority_fee=1 * 10**9)
    )
    chain.get_transaction_count = AsyncMock(return_value=7)
    chain.submit = AsyncMock(return_value=TX_HASH)
    chain.get_transaction = AsyncMock(return_value={"hash": TX_HASH})
    chain.wait_until_visible = AsyncMock(return_value=True)
    chain.wait_for_receipt = AsyncMock(
        return_value=Receipt(tx_hash=TX_HASH, status=1, block_number=100, gas_used=21_000)
    )
    chain.get_receipt = AsyncMock(return_value=None)
    chain.replay_for_revert_reason = AsyncMock(return_value=None)
    chain.close = AsyncMock()
    return chain


@pytest.fixture
def eth_amount():
    """Wei -> Decimal ETH"""
    return lambda wei: Decimal(format_units(wei, 18))
