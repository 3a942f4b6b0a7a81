"""
Balance aggregation tests

Token reads are served by a fake read_contract keyed by contract address.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from wallet_engine.errors import ContractReadFailed, InvalidIntent, RpcUnavailable
from wallet_engine.infra.abi import ERC20_BALANCE_OF, ERC20_DECIMALS, ERC20_SYMBOL
from wallet_engine.modules import BalanceAggregator, BalanceCache
from wallet_engine.types import AggregationResult

from conftest import WALLET


def fake_reads(registry, balances, metadata=None, failing=()):
    """
    Build a read_contract side effect

    balances: {symbol: ui amount}, missing symbols read as zero
    metadata: {symbol: (onchain_symbol, onchain_decimals)} overrides
    failing: symbols whose balanceOf raises
    """
    by_address = {token.contract_address.lower(): token for token in registry.list_all()}
    metadata = metadata or {}

    async def read_contract(address, signature, args=(), output_types=("uint256",)):
        token = by_address[address.lower()]
        if signature == ERC20_SYMBOL:
            return metadata.get(token.symbol, (token.symbol, token.decimals))[0]
        if signature == ERC20_DECIMALS:
            return metadata.get(token.symbol, (token.symbol, token.decimals))[1]
        if signature == ERC20_BALANCE_OF:
            if token.symbol in failing:
                raise ContractReadFailed.reverted(address, "balanceOf")
            return token.raw_amount(balances.get(token.symbol, "0"))
        raise AssertionError(f"unexpected read {signature}")

    return read_contract


class TestBalanceAggregator:

    @pytest.mark.asyncio
    async def test_all_reads_succeed(self, mock_chain, registry):
        mock_chain.read_balance.return_value = 10**16
        mock_chain.read_contract.side_effect = fake_reads(registry, {"USDC": "500", "DAI": "12.5"})

        result = await BalanceAggregator(mock_chain, registry).aggregate(WALLET.lower())

        assert result.is_complete
        snapshot = result.snapshot
        assert snapshot.wallet_address == WALLET
        assert snapshot.native_balance() == Decimal("0.01")
        assert snapshot.balance_of("USDC") == Decimal("500")
        assert snapshot.balance_of("DAI") == Decimal("12.5")
        assert snapshot.balance_of("GHO") == Decimal("0")
        assert len(snapshot.token_balances) == len(registry.list_all())

    @pytest.mark.asyncio
    async def test_one_failing_token_is_reported(self, mock_chain, registry):
        mock_chain.read_balance.return_value = 10**18
        mock_chain.read_contract.side_effect = fake_reads(registry, {"USDC": "1"}, failing=("USDT",))

        result = await BalanceAggregator(mock_chain, registry).aggregate(WALLET)

        assert not result.is_complete
        assert [f.symbol for f in result.failures] == ["USDT"]
        assert result.snapshot.balance_of("USDT") is None
        assert result.snapshot.balance_of("USDC") == Decimal("1")

    @pytest.mark.asyncio
    async def test_native_failure_keeps_tokens(self, mock_chain, registry):
        mock_chain.read_balance.side_effect = RpcUnavailable.timeout("rpc", 30)
        mock_chain.read_contract.side_effect = fake_reads(registry, {"USDC": "3"})

        result = await BalanceAggregator(mock_chain, registry).aggregate(WALLET)

        assert result.snapshot.native_balance_raw is None
        assert result.snapshot.balance_of("USDC") == Decimal("3")
        assert result.failures[0].symbol == "ETH"

    @pytest.mark.asyncio
    async def test_metadata_mismatch_is_flagged(self, mock_chain, registry):
        mock_chain.read_contract.side_effect = fake_reads(
            registry, {"USDC": "100", "DAI": "1"}, metadata={"USDC": ("USDC", 18)}
        )

        aggregator = BalanceAggregator(mock_chain, registry)
        result = await aggregator.aggregate(WALLET)

        assert [m.symbol for m in result.flagged] == ["USDC"]
        assert result.flagged[0].onchain_decimals == 18
        assert result.snapshot.balance_of("USDC") is None
        assert result.snapshot.balance_of("DAI") == Decimal("1")
        assert not aggregator.is_verified(registry.by_symbol("USDC").contract_address)
        assert aggregator.is_verified(registry.by_symbol("DAI").contract_address)

    @pytest.mark.asyncio
    async def test_metadata_checked_once(self, mock_chain, registry):
        mock_chain.read_contract.side_effect = fake_reads(registry, {})
        aggregator = BalanceAggregator(mock_chain, registry)

        await aggregator.aggregate(WALLET)
        first = mock_chain.read_contract.await_count
        await aggregator.aggregate(WALLET)

        # Second pass only reads balanceOf
        assert mock_chain.read_contract.await_count - first == len(registry.list_all())

    @pytest.mark.asyncio
    async def test_verification_can_be_disabled(self, mock_chain, registry):
        mock_chain.read_contract.side_effect = fake_reads(registry, {}, metadata={"USDC": ("FAKE", 6)})
        result = await BalanceAggregator(mock_chain, registry, verify_metadata=False).aggregate(WALLET)
        assert result.flagged == ()

    @pytest.mark.asyncio
    async def test_invalid_wallet(self, mock_chain, registry):
        with pytest.raises(InvalidIntent):
            await BalanceAggregator(mock_chain, registry).aggregate("not-an-address")
        mock_chain.read_balance.assert_not_awaited()


class FakeClock:

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestBalanceCache:

    @pytest.fixture
    def aggregator(self, make_snapshot):
        aggregator = AsyncMock()
        aggregator.aggregate.side_effect = lambda wallet: AggregationResult(make_snapshot(USDC="1"))
        return aggregator

    @pytest.mark.asyncio
    async def test_fresh_entry_is_reused(self, aggregator):
        clock = FakeClock()
        cache = BalanceCache(ttl=30, clock=clock)

        first = await cache.refresh(aggregator, WALLET)
        clock.now += 10
        second = await cache.refresh(aggregator, WALLET.lower())

        assert first is second
        assert aggregator.aggregate.await_count == 1

    @pytest.mark.asyncio
    async def test_expired_entry_is_refetched(self, aggregator):
        clock = FakeClock()
        cache = BalanceCache(ttl=30, clock=clock)

        await cache.refresh(aggregator, WALLET)
        clock.now += 31
        assert cache.get(WALLET) is None
        await cache.refresh(aggregator, WALLET)

        assert aggregator.aggregate.await_count == 2

    @pytest.mark.asyncio
    async def test_force_and_invalidate(self, aggregator):
        cache = BalanceCache(ttl=30, clock=FakeClock())

        await cache.refresh(aggregator, WALLET)
        await cache.refresh(aggregator, WALLET, force=True)
        assert aggregator.aggregate.await_count == 2

        cache.invalidate(WALLET)
        assert len(cache) == 0
