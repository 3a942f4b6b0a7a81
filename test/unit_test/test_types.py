"""
Types Unit Tests

Tests token registry, unit conversion, snapshots, gas estimates and the
transaction state machine without network dependencies.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from wallet_engine.errors import (
    ConfigurationError,
    InvalidIntent,
    InvalidStateTransition,
    OperationNotSupported,
    UnknownToken,
)
from wallet_engine.types import (
    ETH_NATIVE,
    AggregationResult,
    BalanceSnapshot,
    ContractCall,
    Deposit,
    DepositStatus,
    FeeParameters,
    GasEstimate,
    IntentKind,
    PreparedCall,
    Receipt,
    TokenDescriptor,
    TokenReadFailure,
    TokenRegistry,
    TransactionHandle,
    TransactionIntent,
    TxState,
    can_transition,
    default_registry,
    format_units,
    get_vault,
    list_vaults,
    parse_units,
)

from conftest import WALLET, RECIPIENT


class TestUnitConversion:

    def test_format_units(self):
        assert format_units(1_500_000, 6) == "1.5"
        assert format_units(500_000_000, 6) == "500"
        assert format_units(0, 18) == "0"
        assert format_units(1, 18) == "0.000000000000000001"
        assert format_units(42, 0) == "42"

    @pytest.mark.parametrize(
        "token",
        [default_registry().native] + default_registry().list_all(),
        ids=lambda token: token.symbol,
    )
    @pytest.mark.parametrize("raw_of", [lambda d: 0, lambda d: 1, lambda d: 10**d - 1], ids=["zero", "one", "max_fraction"])
    def test_registry_decimals_format_exactly(self, token, raw_of):
        raw = raw_of(token.decimals)
        formatted = format_units(raw, token.decimals)

        assert Decimal(formatted) == Decimal(raw) / Decimal(10) ** token.decimals
        assert Decimal(formatted) * 10**token.decimals == raw
        if raw == 10**token.decimals - 1:
            assert formatted == "0." + "9" * token.decimals

    def test_format_units_large_amount_is_exact(self):
        raw = 123456789012345678901234567890
        assert format_units(raw, 18) == "123456789012.34567890123456789"

    def test_format_units_rejects_negative(self):
        with pytest.raises(InvalidIntent):
            format_units(-1, 6)

    def test_parse_units(self):
        assert parse_units("1.5", 6) == 1_500_000
        assert parse_units(Decimal("500"), 6) == 500_000_000
        assert parse_units(0, 18) == 0
        assert parse_units("0.01", 18) == 10**16

    def test_parse_units_too_many_decimals(self):
        with pytest.raises(InvalidIntent):
            parse_units("1.0000001", 6)

    def test_parse_units_rejects_bad_input(self):
        with pytest.raises(InvalidIntent):
            parse_units("-1", 6)
        with pytest.raises(InvalidIntent):
            parse_units("abc", 6)
        with pytest.raises(InvalidIntent):
            parse_units(Decimal("NaN"), 6)


class TestTokenRegistry:

    def test_default_registry_contents(self, registry):
        assert registry.native.symbol == "ETH"
        assert registry.symbols() == ["USDC", "USDT", "DAI", "GHO", "mHYPER", "sGHO"]
        assert len(registry) == 6

    def test_list_all_excludes_native(self, registry):
        assert all(not token.is_native for token in registry.list_all())

    def test_lookup_is_case_insensitive(self, registry):
        usdc = registry.by_symbol("usdc")
        assert usdc.decimals == 6
        assert registry.by_symbol("ETH") is registry.native
        assert registry.contains("mhyper")

    def test_unknown_symbol(self, registry):
        with pytest.raises(UnknownToken):
            registry.by_symbol("DOGE")
        assert registry.find("DOGE") is None

    def test_duplicate_symbols_rejected(self):
        token = TokenDescriptor("AAA", "0x0000000000000000000000000000000000000001", 18)
        with pytest.raises(ConfigurationError):
            TokenRegistry(ETH_NATIVE, [token, token])

    def test_descriptor_conversions(self, registry):
        usdc = registry.by_symbol("USDC")
        assert usdc.raw_amount("12.34") == 12_340_000
        assert usdc.ui_amount(12_340_000) == Decimal("12.34")
        assert usdc.format(1) == "0.000001"


class TestBalanceSnapshot:

    def test_balance_of(self, make_snapshot):
        snapshot = make_snapshot(eth="0.01", USDC="500")
        assert snapshot.balance_of("ETH") == Decimal("0.01")
        assert snapshot.balance_of("usdc") == Decimal("500")
        assert snapshot.balance_of("DAI") is None

    def test_native_read_failed(self, make_snapshot):
        snapshot = make_snapshot(eth=None)
        assert snapshot.native_balance() is None
        assert snapshot.balance_of("ETH") is None

    def test_snapshot_is_immutable(self, make_snapshot):
        snapshot = make_snapshot()
        with pytest.raises(AttributeError):
            snapshot.native_balance_raw = 0

    def test_aggregation_result_completeness(self, make_snapshot):
        snapshot = make_snapshot()
        assert AggregationResult(snapshot).is_complete
        partial = AggregationResult(snapshot, failures=(TokenReadFailure("DAI", "0x1", "timeout"),))
        assert not partial.is_complete


class TestGasEstimate:

    def test_build_eip1559(self):
        fees = FeeParameters(base_fee=10 * 10**9, priority_fee=10**9)
        estimate = GasEstimate.build((21_000,), fees, max_fee_per_gas=21 * 10**9, max_priority_fee_per_gas=10**9)

        assert estimate.gas_limit == 21_000
        assert estimate.base_or_gas_price == 10 * 10**9
        assert estimate.estimated_cost_wei == 21_000 * 21 * 10**9
        assert estimate.estimated_cost_native == Decimal("0.000441")
        assert estimate.is_eip1559

    def test_build_legacy(self):
        fees = FeeParameters(base_fee=None, priority_fee=0, gas_price=5 * 10**9)
        estimate = GasEstimate.build((100_000, 50_000), fees, None, None)

        assert estimate.gas_limit == 150_000
        assert estimate.price_per_gas == 5 * 10**9
        assert not estimate.is_eip1559
        assert estimate.call_gas_limits == (100_000, 50_000)

    def test_staleness(self):
        fees = FeeParameters(base_fee=1, priority_fee=1)
        estimate = GasEstimate.build((21_000,), fees, 3, 1)
        assert not estimate.is_stale(12.0, now=estimate.created_at + 5)
        assert estimate.is_stale(12.0, now=estimate.created_at + 13)


class TestIntentsAndCalls:

    def test_intent_constructors(self):
        transfer = TransactionIntent.token_transfer(WALLET, RECIPIENT, "25.5", "USDC")
        assert transfer.kind == IntentKind.TOKEN_TRANSFER
        assert transfer.amount == Decimal("25.5")

        deposit = TransactionIntent.vault_deposit(WALLET, "mhyper", "500", "USDC")
        assert deposit.kind.is_vault
        assert deposit.to_address is None
        assert deposit.vault_id == "mhyper"

    def test_prepared_call_primary_is_last(self):
        approve = ContractCall(to="0x1", data="0xaa", description="approve")
        deposit = ContractCall(to="0x2", data="0xbb", value=0, description="deposit")
        prepared = PreparedCall(calls=(approve, deposit))
        assert prepared.primary is deposit
        assert len(prepared) == 2
        assert prepared.total_value == 0

    def test_receipt_from_web3_bytes_hash(self):
        receipt = Receipt.from_web3({
            "transactionHash": bytes.fromhex("ab" * 32),
            "status": 0,
            "blockNumber": 5,
            "gasUsed": 30_000,
        })
        assert receipt.tx_hash == "0x" + "ab" * 32
        assert not receipt.succeeded


class TestStateMachine:

    def test_forward_path(self):
        handle = TransactionHandle(intent=TransactionIntent.native_transfer(WALLET, RECIPIENT, "0.1"))
        for state in (TxState.PREPARING, TxState.SIGNING, TxState.PENDING, TxState.CONFIRMING, TxState.SUCCESS):
            handle.transition_to(state)
        assert handle.succeeded
        assert handle.history == [
            TxState.IDLE, TxState.PREPARING, TxState.SIGNING,
            TxState.PENDING, TxState.CONFIRMING, TxState.SUCCESS,
        ]

    def test_any_non_terminal_state_can_fail(self):
        for state in (TxState.IDLE, TxState.PREPARING, TxState.SIGNING, TxState.PENDING, TxState.CONFIRMING):
            assert can_transition(state, TxState.ERROR)

    def test_terminal_states_are_final(self):
        for terminal in (TxState.SUCCESS, TxState.ERROR):
            for target in TxState:
                assert not can_transition(terminal, target)

    def test_backwards_and_skipping_rejected(self):
        handle = TransactionHandle(intent=TransactionIntent.native_transfer(WALLET, RECIPIENT, "0.1"))
        with pytest.raises(InvalidStateTransition):
            handle.transition_to(TxState.PENDING)
        handle.transition_to(TxState.PREPARING)
        with pytest.raises(InvalidStateTransition):
            handle.transition_to(TxState.IDLE)
        assert handle.state == TxState.PREPARING


class TestVaultsAndDeposits:

    def test_known_vaults(self):
        mhyper = get_vault("MHYPER")
        assert mhyper.asset_symbol == "USDC"
        assert mhyper.apy == Decimal("8.93")
        assert mhyper.supports_deposit

        sgho = get_vault("sgho")
        assert not sgho.supports_deposit
        assert len(list_vaults()) == 2

    def test_unknown_vault(self):
        with pytest.raises(OperationNotSupported):
            get_vault("yearn")

    def test_deposit_withdrawals_are_copies(self):
        start = datetime(2025, 1, 1, tzinfo=timezone.utc)
        deposit = Deposit("d1", WALLET, "mhyper", Decimal("500"), Decimal("8.93"), start)
        partial = deposit.with_withdrawal(Decimal("200"), start + timedelta(days=10), "0xaa")
        closed = partial.with_withdrawal(Decimal("300"), start + timedelta(days=30), "0xfeed")

        assert deposit.is_active and deposit.withdrawals == ()
        assert partial.is_active
        assert partial.remaining_principal == Decimal("300")
        assert partial.withdrawn_at is None
        assert closed.status == DepositStatus.WITHDRAWN
        assert closed.withdrawn_at == start + timedelta(days=30)
        assert closed.withdraw_tx_hash == "0xfeed"
        # Closed deposits ignore further withdrawals
        assert closed.with_withdrawal(Decimal("1"), start + timedelta(days=31), "0xbb") is closed
