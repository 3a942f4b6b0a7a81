"""
Test Errors Module

Tests for wallet_engine.errors package.
"""

from decimal import Decimal

import pytest

from wallet_engine.errors import (
    ErrorCode,
    WalletEngineError,
    RpcUnavailable,
    ContractReadFailed,
    EstimationFailed,
    InsufficientGas,
    InsufficientBalance,
    SignerError,
    SignerRejected,
    ConfirmationTimeout,
    ExecutionReverted,
    InvalidIntent,
    UnknownToken,
    InvalidStateTransition,
    OperationNotSupported,
    ConfigurationError,
)


class TestErrorCode:

    def test_code_families(self):
        assert ErrorCode.RPC_UNAVAILABLE.value == "1001"
        assert ErrorCode.EXECUTION_REVERTED.value == "2002"
        assert ErrorCode.INSUFFICIENT_GAS.value == "3001"
        assert ErrorCode.SIGNER_REJECTED.value == "4002"
        assert ErrorCode.OPERATION_NOT_SUPPORTED.value == "5002"
        assert ErrorCode.INVALID_INTENT.value == "6001"
        assert ErrorCode.CONFIG_MISSING.value == "9002"

    def test_codes_are_unique(self):
        values = [code.value for code in ErrorCode]
        assert len(values) == len(set(values))


class TestWalletEngineError:

    def test_str_format(self):
        error = WalletEngineError("Test error", ErrorCode.RPC_UNAVAILABLE, recoverable=True)
        # __str__ returns "[code] message" format
        assert str(error) == "[1001] Test error"
        assert error.should_retry is True

    def test_kind_is_class_name(self):
        assert ExecutionReverted.from_receipt("0xabc").kind == "ExecutionReverted"
        assert SignerRejected.user_declined().kind == "SignerRejected"

    def test_all_subclass_base(self):
        for cls in (RpcUnavailable, EstimationFailed, InsufficientGas, InsufficientBalance,
                    SignerRejected, ConfirmationTimeout, ExecutionReverted):
            assert issubclass(cls, WalletEngineError)


class TestTaxonomy:

    def test_rpc_unavailable_is_recoverable(self):
        error = RpcUnavailable.connection_failed("https://rpc.example.com", ConnectionError("refused"))
        assert error.recoverable is True
        assert error.endpoint == "https://rpc.example.com"
        assert isinstance(error.original_error, ConnectionError)

    def test_rpc_unavailable_variants(self):
        assert RpcUnavailable.timeout("x", 30).code == ErrorCode.RPC_TIMEOUT
        assert RpcUnavailable.rate_limited("x").code == ErrorCode.RPC_RATE_LIMITED
        assert RpcUnavailable.invalid_response("x", "bad").code == ErrorCode.RPC_INVALID_RESPONSE

    def test_estimation_failed_keeps_reason(self):
        error = EstimationFailed.would_revert("ERC20: transfer amount exceeds balance")
        assert error.recoverable is False
        assert error.reason == "ERC20: transfer amount exceeds balance"
        assert "exceeds balance" in str(error)

    def test_estimation_failed_without_reason(self):
        error = EstimationFailed.would_revert(None)
        assert error.reason is None
        assert "execution reverted" in error.message

    def test_insufficient_gas_details(self):
        error = InsufficientGas.for_cost(Decimal("0.002"), Decimal("0.001"), "ETH")
        assert error.code == ErrorCode.INSUFFICIENT_GAS
        assert error.details == {"symbol": "ETH", "required": "0.002", "available": "0.001"}

    def test_insufficient_balance(self):
        error = InsufficientBalance.token_balance("USDC", Decimal("600"), Decimal("500"))
        assert error.token == "USDC"
        assert error.required == Decimal("600")

        unknown = InsufficientBalance.unknown_balance("ETH")
        assert unknown.available is None

    def test_signer_rejected_is_signer_error(self):
        error = SignerRejected.policy("daily limit reached")
        assert isinstance(error, SignerError)
        assert error.code == ErrorCode.SIGNER_REJECTED
        assert error.reason == "daily limit reached"

    def test_signer_not_configured(self):
        assert SignerError.not_configured().code == ErrorCode.SIGNER_NOT_CONFIGURED

    def test_confirmation_timeout_carries_hash(self):
        error = ConfirmationTimeout.waiting_for("0xdead", 120)
        assert error.tx_hash == "0xdead"
        assert error.timeout_seconds == 120
        assert error.recoverable is False

    def test_execution_reverted(self):
        with_reason = ExecutionReverted.from_receipt("0xabc", "Pausable: paused")
        assert with_reason.reason == "Pausable: paused"
        assert str(with_reason).endswith("reverted: Pausable: paused")

        without = ExecutionReverted.from_receipt("0xabc")
        assert without.reason is None

    def test_validation_errors(self):
        assert InvalidIntent.invalid("amount", "must be positive").field_name == "amount"
        assert UnknownToken("FOO").symbol == "FOO"
        transition = InvalidStateTransition("success", "pending")
        assert transition.current == "success"
        assert transition.code == ErrorCode.INVALID_STATE_TRANSITION

    def test_operation_not_supported(self):
        error = OperationNotSupported.not_implemented("deposit", "sgho")
        assert error.code == ErrorCode.OPERATION_NOT_SUPPORTED
        assert error.vault_id == "sgho"
        assert OperationNotSupported.unknown_vault("nope").code == ErrorCode.VAULT_NOT_FOUND

    def test_configuration_error(self):
        assert ConfigurationError.missing("WALLET_RPC_URL").code == ErrorCode.CONFIG_MISSING
        assert ConfigurationError.invalid("x", "bad").code == ErrorCode.CONFIG_INVALID

    def test_raise_and_catch_as_base(self):
        with pytest.raises(WalletEngineError) as exc_info:
            raise InsufficientGas.for_cost(Decimal(1), Decimal(0))
        assert exc_info.value.kind == "InsufficientGas"
