"""
ChainClient Unit Tests

AsyncWeb3 is replaced by a Mock; tests cover exception translation,
decoding and the receipt wait loop.
"""

from unittest.mock import AsyncMock, Mock

import aiohttp
import pytest
from eth_abi import encode
from eth_utils import keccak
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3RPCError

from wallet_engine.errors import (
    ConfirmationTimeout,
    ContractReadFailed,
    EstimationFailed,
    ExecutionReverted,
    InsufficientGas,
    RpcUnavailable,
)
from wallet_engine.infra.abi import ERC20_BALANCE_OF, ERC20_SYMBOL
from wallet_engine.infra.chain_client import ChainClient, to_hex_hash

from conftest import WALLET, TX_HASH

USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"


async def _value(value):
    return value


@pytest.fixture
def web3():
    w3 = Mock()
    w3.eth = Mock()
    return w3


@pytest.fixture
def chain(web3):
    return ChainClient("https://rpc.example.com", chain_id=1, web3=web3)


class TestReads:

    @pytest.mark.asyncio
    async def test_read_balance_checksums_address(self, chain, web3):
        web3.eth.get_balance = AsyncMock(return_value=10**16)
        assert await chain.read_balance(WALLET.lower()) == 10**16
        web3.eth.get_balance.assert_awaited_once_with(WALLET)

    @pytest.mark.asyncio
    async def test_read_balance_connection_error(self, chain, web3):
        web3.eth.get_balance = AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))
        with pytest.raises(RpcUnavailable) as exc_info:
            await chain.read_balance(WALLET)
        assert exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_read_contract_decodes_uint(self, chain, web3):
        web3.eth.call = AsyncMock(return_value=encode(["uint256"], [500_000_000]))
        assert await chain.read_contract(USDC, ERC20_BALANCE_OF, [WALLET]) == 500_000_000

        call = web3.eth.call.await_args.args[0]
        assert call["to"] == USDC
        assert call["data"].startswith("0x70a08231")

    @pytest.mark.asyncio
    async def test_read_contract_decodes_string(self, chain, web3):
        web3.eth.call = AsyncMock(return_value=encode(["string"], ["USDC"]))
        assert await chain.read_contract(USDC, ERC20_SYMBOL, (), ("string",)) == "USDC"

    @pytest.mark.asyncio
    async def test_read_contract_revert(self, chain, web3):
        web3.eth.call = AsyncMock(side_effect=ContractLogicError("execution reverted"))
        with pytest.raises(ContractReadFailed):
            await chain.read_contract(USDC, ERC20_BALANCE_OF, [WALLET])

    @pytest.mark.asyncio
    async def test_read_contract_empty_return(self, chain, web3):
        web3.eth.call = AsyncMock(return_value=b"")
        with pytest.raises(ContractReadFailed):
            await chain.read_contract(USDC, ERC20_BALANCE_OF, [WALLET])

    @pytest.mark.asyncio
    async def test_fee_parameters_eip1559(self, chain, web3):
        web3.eth.get_block = AsyncMock(return_value={"baseFeePerGas": 12 * 10**9})
        web3.eth.max_priority_fee = _value(2 * 10**9)
        fees = await chain.current_fee_parameters()
        assert fees.base_fee == 12 * 10**9
        assert fees.priority_fee == 2 * 10**9
        assert fees.is_eip1559

    @pytest.mark.asyncio
    async def test_fee_parameters_legacy(self, chain, web3):
        web3.eth.get_block = AsyncMock(return_value={"number": 1})
        web3.eth.gas_price = _value(5 * 10**9)
        fees = await chain.current_fee_parameters()
        assert fees.base_fee is None
        assert fees.gas_price == 5 * 10**9

    @pytest.mark.asyncio
    async def test_get_receipt_not_found(self, chain, web3):
        web3.eth.get_transaction_receipt = AsyncMock(side_effect=TransactionNotFound("not found"))
        assert await chain.get_receipt(TX_HASH) is None


class TestEstimateGas:

    @pytest.mark.asyncio
    async def test_estimate(self, chain, web3):
        web3.eth.estimate_gas = AsyncMock(return_value=46_000)
        assert await chain.estimate_gas({"from": WALLET, "to": USDC, "data": "0x"}) == 46_000

    @pytest.mark.asyncio
    async def test_revert_becomes_estimation_failed(self, chain, web3):
        web3.eth.estimate_gas = AsyncMock(
            side_effect=ContractLogicError("execution reverted: ERC20: transfer amount exceeds balance")
        )
        with pytest.raises(EstimationFailed) as exc_info:
            await chain.estimate_gas({"from": WALLET, "to": USDC, "data": "0x"})
        assert "exceeds balance" in exc_info.value.reason


class TestSubmit:

    @pytest.mark.asyncio
    async def test_returns_hex_hash(self, chain, web3):
        web3.eth.send_raw_transaction = AsyncMock(return_value=bytes.fromhex("ab" * 32))
        assert await chain.submit(b"\x02signed") == TX_HASH

    @pytest.mark.asyncio
    async def test_resubmitting_same_payload_returns_same_hash(self, chain, web3):
        payload = b"\x02signed-payload"
        web3.eth.send_raw_transaction = AsyncMock(side_effect=Web3RPCError("already known"))
        assert await chain.submit(payload) == "0x" + keccak(payload).hex()

    @pytest.mark.asyncio
    async def test_insufficient_funds(self, chain, web3):
        web3.eth.send_raw_transaction = AsyncMock(
            side_effect=Web3RPCError("insufficient funds for gas * price + value")
        )
        with pytest.raises(InsufficientGas):
            await chain.submit(b"\x02")

    @pytest.mark.asyncio
    async def test_node_rejection(self, chain, web3):
        web3.eth.send_raw_transaction = AsyncMock(side_effect=Web3RPCError("nonce too low"))
        with pytest.raises(ExecutionReverted):
            await chain.submit(b"\x02")

    @pytest.mark.asyncio
    async def test_transport_failure_is_not_masked(self, chain, web3):
        web3.eth.send_raw_transaction = AsyncMock(side_effect=aiohttp.ClientConnectionError("reset"))
        with pytest.raises(RpcUnavailable):
            await chain.submit(b"\x02")


class TestWaitForReceipt:

    @pytest.mark.asyncio
    async def test_polls_until_mined(self, chain, web3):
        mined = {"transactionHash": bytes.fromhex("ab" * 32), "status": 1, "blockNumber": 9}
        web3.eth.get_transaction_receipt = AsyncMock(side_effect=[
            TransactionNotFound("pending"),
            TransactionNotFound("pending"),
            mined,
        ])
        receipt = await chain.wait_for_receipt(TX_HASH, timeout=5, poll_interval=0)
        assert receipt.succeeded
        assert receipt.block_number == 9
        assert web3.eth.get_transaction_receipt.await_count == 3

    @pytest.mark.asyncio
    async def test_timeout(self, chain, web3):
        web3.eth.get_transaction_receipt = AsyncMock(side_effect=TransactionNotFound("pending"))
        with pytest.raises(ConfirmationTimeout) as exc_info:
            await chain.wait_for_receipt(TX_HASH, timeout=0.05, poll_interval=0.01)
        assert exc_info.value.tx_hash == TX_HASH

    @pytest.mark.asyncio
    async def test_wait_until_visible_false_on_timeout(self, chain, web3):
        web3.eth.get_transaction = AsyncMock(side_effect=TransactionNotFound("unknown"))
        assert await chain.wait_until_visible(TX_HASH, timeout=0.05, poll_interval=0.01) is False


def test_to_hex_hash():
    assert to_hex_hash(bytes.fromhex("ab" * 32)) == TX_HASH
    assert to_hex_hash("ab" * 32) == TX_HASH
    assert to_hex_hash(TX_HASH) == TX_HASH
