"""
Chain client: thin async facade over one JSON-RPC endpoint (web3.py AsyncWeb3)

Reads are side-effect free. submit() is the only mutating call; it never
retries on its own.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence

import aiohttp
from eth_abi.exceptions import DecodingError
from eth_utils import keccak
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import (
    ContractLogicError,
    MethodUnavailable,
    TransactionNotFound,
    Web3RPCError,
)

from ..config import config as global_config
from ..errors import (
    WalletEngineError,
    RpcUnavailable,
    ContractReadFailed,
    EstimationFailed,
    ExecutionReverted,
    InsufficientGas,
    ConfirmationTimeout,
)
from ..types import FeeParameters, Receipt
from .abi import encode_call, decode_output
from .retry import classify_error

logger = logging.getLogger(__name__)

# Network-level failures that never mean "the call itself is bad"
_TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError, OSError)


def create_async_web3(rpc_url: str, timeout: Optional[float] = None) -> AsyncWeb3:
    """
    Create an AsyncWeb3 instance for the configured chain

    Args:
        rpc_url: RPC endpoint URL
        timeout: Request timeout in seconds

    Returns:
        AsyncWeb3 bound to an AsyncHTTPProvider
    """
    timeout = timeout if timeout is not None else global_config.chain.timeout_seconds
    provider = AsyncHTTPProvider(
        rpc_url,
        request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout)},
    )
    return AsyncWeb3(provider)


def to_hex_hash(value: Any) -> str:
    """Normalize HexBytes/bytes/str hashes to a 0x-prefixed lowercase string"""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value)
    return text if text.startswith("0x") else "0x" + text


def _revert_reason(error: Exception) -> Optional[str]:
    message = getattr(error, "message", None) or str(error)
    return message or None


class ChainClient:
    """
    Read/write facade over a single JSON-RPC endpoint

    Usage:
        chain = ChainClient("https://ethereum-rpc.publicnode.com")
        wei = await chain.read_balance("0x...")
        raw = await chain.read_contract(usdc, "balanceOf(address)", [owner])
        receipt = await chain.wait_for_receipt(tx_hash, timeout=120)
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        chain_id: Optional[int] = None,
        timeout: Optional[float] = None,
        web3: Optional[AsyncWeb3] = None,
    ):
        self._endpoint = rpc_url or global_config.chain.rpc_url
        self._web3 = web3 or create_async_web3(self._endpoint, timeout)
        self._chain_id = chain_id

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def web3(self) -> AsyncWeb3:
        return self._web3

    @staticmethod
    def checksum(address: str) -> str:
        return AsyncWeb3.to_checksum_address(address)

    @staticmethod
    def is_address(address: Optional[str]) -> bool:
        return bool(address) and AsyncWeb3.is_address(address)

    def _unavailable(self, operation: str, error: Exception) -> RpcUnavailable:
        if isinstance(error, asyncio.TimeoutError):
            return RpcUnavailable.timeout(self._endpoint, global_config.chain.timeout_seconds)
        logger.warning(f"RPC {operation} failed on {self._endpoint}: {error}")
        return RpcUnavailable.connection_failed(self._endpoint, error)

    def _translate_rpc_error(self, operation: str, error: Exception) -> WalletEngineError:
        """Map a JSON-RPC error response to the taxonomy by its message"""
        is_recoverable, is_revert, code = classify_error(error)
        if is_recoverable:
            err = self._unavailable(operation, error)
            if code is not None:
                err.code = code
            return err
        if operation == "estimate_gas" and is_revert:
            return EstimationFailed.would_revert(_revert_reason(error), error)
        return ExecutionReverted.rejected_by_node(_revert_reason(error) or operation, error)

    # =========================================================================
    # Reads
    # =========================================================================

    async def chain_id(self) -> int:
        if self._chain_id is None:
            try:
                self._chain_id = int(await self._web3.eth.chain_id)
            except _TRANSPORT_ERRORS as e:
                raise self._unavailable("chain_id", e) from e
        return self._chain_id

    async def read_balance(self, address: str) -> int:
        """Native coin balance in wei"""
        try:
            return int(await self._web3.eth.get_balance(self.checksum(address)))
        except _TRANSPORT_ERRORS as e:
            raise self._unavailable("get_balance", e) from e
        except Web3RPCError as e:
            raise self._translate_rpc_error("get_balance", e) from e

    async def read_contract(
        self,
        contract_address: str,
        signature: str,
        args: Sequence[Any] = (),
        output_types: Sequence[str] = ("uint256",),
    ) -> Any:
        """
        Call a view function

        Args:
            contract_address: Contract to call
            signature: Canonical function signature, e.g. "balanceOf(address)"
            args: Arguments matching the signature
            output_types: ABI types of the return values

        Returns:
            Decoded value (unwrapped when there is a single output)

        Raises:
            ContractReadFailed: Call reverted or returned no/undecodable data
            RpcUnavailable: Network-level failure
        """
        contract = self.checksum(contract_address)
        call = {"to": contract, "data": encode_call(signature, args)}
        try:
            data = await self._web3.eth.call(call)
        except ContractLogicError as e:
            raise ContractReadFailed.reverted(contract, signature, e) from e
        except _TRANSPORT_ERRORS as e:
            raise self._unavailable("eth_call", e) from e
        except Web3RPCError as e:
            translated = self._translate_rpc_error("eth_call", e)
            if translated.recoverable:
                raise translated from e
            raise ContractReadFailed.reverted(contract, signature, e) from e

        if not data and output_types:
            # No code at the address or no such function
            raise ContractReadFailed.reverted(contract, signature, ValueError("empty return data"))
        try:
            return decode_output(output_types, data)
        except DecodingError as e:
            raise ContractReadFailed.reverted(contract, signature, e) from e

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        """
        Estimate gas for a call

        Raises:
            EstimationFailed: The call would revert
            RpcUnavailable: Network-level failure
        """
        params = dict(tx)
        params["to"] = self.checksum(params["to"])
        if params.get("from"):
            params["from"] = self.checksum(params["from"])
        try:
            return int(await self._web3.eth.estimate_gas(params))
        except ContractLogicError as e:
            raise EstimationFailed.would_revert(_revert_reason(e), e) from e
        except _TRANSPORT_ERRORS as e:
            raise self._unavailable("estimate_gas", e) from e
        except Web3RPCError as e:
            raise self._translate_rpc_error("estimate_gas", e) from e

    async def current_fee_parameters(self) -> FeeParameters:
        """
        Base fee and priority fee from the latest block

        Legacy chains (no baseFeePerGas) report gas_price instead.
        """
        try:
            block = await self._web3.eth.get_block("latest")
            base_fee = block.get("baseFeePerGas")
            if base_fee is None:
                gas_price = int(await self._web3.eth.gas_price)
                return FeeParameters(base_fee=None, priority_fee=0, gas_price=gas_price)

            try:
                priority_fee = int(await self._web3.eth.max_priority_fee)
            except (MethodUnavailable, Web3RPCError, ValueError) as e:
                logger.debug(f"eth_maxPriorityFeePerGas unavailable, using configured tip: {e}")
                priority_fee = AsyncWeb3.to_wei(global_config.gas.priority_fee_gwei, "gwei")
            return FeeParameters(base_fee=int(base_fee), priority_fee=int(priority_fee))
        except _TRANSPORT_ERRORS as e:
            raise self._unavailable("fee_parameters", e) from e
        except Web3RPCError as e:
            raise self._translate_rpc_error("fee_parameters", e) from e

    async def get_transaction_count(self, address: str, block_identifier: str = "pending") -> int:
        try:
            return int(await self._web3.eth.get_transaction_count(self.checksum(address), block_identifier))
        except _TRANSPORT_ERRORS as e:
            raise self._unavailable("get_transaction_count", e) from e
        except Web3RPCError as e:
            raise self._translate_rpc_error("get_transaction_count", e) from e

    async def get_transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Transaction as seen by the node (pending or mined), None if unknown"""
        try:
            return dict(await self._web3.eth.get_transaction(tx_hash))
        except TransactionNotFound:
            return None
        except _TRANSPORT_ERRORS as e:
            raise self._unavailable("get_transaction", e) from e
        except Web3RPCError as e:
            raise self._translate_rpc_error("get_transaction", e) from e

    async def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        """Receipt if mined, None otherwise"""
        try:
            receipt = await self._web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except _TRANSPORT_ERRORS as e:
            raise self._unavailable("get_transaction_receipt", e) from e
        except Web3RPCError as e:
            raise self._translate_rpc_error("get_transaction_receipt", e) from e
        if receipt is None:
            return None
        return Receipt.from_web3(receipt)

    async def replay_for_revert_reason(self, tx: Dict[str, Any], block_number: Optional[int]) -> Optional[str]:
        """
        Re-run a reverted transaction as eth_call to recover its reason string

        Best effort: returns None when the node gives no reason.
        """
        params = {k: v for k, v in tx.items() if k in ("from", "to", "data", "value")}
        try:
            await self._web3.eth.call(params, block_identifier=block_number or "latest")
        except ContractLogicError as e:
            return _revert_reason(e)
        except (Web3RPCError, *_TRANSPORT_ERRORS) as e:
            logger.debug(f"Revert reason replay failed: {e}")
        return None

    # =========================================================================
    # Writes
    # =========================================================================

    async def submit(self, signed_payload: bytes) -> str:
        """
        Broadcast a signed transaction

        Resubmitting the same payload returns the same hash.

        Raises:
            InsufficientGas: Node reports insufficient funds for gas * price + value
            ExecutionReverted: Node rejected the transaction
            RpcUnavailable: Network-level failure
        """
        try:
            tx_hash = await self._web3.eth.send_raw_transaction(signed_payload)
            return to_hex_hash(tx_hash)
        except _TRANSPORT_ERRORS as e:
            raise self._unavailable("send_raw_transaction", e) from e
        except (Web3RPCError, ContractLogicError) as e:
            message = str(e).lower()
            if "already known" in message:
                return "0x" + keccak(bytes(signed_payload)).hex()
            if "insufficient funds" in message:
                raise InsufficientGas(f"Node rejected transaction: {e}") from e
            raise self._translate_rpc_error("send_raw_transaction", e) from e

    # =========================================================================
    # Confirmation
    # =========================================================================

    async def _poll(self, fetch, tx_hash: str, poll_interval: float):
        while True:
            try:
                found = await fetch(tx_hash)
            except RpcUnavailable as e:
                # Keep observing; the timeout bounds the wait
                logger.warning(f"Polling {tx_hash[:12]}... hit RPC error: {e}")
                found = None
            if found:
                return found
            await asyncio.sleep(poll_interval)

    async def wait_for_receipt(
        self,
        tx_hash: str,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> Receipt:
        """
        Suspend until the receipt is available or the timeout elapses

        Cancelling the awaiting task stops local observation only.

        Raises:
            ConfirmationTimeout: No receipt within the timeout
        """
        timeout = timeout if timeout is not None else global_config.tx.confirmation_timeout
        poll_interval = poll_interval if poll_interval is not None else global_config.tx.poll_interval
        try:
            return await asyncio.wait_for(self._poll(self.get_receipt, tx_hash, poll_interval), timeout)
        except asyncio.TimeoutError:
            raise ConfirmationTimeout.waiting_for(tx_hash, timeout) from None

    async def wait_until_visible(
        self,
        tx_hash: str,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> bool:
        """
        Wait for the hash to show up in the pending pool (or already mined)

        Returns:
            True when seen, False when the timeout elapsed first
        """
        timeout = timeout if timeout is not None else global_config.tx.pending_timeout
        poll_interval = poll_interval if poll_interval is not None else global_config.tx.poll_interval
        try:
            await asyncio.wait_for(self._poll(self.get_transaction, tx_hash, poll_interval), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def close(self) -> None:
        disconnect = getattr(self._web3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()

    async def __aenter__(self) -> "ChainClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def __repr__(self) -> str:
        return f"ChainClient(endpoint={self._endpoint}, chain_id={self._chain_id})"
