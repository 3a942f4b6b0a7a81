"""
Signer adapters

Two ways to get a prepared call batch on chain behind one contract:

- SelfFundedSigner: local EOA key (eth_account), pays its own gas
- SponsoredSigner: smart wallet whose batches go through a paymaster relay

Signers never touch a TransactionHandle; they return a Submission and the
orchestrator folds it into the handle.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Set, runtime_checkable

from eth_account import Account
from eth_account.signers.local import LocalAccount

from ..config import config as global_config
from ..errors import (
    WalletEngineError,
    RpcUnavailable,
    ConfirmationTimeout,
    ExecutionReverted,
    InsufficientBalance,
    InsufficientGas,
    SignerError,
    SignerRejected,
)
from ..types import (
    BalanceSnapshot,
    GasEstimate,
    PreparedCall,
    Submission,
    TransactionIntent,
    format_units,
)
from .chain_client import ChainClient
from .relay import PaymasterRelay, RelayResponse

logger = logging.getLogger(__name__)

# Async policy hook: return False to decline signing
ConfirmHook = Callable[[TransactionIntent, GasEstimate], Awaitable[bool]]


@runtime_checkable
class SignerAdapter(Protocol):
    """Contract shared by both signer variants"""

    @property
    def address(self) -> str: ...

    @property
    def sponsored(self) -> bool: ...

    async def submit(
        self,
        intent: TransactionIntent,
        prepared: PreparedCall,
        estimate: GasEstimate,
        snapshot: BalanceSnapshot,
    ) -> Submission: ...

    async def resolve_hash(self, submission: Submission) -> str: ...

    async def close(self) -> None: ...


def ensure_amount_available(
    intent: TransactionIntent,
    snapshot: BalanceSnapshot,
    prepared: Optional[PreparedCall] = None,
) -> None:
    """
    Reject an intent that spends more than the latest known balance

    The chain stays the final authority; this only avoids doomed submissions.

    Raises:
        InsufficientBalance: Amount exceeds the snapshot balance, or the
            balance is not in the snapshot at all
    """
    symbol = intent.asset_symbol
    amount = intent.amount
    if prepared is not None and prepared.spend_symbol:
        symbol = prepared.spend_symbol
        amount = prepared.spend_amount if prepared.spend_amount is not None else amount

    available = snapshot.balance_of(symbol)
    if available is None:
        raise InsufficientBalance.unknown_balance(symbol)
    if amount > available:
        raise InsufficientBalance.token_balance(symbol, amount, available)


@dataclass
class _NonceSlot:
    next: int
    outstanding: Set[int] = field(default_factory=set)


class NonceManager:
    """
    Hands out nonces for back-to-back sends from one wallet

    An approve followed by a deposit needs n and n+1 before the node has
    seen n. The pending count from the chain still wins when something
    outside this process has sent transactions.

    Usage:
        nonces = NonceManager()
        nonce = await nonces.get_nonce(chain, address)
        nonces.confirm_nonce(address, nonce)   # node accepted it
        nonces.release_nonce(address, nonce)   # node refused it
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._slots: Dict[str, _NonceSlot] = {}

    async def get_nonce(self, chain: ChainClient, address: str) -> int:
        key = address.lower()
        async with self._lock:
            pending = await chain.get_transaction_count(key, "pending")
            slot = self._slots.setdefault(key, _NonceSlot(next=pending))
            nonce = max(pending, slot.next)
            slot.next = nonce + 1
            slot.outstanding.add(nonce)
        logger.debug(f"Nonce {nonce} for {key[:10]}... (node pending count {pending})")
        return nonce

    def confirm_nonce(self, address: str, nonce: int) -> None:
        slot = self._slots.get(address.lower())
        if slot is not None:
            slot.outstanding.discard(nonce)

    def release_nonce(self, address: str, nonce: int) -> None:
        """Take back a nonce the node refused; reusable only if it was the last one issued"""
        slot = self._slots.get(address.lower())
        if slot is None:
            return
        slot.outstanding.discard(nonce)
        if slot.next == nonce + 1:
            slot.next = nonce

    def reset(self, address: Optional[str] = None) -> None:
        """Drop local tracking; the next get_nonce trusts the node again"""
        if address is None:
            self._slots.clear()
        else:
            self._slots.pop(address.lower(), None)


class SelfFundedSigner:
    """
    Local EOA signer; the wallet pays gas in the native coin

    Usage:
        signer = SelfFundedSigner.from_private_key("0x...", chain)
        signer = SelfFundedSigner.from_env(chain)
        submission = await signer.submit(intent, prepared, estimate, snapshot)
    """

    def __init__(
        self,
        account: LocalAccount,
        chain: ChainClient,
        nonce_manager: Optional[NonceManager] = None,
        confirm: Optional[ConfirmHook] = None,
        native_symbol: Optional[str] = None,
    ):
        self._account = account
        self._chain = chain
        self._nonces = nonce_manager or NonceManager()
        self._confirm = confirm
        self._native_symbol = native_symbol or global_config.chain.native_symbol

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def sponsored(self) -> bool:
        return False

    @property
    def nonce_manager(self) -> NonceManager:
        return self._nonces

    def _ensure_gas_covered(self, prepared: PreparedCall, estimate: GasEstimate, snapshot: BalanceSnapshot) -> None:
        """
        Native balance must cover worst-case gas plus any native value sent

        Raises:
            InsufficientBalance: Native balance unknown
            InsufficientGas: Native balance too low
        """
        native_raw = snapshot.native_balance_raw
        if native_raw is None:
            raise InsufficientBalance.unknown_balance(self._native_symbol)

        required = estimate.estimated_cost_wei + prepared.total_value
        if native_raw < required:
            raise InsufficientGas.for_cost(
                Decimal(format_units(required, 18)),
                Decimal(format_units(native_raw, 18)),
                self._native_symbol,
            )

    def _build_tx(self, call, gas_limit: int, estimate: GasEstimate, nonce: int, chain_id: int) -> Dict[str, Any]:
        tx: Dict[str, Any] = {
            "to": ChainClient.checksum(call.to),
            "value": call.value,
            "data": call.data,
            "gas": gas_limit,
            "nonce": nonce,
            "chainId": chain_id,
        }
        if estimate.is_eip1559:
            tx["maxFeePerGas"] = estimate.max_fee_per_gas
            tx["maxPriorityFeePerGas"] = estimate.max_priority_fee_per_gas
            tx["type"] = 2
        else:
            tx["gasPrice"] = estimate.base_or_gas_price
        return tx

    def sign_transaction(self, tx: Dict[str, Any]) -> bytes:
        try:
            signed = self._account.sign_transaction(tx)
        except (TypeError, ValueError) as e:
            raise SignerError.failed(str(e), e) from e
        return signed.raw_transaction

    async def _send_one(self, tx_fields: Callable[[int], Dict[str, Any]]) -> str:
        nonce = await self._nonces.get_nonce(self._chain, self.address)
        try:
            raw = self.sign_transaction(tx_fields(nonce))
            tx_hash = await self._chain.submit(raw)
        except RpcUnavailable:
            # Broadcast may or may not have landed; re-sync from the chain next time
            self._nonces.reset(self.address)
            raise
        except WalletEngineError:
            self._nonces.release_nonce(self.address, nonce)
            raise
        self._nonces.confirm_nonce(self.address, nonce)
        return tx_hash

    async def submit(
        self,
        intent: TransactionIntent,
        prepared: PreparedCall,
        estimate: GasEstimate,
        snapshot: BalanceSnapshot,
    ) -> Submission:
        """
        Check balances, sign and broadcast each call of the batch

        Balance and gas checks run before any network call.

        Returns:
            Submission carrying the hash of the last call

        Raises:
            InsufficientBalance, InsufficientGas: Client-side guards
            SignerRejected: The confirm hook declined
            ExecutionReverted, RpcUnavailable: Broadcast failed
        """
        ensure_amount_available(intent, snapshot, prepared)
        self._ensure_gas_covered(prepared, estimate, snapshot)

        if self._confirm is not None and not await self._confirm(intent, estimate):
            raise SignerRejected.user_declined()

        chain_id = await self._chain.chain_id()
        limits = list(estimate.call_gas_limits)
        if len(limits) != len(prepared.calls):
            limits = [estimate.gas_limit] * len(prepared.calls)

        hashes = []
        for call, gas_limit in zip(prepared.calls, limits):
            try:
                tx_hash = await self._send_one(
                    lambda nonce, c=call, g=gas_limit: self._build_tx(c, g, estimate, nonce, chain_id)
                )
            except WalletEngineError as e:
                if hashes:
                    # Earlier calls are already on chain; the caller has to see them
                    e.broadcast_hashes = tuple(hashes)
                    logger.error(f"Batch stopped at {call.description or 'call'} after broadcasting {', '.join(hashes)}")
                raise
            logger.info(f"Broadcast {call.description or 'call'}: {tx_hash}")
            hashes.append(tx_hash)

        return Submission(hash=hashes[-1], sponsored=False, extra_hashes=tuple(hashes[:-1]))

    async def resolve_hash(self, submission: Submission) -> str:
        if submission.hash is None:
            raise SignerError.failed("self-funded submission has no hash")
        return submission.hash

    async def close(self) -> None:
        """Nothing to release; the chain client is closed by its owner"""

    @classmethod
    def from_private_key(cls, private_key: str, chain: ChainClient, **kwargs) -> "SelfFundedSigner":
        """Build from a hex key; the 0x prefix is optional"""
        key = private_key if private_key.startswith("0x") else f"0x{private_key}"
        try:
            account = Account.from_key(key)
        except (ValueError, TypeError) as e:
            raise SignerError.failed("invalid private key", e) from e
        return cls(account, chain, **kwargs)

    @classmethod
    def from_env(cls, chain: ChainClient, env_var: str = "WALLET_PRIVATE_KEY", **kwargs) -> "SelfFundedSigner":
        """Build from the key in ``env_var``; SignerError when it is empty"""
        key = os.getenv(env_var, "").strip()
        if not key:
            raise SignerError.not_configured()
        return cls.from_private_key(key, chain, **kwargs)

    @classmethod
    def from_keystore(cls, keystore_path: str, password: str, chain: ChainClient, **kwargs) -> "SelfFundedSigner":
        with open(keystore_path, encoding="utf-8") as keystore_file:
            encrypted = keystore_file.read()
        try:
            key = Account.decrypt(encrypted, password)
        except ValueError as e:
            raise SignerError.failed("could not decrypt keystore", e) from e
        return cls(Account.from_key(key), chain, **kwargs)

    def __repr__(self) -> str:
        return f"SelfFundedSigner(address={self.address})"


class SponsoredSigner:
    """
    Smart-wallet signer; a paymaster relay signs, submits and pays gas

    The relay first answers "queued"; resolve_hash() then polls it until the
    bundle hash is known.
    """

    def __init__(
        self,
        address: str,
        relay: PaymasterRelay,
        chain: ChainClient,
        poll_interval: Optional[float] = None,
        max_wait: Optional[float] = None,
    ):
        self._address = ChainClient.checksum(address)
        self._relay = relay
        self._chain = chain
        self._poll_interval = poll_interval if poll_interval is not None else global_config.sponsor.poll_interval
        self._max_wait = max_wait if max_wait is not None else global_config.sponsor.max_wait

    @property
    def address(self) -> str:
        return self._address

    @property
    def sponsored(self) -> bool:
        return True

    @property
    def relay(self) -> PaymasterRelay:
        return self._relay

    @staticmethod
    def _check(response: RelayResponse) -> None:
        if response.is_rejected:
            raise SignerRejected.policy(response.reason or "relay rejected the batch")
        if response.is_failed:
            raise ExecutionReverted.rejected_by_node(response.reason or "relay reported failure")

    async def submit(
        self,
        intent: TransactionIntent,
        prepared: PreparedCall,
        estimate: GasEstimate,
        snapshot: BalanceSnapshot,
    ) -> Submission:
        """
        Hand the batch to the relay; gas is never checked against the wallet

        Returns:
            Submission with the hash when the relay already knows it,
            otherwise with the relay id only
        """
        ensure_amount_available(intent, snapshot, prepared)

        chain_id = await self._chain.chain_id()
        response = await self._relay.submit_batch(self._address, list(prepared.calls), chain_id)
        self._check(response)

        if response.tx_hash is None and response.relay_id is None:
            raise RpcUnavailable.invalid_response(self._relay.base_url, "relay returned neither id nor hash")
        if response.tx_hash is None and not response.is_pending:
            raise RpcUnavailable.invalid_response(self._relay.base_url, f"unexpected relay status {response.status!r}")

        logger.info(f"Relay accepted batch: status={response.status} id={response.relay_id}")
        return Submission(hash=response.tx_hash, sponsored=True, relay_id=response.relay_id)

    async def _poll_relay(self, relay_id: str) -> str:
        while True:
            await asyncio.sleep(self._poll_interval)
            response = await self._relay.get_status(relay_id)
            self._check(response)
            if response.tx_hash:
                return response.tx_hash
            if not response.is_pending:
                raise RpcUnavailable.invalid_response(
                    self._relay.base_url, f"relay status {response.status!r} without hash"
                )

    async def resolve_hash(self, submission: Submission) -> str:
        """
        Wait for the relay to report the on-chain hash

        Raises:
            ConfirmationTimeout: Relay still queued after max_wait
            SignerRejected, ExecutionReverted: Relay gave up on the batch
        """
        if submission.hash:
            return submission.hash
        try:
            return await asyncio.wait_for(self._poll_relay(submission.relay_id), self._max_wait)
        except asyncio.TimeoutError:
            raise ConfirmationTimeout(
                f"Relay {submission.relay_id} reported no hash after {self._max_wait}s",
                timeout_seconds=self._max_wait,
            ) from None

    async def close(self) -> None:
        await self._relay.close()

    def __repr__(self) -> str:
        return f"SponsoredSigner(address={self._address}, relay={self._relay.base_url})"
