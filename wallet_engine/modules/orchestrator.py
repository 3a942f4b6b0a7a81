"""
Transaction Orchestrator

Drives one intent through

    idle -> preparing -> signing -> pending -> confirming -> success | error

The handle's state only moves forward. Every failure lands on the handle as
a typed WalletEngineError; nothing is masked with synthetic success data.
Cancelling execute() stops local observation only; a broadcast transaction
cannot be taken back.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from ..config import TxConfig, config as global_config
from ..errors import ConfirmationTimeout, ExecutionReverted, InvalidIntent, WalletEngineError
from ..infra.chain_client import ChainClient
from ..infra.retry import CorrelationContext, log_with_correlation
from ..infra.signers import SignerAdapter, ensure_amount_available
from ..types import (
    BalanceSnapshot,
    GasEstimate,
    IntentKind,
    PreparedCall,
    Receipt,
    Submission,
    TransactionHandle,
    TransactionIntent,
    TxState,
    get_vault,
)
from .calls import CallBuilder
from .deposits import DepositStore
from .gas import GasEstimator

logger = logging.getLogger(__name__)

# Called with the handle after every transition
TransitionListener = Callable[[TransactionHandle], None]


class TransactionOrchestrator:
    """
    State machine for submitted intents

    Usage:
        orchestrator = TransactionOrchestrator(chain, builder, estimator, deposit_store=store)
        orchestrator.add_listener(lambda handle: print(handle.state))
        handle = await orchestrator.execute(intent, signer, snapshot)
        if handle.state == TxState.ERROR:
            print(handle.error_kind, handle.error_code)
    """

    def __init__(
        self,
        chain: ChainClient,
        builder: CallBuilder,
        estimator: GasEstimator,
        deposit_store: Optional[DepositStore] = None,
        tx_config: Optional[TxConfig] = None,
    ):
        self._chain = chain
        self._builder = builder
        self._estimator = estimator
        self._deposits = deposit_store
        self._config = tx_config or global_config.tx
        self._listeners: List[TransitionListener] = []

    def add_listener(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: TransitionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _advance(self, handle: TransactionHandle, target: TxState) -> None:
        handle.transition_to(target)
        log_with_correlation(logging.INFO, f"-> {target.value}", "orchestrator", tx_hash=handle.hash)
        for listener in list(self._listeners):
            try:
                listener(handle)
            except Exception:
                # A broken progress callback must not change the transaction outcome
                logger.exception(f"Transition listener failed on {target.value}")

    def _fail(self, handle: TransactionHandle, error: WalletEngineError) -> None:
        handle.error = error
        if error.broadcast_hashes and not handle.extra_hashes:
            # Part of the batch landed before the failure; keep it reconcilable
            handle.extra_hashes = error.broadcast_hashes
        log_with_correlation(
            logging.ERROR if handle.state in (TxState.PENDING, TxState.CONFIRMING) else logging.WARNING,
            f"{handle.state.value} failed: {error}",
            "orchestrator",
            error_kind=error.kind,
            error_code=error.code.value,
        )
        self._advance(handle, TxState.ERROR)

    @staticmethod
    def _apply_submission(handle: TransactionHandle, submission: Submission) -> None:
        handle.hash = submission.hash
        handle.submitted_at = submission.submitted_at
        handle.sponsored = submission.sponsored
        handle.extra_hashes = submission.extra_hashes
        handle.relay_id = submission.relay_id

    async def _fresh_estimate(
        self,
        intent: TransactionIntent,
        prepared: PreparedCall,
        signer: SignerAdapter,
        estimate: Optional[GasEstimate],
    ) -> GasEstimate:
        if estimate is not None and not estimate.is_stale(self._estimator.max_age):
            return estimate
        if estimate is not None:
            logger.info(f"Gas estimate is {estimate.age_seconds():.1f}s old, re-estimating")
        return await self._estimator.estimate_prepared(intent, prepared, sponsored=signer.sponsored)

    async def _confirm(self, handle: TransactionHandle, prepared: PreparedCall) -> Receipt:
        if not await self._chain.wait_until_visible(handle.hash, self._config.pending_timeout, self._config.poll_interval):
            raise ConfirmationTimeout(
                f"{handle.hash} never appeared in the pending pool within {self._config.pending_timeout}s",
                tx_hash=handle.hash,
                timeout_seconds=self._config.pending_timeout,
            )
        self._advance(handle, TxState.CONFIRMING)

        receipt = await self._chain.wait_for_receipt(
            handle.hash, self._config.confirmation_timeout, self._config.poll_interval
        )
        handle.receipt = receipt
        if not receipt.succeeded:
            reason = None
            if not handle.sponsored:
                reason = await self._chain.replay_for_revert_reason(
                    prepared.primary.as_tx(handle.intent.from_address), receipt.block_number
                )
            raise ExecutionReverted.from_receipt(handle.hash, reason)
        return receipt

    async def execute(
        self,
        intent: TransactionIntent,
        signer: SignerAdapter,
        snapshot: BalanceSnapshot,
        estimate: Optional[GasEstimate] = None,
    ) -> TransactionHandle:
        """
        Run an intent to a terminal state

        Args:
            intent: What to do
            signer: SelfFundedSigner or SponsoredSigner
            snapshot: Latest balances; used for the client-side guards
            estimate: Estimate shown to the user; re-derived when stale

        Returns:
            Handle in SUCCESS or ERROR; on ERROR, handle.error carries the
            taxonomy error
        """
        handle = TransactionHandle(intent=intent)

        with CorrelationContext("tx"):
            logger.info(f"Executing {intent} via {signer!r}")
            try:
                self._advance(handle, TxState.PREPARING)
                if intent.from_address.lower() != signer.address.lower():
                    raise InvalidIntent.invalid("from_address", f"signer controls {signer.address}")
                prepared = await self._builder.build(intent)
                ensure_amount_available(intent, snapshot, prepared)
                estimate = await self._fresh_estimate(intent, prepared, signer, estimate)

                self._advance(handle, TxState.SIGNING)
                # Re-derive if it aged past max_age while preparing
                estimate = await self._fresh_estimate(intent, prepared, signer, estimate)
                submission = await signer.submit(intent, prepared, estimate, snapshot)
                self._apply_submission(handle, submission)

                self._advance(handle, TxState.PENDING)
                if handle.hash is None:
                    handle.hash = await signer.resolve_hash(submission)

                await self._confirm(handle, prepared)
                self._advance(handle, TxState.SUCCESS)
            except WalletEngineError as e:
                self._fail(handle, e)
                return handle

            await self._record_bookkeeping(handle, prepared)
            logger.info(f"{intent} confirmed in block {handle.receipt.block_number}: {handle.hash}")
            return handle

    async def _record_bookkeeping(self, handle: TransactionHandle, prepared: PreparedCall) -> None:
        """Deposit records follow confirmed vault operations; store failures are only logged"""
        intent = handle.intent
        if self._deposits is None or not intent.kind.is_vault:
            return

        now = datetime.now(timezone.utc)
        asset_amount = prepared.asset_amount if prepared.asset_amount is not None else intent.amount
        try:
            if intent.kind == IntentKind.VAULT_DEPOSIT:
                deposit = await self._deposits.record_deposit(
                    intent.from_address,
                    intent.vault_id,
                    asset_amount,
                    handle.hash,
                    apy_at_deposit=get_vault(intent.vault_id).apy,
                    deposited_at=now,
                )
                handle.deposit_id = deposit.id
            elif intent.deposit_id:
                await self._deposits.record_withdrawal(intent.deposit_id, asset_amount, handle.hash, withdrawn_at=now)
                handle.deposit_id = intent.deposit_id
        except Exception:
            logger.exception(f"Deposit bookkeeping failed for {handle.hash}; transaction itself succeeded")

    async def reconcile(self, tx_hash: str) -> Optional[Receipt]:
        """
        Re-query a hash after an ambiguous outcome (e.g. ConfirmationTimeout)

        Never resubmits. Returns the receipt if the transaction has landed.
        """
        receipt = await self._chain.get_receipt(tx_hash)
        if receipt is None:
            logger.info(f"{tx_hash} still has no receipt")
        else:
            logger.info(f"{tx_hash} landed in block {receipt.block_number} (status={receipt.status})")
        return receipt
