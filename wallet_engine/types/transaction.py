"""
Transaction type definitions: intents, calls, handles, receipts
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from ..errors import InvalidStateTransition, WalletEngineError


class IntentKind(Enum):
    """What the user asked for"""
    NATIVE_TRANSFER = "native_transfer"
    TOKEN_TRANSFER = "token_transfer"
    VAULT_DEPOSIT = "vault_deposit"
    VAULT_REDEEM = "vault_redeem"

    @property
    def is_vault(self) -> bool:
        return self in (IntentKind.VAULT_DEPOSIT, IntentKind.VAULT_REDEEM)


@dataclass(frozen=True)
class TransactionIntent:
    """
    Immutable description of one user action

    Attributes:
        kind: Transfer or vault operation
        from_address: Wallet that pays / owns the funds
        to_address: Recipient for transfers; vault contract for vault operations
            (resolved from vault_id when omitted)
        amount: UI amount of asset_symbol
        asset_symbol: Registry symbol the amount is denominated in
        vault_id: Vault identifier for vault operations
        deposit_id: Deposit record closed by a successful redeem (optional)
    """
    kind: IntentKind
    from_address: str
    to_address: Optional[str]
    amount: Decimal
    asset_symbol: str
    vault_id: Optional[str] = None
    deposit_id: Optional[str] = None

    @classmethod
    def native_transfer(
        cls, from_address: str, to_address: str, amount: Union[Decimal, str], symbol: str = "ETH"
    ) -> "TransactionIntent":
        return cls(IntentKind.NATIVE_TRANSFER, from_address, to_address, Decimal(str(amount)), symbol)

    @classmethod
    def token_transfer(
        cls, from_address: str, to_address: str, amount: Union[Decimal, str], symbol: str
    ) -> "TransactionIntent":
        return cls(IntentKind.TOKEN_TRANSFER, from_address, to_address, Decimal(str(amount)), symbol)

    @classmethod
    def vault_deposit(
        cls, from_address: str, vault_id: str, amount: Union[Decimal, str], asset_symbol: str
    ) -> "TransactionIntent":
        return cls(
            IntentKind.VAULT_DEPOSIT, from_address, None, Decimal(str(amount)), asset_symbol,
            vault_id=vault_id,
        )

    @classmethod
    def vault_redeem(
        cls,
        from_address: str,
        vault_id: str,
        amount: Union[Decimal, str],
        asset_symbol: str,
        deposit_id: Optional[str] = None,
    ) -> "TransactionIntent":
        return cls(
            IntentKind.VAULT_REDEEM, from_address, None, Decimal(str(amount)), asset_symbol,
            vault_id=vault_id, deposit_id=deposit_id,
        )

    def __str__(self) -> str:
        target = self.vault_id or self.to_address
        return f"{self.kind.value}({self.amount} {self.asset_symbol} -> {target})"


@dataclass(frozen=True)
class ContractCall:
    """A single call to submit: target, hex call data, native value in wei"""
    to: str
    data: str = "0x"
    value: int = 0
    description: str = ""

    def as_tx(self, from_address: str) -> Dict[str, Any]:
        return {"from": from_address, "to": self.to, "data": self.data, "value": self.value}


@dataclass(frozen=True)
class PreparedCall:
    """
    Ordered call batch for one intent

    Vault deposits may carry an ERC-20 approval before the deposit itself.
    The last call is the one whose receipt decides the outcome.

    spend_symbol/spend_amount name what leaves the wallet (asset for deposits
    and transfers, shares for redeems) so signers can check the snapshot.
    asset_amount is the vault-asset value a deposit or redeem moves, used for
    deposit bookkeeping.
    """
    calls: Tuple[ContractCall, ...]
    approximate: bool = False
    spend_symbol: Optional[str] = None
    spend_amount: Optional[Decimal] = None
    asset_amount: Optional[Decimal] = None

    @property
    def primary(self) -> ContractCall:
        return self.calls[-1]

    @property
    def total_value(self) -> int:
        return sum(call.value for call in self.calls)

    def __len__(self) -> int:
        return len(self.calls)


class TxState(Enum):
    """Transaction lifecycle state"""
    IDLE = "idle"
    PREPARING = "preparing"
    SIGNING = "signing"
    PENDING = "pending"
    CONFIRMING = "confirming"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (TxState.SUCCESS, TxState.ERROR)


# Forward-only transitions; every non-terminal state may also fail
_TRANSITIONS: Dict[TxState, Tuple[TxState, ...]] = {
    TxState.IDLE: (TxState.PREPARING, TxState.ERROR),
    TxState.PREPARING: (TxState.SIGNING, TxState.ERROR),
    TxState.SIGNING: (TxState.PENDING, TxState.ERROR),
    TxState.PENDING: (TxState.CONFIRMING, TxState.ERROR),
    TxState.CONFIRMING: (TxState.SUCCESS, TxState.ERROR),
    TxState.SUCCESS: (),
    TxState.ERROR: (),
}


def can_transition(current: TxState, target: TxState) -> bool:
    return target in _TRANSITIONS[current]


@dataclass(frozen=True)
class Receipt:
    """Execution outcome of a mined transaction"""
    tx_hash: str
    status: int
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    effective_gas_price: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_web3(cls, receipt: Any) -> "Receipt":
        tx_hash = receipt["transactionHash"]
        if isinstance(tx_hash, (bytes, bytearray)):
            tx_hash = "0x" + bytes(tx_hash).hex()
        return cls(
            tx_hash=str(tx_hash),
            status=int(receipt["status"]),
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
            effective_gas_price=receipt.get("effectiveGasPrice"),
        )


@dataclass(frozen=True)
class Submission:
    """
    What a signer hands back after broadcast or relay acceptance

    Attributes:
        hash: Hash of the primary (last) call; None while a relay has only
            queued the batch
        submitted_at: Broadcast time
        sponsored: Gas paid by a paymaster
        extra_hashes: Hashes of earlier calls in the batch (e.g. approval)
        relay_id: Relay-side id used to poll for the hash
    """
    hash: Optional[str]
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    sponsored: bool = False
    extra_hashes: Tuple[str, ...] = ()
    relay_id: Optional[str] = None


@dataclass
class TransactionHandle:
    """
    Lifecycle record of one orchestrated transaction

    `state` is the single source of truth. Only TransactionOrchestrator moves it,
    and only forward (see can_transition). Other components read it.
    """
    intent: TransactionIntent
    state: TxState = TxState.IDLE
    hash: Optional[str] = None
    submitted_at: Optional[datetime] = None
    sponsored: bool = False
    extra_hashes: Tuple[str, ...] = ()
    relay_id: Optional[str] = None
    receipt: Optional[Receipt] = None
    error: Optional[WalletEngineError] = None
    deposit_id: Optional[str] = None
    history: List[TxState] = field(default_factory=lambda: [TxState.IDLE])

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def succeeded(self) -> bool:
        return self.state == TxState.SUCCESS

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error else None

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code.value if self.error else None

    def transition_to(self, target: TxState) -> None:
        """
        Move to the next state (orchestrator only)

        Raises:
            InvalidStateTransition: Backwards, skipping, or leaving a terminal state
        """
        if not can_transition(self.state, target):
            raise InvalidStateTransition(self.state.value, target.value)
        self.state = target
        self.history.append(target)

    def __str__(self) -> str:
        hash_display = f"{self.hash[:12]}..." if self.hash else "no hash"
        if self.error:
            return f"TransactionHandle({self.state.value}, {hash_display}, {self.error_kind})"
        return f"TransactionHandle({self.state.value}, {hash_display})"
