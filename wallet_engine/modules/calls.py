"""
Call builder: intent -> PreparedCall

Transfers are encoded here; vault intents are delegated to the vault's
adapter.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, Optional

from ..errors import InvalidIntent, OperationNotSupported
from ..infra.abi import ERC20_TRANSFER, encode_call
from ..infra.chain_client import ChainClient
from ..types import (
    ContractCall,
    IntentKind,
    PreparedCall,
    TokenRegistry,
    TransactionIntent,
    find_vault,
)
from .vault import VaultAdapter

logger = logging.getLogger(__name__)


class CallBuilder:
    """Encodes every intent kind against one registry and a set of vaults"""

    def __init__(self, registry: TokenRegistry, vaults: Optional[Iterable[VaultAdapter]] = None):
        self._registry = registry
        self._vaults: Dict[str, VaultAdapter] = {v.vault_id: v for v in (vaults or ())}

    @property
    def registry(self) -> TokenRegistry:
        return self._registry

    def vault(self, vault_id: str) -> VaultAdapter:
        """
        Raises:
            OperationNotSupported: Vault unknown or not wired to this builder
        """
        adapter = self._vaults.get(vault_id.lower())
        if adapter is None:
            if find_vault(vault_id) is None:
                raise OperationNotSupported.unknown_vault(vault_id)
            raise OperationNotSupported.not_implemented("vault access", vault_id)
        return adapter

    def validate(self, intent: TransactionIntent) -> None:
        """
        Static checks that need no chain access

        Raises:
            InvalidIntent: Non-positive amount, bad address, missing vault id
            UnknownToken: Asset symbol not registered
        """
        if not isinstance(intent.amount, Decimal) or not intent.amount.is_finite() or intent.amount <= 0:
            raise InvalidIntent.invalid("amount", f"must be greater than zero, got {intent.amount}")
        if not ChainClient.is_address(intent.from_address):
            raise InvalidIntent.invalid("from_address", f"not an address: {intent.from_address!r}")
        self._registry.by_symbol(intent.asset_symbol)

        if intent.kind.is_vault:
            if not intent.vault_id:
                raise InvalidIntent.invalid("vault_id", "required for vault operations")
            return

        if not ChainClient.is_address(intent.to_address):
            raise InvalidIntent.invalid("to_address", f"not an address: {intent.to_address!r}")
        native = self._registry.native.symbol.upper()
        is_native = intent.asset_symbol.upper() == native
        if intent.kind == IntentKind.NATIVE_TRANSFER and not is_native:
            raise InvalidIntent.invalid("asset_symbol", f"native transfer must use {native}")
        if intent.kind == IntentKind.TOKEN_TRANSFER and is_native:
            raise InvalidIntent.invalid("asset_symbol", f"{native} is not a token; use a native transfer")

    async def build(self, intent: TransactionIntent) -> PreparedCall:
        self.validate(intent)

        if intent.kind.is_vault:
            return await self.vault(intent.vault_id).encode(intent)

        token = self._registry.by_symbol(intent.asset_symbol)
        raw = token.raw_amount(intent.amount)
        to = ChainClient.checksum(intent.to_address)

        if intent.kind == IntentKind.NATIVE_TRANSFER:
            call = ContractCall(to=to, value=raw, description=f"send {intent.amount} {token.symbol}")
        else:
            call = ContractCall(
                to=ChainClient.checksum(token.contract_address),
                data=encode_call(ERC20_TRANSFER, [to, raw]),
                description=f"transfer {intent.amount} {token.symbol}",
            )
        return PreparedCall(calls=(call,), spend_symbol=token.symbol, spend_amount=intent.amount)
