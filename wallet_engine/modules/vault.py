"""
Vault Module

Encodes deposits and redemptions for share-based (ERC-4626 style) vaults and
previews asset/share conversions.

When a vault does not expose convertToShares/convertToAssets the preview
falls back to 1:1 and is tagged approximate.
"""

import logging
from decimal import Decimal
from typing import List, Optional, Union

from ..errors import ContractReadFailed, InvalidIntent, OperationNotSupported
from ..infra.abi import (
    ERC20_ALLOWANCE,
    ERC20_APPROVE,
    ERC20_TOTAL_SUPPLY,
    VAULT_CONVERT_TO_ASSETS,
    VAULT_CONVERT_TO_SHARES,
    VAULT_DEPOSIT,
    VAULT_REDEEM,
    VAULT_TOTAL_ASSETS,
    VAULT_WITHDRAW,
    encode_call,
)
from ..infra.chain_client import ChainClient
from ..types import (
    ContractCall,
    IntentKind,
    PreparedCall,
    SharePreview,
    TokenDescriptor,
    TokenRegistry,
    TransactionIntent,
    VaultDescriptor,
    VaultInfo,
    get_vault,
)

logger = logging.getLogger(__name__)

Amount = Union[Decimal, str, int]


class VaultAdapter:
    """
    One vault contract

    Usage:
        vault = VaultAdapter(chain, registry, "mhyper")
        preview = await vault.preview_shares_for_assets(Decimal("500"))
        prepared = await vault.encode(TransactionIntent.vault_deposit(owner, "mhyper", "500", "USDC"))
    """

    def __init__(
        self,
        chain: ChainClient,
        registry: TokenRegistry,
        vault: Union[str, VaultDescriptor],
    ):
        self._chain = chain
        self._registry = registry
        self._vault = get_vault(vault) if isinstance(vault, str) else vault
        self._asset = registry.by_symbol(self._vault.asset_symbol)
        self._share = registry.by_symbol(self._vault.share_symbol)

    @property
    def vault(self) -> VaultDescriptor:
        return self._vault

    @property
    def vault_id(self) -> str:
        return self._vault.vault_id

    @property
    def address(self) -> str:
        return ChainClient.checksum(self._vault.address)

    @property
    def asset(self) -> TokenDescriptor:
        return self._asset

    @property
    def share(self) -> TokenDescriptor:
        return self._share

    # =========================================================================
    # Call encoding
    # =========================================================================

    def encode_approve(self, raw_amount: int) -> ContractCall:
        """Approve the vault to pull raw_amount of the deposit asset"""
        return ContractCall(
            to=ChainClient.checksum(self._asset.contract_address),
            data=encode_call(ERC20_APPROVE, [self.address, raw_amount]),
            description=f"approve {self._asset.symbol} for {self.vault_id}",
        )

    def encode_deposit(self, raw_assets: int, receiver: str) -> ContractCall:
        if not self._vault.supports_deposit:
            raise OperationNotSupported.not_implemented("deposit", self.vault_id)
        return ContractCall(
            to=self.address,
            data=encode_call(VAULT_DEPOSIT, [raw_assets, ChainClient.checksum(receiver)]),
            description=f"deposit into {self.vault_id}",
        )

    def encode_redeem(self, raw_shares: int, receiver: str, owner: Optional[str] = None) -> ContractCall:
        if not self._vault.supports_redeem:
            raise OperationNotSupported.not_implemented("redeem", self.vault_id)
        owner = owner or receiver
        return ContractCall(
            to=self.address,
            data=encode_call(VAULT_REDEEM, [raw_shares, ChainClient.checksum(receiver), ChainClient.checksum(owner)]),
            description=f"redeem from {self.vault_id}",
        )

    def encode_withdraw(self, raw_assets: int, receiver: str, owner: Optional[str] = None) -> ContractCall:
        """Withdraw an exact asset amount (the vault burns whatever shares it needs)"""
        if not self._vault.supports_redeem:
            raise OperationNotSupported.not_implemented("withdraw", self.vault_id)
        owner = owner or receiver
        return ContractCall(
            to=self.address,
            data=encode_call(VAULT_WITHDRAW, [raw_assets, ChainClient.checksum(receiver), ChainClient.checksum(owner)]),
            description=f"withdraw from {self.vault_id}",
        )

    # =========================================================================
    # Reads
    # =========================================================================

    async def allowance(self, owner: str) -> int:
        """Current asset allowance granted to the vault"""
        return int(await self._chain.read_contract(
            self._asset.contract_address,
            ERC20_ALLOWANCE,
            [ChainClient.checksum(owner), self.address],
        ))

    async def preview_shares_for_assets(self, asset_amount: Amount) -> SharePreview:
        """
        Shares minted for a deposit of asset_amount

        Falls back to 1:1 (tagged approximate) when the vault has no
        convertToShares view.
        """
        raw_assets = self._asset.raw_amount(asset_amount)
        try:
            raw_shares = int(await self._chain.read_contract(self.address, VAULT_CONVERT_TO_SHARES, [raw_assets]))
        except ContractReadFailed as e:
            logger.info(f"{self.vault_id}: convertToShares unavailable, assuming 1:1 ({e})")
            ui = Decimal(str(asset_amount))
            return SharePreview(amount=ui, raw_amount=self._share.raw_amount(ui), approximate=True)
        return SharePreview(amount=self._share.ui_amount(raw_shares), raw_amount=raw_shares)

    async def preview_assets_for_shares(self, share_amount: Amount) -> SharePreview:
        """Assets returned for redeeming share_amount; same 1:1 fallback"""
        raw_shares = self._share.raw_amount(share_amount)
        try:
            raw_assets = int(await self._chain.read_contract(self.address, VAULT_CONVERT_TO_ASSETS, [raw_shares]))
        except ContractReadFailed as e:
            logger.info(f"{self.vault_id}: convertToAssets unavailable, assuming 1:1 ({e})")
            ui = Decimal(str(share_amount))
            return SharePreview(amount=ui, raw_amount=self._asset.raw_amount(ui), approximate=True)
        return SharePreview(amount=self._asset.ui_amount(raw_assets), raw_amount=raw_assets)

    async def vault_info(self) -> VaultInfo:
        raw_assets = int(await self._chain.read_contract(self.address, VAULT_TOTAL_ASSETS))
        raw_supply = int(await self._chain.read_contract(self.address, ERC20_TOTAL_SUPPLY))
        total_assets = self._asset.ui_amount(raw_assets)
        total_supply = self._share.ui_amount(raw_supply)
        share_price = total_assets / total_supply if total_supply > 0 else Decimal(1)
        return VaultInfo(total_assets=total_assets, total_supply=total_supply, share_price=share_price)

    # =========================================================================
    # Intent encoding
    # =========================================================================

    async def encode(self, intent: TransactionIntent) -> PreparedCall:
        """
        Turn a vault intent into the call batch to submit

        Deposits get an approval first when the allowance is short. A redeem
        in the share symbol burns exactly that many shares (redeem); one in
        the asset symbol takes out exactly that many assets (withdraw).

        Raises:
            OperationNotSupported: Vault does not support the operation
            InvalidIntent: Wrong vault or asset symbol
        """
        if intent.vault_id is None or intent.vault_id.lower() != self.vault_id:
            raise InvalidIntent.invalid("vault_id", f"{intent.vault_id!r} is not {self.vault_id}")

        if intent.kind == IntentKind.VAULT_DEPOSIT:
            return await self._encode_deposit_intent(intent)
        if intent.kind == IntentKind.VAULT_REDEEM:
            return await self._encode_redeem_intent(intent)
        raise InvalidIntent.invalid("kind", f"{intent.kind.value} is not a vault operation")

    async def _encode_deposit_intent(self, intent: TransactionIntent) -> PreparedCall:
        if not self._vault.supports_deposit:
            raise OperationNotSupported.not_implemented("deposit", self.vault_id)
        if intent.asset_symbol.upper() != self._asset.symbol.upper():
            raise InvalidIntent.invalid(
                "asset_symbol", f"{self.vault_id} takes {self._asset.symbol}, not {intent.asset_symbol}"
            )

        raw_assets = self._asset.raw_amount(intent.amount)
        calls: List[ContractCall] = []
        if await self.allowance(intent.from_address) < raw_assets:
            calls.append(self.encode_approve(raw_assets))
        calls.append(self.encode_deposit(raw_assets, intent.from_address))

        return PreparedCall(
            calls=tuple(calls),
            spend_symbol=self._asset.symbol,
            spend_amount=intent.amount,
            asset_amount=intent.amount,
        )

    async def _encode_redeem_intent(self, intent: TransactionIntent) -> PreparedCall:
        if not self._vault.supports_redeem:
            raise OperationNotSupported.not_implemented("redeem", self.vault_id)

        symbol = intent.asset_symbol.upper()
        if symbol == self._share.symbol.upper():
            # Exact shares; the asset side is only known through the preview
            assets = await self.preview_assets_for_shares(intent.amount)
            call = self.encode_redeem(self._share.raw_amount(intent.amount), intent.from_address)
            return PreparedCall(
                calls=(call,),
                approximate=assets.approximate,
                spend_symbol=self._share.symbol,
                spend_amount=intent.amount,
                asset_amount=assets.amount,
            )

        if symbol == self._asset.symbol.upper():
            # Exact assets through withdraw(); the preview sizes the share spend
            shares = await self.preview_shares_for_assets(intent.amount)
            call = self.encode_withdraw(self._asset.raw_amount(intent.amount), intent.from_address)
            return PreparedCall(
                calls=(call,),
                approximate=shares.approximate,
                spend_symbol=self._share.symbol,
                spend_amount=shares.amount,
                asset_amount=intent.amount,
            )

        raise InvalidIntent.invalid(
            "asset_symbol",
            f"{self.vault_id} redeems {self._share.symbol} or {self._asset.symbol}, not {intent.asset_symbol}",
        )

    def __repr__(self) -> str:
        return f"VaultAdapter(vault={self.vault_id}, address={self._vault.address})"
