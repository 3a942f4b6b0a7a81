"""
WalletClient - Unified entry point for wallet operations

Wires the chain client, token registry, balance aggregation, gas estimation,
vault adapters and the transaction orchestrator for one wallet.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Optional, Union

from .config import config as global_config
from .errors import SignerError
from .infra import ChainClient, PaymasterRelay, SelfFundedSigner, SponsoredSigner, SignerAdapter
from .modules import (
    BalanceAggregator,
    BalanceCache,
    CallBuilder,
    DepositStore,
    GasEstimator,
    InMemoryDepositStore,
    TransactionOrchestrator,
    VaultAdapter,
)
from .types import (
    AggregationResult,
    GasEstimate,
    TokenRegistry,
    TransactionHandle,
    TransactionIntent,
    default_registry,
    list_vaults,
)

Amount = Union[Decimal, str, int]


class WalletClient:
    """
    Wallet engine client

    Provides:
    - balances: aggregated snapshot with TTL cache
    - estimate: gas preview for an intent
    - transfer / deposit / redeem: orchestrated transactions

    Usage:
        chain = ChainClient("https://ethereum-rpc.publicnode.com")
        signer = SelfFundedSigner.from_env(chain)

        async with WalletClient(signer=signer, chain=chain) as client:
            result = await client.refresh_balances()
            handle = await client.deposit("mhyper", "500")
            print(handle.state, handle.hash)
    """

    def __init__(
        self,
        signer: Optional[SignerAdapter] = None,
        chain: Optional[ChainClient] = None,
        registry: Optional[TokenRegistry] = None,
        deposit_store: Optional[DepositStore] = None,
        rpc_url: Optional[str] = None,
    ):
        """
        Initialize WalletClient

        Args:
            signer: SelfFundedSigner or SponsoredSigner (required for writes)
            chain: Chain client (created from rpc_url/config when omitted)
            registry: Token registry (Ethereum mainnet defaults)
            deposit_store: Where confirmed vault deposits are recorded
            rpc_url: RPC endpoint when no chain client is given
        """
        self._chain = chain or ChainClient(rpc_url)
        self._registry = registry or default_registry()
        self._signer = signer
        self._deposit_store = deposit_store if deposit_store is not None else InMemoryDepositStore()
        self._cache = BalanceCache()

        # Lazy-loaded modules
        self._aggregator: Optional[BalanceAggregator] = None
        self._vaults: Optional[Dict[str, VaultAdapter]] = None
        self._builder: Optional[CallBuilder] = None
        self._estimator: Optional[GasEstimator] = None
        self._orchestrator: Optional[TransactionOrchestrator] = None

    @classmethod
    def self_funded(cls, private_key: str, rpc_url: Optional[str] = None, **kwargs) -> "WalletClient":
        chain = ChainClient(rpc_url)
        return cls(signer=SelfFundedSigner.from_private_key(private_key, chain), chain=chain, **kwargs)

    @classmethod
    def sponsored(
        cls,
        smart_wallet_address: str,
        relay_url: Optional[str] = None,
        rpc_url: Optional[str] = None,
        **kwargs,
    ) -> "WalletClient":
        chain = ChainClient(rpc_url)
        signer = SponsoredSigner(smart_wallet_address, PaymasterRelay(relay_url), chain)
        return cls(signer=signer, chain=chain, **kwargs)

    @property
    def chain(self) -> ChainClient:
        return self._chain

    @property
    def registry(self) -> TokenRegistry:
        return self._registry

    @property
    def signer(self) -> SignerAdapter:
        if self._signer is None:
            raise SignerError.not_configured()
        return self._signer

    @property
    def address(self) -> str:
        return self.signer.address

    @property
    def deposit_store(self) -> DepositStore:
        return self._deposit_store

    @property
    def cache(self) -> BalanceCache:
        return self._cache

    @property
    def aggregator(self) -> BalanceAggregator:
        if self._aggregator is None:
            self._aggregator = BalanceAggregator(self._chain, self._registry)
        return self._aggregator

    @property
    def vaults(self) -> Dict[str, VaultAdapter]:
        if self._vaults is None:
            self._vaults = {
                vault.vault_id: VaultAdapter(self._chain, self._registry, vault)
                for vault in list_vaults()
            }
        return self._vaults

    def vault(self, vault_id: str) -> VaultAdapter:
        return self.builder.vault(vault_id)

    @property
    def builder(self) -> CallBuilder:
        if self._builder is None:
            self._builder = CallBuilder(self._registry, self.vaults.values())
        return self._builder

    @property
    def estimator(self) -> GasEstimator:
        if self._estimator is None:
            self._estimator = GasEstimator(self._chain, self.builder)
        return self._estimator

    @property
    def orchestrator(self) -> TransactionOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = TransactionOrchestrator(
                self._chain, self.builder, self.estimator, deposit_store=self._deposit_store
            )
        return self._orchestrator

    # =========================================================================
    # Balances
    # =========================================================================

    async def refresh_balances(self, address: Optional[str] = None, force: bool = False) -> AggregationResult:
        """Aggregated balances, served from the cache while fresh"""
        return await self._cache.refresh(self.aggregator, address or self.address, force=force)

    # =========================================================================
    # Transactions
    # =========================================================================

    async def estimate(self, intent: TransactionIntent) -> GasEstimate:
        return await self.estimator.estimate(intent, sponsored=self.signer.sponsored)

    async def execute(self, intent: TransactionIntent, estimate: Optional[GasEstimate] = None) -> TransactionHandle:
        """Run an intent against the latest snapshot; balances are re-read afterwards"""
        snapshot = (await self.refresh_balances()).snapshot
        try:
            return await self.orchestrator.execute(intent, self.signer, snapshot, estimate)
        finally:
            self._cache.invalidate(self.address)

    async def transfer(self, to_address: str, amount: Amount, symbol: Optional[str] = None) -> TransactionHandle:
        native = self._registry.native.symbol
        symbol = symbol or native
        if symbol.upper() == native.upper():
            intent = TransactionIntent.native_transfer(self.address, to_address, amount, native)
        else:
            intent = TransactionIntent.token_transfer(self.address, to_address, amount, symbol)
        return await self.execute(intent)

    async def deposit(self, vault_id: str, amount: Amount) -> TransactionHandle:
        adapter = self.vault(vault_id)
        intent = TransactionIntent.vault_deposit(self.address, adapter.vault_id, amount, adapter.asset.symbol)
        return await self.execute(intent)

    async def redeem(
        self,
        vault_id: str,
        amount: Amount,
        symbol: Optional[str] = None,
        deposit_id: Optional[str] = None,
    ) -> TransactionHandle:
        """
        Redeem from a vault

        Args:
            vault_id: Vault to redeem from
            amount: Share amount, or asset amount when symbol is the asset
            symbol: Share symbol (default) or asset symbol
            deposit_id: Deposit record whose principal the redeemed assets reduce
        """
        adapter = self.vault(vault_id)
        intent = TransactionIntent.vault_redeem(
            self.address, adapter.vault_id, amount, symbol or adapter.share.symbol, deposit_id=deposit_id
        )
        return await self.execute(intent)

    async def close(self) -> None:
        """Close relay and provider sessions"""
        if self._signer is not None:
            await self._signer.close()
        await self._chain.close()

    async def __aenter__(self) -> "WalletClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def __repr__(self) -> str:
        signer = repr(self._signer) if self._signer else "no signer"
        return f"WalletClient(chain={global_config.chain.chain_id}, {signer})"
