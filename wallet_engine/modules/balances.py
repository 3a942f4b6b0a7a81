"""
Balance Module

Aggregates the native coin and every registry token for one wallet into an
immutable BalanceSnapshot.

Reads fan out concurrently and are joined; one failing token read is reported
next to the snapshot instead of failing the whole refresh. No retries happen
here; refresh policy belongs to the caller.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Tuple, Union

from ..config import config as global_config
from ..errors import InvalidIntent
from ..infra.abi import ERC20_BALANCE_OF, ERC20_DECIMALS, ERC20_SYMBOL
from ..infra.chain_client import ChainClient
from ..infra.retry import CorrelationContext
from ..types import (
    AggregationResult,
    BalanceSnapshot,
    TokenBalance,
    TokenDescriptor,
    TokenMismatch,
    TokenReadFailure,
    TokenRegistry,
    format_units,
)

logger = logging.getLogger(__name__)

TokenOutcome = Union[TokenBalance, TokenMismatch]


class BalanceAggregator:
    """
    Concurrent balance reader for one registry

    Token metadata (symbol, decimals) is checked against the registry the
    first time a contract is seen; a contract that disagrees is flagged and
    left out rather than trusted.

    Usage:
        aggregator = BalanceAggregator(chain, default_registry())
        result = await aggregator.aggregate("0x...")
        usdc = result.snapshot.balance_of("USDC")
        for failure in result.failures:
            ...
    """

    def __init__(
        self,
        chain: ChainClient,
        registry: TokenRegistry,
        verify_metadata: Optional[bool] = None,
    ):
        self._chain = chain
        self._registry = registry
        self._verify = global_config.balance.verify_token_metadata if verify_metadata is None else verify_metadata
        # Contracts whose on-chain metadata matched the registry
        self._verified: Dict[str, bool] = {}

    @property
    def registry(self) -> TokenRegistry:
        return self._registry

    def is_verified(self, contract_address: str) -> bool:
        return self._verified.get(contract_address.lower(), False)

    async def _verify_token(self, token: TokenDescriptor) -> Optional[TokenMismatch]:
        if not self._verify or self.is_verified(token.contract_address):
            return None

        onchain_symbol, onchain_decimals = await asyncio.gather(
            self._chain.read_contract(token.contract_address, ERC20_SYMBOL, (), ("string",)),
            self._chain.read_contract(token.contract_address, ERC20_DECIMALS, (), ("uint8",)),
        )
        if onchain_symbol != token.symbol or int(onchain_decimals) != token.decimals:
            logger.warning(
                f"Token metadata mismatch for {token.symbol} at {token.contract_address}: "
                f"chain reports {onchain_symbol}/{onchain_decimals}"
            )
            return TokenMismatch(
                symbol=token.symbol,
                contract_address=token.contract_address,
                expected_symbol=token.symbol,
                expected_decimals=token.decimals,
                onchain_symbol=onchain_symbol,
                onchain_decimals=int(onchain_decimals),
            )

        self._verified[token.contract_address.lower()] = True
        return None

    async def _read_token(self, token: TokenDescriptor, wallet: str) -> TokenOutcome:
        mismatch = await self._verify_token(token)
        if mismatch is not None:
            return mismatch

        raw = int(await self._chain.read_contract(token.contract_address, ERC20_BALANCE_OF, [wallet]))
        return TokenBalance(
            symbol=token.symbol,
            raw_amount=raw,
            formatted_amount=format_units(raw, token.decimals),
            contract_address=token.contract_address,
            decimals=token.decimals,
        )

    async def aggregate(self, wallet_address: str) -> AggregationResult:
        """
        Read native and token balances concurrently

        Args:
            wallet_address: Wallet to read

        Returns:
            AggregationResult with the snapshot, failed reads and flagged tokens

        Raises:
            InvalidIntent: Malformed wallet address
        """
        if not ChainClient.is_address(wallet_address):
            raise InvalidIntent.invalid("wallet_address", f"not an address: {wallet_address!r}")
        wallet = ChainClient.checksum(wallet_address)
        tokens = self._registry.list_all()
        native = self._registry.native

        with CorrelationContext("balances"):
            results = await asyncio.gather(
                self._chain.read_balance(wallet),
                *(self._read_token(token, wallet) for token in tokens),
                return_exceptions=True,
            )

            native_result, token_results = results[0], results[1:]
            failures: List[TokenReadFailure] = []
            flagged: List[TokenMismatch] = []
            balances: List[TokenBalance] = []

            native_raw: Optional[int] = None
            if isinstance(native_result, BaseException):
                self._reraise_if_cancelled(native_result)
                logger.warning(f"Native balance read failed: {native_result}")
                failures.append(TokenReadFailure(native.symbol, native.contract_address, str(native_result)))
            else:
                native_raw = int(native_result)

            for token, outcome in zip(tokens, token_results):
                if isinstance(outcome, BaseException):
                    self._reraise_if_cancelled(outcome)
                    logger.warning(f"{token.symbol} balance read failed: {outcome}")
                    failures.append(TokenReadFailure(token.symbol, token.contract_address, str(outcome)))
                elif isinstance(outcome, TokenMismatch):
                    flagged.append(outcome)
                else:
                    balances.append(outcome)

            snapshot = BalanceSnapshot(
                wallet_address=wallet,
                native_symbol=native.symbol,
                native_balance_raw=native_raw,
                native_balance_formatted=format_units(native_raw, native.decimals) if native_raw is not None else None,
                token_balances=tuple(balances),
            )
            logger.info(
                f"Aggregated {len(balances)}/{len(tokens)} tokens for {wallet[:10]}... "
                f"({len(failures)} failed, {len(flagged)} flagged)"
            )
            return AggregationResult(snapshot=snapshot, failures=tuple(failures), flagged=tuple(flagged))

    @staticmethod
    def _reraise_if_cancelled(error: BaseException) -> None:
        if not isinstance(error, Exception):
            raise error


class BalanceCache:
    """
    Snapshot cache keyed by wallet address with an explicit TTL

    Owned by the caller; nothing in the engine holds a global cache.

    Usage:
        cache = BalanceCache(ttl=30)
        result = await cache.refresh(aggregator, wallet)          # reuses a fresh entry
        result = await cache.refresh(aggregator, wallet, force=True)
    """

    def __init__(self, ttl: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl if ttl is not None else global_config.balance.cache_ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[float, AggregationResult]] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, wallet_address: str) -> Optional[AggregationResult]:
        entry = self._entries.get(wallet_address.lower())
        if entry is None:
            return None
        stored_at, result = entry
        if self._clock() - stored_at > self._ttl:
            del self._entries[wallet_address.lower()]
            return None
        return result

    def put(self, result: AggregationResult) -> None:
        self._entries[result.snapshot.wallet_address.lower()] = (self._clock(), result)

    def invalidate(self, wallet_address: Optional[str] = None) -> None:
        if wallet_address is None:
            self._entries.clear()
        else:
            self._entries.pop(wallet_address.lower(), None)

    async def refresh(
        self,
        aggregator: BalanceAggregator,
        wallet_address: str,
        force: bool = False,
    ) -> AggregationResult:
        if not force:
            cached = self.get(wallet_address)
            if cached is not None:
                return cached
        result = await aggregator.aggregate(wallet_address)
        self.put(result)
        return result

    def __len__(self) -> int:
        return len(self._entries)
