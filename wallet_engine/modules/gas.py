"""
Gas Module

Derives a GasEstimate for an intent from the node's gas estimate and the
current fee market.

maxFeePerGas = base_fee * base_fee_multiplier + priority_fee, so the cap
survives a few full blocks of base-fee growth.
"""

import asyncio
import logging
from typing import List, Optional

from ..config import GasConfig, config as global_config
from ..infra.chain_client import ChainClient
from ..infra.retry import retry_read
from ..types import FeeParameters, GasEstimate, PreparedCall, TransactionIntent
from .calls import CallBuilder

logger = logging.getLogger(__name__)


class GasEstimator:
    """
    Gas limit and fee estimation

    Estimation is read-only; recoverable RPC failures are retried, a call
    that would revert raises EstimationFailed straight away.

    Usage:
        estimator = GasEstimator(chain, builder)
        estimate = await estimator.estimate(intent)
        print(estimate.estimated_cost_native)
    """

    def __init__(
        self,
        chain: ChainClient,
        builder: CallBuilder,
        gas_config: Optional[GasConfig] = None,
    ):
        self._chain = chain
        self._builder = builder
        self._config = gas_config or global_config.gas

    @property
    def max_age(self) -> float:
        return self._config.estimate_max_age

    def fee_caps(self, fees: FeeParameters):
        """(max_fee_per_gas, max_priority_fee_per_gas); both None on legacy chains"""
        if not fees.is_eip1559:
            return None, None
        max_fee = int(fees.base_fee * self._config.base_fee_multiplier) + fees.priority_fee
        return max_fee, fees.priority_fee

    async def _call_gas_limits(self, intent: TransactionIntent, prepared: PreparedCall) -> List[int]:
        first = prepared.calls[0]
        raw_limit = await self._chain.estimate_gas(first.as_tx(intent.from_address))
        limits = [int(raw_limit * self._config.gas_limit_multiplier)]

        # Later calls read state the earlier ones create (e.g. deposit after
        # approve), so the node cannot simulate them on their own
        limits.extend(self._config.dependent_call_gas_limit for _ in prepared.calls[1:])
        return limits

    async def estimate_prepared(
        self,
        intent: TransactionIntent,
        prepared: PreparedCall,
        sponsored: bool = False,
    ) -> GasEstimate:
        """
        Estimate an already encoded call batch

        Raises:
            EstimationFailed: The first call would revert
            RpcUnavailable: Node unreachable after retries
        """
        limits, fees = await asyncio.gather(
            retry_read(lambda: self._call_gas_limits(intent, prepared), "estimate_gas"),
            retry_read(self._chain.current_fee_parameters, "fee_parameters"),
        )
        max_fee, max_priority = self.fee_caps(fees)
        estimate = GasEstimate.build(
            call_gas_limits=tuple(limits),
            fees=fees,
            max_fee_per_gas=max_fee,
            max_priority_fee_per_gas=max_priority,
            sponsored=sponsored,
            native_decimals=self._builder.registry.native.decimals,
        )
        logger.debug(f"Estimated {intent}: {estimate}")
        return estimate

    async def estimate(self, intent: TransactionIntent, sponsored: bool = False) -> GasEstimate:
        """
        Estimate the cost of an intent

        For sponsored signers the figure is informational; the paymaster pays.

        Raises:
            EstimationFailed: The intent would revert
            InvalidIntent, UnknownToken, OperationNotSupported: Intent cannot be encoded
        """
        prepared = await self._builder.build(intent)
        return await self.estimate_prepared(intent, prepared, sponsored=sponsored)
