"""
Paymaster relay client

REST client for the sponsoring relay that submits smart-wallet batches and
pays their gas. The relay answers with a relay id first; the chain hash
appears once the bundle is broadcast.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from ..config import config as global_config
from ..errors import (
    ConfigurationError,
    ExecutionReverted,
    RpcUnavailable,
    SignerRejected,
)
from ..types import ContractCall

logger = logging.getLogger(__name__)


# Relay status -> lifecycle meaning
PENDING_STATUSES = ("queued", "submitted", "pending")
SUCCESS_STATUSES = ("mined", "confirmed", "success")
FAILED_STATUSES = ("failed", "reverted")
REJECTED_STATUSES = ("rejected",)


@dataclass(frozen=True)
class RelayResponse:
    """One relay answer"""
    status: str
    relay_id: Optional[str] = None
    tx_hash: Optional[str] = None
    reason: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status in PENDING_STATUSES

    @property
    def is_rejected(self) -> bool:
        return self.status in REJECTED_STATUSES

    @property
    def is_failed(self) -> bool:
        return self.status in FAILED_STATUSES

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "RelayResponse":
        return cls(
            status=str(data.get("status", "")).lower(),
            relay_id=data.get("id") or data.get("relayId"),
            tx_hash=data.get("txHash") or data.get("hash"),
            reason=data.get("reason") or data.get("error"),
        )


class PaymasterRelay:
    """
    Async REST client for the paymaster relay

    Usage:
        relay = PaymasterRelay("https://relay.example.com", api_key="...")
        accepted = await relay.submit_batch(smart_wallet, calls, chain_id=1)
        status = await relay.get_status(accepted.relay_id)

    Note:
        The relay URL must be configured (SPONSOR_RELAY_URL).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._base_url = (base_url or global_config.sponsor.relay_url).rstrip("/")
        self._api_key = api_key if api_key is not None else global_config.sponsor.api_key
        self._timeout = timeout or global_config.sponsor.timeout
        self._client = client

        if not self._base_url:
            raise ConfigurationError.missing("SPONSOR_RELAY_URL")

    @property
    def base_url(self) -> str:
        return self._base_url

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client with auth headers"""
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"
            self._client = httpx.AsyncClient(timeout=self._timeout, headers=headers)
        return self._client

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:500] if response.text else f"HTTP {response.status_code}"
        if isinstance(data, dict):
            for key in ("reason", "error", "message", "description"):
                if data.get(key):
                    return str(data[key])
        return str(data)

    async def _request(self, method: str, path: str, json_data: Optional[Dict[str, Any]] = None) -> RelayResponse:
        """
        Send one request; never retried (a relay submit is a write)

        Raises:
            SignerRejected: 401/403, the sponsorship policy refused
            ExecutionReverted: 400/422, the relay refused the batch
            RpcUnavailable: 5xx or transport failure
        """
        url = f"{self._base_url}{path}"
        try:
            response = await self._get_client().request(method, url, json=json_data)
        except httpx.TimeoutException as e:
            logger.warning(f"Relay timeout: {method} {url}")
            raise RpcUnavailable.timeout(self._base_url, self._timeout) from e
        except httpx.RequestError as e:
            logger.warning(f"Relay request error: {e}")
            raise RpcUnavailable.connection_failed(self._base_url, e) from e

        if response.status_code in (401, 403):
            raise SignerRejected.policy(self._error_message(response))
        if response.status_code == 429:
            raise RpcUnavailable.rate_limited(self._base_url)
        if response.status_code >= 500:
            raise RpcUnavailable.connection_failed(
                self._base_url, RuntimeError(f"HTTP {response.status_code}: {self._error_message(response)}")
            )
        if response.status_code >= 400:
            raise ExecutionReverted.rejected_by_node(self._error_message(response))

        try:
            data = response.json()
        except ValueError as e:
            raise RpcUnavailable.invalid_response(self._base_url, "relay returned non-JSON body") from e
        if not isinstance(data, dict):
            raise RpcUnavailable.invalid_response(self._base_url, f"unexpected body: {data!r}")
        return RelayResponse.from_json(data)

    async def submit_batch(self, sender: str, calls: List[ContractCall], chain_id: int) -> RelayResponse:
        """
        Hand a call batch to the relay

        Args:
            sender: Smart wallet address
            calls: Ordered calls; executed atomically by the smart wallet
            chain_id: Target chain

        Returns:
            Relay acceptance (status queued/submitted, relay id, maybe the hash)
        """
        payload = {
            "chainId": chain_id,
            "sender": sender,
            "calls": [
                {"to": call.to, "data": call.data, "value": hex(call.value)}
                for call in calls
            ],
        }
        logger.debug(f"Relay submit: {len(calls)} call(s) from {sender}")
        return await self._request("POST", "/v1/transactions", payload)

    async def get_status(self, relay_id: str) -> RelayResponse:
        return await self._request("GET", f"/v1/transactions/{relay_id}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "PaymasterRelay":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
