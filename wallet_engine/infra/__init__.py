"""
Infrastructure layer for the wallet engine

Provides:
- ChainClient: async JSON-RPC facade (web3.py AsyncWeb3)
- PaymasterRelay: HTTP client for the sponsoring relay
- SelfFundedSigner / SponsoredSigner: the two signer variants
- retry_read / CorrelationContext: read retries and log correlation
"""

from .abi import encode_call, decode_output, function_selector
from .chain_client import ChainClient, create_async_web3, to_hex_hash
from .relay import PaymasterRelay, RelayResponse
from .retry import (
    CorrelationContext,
    CorrelationIdFilter,
    classify_error,
    get_correlation_id,
    log_with_correlation,
    retry_read,
)
from .signers import (
    SignerAdapter,
    SelfFundedSigner,
    SponsoredSigner,
    NonceManager,
    ensure_amount_available,
)

__all__ = [
    # ABI
    "encode_call",
    "decode_output",
    "function_selector",
    # Chain
    "ChainClient",
    "create_async_web3",
    "to_hex_hash",
    # Relay
    "PaymasterRelay",
    "RelayResponse",
    # Retry / logging
    "CorrelationContext",
    "CorrelationIdFilter",
    "classify_error",
    "get_correlation_id",
    "log_with_correlation",
    "retry_read",
    # Signers
    "SignerAdapter",
    "SelfFundedSigner",
    "SponsoredSigner",
    "NonceManager",
    "ensure_amount_available",
]
