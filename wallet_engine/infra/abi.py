"""
Minimal ABI helpers

Calls are described by their canonical signature ("transfer(address,uint256)")
and encoded with eth-abi, so no JSON ABI files are needed.
"""

from typing import Any, Sequence, Tuple

from eth_abi import encode, decode
from eth_utils import function_signature_to_4byte_selector


# ERC-20
ERC20_BALANCE_OF = "balanceOf(address)"
ERC20_DECIMALS = "decimals()"
ERC20_SYMBOL = "symbol()"
ERC20_TOTAL_SUPPLY = "totalSupply()"
ERC20_TRANSFER = "transfer(address,uint256)"
ERC20_APPROVE = "approve(address,uint256)"
ERC20_ALLOWANCE = "allowance(address,address)"

# ERC-4626 vault
VAULT_DEPOSIT = "deposit(uint256,address)"
VAULT_WITHDRAW = "withdraw(uint256,address,address)"
VAULT_REDEEM = "redeem(uint256,address,address)"
VAULT_CONVERT_TO_SHARES = "convertToShares(uint256)"
VAULT_CONVERT_TO_ASSETS = "convertToAssets(uint256)"
VAULT_TOTAL_ASSETS = "totalAssets()"


def parse_arg_types(signature: str) -> Tuple[str, ...]:
    """
    Extract argument types from a canonical signature

    Example:
        parse_arg_types("transfer(address,uint256)") == ("address", "uint256")
    """
    open_idx = signature.find("(")
    if open_idx <= 0 or not signature.endswith(")"):
        raise ValueError(f"Not a function signature: {signature!r}")
    inner = signature[open_idx + 1:-1].strip()
    if not inner:
        return ()
    return tuple(part.strip() for part in inner.split(","))


def function_selector(signature: str) -> bytes:
    """4-byte selector of a canonical signature"""
    return function_signature_to_4byte_selector(signature)


def encode_call(signature: str, args: Sequence[Any] = ()) -> str:
    """
    Encode call data for a function

    Args:
        signature: Canonical signature, e.g. "approve(address,uint256)"
        args: Positional arguments matching the signature

    Returns:
        0x-prefixed hex call data
    """
    arg_types = parse_arg_types(signature)
    if len(arg_types) != len(args):
        raise ValueError(f"{signature} expects {len(arg_types)} args, got {len(args)}")
    payload = function_selector(signature) + (encode(list(arg_types), list(args)) if arg_types else b"")
    return "0x" + payload.hex()


def decode_output(output_types: Sequence[str], data: bytes) -> Any:
    """
    Decode return data; a single output is unwrapped

    Raises:
        eth_abi.exceptions.DecodingError: Data does not match the types
    """
    values = decode(list(output_types), bytes(data))
    if len(values) == 1:
        return values[0]
    return values
