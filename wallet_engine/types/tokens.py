"""
Token Registry for the wallet's single chain context

Static mapping from asset symbol to contract address and decimals.
Token addresses are configuration, never discovered at runtime.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Tuple, Union

from ..errors import InvalidIntent, UnknownToken, ConfigurationError


# Placeholder address for the native coin (never called as a contract)
NATIVE_TOKEN_ADDRESS = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"


def format_units(raw_amount: int, decimals: int) -> str:
    """
    Render a raw integer amount as a decimal string with no precision loss

    Trailing fractional zeros are dropped ("1.5", not "1.500000").

    Args:
        raw_amount: Amount in smallest units
        decimals: Declared decimals of the asset

    Returns:
        Decimal string (e.g., format_units(1500000, 6) == "1.5")
    """
    if raw_amount < 0:
        raise InvalidIntent.invalid("amount", f"negative raw amount {raw_amount}")
    if decimals == 0:
        return str(raw_amount)

    whole, fraction = divmod(raw_amount, 10 ** decimals)
    fraction_str = str(fraction).rjust(decimals, "0").rstrip("0")
    if fraction_str:
        return f"{whole}.{fraction_str}"
    return str(whole)


def parse_units(amount: Union[Decimal, str, int, float], decimals: int) -> int:
    """
    Convert a UI amount to raw integer units exactly

    Args:
        amount: UI amount (Decimal, str, int or float)
        decimals: Declared decimals of the asset

    Returns:
        Raw amount in smallest units

    Raises:
        InvalidIntent: Negative, non-numeric, or more fractional digits than declared
    """
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except InvalidOperation:
        raise InvalidIntent.invalid("amount", f"not a number: {amount!r}")

    if not value.is_finite():
        raise InvalidIntent.invalid("amount", f"not a finite number: {amount!r}")
    if value < 0:
        raise InvalidIntent.invalid("amount", f"negative amount {amount}")

    # Integer arithmetic on the decimal digits keeps large amounts exact
    _, digits, exponent = value.as_tuple()
    coefficient = int("".join(str(d) for d in digits) or "0")
    shift = exponent + decimals
    if shift >= 0:
        return coefficient * 10 ** shift

    raw, remainder = divmod(coefficient, 10 ** (-shift))
    if remainder:
        raise InvalidIntent.invalid(
            "amount", f"{amount} has more than {decimals} decimal places"
        )
    return raw


@dataclass(frozen=True)
class TokenDescriptor:
    """
    Token information

    Attributes:
        symbol: Token symbol (e.g., "ETH", "USDC")
        contract_address: ERC-20 contract address (NATIVE_TOKEN_ADDRESS for the native coin)
        decimals: Number of decimal places
        name: Full token name (optional)
    """
    symbol: str
    contract_address: str
    decimals: int
    name: str = ""

    def __str__(self) -> str:
        return self.symbol

    @property
    def is_native(self) -> bool:
        return self.contract_address.lower() == NATIVE_TOKEN_ADDRESS.lower()

    def ui_amount(self, raw_amount: int) -> Decimal:
        """Convert raw amount to UI amount with full precision"""
        return Decimal(format_units(raw_amount, self.decimals))

    def raw_amount(self, ui_amount: Union[Decimal, float, int, str]) -> int:
        """Convert UI amount to raw amount"""
        return parse_units(ui_amount, self.decimals)

    def format(self, raw_amount: int) -> str:
        return format_units(raw_amount, self.decimals)


class TokenRegistry:
    """
    Ordered, immutable lookup table of known tokens

    The native coin is held separately; list_all() returns only contract tokens
    in declaration order.

    Usage:
        registry = default_registry()
        usdc = registry.by_symbol("USDC")
        for token in registry.list_all():
            ...
    """

    def __init__(self, native: TokenDescriptor, tokens: Iterable[TokenDescriptor]):
        self._native = native
        self._tokens: Tuple[TokenDescriptor, ...] = tuple(tokens)
        self._by_symbol: Dict[str, TokenDescriptor] = {}

        for token in (native, *self._tokens):
            key = token.symbol.upper()
            if key in self._by_symbol:
                raise ConfigurationError.invalid("token_registry", f"duplicate symbol {token.symbol}")
            self._by_symbol[key] = token

    @property
    def native(self) -> TokenDescriptor:
        return self._native

    def list_all(self) -> List[TokenDescriptor]:
        return list(self._tokens)

    def symbols(self) -> List[str]:
        return [token.symbol for token in self._tokens]

    def contains(self, symbol: str) -> bool:
        return symbol.upper() in self._by_symbol

    def by_symbol(self, symbol: str) -> TokenDescriptor:
        """
        Look up a token (case-insensitive), including the native coin

        Raises:
            UnknownToken: Symbol is not registered
        """
        token = self._by_symbol.get(symbol.upper())
        if token is None:
            raise UnknownToken(symbol)
        return token

    def find(self, symbol: str) -> Optional[TokenDescriptor]:
        return self._by_symbol.get(symbol.upper())

    def __len__(self) -> int:
        return len(self._tokens)

    def __repr__(self) -> str:
        return f"TokenRegistry(native={self._native.symbol}, tokens={self.symbols()})"


# =============================================================================
# Ethereum Mainnet (Chain ID: 1)
# =============================================================================

ETH_NATIVE = TokenDescriptor("ETH", NATIVE_TOKEN_ADDRESS, 18, "Ether")

ETH_TOKENS: List[TokenDescriptor] = [
    # Stablecoins
    TokenDescriptor("USDC", "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", 6, "USD Coin"),
    TokenDescriptor("USDT", "0xdAC17F958D2ee523a2206206994597C13D831ec7", 6, "Tether"),
    TokenDescriptor("DAI", "0x6B175474E89094C44Da98b954EedeAC495271d0F", 18, "Dai Stablecoin"),
    TokenDescriptor("GHO", "0x40D16FC0246aD3160Ccc09B8D0D3A2cD28aE6C2f", 18, "GHO"),

    # Vault share tokens
    TokenDescriptor("mHYPER", "0x9b5528528656DBC094765E2abB79F293c21191B9", 18, "Midas mHYPER"),
    TokenDescriptor("sGHO", "0x00529C1D7Eb6a6CB5F124dCb28d08fDbcFe883E8", 18, "Aave Savings GHO"),
]


def default_registry() -> TokenRegistry:
    """Registry for Ethereum mainnet"""
    return TokenRegistry(ETH_NATIVE, ETH_TOKENS)
