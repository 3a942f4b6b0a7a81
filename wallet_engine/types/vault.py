"""
Vault type definitions and the registry of known vaults
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional

from ..errors import OperationNotSupported


@dataclass(frozen=True)
class VaultDescriptor:
    """
    Share-based (ERC-4626 style) vault

    Attributes:
        vault_id: Stable identifier (e.g., "mhyper")
        name: Display name
        address: Vault contract (also the share token)
        asset_symbol: Registry symbol of the deposit asset
        share_symbol: Registry symbol of the share token
        apy: Advertised annual percentage yield
        supports_deposit: Deposits are wired end to end
        supports_redeem: Redemptions are wired end to end
    """
    vault_id: str
    name: str
    address: str
    asset_symbol: str
    share_symbol: str
    apy: Decimal
    supports_deposit: bool = True
    supports_redeem: bool = True


@dataclass(frozen=True)
class SharePreview:
    """
    Result of an asset/share conversion

    approximate is True when the vault has no conversion view function and the
    figure is a 1:1 assumption rather than a contract answer.
    """
    amount: Decimal
    raw_amount: int
    approximate: bool = False

    def __str__(self) -> str:
        tag = " (approximate)" if self.approximate else ""
        return f"{self.amount}{tag}"


@dataclass(frozen=True)
class VaultInfo:
    """Vault totals in UI units"""
    total_assets: Decimal
    total_supply: Decimal
    share_price: Decimal


MHYPER_VAULT = VaultDescriptor(
    vault_id="mhyper",
    name="Midas mHYPER",
    address="0x9b5528528656DBC094765E2abB79F293c21191B9",
    asset_symbol="USDC",
    share_symbol="mHYPER",
    apy=Decimal("8.93"),
)

# USDC <-> GHO swap leg is not wired yet
SGHO_VAULT = VaultDescriptor(
    vault_id="sgho",
    name="Aave sGHO",
    address="0x00529C1D7Eb6a6CB5F124dCb28d08fDbcFe883E8",
    asset_symbol="GHO",
    share_symbol="sGHO",
    apy=Decimal("5.28"),
    supports_deposit=False,
    supports_redeem=False,
)

KNOWN_VAULTS: Dict[str, VaultDescriptor] = {
    MHYPER_VAULT.vault_id: MHYPER_VAULT,
    SGHO_VAULT.vault_id: SGHO_VAULT,
}


def get_vault(vault_id: str) -> VaultDescriptor:
    """
    Look up a known vault

    Raises:
        OperationNotSupported: Unknown vault id
    """
    vault = KNOWN_VAULTS.get(vault_id.lower())
    if vault is None:
        raise OperationNotSupported.unknown_vault(vault_id)
    return vault


def find_vault(vault_id: str) -> Optional[VaultDescriptor]:
    return KNOWN_VAULTS.get(vault_id.lower())


def list_vaults() -> List[VaultDescriptor]:
    return list(KNOWN_VAULTS.values())
