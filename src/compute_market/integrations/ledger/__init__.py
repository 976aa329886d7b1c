from .client import LedgerClient
from .contracts import (
    DaoContract,
    MarketplaceContract,
    NftContract,
    PriceOracleContract,
    TokenContract,
)

__all__ = [
    "LedgerClient",
    "DaoContract",
    "MarketplaceContract",
    "NftContract",
    "PriceOracleContract",
    "TokenContract",
]
