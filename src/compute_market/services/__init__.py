from .listings import ListingAggregator
from .proposals import ProposalStateEngine, classify
from .transactions import CreateListingRequest, TransactionBuilder, derive_symbol

__all__ = [
    "ListingAggregator",
    "ProposalStateEngine",
    "classify",
    "CreateListingRequest",
    "TransactionBuilder",
    "derive_symbol",
]
