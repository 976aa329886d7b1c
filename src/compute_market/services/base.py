import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Awaitable, Iterator, List, Tuple, Type

from ..common.exceptions import (
    AlreadyVoted,
    ApprovalInsufficient,
    ComputeMarketError,
    ContractCallReverted,
    InfrastructureError,
    InsufficientSupply,
    InvalidArgument,
    NoActiveProposal,
    NotATokenHolder,
    NotAuthorized,
    PreconditionFailed,
    PropertyAlreadyRented,
    ProposalAlreadyActive,
)
from ..common.models import ChainContext, checksum
from ..common.units import MAX_UINT256
from ..integrations.ledger.client import LedgerClient
from ..integrations.ledger.contracts import (
    DaoContract,
    MarketplaceContract,
    NftContract,
    PriceOracleContract,
    TokenContract,
)

logger = logging.getLogger(__name__)

# Revert reasons the contracts are known to emit, checked in order
KNOWN_REVERTS: List[Tuple[str, Type[PreconditionFailed], str]] = [
    ("total would exceed approval", ApprovalInsufficient,
     "You need to approve the DAO contract to spend your tokens first. "
     "Please call the token approval function before trying again."),
    ("insufficient balance", PreconditionFailed,
     "You don't have enough tokens for the requested amount."),
    ("incorrect payment amount", PreconditionFailed,
     "Incorrect payment amount calculated. Please try again."),
    ("not enough tokens available", InsufficientSupply,
     "Not enough tokens available for sale."),
    ("already voted", AlreadyVoted, "You have already voted on this proposal."),
    ("no active proposal", NoActiveProposal, "There is no active proposal to vote on."),
    ("proposal already active", ProposalAlreadyActive, "There is already an active proposal."),
    ("already rented", PropertyAlreadyRented, "This property already has a tenant."),
    ("not a token holder", NotATokenHolder, "Only token holders can perform this action."),
    ("caller is not the owner", NotAuthorized, "Only the marketplace owner can perform this action."),
    ("not authorized", NotAuthorized, "You are not authorized to perform this action."),
]


def map_revert(error: ContractCallReverted, operation: str) -> ComputeMarketError:
    """Translate a revert into a precondition failure when the reason is recognized."""
    reason = error.reason.lower()
    for needle, exc_type, message in KNOWN_REVERTS:
        if needle in reason:
            return exc_type(message, reason=error.reason)
    return InfrastructureError(f"execution reverted: {error.reason}", operation=operation)


@contextmanager
def remote_operation(operation: str) -> Iterator[None]:
    """Classify failures raised by ledger reads inside the block.

    Typed caller-facing errors pass through; reverts are mapped; anything else
    is wrapped with the attempted operation's name.
    """
    try:
        yield
    except (InvalidArgument, PreconditionFailed):
        raise
    except ContractCallReverted as e:
        mapped = map_revert(e, operation)
        logger.warning(f"{operation} reverted: {e.reason} -> {type(mapped).__name__}")
        raise mapped
    except InfrastructureError as e:
        if e.operation:
            raise
        raise type(e)(e.message, operation=operation)
    except ComputeMarketError:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error during {operation}")
        raise InfrastructureError(str(e), operation=operation)


def require_address(value: str, field: str) -> str:
    """Validate and checksum a caller-supplied address."""
    if not value:
        raise InvalidArgument(f"{field} is required")
    try:
        return checksum(value)
    except ValueError:
        raise InvalidArgument(f"{field} is not a valid address: {value}")


def require_positive_int(value, field: str) -> int:
    if value is None or isinstance(value, bool):
        raise InvalidArgument(f"{field} is required")
    if isinstance(value, float) and not value.is_integer():
        raise InvalidArgument(f"{field} must be a whole number, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"{field} must be an integer, got {value!r}")
    if number <= 0:
        raise InvalidArgument(f"{field} must be greater than 0")
    if number > MAX_UINT256:
        raise InvalidArgument(f"{field} is too large")
    return number


async def gather_or_raise(*aws: Awaitable[Any]) -> List[Any]:
    """Await all reads, then raise the first failure in argument order.

    Every sibling is awaited to completion so no task exception goes unretrieved.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


class MarketService:
    """Base class for services bound to one ChainContext and ledger."""

    def __init__(self, context: ChainContext, ledger: LedgerClient):
        self.context = context
        self.ledger = ledger
        self.marketplace = MarketplaceContract(ledger, context.marketplace_address)

    async def list_dao_addresses(self) -> List[str]:
        with remote_operation("enumerate marketplace listings"):
            return await self.marketplace.get_all_daos()

    def dao(self, address: str) -> DaoContract:
        return DaoContract(self.ledger, address)

    def token(self, address: str) -> TokenContract:
        return TokenContract(self.ledger, address)

    def nft(self, address: str) -> NftContract:
        return NftContract(self.ledger, address)

    def price_oracle(self) -> PriceOracleContract:
        if not self.context.price_oracle_address:
            raise InvalidArgument(f"No price oracle configured for network {self.context.network}")
        return PriceOracleContract(self.ledger, self.context.price_oracle_address)
