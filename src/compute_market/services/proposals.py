import logging

from ..common.exceptions import InfrastructureError
from ..common.models import Proposal, ProposalStatus
from ..common.units import format_ether, format_percentage
from ..integrations.ledger.contracts import RawProposal
from .base import MarketService, gather_or_raise, remote_operation, require_address

logger = logging.getLogger(__name__)


def classify(votes_for: int, votes_against: int, threshold: int, decimals: int) -> ProposalStatus:
    """Classify a proposal from raw vote tallies.

    All values are on the DAO's percentage scale, where ``decimals`` represents
    100%. Passing once the votes for reach the threshold; Failing once the votes
    against make the threshold unreachable.
    """
    if decimals <= 0:
        raise ValueError(f"percentage decimals must be positive, got {decimals}")
    if votes_for >= threshold:
        return ProposalStatus.PASSING
    if votes_against > decimals - threshold:
        return ProposalStatus.FAILING
    return ProposalStatus.IN_PROGRESS


def remaining_needed(votes_for: int, threshold: int, decimals: int) -> str:
    """Percentage of voting power still needed to pass, never negative."""
    return format_percentage(max(0, threshold - votes_for), decimals)


def build_proposal_view(raw: RawProposal, current_price: int, threshold: int, decimals: int) -> Proposal:
    if not raw.active:
        return Proposal(active=False)
    return Proposal(
        active=True,
        proposed_price=format_ether(raw.proposed_price),
        current_price=format_ether(current_price),
        votes_for=format_percentage(raw.votes_for, decimals),
        votes_against=format_percentage(raw.votes_against, decimals),
        vote_threshold=format_percentage(threshold, decimals),
        remaining_needed=remaining_needed(raw.votes_for, threshold, decimals),
        proposal_timestamp=raw.proposal_timestamp,
        status=classify(raw.votes_for, raw.votes_against, threshold, decimals),
    )


class ProposalStateEngine(MarketService):
    """Reads and classifies the rental price proposal of a DAO."""

    async def get_proposal(self, dao_address: str) -> Proposal:
        dao = self.dao(require_address(dao_address, "DAO address"))

        with remote_operation("read rental proposal"):
            raw, current_price, threshold, decimals = await gather_or_raise(
                dao.current_proposal(),
                dao.rental_price(),
                dao.vote_threshold(),
                dao.percentage_decimals(),
            )

        if decimals <= 0:
            raise InfrastructureError(
                f"DAO {dao.address} reports invalid percentage decimals {decimals}",
                operation="read rental proposal"
            )

        proposal = build_proposal_view(raw, current_price, threshold, decimals)
        logger.info(f"Proposal on {dao.address}: active={proposal.active} status={proposal.status}")
        return proposal
