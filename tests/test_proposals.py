"""Tests for rental proposal classification and the ProposalStateEngine."""

import pytest

from compute_market.common.exceptions import (
    InfrastructureError,
    InvalidArgument,
    RpcUnavailable,
)
from compute_market.common.models import ProposalStatus
from compute_market.integrations.ledger.contracts import RawProposal
from compute_market.services.proposals import (
    ProposalStateEngine,
    build_proposal_view,
    classify,
    remaining_needed,
)

from .conftest import DAO, proposal_result


class TestClassify:
    """Tests for proposal status classification."""

    def test_passing_when_threshold_reached(self):
        assert classify(60, 10, 51, 100) == ProposalStatus.PASSING

    def test_passing_exactly_at_threshold(self):
        assert classify(51, 0, 51, 100) == ProposalStatus.PASSING

    def test_failing_when_threshold_unreachable(self):
        assert classify(20, 60, 51, 100) == ProposalStatus.FAILING

    def test_still_reachable_is_in_progress(self):
        assert classify(20, 49, 51, 100) == ProposalStatus.IN_PROGRESS
        assert classify(20, 10, 51, 100) == ProposalStatus.IN_PROGRESS

    def test_passing_takes_precedence(self):
        # Not reachable on a consistent chain, but the order is fixed
        assert classify(60, 60, 51, 100) == ProposalStatus.PASSING

    def test_other_scales(self):
        assert classify(5100, 0, 5100, 10000) == ProposalStatus.PASSING
        assert classify(0, 4901, 5100, 10000) == ProposalStatus.FAILING

    def test_rejects_zero_decimals(self):
        with pytest.raises(ValueError):
            classify(1, 0, 1, 0)


class TestRemainingNeeded:
    """Tests for the remaining voting power calculation."""

    def test_difference_to_threshold(self):
        assert remaining_needed(20, 51, 100) == "31"

    def test_never_negative(self):
        assert remaining_needed(80, 51, 100) == "0"

    def test_fractional(self):
        assert remaining_needed(1000, 5100, 10000) == "41"
        assert remaining_needed(1, 3, 7) == "28.57"


class TestBuildProposalView:
    """Tests for converting the raw proposal into the caller view."""

    def test_inactive_proposal_has_no_figures(self):
        raw = RawProposal(proposed_price=0, votes_for=0, votes_against=0, proposal_timestamp=0, active=False)
        view = build_proposal_view(raw, 10**18, 51, 100)
        assert view.to_payload() == {"active": False}

    def test_active_proposal(self):
        raw = RawProposal(
            proposed_price=2 * 10**18,
            votes_for=60,
            votes_against=10,
            proposal_timestamp=1700000000,
            active=True,
        )
        view = build_proposal_view(raw, 15 * 10**17, 51, 100)
        assert view.to_payload() == {
            "active": True,
            "proposedPrice": "2",
            "currentPrice": "1.5",
            "votesFor": "60",
            "votesAgainst": "10",
            "voteThreshold": "51",
            "remainingNeeded": "0",
            "proposalTimestamp": 1700000000,
            "status": "Passing",
        }


class TestProposalStateEngine:
    """Tests for reading a DAO's proposal through the ledger."""

    @pytest.fixture
    def engine(self, context, ledger):
        ledger.set(DAO, "rentalPrice", 10**18)
        ledger.set(DAO, "VOTE_THRESHOLD", 51)
        ledger.set(DAO, "PERCENTAGE_DECIMALS", 100)
        return ProposalStateEngine(context, ledger)

    @pytest.mark.asyncio
    async def test_in_progress_proposal(self, engine, ledger):
        ledger.set(DAO, "currentProposal", proposal_result(
            active=True, proposed_price=2 * 10**18, votes_for=20, votes_against=10, timestamp=1700000000
        ))

        proposal = await engine.get_proposal(DAO)

        assert proposal.active
        assert proposal.status == ProposalStatus.IN_PROGRESS
        assert proposal.remaining_needed == "31"
        assert proposal.current_price == "1"
        assert proposal.proposed_price == "2"

    @pytest.mark.asyncio
    async def test_no_active_proposal(self, engine, ledger):
        ledger.set(DAO, "currentProposal", proposal_result(active=False))
        proposal = await engine.get_proposal(DAO.lower())
        assert proposal.to_payload() == {"active": False}

    @pytest.mark.asyncio
    async def test_invalid_address(self, engine):
        with pytest.raises(InvalidArgument):
            await engine.get_proposal("0x1234")

    @pytest.mark.asyncio
    async def test_zero_decimals_is_infrastructure_error(self, engine, ledger):
        ledger.set(DAO, "currentProposal", proposal_result(active=True, votes_for=1))
        ledger.set(DAO, "PERCENTAGE_DECIMALS", 0)
        with pytest.raises(InfrastructureError, match="percentage decimals"):
            await engine.get_proposal(DAO)

    @pytest.mark.asyncio
    async def test_rpc_failure_names_the_operation(self, engine, ledger):
        ledger.set(DAO, "currentProposal", RpcUnavailable("connection refused"))
        with pytest.raises(RpcUnavailable) as exc_info:
            await engine.get_proposal(DAO)
        assert exc_info.value.message == "Failed to read rental proposal: connection refused"
        assert exc_info.value.retryable
