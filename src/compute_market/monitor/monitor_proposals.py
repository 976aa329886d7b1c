import asyncio
import json
import logging
import os
from typing import Dict, Optional

from ..common.config import settings
from ..common.models import ChainContext, Proposal
from ..integrations.ledger.client import LedgerClient
from ..services.proposals import ProposalStateEngine

logger = logging.getLogger(__name__)


class ProposalTracker:
    """Tracks rental price proposals per DAO with file-based persistence."""

    def __init__(self, state_file: str):
        self.state_file = state_file
        self.proposals: Dict[str, Dict] = self._load_state()
        logger.info(f"Loaded state from {self.state_file}: {len(self.proposals)} proposals")

    def _load_state(self) -> Dict[str, Dict]:
        """Load proposal state from file."""
        try:
            if os.path.exists(self.state_file):
                with open(self.state_file, "r") as f:
                    return json.load(f)
            return {}
        except (OSError, ValueError) as e:
            logger.error(f"Error loading proposal state: {e}")
            return {}

    def _save_state(self):
        """Save current proposal state to file."""
        try:
            os.makedirs(os.path.dirname(self.state_file) or ".", exist_ok=True)
            with open(self.state_file, "w") as f:
                json.dump(self.proposals, f, indent=2)
        except OSError as e:
            logger.error(f"Error saving proposal state: {e}")

    @staticmethod
    def _key(network: str, dao_address: str) -> str:
        return f"{network}:{dao_address.lower()}"

    def get_proposal(self, network: str, dao_address: str) -> Optional[Dict]:
        return self.proposals.get(self._key(network, dao_address))

    def update_proposal(self, network: str, dao_address: str, proposal: Proposal):
        self.proposals[self._key(network, dao_address)] = {
            "status": proposal.status.value if proposal.status else None,
            "proposed_price": proposal.proposed_price,
            "proposal_timestamp": proposal.proposal_timestamp,
        }
        self._save_state()

    def remove_proposal(self, network: str, dao_address: str):
        key = self._key(network, dao_address)
        if key in self.proposals:
            del self.proposals[key]
            self._save_state()

    def get_tracked_proposals_count(self) -> int:
        return len(self.proposals)


def describe_transition(previous: Optional[Dict], proposal: Proposal) -> Optional[str]:
    """Name the change between the tracked state and the current proposal, if any."""
    if not proposal.active:
        return "proposal_closed" if previous else None
    if not previous or previous.get("proposal_timestamp") != proposal.proposal_timestamp:
        return "proposal_active"
    if previous.get("status") != proposal.status.value:
        return "proposal_update"
    return None


async def process_dao_proposal(
    dao_address: str,
    context: ChainContext,
    engine: ProposalStateEngine,
    tracker: ProposalTracker
) -> Optional[str]:
    """Read one DAO's proposal, log any transition and update the tracker."""
    proposal = await engine.get_proposal(dao_address)
    previous = tracker.get_proposal(context.network, dao_address)
    transition = describe_transition(previous, proposal)

    if transition == "proposal_active":
        logger.info(
            f"New rent proposal on {dao_address}: {proposal.current_price} -> {proposal.proposed_price} ETH "
            f"({proposal.status.value}, for {proposal.votes_for}% / threshold {proposal.vote_threshold}%)"
        )
        tracker.update_proposal(context.network, dao_address, proposal)
    elif transition == "proposal_update":
        logger.info(
            f"Rent proposal on {dao_address} changed from {previous['status']} to {proposal.status.value} "
            f"(for {proposal.votes_for}%, against {proposal.votes_against}%, {proposal.remaining_needed}% still needed)"
        )
        tracker.update_proposal(context.network, dao_address, proposal)
    elif transition == "proposal_closed":
        logger.info(f"Rent proposal on {dao_address} closed with last status {previous['status']}")
        tracker.remove_proposal(context.network, dao_address)

    return transition


async def monitor_rent_proposals(
    context: ChainContext,
    ledger: Optional[LedgerClient] = None,
    tracker: Optional[ProposalTracker] = None,
    continuous: bool = False,
    check_interval: Optional[int] = None
):
    """Monitor rental price proposals across every listed DAO.

    Args:
        context: Network to monitor.
        ledger: Optional LedgerClient; one is created for the context otherwise.
        tracker: Optional ProposalTracker; defaults to a state file under DATA_DIR.
        continuous: If True, runs in a continuous loop. If False, runs once and exits.
        check_interval: Number of seconds to wait between checks when running continuously.
                      Required if continuous is True, ignored otherwise.
    """
    if continuous and check_interval is None:
        raise ValueError("check_interval is required when continuous is True")

    if tracker is None:
        state_file = os.path.join(str(settings.DATA_DIR), "proposal_tracking", f"{context.network}_rent_proposals.json")
        tracker = ProposalTracker(state_file)

    owns_ledger = ledger is None
    if ledger is None:
        ledger = LedgerClient.for_context(context, timeout=settings.RPC_TIMEOUT)
    engine = ProposalStateEngine(context, ledger)

    try:
        while True:
            try:
                dao_addresses = await engine.list_dao_addresses()
                logger.info(f"Checking rent proposals for {len(dao_addresses)} DAOs on {context.network}")

                for dao_address in dao_addresses:
                    try:
                        await process_dao_proposal(dao_address, context, engine, tracker)
                    except Exception as e:
                        logger.error(f"Error processing proposal for {dao_address}: {e}")
                        continue

                logger.info(f"Currently tracking {tracker.get_tracked_proposals_count()} proposals")
            except Exception as e:
                logger.error(f"Error monitoring proposals: {e}")
                if not continuous:
                    raise

            if not continuous:
                break

            await asyncio.sleep(check_interval)
    finally:
        if owns_ledger:
            await ledger.close()
