"""Typed accessors for each marketplace contract role.

These wrap LedgerClient reads and call-data encoding only; business rules
live in the services package.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from ...common.exceptions import ContractCallReverted, InfrastructureError
from ...common.models import checksum
from .abi import DAO, MARKETPLACE, NFT, PRICE_ORACLE, TOKEN, ContractInterface
from .client import LedgerClient

logger = logging.getLogger(__name__)

# Each title NFT contract mints a single token
TITLE_TOKEN_ID = 1


@dataclass
class RawProposal:
    """Rental price proposal exactly as stored by the DAO."""
    proposed_price: int
    votes_for: int
    votes_against: int
    proposal_timestamp: int
    active: bool


class ContractGateway:
    """Base class binding a contract interface to a deployed address."""

    interface: ContractInterface

    def __init__(self, ledger: LedgerClient, address: str):
        self.ledger = ledger
        self.address = checksum(address)

    async def _call(self, method: str, *args: Any, from_address: Optional[str] = None) -> Any:
        return await self.ledger.call(self.interface, self.address, method, args, from_address=from_address)

    def encode(self, method: str, *args: Any) -> str:
        return self.ledger.encode(self.interface, method, args)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.address})"


class MarketplaceContract(ContractGateway):
    interface = MARKETPLACE

    async def get_all_daos(self) -> List[str]:
        return list(await self._call("getAllDAOs"))

    async def owner(self) -> str:
        return await self._call("owner")

    def encode_create_listing(
        self,
        nft_name: str,
        nft_symbol: str,
        token_name: str,
        token_symbol: str,
        metadata_url: str,
        total_tokens: int,
        token_price_wei: int,
        rental_price_wei: int
    ) -> str:
        return self.encode(
            "createListing",
            nft_name, nft_symbol, token_name, token_symbol, metadata_url,
            total_tokens, token_price_wei, rental_price_wei
        )

    def encode_remove_listing(self, dao_address: str) -> str:
        return self.encode("removeListing", checksum(dao_address))


class DaoContract(ContractGateway):
    interface = DAO

    async def token_contract(self) -> str:
        return await self._call("TOKEN_CONTRACT")

    async def nft_contract(self) -> str:
        return await self._call("NFT_CONTRACT")

    async def token_price(self) -> int:
        return await self._call("tokenPrice")

    async def rental_price(self) -> int:
        return await self._call("rentalPrice")

    async def available_tokens_for_sale(self) -> int:
        return await self._call("getAvailableTokensForSale")

    async def current_tenant(self) -> str:
        return await self._call("currentTenant")

    async def vote_threshold(self) -> int:
        return await self._call("VOTE_THRESHOLD")

    async def percentage_decimals(self) -> int:
        return await self._call("PERCENTAGE_DECIMALS")

    async def current_proposal(self) -> RawProposal:
        result = await self._call("currentProposal")
        return RawProposal(
            proposed_price=result["proposedPrice"],
            votes_for=result["votesFor"],
            votes_against=result["votesAgainst"],
            proposal_timestamp=result["proposalTimestamp"],
            active=result["active"]
        )

    def encode_approve_tokens_for_sale(self, amount: int) -> str:
        return self.encode("approveTokensForSale", amount)

    def encode_buy_tokens(self, amount: int) -> str:
        return self.encode("buyTokens", amount)

    def encode_propose_new_rent(self, price_wei: int) -> str:
        return self.encode("proposeNewRent", price_wei)

    def encode_vote(self, support: bool) -> str:
        return self.encode("voteOnRentProposal", bool(support))

    def encode_become_tenant(self) -> str:
        return self.encode("becomeTenant")

    def encode_unlock_nft(self) -> str:
        return self.encode("unlockNFT")

    async def has_already_voted(self, voter: str, support: bool = True) -> bool:
        """Probe whether ``voter`` already voted on the active proposal.

        The DAO exposes no view for this, so the vote is simulated from the
        voter's address and the revert reason is matched. Any other failure
        of the simulation counts as "not voted".
        """
        tx = {"from": checksum(voter), "to": self.address, "data": self.encode_vote(support)}
        try:
            await self.ledger.simulate(tx)
        except ContractCallReverted as e:
            if "already voted" in e.reason.lower():
                return True
            logger.info(f"Vote simulation on {self.address} reverted for another reason: {e.reason}")
            return False
        except InfrastructureError as e:
            logger.warning(f"Vote simulation on {self.address} failed, assuming no prior vote: {e}")
            return False
        return False


class TokenContract(ContractGateway):
    interface = TOKEN

    async def balance_of(self, account: str) -> int:
        return await self._call("balanceOf", checksum(account))

    async def total_supply(self) -> int:
        return await self._call("totalSupply")

    async def allowance(self, owner: str, spender: str) -> int:
        return await self._call("allowance", checksum(owner), checksum(spender))

    async def decimals(self) -> int:
        return await self._call("decimals")

    def encode_approve(self, spender: str, amount: int) -> str:
        return self.encode("approve", checksum(spender), amount)


class NftContract(ContractGateway):
    interface = NFT

    async def token_uri(self, token_id: int = TITLE_TOKEN_ID) -> str:
        return await self._call("tokenURI", token_id)

    async def owner_of(self, token_id: int = TITLE_TOKEN_ID) -> str:
        return await self._call("ownerOf", token_id)


class PriceOracleContract(ContractGateway):
    interface = PRICE_ORACLE

    async def latest_price(self) -> int:
        return await self._call("latestPrice")

    async def decimals(self) -> int:
        return await self._call("decimals")
