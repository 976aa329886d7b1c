"""Builds unsigned transactions for marketplace actions.

Every action validates its input locally, runs the on-chain precondition
reads it needs, then assembles a transaction for the client to sign. Nothing
here signs or submits.
"""

import logging
import re
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..common.exceptions import (
    AlreadyVoted,
    ApprovalInsufficient,
    ContractCallReverted,
    IncompleteOwnership,
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
from ..common.metadata import MetadataResolver
from ..common.models import (
    ZERO_ADDRESS,
    BuildResult,
    ChainContext,
    HardwareMetadata,
    UnsignedTransaction,
)
from ..common.units import format_ether, format_percentage, parse_ether
from ..integrations.ledger.client import LedgerClient
from ..integrations.ledger.contracts import DaoContract, TokenContract
from .base import (
    MarketService,
    gather_or_raise,
    map_revert,
    remote_operation,
    require_address,
    require_positive_int,
)

logger = logging.getLogger(__name__)

NFT_SYMBOL_SUFFIX = "NFT"
TOKEN_SYMBOL_SUFFIX = "TKN"
SYMBOL_PREFIX_LENGTH = 5
DEFAULT_TOTAL_TOKENS = 1000
# Used when a batch step cannot be estimated until the previous step is mined
DEPENDENT_STEP_GAS_LIMIT = 300000


def derive_symbol(name: str, suffix: str) -> str:
    """Ticker symbol for a listing: first five alphanumerics, upper-cased, plus suffix."""
    prefix = re.sub(r"[^A-Za-z0-9]", "", name or "")[:SYMBOL_PREFIX_LENGTH]
    return prefix.upper() + suffix


class CreateListingRequest(BaseModel):
    """Input for listing a new machine on the marketplace."""
    model_config = ConfigDict(populate_by_name=True)

    hardware_name: str = Field(alias="hardwareName")
    user_address: str = Field(alias="userAddress")
    token_price: Union[str, int] = Field(alias="tokenPrice")
    rental_price: Union[str, int] = Field(alias="rentalPrice")
    total_tokens: Optional[int] = Field(default=None, alias="totalTokens")
    instance_id: str = Field(default="", alias="instanceId")
    image_url: str = Field(default="", alias="imageUrl")
    cpu: str = ""
    memory: str = ""
    location: str = ""

    @field_validator("token_price", "rental_price", mode="before")
    @classmethod
    def _float_price_as_decimal_string(cls, value):
        # JSON numbers arrive as floats
        if isinstance(value, float):
            return repr(value)
        return value


class TransactionBuilder(MarketService):
    """Prepares unsigned transactions for marketplace and DAO actions."""

    def __init__(self, context: ChainContext, ledger: LedgerClient, metadata: Optional[MetadataResolver] = None):
        super().__init__(context, ledger)
        self.metadata = metadata

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    async def _chain_id(self) -> int:
        chain_id = await self.ledger.chain_id()
        if self.context.chain_id is not None and chain_id != self.context.chain_id:
            raise InfrastructureError(
                f"RPC endpoint reports chain id {chain_id}, expected {self.context.chain_id} for {self.context.network}"
            )
        return chain_id

    async def _assemble(
        self,
        operation: str,
        from_address: str,
        to: str,
        data: str,
        value: Optional[int] = None
    ) -> UnsignedTransaction:
        """Estimate gas and fetch fee, nonce and chain id for a single call."""
        request = {"from": from_address, "to": to, "data": data, "value": value}
        with remote_operation(f"prepare {operation} transaction"):
            gas_limit, gas_price, nonce, chain_id = await gather_or_raise(
                self.ledger.estimate_gas(request),
                self.ledger.gas_price(),
                self.ledger.get_transaction_count(from_address),
                self._chain_id(),
            )

        tx = UnsignedTransaction(
            from_address=from_address,
            to=to,
            data=data,
            value=value,
            gas_limit=gas_limit,
            gas_price=gas_price,
            nonce=nonce,
            chain_id=chain_id,
        )
        logger.info(f"Prepared {operation} transaction from {from_address} to {to} (nonce {nonce}, gas {gas_limit})")
        return tx

    async def _estimate_dependent_step(self, request: Dict[str, Any], operation: str) -> int:
        try:
            return await self.ledger.estimate_gas(request)
        except ContractCallReverted as e:
            mapped = map_revert(e, operation)
            if isinstance(mapped, PreconditionFailed):
                logger.warning(f"Estimating {operation} reverted: {e.reason} -> {type(mapped).__name__}")
                raise mapped
            logger.warning(
                f"Cannot estimate {operation} before the previous step is mined ({e.reason}); "
                f"using gas limit {DEPENDENT_STEP_GAS_LIMIT}"
            )
            return DEPENDENT_STEP_GAS_LIMIT

    async def _token_for(self, dao: DaoContract) -> TokenContract:
        with remote_operation("resolve DAO token contract"):
            return self.token(await dao.token_contract())

    async def _require_token_holder(self, token: TokenContract, user: str) -> int:
        with remote_operation("read token balance"):
            balance = await token.balance_of(user)
        if balance <= 0:
            raise NotATokenHolder("Only token holders can take part in rental price governance.")
        return balance

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def create_listing(self, request: CreateListingRequest) -> BuildResult:
        if not request.hardware_name or not request.user_address:
            raise InvalidArgument("Hardware name and user address are required")
        user = require_address(request.user_address, "User address")
        total_tokens = require_positive_int(request.total_tokens or DEFAULT_TOTAL_TOKENS, "Total tokens")
        token_price = parse_ether(request.token_price, "Token price")
        rental_price = parse_ether(request.rental_price, "Rental price")
        if token_price <= 0 or rental_price <= 0:
            raise InvalidArgument("Token price and rental price must be greater than 0")
        if self.metadata is None:
            raise InfrastructureError("no metadata store configured", operation="publish listing metadata")

        hardware = HardwareMetadata(
            name=request.hardware_name,
            instance_id=request.instance_id or "",
            image=request.image_url or "",
            cpu=request.cpu or "",
            memory=request.memory or "",
            location=request.location or "",
        )
        with remote_operation("publish listing metadata"):
            metadata_url = await self.metadata.publish_hardware(hardware)

        name = request.hardware_name
        nft_symbol = derive_symbol(name, NFT_SYMBOL_SUFFIX)
        token_symbol = derive_symbol(name, TOKEN_SYMBOL_SUFFIX)
        data = self.marketplace.encode_create_listing(
            f"{name} NFT",
            nft_symbol,
            f"{name} Token",
            token_symbol,
            metadata_url,
            total_tokens,
            token_price,
            rental_price,
        )

        tx = await self._assemble("create listing", user, self.marketplace.address, data)
        return BuildResult(
            tx=tx,
            message="Transaction created successfully. Please sign and submit.",
            details={
                "metadataUrl": metadata_url,
                "nftSymbol": nft_symbol,
                "tokenSymbol": token_symbol,
                "totalTokens": total_tokens,
                "tokenPrice": format_ether(token_price),
                "rentalPrice": format_ether(rental_price),
            },
        )

    # ------------------------------------------------------------------
    # Fractionalization and purchase
    # ------------------------------------------------------------------

    def _validate_token_request(self, user_address: str, dao_address: str, number_of_tokens) -> tuple:
        if not number_of_tokens or not user_address or not dao_address:
            raise InvalidArgument("Number of tokens, user address, and DAO address are required")
        amount = require_positive_int(number_of_tokens, "Amount")
        return require_address(user_address, "User address"), require_address(dao_address, "DAO address"), amount

    async def token_approval(self, user_address: str, dao_address: str, number_of_tokens: int) -> BuildResult:
        """Approve the DAO to move ``number_of_tokens`` of the caller's tokens."""
        user, dao_addr, amount = self._validate_token_request(user_address, dao_address, number_of_tokens)
        dao = self.dao(dao_addr)
        token = await self._token_for(dao)

        data = token.encode_approve(dao.address, amount)
        tx = await self._assemble("token approval", user, token.address, data)
        return BuildResult(
            tx=tx,
            message="Transaction created successfully. Please sign to approve token transfer.",
            details={"numberOfTokens": amount},
        )

    async def fractionalize(self, user_address: str, dao_address: str, number_of_tokens: int) -> BuildResult:
        """List tokens for sale. The caller must have run token_approval first."""
        user, dao_addr, amount = self._validate_token_request(user_address, dao_address, number_of_tokens)
        dao = self.dao(dao_addr)

        data = dao.encode_approve_tokens_for_sale(amount)
        tx = await self._assemble("fractionalization", user, dao.address, data)
        return BuildResult(
            tx=tx,
            message="Transaction created successfully. Please sign to list tokens for sale.",
            details={"numberOfTokens": amount},
        )

    async def buy_tokens(self, user_address: str, dao_address: str, number_of_tokens: int) -> BuildResult:
        user, dao_addr, amount = self._validate_token_request(user_address, dao_address, number_of_tokens)
        dao = self.dao(dao_addr)

        with remote_operation("read token sale state"):
            token_price, available = await gather_or_raise(
                dao.token_price(),
                dao.available_tokens_for_sale(),
            )
        if amount > available:
            raise InsufficientSupply(
                f"Not enough tokens available for sale. Requested: {amount}, Available: {available}"
            )

        total_payment = token_price * amount
        data = dao.encode_buy_tokens(amount)
        tx = await self._assemble("buy tokens", user, dao.address, data, value=total_payment)
        return BuildResult(
            tx=tx,
            message=(
                f"Transaction created to buy {amount} tokens for {format_ether(total_payment)} ETH. "
                "Please sign to complete purchase."
            ),
            details={
                "numberOfTokens": amount,
                "tokenPrice": format_ether(token_price),
                "totalPayment": format_ether(total_payment),
            },
        )

    # ------------------------------------------------------------------
    # Rental price governance
    # ------------------------------------------------------------------

    async def propose_new_rental_price(self, user_address: str, dao_address: str, new_price) -> BuildResult:
        if not user_address or not dao_address or new_price in (None, ""):
            raise InvalidArgument("User address, DAO address, and new price are required")
        user = require_address(user_address, "User address")
        dao = self.dao(require_address(dao_address, "DAO address"))
        price_wei = parse_ether(new_price, "New price")
        if price_wei <= 0:
            raise InvalidArgument("New price must be greater than 0")

        token = await self._token_for(dao)
        await self._require_token_holder(token, user)

        with remote_operation("read rental proposal"):
            proposal = await dao.current_proposal()
        if proposal.active:
            raise ProposalAlreadyActive(
                "There is already an active rental price proposal. Wait for it to be resolved."
            )

        data = dao.encode_propose_new_rent(price_wei)
        tx = await self._assemble("rent proposal", user, dao.address, data)
        return BuildResult(
            tx=tx,
            message=f"Transaction created to propose a rental price of {format_ether(price_wei)} ETH. Please sign to submit.",
            details={"proposedPrice": format_ether(price_wei)},
        )

    async def vote_on_proposal(self, user_address: str, dao_address: str, support: bool) -> BuildResult:
        if not user_address or not dao_address or support is None:
            raise InvalidArgument("User address, DAO address, and vote are required")
        user = require_address(user_address, "User address")
        dao = self.dao(require_address(dao_address, "DAO address"))
        support = bool(support)

        token = await self._token_for(dao)
        balance = await self._require_token_holder(token, user)

        with remote_operation("read rental proposal"):
            proposal, total_supply, decimals = await gather_or_raise(
                dao.current_proposal(),
                token.total_supply(),
                dao.percentage_decimals(),
            )
        if not proposal.active:
            raise NoActiveProposal("There is no active rental price proposal to vote on.")

        if await dao.has_already_voted(user, support):
            raise AlreadyVoted("You have already voted on this proposal.")

        if total_supply <= 0 or decimals <= 0:
            raise InfrastructureError(
                f"DAO {dao.address} reports total supply {total_supply} and percentage decimals {decimals}",
                operation="compute voting power"
            )
        weight = balance * decimals // total_supply

        data = dao.encode_vote(support)
        tx = await self._assemble("vote", user, dao.address, data)
        voting_power = format_percentage(weight, decimals)
        return BuildResult(
            tx=tx,
            message=f"Transaction created to vote {'for' if support else 'against'} the proposal with {voting_power}% of the votes. Please sign to submit.",
            details={"support": support, "votingPower": voting_power},
        )

    # ------------------------------------------------------------------
    # Tenancy
    # ------------------------------------------------------------------

    async def become_tenant(self, user_address: str, dao_address: str) -> BuildResult:
        if not user_address or not dao_address:
            raise InvalidArgument("User address and DAO address are required")
        user = require_address(user_address, "User address")
        dao = self.dao(require_address(dao_address, "DAO address"))

        with remote_operation("read tenancy"):
            tenant, rental_price = await gather_or_raise(dao.current_tenant(), dao.rental_price())
        if tenant and tenant != ZERO_ADDRESS:
            raise PropertyAlreadyRented(f"This property is already rented by {tenant}.")

        data = dao.encode_become_tenant()
        tx = await self._assemble("become tenant", user, dao.address, data, value=rental_price)
        return BuildResult(
            tx=tx,
            message=f"Transaction created to rent this machine for {format_ether(rental_price)} ETH. Please sign to complete.",
            details={"rentalPrice": format_ether(rental_price)},
        )

    # ------------------------------------------------------------------
    # Unlisting
    # ------------------------------------------------------------------

    async def unlock_approval(self, user_address: str, dao_address: str) -> BuildResult:
        """First unlisting step: approve the DAO to take back the whole supply."""
        if not user_address or not dao_address:
            raise InvalidArgument("User address and DAO address are required")
        user = require_address(user_address, "User address")
        dao = self.dao(require_address(dao_address, "DAO address"))
        token = await self._token_for(dao)

        with remote_operation("read token ownership"):
            balance, total_supply, allowance = await gather_or_raise(
                token.balance_of(user),
                token.total_supply(),
                token.allowance(user, dao.address),
            )
        if total_supply <= 0 or balance < total_supply:
            raise IncompleteOwnership(
                f"You must own all tokens to unlist. You own {balance} of {total_supply}."
            )

        if allowance >= total_supply:
            return BuildResult(
                tx=None,
                message="No approval needed. The DAO can already transfer all tokens.",
                details={"approvalNeeded": False, "totalSupply": total_supply},
            )

        data = token.encode_approve(dao.address, total_supply)
        tx = await self._assemble("unlock approval", user, token.address, data)
        return BuildResult(
            tx=tx,
            message="Transaction created to approve the DAO for all tokens. Please sign before unlisting.",
            details={"approvalNeeded": True, "totalSupply": total_supply},
        )

    async def complete_unlist(self, user_address: str, dao_address: str) -> BuildResult:
        """Second unlisting step: unlock the NFT, then remove the listing.

        Returns two transactions with consecutive nonces. They must be
        submitted in order; the second fails if the first has not landed.
        """
        if not user_address or not dao_address:
            raise InvalidArgument("User address and DAO address are required")
        user = require_address(user_address, "User address")
        dao = self.dao(require_address(dao_address, "DAO address"))

        with remote_operation("read marketplace owner"):
            owner = await self.marketplace.owner()
        if owner != user:
            raise NotAuthorized("Only the marketplace owner can remove a listing.")

        token = await self._token_for(dao)
        with remote_operation("read token approval"):
            total_supply, allowance = await gather_or_raise(
                token.total_supply(),
                token.allowance(user, dao.address),
            )
        if allowance < total_supply:
            raise ApprovalInsufficient(
                f"The DAO is approved for {allowance} of {total_supply} tokens. Run the unlock approval first."
            )

        unlock_request = {"from": user, "to": dao.address, "data": dao.encode_unlock_nft()}
        remove_request = {
            "from": user,
            "to": self.marketplace.address,
            "data": self.marketplace.encode_remove_listing(dao.address),
        }

        with remote_operation("prepare unlist transactions"):
            unlock_gas, gas_price, nonce, chain_id = await gather_or_raise(
                self.ledger.estimate_gas(unlock_request),
                self.ledger.gas_price(),
                self.ledger.get_transaction_count(user),
                self._chain_id(),
            )
            remove_gas = await self._estimate_dependent_step(remove_request, "remove listing")

        steps = [
            UnsignedTransaction(
                from_address=user,
                to=unlock_request["to"],
                data=unlock_request["data"],
                gas_limit=unlock_gas,
                gas_price=gas_price,
                nonce=nonce,
                chain_id=chain_id,
            ),
            UnsignedTransaction(
                from_address=user,
                to=remove_request["to"],
                data=remove_request["data"],
                gas_limit=remove_gas,
                gas_price=gas_price,
                nonce=nonce + 1,
                chain_id=chain_id,
            ),
        ]
        logger.info(f"Prepared unlist batch for {dao.address} with nonces {nonce} and {nonce + 1}")
        return BuildResult(
            tx=steps,
            message="Transactions created. Sign and submit them in order: unlock the NFT, then remove the listing.",
            details={"steps": ["unlockNFT", "removeListing"]},
        )
