from enum import Enum
from typing import Any, Dict, List, Optional, Union

from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def checksum(address: str) -> str:
    """Return the checksummed form of an address, raising ValueError if invalid."""
    if not isinstance(address, str) or not is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return to_checksum_address(address)


class ChainContext(BaseModel):
    """Network the current request runs against."""
    model_config = ConfigDict(frozen=True)

    network: str
    rpc_endpoint: str
    chain_id: Optional[int] = None
    marketplace_address: str
    price_oracle_address: Optional[str] = None

    @field_validator("marketplace_address")
    @classmethod
    def _checksum_marketplace(cls, value: str) -> str:
        return checksum(value)

    @field_validator("price_oracle_address")
    @classmethod
    def _checksum_oracle(cls, value: Optional[str]) -> Optional[str]:
        return checksum(value) if value else None


class ProposalStatus(str, Enum):
    PASSING = "Passing"
    FAILING = "Failing"
    IN_PROGRESS = "InProgress"


class HardwareMetadata(BaseModel):
    """Off-chain JSON document pinned for every listed machine."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    instance_id: str = Field(default="", alias="instanceId")
    image: str = ""
    cpu: str = ""
    memory: str = ""
    location: str = ""


class Listing(BaseModel):
    """Denormalized marketplace listing for one DAO."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    dao_address: str = Field(alias="daoAddress")
    name: str
    image: str = ""
    cpu: str = ""
    memory: str = ""
    location: str = ""
    instance_id: str = Field(default="", alias="instanceId")
    token_price: str = Field(alias="tokenPrice")
    rental_price: str = Field(alias="rentalPrice")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class Proposal(BaseModel):
    """Rental price proposal view. Prices are ether strings, votes and threshold are percentages."""
    model_config = ConfigDict(populate_by_name=True)

    active: bool
    proposed_price: Optional[str] = Field(default=None, alias="proposedPrice")
    current_price: Optional[str] = Field(default=None, alias="currentPrice")
    votes_for: Optional[str] = Field(default=None, alias="votesFor")
    votes_against: Optional[str] = Field(default=None, alias="votesAgainst")
    vote_threshold: Optional[str] = Field(default=None, alias="voteThreshold")
    remaining_needed: Optional[str] = Field(default=None, alias="remainingNeeded")
    proposal_timestamp: Optional[int] = Field(default=None, alias="proposalTimestamp")
    status: Optional[ProposalStatus] = None

    def to_payload(self) -> Dict[str, Any]:
        if not self.active:
            return {"active": False}
        return self.model_dump(by_alias=True, mode="json")


class UnsignedTransaction(BaseModel):
    """Transaction descriptor handed to the client for signing."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    from_address: str = Field(alias="from")
    to: str
    data: str
    value: Optional[int] = None
    gas_limit: int = Field(alias="gasLimit")
    gas_price: int = Field(alias="gasPrice")
    nonce: int
    chain_id: int = Field(alias="chainId")

    @field_serializer("value", "gas_limit", "gas_price")
    def _big_int_as_string(self, value: Optional[int]) -> Optional[str]:
        # wei amounts overflow JSON numbers in most clients
        return str(value) if value is not None else None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class BuildResult(BaseModel):
    """Output of a TransactionBuilder action."""
    tx: Optional[Union[UnsignedTransaction, List[UnsignedTransaction]]] = None
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)

    @property
    def transactions(self) -> List[UnsignedTransaction]:
        if self.tx is None:
            return []
        if isinstance(self.tx, list):
            return list(self.tx)
        return [self.tx]

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if isinstance(self.tx, list):
            payload["tx"] = [t.to_payload() for t in self.tx]
        elif self.tx is not None:
            payload["tx"] = self.tx.to_payload()
        payload["message"] = self.message
        payload.update(self.details)
        return payload
