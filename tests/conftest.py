"""Shared fixtures: a scripted ledger and an in-memory content store."""

from typing import Any, Dict, Optional, Sequence
from unittest.mock import AsyncMock

import pytest
from eth_utils import to_checksum_address

from compute_market.common.exceptions import MetadataUnavailable
from compute_market.common.metadata import MetadataResolver
from compute_market.common.models import ChainContext


def addr(n: int) -> str:
    return to_checksum_address("0x" + f"{n:040x}")


MARKETPLACE = addr(0x1000)
ORACLE = addr(0x2000)
USER = addr(0xBEEF)
OWNER = addr(0x0A11CE)
TOKEN = addr(0x7070)
NFT = addr(0x8080)
DAO = addr(0xDA0)

GAS_ESTIMATE = 54321
GAS_PRICE = 2_000_000_000
NONCE = 7
CHAIN_ID = 31337


def proposal_result(active=False, proposed_price=0, votes_for=0, votes_against=0, timestamp=0) -> Dict[str, Any]:
    """currentProposal() decoded the way ContractInterface.decode returns it."""
    return {
        "proposedPrice": proposed_price,
        "votesFor": votes_for,
        "votesAgainst": votes_against,
        "proposalTimestamp": timestamp,
        "active": active,
    }


class FakeLedger:
    """LedgerClient stand-in answering view calls from a table.

    Encoding is real; reads are looked up by ``(address, method)``. A stored
    exception is raised instead of returned.
    """

    def __init__(self):
        self.responses: Dict[tuple, Any] = {}
        self.calls = []
        self.estimate_gas = AsyncMock(return_value=GAS_ESTIMATE)
        self.gas_price = AsyncMock(return_value=GAS_PRICE)
        self.get_transaction_count = AsyncMock(return_value=NONCE)
        self.chain_id = AsyncMock(return_value=CHAIN_ID)
        self.simulate = AsyncMock(return_value=b"")

    def set(self, address: str, method: str, value: Any):
        self.responses[(address, method)] = value

    def encode(self, contract, method: str, args: Sequence[Any] = ()) -> str:
        return contract.encode(method, args)

    async def call(self, contract, address: str, method: str, args: Sequence[Any] = (),
                   from_address: Optional[str] = None) -> Any:
        self.calls.append((address, method, tuple(args)))
        value = self.responses[(address, method)]
        if isinstance(value, Exception):
            raise value
        return value

    async def close(self):
        pass


class MemoryMetadataResolver(MetadataResolver):
    """Content store keeping published documents in a dict."""

    def __init__(self, documents: Optional[Dict[str, Any]] = None):
        self.documents: Dict[str, Any] = dict(documents or {})
        self.published = []

    async def publish_json(self, document, name=None) -> str:
        url = f"https://gateway.example/ipfs/Qm{len(self.documents)}"
        self.documents[url] = document
        self.published.append((name, document))
        return url

    async def publish_file(self, path, content_type=None) -> str:
        return f"https://gateway.example/ipfs/file-{path}"

    async def fetch(self, url: str):
        document = self.documents.get(url)
        if document is None:
            raise MetadataUnavailable(f"{url} not found", operation="fetch metadata")
        if isinstance(document, Exception):
            raise document
        return document


@pytest.fixture
def context() -> ChainContext:
    return ChainContext(
        network="hardhat",
        rpc_endpoint="http://127.0.0.1:8545",
        chain_id=CHAIN_ID,
        marketplace_address=MARKETPLACE,
        price_oracle_address=ORACLE,
    )


@pytest.fixture
def ledger() -> FakeLedger:
    fake = FakeLedger()
    fake.set(DAO, "TOKEN_CONTRACT", TOKEN)
    fake.set(DAO, "NFT_CONTRACT", NFT)
    return fake


@pytest.fixture
def metadata() -> MemoryMetadataResolver:
    return MemoryMetadataResolver()
