"""Tests for network selection and chain context resolution."""

import pytest
from pydantic import ValidationError

from compute_market.common.config import Settings, resolve_chain_context
from compute_market.common.exceptions import InvalidArgument

from .conftest import MARKETPLACE, ORACLE


@pytest.fixture
def config():
    return Settings(
        NETWORK="sepolia",
        MARKETPLACE_ADDRESSES={"sepolia": MARKETPLACE.lower(), "hardhat": MARKETPLACE},
        PRICE_ORACLE_ADDRESSES={"sepolia": ORACLE},
    )


class TestResolveChainContext:
    """Tests for building a ChainContext from settings."""

    def test_default_network(self, config):
        context = resolve_chain_context(config=config)
        assert context.network == "sepolia"
        assert context.chain_id == 11155111
        assert context.rpc_endpoint == config.RPC_URLS["sepolia"]
        assert context.marketplace_address == MARKETPLACE
        assert context.price_oracle_address == ORACLE

    def test_explicit_network_is_case_insensitive(self, config):
        context = resolve_chain_context("HARDHAT", config=config)
        assert context.network == "hardhat"
        assert context.chain_id == 31337
        assert context.price_oracle_address is None

    def test_unknown_network(self, config):
        with pytest.raises(InvalidArgument, match="Unknown network"):
            resolve_chain_context("goerli", config=config)

    def test_missing_marketplace(self, config):
        with pytest.raises(InvalidArgument, match="No marketplace address"):
            resolve_chain_context("mainnet", config=config)

    def test_invalid_marketplace_address(self):
        config = Settings(MARKETPLACE_ADDRESSES={"hardhat": "0xnotanaddress"})
        with pytest.raises(InvalidArgument, match="Invalid contract address"):
            resolve_chain_context("hardhat", config=config)

    def test_context_is_immutable(self, config):
        context = resolve_chain_context(config=config)
        with pytest.raises(ValidationError):
            context.network = "mainnet"
