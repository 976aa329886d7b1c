import os
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import ValidationError
from pydantic_settings import BaseSettings

from .exceptions import InvalidArgument
from .models import ChainContext

# Load environment variables from .env file
load_dotenv()


class Network(str, Enum):
    HARDHAT = "hardhat"
    SEPOLIA = "sepolia"
    MAINNET = "mainnet"


class Settings(BaseSettings):
    """Application settings."""
    # Base paths
    DATA_DIR: Path = Path(os.getenv("DATA_DIR", "data"))

    # Network selection
    NETWORK: str = os.getenv("NETWORK", Network.HARDHAT.value)
    RPC_URLS: Dict[str, str] = {
        Network.HARDHAT.value: "http://127.0.0.1:8545",
        Network.SEPOLIA.value: "https://rpc.sepolia.org",
        Network.MAINNET.value: "https://eth.llamarpc.com",
    }
    CHAIN_IDS: Dict[str, int] = {
        Network.HARDHAT.value: 31337,
        Network.SEPOLIA.value: 11155111,
        Network.MAINNET.value: 1,
    }
    # JSON objects keyed by network, e.g. {"sepolia": "0xabc..."}
    MARKETPLACE_ADDRESSES: Dict[str, str] = {}
    PRICE_ORACLE_ADDRESSES: Dict[str, str] = {}

    # Pinata content store
    PINATA_JWT: str = os.getenv("PINATA_JWT", "")
    PINATA_JSON_URL: str = "https://api.pinata.cloud/pinning/pinJSONToIPFS"
    PINATA_FILE_URL: str = "https://api.pinata.cloud/pinning/pinFileToIPFS"
    PINATA_GATEWAY_URL: str = "https://gateway.pinata.cloud"
    PINATA_CUSTOM_GATEWAY: str = os.getenv("PINATA_CUSTOM_GATEWAY", "")

    # Timeouts and limits (seconds unless noted)
    RPC_TIMEOUT: float = float(os.getenv("RPC_TIMEOUT", "30"))
    METADATA_TIMEOUT: float = float(os.getenv("METADATA_TIMEOUT", "30"))
    LISTING_TIMEOUT: float = float(os.getenv("LISTING_TIMEOUT", "45"))
    LISTING_CONCURRENCY: int = int(os.getenv("LISTING_CONCURRENCY", "16"))  # max DAOs resolved at once

    # Monitoring settings
    CHECK_INTERVAL: int = int(os.getenv("CHECK_INTERVAL", "60"))  # 1 minute default

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
        "extra": "ignore",
    }


# Create settings instance
settings = Settings()


def resolve_chain_context(network: Optional[str] = None, config: Optional[Settings] = None) -> ChainContext:
    """Build the ChainContext for a network selector.

    Args:
        network: Network name; defaults to the configured NETWORK.
        config: Settings to read from; defaults to the module settings.

    Raises:
        InvalidArgument: If the network is unknown or has no marketplace address.
    """
    config = config or settings
    network = (network or config.NETWORK).lower()

    rpc_url = config.RPC_URLS.get(network)
    if not rpc_url:
        raise InvalidArgument(f"Unknown network: {network}")

    marketplace = config.MARKETPLACE_ADDRESSES.get(network)
    if not marketplace:
        raise InvalidArgument(f"No marketplace address configured for network {network}")

    try:
        return ChainContext(
            network=network,
            rpc_endpoint=rpc_url,
            chain_id=config.CHAIN_IDS.get(network),
            marketplace_address=marketplace,
            price_oracle_address=config.PRICE_ORACLE_ADDRESSES.get(network) or None,
        )
    except ValidationError as e:
        raise InvalidArgument(f"Invalid contract address configured for network {network}: {e}")
