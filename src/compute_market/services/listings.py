import asyncio
import logging
from typing import List, Optional

from ..common.exceptions import InfrastructureError
from ..common.metadata import MetadataResolver
from ..common.models import ChainContext, Listing
from ..common.units import format_ether, format_units
from ..integrations.ledger.client import LedgerClient
from .base import MarketService, gather_or_raise, remote_operation, require_address

logger = logging.getLogger(__name__)


class ListingAggregator(MarketService):
    """Builds the marketplace catalog from every registered DAO.

    One unreachable or malformed DAO never fails the catalog: its entry is
    logged and dropped. Only failing to enumerate the registry is an error.
    """

    def __init__(
        self,
        context: ChainContext,
        ledger: LedgerClient,
        metadata: MetadataResolver,
        concurrency: int = 16,
        entry_timeout: Optional[float] = 45.0
    ):
        super().__init__(context, ledger)
        self.metadata = metadata
        self.entry_timeout = entry_timeout
        self._semaphore = asyncio.Semaphore(max(1, concurrency))

    async def resolve_listing(self, dao_address: str) -> Listing:
        """Resolve a single DAO into a listing, raising on any failure."""
        dao = self.dao(require_address(dao_address, "DAO address"))

        with remote_operation(f"read listing {dao.address}"):
            nft_address, token_price, rental_price = await gather_or_raise(
                dao.nft_contract(),
                dao.token_price(),
                dao.rental_price(),
            )
            token_uri = await self.nft(nft_address).token_uri()

        with remote_operation(f"resolve metadata for {dao.address}"):
            hardware = await self.metadata.resolve_hardware(token_uri)

        return Listing(
            dao_address=dao.address,
            name=hardware.name,
            image=hardware.image,
            cpu=hardware.cpu,
            memory=hardware.memory,
            location=hardware.location,
            instance_id=hardware.instance_id,
            token_price=format_ether(token_price),
            rental_price=format_ether(rental_price),
        )

    async def _resolve_or_drop(self, dao_address: str) -> Optional[Listing]:
        async with self._semaphore:
            try:
                if self.entry_timeout:
                    return await asyncio.wait_for(self.resolve_listing(dao_address), timeout=self.entry_timeout)
                return await self.resolve_listing(dao_address)
            except asyncio.TimeoutError:
                logger.error(f"Timed out resolving listing {dao_address} after {self.entry_timeout}s")
            except Exception as e:
                logger.error(f"Error resolving listing {dao_address}: {e}")
        return None

    async def get_listings(self) -> List[Listing]:
        """Return every resolvable listing, sorted by DAO address."""
        dao_addresses = await self.list_dao_addresses()
        logger.info(f"Found {len(dao_addresses)} DAOs in marketplace {self.marketplace.address}")

        results = await asyncio.gather(*(self._resolve_or_drop(address) for address in dao_addresses))
        listings = sorted((listing for listing in results if listing is not None), key=lambda l: l.dao_address.lower())

        dropped = len(dao_addresses) - len(listings)
        if dropped:
            logger.warning(f"Dropped {dropped} of {len(dao_addresses)} listings that could not be resolved")
        return listings

    async def get_native_usd_price(self) -> str:
        """Latest native currency price from the configured price oracle."""
        oracle = self.price_oracle()
        with remote_operation("read price oracle"):
            price, decimals = await gather_or_raise(oracle.latest_price(), oracle.decimals())
        if price < 0:
            raise InfrastructureError(f"oracle returned negative price {price}", operation="read price oracle")
        return format_units(price, decimals)
