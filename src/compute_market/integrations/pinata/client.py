import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import Any, Dict, Optional, Union

import aiohttp

from ...common.exceptions import MetadataUnavailable
from ...common.metadata import MetadataResolver

logger = logging.getLogger(__name__)


class PinataMetadataResolver(MetadataResolver):
    """Content store backed by Pinata IPFS pinning."""

    def __init__(
        self,
        jwt: str,
        json_url: str = "https://api.pinata.cloud/pinning/pinJSONToIPFS",
        file_url: str = "https://api.pinata.cloud/pinning/pinFileToIPFS",
        gateway_url: str = "https://gateway.pinata.cloud",
        custom_gateway: Optional[str] = None,
        timeout: float = 30.0
    ):
        self.jwt = jwt
        self.json_url = json_url
        self.file_url = file_url
        self.gateway_url = gateway_url.rstrip("/")
        self.custom_gateway = custom_gateway
        self.timeout = timeout
        self._session_instance: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_settings(cls, config) -> "PinataMetadataResolver":
        return cls(
            jwt=config.PINATA_JWT,
            json_url=config.PINATA_JSON_URL,
            file_url=config.PINATA_FILE_URL,
            gateway_url=config.PINATA_GATEWAY_URL,
            custom_gateway=config.PINATA_CUSTOM_GATEWAY or None,
            timeout=config.METADATA_TIMEOUT,
        )

    async def _session(self) -> aiohttp.ClientSession:
        """Get or create an aiohttp session."""
        if self._session_instance is None or self._session_instance.closed:
            self._session_instance = aiohttp.ClientSession()
        return self._session_instance

    def _auth_headers(self) -> Dict[str, str]:
        if not self.jwt:
            raise MetadataUnavailable("PINATA_JWT is not set", operation="publish metadata")
        return {"Authorization": f"Bearer {self.jwt}"}

    def gateway_for(self, ipfs_hash: str) -> str:
        return f"{self.gateway_url}/ipfs/{ipfs_hash}"

    def resolve_url(self, url: str) -> str:
        """Rewrite ipfs:// URIs to the HTTP gateway."""
        if url.startswith("ipfs://"):
            path = url[len("ipfs://"):]
            if path.startswith("ipfs/"):
                path = path[len("ipfs/"):]
            return self.gateway_for(path)
        return url

    async def _pin(self, url: str, operation: str, **kwargs) -> str:
        session = await self._session()
        try:
            async with session.post(
                url,
                headers=self._auth_headers(),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                **kwargs
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error(f"Failed to {operation}: {response.status} - {error_text}")
                    raise MetadataUnavailable(f"{response.status} - {error_text}", operation=operation)
                data = await response.json(content_type=None)
        except asyncio.TimeoutError:
            logger.error(f"Timeout trying to {operation}")
            raise MetadataUnavailable(f"timed out after {self.timeout}s", operation=operation)
        except aiohttp.ClientError as e:
            logger.error(f"Error trying to {operation}: {e}")
            raise MetadataUnavailable(str(e), operation=operation)

        ipfs_hash = data.get("IpfsHash") if isinstance(data, dict) else None
        if not ipfs_hash:
            raise MetadataUnavailable(f"no IpfsHash in response: {data}", operation=operation)
        return ipfs_hash

    async def publish_json(self, document: Dict[str, Any], name: Optional[str] = None) -> str:
        payload = {"pinataContent": document}
        if name:
            payload["pinataMetadata"] = {"name": name}
        ipfs_hash = await self._pin(self.json_url, "pin metadata JSON", json=payload)
        url = self.gateway_for(ipfs_hash)
        logger.info(f"Pinned metadata {name or ''} at {url}")
        return url

    async def publish_file(self, path: Union[str, Path], content_type: Optional[str] = None) -> str:
        path = Path(path)
        if not path.is_file():
            raise MetadataUnavailable(f"{path} is not a file", operation="pin file")
        content_type = content_type or mimetypes.guess_type(path.name)[0] or "application/octet-stream"

        with path.open("rb") as f:
            form = aiohttp.FormData()
            form.add_field("file", f, filename=path.name, content_type=content_type)
            ipfs_hash = await self._pin(self.file_url, "pin file", data=form)

        url = self.gateway_for(ipfs_hash)
        logger.info(f"Pinned file {path.name} at {url}")
        return url

    async def upload_hardware_image(self, path: Union[str, Path], content_type: Optional[str] = None) -> Dict[str, str]:
        """Pin a hardware image and return the public and custom gateway URLs."""
        pinata_url = await self.publish_file(path, content_type)
        result = {"pinataUrl": pinata_url}
        if self.custom_gateway:
            ipfs_hash = pinata_url.rsplit("/", 1)[-1]
            result["customGatewayUrl"] = f"https://{self.custom_gateway}/ipfs/{ipfs_hash}"
        return result

    async def fetch(self, url: str) -> Dict[str, Any]:
        session = await self._session()
        resolved = self.resolve_url(url)
        try:
            async with session.get(resolved, timeout=aiohttp.ClientTimeout(total=self.timeout)) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error(f"Failed to fetch metadata {resolved}: {response.status} - {error_text}")
                    raise MetadataUnavailable(f"{response.status} - {error_text}", operation="fetch metadata")
                return await response.json(content_type=None)
        except asyncio.TimeoutError:
            raise MetadataUnavailable(f"timed out fetching {resolved}", operation="fetch metadata")
        except aiohttp.ClientError as e:
            raise MetadataUnavailable(f"{resolved}: {e}", operation="fetch metadata")
        except ValueError as e:
            raise MetadataUnavailable(f"{resolved} is not JSON: {e}", operation="fetch metadata")

    async def close(self):
        if self._session_instance and not self._session_instance.closed:
            await self._session_instance.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
