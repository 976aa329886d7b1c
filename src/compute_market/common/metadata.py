from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from .exceptions import MetadataUnavailable
from .models import HardwareMetadata


class MetadataResolver(ABC):
    """Base class for off-chain content stores holding listing metadata."""

    @abstractmethod
    async def publish_json(self, document: Dict[str, Any], name: Optional[str] = None) -> str:
        """Pin a JSON document and return its public URL."""
        pass

    @abstractmethod
    async def publish_file(self, path: Union[str, Path], content_type: Optional[str] = None) -> str:
        """Pin a binary file and return its public URL."""
        pass

    @abstractmethod
    async def fetch(self, url: str) -> Dict[str, Any]:
        """Fetch a JSON document previously published."""
        pass

    async def publish_hardware(self, metadata: HardwareMetadata) -> str:
        """Pin the metadata document for a machine being listed."""
        return await self.publish_json(metadata.model_dump(by_alias=True), name=metadata.name)

    async def resolve_hardware(self, url: str) -> HardwareMetadata:
        """Fetch and validate the metadata document behind a token URI."""
        document = await self.fetch(url)
        if not isinstance(document, dict):
            raise MetadataUnavailable(f"Expected a JSON object at {url}", operation="resolve metadata")
        try:
            return HardwareMetadata.model_validate(document)
        except ValidationError as e:
            raise MetadataUnavailable(f"Malformed metadata at {url}: {e}", operation="resolve metadata")
