"""Tests for listing metadata publishing and resolution."""

from unittest.mock import AsyncMock

import pytest

from compute_market.common.exceptions import MetadataUnavailable
from compute_market.common.models import HardwareMetadata
from compute_market.integrations.pinata.client import PinataMetadataResolver

from .conftest import MemoryMetadataResolver


@pytest.fixture
def pinata():
    return PinataMetadataResolver(jwt="test-jwt", custom_gateway="ipfs.example.com")


class TestResolveHardware:
    """Tests for validating fetched metadata documents."""

    @pytest.mark.asyncio
    async def test_accepts_camel_case_document(self):
        resolver = MemoryMetadataResolver({"u": {"name": "Box", "instanceId": "i-1", "extra": "ignored"}})
        hardware = await resolver.resolve_hardware("u")
        assert hardware.name == "Box"
        assert hardware.instance_id == "i-1"
        assert hardware.cpu == ""

    @pytest.mark.asyncio
    async def test_rejects_non_object(self):
        resolver = MemoryMetadataResolver({"u": ["not", "an", "object"]})
        with pytest.raises(MetadataUnavailable, match="JSON object"):
            await resolver.resolve_hardware("u")

    @pytest.mark.asyncio
    async def test_rejects_missing_name(self):
        resolver = MemoryMetadataResolver({"u": {"cpu": "8 cores"}})
        with pytest.raises(MetadataUnavailable, match="Malformed"):
            await resolver.resolve_hardware("u")

    @pytest.mark.asyncio
    async def test_publish_hardware_uses_aliases(self):
        resolver = MemoryMetadataResolver()
        url = await resolver.publish_hardware(HardwareMetadata(name="Box", instance_id="i-9"))
        assert resolver.documents[url]["instanceId"] == "i-9"
        assert resolver.published[0][0] == "Box"


class TestPinataMetadataResolver:
    """Tests for the Pinata content store."""

    def test_gateway_urls(self, pinata):
        assert pinata.gateway_for("QmHash") == "https://gateway.pinata.cloud/ipfs/QmHash"
        assert pinata.resolve_url("ipfs://QmHash") == "https://gateway.pinata.cloud/ipfs/QmHash"
        assert pinata.resolve_url("ipfs://ipfs/QmHash") == "https://gateway.pinata.cloud/ipfs/QmHash"
        assert pinata.resolve_url("https://other.example/x.json") == "https://other.example/x.json"

    def test_missing_jwt(self):
        with pytest.raises(MetadataUnavailable, match="PINATA_JWT"):
            PinataMetadataResolver(jwt="")._auth_headers()

    @pytest.mark.asyncio
    async def test_publish_json_wraps_document(self, pinata):
        pinata._pin = AsyncMock(return_value="QmDoc")

        url = await pinata.publish_json({"name": "Box"}, name="Box")

        assert url == "https://gateway.pinata.cloud/ipfs/QmDoc"
        assert pinata._pin.call_args.kwargs["json"] == {
            "pinataContent": {"name": "Box"},
            "pinataMetadata": {"name": "Box"},
        }

    @pytest.mark.asyncio
    async def test_upload_image_returns_both_gateways(self, pinata, tmp_path):
        image = tmp_path / "rig.png"
        image.write_bytes(b"\x89PNG")
        pinata._pin = AsyncMock(return_value="QmImage")

        result = await pinata.upload_hardware_image(image)

        assert result == {
            "pinataUrl": "https://gateway.pinata.cloud/ipfs/QmImage",
            "customGatewayUrl": "https://ipfs.example.com/ipfs/QmImage",
        }

    @pytest.mark.asyncio
    async def test_upload_image_without_custom_gateway(self, tmp_path):
        image = tmp_path / "rig.png"
        image.write_bytes(b"\x89PNG")
        pinata = PinataMetadataResolver(jwt="test-jwt")
        pinata._pin = AsyncMock(return_value="QmImage")
        assert await pinata.upload_hardware_image(image) == {"pinataUrl": "https://gateway.pinata.cloud/ipfs/QmImage"}

    @pytest.mark.asyncio
    async def test_upload_missing_file(self, pinata, tmp_path):
        with pytest.raises(MetadataUnavailable, match="not a file"):
            await pinata.upload_hardware_image(tmp_path / "missing.png")
