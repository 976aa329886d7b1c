import asyncio
import itertools
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

import aiohttp
from eth_abi import decode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import to_bytes

from ...common.exceptions import ContractCallReverted, InvalidArgument, RpcUnavailable
from ...common.models import ChainContext
from .abi import ContractInterface

logger = logging.getLogger(__name__)

# Error(string) selector used by solidity revert reasons
REVERT_SELECTOR = bytes.fromhex("08c379a0")
_REASON_PATTERNS = [
    re.compile(r"reverted with reason string '(.*)'"),
    re.compile(r"execution reverted: (.*)"),
]
_REVERT_MARKERS = ("revert", "insufficient funds", "vm exception")


def decode_revert_reason(data: Any) -> Optional[str]:
    """Decode an ``Error(string)`` payload from a JSON-RPC error ``data`` field."""
    if isinstance(data, dict):
        data = data.get("data") or data.get("result")
    if not isinstance(data, str) or not data.startswith("0x"):
        return None
    try:
        raw = to_bytes(hexstr=data)
    except ValueError:
        return None
    if not raw.startswith(REVERT_SELECTOR):
        return None
    try:
        return decode(["string"], raw[4:])[0]
    except DecodingError:
        return None


def _reason_from_message(message: str) -> str:
    for pattern in _REASON_PATTERNS:
        match = pattern.search(message)
        if match:
            return match.group(1).strip()
    return message


class LedgerClient:
    """Read, estimate and encode facade over an EVM JSON-RPC endpoint.

    The client never submits transactions. Failures surface as
    ``RpcUnavailable`` or ``ContractCallReverted`` and are not retried.
    """

    def __init__(self, rpc_url: str, timeout: float = 30.0):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._session_instance: Optional[aiohttp.ClientSession] = None
        self._ids = itertools.count(1)
        logger.info(f"Initialized LedgerClient for {rpc_url}")

    @classmethod
    def for_context(cls, context: ChainContext, timeout: float = 30.0) -> "LedgerClient":
        return cls(context.rpc_endpoint, timeout=timeout)

    async def _session(self) -> aiohttp.ClientSession:
        """Get or create an aiohttp session."""
        if self._session_instance is None or self._session_instance.closed:
            self._session_instance = aiohttp.ClientSession(
                headers={"Content-Type": "application/json"}
            )
        return self._session_instance

    async def _request(self, method: str, params: List[Any]) -> Any:
        """Send a single JSON-RPC request and return its ``result``."""
        session = await self._session()
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        logger.debug(f"RPC {method} {params}")

        try:
            async with session.post(
                self.rpc_url,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error(f"RPC {method} failed: {response.status} - {error_text}")
                    raise RpcUnavailable(f"{response.status} - {error_text}", operation=method)
                data = await response.json(content_type=None)
        except asyncio.TimeoutError:
            logger.error(f"Timeout calling {method} on {self.rpc_url}")
            raise RpcUnavailable(f"timed out after {self.timeout}s", operation=method)
        except aiohttp.ClientError as e:
            logger.error(f"Error calling {method} on {self.rpc_url}: {e}")
            raise RpcUnavailable(str(e), operation=method)
        except ValueError as e:
            raise RpcUnavailable(f"malformed JSON-RPC response: {e}", operation=method)

        if not isinstance(data, dict):
            raise RpcUnavailable(f"unexpected response format: {type(data)}", operation=method)
        if data.get("error"):
            self._raise_rpc_error(method, data["error"])
        if "result" not in data:
            raise RpcUnavailable("response has no result", operation=method)
        return data["result"]

    def _raise_rpc_error(self, method: str, error: Any):
        if not isinstance(error, dict):
            raise RpcUnavailable(str(error), operation=method)

        message = str(error.get("message", ""))
        reason = decode_revert_reason(error.get("data"))
        if reason is None and (error.get("code") == 3 or any(m in message.lower() for m in _REVERT_MARKERS)):
            reason = _reason_from_message(message)
        if reason is not None:
            logger.info(f"RPC {method} reverted: {reason}")
            raise ContractCallReverted(reason, operation=method)

        logger.error(f"RPC {method} error: {error}")
        raise RpcUnavailable(f"{error.get('code')} - {message}", operation=method)

    @staticmethod
    def _tx_params(tx: Dict[str, Any]) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if tx.get("from"):
            params["from"] = tx["from"]
        params["to"] = tx["to"]
        params["data"] = tx.get("data", "0x")
        if tx.get("value"):
            params["value"] = hex(int(tx["value"]))
        return params

    def encode(self, contract: ContractInterface, method: str, args: Sequence[Any] = ()) -> str:
        """Encode call data for a contract method."""
        try:
            return contract.encode(method, args)
        except (EncodingError, ValueError, TypeError) as e:
            raise InvalidArgument(f"Cannot encode {contract.name}.{method}: {e}")

    async def simulate(self, tx: Dict[str, Any], block: str = "latest") -> bytes:
        """Run ``eth_call`` for a transaction and return the raw result."""
        result = await self._request("eth_call", [self._tx_params(tx), block])
        return to_bytes(hexstr=result or "0x")

    async def call(
        self,
        contract: ContractInterface,
        address: str,
        method: str,
        args: Sequence[Any] = (),
        from_address: Optional[str] = None
    ) -> Any:
        """Call a view method and decode its return value."""
        data = self.encode(contract, method, args)
        raw = await self.simulate({"from": from_address, "to": address, "data": data})
        try:
            return contract.decode(method, raw)
        except DecodingError as e:
            # eth_call against an address without code returns empty data
            raise ContractCallReverted(
                f"could not decode result from {address}: {e}",
                operation=f"{contract.name}.{method}"
            )

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        result = await self._request("eth_estimateGas", [self._tx_params(tx)])
        return int(result, 16)

    async def gas_price(self) -> int:
        result = await self._request("eth_gasPrice", [])
        return int(result, 16)

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        result = await self._request("eth_getTransactionCount", [address, block])
        return int(result, 16)

    async def chain_id(self) -> int:
        result = await self._request("eth_chainId", [])
        return int(result, 16)

    async def close(self):
        if self._session_instance and not self._session_instance.closed:
            await self._session_instance.close()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
