"""Contract interfaces for each marketplace contract role.

Method names and argument order must match the deployed contracts exactly.
"""

from typing import Any, Dict, List, Sequence, Tuple

from eth_abi import decode, encode
from eth_utils import function_abi_to_4byte_selector, to_checksum_address, to_hex


def _fn(name: str, inputs: List[Tuple[str, str]], outputs: List[Tuple[str, str]],
        mutability: str = "view") -> Dict[str, Any]:
    return {
        "inputs": [{"internalType": t, "name": n, "type": t} for n, t in inputs],
        "name": name,
        "outputs": [{"internalType": t, "name": n, "type": t} for n, t in outputs],
        "stateMutability": mutability,
        "type": "function",
    }


# --- MARKETPLACE (listing registry) ---
MARKETPLACE_ABI = [
    _fn("createListing", [
        ("nftName", "string"),
        ("nftSymbol", "string"),
        ("tokenName", "string"),
        ("tokenSymbol", "string"),
        ("metadataUrl", "string"),
        ("totalTokens", "uint256"),
        ("tokenPrice", "uint256"),
        ("rentalPrice", "uint256"),
    ], [("daoAddress", "address")], "nonpayable"),
    _fn("removeListing", [("daoAddress", "address")], [], "nonpayable"),
    _fn("getAllDAOs", [], [("", "address[]")]),
    _fn("owner", [], [("", "address")]),
]

# --- RWA DAO (one per listed machine) ---
DAO_ABI = [
    _fn("TOKEN_CONTRACT", [], [("", "address")]),
    _fn("NFT_CONTRACT", [], [("", "address")]),
    _fn("tokenPrice", [], [("", "uint256")]),
    _fn("rentalPrice", [], [("", "uint256")]),
    _fn("getAvailableTokensForSale", [], [("", "uint256")]),
    _fn("currentTenant", [], [("", "address")]),
    _fn("currentProposal", [], [
        ("proposedPrice", "uint256"),
        ("votesFor", "uint256"),
        ("votesAgainst", "uint256"),
        ("proposalTimestamp", "uint256"),
        ("active", "bool"),
    ]),
    _fn("VOTE_THRESHOLD", [], [("", "uint256")]),
    _fn("PERCENTAGE_DECIMALS", [], [("", "uint256")]),
    _fn("approveTokensForSale", [("amount", "uint256")], [], "nonpayable"),
    _fn("buyTokens", [("amount", "uint256")], [], "payable"),
    _fn("proposeNewRent", [("newPrice", "uint256")], [], "nonpayable"),
    _fn("voteOnRentProposal", [("support", "bool")], [], "nonpayable"),
    _fn("becomeTenant", [], [], "payable"),
    _fn("unlockNFT", [], [], "nonpayable"),
]

# --- RWA TOKEN (ERC20 fractions) ---
TOKEN_ABI = [
    _fn("balanceOf", [("account", "address")], [("", "uint256")]),
    _fn("totalSupply", [], [("", "uint256")]),
    _fn("allowance", [("owner", "address"), ("spender", "address")], [("", "uint256")]),
    _fn("decimals", [], [("", "uint8")]),
    _fn("approve", [("spender", "address"), ("amount", "uint256")], [("", "bool")], "nonpayable"),
]

# --- RWA NFT (title) ---
NFT_ABI = [
    _fn("tokenURI", [("tokenId", "uint256")], [("", "string")]),
    _fn("ownerOf", [("tokenId", "uint256")], [("", "address")]),
]

# --- PRICE ORACLE ---
PRICE_ORACLE_ABI = [
    _fn("latestPrice", [], [("", "int256")]),
    _fn("decimals", [], [("", "uint8")]),
]


def _abi_type(param: Dict[str, Any]) -> str:
    """Collapse a parameter into its canonical type string, expanding tuples."""
    abi_type = param["type"]
    if abi_type.startswith("tuple"):
        inner = ",".join(_abi_type(c) for c in param.get("components", []))
        return f"({inner}){abi_type[len('tuple'):]}"
    return abi_type


def _normalize_output(abi_type: str, value: Any) -> Any:
    if abi_type == "address":
        return to_checksum_address(value)
    if abi_type == "address[]":
        return [to_checksum_address(v) for v in value]
    return value


class ContractInterface:
    """Encodes calls and decodes results for one contract ABI."""

    def __init__(self, name: str, abi: List[Dict[str, Any]]):
        self.name = name
        self._functions: Dict[str, Dict[str, Any]] = {
            entry["name"]: entry for entry in abi if entry.get("type") == "function"
        }
        self._selectors: Dict[str, bytes] = {
            fn_name: function_abi_to_4byte_selector(entry) for fn_name, entry in self._functions.items()
        }

    def _function(self, method: str) -> Dict[str, Any]:
        try:
            return self._functions[method]
        except KeyError:
            raise ValueError(f"{self.name} has no method {method}")

    def input_types(self, method: str) -> List[str]:
        return [_abi_type(p) for p in self._function(method)["inputs"]]

    def output_types(self, method: str) -> List[str]:
        return [_abi_type(p) for p in self._function(method)["outputs"]]

    def is_payable(self, method: str) -> bool:
        return self._function(method).get("stateMutability") == "payable"

    def encode(self, method: str, args: Sequence[Any] = ()) -> str:
        """Return 0x-prefixed call data for ``method(args)``."""
        types = self.input_types(method)
        if len(types) != len(args):
            raise ValueError(f"{self.name}.{method} expects {len(types)} arguments, got {len(args)}")
        return to_hex(self._selectors[method] + encode(types, list(args)))

    def decode(self, method: str, data: bytes) -> Any:
        """Decode return data; single outputs are unwrapped, multiple outputs come back as a dict."""
        outputs = self._function(method)["outputs"]
        types = [_abi_type(p) for p in outputs]
        if not types:
            return None
        values = decode(types, data)
        values = [_normalize_output(t, v) for t, v in zip(types, values)]
        if len(values) == 1:
            return values[0]
        return {p["name"] or str(i): v for i, (p, v) in enumerate(zip(outputs, values))}


MARKETPLACE = ContractInterface("Marketplace", MARKETPLACE_ABI)
DAO = ContractInterface("RWADao", DAO_ABI)
TOKEN = ContractInterface("RWAToken", TOKEN_ABI)
NFT = ContractInterface("RWANFT", NFT_ABI)
PRICE_ORACLE = ContractInterface("PriceOracle", PRICE_ORACLE_ABI)
