# paygate/x402/networks.py
"""
Network families supported by the gateway and the facilitator.

Every network identifier belongs to exactly one family. Resolution is a
closed choice: an identifier outside these tables is rejected rather than
defaulted.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from paygate.core.exceptions import ValidationError


class NetworkFamily(str, Enum):
    """Families of networks, each needing its own kind of signer."""
    EVM = "evm"
    SVM = "svm"


@dataclass(frozen=True)
class NetworkInfo:
    family: NetworkFamily
    usdc: str
    rpc_url: str
    chain_id: Optional[int] = None


NETWORKS: Dict[str, NetworkInfo] = {
    "base": NetworkInfo(NetworkFamily.EVM, "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913", "https://mainnet.base.org", 8453),
    "base-sepolia": NetworkInfo(NetworkFamily.EVM, "0x036CbD53842c5426634e7929541eC2318f3dCF7e", "https://sepolia.base.org", 84532),
    "polygon": NetworkInfo(NetworkFamily.EVM, "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359", "https://polygon-rpc.com", 137),
    "polygon-amoy": NetworkInfo(NetworkFamily.EVM, "0x41E94Eb019C0762f9Bfcf9Fb1E58725BfB0e7582", "https://rpc-amoy.polygon.technology", 80002),
    "avalanche": NetworkInfo(NetworkFamily.EVM, "0xB97EF9Ef8734C71904D8002F8b6Bc66Dd9c48a6E", "https://api.avax.network/ext/bc/C/rpc", 43114),
    "avalanche-fuji": NetworkInfo(NetworkFamily.EVM, "0x5425890298aed601595a70AB815c96711a31Bc65", "https://api.avax-test.network/ext/bc/C/rpc", 43113),
    "solana": NetworkInfo(NetworkFamily.SVM, "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", "https://api.mainnet-beta.solana.com"),
    "solana-devnet": NetworkInfo(NetworkFamily.SVM, "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU", "https://api.devnet.solana.com"),
}


def get_network_info(network: Optional[str]) -> NetworkInfo:
    """
    Look up a network.

    Raises:
        ValidationError: if the network is not one of the supported identifiers
    """
    info = NETWORKS.get(network) if isinstance(network, str) else None
    if info is None:
        raise ValidationError(f"Unsupported network: {network}")
    return info


def resolve_network_family(network: Optional[str]) -> NetworkFamily:
    """Map a network identifier to its family, rejecting unknown identifiers."""
    return get_network_info(network).family


def usdc_asset(network: str) -> Optional[str]:
    """USDC contract address (EVM) or mint (SVM) for a network, if known."""
    info = NETWORKS.get(network)
    return info.usdc if info else None
