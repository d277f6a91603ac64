# paygate/facilitator/signers.py
"""
Facilitator signers, one per network family.

Signers are built once from operator key material when the facilitator
starts and reused for every request. A family without key material has no
signer and is therefore unavailable.
"""
import logging
from typing import Dict, Optional, Union

from eth_account import Account
from eth_account.signers.local import LocalAccount
from solders.keypair import Keypair

from paygate.core.config import Settings
from paygate.core.exceptions import ValidationError
from paygate.x402.networks import NetworkFamily

logger = logging.getLogger(__name__)


class EvmSigner:
    """EVM signer backed by an eth_account LocalAccount."""

    family = NetworkFamily.EVM

    def __init__(self, account: LocalAccount):
        self.account = account

    @property
    def address(self) -> str:
        return self.account.address

    @classmethod
    def from_private_key(cls, private_key: str) -> "EvmSigner":
        try:
            return cls(Account.from_key(private_key))
        except (ValueError, TypeError) as e:
            raise ValidationError(f"Invalid EVM private key: {e}")

    def __repr__(self) -> str:
        return f"EvmSigner({self.address})"


class SvmSigner:
    """Solana fee-payer signer backed by a solders Keypair."""

    family = NetworkFamily.SVM

    def __init__(self, keypair: Keypair):
        self.keypair = keypair

    @property
    def address(self) -> str:
        return str(self.keypair.pubkey())

    @classmethod
    def from_private_key(cls, private_key: str) -> "SvmSigner":
        """Build from a base58-encoded 64-byte secret key."""
        try:
            return cls(Keypair.from_base58_string(private_key))
        except ValueError as e:
            raise ValidationError(f"Invalid SVM private key: {e}")

    def __repr__(self) -> str:
        return f"SvmSigner({self.address})"


Signer = Union[EvmSigner, SvmSigner]


def build_signers(
    evm_private_key: Optional[str],
    svm_private_key: Optional[str],
) -> Dict[NetworkFamily, Signer]:
    """Construct a signer for every family that has key material."""
    signers: Dict[NetworkFamily, Signer] = {}
    if evm_private_key:
        signers[NetworkFamily.EVM] = EvmSigner.from_private_key(evm_private_key)
        logger.info(f"Loaded EVM signer {signers[NetworkFamily.EVM].address}")
    if svm_private_key:
        signers[NetworkFamily.SVM] = SvmSigner.from_private_key(svm_private_key)
        logger.info(f"Loaded SVM signer {signers[NetworkFamily.SVM].address}")
    return signers


def signers_from_settings(settings: Settings) -> Dict[NetworkFamily, Signer]:
    return build_signers(settings.EVM_PRIVATE_KEY, settings.SVM_PRIVATE_KEY)
