# paygate/facilitator/service.py
"""
Facilitator service: resolves the network family of a payment, picks the
mechanism holding that family's signer and runs verify or settle on it.
"""
import logging
from typing import Any, Dict, List, Optional

from paygate.core.config import Settings, parse_csv, parse_mapping
from paygate.core.exceptions import ValidationError
from paygate.facilitator.mechanisms import ExactEvmMechanism, ExactSvmMechanism, SchemeMechanism
from paygate.facilitator.signers import Signer, signers_from_settings
from paygate.x402.models import PaymentRequirements
from paygate.x402.networks import NetworkFamily, resolve_network_family

logger = logging.getLogger(__name__)

X402_VERSION = 1


class FacilitatorService:

    def __init__(
        self,
        signers: Dict[NetworkFamily, Signer],
        mechanisms: Dict[NetworkFamily, SchemeMechanism],
        networks: Dict[NetworkFamily, List[str]],
    ):
        self.signers = signers
        self.mechanisms = mechanisms
        self.networks = networks

    @classmethod
    def from_settings(cls, settings: Settings) -> "FacilitatorService":
        """Build signers and mechanisms once, for the families that have key material."""
        signers = signers_from_settings(settings)
        mechanisms: Dict[NetworkFamily, SchemeMechanism] = {}
        if NetworkFamily.EVM in signers:
            mechanisms[NetworkFamily.EVM] = ExactEvmMechanism(
                signers[NetworkFamily.EVM], rpc_urls=parse_mapping(settings.EVM_RPC_URLS)
            )
        if NetworkFamily.SVM in signers:
            mechanisms[NetworkFamily.SVM] = ExactSvmMechanism(
                signers[NetworkFamily.SVM], rpc_urls=parse_mapping(settings.SVM_RPC_URLS)
            )
        networks = {
            NetworkFamily.EVM: parse_csv(settings.FACILITATOR_EVM_NETWORKS),
            NetworkFamily.SVM: parse_csv(settings.FACILITATOR_SVM_NETWORKS),
        }
        for family, names in networks.items():
            for name in names:
                if resolve_network_family(name) is not family:
                    raise ValidationError(f"Network {name} is not a {family.value} network")
        return cls(signers, mechanisms, networks)

    def mechanism_for(self, network: str) -> SchemeMechanism:
        """
        Raises:
            ValidationError: unknown network, or no key material for its family
        """
        family = resolve_network_family(network)
        mechanism = self.mechanisms.get(family)
        if mechanism is None:
            raise ValidationError(f"No signer configured for {family.value} networks")
        return mechanism

    def verify(self, payload: Dict[str, Any], requirements: PaymentRequirements) -> Dict[str, Any]:
        result = self.mechanism_for(requirements.network).verify(payload, requirements)
        logger.info(f"verify on {requirements.network}: valid={result['isValid']} reason={result['invalidReason']}")
        return result

    def settle(self, payload: Dict[str, Any], requirements: PaymentRequirements) -> Dict[str, Any]:
        result = self.mechanism_for(requirements.network).settle(payload, requirements)
        logger.info(f"settle on {requirements.network}: success={result['success']} tx={result['transaction']}")
        return result

    def supported(self) -> Dict[str, Any]:
        """Payment kinds this facilitator can handle with its current key material."""
        kinds = []
        for family, signer in self.signers.items():
            extra: Optional[Dict[str, Any]] = None
            if family is NetworkFamily.SVM:
                extra = {"feePayer": signer.address}
            for network in self.networks.get(family, []):
                kind = {"x402Version": X402_VERSION, "scheme": "exact", "network": network}
                if extra is not None:
                    kind["extra"] = extra
                kinds.append(kind)
        return {"kinds": kinds}
