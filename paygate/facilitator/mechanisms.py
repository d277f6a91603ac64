# paygate/facilitator/mechanisms.py
"""
"exact" scheme mechanisms used by the facilitator.

- EVM: the payload is an EIP-3009 transferWithAuthorization signed by the
  payer. Verification recovers the signer from the EIP-712 typed data and
  checks recipient, amount, validity window and balance; settlement submits
  the authorization to the token contract from the facilitator account.
- SVM: the payload is a partially signed transfer_checked transaction whose
  fee payer is the facilitator. Verification checks fee payer, mint,
  destination and amount and simulates the co-signed transaction;
  settlement sends it.

Results use the facilitator wire shapes:
verify -> {"isValid", "invalidReason", "payer"}
settle -> {"success", "errorReason", "transaction", "network", "payer"}
"""
import base64
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import Web3Exception
from eth_account import Account
from eth_account.messages import encode_typed_data

from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client as SolanaClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

from paygate.facilitator.signers import EvmSigner, SvmSigner
from paygate.x402.models import PaymentRequirements
from paygate.x402.networks import get_network_info

logger = logging.getLogger(__name__)

# Authorizations must stay valid for at least this long after verification
VALID_BEFORE_MARGIN_SECONDS = 6

TRANSFER_WITH_AUTHORIZATION_ABI = [
    {
        "name": "transferWithAuthorization",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "from", "type": "address"},
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
            {"name": "validAfter", "type": "uint256"},
            {"name": "validBefore", "type": "uint256"},
            {"name": "nonce", "type": "bytes32"},
            {"name": "v", "type": "uint8"},
            {"name": "r", "type": "bytes32"},
            {"name": "s", "type": "bytes32"},
        ],
        "outputs": [],
    },
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

TRANSFER_CHECKED_INSTRUCTION = 12


def invalid(reason: str, payer: Optional[str] = None) -> Dict[str, Any]:
    return {"isValid": False, "invalidReason": reason, "payer": payer}


def valid(payer: Optional[str]) -> Dict[str, Any]:
    return {"isValid": True, "invalidReason": None, "payer": payer}


def settle_failure(reason: str, network: str, payer: Optional[str] = None) -> Dict[str, Any]:
    return {"success": False, "errorReason": reason, "transaction": "", "network": network, "payer": payer}


class SchemeMechanism(ABC):
    """Verify/settle for one network family."""

    def __init__(self, rpc_urls: Optional[Dict[str, str]] = None):
        self.rpc_urls = rpc_urls or {}

    def rpc_url(self, network: str) -> str:
        return self.rpc_urls.get(network) or get_network_info(network).rpc_url

    def check_common(self, payload: Dict[str, Any], requirements: PaymentRequirements) -> Optional[str]:
        """Reason the payload cannot match the requirements at all, or None."""
        if requirements.scheme != "exact" or payload.get("scheme", "exact") != "exact":
            return "unsupported_scheme"
        if payload.get("network", requirements.network) != requirements.network:
            return "invalid_network"
        return None

    @abstractmethod
    def verify(self, payload: Dict[str, Any], requirements: PaymentRequirements) -> Dict[str, Any]:
        """Check a payment without moving funds."""

    @abstractmethod
    def settle(self, payload: Dict[str, Any], requirements: PaymentRequirements) -> Dict[str, Any]:
        """Verify and execute a payment."""


class ExactEvmMechanism(SchemeMechanism):

    def __init__(self, signer: EvmSigner, rpc_urls: Optional[Dict[str, str]] = None, receipt_timeout: int = 120):
        super().__init__(rpc_urls)
        self.signer = signer
        self.receipt_timeout = receipt_timeout
        self._clients: Dict[str, Web3] = {}

    def web3(self, network: str) -> Web3:
        if network not in self._clients:
            self._clients[network] = Web3(Web3.HTTPProvider(self.rpc_url(network)))
        return self._clients[network]

    def balance_of(self, network: str, asset: str, owner: str) -> int:
        contract = self.web3(network).eth.contract(
            address=Web3.to_checksum_address(asset), abi=TRANSFER_WITH_AUTHORIZATION_ABI
        )
        return contract.functions.balanceOf(Web3.to_checksum_address(owner)).call()

    @staticmethod
    def authorization_typed_data(
        authorization: Dict[str, Any],
        requirements: PaymentRequirements,
        chain_id: int,
    ) -> Dict[str, Any]:
        extra = requirements.extra or {}
        return {
            "types": {
                "EIP712Domain": [
                    {"name": "name", "type": "string"},
                    {"name": "version", "type": "string"},
                    {"name": "chainId", "type": "uint256"},
                    {"name": "verifyingContract", "type": "address"},
                ],
                "TransferWithAuthorization": [
                    {"name": "from", "type": "address"},
                    {"name": "to", "type": "address"},
                    {"name": "value", "type": "uint256"},
                    {"name": "validAfter", "type": "uint256"},
                    {"name": "validBefore", "type": "uint256"},
                    {"name": "nonce", "type": "bytes32"},
                ],
            },
            "primaryType": "TransferWithAuthorization",
            "domain": {
                "name": extra.get("name", "USDC"),
                "version": extra.get("version", "2"),
                "chainId": chain_id,
                "verifyingContract": Web3.to_checksum_address(requirements.asset),
            },
            "message": {
                "from": Web3.to_checksum_address(authorization["from"]),
                "to": Web3.to_checksum_address(authorization["to"]),
                "value": int(authorization["value"]),
                "validAfter": int(authorization["validAfter"]),
                "validBefore": int(authorization["validBefore"]),
                "nonce": authorization["nonce"],
            },
        }

    def recover_authorizer(self, authorization: Dict[str, Any], signature: str, requirements: PaymentRequirements) -> str:
        chain_id = get_network_info(requirements.network).chain_id
        signable = encode_typed_data(full_message=self.authorization_typed_data(authorization, requirements, chain_id))
        return Account.recover_message(signable, signature=signature)

    def verify(self, payload: Dict[str, Any], requirements: PaymentRequirements) -> Dict[str, Any]:
        reason = self.check_common(payload, requirements)
        if reason:
            return invalid(reason)

        exact = payload.get("payload") or {}
        authorization = exact.get("authorization") or {}
        signature = exact.get("signature")
        payer = authorization.get("from")

        try:
            value = int(authorization["value"])
            valid_after = int(authorization["validAfter"])
            valid_before = int(authorization["validBefore"])
            recipient = str(authorization["to"])
        except (KeyError, TypeError, ValueError):
            return invalid("invalid_exact_evm_payload", payer)
        if not signature or not isinstance(payer, str) or not payer:
            return invalid("invalid_exact_evm_payload", payer)

        if recipient.lower() != requirements.payTo.lower():
            return invalid("invalid_exact_evm_payload_recipient_mismatch", payer)
        if value < int(requirements.maxAmountRequired):
            return invalid("invalid_exact_evm_payload_authorization_value", payer)

        now = int(time.time())
        if valid_before < now + VALID_BEFORE_MARGIN_SECONDS:
            return invalid("invalid_exact_evm_payload_authorization_valid_before", payer)
        if valid_after > now:
            return invalid("invalid_exact_evm_payload_authorization_valid_after", payer)

        try:
            recovered = self.recover_authorizer(authorization, signature, requirements)
        except (ValueError, TypeError) as e:
            logger.warning(f"Could not recover EIP-3009 signer: {e}")
            return invalid("invalid_exact_evm_payload_signature", payer)
        if recovered.lower() != payer.lower():
            return invalid("invalid_exact_evm_payload_signature", payer)

        try:
            balance = self.balance_of(requirements.network, requirements.asset, payer)
        except (Web3Exception, RequestException, ValueError) as e:
            logger.error(f"Balance lookup failed on {requirements.network}: {e}")
            return invalid("unexpected_verify_error", payer)
        if balance < value:
            return invalid("insufficient_funds", payer)

        return valid(payer)

    def settle(self, payload: Dict[str, Any], requirements: PaymentRequirements) -> Dict[str, Any]:
        network = requirements.network
        verification = self.verify(payload, requirements)
        if not verification["isValid"]:
            return settle_failure(verification["invalidReason"], network, verification["payer"])

        exact = payload["payload"]
        authorization = exact["authorization"]
        payer = authorization["from"]
        signature = bytes.fromhex(exact["signature"].removeprefix("0x"))
        v = signature[64] if signature[64] >= 27 else signature[64] + 27

        try:
            w3 = self.web3(network)
            contract = w3.eth.contract(
                address=Web3.to_checksum_address(requirements.asset), abi=TRANSFER_WITH_AUTHORIZATION_ABI
            )
            tx = contract.functions.transferWithAuthorization(
                Web3.to_checksum_address(payer),
                Web3.to_checksum_address(authorization["to"]),
                int(authorization["value"]),
                int(authorization["validAfter"]),
                int(authorization["validBefore"]),
                bytes.fromhex(authorization["nonce"].removeprefix("0x")),
                v,
                signature[:32],
                signature[32:64],
            ).build_transaction({
                "from": self.signer.address,
                "nonce": w3.eth.get_transaction_count(self.signer.address),
                "chainId": get_network_info(network).chain_id,
            })
            signed = self.signer.account.sign_transaction(tx)
            tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        except (Web3Exception, RequestException, ValueError) as e:
            logger.error(f"EVM settlement on {network} failed: {e}")
            return settle_failure("unexpected_settle_error", network, payer)

        transaction = Web3.to_hex(tx_hash)
        if receipt["status"] != 1:
            logger.warning(f"EVM settlement transaction {transaction} reverted")
            return settle_failure("invalid_transaction_state", network, payer)

        logger.info(f"EVM settlement on {network}: {transaction}")
        return {"success": True, "errorReason": None, "transaction": transaction, "network": network, "payer": payer}


class ExactSvmMechanism(SchemeMechanism):

    def __init__(self, signer: SvmSigner, rpc_urls: Optional[Dict[str, str]] = None):
        super().__init__(rpc_urls)
        self.signer = signer
        self._clients: Dict[str, SolanaClient] = {}

    def client(self, network: str) -> SolanaClient:
        if network not in self._clients:
            self._clients[network] = SolanaClient(self.rpc_url(network))
        return self._clients[network]

    def cosign(self, tx: VersionedTransaction) -> VersionedTransaction:
        """Add the fee payer signature (slot 0), keeping the payer's signature."""
        message = tx.message
        # Versioned (v0) messages are signed with their 0x80 prefix
        signature = self.signer.keypair.sign_message(bytes([0x80]) + bytes(message))
        signatures = list(tx.signatures)
        signatures[0] = signature
        return VersionedTransaction.populate(message, signatures)

    def find_transfer(self, tx: VersionedTransaction) -> Optional[Dict[str, Any]]:
        """Locate the transfer_checked instruction: source, mint, destination, authority, amount."""
        keys = tx.message.account_keys
        for instruction in tx.message.instructions:
            program = keys[instruction.program_id_index]
            data = bytes(instruction.data)
            if program != TOKEN_PROGRAM_ID or not data or data[0] != TRANSFER_CHECKED_INSTRUCTION:
                continue
            accounts = list(instruction.accounts)
            if len(accounts) < 4 or len(data) < 10:
                return None
            return {
                "mint": keys[accounts[1]],
                "destination": keys[accounts[2]],
                "authority": keys[accounts[3]],
                "amount": int.from_bytes(data[1:9], "little"),
            }
        return None

    def _decode(self, payload: Dict[str, Any]) -> VersionedTransaction:
        encoded = (payload.get("payload") or {}).get("transaction")
        if not encoded:
            raise ValueError("transaction missing from payload")
        return VersionedTransaction.from_bytes(base64.b64decode(encoded))

    def _check(self, payload: Dict[str, Any], requirements: PaymentRequirements):
        """Return (cosigned transaction, payer, None) or (None, payer, reason)."""
        reason = self.check_common(payload, requirements)
        if reason:
            return None, None, reason

        try:
            tx = self._decode(payload)
        except ValueError as e:
            logger.warning(f"Undecodable SVM transaction: {e}")
            return None, None, "invalid_exact_svm_payload_transaction"

        keys = tx.message.account_keys
        if not keys or str(keys[0]) != self.signer.address:
            return None, None, "invalid_exact_svm_payload_transaction_fee_payer"

        transfer = self.find_transfer(tx)
        if transfer is None:
            return None, None, "invalid_exact_svm_payload_transaction_instructions"
        payer = str(transfer["authority"])

        mint = Pubkey.from_string(requirements.asset)
        expected_destination = get_associated_token_address(Pubkey.from_string(requirements.payTo), mint)
        if transfer["mint"] != mint:
            return None, payer, "invalid_exact_svm_payload_mint_mismatch"
        if transfer["destination"] != expected_destination:
            return None, payer, "invalid_exact_svm_payload_recipient_mismatch"
        if transfer["amount"] < int(requirements.maxAmountRequired):
            return None, payer, "invalid_exact_svm_payload_amount_insufficient"

        return self.cosign(tx), payer, None

    def verify(self, payload: Dict[str, Any], requirements: PaymentRequirements) -> Dict[str, Any]:
        tx, payer, reason = self._check(payload, requirements)
        if reason:
            return invalid(reason, payer)

        try:
            result = self.client(requirements.network).simulate_transaction(tx, sig_verify=True, commitment=Confirmed)
        except (SolanaRpcException, RPCException) as e:
            logger.error(f"SVM simulation on {requirements.network} failed: {e}")
            return invalid("unexpected_verify_error", payer)
        if result.value.err:
            return invalid("invalid_exact_svm_payload_transaction_simulation_failed", payer)
        return valid(payer)

    def settle(self, payload: Dict[str, Any], requirements: PaymentRequirements) -> Dict[str, Any]:
        network = requirements.network
        verification = self.verify(payload, requirements)
        if not verification["isValid"]:
            return settle_failure(verification["invalidReason"], network, verification["payer"])

        tx, payer, _ = self._check(payload, requirements)
        try:
            client = self.client(network)
            signature = client.send_transaction(tx).value
            client.confirm_transaction(signature, commitment=Confirmed)
        except (SolanaRpcException, RPCException) as e:
            logger.error(f"SVM settlement on {network} failed: {e}")
            return settle_failure("unexpected_settle_error", network, payer)

        logger.info(f"SVM settlement on {network}: {signature}")
        return {"success": True, "errorReason": None, "transaction": str(signature), "network": network, "payer": payer}
