import rlp
from eth_typing import ChecksumAddress
from eth_utils import keccak, to_bytes, to_canonical_address, to_checksum_address

from zkevm_deployment.interfaces import Network
from zkevm_deployment.utils import DeploymentConfigError


def compute_contract_address(sender: str, nonce: int) -> ChecksumAddress:
    """Address of the contract created by `sender` with the transaction of the given nonce."""
    encoded = rlp.encode([to_canonical_address(sender), nonce])
    return to_checksum_address(keccak(encoded)[12:])


def compute_create2_address(deployer: str, salt: bytes, init_code: bytes) -> ChecksumAddress:
    """keccak256(0xff ++ deployer ++ salt ++ keccak256(init_code))[12:]"""
    salt = _to_salt(salt)
    preimage = b"\xff" + to_canonical_address(deployer) + salt + keccak(init_code)
    return to_checksum_address(keccak(preimage)[12:])


def precompute_contract_address(
    network: Network, account: ChecksumAddress, offset: int = 0
) -> ChecksumAddress:
    """
    Predicts the address of the contract created by the account's transaction `offset`
    positions after its next one. Only valid while nobody else spends the account's nonces.
    """
    if offset < 0:
        raise ValueError(f"Nonce offset must be non-negative, got {offset}")
    nonce = network.get_transaction_count(account) + offset
    return compute_contract_address(account, nonce)


def _to_salt(salt) -> bytes:
    if isinstance(salt, str):
        salt = to_bytes(hexstr=salt)
    if not isinstance(salt, (bytes, bytearray)):
        raise DeploymentConfigError(f"Salt must be a 32 bytes hex string, got {salt!r}")
    salt = bytes(salt)
    if len(salt) != 32:
        raise DeploymentConfigError(f"Salt must be 32 bytes, got {len(salt)}")
    return salt
