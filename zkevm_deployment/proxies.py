from typing import NamedTuple, Optional

from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address

from zkevm_deployment.constants import (
    EIP1967_ADMIN_SLOT,
    EIP1967_IMPLEMENTATION_SLOT,
    TRANSPARENT_PROXY,
)
from zkevm_deployment.contracts import ContractRegistry
from zkevm_deployment.interfaces import ContractHandle, Network, Transactor
from zkevm_deployment.utils import DeploymentConsistencyError


class ProxyDeployment(NamedTuple):
    proxy: ContractHandle
    implementation: ChecksumAddress
    block_number: Optional[int]


def _read_address_slot(network: Network, address: str, slot: int) -> ChecksumAddress:
    value = bytes(network.get_storage(address, slot)).rjust(32, b"\x00")
    return to_checksum_address(value[-20:])


def get_admin_address(network: Network, proxy_address: str) -> ChecksumAddress:
    return _read_address_slot(network, proxy_address, EIP1967_ADMIN_SLOT)


def get_implementation_address(network: Network, proxy_address: str) -> ChecksumAddress:
    return _read_address_slot(network, proxy_address, EIP1967_IMPLEMENTATION_SLOT)


def deploy_proxy(
    contracts: ContractRegistry,
    network: Network,
    transactor: Transactor,
    contract_name: str,
    implementation: ChecksumAddress,
    proxy_admin: ChecksumAddress,
    initializer_data: bytes = b"",
) -> ProxyDeployment:
    """
    Deploys a transparent proxy administered by `proxy_admin` in front of an already
    deployed `contract_name` implementation. Spends exactly one of the transactor's nonces.
    """
    proxy = transactor.deploy(
        contracts.get(TRANSPARENT_PROXY),
        implementation,
        proxy_admin,
        bytes(initializer_data),
    )

    admin = get_admin_address(network, proxy.address)
    if admin != to_checksum_address(proxy_admin):
        raise DeploymentConsistencyError(
            f"{contract_name} proxy at {proxy.address} is administered by {admin}, "
            f"expected {proxy_admin}"
        )

    wrapped = network.at(contracts.get(contract_name), proxy.address)
    return ProxyDeployment(
        proxy=wrapped,
        implementation=to_checksum_address(implementation),
        block_number=proxy.block_number,
    )

