"""
Timelock-gated upgrades.

New implementations are deployed right away; switching a proxy over to them is only
prepared here, as the call data of a timelock `schedule` and a later `execute`, both
targeting the proxy admin that the timelock owns.
"""
import time
from pathlib import Path
from typing import List, NamedTuple

from eth_abi import encode
from eth_typing import ChecksumAddress
from eth_utils import encode_hex, keccak, to_checksum_address

from zkevm_deployment.constants import EMPTY_BYTES32, PROXY_ADMIN, TIMELOCK, UPGRADE_DIR
from zkevm_deployment.contracts import ContractRegistry
from zkevm_deployment.interfaces import Network, Transactor
from zkevm_deployment.manifest import UpgradesManifest
from zkevm_deployment.params import Upgrade, UpgradeParameters
from zkevm_deployment.proxies import get_admin_address
from zkevm_deployment.utils import DeploymentConsistencyError, _write_json


class TimelockOperation(NamedTuple):
    id: bytes
    target: ChecksumAddress
    value: int
    data: bytes
    predecessor: bytes
    salt: bytes


class UpgradeProposal(NamedTuple):
    contract_name: str
    proxy: ChecksumAddress
    implementation: ChecksumAddress
    operation: TimelockOperation
    schedule_data: bytes
    execute_data: bytes


def hash_operation(target: str, value: int, data: bytes, predecessor: bytes, salt: bytes) -> bytes:
    """Same id the timelock computes on-chain for a single-call operation."""
    encoded = encode(
        ["address", "uint256", "bytes", "bytes32", "bytes32"],
        [to_checksum_address(target), value, bytes(data), bytes(predecessor), bytes(salt)],
    )
    return keccak(encoded)


def generate_operation(
    target: str,
    value: int,
    data: bytes,
    predecessor: bytes = EMPTY_BYTES32,
    salt: bytes = EMPTY_BYTES32,
) -> TimelockOperation:
    return TimelockOperation(
        id=hash_operation(target, value, data, predecessor, salt),
        target=to_checksum_address(target),
        value=value,
        data=bytes(data),
        predecessor=bytes(predecessor),
        salt=bytes(salt),
    )


def encode_schedule(contracts: ContractRegistry, operation: TimelockOperation, delay: int) -> bytes:
    return contracts.get(TIMELOCK).encode_call(
        "schedule",
        operation.target,
        operation.value,
        operation.data,
        operation.predecessor,
        operation.salt,
        delay,
    )


def encode_execute(contracts: ContractRegistry, operation: TimelockOperation) -> bytes:
    return contracts.get(TIMELOCK).encode_call(
        "execute",
        operation.target,
        operation.value,
        operation.data,
        operation.predecessor,
        operation.salt,
    )


def upgrade_call_data(
    contracts: ContractRegistry, upgrade: Upgrade, implementation: ChecksumAddress
) -> bytes:
    """The proxy admin call switching the proxy to its new implementation."""
    proxy_admin = contracts.get(PROXY_ADMIN)
    if upgrade.call_after_upgrade:
        call = upgrade.call_after_upgrade
        data = contracts.get(upgrade.contract_name).encode_call(call.function_name, *call.arguments)
        return proxy_admin.encode_call("upgradeAndCall", upgrade.address, implementation, data)
    return proxy_admin.encode_call("upgrade", upgrade.address, implementation)


def propose_upgrades(
    parameters: UpgradeParameters,
    contracts: ContractRegistry,
    network: Network,
    transactor: Transactor,
    manifest: UpgradesManifest,
) -> List[UpgradeProposal]:
    """Deploys every new implementation and returns the timelock operations to apply them."""
    contracts.require([PROXY_ADMIN, TIMELOCK])
    contracts.require(upgrade.contract_name for upgrade in parameters.upgrades)
    if not manifest.admin:
        raise DeploymentConsistencyError("Upgrades manifest does not record a proxy admin")

    proposals = list()
    for upgrade in parameters.upgrades:
        if manifest.get_proxy(upgrade.address) is None:
            raise DeploymentConsistencyError(
                f"{upgrade.contract_name} proxy {upgrade.address} is not in the upgrades manifest"
            )
        admin = get_admin_address(network, upgrade.address)
        if admin != manifest.admin:
            raise DeploymentConsistencyError(
                f"{upgrade.contract_name} proxy {upgrade.address} is administered by {admin}, "
                f"not by the proxy admin {manifest.admin}"
            )

        constructor_args = upgrade.constructor_args or []
        implementation = transactor.deploy(contracts.get(upgrade.contract_name), *constructor_args)
        implementation_address = to_checksum_address(implementation.address)
        print(
            f"(i) New {upgrade.contract_name} implementation deployed to {implementation_address}"
        )

        operation = generate_operation(
            target=manifest.admin,
            value=0,
            data=upgrade_call_data(contracts, upgrade, implementation_address),
            predecessor=EMPTY_BYTES32,
            salt=parameters.timelock_salt,
        )
        proposals.append(
            UpgradeProposal(
                contract_name=upgrade.contract_name,
                proxy=upgrade.address,
                implementation=implementation_address,
                operation=operation,
                schedule_data=encode_schedule(contracts, operation, parameters.timelock_min_delay),
                execute_data=encode_execute(contracts, operation),
            )
        )
    return proposals


def upgrade_output_filepath(directory: Path = UPGRADE_DIR) -> Path:
    return Path(directory) / f"upgrade_output_{int(time.time())}.json"


def write_upgrade_output(proposals: List[UpgradeProposal], filepath: Path) -> Path:
    output = [
        {
            "contractName": proposal.contract_name,
            "proxyAddress": proposal.proxy,
            "implementationAddress": proposal.implementation,
            "operationId": encode_hex(proposal.operation.id),
            "scheduleData": encode_hex(proposal.schedule_data),
            "executeData": encode_hex(proposal.execute_data),
        }
        for proposal in proposals
    ]
    return _write_json(output, filepath)
