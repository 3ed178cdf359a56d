from typing import NamedTuple, Optional

from eth_typing import ChecksumAddress

from zkevm_deployment.addresses import _to_salt, compute_create2_address
from zkevm_deployment.interfaces import ContractHandle, Network, Transactor
from zkevm_deployment.utils import DeploymentConsistencyError


class Create2Result(NamedTuple):
    address: ChecksumAddress
    deployed: bool


def create2_deployment(
    deployer_contract: ContractHandle,
    salt,
    init_code: bytes,
    call_data: Optional[bytes],
    transactor: Transactor,
    network: Network,
    gas_limit: Optional[int] = None,
) -> Create2Result:
    """
    Deploys `init_code` through the deployer contract at its salt-derived address,
    optionally calling the new contract with `call_data` in the same transaction.
    Code already present at that address is left untouched.
    """
    salt = _to_salt(salt)
    address = compute_create2_address(deployer_contract.address, salt, init_code)
    if network.has_code(address):
        return Create2Result(address=address, deployed=False)

    amount = 0
    if call_data:
        transactor.transact(
            deployer_contract,
            "deployDeterministicAndCall",
            amount,
            salt,
            bytes(init_code),
            bytes(call_data),
            gas_limit=gas_limit,
        )
    else:
        transactor.transact(
            deployer_contract,
            "deployDeterministic",
            amount,
            salt,
            bytes(init_code),
            gas_limit=gas_limit,
        )

    if not network.has_code(address):
        raise DeploymentConsistencyError(
            f"No code at {address} after deterministic deployment "
            f"through {deployer_contract.address}"
        )
    return Create2Result(address=address, deployed=True)
