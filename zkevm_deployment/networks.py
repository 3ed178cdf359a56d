"""
ape-backed chain access: the network being deployed to, contracts bound from compiled
artifacts, and the deployer account sending every transaction.
"""
import os
import typing
from typing import Any, Dict, Optional

from ape import accounts, networks
from ape.api import AccountAPI
from ape.cli.choices import select_account
from ape.contracts import ContractContainer, ContractInstance
from eth_typing import ChecksumAddress
from eth_utils import encode_hex, to_checksum_address
from ethpm_types import ContractType
from hexbytes import HexBytes

from zkevm_deployment.confirm import _continue
from zkevm_deployment.contracts import ContractArtifact
from zkevm_deployment.interfaces import ContractHandle, Network, Transactor
from zkevm_deployment.params import GasSettings

LOCAL_NETWORKS = ("local", "hardhat", "anvil", "foundry")


def is_local_network() -> bool:
    return networks.provider.network.name in LOCAL_NETWORKS


def check_etherscan_plugin() -> None:
    """
    Checks that the ape-etherscan plugin is installed and that
    the appropriate API key environment variable is set.
    """
    if is_local_network():
        # unnecessary for local deployment
        return
    try:
        from ape_etherscan.utils import API_KEY_ENV_KEY_MAP
    except ImportError:
        raise ImportError("Please install the ape-etherscan plugin to use this script.")
    ecosystem_name = networks.provider.network.ecosystem.name
    explorer_envvar = API_KEY_ENV_KEY_MAP.get(ecosystem_name)
    api_key = os.environ.get(explorer_envvar)
    if not api_key:
        raise ValueError(f"{explorer_envvar} is not set.")


def check_infura_plugin() -> None:
    """Checks that the ape-infura plugin is installed."""
    if is_local_network():
        return  # unnecessary for local deployment
    if networks.provider.name != "infura":
        return  # unnecessary when using a provider different than infura
    try:
        from ape_infura.provider import _ENVIRONMENT_VARIABLE_NAMES
    except ImportError:
        raise ImportError("Please install the ape-infura plugin to use this script.")
    for envvar in _ENVIRONMENT_VARIABLE_NAMES:
        api_key = os.environ.get(envvar)
        if api_key:
            break
    else:
        raise ValueError(
            f"No Infura API key found in "
            f"environment variables: {', '.join(_ENVIRONMENT_VARIABLE_NAMES)}"
        )


def check_plugins(verify: bool = False) -> None:
    print("Checking plugins...")
    if verify:
        check_etherscan_plugin()
    check_infura_plugin()


def contract_container(artifact: ContractArtifact) -> ContractContainer:
    """An ape contract container for a compiled artifact outside of the ape project."""
    contract_type = ContractType.model_validate(
        {
            "contractName": artifact.name,
            "abi": artifact.abi,
            "deploymentBytecode": {"bytecode": encode_hex(artifact.bytecode)},
            "runtimeBytecode": {"bytecode": encode_hex(artifact.deployed_bytecode)},
        }
    )
    return ContractContainer(contract_type)


def reference_code_from(network_choice: str):
    """
    Runtime code of an artifact deployed with the given constructor arguments on a
    throwaway network, for contracts whose runtime code embeds immutables.
    """

    def reference_code(artifact: ContractArtifact, args) -> bytes:
        with networks.parse_network_choice(network_choice):
            account = accounts.test_accounts[0]
            instance = account.deploy(contract_container(artifact), *args)
            return bytes(HexBytes(networks.provider.get_code(instance.address)))

    return reference_code


def publish_contracts(contracts: typing.List[ContractHandle]) -> None:
    explorer = networks.provider.network.explorer
    for contract in contracts:
        print(f"(i) Verifying {contract.artifact.name}...")
        explorer.publish_contract(contract.address)


class ApeContract(ContractHandle):
    def __init__(
        self,
        artifact: ContractArtifact,
        instance: ContractInstance,
        block_number: Optional[int] = None,
    ):
        self.artifact = artifact
        self.instance = instance
        self.address = to_checksum_address(instance.address)
        self.block_number = block_number

    def __repr__(self) -> str:
        return f"<{self.artifact.name} {self.address}>"

    def call(self, method_name: str, *args) -> Any:
        return self.instance.call_view_method(method_name, *args)


class ApeNetwork(Network):
    """The network ape is connected to."""

    @property
    def name(self) -> str:
        return networks.provider.network.name

    @property
    def chain_id(self) -> int:
        return networks.provider.chain_id

    def get_transaction_count(self, address: ChecksumAddress) -> int:
        return networks.provider.get_nonce(address)

    def get_code(self, address: ChecksumAddress) -> bytes:
        return bytes(HexBytes(networks.provider.get_code(address)))

    def get_storage(self, address: ChecksumAddress, slot: int) -> bytes:
        return bytes(HexBytes(networks.provider.get_storage(address, slot)))

    def at(self, artifact: ContractArtifact, address: ChecksumAddress) -> ApeContract:
        instance = contract_container(artifact).at(address)
        return ApeContract(artifact=artifact, instance=instance)


class ApeTransactor(Transactor):
    """
    Represents an ape account plus validated/annotated transaction execution.
    """

    def __init__(
        self,
        account: typing.Optional[AccountAPI] = None,
        autosign: bool = False,
        gas: Optional[GasSettings] = None,
    ):
        if account is None:
            self._account = select_account()
        else:
            self._account = account
        if autosign:
            print("WARNING: Autosign is enabled. Transactions will be signed automatically.")
        self._autosign = autosign
        self._account.set_autosign(autosign)
        self.gas = gas or GasSettings()

    @property
    def address(self) -> ChecksumAddress:
        return to_checksum_address(self._account.address)

    def get_account(self) -> AccountAPI:
        """Returns the transactor account."""
        return self._account

    def _get_kwargs(self, gas_limit: Optional[int] = None) -> Dict[str, Any]:
        """Fee and gas overrides for the next transaction."""
        kwargs = dict()
        if gas_limit:
            kwargs["gas_limit"] = gas_limit
        if is_local_network():
            # local providers price transactions themselves
            return kwargs

        if self.gas.hardcoded:
            kwargs["max_fee"] = f"{self.gas.max_fee_per_gas} gwei"
            kwargs["max_priority_fee"] = f"{self.gas.max_priority_fee_per_gas} gwei"
        elif self.gas.multiplier_gas:
            provider = networks.provider
            max_fee = provider.base_fee * 2 + provider.priority_fee
            kwargs["max_fee"] = max_fee * self.gas.multiplier_gas // 1000
            kwargs["max_priority_fee"] = provider.priority_fee * self.gas.multiplier_gas // 1000
        return kwargs

    def _confirm(self, message: str) -> None:
        print(message)
        if not self._autosign:
            _continue()

    def deploy(self, artifact: ContractArtifact, *args) -> ApeContract:
        artifact.encode_constructor(*args)
        if args:
            pretty_args = "\n\t".join(str(arg) for arg in args)
            self._confirm(f"\nDeploying {artifact.name} with arguments:\n\t{pretty_args}")
        else:
            self._confirm(f"\nDeploying {artifact.name} with no arguments")

        instance = self._account.deploy(contract_container(artifact), *args, **self._get_kwargs())
        block_number = instance.receipt.block_number
        return ApeContract(artifact=artifact, instance=instance, block_number=block_number)

    def transact(
        self,
        contract: ContractHandle,
        method_name: str,
        *args,
        gas_limit: Optional[int] = None,
    ) -> int:
        # fails early on arguments that do not match the ABI
        contract.artifact.encode_call(method_name, *args)
        pretty_args = "\n\t".join(str(arg) for arg in args) or "no arguments"
        self._confirm(
            f"\nTransacting {contract.artifact.name}[{contract.address[:10]}].{method_name} "
            f"with arguments:\n\t{pretty_args}"
        )

        instance = contract.instance if isinstance(contract, ApeContract) else None
        if instance is None:
            instance = contract_container(contract.artifact).at(contract.address)
        receipt = instance.invoke_transaction(
            method_name, *args, sender=self._account, **self._get_kwargs(gas_limit)
        )
        return receipt.block_number
