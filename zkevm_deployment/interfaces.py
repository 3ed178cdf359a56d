from abc import ABC, abstractmethod
from typing import Any, Optional

from eth_typing import ChecksumAddress

from zkevm_deployment.contracts import ContractArtifact


class ContractHandle(ABC):
    """A deployed contract the deployment can read from."""

    address: ChecksumAddress
    artifact: ContractArtifact

    # block the contract was deployed in, when deployed during this session
    block_number: Optional[int] = None

    @abstractmethod
    def call(self, method_name: str, *args) -> Any:
        """Calls a view function."""
        raise NotImplementedError


class Network(ABC):
    """Read access to the chain being deployed to."""

    name: str
    chain_id: int

    @abstractmethod
    def get_transaction_count(self, address: ChecksumAddress) -> int:
        raise NotImplementedError

    @abstractmethod
    def get_code(self, address: ChecksumAddress) -> bytes:
        raise NotImplementedError

    @abstractmethod
    def get_storage(self, address: ChecksumAddress, slot: int) -> bytes:
        raise NotImplementedError

    @abstractmethod
    def at(self, artifact: ContractArtifact, address: ChecksumAddress) -> ContractHandle:
        """Binds an artifact to an existing address."""
        raise NotImplementedError

    def has_code(self, address: ChecksumAddress) -> bool:
        return len(self.get_code(address)) > 0


class Transactor(ABC):
    """An account able to deploy contracts and send transactions."""

    address: ChecksumAddress

    @abstractmethod
    def deploy(self, artifact: ContractArtifact, *args) -> ContractHandle:
        """Deploys a contract from the account (consumes one nonce)."""
        raise NotImplementedError

    @abstractmethod
    def transact(
        self,
        contract: ContractHandle,
        method_name: str,
        *args,
        gas_limit: Optional[int] = None,
    ) -> int:
        """Sends a transaction and returns the block number it was mined in."""
        raise NotImplementedError
