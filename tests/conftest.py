import copy

import pytest
from eth_abi import decode
from eth_utils import keccak, to_canonical_address, to_checksum_address

from zkevm_deployment.addresses import compute_contract_address, compute_create2_address
from zkevm_deployment.checkpoint import OngoingDeployment
from zkevm_deployment.constants import (
    BRIDGE,
    EIP1967_ADMIN_SLOT,
    EIP1967_IMPLEMENTATION_SLOT,
    EMPTY_BYTES32,
    FFLONK_VERIFIER,
    GLOBAL_EXIT_ROOT,
    PROXY_ADMIN,
    ROLLUP,
    TIMELOCK,
    TRANSPARENT_PROXY,
    VERIFIER_MOCK,
    ZERO_ADDRESS,
    ZKEVM_DEPLOYER,
)
from zkevm_deployment.contracts import ContractArtifact, ContractRegistry, _abi_types
from zkevm_deployment.events import EventLog
from zkevm_deployment.interfaces import ContractHandle, Network, Transactor
from zkevm_deployment.manifest import manifest_filepath
from zkevm_deployment.params import DeploymentParameters
from zkevm_deployment.sequencer import DeploymentSequencer

GENESIS_ROOT = "0x" + "ab" * 32
SALT = "0x" + "00" * 31 + "01"


def make_address(label: str) -> str:
    return to_checksum_address(keccak(text=label)[12:])


DEPLOYER = make_address("deployer")
ZKEVM_DEPLOYER_ADDRESS = make_address("zkEVMDeployer")


#
# ABIs
#


def _params(params):
    return [p if isinstance(p, dict) else {"type": p[0], "name": p[1]} for p in params]


def _function(name, inputs=(), outputs=(), mutability="view"):
    return {
        "type": "function",
        "name": name,
        "inputs": _params(inputs),
        "outputs": _params(outputs),
        "stateMutability": mutability,
    }


def _transaction(name, *inputs):
    return _function(name, inputs, mutability="nonpayable")


def _constructor(*inputs):
    return {"type": "constructor", "inputs": _params(inputs), "stateMutability": "nonpayable"}


OWNABLE_ABI = [
    _function("owner", outputs=[("address", "")]),
    _transaction("transferOwnership", ("address", "newOwner")),
]

INITIALIZE_PACKED_PARAMETERS = {
    "type": "tuple",
    "name": "initializePackedParameters",
    "components": _params(
        [
            ("address", "admin"),
            ("address", "trustedSequencer"),
            ("uint64", "pendingStateTimeout"),
            ("address", "trustedAggregator"),
            ("uint64", "trustedAggregatorTimeout"),
        ]
    ),
}

ABIS = {
    FFLONK_VERIFIER: [],
    VERIFIER_MOCK: [],
    ZKEVM_DEPLOYER: [
        _constructor(("address", "_owner")),
        *OWNABLE_ABI,
        _transaction(
            "deployDeterministic",
            ("uint256", "amount"),
            ("bytes32", "salt"),
            ("bytes", "initBytecode"),
        ),
        _transaction(
            "deployDeterministicAndCall",
            ("uint256", "amount"),
            ("bytes32", "salt"),
            ("bytes", "initBytecode"),
            ("bytes", "dataCall"),
        ),
    ],
    PROXY_ADMIN: [
        *OWNABLE_ABI,
        _transaction("upgrade", ("address", "proxy"), ("address", "implementation")),
        _transaction(
            "upgradeAndCall",
            ("address", "proxy"),
            ("address", "implementation"),
            ("bytes", "data"),
        ),
    ],
    TRANSPARENT_PROXY: [
        _constructor(("address", "_logic"), ("address", "admin_"), ("bytes", "_data")),
    ],
    BRIDGE: [
        _transaction(
            "initialize",
            ("uint32", "_networkID"),
            ("address", "_globalExitRootManager"),
            ("address", "_xagonZkEVMaddress"),
        ),
        _function("globalExitRootManager", outputs=[("address", "")]),
        _function("networkID", outputs=[("uint32", "")]),
        _function("xagonZkEVMaddress", outputs=[("address", "")]),
    ],
    GLOBAL_EXIT_ROOT: [
        _constructor(("address", "_rollupAddress"), ("address", "_bridgeAddress")),
        _function("rollupAddress", outputs=[("address", "")]),
        _function("bridgeAddress", outputs=[("address", "")]),
    ],
    ROLLUP: [
        _constructor(
            ("address", "_globalExitRootManager"),
            ("address", "_matic"),
            ("address", "_rollupVerifier"),
            ("address", "_bridgeAddress"),
            ("uint64", "_chainID"),
            ("uint64", "_forkID"),
        ),
        _transaction(
            "initialize",
            INITIALIZE_PACKED_PARAMETERS,
            ("bytes32", "genesisRoot"),
            ("string", "_trustedSequencerURL"),
            ("string", "_networkName"),
            ("string", "_version"),
        ),
        *OWNABLE_ABI,
        _transaction("setTrustedSequencerURL", ("string", "newTrustedSequencerURL")),
        _function("globalExitRootManager", outputs=[("address", "")]),
        _function("matic", outputs=[("address", "")]),
        _function("rollupVerifier", outputs=[("address", "")]),
        _function("bridgeAddress", outputs=[("address", "")]),
        _function("admin", outputs=[("address", "")]),
        _function("chainID", outputs=[("uint64", "")]),
        _function("forkID", outputs=[("uint64", "")]),
        _function("trustedSequencer", outputs=[("address", "")]),
        _function("pendingStateTimeout", outputs=[("uint64", "")]),
        _function("trustedAggregator", outputs=[("address", "")]),
        _function("trustedAggregatorTimeout", outputs=[("uint64", "")]),
        _function("batchNumToStateRoot", [("uint64", "")], outputs=[("bytes32", "")]),
        _function("trustedSequencerURL", outputs=[("string", "")]),
        _function("networkName", outputs=[("string", "")]),
    ],
    TIMELOCK: [
        _constructor(
            ("uint256", "minDelay"),
            ("address[]", "proposers"),
            ("address[]", "executors"),
            ("address", "admin"),
            ("address", "_xagonZkEVM"),
        ),
        _function("getMinDelay", outputs=[("uint256", "")]),
        _function("xagonZkEVM", outputs=[("address", "")]),
        _transaction(
            "schedule",
            ("address", "target"),
            ("uint256", "value"),
            ("bytes", "data"),
            ("bytes32", "predecessor"),
            ("bytes32", "salt"),
            ("uint256", "delay"),
        ),
        _transaction(
            "execute",
            ("address", "target"),
            ("uint256", "value"),
            ("bytes", "payload"),
            ("bytes32", "predecessor"),
            ("bytes32", "salt"),
        ),
    ],
}


def make_artifact(name: str, abi) -> ContractArtifact:
    return ContractArtifact(
        name=name,
        abi=abi,
        bytecode=b"\x60\x80" + keccak(text=f"creation:{name}"),
        deployed_bytecode=b"\x60\x80\x60\x40" + keccak(text=f"runtime:{name}"),
    )


#
# In-memory chain
#


class Reverted(Exception):
    pass


def _checksum(address):
    return to_checksum_address(address)


class FakeContract:
    """State of a contract on the fake chain; transactions get the caller as `sender`."""

    def __init__(self, chain, address, sender):
        self.chain = chain
        self.address = address

    def on_create(self, sender):
        pass


class FakeOwnable(FakeContract):
    def __init__(self, chain, address, sender):
        super().__init__(chain, address, sender)
        self._owner = sender

    def owner(self):
        return self._owner

    def _only_owner(self, sender):
        if sender != self._owner:
            raise Reverted("Ownable: caller is not the owner")

    def transferOwnership(self, newOwner, sender):
        self._only_owner(sender)
        self._owner = _checksum(newOwner)


class FakeVerifier(FakeContract):
    pass


class FakeZkEVMDeployer(FakeOwnable):
    def __init__(self, chain, address, sender, _owner):
        super().__init__(chain, address, sender)
        self._owner = _checksum(_owner)

    def deployDeterministic(self, amount, salt, initBytecode, sender):
        self._only_owner(sender)
        address = compute_create2_address(self.address, salt, initBytecode)
        self.chain.create(address, initBytecode, self.address)
        return address

    def deployDeterministicAndCall(self, amount, salt, initBytecode, dataCall, sender):
        address = self.deployDeterministic(amount, salt, initBytecode, sender)
        self.chain.execute(self.address, address, dataCall)


class FakeProxyAdmin(FakeOwnable):
    def upgrade(self, proxy, implementation, sender):
        self._only_owner(sender)
        self.chain.contracts[_checksum(proxy)].upgrade_to(implementation, self.address)

    def upgradeAndCall(self, proxy, implementation, data, sender):
        self.upgrade(proxy, implementation, sender)
        self.chain.execute(self.address, _checksum(proxy), data)


class FakeTransparentProxy(FakeContract):
    """Forwards everything to a copy of its implementation's state."""

    def __init__(self, chain, address, sender, _logic, admin_, _data):
        super().__init__(chain, address, sender)
        self._data = _data
        chain.set_address_slot(address, EIP1967_ADMIN_SLOT, admin_)
        self._point_to(_logic)
        self.state = copy.copy(chain.contracts[_checksum(_logic)])
        self.state.address = address

    def _point_to(self, implementation):
        implementation = _checksum(implementation)
        if implementation not in self.chain.contracts:
            raise Reverted("ERC1967: new implementation is not a contract")
        self.chain.set_address_slot(self.address, EIP1967_IMPLEMENTATION_SLOT, implementation)
        self.implementation_artifact = self.chain.artifacts[implementation]

    def on_create(self, sender):
        if self._data:
            self.chain.execute(sender, self.address, self._data)

    def upgrade_to(self, implementation, sender):
        if sender != self.chain.read_address_slot(self.address, EIP1967_ADMIN_SLOT):
            raise Reverted("TransparentUpgradeableProxy: caller is not the admin")
        self._point_to(implementation)


class FakeBridge(FakeContract):
    def __init__(self, chain, address, sender):
        super().__init__(chain, address, sender)
        self._initialized = False
        self._network_id = 0
        self._global_exit_root_manager = ZERO_ADDRESS
        self._rollup = ZERO_ADDRESS

    def initialize(self, _networkID, _globalExitRootManager, _xagonZkEVMaddress, sender):
        if self._initialized:
            raise Reverted("Initializable: contract is already initialized")
        self._initialized = True
        self._network_id = _networkID
        self._global_exit_root_manager = _checksum(_globalExitRootManager)
        self._rollup = _checksum(_xagonZkEVMaddress)

    def globalExitRootManager(self):
        return self._global_exit_root_manager

    def networkID(self):
        return self._network_id

    def xagonZkEVMaddress(self):
        return self._rollup


class FakeGlobalExitRoot(FakeContract):
    def __init__(self, chain, address, sender, _rollupAddress, _bridgeAddress):
        super().__init__(chain, address, sender)
        self._rollup = _checksum(_rollupAddress)
        self._bridge = _checksum(_bridgeAddress)

    def rollupAddress(self):
        return self._rollup

    def bridgeAddress(self):
        return self._bridge


class FakeRollup(FakeOwnable):
    def __init__(
        self, chain, address, sender, _globalExitRootManager, _matic, _rollupVerifier,
        _bridgeAddress, _chainID, _forkID,
    ):
        super().__init__(chain, address, sender)
        self._owner = ZERO_ADDRESS
        self._global_exit_root_manager = _checksum(_globalExitRootManager)
        self._matic = _checksum(_matic)
        self._verifier = _checksum(_rollupVerifier)
        self._bridge = _checksum(_bridgeAddress)
        self._chain_id = _chainID
        self._fork_id = _forkID
        self._initialized = False
        self._state_roots = dict()

    def initialize(
        self, initializePackedParameters, genesisRoot, _trustedSequencerURL, _networkName,
        _version, sender,
    ):
        if self._initialized:
            raise Reverted("Initializable: contract is already initialized")
        self._initialized = True
        (
            admin,
            trusted_sequencer,
            pending_state_timeout,
            trusted_aggregator,
            trusted_aggregator_timeout,
        ) = initializePackedParameters
        self._admin = _checksum(admin)
        self._trusted_sequencer = _checksum(trusted_sequencer)
        self._pending_state_timeout = pending_state_timeout
        self._trusted_aggregator = _checksum(trusted_aggregator)
        self._trusted_aggregator_timeout = trusted_aggregator_timeout
        self._state_roots = {0: bytes(genesisRoot)}
        self._trusted_sequencer_url = _trustedSequencerURL
        self._network_name = _networkName
        self._version = _version
        self._owner = sender

    def setTrustedSequencerURL(self, newTrustedSequencerURL, sender):
        if sender != self._admin:
            raise Reverted("OnlyAdmin")
        self._trusted_sequencer_url = newTrustedSequencerURL

    def globalExitRootManager(self):
        return self._global_exit_root_manager

    def matic(self):
        return self._matic

    def rollupVerifier(self):
        return self._verifier

    def bridgeAddress(self):
        return self._bridge

    def admin(self):
        return self._admin

    def chainID(self):
        return self._chain_id

    def forkID(self):
        return self._fork_id

    def trustedSequencer(self):
        return self._trusted_sequencer

    def pendingStateTimeout(self):
        return self._pending_state_timeout

    def trustedAggregator(self):
        return self._trusted_aggregator

    def trustedAggregatorTimeout(self):
        return self._trusted_aggregator_timeout

    def batchNumToStateRoot(self, batch):
        return self._state_roots.get(batch, EMPTY_BYTES32)

    def trustedSequencerURL(self):
        return self._trusted_sequencer_url

    def networkName(self):
        return self._network_name


class FakeTimelock(FakeContract):
    def __init__(self, chain, address, sender, minDelay, proposers, executors, admin, _xagonZkEVM):
        super().__init__(chain, address, sender)
        self._min_delay = minDelay
        self.proposers = [_checksum(p) for p in proposers]
        self.executors = [_checksum(e) for e in executors]
        self._rollup = _checksum(_xagonZkEVM)

    def getMinDelay(self):
        return self._min_delay

    def xagonZkEVM(self):
        return self._rollup


BEHAVIORS = {
    FFLONK_VERIFIER: FakeVerifier,
    VERIFIER_MOCK: FakeVerifier,
    ZKEVM_DEPLOYER: FakeZkEVMDeployer,
    PROXY_ADMIN: FakeProxyAdmin,
    TRANSPARENT_PROXY: FakeTransparentProxy,
    BRIDGE: FakeBridge,
    GLOBAL_EXIT_ROOT: FakeGlobalExitRoot,
    ROLLUP: FakeRollup,
    TIMELOCK: FakeTimelock,
}


class FakeHandle(ContractHandle):
    def __init__(self, chain, artifact, address, block_number=None):
        self.chain = chain
        self.artifact = artifact
        self.address = _checksum(address)
        self.block_number = block_number

    def call(self, method_name, *args):
        self.artifact.encode_call(method_name, *args)
        return self.chain.view(self.address, method_name, *args)


class FakeChain(Network):
    """
    Executes real creation code and call data: the artifact is found by bytecode prefix,
    arguments are ABI-decoded and handed to the matching fake contract.
    """

    name = "hardhat"
    chain_id = 31337

    def __init__(self, registry: ContractRegistry, names=tuple(ABIS)):
        self.registry = [registry.get(name) for name in names]
        self.code = dict()
        self.storage = dict()
        self.contracts = dict()
        self.artifacts = dict()
        self.nonces = dict()
        self.block_number = 0
        self.calls = 0

    # Network

    def get_transaction_count(self, address):
        self.calls += 1
        return self.nonces.get(_checksum(address), 0)

    def get_code(self, address):
        self.calls += 1
        return self.code.get(_checksum(address), b"")

    def get_storage(self, address, slot):
        self.calls += 1
        return self.storage.get((_checksum(address), slot), EMPTY_BYTES32)

    def at(self, artifact, address):
        self.calls += 1
        return FakeHandle(self, artifact, address)

    # chain internals

    def mine(self) -> int:
        self.block_number += 1
        return self.block_number

    def set_address_slot(self, address, slot, value):
        self.storage[(_checksum(address), slot)] = bytes(12) + to_canonical_address(value)

    def read_address_slot(self, address, slot):
        return _checksum(self.storage[(_checksum(address), slot)][-20:])

    def install(self, address, artifact, contract):
        address = _checksum(address)
        self.code[address] = bytes(artifact.deployed_bytecode)
        self.artifacts[address] = artifact
        self.contracts[address] = contract
        return contract

    def create(self, address, creation_code, sender):
        address = _checksum(address)
        if self.code.get(address):
            raise Reverted(f"Contract creation collision at {address}")
        creation_code = bytes(creation_code)
        matches = [a for a in self.registry if creation_code.startswith(bytes(a.bytecode))]
        if len(matches) != 1:
            raise Reverted("Unknown creation code")
        artifact = matches[0]
        arguments = creation_code[len(artifact.bytecode):]
        inputs = artifact.constructor_inputs
        args = decode(_abi_types(inputs), arguments) if inputs else ()
        contract = BEHAVIORS[artifact.name](self, address, sender, *args)
        self.install(address, artifact, contract)
        contract.on_create(sender)
        return contract

    def _target(self, address):
        contract = self.contracts[_checksum(address)]
        if isinstance(contract, FakeTransparentProxy):
            return contract.state, contract.implementation_artifact
        return contract, self.artifacts[_checksum(address)]

    def execute(self, sender, to, data):
        if _checksum(to) not in self.contracts:
            raise Reverted(f"No contract at {to}")
        contract, artifact = self._target(to)
        method_name, args = artifact.decode_call(data)
        return getattr(contract, method_name)(*args, sender=sender)

    def view(self, address, method_name, *args):
        contract, _ = self._target(address)
        return getattr(contract, method_name)(*args)


class FakeTransactor(Transactor):
    """
    The deployer account. `failures` maps a contract or method name to how many of its
    next sends are dropped before reaching the chain.
    """

    def __init__(self, chain: FakeChain, address: str):
        self.chain = chain
        self.address = _checksum(address)
        self.failures = dict()
        self.transactions = list()

    def _maybe_fail(self, name):
        if self.failures.get(name):
            self.failures[name] -= 1
            raise ConnectionError(f"{name} transaction dropped")

    def _use_nonce(self):
        nonce = self.chain.nonces.get(self.address, 0)
        self.chain.nonces[self.address] = nonce + 1
        return nonce

    def deploy(self, artifact, *args):
        self._maybe_fail(artifact.name)
        creation_code = artifact.creation_code(*args)
        address = compute_contract_address(self.address, self._use_nonce())
        self.transactions.append((artifact.name, "constructor", None))
        self.chain.create(address, creation_code, self.address)
        return FakeHandle(self.chain, artifact, address, block_number=self.chain.mine())

    def transact(self, contract, method_name, *args, gas_limit=None):
        self._maybe_fail(method_name)
        data = contract.artifact.encode_call(method_name, *args)
        self._use_nonce()
        self.transactions.append((contract.artifact.name, method_name, gas_limit))
        self.chain.execute(self.address, contract.address, data)
        return self.chain.mine()


#
# Fixtures
#


@pytest.fixture(scope="session")
def contracts():
    return ContractRegistry({name: make_artifact(name, abi) for name, abi in ABIS.items()})


@pytest.fixture
def make_chain(contracts):
    """A fresh chain where the deployer account owns the zkEVM deployer contract."""

    def _make_chain(deployer_contract_owner=DEPLOYER):
        chain = FakeChain(contracts)
        deployer_contract = FakeZkEVMDeployer(
            chain, ZKEVM_DEPLOYER_ADDRESS, DEPLOYER, deployer_contract_owner
        )
        chain.install(ZKEVM_DEPLOYER_ADDRESS, contracts.get(ZKEVM_DEPLOYER), deployer_contract)
        return chain

    return _make_chain


@pytest.fixture
def chain(make_chain):
    return make_chain()


@pytest.fixture
def transactor(chain):
    return FakeTransactor(chain, DEPLOYER)


@pytest.fixture
def deploy_config():
    return {
        "realVerifier": False,
        "trustedSequencerURL": "http://zkevm-json-rpc:8123",
        "networkName": "zkevm",
        "version": "0.0.1",
        "trustedSequencer": make_address("trustedSequencer"),
        "chainID": 1001,
        "admin": make_address("admin"),
        "trustedAggregator": make_address("trustedAggregator"),
        "trustedAggregatorTimeout": 604799,
        "pendingStateTimeout": 604799,
        "forkID": 6,
        "zkEVMOwner": make_address("zkEVMOwner"),
        "timelockAddress": make_address("timelockAdmin"),
        "minDelayTimelock": 3600,
        "salt": SALT,
        "zkEVMDeployerAddress": ZKEVM_DEPLOYER_ADDRESS,
        "maticTokenAddress": make_address("matic"),
    }


@pytest.fixture
def parameters(deploy_config):
    return DeploymentParameters(deploy_config)


@pytest.fixture
def deployment_paths(tmp_path):
    return {
        "ongoing": tmp_path / "deployment" / "deploy_ongoing.json",
        "manifest": manifest_filepath(FakeChain.name, directory=tmp_path / ".openzeppelin"),
        "output": tmp_path / "deployment" / "deploy_output.json",
    }


@pytest.fixture
def get_sequencer(contracts, deployment_paths):
    def _get_sequencer(chain, transactor, parameters, **kwargs):
        return DeploymentSequencer(
            parameters=parameters,
            genesis_root=GENESIS_ROOT,
            contracts=contracts,
            network=chain,
            transactor=transactor,
            ongoing_deployment=OngoingDeployment(deployment_paths["ongoing"]),
            manifest_filepath=deployment_paths["manifest"],
            output_filepath=deployment_paths["output"],
            event_log=EventLog(),
            **kwargs,
        )

    return _get_sequencer


@pytest.fixture
def deployed(chain, transactor, parameters, get_sequencer):
    sequencer = get_sequencer(chain, transactor, parameters)
    output = sequencer.run()
    return sequencer, output
