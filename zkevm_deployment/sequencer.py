"""
Ordered, resumable deployment of the zkEVM L1 contracts.

Order: verifier, proxy admin, bridge implementation, bridge proxy, global exit root
manager, rollup, timelock. The bridge is initialized with the global exit root manager
and rollup addresses before they exist; those are predicted from the deployer's nonce,
so nothing else may send transactions from the deployer account during a run.

Progress is checkpointed after every step. On restart, checkpointed steps are
validated against the chain instead of being redeployed.
"""
from pathlib import Path
from typing import Optional, Sequence, Tuple

from eth_typing import ChecksumAddress
from eth_utils import encode_hex, is_same_address, to_checksum_address

from zkevm_deployment import events
from zkevm_deployment.addresses import compute_create2_address, precompute_contract_address
from zkevm_deployment.checkpoint import OngoingDeployment
from zkevm_deployment.constants import (
    BRIDGE,
    BRIDGE_IMPLEMENTATION_GAS_LIMIT,
    BRIDGE_IMPLEMENTATION_KEY,
    BRIDGE_KEY,
    DEPLOY_PROXY_ATTEMPTS,
    FFLONK_VERIFIER,
    GLOBAL_EXIT_ROOT,
    GLOBAL_EXIT_ROOT_KEY,
    NETWORK_ID_MAINNET,
    PROXY_ADMIN,
    PROXY_ADMIN_KEY,
    PROXY_DEPLOYMENT_NONCES,
    ROLLUP,
    ROLLUP_KEY,
    TIMELOCK,
    TRANSPARENT_PROXY,
    VERIFIER_KEY,
    VERIFIER_MOCK,
    ZKEVM_DEPLOYER,
)
from zkevm_deployment.contracts import ContractRegistry
from zkevm_deployment.create2 import create2_deployment
from zkevm_deployment.events import EventLog
from zkevm_deployment.interfaces import ContractHandle, Network, Transactor
from zkevm_deployment.manifest import UpgradesManifest, check_no_previous_manifest
from zkevm_deployment.output import DeploymentOutput, write_output
from zkevm_deployment.params import DeploymentParameters
from zkevm_deployment.proxies import (
    ProxyDeployment,
    deploy_proxy,
    get_admin_address,
    get_implementation_address,
)
from zkevm_deployment.retry import retry
from zkevm_deployment.utils import DeploymentConsistencyError


def _expect_same(actual: str, expected: str, what: str) -> None:
    if not is_same_address(actual, expected):
        raise DeploymentConsistencyError(f"{what}: expected {expected}, got {actual}")


class DeploymentSequencer:
    """Deploys and wires the zkEVM L1 contracts from a single deployer account."""

    def __init__(
        self,
        parameters: DeploymentParameters,
        genesis_root: str,
        contracts: ContractRegistry,
        network: Network,
        transactor: Transactor,
        ongoing_deployment: OngoingDeployment,
        manifest_filepath: Path,
        output_filepath: Path,
        event_log: Optional[EventLog] = None,
        proxy_attempts: int = DEPLOY_PROXY_ATTEMPTS,
    ):
        self.parameters = parameters
        self.genesis_root = genesis_root
        self.contracts = contracts
        self.network = network
        self.transactor = transactor
        self.ongoing = ongoing_deployment
        self.manifest_filepath = Path(manifest_filepath)
        self.output_filepath = Path(output_filepath)
        self.log = event_log or EventLog()
        self.proxy_attempts = proxy_attempts
        self.manifest = UpgradesManifest()

    @property
    def deployer(self) -> ChecksumAddress:
        return self.transactor.address

    @property
    def verifier_name(self) -> str:
        return FFLONK_VERIFIER if self.parameters.real_verifier else VERIFIER_MOCK

    @property
    def required_contracts(self):
        return [
            self.verifier_name,
            ZKEVM_DEPLOYER,
            PROXY_ADMIN,
            TRANSPARENT_PROXY,
            BRIDGE,
            GLOBAL_EXIT_ROOT,
            ROLLUP,
            TIMELOCK,
        ]

    def preflight(self) -> None:
        """Configuration checks; runs before anything touches the network."""
        check_no_previous_manifest(self.manifest_filepath)
        self.contracts.require(self.required_contracts)

    def run(self) -> DeploymentOutput:
        self.preflight()
        self.ongoing.load()

        deployer_contract = self._check_deployer_contract()
        verifier = self._deploy_verifier()
        proxy_admin = self._deploy_proxy_admin(deployer_contract)
        bridge_implementation = self._deploy_bridge_implementation(deployer_contract)

        bridge_init_code = self.contracts.get(TRANSPARENT_PROXY).creation_code(
            bridge_implementation, proxy_admin, b""
        )
        bridge_address = compute_create2_address(
            deployer_contract.address, self.parameters.salt, bridge_init_code
        )
        global_exit_root_address, rollup_address = self._plan_addresses(bridge_address)

        bridge = self._deploy_bridge(
            deployer_contract,
            bridge_init_code,
            bridge_implementation,
            global_exit_root_address,
            rollup_address,
        )
        global_exit_root = self._deploy_global_exit_root(
            global_exit_root_address, rollup_address, bridge.address, proxy_admin
        )
        rollup, deployment_block_number = self._deploy_rollup(
            rollup_address, global_exit_root.address, verifier, bridge.address, proxy_admin
        )
        self._transfer_rollup_ownership(rollup)

        for proxy in (bridge, global_exit_root, rollup):
            _expect_same(
                get_admin_address(self.network, proxy.address),
                proxy_admin,
                f"{proxy.artifact.name} proxy admin",
            )
        timelock = self._deploy_timelock(proxy_admin, rollup.address)

        output = self._build_output(
            rollup=rollup.address,
            bridge=bridge.address,
            global_exit_root=global_exit_root.address,
            verifier=verifier,
            deployer_contract=deployer_contract.address,
            timelock=timelock,
            proxy_admin=proxy_admin,
            deployment_block_number=deployment_block_number,
        )
        self._finalize(output)
        return output

    #
    # Steps
    #

    def _check_deployer_contract(self) -> ContractHandle:
        address = self.parameters.zkevm_deployer_address
        if not self.network.has_code(address):
            raise DeploymentConsistencyError(
                f"zkEVM deployer contract is not deployed at {address}"
            )
        deployer_contract = self.network.at(self.contracts.get(ZKEVM_DEPLOYER), address)
        owner = deployer_contract.call("owner")
        _expect_same(owner, self.deployer, "zkEVM deployer contract owner")
        return deployer_contract

    def _deploy_verifier(self) -> ChecksumAddress:
        name = self.verifier_name
        recorded = self.ongoing.get(VERIFIER_KEY)
        if recorded:
            if not self.network.has_code(recorded):
                raise DeploymentConsistencyError(
                    f"No code at checkpointed {name} address {recorded}"
                )
            self.log.emit("verifier", events.REUSED, contract=name, address=recorded)
            return recorded

        verifier = self.transactor.deploy(self.contracts.get(name))
        self.ongoing.record_step(VERIFIER_KEY, verifier.address)
        self.log.emit("verifier", events.DEPLOYED, contract=name, address=verifier.address)
        return to_checksum_address(verifier.address)

    def _deterministic_step(
        self,
        stage: str,
        key: str,
        contract_name: str,
        deployer_contract: ContractHandle,
        init_code: bytes,
        call_data: Optional[bytes] = None,
        gas_limit: Optional[int] = None,
    ) -> ChecksumAddress:
        expected = compute_create2_address(
            deployer_contract.address, self.parameters.salt, init_code
        )
        recorded = self.ongoing.get(key)
        if recorded:
            _expect_same(recorded, expected, f"checkpointed {contract_name} address")
            if not self.network.has_code(recorded):
                raise DeploymentConsistencyError(
                    f"No code at checkpointed {contract_name} address {recorded}"
                )
            self.log.emit(stage, events.REUSED, contract=contract_name, address=recorded)
            return expected

        result = create2_deployment(
            deployer_contract=deployer_contract,
            salt=self.parameters.salt,
            init_code=init_code,
            call_data=call_data,
            transactor=self.transactor,
            network=self.network,
            gas_limit=gas_limit,
        )
        self.ongoing.record_step(key, result.address)
        action = events.DEPLOYED if result.deployed else events.REUSED
        self.log.emit(stage, action, contract=contract_name, address=result.address)
        return result.address

    def _deploy_proxy_admin(self, deployer_contract: ContractHandle) -> ChecksumAddress:
        artifact = self.contracts.get(PROXY_ADMIN)
        return self._deterministic_step(
            stage="proxyAdmin",
            key=PROXY_ADMIN_KEY,
            contract_name=PROXY_ADMIN,
            deployer_contract=deployer_contract,
            init_code=artifact.creation_code(),
            call_data=artifact.encode_call("transferOwnership", self.deployer),
        )

    def _deploy_bridge_implementation(self, deployer_contract: ContractHandle) -> ChecksumAddress:
        return self._deterministic_step(
            stage="bridgeImplementation",
            key=BRIDGE_IMPLEMENTATION_KEY,
            contract_name=f"{BRIDGE} implementation",
            deployer_contract=deployer_contract,
            init_code=self.contracts.get(BRIDGE).creation_code(),
            gas_limit=BRIDGE_IMPLEMENTATION_GAS_LIMIT,
        )

    def _plan_addresses(self, bridge_address: str) -> Tuple[ChecksumAddress, ChecksumAddress]:
        """
        Addresses of the global exit root manager and rollup proxies: the checkpointed
        pair when both are present, otherwise predicted from the deployer's nonce.
        """
        recorded_global_exit_root = self.ongoing.get(GLOBAL_EXIT_ROOT_KEY)
        recorded_rollup = self.ongoing.get(ROLLUP_KEY)
        if recorded_global_exit_root and recorded_rollup:
            return recorded_global_exit_root, recorded_rollup

        # a half-deployed pair is not trusted; both are deployed again
        self.ongoing.clear_entries(GLOBAL_EXIT_ROOT_KEY, ROLLUP_KEY)

        # the bridge proxy deployment spends the next nonce unless it already happened
        bridge_pending = 0 if self.network.has_code(bridge_address) else 1
        global_exit_root_offset = bridge_pending + PROXY_DEPLOYMENT_NONCES - 1
        rollup_offset = global_exit_root_offset + PROXY_DEPLOYMENT_NONCES

        global_exit_root = precompute_contract_address(
            self.network, self.deployer, global_exit_root_offset
        )
        rollup = precompute_contract_address(self.network, self.deployer, rollup_offset)
        self.log.emit(
            "bridge",
            events.PRECOMPUTED,
            globalExitRoot=global_exit_root,
            rollup=rollup,
        )
        return global_exit_root, rollup

    def _deploy_bridge(
        self,
        deployer_contract: ContractHandle,
        init_code: bytes,
        implementation: ChecksumAddress,
        global_exit_root: ChecksumAddress,
        rollup: ChecksumAddress,
    ) -> ContractHandle:
        bridge_artifact = self.contracts.get(BRIDGE)
        call_data = bridge_artifact.encode_call(
            "initialize", NETWORK_ID_MAINNET, global_exit_root, rollup
        )
        address = self._deterministic_step(
            stage="bridge",
            key=BRIDGE_KEY,
            contract_name=BRIDGE,
            deployer_contract=deployer_contract,
            init_code=init_code,
            call_data=call_data,
        )
        bridge = self.network.at(bridge_artifact, address)

        # an existing bridge must have been initialized with the same wiring
        _expect_same(
            bridge.call("globalExitRootManager"), global_exit_root, "bridge globalExitRootManager"
        )
        _expect_same(bridge.call("xagonZkEVMaddress"), rollup, "bridge xagonZkEVMaddress")

        self.manifest.set_admin(get_admin_address(self.network, address))
        self.manifest.add_proxy(address, implementation)
        self.log.emit(
            "bridge",
            events.CHECKED,
            contract=BRIDGE,
            address=address,
            XagonZkEVMGlobalExitRootAddress=bridge.call("globalExitRootManager"),
            networkID=bridge.call("networkID"),
            zkEVMaddress=bridge.call("xagonZkEVMaddress"),
        )
        return bridge

    def _deploy_proxy_with_retries(
        self,
        stage: str,
        contract_name: str,
        constructor_args: Sequence,
        proxy_admin: ChecksumAddress,
        initializer_data: bytes,
    ) -> ProxyDeployment:
        # an implementation that made it on chain is kept for the following attempts,
        # otherwise it would spend the nonce the proxy address was precomputed with
        implementation = dict()

        def deploy() -> ProxyDeployment:
            if "address" not in implementation:
                artifact = self.contracts.get(contract_name)
                implementation["address"] = self.transactor.deploy(
                    artifact, *constructor_args
                ).address
            return deploy_proxy(
                self.contracts,
                self.network,
                self.transactor,
                contract_name,
                implementation["address"],
                proxy_admin,
                initializer_data,
            )

        def on_failure(attempt: int, error: Exception) -> None:
            self.log.emit(
                stage, events.RETRYING, contract=contract_name, attempt=attempt, error=str(error)
            )

        return retry(
            deploy,
            attempts=self.proxy_attempts,
            on_failure=on_failure,
            description=f"{contract_name} proxy deployment",
        )

    def _resume_proxy(self, stage: str, contract_name: str, address: str) -> ContractHandle:
        if not self.network.has_code(address):
            raise DeploymentConsistencyError(
                f"No code at checkpointed {contract_name} address {address}"
            )
        contract = self.network.at(self.contracts.get(contract_name), address)
        self.manifest.add_proxy(address, get_implementation_address(self.network, address))
        self.log.emit(stage, events.REUSED, contract=contract_name, address=address)
        return contract

    def _deploy_global_exit_root(
        self,
        expected_address: ChecksumAddress,
        rollup: ChecksumAddress,
        bridge: ChecksumAddress,
        proxy_admin: ChecksumAddress,
    ) -> ContractHandle:
        recorded = self.ongoing.get(GLOBAL_EXIT_ROOT_KEY)
        if recorded:
            _expect_same(recorded, expected_address, f"checkpointed {GLOBAL_EXIT_ROOT} address")
            global_exit_root = self._resume_proxy("globalExitRoot", GLOBAL_EXIT_ROOT, recorded)
            _expect_same(
                global_exit_root.call("bridgeAddress"), bridge, "globalExitRoot bridgeAddress"
            )
            _expect_same(
                global_exit_root.call("rollupAddress"), rollup, "globalExitRoot rollupAddress"
            )
            return global_exit_root

        deployment = self._deploy_proxy_with_retries(
            "globalExitRoot", GLOBAL_EXIT_ROOT, (rollup, bridge), proxy_admin, b""
        )
        global_exit_root = deployment.proxy
        _expect_same(global_exit_root.address, expected_address, f"{GLOBAL_EXIT_ROOT} address")

        self.ongoing.record_step(GLOBAL_EXIT_ROOT_KEY, global_exit_root.address)
        self.manifest.add_proxy(global_exit_root.address, deployment.implementation)
        self.log.emit(
            "globalExitRoot",
            events.DEPLOYED,
            contract=GLOBAL_EXIT_ROOT,
            address=global_exit_root.address,
        )
        return global_exit_root

    def _deploy_rollup(
        self,
        expected_address: ChecksumAddress,
        global_exit_root: ChecksumAddress,
        verifier: ChecksumAddress,
        bridge: ChecksumAddress,
        proxy_admin: ChecksumAddress,
    ) -> Tuple[ContractHandle, int]:
        parameters = self.parameters
        recorded = self.ongoing.get(ROLLUP_KEY)
        if recorded:
            _expect_same(recorded, expected_address, f"checkpointed {ROLLUP} address")
            rollup = self._resume_proxy("rollup", ROLLUP, recorded)
            deployment_block_number = 0
        else:
            initializer_data = self.contracts.get(ROLLUP).encode_call(
                "initialize",
                parameters.initialize_parameters,
                self.genesis_root,
                parameters.trusted_sequencer_url,
                parameters.network_name,
                parameters.version,
            )
            constructor_args = (
                global_exit_root,
                parameters.matic_token_address,
                verifier,
                bridge,
                parameters.chain_id,
                parameters.fork_id,
            )
            deployment = self._deploy_proxy_with_retries(
                "rollup", ROLLUP, constructor_args, proxy_admin, initializer_data
            )
            rollup = deployment.proxy
            _expect_same(rollup.address, expected_address, f"{ROLLUP} address")

            self.ongoing.record_step(ROLLUP_KEY, rollup.address)
            self.manifest.add_proxy(rollup.address, deployment.implementation)
            self.log.emit("rollup", events.DEPLOYED, contract=ROLLUP, address=rollup.address)
            deployment_block_number = deployment.block_number or 0

        self.log.emit(
            "rollup",
            events.CHECKED,
            contract=ROLLUP,
            address=rollup.address,
            XagonZkEVMGlobalExitRootAddress=rollup.call("globalExitRootManager"),
            maticTokenAddress=rollup.call("matic"),
            verifierAddress=rollup.call("rollupVerifier"),
            xagonZkEVMBridgeContract=rollup.call("bridgeAddress"),
            admin=rollup.call("admin"),
            chainID=rollup.call("chainID"),
            trustedSequencer=rollup.call("trustedSequencer"),
            pendingStateTimeout=rollup.call("pendingStateTimeout"),
            trustedAggregator=rollup.call("trustedAggregator"),
            trustedAggregatorTimeout=rollup.call("trustedAggregatorTimeout"),
            genesisRoot=encode_hex(rollup.call("batchNumToStateRoot", 0)),
            trustedSequencerURL=rollup.call("trustedSequencerURL"),
            networkName=rollup.call("networkName"),
            forkID=rollup.call("forkID"),
        )
        return rollup, deployment_block_number

    def _transfer_rollup_ownership(self, rollup: ContractHandle) -> None:
        owner = rollup.call("owner")
        new_owner = self.parameters.zkevm_owner
        if not is_same_address(owner, self.deployer):
            _expect_same(owner, new_owner, f"{ROLLUP} owner")
            return
        if is_same_address(new_owner, self.deployer):
            return
        self.transactor.transact(rollup, "transferOwnership", new_owner)
        self.log.emit(
            "ownership",
            events.TRANSFERRED,
            contract=ROLLUP,
            address=rollup.address,
            new_owner=new_owner,
        )

    def _deploy_timelock(
        self, proxy_admin: ChecksumAddress, rollup: ChecksumAddress
    ) -> ChecksumAddress:
        parameters = self.parameters
        proxy_admin_contract = self.network.at(self.contracts.get(PROXY_ADMIN), proxy_admin)
        timelock_artifact = self.contracts.get(TIMELOCK)

        proxy_admin_owner = proxy_admin_contract.call("owner")
        if not is_same_address(proxy_admin_owner, self.deployer):
            # a timelock from an earlier run already holds the upgrade authority
            timelock = self.network.at(timelock_artifact, proxy_admin_owner)
            _expect_same(timelock.call("xagonZkEVM"), rollup, "timelock xagonZkEVM")
            self.log.emit("timelock", events.REUSED, contract=TIMELOCK, address=timelock.address)
        else:
            timelock = self.transactor.deploy(
                timelock_artifact,
                parameters.min_delay_timelock,
                [parameters.timelock_address],
                [parameters.timelock_address],
                parameters.timelock_address,
                rollup,
            )
            self.log.emit("timelock", events.DEPLOYED, contract=TIMELOCK, address=timelock.address)
            self.transactor.transact(proxy_admin_contract, "transferOwnership", timelock.address)
            self.log.emit(
                "timelock",
                events.TRANSFERRED,
                contract=PROXY_ADMIN,
                address=proxy_admin,
                new_owner=timelock.address,
            )

        self.log.emit(
            "timelock",
            events.CHECKED,
            contract=TIMELOCK,
            address=timelock.address,
            minDelayTimelock=timelock.call("getMinDelay"),
            xagonZkEVM=timelock.call("xagonZkEVM"),
        )
        return to_checksum_address(timelock.address)

    #
    # Output
    #

    def _build_output(
        self,
        rollup: str,
        bridge: str,
        global_exit_root: str,
        verifier: str,
        deployer_contract: str,
        timelock: str,
        proxy_admin: str,
        deployment_block_number: int,
    ) -> DeploymentOutput:
        parameters = self.parameters
        return DeploymentOutput(
            xagonZkEVMAddress=rollup,
            xagonZkEVMBridgeAddress=bridge,
            xagonZkEVMGlobalExitRootAddress=global_exit_root,
            maticTokenAddress=parameters.matic_token_address,
            verifierAddress=verifier,
            zkEVMDeployerContract=deployer_contract,
            deployerAddress=self.deployer,
            timelockContractAddress=timelock,
            deploymentBlockNumber=deployment_block_number,
            genesisRoot=self.genesis_root,
            trustedSequencer=parameters.trusted_sequencer,
            trustedSequencerURL=parameters.trusted_sequencer_url,
            chainID=parameters.chain_id,
            networkName=parameters.network_name,
            admin=parameters.admin,
            trustedAggregator=parameters.trusted_aggregator,
            proxyAdminAddress=proxy_admin,
            forkID=parameters.fork_id,
            salt=encode_hex(parameters.salt),
            version=parameters.version,
        )

    def _finalize(self, output: DeploymentOutput) -> None:
        self.manifest.write(self.manifest_filepath)
        self.log.emit(
            "output",
            events.WRITTEN,
            contract="Upgrades manifest",
            filepath=str(self.manifest_filepath),
        )
        write_output(output, self.output_filepath)
        self.log.emit(
            "output",
            events.WRITTEN,
            contract="Deployment output",
            filepath=str(self.output_filepath),
        )
        self.ongoing.finalize()
