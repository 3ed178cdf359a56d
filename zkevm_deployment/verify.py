"""
Checks a live deployment against the compiled artifacts it was built from.

Contracts without immutables must carry exactly the artifact's runtime bytecode.
Contracts with immutables embed their constructor arguments in runtime code, so they
are compared with a reference deployment of the same artifact and arguments.
"""
from typing import Callable, List, NamedTuple, Optional, Sequence

from eth_utils import encode_hex, is_same_address, to_bytes
from hexbytes import HexBytes

from zkevm_deployment.constants import (
    BRIDGE,
    FFLONK_VERIFIER,
    GLOBAL_EXIT_ROOT,
    PROXY_ADMIN,
    ROLLUP,
    TIMELOCK,
    TRANSPARENT_PROXY,
    VERIFIER_MOCK,
    ZKEVM_DEPLOYER,
)
from zkevm_deployment.contracts import ContractArtifact, ContractRegistry
from zkevm_deployment.interfaces import Network
from zkevm_deployment.output import DeploymentOutput
from zkevm_deployment.params import DeploymentParameters
from zkevm_deployment.proxies import get_admin_address, get_implementation_address
from zkevm_deployment.utils import DeploymentConsistencyError

# deploys an artifact with constructor arguments elsewhere and returns its runtime code
ReferenceCode = Callable[[ContractArtifact, Sequence], bytes]


class VerificationCheck(NamedTuple):
    name: str
    address: str
    passed: bool
    detail: str = ""


class DeploymentVerifier:
    """Runs every check and collects the results; `verify` raises on the first failure."""

    def __init__(
        self,
        network: Network,
        contracts: ContractRegistry,
        output: DeploymentOutput,
        parameters: DeploymentParameters,
        reference_code: Optional[ReferenceCode] = None,
    ):
        self.network = network
        self.contracts = contracts
        self.output = output
        self.parameters = parameters
        self.reference_code = reference_code
        self.checks: List[VerificationCheck] = list()

    def _check(self, name: str, address: str, passed: bool, detail: str = "") -> None:
        self.checks.append(VerificationCheck(name, address, passed, detail))

    def _check_bytecode(self, name: str, address: str, expected: bytes) -> None:
        actual = HexBytes(self.network.get_code(address))
        passed = len(actual) > 0 and actual == HexBytes(expected)
        detail = "" if passed else f"runtime code at {address} does not match {name}"
        self._check(f"{name} bytecode", address, passed, detail)

    def _check_artifact(self, contract_name: str, address: str) -> None:
        artifact = self.contracts.get(contract_name)
        self._check_bytecode(contract_name, address, artifact.deployed_bytecode)

    def _check_with_immutables(self, contract_name: str, address: str, *args) -> None:
        if self.reference_code is None:
            print(f"(i) Skipping {contract_name} bytecode check: no reference network")
            return
        expected = self.reference_code(self.contracts.get(contract_name), args)
        self._check_bytecode(contract_name, address, expected)

    def run(self) -> List[VerificationCheck]:
        output = self.output
        parameters = self.parameters
        verifier_name = FFLONK_VERIFIER if parameters.real_verifier else VERIFIER_MOCK

        self._check_artifact(verifier_name, output.verifierAddress)
        self._check_artifact(ZKEVM_DEPLOYER, output.zkEVMDeployerContract)

        proxies = {
            BRIDGE: output.xagonZkEVMBridgeAddress,
            GLOBAL_EXIT_ROOT: output.xagonZkEVMGlobalExitRootAddress,
            ROLLUP: output.xagonZkEVMAddress,
        }
        implementations = dict()
        for name, proxy in proxies.items():
            self._check_artifact(TRANSPARENT_PROXY, proxy)
            implementations[name] = get_implementation_address(self.network, proxy)

        self._check_artifact(BRIDGE, implementations[BRIDGE])
        self._check_with_immutables(
            GLOBAL_EXIT_ROOT,
            implementations[GLOBAL_EXIT_ROOT],
            output.xagonZkEVMAddress,
            output.xagonZkEVMBridgeAddress,
        )
        self._check_with_immutables(
            ROLLUP,
            implementations[ROLLUP],
            output.xagonZkEVMGlobalExitRootAddress,
            output.maticTokenAddress,
            output.verifierAddress,
            output.xagonZkEVMBridgeAddress,
            output.chainID,
            output.forkID,
        )
        self._check_with_immutables(
            TIMELOCK,
            output.timelockContractAddress,
            parameters.min_delay_timelock,
            [parameters.timelock_address],
            [parameters.timelock_address],
            parameters.timelock_address,
            output.xagonZkEVMAddress,
        )

        self._check_proxy_admin(proxies)
        self._check_genesis_root()
        return list(self.checks)

    def _check_proxy_admin(self, proxies) -> None:
        admins = {name: get_admin_address(self.network, proxy) for name, proxy in proxies.items()}
        proxy_admin = self.output.proxyAdminAddress
        for name, admin in admins.items():
            passed = is_same_address(admin, proxy_admin)
            detail = "" if passed else f"{name} proxy is administered by {admin}"
            self._check(f"{name} proxy admin", proxies[name], passed, detail)
        self._check_artifact(PROXY_ADMIN, proxy_admin)

    def _check_genesis_root(self) -> None:
        rollup = self.network.at(self.contracts.get(ROLLUP), self.output.xagonZkEVMAddress)
        root = HexBytes(rollup.call("batchNumToStateRoot", 0))
        expected = HexBytes(to_bytes(hexstr=self.output.genesisRoot))
        passed = root == expected
        detail = "" if passed else f"genesis root is {encode_hex(root)}"
        self._check("genesis root", rollup.address, passed, detail)

    def verify(self) -> List[VerificationCheck]:
        checks = self.run()
        for check in checks:
            status = "OK" if check.passed else "FAILED"
            print(f"{status}\t{check.name} ({check.address})")
        failed = [check for check in checks if not check.passed]
        if failed:
            raise DeploymentConsistencyError(
                "Deployment verification failed: "
                + "; ".join(check.detail for check in failed)
            )
        return checks


def verify_deployment(
    network: Network,
    contracts: ContractRegistry,
    output: DeploymentOutput,
    parameters: DeploymentParameters,
    reference_code: Optional[ReferenceCode] = None,
) -> List[VerificationCheck]:
    verifier = DeploymentVerifier(network, contracts, output, parameters, reference_code)
    return verifier.verify()
