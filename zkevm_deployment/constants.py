from pathlib import Path

import zkevm_deployment

#
# Filesystem
#

PACKAGE_DIR = Path(zkevm_deployment.__file__).parent
PROJECT_ROOT = PACKAGE_DIR.parent
DEPLOYMENT_DIR = PROJECT_ROOT / "deployment"
UPGRADE_DIR = PROJECT_ROOT / "upgrade"
ARTIFACTS_DIR = PROJECT_ROOT / "compiled-contracts"
UPGRADES_MANIFEST_DIR = PROJECT_ROOT / ".openzeppelin"

DEPLOY_PARAMETERS_FILEPATH = DEPLOYMENT_DIR / "deploy_parameters.json"
GENESIS_FILEPATH = DEPLOYMENT_DIR / "genesis.json"
DEPLOY_OUTPUT_FILEPATH = DEPLOYMENT_DIR / "deploy_output.json"
ONGOING_DEPLOYMENT_FILEPATH = DEPLOYMENT_DIR / "deploy_ongoing.json"
UPGRADE_PARAMETERS_FILEPATH = UPGRADE_DIR / "upgrade_parameters.json"

STANDARD_JSON_FORMAT = {"indent": 1, "separators": (",", ": ")}

#
# Contracts
#

FFLONK_VERIFIER = "FflonkVerifier"
VERIFIER_MOCK = "VerifierRollupHelperMock"
PROXY_ADMIN = "ProxyAdmin"
TRANSPARENT_PROXY = "TransparentUpgradeableProxy"
BRIDGE = "XagonZkEVMBridge"
GLOBAL_EXIT_ROOT = "XagonZkEVMGlobalExitRoot"
ROLLUP = "XagonZkEVM"
TIMELOCK = "XagonZkEVMTimelock"
ZKEVM_DEPLOYER = "XagonZkEVMDeployer"

#
# Ongoing deployment (checkpoint) keys
#

VERIFIER_KEY = "verifierContract"
PROXY_ADMIN_KEY = "proxyAdmin"
BRIDGE_IMPLEMENTATION_KEY = "xagonZkEVMBridgeImplementation"
BRIDGE_KEY = "xagonZkEVMBridge"
GLOBAL_EXIT_ROOT_KEY = "xagonZkEVMGlobalExitRoot"
ROLLUP_KEY = "xagonZkEVMContract"

#
# Deployment
#

NETWORK_ID_MAINNET = 0

# Gas estimation through the deployer contract's CREATE2 path is unreliable
BRIDGE_IMPLEMENTATION_GAS_LIMIT = 5_500_000

DEPLOY_PROXY_ATTEMPTS = 20

# nonces consumed by an upgradable proxy deployment: implementation + proxy
PROXY_DEPLOYMENT_NONCES = 2

EMPTY_BYTES32 = b"\x00" * 32
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# EIP1967 slots - https://eips.ethereum.org/EIPS/eip-1967
EIP1967_ADMIN_SLOT = 0xB53127684A568B3173AE13B9F8A6016E243E63B6E8EE1178D6A717850B5D6103
EIP1967_IMPLEMENTATION_SLOT = 0x360894A13BA1A3210667C828492DB98DCA3E2076CC3735A920A3CA505D382BBC
