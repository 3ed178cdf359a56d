import typing
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional

from eth_utils import is_address, to_checksum_address

from zkevm_deployment.addresses import _to_salt
from zkevm_deployment.constants import EMPTY_BYTES32
from zkevm_deployment.utils import DeploymentConfigError, _load_config, _load_json

MANDATORY_DEPLOYMENT_PARAMETERS = [
    "realVerifier",
    "trustedSequencerURL",
    "networkName",
    "version",
    "trustedSequencer",
    "chainID",
    "admin",
    "trustedAggregator",
    "trustedAggregatorTimeout",
    "pendingStateTimeout",
    "forkID",
    "zkEVMOwner",
    "timelockAddress",
    "minDelayTimelock",
    "salt",
    "zkEVMDeployerAddress",
    "maticTokenAddress",
]

ADDRESS_PARAMETERS = [
    "trustedSequencer",
    "admin",
    "trustedAggregator",
    "zkEVMOwner",
    "timelockAddress",
    "zkEVMDeployerAddress",
    "maticTokenAddress",
]


def _is_missing(value: Any) -> bool:
    return value is None or value == ""


def _to_bool(name: str, value: Any) -> bool:
    """Booleans, or the strings "true" and "false" in any case; anything else is rejected."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise DeploymentConfigError(f"Parameter {name} must be a boolean, got {value!r}")


def validate_deployment_parameters(config: typing.Dict[str, Any]) -> None:
    """Checks every mandatory parameter before anything is sent to the network."""
    missing = [name for name in MANDATORY_DEPLOYMENT_PARAMETERS if _is_missing(config.get(name))]
    if missing:
        raise DeploymentConfigError(f"Missing parameter: {', '.join(missing)}")

    for parameter_name in ADDRESS_PARAMETERS:
        if not is_address(config[parameter_name]):
            raise DeploymentConfigError(
                f"Parameter {parameter_name} is not a valid address: {config[parameter_name]}"
            )

    _to_bool("realVerifier", config["realVerifier"])

    try:
        _to_salt(config["salt"])
    except ValueError as e:
        raise DeploymentConfigError(f"Invalid parameter salt: {e}")


class GasSettings(NamedTuple):
    """Optional fee overrides; hardcoded fees take precedence over a multiplier."""

    max_fee_per_gas: Optional[str] = None  # gwei
    max_priority_fee_per_gas: Optional[str] = None  # gwei
    multiplier_gas: Optional[int] = None  # per mille

    @classmethod
    def from_config(cls, config: typing.Dict[str, Any]) -> "GasSettings":
        max_fee = config.get("maxFeePerGas")
        max_priority_fee = config.get("maxPriorityFeePerGas")
        if bool(max_fee) ^ bool(max_priority_fee):
            raise DeploymentConfigError(
                "maxFeePerGas and maxPriorityFeePerGas must be provided together"
            )
        multiplier = config.get("multiplierGas")
        return cls(
            max_fee_per_gas=str(max_fee) if max_fee else None,
            max_priority_fee_per_gas=str(max_priority_fee) if max_priority_fee else None,
            multiplier_gas=int(multiplier) if multiplier else None,
        )

    @property
    def hardcoded(self) -> bool:
        return bool(self.max_fee_per_gas and self.max_priority_fee_per_gas)


class DeploymentParameters:
    """Validated inputs of a full deployment run."""

    def __init__(self, config: typing.Dict[str, Any]):
        validate_deployment_parameters(config)
        self.config = dict(config)

        self.real_verifier = _to_bool("realVerifier", config["realVerifier"])
        self.trusted_sequencer_url = config["trustedSequencerURL"]
        self.network_name = config["networkName"]
        self.version = config["version"]
        self.trusted_sequencer = to_checksum_address(config["trustedSequencer"])
        self.chain_id = int(config["chainID"])
        self.admin = to_checksum_address(config["admin"])
        self.trusted_aggregator = to_checksum_address(config["trustedAggregator"])
        self.trusted_aggregator_timeout = int(config["trustedAggregatorTimeout"])
        self.pending_state_timeout = int(config["pendingStateTimeout"])
        self.fork_id = int(config["forkID"])
        self.zkevm_owner = to_checksum_address(config["zkEVMOwner"])
        self.timelock_address = to_checksum_address(config["timelockAddress"])
        self.min_delay_timelock = int(config["minDelayTimelock"])
        self.salt = _to_salt(config["salt"])
        self.zkevm_deployer_address = to_checksum_address(config["zkEVMDeployerAddress"])
        self.matic_token_address = to_checksum_address(config["maticTokenAddress"])
        self.gas = GasSettings.from_config(config)

    @classmethod
    def from_file(cls, filepath: Path) -> "DeploymentParameters":
        return cls(_load_config(filepath))

    @property
    def initialize_parameters(self) -> Dict[str, Any]:
        """The packed operational parameters the rollup is initialized with."""
        return {
            "admin": self.admin,
            "trustedSequencer": self.trusted_sequencer,
            "pendingStateTimeout": self.pending_state_timeout,
            "trustedAggregator": self.trusted_aggregator,
            "trustedAggregatorTimeout": self.trusted_aggregator_timeout,
        }


def load_genesis_root(filepath: Path) -> str:
    """Returns the genesis state root from a genesis file."""
    filepath = Path(filepath)
    if not filepath.exists():
        raise DeploymentConfigError(f"Genesis file not found at {filepath}")
    root = _load_json(filepath).get("root")
    if _is_missing(root):
        raise DeploymentConfigError(f"Missing genesis root in {filepath}")
    return root


#
# Upgrades
#


class CallAfterUpgrade(NamedTuple):
    function_name: str
    arguments: List[Any]


class Upgrade(NamedTuple):
    address: str
    contract_name: str
    constructor_args: Optional[List[Any]] = None
    call_after_upgrade: Optional[CallAfterUpgrade] = None


class UpgradeParameters:
    """Proxies to upgrade through the timelock, and the timelock operation settings."""

    def __init__(self, config: typing.Dict[str, Any]):
        raw_upgrades = config.get("upgrades")
        if not raw_upgrades:
            raise DeploymentConfigError("Missing parameter: upgrades")

        self.upgrades = [self._parse_upgrade(entry) for entry in raw_upgrades]
        salt = config.get("timelockSalt")
        self.timelock_salt = _to_salt(salt) if salt else EMPTY_BYTES32
        self.timelock_min_delay = int(config.get("timelockMinDelay") or 0)
        self.gas = GasSettings.from_config(config)

    @classmethod
    def from_file(cls, filepath: Path) -> "UpgradeParameters":
        return cls(_load_config(filepath))

    @staticmethod
    def _parse_upgrade(entry: Dict[str, Any]) -> Upgrade:
        for field in ("address", "contractName"):
            if _is_missing(entry.get(field)):
                raise DeploymentConfigError(f"Missing upgrade parameter: {field}")

        call_after_upgrade = entry.get("callAfterUpgrade")
        if call_after_upgrade:
            if _is_missing(call_after_upgrade.get("functionName")):
                raise DeploymentConfigError(
                    "Missing upgrade parameter: callAfterUpgrade.functionName"
                )
            call_after_upgrade = CallAfterUpgrade(
                function_name=call_after_upgrade["functionName"],
                arguments=list(call_after_upgrade.get("arguments", [])),
            )

        return Upgrade(
            address=to_checksum_address(entry["address"]),
            contract_name=entry["contractName"],
            constructor_args=entry.get("constructorArgs"),
            call_after_upgrade=call_after_upgrade,
        )
