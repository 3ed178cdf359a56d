from pathlib import Path
from typing import Any, Dict, NamedTuple

from zkevm_deployment.utils import DeploymentConfigError, _load_json, _write_json


class DeploymentOutput(NamedTuple):
    """What is live where, plus the parameters it was deployed with."""

    xagonZkEVMAddress: str
    xagonZkEVMBridgeAddress: str
    xagonZkEVMGlobalExitRootAddress: str
    maticTokenAddress: str
    verifierAddress: str
    zkEVMDeployerContract: str
    deployerAddress: str
    timelockContractAddress: str
    deploymentBlockNumber: int
    genesisRoot: str
    trustedSequencer: str
    trustedSequencerURL: str
    chainID: int
    networkName: str
    admin: str
    trustedAggregator: str
    proxyAdminAddress: str
    forkID: int
    salt: str
    version: str


def write_output(output: DeploymentOutput, filepath: Path) -> Path:
    return _write_json(output._asdict(), filepath)


def read_output(filepath: Path) -> DeploymentOutput:
    filepath = Path(filepath)
    if not filepath.exists():
        raise DeploymentConfigError(f"Deployment output not found at {filepath}")
    data: Dict[str, Any] = _load_json(filepath)
    missing = [field for field in DeploymentOutput._fields if field not in data]
    if missing:
        raise DeploymentConfigError(
            f"Deployment output {filepath} is missing: {', '.join(missing)}"
        )
    return DeploymentOutput(**{field: data[field] for field in DeploymentOutput._fields})
