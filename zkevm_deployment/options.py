from pathlib import Path

import click

from zkevm_deployment.constants import (
    ARTIFACTS_DIR,
    DEPLOY_OUTPUT_FILEPATH,
    DEPLOY_PARAMETERS_FILEPATH,
    DEPLOY_PROXY_ATTEMPTS,
    GENESIS_FILEPATH,
    ONGOING_DEPLOYMENT_FILEPATH,
    UPGRADE_DIR,
    UPGRADE_PARAMETERS_FILEPATH,
    UPGRADES_MANIFEST_DIR,
)
from zkevm_deployment.types import Bytes32, MinInt

parameters_option = click.option(
    "--parameters",
    "-p",
    "parameters_filepath",
    help="Deployment parameters file (JSON or YAML)",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEPLOY_PARAMETERS_FILEPATH,
    show_default=True,
)

genesis_option = click.option(
    "--genesis",
    "-g",
    "genesis_filepath",
    help="Genesis file holding the rollup's genesis state root",
    type=click.Path(dir_okay=False, path_type=Path),
    default=GENESIS_FILEPATH,
    show_default=True,
)

output_option = click.option(
    "--output",
    "-o",
    "output_filepath",
    help="Deployment output file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEPLOY_OUTPUT_FILEPATH,
    show_default=True,
)

ongoing_option = click.option(
    "--ongoing",
    "ongoing_filepath",
    help="Checkpoint file of an unfinished deployment",
    type=click.Path(dir_okay=False, path_type=Path),
    default=ONGOING_DEPLOYMENT_FILEPATH,
    show_default=True,
)

artifacts_option = click.option(
    "--artifacts",
    "-a",
    "artifacts_dir",
    help="Directory of compiled contract artifacts (<ContractName>.json)",
    type=click.Path(file_okay=False, path_type=Path),
    default=ARTIFACTS_DIR,
    show_default=True,
)

manifest_dir_option = click.option(
    "--manifest-dir",
    "manifest_dir",
    help="Directory of the per-network upgrades manifests",
    type=click.Path(file_okay=False, path_type=Path),
    default=UPGRADES_MANIFEST_DIR,
    show_default=True,
)

proxy_attempts_option = click.option(
    "--proxy-attempts",
    help="Attempts at each upgradable proxy deployment before giving up",
    type=MinInt(1),
    default=DEPLOY_PROXY_ATTEMPTS,
    show_default=True,
)

autosign_option = click.option(
    "--autosign",
    help="Automatically sign transactions.",
    is_flag=True,
)

verify_option = click.option(
    "--verify/--no-verify",
    help="Publish the deployed contracts to the block explorer",
    default=False,
)

upgrade_parameters_option = click.option(
    "--parameters",
    "-p",
    "parameters_filepath",
    help="Upgrade parameters file (JSON or YAML)",
    type=click.Path(dir_okay=False, path_type=Path),
    default=UPGRADE_PARAMETERS_FILEPATH,
    show_default=True,
)

upgrade_output_dir_option = click.option(
    "--output-dir",
    "output_dir",
    help="Directory the upgrade output file is written to",
    type=click.Path(file_okay=False, path_type=Path),
    default=UPGRADE_DIR,
    show_default=True,
)

timelock_salt_option = click.option(
    "--timelock-salt",
    help="Overrides the timelock operation salt of the parameters file",
    type=Bytes32(),
    default=None,
)
