#!/usr/bin/python3

import click
from ape.cli import ConnectedProviderCommand, account_option, network_option
from eth_utils import encode_hex

from zkevm_deployment.contracts import ContractRegistry
from zkevm_deployment.manifest import UpgradesManifest, manifest_filepath
from zkevm_deployment.networks import ApeNetwork, ApeTransactor, check_plugins
from zkevm_deployment.options import (
    artifacts_option,
    autosign_option,
    manifest_dir_option,
    timelock_salt_option,
    upgrade_output_dir_option,
    upgrade_parameters_option,
)
from zkevm_deployment.params import UpgradeParameters
from zkevm_deployment.timelock import (
    propose_upgrades,
    upgrade_output_filepath,
    write_upgrade_output,
)


@click.command(cls=ConnectedProviderCommand)
@network_option(required=True)
@account_option()
@upgrade_parameters_option
@artifacts_option
@manifest_dir_option
@upgrade_output_dir_option
@timelock_salt_option
@autosign_option
def cli(
    network,
    account,
    parameters_filepath,
    artifacts_dir,
    manifest_dir,
    output_dir,
    timelock_salt,
    autosign,
):
    """Deploy new implementations and prepare the timelock operations that upgrade to them."""
    parameters = UpgradeParameters.from_file(parameters_filepath)
    if timelock_salt is not None:
        parameters.timelock_salt = timelock_salt
    contracts = ContractRegistry.from_directory(artifacts_dir)
    check_plugins()

    ape_network = ApeNetwork()
    manifest = UpgradesManifest.read(manifest_filepath(ape_network.name, directory=manifest_dir))
    transactor = ApeTransactor(account=account, autosign=autosign, gas=parameters.gas)

    proposals = propose_upgrades(parameters, contracts, ape_network, transactor, manifest)
    for proposal in proposals:
        print(f"\n{proposal.contract_name} at {proposal.proxy}")
        print(f"\tnew implementation: {proposal.implementation}")
        print(f"\toperation id: {encode_hex(proposal.operation.id)}")

    filepath = write_upgrade_output(proposals, upgrade_output_filepath(output_dir))
    print(f"\n(i) Timelock operations written to {filepath}")


if __name__ == "__main__":
    cli()
