#!/usr/bin/python3

import click
from ape.cli import ConnectedProviderCommand, account_option, network_option

from zkevm_deployment.checkpoint import OngoingDeployment
from zkevm_deployment.confirm import _confirm_network, _confirm_resume
from zkevm_deployment.constants import BRIDGE, GLOBAL_EXIT_ROOT, PROXY_ADMIN, ROLLUP, TIMELOCK
from zkevm_deployment.contracts import ContractRegistry
from zkevm_deployment.events import ConsolePresenter, EventLog
from zkevm_deployment.manifest import manifest_filepath
from zkevm_deployment.networks import (
    ApeNetwork,
    ApeTransactor,
    check_plugins,
    publish_contracts,
)
from zkevm_deployment.options import (
    artifacts_option,
    autosign_option,
    genesis_option,
    manifest_dir_option,
    ongoing_option,
    output_option,
    parameters_option,
    proxy_attempts_option,
    verify_option,
)
from zkevm_deployment.params import DeploymentParameters, load_genesis_root
from zkevm_deployment.proxies import get_implementation_address
from zkevm_deployment.sequencer import DeploymentSequencer


@click.command(cls=ConnectedProviderCommand)
@network_option(required=True)
@account_option()
@parameters_option
@genesis_option
@output_option
@ongoing_option
@artifacts_option
@manifest_dir_option
@proxy_attempts_option
@autosign_option
@verify_option
def cli(
    network,
    account,
    parameters_filepath,
    genesis_filepath,
    output_filepath,
    ongoing_filepath,
    artifacts_dir,
    manifest_dir,
    proxy_attempts,
    autosign,
    verify,
):
    """Deploy the zkEVM L1 contracts, resuming an unfinished deployment if there is one."""
    parameters = DeploymentParameters.from_file(parameters_filepath)
    genesis_root = load_genesis_root(genesis_filepath)
    contracts = ContractRegistry.from_directory(artifacts_dir)
    check_plugins(verify=verify)

    ape_network = ApeNetwork()
    transactor = ApeTransactor(account=account, autosign=autosign, gas=parameters.gas)
    ongoing_deployment = OngoingDeployment(ongoing_filepath)

    sequencer = DeploymentSequencer(
        parameters=parameters,
        genesis_root=genesis_root,
        contracts=contracts,
        network=ape_network,
        transactor=transactor,
        ongoing_deployment=ongoing_deployment,
        manifest_filepath=manifest_filepath(ape_network.name, directory=manifest_dir),
        output_filepath=output_filepath,
        event_log=EventLog(subscribers=[ConsolePresenter()]),
        proxy_attempts=proxy_attempts,
    )
    sequencer.preflight()

    print(
        f"Account: {transactor.address}",
        f"Parameters: {parameters_filepath}",
        f"Genesis root: {genesis_root}",
        f"Output: {output_filepath}",
        f"Network: {ape_network.name}",
        f"Chain ID: {ape_network.chain_id}",
        sep="\n",
    )
    if not autosign:
        _confirm_network(ape_network.name, ape_network.chain_id)
        entries = ongoing_deployment.load()
        if entries:
            _confirm_resume(entries)

    output = sequencer.run()

    if verify:
        implementations = [
            (BRIDGE, output.xagonZkEVMBridgeAddress),
            (GLOBAL_EXIT_ROOT, output.xagonZkEVMGlobalExitRootAddress),
            (ROLLUP, output.xagonZkEVMAddress),
        ]
        deployed = [
            (sequencer.verifier_name, output.verifierAddress),
            (PROXY_ADMIN, output.proxyAdminAddress),
            (TIMELOCK, output.timelockContractAddress),
        ]
        for name, proxy in implementations:
            deployed.append((name, get_implementation_address(ape_network, proxy)))
        publish_contracts(
            [ape_network.at(contracts.get(name), address) for name, address in deployed]
        )


if __name__ == "__main__":
    cli()
