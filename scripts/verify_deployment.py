#!/usr/bin/python3

import click
from ape.cli import ConnectedProviderCommand, network_option

from zkevm_deployment.contracts import ContractRegistry
from zkevm_deployment.networks import ApeNetwork, reference_code_from
from zkevm_deployment.options import artifacts_option, output_option, parameters_option
from zkevm_deployment.output import read_output
from zkevm_deployment.params import DeploymentParameters
from zkevm_deployment.verify import verify_deployment


@click.command(cls=ConnectedProviderCommand)
@network_option(required=True)
@parameters_option
@output_option
@artifacts_option
@click.option(
    "--reference-network",
    help=(
        "Network used to redeploy contracts with immutables for comparison "
        "(e.g. ethereum:local:test); those checks are skipped without it"
    ),
    type=click.STRING,
    required=False,
)
def cli(network, parameters_filepath, output_filepath, artifacts_dir, reference_network):
    """Verify a live deployment against the compiled contract artifacts."""
    parameters = DeploymentParameters.from_file(parameters_filepath)
    output = read_output(output_filepath)
    contracts = ContractRegistry.from_directory(artifacts_dir)

    reference_code = reference_code_from(reference_network) if reference_network else None
    checks = verify_deployment(ApeNetwork(), contracts, output, parameters, reference_code)
    print(f"\n(i) {len(checks)} checks passed")


if __name__ == "__main__":
    cli()
