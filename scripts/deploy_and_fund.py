#!/usr/bin/python3

import sys

import click
from ape.cli import ConnectedProviderCommand, account_option, network_option

from deployment.confirm import DeploymentAborted
from deployment.options import (
    amount_option,
    autosign_option,
    params_filepath_for_network,
    params_filepath_option,
    verify_option,
)
from deployment.orchestration import OrchestrationError
from deployment.params import Deployer


@click.command(cls=ConnectedProviderCommand)
@network_option(required=True)
@account_option()
@params_filepath_option
@verify_option
@autosign_option
@amount_option
def cli(network, account, params_filepath, verify, autosign, amount):
    """
    Deploys the Air token and the Vesting contract bound to it, then
    transfers the vesting allocation from the deployer to the Vesting contract.
    The deployer must hold at least --amount tokens (the Air supply is minted to it).

    ape run deploy_and_fund --network ethereum:devnet:node --amount 830000000
    """
    params_filepath = params_filepath or params_filepath_for_network(network.name)
    try:
        deployer = Deployer.from_yaml(
            filepath=params_filepath,
            verify=verify,
            fund_vesting=True,
            funding_amount=amount,
            account=account,
            autosign=autosign,
        )
        report = deployer.run()
    except DeploymentAborted as error:
        raise click.ClickException(str(error))
    except OrchestrationError as error:
        click.secho(f"Error: {error}", fg="red", err=True)
        report = error.report
    sys.exit(report.exit_code)


if __name__ == "__main__":
    cli()
