#!/usr/bin/python3

import sys

import click
from ape.cli import ConnectedProviderCommand, account_option, network_option

from deployment.confirm import DeploymentAborted
from deployment.options import (
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
def cli(network, account, params_filepath, verify, autosign):
    """
    Deploys the Air token and the Vesting contract bound to it.
    The vesting pool is left unfunded; see deploy_and_fund.

    ape run deploy --network ethereum:devnet:node
    """
    params_filepath = params_filepath or params_filepath_for_network(network.name)
    try:
        deployer = Deployer.from_yaml(
            filepath=params_filepath,
            verify=verify,
            fund_vesting=False,
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
