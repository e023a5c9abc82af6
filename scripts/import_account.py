#!/usr/bin/python3

import os

import click
from ape_accounts import import_account_from_private_key

from deployment.constants import DEPLOYER_ACCOUNT_ALIAS, PASSPHRASE_ENVVAR, PRIVATE_KEY_ENVVAR
from deployment.utils import load_environment


@click.command()
@click.option(
    "--alias",
    help="Keystore alias of the imported account.",
    default=DEPLOYER_ACCOUNT_ALIAS,
    show_default=True,
)
def cli(alias):
    """Imports the deployer private key from the environment (or .env) into the ape keystore."""
    load_environment()
    try:
        passphrase = os.environ[PASSPHRASE_ENVVAR]
        private_key = os.environ[PRIVATE_KEY_ENVVAR]
    except KeyError:
        raise click.ClickException(
            "There are missing environment variables. "
            f"Please set {PASSPHRASE_ENVVAR} and {PRIVATE_KEY_ENVVAR}."
        )
    account = import_account_from_private_key(alias, passphrase, private_key)
    click.echo(f"Account imported: {account.address}")


if __name__ == "__main__":
    cli()
