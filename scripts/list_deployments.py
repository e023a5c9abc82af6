#!/usr/bin/python3

from itertools import groupby

import click

from deployment.options import registry_filepath_option
from deployment.registry import read_registry


@click.command(name="list-deployments")
@registry_filepath_option
def cli(registry_filepath):
    """List the contracts recorded in a deployment registry, grouped by chain ID."""
    entries = sorted(read_registry(filepath=registry_filepath), key=lambda e: e.chain_id)
    for chain_id, chain_entries in groupby(entries, key=lambda e: e.chain_id):
        click.secho(f"\nChain {chain_id}", fg="yellow")
        for index, entry in enumerate(chain_entries, start=1):
            click.secho(f"    {index}. {entry.name} {entry.address}", fg="cyan")


if __name__ == "__main__":
    cli()
