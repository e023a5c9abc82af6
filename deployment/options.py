from pathlib import Path

import click

from deployment.constants import CONSTRUCTOR_PARAMS_DIR, VESTING_ALLOCATION
from deployment.types import MinInt

params_filepath_option = click.option(
    "--params-filepath",
    "-p",
    help="Deployment params YAML; defaults to the file named after the network.",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=False,
)

verify_option = click.option(
    "--verify/--no-verify",
    help="Publish the deployed contracts to the network's block explorer.",
    default=False,
)

autosign_option = click.option(
    "--autosign",
    help="Sign transactions without asking for confirmation.",
    is_flag=True,
    default=False,
)

amount_option = click.option(
    "--amount",
    help=(
        "Whole token units transferred to the vesting contract. "
        f"Defaults to the params file funding.amount, then {VESTING_ALLOCATION:,}."
    ),
    type=MinInt(1),
    default=None,
)

registry_filepath_option = click.option(
    "--registry-filepath",
    "-f",
    help="Registry file written by a deployment.",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=True,
)


def params_filepath_for_network(network_name: str) -> Path:
    """Returns the default params file for a network, e.g. `devnet.yml`."""
    filepath = CONSTRUCTOR_PARAMS_DIR / f"{network_name}.yml"
    if not filepath.exists():
        raise click.BadParameter(
            f"No params file found for network '{network_name}' at {filepath}; "
            f"use --params-filepath.",
            param_hint="--params-filepath",
        )
    return filepath
