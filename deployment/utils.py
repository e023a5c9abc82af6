import json
import os
from pathlib import Path
from typing import Any, Dict, List

import yaml
from ape import networks, project
from ape.contracts import ContractContainer, ContractInstance
from dotenv import load_dotenv

from deployment.constants import ARTIFACTS_DIR, DOTENV_FILEPATH

ENVVAR_PREFIX = "$"


def _load_yaml(filepath: Path) -> dict:
    """Loads a YAML file."""
    with open(filepath, "r") as file:
        return yaml.safe_load(file)


def _load_json(filepath: Path) -> dict:
    """Loads a JSON file."""
    with open(filepath, "r") as file:
        return json.load(file)


def load_environment(filepath: Path = DOTENV_FILEPATH) -> bool:
    """Loads a .env file into the process environment without overriding set variables."""
    return load_dotenv(dotenv_path=filepath, override=False)


def resolve_chain_id(value: Any) -> int:
    """
    Resolves a chain id that is either literal or the name of an
    environment variable (e.g. `$SKALE_CHAIN_ID`).
    """
    if isinstance(value, str) and value.startswith(ENVVAR_PREFIX):
        envvar = value[len(ENVVAR_PREFIX) :]
        value = os.environ.get(envvar)
        if not value:
            raise ValueError(f"{envvar} is not set.")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid chain_id '{value}' in params file.")


def get_artifact_filepath(config: Dict) -> Path:
    """Returns the filepath of the artifact file."""
    artifact_config = config.get("artifacts", {})
    artifact_dir = Path(artifact_config.get("dir", ARTIFACTS_DIR))
    filename = artifact_config.get("filename")
    if not filename:
        raise ValueError("artifact filename is not set in params file.")
    return artifact_dir / filename


def validate_config(config: Dict, chain_id: int, live: bool) -> Path:
    """
    Checks the params file against the connected chain and that the
    deployment has not already been published for its chain_id.
    Returns the registry filepath to write to.
    """
    print("Validating parameters YAML...")

    deployment = config.get("deployment")
    if not deployment:
        raise ValueError("deployment is not set in params file.")

    config_chain_id = deployment.get("chain_id")
    if not config_chain_id:
        raise ValueError("chain_id is not set in params file.")
    config_chain_id = resolve_chain_id(config_chain_id)

    contracts = config.get("contracts")
    if not contracts:
        raise ValueError("Params file missing 'contracts' field.")

    if live and config_chain_id != chain_id:
        raise ValueError(
            f"chain_id in params file ({config_chain_id}) does not match "
            f"chain_id of current network ({chain_id})."
        )

    registry_filepath = get_artifact_filepath(config=config)
    if not registry_filepath.exists():
        return registry_filepath

    registry_chain_ids = map(int, _load_json(registry_filepath).keys())
    if config_chain_id in registry_chain_ids:
        raise ValueError(f"Deployment is already published for chain_id {config_chain_id}.")

    return registry_filepath


def check_etherscan_plugin() -> None:
    """
    Checks that the ape-etherscan plugin is installed and that
    the appropriate API key environment variable is set.
    """
    try:
        from ape_etherscan.utils import API_KEY_ENV_KEY_MAP
    except ImportError:
        raise ImportError("Please install the ape-etherscan plugin to verify contracts.")
    ecosystem_name = networks.provider.network.ecosystem.name
    explorer_envvar = API_KEY_ENV_KEY_MAP.get(ecosystem_name)
    if not explorer_envvar:
        raise ValueError(f"No explorer API key known for the {ecosystem_name} ecosystem.")
    if not os.environ.get(explorer_envvar):
        raise ValueError(f"{explorer_envvar} is not set.")


def check_plugins(verify: bool, live: bool) -> None:
    print("Checking plugins...")
    if verify and live:
        check_etherscan_plugin()


def verify_contracts(contracts: List[ContractInstance]) -> None:
    explorer = networks.provider.network.explorer
    for instance in contracts:
        print(f"(i) Verifying {instance.contract_type.name}...")
        explorer.publish_contract(instance.address)


def get_contract_container(contract: str) -> ContractContainer:
    try:
        return getattr(project, contract)
    except AttributeError:
        raise ValueError(f"No contract found with name '{contract}'.")
