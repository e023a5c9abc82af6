import typing
from pathlib import Path
from typing import Any, List, Optional

from ape import networks
from ape.api import AccountAPI

from deployment.chain import ApeChainConnection
from deployment.confirm import _continue
from deployment.constants import TOKEN_CONTRACT, VESTING_ALLOCATION, VESTING_CONTRACT
from deployment.networks import is_local_network
from deployment.orchestration import (
    DeploymentReport,
    OrchestrationConfig,
    OrchestrationError,
    Orchestrator,
)
from deployment.registry import registry_from_ape_deployments
from deployment.utils import (
    _load_yaml,
    check_plugins,
    load_environment,
    validate_config,
    verify_contracts,
)

CONTRACTS_KEY = "contracts"
CONSTANTS_KEY = "constants"
FUNDING_KEY = "funding"
FUNDING_AMOUNT_KEY = "amount"

VARIABLE_PREFIX = "$"


def _resolve_constant(value: Any, constants: typing.Dict[str, Any]) -> Any:
    """Resolves `$NAME` against the params file constants; other values are literal."""
    if not (isinstance(value, str) and value.startswith(VARIABLE_PREFIX)):
        return value
    name = value[len(VARIABLE_PREFIX) :]
    try:
        return constants[name]
    except KeyError:
        raise DeploymentParameters.Invalid(f"Constant '{name}' not found in deployment file.")


def _get_contract_names(config: typing.Dict) -> List[str]:
    contract_names = list()
    for contract_info in config.get(CONTRACTS_KEY) or []:
        if not isinstance(contract_info, str):
            raise DeploymentParameters.Invalid("Malformed contracts list in params YAML.")
        contract_names.append(contract_info)
    return contract_names


class DeploymentParameters:
    """The contracts to deploy and the vesting allocation read from a params file."""

    class Invalid(ValueError):
        """Raised when the deployment parameters are invalid"""

    def __init__(self, contract_names: List[str], funding_amount: Optional[int] = None):
        expected = [TOKEN_CONTRACT, VESTING_CONTRACT]
        if contract_names != expected:
            raise self.Invalid(
                f"Contracts must be deployed as {expected} (token before vesting), "
                f"got {contract_names}."
            )
        if funding_amount is not None:
            if isinstance(funding_amount, bool) or not isinstance(funding_amount, int):
                raise self.Invalid(f"Funding amount must be an integer, got {funding_amount!r}.")
            if funding_amount <= 0:
                raise self.Invalid(f"Funding amount must be positive, got {funding_amount}.")
        self.contract_names = contract_names
        self.funding_amount = funding_amount

    @classmethod
    def from_config(cls, config: typing.Dict) -> "DeploymentParameters":
        print("Processing deployment parameters...")
        constants = config.get(CONSTANTS_KEY) or dict()
        funding = config.get(FUNDING_KEY) or dict()
        funding_amount = _resolve_constant(funding.get(FUNDING_AMOUNT_KEY), constants)
        return cls(contract_names=_get_contract_names(config), funding_amount=funding_amount)

    def orchestration_config(
        self, fund_vesting: bool, amount: Optional[int] = None
    ) -> OrchestrationConfig:
        """
        Selects the deploy-only or the deploy-and-fund sequence. An explicit
        `amount` overrides the params file, which overrides the default allocation.
        """
        if not fund_vesting:
            return OrchestrationConfig.deploy_only()
        amount = amount or self.funding_amount or VESTING_ALLOCATION
        return OrchestrationConfig.deploy_and_fund(amount=amount)


class Deployer:
    """
    Represents an ape account plus the deployment parameters of the
    Air contracts, plus validated/annotated execution.
    """

    def __init__(
        self,
        config: typing.Dict,
        path: Path,
        verify: bool,
        fund_vesting: bool,
        account: typing.Optional[AccountAPI] = None,
        autosign: bool = False,
        funding_amount: Optional[int] = None,
    ):
        live = not is_local_network()
        check_plugins(verify=verify, live=live)

        self.path = path
        self.config = config
        self.verify = verify and live
        self.registry_filepath = validate_config(
            config=config, chain_id=networks.provider.network.chain_id, live=live
        )
        self.parameters = DeploymentParameters.from_config(config)
        self.orchestration_config = self.parameters.orchestration_config(
            fund_vesting=fund_vesting, amount=funding_amount
        )
        self.connection = ApeChainConnection(account=account, autosign=autosign)
        self._print_deployment_info()

        if not autosign:
            # Confirms the start of the deployment.
            _continue()

    @classmethod
    def from_yaml(cls, filepath: Path, **kwargs) -> "Deployer":
        load_environment()
        config = _load_yaml(filepath)
        return cls(config=config, path=filepath, **kwargs)

    def run(self) -> DeploymentReport:
        """Runs the deployment sequence and records the outcome."""
        orchestrator = Orchestrator(connection=self.connection, config=self.orchestration_config)
        try:
            report = orchestrator.run()
        except OrchestrationError as error:
            # record the contracts that did make it on-chain
            try:
                self._write_registry()
            except Exception as registry_error:
                # the failed step stays the reported error
                raise error from registry_error
            raise
        self.finalize()
        return report

    def _write_registry(self) -> Optional[Path]:
        deployments = list(self.connection.deployments.values())
        if not deployments:
            return None
        return registry_from_ape_deployments(
            deployments=deployments, output_filepath=self.registry_filepath
        )

    def finalize(self) -> None:
        """
        Publishes the deployments to the registry and optionally to block explorers.
        """
        self._write_registry()
        if self.verify:
            verify_contracts(contracts=list(self.connection.deployments.values()))

    def _print_deployment_info(self):
        config = self.orchestration_config
        funding = f"{config.funding_amount} {config.token_contract}" if config.fund_vesting else "No"
        print(
            f"Account: {self.connection.get_account().address}",
            f"Config: {self.path}",
            f"Registry: {self.registry_filepath}",
            f"Verify: {self.verify}",
            f"Fund Vesting: {funding}",
            f"Ecosystem: {networks.provider.network.ecosystem.name}",
            f"Network: {networks.provider.network.name}",
            f"Chain ID: {networks.provider.network.chain_id}",
            f"Gas Price: {networks.provider.gas_price}",
            sep="\n",
        )
