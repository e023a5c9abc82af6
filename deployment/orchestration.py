"""
Deployment sequencing for the Air token and its Vesting contract.

The sequence is fixed: the token is deployed and confirmed, the vesting contract
is deployed against the confirmed token address and confirmed, and (optionally)
the vesting contract is funded from the deployer's token balance. Each step only
accepts values produced by a confirmed predecessor, and any failure aborts the
remaining steps. Nothing is retried and nothing can be rolled back.

Running the sequence twice deploys two independent pairs of contracts and, when
funding is enabled, performs two transfers. The orchestrator does not guard
against this; it only refuses to re-run an instance that has already run.
"""

import typing
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ape.utils import ZERO_ADDRESS
from eth_typing import ChecksumAddress
from eth_utils import is_address, to_checksum_address

from deployment.constants import (
    TOKEN_CONTRACT,
    TOKEN_DISPLAY_NAME,
    VESTING_ALLOCATION,
    VESTING_CONTRACT,
)


class Step(Enum):
    DEPLOY_TOKEN = "Token deployment"
    DEPLOY_VESTING = "Vesting deployment"
    FUND_VESTING = "Vesting funding"


class DeploymentState(Enum):
    NOT_STARTED = "not started"
    TOKEN_DEPLOYED = "token deployed"
    VESTING_DEPLOYED = "vesting deployed"
    FUNDED = "funded"
    REPORTED = "reported"
    FAILED = "failed"


TERMINAL_STATES = (DeploymentState.REPORTED, DeploymentState.FAILED)

TRANSITIONS = {
    DeploymentState.NOT_STARTED: (DeploymentState.TOKEN_DEPLOYED,),
    DeploymentState.TOKEN_DEPLOYED: (DeploymentState.VESTING_DEPLOYED,),
    DeploymentState.VESTING_DEPLOYED: (DeploymentState.FUNDED, DeploymentState.REPORTED),
    DeploymentState.FUNDED: (DeploymentState.REPORTED,),
    DeploymentState.REPORTED: (),
    DeploymentState.FAILED: (),
}


#
# Errors
#


class OrchestrationError(Exception):
    """Base class for failures that abort the deployment sequence."""

    def __init__(self, message: str, step: Optional[Step] = None):
        super().__init__(message)
        self.message = message
        self.step = step
        self.report: Optional["DeploymentReport"] = None

    def __str__(self) -> str:
        if self.step is None:
            return self.message
        return f"{self.step.value} failed: {self.message}"


class DeploymentFailure(OrchestrationError):
    """Raised when a deployment is rejected or reverts during construction."""


class DependencyViolation(OrchestrationError):
    """Raised when a step is given an address that was not confirmed."""


class TransferFailure(OrchestrationError):
    """Raised when the vesting funding transfer is rejected or reverts."""


class ConnectivityFailure(OrchestrationError):
    """Raised when the chain connection is unreachable or times out."""


#
# Deployment records
#


def _require_address(address: Any, contract_name: str) -> ChecksumAddress:
    if not address or not is_address(address):
        raise DependencyViolation(f"{contract_name} has no valid address: {address!r}")
    checksum_address = to_checksum_address(address)
    if checksum_address == ZERO_ADDRESS:
        raise DependencyViolation(f"{contract_name} resolved to the zero address")
    return checksum_address


class PendingDeployment(typing.NamedTuple):
    """A submitted deployment that must not be relied upon until confirmed."""

    contract_name: str
    address: Optional[str]
    tx_hash: Optional[str]
    constructor_args: tuple
    handle: Any = None  # connection specific


class PendingTransfer(typing.NamedTuple):
    token: ChecksumAddress
    recipient: ChecksumAddress
    amount: int
    tx_hash: Optional[str]
    handle: Any = None  # connection specific


class ConfirmedDeployment:
    """A deployment whose transaction the chain has confirmed."""

    def __init__(
        self,
        contract_name: str,
        address: str,
        tx_hash: Optional[str] = None,
        constructor_args: typing.Sequence[Any] = (),
    ):
        self.contract_name = contract_name
        self.address = _require_address(address, contract_name)
        self.tx_hash = tx_hash
        self.constructor_args = tuple(constructor_args)

    def __repr__(self) -> str:
        return f"ConfirmedDeployment({self.contract_name}@{self.address})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, ConfirmedDeployment):
            return NotImplemented
        return (self.contract_name, self.address) == (other.contract_name, other.address)

    def __hash__(self) -> int:
        return hash((self.contract_name, self.address))


class ConfirmedTransfer(typing.NamedTuple):
    token: ChecksumAddress
    recipient: ChecksumAddress
    amount: int  # base units
    tx_hash: Optional[str]


def to_base_units(whole_units: int, decimals: int) -> int:
    """Scales a whole token amount into base units without rounding."""
    for name, value in (("amount", whole_units), ("decimals", decimals)):
        # floats would lose precision at 10**18 scale
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"Token {name} must be an integer, got {value!r}")
        if value < 0:
            raise ValueError(f"Token {name} must not be negative, got {value}")
    return whole_units * 10**decimals


#
# Configuration
#


class OrchestrationConfig(typing.NamedTuple):
    fund_vesting: bool
    funding_amount: Optional[int] = None  # whole token units
    token_contract: str = TOKEN_CONTRACT
    vesting_contract: str = VESTING_CONTRACT

    @classmethod
    def deploy_only(cls) -> "OrchestrationConfig":
        """Deploys both contracts and leaves the vesting pool unfunded."""
        return cls(fund_vesting=False)

    @classmethod
    def deploy_and_fund(cls, amount: int = VESTING_ALLOCATION) -> "OrchestrationConfig":
        """Deploys both contracts and transfers `amount` whole tokens to the vesting pool."""
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValueError(f"Funding amount must be a positive integer, got {amount!r}")
        return cls(fund_vesting=True, funding_amount=amount)


#
# Chain connection
#


class ChainConnection(ABC):
    """
    What the orchestrator needs from a chain: a signer able to deploy contracts,
    wait for confirmation and transfer tokens. Nonce ordering is its concern.
    """

    @abstractmethod
    def deploy(self, contract_name: str, constructor_args: List[Any]) -> PendingDeployment:
        raise NotImplementedError

    @abstractmethod
    def await_confirmation(self, pending):
        """Blocks until `pending` is confirmed and returns the confirmed record."""
        raise NotImplementedError

    @abstractmethod
    def send_transfer(
        self, token: ConfirmedDeployment, recipient: ChecksumAddress, amount: int
    ) -> PendingTransfer:
        raise NotImplementedError

    @abstractmethod
    def token_decimals(self, token: ConfirmedDeployment) -> int:
        raise NotImplementedError


#
# Report
#


class DeploymentReport:
    """Outcome of a single run: whatever was deployed plus the final state."""

    def __init__(self, config: OrchestrationConfig):
        self.config = config
        self.state = DeploymentState.NOT_STARTED
        self.token: Optional[ConfirmedDeployment] = None
        self.vesting: Optional[ConfirmedDeployment] = None
        self.transfer: Optional[ConfirmedTransfer] = None
        self.error: Optional[OrchestrationError] = None

    @property
    def succeeded(self) -> bool:
        return self.state == DeploymentState.REPORTED

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    def addresses(self) -> Dict[str, ChecksumAddress]:
        result = dict()
        for deployment in (self.token, self.vesting):
            if deployment is not None:
                result[deployment.contract_name] = deployment.address
        return result


def print_report(report: DeploymentReport) -> None:
    """Prints the deployed addresses (and the funding transfer, if any)."""
    display_names = {report.config.token_contract: TOKEN_DISPLAY_NAME}
    print()
    for name, address in report.addresses().items():
        print(f"{display_names.get(name, name)} deployed to: {address}")
    if report.transfer is not None:
        print(
            f"Funded {report.config.vesting_contract} with {report.config.funding_amount} "
            f"tokens ({report.transfer.amount} base units) in {report.transfer.tx_hash}"
        )
    if report.error is not None:
        print(f"Deployment failed: {report.error}")


#
# Orchestration
#


class Orchestrator:
    """Runs the token, vesting and funding steps in order, exactly once."""

    def __init__(
        self,
        connection: ChainConnection,
        config: OrchestrationConfig,
        reporter: Callable[[DeploymentReport], None] = print_report,
    ):
        self.connection = connection
        self.config = config
        self.reporter = reporter
        self.report = DeploymentReport(config=config)

    @property
    def state(self) -> DeploymentState:
        return self.report.state

    def _advance(self, state: DeploymentState) -> None:
        current = self.report.state
        if state == DeploymentState.FAILED:
            allowed = current not in TERMINAL_STATES
        else:
            allowed = state in TRANSITIONS[current]
        if allowed and current == DeploymentState.VESTING_DEPLOYED:
            # funding cannot be skipped, nor performed when not configured
            expected = DeploymentState.FUNDED if self.config.fund_vesting else DeploymentState.REPORTED
            allowed = state in (expected, DeploymentState.FAILED)
        if not allowed:
            raise DependencyViolation(
                f"Cannot move from '{current.value}' to '{state.value}'"
            )
        self.report.state = state

    @staticmethod
    def _execute(step: Step, failure: typing.Type[OrchestrationError], action, *args):
        try:
            return action(*args)
        except OrchestrationError as error:
            if error.step is None:
                error.step = step
            raise
        except Exception as error:
            raise failure(f"{type(error).__name__}: {error}", step=step) from error

    @staticmethod
    def _require_confirmed(deployment: Any, contract_name: str) -> ConfirmedDeployment:
        if not isinstance(deployment, ConfirmedDeployment):
            raise DependencyViolation(f"{contract_name} deployment is not confirmed")
        if deployment.contract_name != contract_name:
            raise DependencyViolation(
                f"Expected a {contract_name} deployment, got {deployment.contract_name}"
            )
        return deployment

    def _deploy(self, contract_name: str, constructor_args: List[Any]) -> ConfirmedDeployment:
        print(f"\n(i) Deploying {contract_name}...")
        pending = self.connection.deploy(contract_name, constructor_args)
        if pending.address:
            print(f"(i) Awaiting confirmation of {contract_name} at {pending.address}")
        confirmed = self.connection.await_confirmation(pending)
        return self._require_confirmed(confirmed, contract_name)

    def _deploy_token(self) -> ConfirmedDeployment:
        return self._deploy(self.config.token_contract, [])

    def _deploy_vesting(self, token: ConfirmedDeployment) -> ConfirmedDeployment:
        token = self._require_confirmed(token, self.config.token_contract)
        return self._deploy(self.config.vesting_contract, [token.address])

    def _fund_vesting(
        self, token: ConfirmedDeployment, vesting: ConfirmedDeployment
    ) -> ConfirmedTransfer:
        token = self._require_confirmed(token, self.config.token_contract)
        vesting = self._require_confirmed(vesting, self.config.vesting_contract)

        decimals = self.connection.token_decimals(token)
        amount = to_base_units(self.config.funding_amount, decimals)
        print(
            f"\n(i) Transferring {self.config.funding_amount} {token.contract_name} "
            f"({amount} base units) to {vesting.contract_name} at {vesting.address}"
        )
        pending = self.connection.send_transfer(token, vesting.address, amount)
        confirmed = self.connection.await_confirmation(pending)
        if not isinstance(confirmed, ConfirmedTransfer):
            raise DependencyViolation("Funding transfer is not confirmed")
        return confirmed

    def run(self) -> DeploymentReport:
        """
        Executes the sequence and returns the report. On failure the partial
        report is still delivered to the reporter and attached to the raised error.
        """
        if self.state != DeploymentState.NOT_STARTED:
            raise DependencyViolation(
                f"Deployment sequence already {self.state.value}; "
                f"use a new orchestrator to deploy another set of contracts"
            )

        try:
            self.report.token = self._execute(
                Step.DEPLOY_TOKEN, DeploymentFailure, self._deploy_token
            )
            self._advance(DeploymentState.TOKEN_DEPLOYED)

            self.report.vesting = self._execute(
                Step.DEPLOY_VESTING, DeploymentFailure, self._deploy_vesting, self.report.token
            )
            self._advance(DeploymentState.VESTING_DEPLOYED)

            if self.config.fund_vesting:
                self.report.transfer = self._execute(
                    Step.FUND_VESTING,
                    TransferFailure,
                    self._fund_vesting,
                    self.report.token,
                    self.report.vesting,
                )
                self._advance(DeploymentState.FUNDED)
        except OrchestrationError as error:
            error.report = self.report
            self.report.error = error
            self._advance(DeploymentState.FAILED)
            self.reporter(self.report)
            raise

        self._advance(DeploymentState.REPORTED)
        self.reporter(self.report)
        return self.report
