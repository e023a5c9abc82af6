import pytest
from ape.utils import ZERO_ADDRESS

from deployment.constants import TOKEN_CONTRACT, VESTING_ALLOCATION, VESTING_CONTRACT
from deployment.orchestration import (
    ConfirmedDeployment,
    ConnectivityFailure,
    DependencyViolation,
    DeploymentFailure,
    DeploymentState,
    OrchestrationConfig,
    Orchestrator,
    PendingDeployment,
    Step,
    TransferFailure,
    print_report,
)
from tests.conftest import InMemoryChain, make_address

FUNDING_BASE_UNITS = 830_000_000 * 10**18


def test_deploy_only(chain_connection, reporter, reports):
    orchestrator = Orchestrator(chain_connection, OrchestrationConfig.deploy_only(), reporter)
    report = orchestrator.run()

    assert report.state == DeploymentState.REPORTED
    assert report.succeeded
    assert report.exit_code == 0
    assert report.transfer is None
    assert report.error is None
    assert reports == [report]

    assert chain_connection.deployed_names() == [TOKEN_CONTRACT, VESTING_CONTRACT]
    assert "transfer" not in chain_connection.operations()
    assert "decimals" not in chain_connection.operations()

    addresses = report.addresses()
    assert list(addresses) == [TOKEN_CONTRACT, VESTING_CONTRACT]
    assert addresses[TOKEN_CONTRACT] != addresses[VESTING_CONTRACT]


def test_deploy_and_fund(chain_connection, reporter, reports):
    config = OrchestrationConfig.deploy_and_fund()
    report = Orchestrator(chain_connection, config, reporter).run()

    assert report.state == DeploymentState.REPORTED
    assert report.exit_code == 0
    assert reports == [report]

    transfer = report.transfer
    assert transfer.token == report.token.address
    assert transfer.recipient == report.vesting.address
    assert transfer.amount == FUNDING_BASE_UNITS
    assert chain_connection.balances == {report.vesting.address: FUNDING_BASE_UNITS}


def test_vesting_is_bound_to_token_address(chain_connection):
    report = Orchestrator(
        chain_connection, OrchestrationConfig.deploy_and_fund(), reporter=lambda r: None
    ).run()

    assert report.vesting.constructor_args == (report.token.address,)
    deploy_calls = [call for call in chain_connection.calls if call[0] == "deploy"]
    assert deploy_calls == [
        ("deploy", TOKEN_CONTRACT, ()),
        ("deploy", VESTING_CONTRACT, (report.token.address,)),
    ]


def test_steps_run_in_dependency_order(chain_connection):
    Orchestrator(
        chain_connection, OrchestrationConfig.deploy_and_fund(), reporter=lambda r: None
    ).run()

    assert chain_connection.calls[0] == ("deploy", TOKEN_CONTRACT, ())
    assert chain_connection.calls[1] == ("confirm", TOKEN_CONTRACT)
    assert chain_connection.calls[2][:2] == ("deploy", VESTING_CONTRACT)
    assert chain_connection.calls[3] == ("confirm", VESTING_CONTRACT)
    assert chain_connection.operations()[4:] == ["decimals", "transfer", "confirm"]


@pytest.mark.parametrize("failing_operation", ["deploy:Air", "confirm:Air"])
@pytest.mark.parametrize(
    "config", [OrchestrationConfig.deploy_only(), OrchestrationConfig.deploy_and_fund()]
)
def test_token_failure_prevents_vesting_deployment(
    chain_connection, reporter, reports, failing_operation, config
):
    chain_connection.fail_on[failing_operation] = RuntimeError("execution reverted")
    orchestrator = Orchestrator(chain_connection, config, reporter)

    with pytest.raises(DeploymentFailure) as exc_info:
        orchestrator.run()

    error = exc_info.value
    assert error.step == Step.DEPLOY_TOKEN
    assert "Token deployment" in str(error)
    assert "execution reverted" in str(error)
    assert isinstance(error.__cause__, RuntimeError)

    assert VESTING_CONTRACT not in chain_connection.deployed_names()
    assert "transfer" not in chain_connection.operations()

    report = error.report
    assert report.state == DeploymentState.FAILED
    assert report.exit_code != 0
    assert report.token is None
    assert report.addresses() == {}
    assert reports == [report]


def test_vesting_failure_keeps_token_address(chain_connection):
    chain_connection.fail_on["deploy:Vesting"] = RuntimeError("out of gas")
    orchestrator = Orchestrator(
        chain_connection, OrchestrationConfig.deploy_and_fund(), reporter=lambda r: None
    )

    with pytest.raises(DeploymentFailure) as exc_info:
        orchestrator.run()

    assert exc_info.value.step == Step.DEPLOY_VESTING
    report = exc_info.value.report
    assert list(report.addresses()) == [TOKEN_CONTRACT]
    assert "transfer" not in chain_connection.operations()


def test_transfer_failure_reports_deployed_addresses(reporter, reports):
    chain_connection = InMemoryChain(deployer_balance=10**18)
    orchestrator = Orchestrator(chain_connection, OrchestrationConfig.deploy_and_fund(), reporter)

    with pytest.raises(TransferFailure) as exc_info:
        orchestrator.run()

    error = exc_info.value
    assert error.step == Step.FUND_VESTING
    assert "exceeds balance" in str(error)

    report = error.report
    assert report.state == DeploymentState.FAILED
    assert report.exit_code == 1
    assert report.transfer is None
    assert list(report.addresses()) == [TOKEN_CONTRACT, VESTING_CONTRACT]
    assert reports == [report]
    assert chain_connection.balances == {}


def test_rejected_transfer_submission(chain_connection):
    chain_connection.fail_on["transfer"] = RuntimeError("nonce too low")
    with pytest.raises(TransferFailure) as exc_info:
        Orchestrator(
            chain_connection, OrchestrationConfig.deploy_and_fund(), reporter=lambda r: None
        ).run()
    assert exc_info.value.step == Step.FUND_VESTING


def test_connectivity_failure_keeps_its_type(chain_connection):
    chain_connection.fail_on["confirm:Vesting"] = ConnectivityFailure("RPC timed out")
    with pytest.raises(ConnectivityFailure) as exc_info:
        Orchestrator(
            chain_connection, OrchestrationConfig.deploy_only(), reporter=lambda r: None
        ).run()

    error = exc_info.value
    assert error.step == Step.DEPLOY_VESTING
    assert str(error) == "Vesting deployment failed: RPC timed out"
    assert error.report.state == DeploymentState.FAILED


def test_zero_address_token_is_a_dependency_violation(chain_connection):
    class ZeroAddressChain(InMemoryChain):
        def deploy(self, contract_name, constructor_args):
            pending = super().deploy(contract_name, constructor_args)
            return pending._replace(address=ZERO_ADDRESS)

    zero_chain = ZeroAddressChain()
    with pytest.raises(DependencyViolation) as exc_info:
        Orchestrator(zero_chain, OrchestrationConfig.deploy_only(), reporter=lambda r: None).run()

    assert exc_info.value.step == Step.DEPLOY_TOKEN
    assert zero_chain.deployed_names() == [TOKEN_CONTRACT]


def test_unconfirmed_deployment_is_rejected():
    class UnconfirmedChain(InMemoryChain):
        def await_confirmation(self, pending):
            return pending  # still pending

    unconfirmed_chain = UnconfirmedChain()
    with pytest.raises(DependencyViolation) as exc_info:
        Orchestrator(
            unconfirmed_chain, OrchestrationConfig.deploy_only(), reporter=lambda r: None
        ).run()

    assert exc_info.value.step == Step.DEPLOY_TOKEN
    assert unconfirmed_chain.deployed_names() == [TOKEN_CONTRACT]


def test_vesting_requires_confirmed_token(chain_connection):
    orchestrator = Orchestrator(chain_connection, OrchestrationConfig.deploy_only())
    pending = PendingDeployment(TOKEN_CONTRACT, make_address(1), None, ())

    with pytest.raises(DependencyViolation):
        orchestrator._deploy_vesting(pending)
    with pytest.raises(DependencyViolation):
        orchestrator._deploy_vesting(ConfirmedDeployment(VESTING_CONTRACT, make_address(2)))
    assert chain_connection.calls == []


@pytest.mark.parametrize("address", [None, "", ZERO_ADDRESS, "0x1234", "not an address"])
def test_confirmed_deployment_requires_real_address(address):
    with pytest.raises(DependencyViolation):
        ConfirmedDeployment(TOKEN_CONTRACT, address)


def test_confirmed_deployment_checksums_address():
    address = make_address(0xABCDEF)
    deployment = ConfirmedDeployment(TOKEN_CONTRACT, address.lower())
    assert deployment.address == address
    assert deployment == ConfirmedDeployment(TOKEN_CONTRACT, address)


def test_orchestrator_runs_only_once(chain_connection):
    orchestrator = Orchestrator(
        chain_connection, OrchestrationConfig.deploy_only(), reporter=lambda r: None
    )
    orchestrator.run()
    calls = list(chain_connection.calls)

    with pytest.raises(DependencyViolation):
        orchestrator.run()
    assert chain_connection.calls == calls
    assert orchestrator.state == DeploymentState.REPORTED


def test_failed_orchestrator_is_not_rerun(chain_connection):
    chain_connection.fail_on["deploy:Air"] = RuntimeError("insufficient funds for gas")
    orchestrator = Orchestrator(
        chain_connection, OrchestrationConfig.deploy_only(), reporter=lambda r: None
    )
    with pytest.raises(DeploymentFailure):
        orchestrator.run()

    del chain_connection.fail_on["deploy:Air"]
    with pytest.raises(DependencyViolation):
        orchestrator.run()
    assert chain_connection.deployed_names() == [TOKEN_CONTRACT]


def test_repeated_runs_are_not_idempotent(chain_connection):
    config = OrchestrationConfig.deploy_and_fund()
    first = Orchestrator(chain_connection, config, reporter=lambda r: None).run()
    second = Orchestrator(chain_connection, config, reporter=lambda r: None).run()

    assert first.token.address != second.token.address
    assert first.vesting.address != second.vesting.address
    assert chain_connection.deployed_names() == [TOKEN_CONTRACT, VESTING_CONTRACT] * 2
    assert chain_connection.operations().count("transfer") == 2


def test_funding_cannot_be_skipped(chain_connection):
    orchestrator = Orchestrator(chain_connection, OrchestrationConfig.deploy_and_fund())
    orchestrator.report.state = DeploymentState.VESTING_DEPLOYED

    with pytest.raises(DependencyViolation):
        orchestrator._advance(DeploymentState.REPORTED)
    orchestrator._advance(DeploymentState.FUNDED)
    orchestrator._advance(DeploymentState.REPORTED)


def test_funding_is_not_performed_unless_configured(chain_connection):
    orchestrator = Orchestrator(chain_connection, OrchestrationConfig.deploy_only())
    orchestrator.report.state = DeploymentState.VESTING_DEPLOYED

    with pytest.raises(DependencyViolation):
        orchestrator._advance(DeploymentState.FUNDED)


@pytest.mark.parametrize(
    "current, target",
    [
        (DeploymentState.NOT_STARTED, DeploymentState.VESTING_DEPLOYED),
        (DeploymentState.NOT_STARTED, DeploymentState.REPORTED),
        (DeploymentState.TOKEN_DEPLOYED, DeploymentState.FUNDED),
        (DeploymentState.TOKEN_DEPLOYED, DeploymentState.REPORTED),
        (DeploymentState.REPORTED, DeploymentState.FAILED),
        (DeploymentState.FAILED, DeploymentState.TOKEN_DEPLOYED),
    ],
)
def test_invalid_transitions(chain_connection, current, target):
    orchestrator = Orchestrator(chain_connection, OrchestrationConfig.deploy_and_fund())
    orchestrator.report.state = current
    with pytest.raises(DependencyViolation):
        orchestrator._advance(target)
    assert orchestrator.state == current


def test_deploy_and_fund_defaults_to_vesting_allocation():
    config = OrchestrationConfig.deploy_and_fund()
    assert config.fund_vesting
    assert config.funding_amount == VESTING_ALLOCATION == 830_000_000
    assert not OrchestrationConfig.deploy_only().fund_vesting


@pytest.mark.parametrize("amount", [0, -1, 1.5, True, "830000000"])
def test_deploy_and_fund_rejects_invalid_amount(amount):
    with pytest.raises(ValueError):
        OrchestrationConfig.deploy_and_fund(amount=amount)


def test_print_report(capsys, chain_connection):
    Orchestrator(chain_connection, OrchestrationConfig.deploy_and_fund(), print_report).run()
    token, vesting = chain_connection.deployments.values()

    output = capsys.readouterr().out
    assert f"3AIR deployed to: {token.address}" in output
    assert f"Vesting deployed to: {vesting.address}" in output
    assert f"Funded Vesting with 830000000 tokens ({FUNDING_BASE_UNITS} base units)" in output


def test_print_report_on_failure(capsys, chain_connection):
    chain_connection.fail_on["deploy:Vesting"] = RuntimeError("reverted")
    with pytest.raises(DeploymentFailure):
        Orchestrator(chain_connection, OrchestrationConfig.deploy_only(), print_report).run()

    output = capsys.readouterr().out
    assert "3AIR deployed to: " in output
    assert "Vesting deployed to" not in output
    assert "Deployment failed: Vesting deployment failed: RuntimeError: reverted" in output
