from collections import OrderedDict

import pytest
from eth_utils import to_checksum_address

from deployment.constants import TOKEN_CONTRACT, VESTING_CONTRACT
from deployment.orchestration import (
    ChainConnection,
    ConfirmedDeployment,
    ConfirmedTransfer,
    PendingDeployment,
    PendingTransfer,
)

DEPLOYER = to_checksum_address("0x" + "de" * 20)
INITIAL_SUPPLY = 5_000_000_000 * 10**18


# Utility functions
def make_address(index):
    return to_checksum_address(f"0x{index:040x}")


def make_tx_hash(index):
    return f"0x{index:064x}"


class InMemoryChain(ChainConnection):
    """
    Chain connection that records every call. Failures are injected per
    operation with `fail_on`, e.g. fail_on["deploy:Air"] = ValueError("revert").
    """

    def __init__(self, decimals=18, deployer_balance=INITIAL_SUPPLY):
        self.decimals = decimals
        self.deployer_balance = deployer_balance
        self.calls = list()
        self.fail_on = dict()
        self.deployments = OrderedDict()
        self.balances = dict()
        self._nonce = 0

    def _next(self):
        self._nonce += 1
        return self._nonce

    def _maybe_fail(self, operation):
        error = self.fail_on.get(operation)
        if error is not None:
            raise error

    def deploy(self, contract_name, constructor_args):
        self.calls.append(("deploy", contract_name, tuple(constructor_args)))
        self._maybe_fail(f"deploy:{contract_name}")
        nonce = self._next()
        return PendingDeployment(
            contract_name=contract_name,
            address=make_address(0x1000 + nonce),
            tx_hash=make_tx_hash(nonce),
            constructor_args=tuple(constructor_args),
        )

    def await_confirmation(self, pending):
        if isinstance(pending, PendingDeployment):
            self.calls.append(("confirm", pending.contract_name))
            self._maybe_fail(f"confirm:{pending.contract_name}")
            confirmed = ConfirmedDeployment(
                contract_name=pending.contract_name,
                address=pending.address,
                tx_hash=pending.tx_hash,
                constructor_args=pending.constructor_args,
            )
            self.deployments[pending.contract_name] = confirmed
            return confirmed

        self.calls.append(("confirm", "transfer"))
        self._maybe_fail("confirm:transfer")
        if pending.amount > self.deployer_balance:
            raise ValueError("ERC20: transfer amount exceeds balance")
        self.deployer_balance -= pending.amount
        self.balances[pending.recipient] = self.balances.get(pending.recipient, 0) + pending.amount
        return ConfirmedTransfer(
            token=pending.token,
            recipient=pending.recipient,
            amount=pending.amount,
            tx_hash=pending.tx_hash,
        )

    def send_transfer(self, token, recipient, amount):
        self.calls.append(("transfer", token.address, recipient, amount))
        self._maybe_fail("transfer")
        return PendingTransfer(
            token=token.address,
            recipient=recipient,
            amount=amount,
            tx_hash=make_tx_hash(self._next()),
        )

    def token_decimals(self, token):
        self.calls.append(("decimals", token.address))
        return self.decimals

    def operations(self):
        return [call[0] for call in self.calls]

    def deployed_names(self):
        return [call[1] for call in self.calls if call[0] == "deploy"]


# Fixtures
@pytest.fixture
def chain_connection():
    return InMemoryChain()


@pytest.fixture
def reports():
    return list()


@pytest.fixture
def reporter(reports):
    return reports.append


@pytest.fixture
def token_deployment():
    return ConfirmedDeployment(TOKEN_CONTRACT, make_address(0xA1), make_tx_hash(1))


@pytest.fixture
def vesting_deployment(token_deployment):
    return ConfirmedDeployment(
        VESTING_CONTRACT,
        make_address(0xB2),
        make_tx_hash(2),
        constructor_args=[token_deployment.address],
    )
