import typing
from collections import OrderedDict
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import requests
from ape.api import AccountAPI, ReceiptAPI
from ape.cli.choices import select_account
from ape.contracts.base import ContractContainer, ContractInstance, ContractTransactionHandler
from ape.exceptions import (
    NetworkError,
    ProviderNotConnectedError,
    RPCTimeoutError,
    TransactionError,
)
from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address
from ethpm_types import MethodABI
from web3.auto import w3

from deployment.confirm import _confirm_resolution, _continue
from deployment.orchestration import (
    ChainConnection,
    ConfirmedDeployment,
    ConfirmedTransfer,
    ConnectivityFailure,
    PendingDeployment,
    PendingTransfer,
)
from deployment.utils import get_contract_container

CONNECTIVITY_ERRORS = (
    ProviderNotConnectedError,
    NetworkError,
    RPCTimeoutError,
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
)


@contextmanager
def _connectivity_guard(action: str):
    try:
        yield
    except CONNECTIVITY_ERRORS as error:
        raise ConnectivityFailure(f"Chain connection lost while {action}: {error}") from error


def _validate_method_args(
    method_abis: List[MethodABI], args: typing.Sequence[Any]
) -> typing.Dict[str, Any]:
    """Validates the transaction arguments against the function ABI."""
    if len(method_abis) == 0:
        raise ValueError("No method abis provided for validation of args")

    abis_matching_args_length = [abi for abi in method_abis if len(abi.inputs) == len(args)]
    for abi in abis_matching_args_length:
        named_args = {}
        for arg, abi_input in zip(args, abi.inputs):
            if not w3.is_encodable(abi_input.type, arg):
                break
            named_args[abi_input.name] = arg
        else:
            return named_args
    raise ValueError(
        f"Could not find ABI for '{method_abis[0].name}' with {len(args)} arg(s) and given type(s)"
    )


def _named_constructor_args(container: ContractContainer, args: List[Any]) -> OrderedDict:
    """Pairs constructor arguments with their ABI names for display."""
    abi_inputs = container.constructor.abi.inputs
    if len(abi_inputs) != len(args):
        raise ValueError(
            f"Constructor parameters length mismatch - {container.contract_type.name} "
            f"ABI requires {len(abi_inputs)}, Got {len(args)}."
        )
    return OrderedDict((abi_input.name, arg) for abi_input, arg in zip(abi_inputs, args))


class Transactor:
    """
    Represents an ape account plus validated/annotated transaction execution.
    """

    def __init__(self, account: typing.Optional[AccountAPI] = None, autosign: bool = False):
        if account is None:
            self._account = select_account()
        else:
            self._account = account
        if autosign:
            print("WARNING: Autosign is enabled. Transactions will be signed automatically.")
        self._autosign = autosign
        if hasattr(self._account, "set_autosign"):  # test accounts always sign
            self._account.set_autosign(autosign)

    def get_account(self) -> AccountAPI:
        """Returns the transactor account."""
        return self._account

    def transact(self, method: ContractTransactionHandler, *args) -> ReceiptAPI:
        named_args = _validate_method_args(method_abis=method.abis, args=args)
        base_message = (
            f"\nTransacting {method.contract.contract_type.name}"
            f"[{method.contract.address[:10]}].{method}"
        )
        if named_args:
            pretty_args = "\n\t".join(f"{k}={v}" for k, v in named_args.items())
            message = f"{base_message} with arguments:\n\t{pretty_args}"
        else:
            message = f"{base_message} with no arguments"
        print(message)
        if not self._autosign:
            _continue()

        return method(*args, sender=self._account)


class ApeChainConnection(Transactor, ChainConnection):
    """
    Chain connection backed by an ape account on the active provider.

    ape waits for the network's required confirmations before returning from a
    deployment or transaction; `await_confirmation` re-checks the receipt and
    rejects failed ones.
    """

    def __init__(
        self,
        account: Optional[AccountAPI] = None,
        autosign: bool = False,
        containers: Optional[Dict[str, ContractContainer]] = None,
    ):
        super().__init__(account=account, autosign=autosign)
        self._containers = dict(containers or {})
        self.deployments: Dict[str, ContractInstance] = OrderedDict()

    def _get_container(self, contract_name: str) -> ContractContainer:
        if contract_name not in self._containers:
            self._containers[contract_name] = get_contract_container(contract_name)
        return self._containers[contract_name]

    def _get_instance(self, deployment: ConfirmedDeployment) -> ContractInstance:
        instance = self.deployments.get(deployment.contract_name)
        if instance is None or instance.address != deployment.address:
            container = self._get_container(deployment.contract_name)
            instance = container.at(deployment.address)
        return instance

    @staticmethod
    def _await_receipt(receipt: ReceiptAPI) -> ReceiptAPI:
        with _connectivity_guard(action=f"awaiting {receipt.txn_hash}"):
            receipt.await_confirmations()
        if receipt.failed:
            raise TransactionError(f"Transaction {receipt.txn_hash} failed.")
        return receipt

    def deploy(self, contract_name: str, constructor_args: List[Any]) -> PendingDeployment:
        container = self._get_container(contract_name)
        if not self._autosign:
            resolved_params = _named_constructor_args(container, constructor_args)
            _confirm_resolution(resolved_params, contract_name)

        with _connectivity_guard(action=f"deploying {contract_name}"):
            instance = self._account.deploy(container, *constructor_args, publish=False)

        receipt = instance.receipt
        return PendingDeployment(
            contract_name=contract_name,
            address=instance.address,
            tx_hash=receipt.txn_hash,
            constructor_args=tuple(constructor_args),
            handle=instance,
        )

    def await_confirmation(self, pending):
        if isinstance(pending, PendingDeployment):
            instance = pending.handle
            receipt = self._await_receipt(instance.receipt)
            address = receipt.contract_address or instance.address
            confirmed = ConfirmedDeployment(
                contract_name=pending.contract_name,
                address=address,
                tx_hash=receipt.txn_hash,
                constructor_args=pending.constructor_args,
            )
            self.deployments[pending.contract_name] = instance
            return confirmed

        if isinstance(pending, PendingTransfer):
            receipt = self._await_receipt(pending.handle)
            return ConfirmedTransfer(
                token=pending.token,
                recipient=pending.recipient,
                amount=pending.amount,
                tx_hash=receipt.txn_hash,
            )

        raise TypeError(f"Cannot await {type(pending).__name__}")

    def send_transfer(
        self, token: ConfirmedDeployment, recipient: ChecksumAddress, amount: int
    ) -> PendingTransfer:
        instance = self._get_instance(token)
        recipient = to_checksum_address(recipient)
        with _connectivity_guard(action=f"transferring {token.contract_name}"):
            receipt = self.transact(instance.transfer, recipient, amount)
        return PendingTransfer(
            token=token.address,
            recipient=recipient,
            amount=amount,
            tx_hash=receipt.txn_hash,
            handle=receipt,
        )

    def token_decimals(self, token: ConfirmedDeployment) -> int:
        instance = self._get_instance(token)
        with _connectivity_guard(action=f"reading {token.contract_name} decimals"):
            return int(instance.decimals())
