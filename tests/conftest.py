from typing import Any

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector
import pytest

from aa_gas_estimator.exceptions import RpcRequestError
from aa_gas_estimator.utils.decode import SolidityError

SENDER_ADDRESS = "0xeed01c4ffa9f88096b77d2f16c2e143a94d71298"
PAYMASTER_ADDRESS = "0x8b1f6cb5d062aa2ce8d581942bbb960420d875ba"
SIGNATURE = (
    "0x22a1f0d5746116becb77cb47a047cd61a71c4e69defa945680e7b1e468d3297f"
    "34d4a343bec3289de1337d264beea73c6c78c35eb15beb1f250b5122ec5957691c"
)
CALL_DATA = (
    "0xb61d27f6000000000000000000000000e7bc9b3a936f122f08aac3b1fac3c3ec29a78874"
    "0000000000000000000000000000000000000000000000000000000000000001"
    "0000000000000000000000000000000000000000000000000000000000000060"
    "0000000000000000000000000000000000000000000000000000000000000000"
)


def selector(function_signature: str) -> str:
    return "0x" + function_signature_to_4byte_selector(function_signature).hex()


def revert_data(solidity_error: SolidityError, params: list[Any]) -> str:
    return solidity_error.selector + encode(
        list(solidity_error.types), params).hex()


def reverted(data: str) -> RpcRequestError:
    return RpcRequestError(
        "execution reverted",
        {"code": 3, "message": "execution reverted", "data": data},
    )


class FakeEthClient:
    """
    Records every request and answers eth_call from per selector queues.
    """

    def __init__(self):
        self.call_results: dict[str, list[Any]] = {}
        self.calls: list[tuple[str, str, Any]] = []
        self.read_contract_results: dict[str, tuple] = {}
        self.read_contract_calls: list[tuple[str, str, list[Any]]] = []
        self.estimate_gas_result = 0
        self.estimate_gas_calls: list[tuple[str, str, str]] = []

    def add_call_result(self, function_signature: str, result: Any) -> None:
        self.call_results.setdefault(
            selector(function_signature), []).append(result)

    def calls_to(self, function_signature: str) -> list[tuple[str, str, Any]]:
        function_selector = selector(function_signature)
        return [call for call in self.calls if call[1][:10] == function_selector]

    async def call(
        self,
        to,
        data,
        state_overrides=None,
        from_address=None,
        block="latest",
    ):
        self.calls.append((to, data, state_overrides))
        result = self.call_results[data[:10]].pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def read_contract(
        self, address, function_signature, input_types, args, output_types
    ):
        self.read_contract_calls.append((address, function_signature, args))
        return self.read_contract_results[function_signature]

    async def estimate_gas(self, from_address, to, data):
        self.estimate_gas_calls.append((from_address, to, data))
        return self.estimate_gas_result


@pytest.fixture
def eth_client():
    return FakeEthClient()


@pytest.fixture
def user_operation_v6_dict():
    return {
        "sender": SENDER_ADDRESS,
        "nonce": "0x1",
        "initCode": "0x",
        "callData": CALL_DATA,
        "callGasLimit": "0x1",
        "verificationGasLimit": "0x186a0",
        "preVerificationGas": "0xc350",
        "maxFeePerGas": "0x3e8",
        "maxPriorityFeePerGas": "0xa",
        "paymasterAndData": "0x",
        "signature": SIGNATURE,
    }


@pytest.fixture
def user_operation_v7_dict():
    return {
        "sender": SENDER_ADDRESS,
        "nonce": "0x1",
        "callData": CALL_DATA,
        "callGasLimit": "0x1",
        "verificationGasLimit": "0x186a0",
        "preVerificationGas": "0xc350",
        "maxFeePerGas": "0x3e8",
        "maxPriorityFeePerGas": "0xa",
        "signature": SIGNATURE,
    }
