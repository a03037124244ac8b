import asyncio
import json
import logging
from typing import Any

from aiohttp import ClientError, ClientSession
from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector

from aa_gas_estimator.exceptions import RpcRequestError
from aa_gas_estimator.typing import Address, StateOverrideSet
from aa_gas_estimator.user_operation.v6.user_operation_v6 import \
    USER_OPERATION_V6_TUPLE_TYPE
from aa_gas_estimator.user_operation.v7.user_operation_v7 import \
    PACKED_USER_OPERATION_TUPLE_TYPE

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

JSON_RPC_HEADERS = {
    "content-type": "application/json",
    "connection": "keep-alive",
}


def encode_function_call(
    function_signature: str, input_types: list[str], args: list[Any]
) -> str:
    function_selector = function_signature_to_4byte_selector(function_signature)
    params = encode(input_types, args)
    return "0x" + function_selector.hex() + params.hex()


def _encode_handleops_calldata(
    user_operation_tuple_type: str,
    user_operations_list: list[list[Any]],
    beneficiary: str,
) -> str:
    input_types = [f"{user_operation_tuple_type}[]", "address"]
    return encode_function_call(
        f"handleOps({','.join(input_types)})",
        input_types,
        [user_operations_list, beneficiary],
    )


def encode_handleops_calldata_v6(
    user_operations_list: list[list[Any]], beneficiary: str
) -> str:
    # selector 0x1fad948c
    return _encode_handleops_calldata(
        USER_OPERATION_V6_TUPLE_TYPE, user_operations_list, beneficiary)


def encode_handleops_calldata_v7(
    user_operations_list: list[list[Any]], beneficiary: str
) -> str:
    # selector 0x765e827f
    return _encode_handleops_calldata(
        PACKED_USER_OPERATION_TUPLE_TYPE, user_operations_list, beneficiary)


class EthClient:
    """
    Minimal async json-rpc client for an ethereum node.

    Connection failures and invalid responses are retried, rotating through
    the node urls. json-rpc errors are raised as RpcRequestError with the
    error object as the cause and are never retried.
    """
    ethereum_node_urls: list[str]
    retry_attempts: int

    def __init__(self, ethereum_node_urls: list[str] | str, retry_attempts: int = 3):
        if isinstance(ethereum_node_urls, str):
            ethereum_node_urls = [ethereum_node_urls]
        self.ethereum_node_urls = ethereum_node_urls
        self.retry_attempts = retry_attempts

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        json_request = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": method,
            "params": params if params is not None else [],
        }
        for attempt in range(1, self.retry_attempts + 1):
            node_url = self.ethereum_node_urls[
                (attempt - 1) % len(self.ethereum_node_urls)]
            try:
                json_response = await self._post(node_url, json_request)
            except json.decoder.JSONDecodeError:
                logging.error(
                    f"{method} attempt {attempt} to {node_url} failed. "
                    "Invalid json response from eth client."
                )
            except (ClientError, asyncio.TimeoutError) as excp:
                logging.error(
                    f"{method} attempt {attempt} to {node_url} failed. "
                    f"error: {str(excp)}"
                )
            else:
                if "error" not in json_response:
                    return json_response["result"]
                error = json_response["error"]
                logging.debug(f"{method} failed with error: {str(error)}")
                raise RpcRequestError(
                    error.get("message", "") if isinstance(error, dict)
                    else str(error),
                    error,
                )
            await asyncio.sleep(1)

        raise RpcRequestError(
            f"Failed rpc request {method} after {self.retry_attempts} attempts")

    @staticmethod
    async def _post(node_url: str, json_request: dict[str, Any]) -> Any:
        async with ClientSession() as session:
            async with session.post(
                node_url, json=json_request, headers=JSON_RPC_HEADERS
            ) as response:
                return json.loads(await response.read())

    async def call(
        self,
        to: Address,
        data: str,
        state_overrides: StateOverrideSet | None = None,
        from_address: Address | None = None,
        block: str = "latest",
    ) -> str:
        call_object: dict[str, Any] = {"to": to, "data": data}
        if from_address is not None:
            call_object["from"] = from_address
        params: list[Any] = [call_object, block]
        if state_overrides:
            params.append(state_overrides)
        return await self.request("eth_call", params)

    async def read_contract(
        self,
        address: Address,
        function_signature: str,
        input_types: list[str],
        args: list[Any],
        output_types: list[str],
    ) -> tuple:
        call_data = encode_function_call(function_signature, input_types, args)
        result = await self.call(address, call_data)
        return decode(output_types, bytes.fromhex(result[2:]))

    async def estimate_gas(
        self, from_address: Address, to: Address, data: str
    ) -> int:
        result = await self.request(
            "eth_estimateGas",
            [{"from": from_address, "to": to, "data": data}]
        )
        return int(result, 16)

    async def get_chain_id(self) -> int:
        return int(await self.request("eth_chainId"), 16)
