import logging
from typing import Any

from aa_gas_estimator.config import GasEstimatorConfig
from aa_gas_estimator.entrypoint.constants import \
    ENTRYPOINT_V6_ADDRESS, ENTRYPOINT_V6_ERRORS, GET_NONCE, SIMULATE_HANDLE_OP_V6
from aa_gas_estimator.exceptions import \
    RpcRequestError, SimulateHandleOpError
from aa_gas_estimator.state_override.state_override import \
    StateOverrideBuilder, merge_state_overrides
from aa_gas_estimator.typing import Address, StateOverrideSet
from aa_gas_estimator.user_operation.models import ExecutionResultV6
from aa_gas_estimator.user_operation.v6.user_operation_v6 import \
    UserOperationV6, USER_OPERATION_V6_TUPLE_TYPE
from aa_gas_estimator.utils.decode import \
    decode_error_result, parse_error_data
from aa_gas_estimator.utils.eth_client_utils import \
    EthClient, encode_function_call, encode_handleops_calldata_v6

STATE_OVERRIDE_UNSUPPORTED_MESSAGE = "Incorrect parameters count"


def raise_if_state_override_unsupported(error: Any) -> None:
    # nodes without state override support reject the third eth_call param
    if STATE_OVERRIDE_UNSUPPORTED_MESSAGE in str(error) or (
        STATE_OVERRIDE_UNSUPPORTED_MESSAGE in str(getattr(error, "cause", ""))
    ):
        raise SimulateHandleOpError(
            f"RPC failed to perform a state override with message: {error}. "
            "This is likely temporary, try again later."
        )


class EntryPointV6:
    eth_client: EthClient
    address: Address
    config: GasEstimatorConfig

    def __init__(
        self,
        eth_client: EthClient,
        address: Address = ENTRYPOINT_V6_ADDRESS,
        config: GasEstimatorConfig = GasEstimatorConfig(),
    ):
        self.eth_client = eth_client
        self.address = address
        self.config = config

    async def simulate_handle_op(
        self,
        user_operation: UserOperationV6,
        target_address: Address,
        target_call_data: str,
        state_overrides: StateOverrideSet | None = None,
        with_default_overrides: bool = True,
    ) -> ExecutionResultV6:
        # simulateHandleOp(entrypoint solidity function) will always revert
        call_data = encode_function_call(
            SIMULATE_HANDLE_OP_V6,
            [USER_OPERATION_V6_TUPLE_TYPE, "address", "bytes"],
            [
                user_operation.to_list(),
                target_address,
                bytes.fromhex(target_call_data[2:]),
            ],
        )

        final_state_overrides: StateOverrideSet | None = state_overrides
        if with_default_overrides:
            # avoid spurious insufficient funds failures during the simulation,
            # caller overrides win on conflict
            default_state_overrides = StateOverrideBuilder().override_balance(
                user_operation.sender_address, self.config.sender_balance_override
            ).build()
            final_state_overrides = merge_state_overrides(
                default_state_overrides, state_overrides)

        try:
            await self.eth_client.call(
                self.address, call_data, final_state_overrides)
        except RpcRequestError as err:
            return self.parse_simulate_handle_op_error(err)

        # this should never happen
        logging.critical("simulateHandleOp didn't revert!")
        raise SimulateHandleOpError("SimulateHandleOp should always revert")

    def parse_simulate_handle_op_error(self, err: Any) -> ExecutionResultV6:
        raise_if_state_override_unsupported(err)
        error_data = parse_error_data(err)
        return self.parse_execution_result(error_data)

    @staticmethod
    def parse_execution_result(error_data: str) -> ExecutionResultV6:
        error_name, error_params = decode_error_result(
            error_data, ENTRYPOINT_V6_ERRORS)

        if error_name != "ExecutionResult":
            # FailedOp(opIndex, reason) and Error(reason)
            reason = error_params[-1]
            logging.debug(f"simulateHandleOp reverted with {error_name}: {reason}")
            raise SimulateHandleOpError(str(reason))

        (
            pre_op_gas,
            paid,
            valid_after,
            valid_until,
            target_success,
            target_result,
        ) = error_params
        return ExecutionResultV6(
            pre_op_gas,
            paid,
            valid_after,
            valid_until,
            target_success,
            target_result,
        )

    async def get_nonce(self, sender: Address, key: int = 0) -> int:
        (nonce,) = await self.eth_client.read_contract(
            self.address,
            GET_NONCE,
            ["address", "uint192"],
            [sender, key],
            ["uint256"],
        )
        return nonce

    def encode_handle_ops_function_data(
        self, user_operation: UserOperationV6, beneficiary: Address
    ) -> str:
        return encode_handleops_calldata_v6(
            [user_operation.to_list()], beneficiary)
