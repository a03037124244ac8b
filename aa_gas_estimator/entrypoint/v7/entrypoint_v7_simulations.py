import logging
from typing import Any, NoReturn

from eth_abi import decode
from eth_abi.exceptions import DecodingError

from aa_gas_estimator.config import GasEstimatorConfig
from aa_gas_estimator.entrypoint.constants import \
    ENTRYPOINT_V7_ADDRESS, ENTRYPOINT_V7_ERRORS, \
    ENTRYPOINT_V7_SIMULATIONS_FILE, EXECUTION_RESULT_V7_TYPES, GET_NONCE, \
    SIMULATE_HANDLE_OP_V7
from aa_gas_estimator.entrypoint.v6.entrypoint_v6 import \
    raise_if_state_override_unsupported
from aa_gas_estimator.exceptions import \
    ParseError, RpcRequestError, SimulateHandleOpError
from aa_gas_estimator.state_override.state_override import \
    StateOverrideBuilder, merge_state_overrides
from aa_gas_estimator.typing import Address, StateOverrideSet
from aa_gas_estimator.user_operation.models import ExecutionResultV7
from aa_gas_estimator.user_operation.v7.user_operation_v7 import \
    PACKED_USER_OPERATION_TUPLE_TYPE, UserOperationV7, to_packed_user_operation
from aa_gas_estimator.utils.decode import \
    decode_error_result, parse_error_data
from aa_gas_estimator.utils.eth_client_utils import \
    EthClient, encode_function_call, encode_handleops_calldata_v7
from aa_gas_estimator.utils.load_bytecode import load_bytecode


class EntryPointV7Simulations:
    """
    EntryPoint v0.7 has no simulation methods on chain, the EntryPointSimulations
    contract is injected with a code override on the entrypoint address and its
    simulateHandleOp returns the execution result instead of reverting.
    """
    eth_client: EthClient
    address: Address
    config: GasEstimatorConfig
    _entrypoint_simulations_bytecode: str | None

    def __init__(
        self,
        eth_client: EthClient,
        address: Address = ENTRYPOINT_V7_ADDRESS,
        config: GasEstimatorConfig = GasEstimatorConfig(),
        entrypoint_simulations_bytecode: str | None = None,
    ):
        self.eth_client = eth_client
        self.address = address
        self.config = config
        self._entrypoint_simulations_bytecode = entrypoint_simulations_bytecode

    @property
    def entrypoint_simulations_bytecode(self) -> str:
        if self._entrypoint_simulations_bytecode is None:
            self._entrypoint_simulations_bytecode = load_bytecode(
                ENTRYPOINT_V7_SIMULATIONS_FILE, self.config.contracts_dir)
        return self._entrypoint_simulations_bytecode

    async def simulate_handle_op(
        self,
        user_operation: UserOperationV7,
        target_address: Address,
        target_call_data: str,
        state_overrides: StateOverrideSet | None = None,
        with_default_overrides: bool = True,
    ) -> ExecutionResultV7:
        call_data = encode_function_call(
            SIMULATE_HANDLE_OP_V7,
            [PACKED_USER_OPERATION_TUPLE_TYPE, "address", "bytes"],
            [
                to_packed_user_operation(user_operation),
                target_address,
                bytes.fromhex(target_call_data[2:]),
            ],
        )

        if with_default_overrides:
            state_overrides = merge_state_overrides(
                StateOverrideBuilder().override_balance(
                    user_operation.sender_address,
                    self.config.sender_balance_override
                ).build(),
                state_overrides,
            )
        final_state_overrides = merge_state_overrides(
            state_overrides,
            StateOverrideBuilder().override_code(
                self.address, self.entrypoint_simulations_bytecode
            ).build(),
        )

        try:
            result = await self.eth_client.call(
                self.address, call_data, final_state_overrides)
        except RpcRequestError as err:
            self.parse_simulate_handle_op_error(err)

        try:
            (execution_result,) = decode(
                EXECUTION_RESULT_V7_TYPES, bytes.fromhex(result[2:]))
        except (DecodingError, ValueError):
            raise ParseError(result)
        return ExecutionResultV7(*execution_result)

    @staticmethod
    def parse_simulate_handle_op_error(err: Any) -> NoReturn:
        raise_if_state_override_unsupported(err)
        error_data = parse_error_data(err)
        error_name, error_params = decode_error_result(
            error_data, ENTRYPOINT_V7_ERRORS)
        # FailedOp(opIndex, reason), FailedOpWithRevert(opIndex, reason, inner)
        # and Error(reason)
        reason = error_params[1] if error_name != "Error" else error_params[0]
        logging.debug(f"simulateHandleOp reverted with {error_name}: {reason}")
        raise SimulateHandleOpError(str(reason))

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
        self, user_operation: UserOperationV7, beneficiary: Address
    ) -> str:
        return encode_handleops_calldata_v7(
            [to_packed_user_operation(user_operation)], beneficiary)
