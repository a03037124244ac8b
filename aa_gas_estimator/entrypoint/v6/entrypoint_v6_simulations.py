from dataclasses import dataclass
import logging

from aa_gas_estimator.config import GasEstimatorConfig
from aa_gas_estimator.entrypoint.constants import \
    CALL_GAS_ESTIMATION_SIMULATOR_ERRORS, CALL_GAS_ESTIMATION_SIMULATOR_FILE, \
    ENTRYPOINT_V6_ADDRESS, ESTIMATE_CALL_GAS, ESTIMATE_VERIFICATION_GAS, \
    VERIFICATION_GAS_ESTIMATION_SIMULATOR_ERRORS, \
    VERIFICATION_GAS_ESTIMATION_SIMULATOR_FILE
from aa_gas_estimator.exceptions import \
    RpcError, RpcErrorCode, RpcRequestError, SimulateHandleOpError, \
    UnknownError, ValidationError
from aa_gas_estimator.state_override.state_override import \
    StateOverrideBuilder, merge_state_overrides
from aa_gas_estimator.typing import Address, StateOverrideSet
from aa_gas_estimator.user_operation.v6.user_operation_v6 import \
    UserOperationV6, USER_OPERATION_V6_TUPLE_TYPE
from aa_gas_estimator.utils.decode import \
    decode_error_result, handle_failed_op, parse_error_data
from aa_gas_estimator.utils.eth_client_utils import \
    EthClient, encode_function_call
from aa_gas_estimator.utils.load_bytecode import load_bytecode
from .entrypoint_v6 import EntryPointV6


@dataclass(frozen=True)
class EstimateVerificationGasLimitResult:
    verification_gas_limit: int
    valid_after: int
    valid_until: int


class EntryPointV6Simulations(EntryPointV6):
    """
    EntryPoint v0.6 with the binary search estimators.

    Both estimators substitute a simulator contract for the entrypoint code
    through a code override on the entrypoint address itself, so the account
    still sees the entrypoint as msg.sender.

    The simulators narrow the gas window inside a single eth_call and revert
    with a Continuation when they run out of gas before converging. The
    client then re-issues the call with the narrowed window up to
    binary_search_max_rounds times, and returns the middle of the last window
    as the estimate.
    """
    _verification_gas_estimation_simulator_bytecode: str | None
    _call_gas_estimation_simulator_bytecode: str | None

    def __init__(
        self,
        eth_client: EthClient,
        address: Address = ENTRYPOINT_V6_ADDRESS,
        config: GasEstimatorConfig = GasEstimatorConfig(),
        verification_gas_estimation_simulator_bytecode: str | None = None,
        call_gas_estimation_simulator_bytecode: str | None = None,
    ):
        super().__init__(eth_client, address, config)
        self._verification_gas_estimation_simulator_bytecode = (
            verification_gas_estimation_simulator_bytecode
        )
        self._call_gas_estimation_simulator_bytecode = (
            call_gas_estimation_simulator_bytecode
        )

    @property
    def verification_gas_estimation_simulator_bytecode(self) -> str:
        if self._verification_gas_estimation_simulator_bytecode is None:
            self._verification_gas_estimation_simulator_bytecode = load_bytecode(
                VERIFICATION_GAS_ESTIMATION_SIMULATOR_FILE,
                self.config.contracts_dir
            )
        return self._verification_gas_estimation_simulator_bytecode

    @property
    def call_gas_estimation_simulator_bytecode(self) -> str:
        if self._call_gas_estimation_simulator_bytecode is None:
            self._call_gas_estimation_simulator_bytecode = load_bytecode(
                CALL_GAS_ESTIMATION_SIMULATOR_FILE,
                self.config.contracts_dir
            )
        return self._call_gas_estimation_simulator_bytecode

    async def estimate_verification_gas_limit(
        self,
        user_operation: UserOperationV6,
        state_overrides: StateOverrideSet | None = None,
        with_default_overrides: bool = True,
    ) -> EstimateVerificationGasLimitResult:
        verify_account_deployed(user_operation)

        # first iteration should run at max vgl
        user_operation = user_operation.copy_with(
            verification_gas_limit=self.config.binary_search_max_gas)

        if with_default_overrides:
            # caller overrides win on conflict
            state_overrides = merge_state_overrides(
                StateOverrideBuilder().override_balance(
                    user_operation.sender_address,
                    self.config.sender_balance_override
                ).build(),
                state_overrides
            )

        # the simulator code override always wins over the caller overrides
        final_state_overrides = merge_state_overrides(
            state_overrides,
            StateOverrideBuilder().override_code(
                self.address,
                self.verification_gas_estimation_simulator_bytecode
            ).build()
        )

        min_gas = self.config.binary_search_min_gas
        max_gas = self.config.binary_search_max_gas
        is_continuation = False
        for round_number in range(1, self.config.binary_search_max_rounds + 1):
            call_data = encode_function_call(
                ESTIMATE_VERIFICATION_GAS,
                [f"({USER_OPERATION_V6_TUPLE_TYPE},uint256,uint256,uint256,bool)"],
                [[
                    user_operation.to_list(),
                    min_gas,
                    max_gas,
                    self.config.binary_search_rounding,
                    is_continuation,
                ]],
            )
            try:
                await self.eth_client.call(
                    self.address, call_data, final_state_overrides)
            except RpcRequestError as err:
                error_data = parse_error_data(err)
            else:
                logging.critical("estimateVerificationGas didn't revert!")
                raise SimulateHandleOpError(
                    "EstimateVerificationGasLimit should always revert")

            error_name, error_params = decode_error_result(
                error_data, VERIFICATION_GAS_ESTIMATION_SIMULATOR_ERRORS)

            if error_name == "EstimateVerificationGasContinuation":
                min_gas, max_gas, valid_after, valid_until, num_rounds = (
                    error_params)
                logging.debug(
                    "estimateVerificationGas continuation "
                    f"min: {min_gas} max: {max_gas} rounds: {num_rounds}"
                )
                if round_number == self.config.binary_search_max_rounds:
                    return EstimateVerificationGasLimitResult(
                        (min_gas + max_gas) // 2,
                        valid_after,
                        valid_until,
                    )
                is_continuation = True
                continue

            return self.parse_estimate_verification_gas_limit_result(
                error_name, error_params)

        raise ValueError("binary_search_max_rounds must be at least 1")

    @staticmethod
    def parse_estimate_verification_gas_limit_result(
        error_name: str, error_params: tuple
    ) -> EstimateVerificationGasLimitResult:
        if error_name == "EstimateVerificationGasResult":
            gas_estimate, valid_after, valid_until, _ = error_params
            return EstimateVerificationGasLimitResult(
                gas_estimate, valid_after, valid_until)
        elif error_name == "FailedOp":
            _, reason = error_params
            raise handle_failed_op(reason)
        elif error_name == "FailedOpError":
            # the simulator wraps the entrypoint revert data in bytes
            inner_error_name, inner_error_params = decode_error_result(
                "0x" + error_params[0].hex(),
                VERIFICATION_GAS_ESTIMATION_SIMULATOR_ERRORS,
            )
            raise handle_failed_op(str(inner_error_params[-1]))
        elif error_name == "Error":
            raise handle_failed_op(error_params[0])
        elif error_name == "EstimateVerificationGasRevertAtMax":
            raise RpcError(
                RpcErrorCode.SIMULATE_VALIDATION_FAILED,
                "UserOperation reverted during verification phase",
            )

        raise UnknownError(error_name, error_params)

    async def estimate_call_gas_limit(
        self,
        user_operation: UserOperationV6,
        state_overrides: StateOverrideSet | None = None,
        with_default_overrides: bool = True,
    ) -> int:
        verify_account_deployed(user_operation)

        # the call data is executed by the simulator only, not by the entrypoint
        user_operation = user_operation.copy_with(call_gas_limit=0)

        final_state_overrides = merge_state_overrides(
            state_overrides,
            StateOverrideBuilder().override_code(
                self.address,
                self.call_gas_estimation_simulator_bytecode
            ).build()
        )

        min_gas = self.config.binary_search_min_gas
        max_gas = self.config.binary_search_max_gas
        is_continuation = False
        for round_number in range(1, self.config.binary_search_max_rounds + 1):
            estimate_call_gas_call_data = encode_function_call(
                ESTIMATE_CALL_GAS,
                ["(address,bytes,uint256,uint256,uint256,bool)"],
                [[
                    user_operation.sender_address,
                    user_operation.call_data,
                    min_gas,
                    max_gas,
                    self.config.binary_search_rounding,
                    is_continuation,
                ]],
            )
            # the simulator is the entrypoint, it calls itself as the target
            execution_result = await self.simulate_handle_op(
                user_operation,
                self.address,
                estimate_call_gas_call_data,
                final_state_overrides,
                with_default_overrides,
            )

            error_name, error_params = decode_error_result(
                "0x" + execution_result.target_result.hex(),
                CALL_GAS_ESTIMATION_SIMULATOR_ERRORS,
            )

            if error_name == "EstimateCallGasContinuation":
                min_gas, max_gas, num_rounds = error_params
                logging.debug(
                    "estimateCallGas continuation "
                    f"min: {min_gas} max: {max_gas} rounds: {num_rounds}"
                )
                if round_number == self.config.binary_search_max_rounds:
                    return (min_gas + max_gas) // 2
                is_continuation = True
                continue
            elif error_name == "EstimateCallGasResult":
                return error_params[0]
            elif error_name == "EstimateCallGasRevertAtMax":
                raise RpcError(
                    RpcErrorCode.SIMULATE_VALIDATION_FAILED,
                    "UserOperation reverted during execution phase",
                )

            raise UnknownError(error_name, error_params)

        raise ValueError("binary_search_max_rounds must be at least 1")


def verify_account_deployed(user_operation: UserOperationV6) -> None:
    if not user_operation.is_account_deployed():
        raise ValidationError(
            "Binary search gas estimation requires a deployed account, "
            "initCode must be empty"
        )
