import asyncio
import copy
from dataclasses import dataclass
import logging
from typing import Any

from aa_gas_estimator.chains import ChainStack, SimulationLimits, SupportedChain
from aa_gas_estimator.config import GasEstimatorConfig
from aa_gas_estimator.entrypoint.constants import EntryPointVersion
from aa_gas_estimator.entrypoint.v6.entrypoint_v6_simulations import \
    EntryPointV6Simulations
from aa_gas_estimator.entrypoint.v7.entrypoint_v7_simulations import \
    EntryPointV7Simulations
from aa_gas_estimator.exceptions import \
    RpcError, RpcErrorCode, SimulateHandleOpError, ValidationError
from aa_gas_estimator.state_override.state_override import StateOverrideBuilder
from aa_gas_estimator.typing import Address, StateOverrideSet
from aa_gas_estimator.user_operation.models import \
    GasEstimate, GasEstimateV6, GasEstimateV7, validate_user_operation
from aa_gas_estimator.user_operation.v6.user_operation_v6 import UserOperationV6
from aa_gas_estimator.user_operation.v7.user_operation_v7 import UserOperationV7
from aa_gas_estimator.utils.decode import handle_failed_op
from aa_gas_estimator.utils.eth_client_utils import EthClient, ZERO_ADDRESS
from .arbitrum_gas_manager import ArbitrumGasManager
from .gas_manager import EVMGasManager, GasManager
from .mantle_gas_manager import MantleGasManager
from .optimism_gas_manager import OptimismGasManager

# intrinsic gas of the transaction measured by eth_estimateGas
BASE_TRANSACTION_GAS = 21_000
# gas spent by the entrypoint around the inner call to the account
INNER_GAS_OVERHEAD = 10_000

FEE_STRATEGIES: dict[ChainStack, type[GasManager]] = {
    ChainStack.EVM: EVMGasManager,
    ChainStack.OPTIMISM: OptimismGasManager,
    ChainStack.ARBITRUM: ArbitrumGasManager,
    ChainStack.MANTLE: MantleGasManager,
}


def bump_percent(value: int, percent: int) -> int:
    return value + value * percent // 100


@dataclass(frozen=True)
class EstimateUserOperationGasOptions:
    entrypoint_address: Address | None = None
    # defaults to the chain bytecode override support
    use_binary_search: bool | None = None
    # skip the sender balance and paymaster deposit overrides
    simulation_only: bool = False


class GasEstimator:
    chain: SupportedChain
    eth_client: EthClient
    entrypoint_v6: EntryPointV6Simulations
    entrypoint_v7: EntryPointV7Simulations
    gas_manager: GasManager
    config: GasEstimatorConfig

    def __init__(
        self,
        chain: SupportedChain,
        eth_client: EthClient,
        entrypoint_v6: EntryPointV6Simulations,
        entrypoint_v7: EntryPointV7Simulations,
        gas_manager: GasManager,
        config: GasEstimatorConfig = GasEstimatorConfig(),
    ):
        self.chain = chain
        self.eth_client = eth_client
        self.entrypoint_v6 = entrypoint_v6
        self.entrypoint_v7 = entrypoint_v7
        self.gas_manager = gas_manager
        self.config = config

    async def estimate_user_operation_gas(
        self,
        unestimated_user_operation: dict[str, Any],
        base_fee_per_gas: int | None = None,
        state_overrides: StateOverrideSet | None = None,
        options: EstimateUserOperationGasOptions | None = None,
    ) -> GasEstimate:
        if options is None:
            options = EstimateUserOperationGasOptions()

        if not isinstance(unestimated_user_operation, dict):
            raise ValidationError("Invalid UserOperation")
        limits = self.get_simulation_limits()
        user_operation = validate_user_operation(
            unestimated_user_operation | {
                "preVerificationGas": hex(limits.pre_verification_gas),
                "verificationGasLimit": hex(limits.verification_gas_limit),
                "callGasLimit": hex(limits.call_gas_limit),
            }
        )

        if isinstance(user_operation, UserOperationV6):
            version = EntryPointVersion.V060
        else:
            version = EntryPointVersion.V070
        entrypoint_address = (
            options.entrypoint_address or self.chain.entrypoints[version])

        use_binary_search = options.use_binary_search
        if use_binary_search is None:
            use_binary_search = self.chain.state_override_support.bytecode

        logging.debug(
            f"Estimating gas for {user_operation.sender_address} on "
            f"{self.chain.name} with entrypoint {version.value} "
            f"binary search: {use_binary_search}"
        )

        if not self.chain.supports_any_state_override():
            return await self.estimate_without_state_overrides(
                user_operation, entrypoint_address, base_fee_per_gas)

        final_state_overrides = self.build_state_overrides(
            user_operation, entrypoint_address, state_overrides, options)

        if isinstance(user_operation, UserOperationV6):
            entrypoint_v6 = self._bind_entrypoint(
                self.entrypoint_v6, entrypoint_address)
            if use_binary_search and user_operation.is_account_deployed():
                return await self.estimate_with_binary_search(
                    user_operation,
                    entrypoint_v6,
                    base_fee_per_gas,
                    final_state_overrides,
                )
            return await self.estimate_v6(
                user_operation,
                entrypoint_v6,
                base_fee_per_gas,
                final_state_overrides,
            )

        entrypoint_v7 = self._bind_entrypoint(
            self.entrypoint_v7, entrypoint_address)
        return await self.estimate_v7(
            user_operation,
            entrypoint_v7,
            base_fee_per_gas,
            final_state_overrides,
        )

    def get_simulation_limits(self) -> SimulationLimits:
        if self.chain.simulation is not None:
            return self.chain.simulation
        return SimulationLimits(
            self.config.simulation_pre_verification_gas,
            self.config.simulation_verification_gas_limit,
            self.config.simulation_call_gas_limit,
        )

    def build_state_overrides(
        self,
        user_operation: UserOperationV6 | UserOperationV7,
        entrypoint_address: Address,
        state_overrides: StateOverrideSet | None,
        options: EstimateUserOperationGasOptions,
    ) -> StateOverrideSet:
        builder = StateOverrideBuilder(state_overrides)
        if (
            options.simulation_only or
            not self.chain.state_override_support.balance
        ):
            return builder.build()

        # avoid insufficient funds failures during the simulation
        builder.override_balance(
            user_operation.sender_address, self.config.sender_balance_override)

        if (
            isinstance(user_operation, UserOperationV7) and
            user_operation.paymaster is not None and
            self.chain.state_override_support.state_diff
        ):
            builder.override_paymaster_deposit(
                entrypoint_address,
                user_operation.paymaster,
                storage_key=self.chain.paymaster_deposit_state_keys.get(
                    user_operation.paymaster),
            )
        return builder.build()

    async def estimate_with_binary_search(
        self,
        user_operation: UserOperationV6,
        entrypoint: EntryPointV6Simulations,
        base_fee_per_gas: int | None,
        state_overrides: StateOverrideSet,
    ) -> GasEstimateV6:
        (
            verification_gas_limit_result,
            call_gas_limit,
            pre_verification_gas,
        ) = await asyncio.gather(
            entrypoint.estimate_verification_gas_limit(
                user_operation, state_overrides, with_default_overrides=False),
            entrypoint.estimate_call_gas_limit(
                user_operation, state_overrides, with_default_overrides=False),
            self.gas_manager.estimate_preverification_gas(
                user_operation, entrypoint.address, base_fee_per_gas),
        )
        logging.debug(
            "binary search estimate "
            f"vgl: {verification_gas_limit_result.verification_gas_limit} "
            f"cgl: {call_gas_limit} pvg: {pre_verification_gas}"
        )

        return GasEstimateV6(
            call_gas_limit=call_gas_limit,
            verification_gas_limit=(
                verification_gas_limit_result.verification_gas_limit),
            pre_verification_gas=pre_verification_gas,
            valid_after=verification_gas_limit_result.valid_after,
            valid_until=verification_gas_limit_result.valid_until,
        )

    async def estimate_v6(
        self,
        user_operation: UserOperationV6,
        entrypoint: EntryPointV6Simulations,
        base_fee_per_gas: int | None,
        state_overrides: StateOverrideSet,
    ) -> GasEstimateV6:
        # pin the fees so paid / fee gives back the gas used
        simulation_user_operation = user_operation.copy_with(
            max_fee_per_gas=self.config.override_max_fee_per_gas,
            max_priority_fee_per_gas=(
                self.config.override_max_priority_fee_per_gas),
        )

        execution_result, pre_verification_gas = await asyncio.gather(
            entrypoint.simulate_handle_op(
                simulation_user_operation,
                ZERO_ADDRESS,
                "0x",
                state_overrides,
                with_default_overrides=False,
            ),
            self.gas_manager.estimate_preverification_gas(
                user_operation, entrypoint.address, base_fee_per_gas),
        )

        verification_gas_limit = (
            execution_result.pre_op_gas -
            simulation_user_operation.pre_verification_gas
        )
        call_gas_limit = (
            execution_result.paid // simulation_user_operation.max_fee_per_gas -
            execution_result.pre_op_gas
        )

        return self._gas_estimate_v6(
            call_gas_limit,
            verification_gas_limit,
            pre_verification_gas,
            execution_result.valid_after,
            execution_result.valid_until,
        )

    async def estimate_v7(
        self,
        user_operation: UserOperationV7,
        entrypoint: EntryPointV7Simulations,
        base_fee_per_gas: int | None,
        state_overrides: StateOverrideSet,
    ) -> GasEstimateV7:
        (
            execution_result,
            pre_verification_gas,
            execution_gas,
        ) = await asyncio.gather(
            entrypoint.simulate_handle_op(
                user_operation,
                entrypoint.address,
                "0x",
                state_overrides,
                with_default_overrides=False,
            ),
            self.gas_manager.estimate_preverification_gas(
                user_operation, entrypoint.address, base_fee_per_gas),
            self.eth_client.estimate_gas(
                entrypoint.address,
                user_operation.sender_address,
                "0x" + user_operation.call_data.hex(),
            ),
        )

        verification_gas_limit = (
            execution_result.pre_op_gas - user_operation.pre_verification_gas)

        paymaster_verification_gas_limit = 0
        paymaster_post_op_gas_limit = 0
        if user_operation.has_paymaster():
            paymaster_verification_gas_limit = verification_gas_limit
            paymaster_post_op_gas_limit = verification_gas_limit

        call_gas_limit = (
            execution_gas
            - BASE_TRANSACTION_GAS
            + INNER_GAS_OVERHEAD
            + paymaster_post_op_gas_limit
        )

        markup = self.config.gas_limit_markup_percent
        logging.debug(
            f"v7 estimate vgl: {verification_gas_limit} cgl: {call_gas_limit} "
            f"pvg: {pre_verification_gas} markup: {markup}%"
        )
        return GasEstimateV7(
            call_gas_limit=bump_percent(call_gas_limit, markup),
            verification_gas_limit=bump_percent(verification_gas_limit, markup),
            pre_verification_gas=pre_verification_gas,
            paymaster_verification_gas_limit=paymaster_verification_gas_limit,
            paymaster_post_op_gas_limit=paymaster_post_op_gas_limit,
        )

    async def estimate_without_state_overrides(
        self,
        user_operation: UserOperationV6 | UserOperationV7,
        entrypoint_address: Address,
        base_fee_per_gas: int | None,
    ) -> GasEstimateV6:
        if not isinstance(user_operation, UserOperationV6):
            raise RpcError(
                RpcErrorCode.UNABLE_TO_PROCESS_USER_OP,
                "EntryPoint v0.7 estimation requires state override support "
                f"and {self.chain.name} has none",
            )

        entrypoint = self._bind_entrypoint(
            self.entrypoint_v6, entrypoint_address)
        simulation_user_operation = user_operation.copy_with(
            max_fee_per_gas=self.config.override_max_fee_per_gas,
            max_priority_fee_per_gas=(
                self.config.override_max_priority_fee_per_gas),
            pre_verification_gas=self.config.override_pre_verification_gas,
            verification_gas_limit=self.config.override_verification_gas_limit,
            call_gas_limit=self.config.override_call_gas_limit,
        )

        try:
            execution_result = await entrypoint.simulate_handle_op(
                simulation_user_operation,
                ZERO_ADDRESS,
                "0x",
                None,
                with_default_overrides=False,
            )
        except SimulateHandleOpError as err:
            raise handle_failed_op(err.message)

        pre_verification_gas = (
            await self.gas_manager.estimate_preverification_gas(
                user_operation, entrypoint.address, base_fee_per_gas)
        )

        verification_gas_limit = (
            execution_result.pre_op_gas -
            simulation_user_operation.pre_verification_gas
        )
        call_gas_limit = (
            execution_result.paid // simulation_user_operation.max_fee_per_gas -
            execution_result.pre_op_gas
        )

        return self._gas_estimate_v6(
            call_gas_limit,
            verification_gas_limit,
            pre_verification_gas,
            execution_result.valid_after,
            execution_result.valid_until,
        )

    def _gas_estimate_v6(
        self,
        call_gas_limit: int,
        verification_gas_limit: int,
        pre_verification_gas: int,
        valid_after: int,
        valid_until: int,
    ) -> GasEstimateV6:
        markup = self.config.gas_limit_markup_percent
        logging.debug(
            f"v6 estimate vgl: {verification_gas_limit} cgl: {call_gas_limit} "
            f"pvg: {pre_verification_gas} markup: {markup}%"
        )
        return GasEstimateV6(
            call_gas_limit=bump_percent(call_gas_limit, markup),
            verification_gas_limit=bump_percent(verification_gas_limit, markup),
            pre_verification_gas=pre_verification_gas,
            valid_after=valid_after,
            valid_until=valid_until,
        )

    @staticmethod
    def _bind_entrypoint(entrypoint, address: Address):
        if entrypoint.address.lower() == address.lower():
            return entrypoint
        bound_entrypoint = copy.copy(entrypoint)
        bound_entrypoint.address = address
        return bound_entrypoint


def create_gas_estimator(
    chain: SupportedChain,
    eth_client: EthClient,
    config: GasEstimatorConfig = GasEstimatorConfig(),
    verification_gas_estimation_simulator_bytecode: str | None = None,
    call_gas_estimation_simulator_bytecode: str | None = None,
    entrypoint_simulations_bytecode: str | None = None,
) -> GasEstimator:
    gas_manager_class = FEE_STRATEGIES[chain.stack]
    return GasEstimator(
        chain=chain,
        eth_client=eth_client,
        entrypoint_v6=EntryPointV6Simulations(
            eth_client,
            chain.entrypoints[EntryPointVersion.V060],
            config,
            verification_gas_estimation_simulator_bytecode,
            call_gas_estimation_simulator_bytecode,
        ),
        entrypoint_v7=EntryPointV7Simulations(
            eth_client,
            chain.entrypoints[EntryPointVersion.V070],
            config,
            entrypoint_simulations_bytecode,
        ),
        gas_manager=gas_manager_class(
            eth_client, config.pre_verification_gas_overheads),
        config=config,
    )
