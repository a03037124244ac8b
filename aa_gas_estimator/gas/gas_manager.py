from abc import ABC, abstractmethod
import logging

from aa_gas_estimator.config import PreVerificationGasOverheads
from aa_gas_estimator.typing import Address
from aa_gas_estimator.user_operation.models import AnyUserOperation
from aa_gas_estimator.user_operation.v6.user_operation_v6 import \
    UserOperationV6, pack_user_operation as pack_user_operation_v6
from aa_gas_estimator.user_operation.v7.user_operation_v7 import \
    pack_user_operation as pack_user_operation_v7
from aa_gas_estimator.utils.eth_client_utils import \
    EthClient, encode_handleops_calldata_v6, encode_handleops_calldata_v7

# random non zero gas values, so the packed size doesn't depend on the actual
# gas values of the operation
PLACEHOLDER_VERIFICATION_GAS_LIMIT = 0xab8621df9b
PLACEHOLDER_CALL_GAS_LIMIT = 0xa51448df8c
PLACEHOLDER_PRE_VERIFICATION_GAS = 0xa8d2755f7a
PLACEHOLDER_MAX_PRIORITY_FEE_PER_GAS = 0xa4f91cbf5f
PLACEHOLDER_MAX_FEE_PER_GAS = 0xa76e216f4b


def ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def with_placeholder_gas_values(
    user_operation: AnyUserOperation, signature_size: int = 65
) -> AnyUserOperation:
    placeholder_fields = {
        "call_gas_limit": PLACEHOLDER_CALL_GAS_LIMIT,
        "verification_gas_limit": PLACEHOLDER_VERIFICATION_GAS_LIMIT,
        "pre_verification_gas": PLACEHOLDER_PRE_VERIFICATION_GAS,
        "max_fee_per_gas": PLACEHOLDER_MAX_FEE_PER_GAS,
        "max_priority_fee_per_gas": PLACEHOLDER_MAX_PRIORITY_FEE_PER_GAS,
    }
    if not isinstance(user_operation, UserOperationV6) and (
        user_operation.has_paymaster()
    ):
        placeholder_fields["paymaster_verification_gas_limit"] = (
            PLACEHOLDER_VERIFICATION_GAS_LIMIT)
        placeholder_fields["paymaster_post_op_gas_limit"] = (
            PLACEHOLDER_CALL_GAS_LIMIT)

    # set a dummy signature only if the user didn't supply any
    if len(user_operation.signature) < signature_size:
        placeholder_fields["signature"] = b"\x01" * signature_size

    return user_operation.copy_with(**placeholder_fields)


def encode_handleops_calldata(
    user_operation: AnyUserOperation, beneficiary: Address
) -> str:
    if isinstance(user_operation, UserOperationV6):
        return encode_handleops_calldata_v6(
            [user_operation.to_list()], beneficiary)
    return encode_handleops_calldata_v7(
        [user_operation.to_list()], beneficiary)


class GasManager(ABC):
    """
    Pre verification gas estimation for one chain stack.

    The base pre verification gas covers the calldata and the fixed per
    operation overheads. Rollup stacks add the L1 data fee converted to L2 gas.
    """
    eth_client: EthClient
    overheads: PreVerificationGasOverheads

    def __init__(
        self,
        eth_client: EthClient,
        overheads: PreVerificationGasOverheads = PreVerificationGasOverheads(),
    ):
        self.eth_client = eth_client
        self.overheads = overheads

    async def estimate_preverification_gas(
        self,
        user_operation: AnyUserOperation,
        entrypoint: Address,
        base_fee_per_gas: int | None = None,
    ) -> int:
        base_preverification_gas = self.calc_base_preverification_gas(
            user_operation)
        l1_gas = await self.calc_l1_gas_estimate(
            user_operation, entrypoint, base_fee_per_gas)
        logging.debug(
            f"preVerificationGas base: {base_preverification_gas} l1: {l1_gas}")

        return base_preverification_gas + l1_gas

    @abstractmethod
    async def calc_l1_gas_estimate(
        self,
        user_operation: AnyUserOperation,
        entrypoint: Address,
        base_fee_per_gas: int | None,
    ) -> int:
        pass

    def calc_base_preverification_gas(
        self, user_operation: AnyUserOperation
    ) -> int:
        user_operation = with_placeholder_gas_values(
            user_operation, self.overheads.signature_size)

        if isinstance(user_operation, UserOperationV6):
            packed = pack_user_operation_v6(user_operation.to_list(), False)
        else:
            packed = pack_user_operation_v7(user_operation.to_list(), False)

        packed_length = len(packed)
        zero_byte_count = packed.count(b"\x00")
        non_zero_byte_count = packed_length - zero_byte_count
        call_data_cost = (
            zero_byte_count * self.overheads.zero_byte +
            non_zero_byte_count * self.overheads.non_zero_byte
        )

        length_in_words = (packed_length + 31) // 32

        pre_verification_gas = (
            call_data_cost
            + (self.overheads.fixed / self.overheads.bundle_size)
            + self.overheads.per_user_operation
            + self.overheads.per_user_operation_word * length_in_words
        )

        # round half up to the nearest integer
        return int(pre_verification_gas + 0.5)


class EVMGasManager(GasManager):
    async def calc_l1_gas_estimate(
        self,
        user_operation: AnyUserOperation,
        entrypoint: Address,
        base_fee_per_gas: int | None,
    ) -> int:
        return 0
