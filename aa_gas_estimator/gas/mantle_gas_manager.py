import asyncio
import logging

from rlp import encode as rlp_encode

from aa_gas_estimator.exceptions import ValidationError
from aa_gas_estimator.typing import Address
from aa_gas_estimator.user_operation.models import AnyUserOperation
from .gas_manager import GasManager, ceil_div, encode_handleops_calldata, \
    with_placeholder_gas_values

MANTLE_BVM_GAS_PRICE_ORACLE_ADDRESS = Address(
    "0x420000000000000000000000000000000000000F")
MANTLE_L1_ROLL_UP_FEE_DIVISION_FACTOR = 1_000_000


class MantleGasManager(GasManager):
    async def calc_l1_gas_estimate(
        self,
        user_operation: AnyUserOperation,
        entrypoint: Address,
        base_fee_per_gas: int | None,
    ) -> int:
        if user_operation.max_fee_per_gas == 0:
            raise ValidationError("maxFeePerGas must be greater than zero")

        l1_fee = await self.get_l1_fee(user_operation)

        return ceil_div(l1_fee, user_operation.max_fee_per_gas)

    async def get_l1_fee(self, user_operation: AnyUserOperation) -> int:
        handleops_calldata = encode_handleops_calldata(
            with_placeholder_gas_values(
                user_operation, self.overheads.signature_size),
            user_operation.sender_address,
        )
        rlp_encoded_calldata = rlp_encode(bytes.fromhex(handleops_calldata[2:]))

        (
            (rollup_data_gas_and_overhead,),
            (scalar,),
            (token_ratio,),
            (l1_gas_price,),
        ) = await asyncio.gather(
            self.eth_client.read_contract(
                MANTLE_BVM_GAS_PRICE_ORACLE_ADDRESS,
                "getL1GasUsed(bytes)",
                ["bytes"],
                [rlp_encoded_calldata],
                ["uint256"],
            ),
            self.eth_client.read_contract(
                MANTLE_BVM_GAS_PRICE_ORACLE_ADDRESS,
                "scalar()", [], [], ["uint256"],
            ),
            self.eth_client.read_contract(
                MANTLE_BVM_GAS_PRICE_ORACLE_ADDRESS,
                "tokenRatio()", [], [], ["uint256"],
            ),
            self.eth_client.read_contract(
                MANTLE_BVM_GAS_PRICE_ORACLE_ADDRESS,
                "l1BaseFee()", [], [], ["uint256"],
            ),
        )

        l1_rollup_fee = (
            rollup_data_gas_and_overhead *
            l1_gas_price *
            token_ratio *
            scalar
        )
        logging.debug(f"mantle l1 rollup fee: {l1_rollup_fee}")

        return l1_rollup_fee // MANTLE_L1_ROLL_UP_FEE_DIVISION_FACTOR
