import logging

from aa_gas_estimator.exceptions import ValidationError
from aa_gas_estimator.typing import Address
from aa_gas_estimator.user_operation.models import AnyUserOperation
from .gas_manager import GasManager, ceil_div, encode_handleops_calldata, \
    with_placeholder_gas_values

OPTIMISM_GAS_PRICE_ORACLE_ADDRESS = Address(
    "0x420000000000000000000000000000000000000F")


class OptimismGasManager(GasManager):
    async def calc_l1_gas_estimate(
        self,
        user_operation: AnyUserOperation,
        entrypoint: Address,
        base_fee_per_gas: int | None,
    ) -> int:
        if base_fee_per_gas is None:
            raise ValidationError(
                "baseFeePerGas is required to estimate the L1 fee on optimism")

        l2_gas_price = min(
            user_operation.max_fee_per_gas,
            base_fee_per_gas + user_operation.max_priority_fee_per_gas
        )
        if l2_gas_price == 0:
            raise ValidationError("L2 gas price must be greater than zero")

        # currently most bundles contains a single useroperation
        # so l1 fees is calculated for the full handleops transaction
        handleops_calldata = encode_handleops_calldata(
            with_placeholder_gas_values(
                user_operation, self.overheads.signature_size),
            user_operation.sender_address,
        )

        (l1_fee,) = await self.eth_client.read_contract(
            OPTIMISM_GAS_PRICE_ORACLE_ADDRESS,
            "getL1Fee(bytes)",
            ["bytes"],
            [bytes.fromhex(handleops_calldata[2:])],
            ["uint256"],
        )
        logging.debug(f"optimism l1 fee: {l1_fee} l2 gas price: {l2_gas_price}")

        return ceil_div(l1_fee, l2_gas_price)
