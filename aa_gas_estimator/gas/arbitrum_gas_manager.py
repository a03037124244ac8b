from aa_gas_estimator.typing import Address
from aa_gas_estimator.user_operation.models import AnyUserOperation
from .gas_manager import GasManager, encode_handleops_calldata, \
    with_placeholder_gas_values

ARBITRUM_NODE_INTERFACE_ADDRESS = Address(
    "0x00000000000000000000000000000000000000C8")


class ArbitrumGasManager(GasManager):
    async def calc_l1_gas_estimate(
        self,
        user_operation: AnyUserOperation,
        entrypoint: Address,
        base_fee_per_gas: int | None,
    ) -> int:
        handleops_calldata = encode_handleops_calldata(
            with_placeholder_gas_values(
                user_operation, self.overheads.signature_size),
            user_operation.sender_address,
        )

        # the l1 component is already in l2 gas units
        gas_estimate_for_l1, _, _ = await self.eth_client.read_contract(
            ARBITRUM_NODE_INTERFACE_ADDRESS,
            "gasEstimateL1Component(address,bool,bytes)",
            ["address", "bool", "bytes"],  # to  # contractCreation  # data
            [entrypoint, False, bytes.fromhex(handleops_calldata[2:])],
            [
                "uint64",  # gasEstimateForL1
                "uint256",  # baseFee
                "uint256",  # l1BaseFeeEstimate
            ],
        )

        return gas_estimate_for_l1
