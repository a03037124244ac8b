from dataclasses import InitVar, dataclass
from typing import Any

from eth_abi import encode
from aa_gas_estimator.exceptions import ValidationError
from aa_gas_estimator.typing import Address
from ..user_operation import \
    UserOperation, UserOperationField, encode_with_hashed_dynamic_fields, \
    hash_packed_user_operation, to_json_value, verify_and_get_address, \
    verify_and_get_bytes, verify_and_get_uint

PACKED_USER_OPERATION_TUPLE_TYPE = (
    "(address,uint256,bytes,bytes,bytes32,uint256,bytes32,bytes,bytes)"
)

PACKED_USER_OPERATION_FIELD_TYPES = [
    "address",  # sender
    "uint256",  # nonce
    "bytes",  # initCode
    "bytes",  # callData
    "bytes32",  # accountGasLimits
    "uint256",  # preVerificationGas
    "bytes32",  # gasFees
    "bytes",  # paymasterAndData
    "bytes",  # signature
]

USER_OPERATION_V7_REQUIRED_FIELDS: list[UserOperationField] = [
    ("sender", "sender_address", verify_and_get_address),
    ("nonce", "nonce", verify_and_get_uint),
    ("callData", "call_data", verify_and_get_bytes),
    ("callGasLimit", "call_gas_limit", verify_and_get_uint),
    ("verificationGasLimit", "verification_gas_limit", verify_and_get_uint),
    ("preVerificationGas", "pre_verification_gas", verify_and_get_uint),
    ("maxFeePerGas", "max_fee_per_gas", verify_and_get_uint),
    ("maxPriorityFeePerGas", "max_priority_fee_per_gas", verify_and_get_uint),
    ("signature", "signature", verify_and_get_bytes),
]

# json field name -> attribute name, in the rpc json order
USER_OPERATION_V7_JSON_FIELDS = {
    "sender": "sender_address",
    "nonce": "nonce",
    "factory": "factory",
    "factoryData": "factory_data",
    "callData": "call_data",
    "callGasLimit": "call_gas_limit",
    "verificationGasLimit": "verification_gas_limit",
    "preVerificationGas": "pre_verification_gas",
    "maxFeePerGas": "max_fee_per_gas",
    "maxPriorityFeePerGas": "max_priority_fee_per_gas",
    "paymaster": "paymaster",
    "paymasterVerificationGasLimit": "paymaster_verification_gas_limit",
    "paymasterPostOpGasLimit": "paymaster_post_op_gas_limit",
    "paymasterData": "paymaster_data",
    "signature": "signature",
}


def pack_uint128_pair(high: int, low: int) -> bytes:
    return high.to_bytes(16) + low.to_bytes(16)


@dataclass()
class UserOperationV7(UserOperation):
    sender_address: Address
    nonce: int
    factory: Address | None
    factory_data: bytes | None
    call_data: bytes
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    paymaster: Address | None
    paymaster_verification_gas_limit: int | None
    paymaster_post_op_gas_limit: int | None
    paymaster_data: bytes | None
    signature: bytes
    jsonRequestDict: InitVar[dict[str, Any]]

    def __init__(self, jsonRequestDict) -> None:
        self.set_fields_from_json(
            USER_OPERATION_V7_REQUIRED_FIELDS, jsonRequestDict)
        self._set_factory(
            jsonRequestDict.get("factory"), jsonRequestDict.get("factoryData"))
        self._set_paymaster(jsonRequestDict)

    def _set_factory(self, factory: Any, factory_data: Any) -> None:
        if factory is None:
            if factory_data is not None and factory_data != "0x":
                raise ValidationError(
                    'Invalid UserOperation, '
                    '"factoryData" has to be null if "factory" is null',
                )
            self.factory = None
            self.factory_data = None
            return

        self.factory = verify_and_get_address("factory", factory)
        if factory_data is None:
            self.factory_data = None
        else:
            self.factory_data = verify_and_get_bytes("factoryData", factory_data)

    def _set_paymaster(self, jsonRequestDict: dict[str, Any]) -> None:
        paymaster = jsonRequestDict.get("paymaster")
        paymaster_verification_gas_limit = jsonRequestDict.get(
            "paymasterVerificationGasLimit")
        paymaster_post_op_gas_limit = jsonRequestDict.get(
            "paymasterPostOpGasLimit")
        paymaster_data = jsonRequestDict.get("paymasterData")

        if paymaster is None:
            if not (
                paymaster_verification_gas_limit is None and
                paymaster_post_op_gas_limit is None and
                paymaster_data is None
            ):
                raise ValidationError(
                    "Invalid UserOperation, "
                    '"paymasterVerificationGasLimit", "paymasterPostOpGasLimit" '
                    'and "paymasterData" have to be null if "paymaster" is null',
                )
            self.paymaster = None
            self.paymaster_verification_gas_limit = None
            self.paymaster_post_op_gas_limit = None
            self.paymaster_data = None
            return

        self.paymaster = verify_and_get_address("paymaster", paymaster)
        # the paymaster gas limits are estimated too, so they may be absent
        self.paymaster_verification_gas_limit = verify_and_get_uint(
            "paymasterVerificationGasLimit",
            0 if paymaster_verification_gas_limit is None
            else paymaster_verification_gas_limit
        )
        self.paymaster_post_op_gas_limit = verify_and_get_uint(
            "paymasterPostOpGasLimit",
            0 if paymaster_post_op_gas_limit is None
            else paymaster_post_op_gas_limit
        )
        self.paymaster_data = verify_and_get_bytes(
            "paymasterData",
            "0x" if paymaster_data is None else paymaster_data
        )

    def get_user_operation_json(self) -> dict[str, Address | str | None]:
        return {
            json_name: to_json_value(getattr(self, attribute))
            for json_name, attribute in USER_OPERATION_V7_JSON_FIELDS.items()
        }

    def to_list(self) -> list[Address | int | bytes]:
        """
        The PackedUserOperation field list used on chain.
        """
        init_code = bytes(0)
        if self.factory is not None:
            init_code = (
                bytes.fromhex(self.factory[2:]) + (self.factory_data or b""))

        paymaster_and_data = bytes(0)
        if self.paymaster is not None:
            paymaster_and_data = (
                bytes.fromhex(self.paymaster[2:]) +
                pack_uint128_pair(
                    self.paymaster_verification_gas_limit or 0,
                    self.paymaster_post_op_gas_limit or 0,
                ) +
                (self.paymaster_data or b"")
            )

        return [
            self.sender_address,
            self.nonce,
            init_code,
            self.call_data,
            pack_uint128_pair(self.verification_gas_limit, self.call_gas_limit),
            self.pre_verification_gas,
            pack_uint128_pair(
                self.max_priority_fee_per_gas, self.max_fee_per_gas),
            paymaster_and_data,
            self.signature,
        ]

    def is_account_deployed(self) -> bool:
        return self.factory is None

    def has_paymaster(self) -> bool:
        return self.paymaster is not None


def to_packed_user_operation(user_operation: UserOperationV7) -> list[Any]:
    return user_operation.to_list()


def get_user_operation_hash(
    user_operation_list: list,
    entrypoint_addr: str,
    chain_id: int,
) -> str:
    return hash_packed_user_operation(
        pack_user_operation_for_hashing(user_operation_list),
        entrypoint_addr,
        chain_id,
    )


def pack_user_operation_for_hashing(user_operation_list: list) -> bytes:
    # accountGasLimits and gasFees are already static bytes32 words
    return encode_with_hashed_dynamic_fields(
        PACKED_USER_OPERATION_FIELD_TYPES[:-1], user_operation_list[:-1])


def pack_user_operation(
    user_operation_list: list, for_signature: bool = True
) -> bytes:
    if for_signature:
        return pack_user_operation_for_hashing(user_operation_list)
    return encode(PACKED_USER_OPERATION_FIELD_TYPES, user_operation_list)
