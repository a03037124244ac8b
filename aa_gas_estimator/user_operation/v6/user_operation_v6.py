from dataclasses import InitVar, dataclass
from typing import Any

from eth_abi import decode, encode
from aa_gas_estimator.typing import Address
from ..user_operation import \
    UserOperation, UserOperationField, address_prefix, \
    encode_with_hashed_dynamic_fields, hash_packed_user_operation, \
    to_json_value, verify_and_get_address, verify_and_get_bytes, \
    verify_and_get_uint

USER_OPERATION_V6_TUPLE_TYPE = (
    "(address,uint256,bytes,bytes,uint256,uint256,uint256,uint256,uint256,bytes,bytes)"
)

USER_OPERATION_V6_FIELD_TYPES = [
    "address",  # sender
    "uint256",  # nonce
    "bytes",  # initCode
    "bytes",  # callData
    "uint256",  # callGasLimit
    "uint256",  # verificationGasLimit
    "uint256",  # preVerificationGas
    "uint256",  # maxFeePerGas
    "uint256",  # maxPriorityFeePerGas
    "bytes",  # paymasterAndData
    "bytes",  # signature
]

# in the on chain tuple order
USER_OPERATION_V6_FIELDS: list[UserOperationField] = [
    ("sender", "sender_address", verify_and_get_address),
    ("nonce", "nonce", verify_and_get_uint),
    ("initCode", "init_code", verify_and_get_bytes),
    ("callData", "call_data", verify_and_get_bytes),
    ("callGasLimit", "call_gas_limit", verify_and_get_uint),
    ("verificationGasLimit", "verification_gas_limit", verify_and_get_uint),
    ("preVerificationGas", "pre_verification_gas", verify_and_get_uint),
    ("maxFeePerGas", "max_fee_per_gas", verify_and_get_uint),
    ("maxPriorityFeePerGas", "max_priority_fee_per_gas", verify_and_get_uint),
    ("paymasterAndData", "paymaster_and_data", verify_and_get_bytes),
    ("signature", "signature", verify_and_get_bytes),
]


@dataclass()
class UserOperationV6(UserOperation):
    sender_address: Address
    nonce: int
    init_code: bytes
    call_data: bytes
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    paymaster_and_data: bytes
    signature: bytes
    factory_address_lowercase: Address | None
    paymaster_address_lowercase: Address | None
    jsonRequestDict: InitVar[dict[str, Any]]

    def __init__(self, jsonRequestDict) -> None:
        self.set_fields_from_json(USER_OPERATION_V6_FIELDS, jsonRequestDict)
        self.factory_address_lowercase = address_prefix(self.init_code)
        self.paymaster_address_lowercase = address_prefix(
            self.paymaster_and_data)

    def get_user_operation_json(self) -> dict[str, Address | str]:
        return {
            json_name: to_json_value(getattr(self, attribute))
            for json_name, attribute, _ in USER_OPERATION_V6_FIELDS
        }

    def to_list(self) -> list[Address | int | bytes]:
        return [
            getattr(self, attribute)
            for _, attribute, _ in USER_OPERATION_V6_FIELDS
        ]

    def is_account_deployed(self) -> bool:
        return len(self.init_code) == 0

    def has_paymaster(self) -> bool:
        return len(self.paymaster_and_data) > 0


def get_user_operation_hash(
    user_operation_list: list, entrypoint_addr: str, chain_id: int
) -> str:
    return hash_packed_user_operation(
        pack_user_operation(user_operation_list), entrypoint_addr, chain_id)


def pack_user_operation(
    user_operation_list: list, for_signature: bool = True
) -> bytes:
    """
    ABI encodes the operation fields as a flat list of values.

    For the signature hash the dynamic fields (initCode, callData,
    paymasterAndData) are replaced by their keccak hash and the signature is
    dropped, so every remaining field is a static 32 byte word and no
    offsets are emitted.
    """
    if for_signature:
        return encode_with_hashed_dynamic_fields(
            USER_OPERATION_V6_FIELD_TYPES[:-1], user_operation_list[:-1])
    return encode(USER_OPERATION_V6_FIELD_TYPES, user_operation_list)


def unpack_user_operation(packed_user_operation: bytes) -> list[Any]:
    """
    Inverse of pack_user_operation(..., for_signature=False).
    """
    unpacked = list(decode(USER_OPERATION_V6_FIELD_TYPES, packed_user_operation))
    # eth_abi returns checksummed addresses
    unpacked[0] = unpacked[0].lower()
    return unpacked
