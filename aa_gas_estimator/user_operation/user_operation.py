from abc import ABC, abstractmethod
import copy
import re
from typing import Any, Callable, Self

from eth_abi import encode
from eth_utils import keccak

from aa_gas_estimator.exceptions import ValidationError
from aa_gas_estimator.typing import Address

# (json field name, attribute name, validator)
UserOperationField = tuple[str, str, Callable[[str, Any], Any]]


class UserOperation(ABC):
    sender_address: Address
    nonce: int
    call_data: bytes
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    signature: bytes

    @abstractmethod
    def get_user_operation_json(self) -> dict[str, Any]:
        pass

    @abstractmethod
    def to_list(self) -> list[Any]:
        pass

    @abstractmethod
    def is_account_deployed(self) -> bool:
        pass

    @abstractmethod
    def has_paymaster(self) -> bool:
        pass

    def set_fields_from_json(
        self,
        fields: list[UserOperationField],
        jsonRequestDict: dict[str, Any],
    ) -> None:
        for json_name, attribute, verify in fields:
            if json_name not in jsonRequestDict:
                raise ValidationError(f"UserOperation missing {json_name} field")
            setattr(self, attribute, verify(json_name, jsonRequestDict[json_name]))

    def copy_with(self, **fields: Any) -> Self:
        """
        Returns a shallow copy of the operation with the given attributes
        replaced. The original operation is left untouched.
        """
        user_operation_copy = copy.copy(self)
        for field_name, value in fields.items():
            if not hasattr(self, field_name):
                raise AttributeError(
                    f"{type(self).__name__} has no field {field_name}")
            setattr(user_operation_copy, field_name, value)
        return user_operation_copy


def verify_and_get_address(field_name: str, value: Address | None) -> Address:
    address_pattern = "^0x[0-9a-fA-F]{40}$"
    if isinstance(value, str) and re.match(address_pattern, value) is not None:
        return value
    else:
        raise ValidationError(
            f"Invalid address value : {value} in field {field_name}",
        )


def verify_and_get_uint(field_name: str, value: str | int | None) -> int:
    """
    Accepts a hex string, a decimal string or an int and returns the
    non-negative integer value.
    """
    if value is None:
        raise ValidationError(f"Invalid uint value in field {field_name}")

    # bool is an int subclass, but never a valid quantity
    if isinstance(value, bool):
        raise ValidationError(
            f"Invalid uint value : {value} in field {field_name}")

    if isinstance(value, int):
        result = value
    elif value == "0x":
        return 0
    elif isinstance(value, str):
        try:
            if value[:2] in ("0x", "0X"):
                result = int(value, 16)
            else:
                result = int(value, 10)
        except ValueError:
            raise ValidationError(
                f"Invalid uint value : {value} in field {field_name}",
            )
    else:
        raise ValidationError(
            f"Invalid uint value : {value} in field {field_name}",
        )

    if result < 0:
        raise ValidationError(
            f"Invalid uint value : {value} in field {field_name}",
        )
    return result


def verify_and_get_bytes(field_name: str, value: str | bytes | None) -> bytes:
    if value is None:
        raise ValidationError(
            f"Invalid bytes hex value in field {field_name}",
        )

    if isinstance(value, bytes):
        return value
    if isinstance(value, str) and value[:2] == "0x":
        try:
            return bytes.fromhex(value[2:])
        except ValueError:
            raise ValidationError(
                f"Invalid bytes hex value : {value} in field {field_name}",
            )
    else:
        raise ValidationError(
            f"Invalid bytes hex value : {value} in field {field_name}",
        )


def to_json_value(value: int | bytes | str | None) -> str | None:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return "0x" + value.hex()
    return hex(value)


def address_prefix(data: bytes) -> Address | None:
    # initCode starts with the factory, paymasterAndData with the paymaster
    if len(data) < 20:
        return None
    return Address("0x" + data[:20].hex())


def encode_with_hashed_dynamic_fields(
    field_types: list[str], user_operation_list: list[Any]
) -> bytes:
    """
    ABI encodes the fields with every "bytes" value replaced by its keccak
    hash, the layout signed by the account. The signature is never part of
    it, callers drop it from both lists.
    """
    hashed_types = []
    hashed_values = []
    for field_type, value in zip(field_types, user_operation_list):
        if field_type == "bytes":
            hashed_types.append("bytes32")
            hashed_values.append(keccak(value))
        else:
            hashed_types.append(field_type)
            hashed_values.append(value)
    return encode(hashed_types, hashed_values)


def hash_packed_user_operation(
    packed_user_operation: bytes, entrypoint_addr: str, chain_id: int
) -> str:
    encoded_user_operation_hash = encode(
        ["(bytes32,address,uint256)"],
        [[keccak(packed_user_operation), entrypoint_addr, chain_id]],
    )
    return "0x" + keccak(encoded_user_operation_hash).hex()
