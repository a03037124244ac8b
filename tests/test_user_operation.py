from eth_utils import keccak
import pytest

from aa_gas_estimator.exceptions import ValidationError
from aa_gas_estimator.user_operation.models import \
    is_user_operation_v6, validate_user_operation
from aa_gas_estimator.user_operation.v6.user_operation_v6 import \
    UserOperationV6, get_user_operation_hash, pack_user_operation, \
    unpack_user_operation
from aa_gas_estimator.user_operation.v7.user_operation_v7 import \
    UserOperationV7, pack_user_operation as pack_user_operation_v7

from conftest import PAYMASTER_ADDRESS, SENDER_ADDRESS

ZERO_WORD = bytes(32)
EMPTY_KECCAK = bytes.fromhex(
    "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470")


@pytest.mark.parametrize("nonce", ["0x1", "1", 1, "0x01"])
def test_uint_fields_accept_hex_decimal_and_int(user_operation_v6_dict, nonce):
    user_operation_v6_dict["nonce"] = nonce
    assert UserOperationV6(user_operation_v6_dict).nonce == 1


def test_empty_hex_quantity_is_zero(user_operation_v6_dict):
    user_operation_v6_dict["callGasLimit"] = "0x"
    assert UserOperationV6(user_operation_v6_dict).call_gas_limit == 0


@pytest.mark.parametrize("nonce", [-1, "-1", True, "0xzz", None, 1.5])
def test_invalid_uint_fields_are_rejected(user_operation_v6_dict, nonce):
    user_operation_v6_dict["nonce"] = nonce
    with pytest.raises(ValidationError):
        UserOperationV6(user_operation_v6_dict)


def test_missing_field_is_rejected(user_operation_v6_dict):
    del user_operation_v6_dict["signature"]
    with pytest.raises(ValidationError) as excinfo:
        UserOperationV6(user_operation_v6_dict)
    assert "signature" in excinfo.value.message


@pytest.mark.parametrize(
    "sender",
    ["0x1234", "0x" + "," * 40, "0x" + "g1" * 20, "a1" * 21, None],
)
def test_invalid_address_is_rejected(user_operation_v6_dict, sender):
    user_operation_v6_dict["sender"] = sender
    with pytest.raises(ValidationError):
        UserOperationV6(user_operation_v6_dict)


def test_invalid_bytes_are_rejected(user_operation_v6_dict):
    user_operation_v6_dict["callData"] = "b61d27f6"
    with pytest.raises(ValidationError):
        UserOperationV6(user_operation_v6_dict)


def test_user_operation_json_round_trip(user_operation_v6_dict):
    user_operation = UserOperationV6(user_operation_v6_dict)
    user_operation_json = user_operation.get_user_operation_json()
    assert UserOperationV6(user_operation_json) == user_operation
    assert user_operation_json["nonce"] == "0x1"
    assert user_operation_json["initCode"] == "0x"


def test_pack_for_signature_of_empty_operation():
    """
    Dynamic fields are replaced by their keccak hash and the signature is
    dropped, leaving ten static words.
    """
    user_operation = UserOperationV6({
        "sender": "0x" + "00" * 20,
        "nonce": 0,
        "initCode": "0x",
        "callData": "0x",
        "callGasLimit": 0,
        "verificationGasLimit": 0,
        "preVerificationGas": 0,
        "maxFeePerGas": 0,
        "maxPriorityFeePerGas": 0,
        "paymasterAndData": "0x",
        "signature": "0x",
    })

    packed = pack_user_operation(user_operation.to_list())

    assert packed == (
        ZERO_WORD +  # sender
        ZERO_WORD +  # nonce
        EMPTY_KECCAK +  # initCode
        EMPTY_KECCAK +  # callData
        ZERO_WORD * 5 +  # gas and fee fields
        EMPTY_KECCAK  # paymasterAndData
    )


def word(hex_value: str) -> bytes:
    return bytes.fromhex(hex_value.rjust(64, "0"))


DISTINCT_USER_OPERATION_V6 = {
    "sender": "0x" + "a1" * 20,
    "nonce": "0xb2",
    "initCode": "0x",
    "callData": "0x",
    "callGasLimit": "0xc3",
    "verificationGasLimit": "0xd4",
    "preVerificationGas": "0xe5",
    "maxFeePerGas": "0xf6",
    "maxPriorityFeePerGas": "0x17",
    "paymasterAndData": "0x",
    "signature": "0x" + "ff" * 65,
}
DISTINCT_USER_OPERATION_V6_PACKED = (
    word("a1" * 20) +  # sender
    word("b2") +  # nonce
    EMPTY_KECCAK +  # initCode
    EMPTY_KECCAK +  # callData
    word("c3") +  # callGasLimit
    word("d4") +  # verificationGasLimit
    word("e5") +  # preVerificationGas
    word("f6") +  # maxFeePerGas
    word("17") +  # maxPriorityFeePerGas
    EMPTY_KECCAK  # paymasterAndData
)


def test_pack_for_signature_keeps_field_order():
    user_operation = UserOperationV6(dict(DISTINCT_USER_OPERATION_V6))

    packed = pack_user_operation(user_operation.to_list())

    assert packed == DISTINCT_USER_OPERATION_V6_PACKED


def test_user_operation_hash_layout():
    user_operation = UserOperationV6(dict(DISTINCT_USER_OPERATION_V6))
    entrypoint = "0x5ff137d4b0fdcd49dca30c7cf57e578a026d2789"

    user_operation_hash = get_user_operation_hash(
        user_operation.to_list(), entrypoint, 0x89)

    assert user_operation_hash == "0x" + keccak(
        keccak(DISTINCT_USER_OPERATION_V6_PACKED) +
        word(entrypoint[2:]) +
        word("89")
    ).hex()


def test_pack_does_not_mutate_the_list(user_operation_v6_dict):
    user_operation_list = UserOperationV6(user_operation_v6_dict).to_list()
    original = list(user_operation_list)
    pack_user_operation(user_operation_list)
    assert user_operation_list == original


def test_unpack_inverts_pack(user_operation_v6_dict):
    user_operation = UserOperationV6(user_operation_v6_dict)

    unpacked = unpack_user_operation(
        pack_user_operation(user_operation.to_list(), False))

    assert unpacked[0] == SENDER_ADDRESS.lower()
    assert unpacked[1:] == user_operation.to_list()[1:]


def test_user_operation_hash_depends_on_chain_id(user_operation_v6_dict):
    user_operation_list = UserOperationV6(user_operation_v6_dict).to_list()
    entrypoint = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"

    hash_mainnet = get_user_operation_hash(user_operation_list, entrypoint, 1)
    hash_optimism = get_user_operation_hash(user_operation_list, entrypoint, 10)

    assert len(hash_mainnet) == 66
    assert hash_mainnet != hash_optimism
    assert hash_mainnet == get_user_operation_hash(
        user_operation_list, entrypoint, 1)


def test_copy_with_leaves_original_untouched(user_operation_v6_dict):
    user_operation = UserOperationV6(user_operation_v6_dict)

    updated = user_operation.copy_with(call_gas_limit=5, max_fee_per_gas=7)

    assert updated.call_gas_limit == 5
    assert updated.max_fee_per_gas == 7
    assert user_operation.call_gas_limit == 1
    assert user_operation.max_fee_per_gas == 1000


def test_copy_with_rejects_unknown_fields(user_operation_v6_dict):
    with pytest.raises(AttributeError):
        UserOperationV6(user_operation_v6_dict).copy_with(gas=1)


def test_account_deployed_and_paymaster(user_operation_v6_dict):
    user_operation = UserOperationV6(user_operation_v6_dict)
    assert user_operation.is_account_deployed()
    assert not user_operation.has_paymaster()

    user_operation_v6_dict["initCode"] = (
        "0x9406cc6185a346906296840746125a0e449764545fbfb9cf")
    user_operation_v6_dict["paymasterAndData"] = PAYMASTER_ADDRESS
    user_operation = UserOperationV6(user_operation_v6_dict)
    assert not user_operation.is_account_deployed()
    assert user_operation.has_paymaster()
    assert user_operation.factory_address_lowercase == (
        "0x9406cc6185a346906296840746125a0e44976454")
    assert user_operation.paymaster_address_lowercase == PAYMASTER_ADDRESS


def test_version_is_detected_by_paymaster_and_data(
    user_operation_v6_dict, user_operation_v7_dict
):
    assert is_user_operation_v6(user_operation_v6_dict)
    assert not is_user_operation_v6(user_operation_v7_dict)
    assert isinstance(
        validate_user_operation(user_operation_v6_dict), UserOperationV6)
    assert isinstance(
        validate_user_operation(user_operation_v7_dict), UserOperationV7)


def test_validate_rejects_non_dict():
    with pytest.raises(ValidationError):
        validate_user_operation(["0x"])


def test_v7_packs_gas_limits_and_fees(user_operation_v7_dict):
    user_operation = UserOperationV7(user_operation_v7_dict)

    packed = user_operation.to_list()

    assert packed[2] == b""
    assert packed[4] == (100_000).to_bytes(16) + (1).to_bytes(16)
    assert packed[6] == (10).to_bytes(16) + (1000).to_bytes(16)
    assert packed[7] == b""
    assert user_operation.is_account_deployed()
    assert not user_operation.has_paymaster()


def test_v7_paymaster_limits_default_to_zero(user_operation_v7_dict):
    user_operation_v7_dict["paymaster"] = PAYMASTER_ADDRESS
    user_operation = UserOperationV7(user_operation_v7_dict)

    packed = user_operation.to_list()

    assert user_operation.has_paymaster()
    assert packed[7] == bytes.fromhex(PAYMASTER_ADDRESS[2:]) + bytes(32)


def test_v7_factory_is_prepended_to_factory_data(user_operation_v7_dict):
    factory = "0x9406cc6185a346906296840746125a0e44976454"
    user_operation_v7_dict["factory"] = factory
    user_operation_v7_dict["factoryData"] = "0x5fbfb9cf"
    user_operation = UserOperationV7(user_operation_v7_dict)

    assert not user_operation.is_account_deployed()
    assert user_operation.to_list()[2] == (
        bytes.fromhex(factory[2:]) + bytes.fromhex("5fbfb9cf"))


def test_v7_pack_for_signature_hashes_dynamic_fields(user_operation_v7_dict):
    user_operation_list = UserOperationV7(user_operation_v7_dict).to_list()

    packed = pack_user_operation_v7(user_operation_list)

    assert len(packed) == 8 * 32
    assert packed[64:96] == EMPTY_KECCAK  # initCode
    assert packed[96:128] == keccak(user_operation_list[3])
    assert packed[224:256] == EMPTY_KECCAK  # paymasterAndData
