from eth_abi import encode
import pytest

from aa_gas_estimator.exceptions import \
    ParseError, RpcError, RpcErrorCode, RpcRequestError, UnknownError
from aa_gas_estimator.utils.decode import \
    ERROR_STRING, FAILED_OP, SolidityError, clean_up_revert_reason, \
    decode_error_result, decode_failed_op_event, handle_failed_op, \
    parse_error_data

from conftest import revert_data

FAILED_OP_DATA = revert_data(FAILED_OP, [0, "AA21 didn't pay prefund"])


def test_solidity_error_selector():
    assert FAILED_OP.selector == "0x220266b6"
    assert ERROR_STRING.selector == "0x08c379a0"
    assert FAILED_OP.signature == "FailedOp(uint256,string)"


@pytest.mark.parametrize(
    "error",
    [
        RpcRequestError("execution reverted", {"data": FAILED_OP_DATA}),
        {"cause": {"data": FAILED_OP_DATA}},
        {"cause": {"cause": {"data": FAILED_OP_DATA}}},
        {"cause": {"cause": {"cause": {"data": FAILED_OP_DATA}}}},
        {"cause": {"data": bytes.fromhex(FAILED_OP_DATA[2:])}},
    ],
)
def test_parse_error_data_envelopes(error):
    assert parse_error_data(error) == FAILED_OP_DATA


def test_parse_error_data_from_chained_exception():
    try:
        try:
            raise RpcRequestError("execution reverted", {"data": FAILED_OP_DATA})
        except RpcRequestError as err:
            raise ValueError("simulation failed") from err
    except ValueError as err:
        assert parse_error_data(err) == FAILED_OP_DATA


def test_parse_error_data_from_reverted_message():
    error = {"message": f"execution reverted: Reverted {FAILED_OP_DATA}"}
    assert parse_error_data(error) == FAILED_OP_DATA


@pytest.mark.parametrize(
    "error",
    [
        {"cause": {"data": "0x"}},
        {"message": "header not found"},
        RpcRequestError("execution reverted", {"code": 3}),
        {"cause": {"data": "not hex"}},
    ],
)
def test_parse_error_data_failures(error):
    with pytest.raises(ParseError):
        parse_error_data(error)


def test_decode_error_result_matches_selector():
    error_name, error_params = decode_error_result(
        FAILED_OP_DATA, [ERROR_STRING, FAILED_OP])

    assert error_name == "FailedOp"
    assert error_params == (0, "AA21 didn't pay prefund")


def test_decode_error_result_unknown_selector():
    custom_error = SolidityError("Custom", ("uint256",))
    data = custom_error.selector + encode(["uint256"], [1]).hex()

    with pytest.raises(UnknownError) as excinfo:
        decode_error_result(data, [ERROR_STRING, FAILED_OP])
    assert excinfo.value.error_name == custom_error.selector


@pytest.mark.parametrize(
    "error_params",
    [
        "00" * 10,  # truncated
        FAILED_OP_DATA[10:-64],  # string body cut short
        FAILED_OP_DATA[10:] + "0",  # odd length
        "zz" * 64,  # not hex
    ],
)
def test_decode_error_result_malformed_payload(error_params):
    error_data = FAILED_OP.selector + error_params

    with pytest.raises(ParseError) as excinfo:
        decode_error_result(error_data, [ERROR_STRING, FAILED_OP])
    assert excinfo.value.cause == error_data


def test_decode_failed_op_event():
    assert decode_failed_op_event(FAILED_OP_DATA[10:]) == (
        0, "AA21 didn't pay prefund")


@pytest.mark.parametrize(
    "reason, expected",
    [
        ("AA21 didn't pay prefund", "AA21 didn't pay prefund"),
        ("AA23 reverted\x00\x00\x00", "AA23 reverted"),
        ("FailedOp: AA33 reverted (or OOG)", "AA33 reverted (or OOG)"),
        ("AA13 initCode failed\\u0000junk", "AA13 initCode failed"),
        ("execution reverted", "execution reverted"),
    ],
)
def test_clean_up_revert_reason(reason, expected):
    assert clean_up_revert_reason(reason) == expected


@pytest.mark.parametrize(
    "reason, code",
    [
        ("AA10 sender already constructed",
         RpcErrorCode.SIMULATE_VALIDATION_FAILED),
        ("AA21 didn't pay prefund", RpcErrorCode.SIMULATE_VALIDATION_FAILED),
        ("AA31 paymaster deposit too low",
         RpcErrorCode.SIMULATE_PAYMASTER_VALIDATION_FAILED),
        ("AA40 over verificationGasLimit",
         RpcErrorCode.SIMULATE_VALIDATION_FAILED),
        ("AA95 out of gas", RpcErrorCode.WALLET_TRANSACTION_REVERTED),
        ("transfer failed", RpcErrorCode.SIMULATE_VALIDATION_FAILED),
    ],
)
def test_handle_failed_op_codes(reason, code):
    error = handle_failed_op(reason)

    assert isinstance(error, RpcError)
    assert error.exception_code == code
    assert error.message == clean_up_revert_reason(reason)
