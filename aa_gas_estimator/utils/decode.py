from dataclasses import dataclass
from functools import cached_property
import logging
import re
from typing import Any

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector

from aa_gas_estimator.exceptions import \
    ParseError, RpcError, RpcErrorCode, UnknownError

HEX_DATA_PATTERN = re.compile("^0x[0-9a-fA-F]*$")

# locations of the revert data in errors raised by the rpc client, tried in
# order. providers nest the json-rpc error differently.
ERROR_DATA_PATHS = (
    ("cause", "data"),
    ("cause", "cause", "data"),
    ("cause", "cause", "cause", "data"),
)


@dataclass(frozen=True)
class SolidityError:
    name: str
    types: tuple[str, ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.types)})"

    @cached_property
    def selector(self) -> str:
        return "0x" + function_signature_to_4byte_selector(self.signature).hex()


ERROR_STRING = SolidityError("Error", ("string",))
FAILED_OP = SolidityError("FailedOp", ("uint256", "string"))


def _get_field(value: Any, key: str) -> Any:
    if isinstance(value, dict):
        return value.get(key)
    field = getattr(value, key, None)
    if field is None and key == "cause" and isinstance(value, BaseException):
        # errors re-raised with "raise ... from ..."
        return value.__cause__
    return field


def _extract_revert_hex(value: Any) -> str | None:
    if isinstance(value, bytes):
        return "0x" + value.hex()
    if not isinstance(value, str):
        return None
    # some providers return "execution reverted: Reverted 0x..."
    if "Reverted " in value:
        value = value.split("Reverted ")[1].strip()
    if HEX_DATA_PATTERN.match(value) is None:
        return None
    return value


def parse_error_data(error: Any) -> str:
    """
    Returns the hex revert data carried by an error raised from an eth_call,
    whatever the envelope the rpc provider wrapped it in.
    """
    for path in ERROR_DATA_PATHS:
        value = error
        for key in path:
            value = _get_field(value, key)
            if value is None:
                break
        data = _extract_revert_hex(value)
        if data is not None:
            if data == "0x":
                # some chains don't return a revert reason
                raise ParseError(error)
            return data

    message = _get_field(error, "message")
    if message is None and isinstance(error, BaseException):
        message = str(error)
    if isinstance(message, str) and "Reverted " in message:
        data = _extract_revert_hex(message)
        if data is not None and data != "0x":
            return data

    raise ParseError(error)


def decode_error_result(
    error_data: str, solidity_errors: list[SolidityError]
) -> tuple[str, tuple]:
    """
    Matches the selector of the revert data against the given errors and
    returns the error name with its decoded arguments.
    """
    error_selector = error_data[:10].lower()
    error_params = error_data[10:]
    for solidity_error in solidity_errors:
        if solidity_error.selector == error_selector:
            try:
                decoded_params = decode(
                    list(solidity_error.types), bytes.fromhex(error_params)
                )
            except (DecodingError, ValueError) as err:
                logging.debug(
                    f"Malformed {solidity_error.name} revert data: {err}")
                raise ParseError(error_data)
            return solidity_error.name, decoded_params

    raise UnknownError(error_selector, error_params)


def decode_failed_op_event(solidity_error_params: str) -> tuple[int, str]:
    operation_index, reason = decode(
        list(FAILED_OP.types), bytes.fromhex(solidity_error_params)
    )
    return operation_index, reason


def clean_up_revert_reason(revert_reason: str) -> str:
    match = re.search(r"AA(\d+)\s(.+)", revert_reason)
    if match is None:
        return revert_reason

    cleaned_reason = f"AA{match.group(1)} {match.group(2)}"
    # cut everything after a null byte or a leftover unicode escape
    truncated = re.search(r"AA.*?(?=\\u|\x00)", cleaned_reason)
    if truncated is not None:
        return truncated.group(0)
    return cleaned_reason


def handle_failed_op(revert_reason: str) -> RpcError:
    """
    Classifies an entrypoint revert reason ("AA21 didn't pay prefund") into
    an RpcError. The returned error is meant to be raised by the caller.
    """
    revert_reason = clean_up_revert_reason(revert_reason)
    logging.debug(f"UserOperation failed with reason: {revert_reason}")
    if "AA1" in revert_reason or "AA2" in revert_reason:
        code = RpcErrorCode.SIMULATE_VALIDATION_FAILED
    elif "AA3" in revert_reason:
        code = RpcErrorCode.SIMULATE_PAYMASTER_VALIDATION_FAILED
    elif "AA9" in revert_reason:
        code = RpcErrorCode.WALLET_TRANSACTION_REVERTED
    elif "AA4" in revert_reason:
        code = RpcErrorCode.SIMULATE_VALIDATION_FAILED
    else:
        # any other AA code and plain reverts
        code = RpcErrorCode.SIMULATE_VALIDATION_FAILED
    return RpcError(code, revert_reason)
