from dataclasses import dataclass
from enum import Enum
from typing import Any


class RpcErrorCode(Enum):
    INVALID_USER_OP_FIELDS = -32602
    SIMULATE_VALIDATION_FAILED = -32500
    SIMULATE_PAYMASTER_VALIDATION_FAILED = -32501
    OP_CODE_VALIDATION_FAILED = -32502
    USER_OP_EXPIRES_SHORTLY = -32503
    ENTITY_IS_THROTTLED = -32504
    ENTITY_INSUFFICIENT_STAKE = -32505
    UNSUPPORTED_AGGREGATOR = -32506
    INVALID_WALLET_SIGNATURE = -32507
    WALLET_TRANSACTION_REVERTED = -32000
    UNAUTHORIZED_REQUEST = -32001
    INTERNAL_SERVER_ERROR = -32002
    BAD_REQUEST = -32003
    USER_OP_HASH_NOT_FOUND = -32004
    UNABLE_TO_PROCESS_USER_OP = -32005
    METHOD_NOT_FOUND = -32601


@dataclass
class ValidationError(Exception):
    message: str
    exception_code: RpcErrorCode = RpcErrorCode.INVALID_USER_OP_FIELDS

    def __str__(self) -> str:
        return self.message


@dataclass
class ParseError(Exception):
    # the error raised by the rpc call, kept for diagnostics
    cause: Any

    def __str__(self) -> str:
        return f"Could not parse revert data from error: {self.cause}"


@dataclass
class SimulateHandleOpError(Exception):
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class RpcError(Exception):
    exception_code: RpcErrorCode
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class UnknownError(Exception):
    error_name: str
    error_args: Any = None

    def __str__(self) -> str:
        return f"Unexpected error {self.error_name}: {self.error_args}"


@dataclass
class RpcRequestError(Exception):
    message: str
    # json-rpc error object: {"code", "message", "data"?}
    cause: Any = None

    def __str__(self) -> str:
        return self.message
