from enum import Enum

from aa_gas_estimator.typing import Address
from aa_gas_estimator.user_operation.v6.user_operation_v6 import \
    USER_OPERATION_V6_TUPLE_TYPE
from aa_gas_estimator.user_operation.v7.user_operation_v7 import \
    PACKED_USER_OPERATION_TUPLE_TYPE
from aa_gas_estimator.utils.decode import ERROR_STRING, FAILED_OP, SolidityError


class EntryPointVersion(Enum):
    V060 = "v060"
    V070 = "v070"


ENTRYPOINT_V6_ADDRESS = Address("0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789")
ENTRYPOINT_V7_ADDRESS = Address("0x0000000071727De22E5E9d8BAf0edAc6f37da032")

VERIFICATION_GAS_ESTIMATION_SIMULATOR_FILE = "VerificationGasEstimationSimulator.json"
CALL_GAS_ESTIMATION_SIMULATOR_FILE = "CallGasEstimationSimulator.json"
ENTRYPOINT_V7_SIMULATIONS_FILE = "EntryPointSimulationsV7.json"

# function signatures
SIMULATE_HANDLE_OP_V6 = (
    f"simulateHandleOp({USER_OPERATION_V6_TUPLE_TYPE},address,bytes)")
SIMULATE_HANDLE_OP_V7 = (
    f"simulateHandleOp({PACKED_USER_OPERATION_TUPLE_TYPE},address,bytes)")
GET_NONCE = "getNonce(address,uint192)"
ESTIMATE_VERIFICATION_GAS = (
    f"estimateVerificationGas(({USER_OPERATION_V6_TUPLE_TYPE},uint256,uint256,uint256,bool))")
ESTIMATE_CALL_GAS = "estimateCallGas((address,bytes,uint256,uint256,uint256,bool))"

EXECUTION_RESULT_V6 = SolidityError(
    "ExecutionResult",
    (
        "uint256",  # preOpGas
        "uint256",  # paid
        "uint48",  # validAfter
        "uint48",  # validUntil
        "bool",  # targetSuccess
        "bytes",  # targetResult
    ),
)

EXECUTION_RESULT_V7_TYPES = [
    "(uint256,uint256,uint256,uint256,bool,bytes)"
    # preOpGas, paid, accountValidationData, paymasterValidationData,
    # targetSuccess, targetResult
]

FAILED_OP_WITH_REVERT = SolidityError(
    "FailedOpWithRevert", ("uint256", "string", "bytes"))

ENTRYPOINT_V6_ERRORS = [
    EXECUTION_RESULT_V6,
    FAILED_OP,
    ERROR_STRING,
]

ENTRYPOINT_V7_ERRORS = [
    FAILED_OP,
    FAILED_OP_WITH_REVERT,
    ERROR_STRING,
]

VERIFICATION_GAS_ESTIMATION_SIMULATOR_ERRORS = [
    SolidityError(
        "EstimateVerificationGasContinuation",
        (
            "uint256",  # minGas
            "uint256",  # maxGas
            "uint48",  # validAfter
            "uint48",  # validUntil
            "uint256",  # numRounds
        ),
    ),
    SolidityError(
        "EstimateVerificationGasResult",
        (
            "uint256",  # gasEstimate
            "uint48",  # validAfter
            "uint48",  # validUntil
            "uint256",  # numRounds
        ),
    ),
    SolidityError("EstimateVerificationGasRevertAtMax", ("bytes",)),
    SolidityError("FailedOpError", ("bytes",)),
    FAILED_OP,
    ERROR_STRING,
]

CALL_GAS_ESTIMATION_SIMULATOR_ERRORS = [
    SolidityError(
        "EstimateCallGasContinuation",
        (
            "uint256",  # minGas
            "uint256",  # maxGas
            "uint256",  # numRounds
        ),
    ),
    SolidityError(
        "EstimateCallGasResult",
        (
            "uint256",  # gasEstimate
            "uint256",  # numRounds
        ),
    ),
    SolidityError("EstimateCallGasRevertAtMax", ("bytes",)),
]
