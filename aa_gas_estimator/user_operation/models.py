from dataclasses import dataclass
from typing import Any

from aa_gas_estimator.exceptions import ValidationError
from aa_gas_estimator.user_operation.v6.user_operation_v6 import UserOperationV6
from aa_gas_estimator.user_operation.v7.user_operation_v7 import UserOperationV7

AnyUserOperation = UserOperationV6 | UserOperationV7


def is_user_operation_v6(
    user_operation: dict[str, Any] | AnyUserOperation
) -> bool:
    # there is no version tag, ep0.6 operations carry a paymasterAndData field
    if isinstance(user_operation, dict):
        return "paymasterAndData" in user_operation
    return isinstance(user_operation, UserOperationV6)


def validate_user_operation(jsonRequestDict: Any) -> AnyUserOperation:
    if not isinstance(jsonRequestDict, dict):
        raise ValidationError("Invalid UserOperation")
    if is_user_operation_v6(jsonRequestDict):
        return UserOperationV6(jsonRequestDict)
    return UserOperationV7(jsonRequestDict)


@dataclass(frozen=True)
class ExecutionResultV6:
    pre_op_gas: int
    paid: int
    valid_after: int
    valid_until: int
    target_success: bool
    target_result: bytes


@dataclass(frozen=True)
class ExecutionResultV7:
    pre_op_gas: int
    paid: int
    account_validation_data: int
    paymaster_validation_data: int
    target_success: bool
    target_result: bytes


@dataclass(frozen=True)
class GasEstimateV6:
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    valid_after: int
    valid_until: int

    def to_json(self) -> dict[str, str]:
        return {
            "callGasLimit": hex(self.call_gas_limit),
            "verificationGasLimit": hex(self.verification_gas_limit),
            "preVerificationGas": hex(self.pre_verification_gas),
            "validAfter": hex(self.valid_after),
            "validUntil": hex(self.valid_until),
        }


@dataclass(frozen=True)
class GasEstimateV7:
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    paymaster_verification_gas_limit: int
    paymaster_post_op_gas_limit: int

    def to_json(self) -> dict[str, str]:
        return {
            "callGasLimit": hex(self.call_gas_limit),
            "verificationGasLimit": hex(self.verification_gas_limit),
            "preVerificationGas": hex(self.pre_verification_gas),
            "paymasterVerificationGasLimit":
            hex(self.paymaster_verification_gas_limit),
            "paymasterPostOpGasLimit": hex(self.paymaster_post_op_gas_limit),
        }


GasEstimate = GasEstimateV6 | GasEstimateV7
