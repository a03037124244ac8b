from eth_abi import encode
import pytest

from aa_gas_estimator.entrypoint.constants import \
    ENTRYPOINT_V7_ADDRESS, EXECUTION_RESULT_V7_TYPES, FAILED_OP_WITH_REVERT, \
    SIMULATE_HANDLE_OP_V7
from aa_gas_estimator.entrypoint.v7.entrypoint_v7_simulations import \
    EntryPointV7Simulations
from aa_gas_estimator.exceptions import ParseError, SimulateHandleOpError
from aa_gas_estimator.user_operation.v7.user_operation_v7 import \
    PACKED_USER_OPERATION_TUPLE_TYPE, UserOperationV7
from aa_gas_estimator.utils.decode import FAILED_OP

from conftest import SENDER_ADDRESS, revert_data, reverted

ENTRYPOINT_SIMULATIONS_BYTECODE = "0x60806040"


@pytest.fixture
def user_operation(user_operation_v7_dict):
    return UserOperationV7(user_operation_v7_dict)


@pytest.fixture
def entrypoint(eth_client):
    return EntryPointV7Simulations(
        eth_client,
        entrypoint_simulations_bytecode=ENTRYPOINT_SIMULATIONS_BYTECODE,
    )


@pytest.mark.asyncio
async def test_simulate_handle_op_returns_execution_result(
    eth_client, entrypoint, user_operation
):
    eth_client.add_call_result(
        SIMULATE_HANDLE_OP_V7,
        "0x" + encode(
            EXECUTION_RESULT_V7_TYPES,
            [[90_000, 120_000, 0, 0, True, b""]],
        ).hex(),
    )

    result = await entrypoint.simulate_handle_op(
        user_operation,
        ENTRYPOINT_V7_ADDRESS,
        "0x",
        {ENTRYPOINT_V7_ADDRESS: {"code": "0x00", "balance": "0x1"}},
    )

    assert result.pre_op_gas == 90_000
    assert result.paid == 120_000
    assert result.target_success

    _, _, state_overrides = eth_client.calls[0]
    # the simulation code always replaces the entrypoint code
    assert state_overrides[ENTRYPOINT_V7_ADDRESS.lower()] == {
        "code": ENTRYPOINT_SIMULATIONS_BYTECODE, "balance": "0x1"}
    assert state_overrides[SENDER_ADDRESS] == {
        "balance": hex(100_000_000 * 10**18)}


@pytest.mark.asyncio
async def test_simulate_handle_op_failed_op(
    eth_client, entrypoint, user_operation
):
    eth_client.add_call_result(
        SIMULATE_HANDLE_OP_V7,
        reverted(revert_data(FAILED_OP, [0, "AA25 invalid account nonce"])),
    )

    with pytest.raises(SimulateHandleOpError) as excinfo:
        await entrypoint.simulate_handle_op(
            user_operation, ENTRYPOINT_V7_ADDRESS, "0x")
    assert excinfo.value.message == "AA25 invalid account nonce"


@pytest.mark.asyncio
async def test_simulate_handle_op_failed_op_with_revert(
    eth_client, entrypoint, user_operation
):
    eth_client.add_call_result(
        SIMULATE_HANDLE_OP_V7,
        reverted(revert_data(
            FAILED_OP_WITH_REVERT, [0, "AA23 reverted", b"\x01\x02"])),
    )

    with pytest.raises(SimulateHandleOpError) as excinfo:
        await entrypoint.simulate_handle_op(
            user_operation, ENTRYPOINT_V7_ADDRESS, "0x")
    assert excinfo.value.message == "AA23 reverted"


@pytest.mark.asyncio
async def test_simulate_handle_op_truncated_result(
    eth_client, entrypoint, user_operation
):
    eth_client.add_call_result(SIMULATE_HANDLE_OP_V7, "0x" + "00" * 40)

    with pytest.raises(ParseError):
        await entrypoint.simulate_handle_op(
            user_operation, ENTRYPOINT_V7_ADDRESS, "0x")


def test_encode_handle_ops_function_data(entrypoint, user_operation):
    call_data = entrypoint.encode_handle_ops_function_data(
        user_operation, SENDER_ADDRESS)

    assert call_data[:10] == "0x765e827f"
    assert call_data[10:] == encode(
        [f"{PACKED_USER_OPERATION_TUPLE_TYPE}[]", "address"],
        [[user_operation.to_list()], SENDER_ADDRESS],
    ).hex()
