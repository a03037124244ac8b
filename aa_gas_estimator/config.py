from dataclasses import dataclass
import logging
import os

ETHER = 10**18


def _get_env_or_default(env_var, default, value_type):
    """
    Helper function to get the value from an environment variable or return the default value.
    """
    value = os.getenv(env_var, None)
    if value is not None:
        if value_type == bool:
            return value.lower() in ("1", "true", "yes")
        return value_type(value)
    return default


@dataclass(frozen=True)
class PreVerificationGasOverheads:
    fixed: int = 21000
    per_user_operation: int = 18300
    per_user_operation_word: int = 4
    zero_byte: int = 4
    non_zero_byte: int = 16
    bundle_size: int = 1
    signature_size: int = 65


@dataclass(frozen=True)
class GasEstimatorConfig:
    # gas limits used while simulating, so the simulation isn't gas limited
    simulation_pre_verification_gas: int = 1_000_000
    simulation_verification_gas_limit: int = 10_000_000
    simulation_call_gas_limit: int = 10_000_000

    # static values forced on the operation when the rpc supports no overrides
    override_max_fee_per_gas: int = 1
    override_max_priority_fee_per_gas: int = 1
    override_pre_verification_gas: int = 1_000_000
    override_verification_gas_limit: int = 10_000_000
    override_call_gas_limit: int = 10_000_000

    gas_limit_markup_percent: int = 10

    binary_search_min_gas: int = 0
    binary_search_max_gas: int = 30_000_000
    binary_search_rounding: int = 1
    binary_search_max_rounds: int = 1

    sender_balance_override: int = 100_000_000 * ETHER

    pre_verification_gas_overheads: PreVerificationGasOverheads = (
        PreVerificationGasOverheads()
    )

    rpc_retry_attempts: int = 3
    contracts_dir: str | None = None


def init_config() -> GasEstimatorConfig:
    return GasEstimatorConfig(
        simulation_pre_verification_gas=_get_env_or_default(
            "AA_GAS_ESTIMATOR_SIMULATION_PVG", 1_000_000, int),
        simulation_verification_gas_limit=_get_env_or_default(
            "AA_GAS_ESTIMATOR_SIMULATION_VGL", 10_000_000, int),
        simulation_call_gas_limit=_get_env_or_default(
            "AA_GAS_ESTIMATOR_SIMULATION_CGL", 10_000_000, int),
        gas_limit_markup_percent=_get_env_or_default(
            "AA_GAS_ESTIMATOR_MARKUP_PERCENT", 10, int),
        binary_search_max_gas=_get_env_or_default(
            "AA_GAS_ESTIMATOR_BINARY_SEARCH_MAX_GAS", 30_000_000, int),
        binary_search_rounding=_get_env_or_default(
            "AA_GAS_ESTIMATOR_BINARY_SEARCH_ROUNDING", 1, int),
        binary_search_max_rounds=_get_env_or_default(
            "AA_GAS_ESTIMATOR_BINARY_SEARCH_MAX_ROUNDS", 1, int),
        rpc_retry_attempts=_get_env_or_default(
            "AA_GAS_ESTIMATOR_RPC_RETRY_ATTEMPTS", 3, int),
        contracts_dir=_get_env_or_default(
            "AA_GAS_ESTIMATOR_CONTRACTS_DIR", None, str),
    )


def init_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s.%(msecs)03d %(levelname)s %(message)s",
        datefmt="%b %d %H:%M:%S",
    )

    logging.getLogger("AaGasEstimator")
