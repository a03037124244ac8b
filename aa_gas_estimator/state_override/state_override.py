import copy
from functools import cache
from typing import Any, Self

from eth_abi import encode
from eth_utils import keccak

from aa_gas_estimator.typing import Address, StateOverrideSet

# 10^15 eth, fits the 112 bits deposit field of the ep0.6 deposit slot
PAYMASTER_DEPOSIT_MAX = "0x" + (10**33).to_bytes(32).hex()


@cache
def calculate_deposit_slot_index(address: str) -> str:
    # deposits is the first mapping of the entrypoint stake manager, so the
    # slot is keccak(address . 0). ep0.6 and ep0.7 both keep the deposit in
    # the low bits of that slot.
    return "0x" + keccak(
        encode(["uint256", "uint256"], [int(address, 16), 0])
    ).hex()


def deep_merge(destination: dict, source: dict) -> dict:
    merged = dict(destination)
    for key, value in source.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _normalize_addresses(
    state_overrides: StateOverrideSet | None
) -> StateOverrideSet:
    normalized: StateOverrideSet = {}
    if state_overrides is None:
        return normalized
    for address, override in state_overrides.items():
        lower_address = address.lower()
        if lower_address in normalized:
            normalized[lower_address] = deep_merge(
                normalized[lower_address], override)
        else:
            normalized[lower_address] = copy.deepcopy(override)
    return normalized


def merge_state_overrides(
    destination: StateOverrideSet | None,
    source: StateOverrideSet | None = None,
) -> StateOverrideSet:
    """
    Merges source on top of destination without mutating either of them.

    Address keys are compared case insensitively and returned lowercase.
    Within one address, "state" and "stateDiff" are merged slot by slot while
    "balance", "nonce" and "code" are taken from source when present.
    """
    return deep_merge(
        _normalize_addresses(destination),
        _normalize_addresses(source)
    )


class StateOverrideBuilder:
    """
    Chainable builder for the state override set of an eth_call.

        StateOverrideBuilder(caller_overrides)
            .override_balance(sender, balance)
            .override_paymaster_deposit(entrypoint, paymaster)
            .build()
    """
    state_overrides: StateOverrideSet | None
    new_state_overrides: StateOverrideSet

    def __init__(self, state_overrides: StateOverrideSet | None = None):
        self.state_overrides = state_overrides
        self.new_state_overrides = {}

    def _extend_address_override(
        self, address: Address, override: dict[str, Any]
    ) -> None:
        self.new_state_overrides = merge_state_overrides(
            self.new_state_overrides, {address: override}
        )

    def override_balance(self, address: Address, balance: int) -> Self:
        self._extend_address_override(address, {"balance": hex(balance)})
        return self

    def override_code(self, address: Address, code: str) -> Self:
        self._extend_address_override(address, {"code": code})
        return self

    def override_paymaster_deposit(
        self,
        entrypoint: Address,
        paymaster: Address,
        storage_value: str = PAYMASTER_DEPOSIT_MAX,
        storage_key: str | None = None,
    ) -> Self:
        if storage_key is None:
            storage_key = calculate_deposit_slot_index(paymaster)
        self._extend_address_override(
            entrypoint, {"stateDiff": {storage_key: storage_value}}
        )
        return self

    def build(self) -> StateOverrideSet:
        return merge_state_overrides(
            self.state_overrides, self.new_state_overrides)
