from dataclasses import dataclass, field
from enum import Enum

from aa_gas_estimator.entrypoint.constants import \
    ENTRYPOINT_V6_ADDRESS, ENTRYPOINT_V7_ADDRESS, EntryPointVersion
from aa_gas_estimator.typing import Address


class ChainStack(Enum):
    EVM = "evm"
    OPTIMISM = "optimism"
    ARBITRUM = "arbitrum"
    MANTLE = "mantle"


@dataclass(frozen=True)
class StateOverrideSupport:
    balance: bool
    bytecode: bool
    state_diff: bool = False


@dataclass(frozen=True)
class SimulationLimits:
    pre_verification_gas: int
    verification_gas_limit: int
    call_gas_limit: int


def _default_entrypoints() -> dict[EntryPointVersion, Address]:
    return {
        EntryPointVersion.V060: ENTRYPOINT_V6_ADDRESS,
        EntryPointVersion.V070: ENTRYPOINT_V7_ADDRESS,
    }


@dataclass(frozen=True)
class SupportedChain:
    chain_id: int
    name: str
    stack: ChainStack
    state_override_support: StateOverrideSupport
    entrypoints: dict[EntryPointVersion, Address] = field(
        default_factory=_default_entrypoints)
    # paymaster address -> storage key of its deposit in the v0.7 entrypoint
    paymaster_deposit_state_keys: dict[Address, str] = field(
        default_factory=dict)
    simulation: SimulationLimits | None = None

    def supports_any_state_override(self) -> bool:
        return (
            self.state_override_support.balance or
            self.state_override_support.bytecode
        )


def _chain(
    chain_id: int,
    name: str,
    stack: ChainStack,
    balance: bool,
    bytecode: bool,
    state_diff: bool | None = None,
) -> SupportedChain:
    # nodes that accept balance overrides accept stateDiff too unless noted
    if state_diff is None:
        state_diff = balance
    return SupportedChain(
        chain_id=chain_id,
        name=name,
        stack=stack,
        state_override_support=StateOverrideSupport(
            balance, bytecode, state_diff),
    )


SUPPORTED_CHAINS: dict[int, SupportedChain] = {
    chain.chain_id: chain for chain in [
        _chain(1, "Ethereum Mainnet", ChainStack.EVM, True, False),
        _chain(11155111, "Ethereum Sepolia", ChainStack.EVM, True, False),
        _chain(137, "Polygon Mainnet", ChainStack.EVM, True, True),
        _chain(80002, "Polygon Amoy", ChainStack.EVM, True, True),
        _chain(56, "Binance Smart Chain", ChainStack.EVM, True, True),
        _chain(97, "Binance Smart Chain Testnet", ChainStack.EVM, True, True),
        _chain(42161, "Arbitrum Mainnet", ChainStack.ARBITRUM, True, True),
        _chain(421614, "Arbitrum Sepolia Testnet", ChainStack.ARBITRUM, True,
               False),
        _chain(42170, "Arbitrum Nova", ChainStack.ARBITRUM, True, True),
        _chain(10, "Optimism Mainnet", ChainStack.OPTIMISM, True, True),
        _chain(11155420, "Optimism Testnet", ChainStack.OPTIMISM, True, False),
        _chain(8453, "Base Mainnet", ChainStack.OPTIMISM, True, True),
        _chain(84532, "Base Sepolia Testnet", ChainStack.OPTIMISM, True, False),
        _chain(204, "opBNB Mainnet", ChainStack.OPTIMISM, True, True),
        _chain(5000, "Mantle Mainnet", ChainStack.MANTLE, True, True),
        _chain(5001, "Mantle Testnet", ChainStack.MANTLE, True, True),
        _chain(592, "Astar Network", ChainStack.EVM, False, False),
        _chain(81, "Astar Testnet", ChainStack.EVM, False, False),
    ]
}


def get_supported_chain(chain_id: int) -> SupportedChain:
    if chain_id not in SUPPORTED_CHAINS:
        raise ValueError(f"Chain {chain_id} is not supported")
    return SUPPORTED_CHAINS[chain_id]
