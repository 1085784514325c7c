"""
Event records emitted by the vault.

Entry points append one record per completed action to ``Vault.events``.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Minted:
    receiver: str
    mint_amount: int
    amount0_in: int
    amount1_in: int
    liquidity_minted: int


@dataclass(frozen=True)
class Burned:
    receiver: str
    burn_amount: int
    amount0_out: int
    amount1_out: int
    liquidity_burned: int


@dataclass(frozen=True)
class FeesEarned:
    """Доля депозиторов после удержания manager fee."""
    fee0: int
    fee1: int


@dataclass(frozen=True)
class Rebalance:
    tick_lower: int
    tick_upper: int
    liquidity_before: int
    liquidity_after: int


@dataclass(frozen=True)
class RangeChanged:
    old_lower: int
    old_upper: int
    new_lower: int
    new_upper: int


@dataclass(frozen=True)
class ManagerBalanceWithdrawn:
    treasury: str
    amount0: int
    amount1: int


@dataclass(frozen=True)
class ParametersUpdated:
    changes: tuple  # ((name, value), ...)
