"""
External collaborator interfaces.

The vault consumes an AMM pool (Uniswap V3 compatible surface) and one token
contract per underlying asset. Both are external: the vault never caches
their state beyond a single operation.
"""

from dataclasses import dataclass
from typing import List, Protocol, Sequence, Tuple


@dataclass(frozen=True)
class Slot0:
    """Текущая цена и тик пула."""
    sqrt_price_x96: int
    tick: int


@dataclass(frozen=True)
class PositionState:
    """pool.positions(key)"""
    liquidity: int
    fee_growth_inside0_last_x128: int
    fee_growth_inside1_last_x128: int
    tokens_owed0: int
    tokens_owed1: int


@dataclass(frozen=True)
class TickState:
    """Fee growth outside для тика (остальные поля тика vault не использует)."""
    fee_growth_outside0_x128: int
    fee_growth_outside1_x128: int


PositionKey = Tuple[str, int, int]  # (owner, tick_lower, tick_upper)


def position_key(owner: str, tick_lower: int, tick_upper: int) -> PositionKey:
    return owner, tick_lower, tick_upper


class PoolStateReader(Protocol):
    """Read half of the pool: prices, positions, fee growth, oracle."""

    tick_spacing: int

    def slot0(self) -> Slot0: ...

    def positions(self, key: PositionKey) -> PositionState: ...

    def ticks(self, tick: int) -> TickState: ...

    def fee_growth_global0_x128(self) -> int: ...

    def fee_growth_global1_x128(self) -> int: ...

    def observe(self, seconds_agos: Sequence[int]) -> List[int]: ...


class AmmPool(PoolStateReader, Protocol):
    """
    Full pool surface.

    mint() and swap() call back into ``recipient``/``callback`` synchronously
    (amm_mint_callback / amm_swap_callback) before returning; the callee must
    pay what it owes from inside the callback.
    """

    address: str
    token0: "Token"
    token1: "Token"

    def mint(self, recipient, tick_lower: int, tick_upper: int, amount: int,
             data: bytes = b"") -> Tuple[int, int]: ...

    def burn(self, owner: str, tick_lower: int, tick_upper: int,
             amount: int) -> Tuple[int, int]: ...

    def collect(self, owner: str, recipient: str, tick_lower: int, tick_upper: int,
                amount0_requested: int, amount1_requested: int) -> Tuple[int, int]: ...

    def swap(self, recipient, zero_for_one: bool, amount_specified: int,
             sqrt_price_limit_x96: int, data: bytes = b"") -> Tuple[int, int]: ...


class Token(Protocol):
    """ERC20-like token. Falsy return or an exception means failure."""

    address: str

    def balance_of(self, account: str) -> int: ...

    def transfer(self, sender: str, to: str, amount: int) -> bool: ...

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool: ...


class PoolCallbackReceiver(Protocol):
    """What the pool calls back into during mint/swap."""

    address: str

    def amm_mint_callback(self, sender, amount0_owed: int, amount1_owed: int,
                          data: bytes) -> None: ...

    def amm_swap_callback(self, sender, amount0_delta: int, amount1_delta: int,
                          data: bytes) -> None: ...
