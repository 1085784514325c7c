"""
Swap and oracle guards.

- Slippage: sqrtPriceLimitX96 = sqrtPrice * sqrt(1 ∓ slippage), always on the
  side that is unfavorable for the swapper.
- Oracle: the spot sqrt price must stay within ±tolerance of the TWAP sqrt
  price, using the same sqrt(1 ± tolerance) scaling.
- Reentrancy: one held/free flag per vault, acquired with ``with`` by every
  state-mutating entry point.
"""

import logging
import math
from typing import Any, Callable, Optional, Sequence

from .errors import (
    InvalidSlippage,
    OracleError,
    PriceDeviationTooHigh,
    ReentrancyError,
)
from .math.full_math import BPS, div_rounding_up
from .math.ticks import MAX_SQRT_RATIO, MIN_SQRT_RATIO, get_sqrt_ratio_at_tick, MIN_TICK, MAX_TICK

logger = logging.getLogger(__name__)


def resolve_slippage(requested_bps: int, max_bps: int) -> int:
    """
    Эффективный slippage для свопа.

    0 -> настроенный максимум; больше максимума или >= 100% -> ошибка.
    """
    if requested_bps < 0:
        raise InvalidSlippage(f"Slippage must be non-negative, got {requested_bps}")
    if requested_bps == 0:
        return max_bps
    if requested_bps >= BPS:
        raise InvalidSlippage(f"Slippage >= 100%: {requested_bps} bps")
    if requested_bps > max_bps:
        raise InvalidSlippage(f"Slippage {requested_bps} bps exceeds configured max {max_bps} bps")
    return requested_bps


def compute_sqrt_price_limit(sqrt_price_x96: int, zero_for_one: bool, slippage_bps: int) -> int:
    """
    sqrtPriceLimitX96 для V3 свопа.

    Продаём token0 -> цена (token1/token0) падает -> лимит sqrt(P * (1 - s)).
    Продаём token1 -> цена растёт -> лимит sqrt(P * (1 + s)).

    Args:
        sqrt_price_x96: Текущий sqrtPriceX96
        zero_for_one: Направление свопа (token0 -> token1)
        slippage_bps: Slippage в basis points (< 10000)

    Returns:
        sqrtPriceLimitX96, строго внутри (MIN_SQRT_RATIO, MAX_SQRT_RATIO)
    """
    if not 0 <= slippage_bps < BPS:
        raise InvalidSlippage(f"Slippage must be in [0, {BPS}): {slippage_bps}")

    price_x192 = sqrt_price_x96 * sqrt_price_x96
    if zero_for_one:
        limit = math.isqrt(price_x192 * (BPS - slippage_bps) // BPS)
        limit = max(limit, MIN_SQRT_RATIO + 1)
    else:
        target = div_rounding_up(price_x192 * (BPS + slippage_bps), BPS)
        limit = math.isqrt(target)
        if limit * limit < target:
            limit += 1
        limit = min(limit, MAX_SQRT_RATIO - 1)

    logger.debug(f"sqrtPriceLimitX96: current={sqrt_price_x96}, limit={limit}, "
                 f"direction={'sell token0' if zero_for_one else 'sell token1'}")
    return limit


def twap_tick_from_cumulatives(tick_cumulatives: Sequence[int], window: int) -> int:
    """
    Средний тик за окно из observe([window, 0]).

    Округление к -∞, как в OracleLibrary.consult.
    """
    if window <= 0:
        raise OracleError(f"TWAP window must be > 0, got {window}")
    if tick_cumulatives is None or len(tick_cumulatives) < 2:
        raise OracleError("Not enough oracle observations for TWAP")

    delta = tick_cumulatives[-1] - tick_cumulatives[0]
    tick = delta // window
    if tick < MIN_TICK or tick > MAX_TICK:
        raise OracleError(f"TWAP tick out of range: {tick}")
    return tick


def check_price_deviation(spot_sqrt_price_x96: int, twap_sqrt_price_x96: int, tolerance_bps: int) -> None:
    """
    Спот должен лежать в полосе ±tolerance вокруг TWAP.

    Raises:
        PriceDeviationTooHigh: Если спот вне полосы
    """
    if spot_sqrt_price_x96 >= twap_sqrt_price_x96:
        bound = compute_sqrt_price_limit(twap_sqrt_price_x96, zero_for_one=False, slippage_bps=tolerance_bps)
        within = spot_sqrt_price_x96 <= bound
    else:
        bound = compute_sqrt_price_limit(twap_sqrt_price_x96, zero_for_one=True, slippage_bps=tolerance_bps)
        within = spot_sqrt_price_x96 >= bound

    if not within:
        logger.warning(f"Oracle deviation: spot={spot_sqrt_price_x96}, twap={twap_sqrt_price_x96}, "
                       f"bound={bound}, tolerance={tolerance_bps}bps")
        raise PriceDeviationTooHigh(spot_sqrt_price_x96, twap_sqrt_price_x96, tolerance_bps)


def check_oracle_deviation(pool, twap_window: int, tolerance_bps: int) -> int:
    """
    TWAP из пула + проверка отклонения спота.

    Args:
        pool: Пул (slot0 + observe)
        twap_window: Окно в секундах
        tolerance_bps: Допустимое отклонение

    Returns:
        TWAP tick
    """
    try:
        tick_cumulatives = pool.observe([twap_window, 0])
    except Exception as e:
        raise OracleError(f"observe({twap_window}) failed: {e}") from e

    twap_tick = twap_tick_from_cumulatives(tick_cumulatives, twap_window)
    spot = pool.slot0()
    check_price_deviation(spot.sqrt_price_x96, get_sqrt_ratio_at_tick(twap_tick), tolerance_bps)
    return twap_tick


class ReentrancyGuard:
    """
    Held/free lock for the vault's state-mutating entry points.

    On entry it takes a snapshot of the owner's state; if the body raises,
    the snapshot is restored before the lock is released, so an aborted
    operation leaves no partial vault state behind.

    Usage:
        with self._guard:
            ...
    """

    def __init__(
        self,
        snapshot: Optional[Callable[[], Any]] = None,
        restore: Optional[Callable[[Any], None]] = None
    ):
        self._snapshot = snapshot
        self._restore = restore
        self._locked = False
        self._saved = None

    @property
    def locked(self) -> bool:
        return self._locked

    def __enter__(self):
        if self._locked:
            raise ReentrancyError("Reentrant call")
        self._locked = True
        self._saved = self._snapshot() if self._snapshot else None
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            if exc_type is not None and self._restore is not None:
                self._restore(self._saved)
        finally:
            self._saved = None
            self._locked = False
        return False
