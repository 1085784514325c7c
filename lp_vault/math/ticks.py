"""
Uniswap V3 Tick Mathematics

Основные формулы:
- price(i) = 1.0001^i
- sqrtPriceX96 = sqrt(price) * 2^96

Конвертация tick -> sqrtPriceX96 выполняется только целочисленно, тем же
способом, что и TickMath.sol в пуле, иначе round-trip liquidity <-> amounts
расходится с бухгалтерией пула.

Tick spacing по fee tier:
- 0.01% (100) -> spacing 1
- 0.05% (500) -> spacing 10
- 0.30% (3000) -> spacing 60
- 1.00% (10000) -> spacing 200
"""

import math

# Константы
Q96 = 2 ** 96
MIN_TICK = -887272
MAX_TICK = 887272
MIN_SQRT_RATIO = 4295128739
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342

# Fee tier -> tick spacing
FEE_TO_TICK_SPACING = {
    100: 1,      # 0.01%
    500: 10,     # 0.05%
    2500: 50,    # 0.25% (PancakeSwap)
    3000: 60,    # 0.30% (Uniswap)
    10000: 200,  # 1.00%
}

# Множители sqrt(1.0001)^(-2^i) в Q128.128, бит i тика -> множитель
_TICK_RATIO_MULTIPLIERS = (
    (0x2, 0xfff97272373d413259a46990580e213a),
    (0x4, 0xfff2e50f5f656932ef12357cf3c7fdcc),
    (0x8, 0xffe5caca7e10e4e61c3624eaa0941cd0),
    (0x10, 0xffcb9843d60f6159c9db58835c926644),
    (0x20, 0xff973b41fa98c081472e6896dfb254c0),
    (0x40, 0xff2ea16466c96a3843ec78b326b52861),
    (0x80, 0xfe5dee046a99a2a811c461f1969c3053),
    (0x100, 0xfcbe86c7900a88aedcffc83b479aa3a4),
    (0x200, 0xf987a7253ac413176f2b074cf7815e54),
    (0x400, 0xf3392b0822b70005940c7a398e4b70f3),
    (0x800, 0xe7159475a2c29b7443b29c7fa6e889d9),
    (0x1000, 0xd097f3bdfd2022b8845ad8f792aa5825),
    (0x2000, 0xa9f746462d870fdf8a65dc1f90e061e5),
    (0x4000, 0x70d869a156d2a1b890bb3df62baf32f7),
    (0x8000, 0x31be135f97d08fd981231505542fcfa6),
    (0x10000, 0x9aa508b5b7a84e1c677de54f3e99bc9),
    (0x20000, 0x5d6af8dedb81196699c329225ee604),
    (0x40000, 0x2216e584f5fa1ea926041bedfe98),
    (0x80000, 0x48a170391f7dc42444e8fa2),
)


def get_sqrt_ratio_at_tick(tick: int) -> int:
    """
    Точный sqrtPriceX96 для тика (Q64.96).

    Повторяет TickMath.getSqrtRatioAtTick: те же множители, та же
    разрядность и то же округление вверх при переходе Q128.128 -> Q64.96.

    Args:
        tick: Номер тика в [MIN_TICK, MAX_TICK]

    Returns:
        sqrtPriceX96

    Raises:
        ValueError: Если тик вне допустимого диапазона
    """
    if tick < MIN_TICK or tick > MAX_TICK:
        raise ValueError(f"Tick out of range: {tick} (valid: {MIN_TICK}..{MAX_TICK})")

    abs_tick = abs(tick)
    if abs_tick & 0x1:
        ratio = 0xfffcb933bd6fad37aa2d162d1a594001
    else:
        ratio = 0x100000000000000000000000000000000

    for bit, multiplier in _TICK_RATIO_MULTIPLIERS:
        if abs_tick & bit:
            ratio = (ratio * multiplier) >> 128

    if tick > 0:
        ratio = (2 ** 256 - 1) // ratio

    # Q128.128 -> Q64.96, округление вверх
    return (ratio >> 32) + (1 if ratio % (1 << 32) else 0)


def get_tick_at_sqrt_ratio(sqrt_price_x96: int) -> int:
    """
    Наибольший тик, для которого get_sqrt_ratio_at_tick(tick) <= sqrt_price_x96.

    Args:
        sqrt_price_x96: sqrtPriceX96 в [MIN_SQRT_RATIO, MAX_SQRT_RATIO)

    Returns:
        Tick

    Raises:
        ValueError: Если цена вне допустимого диапазона
    """
    if sqrt_price_x96 < MIN_SQRT_RATIO or sqrt_price_x96 >= MAX_SQRT_RATIO:
        raise ValueError(f"sqrtPriceX96 out of range: {sqrt_price_x96}")

    # Оценка через float, затем точная подгонка целочисленной функцией
    estimate = math.floor(2 * math.log(sqrt_price_x96 / Q96) / math.log(1.0001))
    tick = max(MIN_TICK, min(MAX_TICK, estimate))

    while tick < MAX_TICK and get_sqrt_ratio_at_tick(tick + 1) <= sqrt_price_x96:
        tick += 1
    while tick > MIN_TICK and get_sqrt_ratio_at_tick(tick) > sqrt_price_x96:
        tick -= 1
    return tick


def price_to_tick(price: float, invert: bool = False) -> int:
    """
    Конвертация цены в тик.

    price(i) = 1.0001^i
    i = log(price) / log(1.0001)

    Args:
        price: Цена token1/token0 (pool price)
               ИЛИ цена token0/token1 если invert=True
        invert: Если True, инвертирует цену (1/price) перед расчётом тика.

    Returns:
        Tick (целое число)
    """
    if price <= 0:
        raise ValueError("Price must be positive")

    if invert:
        price = 1.0 / price

    tick = math.floor(math.log(price) / math.log(1.0001))
    return max(MIN_TICK, min(MAX_TICK, tick))


def tick_to_price(tick: int, invert: bool = False) -> float:
    """
    Конвертация тика в цену (для отображения).

    Args:
        tick: Номер тика
        invert: Если True, возвращает цену token0/token1

    Returns:
        Цена token1/token0 (или token0/token1 если invert=True)
    """
    pool_price = 1.0001 ** tick
    if invert:
        return 1.0 / pool_price
    return pool_price


def sqrt_price_x96_to_price(sqrt_price_x96: int) -> float:
    """
    Конвертация sqrtPriceX96 в цену.

    price = (sqrtPriceX96 / 2^96)^2
    """
    sqrt_price = sqrt_price_x96 / Q96
    return sqrt_price ** 2


def align_tick_to_spacing(tick: int, tick_spacing: int, round_down: bool = True) -> int:
    """
    Выравнивание тика к tick_spacing.

    Args:
        tick: Исходный тик
        tick_spacing: Шаг тиков (зависит от fee tier)
        round_down: True = округление вниз (к -∞), False = вверх (к +∞)

    Returns:
        Выровненный тик
    """
    if tick % tick_spacing == 0:
        return tick  # Already aligned

    if round_down:
        # Floor division works correctly for both positive and negative
        return (tick // tick_spacing) * tick_spacing
    else:
        return ((tick // tick_spacing) + 1) * tick_spacing


def is_tick_aligned(tick: int, tick_spacing: int) -> bool:
    """Тик кратен tick_spacing."""
    return tick % tick_spacing == 0


def validate_tick_range(tick_lower: int, tick_upper: int, tick_spacing: int) -> None:
    """
    Проверка диапазона позиции: порядок, границы и выравнивание.

    Raises:
        ValueError: С описанием нарушенного условия
    """
    if tick_lower >= tick_upper:
        raise ValueError(f"tick_lower must be < tick_upper ({tick_lower} >= {tick_upper})")
    if tick_lower < MIN_TICK or tick_upper > MAX_TICK:
        raise ValueError(f"Ticks out of range: [{tick_lower}, {tick_upper}]")
    if not (is_tick_aligned(tick_lower, tick_spacing) and is_tick_aligned(tick_upper, tick_spacing)):
        raise ValueError(
            f"Ticks [{tick_lower}, {tick_upper}] are not aligned to spacing {tick_spacing}"
        )


def get_tick_spacing(fee: int) -> int:
    """
    Получение tick_spacing по fee tier.

    Raises:
        ValueError: Если fee tier неизвестен
    """
    if fee in FEE_TO_TICK_SPACING:
        return FEE_TO_TICK_SPACING[fee]

    valid_fees = sorted(FEE_TO_TICK_SPACING.keys())
    raise ValueError(f"Unknown fee tier: {fee}. Valid V3 fee tiers are: {valid_fees}")


def centered_range(current_tick: int, width: int, tick_spacing: int) -> tuple[int, int]:
    """
    Диапазон шириной ~width тиков вокруг текущего тика, выровненный к spacing.

    Returns:
        (tick_lower, tick_upper)
    """
    half = max(width // 2, tick_spacing)
    lower = align_tick_to_spacing(current_tick - half, tick_spacing, round_down=True)
    upper = align_tick_to_spacing(current_tick + half, tick_spacing, round_down=False)
    if upper == lower:
        upper += tick_spacing
    return max(lower, align_tick_to_spacing(MIN_TICK, tick_spacing, round_down=False)), \
        min(upper, align_tick_to_spacing(MAX_TICK, tick_spacing, round_down=True))
