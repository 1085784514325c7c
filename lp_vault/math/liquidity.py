"""
Uniswap V3 Liquidity Mathematics

Формулы из whitepaper:
- L = amount0 * (sqrt(upper) * sqrt(lower)) / (sqrt(upper) - sqrt(lower))
- L = amount1 / (sqrt(upper) - sqrt(lower))

Когда текущая цена в диапазоне:
- L = amount0 * (sqrt(upper) * sqrt(current)) / (sqrt(upper) - sqrt(current))
- L = amount1 / (sqrt(current) - sqrt(lower))

Все цены в формате sqrtPriceX96, все расчёты целочисленные.

Округление несимметрично и это инвариант безопасности:
- суммы, которые ДОЛЖЕН депозитор -> вверх (round_up=True)
- суммы, которые ПОЛУЧАЕТ выводящий -> вниз (round_up=False)
- liquidity из сумм -> всегда вниз
"""

from .full_math import mul_div, mul_div_rounding_up, div_rounding_up
from .ticks import Q96


def _ordered(sqrt_ratio_a_x96: int, sqrt_ratio_b_x96: int) -> tuple[int, int]:
    if sqrt_ratio_a_x96 > sqrt_ratio_b_x96:
        return sqrt_ratio_b_x96, sqrt_ratio_a_x96
    return sqrt_ratio_a_x96, sqrt_ratio_b_x96


def get_amount0_delta(
    sqrt_ratio_a_x96: int,
    sqrt_ratio_b_x96: int,
    liquidity: int,
    round_up: bool
) -> int:
    """
    Количество token0 между двумя ценами для заданной liquidity.

    amount0 = L * (sqrt_b - sqrt_a) / (sqrt_b * sqrt_a)
    """
    sqrt_a, sqrt_b = _ordered(sqrt_ratio_a_x96, sqrt_ratio_b_x96)
    if sqrt_a <= 0:
        raise ValueError("sqrt price must be positive")

    numerator1 = liquidity << 96
    numerator2 = sqrt_b - sqrt_a

    if round_up:
        return div_rounding_up(mul_div_rounding_up(numerator1, numerator2, sqrt_b), sqrt_a)
    return mul_div(numerator1, numerator2, sqrt_b) // sqrt_a


def get_amount1_delta(
    sqrt_ratio_a_x96: int,
    sqrt_ratio_b_x96: int,
    liquidity: int,
    round_up: bool
) -> int:
    """
    Количество token1 между двумя ценами для заданной liquidity.

    amount1 = L * (sqrt_b - sqrt_a)
    """
    sqrt_a, sqrt_b = _ordered(sqrt_ratio_a_x96, sqrt_ratio_b_x96)

    if round_up:
        return mul_div_rounding_up(liquidity, sqrt_b - sqrt_a, Q96)
    return mul_div(liquidity, sqrt_b - sqrt_a, Q96)


def get_liquidity_for_amount0(
    sqrt_ratio_a_x96: int,
    sqrt_ratio_b_x96: int,
    amount0: int
) -> int:
    """
    Расчёт liquidity по количеству token0 (округление вниз).

    L = amount0 * (sqrt_upper * sqrt_lower) / (sqrt_upper - sqrt_lower)
    """
    sqrt_a, sqrt_b = _ordered(sqrt_ratio_a_x96, sqrt_ratio_b_x96)
    if sqrt_b == sqrt_a:
        raise ValueError("sqrt_price_upper must be > sqrt_price_lower")

    intermediate = mul_div(sqrt_a, sqrt_b, Q96)
    return mul_div(amount0, intermediate, sqrt_b - sqrt_a)


def get_liquidity_for_amount1(
    sqrt_ratio_a_x96: int,
    sqrt_ratio_b_x96: int,
    amount1: int
) -> int:
    """
    Расчёт liquidity по количеству token1 (округление вниз).

    L = amount1 / (sqrt_upper - sqrt_lower)
    """
    sqrt_a, sqrt_b = _ordered(sqrt_ratio_a_x96, sqrt_ratio_b_x96)
    if sqrt_b == sqrt_a:
        raise ValueError("sqrt_price_upper must be > sqrt_price_lower")

    return mul_div(amount1, Q96, sqrt_b - sqrt_a)


def get_liquidity_for_amounts(
    sqrt_ratio_x96: int,
    sqrt_ratio_a_x96: int,
    sqrt_ratio_b_x96: int,
    amount0: int,
    amount1: int
) -> int:
    """
    Максимальная liquidity, которую покрывают оба количества.

    Три случая:
    1. current <= lower: позиция полностью в token0
    2. current >= upper: позиция полностью в token1
    3. lower < current < upper: минимум из двух (лимитирующий токен)

    Args:
        sqrt_ratio_x96: Текущий sqrtPriceX96
        sqrt_ratio_a_x96: sqrtPriceX96 нижней границы
        sqrt_ratio_b_x96: sqrtPriceX96 верхней границы
        amount0: Доступно token0
        amount1: Доступно token1

    Returns:
        Liquidity (L), округлённая вниз
    """
    sqrt_a, sqrt_b = _ordered(sqrt_ratio_a_x96, sqrt_ratio_b_x96)

    if sqrt_ratio_x96 <= sqrt_a:
        return get_liquidity_for_amount0(sqrt_a, sqrt_b, amount0)

    if sqrt_ratio_x96 < sqrt_b:
        liquidity0 = get_liquidity_for_amount0(sqrt_ratio_x96, sqrt_b, amount0)
        liquidity1 = get_liquidity_for_amount1(sqrt_a, sqrt_ratio_x96, amount1)
        return min(liquidity0, liquidity1)

    return get_liquidity_for_amount1(sqrt_a, sqrt_b, amount1)


def get_amounts_for_liquidity(
    sqrt_ratio_x96: int,
    sqrt_ratio_a_x96: int,
    sqrt_ratio_b_x96: int,
    liquidity: int,
    round_up: bool = False
) -> tuple[int, int]:
    """
    Количество обоих токенов для заданной liquidity.

    По умолчанию округляет вниз: столько получает выводящий и не больше,
    чем реально лежит в позиции. round_up=True даёт суммы, которые должен
    внести депозитор.

    Returns:
        (amount0, amount1)
    """
    sqrt_a, sqrt_b = _ordered(sqrt_ratio_a_x96, sqrt_ratio_b_x96)

    amount0 = 0
    amount1 = 0

    if sqrt_ratio_x96 <= sqrt_a:
        amount0 = get_amount0_delta(sqrt_a, sqrt_b, liquidity, round_up)
    elif sqrt_ratio_x96 < sqrt_b:
        amount0 = get_amount0_delta(sqrt_ratio_x96, sqrt_b, liquidity, round_up)
        amount1 = get_amount1_delta(sqrt_a, sqrt_ratio_x96, liquidity, round_up)
    else:
        amount1 = get_amount1_delta(sqrt_a, sqrt_b, liquidity, round_up)

    return amount0, amount1
