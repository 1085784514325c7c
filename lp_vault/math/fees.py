"""
Fee growth mathematics

Комиссии позиции считаются через счётчики пула:
    f_b(i) = f_o(i)        if i_c >= i else f_g - f_o(i)   # ниже тика
    f_a(i) = f_g - f_o(i)  if i_c >= i else f_o(i)         # выше тика
    f_r    = f_g - f_b(i_l) - f_a(i_u)                     # внутри диапазона
    fees   = L * (f_r - f_r_last) / 2^128

Все вычитания по модулю 2^256: счётчики пула монотонно растут и
переполняются, разница всё равно корректна.
"""

from .full_math import Q128, mul_div, sub_mod256


def fee_growth_below(
    tick: int,
    current_tick: int,
    fee_growth_global: int,
    fee_growth_outside: int
) -> int:
    """Fee growth ниже тика (f_b)."""
    if current_tick >= tick:
        return fee_growth_outside
    return sub_mod256(fee_growth_global, fee_growth_outside)


def fee_growth_above(
    tick: int,
    current_tick: int,
    fee_growth_global: int,
    fee_growth_outside: int
) -> int:
    """Fee growth выше тика (f_a)."""
    if current_tick >= tick:
        return sub_mod256(fee_growth_global, fee_growth_outside)
    return fee_growth_outside


def fee_growth_inside(
    tick_lower: int,
    tick_upper: int,
    current_tick: int,
    fee_growth_global: int,
    fee_growth_outside_lower: int,
    fee_growth_outside_upper: int
) -> int:
    """
    Fee growth внутри диапазона (f_r), Q128.

    Args:
        tick_lower: Нижний тик позиции
        tick_upper: Верхний тик позиции
        current_tick: Текущий тик пула
        fee_growth_global: Глобальный счётчик пула
        fee_growth_outside_lower: feeGrowthOutside нижнего тика
        fee_growth_outside_upper: feeGrowthOutside верхнего тика
    """
    below = fee_growth_below(tick_lower, current_tick, fee_growth_global, fee_growth_outside_lower)
    above = fee_growth_above(tick_upper, current_tick, fee_growth_global, fee_growth_outside_upper)
    return sub_mod256(sub_mod256(fee_growth_global, below), above)


def fees_earned(
    fee_growth_global: int,
    fee_growth_outside_lower: int,
    fee_growth_outside_upper: int,
    fee_growth_inside_last: int,
    current_tick: int,
    liquidity: int,
    tick_lower: int,
    tick_upper: int
) -> int:
    """
    Комиссии позиции с последнего снапшота, в минимальных единицах токена.

    Returns:
        L * (f_r - f_r_last) / 2^128, округление вниз
    """
    inside = fee_growth_inside(
        tick_lower, tick_upper, current_tick,
        fee_growth_global, fee_growth_outside_lower, fee_growth_outside_upper
    )
    return mul_div(liquidity, sub_mod256(inside, fee_growth_inside_last), Q128)
