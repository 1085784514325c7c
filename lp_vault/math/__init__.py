from .ticks import (
    get_sqrt_ratio_at_tick,
    get_tick_at_sqrt_ratio,
    price_to_tick,
    tick_to_price,
    sqrt_price_x96_to_price,
    align_tick_to_spacing,
    validate_tick_range,
)
from .liquidity import (
    get_amounts_for_liquidity,
    get_liquidity_for_amounts,
)
from .fees import fee_growth_inside, fees_earned
from .full_math import mul_div, mul_div_rounding_up
