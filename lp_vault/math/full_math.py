"""
Full-precision integer helpers.

Python ints are arbitrary precision, so multiply-then-divide never overflows;
these helpers only pin the rounding direction and the 256-bit wraparound the
pool's counters use.
"""

Q128 = 2 ** 128
UINT256 = 2 ** 256
UINT128_MAX = 2 ** 128 - 1
BPS = 10_000


def mul_div(a: int, b: int, denominator: int) -> int:
    """floor(a * b / denominator)"""
    if denominator == 0:
        raise ZeroDivisionError("mul_div by zero")
    return (a * b) // denominator


def mul_div_rounding_up(a: int, b: int, denominator: int) -> int:
    """ceil(a * b / denominator)"""
    if denominator == 0:
        raise ZeroDivisionError("mul_div_rounding_up by zero")
    result, remainder = divmod(a * b, denominator)
    if remainder > 0:
        result += 1
    return result


def div_rounding_up(numerator: int, denominator: int) -> int:
    """ceil(numerator / denominator)"""
    return mul_div_rounding_up(numerator, 1, denominator)


def sub_mod256(a: int, b: int) -> int:
    """a - b по модулю 2^256 (unchecked-вычитание uint256)."""
    return (a - b) % UINT256
