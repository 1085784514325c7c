"""
Tests for lp_vault/math/fees.py

Fee growth считается по модулю 2^256: переполнение счётчиков пула не
должно давать отрицательных или гигантских комиссий.
"""

import pytest

from lp_vault.math.fees import (
    fee_growth_above,
    fee_growth_below,
    fee_growth_inside,
    fees_earned,
)
from lp_vault.math.full_math import Q128, UINT256


class TestFeeGrowthBelowAbove:

    def test_below_when_current_above_tick(self):
        assert fee_growth_below(-600, 0, 1000, 300) == 300

    def test_below_when_current_below_tick(self):
        assert fee_growth_below(-600, -1000, 1000, 300) == 700

    def test_above_when_current_below_tick(self):
        assert fee_growth_above(600, 0, 1000, 200) == 200

    def test_above_when_current_at_or_above_tick(self):
        assert fee_growth_above(600, 600, 1000, 200) == 800


class TestFeeGrowthInside:

    def test_current_in_range(self):
        # global - below(lower) - above(upper) = 1000 - 300 - 200
        assert fee_growth_inside(-600, 600, 0, 1000, 300, 200) == 500

    def test_current_below_range(self):
        # below = global - outside_lower, above = outside_upper
        assert fee_growth_inside(-600, 600, -1000, 1000, 300, 200) == 100

    def test_current_above_range(self):
        # below = outside_lower, above = global - outside_upper
        assert fee_growth_inside(-600, 600, 1000, 1000, 300, 200) == 1000 - 300 - 800 + UINT256

    def test_result_is_reduced_mod_2_256(self):
        value = fee_growth_inside(-600, 600, 0, 5, 10, 0)
        assert 0 <= value < UINT256
        assert value == UINT256 - 5


class TestFeesEarned:

    def test_basic(self):
        """L * delta / 2^128"""
        fees = fees_earned(
            fee_growth_global=10 * Q128,
            fee_growth_outside_lower=0,
            fee_growth_outside_upper=0,
            fee_growth_inside_last=4 * Q128,
            current_tick=0,
            liquidity=1000,
            tick_lower=-600,
            tick_upper=600,
        )
        assert fees == 6000

    def test_counter_wraparound(self):
        """Глобальный счётчик переполнился: 5 после 2^256 - 10 -> прирост 15."""
        fees = fees_earned(
            fee_growth_global=5,
            fee_growth_outside_lower=0,
            fee_growth_outside_upper=0,
            fee_growth_inside_last=UINT256 - 10,
            current_tick=0,
            liquidity=Q128,
            tick_lower=-600,
            tick_upper=600,
        )
        assert fees == 15

    def test_no_growth_no_fees(self):
        fees = fees_earned(Q128, 0, 0, Q128, 0, 10 ** 18, -600, 600)
        assert fees == 0

    def test_zero_liquidity(self):
        assert fees_earned(10 * Q128, 0, 0, 0, 0, 0, -600, 600) == 0

    def test_rounds_down(self):
        # 3 * (Q128 // 2) / Q128 = 1.5 -> 1
        assert fees_earned(Q128 // 2, 0, 0, 0, 0, 3, -600, 600) == 1

    @pytest.mark.parametrize("current_tick", [-1000, 1000])
    def test_out_of_range_position_earns_nothing_new(self, current_tick):
        """Позиция вне диапазона: fee growth inside не меняется при росте global."""
        before = fee_growth_inside(-600, 600, current_tick, 1000, 300, 200)
        after = fee_growth_inside(-600, 600, current_tick, 5000, 300, 200)
        assert before == after
