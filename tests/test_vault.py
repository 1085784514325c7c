"""
Tests for lp_vault/vault.py: deposit / withdraw / quotes / fees / callbacks.

Пул и токены - in-memory фейки из tests/fakes.py, callbacks синхронные.
"""

import pytest

from fakes import (
    ALICE,
    BOB,
    KEEPER,
    MANAGER,
    TICK_LOWER,
    TICK_UPPER,
    TREASURY,
    VAULT_ADDRESS,
    FakePool,
    FakeToken,
    make_address,
)
from lp_vault.contracts.interfaces import position_key
from lp_vault.errors import (
    InsufficientShares,
    InvalidAddress,
    InvalidParameter,
    InvalidRange,
    InvalidSlippage,
    MinimumSharesNotMet,
    NothingToBurn,
    ReentrancyError,
    SlippageExceeded,
    TransferFailed,
    Unauthorized,
    UnauthorizedCallback,
    ZeroAddress,
    ZeroAmount,
)
from lp_vault.events import Burned, FeesEarned, ManagerBalanceWithdrawn, Minted
from lp_vault.math.full_math import mul_div_rounding_up
from lp_vault.math.liquidity import get_amounts_for_liquidity
from lp_vault.math.ticks import get_sqrt_ratio_at_tick
from lp_vault.vault import AccruedFees, Vault


def position_liquidity(vault, lower=None, upper=None):
    lower = vault.tick_lower if lower is None else lower
    upper = vault.tick_upper if upper is None else upper
    return vault.pool.positions(position_key(vault.address, lower, upper)).liquidity


# ============================================================
# Construction
# ============================================================

class TestVaultInit:

    def test_roles_checksummed(self, vault):
        assert vault.manager == MANAGER
        assert vault.treasury == TREASURY
        assert vault.keeper == KEEPER
        assert vault.total_supply == 0

    def test_zero_manager_rejected(self, pool):
        with pytest.raises(ZeroAddress):
            Vault(VAULT_ADDRESS, pool, "0x" + "0" * 40, TREASURY, TICK_LOWER, TICK_UPPER)

    def test_unaligned_range_rejected(self, pool):
        with pytest.raises(InvalidRange):
            Vault(VAULT_ADDRESS, pool, MANAGER, TREASURY, -610, 600)

    def test_inverted_range_rejected(self, pool):
        with pytest.raises(InvalidRange):
            Vault(VAULT_ADDRESS, pool, MANAGER, TREASURY, 600, -600)

    def test_keeper_optional(self, pool):
        vault = Vault(VAULT_ADDRESS, pool, MANAGER, TREASURY, TICK_LOWER, TICK_UPPER)
        assert vault.keeper is None


# ============================================================
# Deposit
# ============================================================

class TestFirstDeposit:

    def test_minimum_shares_floor(self, vault, fund):
        """Первый mint должен быть строго больше 1000 shares."""
        fund(ALICE, 10 ** 6, 10 ** 6)
        with pytest.raises(MinimumSharesNotMet):
            vault.deposit(ALICE, 1000)
        assert vault.total_supply == 0

        result = vault.deposit(ALICE, 1001)
        assert result.mint_amount == 1001
        assert vault.balance_of(ALICE) == 1001

    def test_amounts_round_up(self, vault, fund, tokens):
        fund(ALICE, 10 ** 18, 10 ** 18)
        result = vault.deposit(ALICE, 10 ** 18)

        expected = get_amounts_for_liquidity(
            get_sqrt_ratio_at_tick(0), get_sqrt_ratio_at_tick(TICK_LOWER),
            get_sqrt_ratio_at_tick(TICK_UPPER), 10 ** 18, round_up=True
        )
        assert (result.amount0, result.amount1) == expected
        assert tokens[0].balance_of(ALICE) == 10 ** 18 - result.amount0
        assert tokens[1].balance_of(ALICE) == 10 ** 18 - result.amount1

    def test_position_and_event(self, vault, fund):
        fund(ALICE, 10 ** 18, 10 ** 18)
        result = vault.deposit(ALICE, 10 ** 18, receiver=BOB)

        assert vault.balance_of(BOB) == 10 ** 18
        assert vault.balance_of(ALICE) == 0
        assert position_liquidity(vault) == result.liquidity_minted
        assert vault.events[-1] == Minted(BOB, 10 ** 18, result.amount0, result.amount1, result.liquidity_minted)

    def test_zero_mint_rejected(self, vault):
        with pytest.raises(ZeroAmount):
            vault.deposit(ALICE, 0)

    def test_quote_for_empty_vault(self, vault):
        amount0, amount1, mint_amount = vault.get_mint_amounts(10 ** 18, 10 ** 18)
        assert mint_amount > 0
        assert amount0 <= 10 ** 18 and amount1 <= 10 ** 18

    def test_quote_below_minimum_shares(self, vault):
        """Quote для пустого vault отклоняет тот же первый mint, что и deposit."""
        with pytest.raises(MinimumSharesNotMet):
            vault.get_mint_amounts(10, 10)

    def test_invalid_caller_address(self, vault):
        with pytest.raises(InvalidAddress):
            vault.deposit("not-an-address", 10 ** 18)


class TestSubsequentDeposit:

    def test_proportional_amounts(self, funded_vault, fund):
        supply = funded_vault.total_supply
        underlying0, underlying1 = funded_vault.get_underlying_balances()

        fund(BOB, 10 ** 17, 10 ** 17)
        result = funded_vault.deposit(BOB, supply // 10)

        assert result.amount0 == mul_div_rounding_up(supply // 10, underlying0, supply)
        assert result.amount1 == mul_div_rounding_up(supply // 10, underlying1, supply)
        assert funded_vault.total_supply == supply + supply // 10

    def test_quote_matches_deposit(self, funded_vault, fund):
        amount0, amount1, mint_amount = funded_vault.get_mint_amounts(10 ** 15, 3 * 10 ** 15)
        assert amount0 <= 10 ** 15
        assert amount1 <= 3 * 10 ** 15

        fund(BOB, amount0, amount1)
        result = funded_vault.deposit(BOB, mint_amount)
        assert (result.amount0, result.amount1) == (amount0, amount1)

    def test_missing_allowance_fails_loudly(self, funded_vault, tokens):
        tokens[0].mint(BOB, 10 ** 18)
        tokens[1].mint(BOB, 10 ** 18)
        with pytest.raises(TransferFailed):
            funded_vault.deposit(BOB, 10 ** 15)
        assert funded_vault.balance_of(BOB) == 0

    def test_token_returning_false(self, funded_vault, fund, tokens):
        fund(BOB, 10 ** 18, 10 ** 18)
        supply = funded_vault.total_supply
        tokens[1].return_false = True
        with pytest.raises(TransferFailed, match="returned false"):
            funded_vault.deposit(BOB, 10 ** 15)
        assert funded_vault.total_supply == supply
        assert tokens[0].balance_of(BOB) == 10 ** 18

    def test_failed_mint_refunds_depositor(self, funded_vault, fund, pool, tokens):
        """Пул отклонил mint: токены депозитора не остаются в vault."""
        fund(BOB, 10 ** 18, 10 ** 18)
        vault_balances = (tokens[0].balance_of(VAULT_ADDRESS), tokens[1].balance_of(VAULT_ADDRESS))

        def reject_mint():
            raise RuntimeError("pool paused")

        pool.mint_hook = reject_mint
        with pytest.raises(RuntimeError, match="pool paused"):
            funded_vault.deposit(BOB, 10 ** 17)

        assert funded_vault.balance_of(BOB) == 0
        assert tokens[0].balance_of(BOB) == 10 ** 18
        assert tokens[1].balance_of(BOB) == 10 ** 18
        assert (tokens[0].balance_of(VAULT_ADDRESS), tokens[1].balance_of(VAULT_ADDRESS)) == vault_balances


# ============================================================
# Withdraw
# ============================================================

class TestWithdraw:

    def test_round_trip_never_profits(self, funded_vault, fund, tokens):
        fund(BOB, 10 ** 17, 10 ** 17)
        paid = funded_vault.deposit(BOB, 12_345_678_901_234_567)
        received = funded_vault.withdraw(BOB, 12_345_678_901_234_567)

        assert received.amount0 <= paid.amount0
        assert received.amount1 <= paid.amount1
        assert funded_vault.balance_of(BOB) == 0

    def test_full_exit_leaves_only_manager_balance(self, funded_vault, pool, tokens):
        pool.accrue_fees(10 ** 18, 10 ** 18)
        funded_vault.withdraw(ALICE, funded_vault.total_supply)

        assert funded_vault.total_supply == 0
        assert position_liquidity(funded_vault) == 0
        assert funded_vault.manager_balance0 > 0
        assert tokens[0].balance_of(funded_vault.address) == funded_vault.manager_balance0
        assert tokens[1].balance_of(funded_vault.address) == funded_vault.manager_balance1

    def test_payout_to_receiver(self, funded_vault, tokens):
        result = funded_vault.withdraw(ALICE, 10 ** 17, receiver=BOB)
        assert tokens[0].balance_of(BOB) == result.amount0
        assert tokens[1].balance_of(BOB) == result.amount1
        assert funded_vault.events[-1] == Burned(BOB, 10 ** 17, result.amount0, result.amount1,
                                                 result.liquidity_burned)

    def test_burn_more_than_owned(self, funded_vault):
        with pytest.raises(InsufficientShares):
            funded_vault.withdraw(BOB, 1)

    def test_zero_burn_rejected(self, funded_vault):
        with pytest.raises(ZeroAmount):
            funded_vault.withdraw(ALICE, 0)

    def test_dust_burn_returns_nothing(self, funded_vault):
        """1 share из 10^18 -> 0 токенов -> NothingToBurn, shares не сгорают."""
        with pytest.raises(NothingToBurn):
            funded_vault.withdraw(ALICE, 1)
        assert funded_vault.balance_of(ALICE) == 10 ** 18

    def test_invalid_single_token(self, funded_vault):
        with pytest.raises(InvalidParameter):
            funded_vault.withdraw(ALICE, 10 ** 17, single_token=2)
        assert funded_vault.balance_of(ALICE) == 10 ** 18


class TestZapOut:

    def test_single_token1(self, funded_vault, tokens):
        before0 = tokens[0].balance_of(ALICE)
        result = funded_vault.withdraw(ALICE, 10 ** 17, single_token=1)

        assert result.amount0 == 0
        assert result.amount1 > 0
        assert tokens[0].balance_of(ALICE) == before0

    def test_single_token0(self, funded_vault, tokens):
        before1 = tokens[1].balance_of(ALICE)
        result = funded_vault.withdraw(ALICE, 10 ** 17, single_token=0)

        assert result.amount1 == 0
        assert result.amount0 > 0
        assert tokens[1].balance_of(ALICE) == before1

    def test_zap_gets_more_of_target_token(self, funded_vault):
        """Zap в token1 даёт больше token1, чем обычный вывод той же доли."""
        plain = funded_vault.withdraw(ALICE, 10 ** 17)
        zapped = funded_vault.withdraw(ALICE, 10 ** 17, single_token=1)
        assert zapped.amount1 > plain.amount1

    def test_partial_fill_aborts(self, funded_vault, pool):
        liquidity_before = position_liquidity(funded_vault)
        pool.fill_cap = 1_000
        with pytest.raises(SlippageExceeded, match="filled"):
            funded_vault.withdraw(ALICE, 10 ** 17, single_token=1)
        assert funded_vault.balance_of(ALICE) == 10 ** 18
        # Сожжённая liquidity вернулась в позицию
        assert position_liquidity(funded_vault) > liquidity_before * 99 // 100

    def test_slippage_above_max_rejected(self, funded_vault):
        with pytest.raises(InvalidSlippage):
            funded_vault.withdraw(ALICE, 10 ** 17, single_token=1, max_slippage_bps=500)


# ============================================================
# Concrete scenario
# ============================================================

class TestConcreteScenario:
    """
    Диапазон [-200, 200], тик 0, supply 1_000_000.
    Депозит 500 shares стоит 5 каждого токена (вверх),
    вывод тех же 500 shares возвращает 4 (вниз).
    """

    @pytest.fixture
    def small_vault(self):
        token0 = FakeToken(make_address(0x9000), "TK0")
        token1 = FakeToken(make_address(0x9100), "TK1")
        pool = FakePool(token0, token1, fee=500, tick_spacing=10, tick=0)
        vault = Vault(VAULT_ADDRESS, pool, MANAGER, TREASURY, -200, 200)
        for account in (ALICE, BOB):
            for token in (token0, token1):
                token.mint(account, 10 ** 6)
                token.approve(account, vault.address, 10 ** 6)
        return vault

    def test_deposit_and_burn_500_shares(self, small_vault):
        first = small_vault.deposit(ALICE, 1_000_000)
        assert (first.amount0, first.amount1) == (9950, 9950)

        paid = small_vault.deposit(BOB, 500)
        assert (paid.amount0, paid.amount1) == (5, 5)

        received = small_vault.withdraw(BOB, 500)
        assert (received.amount0, received.amount1) == (4, 4)
        assert small_vault.total_supply == 1_000_000


# ============================================================
# Fees
# ============================================================

class TestFees:

    def test_no_fees_initially(self, funded_vault):
        assert funded_vault.get_position_fees() == AccruedFees(0, 0, 0, 0)

    def test_fee_split(self, funded_vault, pool):
        pool.accrue_fees(10 ** 18, 2 * 10 ** 18)
        fees = funded_vault.get_position_fees()

        total0 = fees.depositor0 + fees.manager0
        total1 = fees.depositor1 + fees.manager1
        assert total0 > 0 and total1 > total0
        assert fees.manager0 == total0 * 1000 // 10_000
        assert fees.manager1 == total1 * 1000 // 10_000

    def test_compute_fees_earned_matches_position_fees(self, funded_vault, pool):
        pool.accrue_fees(10 ** 18, 0)
        pos = pool.positions(position_key(funded_vault.address, TICK_LOWER, TICK_UPPER))
        fee0 = funded_vault.compute_fees_earned(True, pos.fee_growth_inside0_last_x128, 0, pos.liquidity)
        fees = funded_vault.get_position_fees()
        assert fee0 == fees.depositor0 + fees.manager0

    def test_underlying_grows_with_fees(self, funded_vault, pool):
        before = funded_vault.get_underlying_balances()
        pool.accrue_fees(10 ** 18, 10 ** 18)
        after = funded_vault.get_underlying_balances()
        assert after[0] > before[0]
        assert after[1] > before[1]

    def test_underlying_at_price(self, funded_vault):
        assert funded_vault.get_underlying_balances_at_price(get_sqrt_ratio_at_tick(0)) == \
            funded_vault.get_underlying_balances()

        current = funded_vault.get_underlying_balances()
        below = funded_vault.get_underlying_balances_at_price(get_sqrt_ratio_at_tick(-1200))
        assert below[0] > current[0]
        assert below[1] < current[1]

    def test_fees_event_on_withdraw(self, funded_vault, pool):
        pool.accrue_fees(10 ** 18, 10 ** 18)
        funded_vault.withdraw(ALICE, 10 ** 17)
        assert any(isinstance(e, FeesEarned) for e in funded_vault.events)


# ============================================================
# Manager balance
# ============================================================

class TestManagerBalance:

    def test_withdraw_to_treasury(self, funded_vault, pool, tokens):
        pool.accrue_fees(10 ** 18, 10 ** 18)
        funded_vault.withdraw(ALICE, 10 ** 17)
        manager0, manager1 = funded_vault.manager_balance0, funded_vault.manager_balance1
        assert manager0 > 0

        assert funded_vault.withdraw_manager_balance(MANAGER) == (manager0, manager1)
        assert tokens[0].balance_of(TREASURY) == manager0
        assert tokens[1].balance_of(TREASURY) == manager1
        assert funded_vault.manager_balance0 == 0
        assert funded_vault.events[-1] == ManagerBalanceWithdrawn(TREASURY, manager0, manager1)

    def test_only_manager(self, funded_vault):
        with pytest.raises(Unauthorized):
            funded_vault.withdraw_manager_balance(KEEPER)

    def test_malformed_caller_is_unauthorized(self, funded_vault):
        with pytest.raises(Unauthorized):
            funded_vault.withdraw_manager_balance("0x123")
        with pytest.raises(Unauthorized):
            funded_vault.rebalance(None)


# ============================================================
# Callbacks / reentrancy
# ============================================================

class TestCallbacks:

    def test_callback_from_unknown_caller(self, funded_vault):
        with pytest.raises(UnauthorizedCallback):
            funded_vault.amm_mint_callback(object(), 1, 1)
        with pytest.raises(UnauthorizedCallback):
            funded_vault.amm_swap_callback(object(), 1, -1)

    def test_callback_outside_operation(self, funded_vault, pool):
        with pytest.raises(UnauthorizedCallback, match="outside"):
            funded_vault.amm_mint_callback(pool, 1, 1)

    def test_reentrant_deposit_from_pool(self, funded_vault, pool, fund, tokens):
        fund(BOB, 10 ** 18, 10 ** 18)
        pool.mint_hook = lambda: funded_vault.deposit(BOB, 10 ** 15)
        with pytest.raises(ReentrancyError):
            funded_vault.deposit(BOB, 10 ** 15)
        assert funded_vault.balance_of(BOB) == 0
        assert tokens[0].balance_of(BOB) == 10 ** 18
        assert not funded_vault._guard.locked
