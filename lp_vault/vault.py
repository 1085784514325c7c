"""
Concentrated-liquidity vault

Один пул, одна позиция [tick_lower, tick_upper), fungible shares.

Поток данных каждой операции:
    pool state (slot0 / positions / fee growth) -> math -> pool.burn/swap/mint
    -> share ledger / manager balances -> event

Роли:
- manager: параметры риска, смена диапазона, вывод manager fees
- keeper: rebalance без смены диапазона (реинвест комиссий)

Округление: депозитор платит с округлением вверх, выводящий получает с
округлением вниз. Нарушение позволяет выкачивать стоимость повторными
mint/burn.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from web3 import Web3

from config import VAULT_DEFAULTS, ZERO_ADDRESS
from .contracts.interfaces import AmmPool, PositionState, Token, position_key
from .errors import (
    InsufficientLiquidity,
    InvalidAddress,
    InvalidParameter,
    InvalidRange,
    LiquidityNotIncreased,
    MinimumSharesNotMet,
    NothingToBurn,
    SlippageExceeded,
    TransferFailed,
    Unauthorized,
    UnauthorizedCallback,
    VaultError,
    ZeroAddress,
    ZeroAmount,
    ZeroMintAmount,
)
from .events import (
    Burned,
    FeesEarned,
    ManagerBalanceWithdrawn,
    Minted,
    ParametersUpdated,
    RangeChanged,
    Rebalance,
)
from .guards import (
    ReentrancyGuard,
    check_oracle_deviation,
    compute_sqrt_price_limit,
    resolve_slippage,
)
from .math.fees import fees_earned
from .math.full_math import BPS, UINT128_MAX, mul_div, mul_div_rounding_up
from .math.liquidity import get_amounts_for_liquidity, get_liquidity_for_amounts
from .math.ticks import get_sqrt_ratio_at_tick, get_tick_at_sqrt_ratio, validate_tick_range
from .params import RiskParameters
from .shares import ShareLedger

logger = logging.getLogger(__name__)


@dataclass
class DepositResult:
    """Результат deposit."""
    amount0: int
    amount1: int
    mint_amount: int
    liquidity_minted: int


@dataclass
class WithdrawResult:
    """Результат withdraw. При zap-out одна из сумм равна нулю."""
    amount0: int
    amount1: int
    liquidity_burned: int


@dataclass
class AccruedFees:
    """Несобранные комиссии позиции, разделённые между депозиторами и менеджером."""
    depositor0: int
    depositor1: int
    manager0: int
    manager1: int


def _checksum(address: Optional[str], role: str) -> str:
    if not address:
        raise ZeroAddress(f"{role} address is required")
    try:
        address = Web3.to_checksum_address(address)
    except (ValueError, TypeError) as e:
        raise InvalidAddress(f"{role} address {address!r} is invalid: {e}") from e
    if address == ZERO_ADDRESS:
        raise ZeroAddress(f"{role} address must be non-zero")
    return address


class Vault:
    """
    Пул ликвидности с fungible shares поверх одной V3 позиции.

    Пример использования:
    ```python
    vault = Vault(
        address="0x...",          # адрес vault (владелец позиции в пуле)
        pool=pool,
        manager="0x...",
        treasury="0x...",
        tick_lower=-600,
        tick_upper=600,
        keeper="0x...",
    )

    amount0, amount1, mint_amount = vault.get_mint_amounts(10**18, 3000 * 10**18)
    vault.deposit(depositor, mint_amount)
    vault.rebalance(keeper)
    vault.withdraw(depositor, mint_amount, single_token=1)
    ```
    """

    def __init__(
        self,
        address: str,
        pool: AmmPool,
        manager: str,
        treasury: str,
        tick_lower: int,
        tick_upper: int,
        keeper: str = None,
        params: RiskParameters = None,
        min_initial_shares: int = None,
    ):
        self.address = _checksum(address, "vault")
        self.pool = pool
        self.token0: Token = pool.token0
        self.token1: Token = pool.token1

        self.manager = _checksum(manager, "manager")
        self.treasury = _checksum(treasury, "treasury")
        self.keeper = _checksum(keeper, "keeper") if keeper else None

        self._validate_range(tick_lower, tick_upper)
        self.tick_lower = tick_lower
        self.tick_upper = tick_upper

        self.params = params or RiskParameters.from_defaults()
        if min_initial_shares is None:
            min_initial_shares = VAULT_DEFAULTS.min_initial_shares
        self.min_initial_shares = min_initial_shares

        self.shares = ShareLedger()
        self.manager_balance0 = 0
        self.manager_balance1 = 0
        self.events: List[object] = []
        self._collected_fees: List[tuple] = []

        self._guard = ReentrancyGuard(self._snapshot_state, self._restore_state)

    # ============================================================
    # STATE / ROLES
    # ============================================================

    @property
    def total_supply(self) -> int:
        return self.shares.total_supply

    def balance_of(self, account: str) -> int:
        return self.shares.balance_of(account)

    def _snapshot_state(self) -> tuple:
        self._collected_fees = []
        return (
            self.tick_lower, self.tick_upper,
            self.manager_balance0, self.manager_balance1,
            self.params, self.treasury, self.keeper,
            self.shares.snapshot(), len(self.events),
        )

    def _restore_state(self, saved: tuple) -> None:
        """
        Откат учёта vault после abort.

        Комиссии, уже собранные из пула, лежат на балансе vault и после
        отката: их split (manager balances + FeesEarned) сохраняется.
        """
        (self.tick_lower, self.tick_upper,
         self.manager_balance0, self.manager_balance1,
         self.params, self.treasury, self.keeper,
         shares_snapshot, events_count) = saved
        self.shares.restore(shares_snapshot)
        del self.events[events_count:]

        for event, manager0, manager1 in self._collected_fees:
            self.manager_balance0 += manager0
            self.manager_balance1 += manager1
            self.events.append(event)
        self._collected_fees = []
        logger.debug("Vault state restored after aborted operation")

    @staticmethod
    def _role_caller(caller: str, role: str) -> str:
        try:
            return Web3.to_checksum_address(caller)
        except (ValueError, TypeError):
            raise Unauthorized(repr(caller), role) from None

    def _require_manager(self, caller: str) -> None:
        if self._role_caller(caller, "manager") != self.manager:
            raise Unauthorized(caller, "manager")

    def _require_keeper_or_manager(self, caller: str) -> None:
        caller = self._role_caller(caller, "keeper or manager")
        if caller != self.manager and caller != self.keeper:
            raise Unauthorized(caller, "keeper or manager")

    def _validate_range(self, tick_lower: int, tick_upper: int) -> None:
        try:
            validate_tick_range(tick_lower, tick_upper, self.pool.tick_spacing)
        except ValueError as e:
            raise InvalidRange(str(e)) from e

    # ============================================================
    # POOL / TOKEN HELPERS
    # ============================================================

    def _position(self, tick_lower: int = None, tick_upper: int = None) -> PositionState:
        if tick_lower is None:
            tick_lower, tick_upper = self.tick_lower, self.tick_upper
        return self.pool.positions(position_key(self.address, tick_lower, tick_upper))

    def _range_sqrt_prices(self, tick_lower: int = None, tick_upper: int = None) -> Tuple[int, int]:
        if tick_lower is None:
            tick_lower, tick_upper = self.tick_lower, self.tick_upper
        return get_sqrt_ratio_at_tick(tick_lower), get_sqrt_ratio_at_tick(tick_upper)

    def _idle_balances(self) -> Tuple[int, int]:
        """Балансы vault без manager balances."""
        balance0 = self.token0.balance_of(self.address) - self.manager_balance0
        balance1 = self.token1.balance_of(self.address) - self.manager_balance1
        return max(balance0, 0), max(balance1, 0)

    def _pull(self, token: Token, owner: str, amount: int) -> None:
        if amount == 0:
            return
        try:
            ok = token.transfer_from(self.address, owner, self.address, amount)
        except VaultError:
            raise
        except Exception as e:
            raise TransferFailed(token.address, amount, str(e)) from e
        if not ok:
            raise TransferFailed(token.address, amount, f"transferFrom {owner} returned false")

    def _push(self, token: Token, to: str, amount: int) -> None:
        if amount == 0:
            return
        try:
            ok = token.transfer(self.address, to, amount)
        except VaultError:
            raise
        except Exception as e:
            raise TransferFailed(token.address, amount, str(e)) from e
        if not ok:
            raise TransferFailed(token.address, amount, f"transfer to {to} returned false")

    # ============================================================
    # FEES
    # ============================================================

    def compute_fees_earned(
        self,
        is_token0: bool,
        fee_growth_inside_last: int,
        tick: int,
        liquidity: int,
        tick_lower: int = None,
        tick_upper: int = None
    ) -> int:
        """
        Комиссии позиции с последнего снапшота fee growth.

        Глобальный счётчик и feeGrowthOutside тиков читаются из пула.
        """
        if tick_lower is None:
            tick_lower, tick_upper = self.tick_lower, self.tick_upper

        lower = self.pool.ticks(tick_lower)
        upper = self.pool.ticks(tick_upper)
        if is_token0:
            global_growth = self.pool.fee_growth_global0_x128()
            outside_lower = lower.fee_growth_outside0_x128
            outside_upper = upper.fee_growth_outside0_x128
        else:
            global_growth = self.pool.fee_growth_global1_x128()
            outside_lower = lower.fee_growth_outside1_x128
            outside_upper = upper.fee_growth_outside1_x128

        return fees_earned(
            global_growth, outside_lower, outside_upper, fee_growth_inside_last,
            tick, liquidity, tick_lower, tick_upper
        )

    def _manager_fee(self, fee: int) -> int:
        return fee * self.params.manager_fee_bps // BPS

    def _apply_fees(self, fee0: int, fee1: int) -> None:
        """Manager share -> manager balances, остальное остаётся за shares."""
        manager0 = self._manager_fee(fee0)
        manager1 = self._manager_fee(fee1)
        self.manager_balance0 += manager0
        self.manager_balance1 += manager1
        if fee0 or fee1:
            event = FeesEarned(fee0=fee0 - manager0, fee1=fee1 - manager1)
            self.events.append(event)
            self._collected_fees.append((event, manager0, manager1))
            logger.debug(f"Fees earned: fee0={fee0}, fee1={fee1}, manager=({manager0}, {manager1})")

    def _uncollected_fees(self, position: PositionState, tick: int) -> Tuple[int, int]:
        fee0 = self.compute_fees_earned(
            True, position.fee_growth_inside0_last_x128, tick, position.liquidity
        ) + position.tokens_owed0
        fee1 = self.compute_fees_earned(
            False, position.fee_growth_inside1_last_x128, tick, position.liquidity
        ) + position.tokens_owed1
        return fee0, fee1

    def get_position_fees(self) -> AccruedFees:
        """Quote: несобранные комиссии текущей позиции."""
        slot0 = self.pool.slot0()
        fee0, fee1 = self._uncollected_fees(self._position(), slot0.tick)
        manager0 = self._manager_fee(fee0)
        manager1 = self._manager_fee(fee1)
        return AccruedFees(
            depositor0=fee0 - manager0,
            depositor1=fee1 - manager1,
            manager0=manager0,
            manager1=manager1,
        )

    # ============================================================
    # UNDERLYING VALUE / QUOTES
    # ============================================================

    def get_underlying_balances(self) -> Tuple[int, int]:
        """
        Quote: стоимость, стоящая за всеми shares.

        liquidity (вниз) + комиссии депозиторов + idle балансы - manager balances
        """
        slot0 = self.pool.slot0()
        return self._underlying_at(slot0.sqrt_price_x96, slot0.tick)

    def get_underlying_balances_at_price(self, sqrt_price_x96: int) -> Tuple[int, int]:
        """То же, что get_underlying_balances, но для заданной цены."""
        return self._underlying_at(sqrt_price_x96, get_tick_at_sqrt_ratio(sqrt_price_x96))

    def _underlying_at(self, sqrt_price_x96: int, tick: int) -> Tuple[int, int]:
        position = self._position()
        sqrt_lower, sqrt_upper = self._range_sqrt_prices()
        amount0, amount1 = get_amounts_for_liquidity(
            sqrt_price_x96, sqrt_lower, sqrt_upper, position.liquidity
        )

        fee0, fee1 = self._uncollected_fees(position, tick)
        fee0 -= self._manager_fee(fee0)
        fee1 -= self._manager_fee(fee1)

        idle0, idle1 = self._idle_balances()
        return amount0 + fee0 + idle0, amount1 + fee1 + idle1

    def get_mint_amounts(self, amount0_max: int, amount1_max: int) -> Tuple[int, int, int]:
        """
        Quote для deposit: сколько shares можно получить за не более чем
        (amount0_max, amount1_max).

        Returns:
            (amount0, amount1, mint_amount)

        Raises:
            MinimumSharesNotMet: Пустой vault и первый mint не превышает минимум
            ZeroMintAmount: Если один из токенов даёт 0 shares (dust)
        """
        supply = self.total_supply
        slot0 = self.pool.slot0()

        if supply == 0:
            sqrt_lower, sqrt_upper = self._range_sqrt_prices()
            mint_amount = get_liquidity_for_amounts(
                slot0.sqrt_price_x96, sqrt_lower, sqrt_upper, amount0_max, amount1_max
            )
            if mint_amount <= self.min_initial_shares:
                raise MinimumSharesNotMet(mint_amount, self.min_initial_shares)
            amount0, amount1 = get_amounts_for_liquidity(
                slot0.sqrt_price_x96, sqrt_lower, sqrt_upper, mint_amount, round_up=True
            )
            return amount0, amount1, mint_amount

        underlying0, underlying1 = self._underlying_at(slot0.sqrt_price_x96, slot0.tick)

        if underlying0 == 0 and underlying1 > 0:
            mint_amount = mul_div(amount1_max, supply, underlying1)
        elif underlying1 == 0 and underlying0 > 0:
            mint_amount = mul_div(amount0_max, supply, underlying0)
        elif underlying0 == 0 and underlying1 == 0:
            raise ZeroMintAmount("Vault has shares but no underlying balances")
        else:
            amount0_mint = mul_div(amount0_max, supply, underlying0)
            amount1_mint = mul_div(amount1_max, supply, underlying1)
            if amount0_mint == 0 or amount1_mint == 0:
                raise ZeroMintAmount(
                    f"Mint amount is zero for one side: ({amount0_mint}, {amount1_mint})"
                )
            mint_amount = min(amount0_mint, amount1_mint)

        if mint_amount == 0:
            raise ZeroMintAmount("Mint amount is zero")

        amount0 = mul_div_rounding_up(mint_amount, underlying0, supply)
        amount1 = mul_div_rounding_up(mint_amount, underlying1, supply)
        return amount0, amount1, mint_amount

    # ============================================================
    # DEPOSIT / WITHDRAW
    # ============================================================

    def deposit(self, caller: str, mint_amount: int, receiver: str = None) -> DepositResult:
        """
        Выпуск mint_amount shares за токены caller.

        Первый депозит: mint_amount трактуется как liquidity и должен быть
        строго больше min_initial_shares. Далее: amount_i =
        ceil(mint_amount * underlying_i / total_supply).
        """
        with self._guard:
            if mint_amount <= 0:
                raise ZeroAmount("mint_amount must be > 0")
            caller = _checksum(caller, "caller")
            receiver = _checksum(receiver or caller, "receiver")

            supply = self.total_supply
            slot0 = self.pool.slot0()
            sqrt_lower, sqrt_upper = self._range_sqrt_prices()

            if supply > 0:
                underlying0, underlying1 = self._underlying_at(slot0.sqrt_price_x96, slot0.tick)
                amount0 = mul_div_rounding_up(mint_amount, underlying0, supply)
                amount1 = mul_div_rounding_up(mint_amount, underlying1, supply)
            else:
                if mint_amount <= self.min_initial_shares:
                    raise MinimumSharesNotMet(mint_amount, self.min_initial_shares)
                amount0, amount1 = get_amounts_for_liquidity(
                    slot0.sqrt_price_x96, sqrt_lower, sqrt_upper, mint_amount, round_up=True
                )

            if amount0 == 0 and amount1 == 0:
                raise ZeroMintAmount(f"Deposit of {mint_amount} shares requires no tokens")

            liquidity = get_liquidity_for_amounts(
                slot0.sqrt_price_x96, sqrt_lower, sqrt_upper, amount0, amount1
            )

            # Пока пул не принял liquidity, присланное возвращается депозитору
            pulled0 = pulled1 = 0
            try:
                self._pull(self.token0, caller, amount0)
                pulled0 = amount0
                self._pull(self.token1, caller, amount1)
                pulled1 = amount1
                if liquidity > 0:
                    self.pool.mint(self, self.tick_lower, self.tick_upper, liquidity, b"")
            except Exception:
                logger.warning(f"Deposit aborted, refunding amount0={pulled0}, amount1={pulled1} to {caller}")
                self._push(self.token0, caller, pulled0)
                self._push(self.token1, caller, pulled1)
                raise

            self.shares.mint(receiver, mint_amount)
            self.events.append(Minted(receiver, mint_amount, amount0, amount1, liquidity))

            logger.info(f"Deposit: {mint_amount} shares -> {receiver} for "
                        f"amount0={amount0}, amount1={amount1}, liquidity={liquidity}")
            return DepositResult(amount0, amount1, mint_amount, liquidity)

    def withdraw(
        self,
        caller: str,
        burn_amount: int,
        receiver: str = None,
        single_token: Optional[int] = None,
        max_slippage_bps: int = 0,
    ) -> WithdrawResult:
        """
        Сжигание burn_amount shares caller и выплата доли позиции.

        Args:
            caller: Владелец shares
            burn_amount: Сколько shares сжечь
            receiver: Получатель токенов (по умолчанию caller)
            single_token: 0 или 1 - выплатить всё в одном токене (zap-out)
            max_slippage_bps: Slippage для zap-out (0 = настроенный максимум)
        """
        with self._guard:
            if burn_amount <= 0:
                raise ZeroAmount("burn_amount must be > 0")
            if single_token not in (None, 0, 1):
                raise InvalidParameter(f"single_token must be None, 0 or 1, got {single_token}")
            caller = _checksum(caller, "caller")
            receiver = _checksum(receiver or caller, "receiver")
            slippage_bps = None
            if single_token is not None:
                slippage_bps = resolve_slippage(max_slippage_bps, self.params.max_user_slippage_bps)

            supply = self.total_supply
            position = self._position()

            self.shares.burn(caller, burn_amount)

            liquidity_burned = mul_div(burn_amount, position.liquidity, supply)
            try:
                burn0, burn1, fee0, fee1 = self._withdraw(self.tick_lower, self.tick_upper, liquidity_burned)
                self._apply_fees(fee0, fee1)

                balance0 = self.token0.balance_of(self.address)
                balance1 = self.token1.balance_of(self.address)
                amount0 = burn0 + mul_div(max(balance0 - burn0 - self.manager_balance0, 0), burn_amount, supply)
                amount1 = burn1 + mul_div(max(balance1 - burn1 - self.manager_balance1, 0), burn_amount, supply)

                if amount0 == 0 and amount1 == 0:
                    raise NothingToBurn(f"Burning {burn_amount} shares returns nothing")

                if single_token == 1 and amount0 > 0:
                    _, amount1_delta = self._swap(amount0, True, slippage_bps, require_full_fill=True)
                    amount1 += -amount1_delta
                    amount0 = 0
                elif single_token == 0 and amount1 > 0:
                    amount0_delta, _ = self._swap(amount1, False, slippage_bps, require_full_fill=True)
                    amount0 += -amount0_delta
                    amount1 = 0
            except Exception:
                self._unwind_on_error(self.tick_lower, self.tick_upper)
                raise

            self._push(self.token0, receiver, amount0)
            self._push(self.token1, receiver, amount1)

            self.events.append(Burned(receiver, burn_amount, amount0, amount1, liquidity_burned))
            logger.info(f"Withdraw: {burn_amount} shares from {caller} -> "
                        f"amount0={amount0}, amount1={amount1}, liquidity={liquidity_burned}")
            return WithdrawResult(amount0, amount1, liquidity_burned)

    def _withdraw(self, tick_lower: int, tick_upper: int, liquidity: int) -> Tuple[int, int, int, int]:
        """
        Burn liquidity + collect всего, что должен пул.

        Returns:
            (burn0, burn1, fee0, fee1) - fee_i это собранное сверх burn_i
        """
        pre_balance0 = self.token0.balance_of(self.address)
        pre_balance1 = self.token1.balance_of(self.address)

        burn0, burn1 = 0, 0
        if liquidity > 0:
            burn0, burn1 = self.pool.burn(self.address, tick_lower, tick_upper, liquidity)

        self.pool.collect(self.address, self.address, tick_lower, tick_upper, UINT128_MAX, UINT128_MAX)

        fee0 = self.token0.balance_of(self.address) - pre_balance0 - burn0
        fee1 = self.token1.balance_of(self.address) - pre_balance1 - burn1
        logger.debug(f"Withdrawn [{tick_lower}, {tick_upper}] liquidity={liquidity}: "
                     f"burn=({burn0}, {burn1}), fees=({fee0}, {fee1})")
        return burn0, burn1, max(fee0, 0), max(fee1, 0)

    # ============================================================
    # SWAP
    # ============================================================

    def _swap(
        self,
        amount_in: int,
        zero_for_one: bool,
        slippage_bps: int,
        require_full_fill: bool = False
    ) -> Tuple[int, int]:
        """
        Своп из балансов vault с ценовым лимитом.

        Returns:
            (amount0_delta, amount1_delta) со стороны пула: > 0 - заплатили, < 0 - получили

        Raises:
            SlippageExceeded: Цена после свопа за лимитом или (require_full_fill)
                              своп исполнен не полностью
        """
        sqrt_price_before = self.pool.slot0().sqrt_price_x96
        limit = compute_sqrt_price_limit(sqrt_price_before, zero_for_one, slippage_bps)

        amount0_delta, amount1_delta = self.pool.swap(self, zero_for_one, amount_in, limit, b"")

        sqrt_price_after = self.pool.slot0().sqrt_price_x96
        if (zero_for_one and sqrt_price_after < limit) or (not zero_for_one and sqrt_price_after > limit):
            logger.warning(f"Swap crossed price limit: before={sqrt_price_before}, "
                           f"after={sqrt_price_after}, limit={limit}")
            raise SlippageExceeded(
                f"Price moved past limit {limit} (after swap: {sqrt_price_after}, {slippage_bps} bps)"
            )

        consumed = amount0_delta if zero_for_one else amount1_delta
        if require_full_fill and consumed < amount_in:
            raise SlippageExceeded(
                f"Swap filled {consumed} of {amount_in} before reaching price limit ({slippage_bps} bps)"
            )

        logger.debug(f"Swap {'0->1' if zero_for_one else '1->0'} in={amount_in}: "
                     f"delta0={amount0_delta}, delta1={amount1_delta}")
        return amount0_delta, amount1_delta

    # ============================================================
    # POOL CALLBACKS
    # ============================================================

    def _verify_callback(self, sender) -> None:
        if sender is not self.pool:
            raise UnauthorizedCallback(f"Callback from unexpected caller {sender!r}")
        if not self._guard.locked:
            raise UnauthorizedCallback("Callback outside of a vault operation")

    def amm_mint_callback(self, sender, amount0_owed: int, amount1_owed: int, data: bytes = b"") -> None:
        """Пул забирает токены за mint liquidity."""
        self._verify_callback(sender)
        self._push(self.token0, self.pool.address, amount0_owed)
        self._push(self.token1, self.pool.address, amount1_owed)

    def amm_swap_callback(self, sender, amount0_delta: int, amount1_delta: int, data: bytes = b"") -> None:
        """Пул забирает входной токен свопа."""
        self._verify_callback(sender)
        if amount0_delta > 0:
            self._push(self.token0, self.pool.address, amount0_delta)
        elif amount1_delta > 0:
            self._push(self.token1, self.pool.address, amount1_delta)

    # ============================================================
    # REBALANCE
    # ============================================================

    def rebalance(self, caller: str, max_slippage_bps: int = 0) -> int:
        """
        Реинвест комиссий без смены диапазона (keeper или manager).

        Withdraw всей liquidity -> fee split -> своп к нужному соотношению ->
        redeposit. Liquidity обязана вырасти.

        Returns:
            Новая liquidity позиции

        Raises:
            LiquidityNotIncreased: Если liquidity не выросла
        """
        with self._guard:
            self._require_keeper_or_manager(caller)
            slippage_bps = resolve_slippage(max_slippage_bps, self.params.max_rebalance_slippage_bps)
            check_oracle_deviation(self.pool, self.params.twap_window, self.params.oracle_deviation_bps)

            tick_lower, tick_upper = self.tick_lower, self.tick_upper
            liquidity_before = self._position().liquidity

            self._withdraw_and_split(tick_lower, tick_upper, liquidity_before)
            try:
                self._swap_and_deposit(tick_lower, tick_upper, slippage_bps)

                liquidity_after = self._position().liquidity
                if liquidity_after <= liquidity_before:
                    raise LiquidityNotIncreased(liquidity_before, liquidity_after)
            except Exception:
                self._unwind_on_error(tick_lower, tick_upper)
                raise

            self.events.append(Rebalance(tick_lower, tick_upper, liquidity_before, liquidity_after))
            logger.info(f"Rebalance [{tick_lower}, {tick_upper}]: liquidity {liquidity_before} -> {liquidity_after}")
            return liquidity_after

    def execute_rebalance(
        self,
        caller: str,
        new_tick_lower: int,
        new_tick_upper: int,
        min_liquidity: int,
        max_slippage_bps: int = 0
    ) -> int:
        """
        Перенос позиции в новый диапазон (только manager).

        При total_supply == 0 только сохраняет диапазон.

        Returns:
            Новая liquidity позиции

        Raises:
            InsufficientLiquidity: Если liquidity не превышает min_liquidity
        """
        with self._guard:
            self._require_manager(caller)
            self._validate_range(new_tick_lower, new_tick_upper)
            slippage_bps = resolve_slippage(max_slippage_bps, self.params.max_rebalance_slippage_bps)

            old_lower, old_upper = self.tick_lower, self.tick_upper

            if self.total_supply == 0:
                self.tick_lower, self.tick_upper = new_tick_lower, new_tick_upper
                self.events.append(RangeChanged(old_lower, old_upper, new_tick_lower, new_tick_upper))
                logger.info(f"Range set to [{new_tick_lower}, {new_tick_upper}] (no shares outstanding)")
                return 0

            check_oracle_deviation(self.pool, self.params.twap_window, self.params.oracle_deviation_bps)

            # Withdraw по старому диапазону - до изменения сохранённого
            liquidity_before = self._position(old_lower, old_upper).liquidity
            self._withdraw_and_split(old_lower, old_upper, liquidity_before)
            try:
                self.tick_lower, self.tick_upper = new_tick_lower, new_tick_upper
                self._swap_and_deposit(new_tick_lower, new_tick_upper, slippage_bps)

                liquidity_after = self._position().liquidity
                if liquidity_after <= min_liquidity:
                    raise InsufficientLiquidity(liquidity_after, min_liquidity)
            except Exception:
                self._unwind_on_error(old_lower, old_upper, stray_range=(new_tick_lower, new_tick_upper))
                raise

            self.events.append(RangeChanged(old_lower, old_upper, new_tick_lower, new_tick_upper))
            self.events.append(Rebalance(new_tick_lower, new_tick_upper, liquidity_before, liquidity_after))
            logger.info(f"Range change [{old_lower}, {old_upper}] -> [{new_tick_lower}, {new_tick_upper}]: "
                        f"liquidity {liquidity_before} -> {liquidity_after}")
            return liquidity_after

    def _withdraw_and_split(self, tick_lower: int, tick_upper: int, liquidity: int) -> None:
        _, _, fee0, fee1 = self._withdraw(tick_lower, tick_upper, liquidity)
        self._apply_fees(fee0, fee1)

    def compute_rebalance_swap(
        self,
        sqrt_price_x96: int,
        tick_lower: int,
        tick_upper: int,
        amount0: int,
        amount1: int
    ) -> Tuple[int, bool]:
        """
        Сколько и в каком направлении свопнуть перед redeposit.

        Эвристика, не точная обратная функция: считаем liquidity, которую
        покрывают балансы, и свопаем половину неиспользованного остатка
        токена с большей неиспользованной долей. Остаточный дисбаланс
        возможен и остаётся idle.

        Returns:
            (amount_in, zero_for_one); amount_in == 0 - своп не нужен
        """
        sqrt_lower, sqrt_upper = self._range_sqrt_prices(tick_lower, tick_upper)

        # Вне диапазона позиции нужен только один токен
        if sqrt_price_x96 <= sqrt_lower:
            return amount1, False
        if sqrt_price_x96 >= sqrt_upper:
            return amount0, True

        liquidity = get_liquidity_for_amounts(sqrt_price_x96, sqrt_lower, sqrt_upper, amount0, amount1)
        used0, used1 = get_amounts_for_liquidity(
            sqrt_price_x96, sqrt_lower, sqrt_upper, liquidity, round_up=True
        )
        leftover0 = max(amount0 - used0, 0)
        leftover1 = max(amount1 - used1, 0)

        if amount0 > 0 and amount1 > 0:
            zero_for_one = leftover0 * amount1 > leftover1 * amount0
        else:
            zero_for_one = amount0 > 0

        swap_amount = (leftover0 if zero_for_one else leftover1) // 2
        return swap_amount, zero_for_one

    def _swap_and_deposit(self, tick_lower: int, tick_upper: int, slippage_bps: int) -> int:
        sqrt_price_x96 = self.pool.slot0().sqrt_price_x96
        amount0, amount1 = self._idle_balances()

        swap_amount, zero_for_one = self.compute_rebalance_swap(
            sqrt_price_x96, tick_lower, tick_upper, amount0, amount1
        )
        if swap_amount > 0:
            self._swap(swap_amount, zero_for_one, slippage_bps)

        return self._deposit_idle(tick_lower, tick_upper)

    def _deposit_idle(self, tick_lower: int, tick_upper: int) -> int:
        """Всё idle (кроме manager balances) -> liquidity в [tick_lower, tick_upper)."""
        sqrt_price_x96 = self.pool.slot0().sqrt_price_x96
        amount0, amount1 = self._idle_balances()

        sqrt_lower, sqrt_upper = self._range_sqrt_prices(tick_lower, tick_upper)
        liquidity = get_liquidity_for_amounts(sqrt_price_x96, sqrt_lower, sqrt_upper, amount0, amount1)
        if liquidity > 0:
            self.pool.mint(self, tick_lower, tick_upper, liquidity, b"")

        logger.debug(f"Redeposit [{tick_lower}, {tick_upper}]: liquidity={liquidity}, "
                     f"from amount0={amount0}, amount1={amount1}")
        return liquidity

    def _unwind(self, tick_lower: int, tick_upper: int, stray_range: Tuple[int, int] = None) -> None:
        """
        Abort после burn: вернуть капитал в исходный диапазон.

        Пул не откатывает уже выполненные burn/collect/swap, поэтому idle
        балансы заново вносятся в [tick_lower, tick_upper). Liquidity,
        успевшая попасть в stray_range (новый диапазон при смене), сначала
        выводится. Уже исполненный своп не отменяется.
        """
        if stray_range is not None and stray_range != (tick_lower, tick_upper):
            stray = self._position(*stray_range).liquidity
            if stray > 0:
                self._withdraw_and_split(stray_range[0], stray_range[1], stray)

        liquidity = self._deposit_idle(tick_lower, tick_upper)
        logger.warning(f"Aborted operation unwound: liquidity {liquidity} back in [{tick_lower}, {tick_upper}]")

    def _unwind_on_error(self, tick_lower: int, tick_upper: int, stray_range: Tuple[int, int] = None) -> None:
        try:
            self._unwind(tick_lower, tick_upper, stray_range)
        except Exception as e:
            logger.error(f"Unwind into [{tick_lower}, {tick_upper}] failed: {e}")

    # ============================================================
    # MANAGER
    # ============================================================

    def withdraw_manager_balance(self, caller: str) -> Tuple[int, int]:
        """Перевод накопленных manager fees в treasury (только manager)."""
        with self._guard:
            self._require_manager(caller)
            amount0, amount1 = self.manager_balance0, self.manager_balance1
            self.manager_balance0 = 0
            self.manager_balance1 = 0

            self._push(self.token0, self.treasury, amount0)
            self._push(self.token1, self.treasury, amount1)

            if amount0 or amount1:
                self.events.append(ManagerBalanceWithdrawn(self.treasury, amount0, amount1))
            logger.info(f"Manager balance withdrawn to {self.treasury}: amount0={amount0}, amount1={amount1}")
            return amount0, amount1

    def update_risk_parameters(self, caller: str, **changes) -> RiskParameters:
        """
        Изменение параметров риска (только manager).

        Пример: vault.update_risk_parameters(manager, manager_fee_bps=500, twap_window=600)
        """
        with self._guard:
            self._require_manager(caller)
            self.params = self.params.with_changes(**changes)
            self.events.append(ParametersUpdated(tuple(sorted(changes.items()))))
            logger.info(f"Risk parameters updated: {changes}")
            return self.params

    def set_treasury(self, caller: str, treasury: str) -> None:
        with self._guard:
            self._require_manager(caller)
            self.treasury = _checksum(treasury, "treasury")
            self.events.append(ParametersUpdated((("treasury", self.treasury),)))

    def set_keeper(self, caller: str, keeper: str) -> None:
        with self._guard:
            self._require_manager(caller)
            self.keeper = _checksum(keeper, "keeper")
            self.events.append(ParametersUpdated((("keeper", self.keeper),)))
