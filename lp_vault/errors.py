"""
Vault exceptions.

Every abort raises a distinct subclass of VaultError so callers can branch on
the violated condition. Nothing is retried internally.
"""


class VaultError(Exception):
    """Базовая ошибка vault."""
    pass


# ── Validation ──

class ZeroAmount(VaultError):
    """Нулевая сумма депозита/вывода."""
    pass


class InvalidSlippage(VaultError):
    """Slippage >= 100% или выше настроенного максимума."""
    pass


class InvalidParameter(VaultError):
    """Некорректный параметр риска (fee rate, oracle, TWAP window)."""
    pass


class InvalidRange(VaultError):
    """Диапазон не упорядочен, вне границ или не выровнен к tick spacing."""
    pass


class ZeroAddress(VaultError):
    """Нулевой адрес для роли или получателя."""
    pass


class InvalidAddress(VaultError):
    """Строка не является адресом."""
    pass


# ── Economic safety ──

class MinimumSharesNotMet(VaultError):
    """Первый депозит не превышает минимальное количество shares."""
    def __init__(self, mint_amount: int, minimum: int):
        self.mint_amount = mint_amount
        self.minimum = minimum
        super().__init__(f"First mint must exceed {minimum} shares, got {mint_amount}")


class ZeroMintAmount(VaultError):
    """Расчётная сумма для mint равна нулю (dust)."""
    pass


class NothingToBurn(VaultError):
    """Burn не возвращает ни одного токена."""
    pass


class InsufficientShares(VaultError):
    """У владельца недостаточно shares."""
    def __init__(self, account: str, required: int, available: int):
        self.account = account
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient shares for {account}: required {required}, available {available}"
        )


class LiquidityNotIncreased(VaultError):
    """Rebalance без смены диапазона не увеличил liquidity."""
    def __init__(self, before: int, after: int):
        self.before = before
        self.after = after
        super().__init__(f"Liquidity must increase: before={before}, after={after}")


class InsufficientLiquidity(VaultError):
    """Liquidity после смены диапазона не превышает заданный минимум."""
    def __init__(self, liquidity: int, minimum: int):
        self.liquidity = liquidity
        self.minimum = minimum
        super().__init__(f"Liquidity {liquidity} does not exceed minimum {minimum}")


# ── Guards ──

class SlippageExceeded(VaultError):
    """Своп вышел за ценовой лимит или исполнился не полностью."""
    pass


class PriceDeviationTooHigh(VaultError):
    """Спот-цена отклонилась от TWAP больше допустимого."""
    def __init__(self, spot_sqrt_price: int, twap_sqrt_price: int, tolerance_bps: int):
        self.spot_sqrt_price = spot_sqrt_price
        self.twap_sqrt_price = twap_sqrt_price
        self.tolerance_bps = tolerance_bps
        super().__init__(
            f"Spot sqrtPrice {spot_sqrt_price} deviates from TWAP sqrtPrice "
            f"{twap_sqrt_price} by more than {tolerance_bps} bps"
        )


class OracleError(VaultError):
    """TWAP недоступен или данных наблюдений недостаточно."""
    pass


# ── Authorization / identity ──

class Unauthorized(VaultError):
    """Вызывающий не имеет нужной роли."""
    def __init__(self, caller: str, role: str):
        self.caller = caller
        self.role = role
        super().__init__(f"{caller} is not {role}")


class ReentrancyError(VaultError):
    """Вложенный вызов state-mutating метода."""
    pass


class UnauthorizedCallback(VaultError):
    """Callback вызван не ожидаемым пулом или вне операции."""
    pass


# ── Collaborators ──

class TransferFailed(VaultError):
    """Перевод токена не выполнен полностью."""
    def __init__(self, token: str, amount: int, reason: str = ""):
        self.token = token
        self.amount = amount
        message = f"Transfer of {amount} {token} failed"
        if reason:
            message += f": {reason}"
        super().__init__(message)
