"""
Risk parameters of the vault.

Single configuration record owned by a Vault instance. Mutated only through
``Vault.update_risk_parameters`` (manager only), which validates the whole
candidate record before swapping it in.
"""

from dataclasses import dataclass, fields, replace

from config import VAULT_DEFAULTS, VaultDefaults
from .errors import InvalidParameter
from .math.full_math import BPS


@dataclass(frozen=True)
class RiskParameters:
    """
    Fee split, slippage and oracle settings.

    Attributes:
        manager_fee_bps: Доля комиссий менеджера (0..10000)
        max_user_slippage_bps: Максимальный slippage для zap-out (< 10000)
        max_rebalance_slippage_bps: Максимальный slippage при rebalance (< 10000)
        oracle_deviation_bps: Допустимое отклонение spot от TWAP (< 10000)
        twap_window: Окно TWAP в секундах (> 0)
    """
    manager_fee_bps: int
    max_user_slippage_bps: int
    max_rebalance_slippage_bps: int
    oracle_deviation_bps: int
    twap_window: int

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise InvalidParameter(f"{f.name} must be an integer, got {value!r}")
            if value < 0:
                raise InvalidParameter(f"{f.name} must be non-negative, got {value}")

        if self.manager_fee_bps > BPS:
            raise InvalidParameter(f"manager_fee_bps > 100%: {self.manager_fee_bps}")
        for name in ("max_user_slippage_bps", "max_rebalance_slippage_bps"):
            value = getattr(self, name)
            if value == 0 or value >= BPS:
                raise InvalidParameter(f"{name} must be in (0, {BPS}): {value}")
        if self.oracle_deviation_bps >= BPS:
            raise InvalidParameter(f"oracle_deviation_bps >= 100%: {self.oracle_deviation_bps}")
        if self.twap_window == 0:
            raise InvalidParameter("twap_window must be > 0")

    def with_changes(self, **changes) -> "RiskParameters":
        """Новый валидированный экземпляр с изменёнными полями."""
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise InvalidParameter(f"Unknown risk parameters: {sorted(unknown)}")
        return replace(self, **changes)

    @classmethod
    def from_defaults(cls, defaults: VaultDefaults = None) -> "RiskParameters":
        """Параметры из config.VAULT_DEFAULTS (или переданных defaults)."""
        defaults = defaults or VAULT_DEFAULTS
        return cls(
            manager_fee_bps=defaults.manager_fee_bps,
            max_user_slippage_bps=defaults.max_user_slippage_bps,
            max_rebalance_slippage_bps=defaults.max_rebalance_slippage_bps,
            oracle_deviation_bps=defaults.oracle_deviation_bps,
            twap_window=defaults.twap_window,
        )
