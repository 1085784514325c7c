"""
Configuration for the concentrated-liquidity vault

Конфигурация сетей (для чтения живых пулов через RPC) и значения
параметров риска vault по умолчанию. Значения по умолчанию можно
переопределить через переменные окружения / .env файл.
"""

import os
from dataclasses import dataclass
from typing import Dict

from dotenv import load_dotenv

load_dotenv()


@dataclass
class ChainConfig:
    """Конфигурация сети."""
    chain_id: int
    rpc_url: str
    explorer_url: str
    native_token: str


@dataclass
class VaultDefaults:
    """
    Параметры риска vault по умолчанию.

    Все значения в basis points (10000 = 100%), кроме twap_window (секунды).
    """
    manager_fee_bps: int = 1000          # 10% комиссий -> treasury менеджера
    max_user_slippage_bps: int = 100     # 1% для zap-out свопов
    max_rebalance_slippage_bps: int = 50  # 0.5% для свопов при rebalance
    oracle_deviation_bps: int = 200      # 2% допустимое отклонение spot от TWAP
    twap_window: int = 300               # 5 минут
    min_initial_shares: int = 1000       # Защита от share inflation


# ============================================================
# CHAIN CONFIGURATIONS
# ============================================================

BNB_CHAIN = ChainConfig(
    chain_id=56,
    rpc_url="https://bsc-dataseed.binance.org/",
    explorer_url="https://bscscan.com",
    native_token="BNB",
)

ETHEREUM = ChainConfig(
    chain_id=1,
    rpc_url="https://eth.llamarpc.com",
    explorer_url="https://etherscan.io",
    native_token="ETH",
)

# Note: mainnet.base.org has strict rate limits
BASE = ChainConfig(
    chain_id=8453,
    rpc_url="https://base.llamarpc.com",
    explorer_url="https://basescan.org",
    native_token="ETH",
)

# ============================================================
# FEE TIERS
# ============================================================

FEE_TIERS = {
    "LOWEST": 100,        # 0.01% - стейблкоины
    "LOW": 500,           # 0.05% - стабильные пары
    "MEDIUM_PSC": 2500,   # 0.25% (PancakeSwap specific)
    "MEDIUM_UNI": 3000,   # 0.30% - стандартный Uniswap tier
    "HIGH": 10000,        # 1.00% - экзотические пары
}

# ============================================================
# DEFAULT SETTINGS
# ============================================================

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {value!r}")


VAULT_DEFAULTS = VaultDefaults(
    manager_fee_bps=_env_int("VAULT_MANAGER_FEE_BPS", VaultDefaults.manager_fee_bps),
    max_user_slippage_bps=_env_int("VAULT_MAX_USER_SLIPPAGE_BPS", VaultDefaults.max_user_slippage_bps),
    max_rebalance_slippage_bps=_env_int(
        "VAULT_MAX_REBALANCE_SLIPPAGE_BPS", VaultDefaults.max_rebalance_slippage_bps
    ),
    oracle_deviation_bps=_env_int("VAULT_ORACLE_DEVIATION_BPS", VaultDefaults.oracle_deviation_bps),
    twap_window=_env_int("VAULT_TWAP_WINDOW", VaultDefaults.twap_window),
    min_initial_shares=_env_int("VAULT_MIN_INITIAL_SHARES", VaultDefaults.min_initial_shares),
)

# RPC override для CLI
RPC_URL_OVERRIDE = os.getenv("VAULT_RPC_URL", "")


# ============================================================
# HELPER FUNCTIONS
# ============================================================

def get_chain_config(chain_id: int) -> ChainConfig:
    """Получение конфигурации по chain_id."""
    configs: Dict[int, ChainConfig] = {
        56: BNB_CHAIN,
        1: ETHEREUM,
        8453: BASE,
    }
    if chain_id not in configs:
        raise ValueError(f"Unknown chain_id: {chain_id}")
    return configs[chain_id]


def get_rpc_url(chain_id: int) -> str:
    """RPC из VAULT_RPC_URL, иначе публичный RPC сети."""
    if RPC_URL_OVERRIDE:
        return RPC_URL_OVERRIDE
    return get_chain_config(chain_id).rpc_url
