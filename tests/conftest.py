"""
Shared fixtures for all tests.
"""

import pytest
from unittest.mock import MagicMock

from fakes import (
    ALICE,
    KEEPER,
    LP,
    MANAGER,
    TICK_LOWER,
    TICK_UPPER,
    TOKEN0,
    TOKEN1,
    TREASURY,
    VAULT_ADDRESS,
    FakePool,
    FakeToken,
)
from lp_vault.params import RiskParameters
from lp_vault.vault import Vault


class MockWeb3:
    """Переиспользуемый мок Web3 для тестов."""

    def __init__(self):
        self.eth = MagicMock()
        self.eth.chain_id = 56
        self.eth.block_number = 40_000_000
        self.eth.call = MagicMock(return_value=b'\x00' * 64)
        self.eth.contract = MagicMock()


@pytest.fixture
def mock_w3():
    """Мок Web3 instance."""
    return MockWeb3()


@pytest.fixture
def risk_params():
    return RiskParameters(
        manager_fee_bps=1000,
        max_user_slippage_bps=100,
        max_rebalance_slippage_bps=50,
        oracle_deviation_bps=200,
        twap_window=300,
    )


@pytest.fixture
def tokens():
    return FakeToken(TOKEN0, "TK0"), FakeToken(TOKEN1, "TK1")


@pytest.fixture
def pool(tokens):
    """Пул 0.3% на тике 0 с широкой сторонней ликвидностью для свопов."""
    token0, token1 = tokens
    pool = FakePool(token0, token1, fee=3000, tick_spacing=60, tick=0)
    pool.add_liquidity(LP, -6000, 6000, 10 ** 21)
    return pool


@pytest.fixture
def vault(pool, risk_params):
    return Vault(
        VAULT_ADDRESS,
        pool,
        manager=MANAGER,
        treasury=TREASURY,
        tick_lower=TICK_LOWER,
        tick_upper=TICK_UPPER,
        keeper=KEEPER,
        params=risk_params,
    )


@pytest.fixture
def fund(tokens, vault):
    """Выдать аккаунту токены и approve на vault."""
    token0, token1 = tokens

    def _fund(account: str, amount0: int, amount1: int):
        token0.mint(account, amount0)
        token1.mint(account, amount1)
        token0.approve(account, vault.address, amount0)
        token1.approve(account, vault.address, amount1)

    return _fund


@pytest.fixture
def funded_vault(vault, fund):
    """Vault с первым депозитом ALICE на 10^18 liquidity."""
    fund(ALICE, 10 ** 18, 10 ** 18)
    vault.deposit(ALICE, 10 ** 18)
    return vault
