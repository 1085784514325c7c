"""
Share ledger.

Only what the vault accounting needs: balances, total supply, mint and burn.
Transfers and approvals live outside this package.
"""

import logging
from typing import Dict

from web3 import Web3

from .errors import InsufficientShares, ZeroAmount

logger = logging.getLogger(__name__)


class ShareLedger:
    """Fungible vault shares."""

    def __init__(self):
        self._balances: Dict[str, int] = {}
        self._total_supply: int = 0

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, account: str) -> int:
        return self._balances.get(Web3.to_checksum_address(account), 0)

    def mint(self, account: str, amount: int) -> None:
        if amount <= 0:
            raise ZeroAmount("mint amount must be > 0")
        account = Web3.to_checksum_address(account)
        self._balances[account] = self._balances.get(account, 0) + amount
        self._total_supply += amount
        logger.debug(f"Minted {amount} shares to {account}, supply={self._total_supply}")

    def burn(self, account: str, amount: int) -> None:
        if amount <= 0:
            raise ZeroAmount("burn amount must be > 0")
        account = Web3.to_checksum_address(account)
        balance = self._balances.get(account, 0)
        if balance < amount:
            raise InsufficientShares(account, amount, balance)
        self._balances[account] = balance - amount
        self._total_supply -= amount
        logger.debug(f"Burned {amount} shares from {account}, supply={self._total_supply}")

    def snapshot(self) -> tuple:
        return dict(self._balances), self._total_supply

    def restore(self, snapshot: tuple) -> None:
        balances, total_supply = snapshot
        self._balances = dict(balances)
        self._total_supply = total_supply
