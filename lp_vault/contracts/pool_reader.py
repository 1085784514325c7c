"""
Uniswap V3 Pool reader

Чтение состояния живого пула через RPC: slot0, позиции, тики, fee growth и
TWAP-наблюдения. Реализует read-часть интерфейса AmmPool, поэтому его можно
передать в quote-функции vault (get_underlying / fees) для реальной позиции.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence

from eth_abi import decode
from web3 import Web3

from .abis import POOL_ABI, ERC20_ABI
from .interfaces import PositionKey, PositionState, Slot0, TickState

logger = logging.getLogger(__name__)

# slot0() selector
SLOT0_SELECTOR = bytes.fromhex('3850c7bd')


@dataclass
class TokenInfo:
    """Информация о токене."""
    address: str
    symbol: str
    decimals: int


def compute_position_key(owner: str, tick_lower: int, tick_upper: int) -> bytes:
    """keccak256(abi.encodePacked(owner, tickLower, tickUpper))"""
    return Web3.solidity_keccak(
        ['address', 'int24', 'int24'],
        [Web3.to_checksum_address(owner), tick_lower, tick_upper]
    )


class Web3PoolReader:
    """
    Read-only адаптер пула.

    Usage:
        reader = Web3PoolReader(w3, "0x...")
        slot0 = reader.slot0()
        state = reader.positions((owner, -600, 600))
    """

    def __init__(self, w3: Web3, pool_address: str):
        self.w3 = w3
        self.address = Web3.to_checksum_address(pool_address)
        self.contract = w3.eth.contract(address=self.address, abi=POOL_ABI)
        self._tick_spacing = None

    @property
    def tick_spacing(self) -> int:
        # tickSpacing неизменен для пула
        if self._tick_spacing is None:
            self._tick_spacing = self.contract.functions.tickSpacing().call()
        return self._tick_spacing

    def slot0(self) -> Slot0:
        try:
            raw = self.contract.functions.slot0().call()
            return Slot0(sqrt_price_x96=raw[0], tick=raw[1])
        except Exception as e:
            # PancakeSwap V3 slot0 returns feeProtocol:uint32, the ABI decode fails.
            # First two words are the same, decode them from a raw eth_call.
            logger.debug(f"slot0 ABI decode failed, trying raw eth_call: {e}")
            raw = self.w3.eth.call({'to': self.address, 'data': SLOT0_SELECTOR})
            if len(raw) < 64:
                raise RuntimeError(f"slot0 response too short ({len(raw)} bytes) for pool {self.address}")
            sqrt_price_x96, tick = decode(['uint160', 'int24'], bytes(raw[:64]))
            return Slot0(sqrt_price_x96=sqrt_price_x96, tick=tick)

    def positions(self, key: PositionKey) -> PositionState:
        owner, tick_lower, tick_upper = key
        raw = self.contract.functions.positions(
            compute_position_key(owner, tick_lower, tick_upper)
        ).call()
        return PositionState(
            liquidity=raw[0],
            fee_growth_inside0_last_x128=raw[1],
            fee_growth_inside1_last_x128=raw[2],
            tokens_owed0=raw[3],
            tokens_owed1=raw[4],
        )

    def ticks(self, tick: int) -> TickState:
        raw = self.contract.functions.ticks(tick).call()
        return TickState(fee_growth_outside0_x128=raw[2], fee_growth_outside1_x128=raw[3])

    def fee_growth_global0_x128(self) -> int:
        return self.contract.functions.feeGrowthGlobal0X128().call()

    def fee_growth_global1_x128(self) -> int:
        return self.contract.functions.feeGrowthGlobal1X128().call()

    def observe(self, seconds_agos: Sequence[int]) -> List[int]:
        tick_cumulatives, _ = self.contract.functions.observe(list(seconds_agos)).call()
        return list(tick_cumulatives)

    def get_token_info(self, token_address: str) -> TokenInfo:
        address = Web3.to_checksum_address(token_address)
        token = self.w3.eth.contract(address=address, abi=ERC20_ABI)

        try:
            symbol = token.functions.symbol().call()
        except Exception as e:
            logger.debug(f"Failed to get symbol for {address}: {e}")
            symbol = "UNKNOWN"

        try:
            decimals = token.functions.decimals().call()
        except Exception as e:
            logger.warning(f"Failed to get decimals for {address}: {e}, defaulting to 18")
            decimals = 18

        return TokenInfo(address=address, symbol=symbol, decimals=decimals)

    def get_tokens(self) -> tuple[TokenInfo, TokenInfo]:
        token0 = self.contract.functions.token0().call()
        token1 = self.contract.functions.token1().call()
        return self.get_token_info(token0), self.get_token_info(token1)
