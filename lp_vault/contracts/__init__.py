from .interfaces import (
    AmmPool,
    PoolStateReader,
    Token,
    Slot0,
    PositionState,
    TickState,
    position_key,
)
from .pool_reader import TokenInfo, Web3PoolReader, compute_position_key
