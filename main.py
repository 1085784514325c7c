"""
Concentrated-liquidity vault: CLI для живых V3 пулов

Команды:
- quote-position: liquidity, суммы токенов и несобранные комиссии позиции
- range: выровненный диапазон вокруг текущего тика (или цены)

Примеры:
    python main.py quote-position --pool 0x... --owner 0x... --lower -600 --upper 600
    python main.py range --pool 0x... --width 1200
    python main.py range --tick 12345 --fee 3000 --width 1200
    python main.py range --price 600.5 --fee 500 --width 200
"""

import argparse
import logging
import sys
from dataclasses import dataclass
from typing import List, Optional

from web3 import Web3

from config import FEE_TIERS, get_rpc_url
from lp_vault.contracts import TokenInfo, Web3PoolReader
from lp_vault.math import (
    fees_earned,
    get_amounts_for_liquidity,
    get_sqrt_ratio_at_tick,
    price_to_tick,
    sqrt_price_x96_to_price,
    tick_to_price,
    validate_tick_range,
)
from lp_vault.math.ticks import centered_range, get_tick_spacing

logger = logging.getLogger(__name__)


@dataclass
class PositionQuote:
    """Снимок позиции по текущей цене пула."""
    tick: int
    price: float
    liquidity: int
    amount0: int
    amount1: int
    fees0: int
    fees1: int


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


def quote_position(reader, owner: str, tick_lower: int, tick_upper: int) -> PositionQuote:
    """
    Суммы и комиссии позиции owner в [tick_lower, tick_upper).

    Args:
        reader: Пул с read-интерфейсом (Web3PoolReader или совместимый)
        owner: Владелец позиции в пуле
        tick_lower: Нижний тик
        tick_upper: Верхний тик
    """
    slot0 = reader.slot0()
    position = reader.positions((owner, tick_lower, tick_upper))

    amount0, amount1 = get_amounts_for_liquidity(
        slot0.sqrt_price_x96,
        get_sqrt_ratio_at_tick(tick_lower),
        get_sqrt_ratio_at_tick(tick_upper),
        position.liquidity,
    )

    lower = reader.ticks(tick_lower)
    upper = reader.ticks(tick_upper)
    fees0 = fees_earned(
        reader.fee_growth_global0_x128(),
        lower.fee_growth_outside0_x128, upper.fee_growth_outside0_x128,
        position.fee_growth_inside0_last_x128,
        slot0.tick, position.liquidity, tick_lower, tick_upper,
    ) + position.tokens_owed0
    fees1 = fees_earned(
        reader.fee_growth_global1_x128(),
        lower.fee_growth_outside1_x128, upper.fee_growth_outside1_x128,
        position.fee_growth_inside1_last_x128,
        slot0.tick, position.liquidity, tick_lower, tick_upper,
    ) + position.tokens_owed1

    return PositionQuote(
        tick=slot0.tick,
        price=sqrt_price_x96_to_price(slot0.sqrt_price_x96),
        liquidity=position.liquidity,
        amount0=amount0,
        amount1=amount1,
        fees0=fees0,
        fees1=fees1,
    )


def format_amount(amount: int, token: TokenInfo) -> str:
    """Сумма в wei -> '1.5 WBNB' по decimals токена."""
    return f"{amount / 10 ** token.decimals:.6f} {token.symbol}"


def print_quote(
    quote: PositionQuote,
    tick_lower: int,
    tick_upper: int,
    token0: TokenInfo,
    token1: TokenInfo
) -> None:
    print("\n" + "=" * 70)
    print(f"POSITION QUOTE ({token0.symbol}/{token1.symbol})")
    print("=" * 70)
    print(f"Range:          [{tick_lower}, {tick_upper}]  "
          f"(price {tick_to_price(tick_lower):.6g} - {tick_to_price(tick_upper):.6g})")
    print(f"Current tick:   {quote.tick}  (price {quote.price:.6g})")
    print(f"Liquidity:      {quote.liquidity}")
    print(f"Amounts:        {format_amount(quote.amount0, token0)} / {format_amount(quote.amount1, token1)}")
    print(f"Uncollected:    {format_amount(quote.fees0, token0)} / {format_amount(quote.fees1, token1)}")


def print_range(current_tick: int, tick_lower: int, tick_upper: int) -> None:
    print("\n" + "=" * 70)
    print("SUGGESTED RANGE")
    print("=" * 70)
    print(f"Current tick:   {current_tick}")
    print(f"Range:          [{tick_lower}, {tick_upper}]")
    print(f"Price range:    {tick_to_price(tick_lower):.6g} - {tick_to_price(tick_upper):.6g}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Concentrated-liquidity vault tools")
    parser.add_argument("--rpc", help="RPC URL (по умолчанию VAULT_RPC_URL или RPC сети)")
    parser.add_argument("--chain-id", type=int, default=56, help="Сеть для RPC по умолчанию")
    parser.add_argument("-v", "--verbose", action="store_true")

    sub = parser.add_subparsers(dest="command", required=True)

    quote = sub.add_parser("quote-position", help="Суммы и комиссии позиции")
    quote.add_argument("--pool", required=True)
    quote.add_argument("--owner", required=True)
    quote.add_argument("--lower", type=int, required=True)
    quote.add_argument("--upper", type=int, required=True)

    rng = sub.add_parser("range", help="Диапазон вокруг текущего тика")
    rng.add_argument("--width", type=int, required=True, help="Ширина в тиках")
    rng.add_argument("--pool", help="Взять тик и spacing из пула")
    rng.add_argument("--tick", type=int, help="Текущий тик (без RPC)")
    rng.add_argument("--price", type=float, help="Текущая цена token1/token0 вместо --tick (без RPC)")
    rng.add_argument("--fee", type=int, choices=sorted(FEE_TIERS.values()), help="Fee tier (без RPC)")

    return parser


def _connect(args) -> Web3:
    rpc_url = args.rpc or get_rpc_url(args.chain_id)
    logger.debug(f"Connecting to {rpc_url}")
    return Web3(Web3.HTTPProvider(rpc_url))


def main(argv: Optional[List[str]] = None) -> int:
    """Главная функция."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        if args.command == "quote-position":
            reader = Web3PoolReader(_connect(args), args.pool)
            validate_tick_range(args.lower, args.upper, reader.tick_spacing)
            quote = quote_position(reader, args.owner, args.lower, args.upper)
            token0, token1 = reader.get_tokens()
            print_quote(quote, args.lower, args.upper, token0, token1)
            return 0

        if args.pool:
            reader = Web3PoolReader(_connect(args), args.pool)
            current_tick = reader.slot0().tick
            tick_spacing = reader.tick_spacing
        elif args.fee is not None and (args.tick is not None or args.price is not None):
            current_tick = args.tick if args.tick is not None else price_to_tick(args.price)
            tick_spacing = get_tick_spacing(args.fee)
        else:
            parser.error("range: either --pool or --fee with --tick or --price is required")

        tick_lower, tick_upper = centered_range(current_tick, args.width, tick_spacing)
        print_range(current_tick, tick_lower, tick_upper)
        return 0

    except ValueError as e:
        logger.error(f"{e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
