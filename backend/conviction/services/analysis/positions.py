"""
Position Aggregator

Groups a wallet's trades by token into Position records. Pure: no I/O, no
mutation of the input trades.
"""

from typing import Dict, List, Iterable

from conviction.services.models import Position, Trade, TradeSide


def aggregate_positions(trades: Iterable[Trade]) -> List[Position]:
    """
    Build one Position per token from a trade list.

    Trades are bucketed in timestamp order so entries and exits are
    time-ascending within each position. Positions with no entries or no
    invested value are dropped: without a cost basis they cannot be scored.

    Args:
        trades: Normalized trades for one wallet

    Returns:
        Positions in order of first appearance
    """
    buckets: Dict[str, Position] = {}

    for trade in sorted(trades, key=lambda t: t.timestamp_ms):
        position = buckets.get(trade.token_address)
        if position is None:
            position = Position(token_address=trade.token_address, token_symbol=trade.token_symbol)
            buckets[trade.token_address] = position
        elif not position.token_symbol and trade.token_symbol:
            position.token_symbol = trade.token_symbol

        if trade.side == TradeSide.BUY:
            position.entries.append(trade)
            position.total_invested_usd += trade.value_usd
        else:
            position.exits.append(trade)
            position.total_realized_usd += trade.value_usd

    positions = []
    for position in buckets.values():
        if not position.entries or position.total_invested_usd <= 0:
            continue

        entry_amount = position.total_entry_amount
        position.avg_entry_price = (
            position.total_invested_usd / entry_amount if entry_amount > 0 else 0.0
        )
        position.remaining_balance = entry_amount - position.total_exit_amount
        position.is_active = position.remaining_balance > 0
        positions.append(position)

    return positions
