"""Builders shared by the unit and integration tests."""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from paper_trader.models import ExitCriteria, Position, TradeParams, generate_position_id


def trade_params(hypothesis_id, amount=40.0, price=0.40, market="MKT-1",
                 direction="YES", take_profit=0.60, stop_loss=0.30, time_limit=None):
    return TradeParams(
        market=market,
        direction=direction,
        amount=amount,
        price=price,
        hypothesis_id=hypothesis_id,
        rationale="edge from test",
        exit_criteria=ExitCriteria(
            take_profit=take_profit, stop_loss=stop_loss, time_limit=time_limit
        ),
    )


def seed_position(store, hypothesis_id, market="MKT-SEED", direction="YES",
                  entry_price=0.40, shares=100.0, current_price=None,
                  take_profit=0.60, stop_loss=0.30, time_limit=None):
    """Put an open position straight into the portfolio document."""
    position = Position(
        id=generate_position_id(),
        market=market,
        direction=direction,
        entry_price=entry_price,
        shares=shares,
        cost=entry_price * shares,
        hypothesis_id=hypothesis_id,
        exit_criteria=ExitCriteria(
            take_profit=take_profit, stop_loss=stop_loss, time_limit=time_limit
        ),
        rationale="seeded",
        entry_date=(datetime.now(timezone.utc) - timedelta(hours=1)).isoformat(),
        current_price=entry_price if current_price is None else current_price,
    )

    def _add(portfolio):
        portfolio.cash -= position.cost
        portfolio.positions.append(position)

    store.mutate(_add)
    return position


def interleaved_write(doc, write):
    """
    Patch doc.read so another writer commits right after the first read.

    The caller then holds a stale version. Later reads pass straight through.
    """
    real_read = doc.read
    calls = []

    def _read():
        stored = real_read()
        if not calls:
            calls.append(stored.version)
            write()
        return stored

    return patch.object(doc, "read", side_effect=_read)
