"""Buy-signal strike ladder.

The ladder arms when the price first climbs ``unit_percent`` above where it
was seen, then alerts each time the price clears the next rung. Rung spacing
(``unit_price``) is frozen when the ladder arms and is never smaller than one
quote tick, and every strike extends the decay window to
``strike_count * decay_minutes``. When the window expires the ladder forgets
everything and starts over.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from .models import StrikeNotification, StrikeState


@dataclass(frozen=True)
class StrikeOutcome:
    state: StrikeState
    notification: StrikeNotification | None = None
    decay_seconds: float | None = None

    @property
    def struck(self) -> bool:
        return self.decay_seconds is not None


def quote_tick(precision: int) -> float:
    """Smallest price step at ``precision`` decimals."""
    return round(10.0 ** -precision, precision)


def evaluate(
    state: StrikeState,
    last_price: float,
    *,
    symbol: str,
    quote_currency: str,
    unit_percent: float,
    decay_minutes: float,
    precision: int,
) -> StrikeOutcome:
    """Apply one tick to a strike ladder without mutating ``state``."""
    nxt = replace(state)

    if nxt.strike_count == 0:
        candidate = round(last_price * (1.0 + unit_percent), precision)
    else:
        candidate = round(nxt.buy_price + nxt.unit_price, precision)

    if nxt.buy_price != 0:
        nxt.buy_price = min(nxt.buy_price, candidate)
    else:
        nxt.buy_price = candidate

    if not (nxt.buy_price != 0 and last_price >= nxt.buy_price):
        return StrikeOutcome(nxt)

    nxt.strike_count += 1
    if nxt.strike_count == 1:
        unit = round(nxt.buy_price * unit_percent / (1.0 + unit_percent), precision)
        # a rung that rounds to nothing would strike on every tick
        nxt.unit_price = max(unit, quote_tick(precision))

    notification = None
    if nxt.strike_count > 1:
        notification = StrikeNotification(
            symbol=symbol.upper(),
            last_price=last_price,
            strike_count=nxt.strike_count,
            unit_percent=unit_percent,
            quote_currency=quote_currency,
        )

    decay_seconds = nxt.strike_count * decay_minutes * 60.0
    nxt.buy_price = round(nxt.buy_price + nxt.unit_price, precision)
    return StrikeOutcome(nxt, notification, decay_seconds)
