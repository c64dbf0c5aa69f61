"""Stay pricing.

Nights are counted on calendar dates, never on wall-clock duration, so a
timezone offset or DST switch inside the stay cannot add a partial night.
Prices are integers in minor currency units; there are no rate plans.
Totals are stored in a bigint column, so MAX_TOTAL_PRICE bounds them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from resortly.domain.errors import InvalidIntervalError, PriceOutOfRangeError
from resortly.infra.time import as_calendar_date

# Postgres bigint upper bound.
MAX_TOTAL_PRICE = 2**63 - 1


@dataclass(frozen=True)
class StayQuote:
    nights: int
    nightly_rate: int
    total_price: int

    def to_dict(self) -> dict:
        return {
            "nights": self.nights,
            "nightly_rate": self.nightly_rate,
            "total_price": self.total_price,
        }


def count_nights(start: date | datetime, end: date | datetime) -> int:
    """Number of nights between check-in and check-out calendar dates.

    May be zero or negative; callers that need a bookable stay use
    calculate_total_price, which rejects anything under one night.
    """
    return (as_calendar_date(end) - as_calendar_date(start)).days


def calculate_total_price(
    nightly_rate: int,
    start: date | datetime,
    end: date | datetime,
) -> int:
    """Total price for a stay: nightly_rate * nights.

    Raises:
        InvalidIntervalError: If the stay covers less than one night.
        PriceOutOfRangeError: If the total exceeds MAX_TOTAL_PRICE.
    """
    return quote_stay(nightly_rate, start, end).total_price


def quote_stay(
    nightly_rate: int,
    start: date | datetime,
    end: date | datetime,
) -> StayQuote:
    """Price a stay and keep the breakdown.

    Raises:
        InvalidIntervalError: If the stay covers less than one night.
        PriceOutOfRangeError: If the total exceeds MAX_TOTAL_PRICE.
    """
    nights = count_nights(start, end)
    if nights < 1:
        raise InvalidIntervalError(as_calendar_date(start), as_calendar_date(end))

    total_price = nightly_rate * nights
    if total_price > MAX_TOTAL_PRICE:
        raise PriceOutOfRangeError(nightly_rate, nights)

    return StayQuote(
        nights=nights,
        nightly_rate=nightly_rate,
        total_price=total_price,
    )
