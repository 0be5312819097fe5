"""
Account currency conversion.

Pip values are naturally expressed in the quote currency of a pair.
Turning them into account currency needs one more exchange rate, found
by looking up the pair ``ACCOUNT/PRIMARY`` or, failing that, its
inverse.  Only that single level is tried: there is no triangulation
through a third currency.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..data.instruments import Instrument, from_inverted_string, from_string
from ..execution.host import PriceSource
from ..execution.models import Direction


logger = logging.getLogger(__name__)


class InstrumentNotFoundError(LookupError):
    """Neither the direct nor the inverted conversion pair exists."""


def resolve_conversion_instrument(instrument: Instrument, account_currency: str) -> Optional[Instrument]:
    """Return the pair whose tick converts `instrument` pips to account currency.

    This is `instrument` itself when its primary currency is the account
    currency, otherwise ``ACCOUNT/PRIMARY`` or ``PRIMARY/ACCOUNT``.
    ``None`` when neither is listed.
    """
    if instrument.primary == account_currency:
        return instrument
    synthetic = f"{account_currency}/{instrument.primary}"
    return from_string(synthetic) or from_inverted_string(synthetic)


def resolve_account_pip_rate(
    instrument: Instrument,
    account_currency: str,
    direction: Direction,
    prices: PriceSource,
) -> float:
    """Exchange rate between the instrument's primary currency and the account.

    Ticks are read on the side the order would fill at (ask when buying,
    bid when selling).

    Raises
    ------
    InstrumentNotFoundError
        If no direct or inverted pair links the two currencies.
    """
    if instrument.primary == account_currency:
        return prices.get_latest_tick(instrument).price_for(direction)

    synthetic = f"{account_currency}/{instrument.primary}"
    direct = from_string(synthetic)
    if direct is not None:
        return prices.get_latest_tick(direct).price_for(direction)

    inverted = from_inverted_string(synthetic)
    if inverted is None:
        raise InstrumentNotFoundError(
            f"No instrument converts {instrument.primary} to {account_currency}: "
            f"neither {synthetic} nor its inverse is available"
        )
    logger.debug("Using inverted pair %s to convert %s", inverted, synthetic)
    return 1.0 / prices.get_latest_tick(inverted).price_for(direction)


def _mid(prices: PriceSource, instrument: Instrument) -> float:
    tick = prices.get_latest_tick(instrument)
    return (tick.bid + tick.ask) / 2.0


def _currency_rate(currency: str, account_currency: str, prices: PriceSource) -> Optional[float]:
    """Account currency per unit of `currency`, or ``None`` without a linking pair."""
    if currency == account_currency:
        return 1.0
    direct = from_string(f"{account_currency}/{currency}")
    if direct is not None:
        return 1.0 / _mid(prices, direct)
    inverted = from_string(f"{currency}/{account_currency}")
    if inverted is not None:
        return _mid(prices, inverted)
    return None


def quote_to_account_rate(instrument: Instrument, account_currency: str, prices: PriceSource) -> float:
    """Multiplier turning an amount in the instrument's quote currency into account currency.

    Mid prices are used since the amount is a realised or floating
    result rather than a fill.  When no pair links the quote currency
    to the account, the amount is first turned into the primary
    currency at the instrument's own price, then converted through the
    pair sizing uses.
    """
    rate = _currency_rate(instrument.secondary, account_currency, prices)
    if rate is not None:
        return rate
    primary_rate = _currency_rate(instrument.primary, account_currency, prices)
    if primary_rate is None:
        raise InstrumentNotFoundError(
            f"No instrument converts {instrument.secondary} or {instrument.primary} to {account_currency}"
        )
    logger.debug("Converting %s through %s", instrument.secondary, instrument.primary)
    return primary_rate / _mid(prices, instrument)
