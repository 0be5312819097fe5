"""
Static instrument registry.

Currency pairs are identified by their ``PRIMARY/SECONDARY`` name.  The
registry answers three questions: which pair does a name refer to,
which pair is quoted the other way round, and which pair does a broker
symbol such as ``EURUSD`` refer to.  Lookups of pairs the registry does
not list return ``None``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class Instrument:
    """A tradeable currency pair.

    Attributes
    ----------
    primary : str
        Base currency code (``EUR`` in ``EUR/USD``).
    secondary : str
        Quote currency code (``USD`` in ``EUR/USD``).
    pip_scale : int
        Decimal exponent of one pip: 4 for most pairs, 2 for JPY quotes.
    """

    primary: str
    secondary: str
    pip_scale: int = 4

    @property
    def name(self) -> str:
        return f"{self.primary}/{self.secondary}"

    @property
    def symbol(self) -> str:
        return f"{self.primary}{self.secondary}"

    @property
    def pip_value(self) -> float:
        """Price delta of one pip, in the secondary currency."""
        return 10.0 ** -self.pip_scale

    def __str__(self) -> str:
        return self.name


_PAIRS = [
    ('EUR', 'USD'), ('GBP', 'USD'), ('AUD', 'USD'), ('NZD', 'USD'),
    ('USD', 'JPY'), ('USD', 'CHF'), ('USD', 'CAD'),
    ('EUR', 'GBP'), ('EUR', 'JPY'), ('EUR', 'CHF'), ('EUR', 'AUD'), ('EUR', 'CAD'), ('EUR', 'NZD'),
    ('GBP', 'JPY'), ('GBP', 'CHF'), ('GBP', 'AUD'), ('GBP', 'CAD'), ('GBP', 'NZD'),
    ('AUD', 'JPY'), ('AUD', 'CHF'), ('AUD', 'CAD'), ('AUD', 'NZD'),
    ('NZD', 'JPY'), ('NZD', 'CHF'), ('NZD', 'CAD'),
    ('CAD', 'JPY'), ('CAD', 'CHF'), ('CHF', 'JPY'),
    ('USD', 'SGD'), ('USD', 'HKD'), ('USD', 'NOK'), ('USD', 'SEK'), ('USD', 'DKK'),
    ('USD', 'PLN'), ('USD', 'TRY'), ('USD', 'MXN'), ('USD', 'ZAR'),
    ('EUR', 'NOK'), ('EUR', 'SEK'), ('EUR', 'DKK'), ('EUR', 'PLN'), ('EUR', 'TRY'),
]

REGISTRY: Dict[str, Instrument] = {
    f"{p}/{s}": Instrument(p, s, 2 if s == 'JPY' else 4) for p, s in _PAIRS
}


def from_string(name: str) -> Optional[Instrument]:
    """Return the instrument named ``PRIMARY/SECONDARY`` or ``None``."""
    return REGISTRY.get(name.strip().upper())


def from_inverted_string(name: str) -> Optional[Instrument]:
    """Return the instrument quoted as the reverse of ``name`` or ``None``.

    ``from_inverted_string("USD/EUR")`` gives ``EUR/USD``.
    """
    parts = name.strip().upper().split('/')
    if len(parts) != 2:
        return None
    return REGISTRY.get(f"{parts[1]}/{parts[0]}")


def from_symbol(symbol: str) -> Optional[Instrument]:
    """Look up a broker symbol such as ``EURUSD`` or ``EURUSD.m``."""
    code = symbol.strip().upper()
    if '/' in code:
        return from_string(code)
    return REGISTRY.get(f"{code[:3]}/{code[3:6]}")
