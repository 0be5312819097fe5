import os
import sys

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from constrisk.data.instruments import from_string
from constrisk.execution.models import Direction
from constrisk.execution.paper_exec import StaticPriceSource
from constrisk.risk.conversion import (
    InstrumentNotFoundError,
    quote_to_account_rate,
    resolve_account_pip_rate,
    resolve_conversion_instrument,
)

import unittest


EURUSD = from_string("EUR/USD")
USDJPY = from_string("USD/JPY")
USDCHF = from_string("USD/CHF")
CHFJPY = from_string("CHF/JPY")


class TestConversionInstrument(unittest.TestCase):
    def test_primary_is_account_currency(self) -> None:
        self.assertEqual(resolve_conversion_instrument(USDJPY, "USD"), USDJPY)

    def test_direct_pair(self) -> None:
        self.assertEqual(resolve_conversion_instrument(CHFJPY, "USD"), USDCHF)

    def test_inverted_pair(self) -> None:
        self.assertEqual(resolve_conversion_instrument(EURUSD, "USD"), EURUSD)
        self.assertEqual(resolve_conversion_instrument(from_string("EUR/GBP"), "USD"), EURUSD)

    def test_missing_pair(self) -> None:
        self.assertIsNone(resolve_conversion_instrument(EURUSD, "ZAR"))


class TestAccountPipRate(unittest.TestCase):
    def setUp(self) -> None:
        self.prices = StaticPriceSource()
        self.prices.set_tick(EURUSD, bid=1.0998, ask=1.1000)
        self.prices.set_tick(USDCHF, bid=0.8998, ask=0.9000)
        self.prices.set_tick(USDJPY, bid=149.98, ask=150.00)

    def test_own_tick_when_primary_is_account_currency(self) -> None:
        rate = resolve_account_pip_rate(USDJPY, "USD", Direction.SHORT, self.prices)
        self.assertAlmostEqual(rate, 149.98)

    def test_direct_pair_uses_side_price(self) -> None:
        self.assertAlmostEqual(resolve_account_pip_rate(CHFJPY, "USD", Direction.LONG, self.prices), 0.9000)
        self.assertAlmostEqual(resolve_account_pip_rate(CHFJPY, "USD", Direction.SHORT, self.prices), 0.8998)

    def test_inverted_pair_is_reciprocal(self) -> None:
        rate = resolve_account_pip_rate(EURUSD, "USD", Direction.LONG, self.prices)
        self.assertAlmostEqual(rate, 1.0 / 1.1000)

    def test_unresolvable_pair_raises(self) -> None:
        with self.assertRaises(InstrumentNotFoundError):
            resolve_account_pip_rate(EURUSD, "ZAR", Direction.LONG, self.prices)


class TestQuoteToAccountRate(unittest.TestCase):
    def test_rates_use_mid_prices(self) -> None:
        prices = StaticPriceSource()
        prices.set_tick(USDJPY, bid=149.0, ask=151.0)
        prices.set_tick(EURUSD, bid=1.09, ask=1.11)
        self.assertEqual(quote_to_account_rate(EURUSD, "USD", prices), 1.0)
        self.assertAlmostEqual(quote_to_account_rate(USDJPY, "USD", prices), 1.0 / 150.0)
        # JPY/USD is not listed, USD/JPY is
        self.assertAlmostEqual(quote_to_account_rate(EURUSD, "JPY", prices), 150.0)

    def test_converts_through_primary_currency(self) -> None:
        # no pair links SGD and EUR: SGD -> USD at the USD/SGD mid, then USD -> EUR
        prices = StaticPriceSource()
        prices.set_tick(from_string("USD/SGD"), bid=1.34, ask=1.36)
        prices.set_tick(EURUSD, bid=1.09, ask=1.11)
        rate = quote_to_account_rate(from_string("USD/SGD"), "EUR", prices)
        self.assertAlmostEqual(rate, 1.0 / 1.10 / 1.35)

    def test_unknown_quote_raises(self) -> None:
        with self.assertRaises(InstrumentNotFoundError):
            quote_to_account_rate(EURUSD, "BRL", StaticPriceSource())


if __name__ == '__main__':
    unittest.main()
