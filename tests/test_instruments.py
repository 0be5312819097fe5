import os
import sys

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from constrisk.data.instruments import from_inverted_string, from_string, from_symbol

import unittest


class TestInstrumentRegistry(unittest.TestCase):
    def test_lookup_by_name(self) -> None:
        eurusd = from_string("eur/usd")
        self.assertIsNotNone(eurusd)
        self.assertEqual(eurusd.name, "EUR/USD")
        self.assertEqual(eurusd.symbol, "EURUSD")
        self.assertAlmostEqual(eurusd.pip_value, 0.0001)

    def test_jpy_quotes_use_two_decimal_pips(self) -> None:
        self.assertAlmostEqual(from_string("USD/JPY").pip_value, 0.01)
        self.assertAlmostEqual(from_string("EUR/JPY").pip_value, 0.01)

    def test_unknown_pair_is_none(self) -> None:
        self.assertIsNone(from_string("USD/EUR"))
        self.assertIsNone(from_string("XXX/YYY"))

    def test_inverted_lookup(self) -> None:
        self.assertEqual(from_inverted_string("USD/EUR"), from_string("EUR/USD"))
        self.assertIsNone(from_inverted_string("EUR/USD"))
        self.assertIsNone(from_inverted_string("EURUSD"))

    def test_symbol_with_broker_suffix(self) -> None:
        self.assertEqual(from_symbol("GBPUSD.m"), from_string("GBP/USD"))
        self.assertEqual(from_symbol("GBP/USD"), from_string("GBP/USD"))


if __name__ == '__main__':
    unittest.main()
