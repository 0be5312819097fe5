import os
import sys
from unittest import mock

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from constrisk.config.schema import ConfigurationError
from constrisk.data.instruments import from_string
from constrisk.execution.models import MessageType, OrderCommand, OrderState
from constrisk.execution.paper_exec import PaperHost, StaticPriceSource
from constrisk.risk.sizing import PositionSizer
from constrisk.strategy.submission import (
    LabelGenerator,
    OrderSubmitter,
    Pips,
    Price,
    RewardRatio,
    pips_between,
    take_profit_pips,
)

import unittest


EURUSD = from_string("EUR/USD")


class TestTakeProfitPips(unittest.TestCase):
    def test_scaled_distance_rounds_to_tenth(self) -> None:
        self.assertEqual(take_profit_pips(33.33, 2), 66.7)
        self.assertEqual(take_profit_pips(12.25, 3), 36.8)

    def test_unit_ratio_is_unchanged(self) -> None:
        self.assertEqual(take_profit_pips(33.33, 1), 33.33)

    def test_pips_between(self) -> None:
        self.assertAlmostEqual(pips_between(1.0950, 1.1000, EURUSD), 50.0)
        self.assertAlmostEqual(pips_between(151.20, 150.00, from_string("USD/JPY")), 120.0)


class TestLabelGenerator(unittest.TestCase):
    def test_format(self) -> None:
        labels = LabelGenerator(clock=lambda: 1400000000.5)
        self.assertEqual(labels.next(OrderCommand.BUY, "ORDER1").value, "BUYORDER11400000000500")

    def test_labels_are_unique_within_the_same_millisecond(self) -> None:
        labels = LabelGenerator(clock=lambda: 1400000000.5)
        first = labels.next(OrderCommand.SELL)
        second = labels.next(OrderCommand.SELL)
        self.assertNotEqual(first, second)
        self.assertEqual(second.value, "SELL1400000000501")


class TestOrderSubmitter(unittest.TestCase):
    def setUp(self) -> None:
        self.prices = StaticPriceSource()
        self.prices.set_tick(EURUSD, bid=1.0998, ask=1.1000)
        self.host = PaperHost(self.prices, account_currency="USD")
        sizer = PositionSizer(self.host, "USD", max_position_size=0.05)
        self.submitter = OrderSubmitter(self.host, sizer, LabelGenerator(clock=lambda: 1400000000.5))

    def test_market_buy_prices(self) -> None:
        order = self.submitter.submit(EURUSD, OrderCommand.BUY, 10.0, Pips(50), RewardRatio(2))
        self.assertAlmostEqual(order.stop_loss_price, 1.0950)
        self.assertAlmostEqual(order.take_profit_price, 1.1100)
        self.assertAlmostEqual(order.amount, 0.002)
        self.assertIs(order.state, OrderState.OPENED)

    def test_market_sell_measures_from_bid(self) -> None:
        order = self.submitter.submit(EURUSD, OrderCommand.SELL, 10.0, Pips(50), RewardRatio(1))
        self.assertAlmostEqual(order.stop_loss_price, 1.1048)
        self.assertAlmostEqual(order.take_profit_price, 1.0948)

    def test_absolute_prices(self) -> None:
        order = self.submitter.submit(EURUSD, OrderCommand.BUY, 10.0, Price(1.0950), Price(1.1234))
        self.assertAlmostEqual(order.stop_loss_price, 1.0950)
        self.assertAlmostEqual(order.take_profit_price, 1.1234)
        self.assertAlmostEqual(order.amount, 0.002)

    def test_no_take_profit(self) -> None:
        order = self.submitter.submit(EURUSD, OrderCommand.BUY, 10.0, Price(1.0950))
        self.assertEqual(order.take_profit_price, 0.0)

    def test_stop_entry_measures_from_entry_price(self) -> None:
        order = self.submitter.submit(
            EURUSD, OrderCommand.BUYSTOP, 10.0, Pips(50), RewardRatio(2), entry_price=1.1050,
        )
        self.assertIs(order.state, OrderState.PENDING)
        self.assertAlmostEqual(order.open_price, 1.1050)
        self.assertAlmostEqual(order.stop_loss_price, 1.1000)
        self.assertAlmostEqual(order.take_profit_price, 1.1150)

    def test_stop_entry_without_price_is_refused(self) -> None:
        with self.assertRaises(ConfigurationError):
            self.submitter.submit(EURUSD, OrderCommand.SELLSTOP, 10.0, Pips(50))
        self.assertEqual(self.host.orders, {})

    def test_stop_loss_at_entry_is_refused(self) -> None:
        with self.assertRaises(ConfigurationError):
            self.submitter.submit(EURUSD, OrderCommand.BUY, 10.0, Price(1.1000))

    def test_slippage_and_label_sent_to_host(self) -> None:
        with mock.patch.object(self.host, 'submit_order', wraps=self.host.submit_order) as submit:
            self.submitter.submit(EURUSD, OrderCommand.BUY, 10.0, Pips(50), slot_tag="ORDER2")
        args = submit.call_args[0]
        self.assertEqual(args[0].value, "BUYORDER21400000000500")
        self.assertEqual(args[4], 0.0)
        self.assertEqual(args[5], 5.0)

    def test_zero_amount_is_still_submitted(self) -> None:
        with self.assertLogs('constrisk.strategy.submission', level='WARNING'):
            order = self.submitter.submit(EURUSD, OrderCommand.BUY, 1000.0, Pips(50))
        self.assertEqual(order.amount, 0.0)
        self.assertIn(order.label, self.host.orders)
        messages = self.host.poll_messages()
        self.assertEqual(messages[-1].type, MessageType.ORDER_SUBMIT_REJECTED)


if __name__ == '__main__':
    unittest.main()
