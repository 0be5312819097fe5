import os
import sys
from types import SimpleNamespace
from unittest import mock

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from constrisk.config.schema import MT5Config
from constrisk.data.instruments import from_string
from constrisk.data.mt5_data import MT5DataFeed
from constrisk.execution.host import SubmissionError
from constrisk.execution.models import MessageType, OrderCommand, OrderLabel, OrderState
from constrisk.execution.mt5_exec import MT5Host

import unittest


EURUSD = from_string("EUR/USD")
DONE = 10009


class TestMT5Host(unittest.TestCase):
    def setUp(self) -> None:
        self.api = mock.MagicMock()
        self.api.TRADE_RETCODE_DONE = DONE
        self.api.TRADE_RETCODE_PLACED = 10008
        self.api.symbol_info.return_value = SimpleNamespace(
            trade_contract_size=100000.0, volume_step=0.01, volume_min=0.01, digits=5, point=0.00001,
        )
        self.api.symbol_info_tick.return_value = SimpleNamespace(bid=1.0998, ask=1.1000, time=1704189600)
        patcher = mock.patch('constrisk.data.mt5_data.mt5', self.api)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.feed = MT5DataFeed(MT5Config(symbol_suffix=".m"))
        self.feed.connect()
        self.host = MT5Host(self.feed, magic=42)

    def test_volume_conversion(self) -> None:
        self.assertAlmostEqual(self.host.to_volume(EURUSD, 0.002), 0.02)
        self.assertEqual(self.host.to_volume(EURUSD, 0.0004), 0.0)
        self.assertAlmostEqual(self.host.to_amount(EURUSD, 0.02), 0.002)

    def test_submit_market_order(self) -> None:
        self.api.order_send.return_value = SimpleNamespace(retcode=DONE, order=777, price=1.1001, comment="")
        order = self.host.submit_order(OrderLabel("BUY1"), EURUSD, OrderCommand.BUY, 0.002, 0.0, 5.0, 1.0950, 1.1100)
        request = self.api.order_send.call_args[0][0]
        self.assertEqual(request["symbol"], "EURUSD.m")
        self.assertEqual(request["comment"], "BUY1")
        self.assertEqual(request["deviation"], 50)
        self.assertEqual(request["magic"], 42)
        self.assertAlmostEqual(request["volume"], 0.02)
        self.assertEqual(request["price"], 1.1000)
        self.assertIs(order.state, OrderState.OPENED)
        self.assertEqual(order.open_price, 1.1001)
        types = [m.type for m in self.host.poll_messages()]
        self.assertEqual(types, [MessageType.ORDER_SUBMIT_OK, MessageType.ORDER_FILL_OK])

    def test_rejected_order(self) -> None:
        self.api.order_send.return_value = SimpleNamespace(retcode=10019, order=0, price=0.0, comment="No money")
        order = self.host.submit_order(OrderLabel("BUY1"), EURUSD, OrderCommand.BUY, 0.002, 0.0, 5.0, 1.0950, 1.1100)
        self.assertIs(order.state, OrderState.REJECTED)
        (message,) = self.host.poll_messages()
        self.assertEqual(message.type, MessageType.ORDER_SUBMIT_REJECTED)
        self.assertIn("No money", message.text)

    def test_below_minimum_volume_not_sent(self) -> None:
        order = self.host.submit_order(OrderLabel("BUY1"), EURUSD, OrderCommand.BUY, 0.0, 0.0, 5.0, 1.0950, 1.1100)
        self.assertIs(order.state, OrderState.REJECTED)
        self.api.order_send.assert_not_called()

    def test_terminal_failure_raises(self) -> None:
        self.api.order_send.return_value = None
        with self.assertRaises(SubmissionError):
            self.host.submit_order(OrderLabel("BUY1"), EURUSD, OrderCommand.BUY, 0.002, 0.0, 5.0, 1.0950, 1.1100)

    def test_closed_position_is_reported(self) -> None:
        self.api.order_send.return_value = SimpleNamespace(retcode=DONE, order=777, price=1.1000, comment="")
        label = OrderLabel("BUY1")
        self.host.submit_order(label, EURUSD, OrderCommand.BUY, 0.002, 0.0, 5.0, 1.0950, 1.1100)
        self.host.poll_messages()

        self.api.positions_get.return_value = ()
        self.api.history_deals_get.return_value = (
            SimpleNamespace(entry=0, profit=0.0, swap=0.0, commission=-0.07, price=1.1000, time=1704189600),
            SimpleNamespace(entry=1, profit=20.0, swap=0.0, commission=-0.07, price=1.1100, time=1704196800),
        )
        self.api.DEAL_ENTRY_OUT = 1
        self.host.refresh()
        self.assertIsNone(self.host.get_order_by_label(label))
        (message,) = self.host.poll_messages()
        self.assertEqual(message.type, MessageType.ORDER_CLOSE_OK)
        self.assertAlmostEqual(message.order.profit_loss, 20.0)
        self.assertAlmostEqual(message.order.commission, 0.14)
        self.assertEqual(message.order.close_price, 1.1100)


    def _place_stop_order(self) -> OrderLabel:
        self.api.order_send.return_value = SimpleNamespace(retcode=10008, order=555, price=0.0, comment="")
        label = OrderLabel("BUYSTOP1")
        order = self.host.submit_order(label, EURUSD, OrderCommand.BUYSTOP, 0.002, 1.1050, 5.0, 1.1000, 1.1150)
        self.assertIs(order.state, OrderState.PENDING)
        self.host.poll_messages()
        self.api.positions_get.return_value = ()
        self.api.orders_get.return_value = ()
        self.api.DEAL_ENTRY_IN = 0
        self.api.DEAL_ENTRY_OUT = 1
        return label

    def test_stop_order_filled_and_closed_between_polls(self) -> None:
        label = self._place_stop_order()
        self.api.history_deals_get.return_value = (
            SimpleNamespace(entry=0, profit=0.0, swap=0.0, commission=-0.07, price=1.1050, time=1704189600),
            SimpleNamespace(entry=1, profit=20.0, swap=0.0, commission=-0.07, price=1.1150, time=1704196800),
        )
        self.host.refresh()
        fill, close = self.host.poll_messages()
        self.assertEqual(fill.type, MessageType.ORDER_FILL_OK)
        self.assertEqual(close.type, MessageType.ORDER_CLOSE_OK)
        self.assertEqual(close.order.open_price, 1.1050)
        self.assertEqual(close.order.close_price, 1.1150)
        self.assertAlmostEqual(close.order.profit_loss, 20.0)
        self.assertAlmostEqual(close.order.commission, 0.14)
        self.api.history_deals_get.assert_called_with(position=555)
        self.assertIsNone(self.host.get_order_by_label(label))

    def test_stop_order_cancelled(self) -> None:
        self._place_stop_order()
        self.api.history_deals_get.return_value = ()
        self.host.refresh()
        (message,) = self.host.poll_messages()
        self.assertEqual(message.type, MessageType.ORDER_CLOSE_OK)
        self.assertEqual(message.text, "cancelled")
        self.assertEqual(message.order.profit_loss, 0.0)

class TestMT5DataFeed(unittest.TestCase):
    def test_missing_package(self) -> None:
        with mock.patch('constrisk.data.mt5_data.mt5', None):
            with self.assertRaises(RuntimeError):
                MT5DataFeed(MT5Config()).connect()

    def test_requires_connection(self) -> None:
        with self.assertRaises(RuntimeError):
            MT5DataFeed(MT5Config()).get_latest_tick(EURUSD)


if __name__ == '__main__':
    unittest.main()
