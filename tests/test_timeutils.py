import os
import sys
import pandas as pd

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from constrisk.utils.timeutils import PERIODS, to_timezone

import unittest


class TestTimeUtils(unittest.TestCase):
    def test_naive_timestamp_is_utc(self) -> None:
        ts = to_timezone(pd.Timestamp("2024-01-02 10:00"), "Europe/Rome")
        self.assertEqual(ts.hour, 11)
        self.assertEqual(str(ts.tzinfo), "Europe/Rome")

    def test_aware_timestamp_is_converted(self) -> None:
        ts = to_timezone(pd.Timestamp("2024-07-01 12:00", tz="Europe/Rome"), "UTC")
        self.assertEqual(ts.hour, 10)

    def test_periods(self) -> None:
        self.assertIn("M1", PERIODS)
        self.assertIn("D1", PERIODS)
        self.assertNotIn("W1", PERIODS)


if __name__ == '__main__':
    unittest.main()
