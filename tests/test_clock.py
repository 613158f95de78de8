from datetime import date, datetime
import unittest

from attendance_engine.services.clock import at_clock, normalize_clock, parse_clock


class ClockParsingTests(unittest.TestCase):
    def test_parses_24_hour_values(self) -> None:
        self.assertEqual(parse_clock("19:30"), (19, 30))
        self.assertEqual(parse_clock("09:30:00"), (9, 30))
        self.assertEqual(parse_clock("24:00"), (24, 0))

    def test_normalizes_twelve_hour_markers(self) -> None:
        self.assertEqual(parse_clock("下午7:30"), (19, 30))
        self.assertEqual(parse_clock("上午12:15"), (0, 15))
        self.assertEqual(parse_clock("下午12:00"), (12, 0))
        self.assertEqual(normalize_clock("下午10:00"), "22:00")

    def test_rejects_unparsable_values(self) -> None:
        self.assertIsNone(parse_clock(None))
        self.assertIsNone(parse_clock(""))
        self.assertIsNone(parse_clock("late"))
        self.assertIsNone(parse_clock("24:30"))
        self.assertIsNone(parse_clock("18:75"))

    def test_hour_24_rolls_to_next_day(self) -> None:
        self.assertEqual(at_clock(date(2026, 3, 31), 24, 0), datetime(2026, 4, 1, 0, 0))
        self.assertEqual(at_clock(date(2026, 3, 3), 9, 30), datetime(2026, 3, 3, 9, 30))


if __name__ == "__main__":
    unittest.main()
