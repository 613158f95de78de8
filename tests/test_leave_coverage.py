from datetime import date, datetime, time, timedelta
import unittest
from zoneinfo import ZoneInfo

from attendance_engine.domain import DurationUnit, LeaveApproval
from attendance_engine.services.ingestion import approval_from_raw
from attendance_engine.services.leave_coverage import (
    WorkWindow,
    covering_approval,
    hours_on_date,
    is_covered,
    is_full_day_leave,
    leave_end_instant,
)

WINDOW = WorkWindow(
    work_start=time(9, 0),
    work_end=time(18, 30),
    lunch_start=time(12, 0),
    lunch_end=time(13, 30),
)


def _approval(
    start: datetime,
    end: datetime,
    duration: float,
    unit: DurationUnit,
    *,
    leave_type: str = "事假",
    proc_inst_id: str = "p1",
) -> LeaveApproval:
    return LeaveApproval(
        proc_inst_id=proc_inst_id,
        leave_type=leave_type,
        start=start,
        end=end,
        duration=duration,
        duration_unit=unit,
    )


class HoursOnDateTests(unittest.TestCase):
    def test_day_unit_leave_spreads_full_days(self) -> None:
        approval = _approval(datetime(2026, 3, 3), datetime(2026, 3, 4), 2, DurationUnit.DAY)

        total = sum(hours_on_date(approval, date(2026, 3, day), 8, WINDOW) for day in range(1, 32))

        self.assertEqual(hours_on_date(approval, date(2026, 3, 3), 8, WINDOW), 8)
        self.assertEqual(hours_on_date(approval, date(2026, 3, 4), 8, WINDOW), 8)
        self.assertEqual(hours_on_date(approval, date(2026, 3, 5), 8, WINDOW), 0)
        self.assertEqual(total, 16)

    def test_day_unit_shortfall_lands_on_last_day(self) -> None:
        approval = _approval(datetime(2026, 3, 3), datetime(2026, 3, 5), 2.5, DurationUnit.DAY)

        self.assertEqual(hours_on_date(approval, date(2026, 3, 3), 8, WINDOW), 8)
        self.assertEqual(hours_on_date(approval, date(2026, 3, 4), 8, WINDOW), 8)
        self.assertEqual(hours_on_date(approval, date(2026, 3, 5), 8, WINDOW), 4)

    def test_day_unit_half_day(self) -> None:
        approval = _approval(datetime(2026, 3, 3), datetime(2026, 3, 3), 0.5, DurationUnit.DAY)

        self.assertEqual(hours_on_date(approval, date(2026, 3, 3), 8, WINDOW), 4)

    def test_short_hour_leave_counts_its_duration(self) -> None:
        approval = _approval(datetime(2026, 3, 3, 9, 0), datetime(2026, 3, 3, 11, 0), 2, DurationUnit.HOUR)

        self.assertEqual(hours_on_date(approval, date(2026, 3, 3), 8, WINDOW), 2)
        self.assertEqual(hours_on_date(approval, date(2026, 3, 4), 8, WINDOW), 0)

    def test_long_hour_leave_is_clipped_to_working_hours(self) -> None:
        approval = _approval(datetime(2026, 3, 3, 14, 0), datetime(2026, 3, 5, 12, 0), 20, DurationUnit.HOUR)

        self.assertEqual(hours_on_date(approval, date(2026, 3, 3), 8, WINDOW), 4.5)
        self.assertEqual(hours_on_date(approval, date(2026, 3, 4), 8, WINDOW), 8)
        self.assertEqual(hours_on_date(approval, date(2026, 3, 5), 8, WINDOW), 3)

    def test_lunch_break_is_not_leave(self) -> None:
        approval = _approval(datetime(2026, 3, 3, 9, 0), datetime(2026, 3, 4, 18, 30), 16, DurationUnit.HOUR)

        self.assertEqual(hours_on_date(approval, date(2026, 3, 3), 8, WINDOW), 8)
        self.assertEqual(hours_on_date(approval, date(2026, 3, 4), 8, WINDOW), 8)

    def test_interior_days_never_exceed_daily_hours(self) -> None:
        start = datetime(2026, 3, 2, 9, 0)
        approval = _approval(start, datetime(2026, 3, 13, 18, 30), 80, DurationUnit.HOUR)

        for offset in range(12):
            hours = hours_on_date(approval, start.date() + timedelta(days=offset), 8, WINDOW)
            self.assertGreaterEqual(hours, 0)
            self.assertLessEqual(hours, 8)

    def test_zero_duration_contributes_nothing(self) -> None:
        approval = _approval(datetime(2026, 3, 3, 9, 0), datetime(2026, 3, 3, 11, 0), 0, DurationUnit.HOUR)

        self.assertEqual(hours_on_date(approval, date(2026, 3, 3), 8, WINDOW), 0)
        self.assertFalse(is_covered(datetime(2026, 3, 3, 9, 0), [approval]).covered)

    def test_approval_without_times_contributes_nothing(self) -> None:
        approval = LeaveApproval(
            proc_inst_id="p1",
            leave_type="病假",
            start=None,
            end=None,
            duration=3,
            duration_unit=DurationUnit.DAY,
        )

        total = sum(hours_on_date(approval, date(2026, 3, day), 8, WINDOW) for day in range(2, 5))

        self.assertEqual(total, 0)
        self.assertFalse(is_full_day_leave([approval], date(2026, 3, 2), 8, WINDOW))
        self.assertFalse(is_covered(datetime(2026, 3, 2, 9, 0), [approval]).covered)
        self.assertIsNone(covering_approval([approval], datetime(2026, 3, 2, 9, 40)))

    def test_inverted_range_from_ingestion_contributes_nothing(self) -> None:
        with self.assertLogs("attendance_engine.ingestion", level="WARNING"):
            approval = approval_from_raw(
                "p1",
                {"leaveType": "事假", "start": "2026-03-03 14:00", "end": "2026-03-03 10:00", "duration": 12},
                tz=ZoneInfo("Asia/Shanghai"),
            )

        self.assertEqual(hours_on_date(approval, date(2026, 3, 3), 8, WINDOW), 0)
        self.assertFalse(is_full_day_leave([approval], date(2026, 3, 3), 8, WINDOW))


class CoverageTests(unittest.TestCase):
    def test_hour_leave_covers_only_its_interval(self) -> None:
        approval = _approval(datetime(2026, 3, 3, 9, 0), datetime(2026, 3, 3, 11, 0), 2, DurationUnit.HOUR)

        coverage = is_covered(datetime(2026, 3, 3, 9, 0), [approval])
        self.assertTrue(coverage.covered)
        self.assertEqual(coverage.leave_type, "事假")
        self.assertFalse(is_covered(datetime(2026, 3, 3, 18, 30), [approval]).covered)

    def test_day_leave_covers_the_whole_date(self) -> None:
        approval = _approval(datetime(2026, 3, 3), datetime(2026, 3, 3), 1, DurationUnit.DAY, leave_type="年假")

        self.assertTrue(is_covered(datetime(2026, 3, 3, 18, 30), [approval]).covered)
        self.assertFalse(is_covered(datetime(2026, 3, 4, 9, 0), [approval]).covered)

    def test_two_half_days_make_a_full_day(self) -> None:
        morning = _approval(datetime(2026, 3, 3, 9, 0), datetime(2026, 3, 3, 13, 0), 4, DurationUnit.HOUR)
        afternoon = _approval(
            datetime(2026, 3, 3, 13, 30),
            datetime(2026, 3, 3, 18, 30),
            4,
            DurationUnit.HOUR,
            proc_inst_id="p2",
        )

        self.assertFalse(is_full_day_leave([morning], date(2026, 3, 3), 8, WINDOW))
        self.assertTrue(is_full_day_leave([morning, afternoon], date(2026, 3, 3), 8, WINDOW))

    def test_day_leave_ends_at_midnight_after_its_last_day(self) -> None:
        approval = _approval(datetime(2026, 3, 3), datetime(2026, 3, 3), 1, DurationUnit.DAY)

        self.assertEqual(leave_end_instant(approval), datetime(2026, 3, 4, 0, 0))

    def test_covering_approval_prefers_latest_end(self) -> None:
        short = _approval(datetime(2026, 3, 3, 9, 0), datetime(2026, 3, 3, 10, 0), 1, DurationUnit.HOUR)
        longer = _approval(
            datetime(2026, 3, 3, 9, 0),
            datetime(2026, 3, 3, 12, 0),
            3,
            DurationUnit.HOUR,
            proc_inst_id="p2",
        )
        afternoon = _approval(
            datetime(2026, 3, 3, 15, 0),
            datetime(2026, 3, 3, 18, 0),
            3,
            DurationUnit.HOUR,
            proc_inst_id="p3",
        )

        chosen = covering_approval([short, longer, afternoon], datetime(2026, 3, 3, 13, 40))

        self.assertIsNotNone(chosen)
        assert chosen is not None
        self.assertEqual(chosen.proc_inst_id, "p2")


if __name__ == "__main__":
    unittest.main()
