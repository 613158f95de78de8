from datetime import date, datetime
import unittest

from attendance_engine.domain import CheckType, DailyStatus, PunchRecord, SourceType, TimeResult
from attendance_engine.services.daily_status import build_daily_status, build_daily_statuses


def _record(
    check_type: CheckType,
    work_date: date,
    check_time: datetime | None,
    result: TimeResult = TimeResult.NORMAL,
    *,
    source: SourceType = SourceType.MACHINE,
    proc_inst_id: str | None = None,
) -> PunchRecord:
    return PunchRecord(
        check_type=check_type,
        work_date=work_date,
        user_check_time=check_time,
        base_check_time=None,
        time_result=result,
        source_type=source,
        proc_inst_id=proc_inst_id,
    )


class DailyStatusTests(unittest.TestCase):
    def test_duplicate_punches_resolve_to_earliest_in_and_latest_out(self) -> None:
        day = date(2026, 3, 3)
        status = build_daily_status(
            day,
            [
                _record(CheckType.OFF_DUTY, day, datetime(2026, 3, 3, 18, 0)),
                _record(CheckType.ON_DUTY, day, datetime(2026, 3, 3, 9, 20)),
                _record(CheckType.ON_DUTY, day, datetime(2026, 3, 3, 9, 5), TimeResult.LATE),
                _record(CheckType.OFF_DUTY, day, datetime(2026, 3, 3, 20, 0)),
            ],
        )

        self.assertEqual(status.on_duty_time, datetime(2026, 3, 3, 9, 5))
        self.assertEqual(status.off_duty_time, datetime(2026, 3, 3, 20, 0))
        self.assertEqual(status.status, DailyStatus.ABNORMAL)
        self.assertTrue(status.has_abnormality)

    def test_unsigned_side_makes_day_incomplete(self) -> None:
        day = date(2026, 3, 3)
        status = build_daily_status(
            day,
            [
                _record(CheckType.ON_DUTY, day, datetime(2026, 3, 3, 8, 55)),
                _record(CheckType.OFF_DUTY, day, None, TimeResult.NOT_SIGNED, proc_inst_id="p1"),
            ],
        )

        self.assertEqual(status.status, DailyStatus.INCOMPLETE)
        self.assertIsNone(status.off_duty_time)
        self.assertEqual(status.proc_inst_ids, ["p1"])

    def test_normal_day_and_approval_sources(self) -> None:
        day = date(2026, 3, 3)
        status = build_daily_status(
            day,
            [
                _record(CheckType.ON_DUTY, day, datetime(2026, 3, 3, 8, 55)),
                _record(
                    CheckType.OFF_DUTY,
                    day,
                    datetime(2026, 3, 3, 18, 30),
                    source=SourceType.APPROVAL,
                    proc_inst_id="p9",
                ),
            ],
        )

        self.assertEqual(status.status, DailyStatus.NORMAL)
        self.assertFalse(status.has_on_duty_approval)
        self.assertTrue(status.has_off_duty_approval)

    def test_empty_day_has_no_record(self) -> None:
        status = build_daily_status(date(2026, 3, 3), [])

        self.assertEqual(status.status, DailyStatus.NO_RECORD)

    def test_days_are_grouped_in_ascending_order(self) -> None:
        punches = [
            _record(CheckType.ON_DUTY, date(2026, 3, 5), datetime(2026, 3, 5, 8, 55)),
            _record(CheckType.ON_DUTY, date(2026, 3, 3), datetime(2026, 3, 3, 8, 55)),
            _record(CheckType.OFF_DUTY, date(2026, 3, 5), datetime(2026, 3, 5, 18, 40)),
            _record(CheckType.ON_DUTY, date(2026, 3, 4), datetime(2026, 3, 4, 8, 55)),
        ]

        days = build_daily_statuses(punches)

        self.assertEqual([day.work_date for day in days], [date(2026, 3, 3), date(2026, 3, 4), date(2026, 3, 5)])
        self.assertEqual(len(days[2].records), 2)


if __name__ == "__main__":
    unittest.main()
