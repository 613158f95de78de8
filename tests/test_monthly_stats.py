from dataclasses import replace
from datetime import date, datetime, timedelta
import unittest
from unittest.mock import patch
from zoneinfo import ZoneInfo

from attendance_engine.domain import (
    CheckType,
    DurationUnit,
    EmployeeMonth,
    LeaveApproval,
    PunchRecord,
    SourceType,
    TimeResult,
)
from attendance_engine.services import monthly_stats
from attendance_engine.services.ingestion import approval_from_raw
from attendance_engine.services.holiday_calendar import HolidayCalendar
from attendance_engine.services.monthly_stats import (
    FLAG_APPROVAL_NOT_FOUND,
    FLAG_EVALUATION_FAILED,
    EmployeeMonthlyStats,
    EvaluationContext,
    actual_attendance_days,
    evaluate_company_month,
    evaluate_employee_month,
    format_leave_display,
    should_attendance_days,
)
from attendance_engine.services.rule_config import AttendanceDaysRules, default_rule_config

CONTEXT = EvaluationContext(year=2026, month=3, as_of=date(2026, 3, 31))


def _at(day: date, hour: int | None, minute: int = 0) -> datetime | None:
    if hour is None:
        return None
    return datetime(day.year, day.month, day.day, hour, minute)


def _on(
    day: date,
    hour: int | None,
    minute: int = 0,
    result: TimeResult = TimeResult.NORMAL,
    proc_inst_id: str | None = None,
) -> PunchRecord:
    return PunchRecord(
        check_type=CheckType.ON_DUTY,
        work_date=day,
        user_check_time=_at(day, hour, minute),
        base_check_time=_at(day, 9),
        time_result=result if hour is not None else TimeResult.NOT_SIGNED,
        proc_inst_id=proc_inst_id,
    )


def _off(
    day: date,
    hour: int | None,
    minute: int = 0,
    *,
    source: SourceType = SourceType.MACHINE,
    proc_inst_id: str | None = None,
) -> PunchRecord:
    return PunchRecord(
        check_type=CheckType.OFF_DUTY,
        work_date=day,
        user_check_time=_at(day, hour, minute),
        base_check_time=_at(day, 18, 30),
        time_result=TimeResult.NORMAL if hour is not None else TimeResult.NOT_SIGNED,
        source_type=source,
        proc_inst_id=proc_inst_id,
    )


def _march_workdays(start: int = 1) -> list[date]:
    first = date(2026, 3, start)
    days = [first + timedelta(days=offset) for offset in range(0, 32 - start)]
    return [day for day in days if day.month == 3 and day.weekday() < 5]


def _normal_month(*, skip: set[date] | None = None, start: int = 1) -> list[PunchRecord]:
    punches: list[PunchRecord] = []
    for day in _march_workdays(start):
        if skip and day in skip:
            continue
        punches.append(_on(day, 8, 55))
        punches.append(_off(day, 18, 30))
    return punches


def _day_leave(proc_inst_id: str, leave_type: str, first: date, last: date, days: float) -> LeaveApproval:
    return LeaveApproval(
        proc_inst_id=proc_inst_id,
        leave_type=leave_type,
        start=datetime.combine(first, datetime.min.time()),
        end=datetime.combine(last, datetime.min.time()),
        duration=days,
        duration_unit=DurationUnit.DAY,
    )


class EmployeeMonthTests(unittest.TestCase):
    def setUp(self) -> None:
        self.config = default_rule_config("eyewind")
        self.calendar = HolidayCalendar()

    def _evaluate(self, employee: EmployeeMonth) -> EmployeeMonthlyStats:
        return evaluate_employee_month(employee, config=self.config, calendar=self.calendar, context=CONTEXT)

    def test_clean_month_earns_full_attendance(self) -> None:
        stats = self._evaluate(EmployeeMonth(user_id="u1", punches=tuple(_normal_month())))

        self.assertEqual(stats.late_count, 0)
        self.assertEqual(stats.missing, 0)
        self.assertEqual(stats.should_attendance_days, 22)
        self.assertEqual(stats.actual_attendance_days, 22)
        self.assertEqual(stats.performance_penalty, 0)
        self.assertEqual(stats.overtime_total_minutes, 0)
        self.assertTrue(stats.is_full_attendance)
        self.assertEqual(stats.full_attendance_bonus, 200)
        self.assertEqual(stats.flags, [])

    def test_exemption_quota_carries_across_days(self) -> None:
        late_days = {
            date(2026, 3, 3): (9, 11),
            date(2026, 3, 4): (9, 21),
            date(2026, 3, 5): (9, 6),
            date(2026, 3, 6): (9, 31),
        }
        punches = _normal_month(skip=set(late_days))
        for day, (hour, minute) in late_days.items():
            punches.append(_on(day, hour, minute, TimeResult.LATE))
            punches.append(_off(day, 18, 30))

        stats = self._evaluate(EmployeeMonth(user_id="u1", punches=tuple(punches)))

        # An 18:30 checkout the day before moves the threshold to 09:01.
        self.assertEqual(stats.late_count, 4)
        self.assertEqual(stats.late_minutes, 65)
        self.assertEqual(stats.exempted_late_minutes, 35)
        self.assertEqual(stats.exemption_used, 3)
        self.assertEqual(stats.performance_penalty, 200)
        self.assertFalse(stats.is_full_attendance)
        self.assertEqual(stats.full_attendance_bonus, 0)

    def test_late_checkout_grants_grace_and_overtime(self) -> None:
        punches = _normal_month(skip={date(2026, 3, 9), date(2026, 3, 10)})
        punches += [
            _on(date(2026, 3, 9), 8, 50),
            _off(date(2026, 3, 9), 21, 0),
            _on(date(2026, 3, 10), 9, 40, TimeResult.LATE),
            _off(date(2026, 3, 10), 18, 30),
        ]

        stats = self._evaluate(EmployeeMonth(user_id="u1", punches=tuple(punches)))

        self.assertEqual(stats.late_minutes, 10)
        self.assertEqual(stats.exempted_late_minutes, 0)
        self.assertEqual(stats.exemption_used, 1)
        self.assertEqual(stats.overtime_total_minutes, 120)
        self.assertEqual(stats.overtime_checkpoints["19_30"].minutes, 90)
        self.assertEqual(stats.overtime_checkpoints["20_30"].count, 1)

    def test_first_day_on_job_is_not_late_and_days_start_at_hire(self) -> None:
        hired = date(2026, 3, 16)
        punches = _normal_month(start=17)
        punches += [_on(hired, 10, 0, TimeResult.LATE), _off(hired, 18, 30)]

        stats = self._evaluate(EmployeeMonth(user_id="u1", punches=tuple(punches), hired_on=hired))

        self.assertEqual(stats.late_count, 0)
        self.assertEqual(stats.should_attendance_days, 12)
        self.assertEqual(stats.actual_attendance_days, 12)

    def test_unsigned_day_is_absenteeism_and_two_missing_punches(self) -> None:
        punches = _normal_month(skip={date(2026, 3, 4), date(2026, 3, 5)})
        punches += [
            _on(date(2026, 3, 4), None),
            _off(date(2026, 3, 4), None),
            _on(date(2026, 3, 5), 8, 55),
            _off(date(2026, 3, 5), None),
        ]

        stats = self._evaluate(EmployeeMonth(user_id="u1", punches=tuple(punches)))

        self.assertEqual(stats.absenteeism, 1)
        self.assertEqual(stats.missing, 3)
        self.assertFalse(stats.is_full_attendance)

    def test_missing_checkout_today_is_not_counted_yet(self) -> None:
        punches = _normal_month(skip={date(2026, 3, 31)})
        punches += [_on(date(2026, 3, 31), 8, 55), _off(date(2026, 3, 31), None)]

        stats = self._evaluate(EmployeeMonth(user_id="u1", punches=tuple(punches)))

        self.assertEqual(stats.missing, 0)
        self.assertFalse(stats.is_full_attendance)

    def test_full_day_leave_covers_missing_punches(self) -> None:
        leave_day = date(2026, 3, 5)
        punches = _normal_month(skip={leave_day})
        punches += [_on(leave_day, None, proc_inst_id="p1"), _off(leave_day, None, proc_inst_id="p1")]
        approvals = {"p1": _day_leave("p1", "年假", leave_day, leave_day, 1)}

        stats = self._evaluate(EmployeeMonth(user_id="u1", punches=tuple(punches), approvals=approvals))

        self.assertEqual(stats.missing, 0)
        self.assertEqual(stats.absenteeism, 0)
        self.assertEqual(stats.leave_counts["annual"], 1)
        self.assertEqual(stats.leave_hours["annual"], 8)
        self.assertEqual(stats.leave_display, {"annual": "年假 8小时"})
        self.assertEqual(stats.actual_attendance_days, 21)
        self.assertFalse(stats.is_full_attendance)

    def test_leave_with_dropped_times_leaves_the_day_uncovered(self) -> None:
        day = date(2026, 3, 5)
        punches = _normal_month(skip={day})
        punches += [_on(day, None, proc_inst_id="p1"), _off(day, None, proc_inst_id="p1")]
        with self.assertLogs("attendance_engine.ingestion", level="WARNING"):
            approval = approval_from_raw(
                "p1",
                {"leaveType": "病假", "start": "2026-03-07", "end": "2026-03-05", "duration": 3, "durationUnit": "day"},
                tz=ZoneInfo("Asia/Shanghai"),
            )

        stats = self._evaluate(EmployeeMonth(user_id="u1", punches=tuple(punches), approvals={"p1": approval}))

        self.assertEqual(stats.leave_hours["sick"], 0)
        self.assertEqual(stats.leave_hours["seriousSick"], 0)
        self.assertEqual(stats.leave_display, {})
        self.assertEqual(stats.absenteeism, 1)
        self.assertEqual(stats.missing, 2)
        self.assertFalse(stats.is_full_attendance)

    def test_long_sick_leave_is_serious_sick(self) -> None:
        sick_days = [date(2026, 3, 10), date(2026, 3, 11), date(2026, 3, 12), date(2026, 3, 13)]
        punches = _normal_month(skip=set(sick_days))
        for day in sick_days:
            punches += [_on(day, None, proc_inst_id="p2"), _off(day, None, proc_inst_id="p2")]
        approvals = {"p2": _day_leave("p2", "病假", sick_days[0], sick_days[-1], 4)}

        stats = self._evaluate(EmployeeMonth(user_id="u1", punches=tuple(punches), approvals=approvals))

        self.assertEqual(stats.leave_counts["seriousSick"], 4)
        self.assertEqual(stats.leave_hours["seriousSick"], 32)
        self.assertEqual(stats.leave_counts["sick"], 0)
        self.assertEqual(stats.leave_display, {"seriousSick": "病假>24小时 32小时"})
        self.assertEqual(stats.actual_attendance_days, 18)

    def test_unknown_approval_reference_is_flagged(self) -> None:
        day = date(2026, 3, 5)
        punches = _normal_month(skip={day})
        punches += [_on(day, 8, 55), _off(day, 18, 30, source=SourceType.APPROVAL, proc_inst_id="gone")]

        stats = self._evaluate(EmployeeMonth(user_id="u1", punches=tuple(punches)))

        self.assertIn(FLAG_APPROVAL_NOT_FOUND, stats.flags)

    def test_punches_outside_month_are_ignored(self) -> None:
        punches = _normal_month()
        punches.append(_on(date(2026, 2, 27), 9, 45, TimeResult.LATE))

        stats = self._evaluate(EmployeeMonth(user_id="u1", punches=tuple(punches)))

        self.assertEqual(stats.late_count, 0)


class AttendanceDayTests(unittest.TestCase):
    def test_should_days_by_method(self) -> None:
        config = default_rule_config("eyewind")
        fixed = replace(
            config,
            attendance_days_rules=AttendanceDaysRules(
                should_attendance_calc_method="fixed",
                fixed_should_attendance_days=21,
            ),
        )
        without_holidays = replace(
            config,
            attendance_days_rules=AttendanceDaysRules(include_holidays_in_should=False),
        )

        self.assertEqual(should_attendance_days(config, total_workdays=20, holidays_count=2), 22)
        self.assertEqual(should_attendance_days(without_holidays, total_workdays=20, holidays_count=2), 20)
        self.assertEqual(should_attendance_days(fixed, total_workdays=20, holidays_count=2), 21)

    def test_each_leave_category_rounds_up_separately(self) -> None:
        stats = EmployeeMonthlyStats(user_id="u1", year=2026, month=3)
        stats.leave_hours["annual"] = 4
        stats.leave_hours["personal"] = 4
        stats.leave_hours["trip"] = 16

        self.assertEqual(actual_attendance_days(stats, workdays_elapsed=22, daily_hours=8), 20)

    def test_leave_display_uses_short_and_long_labels(self) -> None:
        config = default_rule_config("eyewind")

        self.assertEqual(format_leave_display("病假", 16, config), "病假<=24小时 16小时")
        self.assertEqual(format_leave_display("病假", 32, config), "病假>24小时 32小时")
        self.assertEqual(format_leave_display("事假", 4.5, config), "事假 4.5小时")


class CompanyBatchTests(unittest.TestCase):
    def test_one_failure_does_not_sink_the_batch(self) -> None:
        config = default_rule_config("eyewind")
        employees = [
            EmployeeMonth(user_id="a", punches=tuple(_normal_month())),
            EmployeeMonth(user_id="bad", punches=(), name="Broken"),
            EmployeeMonth(user_id="c", punches=tuple(_normal_month())),
        ]
        real_evaluate = monthly_stats.evaluate_employee_month

        def _evaluate(employee, **kwargs):  # type: ignore[no-untyped-def]
            if employee.user_id == "bad":
                raise RuntimeError("boom")
            return real_evaluate(employee, **kwargs)

        with patch("attendance_engine.services.monthly_stats.evaluate_employee_month", side_effect=_evaluate):
            with self.assertLogs("attendance_engine.monthly_stats", level="ERROR"):
                results = evaluate_company_month(
                    employees,
                    config=config,
                    calendar=HolidayCalendar(),
                    context=CONTEXT,
                    max_workers=2,
                )

        self.assertEqual([item.user_id for item in results], ["a", "bad", "c"])
        self.assertEqual(results[1].flags, [FLAG_EVALUATION_FAILED])
        self.assertEqual(results[1].name, "Broken")
        self.assertTrue(results[0].is_full_attendance)
        self.assertTrue(results[2].is_full_attendance)

    def test_employee_that_failed_ingestion_is_flagged_without_evaluation(self) -> None:
        employees = [
            EmployeeMonth(user_id="a", punches=tuple(_normal_month())),
            EmployeeMonth(user_id="bad", punches=(), name="Broken", ingestion_failed=True),
        ]

        with patch(
            "attendance_engine.services.monthly_stats.evaluate_employee_month",
            wraps=monthly_stats.evaluate_employee_month,
        ) as mock_evaluate:
            results = evaluate_company_month(
                employees,
                config=default_rule_config("eyewind"),
                calendar=HolidayCalendar(),
                context=CONTEXT,
            )

        self.assertEqual(mock_evaluate.call_count, 1)
        self.assertEqual([item.user_id for item in results], ["a", "bad"])
        self.assertEqual(results[0].flags, [])
        self.assertEqual(results[1].flags, [FLAG_EVALUATION_FAILED])
        self.assertEqual(results[1].name, "Broken")
        self.assertEqual(results[1].should_attendance_days, 0)

    def test_empty_batch(self) -> None:
        results = evaluate_company_month(
            [],
            config=default_rule_config("eyewind"),
            calendar=HolidayCalendar(),
            context=CONTEXT,
        )

        self.assertEqual(results, [])

    def test_company_swap_days_change_the_calendar(self) -> None:
        config = replace(default_rule_config("eyewind"), swap_days={date(2026, 3, 2): False})
        punches = [p for p in _normal_month() if p.work_date != date(2026, 3, 2)]

        stats = evaluate_employee_month(
            EmployeeMonth(user_id="u1", punches=tuple(punches)),
            config=config,
            calendar=HolidayCalendar(),
            context=CONTEXT,
        )

        self.assertEqual(stats.should_attendance_days, 21)
        self.assertTrue(stats.is_full_attendance)


if __name__ == "__main__":
    unittest.main()
