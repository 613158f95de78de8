from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass, field
from datetime import date


@dataclass(frozen=True, slots=True)
class WorkdaySummary:
    total_workdays: int
    workdays_elapsed: int
    holidays_count: int


@dataclass(frozen=True)
class HolidayCalendar:
    """Statutory holiday calendar keyed by ``MM-DD``.

    ``True`` marks a statutory non-work day, ``False`` a compensatory workday
    (a weekend that is worked). Days without an entry follow the weekday:
    Monday to Friday work, Saturday and Sunday off. ``overrides`` carries the
    company's own swap days by full date and wins over both.
    """

    entries: dict[str, bool] = field(default_factory=dict)
    overrides: dict[date, bool] = field(default_factory=dict)

    def with_overrides(self, swap_days: dict[date, bool]) -> HolidayCalendar:
        if not swap_days:
            return self
        merged = dict(self.overrides)
        merged.update(swap_days)
        return HolidayCalendar(entries=self.entries, overrides=merged)

    def _entry(self, day: date) -> bool | None:
        return self.entries.get(f"{day.month:02d}-{day.day:02d}")

    def is_workday(self, day: date) -> bool:
        if day in self.overrides:
            return self.overrides[day]
        entry = self._entry(day)
        if entry is False:
            return True
        if entry is True:
            return False
        return day.weekday() < 5

    def is_statutory_holiday(self, day: date) -> bool:
        """A holiday that falls on a weekday; weekend holidays cost nothing extra."""
        if day in self.overrides:
            return False
        return self._entry(day) is True and day.weekday() < 5

    def first_workday(self, year: int, month: int) -> date | None:
        for day_number in range(1, monthrange(year, month)[1] + 1):
            day = date(year, month, day_number)
            if self.is_workday(day):
                return day
        return None

    def last_workday(self, year: int, month: int) -> date | None:
        for day_number in range(monthrange(year, month)[1], 0, -1):
            day = date(year, month, day_number)
            if self.is_workday(day):
                return day
        return None

    def workday_summary(
        self,
        year: int,
        month: int,
        *,
        as_of: date,
        hired_on: date | None = None,
    ) -> WorkdaySummary:
        total_workdays = 0
        workdays_elapsed = 0
        holidays_count = 0
        for day_number in range(1, monthrange(year, month)[1] + 1):
            day = date(year, month, day_number)
            if hired_on is not None and day < hired_on:
                continue
            if self.is_workday(day):
                total_workdays += 1
                if day <= as_of:
                    workdays_elapsed += 1
            elif self.is_statutory_holiday(day):
                holidays_count += 1
        return WorkdaySummary(
            total_workdays=total_workdays,
            workdays_elapsed=workdays_elapsed,
            holidays_count=holidays_count,
        )
