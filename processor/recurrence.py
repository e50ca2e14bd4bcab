"""Recurring-event date generation."""
import calendar
import logging
from dataclasses import replace
from datetime import date, timedelta
from typing import List

from processor.models import (
    FREQUENCY_MONTHLY,
    FREQUENCY_NONE,
    FREQUENCY_WEEKLY,
    Event,
    RecurrencePlan,
)

logger = logging.getLogger(__name__)

MIN_REPEAT_COUNT = 1
MAX_REPEAT_COUNT = 4


def clamp_repeat_count(value) -> int:
    """
    Clamp a submitted repeat count to the supported range.

    Args:
        value: Raw ``repeatCount`` (int, numeric string or None)

    Returns:
        Integer in [1, 4]; non-numeric input counts as 1
    """
    try:
        count = int(value)
    except (TypeError, ValueError):
        return MIN_REPEAT_COUNT
    return max(MIN_REPEAT_COUNT, min(MAX_REPEAT_COUNT, count))


def week_of_month(day: date) -> int:
    """Which occurrence of its weekday ``day`` is within its month (1-5)."""
    return (day.day - 1) // 7 + 1


def nth_weekday_of_month(year: int, month: int, weekday: int, n: int):
    """
    Find the nth occurrence of a weekday in a month.

    Args:
        year: Calendar year
        month: Calendar month (1-12)
        weekday: Weekday as returned by ``date.weekday()``
        n: Occurrence number, 1-based

    Returns:
        date object, or None if the month has fewer than n such weekdays
    """
    seen = 0
    for day_number in range(1, calendar.monthrange(year, month)[1] + 1):
        candidate = date(year, month, day_number)
        if candidate.weekday() == weekday:
            seen += 1
            if seen == n:
                return candidate
    return None


class RecurrenceGenerator:
    """Expands a start date into the occurrence dates of a recurrence."""

    def generate(self, start_date: date, frequency: str, count: int) -> List[date]:
        """
        Generate occurrence dates, starting with ``start_date``.

        Weekly recurrence always yields ``count`` dates seven days apart.
        Monthly recurrence keeps "the Nth weekday W of the month" of
        ``start_date``; a month without an Nth W is skipped, so fewer than
        ``count`` dates may come back.

        Args:
            start_date: First occurrence
            frequency: 'none', 'weekly' or 'monthly'
            count: Number of target occurrences, already clamped by the caller

        Returns:
            Ascending list of dates

        Raises:
            ValueError: If frequency is not one of the supported values
        """
        if frequency == FREQUENCY_NONE:
            return [start_date]
        if frequency == FREQUENCY_WEEKLY:
            return self._weekly(start_date, count)
        if frequency == FREQUENCY_MONTHLY:
            return self._monthly(start_date, count)
        raise ValueError(f"Unsupported recurrence frequency: {frequency!r}")

    def _weekly(self, start_date: date, count: int) -> List[date]:
        return [start_date + timedelta(weeks=i) for i in range(count)]

    def _monthly(self, start_date: date, count: int) -> List[date]:
        weekday = start_date.weekday()
        n = week_of_month(start_date)
        occurrences = []

        for offset in range(count):
            # Month arithmetic over a zero-based month index
            month_index = start_date.month - 1 + offset
            year = start_date.year + month_index // 12
            month = month_index % 12 + 1

            occurrence = nth_weekday_of_month(year, month, weekday, n)
            if occurrence is None:
                logger.info(
                    f"No occurrence {n} of weekday {weekday} in {year}-{month:02d}; "
                    "skipping that month"
                )
                continue
            occurrences.append(occurrence)

        return occurrences

    def generate_for_plan(self, plan: RecurrencePlan) -> List[date]:
        """Generate the dates for a RecurrencePlan, clamping its count."""
        return self.generate(
            plan.start_date,
            plan.frequency,
            clamp_repeat_count(plan.count)
        )

    def expand_event(self, event: Event, plan: RecurrencePlan) -> List[Event]:
        """
        Produce one event per occurrence of ``plan``.

        The submitted event is not modified. Each occurrence is a copy with
        its ``date`` replaced; only the first keeps the backend id.

        Args:
            event: Submitted event
            plan: Recurrence requested for it

        Returns:
            List of events, one per generated date
        """
        occurrence_dates = self.generate_for_plan(plan)
        logger.info(
            f"Expanding '{event.title}' into {len(occurrence_dates)} "
            f"{plan.frequency} occurrences"
        )
        return [
            replace(
                event,
                id=event.id if occurrence == plan.start_date else None,
                date=occurrence.isoformat()
            )
            for occurrence in occurrence_dates
        ]
