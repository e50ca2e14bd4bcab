"""Calendar filtering by date window and free-text search."""
import logging
from datetime import date, timedelta
from typing import Iterable, List, Optional

from processor import dates
from processor.models import MODE_ALL, MODE_DAY, MODE_WEEK, Event

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ('title', 'genre', 'venue_name', 'location')
MAX_RECOMMENDATIONS = 10


class CalendarDateFilter:
    """Selects the events to display for a calendar view."""

    WEEK_LENGTH = timedelta(days=7)

    def filter(
        self,
        events: List[Event],
        reference_date: date,
        mode: str,
        query: str = '',
        today: Optional[date] = None
    ) -> List[Event]:
        """
        Filter events for display, preserving input order.

        Args:
            events: Events to filter (not modified)
            reference_date: Day the 'day' and 'week' views are anchored to
            mode: 'day', 'week' or 'all'
            query: Case-insensitive substring matched against title, genre,
                venue and location; empty matches everything
            today: Current Mountain Time date, for the 'all' view

        Returns:
            Events passing both the text and the date predicate

        Raises:
            ValueError: If mode is not a supported filter mode
        """
        if mode not in (MODE_DAY, MODE_WEEK, MODE_ALL):
            raise ValueError(f"Unsupported filter mode: {mode!r}")

        if today is None:
            today = dates.today()
        needle = (query or '').lower()

        matched = []
        for event in events:
            event_date = dates.parse_event_date(event.date)
            if event_date is None:
                logger.warning(
                    f"Skipping event '{event.title}' with unparseable date: "
                    f"{event.date!r}"
                )
                continue

            if not self._matches_text(event, needle):
                continue
            if not self._matches_date(event_date, reference_date, mode, today):
                continue

            matched.append(event)

        logger.debug(
            f"Filtered {len(events)} events to {len(matched)} "
            f"(mode={mode}, date={reference_date}, query={needle!r})"
        )
        return matched

    def _matches_text(self, event: Event, needle: str) -> bool:
        if not needle:
            return True
        for field_name in SEARCH_FIELDS:
            value = getattr(event, field_name, None)
            if value and needle in str(value).lower():
                return True
        return False

    def _matches_date(
        self,
        event_date: date,
        reference_date: date,
        mode: str,
        today: date
    ) -> bool:
        if mode == MODE_DAY:
            return event_date == reference_date
        if mode == MODE_WEEK:
            return reference_date <= event_date < reference_date + self.WEEK_LENGTH
        return event_date >= today

    def recommend(
        self,
        events: List[Event],
        genres: Iterable[str],
        limit: int = MAX_RECOMMENDATIONS,
        today: Optional[date] = None
    ) -> List[Event]:
        """
        Pick upcoming events in a listener's favourite genres.

        Args:
            events: Candidate events, normally pre-sorted by date
            genres: Genres the listener follows
            limit: Maximum number of events returned
            today: Current Mountain Time date

        Returns:
            Up to ``limit`` events on or after today, in input order
        """
        wanted = {genre.strip().lower() for genre in genres if genre and genre.strip()}
        if not wanted:
            return []

        upcoming = self.filter(events, today or dates.today(), MODE_ALL, today=today)
        picks = [
            event for event in upcoming
            if event.genre and event.genre.strip().lower() in wanted
        ]
        return picks[:limit]
