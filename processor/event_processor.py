"""Event processor for validating and normalizing backend event records."""
import logging
from typing import Any, Dict, List, Optional

from processor import dates
from processor.models import Event

logger = logging.getLogger(__name__)


class EventProcessor:
    """Validates raw ``/api/events`` records once, at ingestion."""

    MAX_TITLE_LENGTH = 200
    MAX_DESCRIPTION_LENGTH = 2000

    def process_events(self, raw_events: List[Dict[str, Any]]) -> List[Event]:
        """
        Process and validate raw event records.

        Unapproved events and records that fail validation are dropped;
        processing always continues with the remaining records.

        Args:
            raw_events: List of JSON objects from the events backend

        Returns:
            List of validated Event objects, in input order
        """
        processed_events = []
        unapproved = 0

        for raw_event in raw_events:
            try:
                if not isinstance(raw_event, dict):
                    logger.warning(
                        f"Skipping event record of type {type(raw_event).__name__}"
                    )
                    continue
                if not raw_event.get('is_approved'):
                    unapproved += 1
                    continue
                processed_event = self._process_single_event(raw_event)
                if processed_event:
                    processed_events.append(processed_event)
            except (TypeError, ValueError) as e:
                logger.warning(
                    f"Failed to process event '{raw_event.get('title')}': {e}"
                )
                continue

        logger.info(
            f"Processed {len(processed_events)} valid events out of "
            f"{len(raw_events)} total events ({unapproved} awaiting approval)"
        )
        return processed_events

    def _process_single_event(self, raw_event: Dict[str, Any]) -> Optional[Event]:
        """
        Process a single approved event record.

        Args:
            raw_event: JSON object for one event

        Returns:
            Event object or None if validation fails
        """
        # Validate required fields
        if not self._validate_required_fields(raw_event):
            return None

        title = str(raw_event['title']).strip()

        # Normalize date to ISO 8601 format
        normalized_date = self._normalize_date(raw_event['date'])
        if not normalized_date:
            logger.warning(
                f"Invalid date format for event '{title}': {raw_event['date']}"
            )
            return None

        # Times are optional; unparseable ones are dropped
        start_time = self._normalize_time(raw_event.get('start_time'))
        end_time = self._normalize_time(raw_event.get('end_time'))
        if raw_event.get('start_time') and start_time is None:
            logger.warning(
                f"Invalid start time format for event '{title}': "
                f"{raw_event.get('start_time')}"
            )

        event_id = raw_event.get('id')

        return Event(
            id=int(event_id) if event_id is not None else None,
            title=title[:self.MAX_TITLE_LENGTH],
            date=normalized_date,
            start_time=start_time,
            end_time=end_time,
            venue_name=self._text(raw_event.get('venue_name')),
            location=self._text(raw_event.get('location')),
            genre=self._text(raw_event.get('genre')),
            description=self._text(
                raw_event.get('description')
            )[:self.MAX_DESCRIPTION_LENGTH],
            slug=raw_event.get('slug'),
            is_approved=bool(raw_event.get('is_approved'))
        )

    def parse_submission(self, raw_event: Dict[str, Any]) -> Optional[Event]:
        """
        Validate a submitted event that has not been reviewed yet.

        Args:
            raw_event: JSON object from the submission form

        Returns:
            Event object, unapproved unless the record says otherwise, or
            None if validation fails
        """
        try:
            return self._process_single_event(raw_event)
        except (TypeError, ValueError) as e:
            logger.warning(
                f"Failed to process submitted event '{raw_event.get('title')}': {e}"
            )
            return None

    def _validate_required_fields(self, raw_event: Dict[str, Any]) -> bool:
        """
        Validate that required fields are present and non-empty.

        Args:
            raw_event: Event record to validate

        Returns:
            True if valid, False otherwise
        """
        title = raw_event.get('title')
        if not isinstance(title, str) or not title.strip():
            logger.warning("Event missing required field: title")
            return False

        event_date = raw_event.get('date')
        if not isinstance(event_date, str) or not event_date.strip():
            logger.warning(f"Event '{title}' missing required field: date")
            return False

        return True

    def _normalize_date(self, date_str: str) -> Optional[str]:
        """
        Normalize date to ISO 8601 format (YYYY-MM-DD).

        Args:
            date_str: Date string in various formats

        Returns:
            ISO 8601 formatted date string or None if parsing fails
        """
        event_date = dates.parse_event_date(date_str)
        if event_date is None:
            return None
        return event_date.isoformat()

    def _normalize_time(self, time_str: Optional[str]) -> Optional[str]:
        """
        Normalize time to 24-hour format (HH:MM).

        Args:
            time_str: Time string in various formats

        Returns:
            24-hour formatted time string or None if missing or unparseable
        """
        clock = dates.parse_clock_time(time_str)
        if clock is None:
            return None
        return clock.strftime('%H:%M')

    @staticmethod
    def _text(value: Any) -> str:
        if value is None:
            return ''
        return str(value).strip()

    def sort_events(self, events: List[Event]) -> List[Event]:
        """
        Sort events ascending by date, then start time.

        Events without a start time sort first within their day. Events
        whose date cannot be parsed keep their relative order at the end.

        Args:
            events: Events to sort (not modified)

        Returns:
            New sorted list
        """
        def sort_key(event: Event):
            starts_at = dates.build_event_datetime(event.date, event.start_time)
            if starts_at is None:
                return (1,)
            return (0, starts_at)

        return sorted(events, key=sort_key)
