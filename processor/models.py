"""Data models for the live-music calendar."""
from dataclasses import dataclass
from datetime import date
from typing import Optional


FREQUENCY_NONE = 'none'
FREQUENCY_WEEKLY = 'weekly'
FREQUENCY_MONTHLY = 'monthly'
FREQUENCIES = (FREQUENCY_NONE, FREQUENCY_WEEKLY, FREQUENCY_MONTHLY)

MODE_DAY = 'day'
MODE_WEEK = 'week'
MODE_ALL = 'all'
FILTER_MODES = (MODE_DAY, MODE_WEEK, MODE_ALL)


@dataclass
class Event:
    """Approved event as published by the events backend."""
    id: Optional[int]
    title: str
    date: str
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    venue_name: str = ''
    location: str = ''
    genre: str = ''
    description: str = ''
    slug: Optional[str] = None
    is_approved: bool = False

    def to_dict(self) -> dict:
        """Serialize the event for a JSON response."""
        return {
            'id': self.id,
            'title': self.title,
            'date': self.date,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'venue_name': self.venue_name,
            'location': self.location,
            'genre': self.genre,
            'description': self.description,
            'slug': self.slug,
            'is_approved': self.is_approved,
        }


@dataclass
class RecurrencePlan:
    """Recurrence requested alongside an event submission."""
    start_date: date
    frequency: str = FREQUENCY_NONE
    count: int = 1


@dataclass
class CalendarViewState:
    """Calendar filters for one browsing session."""
    selected_date: date
    filter_mode: str = MODE_DAY
    search_query: str = ''

    def to_dict(self) -> dict:
        return {
            'date': self.selected_date.isoformat(),
            'view': self.filter_mode,
            'q': self.search_query,
        }

