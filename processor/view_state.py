"""Calendar view state: hydration, staleness reset and persistence.

A session's filters are read once per load from, in priority order, the
URL query string, the session cache and the defaults (today, 'day', no
search). If the cache was last written more than three hours ago, or never,
the defaults win regardless of the other sources. Every change is written
back to the cache together with a fresh timestamp, and the matching URL
query is rendered for a shallow URL update.
"""
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional

from processor import dates
from processor.models import FILTER_MODES, MODE_DAY, CalendarViewState
from storage.state_store import StateStore

logger = logging.getLogger(__name__)

DATE_KEY = 'agg_date'
VIEW_KEY = 'agg_view'
SEARCH_KEY = 'agg_search'
LAST_RESET_KEY = 'agg_last_reset'

STALE_AFTER = timedelta(hours=3)

UNINITIALIZED = 'uninitialized'
HYDRATING = 'hydrating'
ACTIVE = 'active'


def _first(value: Any) -> Any:
    """Take the first value of a repeated query parameter."""
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def is_filter_mode(value: Any) -> bool:
    return isinstance(value, str) and value in FILTER_MODES


class ViewStateManager:
    """Owns the CalendarViewState of one browsing session."""

    def __init__(self, store: StateStore, stale_after: timedelta = STALE_AFTER):
        """
        Args:
            store: Session cache implementing get/set
            stale_after: Age after which cached filters are discarded
        """
        self.store = store
        self.stale_after = stale_after
        self.phase = UNINITIALIZED
        self.state: Optional[CalendarViewState] = None

    def hydrate(
        self,
        query_params: Optional[Mapping[str, Any]] = None,
        now: Optional[datetime] = None
    ) -> CalendarViewState:
        """
        Build the initial state for a page load and persist it.

        Args:
            query_params: URL query parameters ('date', 'view', 'q')
            now: Current datetime; naive values are read as Mountain Time

        Returns:
            The active CalendarViewState
        """
        now = dates.as_reference_time(now or dates.now())
        query_params = query_params or {}
        self.phase = HYDRATING

        if self.is_stale(now):
            logger.info("Cached calendar state is stale; resetting to defaults")
            state = self.defaults(now)
        else:
            state = CalendarViewState(
                selected_date=self._resolve_date(query_params, now),
                filter_mode=self._resolve_mode(query_params),
                search_query=self._resolve_query(query_params)
            )

        self.state = state
        self.phase = ACTIVE
        self.persist(state, now)
        return state

    def is_stale(self, now: datetime) -> bool:
        """
        Check whether the cached state is missing or too old to reuse.

        Args:
            now: Current datetime; naive values are read as Mountain Time

        Returns:
            True if the state must be reset to defaults
        """
        now = dates.as_reference_time(now)
        stamp = self.store.get(LAST_RESET_KEY)
        if not stamp:
            return True

        try:
            stamped_at = datetime.fromisoformat(stamp)
        except ValueError:
            logger.warning(f"Ignoring malformed calendar state timestamp: {stamp!r}")
            return True

        if stamped_at.tzinfo is None:
            stamped_at = stamped_at.replace(tzinfo=dates.REFERENCE_TZ)

        return now - stamped_at > self.stale_after

    def defaults(self, now: datetime) -> CalendarViewState:
        return CalendarViewState(
            selected_date=dates.as_reference_time(now).date(),
            filter_mode=MODE_DAY,
            search_query=''
        )

    def _resolve_date(self, query_params: Mapping[str, Any], now: datetime):
        from_url = dates.parse_iso_date(_first(query_params.get('date')))
        if from_url:
            return from_url

        cached = dates.parse_iso_date(self.store.get(DATE_KEY))
        if cached:
            return cached

        return dates.as_reference_time(now).date()

    def _resolve_mode(self, query_params: Mapping[str, Any]) -> str:
        from_url = _first(query_params.get('view'))
        if is_filter_mode(from_url):
            return from_url

        cached = self.store.get(VIEW_KEY)
        if is_filter_mode(cached):
            return cached

        return MODE_DAY

    def _resolve_query(self, query_params: Mapping[str, Any]) -> str:
        from_url = _first(query_params.get('q'))
        if isinstance(from_url, str):
            return from_url

        return self.store.get(SEARCH_KEY) or ''

    def update(
        self,
        selected_date=None,
        filter_mode: Optional[str] = None,
        search_query: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> CalendarViewState:
        """
        Apply a user interaction and persist the resulting state.

        Args:
            selected_date: New anchor date, if changed
            filter_mode: New view mode, if changed
            search_query: New search text, if changed
            now: Current datetime; naive values are read as Mountain Time

        Returns:
            The new active state

        Raises:
            RuntimeError: If the state has not been hydrated yet
            ValueError: If filter_mode is not a supported mode
        """
        if self.phase != ACTIVE:
            raise RuntimeError("Calendar state must be hydrated before it is updated")
        if filter_mode is not None and not is_filter_mode(filter_mode):
            raise ValueError(f"Unsupported filter mode: {filter_mode!r}")

        changes = {}
        if selected_date is not None:
            changes['selected_date'] = selected_date
        if filter_mode is not None:
            changes['filter_mode'] = filter_mode
        if search_query is not None:
            changes['search_query'] = search_query

        self.state = replace(self.state, **changes)
        self.persist(self.state, dates.as_reference_time(now or dates.now()))
        return self.state

    def persist(self, state: CalendarViewState, now: datetime) -> None:
        """Write the state and a fresh timestamp to the session cache."""
        self.store.set_many({
            DATE_KEY: state.selected_date.isoformat(),
            VIEW_KEY: state.filter_mode,
            SEARCH_KEY: state.search_query,
            LAST_RESET_KEY: dates.as_reference_time(now).isoformat(),
        })

    def to_query_params(
        self,
        existing: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Render the URL query for a shallow update of the current page.

        Unrelated parameters already in the URL are kept; an empty search
        drops the 'q' parameter.

        Args:
            existing: Query parameters currently in the URL

        Returns:
            New query parameter mapping
        """
        if self.state is None:
            raise RuntimeError("Calendar state has not been hydrated")

        params = dict(existing or {})
        params['date'] = self.state.selected_date.isoformat()
        params['view'] = self.state.filter_mode
        if self.state.search_query:
            params['q'] = self.state.search_query
        else:
            params.pop('q', None)
        return params
