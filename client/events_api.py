"""HTTP client for the events backend."""
import logging
import time
from typing import Any, Dict, List

import requests

logger = logging.getLogger(__name__)


class EventsAPIError(Exception):
    """Raised when the backend returns a payload we cannot use."""


class EventsAPIClient:
    """Client for the backend's ``/api/events`` endpoint."""

    EVENTS_PATH = '/api/events'
    MAX_RETRIES = 3
    BASE_DELAY = 1  # seconds

    def __init__(self, base_url: str, timeout: int = 30):
        """
        Initialize the events client.

        Args:
            base_url: Backend root URL, e.g. https://api.example.com
            timeout: HTTP request timeout in seconds (default: 30)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

    def fetch_events(self) -> List[Dict[str, Any]]:
        """
        Fetch all event records from the backend.

        Returns:
            List of raw event objects, approved or not

        Raises:
            requests.RequestException: If all retry attempts fail
            EventsAPIError: If the response body is not a JSON list
        """
        url = f"{self.base_url}{self.EVENTS_PATH}"
        logger.info(f"Fetching events from {url}")

        response = self._get_with_retry(url)

        try:
            payload = response.json()
        except ValueError as e:
            raise EventsAPIError(f"Events response is not valid JSON: {e}") from e

        if not isinstance(payload, list):
            raise EventsAPIError(
                f"Expected a list of events, got {type(payload).__name__}"
            )

        logger.info(f"Successfully fetched {len(payload)} events")
        return payload

    def _get_with_retry(self, url: str) -> requests.Response:
        """
        GET a URL with exponential backoff retry logic.

        Args:
            url: Absolute URL

        Returns:
            Successful response

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        for attempt in range(self.MAX_RETRIES):
            try:
                logger.info(f"Requesting events (attempt {attempt + 1}/{self.MAX_RETRIES})")
                response = requests.get(
                    url,
                    headers={'Accept': 'application/json'},
                    timeout=self.timeout
                )
                response.raise_for_status()
                return response

            except requests.RequestException as e:
                if attempt < self.MAX_RETRIES - 1:
                    # Calculate exponential backoff delay
                    delay = self.BASE_DELAY * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.MAX_RETRIES}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.MAX_RETRIES} retry attempts failed. Last error: {e}"
                    )
                    raise
