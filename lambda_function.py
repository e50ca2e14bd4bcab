"""AWS Lambda handler for the live-music calendar API."""
import json
import logging
import os
import time
from typing import Any, Dict, List, Optional

from client.events_api import EventsAPIClient
from processor import dates
from processor.calendar_filter import MAX_RECOMMENDATIONS, CalendarDateFilter
from processor.event_processor import EventProcessor
from processor.models import FREQUENCIES, FREQUENCY_NONE, RecurrencePlan
from processor.recurrence import RecurrenceGenerator
from processor.view_state import ViewStateManager
from storage.state_store import DynamoDBStateStore


# Attributes every LogRecord carries; anything else came in through extra=
RESERVED_LOG_ATTRIBUTES = frozenset(
    vars(logging.LogRecord('', logging.INFO, '', 0, '', (), None))
) | {'message', 'asctime'}


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        # Fields passed through extra=
        for key, value in record.__dict__.items():
            if key not in RESERVED_LOG_ATTRIBUTES and not key.startswith('_'):
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Create new handler with JSON formatter
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    # Set log level
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # botocore logs every request at DEBUG
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': {'Content-Type': 'application/json'},
        'body': json.dumps(body)
    }


def _session_id(event: Dict[str, Any]) -> str:
    headers = event.get('headers') or {}
    for name, value in headers.items():
        if name.lower() == 'x-session-id' and value:
            return value
    return 'anonymous'


def handle_calendar(event: Dict[str, Any], config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Serve the filtered calendar listing for one session.

    Args:
        event: API Gateway proxy event
        config: Settings read from the environment

    Returns:
        API Gateway proxy response
    """
    logger = logging.getLogger(__name__)
    query_params = event.get('queryStringParameters') or {}

    store = DynamoDBStateStore(
        table_name=config['state_table_name'],
        session_id=_session_id(event)
    )
    view_state = ViewStateManager(store)
    client = EventsAPIClient(
        base_url=config['events_api_url'],
        timeout=config['timeout_seconds']
    )
    processor = EventProcessor()
    calendar_filter = CalendarDateFilter()

    now = dates.now()
    state = view_state.hydrate(query_params, now=now)
    logger.info(
        "Calendar state hydrated",
        extra={'calendar_state': state.to_dict()}
    )

    # Fetch events from backend with error handling
    try:
        raw_events = client.fetch_events()
    except Exception as e:
        logger.error(
            f"Failed to fetch events from backend: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _response(502, {
            'message': 'Failed to fetch events',
            'error': str(e),
            'error_type': type(e).__name__,
            'state': state.to_dict(),
            'query': view_state.to_query_params(query_params)
        })

    events = processor.sort_events(processor.process_events(raw_events))
    visible = calendar_filter.filter(
        events,
        reference_date=state.selected_date,
        mode=state.filter_mode,
        query=state.search_query,
        today=now.date()
    )

    return _response(200, {
        'state': state.to_dict(),
        'query': view_state.to_query_params(query_params),
        'events': [e.to_dict() for e in visible],
        'total_events': len(events)
    })


def handle_recurrences(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Preview the occurrence dates of a recurring event submission.

    Args:
        event: API Gateway proxy event with a JSON body

    Returns:
        API Gateway proxy response
    """
    try:
        body = json.loads(event.get('body') or '{}')
    except ValueError:
        return _response(400, {'message': 'Request body must be JSON'})
    if not isinstance(body, dict):
        return _response(400, {'message': 'Request body must be a JSON object'})

    start_date = dates.parse_iso_date(body.get('date'))
    if start_date is None:
        return _response(400, {'message': 'date must be YYYY-MM-DD'})

    frequency = body.get('recurrence') or FREQUENCY_NONE
    if frequency not in FREQUENCIES:
        return _response(400, {
            'message': f"recurrence must be one of {', '.join(FREQUENCIES)}"
        })

    plan = RecurrencePlan(
        start_date=start_date,
        frequency=frequency,
        count=body.get('repeatCount', 1)
    )
    generator = RecurrenceGenerator()
    occurrences = generator.generate_for_plan(plan)
    result = {'dates': [occurrence.isoformat() for occurrence in occurrences]}

    # A full submission also gets one event per occurrence
    if 'title' in body:
        submitted = EventProcessor().parse_submission(body)
        if submitted is None:
            return _response(400, {'message': 'Submitted event is invalid'})
        result['events'] = [
            e.to_dict() for e in generator.expand_event(submitted, plan)
        ]

    return _response(200, result)


def _parse_genres(query_params: Dict[str, Any]) -> List[str]:
    raw = query_params.get('genres') or ''
    if isinstance(raw, list):
        raw = ','.join(raw)
    return [genre.strip() for genre in raw.split(',') if genre.strip()]


def handle_recommendations(event: Dict[str, Any], config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Serve upcoming events in a listener's genres ("music picks").

    Args:
        event: API Gateway proxy event with ``genres`` (comma-separated)
            and an optional ``limit`` query parameter
        config: Settings read from the environment

    Returns:
        API Gateway proxy response
    """
    logger = logging.getLogger(__name__)
    query_params = event.get('queryStringParameters') or {}

    genres = _parse_genres(query_params)
    if not genres:
        return _response(400, {'message': 'genres is required'})

    try:
        limit = int(query_params.get('limit', MAX_RECOMMENDATIONS))
    except (TypeError, ValueError):
        return _response(400, {'message': 'limit must be an integer'})
    if limit < 1:
        return _response(400, {'message': 'limit must be positive'})

    client = EventsAPIClient(
        base_url=config['events_api_url'],
        timeout=config['timeout_seconds']
    )
    processor = EventProcessor()

    try:
        raw_events = client.fetch_events()
    except Exception as e:
        logger.error(
            f"Failed to fetch events from backend: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _response(502, {
            'message': 'Failed to fetch events',
            'error': str(e),
            'error_type': type(e).__name__
        })

    events = processor.sort_events(processor.process_events(raw_events))
    picks = CalendarDateFilter().recommend(
        events,
        genres,
        limit=limit,
        today=dates.today()
    )

    return _response(200, {
        'genres': genres,
        'events': [e.to_dict() for e in picks]
    })


def _route(event: Dict[str, Any]) -> Optional[str]:
    method = (event.get('httpMethod') or 'GET').upper()
    path = (event.get('path') or '/').rstrip('/') or '/'
    if method == 'GET' and path in ('/', '/calendar'):
        return 'calendar'
    if method == 'GET' and path == '/recommendations':
        return 'recommendations'
    if method == 'POST' and path == '/recurrences':
        return 'recurrences'
    return None


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for the calendar API.

    Args:
        event: API Gateway proxy event
        context: Lambda context object

    Returns:
        Response dict with statusCode, headers and JSON body
    """
    # Read configuration from environment variables
    config = {
        'events_api_url': os.environ.get('EVENTS_API_URL', 'http://localhost:5000'),
        'state_table_name': os.environ.get('STATE_TABLE_NAME', 'groove-calendar-state'),
        'timeout_seconds': int(os.environ.get('TIMEOUT_SECONDS', '30')),
    }
    log_level = os.environ.get('LOG_LEVEL', 'INFO')

    # Initialize logging
    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    route = _route(event)
    logger.info(
        "Lambda execution started",
        extra={'route': route, 'path': event.get('path')}
    )

    if route is None:
        return _response(404, {'message': 'Not found'})

    try:
        if route == 'recurrences':
            response = handle_recurrences(event)
        elif route == 'recommendations':
            response = handle_recommendations(event, config)
        else:
            response = handle_calendar(event, config)

        logger.info(
            "Lambda execution completed",
            extra={
                'route': route,
                'status_code': response['statusCode'],
                'duration_seconds': round(time.time() - start_time, 2)
            }
        )
        return response

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return _response(500, {
            'message': 'Request failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
