"""Integration tests for Lambda handler."""
import json
import logging
import os
from datetime import date, timedelta
from unittest.mock import Mock, patch

import pytest

from lambda_function import JsonFormatter, lambda_handler, setup_logging
from processor.view_state import LAST_RESET_KEY, VIEW_KEY
from storage.state_store import InMemoryStateStore


@pytest.fixture
def mock_env():
    """Set up environment variables for testing."""
    env_vars = {
        'EVENTS_API_URL': 'https://backend.example.com',
        'STATE_TABLE_NAME': 'test-calendar-state',
        'LOG_LEVEL': 'INFO',
        'TIMEOUT_SECONDS': '15'
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


@pytest.fixture
def mock_context():
    """Create a mock Lambda context."""
    context = Mock()
    context.function_name = 'test-function'
    context.memory_limit_in_mb = 256
    context.aws_request_id = 'test-request-id'
    return context


@pytest.fixture
def raw_events():
    """Backend payload: two events today, one tomorrow, one pending, one broken."""
    return [
        {'id': 1, 'title': 'Jazz Night', 'date': '2024-03-10T00:00:00.000Z',
         'start_time': '21:00:00', 'genre': 'Jazz', 'venue_name': 'Dazzle',
         'location': 'Denver', 'is_approved': True},
        {'id': 2, 'title': 'Folk Matinee', 'date': '2024-03-10',
         'start_time': '14:00:00', 'genre': 'Folk', 'venue_name': 'Swallow Hill',
         'location': 'Denver', 'is_approved': True},
        {'id': 3, 'title': 'Jazz Brunch', 'date': '2024-03-11',
         'start_time': '10:00:00', 'genre': 'Jazz', 'venue_name': 'Nocturne',
         'location': 'Denver', 'is_approved': True},
        {'id': 4, 'title': 'Unreviewed Jazz', 'date': '2024-03-10',
         'is_approved': False},
        {'id': 5, 'title': 'Broken Date', 'date': 'soon', 'is_approved': True},
    ]


def calendar_request(params=None, session_id='session-1'):
    return {
        'httpMethod': 'GET',
        'path': '/calendar',
        'headers': {'X-Session-Id': session_id},
        'queryStringParameters': params
    }


class TestCalendarRoute:
    """Test cases for the calendar listing."""

    @patch('lambda_function.dates.now')
    @patch('lambda_function.EventsAPIClient')
    @patch('lambda_function.DynamoDBStateStore')
    def test_first_visit_shows_today(
        self,
        mock_store_class,
        mock_client_class,
        mock_now,
        mock_env,
        mock_context,
        raw_events,
        fixed_now
    ):
        """A session without cached state gets today's day view."""
        store = InMemoryStateStore()
        mock_store_class.return_value = store
        mock_client_class.return_value.fetch_events.return_value = raw_events
        mock_now.return_value = fixed_now

        response = lambda_handler(
            calendar_request({'date': '2024-03-11', 'view': 'all'}), mock_context
        )

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['state'] == {'date': '2024-03-10', 'view': 'day', 'q': ''}
        assert body['query'] == {'date': '2024-03-10', 'view': 'day'}
        # Sorted by start time, unapproved and undated events dropped
        assert [e['id'] for e in body['events']] == [2, 1]
        assert body['events'][1]['date'] == '2024-03-10'
        assert body['total_events'] == 3

        mock_store_class.assert_called_once_with(
            table_name='test-calendar-state', session_id='session-1'
        )
        mock_client_class.assert_called_once_with(
            base_url='https://backend.example.com', timeout=15
        )
        assert store.get(LAST_RESET_KEY) == fixed_now.isoformat()

    @patch('lambda_function.dates.now')
    @patch('lambda_function.EventsAPIClient')
    @patch('lambda_function.DynamoDBStateStore')
    def test_returning_visit_uses_url_params(
        self,
        mock_store_class,
        mock_client_class,
        mock_now,
        mock_env,
        mock_context,
        raw_events,
        fixed_now
    ):
        """A recent session honours the URL's view and search."""
        store = InMemoryStateStore({
            LAST_RESET_KEY: (fixed_now - timedelta(minutes=20)).isoformat()
        })
        mock_store_class.return_value = store
        mock_client_class.return_value.fetch_events.return_value = raw_events
        mock_now.return_value = fixed_now

        response = lambda_handler(
            calendar_request({'view': 'all', 'q': 'JAZZ'}), mock_context
        )

        body = json.loads(response['body'])
        assert body['state'] == {'date': '2024-03-10', 'view': 'all', 'q': 'JAZZ'}
        assert body['query']['q'] == 'JAZZ'
        assert [e['id'] for e in body['events']] == [1, 3]
        assert store.get(VIEW_KEY) == 'all'

    @patch('lambda_function.dates.now')
    @patch('lambda_function.EventsAPIClient')
    @patch('lambda_function.DynamoDBStateStore')
    def test_backend_failure(
        self,
        mock_store_class,
        mock_client_class,
        mock_now,
        mock_env,
        mock_context,
        fixed_now
    ):
        """Test error handling for backend fetch failures."""
        mock_store_class.return_value = InMemoryStateStore()
        mock_client_class.return_value.fetch_events.side_effect = Exception('Network error')
        mock_now.return_value = fixed_now

        response = lambda_handler(calendar_request(), mock_context)

        assert response['statusCode'] == 502
        body = json.loads(response['body'])
        assert body['message'] == 'Failed to fetch events'
        assert 'Network error' in body['error']
        assert body['error_type'] == 'Exception'
        assert body['state']['view'] == 'day'

    @patch('lambda_function.EventsAPIClient')
    @patch('lambda_function.DynamoDBStateStore')
    def test_state_store_failure(
        self,
        mock_store_class,
        mock_client_class,
        mock_env,
        mock_context
    ):
        """Test unexpected errors produce a 500 response."""
        mock_store_class.side_effect = Exception('Table unavailable')

        response = lambda_handler(calendar_request(), mock_context)

        assert response['statusCode'] == 500
        body = json.loads(response['body'])
        assert body['message'] == 'Request failed'
        assert 'Table unavailable' in body['error']
        assert 'duration_seconds' in body
        mock_client_class.return_value.fetch_events.assert_not_called()

    @patch('lambda_function.dates.now')
    @patch('lambda_function.EventsAPIClient')
    @patch('lambda_function.DynamoDBStateStore')
    def test_anonymous_session(
        self,
        mock_store_class,
        mock_client_class,
        mock_now,
        mock_env,
        mock_context,
        fixed_now
    ):
        mock_store_class.return_value = InMemoryStateStore()
        mock_client_class.return_value.fetch_events.return_value = []
        mock_now.return_value = fixed_now

        response = lambda_handler(
            {'httpMethod': 'GET', 'path': '/calendar/'}, mock_context
        )

        assert response['statusCode'] == 200
        mock_store_class.assert_called_once_with(
            table_name='test-calendar-state', session_id='anonymous'
        )


class TestRecurrenceRoute:
    """Test cases for recurrence previews."""

    def recurrence_request(self, body):
        return {
            'httpMethod': 'POST',
            'path': '/recurrences',
            'body': body if isinstance(body, str) else json.dumps(body)
        }

    def test_monthly_preview(self, mock_env, mock_context):
        response = lambda_handler(
            self.recurrence_request(
                {'date': '2024-01-29', 'recurrence': 'monthly', 'repeatCount': 4}
            ),
            mock_context
        )

        assert response['statusCode'] == 200
        assert json.loads(response['body']) == {'dates': ['2024-01-29', '2024-04-29']}

    def test_weekly_preview_clamps_count(self, mock_env, mock_context):
        response = lambda_handler(
            self.recurrence_request(
                {'date': '2024-01-09', 'recurrence': 'weekly', 'repeatCount': '10'}
            ),
            mock_context
        )

        assert json.loads(response['body'])['dates'] == [
            '2024-01-09', '2024-01-16', '2024-01-23', '2024-01-30'
        ]

    def test_no_recurrence(self, mock_env, mock_context):
        response = lambda_handler(
            self.recurrence_request({'date': '2024-01-09', 'recurrence': ''}),
            mock_context
        )

        assert json.loads(response['body'])['dates'] == ['2024-01-09']

    @pytest.mark.parametrize('body', [
        {'date': '01/09/2024', 'recurrence': 'weekly'},
        {'date': '2024-01-09', 'recurrence': 'yearly'},
        'not json',
        [1, 2],
    ])
    def test_invalid_requests(self, body, mock_env, mock_context):
        response = lambda_handler(self.recurrence_request(body), mock_context)

        assert response['statusCode'] == 400


class TestRouting:
    """Test cases for request routing and logging setup."""

    def test_unknown_route(self, mock_env, mock_context):
        response = lambda_handler({'httpMethod': 'DELETE', 'path': '/calendar'}, mock_context)

        assert response['statusCode'] == 404

    def test_setup_logging_installs_json_formatter(self):
        setup_logging('DEBUG')

        root_logger = logging.getLogger()
        assert root_logger.level == logging.DEBUG
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0].formatter, JsonFormatter)

    def test_json_formatter(self):
        record = logging.LogRecord(
            'calendar', logging.WARNING, __file__, 1, 'bad date %s', ('soon',), None
        )

        data = json.loads(JsonFormatter().format(record))

        assert data['level'] == 'WARNING'
        assert data['message'] == 'bad date soon'
        assert data['logger'] == 'calendar'


class TestMountainToday:
    """Test cases for the 'all' view cutoff around UTC midnight."""

    @patch('lambda_function.EventsAPIClient')
    @patch('lambda_function.DynamoDBStateStore')
    def test_all_view_keeps_tonight_after_utc_midnight(
        self,
        mock_store_class,
        mock_client_class,
        mock_env,
        mock_context,
        utc_rollover
    ):
        """At 03:00 UTC on 2024-03-11 it is still 2024-03-10 in Denver."""
        mock_store_class.return_value = InMemoryStateStore({
            LAST_RESET_KEY: (utc_rollover - timedelta(minutes=10)).isoformat()
        })
        mock_client_class.return_value.fetch_events.return_value = [
            {'id': 1, 'title': 'Late Show', 'date': '2024-03-10',
             'start_time': '22:00:00', 'is_approved': True},
            {'id': 2, 'title': 'Last Night', 'date': '2024-03-09',
             'is_approved': True},
            {'id': 3, 'title': 'Tomorrow', 'date': '2024-03-11',
             'is_approved': True},
        ]

        response = lambda_handler(calendar_request({'view': 'all'}), mock_context)

        body = json.loads(response['body'])
        assert body['state']['view'] == 'all'
        assert body['state']['date'] == '2024-03-10'
        assert [e['id'] for e in body['events']] == [1, 3]


class TestRecommendationsRoute:
    """Test cases for genre picks."""

    def recommendations_request(self, params):
        return {
            'httpMethod': 'GET',
            'path': '/recommendations',
            'queryStringParameters': params
        }

    @patch('lambda_function.dates.today')
    @patch('lambda_function.EventsAPIClient')
    def test_recommendations(
        self,
        mock_client_class,
        mock_today,
        mock_env,
        mock_context,
        raw_events
    ):
        """Picks are approved upcoming events in the requested genres, by date."""
        mock_client_class.return_value.fetch_events.return_value = raw_events
        mock_today.return_value = date(2024, 3, 10)

        response = lambda_handler(
            self.recommendations_request({'genres': 'jazz, Folk'}), mock_context
        )

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['genres'] == ['jazz', 'Folk']
        # Unreviewed Jazz is never recommended
        assert [e['id'] for e in body['events']] == [2, 1, 3]

    @patch('lambda_function.dates.today')
    @patch('lambda_function.EventsAPIClient')
    def test_recommendations_limit(
        self,
        mock_client_class,
        mock_today,
        mock_env,
        mock_context,
        raw_events
    ):
        mock_client_class.return_value.fetch_events.return_value = raw_events
        mock_today.return_value = date(2024, 3, 11)

        response = lambda_handler(
            self.recommendations_request({'genres': 'Jazz,Folk', 'limit': '1'}),
            mock_context
        )

        body = json.loads(response['body'])
        assert [e['id'] for e in body['events']] == [3]

    @pytest.mark.parametrize('params', [
        None,
        {'genres': ' , '},
        {'genres': 'Jazz', 'limit': 'lots'},
        {'genres': 'Jazz', 'limit': '0'},
    ])
    @patch('lambda_function.EventsAPIClient')
    def test_recommendations_bad_request(
        self,
        mock_client_class,
        params,
        mock_env,
        mock_context
    ):
        response = lambda_handler(self.recommendations_request(params), mock_context)

        assert response['statusCode'] == 400
        mock_client_class.return_value.fetch_events.assert_not_called()

    @patch('lambda_function.EventsAPIClient')
    def test_recommendations_backend_failure(
        self,
        mock_client_class,
        mock_env,
        mock_context
    ):
        mock_client_class.return_value.fetch_events.side_effect = Exception('Network error')

        response = lambda_handler(
            self.recommendations_request({'genres': 'Jazz'}), mock_context
        )

        assert response['statusCode'] == 502
        assert json.loads(response['body'])['error'] == 'Network error'


class TestRecurrenceExpansion:
    """Test cases for expanding a full submission into events."""

    def test_submission_expanded_into_events(self, mock_env, mock_context):
        body = {
            'title': 'Bluegrass Jam',
            'date': '2024-01-09',
            'start_time': '7:00 PM',
            'venue_name': 'Oskar Blues',
            'genre': 'Bluegrass',
            'recurrence': 'monthly',
            'repeatCount': 3,
        }

        response = lambda_handler(
            {'httpMethod': 'POST', 'path': '/recurrences', 'body': json.dumps(body)},
            mock_context
        )

        assert response['statusCode'] == 200
        result = json.loads(response['body'])
        assert result['dates'] == ['2024-01-09', '2024-02-13', '2024-03-12']
        assert [e['date'] for e in result['events']] == result['dates']
        assert all(e['title'] == 'Bluegrass Jam' for e in result['events'])
        assert all(e['start_time'] == '19:00' for e in result['events'])
        assert all(e['is_approved'] is False for e in result['events'])

    def test_invalid_submission(self, mock_env, mock_context):
        body = {'title': '  ', 'date': '2024-01-09', 'recurrence': 'weekly'}

        response = lambda_handler(
            {'httpMethod': 'POST', 'path': '/recurrences', 'body': json.dumps(body)},
            mock_context
        )

        assert response['statusCode'] == 400


class TestJsonFormatterExtras:
    """Test cases for structured fields passed through extra=."""

    def test_extra_fields_are_emitted(self):
        record = logging.makeLogRecord({
            'name': 'lambda_function',
            'levelno': logging.INFO,
            'levelname': 'INFO',
            'msg': 'Lambda execution completed',
            'route': 'calendar',
            'status_code': 200,
            'calendar_state': {'date': date(2024, 3, 10), 'view': 'day'},
        })

        data = json.loads(JsonFormatter().format(record))

        assert data['route'] == 'calendar'
        assert data['status_code'] == 200
        assert data['calendar_state'] == {'date': '2024-03-10', 'view': 'day'}

    def test_standard_attributes_not_duplicated(self):
        record = logging.LogRecord(
            'calendar', logging.INFO, __file__, 1, 'hello', (), None
        )

        data = json.loads(JsonFormatter().format(record))

        assert set(data) == {'timestamp', 'level', 'message', 'logger'}
