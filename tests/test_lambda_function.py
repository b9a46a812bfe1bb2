"""Integration tests for Lambda handler."""
import json
import logging
import os
from datetime import date
from unittest.mock import Mock, patch

import pytest

from availability.grid import AvailabilityGrid
from focus.models import FlushResult
from focus.telemetry import RetryQueue
from lambda_function import JsonFormatter, lambda_handler, setup_logging
from remote.api_client import RemoteResult
from storage.base import InMemoryStore


@pytest.fixture
def mock_env():
    """Set up environment variables for testing."""
    env_vars = {
        'TABLE_NAME': 'test-team-focus-store',
        'LOG_LEVEL': 'INFO',
        'API_BASE_URL': 'http://api.test/api/v1',
        'TIMEOUT_SECONDS': '5',
        'MAX_RETRIES': '2'
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


@pytest.fixture
def mock_context():
    """Create a mock Lambda context."""
    context = Mock()
    context.function_name = 'test-function'
    context.memory_limit_in_mb = 256
    context.invoked_function_arn = 'arn:aws:lambda:us-east-1:123456789012:function:test-function'
    context.aws_request_id = 'test-request-id'
    return context


@pytest.fixture
def store():
    return InMemoryStore()


class TestLambdaHandler:
    """Test cases for Lambda handler."""

    @patch('lambda_function.RemoteClient')
    @patch('lambda_function.DynamoDBStore')
    def test_scheduled_flush(
        self,
        mock_store_class,
        mock_client_class,
        mock_env,
        mock_context,
        store
    ):
        """Test the default action replays the retry queue."""
        queue = RetryQueue(store)
        queue.append({'userId': 'u1', 'projectId': 'p1', 'focusSeconds': 7})
        queue.append({'userId': 'u1', 'projectId': 'p1', 'focusSeconds': 3})
        mock_store_class.return_value = store
        mock_client = Mock()
        mock_client.submit.side_effect = [
            RemoteResult(success=True),
            RemoteResult(success=False, error='503')
        ]
        mock_client_class.return_value = mock_client

        response = lambda_handler({'source': 'aws.events'}, mock_context)

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['succeeded'] == 1
        assert body['failed'] == 1
        assert 'duration_seconds' in body
        assert [e.payload['focusSeconds'] for e in queue.entries()] == [3]

        mock_store_class.assert_called_once_with(table_name='test-team-focus-store')
        mock_client_class.assert_called_once_with(
            'http://api.test/api/v1',
            timeout=5,
            max_retries=2
        )

    @patch('lambda_function.RemoteClient')
    @patch('lambda_function.DynamoDBStore')
    def test_propose_meeting(
        self,
        mock_store_class,
        mock_client_class,
        mock_env,
        mock_context,
        store
    ):
        """Test propose_meeting aggregates grids and falls back to local data."""
        for user_id in ('u1', 'u2', 'u3'):
            grid = AvailabilityGrid('p1', user_id)
            grid.toggle('09:00-0')
            grid.commit(store)
        grid = AvailabilityGrid('p1', 'u4')
        grid.toggle('10:00-0')
        grid.commit(store)
        mock_store_class.return_value = store
        mock_client = Mock()
        mock_client.fetch.return_value = RemoteResult(success=False, error='offline')
        mock_client_class.return_value = mock_client

        with patch('availability.aggregator.date') as mock_date:
            mock_date.today.return_value = date(2024, 5, 6)
            response = lambda_handler(
                {'action': 'propose_meeting', 'project_id': 'p1'},
                mock_context
            )

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['votes'] == {'09:00-0': 3, '10:00-0': 1}
        assert body['proposal'] == '09:00-0'
        assert body['next_meeting'] == '2024-05-06 09:00'

    @patch('lambda_function.RemoteClient')
    @patch('lambda_function.DynamoDBStore')
    def test_propose_meeting_without_votes(
        self,
        mock_store_class,
        mock_client_class,
        mock_env,
        mock_context,
        store
    ):
        """Test a project nobody registered for gets the placeholder."""
        mock_store_class.return_value = store
        mock_client = Mock()
        mock_client.fetch.return_value = RemoteResult(success=True, data={'id': 'p9'})
        mock_client_class.return_value = mock_client

        response = lambda_handler(
            {'action': 'propose_meeting', 'project_id': 'p9'},
            mock_context
        )

        body = json.loads(response['body'])
        assert response['statusCode'] == 200
        assert body['proposal'] is None
        assert body['next_meeting'] == '0000-00-00 00:00'

    def test_unknown_action(self, mock_env, mock_context):
        """Test unknown actions are rejected with 400."""
        response = lambda_handler({'action': 'explode'}, mock_context)

        assert response['statusCode'] == 400

    def test_propose_meeting_requires_project(self, mock_env, mock_context):
        """Test propose_meeting without project_id is rejected."""
        response = lambda_handler({'action': 'propose_meeting'}, mock_context)

        assert response['statusCode'] == 400

    @pytest.mark.parametrize('event', ['flush', ['flush_retry_queue'], 42])
    def test_non_dict_event_is_rejected(self, event, mock_env, mock_context):
        """Test events that are not JSON objects get a 400 body."""
        response = lambda_handler(event, mock_context)

        assert response['statusCode'] == 400
        assert json.loads(response['body'])['message'] == 'Event must be a JSON object'

    @patch('lambda_function.DynamoDBStore')
    def test_propose_meeting_rejects_delimiter_in_project(
        self,
        mock_store_class,
        mock_env,
        mock_context
    ):
        """Test a project_id that would collide with other projects' keys is rejected."""
        response = lambda_handler(
            {'action': 'propose_meeting', 'project_id': 'p1:u1'},
            mock_context
        )

        assert response['statusCode'] == 400
        mock_store_class.assert_not_called()

    @patch('lambda_function.flush_retry_queue')
    @patch('lambda_function.RemoteClient')
    @patch('lambda_function.DynamoDBStore')
    def test_unexpected_error_returns_500(
        self,
        mock_store_class,
        mock_client_class,
        mock_flush,
        mock_env,
        mock_context
    ):
        """Test store failures are reported, not raised."""
        mock_flush.side_effect = RuntimeError('Table not found')

        response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 500
        body = json.loads(response['body'])
        assert body['error'] == 'Table not found'
        assert body['error_type'] == 'RuntimeError'

    @patch('lambda_function.flush_retry_queue')
    @patch('lambda_function.RemoteClient')
    @patch('lambda_function.DynamoDBStore')
    def test_none_event_defaults_to_flush(
        self,
        mock_store_class,
        mock_client_class,
        mock_flush,
        mock_env,
        mock_context
    ):
        """Test a missing event payload still flushes."""
        mock_flush.return_value = FlushResult(succeeded=0, failed=0)

        response = lambda_handler(None, mock_context)

        assert response['statusCode'] == 200
        mock_flush.assert_called_once()


class TestLogging:
    """Test cases for logging setup."""

    def test_setup_logging_installs_json_formatter(self):
        setup_logging('DEBUG')
        root_logger = logging.getLogger()

        assert root_logger.level == logging.DEBUG
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0].formatter, JsonFormatter)

    def test_setup_logging_invalid_level_defaults_to_info(self):
        setup_logging('LOUD')

        assert logging.getLogger().level == logging.INFO

    def test_json_formatter_output(self):
        record = logging.LogRecord(
            name='focus.telemetry',
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg='Queued %s seconds',
            args=(7,),
            exc_info=None
        )

        data = json.loads(JsonFormatter().format(record))

        assert data['level'] == 'WARNING'
        assert data['message'] == 'Queued 7 seconds'
        assert data['logger'] == 'focus.telemetry'
