"""AWS Lambda handler for team availability and focus telemetry."""
import json
import logging
import os
import time
from typing import Dict, Any

from availability.aggregator import MeetingSlotResolver, OverlapAggregator, fetch_explicit_meeting
from availability.grid import validate_id
from availability.models import NO_MEETING_LABEL, InvalidIdentifier
from focus.telemetry import RetryQueue, flush_retry_queue
from remote.api_client import RemoteClient
from storage.dynamodb_store import DynamoDBStore


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

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


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

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def _flush(store: DynamoDBStore, client: RemoteClient) -> Dict[str, Any]:
    result = flush_retry_queue(client, RetryQueue(store))
    return {
        'message': 'Retry queue flushed',
        'succeeded': result.succeeded,
        'failed': result.failed
    }


def _propose(
    store: DynamoDBStore,
    client: RemoteClient,
    project_id: str,
    use_member_index: bool
) -> Dict[str, Any]:
    votes = OverlapAggregator(store, use_member_index=use_member_index).aggregate(project_id)
    explicit = fetch_explicit_meeting(client, project_id)
    proposal = MeetingSlotResolver().resolve(votes, explicit=explicit)
    return {
        'message': 'Meeting proposal computed',
        'project_id': project_id,
        'votes': votes,
        'proposal': proposal.slot.key if proposal and proposal.slot else None,
        'next_meeting': proposal.label if proposal else NO_MEETING_LABEL
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler.

    Args:
        event: EventBridge schedule payload (flushes the retry queue) or
            {"action": "propose_meeting", "project_id": ...}
        context: Lambda context object

    Returns:
        Response dict with statusCode and a JSON body
    """
    # Read configuration from environment variables
    table_name = os.environ.get('TABLE_NAME', 'team-focus-store')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    api_base_url = os.environ.get('API_BASE_URL', 'http://localhost:8080/api/v1')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '15'))
    max_retries = int(os.environ.get('MAX_RETRIES', '3'))
    use_member_index = os.environ.get('USE_MEMBER_INDEX', 'false').lower() == 'true'

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    event = event or {}
    if not isinstance(event, dict):
        logger.error(f"Unsupported event type: {type(event).__name__}")
        return _response(400, {'message': 'Event must be a JSON object'})

    action = event.get('action', 'flush_retry_queue')

    start_time = time.time()
    logger.info(
        f"Lambda execution started: {action}",
        extra={'table_name': table_name, 'action': action}
    )

    if action not in ('flush_retry_queue', 'propose_meeting'):
        logger.error(f"Unknown action: {action}")
        return _response(400, {'message': f'Unknown action: {action}'})

    if action == 'propose_meeting':
        if not event.get('project_id'):
            logger.error("propose_meeting requires project_id")
            return _response(400, {'message': 'project_id is required'})
        try:
            validate_id(str(event['project_id']), 'project id')
        except InvalidIdentifier as e:
            logger.error(f"Rejected project_id: {e}")
            return _response(400, {'message': str(e)})

    try:
        store = DynamoDBStore(table_name=table_name)
        client = RemoteClient(
            api_base_url,
            timeout=timeout_seconds,
            max_retries=max_retries
        )

        if action == 'flush_retry_queue':
            body = _flush(store, client)
        else:
            body = _propose(store, client, str(event['project_id']), use_member_index)

        duration = time.time() - start_time
        body['duration_seconds'] = round(duration, 2)

        logger.info(
            f"Lambda execution completed successfully",
            extra={'duration_seconds': round(duration, 2), 'action': action}
        )
        return _response(200, body)

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
            'message': f'{action} failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
