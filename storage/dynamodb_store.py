"""DynamoDB-backed persistent key-value store."""
import json
import logging
from typing import Any, List, Optional, Tuple

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from storage.base import LocalStoreFailure

logger = logging.getLogger(__name__)


class DynamoDBStore:
    """Key-value store with one DynamoDB item per key."""

    KEY_ATTRIBUTE = 'store_key'

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table (partition key: store_key)
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBStore for table: {table_name}")

    def get(self, key: str) -> Optional[Any]:
        """
        Read the value stored under a key.

        Args:
            key: Store key

        Returns:
            Decoded value, or None if the key is absent
        """
        value, _ = self.get_versioned(key)
        return value

    def set(self, key: str, value: Any) -> None:
        """
        Unconditionally replace the value stored under a key.

        Args:
            key: Store key
            value: JSON-serializable value
        """
        try:
            self.table.update_item(
                Key={self.KEY_ATTRIBUTE: key},
                UpdateExpression='SET #payload = :payload ADD #version :one',
                ExpressionAttributeNames={
                    '#payload': 'payload',
                    '#version': 'version'
                },
                ExpressionAttributeValues={
                    ':payload': self._encode(key, value),
                    ':one': 1
                }
            )
        except ClientError as e:
            logger.error(f"Error writing key '{key}': {e}")
            raise LocalStoreFailure(f"Failed to write '{key}': {e}") from e

    def enumerate(self, prefix: str) -> List[str]:
        """
        List all keys starting with a prefix using a Scan operation.

        Args:
            prefix: Key prefix to match

        Returns:
            Sorted list of matching keys
        """
        logger.debug(f"Scanning table {self.table_name} for prefix '{prefix}'")
        scan_kwargs = {
            'FilterExpression': Attr(self.KEY_ATTRIBUTE).begins_with(prefix),
            'ProjectionExpression': self.KEY_ATTRIBUTE
        }

        try:
            response = self.table.scan(**scan_kwargs)
            items = response.get('Items', [])

            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **scan_kwargs
                )
                items.extend(response.get('Items', []))
        except ClientError as e:
            logger.error(f"Error scanning for prefix '{prefix}': {e}")
            raise LocalStoreFailure(f"Failed to enumerate '{prefix}': {e}") from e

        keys = sorted(item[self.KEY_ATTRIBUTE] for item in items)
        logger.debug(f"Found {len(keys)} keys with prefix '{prefix}'")
        return keys

    def get_versioned(self, key: str) -> Tuple[Optional[Any], int]:
        """
        Read a value together with its version.

        Args:
            key: Store key

        Returns:
            Tuple of (value, version); (None, 0) if the key is absent
        """
        try:
            response = self.table.get_item(
                Key={self.KEY_ATTRIBUTE: key},
                ConsistentRead=True
            )
        except ClientError as e:
            logger.error(f"Error reading key '{key}': {e}")
            raise LocalStoreFailure(f"Failed to read '{key}': {e}") from e

        item = response.get('Item')
        if not item:
            return None, 0

        try:
            return json.loads(item['payload']), int(item['version'])
        except (KeyError, ValueError) as e:
            logger.error(f"Corrupt item stored under '{key}': {e}")
            raise LocalStoreFailure(f"Corrupt item under '{key}': {e}") from e

    def compare_and_set(self, key: str, value: Any, expected_version: int) -> bool:
        """
        Write a value only if the stored version still matches.

        Args:
            key: Store key
            value: JSON-serializable value
            expected_version: Version read before modifying; 0 if absent

        Returns:
            True if the write happened, False on a version conflict
        """
        if expected_version == 0:
            condition = Attr(self.KEY_ATTRIBUTE).not_exists()
        else:
            condition = Attr('version').eq(expected_version)

        try:
            self.table.put_item(
                Item={
                    self.KEY_ATTRIBUTE: key,
                    'payload': self._encode(key, value),
                    'version': expected_version + 1
                },
                ConditionExpression=condition
            )
            return True
        except ClientError as e:
            if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
                logger.debug(
                    f"Version conflict on '{key}' (expected {expected_version})"
                )
                return False
            logger.error(f"Error writing key '{key}': {e}")
            raise LocalStoreFailure(f"Failed to write '{key}': {e}") from e

    @staticmethod
    def _encode(key: str, value: Any) -> str:
        try:
            return json.dumps(value)
        except (TypeError, ValueError) as e:
            raise LocalStoreFailure(f"Value for '{key}' is not serializable: {e}") from e
