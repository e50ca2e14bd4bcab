"""Key-value stores for per-session calendar preferences."""
import logging
import time
from typing import Dict, Optional

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class StateStore:
    """String key-value store interface used by the calendar view state."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def set_many(self, values: Dict[str, str]) -> None:
        """Write several keys; stores that can should do it in one write."""
        for key, value in values.items():
            self.set(key, value)


class InMemoryStateStore(StateStore):
    """Dictionary-backed store for tests and local runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def set_many(self, values: Dict[str, str]) -> None:
        self._values.update(values)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._values)


class DynamoDBStateStore(StateStore):
    """
    Session preferences stored as attributes of one DynamoDB item.

    Table layout: partition key ``session_id`` (string), one string
    attribute per preference key, and a numeric ``ttl`` attribute so that
    DynamoDB expires abandoned sessions.
    """

    SESSION_TTL_DAYS = 30

    def __init__(self, table_name: str, session_id: str):
        """
        Initialize DynamoDB table reference for one session.

        Args:
            table_name: Name of the DynamoDB table
            session_id: Browsing session identifier (partition key)
        """
        self.table_name = table_name
        self.session_id = session_id
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        self._item = None
        logger.info(
            f"Initialized DynamoDBStateStore for table: {table_name}, "
            f"session: {session_id}"
        )

    def _load(self) -> Dict[str, str]:
        """
        Fetch the session item once and cache it for subsequent reads.

        Returns:
            Item attributes, empty for a new session

        Raises:
            ClientError: If the read fails
        """
        if self._item is None:
            try:
                response = self.table.get_item(Key={'session_id': self.session_id})
            except ClientError as e:
                logger.error(f"Error reading session state from DynamoDB: {e}")
                raise
            self._item = response.get('Item', {})
        return self._item

    def get(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        if value is None:
            return None
        return str(value)

    def set(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def set_many(self, values: Dict[str, str]) -> None:
        """
        Write preference attributes and refresh the session TTL in one update.

        Either every attribute is written or none is.

        Args:
            values: Preference names mapped to values

        Raises:
            ClientError: If the write fails
        """
        if not values:
            return

        ttl = int(time.time()) + self.SESSION_TTL_DAYS * 24 * 60 * 60
        names = {'#ttl': 'ttl'}
        attribute_values = {':ttl': ttl}
        assignments = []
        for index, (key, value) in enumerate(values.items()):
            names[f'#k{index}'] = key
            attribute_values[f':v{index}'] = value
            assignments.append(f'#k{index} = :v{index}')
        assignments.append('#ttl = :ttl')

        try:
            self.table.update_item(
                Key={'session_id': self.session_id},
                UpdateExpression='SET ' + ', '.join(assignments),
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=attribute_values
            )
        except ClientError as e:
            logger.error(
                f"Error writing session state {sorted(values)} to DynamoDB: {e}"
            )
            raise

        if self._item is not None:
            self._item.update(values)
