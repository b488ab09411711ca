"""
Redis conversation store: one list of serialized messages per user with a TTL.
"""

import re
from typing import List, Optional, Sequence

import redis
from redis.connection import ConnectionPool

from ..models.core import ConversationMessage, MessageRole
from .config import RedisConfig
from .errors import StorageError
from .json_utils import escape_json, unescape_json
from .logging_config import get_logger

logger = get_logger(__name__)

_TYPE_FIELD = re.compile(r'"type"\s*:\s*"(user|assistant|system|unknown)"')
_CONTENT_FIELD = re.compile(r'"content"\s*:\s*"((?:\\.|[^"\\])*)"', re.DOTALL)


class ConversationStoreError(StorageError):
    """Custom exception for conversation store errors."""
    pass


def serialize_message(message: ConversationMessage) -> str:
    """Encode one message as {"type": role, "content": escaped text}."""
    return f'{{"type":"{message.role.value}","content":"{escape_json(message.content)}"}}'


def deserialize_message(raw: str) -> Optional[ConversationMessage]:
    """Decode one stored message.

    Returns:
        The message, or None for 'unknown' or malformed entries
    """
    type_match = _TYPE_FIELD.search(raw)
    content_match = _CONTENT_FIELD.search(raw)
    if type_match is None or content_match is None:
        logger.warning(f'Skipping malformed conversation entry: {raw[:80]!r}')
        return None

    role = type_match.group(1)
    if role == 'unknown':
        return None
    return ConversationMessage(MessageRole(role), unescape_json(content_match.group(1)))


class RedisConversationStore:
    """Durable copy of per-user conversation history.

    Every save rewrites the whole list and resets its expiry, so a shorter
    history never keeps the tail of a longer previous one.
    """

    def __init__(self,
                 config: RedisConfig,
                 key_prefix: str = 'conversation:',
                 ttl_seconds: int = 3600,
                 client: Optional[redis.Redis] = None):
        """
        Initialize the conversation store with connection pooling.

        Args:
            config: RedisConfig instance with connection parameters
            key_prefix: Prefix of the per-user list key
            ttl_seconds: Expiry applied on every save
            client: Preconfigured Redis client (pooled client built from config if None)
        """
        self.key_prefix = key_prefix
        self.ttl_seconds = ttl_seconds

        if client is None:
            pool = ConnectionPool(host=config.host,
                                  port=config.port,
                                  db=config.db,
                                  password=config.password or None,
                                  max_connections=config.max_connections,
                                  decode_responses=True)
            client = redis.Redis(connection_pool=pool)
        self.redis = client

        logger.info(f'Initialized Redis conversation store ({config.host}:{config.port})')

    def _key(self, user_id: str) -> str:
        return f'{self.key_prefix}{user_id}'

    def save(self, user_id: str, messages: Sequence[ConversationMessage]) -> None:
        """
        Replace the stored history for a user and reset its TTL.

        Raises:
            ConversationStoreError: If Redis rejects the write
        """
        key = self._key(user_id)
        try:
            pipe = self.redis.pipeline(transaction=True)
            pipe.delete(key)
            if messages:
                pipe.rpush(key, *[serialize_message(message) for message in messages])
                pipe.expire(key, self.ttl_seconds)
            pipe.execute()
        except redis.RedisError as e:
            logger.error(f'Error saving conversation history for user {user_id}: {e}')
            raise ConversationStoreError(f'Failed to save conversation history: {e}')

        logger.debug(f'Saved {len(messages)} messages for user {user_id} with TTL of {self.ttl_seconds}s')

    def load(self, user_id: str) -> List[ConversationMessage]:
        """
        Load the stored history for a user, empty if absent or expired.

        Raises:
            ConversationStoreError: If Redis cannot be read
        """
        try:
            raw_messages = self.redis.lrange(self._key(user_id), 0, -1)
        except redis.RedisError as e:
            logger.error(f'Error loading conversation history for user {user_id}: {e}')
            raise ConversationStoreError(f'Failed to load conversation history: {e}')

        history = []
        for raw in raw_messages:
            if isinstance(raw, bytes):
                raw = raw.decode('utf-8')
            message = deserialize_message(raw)
            if message is not None:
                history.append(message)

        logger.debug(f'Loaded conversation history for user {user_id}: {len(history)} messages')
        return history

    def clear(self, user_id: str) -> None:
        """
        Delete the stored history for a user immediately.

        Raises:
            ConversationStoreError: If Redis rejects the delete
        """
        try:
            self.redis.delete(self._key(user_id))
        except redis.RedisError as e:
            logger.error(f'Error clearing conversation history for user {user_id}: {e}')
            raise ConversationStoreError(f'Failed to clear conversation history: {e}')

        logger.info(f'Cleared conversation history for user {user_id}')

    def health_check(self) -> bool:
        try:
            return bool(self.redis.ping())
        except Exception as e:
            logger.error(f'Redis health check failed: {e}')
            return False
