"""
Memory Service: deduplicated storage and thresholded retrieval of long-term memories.
"""

import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models.core import ChatMetrics, Memory, MemoryType, StoredMemory
from ..utils.bedrock_embed import BedrockEmbed
from ..utils.config import MemoryConfig, config
from ..utils.errors import ParseError, StorageError
from ..utils.filters import Eq, all_of
from ..utils.json_utils import validate_metadata
from ..utils.logging_config import get_logger
from ..utils.opensearch_client import OpenSearchMemoryStore
from ..utils.timestamp_utils import parse_loose, to_iso_str

logger = get_logger(__name__)


class MemoryService:
    """Policy layer over the vector memory store.

    Owns the Memory record, the dedup check run before every write, and the
    user/system scoping and similarity floor applied on every read.
    """

    def __init__(self, store: Optional[OpenSearchMemoryStore] = None, memory_config: Optional[MemoryConfig] = None):
        """Initialize the memory service.

        Args:
            store: Vector memory store (OpenSearch store built from config if None)
            memory_config: Thresholds and limits (global config if None)
        """
        self.config = memory_config or config.memory
        self.system_user_id = self.config.system_user_id

        if store is None:
            store = OpenSearchMemoryStore(config.opensearch, BedrockEmbed(config.bedrock_embed))
        self.store = store

        try:
            self.store.create_index_if_not_exists()
        except StorageError as e:
            logger.warning(f'Failed to create memory index: {e}')

        logger.info('Initialized MemoryService')

    def store_memory(self,
                     content: str,
                     memory_type: MemoryType,
                     user_id: Optional[str] = None,
                     metadata: str = '{}') -> StoredMemory:
        """Store a memory unless a near-duplicate already exists.

        Args:
            content: Memory text
            memory_type: EPISODIC or SEMANTIC
            user_id: Owner (the system user if None)
            metadata: JSON object string, replaced by '{}' if malformed

        Returns:
            The memory, whether it was written or skipped as a duplicate

        Raises:
            StorageError: If the backend rejects the write
        """
        logger.info(f'Preparing to store memory: {content}')

        try:
            validated_metadata = validate_metadata(metadata)
        except ParseError as e:
            logger.warning(f'Invalid metadata format, using empty JSON object instead: {e}')
            validated_metadata = '{}'

        effective_user_id = user_id or self.system_user_id
        memory = Memory(content=content, memory_type=memory_type, metadata=validated_metadata, user_id=effective_user_id)

        if self.similar_memory_exists(content, memory_type, effective_user_id):
            logger.info('Similar memory found, skipping storage')
            return StoredMemory(memory)

        try:
            self.store.store(content, {
                'memoryType': memory_type.value,
                'metadata': validated_metadata,
                'userId': effective_user_id,
                'createdAt': to_iso_str(memory.created_at)
            },
                             record_id=memory.id)
        except StorageError as e:
            logger.error(f'Error storing memory: {e}')
            raise

        logger.info(f'Stored {memory_type.value} memory: {content}')
        return StoredMemory(memory)

    def similar_memory_exists(self,
                              content: str,
                              memory_type: MemoryType,
                              user_id: Optional[str] = None,
                              threshold: Optional[float] = None) -> bool:
        """Check for a near-duplicate of the same type and owner.

        Returns:
            True if the closest match scores strictly above the dedup threshold
        """
        threshold = self.config.dedup_threshold if threshold is None else threshold
        filter_expression = all_of([Eq('userId', user_id or self.system_user_id), Eq('memoryType', memory_type.value)])

        results = self.store.search(content, filter_expression, top_k=1)
        return bool(results) and results[0][1] > threshold

    def retrieve_memories(self,
                          query: str,
                          memory_type: Optional[MemoryType] = None,
                          user_id: Optional[str] = None,
                          limit: int = 5,
                          distance_threshold: float = 0.9,
                          metrics: Optional[ChatMetrics] = None) -> List[Memory]:
        """Retrieve memories visible to a user that are similar to a query.

        A user always sees their own memories and the shared system ones.
        Despite its name, distance_threshold is a similarity floor: results
        are kept only when their score is strictly greater than it.

        Args:
            query: Search text (blank lists memories in filter order)
            memory_type: Restrict to one type if given
            user_id: Requesting user (the system user if None)
            limit: Maximum number of results
            distance_threshold: Similarity floor (exclusive)
            metrics: Receives the query embedding time if given

        Returns:
            Matching memories, possibly empty
        """
        logger.debug(f'Retrieving memories for query: {query}')

        effective_user_id = user_id or self.system_user_id
        expressions = [Eq('userId', effective_user_id) | Eq('userId', self.system_user_id)]
        if memory_type is not None:
            expressions.append(Eq('memoryType', memory_type.value))

        start = time.monotonic()
        query_vector = None
        if query and query.strip():
            query_vector = self.store.embed_query(query)
            if metrics is not None:
                metrics.embedding_time_ms = int((time.monotonic() - start) * 1000)

        results = self.store.search(query, all_of(expressions), top_k=limit, query_vector=query_vector)

        memories = [self._to_memory(document) for document, score in results if score > distance_threshold]

        elapsed = int((time.monotonic() - start) * 1000)
        logger.info(f'Retrieved {len(memories)} memories in {elapsed} ms')
        return memories

    def list_memories(self, user_id: Optional[str] = None) -> List[Memory]:
        """List stored memories visible to a user, without a similarity query."""
        return self.retrieve_memories('',
                                      user_id=user_id,
                                      limit=self.config.list_limit,
                                      distance_threshold=self.config.list_threshold)

    def _to_memory(self, document: Dict[str, Any]) -> Memory:
        try:
            memory_type = MemoryType(document.get('memoryType'))
        except ValueError:
            logger.warning(f"Unknown memory type {document.get('memoryType')!r}, using SEMANTIC")
            memory_type = MemoryType.SEMANTIC

        try:
            created_at = parse_loose(document.get('createdAt'))
        except ParseError as e:
            logger.warning(f'{e}, using current time')
            created_at = datetime.now()

        return Memory(id=document.get('id', ''),
                      content=document.get('content') or '',
                      memory_type=memory_type,
                      metadata=document.get('metadata') or '{}',
                      user_id=document.get('userId') or self.system_user_id,
                      created_at=created_at)
