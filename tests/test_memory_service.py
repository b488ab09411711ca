"""
Unit tests for the Memory Service.
"""

from datetime import datetime

import pytest

from agent_memory.models.core import ChatMetrics, MemoryType
from agent_memory.services.memory_service import MemoryService
from agent_memory.utils.errors import StorageError
from tests.conftest import FakeVectorStore


def fixed_score(value):
    return FakeVectorStore(score=lambda query, document: value)


class TestStoreMemory:

    def test_stores_memory_with_metadata_fields(self, memory_service, vector_store):
        stored = memory_service.store_memory('User prefers window seats', MemoryType.EPISODIC, user_id='alice')

        assert len(vector_store.documents) == 1
        document = vector_store.documents[0]
        assert document['id'] == stored.memory.id
        assert document['content'] == 'User prefers window seats'
        assert document['memoryType'] == 'EPISODIC'
        assert document['userId'] == 'alice'
        assert document['metadata'] == '{}'
        assert datetime.fromisoformat(document['createdAt']) == stored.memory.created_at
        assert stored.embedding is None

    def test_identical_memory_is_stored_once(self, memory_service, vector_store):
        first = memory_service.store_memory('User prefers window seats', MemoryType.EPISODIC, user_id='alice')
        second = memory_service.store_memory('User prefers window seats', MemoryType.EPISODIC, user_id='alice')

        assert len(vector_store.documents) == 1
        assert second.memory.content == first.memory.content
        assert second.memory.id != first.memory.id

    def test_dedup_is_scoped_to_owner_and_type(self, memory_service, vector_store):
        memory_service.store_memory('Likes trains', MemoryType.EPISODIC, user_id='alice')
        memory_service.store_memory('Likes trains', MemoryType.EPISODIC, user_id='bob')
        memory_service.store_memory('Likes trains', MemoryType.SEMANTIC)

        assert len(vector_store.documents) == 3

    def test_dedup_threshold_is_exclusive(self, memory_config):
        store = fixed_score(0.9)
        service = MemoryService(store=store, memory_config=memory_config)

        service.store_memory('Tokyo has excellent public transit', MemoryType.SEMANTIC)
        service.store_memory('Tokyo transit is excellent', MemoryType.SEMANTIC)

        assert len(store.documents) == 2

    def test_missing_user_is_system(self, memory_service, vector_store):
        stored = memory_service.store_memory('Singapore requires passport', MemoryType.SEMANTIC)

        assert stored.memory.user_id == 'system'
        assert vector_store.documents[0]['userId'] == 'system'

    def test_malformed_metadata_is_replaced(self, memory_service, vector_store):
        stored = memory_service.store_memory('Fact', MemoryType.SEMANTIC, metadata='source=chat')

        assert stored.memory.metadata == '{}'
        assert vector_store.documents[0]['metadata'] == '{}'

    def test_valid_metadata_is_kept(self, memory_service, vector_store):
        memory_service.store_memory('Fact', MemoryType.SEMANTIC, metadata='{"source": "chat"}')

        assert vector_store.documents[0]['metadata'] == '{"source": "chat"}'

    def test_write_failure_propagates(self, memory_service, vector_store):
        vector_store.fail_writes = True

        with pytest.raises(StorageError):
            memory_service.store_memory('Fact', MemoryType.SEMANTIC)


class TestRetrieveMemories:

    def test_semantic_memory_is_visible_to_every_user(self, memory_service):
        memory_service.store_memory('Paris is known for the Eiffel Tower', MemoryType.SEMANTIC)

        for user in ('alice', 'bob'):
            memories = memory_service.retrieve_memories('Paris is known for the Eiffel Tower', user_id=user)
            assert [m.content for m in memories] == ['Paris is known for the Eiffel Tower']

    def test_episodic_memory_is_private(self, memory_service):
        memory_service.store_memory('User prefers window seats', MemoryType.EPISODIC, user_id='alice')

        assert memory_service.retrieve_memories('User prefers window seats', user_id='alice')
        assert memory_service.retrieve_memories('User prefers window seats', user_id='bob') == []

    def test_score_equal_to_threshold_is_excluded(self, memory_config):
        store = fixed_score(0.3)
        service = MemoryService(store=store, memory_config=memory_config)
        service.store_memory('User prefers aisle seats', MemoryType.EPISODIC, user_id='alice')

        assert service.retrieve_memories('seats', user_id='alice', distance_threshold=0.3) == []
        assert len(service.retrieve_memories('seats', user_id='alice', distance_threshold=0.29)) == 1

    def test_memory_type_filter(self, memory_service):
        memory_service.store_memory('Likes trains', MemoryType.EPISODIC, user_id='alice')
        memory_service.store_memory('Trains in Japan are punctual', MemoryType.SEMANTIC)

        memories = memory_service.retrieve_memories('trains', MemoryType.SEMANTIC, user_id='alice', distance_threshold=0.3)

        assert [m.memory_type for m in memories] == [MemoryType.SEMANTIC]

    def test_limit_is_passed_as_top_k(self, memory_service, vector_store):
        memory_service.retrieve_memories('anything', user_id='alice', limit=3)

        assert vector_store.searches[-1]['top_k'] == 3

    def test_unparseable_fields_fall_back(self, memory_service, vector_store):
        vector_store.documents.append({
            'id': 'legacy-1',
            'content': 'Old fact',
            'memoryType': 'PROCEDURAL',
            'userId': 'system',
            'metadata': '{}',
            'createdAt': 'yesterday'
        })

        memories = memory_service.retrieve_memories('Old fact', user_id='alice')

        assert len(memories) == 1
        assert memories[0].id == 'legacy-1'
        assert memories[0].memory_type == MemoryType.SEMANTIC
        assert (datetime.now() - memories[0].created_at).total_seconds() < 60

    def test_nothing_qualifies(self, memory_service):
        assert memory_service.retrieve_memories('anything', user_id='alice') == []

    def test_embedding_time_is_recorded(self, memory_service):
        metrics = ChatMetrics(embedding_time_ms=-1)

        memory_service.retrieve_memories('anything', user_id='alice', metrics=metrics)

        assert metrics.embedding_time_ms >= 0

    def test_list_memories(self, memory_service, vector_store):
        memory_service.store_memory('Likes trains', MemoryType.EPISODIC, user_id='alice')
        memory_service.store_memory('Trains in Japan are punctual', MemoryType.SEMANTIC)
        memory_service.store_memory('Likes boats', MemoryType.EPISODIC, user_id='bob')

        memories = memory_service.list_memories(user_id='alice')

        assert sorted(m.content for m in memories) == ['Likes trains', 'Trains in Japan are punctual']
        assert vector_store.searches[-1]['query'] == ''
        assert vector_store.searches[-1]['top_k'] == 50


class TestWindowSeatScenario:
    """Alice's preference is extracted, stored, then found only above the relevance floor."""

    def _stored_for_alice(self, memory_config, score):
        store = FakeVectorStore(score=lambda query, document: score if query == 'what seat does alice like' else 0.0)
        service = MemoryService(store=store, memory_config=memory_config)
        service.store_memory('User prefers window seats', MemoryType.EPISODIC, user_id='alice')
        return service, store

    def test_returned_above_threshold(self, memory_config):
        service, store = self._stored_for_alice(memory_config, 0.5)

        assert store.documents[0]['userId'] == 'alice'
        memories = service.retrieve_memories('what seat does alice like', user_id='alice', distance_threshold=0.3)
        assert [m.content for m in memories] == ['User prefers window seats']

    def test_not_returned_below_threshold(self, memory_config):
        service, _ = self._stored_for_alice(memory_config, 0.2)

        assert service.retrieve_memories('what seat does alice like', user_id='alice', distance_threshold=0.3) == []
