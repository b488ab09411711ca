"""
Shared fakes for the memory service tests.
"""

import threading
import time
from typing import Any, Callable, Dict, List, Optional

import pytest

from agent_memory.models.core import ConversationMessage, MessageRole
from agent_memory.services.chat_service import SUMMARY_PROMPT, ChatService
from agent_memory.services.conversation_cache import ConversationCache
from agent_memory.services.memory_extraction import EXTRACTION_PROMPT
from agent_memory.services.memory_service import MemoryService
from agent_memory.utils.config import ConversationConfig, MemoryConfig, RedisConfig
from agent_memory.utils.redis_client import RedisConversationStore


def default_score(query: str, document: Dict[str, Any]) -> float:
    if not query or not query.strip():
        return 1.0
    return 1.0 if query == document['content'] else 0.5


class FakeVectorStore:
    """In-process vector store. Scores come from a pluggable function.

    Filters before taking the top_k, like a filtered k-NN query.
    """

    def __init__(self, score: Callable[[str, Dict[str, Any]], float] = default_score):
        self.score = score
        self.documents: List[Dict[str, Any]] = []
        self.searches: List[Dict[str, Any]] = []
        self.fail_writes = False

    def create_index_if_not_exists(self) -> str:
        return 'exists'

    def store(self, content: str, metadata: Dict[str, Any], record_id: Optional[str] = None) -> str:
        if self.fail_writes:
            from agent_memory.utils.opensearch_client import OpenSearchError
            raise OpenSearchError('write rejected')
        self.documents.append({'id': record_id, 'content': content, **metadata})
        return record_id

    def embed_query(self, query_text: str) -> List[float]:
        return [0.0]

    def search(self, query_text, filter_expression, top_k, query_vector=None):
        self.searches.append({'query': query_text, 'filter': filter_expression, 'top_k': top_k})
        matches = [doc for doc in self.documents if filter_expression is None or filter_expression.matches(doc)]
        scored = sorted(((dict(doc), self.score(query_text, doc)) for doc in matches), key=lambda r: r[1], reverse=True)
        return scored[:top_k]


class FakeLLM:
    """Scripted chat model.

    Replies to the visible conversation with 'reply to <last user message>'
    unless a reply is set; extraction and summary calls are recognized by
    their system prompt.
    """

    def __init__(self):
        self.calls: List[List[ConversationMessage]] = []
        self.reply: Optional[str] = None
        self.extraction_response = '[]'
        self.summary = 'User is planning a trip.'
        self.fail_primary = False
        self.fail_extraction = False
        self.fail_summary = False
        self.delay = 0.0

    def chat(self, messages):
        from agent_memory.utils.bedrock_llm import BedrockLLMError
        messages = list(messages)
        self.calls.append(messages)
        first = messages[0].content if messages else ''

        if first == EXTRACTION_PROMPT:
            if self.fail_extraction:
                raise BedrockLLMError('extraction failed')
            return self.extraction_response
        if first == SUMMARY_PROMPT:
            if self.fail_summary:
                raise BedrockLLMError('summary failed')
            return self.summary

        if self.fail_primary:
            raise BedrockLLMError('model unavailable')
        if self.delay:
            time.sleep(self.delay)
        if self.reply is not None:
            return self.reply
        last_user = [m.content for m in messages if m.role == MessageRole.USER][-1]
        return f'reply to {last_user}'

    def calls_with_prompt(self, prompt: str):
        return [call for call in self.calls if call and call[0].content == prompt]


class FakePipeline:

    def __init__(self, client: 'FakeRedis'):
        self.client = client
        self.commands = []

    def delete(self, key):
        self.commands.append(('delete', key))
        return self

    def rpush(self, key, *values):
        self.commands.append(('rpush', key, values))
        return self

    def expire(self, key, seconds):
        self.commands.append(('expire', key, seconds))
        return self

    def execute(self):
        with self.client.lock:
            for command in self.commands:
                name, key, *args = command
                if name == 'delete':
                    self.client.delete(key)
                elif name == 'rpush':
                    self.client.lists.setdefault(key, []).extend(args[0])
                elif name == 'expire':
                    self.client.ttls[key] = args[0]
        self.commands = []


class FakeRedis:
    """The subset of redis.Redis used by the conversation store."""

    def __init__(self):
        self.lists: Dict[str, List[str]] = {}
        self.ttls: Dict[str, int] = {}
        self.lock = threading.RLock()

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    def lrange(self, key, start, end):
        values = self.lists.get(key, [])
        return list(values[start:] if end == -1 else values[start:end + 1])

    def delete(self, key):
        with self.lock:
            self.ttls.pop(key, None)
            return 1 if self.lists.pop(key, None) is not None else 0

    def expire_now(self, key):
        self.delete(key)

    def ping(self):
        return True


@pytest.fixture
def memory_config():
    return MemoryConfig(system_user_id='system',
                        dedup_threshold=0.9,
                        relevance_threshold=0.3,
                        retrieval_limit=5,
                        list_limit=50,
                        list_threshold=0.1)


@pytest.fixture
def conversation_config():
    return ConversationConfig(key_prefix='conversation:',
                              ttl_seconds=3600,
                              summarize_threshold=10,
                              keep_recent=4,
                              system_prompt='You are a travel assistant.')


@pytest.fixture
def vector_store():
    return FakeVectorStore()


@pytest.fixture
def memory_service(vector_store, memory_config):
    return MemoryService(store=vector_store, memory_config=memory_config)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def conversation_store(fake_redis):
    config = RedisConfig(host='localhost', port=6379, db=0, password='', max_connections=5)
    return RedisConversationStore(config, key_prefix='conversation:', ttl_seconds=3600, client=fake_redis)


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def chat_service(llm, memory_service, conversation_store, conversation_config, memory_config):
    service = ChatService(llm=llm,
                          memory_service=memory_service,
                          conversation_store=conversation_store,
                          cache=ConversationCache(),
                          conversation_config=conversation_config,
                          memory_config=memory_config)
    yield service
    service.shutdown()
