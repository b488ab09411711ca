"""
Chat Service: per-user conversation turns augmented with long-term memory.
"""

import time
from typing import List, Optional

from ..models.core import ChatMetrics, ChatResult, ConversationMessage, Memory, MemoryType, MessageRole
from ..utils.bedrock_llm import BedrockLLM
from ..utils.config import ConversationConfig, MemoryConfig, config
from ..utils.errors import ModelError, StorageError
from ..utils.logging_config import get_logger
from ..utils.redis_client import RedisConversationStore
from .conversation_cache import ConversationCache
from .memory_extraction import MemoryExtractionService
from .memory_service import MemoryService

logger = get_logger(__name__)

SUMMARY_PROMPT = """Summarize the key points of this conversation, including:
1. User preferences and important details
2. Topics discussed
3. Any decisions or conclusions reached

Keep the summary concise but informative."""


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def format_memories_as_context(memories: List[Memory]) -> str:
    formatted = '\n'.join(f'- [{memory.memory_type.value}] {memory.content}' for memory in memories)
    return ('I have access to the following relevant memories about this user or topic:\n\n'
            f'{formatted}\n\n'
            "Use this information to personalize your response, but don't explicitly mention\n"
            "that you're using stored memories unless directly asked about your memory capabilities.")


class ChatService:
    """Runs chat turns for many users.

    Each user moves from no history to an active history on the first turn.
    The cache is authoritative once a user's history is in it; the
    conversation store holds the durable copy, rewritten on every save.
    """

    def __init__(self,
                 llm: Optional[BedrockLLM] = None,
                 memory_service: Optional[MemoryService] = None,
                 conversation_store: Optional[RedisConversationStore] = None,
                 cache: Optional[ConversationCache] = None,
                 conversation_config: Optional[ConversationConfig] = None,
                 memory_config: Optional[MemoryConfig] = None):
        """Initialize the chat service.

        Collaborators not supplied are built from the global config.
        """
        self.conversation_config = conversation_config or config.conversation
        self.memory_config = memory_config or config.memory

        self.llm = llm or BedrockLLM(config.bedrock_llm)
        self.memory_service = memory_service or MemoryService(memory_config=self.memory_config)
        self.conversation_store = conversation_store or RedisConversationStore(config.redis,
                                                                               key_prefix=self.conversation_config.key_prefix,
                                                                               ttl_seconds=self.conversation_config.ttl_seconds)
        self.cache = cache if cache is not None else ConversationCache()
        self.extraction = MemoryExtractionService(self.llm)
        self.system_prompt = ConversationMessage.system(self.conversation_config.system_prompt)

        logger.info('Initialized ChatService')

    def send_message(self, message: str, user_id: str) -> ChatResult:
        """Run one chat turn for a user.

        Args:
            message: User message
            user_id: User the conversation belongs to

        Returns:
            The assistant reply with step timings

        Raises:
            ModelError: If the primary completion call fails
        """
        logger.info(f'Processing message from user {user_id}: {message}')
        metrics = ChatMetrics()

        with self.cache.lock(user_id):
            history = self._get_or_create_history(user_id)

            start = time.monotonic()
            memories = self.memory_service.retrieve_memories(query=message,
                                                             user_id=user_id,
                                                             limit=self.memory_config.retrieval_limit,
                                                             distance_threshold=self.memory_config.relevance_threshold,
                                                             metrics=metrics)
            metrics.memory_retrieval_time_ms = _elapsed_ms(start)

            turn_start = len(history)
            if memories:
                memory_context = format_memories_as_context(memories)
                history.append(ConversationMessage.system(memory_context))
                logger.info(f'Added memory context to conversation: {memory_context}')

            history.append(ConversationMessage.user(message))

            start = time.monotonic()
            try:
                response = self.llm.chat(history)
            except ModelError as e:
                logger.error(f'Chat completion failed for user {user_id}: {e}')
                del history[turn_start:]
                raise
            metrics.llm_time_ms = _elapsed_ms(start)

            history.append(ConversationMessage.assistant(response))
            self._persist(user_id, history)

            self._extract_and_store_memories(message, response, user_id, metrics)

            if len(history) > self.conversation_config.summarize_threshold:
                if self._summarize(history, user_id):
                    self._persist(user_id, history)

        return ChatResult(response=response, metrics=metrics)

    def get_conversation_history(self, user_id: str) -> List[ConversationMessage]:
        """Return a user's history without seeding a system prompt.

        A cache miss reads the conversation store and caches a non-empty result.
        """
        with self.cache.lock(user_id):
            cached = self.cache.get(user_id)
            if cached is not None:
                return list(cached)
            return list(self._load_from_store(user_id))

    def clear_conversation_history(self, user_id: str) -> None:
        """Forget a user's history in the cache and the conversation store."""
        with self.cache.lock(user_id):
            self.cache.remove(user_id)
            self.conversation_store.clear(user_id)

    def shutdown(self) -> None:
        self.cache.clear()
        logger.info('ChatService cache cleared')

    def _get_or_create_history(self, user_id: str) -> List[ConversationMessage]:
        history = self.cache.get(user_id)
        if history is not None:
            return history

        history = self._load_from_store(user_id)
        if not history:
            history = [self.system_prompt]
            self.cache.put(user_id, history)
        return history

    def _load_from_store(self, user_id: str) -> List[ConversationMessage]:
        try:
            history = self.conversation_store.load(user_id)
        except StorageError as e:
            logger.error(f'Error loading conversation history for user {user_id}: {e}')
            return []

        if history:
            self.cache.put(user_id, history)
        return history

    def _persist(self, user_id: str, history: List[ConversationMessage]) -> None:
        try:
            self.conversation_store.save(user_id, history)
        except StorageError as e:
            logger.error(f'Error saving conversation history for user {user_id}: {e}')

    def _extract_and_store_memories(self, user_message: str, assistant_response: str, user_id: str,
                                    metrics: ChatMetrics) -> None:
        logger.info('Extracting memories from conversation')

        start = time.monotonic()
        try:
            candidates = self.extraction.extract(user_message, assistant_response)
        except Exception as e:
            logger.error(f'Error extracting memories: {e}')
            return
        finally:
            metrics.memory_extraction_time_ms = _elapsed_ms(start)

        start = time.monotonic()
        for candidate in candidates:
            owner = user_id if candidate.memory_type == MemoryType.EPISODIC else self.memory_config.system_user_id
            try:
                self.memory_service.store_memory(content=candidate.content,
                                                 memory_type=candidate.memory_type,
                                                 user_id=owner,
                                                 metadata='{}')
            except Exception as e:
                logger.error(f'Failed to store memory: {e}')
        metrics.memory_storage_time_ms = _elapsed_ms(start)

    def _summarize(self, history: List[ConversationMessage], user_id: str) -> bool:
        """Replace the middle of a history with a model-written summary.

        Keeps the system prompt and the most recent messages. On failure the
        history is left untouched.

        Returns:
            True if the history was compacted
        """
        logger.info(f'Summarizing conversation for user {user_id}')

        keep = self.conversation_config.keep_recent
        system_prompt = history[0]
        recent = history[-keep:] if keep else []
        middle = history[1:len(history) - keep]

        labels = {MessageRole.USER: 'User', MessageRole.ASSISTANT: 'Assistant'}
        transcript = '\n'.join(f'{labels[m.role]}: {m.content}' for m in middle if m.role in labels)

        try:
            summary = self.llm.chat([ConversationMessage.system(SUMMARY_PROMPT), ConversationMessage.user(transcript)])
        except Exception as e:
            logger.error(f'Failed to summarize conversation: {e}')
            return False

        history[:] = [system_prompt, ConversationMessage.system(f'Conversation summary: {summary}'), *recent]
        logger.info('Conversation summarized successfully')
        return True
