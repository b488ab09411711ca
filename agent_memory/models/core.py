"""
Core data models for long-term memory and short-term conversation history.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class MemoryType(str, Enum):
    """Category of a long-term memory.

    EPISODIC: personal experiences and user-specific preferences
              ("User prefers Delta airlines", "User visited Paris last year")
    SEMANTIC: general domain knowledge shared across users
              ("Singapore requires passport", "Tokyo has excellent public transit")
    """
    EPISODIC = 'EPISODIC'
    SEMANTIC = 'SEMANTIC'


@dataclass
class Memory:
    """A single remembered fact.

    Memories are append-only: they are created and searched, never updated.
    """
    content: str
    memory_type: MemoryType
    metadata: str = '{}'
    user_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'content': self.content,
            'memoryType': self.memory_type.value,
            'metadata': self.metadata,
            'userId': self.user_id,
            'createdAt': self.created_at.isoformat()
        }


@dataclass
class StoredMemory:
    """A memory plus its embedding. The embedding is None on read paths."""
    memory: Memory
    embedding: Optional[List[float]] = None


class MessageRole(str, Enum):
    SYSTEM = 'system'
    USER = 'user'
    ASSISTANT = 'assistant'


@dataclass
class ConversationMessage:
    """One role-tagged entry of a user's short-term conversation history."""
    role: MessageRole
    content: str

    @classmethod
    def system(cls, content: str) -> 'ConversationMessage':
        return cls(MessageRole.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> 'ConversationMessage':
        return cls(MessageRole.USER, content)

    @classmethod
    def assistant(cls, content: str) -> 'ConversationMessage':
        return cls(MessageRole.ASSISTANT, content)

    def to_dict(self) -> Dict[str, str]:
        return {'role': self.role.value, 'content': self.content}


@dataclass
class ChatMetrics:
    """Wall-clock timings of one chat turn, in milliseconds."""
    embedding_time_ms: int = 0
    memory_retrieval_time_ms: int = 0
    memory_extraction_time_ms: int = 0
    memory_storage_time_ms: int = 0
    llm_time_ms: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'embeddingTimeMs': self.embedding_time_ms,
            'memoryRetrievalTimeMs': self.memory_retrieval_time_ms,
            'memoryExtractionTimeMs': self.memory_extraction_time_ms,
            'memoryStorageTimeMs': self.memory_storage_time_ms,
            'llmTimeMs': self.llm_time_ms
        }


@dataclass
class ChatResult:
    """Assistant reply for a turn with its step timings."""
    response: str
    metrics: ChatMetrics

    def to_dict(self) -> Dict[str, Any]:
        return {'response': self.response, 'metrics': self.metrics.to_dict()}
