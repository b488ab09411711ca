"""
Configuration management for backing services and memory/conversation policy.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

DEFAULT_SYSTEM_PROMPT = """You are a travel assistant helping users plan their trips. You remember user preferences
and provide personalized recommendations based on past interactions.

You have access to the following types of memory:
1. Short-term memory: The current conversation thread
2. Long-term memory:
   - Episodic: User preferences and past trip experiences (e.g., "User prefers window seats")
   - Semantic: General knowledge about travel destinations and requirements

Always be helpful, personal, and context-aware in your responses.

Always answer in text format. No markdown or special formatting."""


@dataclass
class BedrockLLMConfig:
    """Configuration for Amazon Bedrock LLM service."""
    region: str
    model_id: str
    max_tokens: int
    temperature: float
    retry_attempts: int
    retry_delay: float


@dataclass
class BedrockEmbedConfig:
    """Configuration for Amazon Bedrock Embed service."""
    region: str
    model_id: str
    dimension: int
    retry_attempts: int
    retry_delay: float


@dataclass
class OpenSearchConfig:
    """Configuration for the OpenSearch memory index."""
    endpoint: str
    port: int
    region: str
    index_name: str
    dimension: int
    service: str
    engine: str = 'lucene'


@dataclass
class RedisConfig:
    """Configuration for the Redis conversation store."""
    host: str
    port: int
    db: int
    password: str
    max_connections: int


@dataclass
class MemoryConfig:
    """Thresholds and limits for long-term memory."""
    system_user_id: str
    dedup_threshold: float
    relevance_threshold: float
    retrieval_limit: int
    list_limit: int
    list_threshold: float


@dataclass
class ConversationConfig:
    """Short-term conversation history settings."""
    key_prefix: str
    ttl_seconds: int
    summarize_threshold: int
    keep_recent: int
    system_prompt: str


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    library_log_level: str
    bedrock_llm: BedrockLLMConfig
    bedrock_embed: BedrockEmbedConfig
    opensearch: OpenSearchConfig
    redis: RedisConfig
    memory: MemoryConfig
    conversation: ConversationConfig
    mcp: MCPConfig


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')

    # Bedrock configuration
    bedrock_llm_config = BedrockLLMConfig(region=os.getenv('BEDROCK_LLM_AWS_REGION', 'us-east-1'),
                                          model_id=os.getenv('BEDROCK_LLM_MODEL_ID', 'anthropic.claude-3-haiku-20240307-v1:0'),
                                          max_tokens=int(os.getenv('BEDROCK_LLM_MAX_TOKENS', '2048')),
                                          temperature=float(os.getenv('BEDROCK_LLM_TEMPERATURE', '0.0')),
                                          retry_attempts=int(os.getenv('BEDROCK_LLM_RETRY_ATTEMPTS', '3')),
                                          retry_delay=float(os.getenv('BEDROCK_LLM_RETRY_DELAY', '1.0')))

    # Bedrock Embed configuration
    bedrock_embed_config = BedrockEmbedConfig(region=os.getenv('BEDROCK_EMBED_AWS_REGION', 'us-east-1'),
                                              model_id=os.getenv('BEDROCK_EMBED_MODEL_ID', 'amazon.titan-embed-text-v2:0'),
                                              dimension=int(os.getenv('BEDROCK_EMBED_DIMENSION', '1024')),
                                              retry_attempts=int(os.getenv('BEDROCK_EMBED_RETRY_ATTEMPTS', '3')),
                                              retry_delay=float(os.getenv('BEDROCK_EMBED_RETRY_DELAY', '1.0')))

    # Vector search configuration
    opensearch_config = OpenSearchConfig(endpoint=os.getenv('OPENSEARCH_ENDPOINT', 'localhost'),
                                         port=int(os.getenv('OPENSEARCH_PORT', '443')),
                                         region=os.getenv('OPENSEARCH_AWS_REGION', 'us-east-1'),
                                         index_name=os.getenv('OPENSEARCH_INDEX', 'memory_index'),
                                         dimension=int(os.getenv('OPENSEARCH_DIMENSION', '1024')),
                                         service=os.getenv('OPENSEARCH_SERVICE', 'aoss'),
                                         engine=os.getenv('OPENSEARCH_KNN_ENGINE', 'lucene'))

    # Conversation store configuration
    redis_config = RedisConfig(host=os.getenv('REDIS_HOST', 'localhost'),
                               port=int(os.getenv('REDIS_PORT', '6379')),
                               db=int(os.getenv('REDIS_DB', '0')),
                               password=os.getenv('REDIS_PASSWORD', ''),
                               max_connections=int(os.getenv('REDIS_MAX_CONNECTIONS', '50')))

    # Memory configuration
    memory_config = MemoryConfig(system_user_id=os.getenv('MEMORY_SYSTEM_USER_ID', 'system'),
                                 dedup_threshold=float(os.getenv('MEMORY_DEDUP_THRESHOLD', '0.9')),
                                 relevance_threshold=float(os.getenv('MEMORY_RELEVANCE_THRESHOLD', '0.3')),
                                 retrieval_limit=int(os.getenv('MEMORY_RETRIEVAL_LIMIT', '5')),
                                 list_limit=int(os.getenv('MEMORY_LIST_LIMIT', '50')),
                                 list_threshold=float(os.getenv('MEMORY_LIST_THRESHOLD', '0.1')))

    # Conversation configuration
    conversation_config = ConversationConfig(key_prefix=os.getenv('CONVERSATION_KEY_PREFIX', 'conversation:'),
                                             ttl_seconds=int(os.getenv('CONVERSATION_TTL_SECONDS', '3600')),
                                             summarize_threshold=int(os.getenv('CONVERSATION_SUMMARIZE_THRESHOLD', '10')),
                                             keep_recent=int(os.getenv('CONVERSATION_KEEP_RECENT', '4')),
                                             system_prompt=os.getenv('CONVERSATION_SYSTEM_PROMPT', DEFAULT_SYSTEM_PROMPT))

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'sse'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     library_log_level=os.getenv('LOG_LIBRARY_LEVEL', 'WARNING'),
                     bedrock_llm=bedrock_llm_config,
                     bedrock_embed=bedrock_embed_config,
                     opensearch=opensearch_config,
                     redis=redis_config,
                     memory=memory_config,
                     conversation=conversation_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()
