"""
Health check utilities for the application.
"""

from typing import Any, Callable, Dict

from .config import config
from .logging_config import get_logger

logger = get_logger(__name__)


def _component_status(service: str, check: Callable[[], bool], **details: Any) -> Dict[str, Any]:
    try:
        return {'healthy': bool(check()), 'service': service, **details}
    except Exception as e:
        return {'healthy': False, 'service': service, 'error': str(e)}


def get_health_status(chat_service) -> Dict[str, Any]:
    """Get detailed health status of all backends used by a chat service.

    Args:
        chat_service: ChatService whose collaborators are checked

    Returns:
        Dictionary with health status of each component
    """
    store = chat_service.memory_service.store
    return {
        'bedrock_llm': _component_status('Amazon Bedrock LLM', chat_service.llm.health_check,
                                         model=config.bedrock_llm.model_id),
        'bedrock_embed': _component_status('Amazon Bedrock Embed', store.embed.health_check,
                                           model=config.bedrock_embed.model_id),
        'opensearch': _component_status('Amazon OpenSearch', store.health_check, endpoint=config.opensearch.endpoint),
        'redis': _component_status('Redis', chat_service.conversation_store.health_check, host=config.redis.host)
    }


def check_health(chat_service) -> bool:
    """Check the health of all system components.

    Returns:
        True if all components are healthy, False otherwise
    """
    health_status = get_health_status(chat_service)
    all_healthy = all(status.get('healthy', False) for status in health_status.values())

    if all_healthy:
        logger.info('All system components are healthy')
    else:
        logger.warning('Some system components are unhealthy')

    return all_healthy
