"""
MCP Interface Layer using fastmcp for chat and memory operations.
"""
from typing import Any, Dict, List, Optional

from fastmcp import FastMCP

from agent_memory.services.chat_service import ChatService
from agent_memory.utils.config import config
from agent_memory.utils.errors import ModelError, StorageError
from agent_memory.utils.health_check import get_health_status
from agent_memory.utils.logging_config import get_logger

logger = get_logger(__name__)

mcp = FastMCP('Agent Memory')
_chat_service: Optional[ChatService] = None


def get_chat_service() -> ChatService:
    """Build the chat service on first use."""
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService()
    return _chat_service


def _require_user_id(user_id: str) -> str:
    if not user_id or not user_id.strip():
        raise ValueError('User ID is required')
    return user_id.strip()


@mcp.tool()
def send_chat_message(user_id: str, message: str) -> Dict[str, Any]:
    """Send a chat message for a user.

    Args:
        user_id: User ID
        message: User message

    Returns:
        The assistant response and per-step timings in milliseconds
    """
    user_id = _require_user_id(user_id)
    if not message or not message.strip():
        raise ValueError('Message is required')

    try:
        return get_chat_service().send_message(message, user_id).to_dict()
    except (ModelError, StorageError) as e:
        logger.error(f'Chat turn failed for user {user_id}: {e}')
        raise Exception(f'Chat failed: {e}')


@mcp.tool()
def get_conversation_history(user_id: str) -> List[Dict[str, str]]:
    """Get the conversation history of a user as role/content pairs."""
    user_id = _require_user_id(user_id)
    return [message.to_dict() for message in get_chat_service().get_conversation_history(user_id)]


@mcp.tool()
def clear_conversation_history(user_id: str) -> Dict[str, str]:
    """Delete the conversation history of a user."""
    user_id = _require_user_id(user_id)
    try:
        get_chat_service().clear_conversation_history(user_id)
    except StorageError as e:
        logger.error(f'Failed to clear conversation history for user {user_id}: {e}')
        raise Exception(f'Clear failed: {e}')
    return {'status': 'success'}


@mcp.tool()
def retrieve_memories(user_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """List stored memories visible to a user (shared memories only if no user is given)."""
    try:
        memories = get_chat_service().memory_service.list_memories(user_id=user_id or None)
    except (ModelError, StorageError) as e:
        logger.error(f'Memory listing failed: {e}')
        raise Exception(f'Memory retrieval failed: {e}')

    logger.debug(f'MCP memory listing returned {len(memories)} memories for user {user_id}')
    return [memory.to_dict() for memory in memories]


@mcp.tool()
def health() -> Dict[str, Any]:
    """Report the health of each backend."""
    return get_health_status(get_chat_service())


if __name__ == '__main__':
    mcp.run(transport=config.mcp.transport, host=config.mcp.host, port=config.mcp.port)
