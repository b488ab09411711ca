"""
Memory extraction: ask the LLM for memory candidates from one exchange.
"""

from dataclasses import dataclass
from typing import List

from ..models.core import ConversationMessage, MemoryType
from ..utils.bedrock_llm import BedrockLLM
from ..utils.errors import ParseError
from ..utils.json_utils import parse_json_array
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

EXTRACTION_PROMPT = """Analyze the following conversation and extract potential memories.

Extract two types of memories:

1. EPISODIC MEMORIES: Personal experiences and user-specific preferences
   Examples: "User prefers Delta airlines", "User visited Paris last year"

2. SEMANTIC MEMORIES: General domain knowledge and facts
   Examples: "Singapore requires passport", "Tokyo has excellent public transit"

Format your response as a JSON array with objects containing:
- "type": Either "EPISODIC" or "SEMANTIC"
- "content": The memory content

Only extract clear, factual information. Do not make assumptions or infer information that isn't explicitly stated.
If no memories can be extracted, return an empty array.

Response format example:
[
  {"type": "EPISODIC", "content": "User prefers window seats on flights"},
  {"type": "SEMANTIC", "content": "Paris is known for the Eiffel Tower"}
]"""


@dataclass
class MemoryCandidate:
    memory_type: MemoryType
    content: str


def parse_memory_candidates(response: str) -> List[MemoryCandidate]:
    """Leniently parse the extraction response.

    Code fences and trailing commas are tolerated. Anything that is not a
    JSON array yields no candidates; entries with an unknown type or blank
    content are skipped.
    """
    try:
        items = parse_json_array(response)
    except ParseError as e:
        logger.warning(f'LLM response was not in expected JSON format: {e}')
        return []

    candidates = []
    for item in items:
        if not isinstance(item, dict):
            continue
        content = item.get('content')
        if not isinstance(content, str) or not content.strip():
            continue
        try:
            memory_type = MemoryType(str(item.get('type', '')).strip().upper())
        except ValueError:
            logger.debug(f"Skipping candidate with unknown type {item.get('type')!r}")
            continue
        candidates.append(MemoryCandidate(memory_type, content.strip()))

    return candidates


class MemoryExtractionService:
    """Second LLM call of a turn, outside the visible conversation."""

    def __init__(self, llm: BedrockLLM):
        self.llm = llm

    def extract(self, user_message: str, assistant_response: str) -> List[MemoryCandidate]:
        """Extract memory candidates from a user message and the reply to it.

        Raises:
            ModelError: If the completion call fails
        """
        exchange = f'USER MESSAGE:\n{user_message}\n\nASSISTANT RESPONSE:\n{assistant_response}'
        response = self.llm.chat([ConversationMessage.system(EXTRACTION_PROMPT), ConversationMessage.user(exchange)])
        logger.debug(f'LLM memory extraction response: {response}')

        candidates = parse_memory_candidates(response)
        logger.debug(f'Extracted {len(candidates)} memory candidates')
        return candidates
