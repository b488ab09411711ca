"""
Amazon Bedrock LLM client wrapper with retry logic and error handling.
"""

import json
import random
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..models.core import ConversationMessage, MessageRole
from .config import BedrockLLMConfig
from .errors import ModelError
from .logging_config import get_logger

logger = get_logger(__name__)

# Converse requires the first turn to come from the user
CONTINUATION_PROMPT = 'Continue the conversation.'


class BedrockLLMError(ModelError):
    """Custom exception for Bedrock LLM errors."""
    pass


def to_converse_messages(messages: Sequence[ConversationMessage]) -> Tuple[List[Dict[str, Any]], List[Dict[str, str]]]:
    """Split a role-tagged history into Converse messages and system blocks.

    System messages become system blocks in order of appearance. Consecutive
    messages with the same role are merged into one Converse message, since
    Converse requires user and assistant turns to alternate.

    Returns:
        Tuple of (messages, system)
    """
    system: List[Dict[str, str]] = []
    converse: List[Dict[str, Any]] = []

    for message in messages:
        if message.role == MessageRole.SYSTEM:
            system.append({'text': message.content})
            continue
        if not message.content:
            continue
        role = message.role.value
        if converse and converse[-1]['role'] == role:
            converse[-1]['content'].append({'text': message.content})
        else:
            converse.append({'role': role, 'content': [{'text': message.content}]})

    if not converse or converse[0]['role'] != MessageRole.USER.value:
        converse.insert(0, {'role': MessageRole.USER.value, 'content': [{'text': CONTINUATION_PROMPT}]})

    return converse, system


class BedrockLLM:
    """Amazon Bedrock LLM client with retry logic and error handling."""

    def __init__(self, config: BedrockLLMConfig):
        """
        Initialize Bedrock LLM client.

        Args:
            config: BedrockLLMConfig instance with connection parameters
        """
        self.config = config
        self.model_id = config.model_id

        # Create Bedrock runtime client with timeout configuration
        self.bedrock_runtime = boto3.client(
            'bedrock-runtime',
            region_name=config.region,
            config=BotoConfig(
                connect_timeout=60,
                read_timeout=300,
                retries={'max_attempts': 0}  # We handle retries manually
            ))

        logger.info(f'Initialized Bedrock LLM client with model: {self.model_id}')

    def generate_response(self,
                          messages: List[Dict[str, Any]],
                          system: Optional[List[Dict[str, str]]] = None,
                          max_tokens: Optional[int] = None,
                          temperature: Optional[float] = None,
                          stop_sequences: Optional[List[str]] = None) -> Tuple[str, Optional[Dict[str, Any]]]:
        """
        Generate response using Bedrock LLM with retry logic.

        Args:
            messages: List of message dictionaries in Bedrock format
            system: System content blocks for the conversation
            max_tokens: Maximum tokens to generate (uses config default if None)
            temperature: Temperature for generation (uses config default if None)
            stop_sequences: Stop sequences for generation

        Returns:
            Tuple of (response_text, invoke_metrics)

        Raises:
            BedrockLLMError: If all retry attempts fail
        """
        inf_params = {
            'maxTokens': max_tokens or self.config.max_tokens,
            'temperature': temperature if temperature is not None else self.config.temperature,
            'stopSequences': stop_sequences or [],
        }
        request = {'modelId': self.model_id, 'messages': messages, 'inferenceConfig': inf_params}
        if system:
            request['system'] = system

        for attempt in range(self.config.retry_attempts):
            try:
                logger.debug(f'Bedrock LLM request attempt {attempt + 1}/{self.config.retry_attempts}')

                stream = self.bedrock_runtime.converse_stream(**request).get('stream')

                msg = ''
                invoke_metrics = None

                if stream:
                    for event in stream:
                        if 'contentBlockDelta' in event:
                            msg += event['contentBlockDelta']['delta'].get('text', '')
                        if 'metadata' in event:
                            invoke_metrics = {**event['metadata']['usage'], **event['metadata']['metrics']}

                logger.debug(f'Bedrock LLM response generated successfully (length: {len(msg)})')
                return msg, invoke_metrics

            except (ClientError, BotoCoreError, json.JSONDecodeError) as e:
                logger.warning(f'Bedrock LLM attempt {attempt + 1}/{self.config.retry_attempts} failed: {e}')

                if attempt < self.config.retry_attempts - 1:
                    # Exponential backoff with jitter
                    delay = self.config.retry_delay * (2**attempt) + random.uniform(0, 1)
                    time.sleep(delay)
                else:
                    raise BedrockLLMError(f'Bedrock LLM failed after {self.config.retry_attempts} attempts: {e}')

            except Exception as e:
                logger.error(f'Unexpected error in Bedrock LLM: {e}')
                raise BedrockLLMError(f'Unexpected Bedrock LLM error: {e}')

        raise BedrockLLMError(f'Bedrock LLM failed after {self.config.retry_attempts} attempts')

    def chat(self, messages: Sequence[ConversationMessage]) -> str:
        """
        Complete a role-tagged conversation.

        Args:
            messages: Conversation history, system messages included

        Returns:
            The assistant text

        Raises:
            BedrockLLMError: If the call fails
        """
        converse, system = to_converse_messages(messages)
        response, invoke_metrics = self.generate_response(messages=converse, system=system)
        if invoke_metrics:
            logger.debug(f'Bedrock LLM usage: {invoke_metrics}')
        return response

    def health_check(self) -> bool:
        try:
            response = self.chat([
                ConversationMessage.system("You are a helpful assistant. Respond with just 'OK'."),
                ConversationMessage.user('Hi')
            ])
            return len(response.strip()) > 0

        except Exception as e:
            logger.error(f'Bedrock LLM health check failed: {e}')
            return False
