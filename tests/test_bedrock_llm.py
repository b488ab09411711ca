"""
Unit tests for converting conversation history to Bedrock Converse requests.
"""

from agent_memory.models.core import ConversationMessage
from agent_memory.utils.bedrock_llm import CONTINUATION_PROMPT, to_converse_messages


def test_system_messages_become_system_blocks():
    messages, system = to_converse_messages([
        ConversationMessage.system('prompt'),
        ConversationMessage.user('hi'),
        ConversationMessage.system('memory context'),
        ConversationMessage.assistant('hello'),
    ])

    assert system == [{'text': 'prompt'}, {'text': 'memory context'}]
    assert messages == [
        {'role': 'user', 'content': [{'text': 'hi'}]},
        {'role': 'assistant', 'content': [{'text': 'hello'}]},
    ]


def test_consecutive_roles_are_merged():
    messages, _ = to_converse_messages([
        ConversationMessage.user('first'),
        ConversationMessage.system('context'),
        ConversationMessage.user('second'),
    ])

    assert messages == [{'role': 'user', 'content': [{'text': 'first'}, {'text': 'second'}]}]


def test_history_starting_with_assistant_gets_user_turn():
    messages, _ = to_converse_messages([
        ConversationMessage.system('prompt'),
        ConversationMessage.assistant('earlier answer'),
        ConversationMessage.user('next question'),
    ])

    assert messages[0] == {'role': 'user', 'content': [{'text': CONTINUATION_PROMPT}]}
    assert [m['role'] for m in messages] == ['user', 'assistant', 'user']


def test_system_only_prompt():
    messages, system = to_converse_messages([ConversationMessage.system('instructions')])

    assert system == [{'text': 'instructions'}]
    assert messages == [{'role': 'user', 'content': [{'text': CONTINUATION_PROMPT}]}]
