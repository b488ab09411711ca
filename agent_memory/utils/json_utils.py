"""
JSON utilities for cleaning LLM responses and encoding stored conversation text.
"""

import json
import re
from typing import Any, List

from .errors import ParseError

# Order matters: backslash must be escaped first
_ESCAPES = (('\\', '\\\\'), ('"', '\\"'), ('\n', '\\n'), ('\r', '\\r'), ('\t', '\\t'))
_UNESCAPES = {'\\': '\\', '"': '"', 'n': '\n', 'r': '\r', 't': '\t'}
_ESCAPE_SEQUENCE = re.compile(r'\\(.)', re.DOTALL)
_TRAILING_COMMA = re.compile(r',\s*([\]}])')


def clean_json_response(response: str) -> str:
    """Clean LLM response by removing code block markers.

    Args:
        response: Raw LLM response

    Returns:
        Cleaned JSON string
    """
    response = response.strip()

    # Remove ```json and ``` markers
    if response.startswith('```json'):
        response = response[7:]
    elif response.startswith('```'):
        response = response[3:]

    if response.endswith('```'):
        response = response[:-3]

    return response.strip()


def parse_json_array(response: str) -> List[Any]:
    """Parse a JSON array out of a model response.

    Code fences are stripped and trailing commas before a closing bracket or
    brace are tolerated.

    Args:
        response: Raw LLM response

    Returns:
        The parsed list

    Raises:
        ParseError: If the response is not a bracket-delimited JSON array
    """
    cleaned = clean_json_response(response or '')
    if not (cleaned.startswith('[') and cleaned.endswith(']')):
        raise ParseError(f'Response is not a JSON array: {cleaned[:80]!r}')

    try:
        data = json.loads(_TRAILING_COMMA.sub(r'\1', cleaned))
    except json.JSONDecodeError as e:
        raise ParseError(f'Invalid JSON array: {e}')

    if not isinstance(data, list):
        raise ParseError(f'Expected list, got {type(data).__name__}')
    return data


def validate_metadata(metadata: str) -> str:
    """Check that metadata has the shape of a JSON object.

    Only the enclosing braces are checked; the content is opaque.

    Args:
        metadata: Metadata string supplied by the caller

    Returns:
        The metadata unchanged

    Raises:
        ParseError: If the metadata is not brace-delimited
    """
    if not isinstance(metadata, str):
        raise ParseError(f'Metadata is not a string: {metadata!r}')
    stripped = metadata.strip()
    if not (stripped.startswith('{') and stripped.endswith('}')):
        raise ParseError(f'Metadata is not a JSON object: {metadata!r}')
    return metadata


def escape_json(text: str) -> str:
    """Escape backslash, quote, newline, carriage return and tab."""
    for raw, escaped in _ESCAPES:
        text = text.replace(raw, escaped)
    return text


def unescape_json(text: str) -> str:
    """Inverse of escape_json.

    Sequences are decoded left to right in a single pass so that an escaped
    backslash followed by 'n' stays a backslash and an 'n'.
    """
    return _ESCAPE_SEQUENCE.sub(lambda m: _UNESCAPES.get(m.group(1), m.group(0)), text)
