"""Translate OpenAI API responses to Anthropic format."""

import json
import logging
import uuid
from typing import Dict, Any, Optional

from .errors import BackendTransportError, ToolArgumentParseError

logger = logging.getLogger(__name__)

# OpenAI finish_reason -> Anthropic stop_reason; anything else is end_turn
FINISH_REASON_MAP = {
    'tool_calls': 'tool_use',
    'length': 'max_tokens',
}


def new_message_id() -> str:
    """Generate an Anthropic-style message ID."""
    return f"msg_{uuid.uuid4().hex[:24]}"


def new_tool_use_id() -> str:
    """Generate an Anthropic-style tool_use ID."""
    return f"toolu_{uuid.uuid4().hex[:24]}"


def map_finish_reason(finish_reason: Optional[str]) -> str:
    """Translate OpenAI finish_reason to Anthropic stop_reason."""
    return FINISH_REASON_MAP.get(finish_reason, 'end_turn')


def translate_response(
    openai_response: Dict[str, Any],
    original_model: Optional[str] = None
) -> Dict[str, Any]:
    """
    Translate an OpenAI /v1/chat/completions response to Anthropic /v1/messages format.

    Only the first choice is translated. Primary text wins over
    ``reasoning_content``; the two are never both surfaced.

    Args:
        openai_response: The OpenAI API response body
        original_model: Model name to report when the backend omits one

    Returns:
        Anthropic-compatible response body

    Raises:
        ToolArgumentParseError: If a tool call's arguments are not a JSON object
        BackendTransportError: If the response, its first choice or a tool call is not an object
    """
    if not isinstance(openai_response, dict):
        raise BackendTransportError('Backend response must be a JSON object')

    usage = openai_response.get('usage') or {}
    if not isinstance(usage, dict):
        usage = {}

    anthropic_response = {
        'id': openai_response.get('id') or new_message_id(),
        'type': 'message',
        'role': 'assistant',
        'content': [],
        'model': openai_response.get('model') or original_model,
        'stop_reason': 'end_turn',
        'stop_sequence': None,
        'usage': {
            'input_tokens': usage.get('prompt_tokens') or 0,
            'output_tokens': usage.get('completion_tokens') or 0
        }
    }

    choices = openai_response.get('choices') or []
    if not isinstance(choices, list):
        raise BackendTransportError('Backend response choices must be an array')
    if not choices:
        logger.warning("OpenAI response has no choices")
        return anthropic_response

    choice = choices[0]
    if not isinstance(choice, dict):
        raise BackendTransportError('Backend response choice must be an object')
    message = choice.get('message') or {}
    if not isinstance(message, dict):
        raise BackendTransportError('Backend response message must be an object')

    content_blocks = []

    if message.get('content'):
        content_blocks.append({'type': 'text', 'text': message['content']})
    elif message.get('reasoning_content'):
        content_blocks.append({'type': 'text', 'text': message['reasoning_content']})

    for tc in message.get('tool_calls') or []:
        if not isinstance(tc, dict) or not isinstance(tc.get('function') or {}, dict):
            raise BackendTransportError('Backend response tool call must be an object')
        func = tc.get('function') or {}
        content_blocks.append({
            'type': 'tool_use',
            'id': tc.get('id') or new_tool_use_id(),
            'name': func.get('name', ''),
            'input': _parse_tool_arguments(tc, func)
        })

    anthropic_response['content'] = content_blocks
    anthropic_response['stop_reason'] = map_finish_reason(choice.get('finish_reason'))

    return anthropic_response


def _parse_tool_arguments(tool_call: Dict[str, Any], func: Dict[str, Any]) -> Dict[str, Any]:
    """Parse a tool call's JSON-encoded arguments into an input object."""
    arguments = func.get('arguments')
    if arguments is None or arguments == '':
        return {}

    if isinstance(arguments, dict):
        return arguments

    name = func.get('name')
    try:
        parsed = json.loads(arguments)
    except (TypeError, json.JSONDecodeError) as e:
        raise ToolArgumentParseError(
            f"Tool call '{name}' has invalid JSON arguments: {e}",
            tool_call_id=tool_call.get('id'),
            tool_name=name
        ) from e

    if not isinstance(parsed, dict):
        raise ToolArgumentParseError(
            f"Tool call '{name}' arguments must be a JSON object, got {type(parsed).__name__}",
            tool_call_id=tool_call.get('id'),
            tool_name=name
        )

    return parsed


def translate_error(
    error_response: Any,
    status_code: int = 500
) -> Dict[str, Any]:
    """
    Translate a backend error body to Anthropic format.

    Handles OpenAI error bodies, bodies already in Anthropic format, and
    plain strings.
    """
    logger.debug(f"Translating error response ({status_code}): {error_response}")

    if isinstance(error_response, str):
        return _error_envelope(_error_type_for_status(status_code), error_response or 'Unknown error')

    if not isinstance(error_response, dict):
        return _error_envelope(_error_type_for_status(status_code), str(error_response))

    if error_response.get('type') == 'error' and isinstance(error_response.get('error'), dict):
        return error_response

    error_info = error_response.get('error')
    if isinstance(error_info, str):
        return _error_envelope(_error_type_for_status(status_code), error_info)

    error_info = error_info or {}
    openai_type = error_info.get('type') or error_info.get('code')
    error_type = ERROR_TYPE_MAP.get(openai_type) or _error_type_for_status(status_code)

    message = (
        error_info.get('message') or
        error_response.get('message') or
        error_response.get('detail') or
        json.dumps(error_response)
    )

    return _error_envelope(error_type, message)


# OpenAI error types -> Anthropic error types
ERROR_TYPE_MAP = {
    'invalid_request_error': 'invalid_request_error',
    'authentication_error': 'authentication_error',
    'permission_error': 'permission_error',
    'not_found_error': 'not_found_error',
    'rate_limit_error': 'rate_limit_error',
    'rate_limit_exceeded': 'rate_limit_error',
    'server_error': 'api_error',
    'timeout': 'overloaded_error',
}

STATUS_ERROR_TYPES = {
    400: 'invalid_request_error',
    401: 'authentication_error',
    403: 'permission_error',
    404: 'not_found_error',
    413: 'request_too_large',
    429: 'rate_limit_error',
    529: 'overloaded_error',
}


def _error_type_for_status(status_code: int) -> str:
    return STATUS_ERROR_TYPES.get(status_code, 'api_error')


def _error_envelope(error_type: str, message: str) -> Dict[str, Any]:
    return {
        'type': 'error',
        'error': {
            'type': error_type,
            'message': message
        }
    }
