"""Translate Anthropic API requests to OpenAI format."""

import json
import logging
from typing import Dict, Any, List

from .errors import RequestTranslationError

logger = logging.getLogger(__name__)

# Anthropic tool_choice values -> OpenAI tool_choice values
TOOL_CHOICE_MAP = {
    'auto': 'auto',
    'any': 'required',
    'none': 'none',
}

def default_input_schema() -> Dict[str, Any]:
    """Schema sent for tools declared without one."""
    return {'type': 'object', 'properties': {}}


def to_json_string(value: Any) -> str:
    """Serialize a value the way the backend expects tool payloads (compact, UTF-8)."""
    return json.dumps(value, separators=(',', ':'), ensure_ascii=False)


def translate_request(
    anthropic_request: Dict[str, Any],
    fan_out_tool_results: bool = False,
    include_usage: bool = False
) -> Dict[str, Any]:
    """
    Translate an Anthropic /v1/messages request to OpenAI /v1/chat/completions format.

    The returned ``model`` is the client's model name; callers pin it to the
    configured backend model after translation.

    Args:
        anthropic_request: The Anthropic API request body
        fan_out_tool_results: Emit one tool message per tool_result block
            instead of only the first one
        include_usage: Ask the backend to report token usage in the stream

    Returns:
        OpenAI-compatible request body

    Raises:
        RequestTranslationError: If the request is not an object or has no
            messages list
    """
    if not isinstance(anthropic_request, dict):
        raise RequestTranslationError('Request body must be a JSON object')

    raw_messages = anthropic_request.get('messages')
    if not isinstance(raw_messages, list):
        raise RequestTranslationError('messages: field required and must be an array')

    messages = []

    # System prompt (Anthropic has it at top level, OpenAI has it as first message)
    system_prompt = anthropic_request.get('system')
    if system_prompt:
        messages.append({'role': 'system', 'content': _stringify_system(system_prompt)})

    for i, msg in enumerate(raw_messages):
        if not isinstance(msg, dict):
            raise RequestTranslationError(f'messages.{i}: must be an object')
        messages.extend(_translate_message(msg, fan_out_tool_results))

    stream = bool(anthropic_request.get('stream', False))
    openai_request = {
        'model': anthropic_request.get('model'),
        'messages': messages,
        'stream': stream,
    }

    if anthropic_request.get('max_tokens') is not None:
        openai_request['max_tokens'] = anthropic_request['max_tokens']

    if anthropic_request.get('temperature') is not None:
        openai_request['temperature'] = anthropic_request['temperature']

    if anthropic_request.get('top_p') is not None:
        openai_request['top_p'] = anthropic_request['top_p']

    if anthropic_request.get('stop_sequences') is not None:
        openai_request['stop'] = anthropic_request['stop_sequences']

    if anthropic_request.get('top_k') is not None:
        logger.debug("Dropping top_k (no chat-completion equivalent)")

    if stream and include_usage:
        openai_request['stream_options'] = {'include_usage': True}

    tools = anthropic_request.get('tools')
    if tools:
        openai_request['tools'] = _translate_tools(tools)

    if anthropic_request.get('tool_choice') is not None:
        openai_request['tool_choice'] = _translate_tool_choice(anthropic_request['tool_choice'])

    return openai_request


def _stringify_system(system_prompt: Any) -> str:
    """Flatten a system prompt given as a string or a list of text blocks."""
    if isinstance(system_prompt, str):
        return system_prompt

    if isinstance(system_prompt, list):
        return '\n'.join(_block_text(block, 'system') for block in system_prompt)

    return str(system_prompt)


def _block_text(block: Any, where: str) -> str:
    """Return the text of a text block, rejecting anything that is not a string."""
    if not isinstance(block, dict):
        raise RequestTranslationError(f'{where}: text blocks must be objects')
    text = block.get('text', '')
    if not isinstance(text, str):
        raise RequestTranslationError(f'{where}: text must be a string')
    return text


def _translate_message(msg: Dict[str, Any], fan_out_tool_results: bool) -> List[Dict[str, Any]]:
    """
    Translate a single message from Anthropic to OpenAI format.

    Returns a list because a user message holding several tool results fans
    out into several tool messages when ``fan_out_tool_results`` is set.
    """
    role = msg.get('role')
    content = msg.get('content')

    if not isinstance(content, list):
        return [{'role': role, 'content': content}]

    blocks = [block for block in content if isinstance(block, dict)]
    tool_results = [b for b in blocks if b.get('type') == 'tool_result']
    tool_uses = [b for b in blocks if b.get('type') == 'tool_use']
    texts = [b for b in blocks if b.get('type') == 'text']
    images = [b for b in blocks if b.get('type') == 'image']

    if role == 'user' and tool_results:
        if not fan_out_tool_results:
            if len(tool_results) > 1:
                logger.debug(f"Translating first of {len(tool_results)} tool_result blocks")
            return [_translate_tool_result(tool_results[0])]

        result = [_translate_tool_result(block) for block in tool_results]
        remaining = [b for b in blocks if b.get('type') in ('text', 'image')]
        if remaining:
            result.extend(_translate_message({'role': role, 'content': remaining}, False))
        return result

    if role == 'assistant' and tool_uses:
        return [_translate_tool_use_message(texts, tool_uses)]

    if images:
        parts = []
        for block in blocks:
            if block.get('type') == 'text':
                parts.append({'type': 'text', 'text': _block_text(block, role)})
            elif block.get('type') == 'image':
                parts.append(_translate_image(block))
        return [{'role': role, 'content': parts}]

    return [{'role': role, 'content': ''.join(_block_text(b, role) for b in texts)}]


def _translate_tool_use_message(texts: List[Dict[str, Any]],
                                tool_uses: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Build an assistant message carrying one tool call per tool_use block."""
    tool_calls = []
    for block in tool_uses:
        tool_calls.append({
            'id': block.get('id'),
            'type': 'function',
            'function': {
                'name': block.get('name'),
                'arguments': to_json_string(block.get('input', {}))
            }
        })

    return {
        'role': 'assistant',
        'content': ''.join(_block_text(b, 'assistant') for b in texts) or None,
        'tool_calls': tool_calls,
    }


def _translate_tool_result(block: Dict[str, Any]) -> Dict[str, Any]:
    """Translate a tool_result block to an OpenAI tool message."""
    content = block.get('content', '')
    if not isinstance(content, str):
        content = to_json_string(content)

    return {
        'role': 'tool',
        'tool_call_id': block.get('tool_use_id'),
        'content': content
    }


def _translate_image(block: Dict[str, Any]) -> Dict[str, Any]:
    """Translate an image block to an image_url content part."""
    source = block.get('source') or {}
    if not isinstance(source, dict):
        raise RequestTranslationError('image: source must be an object')
    if source.get('type') == 'base64':
        url = f"data:{source.get('media_type')};base64,{source.get('data', '')}"
    else:
        url = source.get('url')

    return {'type': 'image_url', 'image_url': {'url': url}}


def _translate_tools(anthropic_tools: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Translate Anthropic tools to OpenAI functions format."""
    if not isinstance(anthropic_tools, list):
        raise RequestTranslationError('tools: must be an array')

    openai_tools = []

    for i, tool in enumerate(anthropic_tools):
        if not isinstance(tool, dict):
            raise RequestTranslationError(f'tools.{i}: must be an object')

        function = {'name': tool.get('name')}
        if 'description' in tool:
            function['description'] = tool['description']
        function['parameters'] = tool['input_schema'] if 'input_schema' in tool else default_input_schema()

        openai_tools.append({'type': 'function', 'function': function})

    return openai_tools


def _translate_tool_choice(anthropic_choice: Any) -> Any:
    """Translate Anthropic tool_choice to OpenAI format."""
    if isinstance(anthropic_choice, str):
        return TOOL_CHOICE_MAP.get(anthropic_choice, 'auto')

    if isinstance(anthropic_choice, dict):
        choice_type = anthropic_choice.get('type')

        if choice_type == 'tool':
            return {
                'type': 'function',
                'function': {'name': anthropic_choice.get('name')}
            }

        return TOOL_CHOICE_MAP.get(choice_type, 'auto')

    return 'auto'

