"""Translate streaming responses between OpenAI and Anthropic SSE formats."""

import codecs
import json
import logging
from enum import Enum
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field

from .errors import FrameParseError
from .openai_to_anthropic import map_finish_reason, new_message_id, new_tool_use_id

logger = logging.getLogger(__name__)

DATA_PREFIX = 'data: '
DONE_PAYLOAD = '[DONE]'

# Longest incomplete line kept between transport chunks
MAX_LINE_BUFFER = 1024 * 1024


class StreamPhase(Enum):
    AWAITING_FIRST_DELTA = 'awaiting_first_delta'
    STREAMING_TEXT = 'streaming_text'
    STREAMING_TOOL_CALL = 'streaming_tool_call'
    FINISHED = 'finished'


@dataclass
class StreamState:
    """Track state during stream translation."""
    model: Optional[str] = None
    phase: StreamPhase = StreamPhase.AWAITING_FIRST_DELTA
    message_started: bool = False
    stop_reason: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0
    usage_reported: bool = False
    frames: int = 0
    parse_errors: int = 0
    # Block lifecycle mode only
    next_block_index: int = 0
    open_block_index: Optional[int] = None
    open_block_type: Optional[str] = None
    tool_blocks: Dict[int, int] = field(default_factory=dict)


def format_sse_event(event: Dict[str, Any]) -> str:
    """Render one Anthropic event as an SSE frame."""
    return f"event: {event['type']}\ndata: {json.dumps(event, ensure_ascii=False)}\n\n"


class StreamTranslator:
    """
    Translates an OpenAI chat-completion SSE byte stream to Anthropic SSE events.

    OpenAI format:
        data: {"choices":[{"delta":{"content":"Hi"}}]}

    Anthropic format:
        event: message_start
        data: {"type":"message_start","message":{...}}

        event: content_block_delta
        data: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":"Hi"}}

        event: message_stop
        data: {"type":"message_stop"}

    Bytes are fed as they arrive from the transport; chunk boundaries may
    fall anywhere, including inside a line or a UTF-8 sequence. Events are
    only produced for complete lines.

    By default all deltas target content block 0 and tool call fragments
    are forwarded as ``tool_use_delta``. With ``block_events=True`` the
    translator also emits ``content_block_start``/``content_block_stop``,
    gives every block its own index and sends tool arguments as
    ``input_json_delta``.

    One instance serves exactly one response.
    """

    def __init__(self, original_model: Optional[str] = None, block_events: bool = False,
                 max_buffer_size: int = MAX_LINE_BUFFER):
        self.state = StreamState(model=original_model)
        self.block_events = block_events
        self.max_buffer_size = max_buffer_size
        self._decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
        self._buffer = ''
        self._discard_partial = False

    @property
    def finished(self) -> bool:
        return self.state.phase is StreamPhase.FINISHED

    def feed(self, chunk: bytes) -> List[Dict[str, Any]]:
        """
        Consume one transport chunk.

        Returns:
            Anthropic events for every complete line in the buffer
        """
        if self.finished:
            return []

        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk

        lines = self._buffer.split('\n')
        self._buffer = lines.pop()

        if self._discard_partial and lines:
            # Tail of an oversized line dropped earlier
            lines.pop(0)
            self._discard_partial = False

        if len(self._buffer) > self.max_buffer_size:
            logger.warning(f"Discarding SSE line over {self.max_buffer_size} chars")
            self.state.parse_errors += 1
            self._buffer = ''
            self._discard_partial = True

        events = []
        for line in lines:
            events.extend(self._process_line(line))
        return events

    def close(self) -> List[Dict[str, Any]]:
        """
        Signal the end of the transport.

        Flushes any final unterminated line and, if the backend never sent
        ``[DONE]``, terminates the client stream as a normal end.
        """
        if self.finished:
            return []

        self._buffer += self._decoder.decode(b'', final=True)
        events = []
        if self._buffer and not self._discard_partial:
            events.extend(self._process_line(self._buffer))
        self._buffer = ''

        if not self.finished:
            logger.debug("Backend stream ended without [DONE]")
            events.extend(self._finish())
        return events

    def translate_chunk(self, chunk: bytes) -> List[str]:
        """Like ``feed`` but returns rendered SSE frames."""
        return [format_sse_event(event) for event in self.feed(chunk)]

    def translate_close(self) -> List[str]:
        """Like ``close`` but returns rendered SSE frames."""
        return [format_sse_event(event) for event in self.close()]

    def get_usage(self) -> Dict[str, int]:
        """Get token usage reported by the backend so far."""
        return {
            'input_tokens': self.state.input_tokens,
            'output_tokens': self.state.output_tokens
        }

    def _process_line(self, line: str) -> List[Dict[str, Any]]:
        if self.finished:
            return []

        line = line.rstrip('\r')
        if not line.startswith(DATA_PREFIX):
            return []

        payload = line[len(DATA_PREFIX):]
        if payload == DONE_PAYLOAD:
            return self._finish()

        try:
            frame = _parse_frame(payload)
        except FrameParseError as e:
            self.state.parse_errors += 1
            logger.warning(f"{e.message}, line: {e.line[:200]}")
            return []

        return self.translate_frame(frame)

    def translate_frame(self, frame: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Translate one parsed backend frame into zero or more Anthropic events."""
        if self.finished:
            return []

        self.state.frames += 1
        events = []

        problem = _shape_problem(frame)
        if problem:
            self.state.parse_errors += 1
            logger.warning(f"Skipping malformed chunk: {problem}")
            return events

        # Some APIs send errors via SSE
        if 'error' in frame:
            events.append(_error_event(frame['error']))
            return events

        usage = frame.get('usage')
        if isinstance(usage, dict):
            self.state.input_tokens = usage.get('prompt_tokens') or 0
            self.state.output_tokens = usage.get('completion_tokens') or 0
            self.state.usage_reported = True

        choices = frame.get('choices') or []
        if not choices:
            return events

        choice = choices[0]
        delta = choice.get('delta') or {}
        finish_reason = choice.get('finish_reason')
        text = delta.get('content')
        tool_calls = delta.get('tool_calls')

        if not self.state.message_started:
            events.append(self._message_start(frame))

        if text:
            events.extend(self._text_events(text))

        if tool_calls:
            for tc_delta in tool_calls:
                if not isinstance(tc_delta, dict) or not isinstance(tc_delta.get('function') or {}, dict):
                    self.state.parse_errors += 1
                    logger.warning(f"Skipping malformed tool call delta: {tc_delta!r:.200}")
                    continue
                events.extend(self._tool_call_events(tc_delta))

        if finish_reason:
            events.extend(self._finish_reason_events(finish_reason))

        return events

    def _message_start(self, frame: Dict[str, Any]) -> Dict[str, Any]:
        self.state.message_started = True
        if frame.get('model') and not self.state.model:
            self.state.model = frame['model']

        return {
            'type': 'message_start',
            'message': {
                'id': frame.get('id') or new_message_id(),
                'type': 'message',
                'role': 'assistant',
                'content': [],
                'model': self.state.model,
                'stop_reason': None,
                'stop_sequence': None,
                'usage': {
                    'input_tokens': self.state.input_tokens,
                    'output_tokens': 0
                }
            }
        }

    def _text_events(self, text: str) -> List[Dict[str, Any]]:
        self.state.phase = StreamPhase.STREAMING_TEXT
        events = []
        index = 0

        if self.block_events:
            if self.state.open_block_type != 'text':
                events.extend(self._close_block())
                events.append(self._open_block('text', {'type': 'text', 'text': ''}))
            index = self.state.open_block_index

        events.append({
            'type': 'content_block_delta',
            'index': index,
            'delta': {'type': 'text_delta', 'text': text}
        })
        return events

    def _tool_call_events(self, tc_delta: Dict[str, Any]) -> List[Dict[str, Any]]:
        self.state.phase = StreamPhase.STREAMING_TOOL_CALL
        func = tc_delta.get('function') or {}

        if not self.block_events:
            delta = {'type': 'tool_use_delta'}
            if tc_delta.get('id'):
                delta['id'] = tc_delta['id']
            if func.get('name'):
                delta['name'] = func['name']
            if func.get('arguments') is not None:
                delta['input'] = func['arguments']
            return [{'type': 'content_block_delta', 'index': 0, 'delta': delta}]

        events = []
        tc_index = tc_delta.get('index', 0)
        if tc_index not in self.state.tool_blocks:
            events.extend(self._close_block())
            events.append(self._open_block('tool_use', {
                'type': 'tool_use',
                'id': tc_delta.get('id') or new_tool_use_id(),
                'name': func.get('name') or '',
                'input': {}
            }))
            self.state.tool_blocks[tc_index] = self.state.open_block_index
        elif self.state.tool_blocks[tc_index] != self.state.open_block_index:
            # Its block was already stopped; indices are never reused
            logger.warning(f"Dropping late fragment for closed tool call {tc_index}")
            return events

        if func.get('arguments'):
            events.append({
                'type': 'content_block_delta',
                'index': self.state.tool_blocks[tc_index],
                'delta': {'type': 'input_json_delta', 'partial_json': func['arguments']}
            })
        return events

    def _finish_reason_events(self, finish_reason: str) -> List[Dict[str, Any]]:
        self.state.stop_reason = map_finish_reason(finish_reason)
        events = self._close_block()

        # Placeholder count unless the backend already reported usage
        output_tokens = self.state.output_tokens if self.state.usage_reported else 1
        events.append({
            'type': 'message_delta',
            'delta': {
                'stop_reason': self.state.stop_reason,
                'stop_sequence': None
            },
            'usage': {'output_tokens': output_tokens}
        })
        return events

    def _finish(self) -> List[Dict[str, Any]]:
        events = self._close_block()
        events.append({'type': 'message_stop'})
        self.state.phase = StreamPhase.FINISHED
        return events

    def _open_block(self, block_type: str, content_block: Dict[str, Any]) -> Dict[str, Any]:
        index = self.state.next_block_index
        self.state.next_block_index += 1
        self.state.open_block_index = index
        self.state.open_block_type = block_type
        return {
            'type': 'content_block_start',
            'index': index,
            'content_block': content_block
        }

    def _close_block(self) -> List[Dict[str, Any]]:
        if not self.block_events or self.state.open_block_index is None:
            return []

        event = {'type': 'content_block_stop', 'index': self.state.open_block_index}
        self.state.open_block_index = None
        self.state.open_block_type = None
        return [event]


def _shape_problem(frame: Any) -> Optional[str]:
    """Describe why a parsed chunk cannot be translated, or return None."""
    if not isinstance(frame, dict):
        return 'chunk is not an object'
    choices = frame.get('choices') or []
    if not isinstance(choices, list):
        return 'choices is not an array'
    if not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        return 'choice is not an object'
    delta = choice.get('delta') or {}
    if not isinstance(delta, dict):
        return 'delta is not an object'
    if not isinstance(delta.get('tool_calls') or [], list):
        return 'tool_calls is not an array'
    return None


def _parse_frame(payload: str) -> Dict[str, Any]:
    try:
        frame = json.loads(payload)
    except json.JSONDecodeError as e:
        raise FrameParseError(f"Failed to parse chunk JSON: {e}", payload) from e

    if not isinstance(frame, dict):
        raise FrameParseError("Chunk JSON is not an object", payload)
    return frame


def _error_event(error_obj: Any) -> Dict[str, Any]:
    logger.error(f"Error in stream data: {error_obj}")
    if isinstance(error_obj, dict):
        error_msg = error_obj.get('message', str(error_obj))
    else:
        error_msg = str(error_obj)

    return {
        'type': 'error',
        'error': {
            'type': 'api_error',
            'message': error_msg
        }
    }
