"""API translation layer between Anthropic and OpenAI formats."""

from .anthropic_to_openai import translate_request
from .openai_to_anthropic import translate_response, translate_error, map_finish_reason
from .streaming import StreamTranslator, format_sse_event
from .errors import (
    TranslationError,
    RequestTranslationError,
    BackendTransportError,
    FrameParseError,
    ToolArgumentParseError,
)

__all__ = [
    'translate_request', 'translate_response', 'translate_error', 'map_finish_reason',
    'StreamTranslator', 'format_sse_event',
    'TranslationError', 'RequestTranslationError', 'BackendTransportError',
    'FrameParseError', 'ToolArgumentParseError',
]
