"""Errors raised while translating between the two API formats."""

from typing import Any, Dict, Optional


class TranslationError(Exception):
    """Base class for errors that surface to the client as an error envelope."""

    error_type = 'api_error'
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        """Return the Anthropic-style error body for this error."""
        return {
            'type': 'error',
            'error': {
                'type': self.error_type,
                'message': self.message
            }
        }


class RequestTranslationError(TranslationError):
    """The client request could not be translated (e.g. missing messages)."""

    error_type = 'invalid_request_error'
    status_code = 400


class BackendTransportError(TranslationError):
    """The backend answered with a non-2xx status or could not be reached."""

    status_code = 502

    def __init__(self, message: str, status_code: Optional[int] = None,
                 body: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code)
        self.body = body

    def to_dict(self) -> Dict[str, Any]:
        if self.body is not None:
            return self.body
        return super().to_dict()


class FrameParseError(TranslationError):
    """A single SSE data line was not valid JSON. Recovered by skipping the line."""

    def __init__(self, message: str, line: str = ''):
        super().__init__(message)
        self.line = line


class ToolArgumentParseError(TranslationError):
    """A tool call's arguments string in a full response is not a JSON object."""

    status_code = 502

    def __init__(self, message: str, tool_call_id: Optional[str] = None,
                 tool_name: Optional[str] = None):
        super().__init__(message)
        self.tool_call_id = tool_call_id
        self.tool_name = tool_name
