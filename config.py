"""Configuration management for msgbridge."""

import os
import logging

logger = logging.getLogger(__name__)

VERSION = '1.0.0'

DEFAULT_BACKEND_URL = 'https://llm.chutes.ai/v1/chat/completions'
DEFAULT_BACKEND_MODEL = 'zai-org/GLM-4.5-Air'

# Model ids advertised on /v1/models; clients pick one, the backend model is used regardless
CLIENT_MODELS = [
    'claude-3-5-sonnet-20241022',
    'claude-3-opus-20240229',
    'claude-3-haiku-20240307',
]


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


class Config:
    """Application configuration loaded from environment variables."""

    def __init__(self):
        # Proxy settings
        self.port = int(os.getenv('PORT', '3333'))
        self.debug = _env_flag('DEBUG')
        self.max_logs = int(os.getenv('MAX_LOGS', '100'))

        # Backend endpoint
        self.backend_url = os.getenv('BACKEND_URL', DEFAULT_BACKEND_URL)
        self.backend_api_key = os.getenv('BACKEND_API_KEY')
        self.backend_model = os.getenv('BACKEND_MODEL', DEFAULT_BACKEND_MODEL)
        self.request_timeout = float(os.getenv('REQUEST_TIMEOUT', '120'))
        self.stream_timeout = float(os.getenv('STREAM_TIMEOUT', '600'))

        # Translation behavior
        self.fan_out_tool_results = _env_flag('FAN_OUT_TOOL_RESULTS')
        self.stream_block_events = _env_flag('STREAM_BLOCK_EVENTS')
        self.stream_include_usage = _env_flag('STREAM_INCLUDE_USAGE')

    def is_api_key_configured(self) -> bool:
        """Check if a backend API key is configured."""
        return bool(self.backend_api_key)

    def backend_headers(self, stream: bool) -> dict:
        """Build headers for a backend request."""
        headers = {
            'Content-Type': 'application/json',
            'Accept': 'text/event-stream' if stream else 'application/json',
        }
        if self.is_api_key_configured():
            headers['Authorization'] = f'Bearer {self.backend_api_key}'
        else:
            logger.warning("No BACKEND_API_KEY configured; sending request without authorization")
        return headers

    def to_dict(self) -> dict:
        """Return configuration as dictionary (for API response)."""
        return {
            'port': self.port,
            'debug': self.debug,
            'backend_url': self.backend_url,
            'backend_model': self.backend_model,
            'api_key_configured': self.is_api_key_configured(),
            'request_timeout': self.request_timeout,
            'stream_timeout': self.stream_timeout,
            'fan_out_tool_results': self.fan_out_tool_results,
            'stream_block_events': self.stream_block_events,
            'stream_include_usage': self.stream_include_usage,
        }
