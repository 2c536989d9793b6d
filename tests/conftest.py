"""Pytest configuration and fixtures for testing."""

import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
import requests
from requests.structures import CaseInsensitiveDict

# Modules live at the repository root
sys.path.insert(0, str(Path(__file__).parent.parent))

BACKEND_URL = 'http://backend.test/v1/chat/completions'

CONFIG_ENV = [
    'PORT', 'DEBUG', 'MAX_LOGS', 'BACKEND_URL', 'BACKEND_API_KEY', 'BACKEND_MODEL',
    'REQUEST_TIMEOUT', 'STREAM_TIMEOUT', 'FAN_OUT_TOOL_RESULTS', 'STREAM_BLOCK_EVENTS',
    'STREAM_INCLUDE_USAGE',
]


class FakeBackendResponse:
    """Stands in for a requests.Response from the chat-completion backend."""

    def __init__(self, status_code: int = 200, json_body: Any = None, text: str = '',
                 chunks: Optional[List[bytes]] = None, content_type: str = 'application/json',
                 error: Optional[Exception] = None):
        self.status_code = status_code
        self._json_body = json_body
        self.text = text or (json.dumps(json_body) if json_body is not None else '')
        self.chunks = chunks or []
        self.error = error
        self.headers = CaseInsensitiveDict({'Content-Type': content_type})
        self.closed = False

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._json_body is None:
            raise ValueError('No JSON body')
        return self._json_body

    def iter_content(self, chunk_size=None):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error

    def close(self):
        self.closed = True


class FakeBackend:
    """Records outbound calls and replays queued responses or errors."""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.replies: List[Any] = []

    def reply(self, reply):
        self.replies.append(reply)
        return reply

    def post(self, url, **kwargs):
        self.calls.append({'url': url, **kwargs})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def sse_frames(*payloads) -> bytes:
    """Encode backend frames as an OpenAI SSE body."""
    body = ''
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
        body += f'data: {data}\n\n'
    return body.encode('utf-8')


def parse_sse(body: str) -> List[Dict[str, Any]]:
    """Parse Anthropic SSE output into a list of {'event', 'data'} dicts."""
    events = []
    for block in body.split('\n\n'):
        if not block.strip():
            continue
        event = {}
        for line in block.split('\n'):
            if line.startswith('event: '):
                event['event'] = line[len('event: '):]
            elif line.startswith('data: '):
                event['data'] = json.loads(line[len('data: '):])
        events.append(event)
    return events


@pytest.fixture
def config(monkeypatch):
    for name in CONFIG_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv('BACKEND_URL', BACKEND_URL)
    monkeypatch.setenv('BACKEND_API_KEY', 'test-key')
    monkeypatch.setenv('BACKEND_MODEL', 'test-model')

    from config import Config
    return Config()


@pytest.fixture
def app(config):
    from app import create_app
    flask_app = create_app(config)
    flask_app.config['TESTING'] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def backend(monkeypatch):
    fake = FakeBackend()
    monkeypatch.setattr(requests, 'post', fake.post)
    return fake
