"""Request logging and usage tracking for msgbridge."""

import copy
import time
import logging
from typing import Any, Dict, List, Optional
from collections import deque
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

MAX_LOGGED_TEXT = 500


@dataclass
class UsageStats:
    """Aggregate counters since startup or the last reset."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    streaming_requests: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_latency_ms: int = 0
    session_start: float = field(default_factory=time.time)

    @property
    def avg_latency_ms(self) -> float:
        if self.successful_requests == 0:
            return 0.0
        return self.total_latency_ms / self.successful_requests

    def to_dict(self) -> dict:
        return {
            'total_requests': self.total_requests,
            'successful_requests': self.successful_requests,
            'failed_requests': self.failed_requests,
            'streaming_requests': self.streaming_requests,
            'total_input_tokens': self.total_input_tokens,
            'total_output_tokens': self.total_output_tokens,
            'avg_latency_ms': round(self.avg_latency_ms, 0),
            'session_duration_seconds': round(time.time() - self.session_start, 0),
        }


class LoggerManager:
    """Keeps the most recent API calls and server events in memory."""

    def __init__(self, max_logs: int = 100):
        self.api_calls: deque = deque(maxlen=max_logs)
        self.server_events: deque = deque(maxlen=max_logs)
        self.usage = UsageStats()

    def log_api_call(
        self,
        path: str,
        status: int,
        duration_ms: int,
        request_data: Optional[Dict] = None,
        response_data: Optional[Dict] = None,
        input_tokens: int = 0,
        output_tokens: int = 0,
        stream: bool = False
    ):
        """Record one proxied call and fold it into the usage counters."""
        self.api_calls.appendleft({
            'timestamp': time.time(),
            'path': path,
            'status': status,
            'duration_ms': duration_ms,
            'stream': stream,
            'request': truncate_for_log(request_data),
            'response': truncate_for_log(response_data),
            'input_tokens': input_tokens,
            'output_tokens': output_tokens,
        })

        self.usage.total_requests += 1
        if stream:
            self.usage.streaming_requests += 1
        if status < 400:
            self.usage.successful_requests += 1
            self.usage.total_latency_ms += duration_ms
            self.usage.total_input_tokens += input_tokens
            self.usage.total_output_tokens += output_tokens
        else:
            self.usage.failed_requests += 1

        token_info = f" | tokens: {input_tokens}+{output_tokens}" if input_tokens or output_tokens else ""
        logger.info(f"POST {path} -> {status} ({duration_ms}ms){token_info}")

    def log_server_event(self, level: str, message: str, data: Optional[Dict] = None):
        """Record a server event and pass it to the standard logger."""
        self.server_events.appendleft({
            'timestamp': time.time(),
            'level': level,
            'message': message,
            'data': data,
        })
        getattr(logger, level.lower(), logger.info)(message)

    def get_api_calls(self, limit: int = 50) -> List[Dict]:
        return list(self.api_calls)[:limit]

    def get_server_events(self, limit: int = 50) -> List[Dict]:
        return list(self.server_events)[:limit]

    def get_usage_stats(self) -> Dict:
        return self.usage.to_dict()

    def clear_logs(self):
        """Clear all logs (usage counters are kept)."""
        self.api_calls.clear()
        self.server_events.clear()
        logger.info("Logs cleared")

    def reset_usage(self):
        self.usage = UsageStats()
        logger.info("Usage statistics reset")


def truncate_for_log(data: Optional[Any]) -> Optional[Any]:
    """Copy a request/response body with long text fields shortened."""
    if data is None:
        return None

    sanitized = copy.deepcopy(data)
    _truncate_in_place(sanitized)
    return sanitized


def _truncate_in_place(node: Any):
    if isinstance(node, dict):
        for key, value in node.items():
            if isinstance(value, str) and key in ('content', 'text') and len(value) > MAX_LOGGED_TEXT:
                node[key] = value[:MAX_LOGGED_TEXT] + '... [truncated]'
            else:
                _truncate_in_place(value)
    elif isinstance(node, list):
        for item in node:
            _truncate_in_place(item)
