"""Request handlers for msgbridge."""

from .proxy_handler import proxy_bp
from .dashboard_api import dashboard_bp

__all__ = ['proxy_bp', 'dashboard_bp']
