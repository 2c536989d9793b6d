"""Status and log endpoints for msgbridge."""

import logging
from flask import Blueprint, request, jsonify

from .proxy_handler import get_config, get_log_manager

logger = logging.getLogger(__name__)

dashboard_bp = Blueprint('dashboard', __name__)


@dashboard_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return jsonify({'status': 'healthy', 'service': 'msgbridge'})


@dashboard_bp.route('/api/config', methods=['GET'])
def get_configuration():
    """Get current configuration (the API key itself is never returned)."""
    return jsonify(get_config().to_dict())


@dashboard_bp.route('/api/logs', methods=['GET'])
def get_logs():
    """Get recent API calls and server events."""
    log_manager = get_log_manager()
    limit = request.args.get('limit', 50, type=int)

    return jsonify({
        'apiCalls': log_manager.get_api_calls(limit),
        'serverEvents': log_manager.get_server_events(limit),
    })


@dashboard_bp.route('/api/logs', methods=['DELETE'])
def clear_logs():
    get_log_manager().clear_logs()
    return jsonify({'success': True, 'message': 'Logs cleared'})


@dashboard_bp.route('/api/usage', methods=['GET'])
def get_usage():
    """Get usage statistics."""
    return jsonify(get_log_manager().get_usage_stats())


@dashboard_bp.route('/api/usage/reset', methods=['POST'])
def reset_usage():
    get_log_manager().reset_usage()
    return jsonify({'success': True, 'message': 'Usage statistics reset'})
