#!/usr/bin/env python3
"""msgbridge - Anthropic Messages API to OpenAI Chat Completions proxy."""

import sys
import logging
import argparse
from typing import Optional

from flask import Flask, jsonify
from flask_cors import CORS
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from config import Config, VERSION
from logger_manager import LoggerManager
from handlers import proxy_bp, dashboard_bp

logger = logging.getLogger(__name__)

# JSON request body limit
MAX_CONTENT_LENGTH = 50 * 1024 * 1024


def configure_logging(debug: bool):
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )


def create_app(config: Optional[Config] = None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    CORS(app)

    config = config or Config()
    app.config['BRIDGE_CONFIG'] = config
    app.config['MAX_CONTENT_LENGTH'] = MAX_CONTENT_LENGTH

    log_manager = LoggerManager(config.max_logs)
    app.config['LOG_MANAGER'] = log_manager

    app.register_blueprint(proxy_bp)
    app.register_blueprint(dashboard_bp)

    @app.errorhandler(413)
    def request_too_large(error):
        return jsonify({
            'type': 'error',
            'error': {'type': 'request_too_large', 'message': 'Request body too large'}
        }), 413

    if not config.is_api_key_configured():
        log_manager.log_server_event('warning', 'BACKEND_API_KEY is not set')

    log_manager.log_server_event('info', 'msgbridge started', {
        'port': config.port,
        'backend': config.backend_url,
        'model': config.backend_model,
    })

    return app


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='msgbridge',
        description='Anthropic Messages API to OpenAI Chat Completions translating proxy'
    )
    parser.add_argument('--port', '-p', type=int, help='Proxy server port (default: $PORT or 3333)')
    parser.add_argument('--debug', '-d', action='store_true', help='Enable debug logging')
    return parser.parse_args(argv)


def print_banner(config: Config):
    print()
    print("=" * 60)
    print(f"  msgbridge {VERSION} - Anthropic <-> OpenAI proxy")
    print("=" * 60)
    print()
    print(f"  Proxy URL:  http://localhost:{config.port}/v1/messages")
    print(f"  Backend:    {config.backend_url}")
    print(f"  Model:      {config.backend_model}")
    print(f"  API key:    {'Configured' if config.is_api_key_configured() else 'MISSING'}")
    print(f"  Debug:      {'Enabled' if config.debug else 'Disabled'}")
    print()
    print("  Endpoints:")
    print("    GET  /              Health check")
    print("    GET  /v1/models     List available models")
    print("    POST /v1/messages   Main proxy endpoint (Anthropic format)")
    print()
    print("  Point an Anthropic client at the proxy:")
    print()
    print("    export ANTHROPIC_AUTH_TOKEN='dummy'")
    print(f"    export ANTHROPIC_BASE_URL='http://localhost:{config.port}'")
    print()
    print("=" * 60)
    print()


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    config = Config()
    if args.port:
        config.port = args.port
    if args.debug:
        config.debug = True

    configure_logging(config.debug)
    app = create_app(config)
    print_banner(config)

    try:
        app.run(
            host='0.0.0.0',
            port=config.port,
            debug=False,
            threaded=True
        )
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except OSError as e:
        logger.error(f"Server error: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
