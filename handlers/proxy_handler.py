"""Anthropic API proxy handler - translates to OpenAI format."""

import time
import logging
import requests
from flask import Blueprint, request, jsonify, Response, stream_with_context, current_app

from config import CLIENT_MODELS, VERSION
from translator import (
    translate_request,
    translate_response,
    translate_error,
    format_sse_event,
    StreamTranslator,
    TranslationError,
    RequestTranslationError,
    BackendTransportError,
)

logger = logging.getLogger(__name__)

proxy_bp = Blueprint('proxy', __name__)

SSE_HEADERS = {
    'Cache-Control': 'no-cache',
    'X-Accel-Buffering': 'no',
    'Connection': 'keep-alive'
}


def get_config():
    """Get config from Flask app context."""
    return current_app.config['BRIDGE_CONFIG']


def get_log_manager():
    """Get log manager from Flask app context."""
    return current_app.config['LOG_MANAGER']


def _elapsed_ms(start_time: float) -> int:
    return int((time.time() - start_time) * 1000)


@proxy_bp.route('/', methods=['GET'])
def index():
    """Health check with backend details."""
    config = get_config()
    return jsonify({
        'status': 'OK',
        'service': 'Anthropic <-> OpenAI translating proxy',
        'backend': config.backend_url,
        'model': config.backend_model,
        'version': VERSION,
    })


@proxy_bp.route('/v1/models', methods=['GET'])
def list_models():
    """List the model ids clients may request."""
    created = int(time.time())
    return jsonify({
        'object': 'list',
        'data': [
            {'id': model_id, 'object': 'model', 'created': created, 'owned_by': 'anthropic'}
            for model_id in CLIENT_MODELS
        ]
    })


@proxy_bp.route('/messages', methods=['POST'])
@proxy_bp.route('/v1/messages', methods=['POST'])
def messages():
    """
    Handle Anthropic messages requests.

    Translates to OpenAI format, forwards to the backend and translates the
    response (streamed or not) back to Anthropic format.
    """
    start_time = time.time()
    config = get_config()
    log_manager = get_log_manager()

    try:
        return _proxy_messages(config, log_manager, start_time)
    except Exception as e:
        logger.exception(f"Unexpected error handling {request.path}: {e}")
        error = TranslationError(f'Internal error: {e}')
        return _error_response(error, start_time, log_manager)


def _proxy_messages(config, log_manager, start_time: float):
    anthropic_request = request.get_json(silent=True)
    if anthropic_request is None:
        error = RequestTranslationError('Request body must be valid JSON')
        return _error_response(error, start_time, log_manager)

    try:
        openai_request = translate_request(
            anthropic_request,
            fan_out_tool_results=config.fan_out_tool_results,
            include_usage=config.stream_include_usage
        )
    except RequestTranslationError as e:
        logger.warning(f"Translation error: {e.message}")
        return _error_response(e, start_time, log_manager, anthropic_request)

    # Every request goes to the one configured backend model
    original_model = anthropic_request.get('model')
    openai_request['model'] = config.backend_model
    is_streaming = openai_request['stream']

    logger.info(f"-> {original_model} => {config.backend_model} | "
                f"msgs={len(anthropic_request['messages'])} | stream={is_streaming}")
    logger.debug(f"Backend request: {openai_request}")

    try:
        response = _post_backend(config, openai_request, is_streaming)
    except BackendTransportError as e:
        return _error_response(e, start_time, log_manager, anthropic_request)

    if is_streaming and 'text/event-stream' in response.headers.get('Content-Type', ''):
        return _handle_streaming(response, original_model, anthropic_request, start_time, config, log_manager)

    return _handle_non_streaming(response, original_model, anthropic_request, start_time, log_manager)


def _post_backend(config, openai_request: dict, stream: bool) -> requests.Response:
    """
    Send the translated request to the backend.

    Raises:
        BackendTransportError: On timeouts, connection failures and non-2xx replies
    """
    try:
        response = requests.post(
            config.backend_url,
            json=openai_request,
            headers=config.backend_headers(stream),
            timeout=config.stream_timeout if stream else config.request_timeout,
            stream=stream
        )
    except requests.exceptions.Timeout as e:
        logger.error(f"Backend timed out: {e}")
        raise BackendTransportError('Request timed out', 529, translate_error('Request timed out', 529)) from e
    except requests.exceptions.RequestException as e:
        logger.error(f"Backend connection error: {e}")
        message = f'Connection error: {e}'
        raise BackendTransportError(message, 502, translate_error(message, 502)) from e

    if not response.ok:
        try:
            error_data = response.json()
        except ValueError:
            error_data = response.text or 'Unknown error'
        finally:
            response.close()

        logger.error(f"Backend error response: {response.status_code}")
        logger.debug(f"Backend error body: {error_data}")
        raise BackendTransportError(
            f'Backend returned {response.status_code}',
            response.status_code,
            translate_error(error_data, response.status_code)
        )

    return response


def _error_response(error: TranslationError, start_time: float, log_manager, request_data=None):
    body = error.to_dict()
    log_manager.log_api_call(request.path, error.status_code, _elapsed_ms(start_time), request_data, body)
    return jsonify(body), error.status_code


def _handle_non_streaming(response, original_model, anthropic_request, start_time, log_manager):
    """Translate a complete backend body into one Anthropic response."""
    try:
        openai_response = response.json()
    except ValueError as e:
        error = BackendTransportError(f'Invalid JSON from backend: {e}')
        return _error_response(error, start_time, log_manager, anthropic_request)
    finally:
        response.close()

    logger.debug(f"Backend response: {openai_response}")

    try:
        anthropic_response = translate_response(openai_response, original_model)
    except TranslationError as e:
        logger.error(f"Response translation error: {e.message}")
        return _error_response(e, start_time, log_manager, anthropic_request)

    usage = anthropic_response['usage']
    log_manager.log_api_call(request.path, 200, _elapsed_ms(start_time), anthropic_request, anthropic_response,
                             input_tokens=usage['input_tokens'], output_tokens=usage['output_tokens'])

    logger.info(f"<- stop_reason={anthropic_response['stop_reason']} | "
                f"tokens={usage['input_tokens']}+{usage['output_tokens']}")

    return jsonify(anthropic_response), 200


def _handle_streaming(response, original_model, anthropic_request, start_time, config, log_manager):
    """Pipe the backend event stream through a StreamTranslator."""
    translator = StreamTranslator(original_model, block_events=config.stream_block_events)
    path = request.path

    def generate():
        status = 200
        try:
            # The WSGI server pulls the next chunk only after this one is written
            for chunk in response.iter_content(chunk_size=None):
                for event in translator.translate_chunk(chunk):
                    yield event.encode('utf-8')
                if translator.finished:
                    break

            for event in translator.translate_close():
                yield event.encode('utf-8')

            logger.info(f"<- stream complete | stop_reason={translator.state.stop_reason} | "
                        f"frames={translator.state.frames} | bad_frames={translator.state.parse_errors}")

        except GeneratorExit:
            status = 499
            logger.warning("Client disconnected during stream")
        except requests.exceptions.RequestException as e:
            status = 502
            logger.error(f"Backend stream error: {e}")
            yield from _terminate_stream(translator, f'Backend stream error: {e}')
        except Exception as e:
            status = 500
            logger.exception(f"Stream translation failed: {e}")
            yield from _terminate_stream(translator, f'Internal error: {e}')
        finally:
            response.close()
            usage = translator.get_usage()
            log_manager.log_api_call(path, status, _elapsed_ms(start_time),
                                     anthropic_request, {'streaming': True, 'stop_reason': translator.state.stop_reason},
                                     input_tokens=usage['input_tokens'], output_tokens=usage['output_tokens'],
                                     stream=True)

    return Response(
        stream_with_context(generate()),
        content_type='text/event-stream',
        headers=SSE_HEADERS
    ), 200


def _terminate_stream(translator: StreamTranslator, message: str):
    """Best-effort error event followed by the terminal events."""
    error_event = {
        'type': 'error',
        'error': {
            'type': 'api_error',
            'message': message
        }
    }
    yield format_sse_event(error_event).encode('utf-8')
    for event in translator.translate_close():
        yield event.encode('utf-8')
