"""Tests for OpenAI Chat Completions -> Anthropic Messages response translation."""

import pytest

from translator import (
    translate_response,
    translate_error,
    map_finish_reason,
    BackendTransportError,
    ToolArgumentParseError,
)


def _response(message, finish_reason='stop', **extra):
    body = {
        'id': 'chatcmpl-123',
        'model': 'glm-4.5-air',
        'choices': [{'index': 0, 'message': message, 'finish_reason': finish_reason}],
        'usage': {'prompt_tokens': 12, 'completion_tokens': 7},
    }
    body.update(extra)
    return body


class TestTranslateResponse:

    def test_text_response(self):
        result = translate_response(_response({'role': 'assistant', 'content': 'Hello!'}))

        assert result == {
            'id': 'chatcmpl-123',
            'type': 'message',
            'role': 'assistant',
            'content': [{'type': 'text', 'text': 'Hello!'}],
            'model': 'glm-4.5-air',
            'stop_reason': 'end_turn',
            'stop_sequence': None,
            'usage': {'input_tokens': 12, 'output_tokens': 7},
        }

    def test_reasoning_used_only_without_primary_text(self):
        reasoning_only = translate_response(_response(
            {'role': 'assistant', 'content': None, 'reasoning_content': 'Thinking...'}
        ))
        both = translate_response(_response(
            {'role': 'assistant', 'content': 'Answer', 'reasoning_content': 'Thinking...'}
        ))

        assert reasoning_only['content'] == [{'type': 'text', 'text': 'Thinking...'}]
        assert both['content'] == [{'type': 'text', 'text': 'Answer'}]

    def test_tool_calls_become_tool_use_blocks(self):
        message = {
            'role': 'assistant',
            'content': None,
            'tool_calls': [{
                'id': 'call_abc',
                'type': 'function',
                'function': {'name': 'get_weather', 'arguments': '{"location": "Paris", "unit": "c"}'}
            }]
        }
        result = translate_response(_response(message, finish_reason='tool_calls'))

        assert result['stop_reason'] == 'tool_use'
        assert result['content'] == [{
            'type': 'tool_use',
            'id': 'call_abc',
            'name': 'get_weather',
            'input': {'location': 'Paris', 'unit': 'c'}
        }]

    def test_text_precedes_tool_use(self):
        message = {
            'role': 'assistant',
            'content': 'Let me check.',
            'tool_calls': [
                {'id': 'c1', 'type': 'function', 'function': {'name': 'a', 'arguments': '{}'}},
                {'id': 'c2', 'type': 'function', 'function': {'name': 'b', 'arguments': '{"x":1}'}},
            ]
        }
        result = translate_response(_response(message, finish_reason='tool_calls'))

        assert [block['type'] for block in result['content']] == ['text', 'tool_use', 'tool_use']
        assert [block.get('id') for block in result['content'][1:]] == ['c1', 'c2']

    def test_empty_arguments_treated_as_empty_input(self):
        message = {'content': None, 'tool_calls': [{'id': 'c1', 'function': {'name': 'now', 'arguments': ''}}]}
        result = translate_response(_response(message, finish_reason='tool_calls'))

        assert result['content'][0]['input'] == {}

    def test_invalid_arguments_raise(self):
        message = {'content': None, 'tool_calls': [{'id': 'c1', 'function': {'name': 'f', 'arguments': '{"a": '}}]}

        with pytest.raises(ToolArgumentParseError) as exc_info:
            translate_response(_response(message, finish_reason='tool_calls'))

        assert exc_info.value.tool_name == 'f'
        assert exc_info.value.tool_call_id == 'c1'
        assert exc_info.value.to_dict()['type'] == 'error'

    def test_non_object_arguments_raise(self):
        message = {'content': None, 'tool_calls': [{'id': 'c1', 'function': {'name': 'f', 'arguments': '[1, 2]'}}]}

        with pytest.raises(ToolArgumentParseError):
            translate_response(_response(message, finish_reason='tool_calls'))

    def test_only_first_choice_used(self):
        body = _response({'content': 'first'})
        body['choices'].append({'index': 1, 'message': {'content': 'second'}, 'finish_reason': 'length'})
        result = translate_response(body)

        assert result['content'] == [{'type': 'text', 'text': 'first'}]
        assert result['stop_reason'] == 'end_turn'

    def test_length_maps_to_max_tokens(self):
        result = translate_response(_response({'content': 'cut'}, finish_reason='length'))
        assert result['stop_reason'] == 'max_tokens'

    def test_missing_usage_defaults_to_zero(self):
        body = _response({'content': 'x'})
        del body['usage']
        result = translate_response(body)

        assert result['usage'] == {'input_tokens': 0, 'output_tokens': 0}

    def test_missing_id_is_synthesized(self):
        body = _response({'content': 'x'})
        del body['id']

        first = translate_response(body)
        second = translate_response(body)

        assert first['id'].startswith('msg_')
        assert first['id'] != second['id']
        first.pop('id')
        second.pop('id')
        assert first == second

    def test_original_model_used_when_backend_omits_model(self):
        body = _response({'content': 'x'})
        del body['model']

        assert translate_response(body, 'claude-3-haiku-20240307')['model'] == 'claude-3-haiku-20240307'

    def test_no_choices_gives_empty_message(self):
        result = translate_response({'id': 'x', 'choices': []})

        assert result['content'] == []
        assert result['stop_reason'] == 'end_turn'

    @pytest.mark.parametrize('body', [
        ['not', 'an', 'object'],
        {'choices': [None]},
        {'choices': {'0': {}}},
        {'choices': [{'message': 'Hi'}]},
        {'choices': [{'message': {'tool_calls': ['call_1']}}]},
        {'choices': [{'message': {'tool_calls': [{'id': 'c', 'function': 'f'}]}}]},
    ])
    def test_malformed_shape_raises_backend_error(self, body):
        with pytest.raises(BackendTransportError) as exc_info:
            translate_response(body)

        assert exc_info.value.status_code == 502
        assert exc_info.value.to_dict()['error']['type'] == 'api_error'


class TestFinishReason:

    @pytest.mark.parametrize('finish_reason,expected', [
        ('tool_calls', 'tool_use'),
        ('length', 'max_tokens'),
        ('stop', 'end_turn'),
        ('content_filter', 'end_turn'),
        ('something_new', 'end_turn'),
        (None, 'end_turn'),
    ])
    def test_mapping(self, finish_reason, expected):
        assert map_finish_reason(finish_reason) == expected


class TestTranslateError:

    def test_openai_error_body(self):
        body = {'error': {'message': 'Rate limit reached', 'type': 'rate_limit_error'}}

        assert translate_error(body, 429) == {
            'type': 'error',
            'error': {'type': 'rate_limit_error', 'message': 'Rate limit reached'}
        }

    def test_anthropic_error_body_passes_through(self):
        body = {'type': 'error', 'error': {'type': 'overloaded_error', 'message': 'busy'}}
        assert translate_error(body, 529) == body

    def test_plain_text_body_uses_status(self):
        result = translate_error('Unauthorized', 401)

        assert result['error'] == {'type': 'authentication_error', 'message': 'Unauthorized'}

    def test_string_error_member(self):
        result = translate_error({'error': 'model not found'}, 404)

        assert result['error'] == {'type': 'not_found_error', 'message': 'model not found'}

    def test_unknown_shape_falls_back_to_api_error(self):
        result = translate_error({'detail': 'boom'}, 500)

        assert result['error'] == {'type': 'api_error', 'message': 'boom'}
