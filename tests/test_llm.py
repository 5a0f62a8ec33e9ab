"""
tests/test_llm.py
Completion backends, JSON payload handling and prompt rendering.
No network: urllib and the OpenAI client are patched.
"""

import json
import urllib.error
from unittest.mock import MagicMock, patch

from chatsentry.llm.base import complete_json, parse_json_payload
from chatsentry.llm.ollama_adapter import OllamaAdapter
from chatsentry.llm.openai_adapter import OpenAIAdapter
from chatsentry.llm.prompts import (
    MAX_MESSAGE_CHARS,
    build_consistency_prompt,
    build_detection_prompt,
    build_enrichment_prompt,
    build_scoring_prompt,
    render_transcript,
)
from chatsentry.llm.schemas import DetectionPayload
from chatsentry.models.record import FlagCategory

from conftest import CONSISTENCY, DETECTION, ENRICHMENT, SCORING


def _urlopen_returning(payload):
    response = MagicMock()
    response.read.return_value = json.dumps(payload).encode('utf-8')
    response.__enter__.return_value = response
    return MagicMock(return_value=response)


# ── JSON PAYLOADS ─────────────────────────────────────────────

class TestParseJsonPayload:
    def test_plain_object(self):
        assert parse_json_payload('{"a": 1}') == {'a': 1}

    def test_fenced_object(self):
        assert parse_json_payload('```json\n{"a": 1}\n```') == {'a': 1}

    def test_bare_fence(self):
        assert parse_json_payload('```\n{"a": 2}\n```') == {'a': 2}

    def test_garbage_is_none(self):
        assert parse_json_payload('I cannot help with that') is None

    def test_non_object_is_none(self):
        assert parse_json_payload('[1, 2]') is None

    def test_empty_is_none(self):
        assert parse_json_payload('') is None
        assert parse_json_payload(None) is None


class TestCompleteJson:
    def test_validated_payload(self, fake_llm):
        llm = fake_llm({'x': {'findings': []}})
        assert complete_json(llm, 'x', DetectionPayload).findings == []

    def test_validation_failure_is_none(self, fake_llm):
        llm = fake_llm({'x': {'findings': [{'polarity': 'red'}]}})
        assert complete_json(llm, 'x', DetectionPayload) is None

    def test_missing_completion_is_none(self, fake_llm):
        assert complete_json(fake_llm(), 'x', DetectionPayload) is None


# ── OLLAMA ────────────────────────────────────────────────────

class TestOllamaAdapter:
    def test_complete_returns_response_text(self):
        adapter = OllamaAdapter()
        urlopen = _urlopen_returning({'response': ' {"findings": []} '})
        with patch('urllib.request.urlopen', urlopen):
            assert adapter.complete('prompt') == '{"findings": []}'
        request = urlopen.call_args[0][0]
        body = json.loads(request.data.decode('utf-8'))
        assert body['format'] == 'json'
        assert body['stream'] is False
        assert request.full_url.endswith('/api/generate')

    def test_complete_connection_error_is_none(self):
        adapter = OllamaAdapter()
        with patch('urllib.request.urlopen', side_effect=urllib.error.URLError('refused')):
            assert adapter.complete('prompt') is None

    def test_empty_response_is_none(self):
        with patch('urllib.request.urlopen', _urlopen_returning({'response': ''})):
            assert OllamaAdapter().complete('prompt') is None

    def test_available_with_model_family(self):
        adapter = OllamaAdapter(model='llama3.1:8b')
        tags = {'models': [{'name': 'llama3.1:latest'}]}
        with patch('urllib.request.urlopen', _urlopen_returning(tags)):
            assert adapter.is_available() is True

    def test_unavailable_when_model_missing(self):
        adapter = OllamaAdapter(model='mistral:7b')
        tags = {'models': [{'name': 'llama3.1:8b'}]}
        with patch('urllib.request.urlopen', _urlopen_returning(tags)):
            assert adapter.is_available() is False

    def test_unavailable_when_unreachable(self):
        with patch('urllib.request.urlopen', side_effect=urllib.error.URLError('refused')):
            assert OllamaAdapter().is_available() is False

    def test_list_models_swallows_errors(self):
        with patch('urllib.request.urlopen', side_effect=OSError('boom')):
            assert OllamaAdapter().list_available_models() == []

    def test_host_trailing_slash(self):
        assert OllamaAdapter(host='http://box:11434/').host == 'http://box:11434'


# ── OPENAI ────────────────────────────────────────────────────

class TestOpenAIAdapter:
    def test_no_key_is_unavailable(self, monkeypatch):
        monkeypatch.delenv('OPENAI_API_KEY', raising=False)
        adapter = OpenAIAdapter()
        assert adapter.is_available() is False
        assert adapter.complete('prompt') is None

    def test_complete_reads_first_choice(self):
        adapter = OpenAIAdapter(api_key='sk-test')
        choice = MagicMock()
        choice.message.content = '{"claims": []}'
        adapter._client = MagicMock()
        adapter._client.chat.completions.create.return_value = MagicMock(choices=[choice])
        assert adapter.complete('prompt') == '{"claims": []}'
        kwargs = adapter._client.chat.completions.create.call_args.kwargs
        assert kwargs['response_format'] == {'type': 'json_object'}

    def test_client_error_is_none(self):
        from openai import OpenAIError
        adapter = OpenAIAdapter(api_key='sk-test')
        adapter._client = MagicMock()
        adapter._client.chat.completions.create.side_effect = OpenAIError('quota')
        assert adapter.complete('prompt') is None


# ── PROMPTS ───────────────────────────────────────────────────

class TestPrompts:
    def test_render_indexes_and_roles(self, build_messages):
        msgs = build_messages([('self', 'hi'), ('other', 'hello')])
        assert render_transcript(msgs) == '0: SELF: hi\n1: OTHER: hello'

    def test_render_truncates_long_messages(self, build_messages):
        msgs = build_messages([('other', 'x' * (MAX_MESSAGE_CHARS + 50))])
        assert len(render_transcript(msgs)) == len('0: OTHER: ') + MAX_MESSAGE_CHARS

    def test_detection_prompt_keeps_long_messages_whole(self, build_messages):
        long_text = 'y' * (MAX_MESSAGE_CHARS + 200)
        msgs = build_messages([('other', long_text)])
        assert f'0: OTHER: {long_text}\n' in build_detection_prompt(msgs)
        assert long_text not in build_scoring_prompt(msgs)

    def test_detection_prompt_lists_every_category(self, build_messages):
        prompt = build_detection_prompt(build_messages([('other', 'hi')]))
        listed = set()
        for line in prompt.splitlines():
            if line.startswith(('RED CATEGORIES: ', 'GREEN CATEGORIES: ')):
                listed.update(line.split(': ', 1)[1].split(', '))
        assert listed == {c.value for c in FlagCategory if c is not FlagCategory.UNKNOWN}

    def test_each_prompt_carries_its_marker(self, build_messages):
        msgs = build_messages([('self', 'hi'), ('other', 'hello')])
        prompts = {
            DETECTION:   build_detection_prompt(msgs),
            ENRICHMENT:  build_enrichment_prompt(msgs, [], {}),
            SCORING:     build_scoring_prompt(msgs),
            CONSISTENCY: build_consistency_prompt(msgs),
        }
        for marker, prompt in prompts.items():
            assert marker in prompt
            others = [m for m in prompts if m != marker]
            assert not any(m in prompt for m in others)
