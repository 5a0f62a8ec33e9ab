"""
tests/test_api.py
ChatSentryAPI (importable class) and the FastAPI endpoints via
TestClient. Heuristic mode only: no completion backend is contacted.
"""

import json

import pytest
from fastapi.testclient import TestClient

from chatsentry.api import ChatSentryAPI, _build_app
from chatsentry.config import CONFIG_FILENAME
from chatsentry.errors import NoUsableMessagesError

CHAT = "Me: hi\nAlex: add me on WhatsApp, I need money right now\n"

TWO_SENDER_LOG = (
    "01/01/2024, 09:00 - Alex: hi\n"
    "01/01/2024, 09:01 - Sam: hey\n"
)


@pytest.fixture
def api(tmp_path):
    return ChatSentryAPI(project_root=tmp_path, llm=None)


@pytest.fixture
def client(api):
    return TestClient(_build_app(api))


# ── IMPORTABLE CLASS ──────────────────────────────────────────

class TestChatSentryAPI:
    def test_analyze_returns_flat_report(self, api):
        report = api.analyze(CHAT)
        assert report['riskScore'] > 0
        assert report['provenance']['detection'] == 'heuristic'

    def test_disambiguation_signal(self, api):
        report = api.analyze(TWO_SENDER_LOG)
        assert report == {'needsRoleIdentifier': True, 'candidateSenders': ['Alex', 'Sam']}

    def test_role_identifier_passed_through(self, api):
        report = api.analyze(TWO_SENDER_LOG, role_identifier='Sam')
        assert [m['role'] for m in report['messages']] == ['other', 'self']

    def test_no_usable_messages_raises(self, api):
        with pytest.raises(NoUsableMessagesError):
            api.analyze('')

    def test_keyword_only_skips_backend(self, tmp_path, fake_llm):
        llm = fake_llm()
        ChatSentryAPI(project_root=tmp_path, llm=llm).analyze(CHAT, keyword_only=True)
        assert llm.prompts == []

    def test_update_config_persists(self, api, tmp_path):
        config = api.update_config({'provider': 'none', 'bogus': 1})
        assert config['provider'] == 'none'
        stored = json.loads((tmp_path / CONFIG_FILENAME).read_text())
        assert 'bogus' not in stored

    def test_update_config_rejects_bad_values(self, api, tmp_path):
        with pytest.raises(ValueError):
            api.update_config({'max_workers': 'many'})
        assert not (tmp_path / CONFIG_FILENAME).exists()


# ── HTTP ──────────────────────────────────────────────────────

class TestEndpoints:
    def test_health(self, client):
        body = client.get('/health').json()
        assert body['status'] == 'ok'

    def test_analyze_text(self, client):
        response = client.post('/analyze', json={'transcript': CHAT})
        assert response.status_code == 200
        assert 'flags' in response.json()

    def test_analyze_needs_role(self, client):
        response = client.post('/analyze', json={'transcript': TWO_SENDER_LOG})
        assert response.status_code == 200
        assert response.json()['candidateSenders'] == ['Alex', 'Sam']

    def test_analyze_with_role(self, client):
        response = client.post('/analyze', json={
            'transcript': TWO_SENDER_LOG, 'roleIdentifier': 'Alex',
        })
        assert response.json()['messages'][0]['role'] == 'self'

    def test_analyze_message_list(self, client):
        response = client.post('/analyze', json={'transcript': [
            {'id': 'a', 'role': 'self', 'content': 'hi', 'timestamp': '2024-01-01T09:00:00'},
            {'id': 'b', 'role': 'other', 'content': 'send money', 'timestamp': '2024-01-01T09:01:00'},
        ]})
        assert response.status_code == 200
        flags = response.json()['flags']
        assert flags and all(f['sourceMessageId'] == 'b' for f in flags)

    def test_analyze_mixed_timestamp_kinds(self, client):
        response = client.post('/analyze', json={'transcript': [
            {'id': 'a', 'role': 'self', 'content': 'hi', 'timestamp': '2024-01-01T09:00:00'},
            {'id': 'b', 'role': 'other', 'content': 'hey', 'timestamp': '2024-01-01T09:01:00Z'},
        ]})
        assert response.status_code == 200
        assert [m['id'] for m in response.json()['messages']] == ['a', 'b']

    def test_empty_transcript_is_400(self, client):
        assert client.post('/analyze', json={'transcript': '   '}).status_code == 400

    def test_bad_platform_hint_is_422(self, client):
        response = client.post('/analyze', json={'transcript': CHAT, 'platformHint': 'fax'})
        assert response.status_code == 422

    def test_config_round_trip(self, client):
        assert client.post('/config', json={'max_workers': 2}).json()['status'] == 'ok'
        assert client.get('/config').json()['config']['max_workers'] == 2

    def test_bad_config_is_400(self, client):
        assert client.post('/config', json={'max_workers': 'many'}).status_code == 400
