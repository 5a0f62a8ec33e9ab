"""
tests/conftest.py
Shared fakes for the completion backend. Synthetic data only.
"""

import json
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from chatsentry.llm.base import LLMAdapter
from chatsentry.models.record import Message, Role

# Marker phrases from each prompt builder, used to route canned replies.
DETECTION   = 'healthy-relationship signals'
ENRICHMENT  = 'online-safety expert'
SCORING     = 'Assess this two-party conversation'
CONSISTENCY = 'Extract the factual claims'


class FakeLLM(LLMAdapter):
    """Returns a canned completion per pass; records every prompt."""

    model_name = 'fake-model'

    def __init__(self, responses: Optional[Dict[str, object]] = None, available: bool = True):
        self.responses = responses or {}
        self.available = available
        self.prompts: List[str] = []

    def is_available(self) -> bool:
        return self.available

    def complete(self, prompt: str) -> Optional[str]:
        self.prompts.append(prompt)
        for marker, response in self.responses.items():
            if marker in prompt:
                if isinstance(response, Exception):
                    raise response
                if isinstance(response, (dict, list)):
                    return json.dumps(response)
                return response
        return None


def make_messages(turns: Sequence[Tuple[str, str]], start: Optional[datetime] = None) -> List[Message]:
    """[(role, content), ...] → Messages one minute apart, ids m0, m1, ..."""
    start = start or datetime(2024, 1, 1, 9, 0)
    return [
        Message(
            id        = f'm{i}',
            role      = Role(role),
            content   = content,
            timestamp = start + timedelta(minutes=i),
        )
        for i, (role, content) in enumerate(turns)
    ]


@pytest.fixture
def fake_llm():
    return FakeLLM


@pytest.fixture
def build_messages():
    return make_messages
