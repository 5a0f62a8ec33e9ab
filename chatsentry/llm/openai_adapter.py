"""
chatsentry/llm/openai_adapter.py
Hosted OpenAI chat-completions backend.

JSON mode (`response_format={"type": "json_object"}`). Client-side
retries are disabled: a pass gets exactly one attempt and then its
heuristic fallback.
"""

import logging
import os
from typing import Optional

from openai import OpenAI, OpenAIError

from chatsentry.llm.base import LLMAdapter

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a conversation-safety analyst. You read two-party chat "
    "transcripts and report concrete, quotable behaviour. "
    "Respond ONLY with a valid JSON object."
)


class OpenAIAdapter(LLMAdapter):

    def __init__(
        self,
        model:       str           = 'gpt-4o-mini',
        api_key:     Optional[str] = None,
        base_url:    Optional[str] = None,
        timeout_sec: float         = 60.0,
        temperature: float         = 0.3,
    ):
        self.model       = model
        self.model_name  = model
        self.temperature = temperature
        self._api_key    = api_key or os.environ.get('OPENAI_API_KEY', '')
        self._client     = None
        if self._api_key:
            self._client = OpenAI(
                api_key     = self._api_key,
                base_url    = base_url or None,
                timeout     = timeout_sec,
                max_retries = 0,
            )

    def is_available(self) -> bool:
        if self._client is None:
            logger.warning("OPENAI_API_KEY not set; OpenAI backend unavailable")
            return False
        return True

    def complete(self, prompt: str) -> Optional[str]:
        if self._client is None:
            return None
        try:
            response = self._client.chat.completions.create(
                model           = self.model,
                temperature     = self.temperature,
                response_format = {'type': 'json_object'},
                messages        = [
                    {'role': 'system', 'content': SYSTEM_PROMPT},
                    {'role': 'user',   'content': prompt},
                ],
            )
        except OpenAIError as e:
            logger.error(f"OpenAI request failed: {type(e).__name__}")
            return None

        if not response.choices:
            return None
        return response.choices[0].message.content or None
