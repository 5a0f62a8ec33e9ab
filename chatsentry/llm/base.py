"""
chatsentry/llm/base.py
Abstract base class for all completion backends.
To add a new backend: subclass LLMAdapter and implement complete().

The core treats every completion as untrusted text: it is fence-stripped,
JSON-parsed and validated against a pydantic payload model before any
field is used. Anything that fails along the way comes back as None and
the calling pass falls back to its heuristic.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

PayloadT = TypeVar('PayloadT', bound=BaseModel)


class LLMAdapter(ABC):
    """
    All completion backends implement this interface.
    Passes call complete() and get back raw text or None.
    The caller never knows which backend is running.
    """

    model_name: str = 'unknown'

    @abstractmethod
    def is_available(self) -> bool:
        """
        Returns True if the backend is reachable and ready.
        Called once before analysis starts so the orchestrator can
        skip straight to heuristics.
        """
        ...

    @abstractmethod
    def complete(self, prompt: str) -> Optional[str]:
        """
        Single-shot completion requesting a JSON object response.
        Returns None on any failure and never raises.
        """
        ...


def parse_json_payload(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Parse a completion into a JSON object.
    Handles models that wrap output in markdown fences.
    Returns None for empty, malformed or non-object payloads.
    """
    if not text:
        return None
    clean = text.strip()
    if clean.startswith('```'):
        parts = clean.split('```')
        if len(parts) >= 2:
            clean = parts[1]
            if clean.startswith('json'):
                clean = clean[4:]
    clean = clean.strip()
    try:
        data = json.loads(clean)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Could not parse completion as JSON: {e}")
        return None
    if not isinstance(data, dict):
        logger.warning(f"Completion JSON is {type(data).__name__}, expected object")
        return None
    return data


def complete_json(
    llm:           LLMAdapter,
    prompt:        str,
    payload_model: Type[PayloadT],
) -> Optional[PayloadT]:
    """
    complete → parse → validate. Returns a validated payload or None.
    One attempt only; retrying is not this layer's business.
    """
    data = parse_json_payload(llm.complete(prompt))
    if data is None:
        return None
    try:
        return payload_model.model_validate(data)
    except ValidationError as e:
        logger.warning(
            f"{payload_model.__name__} failed validation "
            f"({e.error_count()} errors)"
        )
        return None
