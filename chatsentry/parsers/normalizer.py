"""
chatsentry/parsers/normalizer.py
Single entry point that turns any supported input into the canonical
ordered Message sequence plus format metadata.

Input modes:
  generic    pasted free text ("Me: …" / "Alex: …")
  dated-log  "DD/MM/YYYY, HH:MM - Sender: text" exports
  messages   an already-normalized Message list (re-sorted only; in a
             list mixing naive and aware timestamps, naive ones are UTC)
"""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from chatsentry.models.record import Message, Role, TranscriptMetadata
from chatsentry.parsers.dated_log_parser import (
    DEFAULT_EXCESSIVE_CALLS,
    detect_dated_log_format,
    parse_dated_log,
)
from chatsentry.parsers.generic_parser import DEFAULT_SELF_TOKENS, parse_generic_text
from chatsentry.parsers.redaction import redact_personal_info

logger = logging.getLogger(__name__)

PLATFORM_GENERIC   = 'generic'
PLATFORM_DATED_LOG = 'dated-log'
PLATFORM_HINTS     = (PLATFORM_GENERIC, PLATFORM_DATED_LOG)

Transcript = Union[str, Sequence[Message]]


def normalize_transcript(
    transcript:      Transcript,
    role_identifier: Optional[str]      = None,
    platform_hint:   Optional[str]      = None,
    self_tokens:     Iterable[str]      = DEFAULT_SELF_TOKENS,
    redact_generic:  bool               = True,
    excessive_calls: int                = DEFAULT_EXCESSIVE_CALLS,
    now:             Optional[datetime] = None,
) -> Tuple[List[Message], TranscriptMetadata]:
    """
    Normalize a transcript. May raise IdentificationRequired (dated-log
    with several senders and no identifier). Returns possibly-empty
    messages; the caller decides whether empty is fatal. `now` anchors
    the synthetic timestamps of generic text.
    """
    if not isinstance(transcript, str):
        return _from_messages(transcript), TranscriptMetadata(platform='messages')

    if platform_hint is not None and platform_hint not in PLATFORM_HINTS:
        raise ValueError(
            f"Unknown platform hint: {platform_hint!r} "
            f"(expected one of {', '.join(PLATFORM_HINTS)})"
        )

    platform = platform_hint or (
        PLATFORM_DATED_LOG if detect_dated_log_format(transcript) else PLATFORM_GENERIC
    )
    logger.debug(f"Normalizing transcript as {platform}")

    if platform == PLATFORM_DATED_LOG:
        return parse_dated_log(
            transcript,
            role_identifier = role_identifier,
            excessive_calls = excessive_calls,
        )

    text = redact_personal_info(transcript) if redact_generic else transcript
    return parse_generic_text(text, self_tokens=self_tokens, now=now)


def _from_messages(messages: Sequence[Message]) -> List[Message]:
    for msg in messages:
        if not isinstance(msg, Message):
            raise ValueError(f"Expected Message, got {type(msg).__name__}")
        if not isinstance(msg.role, Role):
            raise ValueError(f"Message {msg.id} has invalid role {msg.role!r}")
    aware = [m.timestamp.tzinfo is not None for m in messages]
    if any(aware) and not all(aware):
        logger.debug("Mixed naive and aware timestamps, reading naive ones as UTC")
        messages = [
            m if m.timestamp.tzinfo is not None
            else replace(m, timestamp=m.timestamp.replace(tzinfo=timezone.utc))
            for m in messages
        ]
    # sorted() is stable; ties keep the caller's order.
    return sorted(messages, key=lambda m: m.timestamp)
