"""
chatsentry/parsers/generic_parser.py
Parses pasted free-text conversations ("Me: hi" / "Alex: hey").

Line-oriented. A line of the form "<prefix>: <text>" with a prefix
shorter than 20 characters opens a new message and sets the current
role; any other non-empty line is appended to the open message.

Timestamps are synthetic: counted back from `now` one minute per line,
so only relative order is meaningful.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple

from chatsentry.models.record import Message, Role, TranscriptMetadata

logger = logging.getLogger(__name__)

DEFAULT_SELF_TOKENS = ('me', 'i', 'you', 'myself')

# Colon must be followed by whitespace or end of line so "https://…" is content.
SPEAKER_LINE = re.compile(r'^(?P<prefix>[^:]{1,19}):(?:\s+(?P<text>.*))?$')
_WORD        = re.compile(r'[a-z]+')


def parse_generic_text(
    text:        str,
    self_tokens: Iterable[str]      = DEFAULT_SELF_TOKENS,
    now:         Optional[datetime] = None,
) -> Tuple[List[Message], TranscriptMetadata]:
    """
    Parse free text into ordered messages.
    Content before the first speaker line belongs to `other`.
    Messages that end up empty are dropped.
    """
    now    = now or datetime.now(timezone.utc)
    tokens = {t.lower() for t in self_tokens}
    lines  = [ln.strip() for ln in text.splitlines() if ln.strip()]
    total  = len(lines)

    messages: List[Message] = []
    senders:  List[str]     = []

    role:     Role               = Role.OTHER
    parts:    Optional[List[str]] = None
    opened_at: int               = 0

    def flush() -> None:
        if parts is None:
            return
        content = '\n'.join(parts)
        if not content:
            return
        messages.append(Message(
            id        = f'msg-{opened_at}',
            role      = role,
            content   = content,
            timestamp = now - timedelta(minutes=total - opened_at),
        ))

    for index, line in enumerate(lines):
        match = SPEAKER_LINE.match(line)
        if match:
            flush()
            prefix = match.group('prefix').strip()
            role   = _resolve_role(prefix, tokens)
            parts  = [match.group('text').strip()] if match.group('text') else []
            opened_at = index
            if prefix not in senders:
                senders.append(prefix)
        elif parts is None:
            parts     = [line]
            opened_at = index
        else:
            parts.append(line)
    flush()

    logger.info(f"Generic parse: {len(messages)} messages from {total} lines")
    return messages, TranscriptMetadata(platform='generic', sender_names=senders)


def _resolve_role(prefix: str, self_tokens: set) -> Role:
    words = _WORD.findall(prefix.lower())
    return Role.SELF if any(w in self_tokens for w in words) else Role.OTHER
