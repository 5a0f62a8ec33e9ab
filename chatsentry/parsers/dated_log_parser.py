"""
chatsentry/parsers/dated_log_parser.py
Parses dated-log chat exports:

    17/03/2024, 21:04 - Alex: are you there?
    17/03/2024, 21:05 - Alex:
    17/03/2024, 21:09 - Sam: sorry, was driving
    and still am

State machine over lines with two states (no open message / in message).
A header line flushes the open message and opens a new one; a plain
line continues the open message; a dated line without a "sender:" part
is a system notice and is skipped without closing anything.

Counters (calls, deletions, media, edits) live on an explicit
_ParseState accumulator threaded through the loop, never module state.

A header with an empty body is a call attempt: it counts toward the
call total and gets placeholder content.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from chatsentry.errors import IdentificationRequired
from chatsentry.models.record import (
    HarassmentIndicators,
    Message,
    Role,
    TranscriptMetadata,
)

logger = logging.getLogger(__name__)

HEADER_LINE = re.compile(
    r'^(?P<date>\d{2}/\d{2}/\d{4}), (?P<time>\d{2}:\d{2}) - '
    r'(?P<sender>[^:]+):(?:\s(?P<body>.*))?$'
)
SYSTEM_LINE = re.compile(r'^\d{2}/\d{2}/\d{4}, \d{2}:\d{2} - .+$')
DATE_FORMAT = '%d/%m/%Y %H:%M'

ENCRYPTION_NOTICE = 'end-to-end encrypted'
CALL_PLACEHOLDER  = '[Call attempt]'
DELETION_MARKERS  = ('This message was deleted', 'You deleted this message')
MEDIA_MARKER      = '<Media omitted>'
EDIT_MARKER       = '<This message was edited>'

THIRD_PARTY_PATTERNS = (
    'called your', 'told your', 'texted your', 'messaged your',
    'your mom', 'your mum', 'your dad', 'your sister', 'your brother',
    'your friend', 'your family', 'your boss', 'your coworker',
)

DEFAULT_EXCESSIVE_CALLS = 10


def detect_dated_log_format(text: str) -> bool:
    """True when text looks like a dated-log export."""
    if ENCRYPTION_NOTICE in text:
        return True
    for line in text.splitlines():
        if line.strip():
            return bool(re.match(r'^\d{2}/\d{2}/\d{4}, \d{2}:\d{2} -', line.strip()))
    return False


def extract_sender_names(text: str) -> List[str]:
    """Distinct sender names in first-appearance order."""
    senders: List[str] = []
    for raw in text.splitlines():
        match = HEADER_LINE.match(raw.strip())
        if not match:
            continue
        name = match.group('sender').strip()
        if name and ENCRYPTION_NOTICE not in name and name not in senders:
            senders.append(name)
    return senders


@dataclass
class _OpenMessage:
    role:      Role
    timestamp: datetime
    parts:     List[str]


@dataclass
class _ParseState:
    """Accumulator threaded through the state machine."""
    messages:       List[Message]          = field(default_factory=list)
    current:        Optional[_OpenMessage] = None
    next_id:        int                    = 0
    calls:          int                    = 0
    deleted:        int                    = 0
    media:          int                    = 0
    edited:         int                    = 0
    third_party:    bool                   = False


def parse_dated_log(
    text:             str,
    role_identifier:  Optional[str] = None,
    excessive_calls:  int           = DEFAULT_EXCESSIVE_CALLS,
) -> Tuple[List[Message], TranscriptMetadata]:
    """
    Parse a dated-log export into ordered messages plus metadata.

    role_identifier: sender name of the person who supplied the log
                     (case-insensitive). Their messages get role `self`.
    Raises IdentificationRequired when role_identifier is missing and
    two or more distinct senders are present.
    """
    senders = extract_sender_names(text)
    if not role_identifier and len(senders) >= 2:
        raise IdentificationRequired(senders)

    me    = (role_identifier or '').strip().lower()
    state = _ParseState()

    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue

        header = HEADER_LINE.match(line)
        if header:
            timestamp = _parse_timestamp(header.group('date'), header.group('time'))
            if timestamp is not None:
                _flush(state)
                _open(state, header, me, timestamp)
                continue
            logger.warning("Unparseable header date, treating line as continuation")

        if SYSTEM_LINE.match(line) and not header:
            continue

        if state.current is not None:
            state.current.parts.append(line)

    _flush(state)

    # Stable sort: timestamp first, original sequence breaks ties.
    state.messages.sort(key=lambda m: m.timestamp)

    harassment = HarassmentIndicators(
        call_count            = state.calls,
        excessive_calls       = state.calls >= excessive_calls,
        deleted_message_count = state.deleted,
        third_party_contact   = state.third_party,
    )
    metadata = TranscriptMetadata(
        platform         = 'dated-log',
        total_calls      = state.calls,
        deleted_messages = state.deleted,
        media_messages   = state.media,
        edited_messages  = state.edited,
        sender_names     = senders,
        harassment       = harassment,
    )
    logger.info(
        f"Dated-log parse: {len(state.messages)} messages, "
        f"{len(senders)} senders, {state.calls} call attempts"
    )
    return state.messages, metadata


def _open(state: _ParseState, header: 're.Match[str]', me: str, timestamp: datetime) -> None:
    sender = header.group('sender').strip()
    body   = (header.group('body') or '').strip()
    role   = Role.SELF if me and sender.lower() == me else Role.OTHER

    if not body:
        state.calls += 1
        body = CALL_PLACEHOLDER

    state.current = _OpenMessage(role=role, timestamp=timestamp, parts=[body])


def _flush(state: _ParseState) -> None:
    current = state.current
    if current is None:
        return
    content = '\n'.join(current.parts)

    if any(marker in content for marker in DELETION_MARKERS):
        state.deleted += 1
    if MEDIA_MARKER in content:
        state.media += 1
    if EDIT_MARKER in content:
        state.edited += 1
    if current.role is Role.OTHER and mentions_third_party(content):
        state.third_party = True

    state.messages.append(Message(
        id        = f'log-msg-{state.next_id}',
        role      = current.role,
        content   = content,
        timestamp = current.timestamp,
    ))
    state.next_id += 1
    state.current  = None


def mentions_third_party(content: str) -> bool:
    lowered = content.lower()
    return any(p in lowered for p in THIRD_PARTY_PATTERNS)


def _parse_timestamp(date_part: str, time_part: str) -> Optional[datetime]:
    try:
        return datetime.strptime(f'{date_part} {time_part}', DATE_FORMAT)
    except ValueError:
        return None
