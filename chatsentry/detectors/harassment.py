"""
chatsentry/detectors/harassment.py
Flags synthesized straight from dated-log harassment indicators,
independent of the detection pass (model or heuristic).

  stalking            call attempts >= threshold (default 50); the same
                      test gates the orchestrator's risk floor
  boundary_violation  `other` mentions contacting your family/friends

Synthesized flags still obey the other-role rule: each is attributed
to a concrete `other` message, and is skipped when none qualifies.
"""

import logging
from typing import List, Optional, Sequence

from chatsentry.models.record import (
    ORIGIN_SYNTHESIZED,
    Flag,
    FlagCategory,
    Message,
    Polarity,
    ReplyTone,
    Role,
    Severity,
    SuggestedReplyText,
    TranscriptMetadata,
)
from chatsentry.parsers.dated_log_parser import CALL_PLACEHOLDER, mentions_third_party

logger = logging.getLogger(__name__)

DEFAULT_STALKING_THRESHOLD = 50


def synthesize_harassment_flags(
    messages:           Sequence[Message],
    metadata:           TranscriptMetadata,
    stalking_threshold: int = DEFAULT_STALKING_THRESHOLD,
) -> List[Flag]:
    flags: List[Flag] = []
    indicators = metadata.harassment

    if stalking_threshold_reached(metadata, stalking_threshold):
        flag = _stalking_flag(messages, indicators.call_count)
        if flag is not None:
            flags.append(flag)

    if indicators.third_party_contact:
        flag = _boundary_flag(messages)
        if flag is not None:
            flags.append(flag)

    if flags:
        logger.info(f"Harassment indicators produced {len(flags)} critical flag(s)")
    return flags


def stalking_threshold_reached(
    metadata:           TranscriptMetadata,
    stalking_threshold: int = DEFAULT_STALKING_THRESHOLD,
) -> bool:
    """Call attempts from either side count toward the threshold."""
    return metadata.harassment.call_count >= stalking_threshold


def _stalking_flag(messages: Sequence[Message], call_count: int) -> Optional[Flag]:
    others = [m for m in messages if m.role is Role.OTHER]
    source = next((m for m in others if m.content == CALL_PLACEHOLDER), None)
    summary = f'Extreme stalking behavior: {call_count} call attempts'
    quote = CALL_PLACEHOLDER

    # Calls all placed by `self`: anchor on their first message, empty quote.
    if source is None and others:
        source = others[0]
        summary = f'{call_count} call attempts in this log, none placed from their messages'
        quote = ''
    if source is None:
        logger.debug("Stalking threshold reached but no other-role message to attribute")
        return None

    return Flag(
        id                 = 'harassment-stalking',
        polarity           = Polarity.RED,
        category           = FlagCategory.STALKING,
        severity           = Severity.CRITICAL,
        summary            = summary,
        evidence_quote     = quote,
        source_message_id  = source.id,
        confidence         = 1.0,
        origin             = ORIGIN_SYNTHESIZED,
        meaning            = 'This volume of unanswered calls is obsessive and dangerous.',
        recommended_action = 'Block on all platforms. Save evidence. Contact authorities if you feel unsafe.',
        suggested_reply    = SuggestedReplyText('Stop contacting me.', ReplyTone.ASSERTIVE.value),
    )


def _boundary_flag(messages: Sequence[Message]) -> Optional[Flag]:
    source = next(
        (m for m in messages if m.role is Role.OTHER and mentions_third_party(m.content)),
        None,
    )
    if source is None:
        return None

    return Flag(
        id                 = 'harassment-boundary-violation',
        polarity           = Polarity.RED,
        category           = FlagCategory.BOUNDARY_VIOLATION,
        severity           = Severity.CRITICAL,
        summary            = 'Contacted your family or friends without permission',
        evidence_quote     = source.content,
        source_message_id  = source.id,
        confidence         = 1.0,
        origin             = ORIGIN_SYNTHESIZED,
        meaning            = 'Reaching out to your personal contacts is a serious boundary violation.',
        recommended_action = 'Warn your contacts. Document everything and consider legal protection.',
        suggested_reply    = SuggestedReplyText(
            'Do not contact my family or friends again.', ReplyTone.ASSERTIVE.value,
        ),
    )
