"""
chatsentry/detectors/flag_detector.py
Model-backed flag detection plus the integrity guard every flag goes
through before it can appear in a result.

One holistic completion over the full transcript. A finding survives
only when its quote is exactly the content of an `other` message; the
matching message becomes the flag's source. Anything else is dropped.
"""

import logging
from typing import Dict, List, Optional, Sequence

from chatsentry.llm.base import LLMAdapter, complete_json
from chatsentry.llm.prompts import build_detection_prompt
from chatsentry.llm.schemas import DetectionPayload, FindingPayload
from chatsentry.models.record import (
    ORIGIN_MODEL,
    Flag,
    FlagCategory,
    Message,
    Polarity,
    Role,
    Severity,
)

logger = logging.getLogger(__name__)


def detect_flags(llm: LLMAdapter, messages: Sequence[Message]) -> Optional[List[Flag]]:
    """
    Run the detection pass. Returns None when the completion is missing
    or fails validation, so the caller can fall back.
    """
    payload = complete_json(llm, build_detection_prompt(messages), DetectionPayload)
    if payload is None:
        return None

    by_content = _other_messages_by_content(messages)
    flags: List[Flag] = []
    for finding in payload.findings:
        flag = build_flag(f'flag-{len(flags) + 1}', finding, by_content)
        if flag is not None:
            flags.append(flag)

    dropped = len(payload.findings) - len(flags)
    if dropped:
        logger.info(f"Detection: dropped {dropped} finding(s) with unmatched quotes")
    logger.info(f"Detection: {len(flags)} flags from {llm.model_name}")
    return flags


def build_flag(
    flag_id:    str,
    finding:    FindingPayload,
    by_content: Dict[str, Message],
) -> Optional[Flag]:
    """Turn one validated finding into a Flag, or None if its quote is not an `other` message."""
    source = by_content.get(finding.quote)
    if source is None:
        logger.debug(f"Integrity: finding for {flag_id} has no matching other-role message")
        return None

    return Flag(
        id                = flag_id,
        polarity          = Polarity(finding.polarity),
        category          = FlagCategory(finding.category),
        severity          = Severity(finding.severity),
        summary           = finding.summary.strip(),
        evidence_quote    = source.content,
        source_message_id = source.id,
        confidence        = finding.confidence,
        origin            = ORIGIN_MODEL,
    )


def enforce_integrity(flags: Sequence[Flag], messages: Sequence[Message]) -> List[Flag]:
    """
    Final guard applied to every flag regardless of origin: the source
    message must exist and be authored by `other`.
    """
    roles = {m.id: m.role for m in messages}
    kept: List[Flag] = []
    for flag in flags:
        if roles.get(flag.source_message_id) is not Role.OTHER:
            logger.debug(
                f"Integrity: dropped {flag.id} (source {flag.source_message_id!r} "
                f"is missing or not other-role)"
            )
            continue
        kept.append(flag)
    return kept


def _other_messages_by_content(messages: Sequence[Message]) -> Dict[str, Message]:
    # First occurrence wins when `other` repeats the same message.
    index: Dict[str, Message] = {}
    for msg in messages:
        if msg.role is Role.OTHER:
            index.setdefault(msg.content, msg)
    return index
