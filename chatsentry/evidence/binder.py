"""
chatsentry/evidence/binder.py
Binds each flag's quote to a character span in its source message.

Exact substring only: the first occurrence of the quote in the source
message's content. A quote that cannot be found verbatim produces no
Evidence; the flag itself is kept.
"""

import logging
from typing import Dict, List, Sequence

from chatsentry.models.record import Evidence, Flag, Message

logger = logging.getLogger(__name__)


def bind_evidence(flags: Sequence[Flag], messages: Sequence[Message]) -> List[Evidence]:
    by_id: Dict[str, Message] = {m.id: m for m in messages}
    evidence: List[Evidence] = []
    misses = 0

    for flag in flags:
        if not flag.evidence_quote:
            continue
        source = by_id.get(flag.source_message_id)
        if source is None:
            misses += 1
            logger.debug(f"Evidence: {flag.id} source {flag.source_message_id!r} not found")
            continue
        start = source.content.find(flag.evidence_quote)
        if start < 0:
            misses += 1
            logger.debug(f"Evidence: quote for {flag.id} not verbatim in {source.id}")
            continue

        evidence.append(Evidence(
            id          = f'evidence-{flag.id}',
            message_id  = source.id,
            start_index = start,
            end_index   = start + len(flag.evidence_quote),
            text        = flag.evidence_quote,
            flag_id     = flag.id,
            explanation = flag.summary,
        ))

    if misses:
        logger.info(f"Evidence: {misses} flag(s) without a located span")
    return evidence


def render_highlights(
    content:  str,
    evidence: Sequence[Evidence],
    open_tag:  str = '<mark>',
    close_tag: str = '</mark>',
) -> str:
    """
    Wrap each span of one message in markup. Spans are applied from the
    highest start offset down so earlier offsets stay valid. Spans that
    overlap one already applied are skipped.
    """
    rendered = content
    applied_start = len(content) + 1
    for ev in sorted(evidence, key=lambda e: e.start_index, reverse=True):
        if content[ev.start_index:ev.end_index] != ev.text:
            continue
        if ev.end_index > applied_start:
            continue
        rendered = (
            rendered[:ev.start_index] + open_tag
            + rendered[ev.start_index:ev.end_index] + close_tag
            + rendered[ev.end_index:]
        )
        applied_start = ev.start_index
    return rendered
