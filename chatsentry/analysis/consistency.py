"""
chatsentry/analysis/consistency.py
Factual-claim consistency for the `other` role.

Model path: the model extracts claims (with message indexes) and pairs
of contradicting claims. Claims pointing at `self` messages or at
indexes outside the transcript are dropped, and inconsistencies that
reference a dropped claim go with them.

    stability_index = round(100 - 100 * inconsistencies / max(claims, 1))

Fallback: fixed phrase triggers extract claims; contradictions are not
evaluated, stability stays at 100 and the summary says so.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from chatsentry.analysis.math_utils import clamp
from chatsentry.llm.base import LLMAdapter, complete_json
from chatsentry.llm.prompts import build_consistency_prompt
from chatsentry.llm.schemas import ConsistencyPayload
from chatsentry.models.record import (
    ClaimCategory,
    ConsistencyReport,
    FactualClaim,
    Inconsistency,
    Message,
    Role,
)

logger = logging.getLogger(__name__)

NOT_EVALUATED_SUMMARY = 'Contradictions not evaluated (heuristic claim extraction only).'

# phrase -> category; matched case-insensitively, one claim per (message, category)
CLAIM_TRIGGERS: Tuple[Tuple[str, ClaimCategory], ...] = (
    ('i live',  ClaimCategory.LOCATION),
    ("i'm from", ClaimCategory.LOCATION),
    ('i am from', ClaimCategory.LOCATION),
    ('i work',  ClaimCategory.JOB),
    ('my job',  ClaimCategory.JOB),
)


def stability_index(claim_count: int, inconsistency_count: int) -> int:
    return clamp(100 - 100 * inconsistency_count / max(claim_count, 1))


def check_consistency(llm: LLMAdapter, messages: Sequence[Message]) -> Optional[ConsistencyReport]:
    payload = complete_json(llm, build_consistency_prompt(messages), ConsistencyPayload)
    if payload is None:
        return None

    claims: List[FactualClaim] = []
    kept: Dict[int, FactualClaim] = {}     # payload index -> claim
    for i, raw in enumerate(payload.claims):
        if raw.message_index >= len(messages):
            continue
        msg = messages[raw.message_index]
        if msg.role is not Role.OTHER:
            logger.debug(f"Consistency: dropped claim {i} attributed to self")
            continue
        claim = FactualClaim(
            id         = f'claim-{len(claims)}',
            category   = ClaimCategory(raw.category),
            text       = raw.text.strip(),
            message_id = msg.id,
            timestamp  = msg.timestamp,
        )
        claims.append(claim)
        kept[i] = claim

    inconsistencies: List[Inconsistency] = []
    for raw in payload.inconsistencies:
        first, second = kept.get(raw.claim1_index), kept.get(raw.claim2_index)
        if first is None or second is None or first is second:
            continue
        inconsistencies.append(Inconsistency(
            id          = f'inconsistency-{len(inconsistencies)}',
            claim1      = first,
            claim2      = second,
            description = raw.description.strip(),
        ))

    summary = payload.summary.strip() or _default_summary(len(claims), len(inconsistencies))
    logger.info(
        f"Consistency: {len(claims)} claims, {len(inconsistencies)} inconsistencies"
    )
    return ConsistencyReport(
        claims          = tuple(claims),
        inconsistencies = tuple(inconsistencies),
        stability_index = stability_index(len(claims), len(inconsistencies)),
        summary         = summary,
        evaluated       = True,
    )


def check_consistency_heuristic(messages: Sequence[Message]) -> ConsistencyReport:
    claims: List[FactualClaim] = []
    for msg in messages:
        if msg.role is not Role.OTHER:
            continue
        lowered = msg.content.lower()
        seen = set()
        for phrase, category in CLAIM_TRIGGERS:
            if phrase in lowered and category not in seen:
                seen.add(category)
                claims.append(FactualClaim(
                    id         = f'claim-{len(claims)}',
                    category   = category,
                    text       = msg.content,
                    message_id = msg.id,
                    timestamp  = msg.timestamp,
                ))

    return ConsistencyReport(
        claims          = tuple(claims),
        inconsistencies = (),
        stability_index = 100,
        summary         = NOT_EVALUATED_SUMMARY,
        evaluated       = False,
    )


def _default_summary(claims: int, inconsistencies: int) -> str:
    if not claims:
        return 'No factual claims found.'
    if not inconsistencies:
        return f'{claims} claim(s) found with no contradictions.'
    return f'{inconsistencies} contradiction(s) across {claims} claim(s).'
