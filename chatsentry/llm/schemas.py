"""
chatsentry/llm/schemas.py
Payload models for completion output. Every field the core reads from
the external model passes through one of these first.

Extra keys are ignored (models like to add commentary); missing or
out-of-range required fields fail validation and send the pass to its
heuristic fallback.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chatsentry.analysis.math_utils import round_half_up


class _Payload(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)


# ── FLAG DETECTION ───────────────────────────────────────────

class FindingPayload(_Payload):
    polarity:   str   = Field(min_length=1)
    category:   str   = Field(min_length=1)
    severity:   str   = Field(default='medium')
    summary:    str   = Field(min_length=1)
    quote:      str   = Field(min_length=1)
    confidence: float = Field(default=0.85, ge=0.0, le=1.0)

    @field_validator('polarity')
    @classmethod
    def _known_polarity(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in ('red', 'green'):
            raise ValueError(f'unknown polarity {value!r}')
        return value


class DetectionPayload(_Payload):
    findings: List[FindingPayload] = Field(default_factory=list)


# ── ENRICHMENT ───────────────────────────────────────────────

class ReplyPayload(_Payload):
    content: str = Field(min_length=1)
    tone:    str = Field(default='neutral')


class FlagEnrichmentPayload(_Payload):
    meaning:            str                    = Field(min_length=1)
    recommended_action: str                    = Field(min_length=1, alias='recommendedAction')
    suggested_reply:    Optional[ReplyPayload] = Field(default=None, alias='suggestedReply')


class EnrichmentPayload(_Payload):
    flags: Dict[str, FlagEnrichmentPayload] = Field(default_factory=dict)


# ── COMPREHENSIVE SCORING ────────────────────────────────────

class TimelineEventPayload(_Payload):
    message_index: int           = Field(ge=0, alias='messageIndex')
    kind:          str           = Field(pattern=r'^(emotional_shift|request|escalation)$', alias='type')
    from_tone:     Optional[str] = Field(default=None, alias='from')
    to_tone:       Optional[str] = Field(default=None, alias='to')
    description:   str           = Field(default='')


class SuggestedReplyPayload(_Payload):
    tone:    str = Field(default='neutral')
    content: str = Field(min_length=1)
    context: str = Field(default='')


class ScoringPayload(_Payload):
    risk_score:        int                         = Field(ge=0, le=100, alias='riskScore')
    trust_score:       int                         = Field(ge=0, le=100, alias='trustScore')
    escalation_index:  int                         = Field(ge=0, le=100, alias='escalationIndex')
    timeline:          List[TimelineEventPayload]  = Field(default_factory=list)
    suggested_replies: List[SuggestedReplyPayload] = Field(default_factory=list, alias='suggestedReplies')

    @field_validator('risk_score', 'trust_score', 'escalation_index', mode='before')
    @classmethod
    def _round_scores(cls, value):
        if isinstance(value, float):
            return round_half_up(value)
        return value


# ── CONSISTENCY ──────────────────────────────────────────────

class ClaimPayload(_Payload):
    category:      str = Field(default='other')
    text:          str = Field(min_length=1, alias='claim')
    message_index: int = Field(ge=0, alias='messageIndex')


class InconsistencyPayload(_Payload):
    claim1_index: int = Field(ge=0, alias='claim1Index')
    claim2_index: int = Field(ge=0, alias='claim2Index')
    description:  str = Field(min_length=1)


class ConsistencyPayload(_Payload):
    claims:          List[ClaimPayload]         = Field(default_factory=list)
    inconsistencies: List[InconsistencyPayload] = Field(default_factory=list)
    summary:         str                        = Field(default='')
