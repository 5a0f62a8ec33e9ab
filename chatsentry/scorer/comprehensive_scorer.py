"""
chatsentry/scorer/comprehensive_scorer.py
Whole-conversation assessment: risk / trust / escalation triad, a
timeline of tone transitions, and suggested replies.

Model path: one completion returns everything. Timeline events that
point outside the transcript are dropped.

Fallback: keyword-driven timeline plus canned replies. Scores are left
unset here and derived from the final flag set once every pass has
joined (score_from_flags), so heuristic scores always reflect the flags
the caller actually sees.
"""

import logging
import re
from typing import List, Optional, Sequence, Tuple

from chatsentry.analysis.math_utils import clamp, round_half_up
from chatsentry.llm.base import LLMAdapter, complete_json
from chatsentry.llm.prompts import build_scoring_prompt
from chatsentry.llm.schemas import ScoringPayload
from chatsentry.models.record import (
    EmotionalTone,
    Flag,
    Message,
    Polarity,
    ReplyTone,
    ScoreAssessment,
    Severity,
    SuggestedReply,
    TimelineEvent,
    TimelineKind,
)

logger = logging.getLogger(__name__)

# ── SEVERITY WEIGHTS ─────────────────────────────────────────

RED_WEIGHTS = {
    Severity.LOW:      10,
    Severity.MEDIUM:   25,
    Severity.HIGH:     40,
    Severity.CRITICAL: 60,
}
GREEN_WEIGHTS = {
    Severity.LOW:      10,
    Severity.MEDIUM:   20,
    Severity.HIGH:     30,
    Severity.CRITICAL: 30,
}

# ── TONE TRIGGERS ────────────────────────────────────────────
# First match wins, in this order. No match keeps the current tone.

def _words(*phrases: str) -> 're.Pattern[str]':
    return re.compile(r'\b(?:' + '|'.join(re.escape(p) for p in phrases) + r')\b', re.IGNORECASE)


TONE_TRIGGERS: List[Tuple[EmotionalTone, 're.Pattern[str]']] = [
    (EmotionalTone.INTIMATE,   _words('love', 'miss', 'baby', 'babe', 'darling')),
    (EmotionalTone.URGENT,     _words('urgent', 'now', 'quick', 'asap', 'hurry')),
    (EmotionalTone.PRESSURING, _words('you have to', 'you need to', 'why won\'t you', 'prove it')),
    (EmotionalTone.SUPPORTIVE, _words('take your time', 'no rush', 'no pressure')),
]

ESCALATING_TONES = frozenset({
    EmotionalTone.INTIMATE, EmotionalTone.URGENT, EmotionalTone.PRESSURING,
})

REQUEST_PHRASES = _words(
    'meet up', 'get a drink', 'my place', 'your place', 'get together',
    'video call', 'facetime', 'phone number',
)

CANNED_REPLIES: Tuple[Tuple[ReplyTone, str, str], ...] = (
    (ReplyTone.FRIENDLY,
     "I'm enjoying our chat! Would you be up for a video call sometime?",
     'Suggests a safe next step'),
    (ReplyTone.NEUTRAL,
     'Thanks for sharing. Tell me a bit more about yourself?',
     'Keeps the conversation going without committing to anything'),
    (ReplyTone.ASSERTIVE,
     "I like to take things slowly, so let's keep chatting here for now.",
     'Sets a clear boundary on pace and platform'),
)


# ── MODEL PASS ───────────────────────────────────────────────

def assess_conversation(llm: LLMAdapter, messages: Sequence[Message]) -> Optional[ScoreAssessment]:
    payload = complete_json(llm, build_scoring_prompt(messages), ScoringPayload)
    if payload is None:
        return None

    timeline: List[TimelineEvent] = []
    for event in payload.timeline:
        if event.message_index >= len(messages):
            continue
        timeline.append(TimelineEvent(
            timestamp   = messages[event.message_index].timestamp,
            kind        = TimelineKind(event.kind),
            description = event.description,
            from_tone   = EmotionalTone(event.from_tone) if event.from_tone else None,
            to_tone     = EmotionalTone(event.to_tone) if event.to_tone else None,
        ))
    timeline.sort(key=lambda e: e.timestamp)

    replies = [
        SuggestedReply(
            id      = f'reply-{i}',
            tone    = ReplyTone(r.tone),
            content = r.content,
            context = r.context,
        )
        for i, r in enumerate(payload.suggested_replies[:3])
    ]
    if len(replies) < 2:
        replies = canned_replies()

    return ScoreAssessment(
        timeline          = tuple(timeline),
        suggested_replies = tuple(replies),
        risk_score        = payload.risk_score,
        trust_score       = payload.trust_score,
        escalation_index  = payload.escalation_index,
    )


# ── FALLBACK ─────────────────────────────────────────────────

def assess_conversation_heuristic(messages: Sequence[Message]) -> ScoreAssessment:
    return ScoreAssessment(
        timeline          = tuple(build_timeline(messages)),
        suggested_replies = tuple(canned_replies()),
    )


def detect_tone(content: str, current: EmotionalTone) -> EmotionalTone:
    for tone, pattern in TONE_TRIGGERS:
        if pattern.search(content):
            return tone
    if '?' in content:
        return EmotionalTone.PLAYFUL
    return current


def build_timeline(messages: Sequence[Message]) -> List[TimelineEvent]:
    """One event per tone change, in message order."""
    events: List[TimelineEvent] = []
    current = EmotionalTone.NEUTRAL
    halfway = len(messages) / 2

    for i, msg in enumerate(messages):
        tone = detect_tone(msg.content, current)
        if tone is current:
            continue

        if tone in ESCALATING_TONES and i < halfway:
            kind = TimelineKind.ESCALATION
        elif REQUEST_PHRASES.search(msg.content):
            kind = TimelineKind.REQUEST
        else:
            kind = TimelineKind.EMOTIONAL_SHIFT

        events.append(TimelineEvent(
            timestamp   = msg.timestamp,
            kind        = kind,
            description = f'Emotional tone shifted from {current.value} to {tone.value}',
            from_tone   = current,
            to_tone     = tone,
        ))
        current = tone

    return events


def canned_replies() -> List[SuggestedReply]:
    return [
        SuggestedReply(id=f'reply-{i}', tone=tone, content=content, context=context)
        for i, (tone, content, context) in enumerate(CANNED_REPLIES)
    ]


# ── SCORES FROM FLAGS ────────────────────────────────────────

def escalation_index(timeline: Sequence[TimelineEvent]) -> int:
    escalations = sum(1 for e in timeline if e.kind is TimelineKind.ESCALATION)
    return clamp(round_half_up(100 * escalations / max(len(timeline), 1)))


def score_from_flags(
    flags:    Sequence[Flag],
    timeline: Sequence[TimelineEvent],
) -> Tuple[int, int, int]:
    """(risk, trust, escalation) from severity weights, each clamped to 0-100."""
    risk  = sum(RED_WEIGHTS[f.severity] for f in flags if f.polarity is Polarity.RED)
    trust = sum(GREEN_WEIGHTS[f.severity] for f in flags if f.polarity is Polarity.GREEN)
    return clamp(risk), clamp(trust), escalation_index(timeline)


def apply_risk_floor(risk_score: int, floor: int) -> int:
    return max(risk_score, clamp(floor))
