"""
chatsentry/detectors/flag_enricher.py
Second pass over detected flags: adds meaning, a recommended action and
a suggested reply. Category, severity, quote and source never change.

Model path: one completion with every flag plus conversation context.
Fallback: a fixed per-category guidance table.
"""

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from chatsentry.analysis.math_utils import round_half_up
from chatsentry.analysis.reciprocity import calculate_reciprocity, role_counts
from chatsentry.llm.base import LLMAdapter, complete_json
from chatsentry.llm.prompts import build_enrichment_prompt
from chatsentry.llm.schemas import EnrichmentPayload
from chatsentry.models.record import (
    Flag,
    FlagCategory,
    Message,
    Polarity,
    ReplyTone,
    SuggestedReplyText,
)

logger = logging.getLogger(__name__)


# ── CONVERSATION CONTEXT ─────────────────────────────────────

def build_conversation_context(messages: Sequence[Message]) -> Dict[str, object]:
    own, theirs = role_counts(messages)
    return {
        'duration':       describe_duration(messages),
        'total_messages': len(messages),
        'self_messages':  own,
        'other_messages': theirs,
        'balance_score':  calculate_reciprocity(messages).balance_score,
    }


def describe_duration(messages: Sequence[Message]) -> str:
    """Human label for first-to-last message span."""
    if len(messages) < 2:
        return 'Less than an hour'
    minutes = (messages[-1].timestamp - messages[0].timestamp).total_seconds() / 60
    if minutes > 60 * 24:
        return _plural(round_half_up(minutes / (60 * 24)), 'day')
    if minutes > 60:
        return _plural(round_half_up(minutes / 60), 'hour')
    if minutes > 0:
        return _plural(round_half_up(minutes), 'minute')
    return 'Less than an hour'


def _plural(n: int, unit: str) -> str:
    return f'{n} {unit}' + ('s' if n > 1 else '')


# ── MODEL ENRICHMENT ─────────────────────────────────────────

def enrich_flags(
    llm:      LLMAdapter,
    flags:    Sequence[Flag],
    messages: Sequence[Message],
) -> Optional[List[Flag]]:
    """
    Enrich via the model. Returns None on completion failure.
    Flags the model leaves out get the heuristic guidance instead.
    """
    if not flags:
        return []

    context = build_conversation_context(messages)
    payload = complete_json(llm, build_enrichment_prompt(messages, flags, context), EnrichmentPayload)
    if payload is None:
        return None

    enriched: List[Flag] = []
    for flag in flags:
        entry = payload.flags.get(flag.id)
        if entry is None:
            enriched.append(enrich_flag_heuristic(flag))
            continue
        reply = None
        if entry.suggested_reply is not None:
            reply = SuggestedReplyText(
                content = entry.suggested_reply.content,
                tone    = ReplyTone(entry.suggested_reply.tone).value,
            )
        enriched.append(replace(
            flag,
            meaning            = entry.meaning,
            recommended_action = entry.recommended_action,
            suggested_reply    = reply,
        ))

    logger.info(f"Enrichment: {len(payload.flags)} of {len(flags)} flags interpreted by model")
    return enriched


# ── HEURISTIC GUIDANCE ───────────────────────────────────────
# category -> (meaning, recommended action, reply content, reply tone)

GUIDANCE: Dict[FlagCategory, Tuple[str, str, str, ReplyTone]] = {
    FlagCategory.FINANCIAL_ASK: (
        'Requests involving money are the most common sign of a romance scam.',
        'Do not send money, gift cards or crypto. Stop if the requests continue.',
        "I don't mix money and dating, so that's not something I can help with.",
        ReplyTone.ASSERTIVE,
    ),
    FlagCategory.OFF_PLATFORM_PUSH: (
        'Moving to another app removes the platform\'s safety tools and reporting.',
        'Stay on the original platform until you have met or video called.',
        "I'd rather keep chatting here for now.",
        ReplyTone.NEUTRAL,
    ),
    FlagCategory.LOVE_BOMBING: (
        'Very intense affection this early can be used to lower your guard.',
        'Slow things down and watch whether they respect that.',
        "That's sweet, but I like to get to know someone before things get serious.",
        ReplyTone.FRIENDLY,
    ),
    FlagCategory.URGENCY_PRESSURE: (
        'Pressure to act quickly leaves you less time to think.',
        'Take your time. A genuine person will wait.',
        "I don't make decisions in a rush. I'll get back to you.",
        ReplyTone.ASSERTIVE,
    ),
    FlagCategory.BOUNDARY_VIOLATION: (
        'Your stated limits are being ignored.',
        'Restate the boundary once, clearly, and disengage if it happens again.',
        "I've told you where I stand. Please respect that.",
        ReplyTone.ASSERTIVE,
    ),
    FlagCategory.STALKING: (
        'Repeated unwanted contact is a sign of obsessive, unsafe behaviour.',
        'Block on all platforms, keep records and contact the authorities if you feel unsafe.',
        'Stop contacting me.',
        ReplyTone.ASSERTIVE,
    ),
    FlagCategory.THREAT: (
        'Threats are a serious safety concern.',
        'Save the messages and contact the authorities if you feel unsafe.',
        'I am ending this conversation.',
        ReplyTone.ASSERTIVE,
    ),
    FlagCategory.INTIMATE_PHOTO_REQUEST: (
        'Requests for intimate images can lead to sextortion.',
        'Do not send images. Block if they keep asking.',
        "No, I'm not comfortable with that.",
        ReplyTone.ASSERTIVE,
    ),
    FlagCategory.AVOIDS_VIDEO_CALL: (
        'Repeatedly avoiding video is common with fake profiles.',
        'Ask for a short video call before investing more time.',
        'Could we do a quick video call this week?',
        ReplyTone.NEUTRAL,
    ),
    FlagCategory.ASKS_RECIPROCAL_QUESTIONS: (
        'Asking about you suggests genuine interest in getting to know you.',
        'Keep the conversation balanced and see if it continues.',
        'Good question! What about you?',
        ReplyTone.FRIENDLY,
    ),
    FlagCategory.RESPECTS_PACE: (
        'Letting you set the pace is a sign of respect.',
        'Keep going at a speed that feels comfortable.',
        "Thanks for being patient, I appreciate it.",
        ReplyTone.FRIENDLY,
    ),
    FlagCategory.VIDEO_CALL_OFFER: (
        'Offering a video call is a good sign they are who they say.',
        'Take them up on it when you feel ready.',
        'A video call sounds good. When works for you?',
        ReplyTone.FRIENDLY,
    ),
}

_DEFAULT_RED = (
    'This behaviour can be a warning sign.',
    'Proceed with caution and trust your instincts.',
    "I'd like to take things slowly.",
    ReplyTone.NEUTRAL,
)
_DEFAULT_GREEN = (
    'This is a positive sign of healthy communication.',
    'Keep getting to know them at your own pace.',
    "I'm enjoying getting to know you.",
    ReplyTone.FRIENDLY,
)


def enrich_flag_heuristic(flag: Flag) -> Flag:
    default = _DEFAULT_RED if flag.polarity is Polarity.RED else _DEFAULT_GREEN
    meaning, action, reply, tone = GUIDANCE.get(flag.category, default)
    return replace(
        flag,
        meaning            = flag.meaning or meaning,
        recommended_action = flag.recommended_action or action,
        suggested_reply    = flag.suggested_reply or SuggestedReplyText(content=reply, tone=tone.value),
    )


def enrich_flags_heuristic(flags: Sequence[Flag]) -> List[Flag]:
    return [enrich_flag_heuristic(f) for f in flags]
