"""
chatsentry/llm/prompts.py
Prompt builders for every model-backed pass. All of them render the
transcript the same way so message indexes line up across passes;
detection alone renders messages untruncated.
"""

import json
from typing import Dict, List, Optional, Sequence

from chatsentry.models.record import (
    ClaimCategory,
    EmotionalTone,
    Flag,
    FlagCategory,
    Message,
    Role,
)

MAX_MESSAGE_CHARS = 1500

_GREEN_CATEGORIES = [
    FlagCategory.REMEMBERS_DETAILS, FlagCategory.ASKS_RECIPROCAL_QUESTIONS,
    FlagCategory.VIDEO_CALL_OFFER, FlagCategory.RESPECTS_PACE,
    FlagCategory.PATIENT_RESPONSE, FlagCategory.CONSISTENT_STORY,
    FlagCategory.SHARES_OPENLY, FlagCategory.ACCEPTS_NO,
]
_RED_CATEGORIES = [
    c for c in FlagCategory
    if c not in _GREEN_CATEGORIES and c is not FlagCategory.UNKNOWN
]


def render_transcript(
    messages: Sequence[Message],
    limit:    Optional[int] = MAX_MESSAGE_CHARS,
) -> str:
    """limit=None renders every message in full."""
    lines = []
    for i, msg in enumerate(messages):
        speaker = 'SELF' if msg.role is Role.SELF else 'OTHER'
        content = msg.content if limit is None else msg.content[:limit]
        lines.append(f'{i}: {speaker}: {content}')
    return '\n'.join(lines)


def build_detection_prompt(messages: Sequence[Message]) -> str:
    return (
        "Analyze this two-party conversation for safety concerns and "
        "healthy-relationship signals.\n\n"
        "SELF is the person asking for help. OTHER is the person being "
        "assessed. Report findings ONLY about OTHER's messages. SELF's "
        "messages are context only; never report on them.\n\n"
        # Full text: quotes are matched against whole messages.
        f"CONVERSATION:\n{render_transcript(messages, limit=None)}\n\n"
        "Respond ONLY with a valid JSON object. No markdown, no explanation.\n\n"
        "{\n"
        '  "findings": [\n'
        "    {\n"
        '      "polarity": "red" or "green",\n'
        '      "category": one of the categories below,\n'
        '      "severity": "low" or "medium" or "high" or "critical",\n'
        '      "summary": "one sentence describing the behaviour",\n'
        '      "quote": "the FULL text of the single OTHER message that shows it, copied exactly",\n'
        '      "confidence": 0.0 to 1.0\n'
        "    }\n"
        "  ]\n"
        "}\n\n"
        f"RED CATEGORIES: {', '.join(c.value for c in _RED_CATEGORIES)}\n"
        f"GREEN CATEGORIES: {', '.join(c.value for c in _GREEN_CATEGORIES)}\n\n"
        "The quote must be the exact, complete content of one OTHER message "
        "(without the index or speaker label). Findings whose quote does not "
        "match an OTHER message are discarded.\n"
        "NOTE: This analysis is an inference, not a conclusion about anyone."
    )


def build_enrichment_prompt(
    messages: Sequence[Message],
    flags:    Sequence[Flag],
    context:  Dict[str, object],
) -> str:
    index_of = {m.id: i for i, m in enumerate(messages)}
    to_analyze: List[Dict[str, object]] = [
        {
            'id':       f.id,
            'polarity': f.polarity.value,
            'category': f.category.value,
            'summary':  f.summary,
            'context':  f"Detected at message #{index_of.get(f.source_message_id, -1) + 1} "
                        f"of {len(messages)}.",
        }
        for f in flags
    ]
    return (
        "You are a dating and online-safety expert. Interpret EACH detected "
        "pattern within the full context of the conversation.\n\n"
        "CONVERSATION METADATA:\n"
        f"- Duration: {context.get('duration')}\n"
        f"- Total messages: {context.get('total_messages')}\n"
        f"- SELF messages: {context.get('self_messages')}\n"
        f"- OTHER messages: {context.get('other_messages')}\n"
        f"- Balance score: {context.get('balance_score')}/100\n\n"
        f"CONVERSATION:\n{render_transcript(messages)}\n\n"
        f"DETECTED PATTERNS:\n{json.dumps(to_analyze, indent=2)}\n\n"
        "Respond ONLY with a valid JSON object of the form:\n"
        "{\n"
        '  "flags": {\n'
        '    "<pattern id>": {\n'
        '      "meaning": "red: the risk; green: why it is a good sign",\n'
        '      "recommendedAction": "what SELF should do next",\n'
        '      "suggestedReply": {"content": "a reply SELF could send", "tone": "friendly|neutral|assertive"}\n'
        "    }\n"
        "  }\n"
        "}\n"
        "Do not add, remove or re-categorize patterns."
    )


def build_scoring_prompt(messages: Sequence[Message]) -> str:
    tones = ', '.join(t.value for t in EmotionalTone)
    return (
        "Assess this two-party conversation as a whole, focusing on OTHER's "
        "behaviour toward SELF.\n\n"
        f"CONVERSATION:\n{render_transcript(messages)}\n\n"
        "Respond ONLY with a valid JSON object:\n"
        "{\n"
        '  "riskScore": 0-100,\n'
        '  "trustScore": 0-100,\n'
        '  "escalationIndex": 0-100,\n'
        '  "timeline": [\n'
        '    {"messageIndex": 0, "type": "emotional_shift|request|escalation",\n'
        '     "from": "<tone>", "to": "<tone>", "description": "what changed"}\n'
        "  ],\n"
        '  "suggestedReplies": [\n'
        '    {"tone": "friendly|neutral|assertive", "content": "reply text", "context": "why"}\n'
        "  ]\n"
        "}\n\n"
        f"TONES: {tones}\n"
        "Give 2 or 3 suggested replies SELF could send next."
    )


def build_consistency_prompt(messages: Sequence[Message]) -> str:
    categories = ', '.join(c.value for c in ClaimCategory)
    return (
        "Extract the factual claims OTHER makes about themselves in this "
        "conversation and find any that contradict each other. Ignore SELF's "
        "claims.\n\n"
        f"CONVERSATION:\n{render_transcript(messages)}\n\n"
        "Respond ONLY with a valid JSON object:\n"
        "{\n"
        '  "claims": [{"category": "<category>", "claim": "the claim", "messageIndex": 0}],\n'
        '  "inconsistencies": [{"claim1Index": 0, "claim2Index": 1, "description": "how they conflict"}],\n'
        '  "summary": "one or two sentences"\n'
        "}\n\n"
        f"CATEGORIES: {categories}\n"
        "claim1Index / claim2Index refer to positions in your claims array. "
        "Return empty arrays if there are no claims."
    )
