"""
chatsentry/detectors/keyword_detector.py
Heuristic flag detection. Pure Python, fully offline.
Used whenever the model-backed detection pass is unavailable or fails.

Scans `other` messages only. Each match becomes a Flag whose quote is
the sentence around the trigger, cut straight out of the message, so
the evidence binder can always locate it.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from chatsentry.models.record import (
    ORIGIN_HEURISTIC,
    Flag,
    FlagCategory,
    Message,
    Polarity,
    Role,
    Severity,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeywordRule:
    polarity:   Polarity
    category:   FlagCategory
    severity:   Severity
    confidence: float
    summary:    str
    keywords:   Tuple[str, ...]


# ── KEYWORD DICTIONARIES ─────────────────────────────────────
# Extend these freely. Matching is case-insensitive on word boundaries.

KEYWORD_RULES: List[KeywordRule] = [

    KeywordRule(
        Polarity.RED, FlagCategory.FINANCIAL_ASK, Severity.HIGH, 0.7,
        'Mentions money or a payment method',
        ('money', 'send', 'wire', 'loan', 'invest', 'crypto', 'bitcoin',
         'gift card', 'financial', 'venmo', 'cashapp', 'cash app', 'zelle',
         'paypal', 'western union', 'bank account'),
    ),

    KeywordRule(
        Polarity.RED, FlagCategory.OFF_PLATFORM_PUSH, Severity.MEDIUM, 0.8,
        'Pushes the conversation to another platform',
        ('whatsapp', 'telegram', 'text me', 'call me', 'email me', 'hangouts',
         'kik', 'snapchat', 'instagram', 'signal', 'off this app', 'off app'),
    ),

    KeywordRule(
        Polarity.RED, FlagCategory.LOVE_BOMBING, Severity.MEDIUM, 0.6,
        'Intense affection early in the conversation',
        ('love you', 'soulmate', 'destiny', 'meant to be', 'never felt this',
         'dream come true', 'marry'),
    ),

    KeywordRule(
        Polarity.RED, FlagCategory.URGENCY_PRESSURE, Severity.MEDIUM, 0.6,
        'Creates a sense of urgency',
        ('right now', 'urgent', 'immediately', 'hurry', 'asap', 'time sensitive'),
    ),

    KeywordRule(
        Polarity.GREEN, FlagCategory.RESPECTS_PACE, Severity.LOW, 0.6,
        'Lets you set the pace',
        ('take your time', "whenever you're ready", 'no rush', 'no pressure'),
    ),
]

QUESTION_RULE = KeywordRule(
    Polarity.GREEN, FlagCategory.ASKS_RECIPROCAL_QUESTIONS, Severity.LOW, 0.6,
    'Asks you questions', ('?',),
)

_SENTENCE = re.compile(r'[^.!?\n]+[.!?]*|[.!?]+')


def _compile(keywords: Sequence[str]) -> 're.Pattern[str]':
    alternation = '|'.join(re.escape(k) for k in sorted(keywords, key=len, reverse=True))
    return re.compile(rf'\b(?:{alternation})\b', re.IGNORECASE)


_PATTERNS: Dict[FlagCategory, 're.Pattern[str]'] = {
    rule.category: _compile(rule.keywords) for rule in KEYWORD_RULES
}


def scan_messages(messages: Sequence[Message]) -> List[Flag]:
    """
    Return heuristic flags for every rule match in an `other` message.
    At most one flag per (message, category). Ids are positional so
    the same input always yields the same flags.
    """
    flags: List[Flag] = []

    for msg in messages:
        if msg.role is not Role.OTHER or not msg.content.strip():
            continue

        for rule in KEYWORD_RULES:
            match = _PATTERNS[rule.category].search(msg.content)
            if match:
                flags.append(_flag(flags, rule, msg, match.start()))

        question_at = msg.content.find('?')
        if question_at >= 0:
            flags.append(_flag(flags, QUESTION_RULE, msg, question_at))

    logger.debug(f"Keyword scan: {len(flags)} heuristic flags")
    return flags


def _flag(found: List[Flag], rule: KeywordRule, msg: Message, offset: int) -> Flag:
    n = sum(1 for f in found if f.polarity is rule.polarity)
    return Flag(
        id                = f"{rule.polarity.value}-{n}",
        polarity          = rule.polarity,
        category          = rule.category,
        severity          = rule.severity,
        summary           = rule.summary,
        evidence_quote    = sentence_at(msg.content, offset) or msg.content,
        source_message_id = msg.id,
        confidence        = rule.confidence,
        origin            = ORIGIN_HEURISTIC,
    )


def sentence_at(content: str, offset: int) -> Optional[str]:
    """
    The sentence of `content` that covers `offset`, whitespace-trimmed.
    Always an exact substring of content.
    """
    for match in _SENTENCE.finditer(content):
        if match.start() <= offset < match.end():
            return match.group(0).strip() or None
    return None
