"""
chatsentry/analysis/reciprocity.py
Reciprocity balance: how evenly two parties take part.

Pure function, no external dependency, no fallback needed.

Three per-role metrics (questions asked, personal disclosures, average
message length) are each scored as a deviation from an even split:

    deviation = |50 - 100 * self / (self + other)|      (0 when both are 0)

balance_score = 100 - mean(three deviations), rounded and clamped to 0-100.
"""

import logging
from typing import List, Sequence

from chatsentry.analysis.math_utils import clamp
from chatsentry.models.record import Message, ReciprocityMetrics, Role

logger = logging.getLogger(__name__)

DISCLOSURE_INDICATORS = (
    'i work', 'i live', 'my job', 'my family', 'i like', 'my hobbies',
    'i am a', 'i study', "i'm a", "i'm from",
)


def calculate_reciprocity(messages: Sequence[Message]) -> ReciprocityMetrics:
    own    = [m for m in messages if m.role is Role.SELF]
    theirs = [m for m in messages if m.role is Role.OTHER]

    q_self,  q_other  = count_questions(own), count_questions(theirs)
    i_self,  i_other  = count_disclosures(own), count_disclosures(theirs)
    len_self, len_other = average_length(own), average_length(theirs)

    deviations = [
        split_deviation(q_self, q_other),
        split_deviation(i_self, i_other),
        split_deviation(len_self, len_other),
    ]
    balance = clamp(100 - sum(deviations) / len(deviations))

    logger.debug(f"Reciprocity: balance {balance} over {len(messages)} messages")
    return ReciprocityMetrics(
        questions_by_self    = q_self,
        questions_by_other   = q_other,
        info_shared_by_self  = i_self,
        info_shared_by_other = i_other,
        avg_len_self         = len_self,
        avg_len_other        = len_other,
        balance_score        = balance,
    )


def count_questions(messages: Sequence[Message]) -> int:
    return sum(1 for m in messages if '?' in m.content)


def count_disclosures(messages: Sequence[Message]) -> int:
    return sum(
        1 for m in messages
        if any(ind in m.content.lower() for ind in DISCLOSURE_INDICATORS)
    )


def average_length(messages: Sequence[Message]) -> float:
    total = sum(len(m.content) for m in messages)
    return total / max(len(messages), 1)


def split_deviation(own: float, theirs: float) -> float:
    """0 for a perfectly even split, 50 when one side does everything."""
    total = own + theirs
    if total == 0:
        return 0.0
    return abs(50 - 100 * own / total)


def role_counts(messages: Sequence[Message]) -> List[int]:
    """[self messages, other messages]"""
    own = sum(1 for m in messages if m.role is Role.SELF)
    return [own, len(messages) - own]
