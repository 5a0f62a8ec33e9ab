"""
chatsentry/errors.py
Conditions a caller of the core can observe. External-capability
failures are not listed here; they never leave the pass that hit them.
"""

from typing import Iterable, Tuple


class ChatSentryError(Exception):
    """Base class for chatsentry errors."""


class NoUsableMessagesError(ChatSentryError, ValueError):
    """Normalization produced zero messages. Fatal to the call."""


class IdentificationRequired(ChatSentryError):
    """
    A dated-log transcript names two or more senders and no role
    identifier was given. Recoverable: re-invoke with one of
    candidate_senders.
    """

    def __init__(self, candidate_senders: Iterable[str]):
        self.candidate_senders: Tuple[str, ...] = tuple(candidate_senders)
        super().__init__(
            'Role identifier required. Senders found: '
            + ', '.join(self.candidate_senders)
        )
