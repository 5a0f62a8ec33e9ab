"""
chatsentry/parsers/redaction.py
PII redaction for pasted free-text transcripts.
Runs before generic parsing, so message content (and every evidence
offset computed against it) refers to the redacted text.
"""

import re
from typing import List, Tuple

# Order matters: card / SSN before the looser phone pattern,
# URLs before @handles (URLs may contain '@').
REDACTION_PATTERNS: List[Tuple[str, 're.Pattern[str]']] = [
    ('[EMAIL]',   re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')),
    ('[LINK]',    re.compile(r'https?://[^\s<>"]+')),
    ('[CARD]',    re.compile(r'\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b')),
    ('[SSN]',     re.compile(r'\b\d{3}-\d{2}-\d{4}\b')),
    ('[PHONE]',   re.compile(r'(?<!\w)\+?\(?\d{1,4}\)?(?:[\s.-]?\d){6,14}\b')),
    ('[ADDRESS]', re.compile(
        r'\b\d+\s+(?:[A-Za-z]+\s){1,3}'
        r'(?:Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Lane|Ln|Drive|Dr|Court|Ct|Plaza|Pl)\b',
        re.IGNORECASE,
    )),
    ('[SOCIAL]',  re.compile(r'(?<![\w.])@[A-Za-z0-9_]{2,}')),
]


def redact_personal_info(text: str) -> str:
    """Replace e-mails, links, card/SSN/phone numbers, addresses and @handles."""
    for placeholder, pattern in REDACTION_PATTERNS:
        text = pattern.sub(placeholder, text)
    return text
