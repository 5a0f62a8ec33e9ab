"""
chatsentry/models/record.py
Shared schema. Normalizer, detectors, scorer, binder and exporters
all use these types. Data only, no logic.

Closed vocabularies (roles, polarity, severity, categories, tones) are
str-valued enums so they serialize as plain strings. Values coming from
the external model that fall outside a vocabulary map to the enum's
fallback member instead of raising.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple


class Role(str, Enum):
    SELF  = 'self'
    OTHER = 'other'


class Polarity(str, Enum):
    RED   = 'red'       # concerning
    GREEN = 'green'     # positive


class Severity(str, Enum):
    LOW      = 'low'
    MEDIUM   = 'medium'
    HIGH     = 'high'
    CRITICAL = 'critical'

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            return cls.__members__.get(value.strip().upper(), cls.LOW)
        return cls.LOW


class FlagCategory(str, Enum):
    # red
    FINANCIAL_ASK          = 'financial_ask'
    OFF_PLATFORM_PUSH      = 'off_platform_push'
    LOVE_BOMBING           = 'love_bombing'
    URGENCY_PRESSURE       = 'urgency_pressure'
    BOUNDARY_VIOLATION     = 'boundary_violation'
    IDENTITY_INCONSISTENCY = 'identity_inconsistency'
    TIMEZONE_MISMATCH      = 'timezone_mismatch'
    AVOIDS_VIDEO_CALL      = 'avoids_video_call'
    INTIMATE_PHOTO_REQUEST = 'intimate_photo_request'
    GUILT_TRIPPING         = 'guilt_tripping'
    GASLIGHTING            = 'gaslighting'
    JEALOUSY_POSSESSIVENESS = 'jealousy_possessiveness'
    ISOLATION_ATTEMPT      = 'isolation_attempt'
    SOB_STORY              = 'sob_story'
    INVESTMENT_SCHEME      = 'investment_scheme'
    THREAT                 = 'threat'
    STALKING               = 'stalking'
    # green
    REMEMBERS_DETAILS         = 'remembers_details'
    ASKS_RECIPROCAL_QUESTIONS = 'asks_reciprocal_questions'
    VIDEO_CALL_OFFER          = 'video_call_offer'
    RESPECTS_PACE             = 'respects_pace'
    PATIENT_RESPONSE          = 'patient_response'
    CONSISTENT_STORY          = 'consistent_story'
    SHARES_OPENLY             = 'shares_openly'
    ACCEPTS_NO                = 'accepts_no'
    # fallback for anything the model invents
    UNKNOWN = 'unknown'

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            key = value.strip().lower().replace('-', '_').replace(' ', '_')
            for member in cls:
                if member.value == key:
                    return member
        return cls.UNKNOWN


class EmotionalTone(str, Enum):
    NEUTRAL    = 'neutral'
    PLAYFUL    = 'playful'
    INTIMATE   = 'intimate'
    URGENT     = 'urgent'
    PRESSURING = 'pressuring'
    SUPPORTIVE = 'supportive'
    DEFENSIVE  = 'defensive'

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for member in cls:
                if member.value == value.strip().lower():
                    return member
        return cls.NEUTRAL


class TimelineKind(str, Enum):
    EMOTIONAL_SHIFT = 'emotional_shift'
    REQUEST         = 'request'
    ESCALATION      = 'escalation'


class ClaimCategory(str, Enum):
    LOCATION  = 'location'
    JOB       = 'job'
    PERSONAL  = 'personal'
    TIMELINE  = 'timeline'
    IDENTITY  = 'identity'
    LIFESTYLE = 'lifestyle'
    OTHER     = 'other'

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for member in cls:
                if member.value == value.strip().lower():
                    return member
        return cls.OTHER


class ReplyTone(str, Enum):
    FRIENDLY  = 'friendly'
    NEUTRAL   = 'neutral'
    ASSERTIVE = 'assertive'

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for member in cls:
                if member.value == value.strip().lower():
                    return member
        return cls.NEUTRAL


# Provenance markers
ORIGIN_MODEL       = 'model'
ORIGIN_HEURISTIC   = 'heuristic'
ORIGIN_SYNTHESIZED = 'synthesized'


# ── CONVERSATION ─────────────────────────────────────────────

@dataclass(frozen=True)
class Message:
    """Canonical message. Produced only by the transcript normalizer."""
    id:        str
    role:      Role
    content:   str
    timestamp: datetime


@dataclass
class HarassmentIndicators:
    call_count:            int  = 0
    excessive_calls:       bool = False
    deleted_message_count: int  = 0
    third_party_contact:   bool = False


@dataclass
class TranscriptMetadata:
    """Format-specific metadata collected while normalizing."""
    platform:        str                  = 'generic'    # generic / dated-log / messages
    total_calls:     int                  = 0
    deleted_messages: int                 = 0
    media_messages:  int                  = 0
    edited_messages: int                  = 0
    sender_names:    List[str]            = field(default_factory=list)
    harassment:      HarassmentIndicators = field(default_factory=HarassmentIndicators)


# ── FINDINGS ─────────────────────────────────────────────────

@dataclass(frozen=True)
class SuggestedReplyText:
    """Reply attached to a single flag by enrichment."""
    content: str
    tone:    str


@dataclass(frozen=True)
class Flag:
    id:                 str
    polarity:           Polarity
    category:           FlagCategory
    severity:           Severity
    summary:            str
    evidence_quote:     str
    source_message_id:  str
    confidence:         float
    origin:             str                          = ORIGIN_MODEL
    # enrichment
    meaning:            Optional[str]                = None
    recommended_action: Optional[str]                = None
    suggested_reply:    Optional[SuggestedReplyText] = None


@dataclass(frozen=True)
class Evidence:
    id:          str
    message_id:  str
    start_index: int
    end_index:   int
    text:        str
    flag_id:     str
    explanation: str


@dataclass(frozen=True)
class TimelineEvent:
    timestamp:   datetime
    kind:        TimelineKind
    description: str
    from_tone:   Optional[EmotionalTone] = None
    to_tone:     Optional[EmotionalTone] = None


@dataclass(frozen=True)
class SuggestedReply:
    id:               str
    tone:             ReplyTone
    content:          str
    context:          str
    related_flag_id:  Optional[str] = None


# ── PASS OUTPUTS ─────────────────────────────────────────────

@dataclass(frozen=True)
class ReciprocityMetrics:
    questions_by_self:   int
    questions_by_other:  int
    info_shared_by_self: int
    info_shared_by_other: int
    avg_len_self:        float
    avg_len_other:       float
    balance_score:       int          # 0-100, 100 = perfectly even


@dataclass(frozen=True)
class FactualClaim:
    id:         str
    category:   ClaimCategory
    text:       str
    message_id: str
    timestamp:  datetime


@dataclass(frozen=True)
class Inconsistency:
    id:          str
    claim1:      FactualClaim
    claim2:      FactualClaim
    description: str


@dataclass(frozen=True)
class ConsistencyReport:
    claims:          Tuple[FactualClaim, ...]
    inconsistencies: Tuple[Inconsistency, ...]
    stability_index: int          # 0-100, 100 = no contradictions
    summary:         str
    evaluated:       bool = True  # False when contradiction detection did not run


@dataclass(frozen=True)
class ScoreAssessment:
    """Scorer pass output. Scores are None when they must be derived from flags."""
    timeline:          Tuple[TimelineEvent, ...]
    suggested_replies: Tuple[SuggestedReply, ...]
    risk_score:        Optional[int] = None
    trust_score:       Optional[int] = None
    escalation_index:  Optional[int] = None


# ── AGGREGATE ROOT ───────────────────────────────────────────

@dataclass(frozen=True)
class AnalysisResult:
    id:                str
    created_at:        datetime
    messages:          Tuple[Message, ...]
    risk_score:        int
    trust_score:       int
    escalation_index:  int
    flags:             Tuple[Flag, ...]
    timeline:          Tuple[TimelineEvent, ...]
    reciprocity:       ReciprocityMetrics
    consistency:       ConsistencyReport
    suggested_replies: Tuple[SuggestedReply, ...]
    evidence:          Tuple[Evidence, ...]
    metadata:          TranscriptMetadata       = field(default_factory=TranscriptMetadata)
    provenance:        Dict[str, str]           = field(default_factory=dict)


@dataclass(frozen=True)
class RoleDisambiguation:
    """Returned instead of a result when the caller must say who they are."""
    candidate_senders:     Tuple[str, ...]
    needs_role_identifier: bool = True
