"""
chatsentry/orchestrator.py
Top-level analysis coordinator.

    normalize → [detect→enrich | score | reciprocity | consistency] → bind → result

The four analysis passes run concurrently on a thread pool and share
nothing but the immutable message tuple. Each model-backed pass goes
through run_with_fallback: one attempt, then its heuristic. A failing
pass never aborts the others, and no external call is retried.

Callers see one of three outcomes:
  AnalysisResult      always, unless one of the below
  RoleDisambiguation  dated-log with several senders and no identifier
  NoUsableMessagesError  raised when nothing survived normalization

No call is cancellable; a completion that never returns stalls its
pass. Callers that need a deadline should enforce one outside.
"""

import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Generic, List, Optional, Tuple, TypeVar, Union

from chatsentry.analysis.consistency import check_consistency, check_consistency_heuristic
from chatsentry.analysis.reciprocity import calculate_reciprocity
from chatsentry.config import AnalysisSettings
from chatsentry.detectors.flag_detector import detect_flags, enforce_integrity
from chatsentry.detectors.flag_enricher import enrich_flags, enrich_flags_heuristic
from chatsentry.detectors.harassment import stalking_threshold_reached, synthesize_harassment_flags
from chatsentry.detectors.keyword_detector import scan_messages
from chatsentry.errors import IdentificationRequired, NoUsableMessagesError
from chatsentry.evidence.binder import bind_evidence
from chatsentry.llm.base import LLMAdapter
from chatsentry.models.record import (
    ORIGIN_HEURISTIC,
    ORIGIN_MODEL,
    AnalysisResult,
    ConsistencyReport,
    Flag,
    Message,
    RoleDisambiguation,
    ScoreAssessment,
)
from chatsentry.parsers.normalizer import Transcript, normalize_transcript
from chatsentry.scorer.comprehensive_scorer import (
    apply_risk_floor,
    assess_conversation,
    assess_conversation_heuristic,
    score_from_flags,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

PASS_DETECTION   = 'detection'
PASS_ENRICHMENT  = 'enrichment'
PASS_SCORING     = 'scoring'
PASS_CONSISTENCY = 'consistency'


@dataclass(frozen=True)
class PassOutcome(Generic[T]):
    value:      T
    provenance: str     # ORIGIN_MODEL or ORIGIN_HEURISTIC


def run_with_fallback(
    name:     str,
    primary:  Optional[Callable[[], Optional[T]]],
    fallback: Callable[[], T],
) -> PassOutcome[T]:
    """
    Run `primary` once. None, or any exception, means failure and the
    heuristic `fallback` value is used instead. primary=None means the
    backend is unavailable and the fallback runs directly.
    """
    if primary is None:
        logger.warning(f"{name}: completion backend unavailable, using heuristic")
        return PassOutcome(fallback(), ORIGIN_HEURISTIC)

    started = time.monotonic()
    try:
        value = primary()
    except Exception as e:  # noqa: BLE001
        logger.warning(f"{name}: model pass failed ({type(e).__name__}), using heuristic")
        return PassOutcome(fallback(), ORIGIN_HEURISTIC)

    if value is None:
        logger.warning(f"{name}: completion unusable, using heuristic")
        return PassOutcome(fallback(), ORIGIN_HEURISTIC)

    logger.info(f"{name}: model pass ok in {time.monotonic() - started:.1f}s")
    return PassOutcome(value, ORIGIN_MODEL)


def analyze_conversation(
    transcript:      Transcript,
    role_identifier: Optional[str]               = None,
    platform_hint:   Optional[str]               = None,
    llm:             Optional[LLMAdapter]        = None,
    settings:        Optional[AnalysisSettings]  = None,
    now:             Optional[datetime]          = None,
) -> Union[AnalysisResult, RoleDisambiguation]:
    settings = settings or AnalysisSettings()

    # ── NORMALIZING ──────────────────────────────────────────
    try:
        messages, metadata = normalize_transcript(
            transcript,
            role_identifier = role_identifier,
            platform_hint   = platform_hint,
            self_tokens     = settings.self_tokens,
            redact_generic  = settings.redact_generic,
            excessive_calls = settings.excessive_call_threshold,
            now             = now,
        )
    except IdentificationRequired as e:
        logger.info(f"Role identifier required ({len(e.candidate_senders)} senders)")
        return RoleDisambiguation(candidate_senders=e.candidate_senders)

    if not messages:
        raise NoUsableMessagesError('No usable messages found in the transcript')
    conversation: Tuple[Message, ...] = tuple(messages)

    model = llm if llm is not None and llm.is_available() else None
    logger.info(
        f"Analyzing {len(conversation)} messages "
        f"({'model: ' + model.model_name if model else 'heuristic only'})"
    )

    # ── RUNNING PASSES ───────────────────────────────────────
    with ThreadPoolExecutor(max_workers=settings.max_workers) as pool:
        flags_future       = pool.submit(_flag_pass, model, conversation)
        scoring_future     = pool.submit(_scoring_pass, model, conversation)
        reciprocity_future = pool.submit(calculate_reciprocity, conversation)
        consistency_future = pool.submit(_consistency_pass, model, conversation)

        detection, enrichment = flags_future.result()
        scoring: PassOutcome[ScoreAssessment] = scoring_future.result()
        reciprocity = reciprocity_future.result()
        consistency: PassOutcome[ConsistencyReport] = consistency_future.result()

    # ── ASSEMBLING ───────────────────────────────────────────
    synthesized = synthesize_harassment_flags(
        conversation, metadata, stalking_threshold=settings.stalking_call_threshold,
    )
    flags = enforce_integrity(synthesized + enrichment.value, conversation)

    assessment = scoring.value
    if scoring.provenance == ORIGIN_MODEL:
        risk, trust, escalation = (
            assessment.risk_score, assessment.trust_score, assessment.escalation_index,
        )
    else:
        risk, trust, escalation = score_from_flags(flags, assessment.timeline)

    if stalking_threshold_reached(metadata, settings.stalking_call_threshold):
        risk = apply_risk_floor(risk, settings.stalking_risk_floor)

    # ── BINDING ──────────────────────────────────────────────
    evidence = bind_evidence(flags, conversation)

    result = AnalysisResult(
        id                = str(uuid.uuid4()),
        created_at        = datetime.now(timezone.utc),
        messages          = conversation,
        risk_score        = risk,
        trust_score       = trust,
        escalation_index  = escalation,
        flags             = tuple(flags),
        timeline          = assessment.timeline,
        reciprocity       = reciprocity,
        consistency       = consistency.value,
        suggested_replies = assessment.suggested_replies,
        evidence          = tuple(evidence),
        metadata          = metadata,
        provenance        = {
            PASS_DETECTION:   detection.provenance,
            PASS_ENRICHMENT:  enrichment.provenance,
            PASS_SCORING:     scoring.provenance,
            PASS_CONSISTENCY: consistency.provenance,
        },
    )
    logger.info(
        f"Analysis {result.id}: {len(flags)} flags, {len(evidence)} evidence spans, "
        f"risk {risk} trust {trust} escalation {escalation}"
    )
    return result


# ── PASSES ───────────────────────────────────────────────────
# Each returns PassOutcome values only; nothing here raises past the pool.

def _flag_pass(
    model:        Optional[LLMAdapter],
    conversation: Tuple[Message, ...],
) -> Tuple[PassOutcome[List[Flag]], PassOutcome[List[Flag]]]:
    detection = run_with_fallback(
        PASS_DETECTION,
        (lambda: detect_flags(model, conversation)) if model else None,
        lambda: scan_messages(conversation),
    )
    found = detection.value
    enrichment = run_with_fallback(
        PASS_ENRICHMENT,
        (lambda: enrich_flags(model, found, conversation)) if model else None,
        lambda: enrich_flags_heuristic(found),
    )
    return detection, enrichment


def _scoring_pass(
    model:        Optional[LLMAdapter],
    conversation: Tuple[Message, ...],
) -> PassOutcome[ScoreAssessment]:
    return run_with_fallback(
        PASS_SCORING,
        (lambda: assess_conversation(model, conversation)) if model else None,
        lambda: assess_conversation_heuristic(conversation),
    )


def _consistency_pass(
    model:        Optional[LLMAdapter],
    conversation: Tuple[Message, ...],
) -> PassOutcome[ConsistencyReport]:
    return run_with_fallback(
        PASS_CONSISTENCY,
        (lambda: check_consistency(model, conversation)) if model else None,
        lambda: check_consistency_heuristic(conversation),
    )
