"""
chatsentry/report.py
Flat JSON rendering of an AnalysisResult, and the hashed export format.

result_to_dict: camelCase keys, ISO-8601 timestamps, enums as their
string values. export_to_json wraps it with a format version, report
metadata and a SHA-256 of the canonical payload.
"""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from chatsentry.models.record import (
    AnalysisResult,
    ConsistencyReport,
    Evidence,
    FactualClaim,
    Flag,
    Message,
    RoleDisambiguation,
    SuggestedReply,
    TimelineEvent,
    TranscriptMetadata,
)

EXPORT_FORMAT_VERSION = "1.0"


def _iso(value: datetime) -> str:
    return value.isoformat()


# ── PER-TYPE RENDERERS ───────────────────────────────────────

def message_to_dict(msg: Message) -> Dict[str, Any]:
    return {
        "id": msg.id,
        "role": msg.role.value,
        "content": msg.content,
        "timestamp": _iso(msg.timestamp),
    }


def flag_to_dict(flag: Flag) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        "id": flag.id,
        "polarity": flag.polarity.value,
        "category": flag.category.value,
        "severity": flag.severity.value,
        "summary": flag.summary,
        "evidenceQuote": flag.evidence_quote,
        "sourceMessageId": flag.source_message_id,
        "confidence": flag.confidence,
        "origin": flag.origin,
    }
    if flag.meaning is not None:
        d["meaning"] = flag.meaning
    if flag.recommended_action is not None:
        d["recommendedAction"] = flag.recommended_action
    if flag.suggested_reply is not None:
        d["suggestedReply"] = {
            "content": flag.suggested_reply.content,
            "tone": flag.suggested_reply.tone,
        }
    return d


def evidence_to_dict(ev: Evidence) -> Dict[str, Any]:
    return {
        "id": ev.id,
        "messageId": ev.message_id,
        "startIndex": ev.start_index,
        "endIndex": ev.end_index,
        "text": ev.text,
        "flagId": ev.flag_id,
        "explanation": ev.explanation,
    }


def timeline_event_to_dict(event: TimelineEvent) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        "timestamp": _iso(event.timestamp),
        "kind": event.kind.value,
        "description": event.description,
    }
    if event.from_tone is not None:
        d["fromTone"] = event.from_tone.value
    if event.to_tone is not None:
        d["toTone"] = event.to_tone.value
    return d


def reply_to_dict(reply: SuggestedReply) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        "id": reply.id,
        "tone": reply.tone.value,
        "content": reply.content,
        "context": reply.context,
    }
    if reply.related_flag_id is not None:
        d["relatedFlagId"] = reply.related_flag_id
    return d


def _claim_to_dict(claim: FactualClaim) -> Dict[str, Any]:
    return {
        "id": claim.id,
        "category": claim.category.value,
        "text": claim.text,
        "messageId": claim.message_id,
        "timestamp": _iso(claim.timestamp),
    }


def consistency_to_dict(report: ConsistencyReport) -> Dict[str, Any]:
    return {
        "claims": [_claim_to_dict(c) for c in report.claims],
        "inconsistencies": [
            {
                "id": inc.id,
                "claim1": _claim_to_dict(inc.claim1),
                "claim2": _claim_to_dict(inc.claim2),
                "description": inc.description,
            }
            for inc in report.inconsistencies
        ],
        "stabilityIndex": report.stability_index,
        "summary": report.summary,
        "evaluated": report.evaluated,
    }


def metadata_to_dict(meta: TranscriptMetadata) -> Dict[str, Any]:
    h = meta.harassment
    return {
        "platform": meta.platform,
        "totalCalls": meta.total_calls,
        "deletedMessages": meta.deleted_messages,
        "mediaMessages": meta.media_messages,
        "editedMessages": meta.edited_messages,
        "senderNames": list(meta.sender_names),
        "harassmentIndicators": {
            "callCount": h.call_count,
            "excessiveCalls": h.excessive_calls,
            "deletedMessageCount": h.deleted_message_count,
            "thirdPartyContact": h.third_party_contact,
        },
    }


# ── AGGREGATE ────────────────────────────────────────────────

def result_to_dict(result: AnalysisResult) -> Dict[str, Any]:
    r = result.reciprocity
    return {
        "id": result.id,
        "createdAt": _iso(result.created_at),
        "messages": [message_to_dict(m) for m in result.messages],
        "riskScore": result.risk_score,
        "trustScore": result.trust_score,
        "escalationIndex": result.escalation_index,
        "flags": [flag_to_dict(f) for f in result.flags],
        "timeline": [timeline_event_to_dict(e) for e in result.timeline],
        "reciprocity": {
            "questionsBySelf": r.questions_by_self,
            "questionsByOther": r.questions_by_other,
            "infoSharedBySelf": r.info_shared_by_self,
            "infoSharedByOther": r.info_shared_by_other,
            "avgLenSelf": r.avg_len_self,
            "avgLenOther": r.avg_len_other,
            "balanceScore": r.balance_score,
        },
        "consistency": consistency_to_dict(result.consistency),
        "suggestedReplies": [reply_to_dict(s) for s in result.suggested_replies],
        "evidence": [evidence_to_dict(e) for e in result.evidence],
        "metadata": metadata_to_dict(result.metadata),
        "provenance": dict(result.provenance),
    }


def disambiguation_to_dict(signal: RoleDisambiguation) -> Dict[str, Any]:
    return {
        "needsRoleIdentifier": signal.needs_role_identifier,
        "candidateSenders": list(signal.candidate_senders),
    }


# ── EXPORT ───────────────────────────────────────────────────

def _build_export_payload(
    result: AnalysisResult,
    analysis_parameters: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build export payload (no hash yet)."""
    report_metadata = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "analysis_parameters": dict(analysis_parameters) if analysis_parameters else {},
    }
    return {
        "export_format_version": EXPORT_FORMAT_VERSION,
        "report_metadata": report_metadata,
        "result": result_to_dict(result),
    }


def _content_hash(payload: Dict[str, Any]) -> str:
    """SHA-256 of canonical JSON serialization of payload (no hash field)."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def export_to_dict(
    result: AnalysisResult,
    analysis_parameters: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    payload = _build_export_payload(result, analysis_parameters)
    return {**payload, "content_hash_sha256": _content_hash(payload)}


def export_to_json(
    result: AnalysisResult,
    analysis_parameters: Optional[Dict[str, Any]] = None,
    indent: Optional[int] = 2,
) -> str:
    """Export result to a JSON string with metadata, format version and integrity hash."""
    return json.dumps(export_to_dict(result, analysis_parameters), indent=indent)


def verify_export(export: Dict[str, Any]) -> bool:
    """True when the stored hash matches the rest of the export."""
    payload = {k: v for k, v in export.items() if k != "content_hash_sha256"}
    return export.get("content_hash_sha256") == _content_hash(payload)
