"""
tests/test_orchestrator.py
End-to-end analysis: fallback policy, model mode, harassment floor,
role disambiguation, and the invariants every result must hold.
"""

from datetime import datetime, timezone

import pytest

from chatsentry.config import AnalysisSettings
from chatsentry.errors import NoUsableMessagesError
from chatsentry.models.record import (
    ORIGIN_HEURISTIC,
    ORIGIN_MODEL,
    AnalysisResult,
    ClaimCategory,
    FlagCategory,
    Role,
    RoleDisambiguation,
    Severity,
)
from chatsentry.orchestrator import PassOutcome, analyze_conversation, run_with_fallback

from conftest import CONSISTENCY, DETECTION, ENRICHMENT, SCORING

SCAM_CHAT = (
    "Me: Hi! What do you do?\n"
    "Alex: I work in sales. Can you send me money for a ticket?\n"
    "Me: no\n"
    "Alex: Add me on WhatsApp right now\n"
)

STALKING_LOG = "\n".join(
    ["01/01/2024, 09:00 - Alex: "] * 60
    + ["01/01/2024, 10:00 - Alex: hello?", "01/01/2024, 10:01 - Sam: leave me alone"]
)

TWO_SENDER_LOG = (
    "01/01/2024, 09:00 - Alex: hi\n"
    "01/01/2024, 09:01 - Sam: hey\n"
)

SELF_CALLS_LOG = "\n".join(
    ["01/01/2024, 09:00 - Sam: "] * 60 + ["01/01/2024, 10:00 - Alex: hi"]
)

PASSES = ('detection', 'enrichment', 'scoring', 'consistency')


def assert_result_invariants(result: AnalysisResult):
    by_id = {m.id: m for m in result.messages}
    for flag in result.flags:
        assert by_id[flag.source_message_id].role is Role.OTHER
    for ev in result.evidence:
        content = by_id[ev.message_id].content
        assert content[ev.start_index:ev.end_index] == ev.text
    for score in (result.risk_score, result.trust_score, result.escalation_index,
                  result.reciprocity.balance_score, result.consistency.stability_index):
        assert 0 <= score <= 100


# ── FALLBACK POLICY ───────────────────────────────────────────

class TestRunWithFallback:
    def test_success_is_model(self):
        outcome = run_with_fallback('x', lambda: [1], lambda: [])
        assert outcome == PassOutcome([1], ORIGIN_MODEL)

    def test_none_falls_back(self):
        outcome = run_with_fallback('x', lambda: None, lambda: [])
        assert outcome == PassOutcome([], ORIGIN_HEURISTIC)

    def test_exception_falls_back(self):
        def boom():
            raise RuntimeError('backend down')
        assert run_with_fallback('x', boom, lambda: 'h').provenance == ORIGIN_HEURISTIC

    def test_no_primary_runs_fallback(self):
        assert run_with_fallback('x', None, lambda: 'h') == PassOutcome('h', ORIGIN_HEURISTIC)

    def test_empty_list_is_a_valid_model_result(self):
        assert run_with_fallback('x', lambda: [], lambda: ['h']).value == []


# ── HEURISTIC MODE ────────────────────────────────────────────

class TestHeuristicAnalysis:
    def test_scores_from_keyword_flags(self):
        result = analyze_conversation(SCAM_CHAT)
        categories = [f.category for f in result.flags]
        assert categories.count(FlagCategory.FINANCIAL_ASK) == 1
        assert FlagCategory.OFF_PLATFORM_PUSH in categories
        assert FlagCategory.URGENCY_PRESSURE in categories
        # 40 (high) + 25 + 25 (medium)
        assert result.risk_score == 90
        assert result.trust_score == 10
        assert result.escalation_index == 0
        assert len(result.timeline) == 2
        assert_result_invariants(result)

    def test_provenance_all_heuristic(self):
        result = analyze_conversation(SCAM_CHAT)
        assert result.provenance == {p: ORIGIN_HEURISTIC for p in PASSES}

    def test_flags_enriched_and_bound(self):
        result = analyze_conversation(SCAM_CHAT)
        assert all(f.meaning and f.recommended_action for f in result.flags)
        assert len(result.evidence) == len(result.flags)

    def test_consistency_claims_without_evaluation(self):
        result = analyze_conversation(SCAM_CHAT)
        assert [c.category for c in result.consistency.claims] == [ClaimCategory.JOB]
        assert result.consistency.evaluated is False

    def test_three_canned_replies(self):
        assert len(analyze_conversation(SCAM_CHAT).suggested_replies) == 3

    def test_deterministic(self):
        now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        first = analyze_conversation(SCAM_CHAT, now=now)
        second = analyze_conversation(SCAM_CHAT, now=now)
        assert first.flags == second.flags
        assert first.evidence == second.evidence
        assert first.timeline == second.timeline
        assert (first.risk_score, first.trust_score, first.escalation_index) == \
               (second.risk_score, second.trust_score, second.escalation_index)
        assert first.id != second.id


# ── HARASSMENT ────────────────────────────────────────────────

class TestHarassment:
    def test_call_flood_is_critical_stalking(self):
        result = analyze_conversation(STALKING_LOG, role_identifier='Sam')
        stalking = [f for f in result.flags if f.category is FlagCategory.STALKING]
        assert len(stalking) == 1
        assert stalking[0].severity is Severity.CRITICAL
        assert result.risk_score >= 95
        assert result.metadata.total_calls == 60
        assert_result_invariants(result)

    def test_floor_is_configurable(self):
        settings = AnalysisSettings(stalking_risk_floor=99)
        result = analyze_conversation(STALKING_LOG, role_identifier='Sam', settings=settings)
        assert result.risk_score >= 99

    def test_threshold_is_configurable(self):
        settings = AnalysisSettings(stalking_call_threshold=100)
        result = analyze_conversation(STALKING_LOG, role_identifier='Sam', settings=settings)
        assert all(f.category is not FlagCategory.STALKING for f in result.flags)
        assert result.risk_score < 95

    def test_floor_applies_over_model_scores(self, fake_llm):
        llm = fake_llm({SCORING: {'riskScore': 5, 'trustScore': 50, 'escalationIndex': 0}})
        result = analyze_conversation(STALKING_LOG, role_identifier='Sam', llm=llm)
        assert result.provenance['scoring'] == ORIGIN_MODEL
        assert result.risk_score == 95

    def test_model_stalking_finding_without_calls_keeps_model_risk(self, build_messages, fake_llm):
        chat = build_messages([('self', 'hi'), ('other', 'I know where you live')])
        llm = fake_llm({
            DETECTION: {'findings': [
                {'polarity': 'red', 'category': 'stalking', 'severity': 'critical',
                 'summary': 'Knows the address', 'quote': chat[1].content},
            ]},
            SCORING: {'riskScore': 30, 'trustScore': 10, 'escalationIndex': 0},
        })
        result = analyze_conversation(chat, llm=llm)
        assert result.metadata.harassment.call_count == 0
        assert [f.category for f in result.flags] == [FlagCategory.STALKING]
        assert result.risk_score == 30

    def test_floor_without_other_messages(self):
        self_only = "\n".join(["01/01/2024, 09:00 - Sam: "] * 60)
        result = analyze_conversation(self_only, role_identifier='Sam')
        assert result.flags == ()
        assert result.metadata.harassment.call_count == 60
        assert result.risk_score == 95

    def test_self_calls_are_not_quoted_as_their_words(self):
        result = analyze_conversation(SELF_CALLS_LOG, role_identifier='Sam')
        stalking = [f for f in result.flags if f.category is FlagCategory.STALKING]
        assert len(stalking) == 1
        assert stalking[0].evidence_quote == ''
        assert 'none placed from their messages' in stalking[0].summary
        assert all(ev.flag_id != stalking[0].id for ev in result.evidence)
        assert result.risk_score >= 95
        assert_result_invariants(result)


# ── INPUT OUTCOMES ────────────────────────────────────────────

class TestInputOutcomes:
    def test_two_senders_need_identifier(self):
        outcome = analyze_conversation(TWO_SENDER_LOG)
        assert outcome == RoleDisambiguation(candidate_senders=('Alex', 'Sam'))

    def test_identifier_resolves(self):
        result = analyze_conversation(TWO_SENDER_LOG, role_identifier='Alex')
        assert [m.role for m in result.messages] == [Role.SELF, Role.OTHER]

    def test_blank_input_is_fatal(self):
        with pytest.raises(NoUsableMessagesError):
            analyze_conversation('   \n  ')

    def test_blank_input_is_a_value_error(self):
        with pytest.raises(ValueError):
            analyze_conversation('')

    def test_message_list_input(self, build_messages):
        msgs = build_messages([('self', 'hi'), ('other', 'send money')])
        result = analyze_conversation(msgs)
        assert result.metadata.platform == 'messages'
        assert result.flags[0].category is FlagCategory.FINANCIAL_ASK


# ── MODEL MODE ────────────────────────────────────────────────

@pytest.fixture
def dating_chat(build_messages):
    return build_messages([
        ('self',  'Hi there'),
        ('other', 'Send me $200 for rent please'),
        ('other', 'How was your day?'),
    ])


def _full_responses(chat):
    return {
        DETECTION: {'findings': [
            {'polarity': 'red', 'category': 'financial_ask', 'severity': 'high',
             'summary': 'Asks for money', 'quote': chat[1].content, 'confidence': 0.95},
            {'polarity': 'red', 'category': 'threat', 'severity': 'high',
             'summary': 'Attributed to self', 'quote': chat[0].content},
        ]},
        ENRICHMENT: {'flags': {'flag-1': {
            'meaning': 'An early money request',
            'recommendedAction': 'Do not send money',
            'suggestedReply': {'content': "I don't send money.", 'tone': 'assertive'},
        }}},
        SCORING: {
            'riskScore': 70, 'trustScore': 20, 'escalationIndex': 10,
            'suggestedReplies': [
                {'tone': 'friendly', 'content': 'Glad to chat!'},
                {'tone': 'assertive', 'content': 'No money, sorry.'},
            ],
        },
        CONSISTENCY: {'claims': [], 'inconsistencies': [], 'summary': 'Nothing to compare.'},
    }


class TestModelAnalysis:
    def test_all_passes_from_model(self, dating_chat, fake_llm):
        llm = fake_llm(_full_responses(dating_chat))
        result = analyze_conversation(dating_chat, llm=llm)
        assert result.provenance == {p: ORIGIN_MODEL for p in PASSES}
        assert (result.risk_score, result.trust_score, result.escalation_index) == (70, 20, 10)
        assert len(result.suggested_replies) == 2
        assert result.consistency.evaluated is True
        assert len(llm.prompts) == 4

    def test_only_grounded_findings_survive(self, dating_chat, fake_llm):
        result = analyze_conversation(dating_chat, llm=fake_llm(_full_responses(dating_chat)))
        assert [f.source_message_id for f in result.flags] == ['m1']
        flag = result.flags[0]
        assert flag.meaning == 'An early money request'
        assert result.evidence[0].start_index == 0
        assert result.evidence[0].end_index == len(dating_chat[1].content)
        assert_result_invariants(result)

    def test_garbage_completions_fall_back(self, dating_chat, fake_llm):
        llm = fake_llm({marker: 'not json at all' for marker in (DETECTION, SCORING, CONSISTENCY)})
        result = analyze_conversation(dating_chat, llm=llm)
        assert result.provenance['detection'] == ORIGIN_HEURISTIC
        assert result.provenance['scoring'] == ORIGIN_HEURISTIC
        assert result.provenance['consistency'] == ORIGIN_HEURISTIC
        assert any(f.category is FlagCategory.FINANCIAL_ASK for f in result.flags)
        assert_result_invariants(result)

    def test_raising_backend_falls_back(self, dating_chat, fake_llm):
        error = RuntimeError('connection reset')
        llm = fake_llm({DETECTION: error, ENRICHMENT: error, SCORING: error, CONSISTENCY: error})
        result = analyze_conversation(dating_chat, llm=llm)
        assert result.provenance == {p: ORIGIN_HEURISTIC for p in PASSES}
        assert_result_invariants(result)

    def test_one_failed_pass_leaves_others_alone(self, dating_chat, fake_llm):
        responses = _full_responses(dating_chat)
        responses[SCORING] = RuntimeError('timeout')
        result = analyze_conversation(dating_chat, llm=fake_llm(responses))
        assert result.provenance['scoring'] == ORIGIN_HEURISTIC
        assert result.provenance['detection'] == ORIGIN_MODEL
        # heuristic scores come from the final flag set: one high red flag
        assert result.risk_score == 40

    def test_unavailable_backend_is_never_called(self, dating_chat, fake_llm):
        llm = fake_llm(_full_responses(dating_chat), available=False)
        result = analyze_conversation(dating_chat, llm=llm)
        assert llm.prompts == []
        assert result.provenance == {p: ORIGIN_HEURISTIC for p in PASSES}
