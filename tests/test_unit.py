"""
Unit tests for trust-summary core components.
Run with:  pytest tests/test_unit.py -v
"""
from __future__ import annotations

import itertools
import json

import pytest

from trustsum.candidate_generator import DEFAULT_TEMPLATES, build_prompts
from trustsum.consistency import band_consistency, cosine_similarity, pairwise_similarities
from trustsum.errors import InputQualityError
from trustsum.fact_validator import (
    build_validation_prompt,
    decode_validation_response,
    select_best_run,
    strip_code_fence,
)
from trustsum.observer import Event, EventBus, EventType
from trustsum.schemas import (
    CandidateSummary,
    ConfidenceLevel,
    ConsistencyLevel,
    ConsistencyReport,
    SummaryResult,
    TrustLevel,
    TrustVerdict,
    ValidationRun,
)
from trustsum.source import assess_input, chunk_by_heading, normalize_source, prepare_source
from trustsum.trust_aggregator import (
    aggregate,
    band_source_confidence,
    fuse_trust,
    select_best_summary,
)

from tests.conftest import validation_json

# =====================================================================
# Schema tests
# =====================================================================


class TestValidationRun:
    def test_zero_outcome(self):
        run = ValidationRun.zero()
        assert run.supported_count == 0
        assert run.total_count == 0
        assert run.unsupported_sentences == ()

    def test_support_ratio(self):
        assert ValidationRun(4, 5).support_ratio == pytest.approx(0.8)

    def test_support_ratio_empty_is_zero(self):
        assert ValidationRun(0, 0).support_ratio == 0.0


class TestCandidateSummary:
    def test_frozen(self):
        c = CandidateSummary(index=0, text="A summary.")
        with pytest.raises(AttributeError):
            c.text = "changed"  # type: ignore[misc]


class TestSummaryResult:
    def test_to_dict_is_json_serialisable(self):
        result = SummaryResult(
            verdict=TrustVerdict(
                best_summary_index=1,
                source_confidence_level=ConfidenceLevel.MEDIUM,
                consistency_level=ConsistencyLevel.HIGH,
                trust_level=TrustLevel.TRUSTWORTHY,
                review_sentences=("Unverified claim.",),
            ),
            best_summary="Second summary.",
            candidates=[
                CandidateSummary(0, "First summary.", "professional_summarizer"),
                CandidateSummary(1, "Second summary.", "expert_analyst"),
            ],
            consistency=ConsistencyReport(
                level=ConsistencyLevel.HIGH,
                mean_similarity=0.9,
                similarities={(0, 1): 0.9},
            ),
            validations={0: ValidationRun(1, 3), 1: ValidationRun(3, 4)},
            run_id="abc123",
        )
        data = json.loads(json.dumps(result.to_dict()))

        assert data["verdict"]["trust_level"] == "Trustworthy"
        assert data["verdict"]["review_sentences"] == ["Unverified claim."]
        assert data["consistency"]["similarities"] == [{"pair": [0, 1], "similarity": 0.9}]
        assert data["candidates"][1]["supported_count"] == 3
        assert data["candidates"][1]["total_count"] == 4


# =====================================================================
# Consistency math
# =====================================================================


class TestCosineSimilarity:
    VECTORS = [
        [1.0, 0.0, 0.0],
        [0.5, 0.5, 0.0],
        [-1.0, 2.0, 3.0],
        [0.1, -0.7, 0.2],
    ]

    def test_symmetric(self):
        for a, b in itertools.product(self.VECTORS, repeat=2):
            assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_bounded(self):
        for a, b in itertools.product(self.VECTORS, repeat=2):
            assert -1.0 <= cosine_similarity(a, b) <= 1.0

    def test_zero_vector_gives_zero(self):
        assert cosine_similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0
        assert cosine_similarity([1.0, 2.0, 3.0], [0.0, 0.0, 0.0]) == 0.0

    def test_identical_is_one(self):
        assert cosine_similarity([0.3, 0.4], [0.3, 0.4]) == pytest.approx(1.0)

    def test_opposite_is_minus_one(self):
        assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)

    def test_orthogonal_is_zero(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_shape_mismatch_raises(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])

    def test_nan_component_raises(self):
        with pytest.raises(ValueError):
            cosine_similarity([float("nan"), 1.0], [1.0, 0.0])

    def test_infinite_component_raises(self):
        with pytest.raises(ValueError):
            cosine_similarity([float("inf"), 1.0], [1.0, 0.0])

    def test_overflowing_magnitudes_raise(self):
        with pytest.raises(ValueError):
            cosine_similarity([1e200, 1e200], [1e200, 1e200])


class TestPairwiseSimilarities:
    def test_pairs_lower_index_first(self):
        sims = pairwise_similarities({2: [1.0, 0.0], 0: [1.0, 0.0], 1: [0.0, 1.0]})
        assert list(sims) == [(0, 1), (0, 2), (1, 2)]
        assert sims[(0, 2)] == pytest.approx(1.0)
        assert sims[(0, 1)] == pytest.approx(0.0)


class TestBandConsistency:
    def test_high_boundary(self):
        assert band_consistency(0.85) is ConsistencyLevel.HIGH

    def test_medium_boundary(self):
        assert band_consistency(0.70) is ConsistencyLevel.MEDIUM

    def test_just_below_medium(self):
        assert band_consistency(0.699999) is ConsistencyLevel.LOW

    def test_negative_mean_is_low(self):
        assert band_consistency(-0.2) is ConsistencyLevel.LOW


# =====================================================================
# Validation response decoding
# =====================================================================


class TestStripCodeFence:
    def test_plain_text_untouched(self):
        assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'

    def test_fenced_block(self):
        raw = '```json\n{"a": 1}\n```'
        assert strip_code_fence(raw) == '{"a": 1}'


class TestDecodeValidationResponse:
    def test_counts_supported_and_unsupported(self):
        raw = validation_json([
            ("Revenue grew 12%.", True),
            ("Profits doubled.", False),
            ("Two offices opened.", True),
        ], confidence="Medium")
        run = decode_validation_response(raw)
        assert run.supported_count == 2
        assert run.total_count == 3
        assert run.unsupported_sentences == ("Profits doubled.",)
        assert run.reported_confidence == "Medium"

    def test_fenced_response(self):
        raw = "```json\n" + validation_json([("A.", True), ("B.", True)]) + "\n```"
        run = decode_validation_response(raw)
        assert (run.supported_count, run.total_count) == (2, 2)

    def test_malformed_json_is_zero_outcome(self):
        assert decode_validation_response("This is not JSON at all") == ValidationRun.zero()

    def test_empty_response_is_zero_outcome(self):
        assert decode_validation_response("") == ValidationRun.zero()

    def test_missing_sentences_is_zero_outcome(self):
        assert decode_validation_response('{"confidence": "High"}') == ValidationRun.zero()

    def test_sentences_not_an_array_is_zero_outcome(self):
        raw = '{"sentences": {"sentence": "A.", "supported": true}}'
        assert decode_validation_response(raw) == ValidationRun.zero()

    def test_top_level_array_is_zero_outcome(self):
        assert decode_validation_response('[{"sentence": "A.", "supported": true}]') == ValidationRun.zero()

    def test_incomplete_entries_are_skipped(self):
        raw = json.dumps({
            "sentences": [
                {"sentence": "Kept.", "supported": True},
                {"sentence": "No flag."},
                {"supported": False},
                {"sentence": "Also kept.", "supported": False},
                "not an object",
            ],
        })
        run = decode_validation_response(raw)
        assert run.total_count == 2
        assert run.supported_count == 1
        assert run.unsupported_sentences == ("Also kept.",)
        assert run.reported_confidence is None

    def test_non_boolean_flag_is_skipped(self):
        raw = json.dumps({
            "sentences": [
                {"sentence": "String flag.", "supported": "true"},
                {"sentence": "Numeric flag.", "supported": 1},
                {"sentence": "Real flag.", "supported": True},
            ],
        })
        run = decode_validation_response(raw)
        assert (run.supported_count, run.total_count) == (1, 1)

    def test_empty_sentence_list(self):
        run = decode_validation_response('{"sentences": [], "confidence": "Low"}')
        assert (run.supported_count, run.total_count) == (0, 0)


class TestValidationPrompt:
    def test_embeds_source_and_summary(self):
        prompt = build_validation_prompt("SOURCE BODY", "SUMMARY BODY")
        assert "%%\nSOURCE BODY\n%%" in prompt
        assert "Summary:\n%%\nSUMMARY BODY\n%%" in prompt
        assert '"sentences": [' in prompt


class TestBuildPrompts:
    def test_default_templates_in_order(self):
        prompts = build_prompts("BODY")
        assert [name for name, _ in prompts] == list(DEFAULT_TEMPLATES)
        assert all("%%\nBODY\n%%" in prompt for _, prompt in prompts)

    def test_literal_braces_survive(self):
        template = 'Reply like {"summary": "..."} for:\n{text}'
        [(name, prompt)] = build_prompts("BODY", {"json": template})
        assert name == "json"
        assert prompt == 'Reply like {"summary": "..."} for:\nBODY'

    def test_source_braces_not_expanded(self):
        [(_, prompt)] = build_prompts("a {text} b", {"t": "<{text}>"})
        assert prompt == "<a {text} b>"


class TestSelectBestRun:
    def test_highest_count_first_occurrence_wins(self):
        runs = [ValidationRun(2, 5), ValidationRun(4, 5), ValidationRun(4, 6)]
        assert select_best_run(runs) is runs[1]

    def test_count_not_ratio(self):
        runs = [ValidationRun(3, 3), ValidationRun(4, 8)]
        assert select_best_run(runs) is runs[1]

    def test_no_runs_is_zero(self):
        assert select_best_run([]) == ValidationRun.zero()


# =====================================================================
# Trust aggregation
# =====================================================================


class TestBandSourceConfidence:
    def test_high_boundary(self):
        assert band_source_confidence(0.90) is ConfidenceLevel.HIGH

    def test_medium_boundary(self):
        assert band_source_confidence(0.60) is ConfidenceLevel.MEDIUM

    def test_low(self):
        assert band_source_confidence(0.59) is ConfidenceLevel.LOW


class TestFuseTrust:
    @pytest.mark.parametrize(
        "confidence, consistency, expected",
        [
            (ConfidenceLevel.HIGH, ConsistencyLevel.HIGH, TrustLevel.VERY_TRUSTWORTHY),
            (ConfidenceLevel.HIGH, ConsistencyLevel.LOW, TrustLevel.TRUSTWORTHY),
            (ConfidenceLevel.HIGH, ConsistencyLevel.UNKNOWN, TrustLevel.TRUSTWORTHY),
            (ConfidenceLevel.LOW, ConsistencyLevel.HIGH, TrustLevel.TRUSTWORTHY),
            (ConfidenceLevel.MEDIUM, ConsistencyLevel.MEDIUM, TrustLevel.CHECK_BEFORE_USING),
            (ConfidenceLevel.LOW, ConsistencyLevel.LOW, TrustLevel.NOT_RELIABLE),
            (ConfidenceLevel.MEDIUM, ConsistencyLevel.UNKNOWN, TrustLevel.NOT_RELIABLE),
            (ConfidenceLevel.MEDIUM, ConsistencyLevel.LOW, TrustLevel.NOT_RELIABLE),
            (ConfidenceLevel.LOW, ConsistencyLevel.MEDIUM, TrustLevel.NOT_RELIABLE),
        ],
    )
    def test_table(self, confidence, consistency, expected):
        assert fuse_trust(confidence, consistency) is expected

    def test_total(self):
        for confidence, consistency in itertools.product(ConfidenceLevel, ConsistencyLevel):
            assert isinstance(fuse_trust(confidence, consistency), TrustLevel)


class TestAggregate:
    def test_high_confidence_high_consistency(self):
        validations = {
            0: ValidationRun(5, 5),
            1: ValidationRun(4, 5, ("Unsupported B.",)),
            2: ValidationRun(1, 2, ("Unsupported C.",)),
        }
        verdict = aggregate(validations, band_consistency(0.92))
        assert verdict.best_summary_index == 0
        assert verdict.source_confidence_level is ConfidenceLevel.HIGH
        assert verdict.consistency_level is ConsistencyLevel.HIGH
        assert verdict.trust_level is TrustLevel.VERY_TRUSTWORTHY
        assert verdict.review_sentences == ()

    def test_medium_confidence_medium_consistency(self):
        validations = {i: ValidationRun(13, 20) for i in range(3)}
        verdict = aggregate(validations, band_consistency(0.72))
        assert verdict.source_confidence_level is ConfidenceLevel.MEDIUM
        assert verdict.consistency_level is ConsistencyLevel.MEDIUM
        assert verdict.trust_level is TrustLevel.CHECK_BEFORE_USING

    def test_best_is_by_ratio_first_occurrence(self):
        validations = {
            0: ValidationRun(1, 4),
            1: ValidationRun(3, 4),
            2: ValidationRun(6, 8),
        }
        assert select_best_summary(validations) == 1

    def test_zero_outcomes_pick_first(self):
        validations = {i: ValidationRun.zero() for i in range(3)}
        verdict = aggregate(validations, ConsistencyLevel.UNKNOWN)
        assert verdict.best_summary_index == 0
        assert verdict.source_confidence_level is ConfidenceLevel.LOW
        assert verdict.trust_level is TrustLevel.NOT_RELIABLE
        assert verdict.review_sentences == ()

    def test_review_sentences_when_not_high(self):
        validations = {0: ValidationRun(3, 4, ("Profits doubled.",))}
        verdict = aggregate(validations, ConsistencyLevel.HIGH)
        assert verdict.source_confidence_level is ConfidenceLevel.MEDIUM
        assert verdict.review_sentences == ("Profits doubled.",)

    def test_no_review_sentences_when_high(self):
        validations = {0: ValidationRun(9, 10, ("Minor slip.",))}
        verdict = aggregate(validations, ConsistencyLevel.LOW)
        assert verdict.source_confidence_level is ConfidenceLevel.HIGH
        assert verdict.review_sentences == ()

    def test_no_review_sentences_when_none_recorded(self):
        validations = {0: ValidationRun(1, 3)}
        verdict = aggregate(validations, ConsistencyLevel.LOW)
        assert verdict.source_confidence_level is ConfidenceLevel.LOW
        assert verdict.review_sentences == ()

    def test_requires_validations(self):
        with pytest.raises(ValueError):
            aggregate({}, ConsistencyLevel.HIGH)

    def test_deterministic(self):
        validations = {0: ValidationRun(2, 3, ("X.",)), 1: ValidationRun(2, 3, ("Y.",))}
        first = aggregate(validations, ConsistencyLevel.MEDIUM)
        second = aggregate(validations, ConsistencyLevel.MEDIUM)
        assert first == second
        assert first.review_sentences == ("X.",)


# =====================================================================
# EventBus tests
# =====================================================================


class TestEventBus:
    def test_subscribe_and_publish(self):
        bus = EventBus()
        captured: list[Event] = []
        bus.subscribe(EventType.VALIDATION_PASS, captured.append)

        bus.publish(Event(EventType.VALIDATION_PASS, message="test"))
        assert len(captured) == 1
        assert captured[0].message == "test"

    def test_subscribe_all(self):
        bus = EventBus()
        captured: list[Event] = []
        bus.subscribe_all(captured.append)

        for et in EventType:
            bus.publish(Event(et, message=et.name))

        assert len(captured) == len(EventType)

    def test_publish_wrong_type_not_received(self):
        bus = EventBus()
        captured: list[Event] = []
        bus.subscribe(EventType.TRUST_VERDICT, captured.append)

        bus.publish(Event(EventType.CANDIDATE_GENERATED, message="miss"))
        assert captured == []

    def test_subscriber_exception_does_not_break_bus(self):
        bus = EventBus()
        captured: list[str] = []

        def bad(evt: Event):
            raise RuntimeError("boom")

        bus.subscribe(EventType.CONSISTENCY_SCORED, bad)
        bus.subscribe(EventType.CONSISTENCY_SCORED, lambda evt: captured.append(evt.message))

        bus.publish(Event(EventType.CONSISTENCY_SCORED, message="ok"))
        assert captured == ["ok"]

    def test_run_id_stamped(self):
        bus = EventBus()
        bus.run_id = "run42"
        captured: list[Event] = []
        bus.subscribe(EventType.TRUST_VERDICT, captured.append)

        bus.publish(Event(EventType.TRUST_VERDICT))
        bus.publish(Event(EventType.TRUST_VERDICT, run_id="explicit"))
        assert [e.run_id for e in captured] == ["run42", "explicit"]


# =====================================================================
# Source input tests
# =====================================================================


class TestSourceInput:
    def test_chunk_by_heading(self):
        text = "Intro line\n# First\nbody one\n\n# Second\nbody two\n"
        assert chunk_by_heading(text) == ["Intro line", "# First\nbody one", "# Second\nbody two"]

    def test_subheadings_do_not_split(self):
        assert chunk_by_heading("# Top\n## Sub\ntext") == ["# Top\n## Sub\ntext"]

    def test_normalize_joins_with_rule(self):
        assert normalize_source("# A\nx\n# B\ny") == "# A\nx\n\n---\n\n# B\ny"

    def test_assess_empty(self):
        assert assess_input("   ") == "Input document is empty."

    def test_assess_short(self):
        assert "very short" in assess_input("Too short.")

    def test_assess_ok(self):
        assert assess_input("x" * 100) is None

    def test_prepare_rejects_short(self):
        with pytest.raises(InputQualityError):
            prepare_source("# Title\nshort")


# =====================================================================
# ProviderFactory tests
# =====================================================================


class TestProviderFactory:
    def test_available_names_includes_core(self):
        from trustsum.providers import ProviderFactory

        names = ProviderFactory.available_names()
        for expected in ("openai", "azure", "anthropic", "gemini", "ollama"):
            assert expected in names

    def test_embedder_names(self):
        from trustsum.providers import EmbedderFactory

        names = EmbedderFactory.available_names()
        for expected in ("openai", "azure", "ollama", "local"):
            assert expected in names

    def test_create_unknown_raises(self):
        from trustsum.providers import ProviderFactory

        with pytest.raises(KeyError, match="Unknown provider"):
            ProviderFactory.create("totally_fake_provider")

    def test_create_ollama_shorthand(self):
        from trustsum.providers import ProviderFactory

        p = ProviderFactory.create("ollama:codellama:13b")
        assert p.name == "ollama:codellama:13b"
        assert p.model == "codellama:13b"

    def test_create_local_embedder_with_model(self):
        from trustsum.providers import EmbedderFactory

        e = EmbedderFactory.create("local:all-mpnet-base-v2")
        assert e.name == "local"
        assert e.model == "all-mpnet-base-v2"
