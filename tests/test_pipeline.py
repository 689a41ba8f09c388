"""
Tests for the comparator and the end-to-end evaluation pipeline.

Run: pytest tests/ -v
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from unittest.mock import patch

import pytest

from proposal_validator.comparison import compare_proposal_sets, proposals_equal, values_equal
from proposal_validator.models import TemplateContext, ValidationConfig
from proposal_validator.pipeline import COMPARISON_METHOD, ProposalEvaluationPipeline

TODAY = "2024-09-18T00:00:00.000Z"


def _config(ignore_paths: list[str] | None = None) -> ValidationConfig:
    return ValidationConfig(normalization=[], ignore_paths=ignore_paths or [], transformers={})


def _normalized(effective_date: str | None = TODAY, **overrides: Any) -> dict[str, Any]:
    """Factory for normalized change proposals."""
    record: dict[str, Any] = {
        "changeType": "change",
        "changedField": "salary",
        "newValue": "5000",
        "mutationQueryPropertyPath": None,
        "relatedUserId": "u1",
        "mutationVariables": {"data": {"effectiveDate": effective_date}},
    }
    record.update(overrides)
    return record


def _system_proposal(**overrides: Any) -> dict[str, Any]:
    """A raw proposal shaped the way the system under test emits it."""
    record: dict[str, Any] = {
        "changeType": "change",
        "changedField": "salary",
        "newValue": "5000",
        "relatedUserId": "u1",
        "reasoning": "Instruction asked for a raise",
        "mutationQuery": {"variables": {"data": {"effectiveDate": TODAY}}},
    }
    record.update(overrides)
    return record


AUTHOR_EXPECTATION = {
    "changeType": "change",
    "changedField": "salary",
    "newValue": "5000",
    "relatedUserId": "u1",
}


# ═══════════════════════════════════════════════════════════════════════
# VALUE EQUALITY
# ═══════════════════════════════════════════════════════════════════════


class TestValuesEqual:
    def test_scalar_string_coercion(self):
        assert values_equal(5000, "5000", _config())
        assert values_equal("true", "true", _config())
        assert not values_equal(5000, "5001", _config())

    def test_int_and_float_compare_numerically(self):
        assert values_equal(5000, 5000.0, _config())
        assert values_equal({"n": 1.0}, {"n": 1}, _config())
        assert not values_equal(5000, 5000.5, _config())

    def test_float_text_matches_integer_string(self):
        assert values_equal(5000.0, "5000", _config())
        assert values_equal("5000", 5000.0, _config())
        assert not values_equal(5000.5, "5000", _config())

    def test_bool_compares_as_json_text(self):
        assert values_equal(True, "true", _config())
        assert values_equal("false", False, _config())
        assert not values_equal(True, "True", _config())

    def test_bool_is_not_a_number(self):
        assert not values_equal(True, 1, _config())
        assert not values_equal(0, False, _config())

    def test_nan_equals_itself(self):
        nan = float("nan")
        assert values_equal(nan, nan, _config())
        assert values_equal(float("nan"), float("nan"), _config())
        assert not values_equal(float("nan"), 0.0, _config())

    def test_none_never_equals_a_value(self):
        assert values_equal(None, None, _config())
        assert not values_equal(None, "None", _config())
        assert not values_equal(0, None, _config())

    def test_key_presence_matters(self):
        assert not values_equal({"a": 1}, {"a": 1, "b": None}, _config())

    def test_lists_are_ordered(self):
        assert values_equal({"a": [1, 2]}, {"a": [1, 2]}, _config())
        assert not values_equal({"a": [1, 2]}, {"a": [2, 1]}, _config())
        assert not values_equal({"a": [1]}, {"a": [1, 1]}, _config())

    def test_container_vs_scalar(self):
        assert not values_equal({"a": {}}, {"a": "{}"}, _config())
        assert not values_equal({"a": []}, {"a": None}, _config())

    def test_ignored_path_short_circuits(self):
        config = _config(["meta.stamp"])
        assert values_equal({"meta": {"stamp": 1}}, {"meta": {"stamp": 2}}, config)
        # Presence vs absence is also ignored.
        assert values_equal({"meta": {"stamp": 1}}, {"meta": {}}, config)

    def test_ignored_list_element(self):
        config = _config(["items[1]"])
        assert values_equal({"items": [1, 2]}, {"items": [1, 3]}, config)

    def test_wildcard_ignore(self):
        config = _config(["*.updatedAt"])
        left = {"a": {"updatedAt": 1, "v": 1}}
        right = {"a": {"updatedAt": 2, "v": 1}}
        assert values_equal(left, right, config)


# ═══════════════════════════════════════════════════════════════════════
# SET COMPARISON
# ═══════════════════════════════════════════════════════════════════════


class TestCompareProposalSets:
    def test_reflexive(self):
        proposals = [_normalized(), _normalized(newValue="6000"), _normalized(effective_date=None)]
        for ignore in ([], ["newValue"], ["mutationVariables.*"]):
            result = compare_proposal_sets(proposals, proposals, _config(ignore))
            assert result.matches is True
            assert result.matched_count == 3

    def test_reflexive_with_nan_values(self):
        shared = _normalized(newValue=float("nan"))
        for expected, actual in (
            ([shared], [shared]),
            ([_normalized(newValue=float("nan"))], [_normalized(newValue=float("nan"))]),
        ):
            result = compare_proposal_sets(expected, actual, _config())
            assert result.matches is True
            assert result.matched_count == 1

    def test_empty_sets_match(self):
        result = compare_proposal_sets([], [], _config())
        assert result.matches is True
        assert result.matched_count == 0

    def test_order_does_not_matter(self):
        a = _normalized(newValue="1")
        b = _normalized(newValue="2")
        assert compare_proposal_sets([a, b], [b, a], _config()).matches

    def test_one_to_one_pairing(self):
        proposal = _normalized()
        result = compare_proposal_sets([proposal, proposal], [proposal], _config())
        assert result.matches is False
        assert result.matched_count == 1
        assert len(result.missing_in_actual) == 1
        assert result.unexpected_in_actual == []

    def test_unexpected_reported(self):
        result = compare_proposal_sets([_normalized()], [_normalized(), _normalized()], _config())
        assert not result.matches
        assert len(result.unexpected_in_actual) == 1

    def test_date_difference_without_ignore(self):
        expected = [_normalized(effective_date="2024-09-18T00:00:00.000Z")]
        actual = [_normalized(effective_date="2024-10-01T00:00:00.000Z")]
        result = compare_proposal_sets(expected, actual, _config())
        assert result.matches is False
        assert len(result.missing_in_actual) == 1
        assert len(result.unexpected_in_actual) == 1

    def test_date_difference_with_ignore(self):
        expected = [_normalized(effective_date="2024-09-18T00:00:00.000Z")]
        actual = [_normalized(effective_date="2024-10-01T00:00:00.000Z")]
        config = _config(["mutationVariables.data.effectiveDate"])
        assert compare_proposal_sets(expected, actual, config).matches is True

    @pytest.mark.parametrize(
        ("narrow", "wide"),
        [
            ([], ["newValue"]),
            (["newValue"], ["newValue", "relatedUserId"]),
            ([], ["mutationVariables.*"]),
        ],
    )
    def test_more_ignores_never_break_a_match(self, narrow, wide):
        pairs = [
            ([_normalized()], [_normalized()]),
            ([_normalized()], [_normalized(newValue="9")]),
            ([_normalized()], [_normalized(effective_date=None)]),
            ([_normalized(relatedUserId="u2")], [_normalized(newValue="9")]),
        ]
        for expected, actual in pairs:
            if compare_proposal_sets(expected, actual, _config(narrow)).matches:
                assert compare_proposal_sets(expected, actual, _config(wide)).matches

    def test_per_expected_configs(self):
        expected = [_normalized(newValue="1"), _normalized(newValue="2")]
        actual = [_normalized(newValue="1"), _normalized(newValue="999")]
        configs = [_config(), _config(["newValue"])]
        assert compare_proposal_sets(expected, actual, _config(), configs).matches
        assert not compare_proposal_sets(expected, actual, _config()).matches

    def test_proposals_equal_is_plain_predicate(self):
        assert proposals_equal(_normalized(), _normalized(), _config())
        assert not proposals_equal(_normalized(), _normalized(newValue="x"), _config())


# ═══════════════════════════════════════════════════════════════════════
# FULL PIPELINE
# ═══════════════════════════════════════════════════════════════════════


class TestPipeline:
    @pytest.fixture
    def pipeline(self) -> ProposalEvaluationPipeline:
        return ProposalEvaluationPipeline()

    def test_today_is_filled_from_actual(self, pipeline, context):
        verdict = pipeline.run([AUTHOR_EXPECTATION], [_system_proposal()], context=context)
        assert verdict.score == 1
        assert verdict.key == "data_change_proposal_verification"
        assert verdict.value.matched_proposals == 1
        assert verdict.value.comparison_method == COMPARISON_METHOD

    def test_single_record_inputs_accepted(self, pipeline, context):
        verdict = pipeline.run(AUTHOR_EXPECTATION, _system_proposal(), context=context)
        assert verdict.score == 1

    def test_numeric_and_string_values_match(self, pipeline, context):
        verdict = pipeline.run(
            [AUTHOR_EXPECTATION], [_system_proposal(newValue=5000)], context=context
        )
        assert verdict.score == 1

    def test_integral_float_matches_integer(self, pipeline, context):
        expected = {**AUTHOR_EXPECTATION, "newValue": 5000}
        verdict = pipeline.run([expected], [_system_proposal(newValue=5000.0)], context=context)
        assert verdict.score == 1

    def test_wrong_day_fails(self, pipeline):
        # Same proposals, evaluated a day later.
        later = TemplateContext(current_date=datetime(2024, 9, 19, tzinfo=timezone.utc))
        verdict = pipeline.run([AUTHOR_EXPECTATION], [_system_proposal()], context=later)
        assert verdict.score == 0
        assert verdict.value.missing_proposals == 1
        assert verdict.value.unexpected_proposals == 1

    def test_explicit_expected_value_is_kept(self, pipeline, context):
        expected = dict(
            AUTHOR_EXPECTATION,
            mutationVariables={"data": {"effectiveDate": "2024-10-01T00:00:00.000Z"}},
        )
        verdict = pipeline.run([expected], [_system_proposal()], context=context)
        assert verdict.score == 0

    def test_dataset_ignore_path(self, pipeline, context):
        expected = dict(
            AUTHOR_EXPECTATION,
            mutationVariables={"data": {"effectiveDate": "2024-10-01T00:00:00.000Z"}},
        )
        verdict = pipeline.run(
            [expected],
            [_system_proposal()],
            dataset_config={"ignorePaths": ["mutationVariables.data.effectiveDate"]},
            context=context,
        )
        assert verdict.score == 1

    def test_record_level_empty_transformers_disable_defaults(self, pipeline, context):
        expected = dict(AUTHOR_EXPECTATION, transformers={})
        verdict = pipeline.run([expected], [_system_proposal()], context=context)
        # Nothing fills effectiveDate any more, so the actual's date is unexpected.
        assert verdict.score == 0
        assert verdict.value.missing_proposals == 1

    def test_record_level_override_even_with_dataset_transformers(self, pipeline, context):
        expected = dict(
            AUTHOR_EXPECTATION,
            transformers={},
            mutationVariables={"data": {"effectiveDate": TODAY}},
        )
        dataset = {"transformers": {"newValue": {"value": "overwritten", "strategy": "transform-always"}}}
        verdict = pipeline.run([expected], [_system_proposal()], dataset_config=dataset, context=context)
        assert verdict.score == 1

    def test_record_level_ignore_paths(self, pipeline, context):
        expected = dict(AUTHOR_EXPECTATION, ignorePaths=["mutationVariables.*"])
        actual = _system_proposal(mutationQuery={"variables": {"data": {"anything": 1}}})
        verdict = pipeline.run([expected], [actual], context=context)
        assert verdict.score == 1

    def test_creation_proposal(self, pipeline, context):
        expected = {"changeType": "creation", "relatedUserId": "u9", "mutationVariables": {"data": {"title": "Engineer"}}}
        actual = {
            "changeType": "creation",
            "relatedUserId": "u9",
            "mutationQuery": {"variables": {"data": {"title": "Engineer", "startDate": TODAY}}},
        }
        verdict = pipeline.run([expected], [actual], context=context)
        assert verdict.score == 1

    def test_template_transformer_in_dataset_config(self, pipeline, context):
        dataset = {
            "transformers": {
                "mutationVariables.data.effectiveDate": "transformer-template-currentMonth+1",
            }
        }
        actual = _system_proposal(
            mutationQuery={"variables": {"data": {"effectiveDate": "2024-10-01T00:00:00.000Z"}}}
        )
        verdict = pipeline.run([AUTHOR_EXPECTATION], [actual], dataset_config=dataset, context=context)
        assert verdict.score == 1

    def test_pipeline_level_dataset_config(self, context):
        pipeline = ProposalEvaluationPipeline(
            dataset_config={"ignorePaths": ["newValue"]}
        )
        verdict = pipeline.run(
            [AUTHOR_EXPECTATION], [_system_proposal(newValue="7")], context=context
        )
        assert verdict.score == 1

    def test_no_actual_proposals(self, pipeline, context):
        verdict = pipeline.run([AUTHOR_EXPECTATION], [], context=context)
        assert verdict.score == 0
        assert verdict.value.actual_proposal_count == 0
        assert verdict.value.missing_proposals == 1

    def test_inputs_not_mutated(self, pipeline, context):
        expected = [dict(AUTHOR_EXPECTATION, ignorePaths=["x"])]
        actual = [_system_proposal()]
        snapshot = (repr(expected), repr(actual))
        pipeline.run(expected, actual, context=context)
        assert (repr(expected), repr(actual)) == snapshot


class TestPipelineErrors:
    @pytest.mark.parametrize("expected", [None, []])
    def test_missing_expectation(self, expected, context):
        verdict = ProposalEvaluationPipeline().run(expected, [_system_proposal()], context=context)
        assert verdict.score == 0
        assert "MISSING_EXPECTATION" in verdict.comment
        assert verdict.value is None

    def test_malformed_dataset_config(self, context):
        verdict = ProposalEvaluationPipeline().run(
            [AUTHOR_EXPECTATION],
            [_system_proposal()],
            dataset_config={"ignorePaths": 5},
            context=context,
        )
        assert verdict.score == 0
        assert "INVALID_CONFIGURATION" in verdict.comment

    def test_non_object_actual(self, context):
        verdict = ProposalEvaluationPipeline().run(
            [AUTHOR_EXPECTATION], ["not a proposal"], context=context
        )
        assert verdict.score == 0
        assert "NORMALIZATION_FAILED" in verdict.comment

    def test_non_object_expected(self, context):
        verdict = ProposalEvaluationPipeline().run([42], [_system_proposal()], context=context)
        assert verdict.score == 0
        assert "NORMALIZATION_FAILED" in verdict.comment

    def test_internal_error_becomes_score_zero(self, context):
        with patch(
            "proposal_validator.pipeline.compare_proposal_sets",
            side_effect=RuntimeError("comparator exploded"),
        ):
            verdict = ProposalEvaluationPipeline().run(
                [AUTHOR_EXPECTATION], [_system_proposal()], context=context
            )
        assert verdict.score == 0
        assert "comparator exploded" in verdict.comment

    def test_verdict_serializes_with_camel_case(self, context):
        verdict = ProposalEvaluationPipeline().run(
            [AUTHOR_EXPECTATION], [_system_proposal()], context=context
        )
        dumped = verdict.model_dump(by_alias=True)
        assert set(dumped["value"]) == {
            "expectedProposalCount",
            "actualProposalCount",
            "matchedProposals",
            "missingProposals",
            "unexpectedProposals",
            "comparisonMethod",
        }
