"""
Evaluation pipeline — grade a system's proposals against an expectation.

Flow:
  ┌──────────┐       ┌──────────┐
  │ Expected │       │  Actual  │
  └────┬─────┘       └────┬─────┘
       │                  │
  ┌────▼─────┐            │
  │  Split   │   ← Per-record config keys come off the data
  └────┬─────┘            │
       │                  │
  ┌────▼─────┐            │
  │  Merge   │   ← Defaults + dataset + record → effective config
  └────┬─────┘            │
       │                  │
  ┌────▼──────────────────▼────┐
  │        Normalize           │   ← Same canonical fields on both sides
  └────┬──────────────────┬────┘
       │                  │
  ┌────▼──────────────────▼────┐
  │       Transformers         │   ← Fill "today" etc. from the paired record
  └────┬──────────────────┬────┘
       │                  │
  ┌────▼──────────────────▼────┐
  │         Compare            │   ← Ignore-aware deep equality
  └─────────────┬──────────────┘
                │
         ┌──────▼──────┐
         │   Verdict   │   ← score 0/1 + counts
         └─────────────┘

Design principles:
  - ``run`` never raises. Missing input, malformed config and unexpected
    internal errors all come back as score-0 verdicts.
  - "Now" is read once per run and shared by every stage.
  - No I/O. Dataset configs are loaded by the caller.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence, Union

from .comparison import compare_proposal_sets
from .exceptions import MissingExpectationError, NormalizationError, ProposalValidationError
from .models import (
    ComparisonResult,
    EvaluationVerdict,
    NormalizedProposal,
    TemplateContext,
    ValidationConfig,
    VerdictDetails,
)
from .normalization import normalize_proposal
from .transformer_applier import apply_transformers_to_record
from .transformers import TransformerRegistry, default_transformer_registry
from .validation_config import (
    DEFAULT_VALIDATION_CONFIG,
    coerce_validation_config,
    merge_validation_configs,
    split_record_overrides,
)

logger = logging.getLogger(__name__)

COMPARISON_METHOD = "normalized_deep_equality"

ProposalInput = Optional[Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]]


class ProposalEvaluationPipeline:
    """Orchestrates a full expected-vs-actual evaluation.

    Usage:
        pipeline = ProposalEvaluationPipeline()
        verdict = pipeline.run(expected, actual)
        if verdict.score == 0:
            print(verdict.comment)
    """

    def __init__(
        self,
        global_config: ValidationConfig = DEFAULT_VALIDATION_CONFIG,
        dataset_config: ValidationConfig | Mapping[str, Any] | None = None,
        transformers: TransformerRegistry | None = None,
    ):
        self.global_config = global_config
        self.dataset_config = coerce_validation_config(dataset_config)
        self.transformers = transformers if transformers is not None else default_transformer_registry

    def run(
        self,
        expected: ProposalInput,
        actual: ProposalInput,
        dataset_config: ValidationConfig | Mapping[str, Any] | None = None,
        context: TemplateContext | None = None,
    ) -> EvaluationVerdict:
        """Evaluate ``actual`` against ``expected``.

        Args:
            expected: One raw expected proposal or a list of them. Records may
                carry ``transformers`` / ``ignorePaths`` / ``normalization``
                overrides.
            actual: The system-under-test's raw proposals.
            dataset_config: Dataset-level config; falls back to the one the
                pipeline was built with.
            context: Fixed "now" for the whole run; defaults to the wall clock.

        Returns:
            EvaluationVerdict with score 1 only when every proposal matched.
        """
        try:
            return self._run(expected, actual, dataset_config, context)
        except ProposalValidationError as e:
            logger.warning("Evaluation rejected [%s]: %s", e.code, e)
            return EvaluationVerdict(score=0, comment=f"[{e.code}] {e}")
        except Exception as e:
            logger.exception("Unexpected error during proposal evaluation")
            return EvaluationVerdict(
                score=0, comment=f"Evaluation failed: {type(e).__name__}: {e}"
            )

    def _run(
        self,
        expected: ProposalInput,
        actual: ProposalInput,
        dataset_config: ValidationConfig | Mapping[str, Any] | None,
        context: TemplateContext | None,
    ) -> EvaluationVerdict:
        # ── Step 0: Inputs ──────────────────────────────────────────
        expected_raw = _as_records(expected)
        if not expected_raw:
            raise MissingExpectationError(
                "No expected proposals supplied; nothing to compare against"
            )
        actual_raw = _as_records(actual)

        if context is None:
            context = TemplateContext(current_date=datetime.now(timezone.utc))

        dataset = coerce_validation_config(dataset_config)
        if dataset is None:
            dataset = self.dataset_config
        base_config = merge_validation_configs(self.global_config, dataset)

        logger.info(
            "Evaluating %d expected vs %d actual proposal(s)",
            len(expected_raw),
            len(actual_raw),
        )

        # ── Step 1: Per-record effective configs ────────────────────
        expected_data: list[Mapping[str, Any]] = []
        expected_configs: list[ValidationConfig] = []
        for index, record in enumerate(expected_raw):
            if not isinstance(record, Mapping):
                raise NormalizationError(
                    f"Expected proposal {index} must be an object, got {type(record).__name__}",
                    details={"index": index},
                )
            data, overrides = split_record_overrides(record)
            expected_data.append(data)
            expected_configs.append(
                merge_validation_configs(self.global_config, dataset, overrides)
                if overrides is not None
                else base_config
            )

        # Actual records follow the config of the expectation at the same index.
        actual_configs = [
            expected_configs[j] if j < len(expected_configs) else base_config
            for j in range(len(actual_raw))
        ]

        # ── Step 2: Normalize ───────────────────────────────────────
        expected_normalized = [
            normalize_proposal(data, cfg) for data, cfg in zip(expected_data, expected_configs)
        ]
        actual_normalized = [
            normalize_proposal(raw, cfg) for raw, cfg in zip(actual_raw, actual_configs)
        ]

        # ── Step 3: Transformers ────────────────────────────────────
        expected_final = [
            apply_transformers_to_record(
                record,
                cfg,
                _at(actual_normalized, i),
                is_expected=True,
                current_date=context.current_date,
                registry=self.transformers,
            )
            for i, (record, cfg) in enumerate(zip(expected_normalized, expected_configs))
        ]
        actual_final = [
            apply_transformers_to_record(
                record,
                cfg,
                _at(expected_normalized, j),
                is_expected=False,
                current_date=context.current_date,
                registry=self.transformers,
            )
            for j, (record, cfg) in enumerate(zip(actual_normalized, actual_configs))
        ]

        # ── Step 4: Compare ─────────────────────────────────────────
        comparison = compare_proposal_sets(
            expected_final, actual_final, base_config, expected_configs=expected_configs
        )

        # ── Step 5: Verdict ─────────────────────────────────────────
        verdict = EvaluationVerdict(
            score=1 if comparison.matches else 0,
            comment=summarize_comparison(comparison, len(expected_final), len(actual_final)),
            value=VerdictDetails(
                expected_proposal_count=len(expected_final),
                actual_proposal_count=len(actual_final),
                matched_proposals=comparison.matched_count,
                missing_proposals=len(comparison.missing_in_actual),
                unexpected_proposals=len(comparison.unexpected_in_actual),
                comparison_method=COMPARISON_METHOD,
            ),
        )
        logger.info("Verdict: score=%d (%s)", verdict.score, verdict.comment)
        return verdict


def summarize_comparison(
    comparison: ComparisonResult, expected_count: int, actual_count: int
) -> str:
    """One-line summary; the detailed report is rendered elsewhere."""
    if comparison.matches:
        return f"All {expected_count} expected proposal(s) matched"

    return (
        f"Matched {comparison.matched_count} of {expected_count} expected proposal(s) "
        f"against {actual_count} actual: "
        f"{len(comparison.missing_in_actual)} missing, "
        f"{len(comparison.unexpected_in_actual)} unexpected"
    )


# ─── Internal Helpers ────────────────────────────────────────────────


def _as_records(value: ProposalInput) -> list[Mapping[str, Any]]:
    """A single record becomes a one-item list; None becomes empty."""
    if value is None:
        return []
    if isinstance(value, Mapping):
        return [value]
    return list(value)


def _at(records: list[NormalizedProposal], index: int) -> NormalizedProposal | None:
    return records[index] if index < len(records) else None
