"""
Transformer application — conditionally fill or rewrite fields on normalized records.

For every ``(dot-path, transformer)`` entry of the effective config:

  1. resolve the transformer (registry key, inline definition, or object)
  2. pick the record its ``when`` guard is checked against
       self     → the record being transformed
       actual   → the same-index record from the actual side
       expected → the same-index record from the expected side
  3. check the guard (all sub-conditions AND-ed)
  4. write according to the strategy
       add-missing-only   → expected side only, only where the value is missing
       transform-always   → both sides, always
       transform-existing → both sides, only where a value is present

The ``actual`` condition target is what lets an expectation say "the
effective date is today, if the system proposed a change" without
hard-coding a date that is only known at run time.

Inputs are never mutated; every call returns fresh records.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Sequence

from .models import (
    ConditionTarget,
    NormalizedProposal,
    TransformerCondition,
    TransformerContext,
    TransformerStrategy,
    ValidationConfig,
)
from .object_utils import (
    deep_clone,
    get_value_at_path,
    has_value_at_path,
    same_value,
    set_value_at_path,
)
from .transformers import TransformerRegistry, resolve_transformer
from .validation_config import is_path_ignored

logger = logging.getLogger(__name__)


def condition_holds(condition: TransformerCondition, record: NormalizedProposal) -> bool:
    """Evaluate one guard. Unspecified sub-conditions are ignored."""
    value = get_value_at_path(record, condition.path)

    if condition.exists is not None:
        if has_value_at_path(record, condition.path) != condition.exists:
            return False

    if condition.is_specified("equals"):
        if not _matches_any(value, condition.equals):
            return False

    if condition.is_specified("not_equals"):
        if _matches_any(value, condition.not_equals):
            return False

    return True


def apply_transformers_to_record(
    record: NormalizedProposal,
    config: ValidationConfig,
    paired: NormalizedProposal | None = None,
    *,
    is_expected: bool = True,
    current_date: datetime,
    registry: TransformerRegistry | None = None,
) -> NormalizedProposal:
    """Apply every transformer of ``config`` to a copy of ``record``."""
    modified = deep_clone(record)
    side = "expected" if is_expected else "actual"

    for path, ref in (config.transformers or {}).items():
        definition = resolve_transformer(ref, registry)
        if definition is None:
            logger.warning("Unknown transformer %r for path '%s'; skipping", ref, path)
            continue

        strategy = definition.strategy
        if strategy is TransformerStrategy.ADD_MISSING_ONLY and not is_expected:
            continue

        target = _condition_record(definition.condition_target, is_expected, modified, paired)
        if target is None:
            logger.debug(
                "No %s record to check '%s' against for path '%s'",
                definition.condition_target.value,
                definition.key,
                path,
            )
            continue

        if definition.when and not all(condition_holds(c, target) for c in definition.when):
            logger.debug("Condition not met for '%s' at '%s' (%s)", definition.key, path, side)
            continue

        current = get_value_at_path(modified, path)

        if strategy is TransformerStrategy.ADD_MISSING_ONLY:
            if current is not None or is_path_ignored(path, config):
                continue
        elif strategy is TransformerStrategy.TRANSFORM_EXISTING and current is None:
            continue

        context = TransformerContext(path=path, is_expected=is_expected, current_date=current_date)
        new_value = definition.transform(current, context)
        set_value_at_path(modified, path, new_value)
        logger.debug("Applied '%s' at '%s' (%s): %r -> %r", definition.key, path, side, current, new_value)

    return modified


def apply_transformers(
    proposals: Sequence[NormalizedProposal],
    config: ValidationConfig,
    paired_proposals: Sequence[NormalizedProposal] | None = None,
    *,
    is_expected: bool = True,
    current_date: datetime,
    registry: TransformerRegistry | None = None,
) -> list[NormalizedProposal]:
    """Apply ``config``'s transformers to every record, pairing by index."""
    return [
        apply_transformers_to_record(
            proposal,
            config,
            _paired_at(paired_proposals, index),
            is_expected=is_expected,
            current_date=current_date,
            registry=registry,
        )
        for index, proposal in enumerate(proposals)
    ]


# ─── Internal Helpers ────────────────────────────────────────────────


def _paired_at(
    paired_proposals: Sequence[NormalizedProposal] | None, index: int
) -> NormalizedProposal | None:
    if paired_proposals is None or index >= len(paired_proposals):
        return None
    return paired_proposals[index]


def _condition_record(
    target: ConditionTarget,
    is_expected: bool,
    record: NormalizedProposal,
    paired: NormalizedProposal | None,
) -> NormalizedProposal | None:
    """The record a guard is checked against, or None if it is not available."""
    if target is ConditionTarget.SELF:
        return record
    own_side = ConditionTarget.EXPECTED if is_expected else ConditionTarget.ACTUAL
    if target is own_side:
        return record
    return paired


def _matches_any(value: Any, options: Any) -> bool:
    """A list of options is any-of. True and 1 are different values."""
    candidates = options if isinstance(options, (list, tuple)) else [options]
    return any(same_value(value, candidate) for candidate in candidates)
