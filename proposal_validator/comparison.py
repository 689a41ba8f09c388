"""
Proposal comparison — reconcile expected vs actual normalized proposals.

Equality is structural and recursive. Any sub-path covered by the effective
config's ignore patterns compares equal no matter what either side holds,
including one side having the key and the other not.

Matching is greedy and one-to-one: each expected proposal takes the first
still-unused actual proposal it equals. Equality is an equivalence relation,
so the missing/unexpected counts do not depend on which pairing is found.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Sequence

from .models import ComparisonResult, NormalizedProposal, ValidationConfig
from .object_utils import is_number, same_value
from .validation_config import is_path_ignored

logger = logging.getLogger(__name__)

_SCALAR_TYPES = (str, int, float, bool)


def values_equal(expected: Any, actual: Any, config: ValidationConfig, path: str = "") -> bool:
    """Deep equality of two values rooted at ``path``."""
    if expected is actual:
        return True
    if path and is_path_ignored(path, config):
        return True

    if isinstance(expected, dict) or isinstance(actual, dict):
        if not (isinstance(expected, dict) and isinstance(actual, dict)):
            return False
        for key in {*expected, *actual}:
            child = f"{path}.{key}" if path else str(key)
            if is_path_ignored(child, config):
                continue
            if key not in expected or key not in actual:
                return False
            if not values_equal(expected[key], actual[key], config, child):
                return False
        return True

    if isinstance(expected, list) or isinstance(actual, list):
        if not (isinstance(expected, list) and isinstance(actual, list)):
            return False
        if len(expected) != len(actual):
            return False
        return all(
            values_equal(e, a, config, f"{path}[{i}]")
            for i, (e, a) in enumerate(zip(expected, actual))
        )

    if expected is None or actual is None:
        return expected is None and actual is None

    if same_value(expected, actual):
        return True
    if type(expected) is type(actual) or (is_number(expected) and is_number(actual)):
        return False

    # 5000 and "5000" describe the same value once serialized.
    if isinstance(expected, _SCALAR_TYPES) and isinstance(actual, _SCALAR_TYPES):
        return scalar_text(expected) == scalar_text(actual)

    return expected == actual


def scalar_text(value: str | int | float | bool) -> str:
    """JSON-style text of a scalar: true/false, 5000 for 5000.0, NaN, Infinity."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
    return str(value)


def proposals_equal(
    expected: NormalizedProposal, actual: NormalizedProposal, config: ValidationConfig
) -> bool:
    return values_equal(expected, actual, config)


def compare_proposal_sets(
    expected: Sequence[NormalizedProposal],
    actual: Sequence[NormalizedProposal],
    config: ValidationConfig,
    expected_configs: Sequence[ValidationConfig] | None = None,
) -> ComparisonResult:
    """Pair expected with actual proposals and report what is left over.

    Args:
        expected: Normalized, transformed expected proposals.
        actual: Normalized, transformed actual proposals.
        config: Effective config used for every pair.
        expected_configs: Optional per-expected-record configs, index-aligned
            with ``expected``; when given, each expected proposal is compared
            under its own ignore patterns.
    """
    used: set[int] = set()
    missing: list[NormalizedProposal] = []

    for i, exp in enumerate(expected):
        record_config = (
            expected_configs[i]
            if expected_configs is not None and i < len(expected_configs)
            else config
        )

        match_index = next(
            (
                j
                for j, act in enumerate(actual)
                if j not in used and proposals_equal(exp, act, record_config)
            ),
            None,
        )

        if match_index is None:
            logger.debug("Expected proposal %d has no match", i)
            missing.append(exp)
        else:
            logger.debug("Expected proposal %d matched actual proposal %d", i, match_index)
            used.add(match_index)

    unexpected = [act for j, act in enumerate(actual) if j not in used]

    return ComparisonResult(
        matches=len(expected) == len(actual) and not missing and not unexpected,
        matched_count=len(used),
        missing_in_actual=missing,
        unexpected_in_actual=unexpected,
    )
