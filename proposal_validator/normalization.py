"""
Proposal normalization — project shape-varying records onto a canonical field set.

Expected records are written by hand, actual records come out of the system
under test, and the two nest the same facts differently. A normalization
rule, selected by the record's discriminator ("change" / "creation"),
decides exactly which fields the normalized record has and where each one
comes from. Nothing outside the rule's ``fields`` survives, which is what
makes the two sides comparable.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from .exceptions import NormalizationError
from .models import NormalizationRule, NormalizedProposal, ValidationConfig
from .object_utils import deep_clone, get_value_at_path
from .validation_config import LITERAL_SOURCE, SELF_SOURCE

logger = logging.getLogger(__name__)


def resolve_discriminator(raw: Mapping[str, Any]) -> str:
    """Explicit changeType wins; otherwise infer from the presence of changedField."""
    change_type = raw.get("changeType")
    if change_type is not None:
        return str(change_type)
    return "change" if "changedField" in raw else "creation"


def select_rule(
    discriminator: str, rules: Iterable[NormalizationRule]
) -> NormalizationRule | None:
    """First rule whose ``when`` equals the discriminator, else the last catch-all."""
    catch_all: NormalizationRule | None = None
    for rule in rules:
        if rule.when is None:
            catch_all = rule
        elif rule.when == discriminator:
            return rule
    return catch_all


def normalize_proposal(raw: Mapping[str, Any], config: ValidationConfig) -> NormalizedProposal:
    """Normalize one raw proposal under the effective config.

    Raises:
        NormalizationError: if ``raw`` is not a mapping.
    """
    if not isinstance(raw, Mapping):
        raise NormalizationError(
            f"Proposal must be an object, got {type(raw).__name__}",
            details={"value": repr(raw)[:200]},
        )

    record = dict(raw)
    discriminator = resolve_discriminator(record)
    rule = select_rule(discriminator, config.normalization or [])

    if rule is None:
        logger.warning(
            "No normalization rule for changeType '%s'; comparing record as-is", discriminator
        )
        return record

    normalized: NormalizedProposal = {}
    for output_field, source in rule.fields.items():
        normalized[output_field] = _extract(record, source, discriminator)

    logger.debug(
        "Normalized %s proposal: %d source keys -> %d fields",
        discriminator,
        len(record),
        len(normalized),
    )
    return normalized


def normalize_proposals(
    raws: Iterable[Mapping[str, Any]], config: ValidationConfig
) -> list[NormalizedProposal]:
    return [normalize_proposal(raw, config) for raw in raws]


def _extract(record: dict[str, Any], source: str | list[str], discriminator: str) -> Any:
    if source == LITERAL_SOURCE:
        return discriminator
    if source == SELF_SOURCE:
        return deep_clone(record)

    # Missing everywhere -> None; the field is still present on the output.
    candidates = [source] if isinstance(source, str) else source
    for path in candidates:
        value = get_value_at_path(record, path)
        if value is not None:
            return deep_clone(value)
    return None
