"""
Transformer registry — named rules that fill or rewrite one field of a record.

Two families of keys:
  - static entries registered at import time (defaults for "today",
    case/whitespace normalization, empty collections)
  - ``transformer-template-<expression>`` keys, synthesized on first lookup
    from a template expression and cached for the life of the registry

Unknown or unsynthesizable keys resolve to None, never to an exception.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable

from .models import (
    ConditionTarget,
    InlineTransformer,
    TemplateContext,
    TransformerCondition,
    TransformerContext,
    TransformerDefinition,
    TransformerRef,
    TransformerStrategy,
)
from .object_utils import deep_clone
from .template_processor import TemplateProcessor, default_template_processor
from .template_variables import to_utc_midnight_iso

logger = logging.getLogger(__name__)

TEMPLATE_TRANSFORMER_PREFIX = "transformer-template-"


# ─── Transform Functions ────────────────────────────────────────────


def _today_at_utc_midnight(value: Any, context: TransformerContext) -> str:
    return to_utc_midnight_iso(context.current_date)


def _uppercase(value: Any, context: TransformerContext) -> Any:
    return value.upper() if isinstance(value, str) else value


def _lowercase(value: Any, context: TransformerContext) -> Any:
    return value.lower() if isinstance(value, str) else value


def _trim(value: Any, context: TransformerContext) -> Any:
    return value.strip() if isinstance(value, str) else value


# ─── Static Definitions ─────────────────────────────────────────────

STATIC_TRANSFORMERS: tuple[TransformerDefinition, ...] = (
    TransformerDefinition(
        key="transformer-today-utc",
        description="Sets value to today at UTC midnight",
        transform=_today_at_utc_midnight,
        strategy=TransformerStrategy.ADD_MISSING_ONLY,
    ),
    TransformerDefinition(
        key="transformer-today-utc-for-change",
        description="Sets effectiveDate to today at UTC midnight for change proposals",
        transform=_today_at_utc_midnight,
        strategy=TransformerStrategy.ADD_MISSING_ONLY,
        when=TransformerCondition(path="changeType", equals="change"),
        condition_target=ConditionTarget.ACTUAL,
    ),
    TransformerDefinition(
        key="transformer-today-utc-for-creation",
        description="Sets startDate to today at UTC midnight for creation proposals",
        transform=_today_at_utc_midnight,
        strategy=TransformerStrategy.ADD_MISSING_ONLY,
        when=TransformerCondition(path="changeType", equals="creation"),
        condition_target=ConditionTarget.ACTUAL,
    ),
    TransformerDefinition(
        key="transformer-uppercase",
        description="Converts string values to uppercase",
        transform=_uppercase,
        strategy=TransformerStrategy.TRANSFORM_ALWAYS,
    ),
    TransformerDefinition(
        key="transformer-lowercase",
        description="Converts string values to lowercase",
        transform=_lowercase,
        strategy=TransformerStrategy.TRANSFORM_ALWAYS,
    ),
    TransformerDefinition(
        key="transformer-trim",
        description="Trims surrounding whitespace from string values",
        transform=_trim,
        strategy=TransformerStrategy.TRANSFORM_ALWAYS,
    ),
    TransformerDefinition(
        key="transformer-boolean-true",
        description="Sets value to boolean true",
        transform=lambda value, context: True,
        strategy=TransformerStrategy.ADD_MISSING_ONLY,
    ),
    TransformerDefinition(
        key="transformer-boolean-false",
        description="Sets value to boolean false",
        transform=lambda value, context: False,
        strategy=TransformerStrategy.ADD_MISSING_ONLY,
    ),
    TransformerDefinition(
        key="transformer-empty-array",
        description="Sets value to an empty list",
        transform=lambda value, context: [],
        strategy=TransformerStrategy.ADD_MISSING_ONLY,
    ),
    TransformerDefinition(
        key="transformer-empty-object",
        description="Sets value to an empty object",
        transform=lambda value, context: {},
        strategy=TransformerStrategy.ADD_MISSING_ONLY,
    ),
)

# Layer-1 transformer map used for data change proposals.
DEFAULT_TRANSFORMER_MAPPINGS: dict[str, str] = {
    "mutationVariables.data.effectiveDate": "transformer-today-utc-for-change",
    "mutationVariables.data.startDate": "transformer-today-utc-for-creation",
}


# ─── Registry ───────────────────────────────────────────────────────


class TransformerRegistry:
    """Static transformers plus lazily synthesized template transformers.

    Synthesis is an idempotent upsert: two lookups racing on the same key
    build equivalent definitions and the first one stored wins.
    """

    def __init__(
        self,
        transformers: Iterable[TransformerDefinition] = STATIC_TRANSFORMERS,
        processor: TemplateProcessor | None = None,
    ):
        self._static: dict[str, TransformerDefinition] = {t.key: t for t in transformers}
        self._synthesized: dict[str, TransformerDefinition] = {}
        self.processor = processor if processor is not None else default_template_processor

    def get(self, key: str) -> TransformerDefinition | None:
        found = self._static.get(key) or self._synthesized.get(key)
        if found is not None:
            return found

        if key.startswith(TEMPLATE_TRANSFORMER_PREFIX):
            synthesized = self._synthesize(key)
            if synthesized is not None:
                return self._synthesized.setdefault(key, synthesized)

        return None

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def keys(self) -> list[str]:
        return [*self._static, *self._synthesized]

    def get_all(self) -> list[TransformerDefinition]:
        return [*self._static.values(), *self._synthesized.values()]

    def _synthesize(self, key: str) -> TransformerDefinition | None:
        expression = key[len(TEMPLATE_TRANSFORMER_PREFIX):]
        if not expression:
            return None

        # Reachability probe: the expression must be one whole, resolvable token.
        probe_text = "{" + expression + "}"
        probe = self.processor.process(
            probe_text, TemplateContext(current_date=datetime.now(timezone.utc))
        )
        if len(probe.replacements) != 1 or probe.replacements[0].original != probe_text:
            logger.debug("Template transformer '%s' does not resolve", key)
            return None

        variables = self.processor.variables

        def transform(value: Any, context: TransformerContext) -> Any:
            result = variables.evaluate_expression(
                expression, TemplateContext(current_date=context.current_date)
            )
            return value if result is None else result.data_value

        logger.debug("Synthesized template transformer '%s'", key)
        return TransformerDefinition(
            key=key,
            description=f"Sets value from template expression '{expression}'",
            transform=transform,
            strategy=TransformerStrategy.ADD_MISSING_ONLY,
        )


default_transformer_registry = TransformerRegistry()


# ─── Reference Resolution ───────────────────────────────────────────


def resolve_transformer(
    ref: TransformerRef, registry: TransformerRegistry | None = None
) -> TransformerDefinition | None:
    """Turn a config map value into a definition, or None if it cannot resolve."""
    registry = registry if registry is not None else default_transformer_registry

    if isinstance(ref, TransformerDefinition):
        return ref
    if isinstance(ref, str):
        return registry.get(ref)
    if isinstance(ref, InlineTransformer):
        return _resolve_inline(ref, registry)

    logger.warning("Unsupported transformer reference of type %s", type(ref).__name__)
    return None


def _resolve_inline(
    inline: InlineTransformer, registry: TransformerRegistry
) -> TransformerDefinition | None:
    if "use" in inline.model_fields_set:
        base = registry.get(inline.use or "")
    elif "template" in inline.model_fields_set:
        base = registry.get(f"{TEMPLATE_TRANSFORMER_PREFIX}{inline.template}")
    else:
        constant = inline.value
        base = TransformerDefinition(
            key="inline-value",
            description="Sets value to a configured constant",
            transform=lambda value, context: deep_clone(constant),
            strategy=TransformerStrategy.ADD_MISSING_ONLY,
        )

    if base is None:
        return None

    overrides: dict[str, Any] = {}
    if inline.strategy is not None:
        overrides["strategy"] = inline.strategy
    if "when" in inline.model_fields_set:
        overrides["when"] = inline.when
    if inline.condition_target is not None:
        overrides["condition_target"] = inline.condition_target

    return base.model_copy(update=overrides) if overrides else base
