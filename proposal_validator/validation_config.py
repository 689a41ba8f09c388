"""
Three-layer validation configuration.

  Layer 1  system defaults     (this module)
  Layer 2  dataset config      (JSON file or dict supplied by the harness)
  Layer 3  per-record config   (``transformers`` / ``ignorePaths`` /
                                ``normalization`` keys on an expected record)

Merging is per field and wholesale: for each of ``normalization``,
``ignorePaths`` and ``transformers`` the most specific layer that defines the
field wins outright, even when it defines it as empty. An explicit
``transformers: {}`` on a record therefore switches off every inherited
transformer for that record. There is no key-by-key deep merge.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping

from pydantic import ValidationError

from .exceptions import ConfigurationError
from .models import NormalizationRule, ValidationConfig
from .object_utils import path_matches_pattern
from .transformers import DEFAULT_TRANSFORMER_MAPPINGS

logger = logging.getLogger(__name__)

LITERAL_SOURCE = "__literal__"
SELF_SOURCE = "__self__"

# Keys on an expected record that configure it rather than describe it.
RECORD_OVERRIDE_KEYS: tuple[str, ...] = ("transformers", "ignorePaths", "normalization")

DATASET_CONFIG_ENV_VAR = "PROPOSAL_VALIDATOR_DATASET_CONFIG"


# ─── Layer 1: System Defaults ───────────────────────────────────────

# Source lists accept both the author-facing shape of an expectation
# (mutationVariables at the top level) and the raw shape the system emits
# (mutationQuery.variables).
DEFAULT_NORMALIZATION_RULES: tuple[NormalizationRule, ...] = (
    NormalizationRule(
        when="change",
        fields={
            "changeType": LITERAL_SOURCE,
            "changedField": "changedField",
            "newValue": "newValue",
            "mutationQueryPropertyPath": [
                "mutationQueryPropertyPath",
                "mutationQuery.propertyPath",
            ],
            "relatedUserId": "relatedUserId",
            "mutationVariables": ["mutationVariables", "mutationQuery.variables"],
        },
    ),
    NormalizationRule(
        when="creation",
        fields={
            "changeType": LITERAL_SOURCE,
            "relatedUserId": "relatedUserId",
            "mutationVariables": ["mutationVariables", "mutationQuery.variables"],
        },
    ),
)

DEFAULT_VALIDATION_CONFIG = ValidationConfig(
    normalization=list(DEFAULT_NORMALIZATION_RULES),
    ignore_paths=[],
    transformers=dict(DEFAULT_TRANSFORMER_MAPPINGS),
)


# ─── Merging ────────────────────────────────────────────────────────


def merge_validation_configs(
    global_config: ValidationConfig,
    dataset_config: ValidationConfig | None = None,
    record_config: ValidationConfig | None = None,
) -> ValidationConfig:
    """Build the effective config: most specific defining layer wins per field."""
    layers = [layer for layer in (global_config, dataset_config, record_config) if layer is not None]

    def most_specific(field_name: str) -> Any:
        chosen = None
        for layer in layers:
            value = getattr(layer, field_name)
            if value is not None:
                chosen = value
        return chosen

    normalization = most_specific("normalization")
    ignore_paths = most_specific("ignore_paths")
    transformers = most_specific("transformers")

    return ValidationConfig(
        normalization=list(normalization) if normalization is not None else [],
        ignore_paths=list(ignore_paths) if ignore_paths is not None else [],
        transformers=dict(transformers) if transformers is not None else {},
    )


# ─── Loading / Coercion ─────────────────────────────────────────────


def coerce_validation_config(
    value: ValidationConfig | Mapping[str, Any] | None,
) -> ValidationConfig | None:
    """Accept a model, a plain mapping (camelCase or snake_case) or None."""
    if value is None or isinstance(value, ValidationConfig):
        return value
    return _parse_config(value)


def _parse_config(value: Mapping[str, Any]) -> ValidationConfig:
    try:
        return ValidationConfig.model_validate(dict(value))
    except (ValidationError, TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Validation config is malformed: {e}",
            details={"config_keys": sorted(value) if isinstance(value, Mapping) else None},
        ) from e


def load_validation_config(path: str | Path) -> ValidationConfig:
    """Load a dataset-level config from a JSON file."""
    resolved = Path(path)

    try:
        with resolved.open(encoding="utf-8") as f:
            raw = json.load(f)
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read validation config '{resolved}': {e}", details={"path": str(resolved)}
        ) from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Validation config '{resolved}' is not valid JSON: {e}",
            details={"path": str(resolved)},
        ) from e

    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"Validation config '{resolved}' must be a JSON object",
            details={"path": str(resolved)},
        )

    config = _parse_config(raw)
    logger.info("Loaded validation config from %s", resolved)
    return config


def dataset_config_from_env() -> ValidationConfig | None:
    """Load the dataset config named by the environment, if any."""
    path = os.environ.get(DATASET_CONFIG_ENV_VAR)
    if not path:
        return None
    return load_validation_config(path)


# ─── Per-record Overrides ───────────────────────────────────────────


def split_record_overrides(
    record: Mapping[str, Any],
) -> tuple[dict[str, Any], ValidationConfig | None]:
    """Separate an expected record's own config keys from its data."""
    data = {k: v for k, v in record.items() if k not in RECORD_OVERRIDE_KEYS}
    overrides = {k: record[k] for k in RECORD_OVERRIDE_KEYS if k in record}

    if not overrides:
        return data, None

    logger.debug("Record carries config overrides for %s", sorted(overrides))
    return data, coerce_validation_config(overrides)


# ─── Ignore Paths ───────────────────────────────────────────────────


def is_path_ignored(path: str, config: ValidationConfig) -> bool:
    """Does any ignore pattern of ``config`` cover ``path``?"""
    return any(path_matches_pattern(path, pattern) for pattern in config.ignore_paths or [])
