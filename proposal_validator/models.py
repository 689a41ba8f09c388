"""
Pydantic models for proposal validation — typed boundaries for every stage.

Raw and normalized proposals stay plain dicts (their shape is decided by the
normalization rules), but everything that configures or reports on the
engine is a model. Models that cross the JSON boundary accept and emit the
camelCase names authors write in datasets (``ignorePaths``, ``notEquals``,
``conditionTarget`` ...), while Python code uses snake_case.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# A normalized proposal is a flat dict keyed by the fields of its rule.
NormalizedProposal = dict[str, Any]


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _coerce_conditions(value: Any) -> Any:
    """Accept a single condition or a list of them (AND-ed)."""
    if value is None:
        return None
    if isinstance(value, (dict, TransformerCondition)):
        return (value,)
    return tuple(value)


# ─── Evaluation Context ─────────────────────────────────────────────


class TemplateContext(BaseModel):
    """The injected "now" every expression is evaluated against.

    Callers hold one instance fixed for a whole evaluation; that is what
    makes the engine deterministic.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    current_date: datetime = Field(alias="currentDate")
    locale: Optional[str] = None
    timezone: Optional[str] = None

    @field_validator("current_date")
    @classmethod
    def _normalize_current_date(cls, value: datetime) -> datetime:
        return _as_utc(value)


class TransformerContext(BaseModel):
    """Passed to every transformer call."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    path: str
    is_expected: bool = Field(alias="isExpected")
    current_date: datetime = Field(alias="currentDate")

    @field_validator("current_date")
    @classmethod
    def _normalize_current_date(cls, value: datetime) -> datetime:
        return _as_utc(value)


# ─── Template Results ───────────────────────────────────────────────


class EvaluationResult(BaseModel):
    """What a variable (or variable arithmetic) resolves to."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    display_value: str = Field(alias="displayValue")  # Substituted into text
    data_value: Any = Field(default=None, alias="dataValue")  # Written into records
    metadata: dict[str, Any] = Field(default_factory=dict)


class TemplateReplacement(BaseModel):
    """One resolved token inside a processed string."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    original: str  # The token as written, braces included
    expression: str  # The token without braces, e.g. "currentMonth+3"
    result: EvaluationResult
    start_index: int = Field(alias="startIndex")
    end_index: int = Field(alias="endIndex")


class TemplateProcessingResult(BaseModel):
    """Output of expanding every resolvable token in a string."""

    model_config = ConfigDict(populate_by_name=True)

    original: str
    processed: str
    replacements: list[TemplateReplacement] = Field(default_factory=list)
    metadata: dict[str, EvaluationResult] = Field(default_factory=dict)


# ─── Transformers ───────────────────────────────────────────────────


class TransformerStrategy(str, Enum):
    """When a transformer is allowed to write."""

    ADD_MISSING_ONLY = "add-missing-only"  # Expected side only, fills gaps
    TRANSFORM_ALWAYS = "transform-always"  # Both sides, always (re)writes
    TRANSFORM_EXISTING = "transform-existing"  # Both sides, only present values


class ConditionTarget(str, Enum):
    """Which record a transformer's ``when`` guard is evaluated against."""

    SELF = "self"
    ACTUAL = "actual"
    EXPECTED = "expected"


class TransformerCondition(BaseModel):
    """Guard on a transformer. Every specified sub-condition must hold.

    ``equals`` / ``notEquals`` accept a scalar or a list (match any). A
    sub-condition counts as specified only when it was set explicitly, so
    ``equals: null`` is a real check for ``None``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    path: str
    equals: Any = None
    not_equals: Any = Field(default=None, alias="notEquals")
    exists: Optional[bool] = None

    def is_specified(self, name: str) -> bool:
        return name in self.model_fields_set


class TransformerDefinition(BaseModel):
    """A named rule that conditionally fills or rewrites one field."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    key: str
    description: str = ""
    transform: Callable[[Any, TransformerContext], Any]
    strategy: TransformerStrategy
    when: Optional[tuple[TransformerCondition, ...]] = None
    condition_target: ConditionTarget = Field(
        default=ConditionTarget.SELF, alias="conditionTarget"
    )

    @field_validator("when", mode="before")
    @classmethod
    def _coerce_when(cls, value: Any) -> Any:
        return _coerce_conditions(value)


class InlineTransformer(BaseModel):
    """A transformer declared directly in a config file.

    Exactly one source must be given:
      - ``use``:      borrow a registered transformer, optionally overriding
                      its strategy / condition / condition target
      - ``template``: an expression such as ``currentMonth+1``
      - ``value``:    a constant
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    use: Optional[str] = None
    template: Optional[str] = None
    value: Any = None
    strategy: Optional[TransformerStrategy] = None
    when: Optional[tuple[TransformerCondition, ...]] = None
    condition_target: Optional[ConditionTarget] = Field(
        default=None, alias="conditionTarget"
    )

    @field_validator("when", mode="before")
    @classmethod
    def _coerce_when(cls, value: Any) -> Any:
        return _coerce_conditions(value)

    @model_validator(mode="after")
    def _exactly_one_source(self) -> InlineTransformer:
        sources = [
            name for name in ("use", "template", "value") if name in self.model_fields_set
        ]
        if len(sources) != 1:
            raise ValueError(
                "inline transformer needs exactly one of 'use', 'template' or "
                f"'value' (got {sources or 'none'})"
            )
        return self


TransformerRef = Union[str, TransformerDefinition, InlineTransformer]


# ─── Configuration ──────────────────────────────────────────────────


class NormalizationRule(BaseModel):
    """Discriminator-keyed projection of a raw proposal.

    ``fields`` maps each output field to its source: a dot-path, a list of
    dot-paths tried in order, ``__literal__`` (the discriminator value) or
    ``__self__`` (the whole raw record). A rule without ``when`` is a
    catch-all.
    """

    model_config = ConfigDict(frozen=True)

    when: Optional[str] = None
    fields: dict[str, Union[str, list[str]]]


class ValidationConfig(BaseModel):
    """One configuration layer. ``None`` means "not defined at this layer"."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    normalization: Optional[list[NormalizationRule]] = None
    ignore_paths: Optional[list[str]] = Field(default=None, alias="ignorePaths")
    transformers: Optional[dict[str, TransformerRef]] = None


# ─── Comparison Output ──────────────────────────────────────────────


class ComparisonResult(BaseModel):
    """Reconciliation of expected vs actual normalized proposals."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    matches: bool
    matched_count: int = Field(alias="matchedCount")
    missing_in_actual: list[NormalizedProposal] = Field(
        default_factory=list, alias="missingInActual"
    )
    unexpected_in_actual: list[NormalizedProposal] = Field(
        default_factory=list, alias="unexpectedInActual"
    )


class VerdictDetails(BaseModel):
    """Machine-readable counts attached to a verdict."""

    model_config = ConfigDict(populate_by_name=True)

    expected_proposal_count: int = Field(alias="expectedProposalCount")
    actual_proposal_count: int = Field(alias="actualProposalCount")
    matched_proposals: int = Field(alias="matchedProposals")
    missing_proposals: int = Field(alias="missingProposals")
    unexpected_proposals: int = Field(alias="unexpectedProposals")
    comparison_method: str = Field(alias="comparisonMethod")


class EvaluationVerdict(BaseModel):
    """The single object handed back to the evaluation harness."""

    model_config = ConfigDict(populate_by_name=True)

    key: str = "data_change_proposal_verification"
    score: Literal[0, 1]
    comment: str
    value: Optional[VerdictDetails] = None
