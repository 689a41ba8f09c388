"""
Template variables — named, time-dependent value producers.

A variable turns the injected "now" into two things:
  - a display value, substituted into free text ("September")
  - a data value, written into records ("2024-09-01T00:00:00.000Z")

All date math happens on the UTC calendar fields of ``current_date`` and is
calendar arithmetic (month lengths and leap years resolve naturally), never
fixed-duration arithmetic.

Expressions are either a bare key ("currentMonth") or a key with integer
arithmetic ("currentMonth+3", "currentYear-10").
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Optional

from .models import EvaluationResult, TemplateContext

logger = logging.getLogger(__name__)

ARITHMETIC_PATTERN = re.compile(r"^(\w+)([+-])(\d+)$", re.ASCII)

# Fixed English names; the process locale must not change the output.
_MONTH_NAMES: tuple[str, ...] = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


# ─── Data Structures ────────────────────────────────────────────────


@dataclass(frozen=True)
class TemplateVariable:
    """A registered variable. Immutable once registered."""

    key: str
    description: str
    evaluate: Callable[[TemplateContext], EvaluationResult]
    supports_arithmetic: bool = False
    # (base_result, operator, operand, context) -> result
    apply_arithmetic: Optional[
        Callable[[EvaluationResult, str, int, TemplateContext], EvaluationResult]
    ] = None


# ─── Date Helpers ───────────────────────────────────────────────────


def to_utc_midnight_iso(value: date | datetime) -> str:
    """Serialize the calendar day of ``value`` as UTC midnight, millisecond precision."""
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}T00:00:00.000Z"


def _shift_months(current: datetime, months: int) -> date:
    """First day of the month ``months`` away from ``current``."""
    year, month_index = divmod(current.year * 12 + current.month - 1 + months, 12)
    return date(year, month_index + 1, 1)


def _format_month(target: date, current: datetime) -> str:
    """Month name, with the year appended only when it differs from now."""
    name = _MONTH_NAMES[target.month - 1]
    if target.year != current.year:
        return f"{name} {target.year}"
    return name


def _signed(operator: str, operand: int) -> int:
    return operand if operator == "+" else -operand


# ─── Built-in Variables ─────────────────────────────────────────────


def _current_month(context: TemplateContext) -> EvaluationResult:
    target = _shift_months(context.current_date, 0)
    return EvaluationResult(
        display_value=_format_month(target, context.current_date),
        data_value=to_utc_midnight_iso(target),
    )


def _current_month_arithmetic(
    base: EvaluationResult, operator: str, operand: int, context: TemplateContext
) -> EvaluationResult:
    target = _shift_months(context.current_date, _signed(operator, operand))
    return EvaluationResult(
        display_value=_format_month(target, context.current_date),
        data_value=to_utc_midnight_iso(target),
    )


def _current_year(context: TemplateContext) -> EvaluationResult:
    year = context.current_date.year
    return EvaluationResult(display_value=str(year), data_value=year)


def _current_year_arithmetic(
    base: EvaluationResult, operator: str, operand: int, context: TemplateContext
) -> EvaluationResult:
    year = context.current_date.year + _signed(operator, operand)
    return EvaluationResult(display_value=str(year), data_value=year)


def _current_day(context: TemplateContext) -> EvaluationResult:
    now = context.current_date
    return EvaluationResult(display_value=str(now.day), data_value=to_utc_midnight_iso(now))


def _current_day_arithmetic(
    base: EvaluationResult, operator: str, operand: int, context: TemplateContext
) -> EvaluationResult:
    now = context.current_date
    target = now.date() + timedelta(days=_signed(operator, operand))

    display = f"{_MONTH_NAMES[target.month - 1]} {target.day}"
    if target.year != now.year:
        display = f"{display}, {target.year}"

    return EvaluationResult(display_value=display, data_value=to_utc_midnight_iso(target))


def _today(context: TemplateContext) -> EvaluationResult:
    now = context.current_date
    return EvaluationResult(
        display_value=f"{now.month}/{now.day}/{now.year}",
        data_value=to_utc_midnight_iso(now),
    )


BUILTIN_VARIABLES: tuple[TemplateVariable, ...] = (
    TemplateVariable(
        key="currentMonth",
        description="Current month name with arithmetic support",
        evaluate=_current_month,
        supports_arithmetic=True,
        apply_arithmetic=_current_month_arithmetic,
    ),
    TemplateVariable(
        key="currentYear",
        description="Current year",
        evaluate=_current_year,
        supports_arithmetic=True,
        apply_arithmetic=_current_year_arithmetic,
    ),
    TemplateVariable(
        key="currentDay",
        description="Current day of month",
        evaluate=_current_day,
        supports_arithmetic=True,
        apply_arithmetic=_current_day_arithmetic,
    ),
    TemplateVariable(
        key="today",
        description="Today's date at UTC midnight",
        evaluate=_today,
    ),
)


# ─── Registry ───────────────────────────────────────────────────────


class TemplateVariableRegistry:
    """Append-only table of template variables.

    Lookups of unknown keys return None; evaluation never raises.
    """

    def __init__(self, variables: Iterable[TemplateVariable] = ()):
        self._variables: dict[str, TemplateVariable] = {}
        for variable in variables:
            self.register(variable)

    @classmethod
    def with_builtins(cls) -> TemplateVariableRegistry:
        return cls(BUILTIN_VARIABLES)

    def get(self, key: str) -> TemplateVariable | None:
        return self._variables.get(key)

    def has(self, key: str) -> bool:
        return key in self._variables

    def keys(self) -> list[str]:
        return list(self._variables)

    def register(self, variable: TemplateVariable) -> None:
        """Add a variable. Registered variables are never replaced."""
        if variable.key in self._variables:
            raise ValueError(f"Template variable '{variable.key}' is already registered")
        self._variables[variable.key] = variable

    def evaluate_expression(
        self, expression: str, context: TemplateContext
    ) -> EvaluationResult | None:
        """Evaluate "key" or "key+N" / "key-N" against ``context``.

        Returns None for unknown keys, for arithmetic on a variable that does
        not support it, and for results outside the representable calendar.
        """
        try:
            return self._evaluate(expression, context)
        except (ValueError, OverflowError) as e:
            logger.warning("Template expression '%s' could not be evaluated: %s", expression, e)
            return None

    def _evaluate(self, expression: str, context: TemplateContext) -> EvaluationResult | None:
        match = ARITHMETIC_PATTERN.match(expression)

        if match:
            key, operator, operand = match.group(1), match.group(2), int(match.group(3))
            variable = self.get(key)
            if (
                variable is None
                or not variable.supports_arithmetic
                or variable.apply_arithmetic is None
            ):
                return None
            base = variable.evaluate(context)
            return variable.apply_arithmetic(base, operator, operand, context)

        variable = self.get(expression)
        if variable is None:
            return None
        return variable.evaluate(context)


# Process-wide registry used by the module-level helpers and the engine defaults.
default_variable_registry = TemplateVariableRegistry.with_builtins()


def evaluate_expression(expression: str, context: TemplateContext) -> EvaluationResult | None:
    """Evaluate ``expression`` against the default registry."""
    return default_variable_registry.evaluate_expression(expression, context)
