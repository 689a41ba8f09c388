"""
Expression engine — expands ``{name}`` / ``{name+N}`` / ``{name-N}`` tokens.

The token grammar is deliberately narrow: a ``{``, one or more word
characters, an optional ``+``/``-`` with digits, then ``}``. No whitespace,
quotes or colons are tolerated, so JSON-like text and index syntax never
match. A well-formed token nested inside a larger brace pair
(``{"key": "{currentMonth}"}``) is still found, because matching works on the
character window of the token, not on brace nesting.

Unresolvable tokens are left verbatim and produce no replacement entry.
"""

from __future__ import annotations

import logging
import re

from .models import EvaluationResult, TemplateContext, TemplateProcessingResult, TemplateReplacement
from .template_variables import TemplateVariableRegistry, default_variable_registry

logger = logging.getLogger(__name__)

TEMPLATE_PATTERN = re.compile(r"\{(\w+(?:[+-]\d+)?)\}", re.ASCII)


class TemplateProcessor:
    """Expands template tokens using a variable registry."""

    def __init__(self, variables: TemplateVariableRegistry | None = None):
        self.variables = variables if variables is not None else default_variable_registry

    def process(self, text: str, context: TemplateContext) -> TemplateProcessingResult:
        """Substitute every resolvable token in ``text``.

        Spans are reported against the output: each match's original
        ``[start, end)`` is shifted by the cumulative length delta of all
        earlier resolved matches.
        """
        replacements: list[TemplateReplacement] = []
        metadata: dict[str, EvaluationResult] = {}
        pieces: list[str] = []
        cursor = 0
        offset = 0

        for match in TEMPLATE_PATTERN.finditer(text):
            token = match.group(0)
            expression = match.group(1)

            result = self.variables.evaluate_expression(expression, context)
            if result is None:
                logger.debug("Leaving unresolved template token %s in place", token)
                continue

            replacements.append(
                TemplateReplacement(
                    original=token,
                    expression=expression,
                    result=result,
                    start_index=match.start() + offset,
                    end_index=match.end() + offset,
                )
            )
            metadata[expression] = result

            pieces.append(text[cursor:match.start()])
            pieces.append(result.display_value)
            cursor = match.end()
            offset += len(result.display_value) - len(token)

        pieces.append(text[cursor:])

        return TemplateProcessingResult(
            original=text,
            processed="".join(pieces),
            replacements=replacements,
            metadata=metadata,
        )

    @staticmethod
    def has_templates(text: str) -> bool:
        """Purely syntactic: does ``text`` contain a well-formed token?"""
        return TEMPLATE_PATTERN.search(text) is not None

    @staticmethod
    def extract_expressions(text: str) -> list[str]:
        """Inner text of every token, left to right, duplicates kept, unresolved."""
        return [match.group(1) for match in TEMPLATE_PATTERN.finditer(text)]


default_template_processor = TemplateProcessor()


def process_template(text: str, context: TemplateContext) -> TemplateProcessingResult:
    return default_template_processor.process(text, context)


def has_templates(text: str) -> bool:
    return TemplateProcessor.has_templates(text)


def extract_expressions(text: str) -> list[str]:
    return TemplateProcessor.extract_expressions(text)
