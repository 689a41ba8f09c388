"""
Custom exception hierarchy for proposal validation.

Each exception type maps to a category of failure that stops an evaluation
from reaching a real comparison. They are raised inside the engine and turned
into score-0 verdicts at the pipeline boundary, never propagated to the host.
"""

from __future__ import annotations


class ProposalValidationError(Exception):
    """Base exception for all proposal validation failures."""

    def __init__(self, code: str, message: str, details: dict | None = None):
        self.code = code
        self.details = details or {}
        super().__init__(message)


class MissingExpectationError(ProposalValidationError):
    """No expected proposals were supplied for the evaluation."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("MISSING_EXPECTATION", message, details)


class ConfigurationError(ProposalValidationError):
    """A validation config layer is malformed."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("INVALID_CONFIGURATION", message, details)


class NormalizationError(ProposalValidationError):
    """A raw proposal cannot be projected onto the canonical field set."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("NORMALIZATION_FAILED", message, details)
