"""
Proposal Validator — deterministic grading of data change proposals.

Architecture: Split → Merge config → Normalize → Transformers → Compare → Verdict
Philosophy:  Expectations say what matters. Time comes from the caller, never the clock.
"""

__version__ = "1.0.0"
