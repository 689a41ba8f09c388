#!/usr/bin/env python3
"""
Proposal Validator — Entry Point
================================

Runs the evaluation pipeline on a built-in sample, or on JSON files.

Usage:
    python main.py                                          # Built-in sample
    python main.py expected.json actual.json                # Your own proposals
    python main.py expected.json actual.json dataset.json   # Plus a dataset config

Exit code is 0 when every expected proposal matched, 1 otherwise.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from proposal_validator.models import EvaluationVerdict, TemplateContext
from proposal_validator.pipeline import ProposalEvaluationPipeline
from proposal_validator.template_processor import process_template
from proposal_validator.template_variables import to_utc_midnight_iso
from proposal_validator.validation_config import dataset_config_from_env, load_validation_config

load_dotenv()


# ─── Built-in Sample ────────────────────────────────────────────────

SAMPLE_INSTRUCTION = "Raise u1's salary to 5000 starting {currentMonth+1}"


def _sample_proposals(now: datetime) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """An author-shaped expectation and the system-shaped proposal it should match."""
    expected = [
        {
            "changeType": "change",
            "changedField": "salary",
            "newValue": "5000",
            "relatedUserId": "u1",
        }
    ]
    actual = [
        {
            "changeType": "change",
            "changedField": "salary",
            "newValue": 5000,
            "relatedUserId": "u1",
            "mutationQuery": {
                "variables": {"data": {"effectiveDate": to_utc_midnight_iso(now)}},
            },
        }
    ]
    return expected, actual


# ─── ANSI Color Constants ───────────────────────────────────────────

_RED = "\033[91m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"
_BOLD = "\033[1m"
_RESET = "\033[0m"
_WIDTH = 72


# ─── Pretty Printer ─────────────────────────────────────────────────


def print_report(verdict: EvaluationVerdict, instruction: str | None = None) -> int:
    """Pretty-print the verdict with ANSI color codes.

    Returns:
        0 if every proposal matched, 1 otherwise.
    """
    print(f"\n{'=' * _WIDTH}")
    print(f"{_BOLD}{_CYAN}  PROPOSAL VALIDATION REPORT{_RESET}")
    print(f"{'=' * _WIDTH}")
    print(f"  Key:         {verdict.key}")
    if instruction:
        print(f"  Instruction: {instruction}")
    print(f"{'─' * _WIDTH}")

    details = verdict.value
    if details is not None:
        print(f"  Expected:    {details.expected_proposal_count}")
        print(f"  Actual:      {details.actual_proposal_count}")
        print(f"  Matched:     {details.matched_proposals}")
        print(f"  Missing:     {details.missing_proposals}")
        print(f"  Unexpected:  {details.unexpected_proposals}")
        print(f"  Method:      {_DIM}{details.comparison_method}{_RESET}")
        print(f"{'─' * _WIDTH}")

    print(f"  {verdict.comment}")
    print(f"{'=' * _WIDTH}")
    if verdict.score == 1:
        print(f"  {_GREEN}{_BOLD}PROPOSALS MATCH{_RESET}")
    else:
        print(f"  {_RED}{_BOLD}PROPOSALS DO NOT MATCH{_RESET}")
    print(f"{'=' * _WIDTH}\n")

    return 0 if verdict.score == 1 else 1


def _read_json(path: str) -> Any:
    with Path(path).open(encoding="utf-8") as f:
        return json.load(f)


# ─── Main ────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> int:
    """Evaluate the sample (or the given files) and print the report."""
    args = sys.argv[1:] if argv is None else argv
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    context = TemplateContext(current_date=datetime.now(timezone.utc))

    if args and len(args) not in (2, 3):
        print(__doc__)
        return 2

    instruction: str | None = None
    if args:
        expected = _read_json(args[0])
        actual = _read_json(args[1])
        dataset_config = (
            load_validation_config(args[2]) if len(args) == 3 else dataset_config_from_env()
        )
    else:
        instruction = process_template(SAMPLE_INSTRUCTION, context).processed
        expected, actual = _sample_proposals(context.current_date)
        dataset_config = dataset_config_from_env()

    print("\n  Starting Proposal Validator...")
    pipeline = ProposalEvaluationPipeline(dataset_config=dataset_config)
    verdict = pipeline.run(expected, actual, context=context)
    return print_report(verdict, instruction)


if __name__ == "__main__":
    sys.exit(main())
