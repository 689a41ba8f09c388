"""
Proposal Validator — FastAPI Server
===================================

HTTP surface over the evaluation pipeline and the template engine.

Endpoints:
    POST /evaluate              Grade actual proposals against an expectation
    POST /templates/process     Expand {currentMonth+1}-style tokens in text
    GET  /transformers          List registered transformers
    GET  /health                Health check / readiness probe

Run:
    uvicorn api:app --reload              # Dev (http://localhost:8000)
    uvicorn api:app --host 0.0.0.0        # Production

Environment:
    PROPOSAL_VALIDATOR_DATASET_CONFIG     Optional dataset config JSON applied
                                          when a request carries none
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional, Union

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from proposal_validator import __version__
from proposal_validator.models import (
    EvaluationVerdict,
    TemplateContext,
    TemplateProcessingResult,
    TransformerStrategy,
)
from proposal_validator.pipeline import ProposalEvaluationPipeline
from proposal_validator.template_processor import default_template_processor
from proposal_validator.validation_config import dataset_config_from_env

load_dotenv()


# ─── Application Lifespan (pre-warm pipeline) ───────────────────────

_pipeline: ProposalEvaluationPipeline | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the pipeline (and load any dataset config) on startup."""
    global _pipeline  # noqa: PLW0603
    _pipeline = ProposalEvaluationPipeline(dataset_config=dataset_config_from_env())
    yield
    _pipeline = None


# ─── FastAPI App ─────────────────────────────────────────────────────

app = FastAPI(
    title="Proposal Validator API",
    description=(
        "Deterministic grading of data change proposals. Normalizes expected and "
        "actual proposals, fills date defaults from the injected clock, and "
        "compares them with ignore-aware deep equality."
    ),
    version=__version__,
    lifespan=lifespan,
)


# ─── Request / Response Schemas ─────────────────────────────────────

ProposalPayload = Union[dict[str, Any], list[dict[str, Any]]]


class EvaluateRequest(BaseModel):
    """Request body for the /evaluate endpoint."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "expected": [
                    {
                        "changeType": "change",
                        "changedField": "salary",
                        "newValue": "5000",
                        "relatedUserId": "u1",
                    }
                ],
                "actual": [
                    {
                        "changeType": "change",
                        "changedField": "salary",
                        "newValue": "5000",
                        "relatedUserId": "u1",
                        "mutationQuery": {
                            "variables": {
                                "data": {"effectiveDate": "2024-09-18T00:00:00.000Z"}
                            }
                        },
                    }
                ],
                "currentDate": "2024-09-18T12:00:00Z",
            }
        },
    )

    expected: Optional[ProposalPayload] = None
    actual: Optional[ProposalPayload] = None
    dataset_config: Optional[dict[str, Any]] = Field(default=None, alias="datasetConfig")
    current_date: Optional[datetime] = Field(
        default=None,
        alias="currentDate",
        description="Fixed 'now' for the evaluation; defaults to the server clock.",
    )


class ProcessTemplateRequest(BaseModel):
    """Request body for the /templates/process endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(..., json_schema_extra={"example": "Update salary starting {currentMonth+1}"})
    current_date: Optional[datetime] = Field(default=None, alias="currentDate")


class TransformerOut(BaseModel):
    key: str
    description: str
    strategy: TransformerStrategy


class HealthResponse(BaseModel):
    status: str
    version: str
    transformers_loaded: int
    dataset_config_loaded: bool


# ─── Helpers ─────────────────────────────────────────────────────────


def _get_pipeline() -> ProposalEvaluationPipeline:
    if _pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialised")
    return _pipeline


def _context(current_date: datetime | None) -> TemplateContext:
    return TemplateContext(current_date=current_date or datetime.now(timezone.utc))


# ─── Endpoints ───────────────────────────────────────────────────────


@app.post(
    "/evaluate",
    summary="Grade actual proposals against an expectation",
    tags=["Evaluation"],
    responses={503: {"description": "Pipeline not yet initialised"}},
)
def evaluate(request: EvaluateRequest) -> EvaluationVerdict:
    """Run the full evaluation pipeline.

    Always answers 200 with a verdict: missing expectations, malformed
    configs and internal errors come back as **score 0** with the reason in
    **comment**.
    """
    pipeline = _get_pipeline()
    return pipeline.run(
        request.expected,
        request.actual,
        dataset_config=request.dataset_config,
        context=_context(request.current_date),
    )


@app.post(
    "/templates/process",
    summary="Expand template tokens in a string",
    tags=["Templates"],
)
def process_template(request: ProcessTemplateRequest) -> TemplateProcessingResult:
    """Substitute every resolvable `{name}` / `{name+N}` / `{name-N}` token.

    Unresolvable tokens are left in place and reported nowhere.
    """
    return default_template_processor.process(request.text, _context(request.current_date))


@app.get(
    "/transformers",
    summary="List registered transformers",
    tags=["Transformers"],
    responses={503: {"description": "Pipeline not yet initialised"}},
)
def list_transformers() -> list[TransformerOut]:
    pipeline = _get_pipeline()
    return [
        TransformerOut(key=t.key, description=t.description, strategy=t.strategy)
        for t in pipeline.transformers.get_all()
    ]


@app.get(
    "/health",
    summary="Health check",
    tags=["System"],
    responses={503: {"description": "Pipeline not yet initialised"}},
)
def health_check() -> HealthResponse:
    """Returns service status and configuration info."""
    pipeline = _get_pipeline()
    return HealthResponse(
        status="healthy",
        version=__version__,
        transformers_loaded=len(pipeline.transformers.keys()),
        dataset_config_loaded=pipeline.dataset_config is not None,
    )
