"""
FastAPI wrapper for the review plan compiler.
Exposes plan compilation and the build-failure check as a REST API.
"""

import logging
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from review_compiler import settings
from review_compiler.compiler import Mappers
from review_compiler.errors import ReviewCompilerError
from review_compiler.models import BuildFailureConfig, ConfigModel, RunConfig
from review_compiler.results import ReviewResult, SeverityStatistics
from review_compiler.reviewer import DEFAULT_BUILD_FAILURE
from review_compiler.statistics import BuildFailureChecker, SeverityStatisticsCalculator

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

app = FastAPI(
    title="Review Plan Compiler",
    description="Compiles code-review configurations into validated execution plans",
    version=VERSION
)

# ── Request / Response models ───────────────────────────────────────────────

class CheckRequest(ConfigModel):
    result: Optional[ReviewResult] = None
    build_failure_configuration: Optional[BuildFailureConfig] = None


class CheckResponse(BaseModel):
    statistics: SeverityStatistics
    failed: bool


class HealthResponse(BaseModel):
    status: str
    version: str

# ── Endpoints ───────────────────────────────────────────────────────────────

@app.get("/health", response_model=HealthResponse)
def health():
    return {"status": "ok", "version": VERSION}


@app.post("/compile")
def compile_plan(request: RunConfig):
    """Compile the review parameter of a run configuration into a plan."""
    mappers = Mappers()
    try:
        plan = mappers.review_parameter.map(request.review_parameter)
        mappers.llm_client.map(request.llm_client_configuration)
        mappers.llm_client.map_all(request.llm_clients_configuration)
        mappers.persistence.map(request.persistence_configuration)
    except ReviewCompilerError as e:
        logger.warning("Compilation rejected: %s", e)
        raise HTTPException(status_code=400, detail=str(e))

    return plan.model_dump(mode="json")


@app.post("/check", response_model=CheckResponse)
def check(request: CheckRequest):
    stats = SeverityStatisticsCalculator().calculate(request.result)
    failed = BuildFailureChecker().check(
        request.build_failure_configuration or DEFAULT_BUILD_FAILURE,
        stats,
    )
    return CheckResponse(statistics=stats, failed=failed)


if __name__ == "__main__":
    load_dotenv()
    logging.basicConfig(level=settings.log_level(), format=settings.DEFAULT_LOG_FORMAT)
    uvicorn.run(app, host="0.0.0.0", port=8000)
