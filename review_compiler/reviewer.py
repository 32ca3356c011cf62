"""
Review run orchestration.

Compiles the run configuration, hands the plan to the review engine in
single-threaded or parallel mode, writes reports and turns the findings
into a pass/fail verdict.
"""

import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from pydantic import BaseModel

from review_compiler.compiler import Mappers
from review_compiler.errors import ConfigValidationError
from review_compiler.mappers import is_parallel_requested
from review_compiler.models import BuildFailureConfig, ReportsConfig, RunConfig
from review_compiler.plan import (
    LlmClientConfiguration,
    ParallelExecutionParameter,
    PersistenceConfiguration,
    ReviewParameter,
)
from review_compiler.results import ReviewResult, SeverityStatistics
from review_compiler.statistics import BuildFailureChecker, SeverityStatisticsCalculator
from review_compiler.validation import null_or_blank

logger = logging.getLogger(__name__)

STDOUT = "STDOUT"
STDERR = "STDERR"

DEFAULT_BUILD_FAILURE = BuildFailureConfig(critical_threshold=1, warning_threshold=100)


class ReviewEngine(Protocol):
    """Runs the review described by a compiled plan."""

    def review(
        self,
        plan: ReviewParameter,
        clients: List[LlmClientConfiguration],
        persistence: Optional[PersistenceConfiguration],
        parallel: Optional[ParallelExecutionParameter],
    ) -> ReviewResult:
        ...


class ReportRenderer(Protocol):
    def render(self, result: ReviewResult) -> str:
        ...


class RunOutcome(BaseModel):
    result: ReviewResult
    statistics: SeverityStatistics
    failed: bool


def write_report(body: str, destination: str) -> None:
    """Write a report to STDOUT, STDERR or a file, creating parent directories."""
    if null_or_blank(destination):
        raise ConfigValidationError("Report file path cannot be null or empty.")

    target = destination.strip()
    if target.upper() == STDOUT:
        print(body)
    elif target.upper() == STDERR:
        print(body, file=sys.stderr)
    else:
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body, encoding="utf-8")
        logger.info("Report written to: %s", path)


class ReviewRunner:
    """Runs one review from a RunConfig."""

    def __init__(
        self,
        engine: ReviewEngine,
        mappers: Optional[Mappers] = None,
        renderers: Optional[Dict[str, ReportRenderer]] = None,
    ):
        self.engine = engine
        self.mappers = mappers or Mappers()
        self.renderers = renderers or {}
        self.calculator = SeverityStatisticsCalculator()
        self.checker = BuildFailureChecker()

    def run(self, run_config: RunConfig) -> RunOutcome:
        logger.info("Starting review run...")
        clients = self._map_clients(run_config)

        plan = self.mappers.review_parameter.map(run_config.review_parameter)
        persistence = self.mappers.persistence.map(run_config.persistence_configuration)
        if persistence is None:
            logger.info("No persistence configuration provided")

        result = self._review(plan, clients, persistence, run_config)
        items = len(result.items) if result.items else 0
        logger.info("Review result items size: %d", items)

        statistics = self.calculator.calculate(result)
        self._write_reports(result, run_config.reports_configuration)

        build_failure = run_config.build_failure_configuration or DEFAULT_BUILD_FAILURE
        failed = self.checker.check(build_failure, statistics)
        if failed:
            logger.warning("Build failure criteria met")
        else:
            logger.info("Build passed failure check")

        return RunOutcome(result=result, statistics=statistics, failed=failed)

    def _map_clients(self, run_config: RunConfig) -> List[LlmClientConfiguration]:
        single = run_config.llm_client_configuration
        many = run_config.llm_clients_configuration

        if single is not None and many:
            raise ConfigValidationError("Provide either a single LLM Client configuration or a list, not both.")
        if single is None and not many:
            raise ConfigValidationError("LLM Client configuration is not provided.")

        if single is not None:
            return [self.mappers.llm_client.map(single)]

        clients = self.mappers.llm_client.map_all(many)
        logger.info("Mapped %d LLM client configurations", len(clients))
        return clients

    def _review(
        self,
        plan: ReviewParameter,
        clients: List[LlmClientConfiguration],
        persistence: Optional[PersistenceConfiguration],
        run_config: RunConfig,
    ) -> ReviewResult:
        parallel_config = run_config.parallel_execution_parameter

        if not is_parallel_requested(parallel_config):
            logger.info("Executing review in single-threaded mode")
            if len(clients) != 1:
                raise ConfigValidationError("More than one or zero LlmClients is present.")
            return self.engine.review(plan, clients, persistence, None)

        parallel = self.mappers.parallel_execution.map(parallel_config)
        logger.info(
            "Executing review in parallel mode. Batch size: %d, Pool size: %d",
            parallel.batch_size, parallel_config.pool_size,
        )
        try:
            return self.engine.review(plan, clients, persistence, parallel)
        finally:
            parallel.worker_pool.shutdown(wait=True)

    def _write_reports(self, result: ReviewResult, reports: Optional[ReportsConfig]) -> None:
        if reports is None:
            return

        if not null_or_blank(reports.json_report_file_path):
            write_report(result.model_dump_json(indent=2), reports.json_report_file_path)

        destinations = {
            "markdown": reports.markdown_report_file_path,
            "html": reports.html_report_file_path,
            "csv": reports.csv_report_file_path,
        }
        for kind, destination in destinations.items():
            if null_or_blank(destination):
                continue
            renderer = self.renderers.get(kind)
            if renderer is None:
                logger.warning("No %s report renderer configured, skipping report '%s'", kind, destination)
                continue
            write_report(renderer.render(result), destination)
