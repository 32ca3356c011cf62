"""
Command line entry point for the review plan compiler.

Usage:
    python -m review_compiler.main compile --config run.json
    python -m review_compiler.main compile --config run.json --output output/plan.json
    python -m review_compiler.main check --result result.json --config run.json
"""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from review_compiler import settings
from review_compiler.compiler import Mappers
from review_compiler.durations import format_duration
from review_compiler.errors import ReviewCompilerError
from review_compiler.models import RunConfig
from review_compiler.plan import ReviewParameter
from review_compiler.results import ReviewResult, SeverityStatistics
from review_compiler.reviewer import DEFAULT_BUILD_FAILURE
from review_compiler.statistics import BuildFailureChecker, SeverityStatisticsCalculator

logger = logging.getLogger(__name__)


def load_run_config(filepath: str) -> RunConfig:
    """Load a run configuration from a JSON file."""
    return RunConfig.model_validate_json(Path(filepath).read_text(encoding="utf-8"))


def load_result(filepath: str) -> ReviewResult:
    return ReviewResult.model_validate_json(Path(filepath).read_text(encoding="utf-8"))


def save_plan(plan: ReviewParameter, filepath: str):
    """Save the compiled plan to a JSON file."""
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(plan.model_dump_json(indent=2), encoding="utf-8")
    print(f"\n✓ Execution plan saved to: {filepath}")


def print_plan_summary(plan: ReviewParameter):
    """Print a human-readable summary of the plan to the console."""
    print("\n" + "=" * 60)
    print(f"EXECUTION PLAN - {plan.review_name or '(unnamed review)'}")
    print("=" * 60)

    print(f"\nModel: {plan.llm_chat_completion_configuration.model}")
    print(f"Top-level rules: {len(plan.rules)}")
    print(f"Rules batch size: {plan.rules_batch_size or 'not set'}")
    print(f"Timeout: {format_duration(plan.timeout_duration) or 'not set'}")
    if plan.llm_quota and plan.llm_quota.request_quota is not None:
        print(f"Request quota: {plan.llm_quota.request_quota}")

    print("\n" + "-" * 60)
    print("TARGETS:")
    print("-" * 60)
    for i, target in enumerate(plan.targets, 1):
        print(f"\n{i}. {target.name or '(unnamed target)'} - {len(target.rules)} rule(s)")
        for group in target.file_groups:
            print(f"   File group: {group.name or '(unnamed)'}")
            print(f"     Paths: {', '.join(group.paths) or '-'}")
            if group.exclude_paths:
                print(f"     Excluded: {', '.join(group.exclude_paths)}")
            print(f"     Rules: {len(group.rules)}, code page: {group.code_page}")

    print("\n" + "=" * 60)


def print_statistics(stats: SeverityStatistics, failed: bool):
    print("\n" + "=" * 60)
    print("REVIEW STATISTICS")
    print("=" * 60)
    print(f"\n  Critical: {stats.critical_count}")
    print(f"  Warning: {stats.warning_count}")
    print(f"  Info: {stats.info_count}")
    if failed:
        print("\n⚠ Build failure criteria met")
    else:
        print("\n✓ Build passed failure check")
    print("\n" + "=" * 60)


def compile_command(args) -> int:
    print(f"Loading run configuration from: {args.config}")
    run_config = load_run_config(args.config)

    mappers = Mappers()
    plan = mappers.review_parameter.map(run_config.review_parameter)

    # client, persistence and parallel settings are validated too
    mappers.llm_client.map(run_config.llm_client_configuration)
    mappers.llm_client.map_all(run_config.llm_clients_configuration)
    mappers.persistence.map(run_config.persistence_configuration)

    print_plan_summary(plan)
    if args.output:
        save_plan(plan, args.output)
    return 0


def check_command(args) -> int:
    print(f"Loading review result from: {args.result}")
    result = load_result(args.result)

    build_failure = DEFAULT_BUILD_FAILURE
    if args.config:
        run_config = load_run_config(args.config)
        build_failure = run_config.build_failure_configuration or DEFAULT_BUILD_FAILURE

    stats = SeverityStatisticsCalculator().calculate(result)
    failed = BuildFailureChecker().check(build_failure, stats)
    print_statistics(stats, failed)
    return 1 if failed else 0


def main(argv=None):
    """Main CLI entry point."""
    load_dotenv()
    logging.basicConfig(level=settings.log_level(), format=settings.DEFAULT_LOG_FORMAT)

    parser = argparse.ArgumentParser(
        description="Review plan compiler - validate review configurations and evaluate review results"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    compile_parser = subparsers.add_parser("compile", help="Compile a run configuration into an execution plan")
    compile_parser.add_argument(
        "--config",
        required=True,
        help="Path to run configuration JSON file"
    )
    compile_parser.add_argument(
        "--output",
        help="Write the compiled plan to this JSON file"
    )
    compile_parser.set_defaults(handler=compile_command)

    check_parser = subparsers.add_parser("check", help="Compute statistics and the build verdict for a review result")
    check_parser.add_argument(
        "--result",
        required=True,
        help="Path to review result JSON file"
    )
    check_parser.add_argument(
        "--config",
        help="Run configuration holding the build failure thresholds (default: critical=1, warning=100)"
    )
    check_parser.set_defaults(handler=check_command)

    args = parser.parse_args(argv)

    try:
        return args.handler(args)

    except FileNotFoundError as e:
        print(f"Error: file not found: {e.filename}", file=sys.stderr)
        return 2

    except ReviewCompilerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    except ValueError as e:
        # pydantic.ValidationError is a ValueError
        print(f"Error: invalid input: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
