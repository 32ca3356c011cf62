"""
Severity statistics and the build-failure verdict derived from them.
"""

import logging
from typing import Optional

from review_compiler.models import BuildFailureConfig
from review_compiler.plan import RuleSeverity
from review_compiler.results import ReviewResult, SeverityStatistics

logger = logging.getLogger(__name__)


class SeverityStatisticsCalculator:
    """Counts findings per severity, skipping anything missing along the way."""

    def calculate(self, result: Optional[ReviewResult]) -> SeverityStatistics:
        counts = {severity: 0 for severity in RuleSeverity}

        if result is None:
            logger.warning("Review result is null, returning empty statistics")
            return SeverityStatistics()

        for item in result.items or []:
            if item is None:
                continue
            for comment in item.comments or []:
                if comment is None or comment.rule is None:
                    continue
                counts[comment.rule.severity] += 1

        stats = SeverityStatistics(
            info_count=counts[RuleSeverity.INFO],
            warning_count=counts[RuleSeverity.WARNING],
            critical_count=counts[RuleSeverity.CRITICAL],
        )
        logger.info(
            "Severity statistics: critical=%d, warning=%d, info=%d",
            stats.critical_count, stats.warning_count, stats.info_count,
        )
        return stats


def _enforced(threshold: Optional[int]) -> bool:
    return threshold is not None and threshold > 0


class BuildFailureChecker:
    """
    Decides whether a review should fail the build.

    Critical and warning thresholds are independent: either one being met
    fails the build. A threshold that is None or <= 0 is not enforced.
    """

    def check(self, config: Optional[BuildFailureConfig], stats: Optional[SeverityStatistics]) -> bool:
        if config is None or stats is None:
            logger.warning("Build failure configuration or statistics missing, not failing the build")
            return False

        if _enforced(config.critical_threshold) and stats.critical_count >= config.critical_threshold:
            logger.error(
                "Build failed: %d critical issue(s), threshold is %d",
                stats.critical_count, config.critical_threshold,
            )
            return True

        if _enforced(config.warning_threshold) and stats.warning_count >= config.warning_threshold:
            logger.error(
                "Build failed: %d warning issue(s), threshold is %d",
                stats.warning_count, config.warning_threshold,
            )
            return True

        return False
