"""
Error taxonomy for review plan compilation.

Every failure raised by the compiler is a ReviewCompilerError so the
orchestrator can halt the run with one except clause.
"""

from typing import Optional


class ReviewCompilerError(Exception):
    """Base exception for compiler errors."""
    pass


class ConfigValidationError(ReviewCompilerError):
    """A caller-correctable configuration defect. Never retried."""
    pass


class ResourceLoadError(ReviewCompilerError):
    """A rules file or script body could not be loaded."""

    def __init__(self, message: str, location: Optional[str] = None):
        super().__init__(message)
        self.location = location


class ResourceNotFoundError(FileNotFoundError):
    """Classpath resource does not exist."""
    pass


class RuleParseError(ReviewCompilerError):
    """Rule file content could not be parsed."""

    def __init__(self, message: str, parser: str):
        super().__init__(f"[{parser}] {message}")
        self.parser = parser
