"""
Review results returned by the engine, and the statistics derived from them.

Every level is nullable because results arrive from an external engine and
may be partial.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from review_compiler.plan import Rule


class ReviewComment(BaseModel):
    """Single finding attached to a reviewed file."""

    model_config = ConfigDict(extra="allow")

    rule: Optional[Rule] = None
    comment: Optional[str] = None
    line: Optional[int] = None


class ReviewResultItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    file_path: Optional[str] = None
    comments: Optional[List[Optional[ReviewComment]]] = None


class ReviewResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    items: Optional[List[Optional[ReviewResultItem]]] = None


class SeverityStatistics(BaseModel):
    """Finding counts per severity."""

    info_count: int = Field(0, ge=0)
    warning_count: int = Field(0, ge=0)
    critical_count: int = Field(0, ge=0)
