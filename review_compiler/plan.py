"""
Execution plan models handed to the review engine.

All plan models are frozen: a plan is built once per compilation and never
mutated afterwards.
"""

import logging
from concurrent.futures import Executor
from datetime import timedelta
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class RuleSeverity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"

    @classmethod
    def from_name(cls, name: Optional[str]) -> "RuleSeverity":
        """Look a severity up by name. Absent or unknown names become INFO."""
        if name is None:
            return cls.INFO
        try:
            return cls[name.strip().upper()]
        except KeyError:
            logger.warning("Unknown rule severity '%s', using %s", name, cls.INFO.value)
            return cls.INFO


class ProxyType(str, Enum):
    DIRECT = "DIRECT"
    HTTP = "HTTP"
    SOCKS = "SOCKS"


class PlanModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class Rule(PlanModel):
    code: Optional[str] = None
    description: Optional[str] = None
    severity: RuleSeverity = RuleSeverity.INFO

    @field_validator("severity", mode="before")
    @classmethod
    def _lookup_severity(cls, value):
        if isinstance(value, RuleSeverity):
            return value
        return RuleSeverity.from_name(value)


class FileGroup(PlanModel):
    name: Optional[str] = None
    paths: List[str] = Field(default_factory=list)
    exclude_paths: List[str] = Field(default_factory=list)
    files_batch_size: Optional[int] = Field(None, description="None means no batching")
    rules: List[Rule] = Field(default_factory=list)
    prompts: List[str] = Field(default_factory=list)
    code_page: str = "UTF-8"


class ReviewTarget(PlanModel):
    name: Optional[str] = None
    file_groups: List[FileGroup] = Field(default_factory=list)
    rules: List[Rule] = Field(default_factory=list)
    prompts: List[str] = Field(default_factory=list)


class ChatCompletionConfiguration(PlanModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    model: str


class ScriptConfiguration(PlanModel):
    """Script body and entry point used by the engine to map LLM messages."""

    script_body: str
    function_name: str


class LlmQuota(PlanModel):
    request_quota: Optional[int] = None


class ReviewParameter(PlanModel):
    """The execution plan root."""

    review_name: Optional[str] = None
    rules: List[Rule] = Field(default_factory=list)
    targets: List[ReviewTarget] = Field(default_factory=list)
    system_prompts: Optional[List[str]] = None
    review_prompts: Optional[List[str]] = None
    llm_chat_completion_configuration: ChatCompletionConfiguration
    script_configuration: Optional[ScriptConfiguration] = None
    rules_batch_size: Optional[int] = None
    timeout_duration: Optional[timedelta] = None
    llm_quota: Optional[LlmQuota] = None


class Proxy(PlanModel):
    type: ProxyType
    host: str
    port: int


class LlmClientConfiguration(PlanModel):
    base_url: str
    api_key: Optional[str] = Field(None, repr=False)
    timeout_duration: Optional[timedelta] = None
    max_retries: Optional[int] = None
    headers: Optional[Dict[str, List[str]]] = None
    query_params: Optional[Dict[str, List[str]]] = None
    proxy: Optional[Proxy] = None
    organization: Optional[str] = None
    project: Optional[str] = None
    azure_service_version: Optional[str] = None
    response_validation: Optional[bool] = None


class DataSourceConfiguration(PlanModel):
    jdbc_url: str
    username: Optional[str] = None
    password: Optional[str] = Field(None, repr=False)
    driver_class_name: Optional[str] = None
    properties: Optional[Dict[str, str]] = None


class PersistenceConfiguration(PlanModel):
    data_source_configuration: Optional[DataSourceConfiguration] = None
    persist_file_content: Optional[bool] = None


class ParallelExecutionParameter(PlanModel):
    """Effective batch size plus the worker pool built for it."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    batch_size: int
    worker_pool: Executor
