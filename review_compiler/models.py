"""
User-facing configuration models.

These mirror what a user writes in a run file. Everything is optional at
this level; the mappers decide what is mandatory. Keys are accepted in
camelCase (reviewTargetName) or snake_case (review_target_name).
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ConfigModel(BaseModel):
    """Base for user-facing configuration nodes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RuleConfig(ConfigModel):
    """A rule as declared inline or in a rules file."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    code: Optional[str] = Field(None, description="Rule identifier, opaque")
    description: Optional[str] = Field(None, description="What the reviewer should look for")
    severity: Optional[str] = Field(None, description="INFO, WARNING or CRITICAL")


class FileGroupConfig(ConfigModel):
    file_group_name: Optional[str] = None
    paths: Optional[List[str]] = Field(None, description="Include paths or glob patterns")
    exclude_paths: Optional[List[str]] = Field(None, description="Exclude paths or glob patterns")
    files_batch_size: Optional[int] = Field(None, description="None or <= 0 disables batching")
    rules: Optional[List[Optional[RuleConfig]]] = None
    rules_file_paths: Optional[List[Optional[str]]] = None
    file_group_prompts: Optional[List[str]] = None
    code_page: Optional[str] = Field(None, description="Character set of the files, UTF-8 by default")


class ReviewTargetConfig(ConfigModel):
    review_target_name: Optional[str] = None
    file_groups: Optional[List[Optional[FileGroupConfig]]] = None
    rules: Optional[List[Optional[RuleConfig]]] = None
    rules_file_paths: Optional[List[Optional[str]]] = None
    review_target_prompts: Optional[List[str]] = None


class ChatCompletionConfig(ConfigModel):
    """Chat completion settings. Only the model name is interpreted here."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    model: Optional[str] = None


class RhinoConfig(ConfigModel):
    """Script used by the engine to map LLM messages."""

    script_file_path: Optional[str] = None
    function_name: Optional[str] = None


class LlmQuotaConfig(ConfigModel):
    request_quota: Optional[int] = Field(None, description="Maximum number of LLM requests")


class ReviewConfig(ConfigModel):
    """Root of the review description: rules, targets, prompts and limits."""

    review_name: Optional[str] = None
    rules: Optional[List[Optional[RuleConfig]]] = None
    rules_file_paths: Optional[List[Optional[str]]] = None
    targets: Optional[List[Optional[ReviewTargetConfig]]] = None
    system_prompts: Optional[List[str]] = None
    review_prompts: Optional[List[str]] = None
    llm_chat_completion_configuration: Optional[ChatCompletionConfig] = None
    rhino_configuration: Optional[RhinoConfig] = None
    rules_batch_size: Optional[int] = None
    timeout_duration: Optional[str] = Field(None, description="ISO-8601 duration, e.g. PT30S")
    llm_quota: Optional[LlmQuotaConfig] = None


class ProxyConfig(ConfigModel):
    type: Optional[str] = Field(None, description="DIRECT, HTTP or SOCKS, case-insensitive")
    host: Optional[str] = None
    port: Optional[int] = None


class LlmClientConfig(ConfigModel):
    base_url: Optional[str] = None
    api_key: Optional[str] = Field(None, repr=False)
    timeout_duration: Optional[str] = Field(None, description="ISO-8601 duration, at most PT5M")
    max_retries: Optional[int] = None
    headers_map: Optional[Dict[Optional[str], Optional[List[Optional[str]]]]] = None
    query_params_map: Optional[Dict[Optional[str], Optional[List[Optional[str]]]]] = None
    proxy: Optional[ProxyConfig] = None
    organization: Optional[str] = None
    project: Optional[str] = None
    azure_service_version: Optional[str] = None
    response_validation: Optional[bool] = None


class DataSourceConfig(ConfigModel):
    jdbc_url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = Field(None, repr=False)
    driver_class_name: Optional[str] = None
    properties: Optional[Dict[Optional[str], Optional[str]]] = None


class PersistenceConfig(ConfigModel):
    data_source_configuration: Optional[DataSourceConfig] = None
    persist_file_content: Optional[bool] = None


class ParallelExecutionConfig(ConfigModel):
    batch_size: Optional[int] = None
    pool_size: Optional[int] = None


class BuildFailureConfig(ConfigModel):
    """Thresholds per severity; None or <= 0 disables a threshold."""

    warning_threshold: Optional[int] = None
    critical_threshold: Optional[int] = None


class ReportsConfig(ConfigModel):
    """Report destinations: a file path, STDOUT or STDERR."""

    json_report_file_path: Optional[str] = None
    markdown_report_file_path: Optional[str] = None
    html_report_file_path: Optional[str] = None
    csv_report_file_path: Optional[str] = None


class RunConfig(ConfigModel):
    """Everything needed for one review run."""

    review_parameter: Optional[ReviewConfig] = None
    llm_client_configuration: Optional[LlmClientConfig] = None
    llm_clients_configuration: Optional[List[LlmClientConfig]] = None
    parallel_execution_parameter: Optional[ParallelExecutionConfig] = None
    build_failure_configuration: Optional[BuildFailureConfig] = None
    reports_configuration: Optional[ReportsConfig] = None
    persistence_configuration: Optional[PersistenceConfig] = None
