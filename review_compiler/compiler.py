"""
Compiles a review configuration into an execution plan.

The review parameter mapper drives the whole pass: it aggregates rules at
each scope, checks that rules and targets exist, resolves the chat, script,
limit and quota settings, and finally maps every target and file group.
Any failure aborts the compilation; there is no partial plan.
"""

import codecs
import logging
from datetime import timedelta
from typing import List, Optional

from review_compiler.durations import format_duration
from review_compiler.errors import ConfigValidationError
from review_compiler.mappers import (
    DataSourceConfigurationMapper,
    LlmClientConfigurationMapper,
    LlmQuotaMapper,
    MapperBase,
    PackagedScriptRepository,
    ParallelExecutionParameterMapper,
    PersistenceConfigurationMapper,
    ProxyMapper,
    RhinoScriptConfigurationMapper,
    RuleMapper,
    ScriptConfigurationRepository,
    parse_optional_duration,
)
from review_compiler.models import ChatCompletionConfig, FileGroupConfig, ReviewConfig, ReviewTargetConfig
from review_compiler.plan import ChatCompletionConfiguration, FileGroup, ReviewParameter, ReviewTarget
from review_compiler.resources import ResourceLoader
from review_compiler.rules import JsonRulesParser, RuleAggregator, RulesFileReader, XmlRulesParser
from review_compiler.settings import DEFAULT_ENCODING
from review_compiler.validation import (
    cached_check,
    null_or_blank,
    require,
    require_in_range,
    require_non_blank,
    require_non_null,
    safe_trim,
)

logger = logging.getLogger(__name__)

MAX_RULES_BATCH_SIZE = 1000
LONG_TIMEOUT = timedelta(days=1)


def _require_known_codec(code_page: str) -> None:
    try:
        codecs.lookup(code_page)
    except LookupError as e:
        raise ConfigValidationError(f"fileGroup.codePage is not a known character set: '{code_page}'") from e


class FileGroupMapper(MapperBase):
    name = "FileGroupMapper"

    def __init__(self, aggregator: RuleAggregator, rule_mapper: RuleMapper):
        self.aggregator = aggregator
        self.rule_mapper = rule_mapper

    def map(self, config: Optional[FileGroupConfig]) -> Optional[FileGroup]:
        if config is None:
            return None
        return self._execute(lambda: self._map(config))

    def _map(self, config: FileGroupConfig) -> FileGroup:
        scope = f"file group '{config.file_group_name}'"
        rules = self.rule_mapper.map_all(
            self.aggregator.aggregate(config.rules_file_paths, config.rules, scope)
        )

        code_page = DEFAULT_ENCODING if null_or_blank(config.code_page) else config.code_page.strip()
        cached_check(self.name, "codePage", code_page, lambda: _require_known_codec(code_page))

        files_batch_size = config.files_batch_size
        if files_batch_size is not None and files_batch_size <= 0:
            logger.debug("Files batch size %d for %s disables batching", files_batch_size, scope)
            files_batch_size = None

        return FileGroup(
            name=config.file_group_name,
            paths=list(config.paths or []),
            exclude_paths=list(config.exclude_paths or []),
            files_batch_size=files_batch_size,
            rules=rules,
            prompts=list(config.file_group_prompts or []),
            code_page=code_page,
        )


class ReviewTargetMapper(MapperBase):
    name = "ReviewTargetMapper"

    def __init__(self, aggregator: RuleAggregator, rule_mapper: RuleMapper, file_group_mapper: FileGroupMapper):
        self.aggregator = aggregator
        self.rule_mapper = rule_mapper
        self.file_group_mapper = file_group_mapper

    def map(self, config: Optional[ReviewTargetConfig]) -> Optional[ReviewTarget]:
        if config is None:
            return None
        return self._execute(lambda: self._map(config))

    def _map(self, config: ReviewTargetConfig) -> ReviewTarget:
        scope = f"target '{config.review_target_name}'"
        rules = self.rule_mapper.map_all(
            self.aggregator.aggregate(config.rules_file_paths, config.rules, scope)
        )

        file_groups = []
        for group in config.file_groups or []:
            mapped = self.file_group_mapper.map(group)
            if mapped is not None:
                file_groups.append(mapped)

        logger.debug("Mapped %s: %d rules, %d file groups", scope, len(rules), len(file_groups))
        return ReviewTarget(
            name=config.review_target_name,
            file_groups=file_groups,
            rules=rules,
            prompts=list(config.review_target_prompts or []),
        )


class ReviewParameterMapper(MapperBase):
    """Top-level compilation of a ReviewConfig into a ReviewParameter."""

    name = "ReviewParameterMapper"

    def __init__(
        self,
        aggregator: RuleAggregator,
        rule_mapper: RuleMapper,
        target_mapper: ReviewTargetMapper,
        script_mapper: RhinoScriptConfigurationMapper,
        quota_mapper: LlmQuotaMapper,
    ):
        self.aggregator = aggregator
        self.rule_mapper = rule_mapper
        self.target_mapper = target_mapper
        self.script_mapper = script_mapper
        self.quota_mapper = quota_mapper

    def map(self, config: Optional[ReviewConfig]) -> ReviewParameter:
        return self._execute(lambda: self._map(config))

    def _map(self, config: Optional[ReviewConfig]) -> ReviewParameter:
        require_non_null(config, "reviewParameter")
        logger.info("Compiling review '%s'", config.review_name)

        rules = self.rule_mapper.map_all(
            self.aggregator.aggregate(config.rules_file_paths, config.rules, "review")
        )
        targets = [target for target in config.targets or [] if target is not None]

        # rule presence is checked before target presence
        require(
            bool(rules) or self._has_lower_scope_rules(targets),
            "At least one rules source must be provided (rulesFilePaths or inline rules at any level)",
        )
        require(bool(targets), "At least one review target must be provided")

        chat = self._map_chat(config.llm_chat_completion_configuration)
        script = self.script_mapper.map(config.rhino_configuration)

        if config.rules_batch_size is not None:
            require_in_range(config.rules_batch_size, 1, MAX_RULES_BATCH_SIZE, "reviewParameter.rulesBatchSize")

        timeout = parse_optional_duration(config.timeout_duration, "reviewParameter.timeoutDuration")
        if timeout is not None and timeout > LONG_TIMEOUT:
            logger.warning("Duration is very long (%s), this may cause issues", config.timeout_duration)

        quota = self.quota_mapper.map(config.llm_quota)

        mapped_targets = []
        for target in targets:
            mapped = self.target_mapper.map(target)
            if mapped is not None:
                mapped_targets.append(mapped)

        plan = ReviewParameter(
            review_name=safe_trim(config.review_name),
            rules=rules,
            targets=mapped_targets,
            system_prompts=config.system_prompts,
            review_prompts=config.review_prompts,
            llm_chat_completion_configuration=chat,
            script_configuration=script,
            rules_batch_size=config.rules_batch_size,
            timeout_duration=timeout,
            llm_quota=quota,
        )
        logger.info(
            "Compiled review '%s': %d top-level rules, %d targets, model=%s, timeout=%s",
            plan.review_name,
            len(plan.rules),
            len(plan.targets),
            chat.model,
            format_duration(timeout),
        )
        return plan

    def _has_lower_scope_rules(self, targets: List[ReviewTargetConfig]) -> bool:
        for target in targets:
            scope = f"target '{target.review_target_name}'"
            if self.aggregator.aggregate(target.rules_file_paths, target.rules, scope):
                return True
            for group in target.file_groups or []:
                if group is None:
                    continue
                scope = f"file group '{group.file_group_name}'"
                if self.aggregator.aggregate(group.rules_file_paths, group.rules, scope):
                    return True
        return False

    @staticmethod
    def _map_chat(config: Optional[ChatCompletionConfig]) -> ChatCompletionConfiguration:
        field = "reviewParameter.llmChatCompletionConfiguration"
        require_non_null(config, field)
        require_non_blank(config.model, f"{field}.model")
        settings = config.model_dump()
        settings["model"] = config.model.strip()
        return ChatCompletionConfiguration(**settings)


class Mappers:
    """Every mapper a review run needs, wired together."""

    def __init__(
        self,
        loader: Optional[ResourceLoader] = None,
        script_repository: Optional[ScriptConfigurationRepository] = None,
        pool_factory=None,
    ):
        self.loader = loader or ResourceLoader()
        self.reader = RulesFileReader(self.loader, JsonRulesParser(), XmlRulesParser())
        self.aggregator = RuleAggregator(self.reader)
        self.rule = RuleMapper()
        self.file_group = FileGroupMapper(self.aggregator, self.rule)
        self.review_target = ReviewTargetMapper(self.aggregator, self.rule, self.file_group)
        self.script = RhinoScriptConfigurationMapper(
            script_repository or PackagedScriptRepository(self.loader),
            self.loader,
        )
        self.review_parameter = ReviewParameterMapper(
            self.aggregator, self.rule, self.review_target, self.script, LlmQuotaMapper()
        )
        self.proxy = ProxyMapper()
        self.llm_client = LlmClientConfigurationMapper(self.proxy)
        self.data_source = DataSourceConfigurationMapper()
        self.persistence = PersistenceConfigurationMapper(self.data_source)
        self.parallel_execution = ParallelExecutionParameterMapper(pool_factory)


def compile_review(config: ReviewConfig, loader: Optional[ResourceLoader] = None) -> ReviewParameter:
    """Compile a review configuration with the default wiring."""
    return Mappers(loader=loader).review_parameter.map(config)
