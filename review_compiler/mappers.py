"""
Leaf mappers: user-facing configuration in, execution plan pieces out.

Every mapper runs its work through MapperBase._execute, which lets compiler
errors through untouched and rewraps anything unexpected as a
ConfigValidationError so callers only ever see one failure taxonomy.
"""

import logging
import os
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import timedelta
from typing import Callable, Dict, List, Optional, Protocol, TypeVar

from review_compiler.durations import parse_duration
from review_compiler.errors import ConfigValidationError, ResourceLoadError, ReviewCompilerError
from review_compiler.models import (
    DataSourceConfig,
    LlmClientConfig,
    LlmQuotaConfig,
    ParallelExecutionConfig,
    PersistenceConfig,
    ProxyConfig,
    RhinoConfig,
    RuleConfig,
)
from review_compiler.plan import (
    DataSourceConfiguration,
    LlmClientConfiguration,
    LlmQuota,
    ParallelExecutionParameter,
    PersistenceConfiguration,
    Proxy,
    ProxyType,
    Rule,
    RuleSeverity,
    ScriptConfiguration,
)
from review_compiler.resources import ResourceLoader
from review_compiler.validation import (
    cached_check,
    mask_secret,
    mask_sensitive_info,
    not_null_or_blank,
    null_or_blank,
    require,
    require_in_range,
    require_non_blank,
    require_non_null,
    require_valid_http_url,
    require_valid_jdbc_url,
    safe_trim,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SLOW_OPERATION_MS = 50

DEFAULT_SCRIPT_LOCATION = "classpath:scripts/default_messages_mapper.js"
DEFAULT_SCRIPT_FUNCTION = "mapMessages"


class MapperBase:
    """Error boundary and timing shared by all mappers."""

    name = "Mapper"

    def _execute(self, operation: Callable[[], T], operation_name: str = "map") -> T:
        logger.debug("Starting %s operation in %s", operation_name, self.name)
        started = time.perf_counter()
        try:
            result = operation()
        except ReviewCompilerError as e:
            logger.error("Validation error in %s during %s: %s", self.name, operation_name, e)
            raise
        except Exception as e:
            logger.error("Unexpected error in %s during %s: %s", self.name, operation_name, e)
            raise ConfigValidationError(f"Failed during {operation_name} in {self.name}: {e}") from e

        elapsed_ms = (time.perf_counter() - started) * 1000
        if elapsed_ms > SLOW_OPERATION_MS:
            logger.debug("Operation '%s.%s' completed in %.0f ms", self.name, operation_name, elapsed_ms)
        return result


def parse_optional_duration(text: Optional[str], field_name: str) -> Optional[timedelta]:
    """
    Parse an optional ISO-8601 duration.

    None stays None, a blank string becomes None with a warning, and a
    negative or unparsable value is a validation failure.
    """
    if text is None:
        return None
    if not text.strip():
        logger.warning("Empty %s provided, ignoring it", field_name)
        return None

    try:
        duration = parse_duration(text)
    except ValueError as e:
        raise ConfigValidationError(
            f"Can not parse {field_name} '{text}', expected an ISO-8601 duration such as PT30S: {e}"
        ) from e

    if duration < timedelta(0):
        raise ConfigValidationError(f"Duration cannot be negative: {text}")
    return duration


class RuleMapper(MapperBase):
    name = "RuleMapper"

    def map(self, config: Optional[RuleConfig]) -> Optional[Rule]:
        if config is None:
            return None
        return Rule(
            code=config.code,
            description=config.description,
            severity=RuleSeverity.from_name(config.severity),
        )

    def map_all(self, configs: Optional[List[Optional[RuleConfig]]]) -> List[Rule]:
        if not configs:
            return []
        return self._execute(lambda: [self.map(c) for c in configs if c is not None], "map_all")


class ProxyMapper(MapperBase):
    """Maps a proxy declaration; DIRECT means no proxy at all."""

    name = "ProxyMapper"

    def map(self, config: Optional[ProxyConfig]) -> Optional[Proxy]:
        if config is None:
            return None
        return self._execute(lambda: self._map(config))

    def _map(self, config: ProxyConfig) -> Optional[Proxy]:
        require_non_null(config.type, "Proxy type")
        try:
            proxy_type = ProxyType[config.type.strip().upper()]
        except KeyError as e:
            raise ConfigValidationError(f"Unknown proxy type: {config.type}") from e

        if proxy_type is ProxyType.DIRECT:
            logger.info("Proxy type is DIRECT, no proxy will be used")
            return None

        require_non_blank(config.host, "Proxy host")
        require_non_null(config.port, "Proxy port")
        require_in_range(config.port, 0, 65535, "Proxy port")

        proxy = Proxy(type=proxy_type, host=config.host.strip(), port=config.port)
        logger.debug("Mapped proxy %s://%s:%d", proxy.type.value, proxy.host, proxy.port)
        return proxy


class LlmClientConfigurationMapper(MapperBase):
    name = "LlmClientConfigurationMapper"

    MAX_TIMEOUT = timedelta(milliseconds=300_000)
    MAX_RETRIES = 10

    def __init__(self, proxy_mapper: ProxyMapper):
        self.proxy_mapper = proxy_mapper

    def map(self, config: Optional[LlmClientConfig]) -> Optional[LlmClientConfiguration]:
        if config is None:
            return None
        return self._execute(lambda: self._map(config))

    def map_all(self, configs: Optional[List[LlmClientConfig]]) -> List[LlmClientConfiguration]:
        if not configs:
            return []
        return self._execute(lambda: [self.map(c) for c in configs if c is not None], "map_all")

    def _map(self, config: LlmClientConfig) -> LlmClientConfiguration:
        field = "llmClientConfiguration"
        require_non_blank(config.base_url, f"{field}.baseUrl")
        base_url = config.base_url.strip()
        cached_check(self.name, "baseUrl", base_url, lambda: require_valid_http_url(base_url, f"{field}.baseUrl"))

        timeout = parse_optional_duration(config.timeout_duration, f"{field}.timeoutDuration")
        if timeout is not None:
            require(
                timedelta(0) < timeout <= self.MAX_TIMEOUT,
                f"{field}.timeoutDuration must be greater than 0 and at most "
                f"{int(self.MAX_TIMEOUT.total_seconds() * 1000)} ms, but was: {config.timeout_duration}",
            )

        if config.max_retries is not None:
            require_in_range(config.max_retries, 0, self.MAX_RETRIES, f"{field}.maxRetries")

        result = LlmClientConfiguration(
            base_url=base_url,
            api_key=config.api_key,
            timeout_duration=timeout,
            max_retries=config.max_retries,
            headers=self._clean_multimap(config.headers_map, f"{field}.headersMap"),
            query_params=self._clean_multimap(config.query_params_map, f"{field}.queryParamsMap"),
            proxy=self.proxy_mapper.map(config.proxy),
            organization=config.organization,
            project=config.project,
            azure_service_version=config.azure_service_version,
            response_validation=config.response_validation,
        )

        logger.info(
            "Mapped LLM client configuration: baseUrl='%s', apiKey=%s, maxRetries=%s, proxy=%s",
            mask_sensitive_info(result.base_url),
            mask_secret(result.api_key),
            result.max_retries,
            result.proxy.type.value if result.proxy else "none",
        )
        return result

    @staticmethod
    def _clean_multimap(
        values: Optional[Dict[Optional[str], Optional[List[Optional[str]]]]],
        field_name: str,
    ) -> Optional[Dict[str, List[str]]]:
        """Reject null keys, drop null or blank values, drop keys left empty."""
        if values is None:
            return None

        cleaned: Dict[str, List[str]] = {}
        for key, entries in values.items():
            require(key is not None, f"{field_name} contains a null key")
            kept = [entry for entry in entries or [] if not_null_or_blank(entry)]
            if kept:
                cleaned[key] = kept
            else:
                logger.debug("Dropping %s entry '%s' with no values", field_name, key)
        return cleaned


class DataSourceConfigurationMapper(MapperBase):
    name = "DataSourceConfigurationMapper"

    def map(self, config: Optional[DataSourceConfig]) -> Optional[DataSourceConfiguration]:
        if config is None:
            return None
        return self._execute(lambda: self._map(config))

    def _map(self, config: DataSourceConfig) -> DataSourceConfiguration:
        jdbc_url = config.jdbc_url
        cached_check(
            self.name, "jdbcUrl", jdbc_url,
            lambda: require_valid_jdbc_url(jdbc_url, "dataSourceConfiguration.jdbcUrl"),
        )

        username = safe_trim(config.username)
        if not_null_or_blank(username) and not config.password:
            logger.warning("Data source username is set but no password was provided")

        driver_class_name = safe_trim(config.driver_class_name)
        if null_or_blank(driver_class_name):
            logger.warning("Data source driver class name is not set, the driver will be auto-detected")
            driver_class_name = None

        result = DataSourceConfiguration(
            jdbc_url=jdbc_url.strip(),
            username=username,
            password=config.password,
            driver_class_name=driver_class_name,
            properties=self._clean_properties(config.properties),
        )
        logger.info(
            "Mapped data source configuration: jdbcUrl='%s', username='%s', password=%s",
            mask_sensitive_info(result.jdbc_url),
            result.username,
            mask_secret(result.password),
        )
        return result

    @staticmethod
    def _clean_properties(properties: Optional[Dict[Optional[str], Optional[str]]]) -> Optional[Dict[str, str]]:
        if properties is None:
            return None
        return {
            key.strip(): value.strip()
            for key, value in properties.items()
            if key is not None and value is not None
        }


class PersistenceConfigurationMapper(MapperBase):
    name = "PersistenceConfigurationMapper"

    def __init__(self, data_source_mapper: DataSourceConfigurationMapper):
        self.data_source_mapper = data_source_mapper

    def map(self, config: Optional[PersistenceConfig]) -> Optional[PersistenceConfiguration]:
        if config is None:
            return None
        return self._execute(
            lambda: PersistenceConfiguration(
                data_source_configuration=self.data_source_mapper.map(config.data_source_configuration),
                persist_file_content=config.persist_file_content,
            )
        )


class LlmQuotaMapper(MapperBase):
    name = "LlmQuotaMapper"

    def map(self, config: Optional[LlmQuotaConfig]) -> Optional[LlmQuota]:
        if config is None:
            return None
        if config.request_quota is not None:
            require(
                config.request_quota >= 0,
                f"llmQuota.requestQuota cannot be negative, but was: {config.request_quota}",
            )
        return LlmQuota(request_quota=config.request_quota)


def is_parallel_requested(config: Optional[ParallelExecutionConfig]) -> bool:
    """Parallel mode is implied as soon as either size is given."""
    if config is None:
        return False
    return config.batch_size is not None or config.pool_size is not None


def default_pool_factory(pool_size: int) -> Executor:
    return ThreadPoolExecutor(max_workers=pool_size, thread_name_prefix="review-worker")


class ParallelExecutionParameterMapper(MapperBase):
    name = "ParallelExecutionParameterMapper"

    MIN_BATCH_SIZE = 1
    MAX_BATCH_SIZE = 1000
    MIN_POOL_SIZE = 1
    MAX_POOL_SIZE = 100

    def __init__(self, pool_factory: Optional[Callable[[int], Executor]] = None):
        self.pool_factory = pool_factory or default_pool_factory

    def map(self, config: Optional[ParallelExecutionConfig]) -> Optional[ParallelExecutionParameter]:
        if config is None:
            return None
        return self._execute(lambda: self._map(config))

    def _map(self, config: ParallelExecutionConfig) -> ParallelExecutionParameter:
        batch_size = self._size(config.batch_size, "batch size", self.MIN_BATCH_SIZE, self.MAX_BATCH_SIZE)
        pool_size = self._size(config.pool_size, "pool size", self.MIN_POOL_SIZE, self.MAX_POOL_SIZE)

        cpus = os.cpu_count() or 1
        if pool_size > cpus * 2:
            logger.warning(
                "Pool size (%d) is larger than 2x available processors (%d), this may not be optimal",
                pool_size, cpus,
            )

        pool = self._create_pool(pool_size)
        logger.info("Parallel execution enabled: batchSize=%d, poolSize=%d", batch_size, pool_size)
        return ParallelExecutionParameter(batch_size=batch_size, worker_pool=pool)

    @staticmethod
    def _size(value: Optional[int], label: str, minimum: int, maximum: int) -> int:
        field_name = f"parallel execution parameter {label}"
        if value is None:
            raise ConfigValidationError(f"{field_name} is null")
        if value <= 0:
            logger.warning("%s is non-positive (%d), using 1", field_name, value)
            return 1
        require_in_range(value, minimum, maximum, field_name)
        return value

    def _create_pool(self, pool_size: int) -> Executor:
        try:
            pool = self.pool_factory(pool_size)
        except Exception as e:
            logger.error("Failed to create worker pool with size %d: %s", pool_size, e)
            raise ConfigValidationError(f"Failed to create worker pool: {e}") from e

        if pool is None:
            raise ConfigValidationError("Failed to create worker pool")
        if _is_shut_down(pool):
            raise ConfigValidationError("Created worker pool is already shut down")
        return pool


def _is_shut_down(pool: Executor) -> bool:
    # Executor has no public shutdown flag; ThreadPoolExecutor keeps one privately
    return bool(getattr(pool, "_shutdown", False))


class ScriptConfigurationRepository(Protocol):
    def find_default_configuration(self) -> ScriptConfiguration:
        ...


class PackagedScriptRepository:
    """Serves the message-mapping script bundled with this package."""

    def __init__(
        self,
        loader: ResourceLoader,
        location: str = DEFAULT_SCRIPT_LOCATION,
        function_name: str = DEFAULT_SCRIPT_FUNCTION,
    ):
        self.loader = loader
        self.location = location
        self.function_name = function_name

    def find_default_configuration(self) -> ScriptConfiguration:
        logger.debug("Loading default script configuration from '%s'", self.location)
        try:
            body = self.loader.load(self.location)
        except OSError as e:
            raise ResourceLoadError(
                f"Can not read default script body '{self.location}', error: '{e}'",
                location=self.location,
            ) from e
        return ScriptConfiguration(script_body=body, function_name=self.function_name)


class RhinoScriptConfigurationMapper(MapperBase):
    """Resolves the script used by the engine to map LLM messages."""

    name = "RhinoScriptConfigurationMapper"

    def __init__(self, repository: ScriptConfigurationRepository, loader: ResourceLoader):
        self.repository = repository
        self.loader = loader

    def map(self, config: Optional[RhinoConfig]) -> ScriptConfiguration:
        if config is None:
            logger.info("Script configuration is not set, using the default configuration")
            return self._execute(self.repository.find_default_configuration, "find_default_configuration")
        return self._execute(lambda: self._map(config))

    def _map(self, config: RhinoConfig) -> ScriptConfiguration:
        if null_or_blank(config.script_file_path) or null_or_blank(config.function_name):
            raise ConfigValidationError("Script file path and function name can not be blank.")

        path = config.script_file_path.strip()
        try:
            body = self.loader.load(path)
        except OSError as e:
            logger.error("Failed to load script from '%s': %s", path, e)
            raise ResourceLoadError(
                f"Can not read script body by file path '{path}', error: '{e}'",
                location=path,
            ) from e

        logger.debug("Loaded script body from '%s', length=%d", path, len(body))
        return ScriptConfiguration(script_body=body, function_name=config.function_name.strip())
