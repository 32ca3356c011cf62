"""
Tests for the leaf mappers.

Run with: pytest tests/
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from review_compiler.errors import ConfigValidationError, ResourceLoadError
from review_compiler.mappers import (
    DataSourceConfigurationMapper,
    LlmClientConfigurationMapper,
    LlmQuotaMapper,
    PackagedScriptRepository,
    ParallelExecutionParameterMapper,
    PersistenceConfigurationMapper,
    ProxyMapper,
    RhinoScriptConfigurationMapper,
    RuleMapper,
    is_parallel_requested,
)
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
from review_compiler.plan import ProxyType, RuleSeverity
from review_compiler.resources import ResourceLoader


# ── Rules ───────────────────────────────────────────────────────────────────

def test_rule_severity_lookup():
    """Severity is looked up by name; absent or unknown becomes INFO."""
    mapper = RuleMapper()
    assert mapper.map(RuleConfig(code="1", severity="CRITICAL")).severity is RuleSeverity.CRITICAL
    assert mapper.map(RuleConfig(code="2", severity="warning")).severity is RuleSeverity.WARNING
    assert mapper.map(RuleConfig(code="3")).severity is RuleSeverity.INFO
    assert mapper.map(RuleConfig(code="4", severity="BLOCKER")).severity is RuleSeverity.INFO


def test_rule_map_all_skips_none():
    rules = RuleMapper().map_all([RuleConfig(code="1"), None, RuleConfig(code="2")])
    assert [rule.code for rule in rules] == ["1", "2"]
    assert RuleMapper().map_all(None) == []


# ── Proxy ───────────────────────────────────────────────────────────────────

def test_direct_proxy_is_no_proxy():
    """DIRECT maps to no proxy even when host and port are given."""
    assert ProxyMapper().map(ProxyConfig(type="direct", host="proxy.local", port=8080)) is None


def test_http_proxy():
    proxy = ProxyMapper().map(ProxyConfig(type="Http", host=" proxy.local ", port=3128))
    assert proxy.type is ProxyType.HTTP
    assert proxy.host == "proxy.local"
    assert proxy.port == 3128


def test_socks_proxy():
    proxy = ProxyMapper().map(ProxyConfig(type="SOCKS", host="socks.local", port=1080))
    assert proxy.type is ProxyType.SOCKS


@pytest.mark.parametrize("config, message", [
    (ProxyConfig(host="proxy.local", port=80), "Proxy type cannot be null"),
    (ProxyConfig(type="ftp", host="proxy.local", port=80), "Unknown proxy type"),
    (ProxyConfig(type="HTTP", host=" ", port=80), "Proxy host"),
    (ProxyConfig(type="HTTP", host="proxy.local"), "Proxy port cannot be null"),
    (ProxyConfig(type="HTTP", host="proxy.local", port=70000), "Proxy port must be between 0 and 65535"),
])
def test_invalid_proxy(config, message):
    with pytest.raises(ConfigValidationError, match=message):
        ProxyMapper().map(config)


def test_proxy_none():
    assert ProxyMapper().map(None) is None


def test_unexpected_error_is_wrapped():
    """Anything unexpected inside a mapper becomes ConfigValidationError with the cause kept."""
    broken = ProxyConfig.model_construct(type=42, host="proxy.local", port=80)
    with pytest.raises(ConfigValidationError) as exc_info:
        ProxyMapper().map(broken)
    assert isinstance(exc_info.value.__cause__, AttributeError)
    assert "ProxyMapper" in str(exc_info.value)


# ── LLM client ──────────────────────────────────────────────────────────────

def client_mapper():
    return LlmClientConfigurationMapper(ProxyMapper())


def test_llm_client_mapping():
    result = client_mapper().map(LlmClientConfig(
        base_url=" https://api.openai.com/v1 ",
        api_key="sk-secret",
        timeout_duration="PT30S",
        max_retries=3,
        organization="org",
        proxy=ProxyConfig(type="HTTP", host="proxy.local", port=3128),
    ))
    assert result.base_url == "https://api.openai.com/v1"
    assert result.api_key == "sk-secret"
    assert result.timeout_duration == timedelta(seconds=30)
    assert result.max_retries == 3
    assert result.organization == "org"
    assert result.proxy.host == "proxy.local"


def test_llm_client_api_key_is_masked(caplog):
    """The API key never appears in logs or in the plan's repr."""
    caplog.set_level(logging.DEBUG)
    result = client_mapper().map(LlmClientConfig(base_url="https://api.openai.com", api_key="sk-secret"))
    assert "sk-secret" not in caplog.text
    assert "******" in caplog.text
    assert "sk-secret" not in repr(result)


@pytest.mark.parametrize("config", [
    LlmClientConfig(),
    LlmClientConfig(base_url="  "),
    LlmClientConfig(base_url="ftp://api.example.com"),
    LlmClientConfig(base_url="https://api.example.com", timeout_duration="PT0S"),
    LlmClientConfig(base_url="https://api.example.com", timeout_duration="PT5M1S"),
    LlmClientConfig(base_url="https://api.example.com", timeout_duration="-PT1S"),
    LlmClientConfig(base_url="https://api.example.com", max_retries=11),
    LlmClientConfig(base_url="https://api.example.com", max_retries=-1),
])
def test_invalid_llm_client(config):
    with pytest.raises(ConfigValidationError):
        client_mapper().map(config)


def test_llm_client_timeout_upper_bound():
    """Five minutes exactly is accepted."""
    result = client_mapper().map(LlmClientConfig(base_url="https://api.example.com", timeout_duration="PT5M"))
    assert result.timeout_duration == timedelta(minutes=5)


def test_llm_client_headers_are_cleaned():
    """Null and blank values are dropped, and so are keys left with none."""
    result = client_mapper().map(LlmClientConfig(
        base_url="https://api.example.com",
        headers_map={"X-Team": ["core", None, " "], "X-Empty": [None, ""], "X-None": None},
        query_params_map={"api-version": ["2024-02-01"]},
    ))
    assert result.headers == {"X-Team": ["core"]}
    assert result.query_params == {"api-version": ["2024-02-01"]}


def test_llm_client_null_header_key():
    with pytest.raises(ConfigValidationError, match="null key"):
        client_mapper().map(LlmClientConfig(base_url="https://api.example.com", headers_map={None: ["x"]}))


def test_llm_client_map_all():
    results = client_mapper().map_all([
        LlmClientConfig(base_url="https://a.example.com"),
        LlmClientConfig(base_url="https://b.example.com"),
    ])
    assert [client.base_url for client in results] == ["https://a.example.com", "https://b.example.com"]
    assert client_mapper().map_all(None) == []


# ── Data source and persistence ─────────────────────────────────────────────

def test_data_source_mapping():
    result = DataSourceConfigurationMapper().map(DataSourceConfig(
        jdbc_url="  JDBC:postgresql://db:5432/reviews ",
        username=" reviewer ",
        password=" p@ss ",
        driver_class_name="org.postgresql.Driver",
        properties={" ssl ": " true ", "nullValue": None, None: "x"},
    ))
    assert result.jdbc_url == "JDBC:postgresql://db:5432/reviews"
    assert result.username == "reviewer"
    assert result.password == " p@ss "
    assert result.properties == {"ssl": "true"}


def test_data_source_warnings(caplog):
    """Username without password and a missing driver are warnings, not errors."""
    result = DataSourceConfigurationMapper().map(DataSourceConfig(jdbc_url="jdbc:h2:mem:test", username="sa"))
    assert result.username == "sa"
    assert result.driver_class_name is None
    assert result.properties is None
    assert "no password was provided" in caplog.text
    assert "driver class name is not set" in caplog.text


@pytest.mark.parametrize("url", [None, " ", "postgresql://db/reviews"])
def test_invalid_jdbc_url(url):
    with pytest.raises(ConfigValidationError):
        DataSourceConfigurationMapper().map(DataSourceConfig(jdbc_url=url))


def test_persistence_mapping():
    mapper = PersistenceConfigurationMapper(DataSourceConfigurationMapper())
    result = mapper.map(PersistenceConfig(
        data_source_configuration=DataSourceConfig(jdbc_url="jdbc:h2:mem:test", password="pw"),
        persist_file_content=True,
    ))
    assert result.data_source_configuration.jdbc_url == "jdbc:h2:mem:test"
    assert result.persist_file_content is True
    assert mapper.map(None) is None


def test_persistence_rejects_bad_data_source():
    mapper = PersistenceConfigurationMapper(DataSourceConfigurationMapper())
    with pytest.raises(ConfigValidationError):
        mapper.map(PersistenceConfig(data_source_configuration=DataSourceConfig(jdbc_url="mysql://db")))


# ── Quota ───────────────────────────────────────────────────────────────────

def test_quota():
    assert LlmQuotaMapper().map(LlmQuotaConfig(request_quota=100)).request_quota == 100
    assert LlmQuotaMapper().map(None) is None
    with pytest.raises(ConfigValidationError):
        LlmQuotaMapper().map(LlmQuotaConfig(request_quota=-1))


# ── Parallel execution ──────────────────────────────────────────────────────

class RecordingPoolFactory:
    def __init__(self):
        self.sizes = []
        self.pools = []

    def __call__(self, pool_size):
        self.sizes.append(pool_size)
        pool = ThreadPoolExecutor(max_workers=pool_size)
        self.pools.append(pool)
        return pool

    def shutdown(self):
        for pool in self.pools:
            pool.shutdown()


@pytest.fixture
def pool_factory():
    factory = RecordingPoolFactory()
    yield factory
    factory.shutdown()


def test_parallel_requested():
    assert not is_parallel_requested(None)
    assert not is_parallel_requested(ParallelExecutionConfig())
    assert is_parallel_requested(ParallelExecutionConfig(pool_size=4))
    assert is_parallel_requested(ParallelExecutionConfig(batch_size=4))


def test_parallel_missing_batch_size(pool_factory):
    """Mixed presence is invalid once parallel mode is implied."""
    mapper = ParallelExecutionParameterMapper(pool_factory)
    with pytest.raises(ConfigValidationError, match="parallel execution parameter batch size is null"):
        mapper.map(ParallelExecutionConfig(batch_size=None, pool_size=4))
    assert pool_factory.sizes == []


def test_parallel_missing_pool_size(pool_factory):
    mapper = ParallelExecutionParameterMapper(pool_factory)
    with pytest.raises(ConfigValidationError, match="parallel execution parameter pool size is null"):
        mapper.map(ParallelExecutionConfig(batch_size=10))


def test_parallel_mapping(pool_factory):
    result = ParallelExecutionParameterMapper(pool_factory).map(ParallelExecutionConfig(batch_size=20, pool_size=2))
    assert result.batch_size == 20
    assert result.worker_pool is pool_factory.pools[0]
    assert pool_factory.sizes == [2]


def test_parallel_non_positive_defaults_to_one(pool_factory, caplog):
    result = ParallelExecutionParameterMapper(pool_factory).map(ParallelExecutionConfig(batch_size=0, pool_size=-3))
    assert result.batch_size == 1
    assert pool_factory.sizes == [1]
    assert "non-positive" in caplog.text


@pytest.mark.parametrize("config", [
    ParallelExecutionConfig(batch_size=1001, pool_size=1),
    ParallelExecutionConfig(batch_size=1, pool_size=101),
])
def test_parallel_out_of_range(config, pool_factory):
    with pytest.raises(ConfigValidationError, match="must be between"):
        ParallelExecutionParameterMapper(pool_factory).map(config)


def test_parallel_pool_factory_failure():
    def failing_factory(pool_size):
        raise RuntimeError("no threads left")

    with pytest.raises(ConfigValidationError, match="Failed to create worker pool") as exc_info:
        ParallelExecutionParameterMapper(failing_factory).map(ParallelExecutionConfig(batch_size=1, pool_size=1))
    assert isinstance(exc_info.value.__cause__, RuntimeError)


def test_parallel_pool_already_shut_down():
    def closed_factory(pool_size):
        pool = ThreadPoolExecutor(max_workers=pool_size)
        pool.shutdown()
        return pool

    with pytest.raises(ConfigValidationError, match="already shut down"):
        ParallelExecutionParameterMapper(closed_factory).map(ParallelExecutionConfig(batch_size=1, pool_size=1))


def test_parallel_default_factory():
    result = ParallelExecutionParameterMapper().map(ParallelExecutionConfig(batch_size=5, pool_size=2))
    try:
        assert isinstance(result.worker_pool, ThreadPoolExecutor)
        assert result.worker_pool.submit(lambda: 21 * 2).result() == 42
    finally:
        result.worker_pool.shutdown()


# ── Script configuration ────────────────────────────────────────────────────

def test_script_default_from_repository(script_repository):
    mapper = RhinoScriptConfigurationMapper(script_repository, ResourceLoader())
    result = mapper.map(None)
    assert result.function_name == "map"
    assert script_repository.calls == 1


def test_script_loaded_from_file(script_repository, write_file):
    path = write_file("mapper.js", "function custom(m) { return m; }")
    mapper = RhinoScriptConfigurationMapper(script_repository, ResourceLoader())
    result = mapper.map(RhinoConfig(script_file_path=path, function_name="custom"))
    assert result.script_body == "function custom(m) { return m; }"
    assert result.function_name == "custom"
    assert script_repository.calls == 0


@pytest.mark.parametrize("config", [
    RhinoConfig(script_file_path="mapper.js"),
    RhinoConfig(function_name="custom"),
    RhinoConfig(script_file_path=" ", function_name="custom"),
])
def test_script_requires_path_and_function(config, script_repository):
    mapper = RhinoScriptConfigurationMapper(script_repository, ResourceLoader())
    with pytest.raises(ConfigValidationError, match="can not be blank"):
        mapper.map(config)


def test_script_missing_file(script_repository, tmp_path):
    missing = str(tmp_path / "missing.js")
    mapper = RhinoScriptConfigurationMapper(script_repository, ResourceLoader())
    with pytest.raises(ResourceLoadError) as exc_info:
        mapper.map(RhinoConfig(script_file_path=missing, function_name="custom"))
    assert exc_info.value.location == missing


def test_packaged_default_script():
    """The bundled script is served as the default configuration."""
    result = PackagedScriptRepository(ResourceLoader()).find_default_configuration()
    assert result.function_name == "mapMessages"
    assert "function mapMessages" in result.script_body
