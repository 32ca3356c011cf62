"""
Shared fixtures for the review compiler tests.
"""

import json

import pytest

from review_compiler.compiler import Mappers
from review_compiler.models import (
    ChatCompletionConfig,
    FileGroupConfig,
    ReviewConfig,
    ReviewTargetConfig,
)
from review_compiler.plan import ScriptConfiguration
from review_compiler.validation import validation_cache


class FakeScriptRepository:
    """Stands in for the default script configuration repository."""

    def __init__(self):
        self.calls = 0

    def find_default_configuration(self):
        self.calls += 1
        return ScriptConfiguration(script_body="function map(m) { return m; }", function_name="map")


@pytest.fixture(autouse=True)
def clean_validation_cache():
    """Every test starts with an empty, settings-driven validation cache."""
    validation_cache.clear()
    validation_cache.enabled = None
    yield
    validation_cache.clear()
    validation_cache.enabled = None


@pytest.fixture
def cache_disabled():
    validation_cache.enabled = False
    yield
    validation_cache.enabled = None


@pytest.fixture
def script_repository():
    return FakeScriptRepository()


@pytest.fixture
def mappers(script_repository):
    return Mappers(script_repository=script_repository)


@pytest.fixture
def write_file(tmp_path):
    """Write text to a file under tmp_path and return its path as a string."""

    def _write(name, content):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture
def critical_rules_file(write_file):
    return write_file("rules.json", json.dumps([{"code": "001", "severity": "critical"}]))


@pytest.fixture
def review_config(critical_rules_file):
    """One target with one file group whose only rules come from rules.json."""
    return ReviewConfig(
        review_name=" nightly review ",
        targets=[
            ReviewTargetConfig(
                review_target_name="backend",
                file_groups=[
                    FileGroupConfig(
                        file_group_name="python",
                        paths=["src/**/*.py"],
                        exclude_paths=["src/generated/**"],
                        rules_file_paths=[critical_rules_file],
                    )
                ],
            )
        ],
        llm_chat_completion_configuration=ChatCompletionConfig(model="gpt-4o"),
    )
