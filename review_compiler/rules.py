"""
Rule sources: JSON and XML rule files plus inline declarations.

A scope's rule set is every rule from its rule files, in the listed order,
followed by its inline rules. Scopes never inherit from each other and
nothing is deduplicated.
"""

import json
import logging
import xml.etree.ElementTree as ET
from enum import Enum
from pathlib import PurePath
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from review_compiler.errors import (
    ConfigValidationError,
    ResourceLoadError,
    ReviewCompilerError,
    RuleParseError,
)
from review_compiler.models import RuleConfig
from review_compiler.resources import ResourceLoader
from review_compiler.validation import null_or_blank

logger = logging.getLogger(__name__)

_RULE_LIST = TypeAdapter(List[RuleConfig])


class FileType(str, Enum):
    JSON = "json"
    XML = "xml"

    @classmethod
    def find_by_extension(cls, extension: Optional[str]) -> Optional["FileType"]:
        if not extension:
            return None
        for file_type in cls:
            if file_type.value == extension.lower():
                return file_type
        return None


def file_extension(path: str) -> Optional[str]:
    """Text after the last '.' of the file name, None if there is none."""
    name = PurePath(path.strip()).name
    if "." not in name:
        return None
    extension = name.rsplit(".", 1)[1]
    return extension or None


class JsonRulesParser:
    """Parses a flat JSON array of rule objects."""

    name = "json"

    def parse_rules(self, text: Optional[str]) -> List[RuleConfig]:
        if text is None or not text.strip():
            logger.warning("Input JSON for rules parsing is null or empty.")
            return []

        logger.debug("Parsing rules from JSON string of length %d.", len(text))
        try:
            rules = _RULE_LIST.validate_json(text)
        except ValidationError as e:
            logger.error("Failed to parse rules from JSON: %s", e)
            raise RuleParseError(str(e), parser=self.name) from e

        logger.info("Parsed %d rules from JSON input.", len(rules))
        return rules

    def dump_rules(self, rules: List[RuleConfig]) -> str:
        """Serialize rules back into the array form parse_rules accepts."""
        return json.dumps([rule.model_dump() for rule in rules], indent=2)


class XmlRulesParser:
    """
    Parses rules from XML of the form:

        <rules>
            <rule>
                <code>R1</code>
                <description>...</description>
                <severity>WARNING</severity>
            </rule>
        </rules>
    """

    name = "xml"

    def parse_rules(self, text: Optional[str]) -> List[RuleConfig]:
        if text is None or not text.strip():
            logger.warning("Input XML for rules parsing is null or empty.")
            return []

        logger.debug("Parsing rules from XML string of length %d.", len(text))
        try:
            root = ET.fromstring(text.strip())
        except ET.ParseError as e:
            logger.error("Failed to parse rules from XML: %s", e)
            raise RuleParseError(str(e), parser=self.name) from e

        if root.tag != "rules":
            raise RuleParseError(f"Unexpected root element <{root.tag}>, expected <rules>", parser=self.name)

        rules = []
        for element in root.findall("rule"):
            try:
                rules.append(RuleConfig(
                    code=self._child_text(element, "code"),
                    description=self._child_text(element, "description"),
                    severity=self._child_text(element, "severity"),
                ))
            except ValidationError as e:
                raise RuleParseError(str(e), parser=self.name) from e

        logger.info("Parsed %d rules from XML input.", len(rules))
        return rules

    @staticmethod
    def _child_text(element: ET.Element, tag: str) -> Optional[str]:
        child = element.find(tag)
        if child is None or child.text is None:
            return None
        return child.text.strip()


class RulesFileReader:
    """Picks a parser from the file extension and feeds it the file body."""

    def __init__(self, loader: ResourceLoader, json_parser: JsonRulesParser, xml_parser: XmlRulesParser):
        self.loader = loader
        self.parsers = {FileType.JSON: json_parser, FileType.XML: xml_parser}

    def read_rules(self, path: Optional[str]) -> List[RuleConfig]:
        logger.info("Reading rules from file: '%s'", path)
        if null_or_blank(path):
            logger.error("The file path is empty")
            raise ConfigValidationError("The file path is empty")

        path = path.strip()
        extension = file_extension(path)
        file_type = FileType.find_by_extension(extension)
        if file_type is None:
            logger.error("Unsupported file type: '%s'", extension)
            raise ConfigValidationError(
                f"Unsupported file type: '{extension}'. Supported files types only JSON and XML."
            )

        body = self.loader.load(path)
        rules = self.parsers[file_type].parse_rules(body)
        logger.info("Parsed %d rules from %s file '%s'", len(rules), file_type.name, path)
        return rules


class RuleAggregator:
    """Builds the rule set of one scope from its rule files and inline rules."""

    def __init__(self, reader: RulesFileReader):
        self.reader = reader

    def aggregate(
        self,
        rules_file_paths: Optional[List[Optional[str]]],
        inline_rules: Optional[List[Optional[RuleConfig]]],
        scope: str,
    ) -> List[RuleConfig]:
        aggregated: List[RuleConfig] = []

        for path in rules_file_paths or []:
            if null_or_blank(path):
                logger.warning("Skipping blank rules file path in %s", scope)
                continue
            aggregated.extend(self._load(path))

        if inline_rules:
            aggregated.extend(rule for rule in inline_rules if rule is not None)

        logger.debug("Aggregated %d rules for %s", len(aggregated), scope)
        return aggregated

    def _load(self, path: str) -> List[RuleConfig]:
        try:
            return self.reader.read_rules(path)
        except ReviewCompilerError:
            raise
        except Exception as e:
            logger.error("Failed to load rules from '%s': %s", path, e)
            raise ResourceLoadError(f"Failed to load rules from '{path}': {e}", location=path) from e
