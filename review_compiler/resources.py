"""
Loads text resources by location.

Supported locations:
    classpath:path/inside/package   resolved against the anchor package
    file:/absolute/or/relative      plain filesystem path
    anything else                   treated as a filesystem path
"""

import codecs
import logging
from importlib.util import find_spec
from pathlib import Path
from typing import List, Optional

from review_compiler.errors import ConfigValidationError, ResourceNotFoundError
from review_compiler.settings import DEFAULT_ENCODING

logger = logging.getLogger(__name__)

CLASSPATH_PREFIX = "classpath:"
FILE_PREFIX = "file:"


class ResourceLoader:
    """Reads a whole resource into a string, synchronously and without retries."""

    def __init__(self, anchor_package: str = "review_compiler"):
        self.anchor_package = anchor_package

    def load(self, location: str, encoding: Optional[str] = None) -> str:
        logger.info("Loading resource from location: '%s' with encoding: '%s'", location, encoding)
        if not location:
            raise ConfigValidationError("Resource location must not be null or empty")

        charset = encoding if encoding and encoding.strip() else DEFAULT_ENCODING
        try:
            codecs.lookup(charset)
        except LookupError as e:
            raise ConfigValidationError(f"Unsupported encoding: '{charset}'") from e

        if location.startswith(CLASSPATH_PREFIX):
            return self._load_packaged(location[len(CLASSPATH_PREFIX):].lstrip("/"), charset)

        if location.startswith(FILE_PREFIX):
            path = location[len(FILE_PREFIX):]
            # file:///tmp/x keeps its leading slash
            if path.startswith("//"):
                path = path[2:]
        else:
            path = location

        logger.debug("Loading file resource: '%s'", path)
        return Path(path).read_text(encoding=charset)

    def _load_packaged(self, name: str, charset: str) -> str:
        logger.debug("Loading packaged resource '%s' from '%s'", name, self.anchor_package)
        parts = [part for part in name.split("/") if part]
        for directory in self._package_directories():
            candidate = directory.joinpath(*parts)
            if candidate.is_file():
                return candidate.read_text(encoding=charset)
        logger.error("Classpath resource not found: %s", name)
        raise ResourceNotFoundError(f"Classpath resource not found: {name}")

    def _package_directories(self) -> List[Path]:
        spec = find_spec(self.anchor_package)
        if spec is None or spec.submodule_search_locations is None:
            raise ResourceNotFoundError(f"Anchor package not found: {self.anchor_package}")
        # editable installs put path hook entries on the package path
        return [Path(entry) for entry in spec.submodule_search_locations if Path(entry).is_dir()]
