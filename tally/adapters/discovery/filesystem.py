"""Filesystem module source.

Implements ModuleSourcePort by walking the test directory and loading
the files it finds with importlib.

File naming conventions:
- ``tally_setup.py``: setup/teardown hook module
- ``tally_config.py``: run option overrides
- ``*_test.py``: test module
"""

import importlib.util
import logging
import re
import sys
from pathlib import Path
from typing import Any

from tally.core.exceptions import ConfigurationError
from tally.core.ports import Discovery, ModuleSourcePort

logger = logging.getLogger(__name__)

SETUP_FILE_NAME = "tally_setup.py"
CONFIG_FILE_NAME = "tally_config.py"
TEST_FILE_SUFFIX = "_test.py"


def is_setup_file(path: Path) -> bool:
    return path.name == SETUP_FILE_NAME


def is_config_file(path: Path) -> bool:
    return path.name == CONFIG_FILE_NAME


def is_test_file(path: Path) -> bool:
    return path.name.endswith(TEST_FILE_SUFFIX)


class FileSystemModuleSource(ModuleSourcePort):
    """Discovers and imports user modules from disk."""

    def discover(self, directory: Path, explicit: Path | None = None) -> Discovery:
        setup_files: list[Path] = []
        config_files: list[Path] = []
        test_files: list[Path] = []

        if directory.is_dir():
            for path in self._walk(directory):
                if is_setup_file(path):
                    setup_files.append(path)
                if is_config_file(path):
                    config_files.append(path)
                if is_test_file(path):
                    test_files.append(path)
        elif explicit is None:
            raise ConfigurationError(f"The test directory {directory} does not exist.")
        else:
            logger.debug(f"Test directory {directory} not found, using {explicit} only")

        if explicit is not None:
            if explicit.is_file():
                test_files.append(explicit)
            elif explicit.is_dir():
                test_files.extend(p for p in self._walk(explicit) if is_test_file(p))
            else:
                raise ConfigurationError(f"The test path {explicit} does not exist.")

        # A file reachable from both directory and explicit path runs once.
        unique_tests = dict.fromkeys(p.resolve() for p in test_files)

        logger.debug(
            f"Discovered {len(setup_files)} setup, {len(config_files)} config, "
            f"{len(unique_tests)} test files"
        )
        return Discovery(
            setup_files=tuple(setup_files),
            config_files=tuple(config_files),
            test_files=tuple(unique_tests),
        )

    def load_module(self, path: Path) -> Any:
        module_name = "_tally_" + re.sub(r"\W", "_", str(path.resolve()))
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ConfigurationError(f"The file at {path} is not a Python module.")

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            del sys.modules[module_name]
            raise ConfigurationError(f"Failed to load {path}: {e}") from e

        logger.debug(f"Loaded module {module_name} from {path}")
        return module

    @staticmethod
    def _walk(directory: Path) -> list[Path]:
        return sorted(
            p for p in directory.rglob("*.py")
            if p.is_file() and "__pycache__" not in p.parts
        )
