"""Composition root for the Tally test runner.

This module is the ONLY location that imports both core orchestration
logic and concrete adapter implementations. All wiring of dependencies
happens here, creating a clear entry point for the application.

Module Structure:
- Command-line parsing
- Configuration loading and override merging
- Module discovery and loading
- Core service initialization
- Exit status selection
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

from tally.adapters.discovery.filesystem import FileSystemModuleSource
from tally.adapters.engine.block_engine import BlockEngine
from tally.adapters.output.console import RichConsoleOutput
from tally.config import Settings, config_module_overrides, load_settings
from tally.core.controller import RunController
from tally.core.exceptions import ConfigurationError
from tally.core.hooks import hooks_from_module
from tally.core.models import HookDescriptor, HookKind
from tally.core.ports import EnginePort, ModuleSourcePort, OutputPort
from tally.core.reporter import Reporter


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Flags left unset are None so they do not override environment or
    config module values.
    """
    parser = argparse.ArgumentParser(
        prog="tally",
        description="Run describe/before/after/it test modules and report the results.",
    )
    parser.add_argument(
        "path",
        nargs="?",
        help="Extra test file or directory to run",
    )
    parser.add_argument(
        "-d", "--directory",
        help="The name of your test directory (default: test)",
    )
    parser.add_argument(
        "-t", "--timeout",
        type=int,
        dest="timeout_ms",
        help="The time limit in ms for each hook, before(), after(), and it() block",
    )
    parser.add_argument(
        "--pattern",
        help="Only run tests whose full name matches this regular expression",
    )
    parser.add_argument(
        "--maxErrors", "--max-errors",
        type=int,
        dest="max_errors",
        help='The maximum errors allowed before exiting; "-1" means unbounded',
    )
    parser.add_argument(
        "--maxStack", "--max-stack",
        type=int,
        dest="max_stack",
        help="The maximum number of lines in stack traces",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=None,
        help="Report before() and after() durations",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        default=None,
        help="Suppress block headers and setup, teardown, and pending sections",
    )
    return parser.parse_args(argv)


def configure_logging(log_level: str, log_format: str) -> None:
    """Configure application logging.

    Logs go to stderr alongside the report; keep the level at WARNING
    unless debugging the runner itself.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Log format (json, text).
    """
    level = getattr(logging, log_level, logging.WARNING)

    if log_format == "json":
        format_str = '{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}'
    else:
        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.StreamHandler(sys.stderr),
        ],
    )


def _relative_name(path: Path, directory: Path) -> str:
    try:
        return str(path.resolve().relative_to(directory.resolve()))
    except ValueError:
        return str(path)


def _cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "directory": args.directory,
        "timeout_ms": args.timeout_ms,
        "pattern": args.pattern,
        "max_errors": args.max_errors,
        "max_stack": args.max_stack,
        "verbose": args.verbose,
        "quiet": args.quiet,
    }


def load_hooks(
    source: ModuleSourcePort, setup_files: tuple[Path, ...], directory: Path
) -> tuple[list[HookDescriptor], list[HookDescriptor]]:
    """Load setup and teardown hooks in discovery order.

    Raises:
        ConfigurationError: If a setup file defines neither hook.
    """
    setup_hooks: list[HookDescriptor] = []
    teardown_hooks: list[HookDescriptor] = []
    for path in setup_files:
        name = _relative_name(path, directory)
        descriptors = hooks_from_module(source.load_module(path), name)
        if not descriptors:
            raise ConfigurationError(
                f"The setup file at {path} must define a setup(done) or teardown(done) function."
            )
        for descriptor in descriptors:
            if descriptor.kind is HookKind.SETUP:
                setup_hooks.append(descriptor)
            else:
                teardown_hooks.append(descriptor)
    return setup_hooks, teardown_hooks


def register_tests(
    source: ModuleSourcePort,
    engine: EnginePort,
    test_files: tuple[Path, ...],
    directory: Path,
) -> None:
    """Register each test module's tests(t) function with the engine.

    Raises:
        ConfigurationError: If a test module has no callable tests.
    """
    for path in test_files:
        configurator = getattr(source.load_module(path), "tests", None)
        if not callable(configurator):
            raise ConfigurationError(
                f"The test file at {path} must define a tests(t) function."
            )
        engine.describe(_relative_name(path, directory), configurator)


async def bootstrap(
    argv: list[str] | None = None,
    settings: Settings | None = None,
    source: ModuleSourcePort | None = None,
    engine: EnginePort | None = None,
    output: OutputPort | None = None,
) -> int:
    """Load configuration, wire adapters, run the tests.

    This is the composition root: the single place where all components
    are instantiated and wired together.

    Steps:
    1. Parse the command line and load configuration
    2. Configure logging
    3. Discover and load config, setup, and test modules
    4. Initialize the reporter and run controller
    5. Run and return the exit status

    Returns:
        Process exit status: 0 if everything passed, 1 otherwise.

    Raises:
        ConfigurationError: On invalid options or malformed modules.
    """
    # Step 1: Command line and configuration
    args = parse_args(argv)
    cli_overrides = _cli_overrides(args)
    base_settings = settings or load_settings()
    settings = base_settings.with_overrides(cli_overrides)

    # Step 2: Logging
    configure_logging(settings.log_level, settings.log_format)
    logger = logging.getLogger(__name__)
    logger.info("Initializing tally runner")

    # Step 3: Modules
    source = source or FileSystemModuleSource()
    engine = engine or BlockEngine()
    output = output or RichConsoleOutput()

    directory = Path(settings.directory)
    explicit = Path(args.path) if args.path else None
    discovery = source.discover(directory, explicit)

    config_overrides: dict[str, Any] = {}
    for path in discovery.config_files:
        config_overrides.update(config_module_overrides(source.load_module(path)))
    settings = base_settings.with_overrides(config_overrides).with_overrides(cli_overrides)
    run_config = settings.to_run_config()

    setup_hooks, teardown_hooks = load_hooks(source, discovery.setup_files, directory)
    register_tests(source, engine, discovery.test_files, directory)

    if not run_config.quiet:
        output.write_line(f"Test file count: {len(discovery.test_files)}")

    # Step 4: Core services
    reporter = Reporter(output, run_config)
    controller = RunController(
        config=run_config,
        engine=engine,
        reporter=reporter,
        setup_hooks=setup_hooks,
        teardown_hooks=teardown_hooks,
    )

    # Step 5: Run
    result = await controller.run()
    logger.info(
        f"Run finished in {result.final_state.value} state with exit code {result.exit_code}"
    )
    return result.exit_code


def main(argv: list[str] | None = None) -> None:
    """Application entry point.

    Exit codes:
        0: All tests passed
        1: Test failures, hook failure, bail-out, or configuration error
        130: Interrupted by user (SIGINT/KeyboardInterrupt)
    """
    logger = logging.getLogger(__name__)
    try:
        exit_code = asyncio.run(bootstrap(argv))
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.warning("Test run interrupted by user (SIGINT)")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
