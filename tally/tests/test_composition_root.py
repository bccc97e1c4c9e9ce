"""Integration tests for the composition root.

These tests verify that bootstrap correctly merges configuration,
loads setup, config, and test modules, wires the run controller, and
maps the run result to a process exit status.
"""

import os
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from tally.config import Settings, config_module_overrides, load_settings
from tally.core.exceptions import ConfigurationError
from tally.core.models import HookKind
from tally.main import bootstrap, load_hooks, main, parse_args, register_tests
from tally.tests.fakes import FakeEngine, FakeModuleSource, FakeOutput


def passing_tests(t):
    t.it("passes", lambda: None)


class TestConfigurationLoading:
    """Test configuration loading and validation."""

    def test_load_settings_with_defaults(self) -> None:
        """Load settings with default values."""
        settings = load_settings()
        assert settings.directory == "test"
        assert settings.timeout_ms == 5000
        assert settings.max_errors == -1
        assert settings.max_stack == 5
        assert settings.pattern is None
        assert settings.verbose is False
        assert settings.quiet is False
        assert settings.log_level == "WARNING"

    def test_load_settings_from_env(self) -> None:
        """Load settings from TALLY_* environment variables."""
        with patch.dict(
            os.environ,
            {
                "TALLY_DIRECTORY": "checks",
                "TALLY_TIMEOUT_MS": "250",
                "TALLY_MAX_ERRORS": "3",
                "TALLY_VERBOSE": "true",
                "TALLY_LOG_LEVEL": "DEBUG",
            },
        ):
            settings = load_settings()
            assert settings.directory == "checks"
            assert settings.timeout_ms == 250
            assert settings.max_errors == 3
            assert settings.verbose is True
            assert settings.log_level == "DEBUG"

    @pytest.mark.parametrize(
        "name,value",
        [
            ("TALLY_TIMEOUT_MS", "0"),
            ("TALLY_MAX_ERRORS", "-2"),
            ("TALLY_MAX_STACK", "-1"),
            ("TALLY_LOG_LEVEL", "LOUD"),
        ],
    )
    def test_load_settings_validates(self, name: str, value: str) -> None:
        """Out-of-range values are reported as configuration errors."""
        with patch.dict(os.environ, {name: value}):
            with pytest.raises(ConfigurationError, match="Invalid configuration"):
                load_settings()

    def test_load_settings_from_env_file(self, tmp_path: Path) -> None:
        env_file = tmp_path / "runner.env"
        env_file.write_text("TALLY_MAX_STACK=12\n")
        assert load_settings(str(env_file)).max_stack == 12


class TestOverrides:
    """Test merging of config module and command-line overrides."""

    def test_none_values_are_ignored(self) -> None:
        settings = Settings()
        assert settings.with_overrides({"timeout_ms": None, "pattern": None}) is settings

    def test_overrides_apply_in_order(self) -> None:
        settings = Settings().with_overrides({"timeout_ms": 100}).with_overrides({"timeout_ms": 200})
        assert settings.timeout_ms == 200

    def test_invalid_override(self) -> None:
        with pytest.raises(ConfigurationError):
            Settings().with_overrides({"max_stack": -4})

    def test_to_run_config_unbounded_errors(self) -> None:
        assert Settings().to_run_config().max_errors is None
        assert Settings().with_overrides({"max_errors": 0}).to_run_config().max_errors == 0

    def test_to_run_config_fields(self) -> None:
        run_config = Settings().with_overrides(
            {"timeout_ms": 75, "max_stack": 9, "pattern": "round", "quiet": True}
        ).to_run_config()
        assert run_config.timeout_ms == 75
        assert run_config.max_stack_lines == 9
        assert run_config.pattern == "round"
        assert run_config.quiet is True

    def test_config_module_overrides(self) -> None:
        module = SimpleNamespace(timeout=300, max_errors=2, unrelated="x")
        assert config_module_overrides(module) == {"timeout_ms": 300, "max_errors": 2}


class TestCommandLine:
    """Test command-line parsing."""

    def test_unset_flags_are_none(self) -> None:
        args = parse_args([])
        assert args.path is None
        assert args.timeout_ms is None
        assert args.max_errors is None
        assert args.verbose is None
        assert args.quiet is None

    def test_all_flags(self) -> None:
        args = parse_args(
            [
                "extra_test.py",
                "-d", "checks",
                "-t", "250",
                "--pattern", "round",
                "--maxErrors", "-1",
                "--maxStack", "3",
                "--verbose",
            ]
        )
        assert args.path == "extra_test.py"
        assert args.directory == "checks"
        assert args.timeout_ms == 250
        assert args.pattern == "round"
        assert args.max_errors == -1
        assert args.max_stack == 3
        assert args.verbose is True

    def test_dashed_aliases(self) -> None:
        args = parse_args(["--max-errors", "4", "--max-stack", "2"])
        assert (args.max_errors, args.max_stack) == (4, 2)


class TestModuleLoading:
    """Test hook and test module registration."""

    def test_load_hooks_splits_by_kind(self) -> None:
        source = FakeModuleSource()
        source.add_setup_module(
            "test/tally_setup.py",
            SimpleNamespace(setup=lambda done: done(), teardown=lambda done: done()),
        )
        setup_hooks, teardown_hooks = load_hooks(
            source, tuple(source.setup_files), Path("test")
        )
        assert [h.kind for h in setup_hooks] == [HookKind.SETUP]
        assert [h.kind for h in teardown_hooks] == [HookKind.TEARDOWN]
        assert setup_hooks[0].source == "tally_setup.py"

    def test_setup_file_without_hooks(self) -> None:
        source = FakeModuleSource()
        source.add_setup_module("test/tally_setup.py", SimpleNamespace())
        with pytest.raises(ConfigurationError, match="setup\\(done\\) or teardown\\(done\\)"):
            load_hooks(source, tuple(source.setup_files), Path("test"))

    def test_register_tests_names_by_relative_path(self) -> None:
        source = FakeModuleSource()
        source.add_test_module("test/unit/math_test.py", SimpleNamespace(tests=passing_tests))
        engine = FakeEngine()

        register_tests(source, engine, tuple(source.test_files), Path("test"))

        assert engine.described == [("unit/math_test.py", passing_tests)]

    def test_test_module_without_tests(self) -> None:
        source = FakeModuleSource()
        source.add_test_module("test/empty_test.py", SimpleNamespace(tests="nope"))
        with pytest.raises(ConfigurationError, match="tests\\(t\\)"):
            register_tests(source, FakeEngine(), tuple(source.test_files), Path("test"))


class TestBootstrap:
    """Test end-to-end wiring through bootstrap."""

    @pytest.mark.asyncio
    async def test_bootstrap_with_fakes(self) -> None:
        source = FakeModuleSource()
        source.add_test_module("test/math_test.py", SimpleNamespace(tests=passing_tests))
        engine = FakeEngine()
        engine.add_test("math_test.py", "passes")
        output = FakeOutput()

        exit_code = await bootstrap([], settings=Settings(), source=source, engine=engine, output=output)

        assert exit_code == 0
        assert output.lines[0] == "Test file count: 1"
        assert "1 tests ran. 0 errors reported." in output.text
        assert source.discover_calls == [(Path("test"), None)]

    @pytest.mark.asyncio
    async def test_config_module_applies_below_cli(self) -> None:
        source = FakeModuleSource()
        source.add_config_module("test/tally_config.py", SimpleNamespace(timeout=300, max_stack=2))
        engine = FakeEngine()

        await bootstrap(["-t", "900"], settings=Settings(), source=source, engine=engine, output=FakeOutput())

        run_config = engine.run_configs[0]
        assert run_config.timeout_ms == 900
        assert run_config.max_stack_lines == 2

    @pytest.mark.asyncio
    async def test_quiet_omits_file_count(self) -> None:
        output = FakeOutput()
        await bootstrap(
            ["--quiet"], settings=Settings(), source=FakeModuleSource(), engine=FakeEngine(), output=output
        )
        assert "Test file count" not in output.text

    @pytest.mark.asyncio
    async def test_failing_run_exit_status(self) -> None:
        engine = FakeEngine()
        engine.add_event("error", AssertionError("expected 2 to equal 3"))

        exit_code = await bootstrap(
            [], settings=Settings(), source=FakeModuleSource(), engine=engine, output=FakeOutput()
        )
        assert exit_code == 1

    @pytest.mark.asyncio
    async def test_bootstrap_with_real_files(self, tmp_path: Path) -> None:
        test_dir = tmp_path / "test"
        test_dir.mkdir()
        (test_dir / "tally_config.py").write_text("max_stack = 3\n")
        (test_dir / "tally_setup.py").write_text(
            "started = []\n"
            "\n"
            "def setup(done):\n"
            "    started.append(True)\n"
            "    done()\n"
        )
        (test_dir / "math_test.py").write_text(
            "def tests(t):\n"
            "    def rounding(t):\n"
            "        t.it('rounds up', lambda: None)\n"
            "        t.it('handles NaN')\n"
            "    t.describe('round()', rounding)\n"
        )
        output = FakeOutput()

        exit_code = await bootstrap(["-d", str(test_dir)], settings=Settings(), output=output)

        assert exit_code == 0
        assert "math_test.py round() rounds up" in output.lines
        assert "  pending: math_test.py round() handles NaN" in output.lines
        assert "  setup: tally_setup.py in " in output.text
        assert "1 tests ran. 0 errors reported." in output.text


class TestMain:
    """Test process exit status."""

    def test_main_configuration_error(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["-d", str(tmp_path / "missing")])
        assert exc_info.value.code == 1
        assert "Error: The test directory" in capsys.readouterr().err

    def test_main_passing_run(self, tmp_path: Path) -> None:
        (tmp_path / "ok_test.py").write_text("def tests(t):\n    t.it('ok', lambda: None)\n")
        with pytest.raises(SystemExit) as exc_info:
            main(["-d", str(tmp_path)])
        assert exc_info.value.code == 0

    def test_main_failing_run(self, tmp_path: Path) -> None:
        (tmp_path / "bad_test.py").write_text(
            "def fail():\n"
            "    raise AssertionError('expected 2 to equal 3')\n"
            "\n"
            "def tests(t):\n"
            "    t.it('fails', fail)\n"
        )
        with pytest.raises(SystemExit) as exc_info:
            main(["-d", str(tmp_path)])
        assert exc_info.value.code == 1

    def test_main_interrupted(self) -> None:
        def interrupted(coro):
            coro.close()
            raise KeyboardInterrupt

        with patch("tally.main.asyncio.run", side_effect=interrupted):
            with pytest.raises(SystemExit) as exc_info:
                main([])
        assert exc_info.value.code == 130
