"""
Tests for RunConfig, the option defaults loader and console logging.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from oncebuild.config import (
    DEFAULT_REBUILD_EXCLUDES,
    ENV_ARTIFACT,
    ENV_CONFIG,
    ENV_SOURCE_DIR,
    RunConfig,
    load_option_defaults,
)
from oncebuild.core.utils import Logger, Verbosity, format_table
from oncebuild.errors import ConfigurationError


# =============================================================================
# RunConfig
# =============================================================================


@pytest.mark.evergreen
class TestRunConfig:
    def test_defaults(self) -> None:
        config = RunConfig()
        assert config.verbosity is Verbosity.NORMAL
        assert config.no_color is False
        assert config.program == "build"
        assert config.rebuild_excludes == DEFAULT_REBUILD_EXCLUDES
        assert not config.checks_staleness

    def test_from_environment(self, tmp_path: Path) -> None:
        env = {
            ENV_ARTIFACT: str(tmp_path / "build.pyz"),
            ENV_SOURCE_DIR: str(tmp_path),
            ENV_CONFIG: str(tmp_path / "ci.yaml"),
            "NO_COLOR": "",
        }
        config = RunConfig.from_environment(env)
        assert config.artifact == tmp_path / "build.pyz"
        assert config.source_dir == tmp_path
        assert config.defaults_file == tmp_path / "ci.yaml"
        assert config.no_color
        assert config.checks_staleness

    def test_overrides_win_and_none_is_ignored(self, tmp_path: Path) -> None:
        env = {ENV_ARTIFACT: "from-env.pyz"}
        config = RunConfig.from_environment(env, artifact=tmp_path / "x.pyz", source_dir=None)
        assert config.artifact == tmp_path / "x.pyz"
        assert config.source_dir is None

    def test_implicit_defaults_file(self, tmp_path: Path) -> None:
        config = RunConfig(working_dir=tmp_path)
        assert config.find_defaults_file() is None
        (tmp_path / "oncebuild.yaml").write_text("jobs: 2\n", encoding="utf-8")
        assert config.find_defaults_file() == tmp_path / "oncebuild.yaml"

    def test_explicit_defaults_file_must_exist(self, tmp_path: Path) -> None:
        config = RunConfig(defaults_file=tmp_path / "missing.yaml")
        with pytest.raises(ConfigurationError, match="not found"):
            config.find_defaults_file()


# =============================================================================
# Option Defaults Loader
# =============================================================================


@pytest.mark.evergreen
class TestLoadOptionDefaults:
    def test_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "d.yaml"
        path.write_text("configuration: Debug\nclean: true\njobs: 4\n", encoding="utf-8")
        assert load_option_defaults(path) == {"configuration": "Debug", "clean": True, "jobs": 4}

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "d.yaml"
        path.write_text("", encoding="utf-8")
        assert load_option_defaults(path) == {}

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "d.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_option_defaults(path)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "d.yaml"
        path.write_text("a: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="invalid YAML"):
            load_option_defaults(path)

    def test_cached(self, tmp_path: Path) -> None:
        path = tmp_path / "d.yaml"
        path.write_text("jobs: 1\n", encoding="utf-8")
        assert load_option_defaults(path) is load_option_defaults(path)


# =============================================================================
# Console Logging
# =============================================================================


@pytest.mark.evergreen
class TestLogger:
    """Output volume follows the verbosity threshold; errors always print."""

    @pytest.mark.parametrize(
        "verbosity,expected",
        [
            (Verbosity.QUIET, ["error"]),
            (Verbosity.MINIMAL, ["success", "warning", "error"]),
            (Verbosity.NORMAL, ["info", "success", "warning", "error"]),
            (Verbosity.DETAILED, ["info", "success", "warning", "error", "dim"]),
        ],
    )
    def test_threshold(
        self,
        verbosity: Verbosity,
        expected: list[str],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        logger = Logger(use_color=False, verbosity=verbosity)
        logger.info("info")
        logger.success("success")
        logger.warning("warning")
        logger.error("error")
        logger.dim("dim")
        printed = [line.split()[-1] for line in capsys.readouterr().out.splitlines()]
        assert printed == expected

    def test_no_color(self, capsys: pytest.CaptureFixture[str]) -> None:
        Logger(use_color=False).error("plain")
        assert "\033[" not in capsys.readouterr().out

    def test_color(self, capsys: pytest.CaptureFixture[str]) -> None:
        Logger(use_color=True).success("done")
        assert "\033[92m" in capsys.readouterr().out

    def test_configured_restores(self) -> None:
        logger = Logger(use_color=False)
        with logger.configured(Verbosity.QUIET, use_color=True):
            assert not logger.enabled(Verbosity.MINIMAL)
        assert logger.verbosity is Verbosity.NORMAL

    def test_format_table(self) -> None:
        table = format_table([("compile", "Compile the sources"), ("code-coverage", "")])
        assert table.splitlines() == [
            "  compile       Compile the sources",
            "  code-coverage",
        ]
