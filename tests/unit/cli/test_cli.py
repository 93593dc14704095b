"""Tests for the kikai command line."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from kikai.build.orchestrator import BuildResult
from kikai.cli import BuildArgs, main, parse_args

MANIFEST = """\
install-root: out
toolchain:
  api: 21
  stl: libc++
  platforms: [arm64]
modules:
  zlib:
    sources: []
    build:
      type: simple
      steps:
        - name: build
          run: "true"
"""


class TestParseArgs:
    def test_defaults(self):
        args = parse_args([])
        assert args.modules == []
        assert args.manifest is None
        assert args.show_progress is True
        assert args.verbose is False
        assert args.project_dir == Path.cwd()

    def test_all_options(self, tmp_path):
        args = parse_args(
            ["zlib", "libpng", "--manifest", "other.yml", "-C", str(tmp_path), "--no-progress", "-v"]
        )
        assert args.modules == ["zlib", "libpng"]
        assert args.manifest == Path("other.yml")
        assert args.project_dir == tmp_path
        assert args.show_progress is False
        assert args.verbose is True

    def test_manifest_path_defaults_to_project_dir(self, tmp_path):
        assert BuildArgs(project_dir=tmp_path).manifest_path == tmp_path / "kikai.yml"
        assert BuildArgs(project_dir=tmp_path, manifest=Path("x.yml")).manifest_path == Path("x.yml")

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            parse_args(["--version"])
        assert exc_info.value.code == 0
        assert "kikai 0.1.0" in capsys.readouterr().out


class TestBuildCommand:
    """Tests for exit codes and output of a build invocation."""

    @pytest.fixture
    def project_dir(self, tmp_path):
        (tmp_path / "kikai.yml").write_text(MANIFEST)
        return tmp_path

    @pytest.fixture
    def mock_orchestrator(self):
        with patch("kikai.cli.BuildOrchestrator") as mock_class:
            instance = MagicMock()
            mock_class.return_value = instance
            yield instance

    def test_success(self, project_dir, mock_orchestrator, capsys):
        mock_orchestrator.build.return_value = BuildResult(
            success=True, modules=["zlib"], build_time=1.5, message="Built 1 module(s)"
        )

        with pytest.raises(SystemExit) as exc_info:
            main(["zlib", "-C", str(project_dir)])

        assert exc_info.value.code == 0
        mock_orchestrator.build.assert_called_once_with(["zlib"])
        out = capsys.readouterr().out
        assert "Build successful!" in out
        assert "Modules: zlib" in out

    def test_stage_failure(self, project_dir, mock_orchestrator, capsys):
        mock_orchestrator.build.return_value = BuildResult(
            success=False, modules=[], build_time=0.1, message="make failed with exit code 2", stage="build"
        )

        with pytest.raises(SystemExit) as exc_info:
            main(["-C", str(project_dir)])

        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "build failed" in err
        assert "make failed with exit code 2" in err

    def test_manifest_error(self, tmp_path, capsys):
        (tmp_path / "kikai.yml").write_text("modules: {}\n")

        with pytest.raises(SystemExit) as exc_info:
            main(["-C", str(tmp_path)])

        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "manifest failed" in err
        assert "install-root is missing." in err

    def test_missing_manifest(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["-C", str(tmp_path)])

        assert exc_info.value.code == 1
        assert "Failed to read" in capsys.readouterr().err

    def test_invalid_project_dir(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(["-C", str(tmp_path / "missing")])
        assert exc_info.value.code == 2

    def test_keyboard_interrupt(self, project_dir, mock_orchestrator):
        mock_orchestrator.build.side_effect = KeyboardInterrupt()

        with pytest.raises(SystemExit) as exc_info:
            main(["-C", str(project_dir)])

        assert exc_info.value.code == 130

    def test_unexpected_error(self, project_dir, mock_orchestrator, capsys):
        mock_orchestrator.build.side_effect = RuntimeError("boom")

        with pytest.raises(SystemExit) as exc_info:
            main(["-C", str(project_dir)])

        assert exc_info.value.code == 1
        assert "RuntimeError: boom" in capsys.readouterr().err

    def test_options_reach_orchestrator(self, project_dir):
        with patch("kikai.cli.BuildOrchestrator") as mock_class:
            mock_class.return_value.build.return_value = BuildResult(
                success=True, modules=[], build_time=0.0, message=""
            )
            with pytest.raises(SystemExit):
                main(["-C", str(project_dir), "--no-progress", "-v"])

        kwargs = mock_class.call_args.kwargs
        assert kwargs["project_dir"] == project_dir
        assert kwargs["show_progress"] is False
        assert kwargs["verbose"] is True
        manifest = mock_class.call_args.args[0]
        assert manifest.install_root == project_dir.resolve() / "out"
