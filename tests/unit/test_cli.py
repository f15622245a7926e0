"""CLI tests for cropbatch.

Verifies command wiring, option parsing and exit codes. Processing rules
themselves are covered by the library tests.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

from PIL import Image
from typer.testing import CliRunner

from cropbatch import __version__
from cropbatch.cli.main import app

runner = CliRunner()
ENV = {"NO_COLOR": "1", "TERM": "dumb"}


def test_help_shown_without_subcommand() -> None:
    result = runner.invoke(app, [], env=ENV)
    assert result.exit_code == 0
    assert "process" in result.stdout.lower()


def test_version_command_outputs_version() -> None:
    result = runner.invoke(app, ["version"], env=ENV)
    assert result.exit_code == 0
    assert result.stdout.strip() == f"cropbatch {__version__}"


def test_version_json() -> None:
    result = runner.invoke(app, ["version", "--json"], env=ENV)
    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"version": __version__}


def test_process_help_shows_options() -> None:
    result = runner.invoke(app, ["process", "--help"], env=ENV)
    assert result.exit_code == 0
    assert "--on-conflict" in result.stdout


class TestProcessCommand:
    """Tests for the process command."""

    def test_crops_and_writes_next_to_source(
        self, make_image_files: Callable[..., list[Path]]
    ) -> None:
        """Test a basic crop writes suffixed outputs."""
        paths = make_image_files(2)
        result = runner.invoke(app, ["process", *map(str, paths), "-t", "2", "-l", "4"], env=ENV)

        assert result.exit_code == 0, result.output
        assert "Processed 2/2 images (completed)" in result.stdout
        output = paths[0].with_name("img00_cropped.png")
        with Image.open(output) as img:
            assert img.size == (36, 18)

    def test_json_output(
        self, make_image_files: Callable[..., list[Path]], tmp_path: Path
    ) -> None:
        """Test --json prints the batch result."""
        paths = make_image_files(2)
        out_dir = tmp_path / "out"
        result = runner.invoke(
            app,
            ["process", *map(str, paths), "-o", str(out_dir), "--json"],
            env=ENV,
        )

        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["completed"] == 2
        assert payload["outcome"] == "completed"
        assert sorted(p.name for p in out_dir.iterdir()) == [
            "img00_cropped.png",
            "img01_cropped.png",
        ]

    def test_rotate_format_and_template(
        self, make_image_files: Callable[..., list[Path]], tmp_path: Path
    ) -> None:
        """Test rotation, JPEG export and template naming together."""
        paths = make_image_files(1)
        out_dir = tmp_path / "out"
        result = runner.invoke(
            app,
            [
                "process",
                str(paths[0]),
                "--rotate",
                "90",
                "-f",
                "jpeg",
                "-q",
                "80",
                "--template",
                "{name}-{counter}",
                "-o",
                str(out_dir),
            ],
            env=ENV,
        )

        assert result.exit_code == 0, result.output
        with Image.open(out_dir / "img00-1.jpg") as img:
            assert img.format == "JPEG"
            assert img.size == (20, 40)

    def test_fill_region(
        self, make_image_files: Callable[..., list[Path]], tmp_path: Path
    ) -> None:
        """Test a solid fill region from the command line."""
        paths = make_image_files(1)
        result = runner.invoke(
            app,
            [
                "process",
                str(paths[0]),
                "--fill",
                "0,0,1,1",
                "--fill-color",
                "0,0,255",
                "-s",
                "_redacted",
            ],
            env=ENV,
        )

        assert result.exit_code == 0, result.output
        with Image.open(paths[0].with_name("img00_redacted.png")) as img:
            assert img.getcolors() == [(800, (0, 0, 255))]

    def test_text_overlay(self, make_image_files: Callable[..., list[Path]]) -> None:
        """Test a text overlay with template variables runs."""
        paths = make_image_files(1, size=(200, 100))
        result = runner.invoke(
            app,
            ["process", str(paths[0]), "--text", "{filename} {index}/{count}", "--opacity", "1"],
            env=ENV,
        )
        assert result.exit_code == 0, result.output

    def test_invalid_rotation_is_usage_error(
        self, make_image_files: Callable[..., list[Path]]
    ) -> None:
        """Test a rotation that is not a multiple of 90 is rejected."""
        paths = make_image_files(1)
        result = runner.invoke(app, ["process", str(paths[0]), "--rotate", "45"], env=ENV)
        assert result.exit_code == 2

    def test_malformed_region_is_usage_error(
        self, make_image_files: Callable[..., list[Path]]
    ) -> None:
        """Test region values must be x,y,w,h."""
        paths = make_image_files(1)
        result = runner.invoke(app, ["process", str(paths[0]), "--soften", "0,0,1"], env=ENV)
        assert result.exit_code == 2

    def test_unknown_template_token_is_usage_error(
        self, make_image_files: Callable[..., list[Path]]
    ) -> None:
        """Test template tokens are validated before processing."""
        paths = make_image_files(1)
        result = runner.invoke(
            app, ["process", str(paths[0]), "--template", "{colour}"], env=ENV
        )
        assert result.exit_code == 2

    def test_collision_fails_without_writing(
        self, make_image_files: Callable[..., list[Path]], tmp_path: Path
    ) -> None:
        """Test a naming collision exits 1 and writes nothing."""
        paths = make_image_files(2)
        out_dir = tmp_path / "out"
        result = runner.invoke(
            app,
            ["process", *map(str, paths), "--template", "same", "-o", str(out_dir)],
            env=ENV,
        )
        assert result.exit_code == 1
        assert "Error:" in result.output
        assert list(out_dir.iterdir()) == []

    def test_failed_items_exit_nonzero(
        self, make_image_files: Callable[..., list[Path]]
    ) -> None:
        """Test a crop that leaves no pixels reports failures and exits 1."""
        paths = make_image_files(1)
        result = runner.invoke(
            app, ["process", str(paths[0]), "-l", "20", "-r", "20"], env=ENV
        )
        assert result.exit_code == 1
        assert "FAILED" in result.output
        assert not paths[0].with_name("img00_cropped.png").exists()

    def test_detect_ui_crops_shared_bar(self, tmp_path: Path) -> None:
        """Test --detect-ui replaces the top inset with a common menu bar."""
        paths = []
        for index in range(2):
            image = Image.linear_gradient("L").convert("RGB")
            image.paste((0, 0, 0), (0, 0, 256, 24))
            path = tmp_path / f"shot{index}.png"
            image.save(path)
            paths.append(path)

        out_dir = tmp_path / "out"
        result = runner.invoke(
            app,
            ["process", *map(str, paths), "--detect-ui", "-l", "3", "-o", str(out_dir)],
            env=ENV,
        )

        assert result.exit_code == 0, result.output
        with Image.open(out_dir / "shot0_cropped.png") as img:
            assert img.size == (253, 232)
