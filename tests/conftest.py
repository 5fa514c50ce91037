"""
pytest configuration and fixtures for photoorg tests.
"""

import io
import os
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List

import pytest

from photoorg.config import LibraryConfig


@dataclass
class CliResult:
    """Result from running CLI command."""
    exit_code: int
    output: str
    error: str


def set_mtime(path: Path, when: datetime) -> None:
    """Set a file's access and modification times."""
    stamp = when.timestamp()
    os.utime(path, (stamp, stamp))


@pytest.fixture(autouse=True)
def no_external_tools(monkeypatch):
    """Run without exiftool/ffprobe/sips so sort dates come from names and mtimes."""
    monkeypatch.setattr("photoorg.timestamps.exiftool_available", lambda: False)
    monkeypatch.setattr("photoorg.timestamps.ffprobe_available", lambda: False)
    monkeypatch.setattr("photoorg.timestamps.sips_available", lambda: False)


@pytest.fixture
def library_dirs(tmp_path):
    """Fresh input and output directories."""
    inputs = tmp_path / "in"
    output = tmp_path / "out"
    inputs.mkdir()
    return inputs, output


@pytest.fixture
def make_config(library_dirs):
    """Build a LibraryConfig over the fixture directories."""
    inputs, output = library_dirs

    def build(**kwargs) -> LibraryConfig:
        values = dict(
            inputs=(inputs,),
            output=output,
            extensions=frozenset({"jpg"}),
            date_sources=("filename", "mtime"),
            workers=1,
        )
        values.update(kwargs)
        return LibraryConfig(**values)

    return build


@pytest.fixture
def create_test_files(library_dirs):
    """Helper to create test files with specific properties."""

    def create_files(file_specs: List[dict], base: Path = None) -> Path:
        """Create test files based on specifications.

        Args:
            file_specs: List of dicts with keys:
                - name: filename, may include subdirectories
                - content: file content (optional)
                - mtime: modification time as datetime (optional)
            base: Directory to create files in (default: the input directory)

        Returns:
            Path to directory containing created files
        """
        test_dir = base or library_dirs[0]
        test_dir.mkdir(parents=True, exist_ok=True)

        for spec in file_specs:
            file_path = test_dir / spec['name']
            file_path.parent.mkdir(parents=True, exist_ok=True)

            content = spec.get('content', b'test file content')
            if isinstance(content, str):
                file_path.write_text(content)
            else:
                file_path.write_bytes(content)

            if 'mtime' in spec:
                set_mtime(file_path, spec['mtime'])

        return test_dir

    return create_files


@pytest.fixture
def assert_file_structure():
    """Helper to assert expected file structure."""

    def check_structure(base_path: Path, expected_structure: dict):
        """Assert that directory has expected structure.

        Args:
            base_path: Root directory to check
            expected_structure: Dict describing expected structure
                e.g., {
                    "2024": {
                        "01": ["file1.jpg", "file2.jpg"],
                        "02": ["file3.jpg"]
                    }
                }
        """
        def check_level(path: Path, structure: dict):
            for name, value in structure.items():
                item_path = path / name
                assert item_path.exists(), f"Expected {item_path} to exist"

                if isinstance(value, dict):
                    assert item_path.is_dir(), f"Expected {item_path} to be a directory"
                    check_level(item_path, value)
                elif isinstance(value, list):
                    assert item_path.is_dir(), f"Expected {item_path} to be a directory"
                    actual_files = sorted([f.name for f in item_path.iterdir() if f.is_file()])
                    expected_files = sorted(value)
                    assert actual_files == expected_files, \
                        f"Expected files {expected_files} in {item_path}, got {actual_files}"

        check_level(base_path, expected_structure)

    return check_structure


@pytest.fixture
def cli_runner(monkeypatch, tmp_path):
    """Create a CLI runner that captures output and isolates config lookup."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for var in list(os.environ):
        if var.startswith("PHOTOORG_"):
            monkeypatch.delenv(var)

    def run_cli(*args):
        """Run photoorg CLI with given arguments.

        Returns:
            CliResult with exit_code, output, and error
        """
        from photoorg.cli import main

        old_stdout = sys.stdout
        old_stderr = sys.stderr
        stdout = io.StringIO()
        stderr = io.StringIO()

        try:
            sys.stdout = stdout
            sys.stderr = stderr
            exit_code = main([str(a) for a in args])
            return CliResult(
                exit_code=exit_code,
                output=stdout.getvalue(),
                error=stderr.getvalue()
            )
        except SystemExit as e:
            return CliResult(
                exit_code=e.code if e.code is not None else 0,
                output=stdout.getvalue(),
                error=stderr.getvalue()
            )
        finally:
            sys.stdout = old_stdout
            sys.stderr = old_stderr

    return run_cli
