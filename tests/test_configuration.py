"""
Test configuration loading, layering and validation.
"""

import os
from pathlib import Path

import pytest
import yaml

from photoorg.config import (LibraryConfig, default_config_path, load_config, load_output_dir,
                             settings_from_env, validate_config)
from photoorg.constants import DATE_SOURCES, META_DIRNAME
from photoorg.errors import ConfigError


@pytest.fixture
def dirs(tmp_path):
    source = tmp_path / "in"
    source.mkdir()
    return source, tmp_path / "out"


def write_yaml(path: Path, data: dict) -> Path:
    path.write_text(yaml.safe_dump({k: str(v) if isinstance(v, Path) else v for k, v in data.items()}))
    return path


class TestConfigLayering:
    """File settings < PHOTOORG_* environment < command-line overrides."""

    def test_yaml_file(self, tmp_path, dirs):
        source, output = dirs
        config_path = write_yaml(tmp_path / "config.yml", {
            "inputs": [str(source)],
            "output": str(output),
            "extensions": ["JPG", ".heic"],
            "sort_policy": "extension",
            "workers": 3,
        })

        config = load_config(config_path, env={})

        assert config.inputs == (source.resolve(),)
        assert config.output == output.resolve()
        assert config.extensions == frozenset({"jpg", "heic"})
        assert config.sort_policy == "extension"
        assert config.workers == 3
        assert config.meta_root == output.resolve() / META_DIRNAME

    def test_toml_file(self, tmp_path, dirs):
        source, output = dirs
        config_path = tmp_path / "config.toml"
        config_path.write_text(
            f'inputs = ["{source.as_posix()}"]\n'
            f'output = "{output.as_posix()}"\n'
            'date_sources = ["filename", "mtime"]\n'
            'timezone = "Europe/Berlin"\n'
            'recursive = false\n'
        )

        config = load_config(config_path, env={})

        assert config.date_sources == ("filename", "mtime")
        assert config.timezone == "Europe/Berlin"
        assert config.recursive is False

    def test_defaults(self, dirs):
        source, output = dirs

        config = load_config(env={}, overrides={"inputs": [source], "output": output})

        assert config.sort_policy == "date"
        assert config.date_sources == DATE_SOURCES
        assert config.timezone == "UTC"
        assert config.recursive is True
        assert config.checkpoint_interval == 1
        assert config.workers >= 1
        assert "jpg" in config.extensions and "mov" in config.extensions

    def test_env_overrides_file(self, tmp_path, dirs):
        source, output = dirs
        other = tmp_path / "other"
        other.mkdir()
        config_path = write_yaml(tmp_path / "config.yml", {
            "inputs": [str(source)], "output": str(output), "sort_policy": "date",
        })
        env = {
            "PHOTOORG_INPUTS": os.pathsep.join([str(source), str(other)]),
            "PHOTOORG_SORT_POLICY": "checksum",
            "PHOTOORG_DATE_SOURCES": "mtime,filename",
            "PHOTOORG_WORKERS": "2",
        }

        config = load_config(config_path, env=env)

        assert config.inputs == (source.resolve(), other.resolve())
        assert config.sort_policy == "checksum"
        assert config.date_sources == ("mtime", "filename")
        assert config.workers == 2

    def test_overrides_beat_env(self, tmp_path, dirs):
        source, output = dirs
        env = {"PHOTOORG_INPUTS": str(source), "PHOTOORG_OUTPUT": str(output),
               "PHOTOORG_SORT_POLICY": "checksum"}

        config = load_config(env=env, overrides={"sort_policy": "none", "timezone": None})

        assert config.sort_policy == "none"
        assert config.timezone == "UTC"

    def test_config_path_from_env(self, tmp_path, dirs):
        source, output = dirs
        config_path = write_yaml(tmp_path / "custom.yml", {"inputs": [str(source)], "output": str(output)})

        config = load_config(env={"PHOTOORG_CONFIG": str(config_path)})

        assert config.output == output.resolve()

    def test_default_config_path_is_optional(self, monkeypatch, tmp_path, dirs):
        source, output = dirs
        monkeypatch.setenv("HOME", str(tmp_path / "home"))

        assert not default_config_path().exists()
        config = load_config(env={}, overrides={"inputs": [source], "output": output})
        assert isinstance(config, LibraryConfig)

    def test_po_toml_in_working_directory(self, monkeypatch, tmp_path, dirs):
        source, output = dirs
        monkeypatch.chdir(tmp_path)
        (tmp_path / "po.toml").write_text(
            f'inputs = ["{source.as_posix()}"]\n'
            f'output = "{output.as_posix()}"\n'
            'sort_policy = "checksum"\n'
        )

        config = load_config(env={})

        assert default_config_path() == tmp_path / "po.toml"
        assert config.sort_policy == "checksum"
        assert config.output == output.resolve()

    def test_explicit_config_beats_po_toml(self, monkeypatch, tmp_path, dirs):
        source, output = dirs
        monkeypatch.chdir(tmp_path)
        (tmp_path / "po.toml").write_text('sort_policy = "checksum"\n')
        config_path = write_yaml(tmp_path / "config.yml", {
            "inputs": [str(source)], "output": str(output), "sort_policy": "extension",
        })

        config = load_config(config_path, env={})

        assert config.sort_policy == "extension"

    def test_explicit_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "missing.yml", env={})

    def test_invalid_yaml(self, tmp_path):
        config_path = tmp_path / "config.yml"
        config_path.write_text("inputs: [unclosed\n")

        with pytest.raises(ConfigError, match="Could not load config"):
            load_config(config_path, env={})

    def test_non_mapping_file(self, tmp_path):
        config_path = tmp_path / "config.yml"
        config_path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigError, match="mapping"):
            load_config(config_path, env={})

    def test_settings_from_env_ignores_unrelated(self):
        assert settings_from_env({"HOME": "/root", "PHOTOORG_OUTPUT": ""}) == {}


class TestLoadOutputDir:

    def test_override(self, tmp_path):
        assert load_output_dir(env={}, override=str(tmp_path / "lib")) == (tmp_path / "lib").resolve()

    def test_from_env_without_inputs(self, tmp_path):
        env = {"PHOTOORG_OUTPUT": str(tmp_path / "lib")}

        assert load_output_dir(env=env) == (tmp_path / "lib").resolve()

    def test_missing(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))

        with pytest.raises(ConfigError, match="output directory is required"):
            load_output_dir(env={})


class TestValidation:
    """Invalid settings are rejected before any filesystem change."""

    def base(self, dirs, **extra):
        source, output = dirs
        settings = {"inputs": [str(source)], "output": str(output)}
        settings.update(extra)
        return settings

    def test_single_input_string(self, dirs):
        source, output = dirs

        config = validate_config({"inputs": str(source), "output": str(output)})

        assert config.inputs == (source.resolve(),)

    @pytest.mark.parametrize("settings, message", [
        ({}, "input directory is required"),
        ({"inputs": []}, "input directory is required"),
    ])
    def test_missing_inputs(self, settings, message):
        with pytest.raises(ConfigError, match=message):
            validate_config(settings)

    def test_missing_output(self, dirs):
        with pytest.raises(ConfigError, match="output directory is required"):
            validate_config({"inputs": [str(dirs[0])]})

    def test_unknown_key(self, dirs):
        with pytest.raises(ConfigError, match="Unknown config key"):
            validate_config(self.base(dirs, colour="blue"))

    def test_input_equals_output(self, dirs):
        source, _ = dirs

        with pytest.raises(ConfigError, match="identical"):
            validate_config({"inputs": [str(source)], "output": str(source)})

    def test_output_inside_input_is_allowed(self, dirs):
        source, _ = dirs

        config = validate_config({"inputs": [str(source)], "output": str(source / "library")})

        assert config.output == source.resolve() / "library"

    def test_input_inside_metadata_subtree(self, dirs):
        _, output = dirs

        with pytest.raises(ConfigError, match="metadata directory"):
            validate_config({"inputs": [str(output / META_DIRNAME / "logs")], "output": str(output)})

    @pytest.mark.parametrize("extra, message", [
        ({"extensions": []}, "extension"),
        ({"extensions": ["", "."]}, "extension"),
        ({"extensions": [1, 2]}, "list of strings"),
        ({"sort_policy": "by-colour"}, "Unknown sort policy"),
        ({"date_sources": ["gps"]}, "Invalid date_sources"),
        ({"timezone": "Mars/Olympus_Mons"}, "Unknown timezone"),
        ({"recursive": "yes"}, "recursive"),
        ({"workers": 0}, "workers"),
        ({"workers": "many"}, "workers"),
        ({"checkpoint_interval": -5}, "checkpoint_interval"),
    ])
    def test_invalid_values(self, dirs, extra, message):
        with pytest.raises(ConfigError, match=message):
            validate_config(self.base(dirs, **extra))

    def test_date_sources_deduplicated_in_order(self, dirs):
        config = validate_config(self.base(dirs, date_sources=["Filename", "mtime", "filename"]))

        assert config.date_sources == ("filename", "mtime")

    def test_extensions_from_comma_string(self, dirs):
        config = validate_config(self.base(dirs, extensions="jpg, .MOV"))

        assert config.extensions == frozenset({"jpg", "mov"})
