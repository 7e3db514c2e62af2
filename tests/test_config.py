"""
Tests for configuration management.
"""

import io
import json
from pathlib import Path

import pytest


class FakeStream(io.StringIO):
    def __init__(self, tty: bool):
        super().__init__()
        self.tty = tty

    def isatty(self) -> bool:
        return self.tty


class TestConfigDefaults:
    """Tests for Config defaults and helpers."""

    def test_default_values(self, default_config):
        """Test Config has sensible defaults."""
        assert default_config.ffmpeg == "ffmpeg"
        assert default_config.suffix == "_compressed"
        assert default_config.halt is True
        assert default_config.trash is True
        assert default_config.overwrite is False
        assert default_config.timeout == 0.0

    def test_for_library(self):
        """Library configs are quiet."""
        from ffmpeg_simple.config import Config

        cfg = Config.for_library(overwrite=True)

        assert cfg.progress is False
        assert cfg.silent is True
        assert cfg.overwrite is True

    def test_job_defaults(self):
        """Policy values become job option defaults."""
        from ffmpeg_simple.config import Config

        cfg = Config(skip=True, suffix="_small", log_file="/tmp/x.log")
        values = cfg.job_defaults()

        assert values["skip"] is True
        assert values["suffix"] == "_small"
        assert values["log_file"] == "/tmp/x.log"

    def test_job_defaults_with_preset(self):
        """A preset is applied on top of the policy defaults."""
        from ffmpeg_simple.config import Config

        cfg = Config(presets={"small": {"codec": "libx264", "crf": 28, "suffix": "_s"}})
        values = cfg.job_defaults("small")

        assert values["codec"] == "libx264"
        assert values["suffix"] == "_s"

    def test_unknown_preset(self, default_config):
        """Unknown presets raise KeyError."""
        with pytest.raises(KeyError, match="Unknown preset"):
            default_config.job_defaults("nope")


class TestScriptMode:
    """Tests for script mode detection."""

    def test_no_color_env(self, monkeypatch):
        """NO_COLOR forces script mode."""
        from ffmpeg_simple import config

        monkeypatch.setattr(config.sys, "stdout", FakeStream(tty=True))
        monkeypatch.setenv("NO_COLOR", "1")

        assert config.is_script_mode()

    def test_pipe_is_script_mode(self, monkeypatch):
        """A non-TTY stdout is script mode."""
        from ffmpeg_simple import config

        monkeypatch.setattr(config.sys, "stdout", FakeStream(tty=False))

        assert config.is_script_mode()

    def test_apply_script_mode(self, monkeypatch):
        """Script mode disables the progress display."""
        from ffmpeg_simple import config

        monkeypatch.setattr(config, "is_script_mode", lambda: True)
        cfg = config.Config()
        cfg.apply_script_mode()

        assert cfg.progress is False


class TestConfigFiles:
    """Tests for config file loading."""

    def test_xdg_config_dir(self, mock_xdg_dirs, temp_dir):
        """Config lives under XDG_CONFIG_HOME."""
        from ffmpeg_simple.config import get_config_dir

        assert get_config_dir() == temp_dir / "xdg-config" / "ffmpeg-simple"

    def test_load_toml(self, temp_config_dir):
        """TOML files are read with tomllib."""
        from ffmpeg_simple.config import load_config_file

        (temp_config_dir / "config.toml").write_text('[output]\nsuffix = "_t"\n\n[presets.fast]\ncrf = 30\n')

        data = load_config_file(temp_config_dir, system_dir=Path("/nonexistent"))

        assert data["output"]["suffix"] == "_t"
        assert data["presets"]["fast"]["crf"] == 30

    def test_load_ini(self, temp_config_dir):
        """INI values are typed and dotted sections nest."""
        from ffmpeg_simple.config import load_config_file

        (temp_config_dir / "config.ini").write_text(
            "[policy]\noverwrite = yes\n\n[tools]\ntimeout = 2.5\n\n[presets.fast]\ncodec = libx264\ncrf = 30\n"
        )

        data = load_config_file(temp_config_dir, system_dir=Path("/nonexistent"))

        assert data["policy"]["overwrite"] is True
        assert data["tools"]["timeout"] == 2.5
        assert data["presets"]["fast"] == {"codec": "libx264", "crf": 30}

    def test_load_json(self, temp_config_dir):
        """JSON files are accepted too."""
        from ffmpeg_simple.config import load_config_file

        (temp_config_dir / "config.json").write_text(json.dumps({"ui": {"verbose": True}}))

        data = load_config_file(temp_config_dir, system_dir=Path("/nonexistent"))

        assert data == {"ui": {"verbose": True}}

    def test_broken_file_warns(self, temp_config_dir, capsys):
        """A broken file is reported and ignored."""
        from ffmpeg_simple.config import load_config_file

        (temp_config_dir / "config.json").write_text("[1, 2]")

        assert load_config_file(temp_config_dir, system_dir=Path("/nonexistent")) == {}
        assert "Failed to load config" in capsys.readouterr().err

    def test_user_overrides_system(self, temp_dir):
        """User values win over system values, deeply."""
        from ffmpeg_simple.config import load_config_file

        system = temp_dir / "system"
        user = temp_dir / "user"
        system.mkdir()
        user.mkdir()
        (system / "config.json").write_text(json.dumps({"tools": {"ffmpeg": "/sys/ffmpeg", "timeout": 5}}))
        (user / "config.json").write_text(json.dumps({"tools": {"ffmpeg": "/usr/local/bin/ffmpeg"}}))

        data = load_config_file(user, system_dir=system)

        assert data["tools"] == {"ffmpeg": "/usr/local/bin/ffmpeg", "timeout": 5}

    def test_save_default_config(self, temp_config_dir):
        """The default file is written once and parses."""
        from ffmpeg_simple.config import load_config_file, save_default_config

        path = save_default_config(temp_config_dir)
        path.write_text(path.read_text() + "\n# edited\n")
        save_default_config(temp_config_dir)

        assert path.read_text().endswith("# edited\n")
        data = load_config_file(temp_config_dir, system_dir=Path("/nonexistent"))
        assert data["output"]["suffix"] == "_compressed"
        assert "small" in data["presets"]


class TestApplyConfig:
    """Tests for merging file values into Config."""

    def test_file_values_applied(self):
        """File values fill defaults."""
        from ffmpeg_simple.config import Config, apply_config_to_args

        cfg = Config()
        apply_config_to_args({"tools": {"timeout": 30}, "output": {"suffix": "_x"}}, cfg)

        assert cfg.timeout == 30
        assert cfg.suffix == "_x"

    def test_explicit_values_win(self):
        """CLI-explicit attributes keep their value."""
        from ffmpeg_simple.config import Config, apply_config_to_args

        cfg = Config(verbose=False)
        apply_config_to_args({"ui": {"verbose": True}}, cfg, cli_explicit={"verbose"})

        assert cfg.verbose is False

    def test_non_default_values_win(self):
        """Values already changed from their default are kept."""
        from ffmpeg_simple.config import Config, apply_config_to_args

        cfg = Config(ffmpeg="/opt/ffmpeg")
        apply_config_to_args({"tools": {"ffmpeg": "/usr/bin/ffmpeg"}}, cfg)

        assert cfg.ffmpeg == "/opt/ffmpeg"

    def test_presets_copied(self):
        """Preset tables are copied into Config.presets."""
        from ffmpeg_simple.config import Config, apply_config_to_args

        cfg = Config()
        apply_config_to_args({"presets": {"fast": {"crf": 30}, "bogus": 1}}, cfg)

        assert cfg.presets == {"fast": {"crf": 30}}
