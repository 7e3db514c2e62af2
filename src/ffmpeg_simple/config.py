"""
Configuration management for ffmpeg-simple.

Handles:
- XDG Base Directory compliance
- TOML/INI/JSON configuration file loading
- Config dataclass with the global (non per-job) options
- Named presets of job options
- Configuration merging (system -> user -> CLI)
"""

import configparser
import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

APP_NAME = "ffmpeg-simple"
SYSTEM_CONFIG_DIR = Path("/etc") / APP_NAME


# -------------------- SCRIPT MODE DETECTION --------------------


def is_script_mode() -> bool:
    """
    Detect if output should stay plain (not an interactive terminal).

    Returns True if:
    - stdout is not a TTY (piped or redirected)
    - NO_COLOR environment variable is set
    - FFMPEG_SIMPLE_SCRIPT_MODE environment variable is set
    """
    try:
        if not sys.stdout.isatty():
            return True
    except (AttributeError, ValueError):
        return True
    return bool(os.getenv("NO_COLOR") or os.getenv("FFMPEG_SIMPLE_SCRIPT_MODE"))


# -------------------- XDG DIRECTORIES --------------------


def get_xdg_config_home() -> Path:
    """Get XDG config home directory."""
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))


def get_config_dir() -> Path:
    """User configuration directory (not created)."""
    return get_xdg_config_home() / APP_NAME


# -------------------- CONFIGURATION DATACLASS --------------------


@dataclass
class Config:
    """Global options for ffmpeg-simple."""

    # Tools
    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"
    timeout: float = 0.0  # seconds, 0 = no deadline
    probe_workers: int = 0  # 0 = CPU count

    # Output naming
    suffix: str = "_compressed"
    prefix: str = ""

    # Policy defaults
    overwrite: bool = False
    skip: bool = False
    silent: bool = False
    halt: bool = True
    replace: bool = False
    trash: bool = True

    # UI settings
    progress: bool = True
    json_progress: bool = False
    verbose: bool = False
    dryrun: bool = False
    log_file: Optional[str] = None

    # Named JobOptions records
    presets: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def apply_script_mode(self) -> None:
        """Disable the progress display when not on an interactive terminal."""
        if is_script_mode():
            self.progress = False

    def job_defaults(self, preset: Optional[str] = None) -> Dict[str, Any]:
        """
        JobOptions values coming from the configuration.

        Policy defaults first, then the named preset on top.

        Raises:
            KeyError: If the preset doesn't exist.
        """
        values: Dict[str, Any] = {
            "suffix": self.suffix,
            "prefix": self.prefix,
            "overwrite": self.overwrite,
            "skip": self.skip,
            "silent": self.silent,
            "halt": self.halt,
            "replace": self.replace,
            "trash": self.trash,
        }
        if self.log_file:
            values["log_file"] = self.log_file
        if preset:
            if preset not in self.presets:
                raise KeyError(f"Unknown preset: {preset}")
            values.update(self.presets[preset])
        return values

    @classmethod
    def for_library(cls, **kwargs) -> "Config":
        """
        Create a Config instance for library usage.

        Progress display and prompts are disabled.

        Example:
            >>> config = Config.for_library(overwrite=True)
            >>> config.progress
            False
        """
        defaults: Dict[str, Any] = {
            "progress": False,
            "silent": True,
        }
        defaults.update(kwargs)
        return cls(**defaults)


# -------------------- CONFIG FILE LOADING --------------------


_TRUE = ("true", "yes", "on")
_FALSE = ("false", "no", "off")


def _parse_ini_value(value: str) -> Any:
    """INI strings to bool, int, float, comma-separated list or str."""
    text = value.strip()
    if text.lower() in _TRUE:
        return True
    if text.lower() in _FALSE:
        return False
    for kind in (int, float):
        try:
            return kind(text)
        except ValueError:
            continue
    if "," in text:
        return [item.strip() for item in text.split(",") if item.strip()]
    return text


def _load_toml_config(path: Path) -> Dict[str, Any]:
    with path.open("rb") as f:
        return dict(tomllib.load(f))


def _load_ini_config(path: Path) -> Dict[str, Any]:
    """INI sections become tables; ``[presets.fast]`` nests under ``presets``."""
    parser = configparser.ConfigParser()
    parser.read(path, encoding="utf-8")
    data: Dict[str, Any] = {}
    for section in parser.sections():
        table = data
        for part in section.split("."):
            table = table.setdefault(part, {})
        table.update((key, _parse_ini_value(raw)) for key, raw in parser.items(section))
    return data


def _load_json_config(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError("top level must be an object")
    return data


# First existing file wins
CONFIG_FILES: Tuple[Tuple[str, Callable[[Path], Dict[str, Any]]], ...] = (
    ("config.toml", _load_toml_config),
    ("config.ini", _load_ini_config),
    ("config.json", _load_json_config),
)


def _load_single_config(config_dir: Path) -> Dict[str, Any]:
    """The first config file found in ``config_dir``, or ``{}``."""
    for name, loader in CONFIG_FILES:
        path = config_dir / name
        if not path.exists():
            continue
        try:
            return loader(path)
        except (OSError, ValueError, configparser.Error) as e:
            print(f"Warning: Failed to load config from {path}: {e}", file=sys.stderr)
            return {}
    return {}


def _merge_tables(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursive dict merge, ``override`` winning."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        merged[key] = _merge_tables(current, value) if isinstance(current, dict) and isinstance(value, dict) else value
    return merged


def load_config_file(config_dir: Optional[Path] = None, system_dir: Path = SYSTEM_CONFIG_DIR) -> dict:
    """
    Read the system config (/etc/ffmpeg-simple) and the user config
    ($XDG_CONFIG_HOME/ffmpeg-simple), the user's values winning.
    """
    config_dir = config_dir or get_config_dir()
    layers = [_load_single_config(d) for d in (system_dir, config_dir) if d.exists()]
    merged: Dict[str, Any] = {}
    for layer in layers:
        merged = _merge_tables(merged, layer)
    return merged


DEFAULT_CONFIG_TOML = """# ffmpeg-simple configuration file

[tools]
ffmpeg = "ffmpeg"
ffprobe = "ffprobe"
# Seconds before an ffmpeg run is killed, 0 = never
timeout = 0
# Parallel ffprobe processes, 0 = CPU count
probe_workers = 0

[output]
suffix = "_compressed"
prefix = ""

[policy]
overwrite = false
skip = false
halt = true
replace = false
# Overwritten files go to the trash
trash = true

[ui]
progress = true
verbose = false

# Presets are applied with --preset NAME, beneath explicit flags
[presets.small]
codec = "libx264"
crf = 28
scale = "1280:-2"
"""


def save_default_config(config_dir: Optional[Path] = None) -> Path:
    """Write the default TOML config unless one exists. Returns its path."""
    config_dir = config_dir or get_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)
    path = config_dir / "config.toml"
    if not path.exists():
        path.write_text(DEFAULT_CONFIG_TOML, encoding="utf-8")
    return path


# Map config file keys to Config attribute names
CONFIG_MAPPINGS = {
    ("tools", "ffmpeg"): "ffmpeg",
    ("tools", "ffprobe"): "ffprobe",
    ("tools", "timeout"): "timeout",
    ("tools", "probe_workers"): "probe_workers",
    ("output", "suffix"): "suffix",
    ("output", "prefix"): "prefix",
    ("policy", "overwrite"): "overwrite",
    ("policy", "skip"): "skip",
    ("policy", "silent"): "silent",
    ("policy", "halt"): "halt",
    ("policy", "replace"): "replace",
    ("policy", "trash"): "trash",
    ("ui", "progress"): "progress",
    ("ui", "json_progress"): "json_progress",
    ("ui", "verbose"): "verbose",
    ("ui", "log_file"): "log_file",
}


def apply_config_to_args(file_config: dict, cfg: Config, cli_explicit: Optional[set] = None) -> None:
    """
    Apply file config values to a Config instance.

    Values explicitly set on the CLI keep priority: an attribute is only
    taken from the file when it is not in ``cli_explicit`` and still holds
    its default.

    Args:
        file_config: Dict from config file (TOML, INI or JSON)
        cfg: Config instance with CLI-parsed values
        cli_explicit: Optional set of attribute names explicitly set on CLI
    """
    default_cfg = Config()
    explicit = cli_explicit or set()

    for (section, key), attr_name in CONFIG_MAPPINGS.items():
        section_values = file_config.get(section)
        if not isinstance(section_values, dict) or key not in section_values:
            continue
        if attr_name in explicit:
            continue
        if getattr(cfg, attr_name) != getattr(default_cfg, attr_name):
            continue
        setattr(cfg, attr_name, section_values[key])

    presets = file_config.get("presets")
    if isinstance(presets, dict):
        for name, values in presets.items():
            if isinstance(values, dict):
                cfg.presets[name] = dict(values)
