"""Configuration loader: YAML file with environment variable fallbacks."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

_DEFAULT_DISCOURAGED = ["find ", "grep ", "cat ", "head ", "tail "]


@dataclass
class ShellConfig:
    shell: str = ""  # empty = platform default
    default_timeout_ms: int = 120_000
    min_timeout_ms: int = 1_000
    max_timeout_ms: int = 600_000
    max_output_chars: int = 30_000
    discouraged_prefixes: list[str] = field(default_factory=lambda: list(_DEFAULT_DISCOURAGED))


@dataclass
class UIConfig:
    max_messages: int = 1000
    min_redraw_interval_ms: int = 50
    idle_recheck_ms: int = 16
    key_poll_interval_ms: int = 10
    key_queue_size: int = 256
    force_fallback: bool = False
    alternate_screen: bool = True


@dataclass
class AppSettings:
    data_dir: Path = field(default_factory=lambda: Path.home() / ".vestibule")
    log_level: str = "WARNING"


@dataclass
class AppConfig:
    shell: ShellConfig = field(default_factory=ShellConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    app: AppSettings = field(default_factory=AppSettings)


def _get_config_path() -> Path:
    env_path = os.environ.get("VESTIBULE_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".vestibule" / "config.yaml"


def _bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    return str(value).lower() not in ("false", "0", "no", "off")


def _int(value: Any, default: int, lo: int, hi: int) -> int:
    if value is None:
        return default
    try:
        return max(lo, min(hi, int(value)))
    except (ValueError, TypeError):
        logger.warning("Invalid integer config value %r, using %d", value, default)
        return default


def load_config(config_path: Path | None = None) -> AppConfig:
    raw: dict[str, Any] = {}
    path = config_path or _get_config_path()

    if path.exists():
        try:
            with open(path) as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(raw, dict):
            raise ValueError(f"Expected a mapping at the top level of {path}")

    env = os.environ.get
    shell_raw = raw.get("shell", {}) or {}
    ui_raw = raw.get("ui", {}) or {}
    app_raw = raw.get("app", {}) or {}

    min_timeout = _int(shell_raw.get("min_timeout_ms"), 1_000, 1, 600_000)
    max_timeout = _int(shell_raw.get("max_timeout_ms"), 600_000, min_timeout, 24 * 3_600_000)
    discouraged = shell_raw.get("discouraged_prefixes")
    if not isinstance(discouraged, list):
        discouraged = list(_DEFAULT_DISCOURAGED)

    shell = ShellConfig(
        shell=str(shell_raw.get("shell") or env("VESTIBULE_SHELL", "")),
        default_timeout_ms=_int(
            shell_raw.get("default_timeout_ms", env("VESTIBULE_DEFAULT_TIMEOUT_MS")),
            120_000,
            min_timeout,
            max_timeout,
        ),
        min_timeout_ms=min_timeout,
        max_timeout_ms=max_timeout,
        max_output_chars=_int(
            shell_raw.get("max_output_chars", env("VESTIBULE_MAX_OUTPUT_CHARS")), 30_000, 1_000, 1_000_000
        ),
        discouraged_prefixes=[str(p) for p in discouraged],
    )

    ui = UIConfig(
        max_messages=_int(ui_raw.get("max_messages", env("VESTIBULE_MAX_MESSAGES")), 1000, 1, 100_000),
        min_redraw_interval_ms=_int(ui_raw.get("min_redraw_interval_ms"), 50, 1, 1000),
        idle_recheck_ms=_int(ui_raw.get("idle_recheck_ms"), 16, 1, 1000),
        key_poll_interval_ms=_int(ui_raw.get("key_poll_interval_ms"), 10, 1, 500),
        key_queue_size=_int(ui_raw.get("key_queue_size"), 256, 1, 65_536),
        force_fallback=_bool(ui_raw.get("force_fallback", env("VESTIBULE_FALLBACK_UI")), False),
        alternate_screen=_bool(ui_raw.get("alternate_screen"), True),
    )

    data_dir_raw = app_raw.get("data_dir") or env("VESTIBULE_DATA_DIR")
    app = AppSettings(
        data_dir=Path(data_dir_raw).expanduser() if data_dir_raw else Path.home() / ".vestibule",
        log_level=str(app_raw.get("log_level") or env("VESTIBULE_LOG_LEVEL", "WARNING")).upper(),
    )

    return AppConfig(shell=shell, ui=ui, app=app)
