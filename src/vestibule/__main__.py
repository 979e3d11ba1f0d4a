"""Entry point for ``vestibule`` / ``python -m vestibule``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from . import __version__
from .config import AppConfig, load_config

_LOG_FILE = "vestibule.log"


def _load_config_or_exit(config_path: str | None) -> AppConfig:
    try:
        return load_config(Path(config_path).expanduser() if config_path else None)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _setup_logging(config: AppConfig, level_override: str | None) -> None:
    # The terminal belongs to the renderer; logs go to a file only
    level_name = (level_override or config.app.log_level).upper()
    level = getattr(logging, level_name, logging.WARNING)
    data_dir = config.app.data_dir
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"Warning: cannot create {data_dir}: {e}", file=sys.stderr)
        logging.disable(logging.CRITICAL)
        return
    logging.basicConfig(
        filename=str(data_dir / _LOG_FILE),
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> None:
    parser = argparse.ArgumentParser(prog="vestibule", description="Vestibule - interactive agent shell session")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", dest="config_path", default=None, help="Path to config.yaml")
    parser.add_argument(
        "--log-level",
        dest="log_level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Log level for the session log file",
    )
    parser.add_argument(
        "--fallback",
        action="store_true",
        help="Use the line-by-line renderer even on capable terminals",
    )
    args = parser.parse_args()

    config = _load_config_or_exit(args.config_path)
    if args.fallback:
        config.ui.force_fallback = True
    _setup_logging(config, args.log_level)

    from .cli.repl import run_cli

    try:
        asyncio.run(run_cli(config))
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    except Exception as e:
        logging.getLogger(__name__).exception("Session crashed")
        print(f"Application error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
