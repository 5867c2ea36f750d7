"""Centralised logging utilities for curatorworks entry points."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

__all__ = ["configure_logging"]

_MANAGED_HANDLER_FLAG = "_curatorworks_managed_handler"
_NOISY_LOGGERS = ("httpx", "httpcore")


def _default_log_directory() -> Path:
    """Return the default directory for curatorworks log files."""

    env_override = os.environ.get("CURATORWORKS_LOG_DIR")
    if env_override:
        return Path(env_override).expanduser()

    module_path = Path(__file__).resolve()
    # Prefer the project root (folder containing pyproject.toml or .git)
    for candidate in [module_path] + list(module_path.parents):
        candidate_dir = candidate if candidate.is_dir() else candidate.parent
        if (candidate_dir / "pyproject.toml").exists() or (
            candidate_dir / ".git"
        ).exists():
            return candidate_dir / "logs"

    return Path.cwd() / "logs"


def _remove_managed_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if getattr(handler, _MANAGED_HANDLER_FLAG, False):
            logger.removeHandler(handler)
            handler.close()


def configure_logging(
    log_name: str,
    *,
    level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    include_console: bool = True,
) -> Path:
    """Route root logging to ``<log_dir>/<log_name>.log`` and optionally stderr.

    Handlers installed by a previous call are replaced, so entry points can call
    this more than once (e.g. in tests) without duplicating output.
    """

    target_directory = (
        Path(log_dir).expanduser() if log_dir else _default_log_directory()
    )
    target_directory.mkdir(parents=True, exist_ok=True)
    log_path = target_directory / f"{log_name}.log"

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    _remove_managed_handlers(root_logger)

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    setattr(file_handler, _MANAGED_HANDLER_FLAG, True)
    root_logger.addHandler(file_handler)

    if include_console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        setattr(console_handler, _MANAGED_HANDLER_FLAG, True)
        root_logger.addHandler(console_handler)

    # httpx logs every request at INFO; vision calls would drown the pipeline log.
    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))

    logging.captureWarnings(True)

    return log_path
