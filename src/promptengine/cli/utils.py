"""Shared utilities for CLI commands"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from promptengine.config import EngineConfig, load_config

DEBUG_ENV = "PROMPT_ENGINE_DEBUG"

console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the prompt-engine CLI.

    Log levels:
    - Normal: only warnings/errors shown
    - Verbose (-v): INFO level - rebuilds, publishes, watcher start/stop
    - Debug (PROMPT_ENGINE_DEBUG=1): DEBUG level - shows everything
    """
    debug = bool(os.environ.get(DEBUG_ENV))
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    handler = RichHandler(
        console=console,
        show_time=verbose or debug,
        show_path=debug,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger("promptengine")
    logger.setLevel(level)
    logger.handlers = [handler]
    logger.propagate = False


def get_config(
    config_path: Path | None = None, prompts_dir: Path | None = None
) -> EngineConfig:
    """Load configuration, letting the --prompts option win."""
    return load_config(config_path, prompts_dir=prompts_dir)
