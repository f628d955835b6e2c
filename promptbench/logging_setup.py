"""nfo logging for promptbench.

Modules log through ``logging.getLogger("promptbench.<module>")``; nfo bridges
those records into its sinks so prompt creation, completion retries and
storage writes show up as markdown in the terminal (and optionally a file).

Usage:
    from promptbench.logging_setup import setup_logging

    setup_logging("debug")                        # once, at CLI/server startup
    setup_logging("info", markdown_file="bench.md")
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from nfo.configure import configure
from nfo.logger import Logger
from nfo.sinks import MarkdownSink
from nfo.terminal import TerminalSink

# Third-party loggers that flood the terminal at INFO.
_NOISY = ("LiteLLM", "litellm", "httpx", "httpcore")

_logger: Optional[Logger] = None


def _normalize_level(level: str) -> str:
    # uvicorn and PROMPTBENCH_LOG_LEVEL use lowercase names, nfo expects upper case
    name = (level or "INFO").strip().upper()
    return "WARNING" if name == "WARN" else name


def setup_logging(
    level: str = "INFO",
    markdown_file: str | None = None,
    terminal_format: str | None = None,
) -> Logger:
    """Configure nfo once; later calls return the existing logger.

    Args:
        level: DEBUG, INFO, WARNING or ERROR, any case.
        markdown_file: Also append records to this markdown file
            (default: PROMPTBENCH_NFO_LOG_FILE).
        terminal_format: nfo terminal format, "markdown" unless
            PROMPTBENCH_NFO_FORMAT says otherwise.
    """
    global _logger

    if _logger is not None:
        return _logger

    level_name = _normalize_level(level)
    markdown_file = markdown_file or os.getenv("PROMPTBENCH_NFO_LOG_FILE") or None
    terminal_format = terminal_format or os.getenv("PROMPTBENCH_NFO_FORMAT", "markdown")

    sinks = [
        TerminalSink(
            format=terminal_format,
            stream=sys.stderr,
            show_args=level_name == "DEBUG",
            show_return=False,
            show_duration=True,
            show_traceback=True,
        ),
    ]
    if markdown_file:
        sinks.append(MarkdownSink(file_path=markdown_file))

    _logger = configure(
        name="promptbench",
        level=level_name,
        sinks=sinks,
        bridge_stdlib=True,
        propagate_stdlib=False,
        env_prefix="PROMPTBENCH_NFO_",
        version=_get_version(),
        force=True,
    )

    for name in _NOISY:
        logging.getLogger(name).setLevel(logging.WARNING)
    if level_name != "DEBUG":
        # per-request access lines only at DEBUG
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    import litellm
    litellm.suppress_debug_info = True

    return _logger


def get_logger() -> Logger:
    """The configured nfo logger, set up from PROMPTBENCH_LOG_LEVEL on first use."""
    if _logger is None:
        return setup_logging(os.getenv("PROMPTBENCH_LOG_LEVEL", "INFO"))
    return _logger


def _get_version() -> str:
    from promptbench import __version__
    return __version__
