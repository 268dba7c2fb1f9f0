"""Command line entry point: pipe stdin into a generate endpoint."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from dataclasses import replace
from logging.handlers import RotatingFileHandler
from typing import List, Optional

from dotenv import find_dotenv, load_dotenv

from . import __version__
from .aggregator import InputAggregator
from .client import TurnClient
from .config import Config, load_config, select_preset, validate
from .errors import ConfigError, InlamaError
from .lines import read_lines
from .session import run_session
from .sink import OutputSink

logger = logging.getLogger("inlama")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_FILE_ENV = "INLAMA_LOG_FILE"


def configure_logging(debug: bool = False, log_file: Optional[str] = None) -> None:
    """
    Route diagnostics to stderr (never stdout, which carries model output).

    Without --debug only warnings and errors reach stderr. An optional
    rotating log file records the session at INFO (DEBUG with --debug).
    """
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.DEBUG if debug else logging.WARNING)
    handlers: List[logging.Handler] = [stderr_handler]

    if log_file:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG if debug else logging.INFO)
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    # Keep HTTP client internals out of the diagnostics
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_parser(defaults: Config) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="inlama",
        description="Pass stdin to an LLM to generate summaries, reports and more.",
        epilog='''
Examples:
  git log -5 | inlama
  tail -f app.log | inlama -f -b 2 -p "Explain any errors you see."
        ''',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    # None means "not given", so config file values survive
    parser.add_argument("-f", "--follow", dest="stream", action="store_true", default=None,
                        help="Stream input to the model, one turn per quiet period")
    parser.add_argument("-p", "--prompt", default=None,
                        help=f"System prompt for the model (default: {defaults.prompt!r})")
    parser.add_argument("-b", "--buffer-time", type=int, default=None,
                        help=f"Buffer time for streaming input, in seconds (default: {defaults.buffer_time})")
    parser.add_argument("-u", "--url", default=None,
                        help=f"URL of the model server (default: {defaults.url})")
    parser.add_argument("-m", "--model", default=None,
                        help=f"Model to use (default: {defaults.model})")
    parser.add_argument("-d", "--debug", action="store_true", default=None,
                        help="Write diagnostic output to stderr")
    parser.add_argument("--flush-on-eof", action="store_true", default=None,
                        help="In follow mode, send lines still buffered when input ends")
    parser.add_argument("--log-file", default=os.getenv(LOG_FILE_ENV),
                        help=f"Also write logs to this rotating file (env: {LOG_FILE_ENV})")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    for i, preset in enumerate(defaults.presets):
        parser.add_argument(f"--p{i}", dest=f"preset_{i}", action="store_true",
                            help=f"Use the preset: {preset}")
    return parser


def apply_args(config: Config, args: argparse.Namespace) -> Config:
    """Overlay explicitly given flags onto the loaded configuration."""
    updates = {}
    for key in ("stream", "prompt", "buffer_time", "url", "model", "debug", "flush_on_eof"):
        value = getattr(args, key, None)
        if value is not None:
            updates[key] = value
    config = validate(replace(config, **updates))

    for i in range(len(config.presets)):
        if getattr(args, f"preset_{i}", False):
            config = select_preset(config, i)
            break
    return config


def _detach_stdout() -> None:
    """Point fd 1 at /dev/null so the interpreter's final flush cannot fail again."""
    try:
        fd = sys.stdout.fileno()
    except (AttributeError, OSError, ValueError):
        # Not backed by a file descriptor
        return
    devnull = os.open(os.devnull, os.O_WRONLY)
    os.dup2(devnull, fd)


async def run(config: Config) -> int:
    sink = OutputSink(sys.stdout)
    source = read_lines(sys.stdin)
    aggregator = InputAggregator(source, config)

    async with TurnClient(config) as client:
        try:
            await run_session(aggregator, sink, client)
        except InlamaError as e:
            logger.error(f"❌ {e}")
            return 1
        except BrokenPipeError:
            # Reader of stdout went away (e.g. `| head`)
            logger.info("🛑 Output closed by reader, stopping")
            _detach_stdout()
            return 1
        except OSError as e:
            logger.error(f"❌ Error writing output: {e}")
            return 1

    if aggregator.reader_error is not None:
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv(find_dotenv(usecwd=True))

    try:
        defaults = load_config()
    except ConfigError as e:
        configure_logging()
        logger.error(f"❌ {e}")
        return 1

    parser = build_parser(defaults)
    args = parser.parse_args(argv)

    try:
        config = apply_args(defaults, args)
    except ConfigError as e:
        parser.error(str(e))

    configure_logging(config.debug, args.log_file)
    logger.debug(f"Configured with model: {config.model}")
    logger.debug(f"Server URL: {config.url}")

    try:
        return asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("⚠️ Interrupted by user")
        return 130


__all__ = ["main", "run", "build_parser", "apply_args", "configure_logging"]
