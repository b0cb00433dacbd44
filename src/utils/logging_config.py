"""
Logging setup for the curation pipeline, the HTTP server and the CLI.

Every record carries the day being curated (``run_date``) so interleaved requests in the
server can be told apart. Console output is colored by default; ``LOG_FORMAT=json`` switches
both the console and the optional file handler to one JSON object per line.
"""

import json
import logging
import logging.handlers
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

_run_date: ContextVar[str] = ContextVar("run_date", default="-")

# Loggers that drown the pipeline's own output at INFO
_NOISY_LOGGERS = ('aiohttp.access', 'google_genai', 'httpx', 'urllib3', 'uvicorn.access')


def bind_run_date(date_iso: str) -> None:
    """Tag log records emitted by the current task with the day being curated."""
    _run_date.set(date_iso)


class RunDateFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.run_date = _run_date.get()
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per record; stage metrics travel in ``extra_data``."""

    def format(self, record):
        entry: Dict[str, Any] = {
            'ts': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'run_date': getattr(record, 'run_date', '-'),
            'msg': record.getMessage(),
        }
        metrics = getattr(record, 'extra_data', None)
        if metrics:
            entry['metrics'] = metrics
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Colored ``time level [run_date] logger | message`` lines for terminals."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record):
        color = self.COLORS.get(record.levelname, '')
        run_date = getattr(record, 'run_date', '-')
        line = (
            f"{color}{self.formatTime(record, '%H:%M:%S')} {record.levelname:<7} "
            f"[{run_date}] {record.name} | {record.getMessage()}{self.RESET}"
        )
        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    enable_file_logging: bool = False,
    enable_structured_logging: bool = False
) -> None:
    """
    Configure the root logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL; unknown names fall back to INFO
        log_dir: Directory for ``curation.log`` (defaults to ./logs)
        enable_file_logging: Add a midnight-rotating file handler keeping a week of logs
        enable_structured_logging: JSON lines instead of colored text
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    run_date_filter = RunDateFilter()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(StructuredFormatter() if enable_structured_logging else ColoredConsoleFormatter())
    console.addFilter(run_date_filter)
    root.addHandler(console)

    if enable_file_logging:
        directory = Path(log_dir) if log_dir else Path.cwd() / "logs"
        directory.mkdir(parents=True, exist_ok=True)
        rotating = logging.handlers.TimedRotatingFileHandler(
            directory / "curation.log",
            when='midnight',
            backupCount=7,
            encoding='utf-8'
        )
        rotating.setLevel(logging.DEBUG)
        rotating.setFormatter(StructuredFormatter() if enable_structured_logging else logging.Formatter(
            '%(asctime)s | %(levelname)-7s | %(run_date)s | %(name)s | %(message)s'
        ))
        rotating.addFilter(run_date_filter)
        root.addHandler(rotating)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class PerformanceTracker:
    """Times one pipeline stage; ``duration_ms`` is available after the block exits."""

    def __init__(self, stage: str, logger: Optional[logging.Logger] = None):
        self.stage = stage
        self.logger = logger or logging.getLogger(__name__)
        self.duration_ms: float = 0.0
        self._started: Optional[float] = None

    def __enter__(self):
        self._started = time.perf_counter()
        self.logger.debug(f"⏱️ {self.stage} started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._started is None:
            return False
        self.duration_ms = (time.perf_counter() - self._started) * 1000
        if exc_type:
            self.logger.error(f"💥 {self.stage} failed after {self.duration_ms:.1f}ms: {exc_val}")
        else:
            self.logger.info(f"✅ {self.stage} done in {self.duration_ms:.1f}ms")
        return False


def log_pipeline_metrics(
    logger: logging.Logger,
    stage: str,
    input_count: int,
    output_count: int,
    duration_ms: float,
    **extra_data
):
    """Per-stage in/out counts; the JSON formatter emits them under ``metrics``."""
    metrics = {
        'stage': stage,
        'in': input_count,
        'out': output_count,
        'kept_ratio': round(output_count / input_count, 3) if input_count else 0.0,
        'duration_ms': round(duration_ms, 1),
        **extra_data
    }
    logger.info(f"📊 {stage}: {input_count} → {output_count} in {duration_ms:.1f}ms", extra={'extra_data': metrics})
