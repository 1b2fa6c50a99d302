"""
Logging for leadgraph

Two channels:
1. structlog for application logs (pretty in development, JSON elsewhere)
2. Per-investigation execution logs in JSON Lines, one file per run id

Features:
- structlog on stderr so CLI output on stdout stays clean
- JSONL execution log: <LOG_DIR>/<run_id>.jsonl
- Optional colored console mirror of the execution log
- Typed events: record lookups, discovered leads, model calls, stage timing
- Every helper accepts a None logger (execution logging switched off)
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import structlog

from config.settings import settings

EXECUTION_LOGGER_PREFIX = "leadgraph.run"


# ============================================================================
# APPLICATION LOGGING (structlog)
# ============================================================================

def configure_structlog():
    """
    Configure structlog once for the whole process.

    ENVIRONMENT=development renders for humans; anything else emits JSON
    lines suitable for a log shipper. Called automatically on import.
    """
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.ENVIRONMENT == "development"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.LOG_LEVEL.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """
    Module logger.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Lookup finished", extra={"term": "9876543210"})
    """
    return structlog.get_logger(name) if name else structlog.get_logger()


# ============================================================================
# EXECUTION LOGS (JSONL per investigation run)
# ============================================================================

class JSONLFormatter(logging.Formatter):
    """
    One JSON object per line.

    Example line:
    {"timestamp": "2026-01-07T01:23:45+00:00", "level": "INFO", "run_id": "inv_3f2a...",
     "event_type": "entity_searched", "message": "entity_searched: 9876543210", "data": {...}}
    """

    # LogRecord attribute -> output key
    EVENT_FIELDS = (("run_id", "run_id"), ("event_type", "event_type"), ("event_data", "data"))

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        for attr, key in self.EVENT_FIELDS:
            if hasattr(record, attr):
                entry[key] = getattr(record, attr)

        message = record.getMessage()
        if message:
            entry["message"] = message
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Short colored lines: time, level, [event] message."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)
        clock = datetime.now(timezone.utc).strftime("%H:%M:%S")
        event = getattr(record, "event_type", None)
        text = record.getMessage()
        if event and not text.startswith(event):
            text = f"[{event}] {text}"
        return f"{clock} {color}{record.levelname:<8}{self.RESET} {text}"


def setup_execution_logging(
    run_id: str,
    log_dir: Optional[str] = None,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    console: bool = True
) -> logging.Logger:
    """
    Open the execution log of one investigation run.

    Writes JSONL to <log_dir or settings.LOG_DIR>/<run_id>.jsonl and, when
    console is set, mirrors INFO and above to stderr.

    Example:
        >>> exec_logger = setup_execution_logging("inv_abc123", console=False)
        >>> log_event(exec_logger, "investigation_started", "inv_abc123", {"query": "9876543210"})
        >>> close_execution_logging(exec_logger)
    """
    directory = Path(log_dir or settings.LOG_DIR)
    directory.mkdir(parents=True, exist_ok=True)
    log_file = directory / f"{run_id}.jsonl"

    exec_logger = logging.getLogger(f"{EXECUTION_LOGGER_PREFIX}.{run_id}")
    exec_logger.setLevel(logging.DEBUG)
    exec_logger.propagate = False
    # A reused run id must not double-write
    close_execution_logging(exec_logger)

    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(JSONLFormatter())
    exec_logger.addHandler(file_handler)

    if console:
        stream = logging.StreamHandler(sys.stderr)
        stream.setLevel(console_level)
        stream.setFormatter(ConsoleFormatter())
        exec_logger.addHandler(stream)

    exec_logger.debug(f"Execution log file: {log_file}")
    return exec_logger


def close_execution_logging(logger: logging.Logger) -> None:
    """Flush and detach every handler of an execution logger."""
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def log_event(
    logger: Optional[logging.Logger],
    event_type: str,
    run_id: str,
    event_data: Dict[str, Any],
    level: int = logging.INFO
) -> None:
    """Write one structured execution event; no-op without a logger."""
    if logger is None:
        return

    subject = event_data.get("query")
    message = f"{event_type}: {subject}" if subject else event_type
    logger.log(
        level,
        message,
        extra={"event_type": event_type, "run_id": run_id, "event_data": event_data},
    )


@contextmanager
def log_stage(logger: Optional[logging.Logger], stage_name: str, run_id: str) -> Iterator[None]:
    """
    Bracket a workflow stage with started / completed (or failed) events.

    Example:
        >>> with log_stage(exec_logger, "build_graph", "inv_123"):
        ...     graph = builder.build(results)
    """
    started = time.perf_counter()
    log_event(logger, "stage_started", run_id, {"stage": stage_name})
    try:
        yield
    except Exception as e:
        log_event(logger, "stage_failed", run_id, {
            "stage": stage_name,
            "duration_seconds": round(time.perf_counter() - started, 3),
            "error": str(e),
            "error_type": type(e).__name__,
        }, level=logging.ERROR)
        raise
    log_event(logger, "stage_completed", run_id, {
        "stage": stage_name,
        "duration_seconds": round(time.perf_counter() - started, 3),
    })


def log_entity_search(
    logger: Optional[logging.Logger],
    run_id: str,
    term: str,
    entity_type: str,
    records_count: int,
    new_results: int,
    duration_seconds: float,
    success: bool = True
) -> None:
    """One record-store lookup for an entity."""
    log_event(logger, "entity_searched", run_id, {
        "query": term,
        "entity_type": entity_type,
        "records_count": records_count,
        "new_results": new_results,
        "duration_seconds": round(duration_seconds, 3),
        "success": success,
    }, level=logging.INFO if success else logging.WARNING)


def log_lead_discovered(
    logger: Optional[logging.Logger],
    run_id: str,
    term: str,
    entity_type: str,
    source_result_id: str,
    iteration: int
) -> None:
    """A new search lead found inside a returned record."""
    log_event(logger, "lead_discovered", run_id, {
        "query": term,
        "entity_type": entity_type,
        "source": source_result_id,
        "iteration": iteration,
    })


def log_model_call(
    logger: Optional[logging.Logger],
    run_id: str,
    model_name: str,
    prompt_tokens: int,
    completion_tokens: int,
    cost: float,
    duration_seconds: float,
    success: bool = True
) -> None:
    """A summarizer model call with token and cost figures."""
    log_event(logger, "model_called", run_id, {
        "model": model_name,
        "tokens": {
            "prompt": prompt_tokens,
            "completion": completion_tokens,
            "total": prompt_tokens + completion_tokens,
        },
        "cost_usd": round(cost, 6),
        "duration_seconds": round(duration_seconds, 3),
        "success": success,
    })


# ============================================================================
# MODULE INITIALIZATION
# ============================================================================

configure_structlog()

logger = get_logger(__name__)
logger.debug(
    "Logging configured",
    extra={"environment": settings.ENVIRONMENT, "log_level": settings.LOG_LEVEL}
)


__all__ = [
    "get_logger",
    "logger",
    "configure_structlog",
    "setup_execution_logging",
    "close_execution_logging",
    "log_event",
    "log_stage",
    "log_entity_search",
    "log_lead_discovered",
    "log_model_call",
    "JSONLFormatter",
    "ConsoleFormatter",
]
