"""
Logging infrastructure for the tuition research pipeline.

Provides:
- Structured logging with timestamps
- Different log levels (DEBUG, INFO, WARNING, ERROR)
- File and console output
- Error tracking and reporting

Library modules log through ``logging.getLogger(__name__)`` and emit
structured events with ``log_event``; the CLI owns a PipelineLogger that
configures handlers and keeps the run summary.
"""

import logging
import sys
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(filename)s:%(lineno)d | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S,%f"

# Third-party loggers that are too chatty at INFO
_NOISY_LIBRARIES = ["LiteLLM", "httpx", "httpcore", "google_genai", "urllib3"]


def format_fields(message: str, **fields: Any) -> str:
    """Append key=value pairs to a message: ``message [k1=v1 k2=v2]``."""
    if not fields:
        return message
    formatted_data = " ".join(f"{k}={v}" for k, v in fields.items())
    return f"{message} [{formatted_data}]"


def log_event(logger: logging.Logger, level: int, message: str, **fields: Any) -> None:
    """
    Emit one structured event.

    Args:
        logger: Module logger
        level: logging level constant
        message: Short event description
        **fields: Structured fields (label, attempt, outcome, ...)
    """
    logger.log(level, format_fields(message, **fields), stacklevel=2)


class MillisecondsFormatter(logging.Formatter):
    """Custom formatter that includes milliseconds and aligns log levels."""

    def formatTime(self, record, datefmt=None):  # noqa: N802 - must match parent class method name
        """Override formatTime to include milliseconds."""
        ct = datetime.fromtimestamp(record.created)
        if datefmt and "%f" in datefmt:
            s = ct.strftime(datefmt.replace(",%f", ""))
            return s + f",{int(record.msecs):03d}"
        elif datefmt:
            return ct.strftime(datefmt)
        else:
            return ct.strftime("%Y-%m-%d %H:%M:%S") + f",{int(record.msecs):03d}"


def _format_string(phase: Optional[str]) -> str:
    if phase:
        return f"%(asctime)s | %(levelname)-8s | {phase} | %(filename)s:%(lineno)d | %(message)s"
    return LOG_FORMAT


class PipelineLogger:
    """
    Centralized logger for the pipeline with structured output.
    """

    def __init__(
        self,
        name: str = "tuition_research",
        log_level: str = "INFO",
        log_file: Optional[str] = None,
        log_dir: Optional[Path] = None,
        phase: Optional[str] = None,
    ):
        """
        Initialize the pipeline logger.

        Args:
            name: Logger name
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
            log_file: Optional log file name
            log_dir: Directory for log files (defaults to ./logs)
            phase: Optional phase tag shown in every line (e.g., "Batch")
        """
        level = getattr(logging, log_level.upper())
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)
        self.phase = phase

        # Library module loggers live under this name; let them reach the root handler
        self.logger.propagate = True
        if self.logger.handlers:
            self.logger.handlers.clear()

        formatter = MillisecondsFormatter(_format_string(phase), datefmt=LOG_DATEFMT)
        self._configure_root(level, formatter)

        if log_file:
            if log_dir is None:
                log_dir = Path.cwd() / "logs"
            log_dir.mkdir(parents=True, exist_ok=True)
            log_path = log_dir / log_file

            file_handler = logging.FileHandler(log_path)
            file_handler.setLevel(logging.DEBUG)  # Log everything to file
            file_handler.setFormatter(formatter)
            logging.getLogger().addHandler(file_handler)

            self.info(f"Logging to file: {log_path}")

        self.errors: list[dict[str, Any]] = []
        self.warnings: list[dict[str, Any]] = []

    def _configure_root(self, level: int, formatter: logging.Formatter):
        """Route every logger (ours and third-party) through one stdout handler."""
        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        root_logger.handlers.clear()

        root_handler = logging.StreamHandler(sys.stdout)
        root_handler.setLevel(level)
        root_handler.setFormatter(formatter)
        root_logger.addHandler(root_handler)

        for lib_name in _NOISY_LIBRARIES:
            logging.getLogger(lib_name).setLevel(logging.WARNING)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional structured data."""
        self.logger.debug(format_fields(message, **kwargs), stacklevel=2)

    def info(self, message: str, **kwargs):
        """Log info message with optional structured data."""
        self.logger.info(format_fields(message, **kwargs), stacklevel=2)

    def warning(self, message: str, **kwargs):
        """Log warning message and track for reporting."""
        message = format_fields(message, **kwargs)
        self.logger.warning(message, stacklevel=2)
        self.warnings.append(
            {
                "message": message,
                "timestamp": datetime.now().isoformat(),
                "data": kwargs,
            }
        )

    def error(self, message: str, exception: Optional[Exception] = None, **kwargs):
        """Log error message and track for reporting."""
        if exception:
            message = f"{message} | Exception: {str(exception)}"
        message = format_fields(message, **kwargs)

        self.logger.error(message, exc_info=exception is not None, stacklevel=2)
        self.errors.append(
            {
                "message": message,
                "exception": str(exception) if exception else None,
                "timestamp": datetime.now().isoformat(),
                "data": kwargs,
            }
        )

    def log_batch_start(self, num_items: int, workers: int):
        """Log start of a batch run."""
        self.info("=" * 60)
        self.info(f"Batch started - researching {num_items} programs", num_items=num_items, workers=workers)
        self.info("=" * 60)

    def log_batch_complete(
        self,
        succeeded: int,
        not_found: int,
        failed: int,
        cancelled: int,
        duration_seconds: float,
        total_cost_usd: float,
    ):
        """Log completion of a batch run."""
        self.info("=" * 60)
        self.info(
            "Batch completed",
            succeeded=succeeded,
            not_found=not_found,
            failed=failed,
            cancelled=cancelled,
            duration_seconds=round(duration_seconds, 2),
            total_cost_usd=round(total_cost_usd, 4),
        )
        self.info("=" * 60)

    @contextmanager
    def time_item(self, school: str, program: str, operation: str = "research"):
        """
        Context manager to time and log one school/program operation.

        Usage:
            with logger.time_item("Example University", "Part-Time MBA"):
                ...
        """
        start_time = datetime.now()
        self.debug(f"Starting {operation}", school=school, program=program)
        try:
            yield
            duration = (datetime.now() - start_time).total_seconds()
            self.info(
                f"Completed {operation}",
                school=school,
                program=program,
                duration_seconds=round(duration, 2),
            )
        except Exception as e:
            duration = (datetime.now() - start_time).total_seconds()
            self.error(
                f"Failed {operation}",
                exception=e,
                school=school,
                program=program,
                duration_seconds=round(duration, 2),
            )
            raise

    def get_error_summary(self) -> dict:
        """Get summary of errors and warnings for reporting."""
        return {
            "total_errors": len(self.errors),
            "total_warnings": len(self.warnings),
            "errors": self.errors,
            "warnings": self.warnings,
        }
