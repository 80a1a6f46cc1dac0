"""
Logging for the SOP assistant.

Two sinks:
- debug_flow.txt under LOGS_DIR: every message, opened on first write
- processing.log through the 'SOPAssistant' logger: info and above

Console echo only happens in DEBUG_MODE. Import the helpers from here:
    from sop_assistant.logging_config import debug_log, info, warning, error, Timer

Prefix messages with the component name, e.g. "[ChunkIndexer] ...".
"""

import logging
import sys
import time
from datetime import datetime

from sop_assistant.config import (
    DEBUG_LOG_FILE,
    DEBUG_MODE,
    LOG_DATE_FORMAT,
    LOG_FILE,
    LOG_FORMAT,
    LOGS_DIR,
)

# =============================================================================
# Debug trace file
# =============================================================================

class _DebugFileLogger:
    """
    Process-wide writer for debug_flow.txt.

    Nothing touches the disk until the first message. An unwritable log
    directory turns file output off for the rest of the process.
    """

    _instance = None
    _log_file = None
    _disabled = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @classmethod
    def _open(cls):
        try:
            LOGS_DIR.mkdir(parents=True, exist_ok=True)
            cls._log_file = open(DEBUG_LOG_FILE, 'w', encoding='utf-8')
        except OSError:
            cls._disabled = True
            return
        cls._log_file.write(f"=== SOP Assistant trace, {datetime.now().isoformat()} "
                            f"(DEBUG_MODE={DEBUG_MODE}) ===\n\n")
        cls._log_file.flush()

    def write(self, message: str):
        if self._log_file is None and not self._disabled:
            self._open()
        if self._log_file:
            timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
            self._log_file.write(f"[{timestamp}] {message}\n")
            self._log_file.flush()

    def close(self):
        if self._log_file:
            self._log_file.write(f"\n=== Closed {datetime.now().isoformat()} ===\n")
            self._log_file.close()
            type(self)._log_file = None


_debug_file_logger = _DebugFileLogger()


# =============================================================================
# processing.log
# =============================================================================

def _setup_standard_logging() -> logging.Logger:
    logger = logging.getLogger('SOPAssistant')
    logger.setLevel(logging.DEBUG if DEBUG_MODE else logging.INFO)

    if logger.handlers:
        return logger

    # delay=True: the file is created by the first record, not by the import
    try:
        LOGS_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(LOG_FILE, encoding='utf-8', delay=True)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        logger.addHandler(file_handler)
    except OSError:
        pass

    if DEBUG_MODE:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        logger.addHandler(console_handler)

    return logger


_logger = _setup_standard_logging()


# =============================================================================
# Timer
# =============================================================================

class Timer:
    """
    Times a block and traces its start and duration.

    Usage:
        with Timer("[SOPRetriever] Index build") as timer:
            snapshot = indexer.build(chunks)
        timer.get_duration_ms()

    Attributes:
        operation_name: Label used in the trace lines
        duration_ms: Elapsed milliseconds, set on exit
    """

    def __init__(self, operation_name: str, auto_log: bool = True):
        self.operation_name = operation_name
        self.auto_log = auto_log
        self.start_time: float | None = None
        self.duration_ms: float | None = None

    def __enter__(self):
        if self.auto_log:
            debug_log(f"{self.operation_name} started")
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000
        if self.auto_log:
            debug_log(f"{self.operation_name} took {self.duration_ms:.0f} ms")
        return False

    def get_duration_ms(self) -> float:
        """
        Raises:
            ValueError: If the block has not finished
        """
        if self.duration_ms is None:
            raise ValueError("Timer has not been completed yet")
        return self.duration_ms


# =============================================================================
# Public helpers
# =============================================================================

def debug_log(message: str):
    """Trace to debug_flow.txt; echo to stdout in DEBUG_MODE."""
    _debug_file_logger.write(message)

    if DEBUG_MODE:
        formatted = f"[{datetime.now().strftime('%H:%M:%S.%f')[:-3]}] {message}"
        try:
            print(formatted, flush=True)
        except UnicodeEncodeError:
            sys.stdout.buffer.write((formatted + "\n").encode('utf-8', errors='replace'))
            sys.stdout.buffer.flush()


def info(message: str):
    _debug_file_logger.write(f"[INFO] {message}")
    _logger.info(message)


def warning(message: str):
    _debug_file_logger.write(f"[WARNING] {message}")
    _logger.warning(message)


def error(message: str, exc_info: bool = False):
    """Log an error; the traceback is attached only in DEBUG_MODE."""
    _debug_file_logger.write(f"[ERROR] {message}")
    _logger.error(message, exc_info=exc_info and DEBUG_MODE)


def close_debug_log():
    """Close debug_flow.txt; a later message reopens it."""
    _debug_file_logger.close()


__all__ = [
    'debug_log',
    'info',
    'warning',
    'error',
    'close_debug_log',
    'Timer',
    'DEBUG_MODE',
]
