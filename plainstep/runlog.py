import logging
import os
import re
from datetime import datetime
from typing import List, Optional

FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


class RunLogger:
    """Per-case logger: append-only log file plus an in-memory copy for the result."""

    def __init__(self, case_id: str, log_dir: Optional[str] = None, echo: bool = False):
        self.case_id = case_id
        self.lines: List[str] = []
        self.log_file = None

        safe_id = re.sub(r"[^A-Za-z0-9_.-]", "_", case_id) or "case"
        self.logger = logging.getLogger(f"plainstep.run.{safe_id}")
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False
        self._handlers: List[logging.Handler] = []

        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.log_file = os.path.join(log_dir, f"{safe_id}_{timestamp}.log")
            file_handler = logging.FileHandler(self.log_file, mode="a", encoding="utf-8")
            file_handler.setFormatter(logging.Formatter(FORMAT))
            self._attach(file_handler)

        if echo:
            stream_handler = logging.StreamHandler()
            stream_handler.setFormatter(logging.Formatter(FORMAT))
            stream_handler.setLevel(logging.INFO)
            self._attach(stream_handler)

    def _attach(self, handler: logging.Handler):
        self.logger.addHandler(handler)
        self._handlers.append(handler)

    def _record(self, level: int, message: str):
        stamp = datetime.now().isoformat(timespec="milliseconds")
        self.lines.append(f"[{stamp}] {message}")
        self.logger.log(level, message)

    def debug(self, message: str):
        self._record(logging.DEBUG, message)

    def info(self, message: str):
        self._record(logging.INFO, message)

    def warning(self, message: str):
        self._record(logging.WARNING, message)

    def error(self, message: str):
        self._record(logging.ERROR, message)

    def close(self):
        for handler in self._handlers:
            handler.close()
            self.logger.removeHandler(handler)
        self._handlers = []
