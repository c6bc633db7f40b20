"""Append-only run log for one takeoff execution."""

import logging
from typing import List, Optional, Tuple

from takeoff_ai.schemas.takeoff import RunLogEntry
from takeoff_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

_LEVELS = {"info": logging.INFO, "warn": logging.WARNING, "error": logging.ERROR}


class RunLog:
    """Collects run-log entries and mirrors each one to the process logger."""

    def __init__(self):
        self.entries: List[RunLogEntry] = []

    def append(
        self,
        type: str,
        message: str,
        pdf: Optional[str] = None,
        page_batch: Optional[Tuple[int, int]] = None,
    ) -> RunLogEntry:
        entry = RunLogEntry(type=type, message=message, pdf=pdf, page_batch=page_batch)
        self.entries.append(entry)
        LOGGER.log(_LEVELS[type], message, extra={"pdf": pdf, "page_batch": page_batch})
        return entry

    def info(self, message: str, **context) -> RunLogEntry:
        return self.append("info", message, **context)

    def warn(self, message: str, **context) -> RunLogEntry:
        return self.append("warn", message, **context)

    def error(self, message: str, **context) -> RunLogEntry:
        return self.append("error", message, **context)

    def of_type(self, type: str) -> List[RunLogEntry]:
        return [entry for entry in self.entries if entry.type == type]

    def __len__(self) -> int:
        return len(self.entries)
