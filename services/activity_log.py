"""
Activity log for import sessions.

Folds stage events into human-readable log lines. Streaming chunks arrive
a few tokens at a time; consecutive chunks of the same kind grow the last
line instead of adding one line per chunk.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, Optional

from models.extraction import TokenUsage
from models.stream import (
    CategoriesResultEvent,
    CategoryDoneEvent,
    CategoryStartEvent,
    ChunkEvent,
    LogEvent,
    ScanResultEvent,
    UsageEvent,
)


class LogLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    LOADING = "loading"


THINKING_TAG = "Thinking"
RESPONSE_TAG = "Response"


@dataclass
class LogEntry:
    message: str
    level: LogLevel = LogLevel.INFO
    tag: str = "System"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def chunk_tag(event: ChunkEvent) -> str:
    return THINKING_TAG if event.is_thought else RESPONSE_TAG


def continues_last_entry(last: Optional[LogEntry], event: ChunkEvent) -> bool:
    """A chunk extends the last line only if that line is a still-open line of the same kind."""
    return last is not None and last.level == LogLevel.LOADING and last.tag == chunk_tag(event)


ContinuationPredicate = Callable[[Optional[LogEntry], ChunkEvent], bool]


class ActivityLog:
    """Ordered log lines plus the latest token usage."""

    def __init__(self, continues: ContinuationPredicate = continues_last_entry):
        self.entries: list[LogEntry] = []
        self.usage: Optional[TokenUsage] = None
        self._continues = continues

    @property
    def last(self) -> Optional[LogEntry]:
        return self.entries[-1] if self.entries else None

    def add(self, message: str, level: LogLevel = LogLevel.INFO, tag: str = "System") -> LogEntry:
        """Start a new line. An open loading line before it is closed as success."""
        last = self.last
        if last is not None and last.level == LogLevel.LOADING:
            last.level = LogLevel.SUCCESS
        entry = LogEntry(message=message, level=level, tag=tag)
        self.entries.append(entry)
        return entry

    def append_to_last(self, text: str) -> None:
        if self.entries:
            self.entries[-1].message += text

    def close_last(self, level: LogLevel = LogLevel.SUCCESS) -> None:
        last = self.last
        if last is not None and last.level == LogLevel.LOADING:
            last.level = level

    def apply(self, event) -> "ActivityLog":
        """Fold one stage event into the log."""
        if isinstance(event, ChunkEvent):
            if self._continues(self.last, event):
                self.append_to_last(event.text)
            else:
                self.add(event.text, LogLevel.LOADING, chunk_tag(event))
        elif isinstance(event, UsageEvent):
            self.usage = event.usage
        elif isinstance(event, LogEvent):
            self.add(event.message, LogLevel.WARNING, "System")
        elif isinstance(event, CategoryStartEvent):
            self.add(f"Accessing {event.category_name}...", LogLevel.LOADING, "Fetch")
        elif isinstance(event, CategoryDoneEvent):
            self.close_last()
            self.add(f"Found {event.count} items in {event.category_name}", LogLevel.SUCCESS, "Discovery")
        elif isinstance(event, CategoriesResultEvent):
            if event.success:
                self.add(f"Found {len(event.categories)} categories", LogLevel.SUCCESS, "Discovery")
            else:
                self.close_last(LogLevel.ERROR)
                self.add(f"Analysis failed: {event.error}", LogLevel.ERROR, "Error")
        elif isinstance(event, ScanResultEvent):
            if event.success:
                self.add(f"Found {event.items_found} products across all categories", LogLevel.SUCCESS, "Discovery")
            else:
                self.close_last(LogLevel.ERROR)
                self.add(event.error or "Scan failed", LogLevel.ERROR, "Error")
        return self


def fold_events(events: Iterable, log: Optional[ActivityLog] = None) -> ActivityLog:
    """Fold a finished event sequence into a log."""
    log = log or ActivityLog()
    for event in events:
        log.apply(event)
    return log
