from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Mapping

from quizcraft.models.jobs import ProgressEntry
from quizcraft.services.logger import logger


@dataclass(frozen=True, slots=True)
class ProgressSummary:
    total: int = 0
    completed: int = 0
    average_percent: float = 0.0

    def to_dict(self) -> dict[str, float | int]:
        return {
            "total": self.total,
            "completed": self.completed,
            "average_percent": self.average_percent,
        }


ProgressListener = Callable[[str, ProgressEntry, ProgressSummary], None]


class ProgressTracker:
    """Live job key -> ProgressEntry map.

    Each job writes only its own key and entries are immutable, so concurrent
    jobs on one event loop never see each other's state torn. Updates are
    last-write-wins per key.
    """

    def __init__(self) -> None:
        self._entries: dict[str, ProgressEntry] = {}
        self._listeners: list[ProgressListener] = []

    def update(self, key: str, percent: int, status: str) -> ProgressEntry:
        entry = ProgressEntry(percent=percent, status=status)
        self._entries[key] = entry
        self._notify(key, entry)
        return entry

    def get(self, key: str) -> ProgressEntry | None:
        return self._entries.get(key)

    def snapshot(self) -> Mapping[str, ProgressEntry]:
        return MappingProxyType(dict(self._entries))

    @property
    def average_percent(self) -> float:
        if not self._entries:
            return 0.0
        return round(sum(e.percent for e in self._entries.values()) / len(self._entries), 1)

    @property
    def completed_count(self) -> int:
        return sum(1 for e in self._entries.values() if e.percent == 100)

    def summary(self) -> ProgressSummary:
        return ProgressSummary(
            total=len(self._entries),
            completed=self.completed_count,
            average_percent=self.average_percent,
        )

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a change listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, key: str, entry: ProgressEntry) -> None:
        if not self._listeners:
            return
        summary = self.summary()
        for listener in list(self._listeners):
            try:
                listener(key, entry, summary)
            except Exception as e:
                # A broken observer must not fail the job that reported progress.
                logger.warning(f"Progress listener failed for {key}: {e}")
