"""
Log Store

One DailyLog per calendar day. A later submission for the same day replaces
the earlier one; nothing else removes a single entry. The whole collection is
cleared only by a plan reset.
"""
from datetime import date
from typing import Iterable, List, Optional

from schemas import DailyLog


class LogStore:
    """Ordered collection of daily logs keyed by date."""

    def __init__(self, logs: Optional[Iterable[DailyLog]] = None):
        self._logs: List[DailyLog] = []
        for log in logs or []:
            self.upsert(log)

    def __len__(self) -> int:
        return len(self._logs)

    def upsert(self, log: DailyLog) -> DailyLog:
        """
        Record a log, replacing any entry for the same date.

        The replacement moves to the end: display order is submission order.
        """
        self._logs = [existing for existing in self._logs if existing.date != log.date]
        self._logs.append(log)
        return log

    def get(self, day: date) -> Optional[DailyLog]:
        for log in self._logs:
            if log.date == day:
                return log
        return None

    def all(self) -> List[DailyLog]:
        """Logs in submission order."""
        return list(self._logs)

    def by_date(self) -> List[DailyLog]:
        """Logs sorted by date, for the trajectory chart."""
        return sorted(self._logs, key=lambda log: log.date)

    def latest(self) -> Optional[DailyLog]:
        return self._logs[-1] if self._logs else None

    def clear(self):
        self._logs = []

    def to_json(self) -> list:
        return [log.to_wire() for log in self._logs]

    @classmethod
    def from_json(cls, data: Optional[list]) -> "LogStore":
        return cls(DailyLog.model_validate(item) for item in data or [])
