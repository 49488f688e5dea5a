"""
Typed messages sent from the crawl worker process to the scheduler.

Plain frozen dataclasses so they pickle across the process queue.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class Progress:
    current_id: int
    start_id: int
    end_id: int
    vehicle_info: str = ""

    @property
    def fraction(self) -> float:
        if self.end_id <= self.start_id:
            return 1.0
        return (self.current_id - self.start_id) / (self.end_id - self.start_id)


@dataclass(frozen=True)
class BatchPersisted:
    count: int
    first_id: int
    last_id: int


@dataclass(frozen=True)
class InjectionCompleted:
    report: Dict[str, Any] = field(default_factory=dict)
    message: str = "Data injection process completed successfully"


@dataclass(frozen=True)
class InjectionError:
    error: str


@dataclass(frozen=True)
class Completed:
    fetched: int
    persisted: int
    missing: int
    message: str = "All data fetched, stored, and injected successfully"


@dataclass(frozen=True)
class Error:
    error: str


SyncMessage = Union[Progress, BatchPersisted, InjectionCompleted, InjectionError, Completed, Error]

TERMINAL_MESSAGES = (Completed, Error)


def is_terminal(message: Optional[SyncMessage]) -> bool:
    return isinstance(message, TERMINAL_MESSAGES)
