"""Client-side search session and live result set."""

import asyncio
import itertools
from dataclasses import dataclass, field
from enum import StrEnum

from modsearch.contracts.stream_v1 import ResultRecord

_session_ids = itertools.count(1)


class StatusState(StrEnum):
    IDLE = "idle"
    SEARCHING = "searching"
    SUCCESS = "success"
    ERROR = "error"
    NO_RESULTS = "no-results"


TERMINAL_STATES = frozenset({StatusState.SUCCESS, StatusState.ERROR, StatusState.NO_RESULTS})


@dataclass(frozen=True)
class SearchStatus:
    state: StatusState
    message: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def can_retry(self) -> bool:
        return self.state == StatusState.ERROR


class LiveResultSet:
    """Records keyed by id, iterated in order of first arrival. Upserts keep position."""

    def __init__(self) -> None:
        self._records: dict[str | int, ResultRecord] = {}

    def upsert(self, record: ResultRecord) -> None:
        self._records[record.id] = record

    def get(self, record_id: str | int) -> ResultRecord | None:
        return self._records.get(record_id)

    def snapshot(self) -> list[ResultRecord]:
        return list(self._records.values())

    def __len__(self) -> int:
        return len(self._records)

    def __bool__(self) -> bool:
        return bool(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records


@dataclass(eq=False)
class SearchSession:
    """One search attempt. Only an authoritative session may change visible state."""

    keyword: str
    retry: bool = False
    id: int = field(default_factory=lambda: next(_session_ids))
    authoritative: bool = True
    saw_end: bool = False
    saw_error: bool = False
    task: asyncio.Task | None = field(default=None, repr=False)

    def supersede(self) -> None:
        """Make this session inert and cancel its connection."""
        self.authoritative = False
        if self.task is not None and not self.task.done():
            self.task.cancel()
