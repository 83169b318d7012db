"""View seam for the stream consumer, plus a terminal implementation."""

import sys
from typing import Protocol

from modsearch.client.session import SearchStatus, StatusState
from modsearch.contracts.stream_v1 import ResultRecord


class SearchView(Protocol):
    """What the consumer drives. A dialog, grid or terminal implements it."""

    def render_results(self, records: list[ResultRecord], total: int) -> None: ...

    def set_status(self, status: SearchStatus) -> None: ...

    def notify_failure(self, title: str, description: str) -> None: ...


class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"


def colorize(text: str, *colors: str) -> str:
    color_codes = "".join(colors)
    return f"{color_codes}{text}{Colors.RESET}"


_STATUS_COLORS = {
    StatusState.IDLE: (Colors.DIM,),
    StatusState.SEARCHING: (Colors.CYAN,),
    StatusState.SUCCESS: (Colors.GREEN,),
    StatusState.ERROR: (Colors.RED, Colors.BOLD),
    StatusState.NO_RESULTS: (Colors.YELLOW,),
}


class ConsoleView:
    """Prints status changes and newly arrived records."""

    def __init__(self, stream=None):
        self._out = stream or sys.stdout
        self._shown: dict[str | int, str] = {}
        self.status = SearchStatus(StatusState.IDLE)
        self.records: list[ResultRecord] = []

    def _print(self, text: str) -> None:
        self._out.write(text + "\n")
        self._out.flush()

    def render_results(self, records: list[ResultRecord], total: int) -> None:
        self.records = records
        if not records:
            self._shown.clear()
            return
        for index, record in enumerate(records, start=1):
            if self._shown.get(record.id) == record.name:
                continue
            self._shown[record.id] = record.name
            counter = f"{index}/{total}" if total else str(index)
            cover = colorize(record.image, Colors.DIM) if record.image else colorize("(no cover)", Colors.DIM)
            self._print(f"  {colorize(counter, Colors.MAGENTA)}  {record.name}  {cover}")

    def set_status(self, status: SearchStatus) -> None:
        self.status = status
        if status.state == StatusState.SUCCESS:
            self._print(colorize(f"  ✓ {len(self.records)} result(s)", Colors.GREEN))
            return
        text = status.message or status.state.value
        line = f"  {colorize(text, *_STATUS_COLORS[status.state])}"
        if status.can_retry:
            line += colorize("  (type /retry to try again)", Colors.DIM)
        self._print(line)

    def notify_failure(self, title: str, description: str) -> None:
        self._print(colorize(f"  {title}: {description}", Colors.RED))
