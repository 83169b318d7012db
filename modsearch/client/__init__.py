"""Client side: incremental frame decoding, live results, supersession."""

from modsearch.client.consumer import StreamConsumer
from modsearch.client.session import LiveResultSet, SearchSession, SearchStatus, StatusState
from modsearch.client.view import ConsoleView, SearchView

__all__ = [
    "ConsoleView",
    "LiveResultSet",
    "SearchSession",
    "SearchStatus",
    "SearchView",
    "StatusState",
    "StreamConsumer",
]
