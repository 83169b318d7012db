"""Gateway side: upstream search, batched fan-out, frame streaming."""

from modsearch.search.gateway import GatewayState, SearchGateway
from modsearch.search.scheduler import BatchReport, run_batched

__all__ = [
    "BatchReport",
    "GatewayState",
    "SearchGateway",
    "run_batched",
]
