"""Search stream contract v1: query, upstream envelope, normalized records, and frames."""

from modsearch.contracts.stream_v1 import (
    EndFrame,
    ErrorFrame,
    Frame,
    GameCompleteFrame,
    GameErrorFrame,
    GameStartFrame,
    InitFrame,
    ResultRecord,
    SearchQuery,
    UpstreamEnvelope,
    decode_frame,
    encode_frame,
)

__all__ = [
    "EndFrame",
    "ErrorFrame",
    "Frame",
    "GameCompleteFrame",
    "GameErrorFrame",
    "GameStartFrame",
    "InitFrame",
    "ResultRecord",
    "SearchQuery",
    "UpstreamEnvelope",
    "decode_frame",
    "encode_frame",
]
