"""Search Stream Contract v1.

Defines the canonical types for:
  - The upstream catalog envelope (UpstreamEnvelope, UpstreamRecord)
  - The normalized record streamed to clients (ResultRecord)
  - The newline-delimited frame protocol (Frame and its variants)

One frame is one JSON object on one line. Optional fields are omitted from
the wire when unset.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from modsearch.core.errors import InvalidInput, PerRecordFailure

# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------


class SearchQuery(BaseModel):
    """One user search action. Consumed once by a gateway request."""

    model_config = ConfigDict(frozen=True)

    keyword: str

    @field_validator("keyword")
    @classmethod
    def _strip_keyword(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("keyword must not be empty")
        return value

    @classmethod
    def parse(cls, raw: str | None) -> SearchQuery:
        """Build a query from raw user input, raising InvalidInput when blank."""
        try:
            return cls(keyword=raw or "")
        except ValidationError as e:
            raise InvalidInput("Search keyword must not be empty", cause=e) from e


# ---------------------------------------------------------------------------
# Upstream envelope
# ---------------------------------------------------------------------------


class UpstreamRecord(BaseModel):
    """Raw catalog item. Unknown fields are kept but never used."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str | int = Field(alias="_id")
    title: str = Field(min_length=1)
    cover_url: str | None = Field(default=None, alias="coverUrl")


class UpstreamPage(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    total_count: int = Field(alias="totalCount", ge=0)
    # Items stay raw so one bad item fails only its own record.
    items: list[Any] = Field(default_factory=list, alias="data")


class UpstreamEnvelope(BaseModel):
    """`{data: {totalCount, data: [...]}}` as returned by the catalog search."""

    model_config = ConfigDict(extra="allow")

    data: UpstreamPage


# ---------------------------------------------------------------------------
# Normalized record
# ---------------------------------------------------------------------------


class ResultRecord(BaseModel):
    """Normalized output unit, serialized as `game` inside data frames."""

    id: str | int
    name: str
    image: str | None = None

    @classmethod
    def from_upstream(cls, raw: Any) -> ResultRecord:
        """Normalize one raw catalog item, raising PerRecordFailure when unusable."""
        record_id = raw.get("_id") if isinstance(raw, dict) else None
        try:
            record = UpstreamRecord.model_validate(raw)
        except ValidationError as e:
            raise PerRecordFailure(
                "Failed to read module information", record_id=record_id, cause=e
            ) from e
        return cls(id=record.id, name=record.title, image=record.cover_url or None)


# ---------------------------------------------------------------------------
# Frames
# ---------------------------------------------------------------------------


class InitFrame(BaseModel):
    type: Literal["init"] = "init"
    message: str | None = None
    total: int | None = Field(default=None, ge=0)


class GameStartFrame(BaseModel):
    type: Literal["gameStart"] = "gameStart"
    game: ResultRecord


class GameCompleteFrame(BaseModel):
    # Reserved: consumers handle it, the gateway does not emit it.
    type: Literal["gameComplete"] = "gameComplete"
    game: ResultRecord


class GameErrorFrame(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["gameError"] = "gameError"
    game_id: str | int | None = Field(default=None, alias="gameId")
    error: str


class ErrorFrame(BaseModel):
    type: Literal["error"] = "error"
    message: str


class EndFrame(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["end"] = "end"
    message: str | None = None
    success_count: int | None = Field(default=None, alias="successCount", ge=0)


Frame = Annotated[
    Union[InitFrame, GameStartFrame, GameCompleteFrame, GameErrorFrame, ErrorFrame, EndFrame],
    Field(discriminator="type"),
]

_frame_adapter: TypeAdapter[Frame] = TypeAdapter(Frame)


def encode_frame(frame: BaseModel) -> bytes:
    """Serialize one frame as a UTF-8 JSON line terminated by a newline."""
    payload = frame.model_dump(mode="json", by_alias=True, exclude_none=True)
    return (json.dumps(payload, ensure_ascii=False) + "\n").encode("utf-8")


def decode_frame(line: str) -> Frame:
    """Parse one JSON line into a frame. Raises ValueError on malformed input."""
    return _frame_adapter.validate_json(line)
