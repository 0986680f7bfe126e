"""WebSocket message schema: a closed set of JSON records tagged by ``type``."""

from __future__ import annotations

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
)

ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 6
ROOM_CODE_PATTERN = r"^[A-Z2-9]{4,12}$"

# Error codes sent in ``error`` messages
ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
ALREADY_IN_ROOM = "ALREADY_IN_ROOM"
ROOM_FULL = "ROOM_FULL"
NOT_IN_ROOM = "NOT_IN_ROOM"
INVALID_MOVE = "INVALID_MOVE"
INVALID_MESSAGE = "INVALID_MESSAGE"


def normalize_room_code(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().upper()
    return value


# ---------- Client -> server ----------


class _RoomMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_code: str = Field(alias="roomCode", pattern=ROOM_CODE_PATTERN)

    @field_validator("room_code", mode="before")
    @classmethod
    def ensure_normalized(cls, value: Any) -> Any:
        return normalize_room_code(value)


class CreateRoom(BaseModel):
    type: Literal["create_room"]


class JoinRoom(_RoomMessage):
    type: Literal["join_room"]


class MakeMove(_RoomMessage):
    type: Literal["make_move"]
    # ``col`` is what older clients send
    column: int = Field(
        ge=0, le=6, strict=True, validation_alias=AliasChoices("column", "col")
    )


class Leave(_RoomMessage):
    type: Literal["leave"]


ClientMessage = Annotated[
    Union[CreateRoom, JoinRoom, MakeMove, Leave], Field(discriminator="type")
]
_CLIENT_MESSAGE = TypeAdapter(ClientMessage)


def parse_client_message(raw: str | bytes) -> ClientMessage:
    """Validate one inbound frame; raises ``pydantic.ValidationError`` if it is bad."""
    return _CLIENT_MESSAGE.validate_json(raw)


# ---------- Server -> client ----------


class You(BaseModel):
    player_id: str = Field(serialization_alias="playerId")


class _ServerMessage(BaseModel):
    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class RoomCreated(_ServerMessage):
    type: Literal["room_created"] = "room_created"
    room_code: str = Field(serialization_alias="roomCode")
    you: You


class RoomJoined(_ServerMessage):
    type: Literal["room_joined"] = "room_joined"
    room_code: str = Field(serialization_alias="roomCode")
    you: You
    state: Dict[str, Any]


class StateMessage(_ServerMessage):
    type: Literal["state"] = "state"
    room_code: str = Field(serialization_alias="roomCode")
    state: Dict[str, Any]


class ErrorMessage(_ServerMessage):
    type: Literal["error"] = "error"
    room_code: Optional[str] = Field(default=None, serialization_alias="roomCode")
    code: str
    message: str
