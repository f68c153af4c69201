from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class WireMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str

    def to_wire(self) -> str:
        return self.model_dump_json(by_alias=True)


class ConnectedMessage(WireMessage):
    type: str = "connected"
    connection_id: str = Field(alias="connectionId")
    session_id: str = Field(alias="sessionId")
    message: str = "Connected to transcription service"


class TranscriptMessage(WireMessage):
    type: str = "transcript"
    data: dict[str, Any]


class StatusMessage(WireMessage):
    type: str = "status"
    status: Literal["started", "stopped"]
    message: str


class ErrorMessage(WireMessage):
    type: str = "error"
    error: str
