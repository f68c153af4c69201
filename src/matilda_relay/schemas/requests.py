from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class BaseMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str


class ConfigRequest(BaseMessage):
    type: str = "config"
    config: dict[str, Any] | None = None
