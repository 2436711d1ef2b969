"""Poll endpoint response models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PollMessage(BaseModel):
    """One ``{id, data}`` message from ``/poll``.

    Ids are opaque but order-comparable. A message without a usable id is
    kept with ``id=""``; the dedup gate never delivers it.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = ""
    data: str = ""

    @field_validator("id", "data", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, (str, int)):
            return str(value)
        return ""


class PollBatch(BaseModel):
    """``{messages: [...]}`` body. Anything unrecognisable becomes an empty batch."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    messages: list[PollMessage] = Field(default_factory=list)

    @field_validator("messages", mode="before")
    @classmethod
    def _tolerate_garbage(cls, value: Any) -> list[Any]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    @classmethod
    def from_payload(cls, payload: Any) -> PollBatch:
        if not isinstance(payload, dict):
            return cls()
        return cls.model_validate(payload)
