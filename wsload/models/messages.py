from enum import Enum
from typing import List, Union
from pydantic import BaseModel, Field


class MessageType(str, Enum):
    SUB = "sub"
    UNSUB = "unsub"
    TICK = "tick"


class SubscribeMessage(BaseModel):
    type: MessageType = Field(default=MessageType.SUB)
    topics: List[str] = Field(..., min_length=1)


class UnsubscribeMessage(BaseModel):
    type: MessageType = Field(default=MessageType.UNSUB)
    topics: List[str] = Field(..., min_length=1)


class TickMessage(BaseModel):
    type: MessageType = Field(default=MessageType.TICK)
    topic: str
    seq: int
    ts_ms: int


ClientMessage = Union[SubscribeMessage, UnsubscribeMessage]


def subscribe_frame(topic: str) -> str:
    """Text frame a virtual user sends once its connection opens."""
    return SubscribeMessage(topics=[topic]).model_dump_json()
