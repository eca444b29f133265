"""
Response models for the live tail HTTP API.
Wire names follow the client protocol (camelCase for cursors and timestamps).
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from ..core.schema import BootstrapResult, CollectionStats, Event, TailResult


class EventModel(BaseModel):
    id: str
    category: str
    fields: Dict[str, Any]

    @classmethod
    def from_event(cls, event: Event) -> "EventModel":
        return cls(**event.to_dict())


class BootstrapResponse(BaseModel):
    cursor: Optional[str]
    empty: bool

    @classmethod
    def from_result(cls, result: BootstrapResult) -> "BootstrapResponse":
        return cls(cursor=result.cursor, empty=result.empty)


class TailResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: List[EventModel]
    next_cursor: Optional[str] = Field(alias="nextCursor")
    count: int
    server_time: datetime = Field(alias="serverTime")

    @classmethod
    def from_result(cls, result: TailResult) -> "TailResponse":
        return cls(
            items=[EventModel.from_event(e) for e in result.items],
            next_cursor=result.next_cursor,
            count=result.count,
            server_time=result.server_time,
        )


class CollectionStatsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    namespace: str
    count: int
    newest_id: Optional[str] = Field(alias="newestId")
    oldest_id: Optional[str] = Field(alias="oldestId")
    server_time: datetime = Field(alias="serverTime")

    @classmethod
    def from_stats(cls, stats: CollectionStats) -> "CollectionStatsResponse":
        return cls(
            namespace=stats.collection,
            count=stats.count,
            newest_id=stats.newest,
            oldest_id=stats.oldest,
            server_time=stats.server_time,
        )


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    categories: List[str]


class ErrorResponse(BaseModel):
    error: str
    detail: str
