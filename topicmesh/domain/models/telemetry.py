"""Storage and consumption telemetry payloads."""
from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field


class TopicTelemetry(BaseModel):
    """Raw storage footprint and produced-record count of one topic."""

    model_config = ConfigDict(populate_by_name=True)

    storage: int = Field(..., ge=0, description="Bytes on disk, all replicas included")
    offset_total: int = Field(..., ge=0, alias="offset-total")


class GroupOffsetTotal(BaseModel):
    """Committed progress of one consumer group on a topic prefix."""

    group_id: str
    offset_total: int = Field(..., ge=0)
    partitions: int = Field(default=0, ge=0)


class TelemetryReport(BaseModel):
    topics: Dict[str, TopicTelemetry] = Field(default_factory=dict)
    groups: List[GroupOffsetTotal] = Field(default_factory=list)
