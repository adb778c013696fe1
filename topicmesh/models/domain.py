from typing import List, Optional

from pydantic import BaseModel

from topicmesh.domain.models.access import AccessBinding


class ChannelView(BaseModel):
    topic: str
    channel: str
    owner: str
    direction: str
    partitions: int
    replicationFactor: int
    retentionMs: Optional[int] = None
    schemaRef: Optional[str] = None


class DomainView(BaseModel):
    id: str
    channels: List[ChannelView]
    bindings: List[AccessBinding]
