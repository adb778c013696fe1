"""The resolved domain: a tenant namespace and the topics it declares."""
from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

from pydantic import BaseModel, ConfigDict, Field

from topicmesh.domain.models.access import principal_for
from topicmesh.domain.models.topic import CanonicalTopic, ChannelSpec


def _under(name: str, root: str) -> bool:
    return name == root or name.startswith(root + ".")


def in_namespace(name: str, domain_id: str, child_domains: Iterable[str] = ()) -> bool:
    """True when *name* is the domain id itself or sits underneath it.

    Names inside a *child_domains* namespace belong to that tenant, not to
    *domain_id*.
    """
    return _under(name, domain_id) and not any(_under(name, child) for child in child_domains)


class Domain(BaseModel):
    """Immutable result of resolving a document.

    ``topics`` is keyed by canonical topic name and preserves document order.
    ``child_domains`` lists the known tenants nested under this id.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., pattern=r"^[\w\-]+(\.[\w\-]+)*$", examples=["simple.streetlights"])
    topics: Dict[str, CanonicalTopic] = Field(default_factory=dict)
    child_domains: Tuple[str, ...] = ()

    @property
    def principal(self) -> str:
        return principal_for(self.id)

    @property
    def topic_prefix(self) -> str:
        return self.id + "."

    def canonical_channels(self) -> Dict[str, ChannelSpec]:
        """Canonical topic name -> declaring channel."""
        return {name: topic.channel for name, topic in self.topics.items()}

    def owned_topics(self) -> List[CanonicalTopic]:
        return [t for t in self.topics.values() if t.owner == self.id]

    def foreign_topics(self) -> List[CanonicalTopic]:
        return [t for t in self.topics.values() if t.owner != self.id]

    def owns(self, name: str) -> bool:
        """True when *name* is managed by this domain and by no nested or referenced tenant."""
        if name in self.topics and self.topics[name].owner != self.id:
            return False
        return in_namespace(name, self.id, self.child_domains)
