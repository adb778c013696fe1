"""Derive permission grants from a resolved domain."""
from __future__ import annotations

from typing import List

from topicmesh.domain.models.access import (
    ANY_PRINCIPAL,
    AccessBinding,
    Operation,
    PatternType,
    ResourceType,
    principal_for,
)
from topicmesh.domain.models.domain import Domain
from topicmesh.domain.models.topic import Direction

PUBLIC_SEGMENT = "_public"

_OWNER_TOPIC_OPERATIONS = (Operation.READ, Operation.WRITE, Operation.DESCRIBE)


def _is_public(domain: Domain, topic_name: str) -> bool:
    local = topic_name[len(domain.topic_prefix):]
    return local.split(".", 1)[0] == PUBLIC_SEGMENT


def derive_bindings(domain: Domain) -> List[AccessBinding]:
    """Every grant implied by *domain*, deduplicated, in a stable order.

    * the owner gets read/write/describe on ``<domain>.`` topics and read on
      ``<domain>`` consumer groups;
    * ``_public`` channels are readable by everyone;
    * ``grant-access:<other>`` tags give ``<other>`` the minimum operation:
      read when the domain produces the channel, write when it consumes it;
    * absolute references to foreign topics derive a *foreign* binding for
      this domain that only the owning domain can apply.
    """
    owner = domain.principal
    bindings: List[AccessBinding] = [
        AccessBinding(
            principal=owner,
            pattern_type=PatternType.PREFIXED,
            resource_name=domain.topic_prefix,
            operation=op,
        )
        for op in _OWNER_TOPIC_OPERATIONS
    ]
    bindings.append(
        AccessBinding(
            principal=owner,
            resource_type=ResourceType.GROUP,
            pattern_type=PatternType.PREFIXED,
            resource_name=domain.id,
            operation=Operation.READ,
        )
    )

    for topic in domain.owned_topics():
        channel = topic.channel
        if _is_public(domain, topic.name):
            for op in (Operation.READ, Operation.DESCRIBE):
                bindings.append(AccessBinding(principal=ANY_PRINCIPAL, resource_name=topic.name, operation=op))
        needed = Operation.READ if channel.direction is Direction.PRODUCED else Operation.WRITE
        for grantee in channel.grants:
            for op in (needed, Operation.DESCRIBE):
                bindings.append(
                    AccessBinding(principal=principal_for(grantee), resource_name=topic.name, operation=op)
                )

    for topic in domain.foreign_topics():
        needed = Operation.WRITE if topic.channel.direction is Direction.PRODUCED else Operation.READ
        bindings.append(
            AccessBinding(principal=owner, resource_name=topic.name, operation=needed, foreign=True)
        )

    seen = set()
    unique: List[AccessBinding] = []
    for binding in bindings:
        if binding.key not in seen:
            seen.add(binding.key)
            unique.append(binding)
    return unique
