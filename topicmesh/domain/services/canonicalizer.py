"""Channel-name classification and canonical topic naming.

A channel name is classified exactly once into :class:`Relative` or
:class:`Absolute`; every caller acts on the classification instead of
re-inspecting the string.

* ``light/measured`` declared by ``simple.streetlights`` is relative and
  becomes ``simple.streetlights.light.measured``.
* ``/london/hammersmith/transport/tube`` (path form) or
  ``london.hammersmith.transport.tube`` is absolute when
  ``london.hammersmith.transport`` is a known domain, and is used unchanged.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Union

from topicmesh.core.exceptions import NamingCollision
from topicmesh.domain.models.topic import CanonicalTopic, ChannelSpec

PATH_SEPARATOR = "/"
MAX_TOPIC_NAME_LENGTH = 249
_LEGAL_TOPIC_NAME = re.compile(r"^[A-Za-z0-9._-]+$")


@dataclass(frozen=True)
class Relative:
    """Name local to the declaring domain (already normalized to dots)."""

    path: str


@dataclass(frozen=True)
class Absolute:
    """Fully qualified name inside another known domain."""

    domain_root: str
    name: str


ChannelName = Union[Relative, Absolute]


def normalize(channel_name: str) -> str:
    """Turn path separators into dots and drop leading/trailing separators."""
    name = channel_name.strip().replace(PATH_SEPARATOR, ".").strip(".")
    if not name or ".." in name:
        raise NamingCollision(
            f"channel name {channel_name!r} has empty segments",
            resource=channel_name,
            action="canonicalize",
        )
    return name


def _longest_root(name: str, roots: Iterable[str]) -> Optional[str]:
    matches = [r for r in roots if name.startswith(r + ".")]
    return max(matches, key=len) if matches else None


def classify(
    domain_id: str, channel_name: str, known_domains: Iterable[str] = ()
) -> ChannelName:
    """Classify *channel_name* as declared by *domain_id*.

    Raises
    ------
    NamingCollision
        When the name is already qualified with *domain_id* (canonicalizing
        twice is refused), or is written in path form but matches no known
        domain root.
    """
    path_form = channel_name.strip().startswith(PATH_SEPARATOR)
    name = normalize(channel_name)
    root = _longest_root(name, set(known_domains) | {domain_id})

    if root == domain_id:
        raise NamingCollision(
            f"channel {channel_name!r} is already qualified with its own domain "
            f"{domain_id!r}; declare it relative",
            resource=channel_name,
            action="canonicalize",
        )
    if root is not None:
        return Absolute(domain_root=root, name=name)
    if path_form:
        raise NamingCollision(
            f"absolute channel {channel_name!r} does not belong to any known domain",
            resource=channel_name,
            action="canonicalize",
        )
    return Relative(path=name)


def validate_topic_name(name: str) -> str:
    if len(name) > MAX_TOPIC_NAME_LENGTH or not _LEGAL_TOPIC_NAME.match(name):
        raise NamingCollision(
            f"{name!r} is not a legal Kafka topic name",
            resource=name,
            action="canonicalize",
        )
    return name


def canonicalize(
    domain_id: str, channel_name: str, known_domains: Iterable[str] = ()
) -> str:
    """Return the cluster-wide topic name for *channel_name*."""
    kind = classify(domain_id, channel_name, known_domains)
    if isinstance(kind, Absolute):
        return validate_topic_name(kind.name)
    return validate_topic_name(f"{domain_id}.{kind.path}")


def resolve_topics(
    domain_id: str,
    channels: Iterable[ChannelSpec],
    known_domains: Iterable[str] = (),
) -> Dict[str, CanonicalTopic]:
    """Canonicalize every channel; fail on the first collision."""
    known = tuple(known_domains)
    topics: Dict[str, CanonicalTopic] = {}
    for channel in channels:
        kind = classify(domain_id, channel.name, known)
        name = canonicalize(domain_id, channel.name, known)
        if name in topics:
            raise NamingCollision(
                f"channels {topics[name].channel.name!r} and {channel.name!r} "
                f"both resolve to topic {name!r}",
                resource=name,
                action="canonicalize",
            )
        owner = kind.domain_root if isinstance(kind, Absolute) else domain_id
        topics[name] = CanonicalTopic(name=name, owner=owner, channel=channel)
    return topics
