import pytest

from topicmesh.core.exceptions import NamingCollision
from topicmesh.domain.models.topic import ChannelSpec, Direction
from topicmesh.domain.services.canonicalizer import (
    Absolute,
    Relative,
    canonicalize,
    classify,
    normalize,
    resolve_topics,
)

DOMAIN = "simple.streetlights"
KNOWN = ("london.hammersmith.transport",)


def _channel(name: str) -> ChannelSpec:
    return ChannelSpec(name=name, direction=Direction.PRODUCED)


@pytest.mark.parametrize(
    "channel, expected",
    [
        ("public/light/measured", "simple.streetlights.public.light.measured"),
        ("public.light.measured", "simple.streetlights.public.light.measured"),
        ("light", "simple.streetlights.light"),
        ("_private/user-signed-up", "simple.streetlights._private.user-signed-up"),
        ("public/light/", "simple.streetlights.public.light"),
    ],
)
def test_relative_names_are_prefixed_with_domain(channel, expected):
    assert canonicalize(DOMAIN, channel, KNOWN) == expected


@pytest.mark.parametrize(
    "channel",
    ["/london/hammersmith/transport/public/tube", "london.hammersmith.transport.public.tube"],
)
def test_absolute_names_are_left_unchanged(channel):
    assert canonicalize(DOMAIN, channel, KNOWN) == "london.hammersmith.transport.public.tube"
    kind = classify(DOMAIN, channel, KNOWN)
    assert kind == Absolute(domain_root="london.hammersmith.transport", name="london.hammersmith.transport.public.tube")


def test_classify_relative():
    assert classify(DOMAIN, "public/light/measured", KNOWN) == Relative(path="public.light.measured")


def test_canonicalizing_twice_is_refused():
    once = canonicalize(DOMAIN, "public/light/measured", KNOWN)
    with pytest.raises(NamingCollision) as err:
        canonicalize(DOMAIN, once, KNOWN)
    assert err.value.resource == once


def test_path_form_with_unknown_root_is_rejected():
    with pytest.raises(NamingCollision, match="does not belong to any known domain"):
        canonicalize(DOMAIN, "/paris/metro/public/line1", KNOWN)


def test_dotted_name_with_unknown_root_is_relative():
    assert canonicalize(DOMAIN, "paris.metro.line1", KNOWN) == "simple.streetlights.paris.metro.line1"


def test_longest_known_root_wins():
    known = ("london", "london.hammersmith.transport")
    kind = classify(DOMAIN, "/london/hammersmith/transport/public/tube", known)
    assert kind.domain_root == "london.hammersmith.transport"


def test_nested_foreign_domain_under_own_prefix_is_absolute():
    kind = classify("simple", "simple.streetlights.public.light", ("simple.streetlights",))
    assert kind == Absolute(domain_root="simple.streetlights", name="simple.streetlights.public.light")


@pytest.mark.parametrize("channel", ["", "/", "public//light", "public..light"])
def test_empty_segments_are_rejected(channel):
    with pytest.raises(NamingCollision):
        canonicalize(DOMAIN, channel, KNOWN)


@pytest.mark.parametrize("channel", ["public/light measured", "public/lümen", "a" * 250])
def test_illegal_topic_names_are_rejected(channel):
    with pytest.raises(NamingCollision, match="not a legal Kafka topic name"):
        canonicalize(DOMAIN, channel, KNOWN)


def test_normalize_strips_separators():
    assert normalize(" /a/b/c/ ") == "a.b.c"


def test_resolve_topics_reports_both_colliding_channels():
    with pytest.raises(NamingCollision) as err:
        resolve_topics(DOMAIN, [_channel("public/light"), _channel("public.light")], KNOWN)
    message = str(err.value)
    assert "'public/light'" in message and "'public.light'" in message
    assert err.value.resource == "simple.streetlights.public.light"


def test_resolve_topics_assigns_owners():
    topics = resolve_topics(
        DOMAIN,
        [_channel("public/light/measured"), _channel("/london/hammersmith/transport/public/tube")],
        KNOWN,
    )
    assert {name: t.owner for name, t in topics.items()} == {
        "simple.streetlights.public.light.measured": "simple.streetlights",
        "london.hammersmith.transport.public.tube": "london.hammersmith.transport",
    }
