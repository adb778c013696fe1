import pytest

from topicmesh.core.exceptions import ClusterUnavailable
from topicmesh.domain.services.telemetry import TelemetryAggregator

TOPIC = "simple.streetlights.public.light.measured"


@pytest.fixture
def busy_topic(admin):
    """10 partitions, replication factor 2, 56000 bytes per replica, 1000 records per partition."""
    desc = admin.add_topic(TOPIC, 10, 2)
    for partition, broker in desc.replica_targets():
        admin.sizes[(TOPIC, partition, broker)] = 56_000
    for partition in range(10):
        admin.end[(TOPIC, partition)] = 1_000
    return desc


def test_storage_counts_every_replica(admin, busy_topic):
    assert TelemetryAggregator(admin).storage_bytes(TOPIC) == 1_120_000

    queried = {(p, broker) for broker, _topic, parts in admin.log_dir_requests for p in parts}
    assert len(queried) == 20
    assert queried == set(busy_topic.replica_targets())
    # one log-dir request per broker
    assert sorted(b for b, _, _ in admin.log_dir_requests) == [0, 1, 2]


def test_total_offset_sums_partitions(admin, busy_topic):
    assert TelemetryAggregator(admin).total_offset(TOPIC) == 10_000


def test_topic_telemetry_shape(admin, busy_topic):
    usage = TelemetryAggregator(admin).topic_telemetry(TOPIC)
    assert usage.model_dump(by_alias=True) == {"storage": 1_120_000, "offset-total": 10_000}


def test_empty_and_absent_topics_are_zero(admin):
    admin.add_topic("simple.streetlights.empty", 0, 1)
    aggregator = TelemetryAggregator(admin)
    assert aggregator.storage_bytes("simple.streetlights.empty") == 0
    assert aggregator.total_offset("simple.streetlights.empty") == 0
    assert aggregator.storage_bytes("simple.streetlights.absent") == 0
    assert admin.log_dir_requests == []


def test_future_replicas_are_ignored(admin, busy_topic):
    admin.future_sizes[(TOPIC, 0, 0)] = 999_999
    assert TelemetryAggregator(admin).storage_bytes(TOPIC) == 1_120_000


def test_missing_replica_entry_is_unavailable_not_undercounted(admin, busy_topic):
    partition, broker = busy_topic.replica_targets()[0]
    del admin.sizes[(TOPIC, partition, broker)]
    with pytest.raises(ClusterUnavailable, match=f"partition {partition} on broker {broker}") as err:
        TelemetryAggregator(admin).storage_bytes(TOPIC)
    assert err.value.resource == TOPIC
    assert err.value.action == "describe-log-dirs"


def test_missing_replica_fails_the_whole_report(admin):
    desc = admin.add_topic(TOPIC, 2, 2)
    for partition, broker in desc.replica_targets():
        admin.sizes[(TOPIC, partition, broker)] = 100
    del admin.sizes[(TOPIC, 1, desc.partitions[1].replicas[1])]
    with pytest.raises(ClusterUnavailable):
        TelemetryAggregator(admin).report([TOPIC])


def test_unreachable_cluster_is_an_error_not_zero(admin, busy_topic):
    admin.unavailable = True
    with pytest.raises(ClusterUnavailable):
        TelemetryAggregator(admin).storage_bytes(TOPIC)


def test_failing_sub_query_fails_the_whole_call(admin, busy_topic):
    admin.fail_on[("describe_log_dirs", f"{TOPIC}@1")] = ClusterUnavailable("broker 1 down")
    with pytest.raises(ClusterUnavailable, match="broker 1 down"):
        TelemetryAggregator(admin).storage_bytes(TOPIC)


def test_slow_sub_query_times_out(admin, busy_topic):
    admin.log_dir_delay = 0.5
    with pytest.raises(ClusterUnavailable, match="timed out") as err:
        TelemetryAggregator(admin, query_timeout=0.05).storage_bytes(TOPIC)
    assert err.value.action == "describe-log-dirs"


def test_group_offsets_filter_and_order(admin):
    admin.groups = {
        "b-group": {(TOPIC, 0): 5, (TOPIC, 1): 7},
        "a-group": {(TOPIC, 0): 3, ("acme.payments.settled", 0): 100},
        "c-group": {("acme.payments.settled", 0): 1},
    }
    groups = TelemetryAggregator(admin).group_offsets("simple.streetlights")
    assert [(g.group_id, g.offset_total, g.partitions) for g in groups] == [
        ("a-group", 3, 1),
        ("b-group", 12, 2),
    ]


def test_report_combines_topics_and_groups(admin, busy_topic):
    admin.groups = {"dashboards": {(TOPIC, 0): 400}}
    report = TelemetryAggregator(admin).report([TOPIC], group_prefix="simple.streetlights")
    assert report.topics[TOPIC].storage == 1_120_000
    assert report.topics[TOPIC].offset_total == 10_000
    assert [g.group_id for g in report.groups] == ["dashboards"]
