"""Storage and offset accounting across partitions, replicas and groups."""
from __future__ import annotations

from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from topicmesh.core.exceptions import ClusterUnavailable
from topicmesh.domain.models.cluster import TopicDescription
from topicmesh.domain.models.telemetry import GroupOffsetTotal, TelemetryReport, TopicTelemetry
from topicmesh.infra.kafka.protocols import ClusterAdmin

T = TypeVar("T")
R = TypeVar("R")


class TelemetryAggregator:
    """
    Computes storage bytes, produced-record totals and consumer-group progress.

    Every call either fully succeeds or raises; there are no partial results.
    Sub-queries run on a thread pool and each is bounded by *query_timeout*
    seconds, a timeout surfacing as ``ClusterUnavailable``.
    """

    def __init__(self, admin: ClusterAdmin, *, max_workers: int = 8, query_timeout: float = 30.0) -> None:
        self._admin = admin
        self._max_workers = max_workers
        self._timeout = query_timeout

    # ------- public API -------

    def storage_bytes(self, topic: str) -> int:
        """On-disk bytes of every replica of every partition (replication included)."""
        return self._storage(topic, self._describe(topic))

    def total_offset(self, topic: str) -> int:
        """Sum of partition end offsets (high-watermarks)."""
        return self._offsets(topic, self._describe(topic))

    def topic_telemetry(self, topic: str) -> TopicTelemetry:
        desc = self._describe(topic)
        return TopicTelemetry(storage=self._storage(topic, desc), offset_total=self._offsets(topic, desc))

    def group_offsets(self, topic_prefix: str) -> List[GroupOffsetTotal]:
        """Committed-offset totals of groups consuming topics under *topic_prefix*, by group id."""
        groups = sorted(self._admin.list_consumer_groups())
        committed = self._fan_out(self._admin.consumer_group_offsets, groups, "list-consumer-group-offsets")

        out: List[GroupOffsetTotal] = []
        for group_id, offsets in zip(groups, committed):
            matching = [off for (topic, _partition), off in offsets.items() if topic.startswith(topic_prefix)]
            if not matching:
                continue
            out.append(GroupOffsetTotal(group_id=group_id, offset_total=sum(matching), partitions=len(matching)))
        return out

    def report(self, topics: Iterable[str], group_prefix: Optional[str] = None) -> TelemetryReport:
        names = list(topics)
        per_topic = self._fan_out(self.topic_telemetry, names, "topic-telemetry")
        groups = self.group_offsets(group_prefix) if group_prefix is not None else []
        return TelemetryReport(topics=dict(zip(names, per_topic)), groups=groups)

    # ------- internals -------

    def _describe(self, topic: str) -> Optional[TopicDescription]:
        found = self._admin.describe_topics([topic])
        return next((d for d in found if d.name == topic), None)

    def _storage(self, topic: str, desc: Optional[TopicDescription]) -> int:
        if desc is None or not desc.partitions:
            return 0
        targets = desc.replica_targets()
        partitions_by_broker: Dict[int, List[int]] = defaultdict(list)
        for partition, broker in targets:
            partitions_by_broker[broker].append(partition)

        brokers = sorted(partitions_by_broker)
        listings = self._fan_out(
            lambda b: self._admin.describe_log_dirs(b, topic, sorted(partitions_by_broker[b])),
            brokers,
            "describe-log-dirs",
            topic,
        )

        sizes: Dict[Tuple[int, int], int] = {}
        for entries in listings:
            for e in entries:
                if e.topic == topic and not e.is_future:
                    sizes[(e.partition, e.broker_id)] = e.size

        missing = [target for target in targets if target not in sizes]
        if missing:
            listed = ", ".join(f"partition {p} on broker {b}" for p, b in missing)
            raise ClusterUnavailable(
                f"no log dir entry for {listed}", resource=topic, action="describe-log-dirs"
            )
        return sum(sizes[target] for target in targets)

    def _offsets(self, topic: str, desc: Optional[TopicDescription]) -> int:
        if desc is None or not desc.partitions:
            return 0
        end = self._admin.end_offsets(topic, [p.partition for p in desc.partitions])
        return sum(end.values())

    def _fan_out(
        self,
        fn: Callable[[T], R],
        items: Sequence[T],
        action: str,
        resource: Optional[str] = None,
    ) -> List[R]:
        if not items:
            return []
        ex = ThreadPoolExecutor(max_workers=min(self._max_workers, len(items)))
        try:
            futures = [ex.submit(fn, item) for item in items]
            return [f.result(timeout=self._timeout) for f in futures]
        except FuturesTimeout as exc:
            raise ClusterUnavailable(
                f"sub-query timed out after {self._timeout}s", resource=resource, action=action
            ) from exc
        finally:
            ex.shutdown(wait=False, cancel_futures=True)
