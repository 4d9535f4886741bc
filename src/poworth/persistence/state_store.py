"""State store — topics and commitments with per-topic transactions.

Records are keyed by topic_id and (topic_id, participant).

Every mutating operation runs inside transaction(topic_id):
1. The per-topic lock is taken, so two commits (or two reveals, or two
   settlements) on the same topic never interleave their
   read-modify-write of the shared aggregates.
2. The block receives deep copies of the topic and its commitments.
3. Only if the block exits cleanly (or calls txn.commit()) are the
   copies published. With a storage path, the new snapshot is written
   to disk first and memory is swapped only after the file replace
   succeeds. On any exception the copies are discarded and the stored
   state is untouched.

Readers always see either the state before or after a transaction,
never a partial write.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional

from poworth.errors import TopicExists, UnknownTopic
from poworth.models.topic import Commitment, Topic


logger = logging.getLogger("poworth.persistence.state_store")


class TopicTransaction:
    """Working copies for one topic, visible only to the transaction."""

    def __init__(
        self,
        topic_id: int,
        topic: Optional[Topic],
        commitments: Dict[str, Commitment],
        publish: Callable[[TopicTransaction], None],
    ) -> None:
        self.topic_id = topic_id
        self._topic = topic
        self._commitments = commitments
        self._publish = publish
        self.committed = False

    @property
    def topic(self) -> Topic:
        if self._topic is None:
            raise UnknownTopic(str(self.topic_id))
        return self._topic

    @property
    def exists(self) -> bool:
        return self._topic is not None

    def create_topic(self, topic: Topic) -> None:
        if self._topic is not None:
            raise TopicExists(str(topic.topic_id))
        self._topic = topic

    def get_commitment(self, participant: str) -> Optional[Commitment]:
        return self._commitments.get(participant)

    def add_commitment(self, commitment: Commitment) -> None:
        self._commitments[commitment.participant] = commitment

    def commitments(self) -> List[Commitment]:
        return sorted(self._commitments.values(), key=lambda c: c.submit_order)

    def commit(self) -> None:
        """Publish now, while the topic lock is still held.

        Call this as the last step inside any enclosing TransferBatch so
        a failed write rolls the transfers back before the lock drops.
        """
        self._publish(self)
        self.committed = True


class StateStore:
    """In-memory topic/commitment store with optional JSON persistence.

    Usage:
        store = StateStore()
        with store.transaction(7) as txn:
            txn.create_topic(topic)
        topic = store.get_topic(7)
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._topics: Dict[int, Topic] = {}
        self._commitments: Dict[int, Dict[str, Commitment]] = {}
        self._locks: Dict[int, threading.RLock] = {}
        self._lock_users: Dict[int, int] = {}
        self._registry_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._storage_path = storage_path

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    @contextmanager
    def _topic_lock(self, topic_id: int) -> Iterator[None]:
        """Hold the per-topic lock; drop its entry once unused for a missing topic."""
        with self._registry_lock:
            lock = self._locks.get(topic_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[topic_id] = lock
            self._lock_users[topic_id] = self._lock_users.get(topic_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._registry_lock:
                self._lock_users[topic_id] -= 1
                if self._lock_users[topic_id] == 0:
                    del self._lock_users[topic_id]
                    if topic_id not in self._topics:
                        del self._locks[topic_id]

    @contextmanager
    def transaction(self, topic_id: int) -> Iterator[TopicTransaction]:
        """Serializable read-modify-write of one topic and its commitments.

        Publishes on clean exit unless the block already called
        txn.commit().
        """
        with self._topic_lock(topic_id):
            with self._write_lock:
                topic = copy.deepcopy(self._topics.get(topic_id))
                commitments = copy.deepcopy(self._commitments.get(topic_id, {}))
            txn = TopicTransaction(topic_id, topic, commitments, self._publish)
            yield txn
            if not txn.committed:
                self._publish(txn)

    def _publish(self, txn: TopicTransaction) -> None:
        if not txn.exists:
            return
        with self._write_lock:
            topics = dict(self._topics)
            commitments = dict(self._commitments)
            topics[txn.topic_id] = txn.topic
            commitments[txn.topic_id] = {c.participant: c for c in txn.commitments()}
            if self._storage_path:
                self._write_to_file(topics, commitments)
            self._topics = topics
            self._commitments = commitments

    # --- Read access (copies; callers cannot mutate stored state) ---

    def get_topic(self, topic_id: int) -> Optional[Topic]:
        with self._write_lock:
            return copy.deepcopy(self._topics.get(topic_id))

    def get_commitment(self, topic_id: int, participant: str) -> Optional[Commitment]:
        with self._write_lock:
            return copy.deepcopy(self._commitments.get(topic_id, {}).get(participant))

    def list_commitments(self, topic_id: int) -> List[Commitment]:
        with self._write_lock:
            records = self._commitments.get(topic_id, {}).values()
            return sorted(copy.deepcopy(list(records)), key=lambda c: c.submit_order)

    def topics(self) -> List[Topic]:
        with self._write_lock:
            return [copy.deepcopy(t) for _, t in sorted(self._topics.items())]

    @property
    def topic_count(self) -> int:
        return len(self._topics)

    # --- File persistence ---

    def _write_to_file(
        self,
        topics: Dict[int, Topic],
        commitments: Dict[int, Dict[str, Commitment]],
    ) -> None:
        data = {
            "topics": [t.to_dict() for _, t in sorted(topics.items())],
            "commitments": [
                c.to_dict()
                for _, by_participant in sorted(commitments.items())
                for c in sorted(by_participant.values(), key=lambda c: c.submit_order)
            ],
        }
        tmp = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, sort_keys=True, indent=2), encoding="utf-8")
        tmp.replace(self._storage_path)

    def _load_from_file(self, path: Path) -> None:
        data = json.loads(path.read_text(encoding="utf-8"))
        for raw in data.get("topics", []):
            topic = Topic.from_dict(raw)
            self._topics[topic.topic_id] = topic
        for raw in data.get("commitments", []):
            c = Commitment.from_dict(raw)
            if c.topic_id not in self._topics:
                raise ValueError(
                    f"Commitment of {c.participant} references unknown topic {c.topic_id}"
                )
            self._commitments.setdefault(c.topic_id, {})[c.participant] = c
        logger.info("Loaded %d topics from %s", len(self._topics), path)
