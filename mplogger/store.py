"""
In-memory aggregation store for log records.

Records are indexed by process and then by thread, both in first-seen
order, and bounded by a single capacity shared across every stream. When
the bound is exceeded the globally oldest record is evicted first, so the
store behaves like one ring buffer logically partitioned by
(process_id, thread_id).

Concurrency:
    - Each ProcessGroup has its own lock guarding its streams. A process
      writes through exactly one connection, so ingestion from different
      processes never contends.
    - A short arrival lock numbers records globally and appends them to
      the eviction order. It is held for two O(1) operations only.
    - Reads copy records out under the group lock. Records are immutable,
      so a returned window is never affected by later eviction.

Lock order is index -> group -> arrival. No lock is held across I/O.
"""

import threading
import time
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

from .models import LogLevel, LogRecord, StorageInfo


class ThreadStream:
    """Append-only, arrival-ordered records of one (process, thread)."""

    def __init__(self, thread_id: int):
        self.thread_id = thread_id
        self.records: Deque[LogRecord] = deque()


class ProcessGroup:
    """
    Index of the thread streams of one process.

    Attributes:
        process_id: The process this group belongs to.
        lock: Guards streams, connection_id, next_sequence and retired.
        streams: Thread id to stream, in first-seen order.
        connection_id: Id of the live connection, or None.
        next_sequence: One past the highest sequence ingested.
        retired: Set once garbage-collected; ingestion must look up again.
    """

    def __init__(self, process_id: int):
        self.process_id = process_id
        self.lock = threading.Lock()
        self.streams: Dict[int, ThreadStream] = {}
        self.connection_id: Optional[int] = None
        self.next_sequence = 0
        self.retired = False

    def has_records(self) -> bool:
        return any(stream.records for stream in self.streams.values())

    def record_count(self) -> int:
        return sum(len(stream.records) for stream in self.streams.values())


class AggregationStore:
    """
    Concurrent, bounded store of log records keyed by process and thread.

    Example:
        >>> store = AggregationStore(capacity=1000)
        >>> store.ingest(record)
        >>> store.snapshot_processes()
        [10, 20]
        >>> store.read_window(10, 1, LogLevel.INFO, offset=0, count=50)
    """

    def __init__(self, capacity: int = 100_000):
        if capacity < 1:
            raise ValueError(f"Capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._groups: Dict[int, ProcessGroup] = {}
        self._index_lock = threading.Lock()
        # One (group, stream) entry per held record, oldest first
        self._order: Deque[Tuple[ProcessGroup, ThreadStream]] = deque()
        self._arrival_lock = threading.Lock()
        self._last_arrival = 0
        self._evicted = 0

    def __len__(self) -> int:
        return len(self._order)

    @property
    def evicted(self) -> int:
        """Number of records evicted under capacity pressure so far."""
        return self._evicted

    # --- Ingestion ---

    def _get_or_create_group(self, process_id: int) -> ProcessGroup:
        group = self._groups.get(process_id)
        if group is not None:
            return group
        with self._index_lock:
            group = self._groups.get(process_id)
            if group is None:
                group = ProcessGroup(process_id)
                self._groups[process_id] = group
            return group

    def ingest(self, record: LogRecord, connection_id: Optional[int] = None) -> Optional[LogRecord]:
        """
        Append a record to its thread stream.

        Creates the process group and thread stream on first sight, stamps
        the record with its global arrival number and ingestion time, then
        evicts the globally oldest records while over capacity.

        Args:
            record: The record to store
            connection_id: When given, the record is only accepted if this
                           is still the live connection of its process

        Returns:
            Optional[LogRecord]: The stored record, or None if the
                                 connection has been superseded
        """
        while True:
            group = self._get_or_create_group(record.process_id)
            with group.lock:
                if group.retired:
                    continue
                if connection_id is not None and group.connection_id != connection_id:
                    return None

                stream = group.streams.get(record.thread_id)
                if stream is None:
                    stream = ThreadStream(record.thread_id)
                    group.streams[record.thread_id] = stream

                with self._arrival_lock:
                    self._last_arrival += 1
                    arrival = self._last_arrival
                    self._order.append((group, stream))

                stored = record.model_copy(update={"arrival": arrival, "received_at": time.time()})
                stream.records.append(stored)
                if record.sequence >= group.next_sequence:
                    group.next_sequence = record.sequence + 1
            break

        self._evict_overflow()
        return stored

    def _evict_overflow(self) -> None:
        while len(self._order) > self.capacity:
            with self._arrival_lock:
                if len(self._order) <= self.capacity:
                    return
                group, stream = self._order.popleft()
                self._evicted += 1
            # The matching record was appended under this lock, so it is
            # the head of the stream by the time we get here.
            with group.lock:
                stream.records.popleft()

    # --- Connections ---

    def register_connection(self, process_id: int, connection_id: int) -> int:
        """
        Make a connection the live one for its process.

        A previously registered connection for the same process is
        superseded; its records stay in the store.

        Args:
            process_id: Process announced by the connection's first frame
            connection_id: Server-local id of the connection

        Returns:
            int: The sequence number the connection should continue from
        """
        while True:
            group = self._get_or_create_group(process_id)
            with group.lock:
                if group.retired:
                    continue
                group.connection_id = connection_id
                return group.next_sequence

    def release_connection(self, process_id: int, connection_id: int) -> None:
        """Forget a connection. Safe to call twice or for a superseded id."""
        group = self._groups.get(process_id)
        if group is None:
            return
        with group.lock:
            if group.connection_id == connection_id:
                group.connection_id = None

    def collect_garbage(self) -> List[int]:
        """
        Drop process groups that hold no records and have no live connection.

        Returns:
            List[int]: The process ids that were removed
        """
        removed = []
        with self._index_lock:
            for process_id, group in list(self._groups.items()):
                with group.lock:
                    if group.connection_id is None and not group.has_records():
                        group.retired = True
                        del self._groups[process_id]
                        removed.append(process_id)
        return removed

    # --- Reads ---

    def snapshot_processes(self) -> List[int]:
        """Return known process ids in first-seen order."""
        self.collect_garbage()
        with self._index_lock:
            return list(self._groups)

    def snapshot_threads(self, process_id: int) -> List[int]:
        """Return the thread ids of a process in first-seen order."""
        group = self._groups.get(process_id)
        if group is None:
            return []
        with group.lock:
            return list(group.streams)

    def _copy_stream(self, process_id: int, thread_id: int) -> List[LogRecord]:
        group = self._groups.get(process_id)
        if group is None:
            return []
        with group.lock:
            stream = group.streams.get(thread_id)
            if stream is None:
                return []
            return list(stream.records)

    def read_window(
        self,
        process_id: int,
        thread_id: int,
        level_filter=LogLevel.TRACE,
        offset: int = 0,
        count: int = 50,
    ) -> List[LogRecord]:
        """
        Return a window of records for one stream.

        Only records at or above level_filter are considered. The window
        holds up to count of them and ends offset matching records back
        from the most recent one.

        Args:
            process_id: Process to read from
            thread_id: Thread to read from
            level_filter: Minimum level to include
            offset: Matching records to skip from the newest end
            count: Maximum records to return

        Returns:
            List[LogRecord]: Records in ascending order; fewer than count
                             (possibly none) on short history
        """
        if count <= 0:
            return []
        level = LogLevel.parse(level_filter)
        offset = max(0, offset)

        window = []
        skipped = 0
        for record in reversed(self._copy_stream(process_id, thread_id)):
            if record.level < level:
                continue
            if skipped < offset:
                skipped += 1
                continue
            window.append(record)
            if len(window) >= count:
                break
        window.reverse()
        return window

    def count_matching(
        self,
        process_id: int,
        thread_id: int,
        level_filter=LogLevel.TRACE,
        newer_than: Optional[int] = None,
    ) -> int:
        """
        Count the records of a stream at or above a level.

        Args:
            process_id: Process to count in
            thread_id: Thread to count in
            level_filter: Minimum level to include
            newer_than: Only count records with a greater arrival number

        Returns:
            int: Number of matching records
        """
        level = LogLevel.parse(level_filter)
        if newer_than is None and level == LogLevel.TRACE:
            group = self._groups.get(process_id)
            if group is None:
                return 0
            with group.lock:
                stream = group.streams.get(thread_id)
                return len(stream.records) if stream is not None else 0

        # Scans a copy; the group lock is held only while copying
        total = 0
        for record in reversed(self._copy_stream(process_id, thread_id)):
            if newer_than is not None and record.arrival <= newer_than:
                break
            if record.level >= level:
                total += 1
        return total

    def latest_arrival(self, process_id: int, thread_id: int, level_filter=LogLevel.TRACE) -> int:
        """Arrival number of the newest matching record of a stream, 0 if none."""
        level = LogLevel.parse(level_filter)
        group = self._groups.get(process_id)
        if group is None:
            return 0
        with group.lock:
            stream = group.streams.get(thread_id)
            if stream is None:
                return 0
            for record in reversed(stream.records):
                if record.level >= level:
                    return record.arrival
            return 0

    def stats(self) -> StorageInfo:
        """Describe the current state of the store."""
        with self._index_lock:
            groups = list(self._groups.values())
        per_process = {}
        for group in groups:
            with group.lock:
                per_process[group.process_id] = group.record_count()
        count = len(self._order)
        return StorageInfo(
            count=count,
            capacity=self.capacity,
            evicted=self._evicted,
            processes=len(groups),
            is_full=count >= self.capacity,
            per_process=per_process,
        )
