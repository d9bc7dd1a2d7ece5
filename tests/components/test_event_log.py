"""Tests for the append-only event log."""

import threading

from distributedruntime.components.event_log import EventLog, format_event


class TestEventLog:
    """Test EventLog."""

    def test_append_returns_index(self):
        """Test appends are indexed in order."""
        log = EventLog()

        assert log.append("a") == 0
        assert log.append("b") == 1
        assert len(log) == 2
        assert log.snapshot() == ("a", "b")

    def test_record_prefixes_timestamp(self):
        """Test record stores timestamped entries."""
        log = EventLog()

        index, entry = log.record("hello", timestamp_ms=1700000000000)

        assert index == 0
        assert entry == "1700000000000: hello"
        assert list(log) == ["1700000000000: hello"]

    def test_format_event_uses_current_time(self):
        """Test default timestamp is numeric milliseconds."""
        timestamp, _, data = format_event("x").partition(": ")

        assert data == "x"
        assert timestamp.isdigit()
        assert len(timestamp) >= 13

    def test_replace(self):
        """Test wholesale replacement."""
        log = EventLog(["old"])

        log.replace(["new-1", "new-2"])

        assert log.snapshot() == ("new-1", "new-2")
        assert log.append("new-3") == 2

    def test_snapshot_is_isolated(self):
        """Test earlier snapshots are unaffected by later writes."""
        log = EventLog(["a"])

        before = log.snapshot()
        log.append("b")
        log.replace([])

        assert before == ("a",)
        assert len(log) == 0


class TestEventLogConcurrency:
    """Test concurrent appenders and readers."""

    def test_concurrent_appends(self):
        """Test no append is lost under concurrent writers."""
        log = EventLog()

        def writer(thread_id, count):
            for i in range(count):
                log.append(f"thread-{thread_id}-{i}")

        threads = [threading.Thread(target=writer, args=(i, 200)) for i in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        entries = log.snapshot()
        assert len(entries) == 1000
        assert len(set(entries)) == 1000

        # Per-writer order is preserved
        thread_0 = [e for e in entries if e.startswith("thread-0-")]
        assert thread_0 == [f"thread-0-{i}" for i in range(200)]

    def test_readers_see_prefixes(self):
        """Test readers always observe a prefix of the final log."""
        log = EventLog()
        done = threading.Event()
        observed = []

        def writer():
            for i in range(500):
                log.append(f"msg-{i}")
            done.set()

        def reader():
            while not done.is_set():
                observed.append(log.snapshot())

        read_thread = threading.Thread(target=reader)
        write_thread = threading.Thread(target=writer)
        read_thread.start()
        write_thread.start()
        write_thread.join()
        read_thread.join()

        final = log.snapshot()
        assert len(final) == 500
        for snapshot in observed:
            assert final[:len(snapshot)] == snapshot
