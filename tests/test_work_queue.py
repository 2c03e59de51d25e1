"""
Tests for the in-memory work queue.

Covers eligibility, FIFO ordering, visibility timeouts, exclusive
checkout under concurrent consumers, and dead-lettering.
"""

import threading
from datetime import timedelta

from hotlist.queue.work_queue import InMemoryWorkQueue, dead_letter_queue_name

from factories import FakeClock

QUEUE = "token_stats_queue"


class TestEnqueueDequeue:
    """Tests for basic queue flow."""

    def setup_method(self):
        self.clock = FakeClock()
        self.queue = InMemoryWorkQueue(clock=self.clock)

    def test_enqueue_returns_unique_ids(self):
        first = self.queue.enqueue(QUEUE, {"identity_key": "A"})
        second = self.queue.enqueue(QUEUE, {"identity_key": "A"})

        assert first != second
        assert self.queue.count(QUEUE) == 2

    def test_dequeue_oldest_first(self):
        for key in ("A", "B", "C"):
            self.queue.enqueue(QUEUE, {"identity_key": key})
            self.clock.advance(seconds=1)

        messages = self.queue.dequeue(QUEUE, 10, 60)

        assert [m.identity_key for m in messages] == ["A", "B", "C"]

    def test_same_timestamp_keeps_insertion_order(self):
        for key in ("A", "B", "C"):
            self.queue.enqueue(QUEUE, {"identity_key": key})

        assert [m.identity_key for m in self.queue.dequeue(QUEUE, 10, 60)] == ["A", "B", "C"]

    def test_batch_size_respected(self):
        for i in range(5):
            self.queue.enqueue(QUEUE, {"identity_key": f"K{i}"})

        assert len(self.queue.dequeue(QUEUE, 2, 60)) == 2
        assert len(self.queue.dequeue(QUEUE, 10, 60)) == 3

    def test_zero_batch(self):
        self.queue.enqueue(QUEUE, {"identity_key": "A"})
        assert self.queue.dequeue(QUEUE, 0, 60) == []

    def test_queues_are_isolated(self):
        self.queue.enqueue(QUEUE, {"identity_key": "A"})
        self.queue.enqueue("other", {"identity_key": "B"})

        messages = self.queue.dequeue(QUEUE, 10, 60)

        assert [m.identity_key for m in messages] == ["A"]
        assert self.queue.count("other") == 1

    def test_payload_is_copied(self):
        payload = {"identity_key": "A"}
        self.queue.enqueue(QUEUE, payload)
        payload["identity_key"] = "mutated"

        assert self.queue.dequeue(QUEUE, 1, 60)[0].identity_key == "A"


class TestVisibility:
    """Tests for checkout and eligibility timing."""

    def setup_method(self):
        self.clock = FakeClock()
        self.queue = InMemoryWorkQueue(clock=self.clock)

    def test_checked_out_message_is_hidden(self):
        self.queue.enqueue(QUEUE, {"identity_key": "A"})
        first = self.queue.dequeue(QUEUE, 10, 60)

        assert len(first) == 1
        assert first[0].invisible_until == self.clock.now + timedelta(seconds=60)
        assert self.queue.dequeue(QUEUE, 10, 60) == []

    def test_reappears_after_visibility_timeout(self):
        self.queue.enqueue(QUEUE, {"identity_key": "A"})
        message_id = self.queue.dequeue(QUEUE, 10, 60)[0].message_id

        self.clock.advance(seconds=59)
        assert self.queue.dequeue(QUEUE, 10, 60) == []

        self.clock.advance(seconds=1)
        again = self.queue.dequeue(QUEUE, 10, 60)
        assert [m.message_id for m in again] == [message_id]

    def test_future_next_eligible_at_hides_message(self):
        message_id = self.queue.enqueue(QUEUE, {"identity_key": "A"})
        self.queue.update(QUEUE, message_id, {"identity_key": "A", "attempt_count": 1},
                          next_eligible_at=self.clock.now + timedelta(seconds=30))

        assert self.queue.dequeue(QUEUE, 10, 60) == []
        self.clock.advance(seconds=30)
        assert len(self.queue.dequeue(QUEUE, 10, 60)) == 1

    def test_update_releases_checkout(self):
        message_id = self.queue.enqueue(QUEUE, {"identity_key": "A"})
        self.queue.dequeue(QUEUE, 10, 60)

        assert self.queue.update(QUEUE, message_id, {"identity_key": "A", "attempt_count": 1}) is True

        messages = self.queue.dequeue(QUEUE, 10, 60)
        assert messages[0].payload["attempt_count"] == 1

    def test_update_missing_message(self):
        assert self.queue.update(QUEUE, "missing", {"identity_key": "A"}) is False

    def test_delete(self):
        message_id = self.queue.enqueue(QUEUE, {"identity_key": "A"})

        assert self.queue.delete(QUEUE, message_id) is True
        assert self.queue.delete(QUEUE, message_id) is False
        assert self.queue.count(QUEUE) == 0

    def test_delete_wrong_queue(self):
        message_id = self.queue.enqueue(QUEUE, {"identity_key": "A"})
        assert self.queue.delete("other", message_id) is False

    def test_release_expired(self):
        for key in ("A", "B"):
            self.queue.enqueue(QUEUE, {"identity_key": key})
        self.queue.dequeue(QUEUE, 1, 60)
        self.clock.advance(seconds=30)
        self.queue.dequeue(QUEUE, 1, 60)

        self.clock.advance(seconds=31)
        assert self.queue.release_expired(QUEUE) == 1
        assert self.queue.release_expired(QUEUE) == 0

        released = self.queue.list_messages(QUEUE)
        assert [m.invisible_until is None for m in released] == [True, False]


class TestConcurrentConsumers:
    """Two consumers must never receive the same message within a visibility window."""

    def test_exclusive_checkout(self):
        queue = InMemoryWorkQueue()
        for i in range(200):
            queue.enqueue(QUEUE, {"identity_key": f"K{i}"})

        received = []
        received_lock = threading.Lock()
        start = threading.Barrier(8)

        def consume():
            start.wait()
            while True:
                batch = queue.dequeue(QUEUE, 3, 300)
                if not batch:
                    return
                with received_lock:
                    received.extend(m.message_id for m in batch)

        threads = [threading.Thread(target=consume) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert len(received) == 200
        assert len(set(received)) == 200


class TestDeadLetter:
    """Tests for dead-letter queue handling."""

    def setup_method(self):
        self.queue = InMemoryWorkQueue(clock=FakeClock())

    def test_dead_letter_queue_name(self):
        assert dead_letter_queue_name(QUEUE) == "token_stats_queue_dlq"

    def test_dead_letter_moves_payload(self):
        message_id = self.queue.enqueue(QUEUE, {"identity_key": "A"})

        dlq_id = self.queue.dead_letter(QUEUE, {"identity_key": "A", "attempt_count": 5})
        self.queue.delete(QUEUE, message_id)

        assert self.queue.count(QUEUE) == 0
        dead = self.queue.list_messages(dead_letter_queue_name(QUEUE))
        assert [m.message_id for m in dead] == [dlq_id]
        assert dead[0].payload["attempt_count"] == 5

    def test_dead_letters_are_not_dequeued_from_main_queue(self):
        self.queue.dead_letter(QUEUE, {"identity_key": "A"})
        assert self.queue.dequeue(QUEUE, 10, 60) == []


class TestPendingKeys:
    """Tests for queue coverage lookups."""

    def test_pending_identity_keys(self):
        queue = InMemoryWorkQueue(clock=FakeClock())
        queue.enqueue(QUEUE, {"identity_key": "A"})
        queue.enqueue(QUEUE, {"identity_key": "B"})
        queue.enqueue(QUEUE, {"identity_key": "A"})
        queue.enqueue(QUEUE, {"garbage": True})
        queue.dead_letter(QUEUE, {"identity_key": "C"})

        assert queue.pending_identity_keys(QUEUE) == {"A", "B"}
