"""Unit tests for the in-memory reflection job store."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from devotional.models import ReflectionJobStatus
from devotional.services.job_store import InMemoryJobStore, generate_job_id
from tests.factories import VerseFactory


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class TestGenerateJobId:
    def test_ids_are_unique_hex(self):
        ids = {generate_job_id() for _ in range(200)}

        assert len(ids) == 200
        assert all(int(job_id, 16) >= 0 for job_id in ids)


class TestInMemoryJobStore:
    """Tests for InMemoryJobStore."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def store(self, clock):
        return InMemoryJobStore(clock=clock)

    def test_create_is_pending(self, store, clock):
        verses = VerseFactory.build_batch(2)
        job = store.create("hope", verses)

        assert job.status is ReflectionJobStatus.PENDING
        assert job.started_at == clock.now
        assert store.get(job.id) == job
        assert list(job.verses) == verses

    def test_create_retries_id_collision(self, clock):
        ids = iter(["dup", "dup", "fresh"])
        store = InMemoryJobStore(clock=clock, id_factory=lambda: next(ids))

        assert store.create("a", []).id == "dup"
        assert store.create("b", []).id == "fresh"

    def test_get_unknown(self, store):
        assert store.get("missing") is None

    def test_transition_to_completed(self, store, clock):
        job = store.create("hope", VerseFactory.build_batch(1))
        clock.advance(seconds=5)
        done = store.transition_to_completed(job.id, "reflection")

        assert done.status is ReflectionJobStatus.COMPLETED
        assert done.result == "reflection"
        assert done.completed_at == clock.now
        assert done.topic == "hope"
        assert store.get(job.id) == done

    def test_transition_to_error(self, store):
        job = store.create("hope", VerseFactory.build_batch(1))
        failed = store.transition_to_error(job.id, "Failed to generate reflection")

        assert failed.status is ReflectionJobStatus.ERROR
        assert failed.error == "Failed to generate reflection"
        assert failed.result is None

    def test_terminal_state_is_final(self, store):
        """Test a second transition does not overwrite the first."""
        job = store.create("hope", VerseFactory.build_batch(1))
        store.transition_to_completed(job.id, "reflection")
        after = store.transition_to_error(job.id, "late failure")

        assert after.status is ReflectionJobStatus.COMPLETED
        assert store.get(job.id).result == "reflection"

    def test_transition_recreates_evicted_job(self, store, clock):
        """Test a late completion leaves a coherent orphan record."""
        job = store.create("hope", VerseFactory.build_batch(1))
        store.delete(job.id)
        orphan = store.transition_to_completed(job.id, "reflection")

        assert orphan.status is ReflectionJobStatus.COMPLETED
        assert orphan.result == "reflection"
        assert orphan.started_at == clock.now
        assert orphan.completed_at == clock.now
        assert orphan.topic == ""
        assert job.id in store

    def test_record_retry_on_pending(self, store, clock):
        job = store.create("hope", VerseFactory.build_batch(1))
        retry_after = clock.now + timedelta(seconds=4)
        store.record_retry(job.id, 2, retry_after)

        updated = store.get(job.id)
        assert updated.retry_count == 2
        assert updated.retry_after == retry_after
        assert updated.status is ReflectionJobStatus.PENDING

    def test_record_retry_ignores_terminal_and_missing(self, store, clock):
        job = store.create("hope", VerseFactory.build_batch(1))
        store.transition_to_completed(job.id, "done")
        store.record_retry(job.id, 1, clock.now)
        store.record_retry("missing", 1, clock.now)

        assert store.get(job.id).retry_count == 0
        assert "missing" not in store

    def test_sweep_expired_regardless_of_status(self, store, clock):
        """Test old jobs are evicted whether pending, completed or failed."""
        pending = store.create("a", [])
        completed = store.create("b", [])
        store.transition_to_completed(completed.id, "done")
        failed = store.create("c", [])
        store.transition_to_error(failed.id, "oops")

        clock.advance(minutes=20)
        fresh = store.create("d", [])
        clock.advance(minutes=11)

        removed = store.sweep_expired(timedelta(minutes=30))

        assert removed == 3
        assert store.get(pending.id) is None
        assert store.get(completed.id) is None
        assert store.get(failed.id) is None
        assert store.get(fresh.id) is not None

    def test_sweep_keeps_job_at_exact_age(self, store, clock):
        job = store.create("a", [])
        clock.advance(minutes=30)

        assert store.sweep_expired(timedelta(minutes=30)) == 0
        assert job.id in store

    async def test_schedule_deletion(self, store):
        job = store.create("hope", [])
        store.transition_to_completed(job.id, "done")
        store.schedule_deletion(job.id, 0.01)

        assert job.id in store
        await asyncio.sleep(0.05)
        assert job.id not in store

    async def test_schedule_deletion_does_not_stack(self, store):
        job = store.create("hope", [])
        store.schedule_deletion(job.id, 0.01)
        store.schedule_deletion(job.id, 10)

        await asyncio.sleep(0.05)
        assert job.id not in store

    async def test_schedule_deletion_unknown_job(self, store):
        store.schedule_deletion("missing", 0.01)
        await asyncio.sleep(0.02)
        assert len(store) == 0

    async def test_delete_cancels_pending_deletion(self, store):
        job = store.create("hope", [])
        store.schedule_deletion(job.id, 0.01)

        assert store.delete(job.id) is True
        assert store.delete(job.id) is False

    async def test_clear(self, store):
        store.create("a", [])
        store.schedule_deletion(store.create("b", []).id, 0.01)
        store.clear()

        assert len(store) == 0
