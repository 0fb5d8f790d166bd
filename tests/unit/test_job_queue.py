"""Unit tests for the durable search queue."""

from datetime import datetime, timedelta, timezone

import pytest

from feedscout.async_queue.job_models import JobStatus
from feedscout.errors import StoreError
from tests.helpers import StubExecutor, build_queue, make_agent


def _seed(store, count=1, max_retries=3):
    agents = [make_agent(i) for i in range(1, count + 1)]
    for agent in agents:
        store.upsert_agent(agent)
    return store.insert_jobs(agents, max_retries=max_retries)


class TestEnqueue:
    """Test creation of pending records."""

    @pytest.mark.asyncio
    async def test_enqueue_active_agents(self, store, executor, clock):
        for i in (1, 2):
            store.upsert_agent(make_agent(i))
        store.upsert_agent(make_agent(3, status="inactive"))
        queue = build_queue(store, executor, clock)

        count = await queue.enqueue_agents(["agent-1", "agent-2", "agent-3"])

        assert count == 2
        stats = await queue.get_queue_stats()
        assert stats.pending == 2
        assert stats.total == 2

    @pytest.mark.asyncio
    async def test_enqueue_nothing(self, store, executor, clock):
        store.upsert_agent(make_agent(1, status="inactive"))
        queue = build_queue(store, executor, clock)

        assert await queue.enqueue_agents([]) == 0
        assert await queue.enqueue_agents(["agent-1"]) == 0
        assert store.count_by_status() == {}


class TestTransitions:
    """Test completed and failed transitions."""

    @pytest.mark.asyncio
    async def test_mark_completed(self, store, executor, clock):
        [job_id] = _seed(store)
        queue = build_queue(store, executor, clock)
        store.claim_job(job_id)

        job = await queue.mark_completed(job_id, 12)

        assert job.status == JobStatus.COMPLETED
        assert job.results_count == 12
        assert job.completed_at is not None

    @pytest.mark.asyncio
    async def test_mark_failed_with_retries_left(self, store, executor, clock):
        [job_id] = _seed(store)
        queue = build_queue(store, executor, clock)
        store.claim_job(job_id)
        store.fail_job(job_id, "first")
        store.claim_job(job_id)

        job = await queue.mark_failed(job_id, "second")

        assert job.status == JobStatus.PENDING
        assert job.retry_count == 2
        assert job.error_message == "second"

    @pytest.mark.asyncio
    async def test_mark_failed_last_attempt(self, store, executor, clock):
        [job_id] = _seed(store)
        queue = build_queue(store, executor, clock)
        for message in ("first", "second"):
            store.claim_job(job_id)
            store.fail_job(job_id, message)
        store.claim_job(job_id)

        job = await queue.mark_failed(job_id, "third")

        assert job.status == JobStatus.FAILED
        assert job.retry_count == 3
        assert job.error_message == "third"
        assert job.completed_at is not None


class TestProcessQueueItem:
    """Test a single attempt."""

    @pytest.mark.asyncio
    async def test_success(self, store, clock):
        [job_id] = _seed(store)
        executor = StubExecutor(total_results=4)
        queue = build_queue(store, executor, clock)

        status = await queue.process_queue_item(store.get_job(job_id))

        assert status == JobStatus.COMPLETED
        assert executor.calls == ["agent-1"]
        assert store.get_job(job_id).results_count == 4

    @pytest.mark.asyncio
    async def test_failure_goes_back_to_pending(self, store, clock):
        [job_id] = _seed(store)
        executor = StubExecutor(failing=["agent-1"])
        queue = build_queue(store, executor, clock)

        status = await queue.process_queue_item(store.get_job(job_id))

        job = store.get_job(job_id)
        assert status == JobStatus.PENDING
        assert job.retry_count == 1
        assert job.error_message == "search failed for agent-1"

    @pytest.mark.asyncio
    async def test_lost_claim_skips_execution(self, store, executor, clock):
        [job_id] = _seed(store)
        queue = build_queue(store, executor, clock)
        job = store.get_job(job_id)
        store.claim_job(job_id)

        assert await queue.process_queue_item(job) is None
        assert executor.calls == []


class TestProcessQueue:
    """Test the drain loop."""

    @pytest.mark.asyncio
    async def test_empty_queue(self, store, executor, clock):
        queue = build_queue(store, executor, clock)

        summary = await queue.process_queue()

        assert summary.to_dict() == {"processed": 0, "completed": 0, "failed": 0}
        assert clock.sleeps == []
        assert executor.calls == []

    @pytest.mark.asyncio
    async def test_oldest_first(self, store, executor, clock):
        _seed(store, count=3)
        queue = build_queue(store, executor, clock)

        await queue.process_queue()

        assert executor.calls == ["agent-1", "agent-2", "agent-3"]

    @pytest.mark.asyncio
    async def test_retries_until_terminal(self, store, clock):
        [job_id] = _seed(store, max_retries=3)
        executor = StubExecutor(failing=["agent-1"])
        queue = build_queue(store, executor, clock)

        summary = await queue.process_queue()

        assert summary.to_dict() == {"processed": 1, "completed": 0, "failed": 1}
        assert executor.calls == ["agent-1"] * 3
        job = store.get_job(job_id)
        assert job.status == JobStatus.FAILED
        assert job.retry_count == 3

    @pytest.mark.asyncio
    async def test_paces_to_rate_limit(self, store, executor, clock):
        _seed(store, count=3)
        queue = build_queue(store, executor, clock, rate_limit=30)

        await queue.process_queue()

        assert queue.interval == 2.0
        assert clock.sleeps == pytest.approx([2.0, 2.0, 2.0])

    @pytest.mark.asyncio
    async def test_store_error_after_claim_is_recorded(self, store, executor, clock, monkeypatch):
        [job_id] = _seed(store, max_retries=3)
        queue = build_queue(store, executor, clock)

        def locked(job_id, results_count):
            raise StoreError("database is locked")

        monkeypatch.setattr(store, "complete_job", locked)

        summary = await queue.process_queue()

        assert summary.to_dict() == {"processed": 1, "completed": 0, "failed": 1}
        stats = await queue.get_queue_stats()
        assert stats.to_dict() == {"pending": 0, "processing": 0, "completed": 0, "failed": 1, "total": 1}
        job = store.get_job(job_id)
        assert job.retry_count == 3
        assert "database is locked" in job.error_message
        assert executor.calls == ["agent-1"] * 3

    @pytest.mark.asyncio
    async def test_claim_error_is_recorded(self, store, executor, clock, monkeypatch):
        [job_id] = _seed(store, max_retries=2)
        queue = build_queue(store, executor, clock)

        def broken_claim(job_id):
            raise StoreError("disk I/O error")

        monkeypatch.setattr(store, "claim_job", broken_claim)

        summary = await queue.process_queue()

        assert summary.to_dict() == {"processed": 1, "completed": 0, "failed": 1}
        assert store.get_job(job_id).status == JobStatus.FAILED
        assert executor.calls == []

    @pytest.mark.asyncio
    async def test_unwritable_store_ends_drain(self, store, executor, clock, monkeypatch):
        _seed(store)
        queue = build_queue(store, executor, clock)

        def broken(*args):
            raise StoreError("disk I/O error")

        monkeypatch.setattr(store, "claim_job", broken)
        monkeypatch.setattr(store, "fail_job", broken)

        with pytest.raises(StoreError, match="disk I/O error"):
            await queue.process_queue()


class TestMaintenance:
    """Test listing and cleanup."""

    @pytest.mark.asyncio
    async def test_list_items_filter(self, store, executor, clock):
        ids = _seed(store, count=2)
        queue = build_queue(store, executor, clock)
        store.claim_job(ids[0])
        store.complete_job(ids[0], 1)

        completed = await queue.list_items(status=JobStatus.COMPLETED)
        assert [j.id for j in completed] == [ids[0]]
        assert len(await queue.list_items()) == 2

    @pytest.mark.asyncio
    async def test_clear_old_items(self, store, executor, clock):
        ids = _seed(store, count=2)
        queue = build_queue(store, executor, clock)
        store.claim_job(ids[0])
        store.complete_job(ids[0], 1)
        old = (datetime.now(timezone.utc) - timedelta(days=8)).isoformat(timespec="microseconds")
        store.conn.execute("UPDATE search_queue SET completed_at = ? WHERE id = ?", (old, ids[0]))
        store.conn.commit()

        assert await queue.clear_old_items(7) == 1
        assert store.get_job(ids[0]) is None
        assert store.get_job(ids[1]) is not None

    @pytest.mark.asyncio
    async def test_clear_keeps_recent(self, store, executor, clock):
        [job_id] = _seed(store)
        queue = build_queue(store, executor, clock)
        store.claim_job(job_id)
        store.complete_job(job_id, 1)

        assert await queue.clear_old_items() == 0
        assert store.get_job(job_id) is not None
