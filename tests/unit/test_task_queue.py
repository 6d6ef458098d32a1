"""Unit tests for the in-process background task queue."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from client_reports.tasks import BackgroundTask, BackgroundTaskQueue, QueueClosedError, TaskStatus, TaskType


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


class RecordingHandler:
    """Tracks order and concurrency of executed tasks."""

    def __init__(self, fail_types: tuple[TaskType, ...] = ()) -> None:
        self.fail_types = fail_types
        self.seen: list[BackgroundTask] = []
        self.active = 0
        self.max_active = 0

    async def __call__(self, task: BackgroundTask) -> dict:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0.01)
            self.seen.append(task)
            if task.type in self.fail_types:
                raise RuntimeError(f"{task.type.value} exploded")
            return {"n": len(self.seen)}
        finally:
            self.active -= 1


class TestBackgroundTaskQueue:
    @pytest.mark.asyncio
    async def test_tasks_run_one_at_a_time_in_order(self) -> None:
        handler = RecordingHandler()
        queue = BackgroundTaskQueue(handler)
        queue.start()

        ids = [queue.enqueue(TaskType.GENERATE_EMBEDDINGS, {"limit": i}) for i in range(5)]
        await asyncio.sleep(0)
        assert sum(1 for t in queue.list_tasks() if t.status is TaskStatus.PROCESSING) == 1
        await queue.wait_idle()

        assert handler.max_active == 1
        assert [t.id for t in handler.seen] == ids
        assert all(queue.get_task(i).status is TaskStatus.COMPLETED for i in ids)
        assert not queue.processing

    @pytest.mark.asyncio
    async def test_failed_task_does_not_stop_the_queue(self) -> None:
        handler = RecordingHandler(fail_types=(TaskType.SUMMARIZE_EMAILS,))
        queue = BackgroundTaskQueue(handler)
        queue.start()

        failing = queue.enqueue(TaskType.SUMMARIZE_EMAILS)
        following = queue.enqueue("process_new_emails", {"email_ids": ["a"]})
        await queue.wait_idle()

        failed = queue.get_task(failing)
        assert failed.status is TaskStatus.FAILED
        assert failed.error == "summarize_emails exploded"
        assert failed.result is None
        done = queue.get_task(following)
        assert done.status is TaskStatus.COMPLETED
        assert done.result == {"n": 2}

    @pytest.mark.asyncio
    async def test_tasks_wait_until_started(self) -> None:
        handler = RecordingHandler()
        queue = BackgroundTaskQueue(handler)

        task_id = queue.enqueue(TaskType.GENERATE_EMBEDDINGS)
        await asyncio.sleep(0.02)
        assert queue.get_task(task_id).status is TaskStatus.PENDING

        queue.start()
        await queue.wait_idle()
        assert queue.get_task(task_id).status is TaskStatus.COMPLETED

    def test_unknown_task_type(self) -> None:
        with pytest.raises(ValueError):
            BackgroundTaskQueue(RecordingHandler()).enqueue("reindex_everything")

    @pytest.mark.asyncio
    async def test_finished_tasks_expire_after_retention(self) -> None:
        clock = FakeClock()
        queue = BackgroundTaskQueue(RecordingHandler(), retention=timedelta(minutes=30), clock=clock)
        queue.start()
        finished = queue.enqueue(TaskType.GENERATE_EMBEDDINGS)
        await queue.wait_idle()

        clock.now += timedelta(minutes=29)
        assert queue.purge_expired() == 0
        assert queue.get_task(finished).status is TaskStatus.COMPLETED

        clock.now += timedelta(minutes=2)
        assert queue.purge_expired() == 1
        assert queue.get_task(finished) is None

    @pytest.mark.asyncio
    async def test_idle_queue_expires_tasks_on_access(self) -> None:
        clock = FakeClock()
        queue = BackgroundTaskQueue(RecordingHandler(), retention=timedelta(minutes=30), clock=clock)
        queue.start()
        finished = queue.enqueue(TaskType.GENERATE_EMBEDDINGS)
        await queue.wait_idle()

        clock.now += timedelta(minutes=31)

        assert queue.list_tasks() == []
        assert queue.get_task(finished) is None

    def test_pending_tasks_never_expire(self) -> None:
        clock = FakeClock()
        queue = BackgroundTaskQueue(RecordingHandler(), retention=timedelta(minutes=30), clock=clock)
        pending = queue.enqueue(TaskType.GENERATE_EMBEDDINGS)

        clock.now += timedelta(hours=5)

        assert queue.purge_expired() == 0
        assert queue.get_task(pending).status is TaskStatus.PENDING

    @pytest.mark.asyncio
    async def test_shutdown_finishes_current_task_and_drops_pending(self) -> None:
        release = asyncio.Event()

        async def blocking(task: BackgroundTask) -> dict:
            await release.wait()
            return {"ok": True}

        queue = BackgroundTaskQueue(blocking)
        queue.start()
        running = queue.enqueue(TaskType.GENERATE_EMBEDDINGS)
        waiting = queue.enqueue(TaskType.SUMMARIZE_EMAILS)
        await asyncio.sleep(0)

        stopping = asyncio.create_task(queue.shutdown())
        await asyncio.sleep(0)
        release.set()
        await stopping

        assert queue.get_task(running).status is TaskStatus.COMPLETED
        assert queue.get_task(waiting) is None
        with pytest.raises(QueueClosedError):
            queue.enqueue(TaskType.GENERATE_EMBEDDINGS)

    @pytest.mark.asyncio
    async def test_periodic_processing(self) -> None:
        handler = RecordingHandler()
        queue = BackgroundTaskQueue(handler, poll_interval_seconds=0.01, poll_params={"limit": 5})
        queue.start()

        await asyncio.sleep(0.05)
        await queue.shutdown()

        assert handler.seen
        assert handler.seen[0].type is TaskType.PROCESS_NEW_EMAILS
        assert handler.seen[0].params == {"limit": 5}

    def test_to_dict(self) -> None:
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        task = BackgroundTask(
            id="t1",
            type=TaskType.SUMMARIZE_EMAILS,
            params={"limit": 3},
            status=TaskStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

        assert task.to_dict() == {
            "id": "t1",
            "type": "summarize_emails",
            "params": {"limit": 3},
            "status": "pending",
            "created_at": "2024-01-01T00:00:00+00:00",
            "updated_at": "2024-01-01T00:00:00+00:00",
            "result": None,
            "error": None,
        }
