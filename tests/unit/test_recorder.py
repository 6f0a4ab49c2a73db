import pytest

from contentflow.persistence import InMemoryRepository, ScheduleTask, ScheduleType, TaskStatus
from contentflow.scheduler import RunLogRecorder


def _schedule():
    return ScheduleTask(
        id="ingest", name="Ingest", cron_expression="*/5 * * * *", type=ScheduleType.FULL_INGESTION
    )


@pytest.mark.asyncio
async def test_start_creates_running_log():
    repo = InMemoryRepository()
    recorder = RunLogRecorder(repo)

    log = await recorder.start(_schedule())

    stored = await repo.get_task_log(log.id)
    assert stored.status == TaskStatus.RUNNING
    assert stored.progress == 0
    assert stored.task_id == "ingest"
    assert stored.task_name == "Ingest"


@pytest.mark.asyncio
async def test_progress_never_decreases_and_is_clamped():
    repo = InMemoryRepository()
    recorder = RunLogRecorder(repo)
    log = await recorder.start(_schedule())

    await recorder.update_progress(log, 40)
    await recorder.update_progress(log, 20)
    assert (await repo.get_task_log(log.id)).progress == 40

    await recorder.update_progress(log, 250)
    assert (await repo.get_task_log(log.id)).progress == 100


@pytest.mark.asyncio
async def test_finish_finalizes_log_once():
    repo = InMemoryRepository()
    recorder = RunLogRecorder(repo)
    log = await recorder.start(_schedule())

    await recorder.finish(log, "Fetched 3 items", 3)
    await recorder.fail(log, RuntimeError("late failure"))
    await recorder.update_progress(log, 100)

    stored = await repo.get_task_log(log.id)
    assert stored.status == TaskStatus.SUCCESS
    assert stored.message == "Fetched 3 items"
    assert stored.result_count == 3
    assert stored.progress == 100
    assert stored.end_time is not None
    assert stored.duration >= 0


@pytest.mark.asyncio
async def test_fail_records_error_message():
    repo = InMemoryRepository()
    recorder = RunLogRecorder(repo)
    log = await recorder.start(_schedule())
    await recorder.update_progress(log, 30)

    await recorder.fail(log, ValueError("adapter offline"))

    stored = await repo.get_task_log(log.id)
    assert stored.status == TaskStatus.ERROR
    assert stored.message == "adapter offline"
    assert stored.progress == 30
