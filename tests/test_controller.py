"""Tests for worker process supervision."""

import asyncio
import sys

import pytest

from procurement_bot.jobs.models import JobStatus
from procurement_bot.jobs.store import InMemoryJobStore
from procurement_bot.worker.controller import JobController, ProfileBusyError, options_to_args


def _python(code: str) -> list[str]:
    return [sys.executable, "-c", code]


@pytest.mark.asyncio
async def test_successful_worker_streams_log_and_finishes():
    controller = JobController(InMemoryJobStore())
    code = "print('found 2 units'); print('Saving PDF -> a.pdf'); print('Saving PDF -> b.pdf')"

    job = await controller.start_process(_python(code), {"type": "test"})
    assert job.status == JobStatus.RUNNING

    final = await controller.wait(job.id)
    assert final.status == JobStatus.FINISHED
    assert final.counters["invoices"] == 2
    assert "found 2 units" in final.log
    assert final.error is None
    assert controller.running_jobs() == []


@pytest.mark.asyncio
async def test_nonzero_exit_marks_error():
    controller = JobController(InMemoryJobStore())
    code = "import sys; sys.stderr.write('boom\\n'); sys.exit(3)"

    job = await controller.start_process(_python(code), {"type": "test"})
    final = await controller.wait(job.id)

    assert final.status == JobStatus.ERROR
    assert final.error == "Process exited with code 3"
    assert "boom" in final.log


@pytest.mark.asyncio
async def test_spawn_failure_marks_error():
    controller = JobController(InMemoryJobStore())

    job = await controller.start_process(["/nonexistent/worker-binary"], {"type": "test"})

    assert job.status == JobStatus.ERROR
    assert job.error
    assert controller.running_jobs() == []


@pytest.mark.asyncio
async def test_profile_pair_is_exclusive():
    controller = JobController(InMemoryJobStore())
    lock = ("ebay", "pw-profile-ebay")

    first = await controller.start_process(_python("import time; time.sleep(0.5)"), {"type": "a"}, lock=lock)
    with pytest.raises(ProfileBusyError):
        await controller.start_process(_python("pass"), {"type": "b"}, lock=lock)

    other = await controller.start_process(_python("pass"), {"type": "c"}, lock=("ebay", "other-profile"))

    await controller.wait_all([first.id, other.id])
    assert controller.busy_profiles() == {}

    again = await controller.start_process(_python("pass"), {"type": "d"}, lock=lock)
    final = await controller.wait(again.id)
    assert final.status == JobStatus.FINISHED


@pytest.mark.asyncio
async def test_concurrent_starts_on_same_profile_are_exclusive():
    controller = JobController(InMemoryJobStore())
    lock = ("ebay", "pw-profile-ebay")
    code = "import time; time.sleep(0.3)"

    results = await asyncio.gather(
        controller.start_process(_python(code), {"type": "a"}, lock=lock),
        controller.start_process(_python(code), {"type": "b"}, lock=lock),
        return_exceptions=True,
    )

    busy = [r for r in results if isinstance(r, ProfileBusyError)]
    started = [r for r in results if not isinstance(r, BaseException)]
    assert len(busy) == 1
    assert len(started) == 1
    assert len(await controller.store.list_jobs()) == 1

    await controller.wait(started[0].id)
    assert controller.busy_profiles() == {}


@pytest.mark.asyncio
async def test_spawn_failure_releases_profile():
    controller = JobController(InMemoryJobStore())
    lock = ("ebay", "pw-profile-ebay")

    failed = await controller.start_process(["/nonexistent/worker-binary"], {"type": "a"}, lock=lock)
    assert failed.status == JobStatus.ERROR
    assert controller.busy_profiles() == {}

    job = await controller.start_process(_python("pass"), {"type": "b"}, lock=lock)
    assert (await controller.wait(job.id)).status == JobStatus.FINISHED

@pytest.mark.asyncio
async def test_start_search_rejects_unknown_source():
    controller = JobController(InMemoryJobStore())
    with pytest.raises(ValueError):
        await controller.start_search("craigslist", {"terms": ["x"]})
    assert await controller.store.list_jobs() == []


@pytest.mark.asyncio
async def test_start_search_builds_worker_command():
    store = InMemoryJobStore()
    # The interpreter is replaced by a script that echoes its arguments.
    controller = JobController(store, python=sys.executable)
    controller.worker_command = lambda *args: _python(
        "import sys; print(' '.join(sys.argv[1:]))"
    ) + list(args)

    job = await controller.start_search("ebay", {"terms": ["ABC123"], "headless": False, "password": "secret"})
    final = await controller.wait(job.id)

    assert final.status == JobStatus.FINISHED
    assert "search ebay --terms ABC123 --no-headless" in final.log
    assert final.meta["source"] == "ebay"
    assert final.meta["options"]["password"] == "***"


def test_options_to_args():
    args = options_to_args({"max_pages": 3, "only_new": True, "headless": False, "card_brand": None, "terms": ["a", "b"]})
    assert args == ["--max-pages", "3", "--only-new", "--no-headless", "--terms", "a", "--terms", "b"]
