import asyncio

import pytest

from gbp_access.workers.scheduler import PeriodicJob


class CountingJob(PeriodicJob):
    name = "counting_job"

    def __init__(self, interval_seconds=0.01, initial_delay_seconds=0.0, fail=False):
        super().__init__(interval_seconds, initial_delay_seconds)
        self.runs = 0
        self.fail = fail

    async def run_once(self):
        self.runs += 1
        if self.fail:
            raise RuntimeError("run failed")
        return self.runs


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        CountingJob(interval_seconds=0)


@pytest.mark.asyncio
async def test_runs_immediately_and_repeats():
    job = CountingJob()
    job.start()
    await asyncio.sleep(0.05)

    assert job.is_running is True
    job.stop()
    await job.wait_stopped()

    assert job.runs >= 2
    assert job.is_running is False


@pytest.mark.asyncio
async def test_stop_prevents_further_runs():
    job = CountingJob()
    job.start()
    await asyncio.sleep(0.03)
    job.stop()
    await job.wait_stopped()
    runs_at_stop = job.runs

    await asyncio.sleep(0.03)

    assert job.runs == runs_at_stop


@pytest.mark.asyncio
async def test_failing_runs_do_not_kill_the_loop():
    job = CountingJob(fail=True)
    job.start()
    await asyncio.sleep(0.05)
    job.stop()
    await job.wait_stopped()

    assert job.runs >= 2


@pytest.mark.asyncio
async def test_initial_delay_is_honored():
    job = CountingJob(initial_delay_seconds=10)
    job.start()
    await asyncio.sleep(0.02)

    assert job.runs == 0
    job.stop()
    await asyncio.wait_for(job.wait_stopped(), timeout=1)
    assert job.runs == 0


@pytest.mark.asyncio
async def test_stop_does_not_cancel_in_flight_run():
    started = asyncio.Event()
    release = asyncio.Event()

    class SlowJob(PeriodicJob):
        completed = 0

        async def run_once(self):
            started.set()
            await release.wait()
            self.completed += 1

    job = SlowJob(interval_seconds=60)
    job.start()
    await started.wait()

    job.stop()
    release.set()
    await job.wait_stopped()

    assert job.completed == 1


@pytest.mark.asyncio
async def test_run_safely_swallows_and_returns_none():
    job = CountingJob(fail=True)

    assert await job.run_safely() is None
    assert job.runs == 1


@pytest.mark.asyncio
async def test_double_start_is_ignored():
    job = CountingJob(interval_seconds=60)
    job.start()
    first_task = job._task
    job.start()

    assert job._task is first_task
    job.stop()
    await job.wait_stopped()
