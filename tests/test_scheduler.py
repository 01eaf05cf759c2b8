import pytest

from coinconvert.models import RefreshInterval

pytestmark = pytest.mark.asyncio

INTERVAL = RefreshInterval(seconds=900, label="Every 15 Minutes")


async def test_schedule_is_idempotent(scheduler, clock):
    assert scheduler.schedule("refresh_prices_fake", INTERVAL) is True
    first_run = scheduler.next_scheduled("refresh_prices_fake")

    clock.advance(100)
    assert scheduler.schedule("refresh_prices_fake", INTERVAL) is False
    assert scheduler.next_scheduled("refresh_prices_fake") == first_run == int(clock.now) - 100


async def test_next_scheduled_is_none_when_unscheduled(scheduler):
    assert scheduler.next_scheduled("refresh_prices_fake") is None


async def test_schedule_state_lives_in_store(scheduler, store):
    scheduler.schedule("refresh_prices_fake", INTERVAL, first_run=2000)

    assert store.get("schedule_refresh_prices_fake") == {
        "hook": "refresh_prices_fake",
        "next_run": 2000,
        "interval": 900,
        "label": "Every 15 Minutes",
    }


async def test_run_pending_runs_due_jobs_and_reschedules(scheduler, clock):
    calls = []

    async def job():
        calls.append(clock.now)

    scheduler.schedule("refresh_prices_fake", INTERVAL)
    scheduler.bind("refresh_prices_fake", job)
    start = int(clock.now)

    assert await scheduler.run_pending() == ["refresh_prices_fake"]
    assert scheduler.next_scheduled("refresh_prices_fake") == start + 900

    clock.advance(899)
    assert await scheduler.run_pending() == []
    assert len(calls) == 1

    clock.advance(1)
    assert await scheduler.run_pending() == ["refresh_prices_fake"]
    assert len(calls) == 2


async def test_missed_intervals_collapse_into_one_run(scheduler, clock):
    calls = []

    async def job():
        calls.append(clock.now)

    start = int(clock.now)
    scheduler.schedule("refresh_prices_fake", INTERVAL)
    scheduler.bind("refresh_prices_fake", job)

    clock.advance(2000)
    await scheduler.run_pending()

    assert len(calls) == 1
    # Next boundary after now on the original cadence.
    assert scheduler.next_scheduled("refresh_prices_fake") == start + 2700


async def test_failing_job_is_still_rescheduled(scheduler, clock):
    async def job():
        raise RuntimeError("boom")

    scheduler.schedule("refresh_prices_fake", INTERVAL)
    scheduler.bind("refresh_prices_fake", job)

    assert await scheduler.run_pending() == ["refresh_prices_fake"]
    assert scheduler.next_scheduled("refresh_prices_fake") == int(clock.now) + 900


async def test_unbound_jobs_do_not_run(scheduler):
    scheduler.schedule("refresh_prices_other", INTERVAL)

    assert await scheduler.run_pending() == []


async def test_unreadable_state_is_ignored(scheduler, store):
    store.set("schedule_refresh_prices_fake", {"hook": "x"})

    assert scheduler.next_scheduled("refresh_prices_fake") is None
    assert scheduler.schedule("refresh_prices_fake", INTERVAL) is True


async def test_unschedule(scheduler):
    scheduler.schedule("refresh_prices_fake", INTERVAL)

    assert scheduler.unschedule("refresh_prices_fake") is True
    assert scheduler.next_scheduled("refresh_prices_fake") is None
