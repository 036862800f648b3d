import asyncio

from progress import CAP, ProgressEstimator, ProgressPhase, reported, step


def run_curve(ticks: int):
    values, i = [], 0.0
    for _ in range(ticks):
        i = step(i)
        values.append(reported(i))
    return values


def test_curve_is_non_decreasing_and_capped():
    values = run_curve(500)
    assert values == sorted(values)
    assert max(values) == CAP
    assert all(v <= 99 for v in values)


def test_curve_decelerates():
    assert step(0) == 2
    assert step(58) == 60
    assert step(60) == 61
    assert step(90) == 90.5
    assert step(99) == 99


def test_reaches_cap_after_expected_ticks():
    # 30 fast ticks to 60, 30 slower to 90, 18 slow to 99
    values = run_curve(78)
    assert values[29] == 60
    assert values[59] == 90
    assert values[-1] == 99


def test_tick_only_advances_while_running():
    async def scenario():
        estimator = ProgressEstimator(interval=60)
        assert estimator.tick() == 0
        estimator.start()
        assert estimator.tick() == 2
        estimator.abort()
        assert estimator.tick() == 0
        return estimator

    estimator = asyncio.run(scenario())
    assert estimator.phase == ProgressPhase.ABORTED


def test_timer_emits_increasing_values_and_stops_at_cap():
    async def scenario():
        estimator = ProgressEstimator(interval=0.001)
        estimator.start()
        seen = []
        for _ in range(2000):
            await asyncio.sleep(0.001)
            seen.append(estimator.value)
            if estimator._task is not None and estimator._task.done():
                break
        return estimator, seen

    estimator, seen = asyncio.run(scenario())
    assert seen == sorted(seen)
    assert estimator.value == 99
    assert estimator.running


def test_complete_forces_100_and_stops_timer():
    async def scenario():
        estimator = ProgressEstimator(interval=0.001)
        estimator.start()
        await asyncio.sleep(0.02)
        estimator.complete()
        task_after = estimator._task
        await asyncio.sleep(0.02)
        return estimator, task_after

    estimator, task_after = asyncio.run(scenario())
    assert estimator.value == 100
    assert estimator.phase == ProgressPhase.COMPLETED
    assert task_after is None


def test_abort_resets_and_late_ticks_do_not_write():
    async def scenario():
        estimator = ProgressEstimator(interval=0.001)
        estimator.start()
        await asyncio.sleep(0.02)
        estimator.abort()
        await asyncio.sleep(0.02)
        return estimator

    estimator = asyncio.run(scenario())
    assert estimator.value == 0
    assert estimator.phase == ProgressPhase.ABORTED


def test_restart_resets_to_zero():
    async def scenario():
        estimator = ProgressEstimator(interval=60)
        estimator.start()
        for _ in range(10):
            estimator.tick()
        first = estimator.value
        estimator.start()
        second = estimator.value
        estimator.stop()
        return first, second

    first, second = asyncio.run(scenario())
    assert first == 20
    assert second == 0
