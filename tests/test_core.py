from dataclasses import FrozenInstanceError
import json

import pytest

from ossim.common import PhilosopherState, ProcessState
from ossim.core import InvalidConfiguration, SimStatus, Snapshot, TickDriver, to_primitive
from ossim.philosophers import DiningPhilosophersSim
from ossim.semaphore import (
    BinarySemaphoreSim,
    CountingSemaphoreSim,
    SleepWakeupSemaphoreSim,
)


def test_to_primitive_1():
    snapshot = Snapshot(name="sim", tick=3, status=SimStatus.PAUSED)
    assert to_primitive(snapshot) == {"name": "sim", "tick": 3, "status": "paused"}


def test_to_primitive_2():
    assert to_primitive((ProcessState.WAITING, [PhilosopherState.EATING])) == [
        "waiting",
        ["eating"],
    ]
    assert to_primitive({"a": (1, 2)}) == {"a": [1, 2]}


def test_sim_default_name():
    sim = CountingSemaphoreSim()
    assert sim.name == "CountingSemaphoreSim"
    assert CountingSemaphoreSim(name="pool").name == "pool"


def test_sim_created_snapshot():
    sim = CountingSemaphoreSim()
    assert sim.status == SimStatus.CREATED
    assert sim.snapshot.status == SimStatus.CREATED
    assert sim.snapshot.processes == ()


def test_tick_before_start():
    sim = CountingSemaphoreSim()
    with pytest.raises(RuntimeError):
        sim.tick()


def test_start_publishes_tick_0():
    sim = CountingSemaphoreSim(processes=3)
    snapshot = sim.start()
    assert snapshot.tick == 0
    assert snapshot.status == SimStatus.RUNNING
    assert [proc.state for proc in snapshot.processes] == [ProcessState.WAITING] * 3


def test_tick_increments_by_one():
    sim = DiningPhilosophersSim()
    sim.start()
    for expected in range(1, 20):
        assert sim.tick().tick == expected
    assert sim.tick_count == 19


def test_configure_while_running():
    sim = CountingSemaphoreSim()
    sim.start()
    with pytest.raises(RuntimeError):
        sim.configure(processes=2)
    sim.pause()
    with pytest.raises(RuntimeError):
        sim.configure(processes=2)


def test_configure_after_reset():
    sim = CountingSemaphoreSim()
    sim.start()
    sim.reset()
    sim.configure(processes=2)
    assert len(sim.start().processes) == 2


def test_configure_invalid_keeps_previous():
    sim = CountingSemaphoreSim(processes=4)
    with pytest.raises(InvalidConfiguration):
        sim.configure(processes=0)
    assert sim.params["processes"] == 4


def test_configure_unknown_key():
    with pytest.raises(InvalidConfiguration):
        CountingSemaphoreSim(threads=3)


def test_invalid_configuration_is_value_error():
    with pytest.raises(ValueError):
        CountingSemaphoreSim(step=0)


@pytest.mark.parametrize("status", ["created", "running", "paused", "finished"])
def test_reset_from_any_state(status):
    sim = CountingSemaphoreSim(processes=1, resources=1, step=100)
    if status != "created":
        sim.start()
    if status == "paused":
        sim.pause()
    if status == "finished":
        sim.tick()
        sim.tick()
        assert sim.status == SimStatus.FINISHED

    snapshot = sim.reset()
    assert sim.status == SimStatus.CREATED
    assert sim.tick_count == 0
    assert snapshot.processes == ()
    assert snapshot.tick == 0


def test_stop_is_reset():
    sim = CountingSemaphoreSim()
    sim.start()
    sim.tick()
    snapshot = sim.stop()
    assert snapshot.status == SimStatus.CREATED
    assert sim.processes == []


def test_pause_resume():
    sim = DiningPhilosophersSim()
    sim.start()
    for _ in range(5):
        sim.tick()
    sim.pause()
    assert sim.status == SimStatus.PAUSED

    paused = sim.snapshot
    for _ in range(3):
        assert sim.tick() is paused
    assert sim.tick_count == 5

    sim.resume()
    assert sim.status == SimStatus.RUNNING
    assert sim.tick().tick == 6


def test_finished_tick_is_noop():
    sim = CountingSemaphoreSim(processes=1, resources=1, step=100)
    sim.start()
    sim.tick()
    sim.tick()
    assert sim.status == SimStatus.FINISHED
    finished = sim.snapshot
    assert sim.tick() is finished
    assert sim.tick_count == 2


def test_snapshot_is_immutable():
    sim = CountingSemaphoreSim(processes=2, resources=1)
    snapshot = sim.start()
    with pytest.raises(FrozenInstanceError):
        snapshot.tick = 5

    with pytest.raises(FrozenInstanceError):
        snapshot.processes[0].progress = 99
    assert snapshot.todict()["processes"][0]["progress"] == 0

    sim.tick()
    sim.tick()
    assert snapshot.processes[0].state == ProcessState.WAITING
    assert sim.processes[0].state == ProcessState.RUNNING


def test_tick_callback(mocker):
    callback = mocker.MagicMock()
    sim = SleepWakeupSemaphoreSim(processes=2)
    sim.add_tick_callback(callback)
    sim.start()
    sim.tick()
    sim.tick()

    assert callback.call_count == 3
    ticks = [call.args[0].tick for call in callback.call_args_list]
    assert ticks == [0, 1, 2]
    assert callback.call_args_list[-1].args[0] is sim.snapshot


def test_run_max_ticks():
    sim = DiningPhilosophersSim()
    snapshot = sim.run(max_ticks=50)
    assert snapshot.tick == 50
    assert sim.status == SimStatus.RUNNING


def test_run_until_finished():
    sim = CountingSemaphoreSim(processes=3, resources=2, step=50)
    snapshot = sim.run()
    assert snapshot.status == SimStatus.FINISHED
    assert snapshot.tick == 5


def test_two_instances_are_independent():
    sim_a = CountingSemaphoreSim(processes=2, resources=1)
    sim_b = CountingSemaphoreSim(processes=2, resources=1)
    sim_a.start()
    sim_b.start()
    for _ in range(10):
        sim_a.tick()
    assert sim_b.tick_count == 0
    assert sim_b.processes[0].state == ProcessState.WAITING


def test_driver_run_1():
    sim = CountingSemaphoreSim(name="pool", processes=2, resources=1, step=50)
    driver = TickDriver(sim)
    snapshot = driver.run()

    assert snapshot.status == SimStatus.FINISHED
    assert driver.now == 5
    assert driver.tick_counter == 5
    assert list(driver.stat.stat_samples["pool"]) == [(0, 5)]


def test_driver_run_2():
    sim = DiningPhilosophersSim(name="table")
    driver = TickDriver(sim, stat_interval=10)
    snapshot = driver.run(until_tick=30)

    assert snapshot.tick == 30
    assert sim.status == SimStatus.RUNNING
    assert list(driver.stat.stat_samples["table"]) == [(0, 10), (10, 20), (20, 30)]


def test_philosopher_snapshot_is_immutable():
    sim = DiningPhilosophersSim()
    snapshot = sim.start()
    with pytest.raises(FrozenInstanceError):
        snapshot.philosophers[0].state = PhilosopherState.EATING
    with pytest.raises(FrozenInstanceError):
        snapshot.chopsticks[0].available = False
    assert snapshot.todict()["chopsticks"][0] == {"available": True}


@pytest.mark.parametrize(
    "sim_cls,params,ticks",
    [
        (CountingSemaphoreSim, {}, 30),
        (BinarySemaphoreSim, {}, 30),
        (SleepWakeupSemaphoreSim, {}, 30),
        (DiningPhilosophersSim, {"policy": "none"}, 20),
        (DiningPhilosophersSim, {"policy": "arbitrator"}, 12),
        (DiningPhilosophersSim, {"policy": "asymmetric"}, 40),
    ],
)
def test_reset_then_start_is_identical(sim_cls, params, ticks):
    sim = sim_cls(name="sim", **params)
    first = json.dumps(sim.start().todict(), sort_keys=True)
    for _ in range(ticks):
        sim.tick()
    sim.reset()
    assert json.dumps(sim.start().todict(), sort_keys=True) == first


def test_reset_clears_dining_flags():
    deadlocked = DiningPhilosophersSim(policy="none")
    assert deadlocked.run(max_ticks=20).deadlocked
    snapshot = deadlocked.reset()
    assert not snapshot.deadlocked
    assert not deadlocked.start().deadlocked

    arbitrated = DiningPhilosophersSim(policy="arbitrator")
    assert arbitrated.run(max_ticks=12).arbitrator_holder == 0
    arbitrated.reset()
    snapshot = arbitrated.start()
    assert snapshot.arbitrator_holder is None
    assert all(phil.holds_none() for phil in snapshot.philosophers)

    fed = DiningPhilosophersSim(policy="asymmetric")
    assert fed.run(max_ticks=40).philosophers[0].meals == 1
    fed.reset()
    assert all(phil.meals == 0 for phil in fed.start().philosophers)
