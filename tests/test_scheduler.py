import pytest

from ossim.core import InvalidConfiguration
from ossim.scheduler import (
    ALGORITHM_INFO,
    CPUScheduler,
    Process,
    TimelineEntry,
    schedule,
    validate_processes,
)

from .common import _close


def _procs_1():
    return [
        {"id": 1, "arrival": 0, "burst": 5, "priority": 2},
        {"id": 2, "arrival": 1, "burst": 3, "priority": 1},
        {"id": 3, "arrival": 2, "burst": 8, "priority": 3},
    ]


def _timeline(result):
    return [(entry.proc_id, entry.start, entry.duration) for entry in result.timeline]


def test_process_from_dict():
    proc = Process.from_dict({"id": 7, "arrival": 1, "burst": 2})
    assert proc == Process(7, arrival=1, burst=2, priority=0)
    assert Process.from_dict({"proc_id": 7, "arrival": 1, "burst": 2}) == proc


def test_process_from_dict_missing():
    with pytest.raises(InvalidConfiguration):
        Process.from_dict({"id": 1, "burst": 2})


def test_timeline_entry_end():
    assert TimelineEntry(1, start=4, duration=3).end == 7


def test_fcfs_1():
    result = schedule("fcfs", _procs_1())
    assert _timeline(result) == [(1, 0, 5), (2, 5, 3), (3, 8, 8)]
    assert [proc.waiting for proc in result.processes] == [0, 4, 6]
    assert [proc.turnaround for proc in result.processes] == [5, 7, 14]
    _close(result.avg_waiting, 10 / 3)
    _close(result.avg_turnaround, 26 / 3)
    assert result.quantum is None
    assert result.end_time == 16
    assert result.idle_time == 0
    _close(result.cpu_utilization, 1.0)


def test_fcfs_arrival_ties_keep_table_order():
    result = schedule(
        "fcfs",
        [
            {"id": 3, "arrival": 0, "burst": 1},
            {"id": 1, "arrival": 0, "burst": 1},
            {"id": 2, "arrival": 0, "burst": 1},
        ],
    )
    assert [entry.proc_id for entry in result.timeline] == [3, 1, 2]


def test_sjf_1():
    assert _timeline(schedule("sjf", _procs_1())) == [(1, 0, 5), (2, 5, 3), (3, 8, 8)]


def test_sjf_2():
    result = schedule(
        "sjf",
        [
            {"id": 1, "arrival": 0, "burst": 8},
            {"id": 2, "arrival": 1, "burst": 4},
            {"id": 3, "arrival": 2, "burst": 2},
            {"id": 4, "arrival": 3, "burst": 1},
        ],
    )
    assert _timeline(result) == [(1, 0, 8), (4, 8, 1), (3, 9, 2), (2, 11, 4)]
    assert [proc.waiting for proc in result.processes] == [0, 10, 7, 5]
    _close(result.avg_waiting, 5.5)


def test_sjf_ties_keep_table_order():
    result = schedule(
        "sjf",
        [
            {"id": 1, "arrival": 0, "burst": 3},
            {"id": 2, "arrival": 0, "burst": 3},
            {"id": 3, "arrival": 0, "burst": 1},
        ],
    )
    assert [entry.proc_id for entry in result.timeline] == [3, 1, 2]


def test_priority_1():
    result = schedule(
        "priority",
        [
            {"id": 1, "arrival": 0, "burst": 4, "priority": 3},
            {"id": 2, "arrival": 0, "burst": 2, "priority": 1},
            {"id": 3, "arrival": 0, "burst": 3, "priority": 2},
        ],
    )
    assert _timeline(result) == [(2, 0, 2), (3, 2, 3), (1, 5, 4)]
    assert [proc.waiting for proc in result.processes] == [5, 0, 2]
    _close(result.avg_waiting, 7 / 3)


def test_priority_2():
    result = schedule("priority", _procs_1())
    assert _timeline(result) == [(1, 0, 5), (2, 5, 3), (3, 8, 8)]


@pytest.mark.parametrize("algorithm", ["fcfs", "sjf", "priority"])
def test_idle_gap(algorithm):
    result = schedule(
        algorithm,
        [
            {"id": 1, "arrival": 2, "burst": 3},
            {"id": 2, "arrival": 10, "burst": 1},
        ],
    )
    assert _timeline(result) == [(1, 2, 3), (2, 10, 1)]
    assert [proc.waiting for proc in result.processes] == [0, 0]
    assert result.end_time == 11
    assert result.idle_time == 7
    _close(result.cpu_utilization, 4 / 11)


def test_round_robin_1():
    result = schedule("rr", _procs_1(), quantum=2)
    assert _timeline(result) == [
        (1, 0, 2),
        (2, 2, 2),
        (3, 4, 2),
        (1, 6, 2),
        (2, 8, 1),
        (3, 9, 2),
        (1, 11, 1),
        (3, 12, 2),
        (3, 14, 2),
    ]
    assert [proc.finish for proc in result.processes] == [12, 9, 16]
    assert [proc.turnaround for proc in result.processes] == [12, 8, 14]
    assert [proc.waiting for proc in result.processes] == [7, 5, 6]
    assert [proc.response for proc in result.processes] == [0, 1, 2]
    _close(result.avg_waiting, 6.0)
    _close(result.avg_turnaround, 34 / 3)
    _close(result.avg_response, 1.0)
    assert result.quantum == 2


def test_round_robin_default_quantum():
    assert _timeline(schedule("rr", _procs_1())) == _timeline(
        schedule("rr", _procs_1(), quantum=2)
    )


def test_round_robin_idle_gap():
    result = schedule(
        "rr",
        [
            {"id": 1, "arrival": 0, "burst": 1},
            {"id": 2, "arrival": 3, "burst": 2},
        ],
        quantum=2,
    )
    assert _timeline(result) == [(1, 0, 1), (2, 3, 2)]
    assert result.get_process(2).finish == 5


def test_round_robin_large_quantum_is_fcfs():
    assert _timeline(schedule("rr", _procs_1(), quantum=100)) == _timeline(
        schedule("fcfs", _procs_1())
    )


def test_round_robin_slices_bounded():
    result = schedule("rr", _procs_1(), quantum=3)
    assert all(entry.duration <= 3 for entry in result.timeline)
    for proc in result.processes:
        assert (
            sum(e.duration for e in result.timeline if e.proc_id == proc.proc_id)
            == proc.burst
        )


@pytest.mark.parametrize("algorithm", ["fcfs", "sjf", "priority", "rr"])
def test_schedule_invariants(algorithm):
    result = schedule(algorithm, _procs_1())
    for prev, cur in zip(result.timeline, result.timeline[1:]):
        assert cur.start >= prev.end
    for proc in result.processes:
        assert proc.finish - proc.arrival == proc.turnaround
        assert proc.turnaround - proc.burst == proc.waiting
        assert proc.waiting >= 0
        assert proc.remaining == 0
        slices = [e for e in result.timeline if e.proc_id == proc.proc_id]
        assert slices[0].start >= proc.arrival
        assert slices[-1].end == proc.finish


def test_schedule_is_deterministic():
    assert schedule("rr", _procs_1()).todict() == schedule("rr", _procs_1()).todict()


def test_schedule_does_not_modify_input():
    procs = [Process.from_dict(proc) for proc in _procs_1()]
    schedule("rr", procs)
    assert all(proc.start == -1 and proc.finish == 0 for proc in procs)


def test_schedule_algorithm_case():
    assert schedule("FCFS", _procs_1()).algorithm == "fcfs"


@pytest.mark.parametrize(
    "processes",
    [
        [],
        [{"id": 1, "arrival": 0, "burst": 0}],
        [{"id": 1, "arrival": -1, "burst": 2}],
        [{"id": 1, "arrival": 0, "burst": 2}, {"id": 1, "arrival": 3, "burst": 2}],
    ],
)
def test_invalid_processes(processes):
    with pytest.raises(InvalidConfiguration):
        schedule("fcfs", processes)


def test_invalid_algorithm():
    with pytest.raises(InvalidConfiguration):
        schedule("lottery", _procs_1())


@pytest.mark.parametrize("quantum", [0, -2])
def test_invalid_quantum(quantum):
    with pytest.raises(InvalidConfiguration):
        schedule("rr", _procs_1(), quantum=quantum)


def test_quantum_ignored_by_non_preemptive():
    assert schedule("fcfs", _procs_1(), quantum=0).quantum is None


def test_result_todict():
    ret = schedule("fcfs", _procs_1()).todict()
    assert ret["algorithm"] == "fcfs"
    assert ret["timeline"][0] == {"proc_id": 1, "start": 0, "duration": 5}
    assert ret["processes"][1]["waiting"] == 4
    assert ret["end_time"] == 16
    assert ret["cpu_utilization"] == 1.0


def test_algorithm_info():
    assert set(ALGORITHM_INFO) == {"fcfs", "sjf", "priority", "rr"}
    assert ALGORITHM_INFO["rr"].preemptive
    assert not ALGORITHM_INFO["sjf"].preemptive


def test_validate_processes():
    procs = validate_processes(_procs_1())
    assert [proc.proc_id for proc in procs] == [1, 2, 3]


def test_cpu_scheduler_1():
    scheduler = CPUScheduler(_procs_1())
    result = scheduler.run()
    assert result.algorithm == "fcfs"
    assert scheduler.result is result
    assert [proc.waiting for proc in scheduler.processes] == [0, 4, 6]

    result = scheduler.run(algorithm="rr", quantum=2)
    assert scheduler.algorithm == "rr"
    assert result.get_process(1).finish == 12


def test_cpu_scheduler_add_remove():
    scheduler = CPUScheduler()
    assert scheduler.add_process(burst=5).proc_id == 1
    assert scheduler.add_process(burst=3, arrival=1).proc_id == 2
    assert scheduler.add_process(burst=8, arrival=2).proc_id == 3

    scheduler.remove_process(2)
    assert [proc.proc_id for proc in scheduler.processes] == [1, 3]
    assert scheduler.add_process(burst=1).proc_id == 4

    with pytest.raises(KeyError):
        scheduler.remove_process(2)
    with pytest.raises(InvalidConfiguration):
        scheduler.add_process(burst=0)


def test_cpu_scheduler_update():
    scheduler = CPUScheduler(_procs_1())
    scheduler.update_process(3, burst=1)
    result = scheduler.run(algorithm="sjf")
    assert _timeline(result) == [(1, 0, 5), (3, 5, 1), (2, 6, 3)]

    with pytest.raises(KeyError):
        scheduler.update_process(9, burst=1)
    with pytest.raises(InvalidConfiguration):
        scheduler.update_process(1, finish=3)
    with pytest.raises(InvalidConfiguration):
        scheduler.update_process(1, burst=-1)


def test_cpu_scheduler_reset():
    scheduler = CPUScheduler(_procs_1(), algorithm="rr")
    scheduler.run()
    scheduler.reset()
    assert scheduler.result is None
    assert len(scheduler.processes) == 3
    assert all(proc.finish == 0 for proc in scheduler.processes)


def test_cpu_scheduler_empty_run():
    with pytest.raises(InvalidConfiguration):
        CPUScheduler().run()


def test_cpu_scheduler_invalid_config():
    with pytest.raises(InvalidConfiguration):
        CPUScheduler(algorithm="mlfq")
    with pytest.raises(InvalidConfiguration):
        CPUScheduler(quantum=0)
