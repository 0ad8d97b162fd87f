from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Union

import pandas as pd

from ossim.common import SimName, Tick
from ossim.scheduler import (
    ALGORITHM_INFO,
    ALGORITHMS,
    DEFAULT_QUANTUM,
    Process,
    ScheduleResult,
    schedule,
)
from ossim.stat import SimStat


def timeline_frame(result: ScheduleResult) -> pd.DataFrame:
    """
    One row per timeline slice, in execution order.
    """
    return pd.DataFrame(
        [
            {
                "proc_id": entry.proc_id,
                "start": entry.start,
                "duration": entry.duration,
                "end": entry.end,
            }
            for entry in result.timeline
        ],
        columns=["proc_id", "start", "duration", "end"],
    )


def process_frame(result: ScheduleResult) -> pd.DataFrame:
    """
    Per-process metrics indexed by process id, in table order.
    """
    df = pd.DataFrame(
        [
            {
                "proc_id": proc.proc_id,
                "arrival": proc.arrival,
                "burst": proc.burst,
                "priority": proc.priority,
                "start": proc.start,
                "finish": proc.finish,
                "waiting": proc.waiting,
                "turnaround": proc.turnaround,
                "response": proc.response,
            }
            for proc in result.processes
        ]
    )
    return df.set_index("proc_id")


def stat_frame(sim_stat: SimStat, sim_name: SimName) -> pd.DataFrame:
    """
    One row per collected stat sample of a simulator: the interval bounds,
    the average and maximum number of entities per state and the number of
    state changes.
    """
    rows: List[Dict[str, Any]] = []
    for (start, end), frame in sim_stat.stat_samples[sim_name].items():
        row: Dict[str, Any] = {
            "interval_start": start,
            "interval_end": end,
            "total_state_changes": frame.total_state_changes,
        }
        for state, value in frame.avg_state_counts.items():
            row[f"avg_{state}"] = value
        for state, value in frame.max_state_counts.items():
            row[f"max_{state}"] = value
        rows.append(row)
    return pd.DataFrame(rows)


def context_switches(result: ScheduleResult) -> int:
    """
    Number of dispatches that hand the CPU to a different process.
    Back-to-back slices of the same process do not count.
    """
    return sum(
        1
        for prev, cur in zip(result.timeline, result.timeline[1:])
        if prev.proc_id != cur.proc_id
    )


def compare_algorithms(
    processes: Iterable[Union[Process, Dict[str, Any]]],
    quantum: Tick = DEFAULT_QUANTUM,
    algorithms: Optional[Iterable[str]] = None,
) -> pd.DataFrame:
    """
    Schedule the same process table with several algorithms and tabulate
    the averages, indexed by algorithm key.
    """
    processes = list(processes)
    algorithms = list(ALGORITHMS) if algorithms is None else list(algorithms)
    rows = []
    for algorithm in algorithms:
        result = schedule(algorithm, processes, quantum)
        rows.append(
            {
                "algorithm": result.algorithm,
                "name": ALGORITHM_INFO[result.algorithm].name,
                "preemptive": ALGORITHM_INFO[result.algorithm].preemptive,
                "avg_waiting": result.avg_waiting,
                "avg_turnaround": result.avg_turnaround,
                "avg_response": result.avg_response,
                "end_time": result.end_time,
                "cpu_utilization": result.cpu_utilization,
                "context_switches": context_switches(result),
            }
        )
    return pd.DataFrame(rows).set_index("algorithm")
