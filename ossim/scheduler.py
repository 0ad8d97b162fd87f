from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass, field, replace
from operator import attrgetter
import logging
from typing import (
    Any,
    Callable,
    Deque,
    Dict,
    Iterable,
    List,
    Optional,
    Set,
    Union,
)

from schema import And, Schema, SchemaError

from ossim.common import ProcessID, Tick
from ossim.core import InvalidConfiguration, to_primitive


logger = logging.getLogger(__name__)

DEFAULT_QUANTUM: Tick = 2

PROCESS_SCHEMA = Schema(
    {
        "proc_id": int,
        "arrival": And(int, lambda n: n >= 0, error="arrival must be an int >= 0"),
        "burst": And(int, lambda n: n > 0, error="burst must be an int > 0"),
        "priority": int,
    },
    ignore_extra_keys=True,
)

QUANTUM_SCHEMA = Schema(
    And(int, lambda n: n >= 1, error="time quantum must be an int >= 1")
)


@dataclass
class Process:
    """
    A row of the process table.

    Attributes:
        proc_id: Unique id of the process.
        arrival: Arrival time.
        burst: Required CPU time.
        priority: Lower value means more urgent.
        remaining: CPU time still required (derived).
        start: Time of the first dispatch, -1 if never dispatched (derived).
        finish: Completion time (derived).
        waiting: finish - arrival - burst (derived).
        turnaround: finish - arrival (derived).
    """

    proc_id: ProcessID
    arrival: Tick
    burst: Tick
    priority: int = 0
    remaining: Tick = 0
    start: Tick = -1
    finish: Tick = 0
    waiting: Tick = 0
    turnaround: Tick = 0

    @classmethod
    def from_dict(cls, proc_dict: Dict[str, Any]) -> Process:
        """
        Build a Process from a table row. The id can be given as "id" or "proc_id".
        """
        proc_dict = dict(proc_dict)
        if "id" in proc_dict:
            proc_dict["proc_id"] = proc_dict.pop("id")
        try:
            return cls(
                proc_id=proc_dict["proc_id"],
                arrival=proc_dict["arrival"],
                burst=proc_dict["burst"],
                priority=proc_dict.get("priority", 0),
            )
        except KeyError as err:
            raise InvalidConfiguration(
                f"Process {proc_dict} is missing {err}"
            ) from err

    @property
    def response(self) -> Optional[Tick]:
        if self.start < 0:
            return None
        return self.start - self.arrival

    def reset_derived(self) -> Process:
        """
        Return a copy with all derived fields reset for a new run.
        """
        return replace(
            self, remaining=self.burst, start=-1, finish=0, waiting=0, turnaround=0
        )


@dataclass(frozen=True)
class TimelineEntry:
    """
    A contiguous slice of CPU time given to one process.
    """

    proc_id: ProcessID
    start: Tick
    duration: Tick

    @property
    def end(self) -> Tick:
        return self.start + self.duration


Timeline = List[TimelineEntry]
Algorithm = Callable[[List[Process], Optional[Tick]], Timeline]


@dataclass(frozen=True)
class AlgorithmInfo:
    name: str
    description: str
    preemptive: bool


ALGORITHM_INFO: Dict[str, AlgorithmInfo] = {
    "fcfs": AlgorithmInfo(
        "First-Come, First-Served (FCFS)",
        "Processes are executed in the order they arrive. "
        "Simple but can cause convoy effect.",
        False,
    ),
    "sjf": AlgorithmInfo(
        "Shortest Job First (SJF)",
        "Process with shortest burst time is executed first. "
        "Optimal for minimizing average waiting time.",
        False,
    ),
    "priority": AlgorithmInfo(
        "Priority Scheduling",
        "Processes are executed based on priority. "
        "Lower priority number = higher priority.",
        False,
    ),
    "rr": AlgorithmInfo(
        "Round Robin (RR)",
        "Each process gets a fixed time quantum. Fair and prevents starvation.",
        True,
    ),
}


@dataclass
class ScheduleResult:
    """
    Outcome of a scheduling run: the execution timeline and per-process metrics.
    """

    algorithm: str
    timeline: Timeline = field(default_factory=list)
    processes: List[Process] = field(default_factory=list)
    avg_waiting: float = 0
    avg_turnaround: float = 0
    quantum: Optional[Tick] = None

    @property
    def avg_response(self) -> float:
        return sum(proc.response for proc in self.processes) / len(self.processes)

    @property
    def end_time(self) -> Tick:
        return max((entry.end for entry in self.timeline), default=0)

    @property
    def busy_time(self) -> Tick:
        return sum(entry.duration for entry in self.timeline)

    @property
    def idle_time(self) -> Tick:
        return self.end_time - self.busy_time

    @property
    def cpu_utilization(self) -> float:
        if not self.end_time:
            return 0.0
        return self.busy_time / self.end_time

    def get_process(self, proc_id: ProcessID) -> Process:
        for proc in self.processes:
            if proc.proc_id == proc_id:
                return proc
        raise KeyError(proc_id)

    def todict(self) -> Dict[str, Any]:
        ret = to_primitive(self)
        ret["avg_response"] = self.avg_response
        ret["end_time"] = self.end_time
        ret["idle_time"] = self.idle_time
        ret["cpu_utilization"] = self.cpu_utilization
        return ret


def run_fcfs(procs: List[Process], quantum: Optional[Tick] = None) -> Timeline:
    """
    Run every process to completion in arrival order. Ties keep table order.
    """
    _ = quantum
    timeline: Timeline = []
    now: Tick = 0

    for proc in sorted(procs, key=attrgetter("arrival")):
        now = max(now, proc.arrival)
        proc.start = now
        timeline.append(TimelineEntry(proc.proc_id, now, proc.burst))
        now += proc.burst
        proc.remaining = 0
        proc.finish = now
    return timeline


def _run_non_preemptive(
    procs: List[Process], key: Callable[[Process], int]
) -> Timeline:
    """
    At every decision point run the arrived process with the smallest key to
    completion. Ties go to the earliest process in the table. When nothing
    has arrived yet, jump to the next arrival.
    """
    pending = list(procs)
    timeline: Timeline = []
    now: Tick = 0

    while pending:
        available = [proc for proc in pending if proc.arrival <= now]
        if not available:
            now = min(proc.arrival for proc in pending)
            continue

        proc = min(available, key=key)
        proc.start = now
        timeline.append(TimelineEntry(proc.proc_id, now, proc.burst))
        now += proc.burst
        proc.remaining = 0
        proc.finish = now
        pending = [other for other in pending if other is not proc]
    return timeline


def run_sjf(procs: List[Process], quantum: Optional[Tick] = None) -> Timeline:
    _ = quantum
    return _run_non_preemptive(procs, key=attrgetter("burst"))


def run_priority(procs: List[Process], quantum: Optional[Tick] = None) -> Timeline:
    _ = quantum
    return _run_non_preemptive(procs, key=attrgetter("priority"))


def run_round_robin(procs: List[Process], quantum: Optional[Tick] = None) -> Timeline:
    """
    Preemptive round robin over a FIFO ready queue.

    Processes arriving exactly at the current time are admitted before a
    dispatch; processes arriving while a slice runs are admitted after it,
    ahead of the preempted process. An empty ready queue advances time by 1.
    """
    quantum = DEFAULT_QUANTUM if quantum is None else quantum
    ready: Deque[Process] = deque()
    queued: Set[ProcessID] = set()
    timeline: Timeline = []
    now: Tick = 0

    def admit(proc: Process) -> None:
        ready.append(proc)
        queued.add(proc.proc_id)

    while any(proc.remaining > 0 for proc in procs):
        for proc in procs:
            if proc.arrival == now and proc.remaining > 0 and proc.proc_id not in queued:
                admit(proc)

        if not ready:
            now += 1
            continue

        proc = ready.popleft()
        queued.discard(proc.proc_id)
        if proc.start == -1:
            proc.start = now

        exec_time = min(quantum, proc.remaining)
        timeline.append(TimelineEntry(proc.proc_id, now, exec_time))
        slice_start, now = now, now + exec_time
        proc.remaining -= exec_time

        for other in procs:
            if (
                slice_start < other.arrival <= now
                and other.remaining > 0
                and other.proc_id not in queued
                and other is not proc
            ):
                admit(other)

        if proc.remaining > 0:
            admit(proc)
        else:
            proc.finish = now
    return timeline


ALGORITHMS: Dict[str, Algorithm] = {
    "fcfs": run_fcfs,
    "sjf": run_sjf,
    "priority": run_priority,
    "rr": run_round_robin,
}


def _validate_algorithm(algorithm: str) -> str:
    if not isinstance(algorithm, str) or algorithm.lower() not in ALGORITHMS:
        raise InvalidConfiguration(
            f"Unknown scheduling algorithm {algorithm!r}. Expected one of {sorted(ALGORITHMS)}"
        )
    return algorithm.lower()


def _validate_quantum(quantum: Tick) -> Tick:
    try:
        return QUANTUM_SCHEMA.validate(quantum)
    except SchemaError as err:
        raise InvalidConfiguration(str(err)) from err


def validate_processes(
    processes: Iterable[Union[Process, Dict[str, Any]]]
) -> List[Process]:
    """
    Check a process table and return it as a list of Process objects.

    Raises:
        InvalidConfiguration: If the table is empty, has duplicate ids or
            invalid timing attributes.
    """
    procs = [
        proc if isinstance(proc, Process) else Process.from_dict(proc)
        for proc in processes
    ]
    if not procs:
        raise InvalidConfiguration("The process table is empty")

    seen: Set[ProcessID] = set()
    for proc in procs:
        try:
            PROCESS_SCHEMA.validate(asdict(proc))
        except SchemaError as err:
            raise InvalidConfiguration(f"Invalid process {proc}: {err}") from err
        if proc.proc_id in seen:
            raise InvalidConfiguration(f"Duplicate process id {proc.proc_id}")
        seen.add(proc.proc_id)
    return procs


def schedule(
    algorithm: str,
    processes: Iterable[Union[Process, Dict[str, Any]]],
    quantum: Optional[Tick] = None,
) -> ScheduleResult:
    """
    Compute the execution timeline and metrics of a process table.
    The given processes are not modified.

    Args:
        algorithm: One of "fcfs", "sjf", "priority", "rr".
        processes: Process objects or dicts with id, arrival, burst and priority.
        quantum: Round Robin time quantum, defaults to DEFAULT_QUANTUM.

    Returns:
        The ScheduleResult with processes in table order.
    """
    algorithm = _validate_algorithm(algorithm)
    if algorithm == "rr":
        quantum = _validate_quantum(DEFAULT_QUANTUM if quantum is None else quantum)
    else:
        quantum = None

    procs = [proc.reset_derived() for proc in validate_processes(processes)]
    timeline = ALGORITHMS[algorithm](procs, quantum)

    for proc in procs:
        proc.turnaround = proc.finish - proc.arrival
        proc.waiting = proc.turnaround - proc.burst

    result = ScheduleResult(
        algorithm=algorithm,
        timeline=timeline,
        processes=procs,
        avg_waiting=sum(proc.waiting for proc in procs) / len(procs),
        avg_turnaround=sum(proc.turnaround for proc in procs) / len(procs),
        quantum=quantum,
    )
    logger.debug(
        "Scheduled %s processes with %s: avg waiting %s, avg turnaround %s",
        len(procs),
        algorithm,
        result.avg_waiting,
        result.avg_turnaround,
    )
    return result


class CPUScheduler:
    """
    Editable process table plus the selected algorithm and quantum.
    Scheduling is a synchronous batch computation, there is no ticking.
    """

    def __init__(
        self,
        processes: Optional[Iterable[Union[Process, Dict[str, Any]]]] = None,
        algorithm: str = "fcfs",
        quantum: Tick = DEFAULT_QUANTUM,
    ):
        self.processes: List[Process] = (
            [proc.reset_derived() for proc in validate_processes(processes)]
            if processes is not None
            else []
        )
        self.algorithm: str = "fcfs"
        self.quantum: Tick = DEFAULT_QUANTUM
        self.result: Optional[ScheduleResult] = None
        self.configure(algorithm=algorithm, quantum=quantum)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(algorithm={self.algorithm}, quantum={self.quantum}, "
            f"processes={len(self.processes)})"
        )

    def configure(
        self, algorithm: Optional[str] = None, quantum: Optional[Tick] = None
    ) -> None:
        if algorithm is not None:
            self.algorithm = _validate_algorithm(algorithm)
        if quantum is not None:
            self.quantum = _validate_quantum(quantum)

    def add_process(self, burst: Tick, arrival: Tick = 0, priority: int = 1) -> Process:
        """
        Append a process with the next free id (highest id + 1).
        """
        next_id = max((proc.proc_id for proc in self.processes), default=0) + 1
        proc = Process(next_id, arrival=arrival, burst=burst, priority=priority)
        validate_processes([proc])
        proc = proc.reset_derived()
        self.processes.append(proc)
        return proc

    def remove_process(self, proc_id: ProcessID) -> None:
        if not any(proc.proc_id == proc_id for proc in self.processes):
            raise KeyError(proc_id)
        self.processes = [proc for proc in self.processes if proc.proc_id != proc_id]

    def update_process(self, proc_id: ProcessID, **attrs: int) -> Process:
        """
        Change arrival, burst or priority of a process in the table.
        """
        unknown = set(attrs) - {"arrival", "burst", "priority"}
        if unknown:
            raise InvalidConfiguration(f"Cannot update process fields {sorted(unknown)}")
        for idx, proc in enumerate(self.processes):
            if proc.proc_id == proc_id:
                updated = replace(proc, **attrs)
                validate_processes([updated])
                self.processes[idx] = updated
                return updated
        raise KeyError(proc_id)

    def run(
        self,
        algorithm: Optional[str] = None,
        processes: Optional[Iterable[Union[Process, Dict[str, Any]]]] = None,
        quantum: Optional[Tick] = None,
    ) -> ScheduleResult:
        """
        Schedule the table (or the given processes, which then replace the
        table). The table is updated with the computed metrics.
        """
        self.configure(algorithm=algorithm, quantum=quantum)
        if processes is not None:
            self.processes = validate_processes(processes)
        self.result = schedule(self.algorithm, self.processes, self.quantum)
        self.processes = [replace(proc) for proc in self.result.processes]
        return self.result

    def reset(self) -> None:
        """
        Drop the last result. The process table is kept.
        """
        self.result = None
        self.processes = [proc.reset_derived() for proc in self.processes]
