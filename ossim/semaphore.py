from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass
import logging
from typing import Deque, Dict, Hashable, List, Optional, Tuple

from schema import And, Schema

from ossim.common import ProcessID, ProcessState, Progress, Tick
from ossim.core import Snapshot, TickSimulator


logger = logging.getLogger(__name__)

MAX_PROGRESS: Progress = 100

PROCESS_COUNT = And(int, lambda n: n >= 1, error="processes must be an int >= 1")
PROGRESS_STEP = And(
    int, lambda n: 1 <= n <= MAX_PROGRESS, error="step must be an int in [1, 100]"
)

COUNTING_SEMAPHORE_PARAMS = Schema(
    {
        "processes": PROCESS_COUNT,
        "resources": And(int, lambda n: n >= 0, error="resources must be an int >= 0"),
        "step": PROGRESS_STEP,
    }
)

BINARY_SEMAPHORE_PARAMS = Schema(
    {
        "processes": PROCESS_COUNT,
        "step": PROGRESS_STEP,
    }
)

SLEEP_WAKEUP_PARAMS = BINARY_SEMAPHORE_PARAMS


@dataclass
class PoolProcess:
    """
    A process contending for a unit of a resource pool.

    Attributes:
        proc_id: 1-based id, also the admission order.
        state: WAITING, RUNNING or COMPLETED.
        progress: Work done, from 0 to 100.
        wait_time: Ticks spent WAITING. Only maintained by the binary semaphore.
    """

    proc_id: ProcessID
    state: ProcessState = ProcessState.WAITING
    progress: Progress = 0
    wait_time: Tick = 0

    def view(self) -> PoolProcessView:
        return PoolProcessView(**asdict(self))


@dataclass(frozen=True)
class PoolProcessView:
    proc_id: ProcessID
    state: ProcessState
    progress: Progress
    wait_time: Tick


@dataclass
class SleepProcess:
    proc_id: ProcessID
    state: ProcessState = ProcessState.SLEEPING
    progress: Progress = 0

    def view(self) -> SleepProcessView:
        return SleepProcessView(**asdict(self))


@dataclass(frozen=True)
class SleepProcessView:
    proc_id: ProcessID
    state: ProcessState
    progress: Progress


@dataclass(frozen=True)
class PoolSnapshot(Snapshot):
    semaphore: int = 0
    resources: int = 0
    processes: Tuple[PoolProcessView, ...] = ()


@dataclass(frozen=True)
class BinarySnapshot(PoolSnapshot):
    holder: Optional[ProcessID] = None


@dataclass(frozen=True)
class SleepWakeupSnapshot(Snapshot):
    value: int = 1
    queue: Tuple[ProcessID, ...] = ()
    processes: Tuple[SleepProcessView, ...] = ()


class CountingSemaphoreSim(TickSimulator):
    """
    Busy-waiting processes sharing a pool of identical resources guarded by
    a counting semaphore.

    Every tick the processes are scanned in table order: a WAITING process
    acquires a unit if one is free (wait), a RUNNING process advances by
    `step` and releases its unit once it reaches 100 (signal). A unit released
    during the scan can be acquired by a process later in the same scan.
    With zero resources every process waits forever.
    """

    PARAMS_SCHEMA = COUNTING_SEMAPHORE_PARAMS
    DEFAULT_PARAMS = {"processes": 5, "resources": 3, "step": 2}
    TRACKED_STATES = (ProcessState.WAITING, ProcessState.RUNNING, ProcessState.COMPLETED)

    @property
    def capacity(self) -> int:
        return self.params["resources"]

    def _clear(self) -> None:
        self.processes: List[PoolProcess] = []
        self.semaphore: int = self.capacity

    def _init_state(self) -> None:
        self.processes = [
            PoolProcess(proc_id) for proc_id in range(1, self.params["processes"] + 1)
        ]
        self.semaphore = self.capacity
        if self.capacity == 0:
            logger.warning(
                "%s has no resources, all processes will wait forever", self.name
            )

    def _step(self) -> None:
        for proc in self.processes:
            if proc.state == ProcessState.WAITING and self.semaphore > 0:
                self._wait(proc)
            elif proc.state == ProcessState.RUNNING:
                self._advance(proc)

    def _advance(self, proc: PoolProcess) -> None:
        proc.progress = min(proc.progress + self.params["step"], MAX_PROGRESS)
        if proc.progress == MAX_PROGRESS:
            self._signal(proc)

    def _wait(self, proc: PoolProcess) -> None:
        self.semaphore -= 1
        proc.state = ProcessState.RUNNING

    def _signal(self, proc: PoolProcess) -> None:
        proc.state = ProcessState.COMPLETED
        self.semaphore += 1

    def _running(self) -> List[PoolProcess]:
        return [proc for proc in self.processes if proc.state == ProcessState.RUNNING]

    def _check_invariants(self) -> None:
        assert 0 <= self.semaphore <= self.capacity, f"{self} semaphore out of range"
        assert (
            self.semaphore + len(self._running()) == self.capacity
        ), f"{self} lost or duplicated a resource unit"

    def _entity_states(self) -> Dict[Hashable, ProcessState]:
        return {proc.proc_id: proc.state for proc in self.processes}

    def _is_finished(self) -> bool:
        return all(proc.state == ProcessState.COMPLETED for proc in self.processes)

    def _make_snapshot(self) -> PoolSnapshot:
        return PoolSnapshot(
            name=self.name,
            tick=self.tick_count,
            status=self.status,
            semaphore=self.semaphore,
            resources=self.capacity,
            processes=tuple(proc.view() for proc in self.processes),
        )


class BinarySemaphoreSim(CountingSemaphoreSim):
    """
    Mutex lock: a counting semaphore with a single resource and an explicit holder.

    Per tick: the first WAITING process takes the lock if it is free, the
    holder advances (in the same tick it acquired the lock) and releases the
    lock on completion, then every process still WAITING accumulates one
    tick of wait_time.
    """

    PARAMS_SCHEMA = BINARY_SEMAPHORE_PARAMS
    DEFAULT_PARAMS = {"processes": 4, "step": 2}

    @property
    def capacity(self) -> int:
        return 1

    def _clear(self) -> None:
        super()._clear()
        self.holder: Optional[ProcessID] = None

    def _init_state(self) -> None:
        super()._init_state()
        self.holder = None

    def _step(self) -> None:
        if self.holder is None and self.semaphore == 1:
            waiting = next(
                (p for p in self.processes if p.state == ProcessState.WAITING), None
            )
            if waiting is not None:
                self._wait(waiting)

        running = next(iter(self._running()), None)
        if running is not None:
            self._advance(running)

        for proc in self.processes:
            if proc.state == ProcessState.WAITING:
                proc.wait_time += 1

    def _wait(self, proc: PoolProcess) -> None:
        super()._wait(proc)
        self.holder = proc.proc_id

    def _signal(self, proc: PoolProcess) -> None:
        super()._signal(proc)
        self.holder = None

    def _check_invariants(self) -> None:
        super()._check_invariants()
        running = self._running()
        assert len(running) <= 1, f"{self} has {len(running)} lock holders"
        assert (self.semaphore == 1) == (self.holder is None)
        if running:
            assert running[0].proc_id == self.holder

    def _make_snapshot(self) -> BinarySnapshot:
        return BinarySnapshot(
            name=self.name,
            tick=self.tick_count,
            status=self.status,
            semaphore=self.semaphore,
            resources=self.capacity,
            processes=tuple(proc.view() for proc in self.processes),
            holder=self.holder,
        )


class SleepWakeupSemaphoreSim(TickSimulator):
    """
    Blocking semaphore without busy waiting.

        wait(S):   S.value--; if S.value < 0: enqueue(self); sleep()
        signal(S): S.value++; if S.value <= 0: wakeup(dequeue())

    All processes start SLEEPING in the wait queue in id order. Completion of
    the running process (signal) and the wakeup of the next one (its wait
    returning) happen within the same tick, so a tick never ends with an
    idle semaphore while processes sleep. When the queue is empty the
    lowest-id SLEEPING process is woken instead.
    """

    PARAMS_SCHEMA = SLEEP_WAKEUP_PARAMS
    DEFAULT_PARAMS = {"processes": 4, "step": 2}
    TRACKED_STATES = (
        ProcessState.READY,
        ProcessState.RUNNING,
        ProcessState.SLEEPING,
        ProcessState.COMPLETED,
    )

    def _clear(self) -> None:
        self.processes: List[SleepProcess] = []
        self.value: int = 1
        self.queue: Deque[ProcessID] = deque()

    def _init_state(self) -> None:
        self.processes = [
            SleepProcess(proc_id) for proc_id in range(1, self.params["processes"] + 1)
        ]
        self.queue = deque(proc.proc_id for proc in self.processes)
        self.value = 1

    def _step(self) -> None:
        running = self._running()
        if running is not None:
            self.value = 0
            running.progress = min(running.progress + self.params["step"], MAX_PROGRESS)
            if running.progress == MAX_PROGRESS:
                running.state = ProcessState.COMPLETED
                self.value = 1
                self._wakeup()
        elif self.value == 1:
            self._wakeup()

    def _wakeup(self) -> None:
        """
        Hand the semaphore to the next sleeper: the queue head, or the
        lowest-id SLEEPING process when the queue is empty.
        """
        if self.queue:
            wake_id = self.queue.popleft()
        else:
            sleeper = next(
                (p for p in self.processes if p.state == ProcessState.SLEEPING), None
            )
            if sleeper is None:
                return
            wake_id = sleeper.proc_id
            logger.debug(
                "%s wait queue is empty, waking P%s by id scan", self.name, wake_id
            )

        proc = next((p for p in self.processes if p.proc_id == wake_id), None)
        if proc is not None and proc.state == ProcessState.SLEEPING:
            proc.state = ProcessState.RUNNING
            self.value = 0

    def _running(self) -> Optional[SleepProcess]:
        return next(
            (p for p in self.processes if p.state == ProcessState.RUNNING), None
        )

    def _check_invariants(self) -> None:
        running = [p for p in self.processes if p.state == ProcessState.RUNNING]
        assert len(running) <= 1, f"{self} has {len(running)} running processes"
        assert self.value == (0 if running else 1), f"{self} value is {self.value}"

    def _entity_states(self) -> Dict[Hashable, ProcessState]:
        return {proc.proc_id: proc.state for proc in self.processes}

    def _is_finished(self) -> bool:
        return all(proc.state == ProcessState.COMPLETED for proc in self.processes)

    def _make_snapshot(self) -> SleepWakeupSnapshot:
        return SleepWakeupSnapshot(
            name=self.name,
            tick=self.tick_count,
            status=self.status,
            value=self.value,
            queue=tuple(self.queue),
            processes=tuple(proc.view() for proc in self.processes),
        )
