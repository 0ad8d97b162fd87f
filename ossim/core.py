from __future__ import annotations

from abc import ABC, abstractmethod
import dataclasses
import time
from collections import Counter
from enum import IntEnum
from typing import (
    Any,
    Callable,
    Dict,
    Hashable,
    List,
    Optional,
    Tuple,
)
import logging

from schema import Schema, SchemaError

from ossim.common import SimName, Tick
from ossim.stat import SimStat, SimulatorStat


LOG_FMT = "%(levelname)s - %(message)s"
logging.basicConfig(level=logging.INFO, format=LOG_FMT)
logger = logging.getLogger(__name__)


class InvalidConfiguration(ValueError):
    """
    Raised when simulator or scheduler parameters are rejected before a run.
    """


class SimStatus(IntEnum):
    """
    A given TickSimulator can be in one of the following states:

    - CREATED: configured, no entities allocated (also the state after reset)
    - RUNNING: started and advancing on every tick
    - PAUSED: started, ticks leave the state untouched
    - FINISHED: every entity reached its terminal state
    """

    CREATED = 1
    RUNNING = 2
    PAUSED = 3
    FINISHED = 4


def to_primitive(value: Any) -> Any:
    """
    Convert snapshot contents into JSON-ready Python objects.
    Enum members become their lower-case names, dataclasses become dicts
    and tuples become lists.
    """
    if isinstance(value, IntEnum):
        return value.name.lower()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            fld.name: to_primitive(getattr(value, fld.name))
            for fld in dataclasses.fields(value)
            if not fld.name.startswith("_")
        }
    if isinstance(value, (list, tuple)):
        return [to_primitive(item) for item in value]
    if isinstance(value, dict):
        return {key: to_primitive(item) for key, item in value.items()}
    return value


@dataclasses.dataclass(frozen=True)
class Snapshot:
    """
    Immutable view of a simulator published after start, every tick and reset.

    Attributes:
        name: Name of the simulator that published the snapshot.
        tick: Tick counter at the time of publishing.
        status: Simulator status at the time of publishing.
    """

    name: SimName = ""
    tick: Tick = 0
    status: SimStatus = SimStatus.CREATED

    def todict(self) -> Dict[str, Any]:
        return to_primitive(self)


class TickSimulator(ABC):
    """
    Abstract base class for a discrete-step simulator advanced by an external driver.

    Attributes:
        name: Name of the simulator.
        params: Validated configuration parameters.
        status: Current lifecycle status.
        tick_count: Number of ticks executed since the last start.
        stat: Per-tick state statistics.
    """

    PARAMS_SCHEMA: Schema = Schema({})
    DEFAULT_PARAMS: Dict[str, Any] = {}
    TRACKED_STATES: Tuple[IntEnum, ...] = ()

    def __init__(self, name: Optional[SimName] = None, **params: Any):
        """
        Initializes a new TickSimulator.

        Args:
            name: Optional name of the simulator.
            params: Parameters overriding DEFAULT_PARAMS.

        Raises:
            InvalidConfiguration: If the parameters do not pass PARAMS_SCHEMA.
        """
        self.name: SimName = name if name else type(self).__name__
        self.params: Dict[str, Any] = {}
        self.status: SimStatus = SimStatus.CREATED
        self.tick_count: Tick = 0
        self.stat: SimulatorStat = SimulatorStat(self)
        self.tick_callbacks: List[SnapshotCallback] = []
        self._prev_states: Dict[Hashable, IntEnum] = {}
        self.configure(**{**self.DEFAULT_PARAMS, **params})
        self._clear()
        self._snapshot: Snapshot = self._make_snapshot()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name}, params={self.params})"

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    def configure(self, **params: Any) -> None:
        """
        Merge the given parameters into the current configuration and validate them.
        The new configuration takes effect on the next start().

        Raises:
            InvalidConfiguration: If validation fails. The previous configuration is kept.
            RuntimeError: If the simulator is started and not reset yet.
        """
        if self.status in (SimStatus.RUNNING, SimStatus.PAUSED):
            raise RuntimeError(
                f"Cannot configure {self.name} while it is running. Reset it first!"
            )
        merged = {**self.params, **params}
        try:
            validated = self.PARAMS_SCHEMA.validate(merged)
        except SchemaError as err:
            raise InvalidConfiguration(
                f"Invalid parameters for {self.name}: {err}"
            ) from err
        self.params = validated

    def start(self) -> Snapshot:
        """
        Allocate the entities, set the initial state and publish the tick 0 snapshot.
        """
        self._init_state()
        self.tick_count = 0
        self.stat = SimulatorStat(self)
        self._prev_states = self._entity_states()
        self.stat.states_observed(self._state_counts(), 0)
        self.status = SimStatus.RUNNING
        logger.info("Starting %s with params %s", self.name, self.params)
        return self._publish()

    def tick(self) -> Snapshot:
        """
        Advance the simulation by exactly one step and publish the new snapshot.
        Paused and finished simulators return their current snapshot unchanged.

        Raises:
            RuntimeError: If the simulator has not been started.
        """
        if self.status == SimStatus.CREATED:
            raise RuntimeError(f"Cannot tick {self.name}. It has not been started!")
        if self.status != SimStatus.RUNNING:
            return self._snapshot

        self.tick_count += 1
        self.stat.advance_time()
        self._step()
        self._check_invariants()

        states = self._entity_states()
        changes = sum(
            1 for key, state in states.items() if self._prev_states.get(key) != state
        )
        self._prev_states = states
        self.stat.states_observed(self._state_counts(), changes)

        if self._is_finished():
            self.status = SimStatus.FINISHED
            logger.info("%s finished at tick %s", self.name, self.tick_count)
        logger.debug("%s tick %s: %s", self.name, self.tick_count, self._state_counts())
        return self._publish()

    def run(self, max_ticks: Optional[Tick] = None) -> Snapshot:
        """
        Tick until the simulation finishes, gets paused or reaches max_ticks.
        Starts the simulator first if needed. Simulations that never finish
        (deadlocks, Dining Philosophers) require max_ticks.
        """
        if self.status == SimStatus.CREATED:
            self.start()
        while self.status == SimStatus.RUNNING and (
            max_ticks is None or self.tick_count < max_ticks
        ):
            self.tick()
        return self._snapshot

    def pause(self) -> None:
        if self.status == SimStatus.RUNNING:
            self.status = SimStatus.PAUSED
            self._publish()

    def resume(self) -> None:
        if self.status == SimStatus.PAUSED:
            self.status = SimStatus.RUNNING
            self._publish()

    def reset(self) -> Snapshot:
        """
        Clear all entities and counters. Safe to call from any state.
        """
        self._clear()
        self.tick_count = 0
        self.stat = SimulatorStat(self)
        self._prev_states = {}
        self.status = SimStatus.CREATED
        logger.info("Resetting %s", self.name)
        return self._publish()

    def stop(self) -> Snapshot:
        """
        Halt the simulation. Same as reset(): nothing of the halted run is kept.
        """
        return self.reset()

    def add_tick_callback(self, callback: SnapshotCallback) -> None:
        """
        Register a callback function to be called with every published snapshot.
        """
        self.tick_callbacks.append(callback)

    def _publish(self) -> Snapshot:
        self._snapshot = self._make_snapshot()
        for tick_callback in self.tick_callbacks:
            tick_callback(self._snapshot)
        return self._snapshot

    def _state_counts(self) -> Dict[str, int]:
        counts = {state.name.lower(): 0 for state in self.TRACKED_STATES}
        counts.update(
            Counter(state.name.lower() for state in self._entity_states().values())
        )
        return counts

    def _check_invariants(self) -> None:
        """
        Assert the simulator invariants after a step. Violations are defects.
        """

    @abstractmethod
    def _init_state(self) -> None:
        """
        Allocate entities according to self.params.
        """
        raise NotImplementedError("Subclasses must implement _init_state.")

    @abstractmethod
    def _clear(self) -> None:
        """
        Drop all entities and reset the simulator-specific counters.
        """
        raise NotImplementedError("Subclasses must implement _clear.")

    @abstractmethod
    def _step(self) -> None:
        """
        Apply one tick worth of transitions to the entities.
        """
        raise NotImplementedError("Subclasses must implement _step.")

    @abstractmethod
    def _make_snapshot(self) -> Snapshot:
        raise NotImplementedError("Subclasses must implement _make_snapshot.")

    @abstractmethod
    def _entity_states(self) -> Dict[Hashable, IntEnum]:
        """
        Map every entity id to its current state.
        """
        raise NotImplementedError("Subclasses must implement _entity_states.")

    @abstractmethod
    def _is_finished(self) -> bool:
        raise NotImplementedError("Subclasses must implement _is_finished.")


class TickDriver:
    """
    Host driver that ticks a single simulator and collects its statistics.
    """

    def __init__(self, sim: TickSimulator, stat_interval: Optional[Tick] = None):
        """
        Args:
            sim: The simulator to drive.
            stat_interval: Number of ticks between stat samples. If not set,
                a single sample is collected when the run ends.
        """
        self.sim: TickSimulator = sim
        self.stat: SimStat = SimStat()
        self._stat_interval: Optional[Tick] = stat_interval
        self.tick_counter: int = 0

    @property
    def now(self) -> Tick:
        return self.sim.tick_count

    def run(self, until_tick: Optional[Tick] = None) -> Snapshot:
        """
        Tick the simulator until it stops running or until_tick is reached.

        Returns:
            The last published snapshot.
        """
        started_at = time.time()
        if self.sim.status == SimStatus.CREATED:
            self.sim.start()

        while self.sim.status == SimStatus.RUNNING:
            if until_tick is not None and self.sim.tick_count >= until_tick:
                break
            self.sim.tick()
            self.tick_counter += 1
            if self._stat_interval and self.sim.tick_count % self._stat_interval == 0:
                self._collect(reset=True)

        if not self._stat_interval:
            self._collect(reset=False)

        logger.info(
            "Simulation %s ended at tick %s (%s), it took %s wall clock seconds. Executed %s ticks.",
            self.sim.name,
            self.sim.tick_count,
            self.sim.status.name,
            time.time() - started_at,
            self.tick_counter,
        )
        return self.sim.snapshot

    def _collect(self, reset: bool) -> None:
        """
        Store the current stat frame of the simulator as a sample.

        Args:
            reset: If True, reset stats after collection; otherwise, accumulate.
        """
        stat = self.sim.stat
        stat.update_stat()
        interval = (stat.start_interval_timestamp, stat.cur_timestamp)
        self.stat.add_sample(self.sim.name, interval, stat.cur_stat_frame)
        if reset:
            stat.reset_stat()


SnapshotCallback = Callable[[Snapshot], None]
