from __future__ import annotations
from collections import defaultdict
from copy import deepcopy, copy
from dataclasses import MISSING, dataclass, fields, field
from typing import Any, Dict, Mapping, TYPE_CHECKING

from ossim.common import (
    SimName,
    Tick,
    TimeInterval,
)

if TYPE_CHECKING:
    from ossim.core import TickSimulator


FIELD_PREFIXES_DONT_RESET = ["timestamp", "cur_", "last_state_change_timestamp", "_"]


@dataclass
class StatFrame:
    """
    Holds a snapshot of stat data for a given tick.
    """

    timestamp: Tick = 0
    duration: Tick = 0
    last_state_change_timestamp: Tick = 0

    def update_stat(self) -> None:
        """
        Override in subclasses to handle any stat updates for the current frame.
        """
        ...

    def update_on_advance(self, prev_frame: StatFrame) -> None:
        """
        Called when advancing time from prev_frame to this frame. Subclasses
        can override to incorporate data from the previous frame.
        """
        self.update_stat()

    def reset_stat(self) -> None:
        """
        Reset all statistic fields to defaults unless they match prefixes
        in FIELD_PREFIXES_DONT_RESET.
        """
        for fld in fields(self):
            if not any(
                fld.name.startswith(prefix) for prefix in FIELD_PREFIXES_DONT_RESET
            ):
                if fld.default != MISSING:
                    setattr(self, fld.name, fld.default)
                else:
                    setattr(self, fld.name, fld.default_factory())

    def set_time(self, timestamp: Tick, duration: Tick) -> None:
        self.timestamp = timestamp
        self.duration = duration

    def todict(self) -> Dict[str, Any]:
        """
        Return a dictionary representation of this stat frame, deeply copying
        internal mutable structures.
        """
        return {
            field.name: (
                deepcopy(getattr(self, field.name))
                if not isinstance(getattr(self, field.name), defaultdict)
                else dict(deepcopy(getattr(self, field.name)))
            )
            for field in fields(self)
            if not field.name.startswith("_")
        }


@dataclass
class Stat:
    """
    Base class responsible for stats of a given simulator.
    Manages a current and a previous frame and advances them with the tick counter.
    """

    _sim: TickSimulator = field(repr=False)
    cur_stat_frame: StatFrame = field(default_factory=StatFrame)
    prev_stat_frame: StatFrame = field(default_factory=StatFrame)

    prev_timestamp: Tick = 0
    cur_timestamp: Tick = 0

    start_interval_timestamp: Tick = 0
    cur_interval_duration: Tick = 0

    last_state_change_timestamp: Tick = 0

    def advance_time(self) -> None:
        """
        Advance statistics to the current tick of the simulator and update the stats.
        """
        if self.cur_stat_frame.duration:
            self.cur_stat_frame.update_stat()

        self.prev_timestamp, self.cur_timestamp = (
            self.cur_timestamp,
            self._sim.tick_count,
        )
        self.cur_interval_duration += self.cur_timestamp - self.prev_timestamp

        self.prev_stat_frame = copy(self.cur_stat_frame)
        self.cur_stat_frame.set_time(self.cur_timestamp, self.cur_interval_duration)
        self.cur_stat_frame.update_on_advance(self.prev_stat_frame)

    def reset_stat(self) -> None:
        """
        Reset runtime statistics in the current frame to defaults.
        Used in periodic sample collection.
        """
        self.start_interval_timestamp = self.cur_timestamp
        self.cur_interval_duration = 0
        self.cur_stat_frame.reset_stat()

    def update_stat(self) -> None:
        if self.cur_interval_duration:
            self.cur_stat_frame.update_stat()

    def todict(self) -> Dict[str, Any]:
        return {
            field.name: (
                deepcopy(getattr(self, field.name))
                if not isinstance(getattr(self, field.name), StatFrame)
                else getattr(self, field.name).todict()
            )
            for field in fields(self)
            if not field.name.startswith("_")
        }


@dataclass
class StateStatFrame(StatFrame):
    """
    StatFrame tracking how many entities of a simulator are in each state.
    The average count of a state is computed via its integral over ticks.
    """

    cur_state_counts: Dict[str, int] = field(default_factory=dict)
    integral_state_sum: Dict[str, float] = field(
        default_factory=lambda: defaultdict(float)
    )
    avg_state_counts: Dict[str, float] = field(default_factory=dict)
    max_state_counts: Dict[str, int] = field(default_factory=dict)
    total_state_changes: int = 0

    def record_states(self, state_counts: Mapping[str, int], changes: int) -> None:
        """
        Store the state counts observed at the end of a tick.

        Args:
            state_counts: Number of entities per state name.
            changes: Number of entities that changed state during the tick.
        """
        self.cur_state_counts = dict(state_counts)
        self.total_state_changes += changes
        for state, count in self.cur_state_counts.items():
            self.max_state_counts[state] = max(
                self.max_state_counts.get(state, 0), count
            )

    def _update_state_integral(self, prev_frame: StateStatFrame) -> None:
        """
        Accumulate the area under each state count curve from the previous
        frame's tick to this frame's tick.
        """
        for state, count in prev_frame.cur_state_counts.items():
            self.integral_state_sum[state] += count * (
                self.timestamp - prev_frame.timestamp
            )

    def update_stat(self) -> None:
        if self.duration > 0:
            self.avg_state_counts = {
                state: integral / self.duration
                for state, integral in self.integral_state_sum.items()
            }

    def update_on_advance(self, prev_frame: StateStatFrame) -> None:
        self._update_state_integral(prev_frame)
        self.update_stat()


@dataclass
class SimulatorStat(Stat):
    """
    Statistics for a tick simulator, which uses StateStatFrame as its frame type.
    """

    cur_stat_frame: StateStatFrame = field(default_factory=StateStatFrame)
    prev_stat_frame: StateStatFrame = field(default_factory=StateStatFrame)

    def states_observed(self, state_counts: Mapping[str, int], changes: int) -> None:
        if changes:
            self.last_state_change_timestamp = self.cur_timestamp
            self.cur_stat_frame.last_state_change_timestamp = self.cur_timestamp
        self.cur_stat_frame.record_states(state_counts, changes)


StatSamples = Dict[TimeInterval, StatFrame]


@dataclass
class SimStat:
    """
    Container for stat frame samples collected by a TickDriver, keyed by
    simulator name and tick interval.
    """

    stat_samples: Dict[SimName, StatSamples] = field(default_factory=dict)

    def add_sample(
        self, sim_name: SimName, interval: TimeInterval, frame: StatFrame
    ) -> None:
        self.stat_samples.setdefault(sim_name, {})[interval] = deepcopy(frame)

    def todict(self) -> Dict[str, Any]:
        samples_dict = {}
        for sim_name, intervals in self.stat_samples.items():
            samples_dict[sim_name] = {}
            for interval, statsample in intervals.items():
                samples_dict[sim_name][interval] = statsample.todict()
        return {"stat_samples": samples_dict}
