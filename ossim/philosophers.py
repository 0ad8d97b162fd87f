from __future__ import annotations

from dataclasses import asdict, dataclass
import logging
from typing import Dict, Hashable, List, Optional, Tuple

from schema import And, Schema, Use

from ossim.common import ChopstickID, PhilosopherID, PhilosopherState, PickupPolicy, Tick
from ossim.core import Snapshot, TickSimulator


logger = logging.getLogger(__name__)

POLICY_NAMES = {policy.name.lower(): policy for policy in PickupPolicy}

DINING_PHILOSOPHERS_PARAMS = Schema(
    {
        "philosophers": And(
            int, lambda n: n >= 2, error="philosophers must be an int >= 2"
        ),
        "policy": And(
            Use(
                lambda p: POLICY_NAMES[p.lower()]
                if isinstance(p, str)
                else PickupPolicy(p)
            ),
            error=f"policy must be one of {sorted(POLICY_NAMES)}",
        ),
        "think_ticks": And(int, lambda n: n >= 0, error="think_ticks must be >= 0"),
        "eat_ticks": And(int, lambda n: n >= 0, error="eat_ticks must be >= 0"),
    }
)


class ChopstickHands:
    has_left: bool
    has_right: bool

    def holds_none(self) -> bool:
        return not self.has_left and not self.has_right


@dataclass
class Philosopher(ChopstickHands):
    """
    Attributes:
        phil_id: Seat index, 0-based.
        state: THINKING, HUNGRY or EATING.
        think_time: Ticks spent in the current thinking period.
        eat_time: Ticks spent in the current meal.
        has_left: Holds chopstick phil_id.
        has_right: Holds chopstick (phil_id + 1) mod N.
        meals: Completed meals.
    """

    phil_id: PhilosopherID
    state: PhilosopherState = PhilosopherState.THINKING
    think_time: Tick = 0
    eat_time: Tick = 0
    has_left: bool = False
    has_right: bool = False
    meals: int = 0

    def view(self) -> PhilosopherView:
        return PhilosopherView(**asdict(self))


@dataclass(frozen=True)
class PhilosopherView(ChopstickHands):
    """
    Read-only copy of a Philosopher published in snapshots.
    """

    phil_id: PhilosopherID
    state: PhilosopherState
    think_time: Tick
    eat_time: Tick
    has_left: bool
    has_right: bool
    meals: int


@dataclass
class Chopstick:
    available: bool = True

    def view(self) -> ChopstickView:
        return ChopstickView(self.available)


@dataclass(frozen=True)
class ChopstickView:
    available: bool


@dataclass(frozen=True)
class DiningSnapshot(Snapshot):
    policy: PickupPolicy = PickupPolicy.ASYMMETRIC
    philosophers: Tuple[PhilosopherView, ...] = ()
    chopsticks: Tuple[ChopstickView, ...] = ()
    arbitrator_holder: Optional[PhilosopherID] = None
    deadlocked: bool = False


class DiningPhilosophersSim(TickSimulator):
    """
    N philosophers around a table with one chopstick between each pair.
    Philosopher i needs chopstick i (left) and chopstick (i + 1) mod N (right).

    A philosopher thinks for more than `think_ticks` ticks, becomes hungry,
    picks up at most one chopstick per tick in the order dictated by the
    policy, eats for more than `eat_ticks` ticks and puts both chopsticks
    down at once. Under the NONE policy the simulation can reach a circular
    wait: it is reported through the `deadlocked` flag and left as is.
    """

    PARAMS_SCHEMA = DINING_PHILOSOPHERS_PARAMS
    DEFAULT_PARAMS = {
        "philosophers": 5,
        "policy": "asymmetric",
        "think_ticks": 10,
        "eat_ticks": 15,
    }
    TRACKED_STATES = tuple(PhilosopherState)

    @property
    def policy(self) -> PickupPolicy:
        return self.params["policy"]

    def _clear(self) -> None:
        self.philosophers: List[Philosopher] = []
        self.chopsticks: List[Chopstick] = []
        # philosopher currently admitted to the acquisition phase (ARBITRATOR)
        self.arbitrator_holder: Optional[PhilosopherID] = None
        self.deadlocked: bool = False

    def _init_state(self) -> None:
        count = self.params["philosophers"]
        self.philosophers = [Philosopher(phil_id) for phil_id in range(count)]
        self.chopsticks = [Chopstick() for _ in range(count)]
        self.arbitrator_holder = None
        self.deadlocked = False

    def left_of(self, phil_id: PhilosopherID) -> ChopstickID:
        return phil_id

    def right_of(self, phil_id: PhilosopherID) -> ChopstickID:
        return (phil_id + 1) % len(self.philosophers)

    def _step(self) -> None:
        for phil in self.philosophers:
            if phil.state == PhilosopherState.THINKING:
                phil.think_time += 1
                if phil.think_time > self.params["think_ticks"]:
                    phil.state = PhilosopherState.HUNGRY
                    phil.think_time = 0
            elif phil.state == PhilosopherState.HUNGRY:
                self._on_hungry(phil)
            elif phil.state == PhilosopherState.EATING:
                phil.eat_time += 1
                if phil.eat_time > self.params["eat_ticks"]:
                    self._put_down(phil)
        self._detect_deadlock()

    def _on_hungry(self, phil: Philosopher) -> None:
        left = self.left_of(phil.phil_id)
        right = self.right_of(phil.phil_id)

        if self.policy == PickupPolicy.ASYMMETRIC and phil.phil_id % 2 == 1:
            self._try_pickup(phil, right, left, first_is_left=False)
        elif self.policy == PickupPolicy.ARBITRATOR:
            # one philosopher at a time is in the acquisition phase
            if self.arbitrator_holder not in (None, phil.phil_id):
                return
            self.arbitrator_holder = phil.phil_id
            self._try_pickup(phil, left, right, first_is_left=True)
            if phil.state == PhilosopherState.EATING:
                self.arbitrator_holder = None
        else:
            self._try_pickup(phil, left, right, first_is_left=True)

    def _try_pickup(
        self,
        phil: Philosopher,
        first: ChopstickID,
        second: ChopstickID,
        first_is_left: bool,
    ) -> None:
        """
        Take at most one chopstick: the first one if nothing is held yet,
        otherwise the missing second one. The philosopher starts eating
        only when both flags are set and both chopsticks are marked taken.
        """
        if phil.holds_none():
            if self.chopsticks[first].available:
                self.chopsticks[first].available = False
                if first_is_left:
                    phil.has_left = True
                else:
                    phil.has_right = True
            return

        needs_second = not phil.has_right if first_is_left else not phil.has_left
        if not needs_second or not self.chopsticks[second].available:
            return

        self.chopsticks[second].available = False
        if first_is_left:
            phil.has_right = True
        else:
            phil.has_left = True

        left_held = (
            phil.has_left and not self.chopsticks[self.left_of(phil.phil_id)].available
        )
        right_held = (
            phil.has_right
            and not self.chopsticks[self.right_of(phil.phil_id)].available
        )
        if left_held and right_held:
            phil.state = PhilosopherState.EATING

    def _put_down(self, phil: Philosopher) -> None:
        self.chopsticks[self.left_of(phil.phil_id)].available = True
        self.chopsticks[self.right_of(phil.phil_id)].available = True
        phil.has_left = False
        phil.has_right = False
        phil.state = PhilosopherState.THINKING
        phil.eat_time = 0
        phil.meals += 1

    def _detect_deadlock(self) -> None:
        deadlocked = (
            all(
                phil.state == PhilosopherState.HUNGRY
                and phil.has_left != phil.has_right
                for phil in self.philosophers
            )
            and not any(chop.available for chop in self.chopsticks)
        )
        if deadlocked and not self.deadlocked:
            logger.warning(
                "%s reached a circular wait at tick %s: every philosopher holds one chopstick",
                self.name,
                self.tick_count,
            )
        self.deadlocked = deadlocked

    def holders(self, chop_id: ChopstickID) -> List[PhilosopherID]:
        """
        Ids of the philosophers whose flags claim the given chopstick.
        """
        count = len(self.philosophers)
        ret = []
        if self.philosophers[chop_id].has_left:
            ret.append(chop_id)
        right_owner = (chop_id - 1) % count
        if self.philosophers[right_owner].has_right:
            ret.append(right_owner)
        return ret

    def _check_invariants(self) -> None:
        for chop_id, chop in enumerate(self.chopsticks):
            holders = self.holders(chop_id)
            assert len(holders) <= 1, f"chopstick {chop_id} held by {holders}"
            assert not (
                chop.available and holders
            ), f"chopstick {chop_id} available while held by {holders}"
        for phil in self.philosophers:
            eating = phil.state == PhilosopherState.EATING
            assert eating == (
                phil.has_left and phil.has_right
            ), f"philosopher {phil.phil_id} eating={eating} with partial chopsticks"

    def _entity_states(self) -> Dict[Hashable, PhilosopherState]:
        return {phil.phil_id: phil.state for phil in self.philosophers}

    def _is_finished(self) -> bool:
        return False

    def _make_snapshot(self) -> DiningSnapshot:
        return DiningSnapshot(
            name=self.name,
            tick=self.tick_count,
            status=self.status,
            policy=self.policy,
            philosophers=tuple(phil.view() for phil in self.philosophers),
            chopsticks=tuple(chop.view() for chop in self.chopsticks),
            arbitrator_holder=self.arbitrator_holder,
            deadlocked=self.deadlocked,
        )
