from enum import IntEnum
from typing import Tuple


Tick = int
ProcessID = int
PhilosopherID = int
ChopstickID = int
Progress = int
SimName = str
TimeInterval = Tuple[Tick, Tick]


class ProcessState(IntEnum):
    """
    States of a simulated process contending for a semaphore.

    - READY: created, not yet contending (unused by the built-in simulators)
    - WAITING: busy-waiting for a resource unit
    - RUNNING: holds a resource unit and makes progress
    - SLEEPING: blocked on the semaphore wait queue, consumes no CPU
    - COMPLETED: progress reached 100, resource released
    """

    READY = 1
    WAITING = 2
    RUNNING = 3
    SLEEPING = 4
    COMPLETED = 5


class PhilosopherState(IntEnum):
    THINKING = 1
    HUNGRY = 2
    EATING = 3


class PickupPolicy(IntEnum):
    """
    Chopstick pickup protocols of the Dining Philosophers simulation.

    - NONE: everyone picks left then right, may deadlock
    - ASYMMETRIC: even philosophers pick left first, odd pick right first
    - ARBITRATOR: acquisition attempts are serialized
    """

    NONE = 1
    ASYMMETRIC = 2
    ARBITRATOR = 3
