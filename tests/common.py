import math

from ossim.core import SimStatus, TickSimulator


def _close(a: float, b: float, *, rel: float = 1e-9, abs_: float = 1e-12) -> None:
    assert math.isclose(a, b, rel_tol=rel, abs_tol=abs_), f"{a=} {b=}"


def run_to_end(sim: TickSimulator, max_ticks: int = 10000) -> list:
    """Start the simulator and collect every snapshot until it finishes."""
    snapshots = [sim.start()]
    while sim.status == SimStatus.RUNNING and sim.tick_count < max_ticks:
        snapshots.append(sim.tick())
    return snapshots
