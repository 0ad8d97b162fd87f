from __future__ import annotations

from dataclasses import dataclass
from json import loads
from typing import Any, Dict, List, Optional, Type
import logging

import jq
import pandas as pd

from ossim.analysis import compare_algorithms
from ossim.common import Tick
from ossim.core import InvalidConfiguration, Snapshot, TickDriver, TickSimulator
from ossim.instructions import DataContainer, Instruction, ExecutionContext
from ossim.philosophers import DiningPhilosophersSim
from ossim.scheduler import DEFAULT_QUANTUM, ScheduleResult, schedule
from ossim.semaphore import (
    BinarySemaphoreSim,
    CountingSemaphoreSim,
    SleepWakeupSemaphoreSim,
)
from ossim.stat import SimStat


logging.basicConfig(
    level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s:%(message)s"
)
logger = logging.getLogger(__name__)

DEFAULT_MAX_TICKS: Tick = 1000

SIM_TYPE_MAP: Dict[str, Type[TickSimulator]] = {
    "counting_semaphore": CountingSemaphoreSim,
    "binary_semaphore": BinarySemaphoreSim,
    "sleep_wakeup": SleepWakeupSemaphoreSim,
    "dining_philosophers": DiningPhilosophersSim,
}


@dataclass
class TickSimData(DataContainer):
    sim_type: str
    max_ticks: Optional[Tick]
    stat_interval: Optional[Tick]
    snapshot: Snapshot
    sim_stat: SimStat

    def todict(self) -> Dict[str, Any]:
        stat_samples = [
            {"interval": list(interval), **frame.todict()}
            for samples in self.sim_stat.stat_samples.values()
            for interval, frame in samples.items()
        ]
        return {
            "sim_type": self.sim_type,
            "max_ticks": self.max_ticks,
            "stat_interval": self.stat_interval,
            "snapshot": self.snapshot.todict(),
            "stat_samples": stat_samples,
        }


@dataclass
class SchedulerData(DataContainer):
    result: ScheduleResult

    def todict(self) -> Dict[str, Any]:
        return self.result.todict()


@dataclass
class ComparisonData(DataContainer):
    frame: pd.DataFrame

    def todict(self) -> Dict[str, Any]:
        return {
            "algorithms": loads(self.frame.reset_index().to_json(orient="records")),
        }


class WorkflowInstruction(Instruction):
    def __init__(
        self,
        attr: Optional[Dict[str, Any]] = None,
        **kwargs: Dict[str, Any],
    ):
        super().__init__(**kwargs)
        self._attr = {} if attr is None else attr

    def __repr__(self):
        return f"{type(self).__name__}(attr={self._attr})"


class RunTickSim(WorkflowInstruction):
    def __init__(self, attr: Dict[str, Any]):
        super().__init__(attr)
        self._name = attr["name"]
        self._sim_type = attr["sim"]
        self._params = attr.get("params", {})
        self._max_ticks = attr.get("max_ticks", DEFAULT_MAX_TICKS)
        self._stat_interval = attr.get("stat_interval")
        if self._sim_type not in SIM_TYPE_MAP:
            raise InvalidConfiguration(
                f"Unknown simulator {self._sim_type!r}. Expected one of {sorted(SIM_TYPE_MAP)}"
            )

    def run(self, ctx: ExecutionContext) -> ExecutionContext:
        sim = SIM_TYPE_MAP[self._sim_type](name=self._name, **self._params)
        driver = TickDriver(sim, stat_interval=self._stat_interval)
        snapshot = driver.run(until_tick=self._max_ticks)

        ctx.set_data(
            self._name,
            TickSimData(
                self._sim_type,
                self._max_ticks,
                self._stat_interval,
                snapshot,
                driver.stat,
            ),
        )
        return ctx


class RunScheduler(WorkflowInstruction):
    def __init__(self, attr: Dict[str, Any]):
        super().__init__(attr)
        self._name = attr["name"]
        self._algorithm = attr["algorithm"]
        self._quantum = attr.get("quantum")
        self._processes: List[Dict[str, Any]] = attr["processes"]

    def run(self, ctx: ExecutionContext) -> ExecutionContext:
        result = schedule(self._algorithm, self._processes, self._quantum)
        ctx.set_data(self._name, SchedulerData(result))
        return ctx


class CompareAlgorithms(WorkflowInstruction):
    def __init__(self, attr: Dict[str, Any]):
        super().__init__(attr)
        self._name = attr["name"]
        self._quantum = attr.get("quantum", DEFAULT_QUANTUM)
        self._algorithms = attr.get("algorithms")
        self._processes: List[Dict[str, Any]] = attr["processes"]

    def run(self, ctx: ExecutionContext) -> ExecutionContext:
        frame = compare_algorithms(self._processes, self._quantum, self._algorithms)
        ctx.set_data(self._name, ComparisonData(frame))
        return ctx


class ValidateDataJQ(WorkflowInstruction):
    def __init__(self, attr: Dict[str, Any]):
        super().__init__(attr)
        self._data_jq_expr_map: Dict[str, List[Dict[str, Any]]] = dict(attr)

    def run(self, ctx: ExecutionContext) -> ExecutionContext:

        for key, validator_blocks in self._data_jq_expr_map.items():
            data = ctx.get_data(key).todict()

            for validator_block in validator_blocks:
                jq_expr = jq.compile(validator_block["jq_expr"])
                exp_res = validator_block["expected"]

                res = jq_expr.input(data).first()
                logger.debug("JQ Result: %s. Expected: %s", res, exp_res)
                if isinstance(res, int) and not isinstance(res, bool):
                    exp_res = int(exp_res)
                assert (
                    res == exp_res
                ), f"{key}: {validator_block['jq_expr']} returned {res}, expected {exp_res}"
        return ctx


class LogContextData(WorkflowInstruction):
    def __init__(self, attr: Optional[Dict[str, Any]] = None):
        super().__init__(attr)

    def run(self, ctx: ExecutionContext) -> ExecutionContext:

        logger.debug(ctx.get_data())
        return ctx


class PrintSimData(WorkflowInstruction):
    def __init__(self, attr: Dict[str, Any]):
        super().__init__(attr)
        self._name = attr["name"]

    def run(self, ctx: ExecutionContext) -> ExecutionContext:
        data = ctx.get_data(self._name)

        if isinstance(data, TickSimData):
            snapshot = data.snapshot
            print(f"{self._name} tick={snapshot.tick} status={snapshot.status.name}")
            for sim_name, samples in data.sim_stat.stat_samples.items():
                for interval, stat_sample in samples.items():
                    print(f"{sim_name} {interval}")
                    sample_dict = stat_sample.todict()
                    for key in sorted(sample_dict):
                        for k_pref in ["total", "avg", "max"]:
                            if key.startswith(k_pref):
                                print(f"\t{key}: {sample_dict[key]}")

        elif isinstance(data, SchedulerData):
            result = data.result
            print(f"{self._name} algorithm={result.algorithm} quantum={result.quantum}")
            for entry in result.timeline:
                print(f"\tP{entry.proc_id} [{entry.start}, {entry.end})")
            for proc in result.processes:
                print(
                    f"\tP{proc.proc_id}: waiting={proc.waiting} turnaround={proc.turnaround}"
                )
            print(f"\tavg_waiting: {result.avg_waiting:.2f}")
            print(f"\tavg_turnaround: {result.avg_turnaround:.2f}")

        elif isinstance(data, ComparisonData):
            print(data.frame.to_string())

        return ctx
