from __future__ import annotations

from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional, Union


@dataclass
class DataContainer:
    pass


class ExecutionContext:
    def __init__(self):
        self._instr_queue: Deque[Instruction] = deque([])
        self._data: Dict[str, DataContainer] = {}

    def set_data(self, key: str, container: DataContainer) -> None:
        self._data[key] = container

    def get_data(
        self, key: str = ""
    ) -> Union[DataContainer, Dict[str, DataContainer]]:
        if key:
            return self._data[key]
        return self._data

    def get_next_instr(self) -> Optional[Instruction]:
        if self._instr_queue:
            return self._instr_queue.popleft()
        return None

    def set_instr(self, instr_list: List[Instruction]) -> None:
        self._instr_queue = deque(instr_list)


class Instruction(ABC):
    def __init__(self, **kwargs: Dict[str, Any]):
        self._attr = kwargs

    def __repr__(self) -> str:
        return f"{type(self).__name__}(attr={self._attr})"

    @abstractmethod
    def run(self, ctx: ExecutionContext) -> ExecutionContext:
        return ctx
