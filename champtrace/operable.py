"""Clocked simulation components."""

from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from typing import Optional


class Deadlock(Exception):
    """Raised when a core stops making progress."""

    def __init__(self, cpu: int):
        super().__init__(f"deadlock detected on cpu {cpu}")
        self.which = cpu


class Operable(ABC):
    """A component that runs once per cycle of its own clock.

    ``scale`` is the ratio of the global clock to this component's clock;
    with a scale above one, some global ticks are skipped.
    """

    def __init__(self, scale: float):
        self.clock_scale = scale - 1
        self.leap_operation = 0.0
        self.current_cycle = 0
        self.warmup = True
        self.initialized = False
        self.phase_begin_cycle = 0
        self.phase_end_cycle: Optional[int] = None
        self.last_finished_cpu: Optional[int] = None

    def tick(self) -> int:
        """Advance one global tick; returns the work done, or 0 if this tick was skipped."""
        if self.leap_operation >= 1:
            self.leap_operation -= 1
            return 0

        result = self.operate()
        self.leap_operation += self.clock_scale
        self.current_cycle += 1
        return result

    @abstractmethod
    def operate(self) -> int:
        """Do one cycle of work and return a measure of progress."""

    def initialize(self) -> None:
        """Prepare the component before simulation."""
        self.initialized = True

    def begin_phase(self) -> None:
        """Mark the cycle at which a new phase begins."""
        self.phase_begin_cycle = self.current_cycle
        self.phase_end_cycle = None

    def end_phase(self, cpu: int) -> None:
        """Record that ``cpu`` finished its phase at the current cycle."""
        self.phase_end_cycle = self.current_cycle
        self.last_finished_cpu = cpu

    def _deadlock_report(self) -> str:
        lines = [
            f"{type(self).__name__} cycle: {self.current_cycle} warmup: {self.warmup}",
            f"phase began at cycle: {self.phase_begin_cycle}",
        ]
        if self.phase_end_cycle is not None:
            lines.append(
                f"phase ended at cycle: {self.phase_end_cycle} by cpu {self.last_finished_cpu}"
            )
        lines.append(f"pending leap: {self.leap_operation}")
        return "\n".join(lines)

    def print_deadlock(self) -> str:
        """Write a report of the internal state to stdout and return it."""
        report = self._deadlock_report()
        sys.stdout.write(report + "\n")
        return report