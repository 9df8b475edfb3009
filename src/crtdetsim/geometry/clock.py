from __future__ import annotations
from dataclasses import dataclass

UINT32_MASK = 0xFFFFFFFF

@dataclass
class DetectorClock:
    """
    Electronics clock: converts between real time [us] and integer ticks.

    ticks() truncates toward zero and wraps to 32 bits like the FEB counters.
    All ns <-> tick conversions in the package go through ns_to_ticks()/time().
    """
    frequency_mhz: float = 16.0
    _time_us: float = 0.0

    def set_time(self, time_us: float) -> None:
        self._time_us = float(time_us)

    def ticks(self) -> int:
        return int(self._time_us * self.frequency_mhz) & UINT32_MASK

    def frequency(self) -> float:
        return self.frequency_mhz

    def time(self, ticks: int) -> float:
        """Time [us] of a tick count."""
        return ticks / self.frequency_mhz

    def tick_period_us(self) -> float:
        return 1.0 / self.frequency_mhz

    def ns_to_ticks(self, t_ns: float) -> int:
        self.set_time(t_ns * 1e-3)
        return self.ticks()
