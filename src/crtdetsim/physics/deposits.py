from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict
import numpy as np

@dataclass(frozen=True, slots=True)
class EnergyDeposit:
    """
    Truth-level energy deposit in one scintillator strip.

    module_id / strip_id: CRT module and strip numbers (strip 0 is never simulated)
    entry / exit: world-frame points [cm], shape (3,)
    entry_t_ns / exit_t_ns: absolute times [ns]
    edep: deposited energy [GeV]
    extras: source-specific fields kept for bookkeeping (track id, pdg, ...)
    """
    module_id: int
    strip_id: int
    entry: np.ndarray
    exit: np.ndarray
    entry_t_ns: float
    exit_t_ns: float
    edep: float
    extras: Dict[str, Any] = field(default_factory=dict)

    def centroid(self) -> np.ndarray:
        return 0.5 * (np.asarray(self.entry, dtype=np.float64) + np.asarray(self.exit, dtype=np.float64))

    def mid_time_ns(self) -> float:
        return 0.5 * (self.entry_t_ns + self.exit_t_ns)
