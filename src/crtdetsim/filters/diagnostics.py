# src/crtdetsim/filters/diagnostics.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List

from crtdetsim.geometry.crt import FAMILIES, region_number

_SHORT = {"cern": "c", "dchooz": "d", "minos": "m"}
_LABEL = {"cern": "CERN", "dchooz": "DC", "minos": "MINOS"}

def _per_family() -> Dict[str, int]:
    return {f: 0 for f in FAMILIES}

def _pct(num: int, den: int) -> float:
    return 100.0 * num / den if den else 0.0

@dataclass
class DetSimCounters:
    """
    Per-family tallies of one simulation call, plus a warning tally.

    Loss causes are counted where the hit is dropped; percentages in the
    summary are relative to the surviving channel observations.
    """
    simulated: Dict[str, int] = field(default_factory=_per_family)
    surviving: Dict[str, int] = field(default_factory=_per_family)
    miss_threshold: Dict[str, int] = field(default_factory=_per_family)
    miss_strip_coincidence: Dict[str, int] = field(default_factory=_per_family)
    miss_open_coincidence: Dict[str, int] = field(default_factory=_per_family)
    miss_coincidence: Dict[str, int] = field(default_factory=_per_family)
    miss_lock: Dict[str, int] = field(default_factory=_per_family)
    miss_dead_time: Dict[str, int] = field(default_factory=_per_family)
    events: Dict[str, int] = field(default_factory=_per_family)
    hits: Dict[str, int] = field(default_factory=_per_family)
    region_events: Dict[int, int] = field(default_factory=dict)
    warnings: Dict[str, int] = field(default_factory=dict)

    def inc(self, reason: str) -> None:
        self.warnings[reason] = self.warnings.get(reason, 0) + 1

    def count_region(self, region: str) -> None:
        num = region_number(region)
        self.region_events[num] = self.region_events.get(num, 0) + 1

    def flat(self) -> Dict[str, int]:
        """Counters under their short legacy names (nsim_c, nmiss_lock_m, ...)."""
        out: Dict[str, int] = {}
        names = {
            "nsim": self.simulated,
            "nchandat": self.surviving,
            "nmissthr": self.miss_threshold,
            "nmiss_strcoin": self.miss_strip_coincidence,
            "nmiss_opencoin": self.miss_open_coincidence,
            "nmiss_coin": self.miss_coincidence,
            "nmiss_lock": self.miss_lock,
            "nmiss_dead": self.miss_dead_time,
            "neve": self.events,
            "nhit": self.hits,
        }
        for prefix, table in names.items():
            for fam in FAMILIES:
                out[f"{prefix}_{_SHORT[fam]}"] = int(table[fam])
        return out

    def to_dict(self) -> Dict[str, object]:
        d: Dict[str, object] = dict(self.flat())
        d["region_events"] = {str(k): v for k, v in sorted(self.region_events.items())}
        d["warnings"] = dict(sorted(self.warnings.items()))
        return d

    def summary_lines(self) -> List[str]:
        lines = [f"CRT triggered FEB events: {sum(self.events.values())}"]
        for fam in FAMILIES:
            lines.append(f"{_LABEL[fam]} sim hits: {self.simulated[fam]}")
        for fam in FAMILIES:
            lines.append(f"{_LABEL[fam]} hits > thresh: {self.surviving[fam]}")
        for fam in FAMILIES:
            lines.append(f"{_LABEL[fam]} hits lost from threshold: {self.miss_threshold[fam]}")
        lines.append(f"CERN hits lost from fiber coincidence: {self.miss_strip_coincidence['cern']}")
        for fam in ("cern", "dchooz"):
            lines.append(f"{_LABEL[fam]} hits lost from open coincidence: {self.miss_open_coincidence[fam]}")

        causes = (
            ("missed hits from track-and-hold", self.miss_lock),
            ("missed hits from dead time", self.miss_dead_time),
            ("missed hits from coincidence", self.miss_coincidence),
            ("hits in system", self.hits),
        )
        for text, table in causes:
            for fam in FAMILIES:
                n = table[fam]
                lines.append(f"{_LABEL[fam]} {text}: {n} ({_pct(n, self.surviving[fam]):.1f}%)")
        for fam in FAMILIES:
            lines.append(f"events in {_LABEL[fam]} system: {self.events[fam]}")

        lines.append("FEB events per CRT region:")
        for reg, n in sorted(self.region_events.items()):
            lines.append(f"  reg: {reg} , events: {n}")
        if self.warnings:
            lines.append("warnings:")
            for reason, n in sorted(self.warnings.items()):
                lines.append(f"  {reason}: {n}")
        return lines
