from __future__ import annotations
import numpy as np
from typing import Dict, List, Literal, Sequence

from ..geometry.crt import TabularGeometry
from ..physics.deposits import EnergyDeposit

# nominal strip dimensions [cm] (half width, half height, half length)
STRIP_DIMS: Dict[str, tuple[float, float, float]] = {
    "cern": (11.5, 0.75, 92.0),
    "dchooz": (2.5, 0.5, 161.5),
    "minos": (2.05, 0.5, 400.0),
}
_VOLUME_TAGS = {"cern": "CERN", "dchooz": "DC", "minos": "MINOS"}
MIP_DEDX_GEV_PER_CM = 2.0e-3

def module_description(
    module_id: int,
    family: Literal["cern", "dchooz", "minos"],
    region: str,
    *,
    n_strips: int = 16,
    center: Sequence[float] = (0.0, 0.0, 0.0),
    region_position: Sequence[float] = (0.0, 0.0, 0.0),
    two_layers: bool | None = None,
) -> dict:
    """
    One [[modules]] entry for a TabularGeometry description.

    Strips are laid side by side along module x. With two_layers (default
    for CERN/DC) the first half sits at y<0 (layer 0) and the second half
    at y>0 (layer 1).
    """
    hw, hh, hl = STRIP_DIMS[family]
    if two_layers is None:
        two_layers = family != "minos"
    per_layer = n_strips // 2 if two_layers else n_strips
    strips: List[List[float]] = []
    for s in range(n_strips):
        col = s % per_layer
        y = 0.0
        if two_layers:
            y = hh if s >= per_layer else -hh
        x = (col - 0.5 * (per_layer - 1)) * 2.0 * hw
        strips.append([x, y, 0.0])
    return {
        "id": module_id,
        "volume_name": f"volAuxDet_{_VOLUME_TAGS[family]}_module_{module_id:03d}_{region}",
        "center": list(center),
        "region_position": list(region_position),
        "strip_half_width": hw,
        "strip_half_height": hh,
        "strip_half_length": hl,
        "strips": strips,
    }

def through_strip_deposit(
    geometry: TabularGeometry,
    module_id: int,
    strip_id: int,
    *,
    t_ns: float,
    edep: float | None = None,
    local_x: float = 0.0,
    local_z: float = 0.0,
    dt_ns: float = 0.1,
) -> EnergyDeposit:
    """
    Deposit of a particle crossing the strip along its thickness (strip y)
    at transverse position local_x and longitudinal position local_z.
    """
    info = geometry.classify(module_id)
    hh = info.strip_half_height
    entry = geometry.strip_to_world(module_id, strip_id, np.array([local_x, hh, local_z]))
    exit_ = geometry.strip_to_world(module_id, strip_id, np.array([local_x, -hh, local_z]))
    if edep is None:
        edep = MIP_DEDX_GEV_PER_CM * 2.0 * hh
    return EnergyDeposit(
        module_id=module_id,
        strip_id=strip_id,
        entry=entry,
        exit=exit_,
        entry_t_ns=t_ns,
        exit_t_ns=t_ns + dt_ns,
        edep=float(edep),
    )

def synth_random_deposits(
    n_deposits: int,
    geometry: TabularGeometry,
    *,
    window_ns: float = 1.0e6,
    t0_ns: float = 0.0,
    module_ids: Sequence[int] | None = None,
    rng: np.random.Generator | None = None,
) -> list[EnergyDeposit]:
    """
    Uniformly scattered MIP-like deposits over all strips (strip 0 excluded)
    of `module_ids` (default: every module) and over a time window; for
    smoke runs.
    """
    rng = rng or np.random.default_rng()
    candidates = []
    for mid in (geometry.module_ids if module_ids is None else module_ids):
        info = geometry.classify(mid)
        candidates.extend((mid, sid) for sid in range(1, info.strip_count))
    if not candidates:
        return []

    deposits: list[EnergyDeposit] = []
    for _ in range(n_deposits):
        mid, sid = candidates[int(rng.integers(len(candidates)))]
        info = geometry.classify(mid)
        x = rng.uniform(-info.strip_half_width, info.strip_half_width)
        z = rng.uniform(-info.strip_half_length, info.strip_half_length)
        t = t0_ns + rng.uniform(0.0, window_ns)
        deposits.append(through_strip_deposit(geometry, mid, sid, t_ns=t, local_x=x, local_z=z))
    deposits.sort(key=lambda d: d.entry_t_ns)
    return deposits
