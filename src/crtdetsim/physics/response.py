# src/crtdetsim/physics/response.py
"""
Optical and electronic response of one CRT strip.

Per energy deposit the model produces, for each readout end, a Poisson PE
count, a discriminator time in clock ticks (time walk + fibre propagation)
and an ADC value. All random numbers come from one numpy Generator and are
drawn in a fixed order:

    npe0, npe1, [npe0_dual], t0, t1, [t0_dual], pps, q0, q1, [q0_dual]

where the bracketed draws happen for MINOS strips only. Each trigger time
consumes three Gaussians (walk, interpolator, propagation).
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from crtdetsim.config.schemas import DetSimCfg
from crtdetsim.filters.diagnostics import DetSimCounters
from crtdetsim.geometry.clock import DetectorClock
from crtdetsim.geometry.crt import Family, ModuleInfo
from crtdetsim.physics.deposits import EnergyDeposit
from crtdetsim.physics.events import saturate_adc

# Quadratic light yield vs distance to readout [m], fit to MINOS test data
# with normally incident cosmic muons; used for every family.
P0_M = 36.5425
P1_M = -6.3895
P2_M = 0.3742

# CERN two-fibre transverse weights
AT_C = (0.682976, -0.0204477, -0.000707564, 0.000636617, 0.000147957, -3.89078e-05)
AT_R = (0.139941, 0.168238, -0.0198199, 0.000781752)
AT_L = (8.78875, 3.54602, 0.595592, 0.0449169, 0.00127892)
CERN_FIBER_EDGE_CM = 5.5
CERN_LY_SCALE = 1.5  # CERN strips are 50% thicker

CM_TO_M = 0.01
MINOS_DUAL_MAC_OFFSET = 50


def _poly(coeffs: Sequence[float], x: float) -> float:
    return sum(c * x**k for k, c in enumerate(coeffs))

def _flip_odd(coeffs: Sequence[float]) -> Tuple[float, ...]:
    return tuple(-c if k % 2 else c for k, c in enumerate(coeffs))


def npe_expected(dist_m: float, qr: float) -> float:
    return (P2_M * dist_m**2 + P1_M * dist_m + P0_M) * qr

def transverse_weights(family: Family, x_cm: float) -> Tuple[float, float]:
    """
    (abs0, abs1) share of light seen by the two readouts at transverse
    position x across the strip. Only CERN strips have two fibres.
    """
    if family != "cern":
        return 1.0, 1.0
    if abs(x_cm) <= CERN_FIBER_EDGE_CM:
        return _poly(AT_C, x_cm), _poly(_flip_odd(AT_C), x_cm)
    if x_cm > CERN_FIBER_EDGE_CM:
        return _poly(AT_R, x_cm), _poly(_flip_odd(AT_L), x_cm)
    return _poly(AT_L, x_cm), _poly(_flip_odd(AT_R), x_cm)

def time_delay_mean(npe: float, cfg: DetSimCfg) -> float:
    return (
        cfg.t_delay_norm * np.exp(-0.5 * ((npe - cfg.t_delay_shift) / cfg.t_delay_sigma) ** 2)
        + cfg.t_delay_offset
    )

def time_delay_rms(npe: float, cfg: DetSimCfg) -> float:
    return (
        cfg.t_delay_rms_gaus_norm * np.exp(-((npe - cfg.t_delay_rms_gaus_shift) ** 2) / cfg.t_delay_rms_gaus_sigma)
        + cfg.t_delay_rms_exp_norm * np.exp(-(npe - cfg.t_delay_rms_exp_shift) / cfg.t_delay_rms_exp_scale)
    )


@dataclass(frozen=True)
class ChannelAssignment:
    """FEB address and channel numbers for one strip."""
    mac5: int
    channel0: int
    channel1: Optional[int] = None   # CERN second fibre
    dual_mac5: Optional[int] = None  # MINOS far end

def assign_channels(family: Family, module_id: int, strip_id: int) -> ChannelAssignment:
    if family == "cern":
        return ChannelAssignment(mac5=module_id, channel0=2 * strip_id, channel1=2 * strip_id + 1)
    if family == "dchooz":
        return ChannelAssignment(mac5=module_id, channel0=strip_id)
    mac5 = module_id // 3
    return ChannelAssignment(
        mac5=mac5,
        channel0=strip_id // 2 + 10 * (module_id % 3),
        dual_mac5=mac5 + MINOS_DUAL_MAC_OFFSET,
    )


@dataclass
class StripResponse:
    """Everything simulated for one deposit; *_dual fields are MINOS only."""
    dist1_m: float
    dist2_m: float
    abs0: float
    abs1: float
    npe_exp0: float
    npe_exp1: float
    npe0: int
    npe1: int
    t0: int
    t1: int
    pps: int
    q0: int
    q1: int
    npe_exp0_dual: Optional[float] = None
    npe0_dual: Optional[int] = None
    t0_dual: Optional[int] = None
    q0_dual: Optional[int] = None


class ResponseModel:
    """
    Stateless apart from the shared clock object and random stream.
    """

    def __init__(
        self,
        cfg: DetSimCfg,
        clock: DetectorClock,
        rng: np.random.Generator,
        counters: DetSimCounters | None = None,
    ):
        self.cfg = cfg
        self.clock = clock
        self.rng = rng
        self.counters = counters

    # --- random primitives ---------------------------------------------------

    def _gauss(self, mean: float, sigma: float) -> float:
        return float(mean + sigma * self.rng.standard_normal())

    def _poisson(self, mean: float) -> int:
        # non-positive means give 0 without consuming the stream
        if not mean > 0:
            return 0
        return int(self.rng.poisson(mean))

    def _warn(self, reason: str) -> None:
        if self.counters is not None:
            self.counters.inc(reason)

    # --- model pieces ----------------------------------------------------------

    def light_scale(self, family: Family, edep: float) -> float:
        qr = edep / self.cfg.q0 if self.cfg.use_edep else 1.0
        if family == "cern":
            qr *= CERN_LY_SCALE
        return qr

    def trigger_ticks(self, t_true_ns: float, npe: float, dist_m: float) -> int:
        """Discriminator time [ticks] for a readout seeing `npe` at `dist_m` from the hit."""
        cfg = self.cfg
        t_delay = self._gauss(time_delay_mean(npe, cfg), time_delay_rms(npe, cfg))
        t_delay += self._gauss(0.0, cfg.t_res_interpolator)
        t_prop = self._gauss(cfg.prop_delay, cfg.prop_delay_error) * dist_m
        return self.clock.ns_to_ticks(t_true_ns + t_prop + t_delay)

    def charge(self, npe: int) -> int:
        cfg = self.cfg
        q = saturate_adc(self._gauss(cfg.q_ped + cfg.q_slope * npe, cfg.q_rms * np.sqrt(npe)))
        if q < 0:
            self._warn("negative_adc")
        return q

    def pps_ticks(self) -> int:
        # placeholder for the real PPS reference: uniform over one second
        return int(self.rng.integers(0, int(self.clock.frequency() * 1e6)))

    def simulate(self, deposit: EnergyDeposit, info: ModuleInfo, local: np.ndarray) -> StripResponse:
        """
        Simulate both readouts of the strip hit by `deposit`.

        `local` is the deposit centroid in the strip frame [cm].
        """
        family = info.family
        dual = family == "minos"
        qr = self.light_scale(family, deposit.edep)

        z = float(local[2])
        dist1 = abs(info.strip_half_length - z) * CM_TO_M
        dist2 = abs(-info.strip_half_length - z) * CM_TO_M

        abs0, abs1 = transverse_weights(family, float(local[0]))
        exp0 = npe_expected(dist1, qr) * abs0
        exp1 = npe_expected(dist1, qr) * abs1
        exp0_dual = npe_expected(dist2, qr) * abs0 if dual else None

        if exp0 < 0 or exp1 < 0 or (exp0_dual is not None and exp0_dual < 0):
            self._warn("negative_pe")

        npe0 = self._poisson(exp0)
        npe1 = self._poisson(exp1)
        npe0_dual = self._poisson(exp0_dual) if dual else None

        t_true = deposit.mid_time_ns() + self.cfg.global_t0_offset
        t0 = self.trigger_ticks(t_true, npe0, dist1)
        t1 = self.trigger_ticks(t_true, npe1, dist1)
        t0_dual = self.trigger_ticks(t_true, npe0_dual, dist2) if dual else None

        pps = self.pps_ticks()

        q0 = self.charge(npe0)
        q1 = self.charge(npe1)
        q0_dual = self.charge(npe0_dual) if dual else None

        return StripResponse(
            dist1_m=dist1, dist2_m=dist2, abs0=abs0, abs1=abs1,
            npe_exp0=exp0, npe_exp1=exp1, npe0=npe0, npe1=npe1,
            t0=t0, t1=t1, pps=pps, q0=q0, q1=q1,
            npe_exp0_dual=exp0_dual, npe0_dual=npe0_dual, t0_dual=t0_dual, q0_dual=q0_dual,
        )
