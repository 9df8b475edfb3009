# src/crtdetsim/filters/feb_trigger.py
"""
FEB front-end trigger logic.

Each board's time-ordered observations are replayed through a small state
machine that forms readout events:

- the earliest observation opens an event and becomes the trigger channel
- hits within the layer-coincidence window are latched (track-and-hold:
  one entry per channel; a repeat inside the bias window adds its charge
  to the most recently latched entry)
- hits after the window but within the dead time are lost
- the first hit after the dead time closes the event and opens the next

CERN/DC boards need both layers of the board inside the window; MINOS
boards need a hit on another board of the same stack covering the opposite
layer. A trigger that cannot find its partner is replaced by the next hit.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from crtdetsim.config.schemas import DetSimCfg
from crtdetsim.filters.accumulator import FEBAccumulator, FEBAccumulatorMap
from crtdetsim.filters.diagnostics import DetSimCounters
from crtdetsim.geometry.clock import DetectorClock
from crtdetsim.physics.events import ChannelObservation, FEBEvent, saturate_adc


@dataclass
class _OpenEvent:
    trig: ChannelObservation
    t_trig: float  # us
    mac_pair: Tuple[int, int]
    latched: List[ChannelObservation] = field(default_factory=list)
    channels: Set[int] = field(default_factory=set)
    layers: Set[Optional[int]] = field(default_factory=set)
    layer_pair: Tuple[int, int] = (0, 0)
    partner_found: bool = False

    @classmethod
    def open(cls, obs: ChannelObservation, t_us: float, feb: FEBAccumulator) -> "_OpenEvent":
        ev = cls(trig=obs, t_trig=t_us, mac_pair=(feb.mac5, feb.mac5))
        ev.latched.append(obs.copy())
        ev.channels.add(obs.channel)
        ev.layers.add(feb.layer_of(obs.channel))
        ev.layer_pair = (obs.channel, obs.channel)
        return ev

    def latch(self, obs: ChannelObservation, layer: Optional[int]) -> None:
        self.channels.add(obs.channel)
        self.latched.append(obs.copy())
        if layer not in self.layers:
            self.layers.add(layer)
            self.layer_pair = (self.trig.channel, obs.channel)

    def add_charge(self, obs: ChannelObservation) -> None:
        # pile-up lands on the most recently latched entry, whatever its channel
        held = self.latched[-1]
        held.adc = saturate_adc(held.adc + obs.adc)

    def close(self, mac5: int, index: int) -> FEBEvent:
        return FEBEvent(
            mac5=mac5,
            event_index=index,
            trigger_time_us=self.t_trig,
            trigger_channel=self.trig.channel,
            layer_pair=self.layer_pair,
            mac_pair=self.mac_pair,
            latched=self.latched,
        )


@dataclass
class TriggerSettings:
    apply_coincidence: dict
    window_us: dict
    dead_time_us: float
    bias_time_us: float
    flush_on_close: bool = False

    @classmethod
    def from_cfg(cls, cfg: DetSimCfg, flush_on_close: bool = False) -> "TriggerSettings":
        fams = ("cern", "dchooz", "minos")
        return cls(
            apply_coincidence={f: cfg.apply_coincidence(f) for f in fams},
            window_us={f: cfg.layer_window_ns(f) * 1e-3 for f in fams},
            dead_time_us=cfg.dead_time,
            bias_time_us=cfg.bias_time,
            flush_on_close=flush_on_close,
        )


class FEBTrigger:
    """
    Runs the trigger state machine over every board of a finalized
    FEBAccumulatorMap. Boards are processed in MAC5 order.
    """

    def __init__(
        self,
        febs: FEBAccumulatorMap,
        clock: DetectorClock,
        settings: TriggerSettings,
        counters: DetSimCounters,
        diagnostics_level: int = 1,
    ):
        self.febs = febs
        self.clock = clock
        self.settings = settings
        self.counters = counters
        self.diagnostics_level = diagnostics_level
        febs.finalize()

    def run(self) -> List[FEBEvent]:
        events: List[FEBEvent] = []
        for feb in self.febs.values():
            events.extend(self.run_feb(feb))
        return events

    def find_partner(self, feb: FEBAccumulator, t_trig_us: float) -> Optional[int]:
        """First opposite-layer board of the same stack with a hit within the MINOS window."""
        window = self.settings.window_us["minos"]
        for mac5 in self.febs.partner_candidates(feb):
            other = self.febs[mac5]
            for obs in other.data:
                if abs(self.clock.time(obs.t0_tick) - t_trig_us) < window:
                    return mac5
        return None

    def _coincidence_met(self, feb: FEBAccumulator, ev: _OpenEvent) -> bool:
        fam = feb.family
        if not self.settings.apply_coincidence[fam]:
            return True
        if fam == "minos":
            if not ev.partner_found:
                partner = self.find_partner(feb, ev.t_trig)
                if partner is None:
                    return False
                self._pair(feb, ev, partner)
            return True
        return len(ev.layers) >= 2

    def run_feb(self, feb: FEBAccumulator) -> List[FEBEvent]:
        s = self.settings
        c = self.counters
        fam = feb.family
        enforce = s.apply_coincidence[fam]
        window = s.window_us[fam]
        out: List[FEBEvent] = []

        if fam != "minos" and enforce and len(feb.layer_ids) < 2:
            c.miss_open_coincidence[fam] += 1
            return out
        if not feb.data:
            return out

        ev = _OpenEvent.open(feb.data[0], self.clock.time(feb.data[0].t0_tick), feb)

        for obs in feb.data[1:]:
            t = self.clock.time(obs.t0_tick)
            if t < ev.t_trig:
                c.inc("sorting_invariant_violated")
                if self.diagnostics_level >= 1:
                    print(f"[trigger] FEB {feb.mac5}: observations out of time order ({t} < {ev.t_trig})")
            dt = t - ev.t_trig

            # lone-layer trigger that ran out of window: next hit becomes the trigger
            if fam != "minos" and enforce and len(ev.layers) == 1 and dt > window:
                ev = _OpenEvent.open(obs, t, feb)
                c.miss_coincidence[fam] += 1
                continue

            if fam == "minos" and enforce and not ev.partner_found:
                partner = self.find_partner(feb, ev.t_trig)
                if partner is None:
                    ev = _OpenEvent.open(obs, t, feb)
                    c.miss_coincidence[fam] += 1
                    continue
                self._pair(feb, ev, partner)

            if dt < window:
                if obs.channel not in ev.channels:
                    ev.latch(obs, feb.layer_of(obs.channel))
                elif dt < s.bias_time_us:
                    ev.add_charge(obs)
                else:
                    c.miss_lock[fam] += 1
            elif dt <= s.dead_time_us:
                c.miss_dead_time[fam] += 1
            else:
                out.append(self._emit(feb, ev, len(out)))
                ev = _OpenEvent.open(obs, t, feb)

        if s.flush_on_close:
            if self._coincidence_met(feb, ev):
                out.append(self._emit(feb, ev, len(out)))
            else:
                c.miss_coincidence[fam] += 1

        return out

    @staticmethod
    def _pair(feb: FEBAccumulator, ev: _OpenEvent, partner: int) -> None:
        ev.mac_pair = (feb.mac5, partner)
        ev.partner_found = True
        feb.mac_pair = ev.mac_pair

    def _emit(self, feb: FEBAccumulator, ev: _OpenEvent, index: int) -> FEBEvent:
        c = self.counters
        c.events[feb.family] += 1
        c.hits[feb.family] += len(ev.latched)
        c.count_region(feb.region)
        return ev.close(feb.mac5, index)
