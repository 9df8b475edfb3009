# src/crtdetsim/physics/events.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Tuple

ADC_MIN = -32768
ADC_MAX = 32767

def saturate_adc(value: float) -> int:
    """Truncate toward zero and clamp to the signed 16-bit ADC range."""
    return max(ADC_MIN, min(ADC_MAX, int(value)))

@dataclass(slots=True)
class ChannelObservation:
    """
    One discriminator firing on one FEB channel.

    channel: channel number local to the FEB
    t0_tick: trigger time in detector-clock ticks (uint32)
    pps_tick: time since PPS in ticks (uint32)
    adc: charge (int16); may grow when same-channel pile-up is summed
    """
    channel: int
    t0_tick: int
    pps_tick: int
    adc: int

    def copy(self) -> "ChannelObservation":
        return ChannelObservation(self.channel, self.t0_tick, self.pps_tick, self.adc)

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.channel, self.t0_tick, self.pps_tick, self.adc)

@dataclass(slots=True)
class FEBEvent:
    """
    One readout of a front-end board.

    The first latched observation is the trigger channel; channels are
    unique within an event.
    """
    mac5: int
    event_index: int
    trigger_time_us: float
    trigger_channel: int
    layer_pair: Tuple[int, int]
    mac_pair: Tuple[int, int]
    latched: List[ChannelObservation] = field(default_factory=list)

    @property
    def channels(self) -> List[int]:
        return [obs.channel for obs in self.latched]

    def is_consistent(self) -> bool:
        chans = self.channels
        return (
            bool(chans)
            and chans[0] == self.trigger_channel
            and len(set(chans)) == len(chans)
        )

    def validate(self) -> None:
        """
        Raise ValueError if the trigger channel does not lead the latched
        list or a channel is latched twice.
        """
        if not self.is_consistent():
            raise ValueError(
                f"FEBEvent consistency violation on mac5={self.mac5} "
                f"event={self.event_index}: trigger={self.trigger_channel}, "
                f"latched={self.channels}"
            )

    def to_record(self) -> tuple:
        """Flat record: (mac5, event_index, t_us, trig_ch, layer_pair, mac_pair, latched)."""
        return (
            int(self.mac5),
            int(self.event_index),
            float(self.trigger_time_us),
            int(self.trigger_channel),
            (int(self.layer_pair[0]), int(self.layer_pair[1])),
            (int(self.mac_pair[0]), int(self.mac_pair[1])),
            [obs.as_tuple() for obs in self.latched],
        )
