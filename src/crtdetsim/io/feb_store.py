from __future__ import annotations
from typing import List, Sequence, Tuple
import h5py
import numpy as np
import json
from datetime import datetime, timezone
from crtdetsim.filters.diagnostics import DetSimCounters
from crtdetsim.physics.events import ChannelObservation, FEBEvent

FORMAT_VERSION = "1.0"


def _replace_or_create(grp: h5py.Group, name: str, data: np.ndarray) -> None:
    if name in grp:
        del grp[name]
    # empty datasets cannot be chunked for compression
    if data.size:
        grp.create_dataset(name, data=data, compression="gzip")
    else:
        grp.create_dataset(name, data=data)


def write_init(path: str, config_text: str = "") -> h5py.File:
    f = h5py.File(path, "w")
    # Root attrs
    f.attrs["format_version"] = FORMAT_VERSION
    f.attrs["created_utc"] = datetime.now(timezone.utc).isoformat()
    f.attrs["software"] = "crt-detsim 0.1.0"
    f.attrs["config_text"] = config_text
    return f


def _flatten_events(events: Sequence[FEBEvent]) -> Tuple[np.ndarray, dict]:
    """
    Convert FEB events (variable number of latched channels) into ragged columns.

    Returns:
      event_ptr: (N_events+1,) int64, CSR-style pointers into the flat latched arrays.
      cols: event-level arrays ('mac5', 'event_index', 'trigger_time_us',
            'trigger_channel', 'layer_pair' (N,2), 'mac_pair' (N,2)) and
            flat latched arrays under 'latched/...' ('channel', 't0_tick',
            'pps_tick', 'adc').
    """
    n_events = len(events)
    ptr = np.zeros(n_events + 1, dtype=np.int64)
    k = 0
    for i, ev in enumerate(events):
        k += len(ev.latched)
        ptr[i + 1] = k

    M = int(k)
    channel = np.empty(M, dtype=np.uint32)
    t0_tick = np.empty(M, dtype=np.uint32)
    pps_tick = np.empty(M, dtype=np.uint32)
    adc = np.empty(M, dtype=np.int16)

    mac5 = np.zeros(n_events, dtype=np.uint32)
    index = np.zeros(n_events, dtype=np.uint32)
    t_us = np.zeros(n_events, dtype=np.float64)
    trig = np.zeros(n_events, dtype=np.uint32)
    layer_pair = np.zeros((n_events, 2), dtype=np.uint32)
    mac_pair = np.zeros((n_events, 2), dtype=np.uint32)

    w = 0
    for i, ev in enumerate(events):
        mac5[i] = ev.mac5
        index[i] = ev.event_index
        t_us[i] = ev.trigger_time_us
        trig[i] = ev.trigger_channel
        layer_pair[i] = ev.layer_pair
        mac_pair[i] = ev.mac_pair
        for obs in ev.latched:
            channel[w] = obs.channel
            t0_tick[w] = obs.t0_tick
            pps_tick[w] = obs.pps_tick
            adc[w] = obs.adc
            w += 1

    cols = {
        "mac5": mac5, "event_index": index, "trigger_time_us": t_us,
        "trigger_channel": trig, "layer_pair": layer_pair, "mac_pair": mac_pair,
        "latched/channel": channel, "latched/t0_tick": t0_tick,
        "latched/pps_tick": pps_tick, "latched/adc": adc,
    }
    return ptr, cols


def write_feb_events(h5: h5py.File, events: Sequence[FEBEvent], *, group: str = "/feb") -> None:
    """
    Write FEB events in a ragged layout:

    /feb/events/{mac5, event_index, trigger_time_us, trigger_channel, layer_pair, mac_pair}
    /feb/latched/{event_ptr, channel, t0_tick, pps_tick, adc}
    """
    if group.endswith("/"):
        group = group[:-1]
    g_ev = h5.require_group(f"{group}/events")
    g_lat = h5.require_group(f"{group}/latched")

    event_ptr, cols = _flatten_events(events)

    if "event_ptr" in g_lat:
        del g_lat["event_ptr"]
    g_lat.create_dataset("event_ptr", data=event_ptr, dtype="i8")

    for key in ("channel", "t0_tick", "pps_tick", "adc"):
        _replace_or_create(g_lat, key, cols[f"latched/{key}"])

    for key in ("mac5", "event_index", "trigger_time_us", "trigger_channel", "layer_pair", "mac_pair"):
        _replace_or_create(g_ev, key, cols[key])


def write_counters(h5: h5py.File, counters: DetSimCounters, *, group: str = "/feb") -> None:
    """Store the run counters as a JSON attribute on the FEB group."""
    grp = h5.require_group(group)
    grp.attrs["counters_json"] = json.dumps(counters.to_dict(), separators=(",", ":"))


def read_feb_events(path: str, *, group: str = "/feb") -> List[FEBEvent]:
    path = str(path)
    with h5py.File(path, "r") as f:
        if group not in f:
            raise KeyError(f"{group} not found in {path}")
        g_ev = f[f"{group}/events"]
        g_lat = f[f"{group}/latched"]
        ptr = g_lat["event_ptr"][...]
        channel = g_lat["channel"][...]
        t0_tick = g_lat["t0_tick"][...]
        pps_tick = g_lat["pps_tick"][...]
        adc = g_lat["adc"][...]
        mac5 = g_ev["mac5"][...]
        index = g_ev["event_index"][...]
        t_us = g_ev["trigger_time_us"][...]
        trig = g_ev["trigger_channel"][...]
        layer_pair = g_ev["layer_pair"][...]
        mac_pair = g_ev["mac_pair"][...]

    events: List[FEBEvent] = []
    for i in range(len(mac5)):
        lo, hi = int(ptr[i]), int(ptr[i + 1])
        latched = [
            ChannelObservation(int(channel[j]), int(t0_tick[j]), int(pps_tick[j]), int(adc[j]))
            for j in range(lo, hi)
        ]
        events.append(FEBEvent(
            mac5=int(mac5[i]),
            event_index=int(index[i]),
            trigger_time_us=float(t_us[i]),
            trigger_channel=int(trig[i]),
            layer_pair=(int(layer_pair[i, 0]), int(layer_pair[i, 1])),
            mac_pair=(int(mac_pair[i, 0]), int(mac_pair[i, 1])),
            latched=latched,
        ))
    return events


def read_latched_adc(path: str, *, group: str = "/feb") -> np.ndarray:
    with h5py.File(str(path), "r") as f:
        return np.array(f[f"{group}/latched/adc"], dtype=np.int16)
