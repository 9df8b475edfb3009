from crtdetsim.filters.diagnostics import DetSimCounters
from crtdetsim.io.feb_store import write_init, write_feb_events, write_counters, read_feb_events, read_latched_adc
from crtdetsim.physics.events import ChannelObservation, FEBEvent
import h5py, json, tempfile, os


def _events():
    return [
        FEBEvent(
            mac5=3, event_index=0, trigger_time_us=1600001.25, trigger_channel=6,
            layer_pair=(6, 22), mac_pair=(3, 3),
            latched=[ChannelObservation(6, 25600020, 1234, 812), ChannelObservation(22, 25600021, 1234, -40)],
        ),
        FEBEvent(
            mac5=52, event_index=0, trigger_time_us=1600010.0, trigger_channel=2,
            layer_pair=(2, 2), mac_pair=(52, 3),
            latched=[ChannelObservation(2, 25600160, 99, 32767)],
        ),
    ]


def test_feb_events_write_read():
    tmp = tempfile.NamedTemporaryFile(delete=False, suffix=".h5")
    tmp.close()

    counters = DetSimCounters()
    counters.events["cern"] = 1
    counters.inc("negative_adc")

    f = write_init(tmp.name, "[run]\nseed = 1\n")
    write_feb_events(f, _events())
    write_counters(f, counters)
    f.close()

    back = read_feb_events(tmp.name)
    adc = read_latched_adc(tmp.name)
    with h5py.File(tmp.name, "r") as h5:
        ptr = h5["/feb/latched/event_ptr"][...]
        stored = json.loads(h5["/feb"].attrs["counters_json"])
        cfg_text = h5.attrs["config_text"]
    os.unlink(tmp.name)

    assert [e.to_record() for e in back] == [e.to_record() for e in _events()]
    assert list(ptr) == [0, 2, 3]
    assert list(adc) == [812, -40, 32767]
    assert stored["neve_c"] == 1
    assert stored["warnings"] == {"negative_adc": 1}
    assert "seed = 1" in cfg_text


def test_empty_event_list(tmp_path):
    path = tmp_path / "empty.h5"
    with write_init(str(path)) as f:
        write_feb_events(f, [])
    assert read_feb_events(path) == []
    assert read_latched_adc(path).size == 0
