import pytest

from crtdetsim.config.schemas import DetSimCfg
from crtdetsim.geometry.clock import DetectorClock
from crtdetsim.geometry.crt import TabularGeometry
from crtdetsim.pipelines.core import CRTDetSim
from crtdetsim.sim.synth import module_description

# No smearing, no walk, no propagation delay: a deposit at t ns fires at
# tick t on a 1000 MHz clock.
NOISELESS = dict(
    global_t0_offset=0.0,
    t_delay_norm=0.0,
    t_delay_offset=0.0,
    t_delay_rms_gaus_norm=0.0,
    t_delay_rms_exp_norm=0.0,
    prop_delay=0.0,
    prop_delay_error=0.0,
    t_res_interpolator=0.0,
    use_edep=False,
    q_ped=0.0,
    q_slope=10.0,
    q_rms=0.0,
    q_threshold_c=0.0,
    q_threshold_d=0.0,
    q_threshold_m=0.0,
)

CERN_MODULE = 0     # Top, mac5 0, strips 0-7 layer 0, 8-15 layer 1
DC_MODULE = 1       # Bottom, mac5 1
UNKNOWN_MODULE = 5  # volume name matches no family
MINOS_INNER = 6     # Left stack 0, layer 1, mac5 2 / 52
MINOS_OUTER = 9     # Left stack 0, layer 0, mac5 3 / 53


@pytest.fixture
def noiseless_cfg():
    def make(**overrides) -> DetSimCfg:
        return DetSimCfg(**{**NOISELESS, **overrides})
    return make


@pytest.fixture
def ns_clock():
    return DetectorClock(frequency_mhz=1000.0)


@pytest.fixture
def crt_geometry():
    unknown = module_description(UNKNOWN_MODULE, "dchooz", "Top")
    unknown["volume_name"] = "volAuxDet_XYZ_module_005_Top"
    return TabularGeometry.from_description({
        "modules": [
            module_description(CERN_MODULE, "cern", "Top", center=(0.0, 600.0, 0.0)),
            module_description(DC_MODULE, "dchooz", "Bottom", center=(0.0, -600.0, 0.0)),
            unknown,
            module_description(MINOS_INNER, "minos", "Left",
                               center=(-400.0, 0.0, -300.0), region_position=(0.0, 0.0, -300.0)),
            module_description(MINOS_OUTER, "minos", "Left",
                               center=(-450.0, 0.0, -300.0), region_position=(50.0, 0.0, -300.0)),
        ]
    })


@pytest.fixture
def make_sim(crt_geometry, noiseless_cfg):
    def make(cfg: DetSimCfg | None = None, **kw) -> CRTDetSim:
        kw.setdefault("seed", 1)
        kw.setdefault("diagnostics_level", 0)
        return CRTDetSim(
            crt_geometry,
            cfg or noiseless_cfg(),
            clock=DetectorClock(frequency_mhz=1000.0),
            **kw,
        )
    return make
