from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Literal, Optional, Dict, List, Any

class RunCfg(BaseModel):
    """
    Global run controls.

    TOML:

    [run]
    diagnostics_level = 1     # 0=off, 1=warnings + totals, 2=verbose summary
    seed = 12345
    flush_on_close = false
    """

    # Diagnostics
    diagnostics_level: int = 1  # 0=off, 1=minimal, 2=verbose

    # Single random stream for the whole simulation
    seed: Optional[int] = None

    # Emit the in-progress FEB event at end of stream (off = bit-compatible behaviour)
    flush_on_close: bool = False

    @field_validator("diagnostics_level")
    def _diag_range(cls, v: int) -> int:
        if v not in (0, 1, 2):
            raise ValueError("diagnostics_level must be 0, 1, or 2")
        return v

class IOCfg(BaseModel):
    """
    I/O paths around the simulation core.

    TOML:

    [io]
    input_path    = "deposits.csv"
    input_format  = "csv"          # "csv" | "parquet" | "hdf5"
    output_path   = "crt_febdata.h5"
    geometry_path = "crt_geometry.toml"

    [io.adapter]
    columns = { edep = "energy_GeV" }   # canonical name -> column in file
    """

    input_path: str
    input_format: Literal["csv", "parquet", "hdf5"] = "csv"
    output_path: str
    geometry_path: str

    # Adapter-specific sub-config, e.g. [io.adapter]
    adapter: Dict[str, Any] = Field(default_factory=dict)

class DetSimCfg(BaseModel):
    """
    Front-end response and trigger parameters.

    Field names are snake_case; the FHiCL-style CamelCase keys
    (``QThresholdC``, ``LayerCoincidenceWindowM`` ...) are accepted as aliases.

    Units: times in ns unless noted, DeadTime/BiasTime in us,
    StripCoincidenceWindow in clock ticks, PropDelay in ns/m.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    verbose: bool = Field(False, alias="Verbose")
    global_t0_offset: float = Field(1.6e6, alias="GlobalT0Offset")

    # time-walk model
    t_delay_norm: float = Field(4132.56, alias="TDelayNorm")
    t_delay_shift: float = Field(-26.2, alias="TDelayShift")
    t_delay_sigma: float = Field(9.38, alias="TDelaySigma")
    t_delay_offset: float = Field(1.53, alias="TDelayOffset")
    t_delay_rms_gaus_norm: float = Field(2.09, alias="TDelayRMSGausNorm")
    t_delay_rms_gaus_shift: float = Field(7.24, alias="TDelayRMSGausShift")
    t_delay_rms_gaus_sigma: float = Field(170.0, alias="TDelayRMSGausSigma")
    t_delay_rms_exp_norm: float = Field(1.65, alias="TDelayRMSExpNorm")
    t_delay_rms_exp_shift: float = Field(75.6, alias="TDelayRMSExpShift")
    t_delay_rms_exp_scale: float = Field(79.2, alias="TDelayRMSExpScale")

    # fibre propagation
    prop_delay: float = Field(6.1, alias="PropDelay")
    prop_delay_error: float = Field(0.7, alias="PropDelayError")
    t_res_interpolator: float = Field(1.268, alias="TResInterpolator")

    # light yield / SiPM + ADC
    use_edep: bool = Field(True, alias="UseEdep")
    q0: float = Field(1.75e-3, alias="Q0")
    q_ped: float = Field(63.6, alias="QPed")
    q_slope: float = Field(131.9, alias="QSlope")
    q_rms: float = Field(15.0, alias="QRMS")

    # discrimination
    q_threshold_c: float = Field(261.0, alias="QThresholdC")
    q_threshold_m: float = Field(261.0, alias="QThresholdM")
    q_threshold_d: float = Field(261.0, alias="QThresholdD")
    strip_coincidence_window: float = Field(5.0, alias="StripCoincidenceWindow")

    # FEB trigger
    apply_coincidence_c: bool = Field(True, alias="ApplyCoincidenceC")
    apply_coincidence_m: bool = Field(True, alias="ApplyCoincidenceM")
    apply_coincidence_d: bool = Field(True, alias="ApplyCoincidenceD")
    layer_coincidence_window_c: float = Field(150.0, alias="LayerCoincidenceWindowC")
    layer_coincidence_window_m: float = Field(150.0, alias="LayerCoincidenceWindowM")
    layer_coincidence_window_d: float = Field(150.0, alias="LayerCoincidenceWindowD")
    dead_time: float = Field(22.0, alias="DeadTime")
    bias_time: float = Field(0.05, alias="BiasTime")

    seed: Optional[int] = Field(None, alias="Seed")

    @field_validator("t_delay_sigma", "t_delay_rms_gaus_sigma", "t_delay_rms_exp_scale", "q0")
    def _nonzero(cls, v: float) -> float:
        if v == 0:
            raise ValueError("must be non-zero (used as a divisor)")
        return v

    @field_validator(
        "layer_coincidence_window_c",
        "layer_coincidence_window_m",
        "layer_coincidence_window_d",
        "dead_time",
        "bias_time",
    )
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("time windows must be >= 0")
        return v

    def threshold(self, family: str) -> float:
        return {"cern": self.q_threshold_c, "minos": self.q_threshold_m, "dchooz": self.q_threshold_d}[family]

    def apply_coincidence(self, family: str) -> bool:
        return {"cern": self.apply_coincidence_c, "minos": self.apply_coincidence_m,
                "dchooz": self.apply_coincidence_d}[family]

    def layer_window_ns(self, family: str) -> float:
        return {"cern": self.layer_coincidence_window_c, "minos": self.layer_coincidence_window_m,
                "dchooz": self.layer_coincidence_window_d}[family]

class ClockCfg(BaseModel):
    frequency_mhz: float = 16.0

    @field_validator("frequency_mhz")
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("frequency_mhz must be > 0")
        return v


class ModuleCfg(BaseModel):
    """
    One CRT module in a geometry description.

    TOML:

    [[modules]]
    id = 0
    volume_name = "volAuxDet_CERN_module_000_Top"
    center = [0.0, 600.0, 0.0]                 # world frame [cm]
    region_position = [0.0, 0.0, 0.0]          # module centre in its region frame [cm]
    strip_half_width = 11.5
    strip_half_height = 0.75
    strip_half_length = 92.0
    strips = [[-80.5, -0.75, 0.0], ...]        # strip centres in the module frame
    """

    id: int
    volume_name: str
    center: List[float] = Field(default_factory=lambda: [0.0, 0.0, 0.0])
    rotation: Optional[List[List[float]]] = None  # module -> world, row-major 3x3
    region_position: List[float] = Field(default_factory=lambda: [0.0, 0.0, 0.0])
    strip_half_width: float
    strip_half_height: float
    strip_half_length: float
    strips: List[List[float]]

    @field_validator("center", "region_position")
    def _vec3(cls, v: List[float]) -> List[float]:
        if len(v) != 3:
            raise ValueError("expected 3 coordinates")
        return v

    @field_validator("strips")
    def _strip_vec3(cls, v: List[List[float]]) -> List[List[float]]:
        if any(len(s) != 3 for s in v):
            raise ValueError("every strip centre needs 3 coordinates")
        return v

    @field_validator("rotation")
    def _mat3(cls, v: Optional[List[List[float]]]) -> Optional[List[List[float]]]:
        if v is not None and (len(v) != 3 or any(len(row) != 3 for row in v)):
            raise ValueError("rotation must be a 3x3 matrix")
        return v

class GeometryCfg(BaseModel):
    modules: List[ModuleCfg]


class Config(BaseModel):
    """
    Top-level TOML configuration.
    """

    run: RunCfg = Field(default_factory=RunCfg)
    io: Optional[IOCfg] = None
    detsim: DetSimCfg = Field(default_factory=DetSimCfg)
    clock: ClockCfg = Field(default_factory=ClockCfg)

    @property
    def verbose(self) -> bool:
        return self.detsim.verbose or self.run.diagnostics_level >= 2

    @property
    def seed(self) -> Optional[int]:
        return self.detsim.seed if self.detsim.seed is not None else self.run.seed
