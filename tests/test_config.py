import json

import pytest
from pydantic import ValidationError

from crtdetsim.config.load import load_config, load_geometry_description
from crtdetsim.config.schemas import Config, DetSimCfg, GeometryCfg, RunCfg
from crtdetsim.sim.synth import module_description


def test_detsim_defaults():
    cfg = DetSimCfg()
    assert cfg.global_t0_offset == 1.6e6
    assert cfg.q_threshold_c == 261.0
    assert cfg.dead_time == 22.0
    assert cfg.bias_time == 0.05
    assert cfg.use_edep is True
    assert cfg.threshold("dchooz") == cfg.q_threshold_d
    assert cfg.layer_window_ns("minos") == 150.0
    assert cfg.apply_coincidence("cern") is True


def test_camel_case_aliases_and_snake_names():
    cfg = DetSimCfg(QThresholdC=5.0, LayerCoincidenceWindowM=80.0, DeadTime=10.0)
    assert cfg.q_threshold_c == 5.0
    assert cfg.layer_coincidence_window_m == 80.0
    assert DetSimCfg(q_threshold_c=7.0).threshold("cern") == 7.0


def test_invalid_detsim_values():
    with pytest.raises(ValidationError):
        DetSimCfg(QThresholdX=1.0)
    with pytest.raises(ValidationError):
        DetSimCfg(TDelaySigma=0.0)
    with pytest.raises(ValidationError):
        DetSimCfg(DeadTime=-1.0)
    with pytest.raises(ValidationError):
        RunCfg(diagnostics_level=3)


def test_seed_precedence():
    assert Config(run={"seed": 3}).seed == 3
    assert Config(run={"seed": 3}, detsim={"Seed": 9}).seed == 9
    assert Config(run={"diagnostics_level": 2}).verbose


def test_load_config_from_toml(tmp_path):
    p = tmp_path / "run.toml"
    p.write_text(
        """
[run]
diagnostics_level = 0
seed = 12
flush_on_close = true

[io]
input_path = "deposits.csv"
output_path = "out.h5"
geometry_path = "geo.toml"

[io.adapter]
columns = { edep = "energy_GeV" }

[detsim]
QThresholdM = 200.0
ApplyCoincidenceD = false

[clock]
frequency_mhz = 32.0
"""
    )
    cfg = load_config(p)
    assert cfg.run.flush_on_close is True
    assert cfg.seed == 12
    assert cfg.io.input_format == "csv"
    assert cfg.io.adapter["columns"] == {"edep": "energy_GeV"}
    assert cfg.detsim.q_threshold_m == 200.0
    assert cfg.detsim.apply_coincidence("dchooz") is False
    assert cfg.clock.frequency_mhz == 32.0


def test_load_geometry_description_json(tmp_path):
    p = tmp_path / "geo.json"
    p.write_text(json.dumps({"modules": [module_description(4, "dchooz", "Back", n_strips=4)]}))
    geo = load_geometry_description(p)
    assert len(geo.modules) == 1
    assert geo.modules[0].volume_name == "volAuxDet_DC_module_004_Back"
    assert len(geo.modules[0].strips) == 4


def test_bad_rotation_rejected():
    desc = module_description(4, "dchooz", "Back", n_strips=2)
    desc["rotation"] = [[1.0, 0.0], [0.0, 1.0]]
    with pytest.raises(ValidationError):
        GeometryCfg(modules=[desc])
