import numpy as np
import pandas as pd
import pytest

from crtdetsim.config.schemas import IOCfg
from crtdetsim.io.adapters import DepositTableAdapter, make_adapter, write_deposit_table
from crtdetsim.physics.deposits import EnergyDeposit


def _row(**kw):
    row = dict(
        module_id=12, strip_id=3,
        entry_x=1.0, entry_y=2.0, entry_z=3.0,
        exit_x=1.0, exit_y=0.5, exit_z=3.0,
        entry_t=100.0, exit_t=100.2, edep=2e-3,
    )
    row.update(kw)
    return row


def test_csv_deposits_with_extras(tmp_path):
    p = tmp_path / "deps.csv"
    pd.DataFrame([_row(track_id=7), _row(strip_id=4, track_id=8)]).to_csv(p, index=False)

    deps = list(DepositTableAdapter().iter_deposits(p))
    assert len(deps) == 2
    d = deps[0]
    assert (d.module_id, d.strip_id) == (12, 3)
    assert np.allclose(d.entry, [1.0, 2.0, 3.0])
    assert np.allclose(d.centroid(), [1.0, 1.25, 3.0])
    assert d.mid_time_ns() == pytest.approx(100.1)
    assert d.extras == {"track_id": 7}
    assert deps[1].strip_id == 4


def test_column_mapping_from_config(tmp_path):
    p = tmp_path / "g4.csv"
    row = _row()
    row["AuxDetID"] = row.pop("module_id")
    row["energy_GeV"] = row.pop("edep")
    pd.DataFrame([row]).to_csv(p, index=False)

    io = IOCfg(
        input_path=str(p), output_path="out.h5", geometry_path="geo.toml",
        adapter={"columns": {"module_id": "AuxDetID", "edep": "energy_GeV"}},
    )
    deps = list(make_adapter(io).iter_deposits(io.input_path))
    assert deps[0].module_id == 12
    assert deps[0].edep == pytest.approx(2e-3)


def test_missing_columns_raise(tmp_path):
    p = tmp_path / "bad.csv"
    row = _row()
    del row["exit_t"]
    pd.DataFrame([row]).to_csv(p, index=False)
    with pytest.raises(KeyError):
        list(make_adapter({"input_format": "csv"}).iter_deposits(p))


def test_unknown_suffix_rejected(tmp_path):
    p = tmp_path / "deps.txt"
    p.write_text("x")
    with pytest.raises(ValueError):
        list(DepositTableAdapter().iter_deposits(p))


def test_write_deposit_table_csv(tmp_path):
    dep = EnergyDeposit(
        module_id=1, strip_id=5,
        entry=np.array([0.0, 0.5, 0.0]), exit=np.array([0.0, -0.5, 0.0]),
        entry_t_ns=10.0, exit_t_ns=10.1, edep=1e-3,
    )
    p = write_deposit_table([dep], tmp_path / "out.csv")
    df = pd.read_csv(p)
    assert list(df["strip_id"]) == [5]
    assert df["exit_y"].iloc[0] == pytest.approx(-0.5)
