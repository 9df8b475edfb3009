"""
crtdetsim.io.adapters

Readers that turn external energy-deposit tables into
crtdetsim.physics.deposits.EnergyDeposit objects for the simulation core.

Design goals
------------
- Keep I/O concerns isolated from the response/trigger physics.
- Be tolerant to schema variants by using a small, explicit column map.
- Remain side-effect free: yield Python objects; HDF5 output is handled downstream.

Canonical columns
-----------------
module_id, strip_id,
entry_x, entry_y, entry_z, exit_x, exit_y, exit_z   [cm, world frame]
entry_t, exit_t                                      [ns]
edep                                                 [GeV]

Config (example)
----------------
[io]
input_path = "deposits.parquet"
input_format = "parquet"

[io.adapter]
columns = { module_id = "AuxDetID", strip_id = "AuxDetSensitiveID" }
"""
from __future__ import annotations
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

import numpy as np
import pandas as pd

from crtdetsim.config.schemas import IOCfg
from crtdetsim.physics.deposits import EnergyDeposit

CANONICAL_COLUMNS: tuple[str, ...] = (
    "module_id", "strip_id",
    "entry_x", "entry_y", "entry_z",
    "exit_x", "exit_y", "exit_z",
    "entry_t", "exit_t",
    "edep",
)

_SUFFIX_FORMATS = {
    ".csv": "csv",
    ".parquet": "parquet",
    ".pq": "parquet",
    ".h5": "hdf5",
    ".hdf5": "hdf5",
}


class DepositTableAdapter:
    """
    Read tabular deposit lists (CSV / Parquet / pandas-HDF5), one deposit per row.

    `columns` maps canonical names to the column names used in the file.
    Any additional columns are carried along in EnergyDeposit.extras.
    """

    def __init__(
        self,
        input_format: Optional[str] = None,
        columns: Optional[Dict[str, str]] = None,
        hdf_key: Optional[str] = None,
    ) -> None:
        self.input_format = input_format
        self.columns = dict(columns or {})
        self.hdf_key = hdf_key

    def _read_table(self, path: str | Path) -> pd.DataFrame:
        p = Path(path)
        fmt = self.input_format or _SUFFIX_FORMATS.get(p.suffix.lower())
        if fmt == "csv":
            return pd.read_csv(p)
        if fmt == "parquet":
            return pd.read_parquet(p)
        if fmt == "hdf5":
            return pd.read_hdf(p, key=self.hdf_key) if self.hdf_key else pd.read_hdf(p)
        raise ValueError(f"Unrecognized deposit table: {p.name} (expected .csv/.parquet/.h5)")

    def canonicalize(self, df: pd.DataFrame) -> pd.DataFrame:
        """Rename mapped columns to canonical names and check nothing is missing."""
        rename = {src: canon for canon, src in self.columns.items() if src in df.columns}
        df = df.rename(columns=rename)
        missing = [c for c in CANONICAL_COLUMNS if c not in df.columns]
        if missing:
            raise KeyError(f"Deposit table is missing required columns: {missing}")
        return df

    def iter_deposits(self, path: str | Path) -> Iterator[EnergyDeposit]:
        df = self.canonicalize(self._read_table(path))
        yield from frame_to_deposits(df)


def frame_to_deposits(df: pd.DataFrame) -> Iterator[EnergyDeposit]:
    extra_cols = [c for c in df.columns if c not in CANONICAL_COLUMNS]
    for row in df.to_dict(orient="records"):
        yield EnergyDeposit(
            module_id=int(row["module_id"]),
            strip_id=int(row["strip_id"]),
            entry=np.array([row["entry_x"], row["entry_y"], row["entry_z"]], dtype=np.float64),
            exit=np.array([row["exit_x"], row["exit_y"], row["exit_z"]], dtype=np.float64),
            entry_t_ns=float(row["entry_t"]),
            exit_t_ns=float(row["exit_t"]),
            edep=float(row["edep"]),
            extras={k: row[k] for k in extra_cols},
        )


def deposits_to_frame(deposits: Iterable[EnergyDeposit]) -> pd.DataFrame:
    rows: List[dict] = []
    for d in deposits:
        rows.append({
            "module_id": d.module_id,
            "strip_id": d.strip_id,
            "entry_x": float(d.entry[0]), "entry_y": float(d.entry[1]), "entry_z": float(d.entry[2]),
            "exit_x": float(d.exit[0]), "exit_y": float(d.exit[1]), "exit_z": float(d.exit[2]),
            "entry_t": d.entry_t_ns,
            "exit_t": d.exit_t_ns,
            "edep": d.edep,
            **d.extras,
        })
    return pd.DataFrame(rows, columns=None if rows else list(CANONICAL_COLUMNS))


def write_deposit_table(deposits: Sequence[EnergyDeposit], path: str | Path) -> Path:
    """Write deposits as CSV or Parquet (by suffix); used for smoke inputs."""
    p = Path(path)
    df = deposits_to_frame(deposits)
    if p.suffix.lower() in (".parquet", ".pq"):
        df.to_parquet(p, index=False)
    else:
        df.to_csv(p, index=False)
    return p


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def make_adapter(cfg: IOCfg | Dict) -> DepositTableAdapter:
    """
    Create an adapter from the [io] config (or a plain dict for tests).

    Recognised keys under [io.adapter]:
      columns: {canonical_name: file_column}
      hdf_key: str   (pandas HDF5 key)
    """
    if isinstance(cfg, IOCfg):
        fmt = cfg.input_format
        opts = cfg.adapter
    else:
        fmt = cfg.get("input_format")
        opts = cfg.get("adapter", {}) or {}
    return DepositTableAdapter(
        input_format=fmt,
        columns=opts.get("columns"),
        hdf_key=opts.get("hdf_key"),
    )
