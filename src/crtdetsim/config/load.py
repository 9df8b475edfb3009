from __future__ import annotations
from .schemas import Config, GeometryCfg
from pathlib import Path
import json

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # py<=310

def load_config(path: str | Path) -> Config:
    p = Path(path)
    data = tomllib.loads(p.read_text())
    return Config(**data)

def load_geometry_description(path: str | Path) -> GeometryCfg:
    """Read a module/strip geometry description (.toml or .json)."""
    p = Path(path)
    if p.suffix.lower() == ".json":
        data = json.loads(p.read_text())
    else:
        data = tomllib.loads(p.read_text())
    return GeometryCfg(**data)

def snapshot_config_toml(path: str | Path) -> str:
    """Return the raw TOML text for embedding in HDF5 metadata."""
    return Path(path).read_text()
