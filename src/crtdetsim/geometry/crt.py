"""
crtdetsim.geometry.crt

Read-only geometry queries for the CRT front-end simulation.

The simulation only needs a handful of answers from the detector geometry:
which module family a module belongs to, the strip half-extents, where a
strip sits inside its module, where the module sits inside its region, and
how to bring a world point into the strip frame. ``CRTGeometry`` is that
interface; ``TabularGeometry`` implements it from a flat module/strip
description (TOML/JSON or dicts).

Frames
------
- world:  detector frame [cm]
- module: origin at module centre; ``rotation`` maps module -> world
- strip:  origin at strip centre, axes parallel to the module frame;
          x across the strip (width), y through it (height), z along it (length)
"""
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Literal, Mapping, Optional, Tuple

import numpy as np

from crtdetsim.config.schemas import GeometryCfg, ModuleCfg
from crtdetsim.config.load import load_geometry_description

Family = Literal["cern", "dchooz", "minos"]
FAMILIES: Tuple[Family, ...] = ("cern", "dchooz", "minos")

UINT32_MAX = 0xFFFFFFFF

# CRT region number table; the Slope* regions are reserved
REGION_NUMBERS: Dict[str, int] = {
    "Top": 38,
    "SlopeLeft": 52,
    "SlopeRight": 56,
    "SlopeFront": 48,
    "SlopeBack": 46,
    "Left": 50,
    "Right": 54,
    "Front": 44,
    "Back": 42,
    "Bottom": 58,
}

# MINOS module width [cm]; must track the geometry source
MINOS_MODULE_WIDTH_CM = 49.482

_VOLUME_TAGS: Dict[Family, str] = {"cern": "CERN", "dchooz": "DC", "minos": "MINOS"}


class ClassificationError(ValueError):
    """Module volume name matches no known CRT family."""


class UnknownModuleError(KeyError):
    """Module id is not part of the geometry."""


def classify_family(volume_name: str) -> Family:
    # order matters: "DC" is the loosest tag
    if "MINOS" in volume_name:
        return "minos"
    if "CERN" in volume_name:
        return "cern"
    if "DC" in volume_name:
        return "dchooz"
    raise ClassificationError(f"Cannot classify CRT module volume '{volume_name}'")


def region_from_volume(volume_name: str) -> str:
    """
    Region tag is the suffix after ``volAuxDet_<TYPE>_module_###_``.
    """
    family = classify_family(volume_name)
    base = f"volAuxDet_{_VOLUME_TAGS[family]}_module_###_"
    return volume_name[len(base):]


def region_number(region: str) -> int:
    return REGION_NUMBERS.get(region, UINT32_MAX)


def layer_and_stack(
    family: Family,
    region: str,
    strip_in_module: np.ndarray,
    module_in_region: np.ndarray,
) -> Tuple[Optional[int], Optional[int]]:
    """
    Derive (layer_id, stack_id) from where the strip and module sit.

    None means "unset"; stack ids only exist for MINOS side walls.
    """
    layer: Optional[int] = None
    stack: Optional[int] = None

    if family in ("cern", "dchooz"):
        layer = 1 if strip_in_module[1] > 0 else 0

    elif family == "minos":
        mx, mz = float(module_in_region[0]), float(module_in_region[2])
        if region in ("Left", "Right"):
            if mz < 0:
                stack = 0
            elif mz == 0:
                stack = 1
            else:
                stack = 2
            inner = abs(mx) < MINOS_MODULE_WIDTH_CM / 2 - 1
            if stack == 1:
                layer = 0 if inner else 1
            else:
                layer = 1 if inner else 0
        elif region in ("Front", "Back"):
            layer = 1 if mz > 0 else 0

    return layer, stack


@dataclass(frozen=True)
class ModuleInfo:
    family: Family
    region: str
    strip_count: int
    strip_half_width: float
    strip_half_height: float
    strip_half_length: float


class CRTGeometry:
    """
    Abstract geometry interface. Implementations must be side-effect free
    so one instance can be shared by several simulators.
    """

    def classify(self, module_id: int) -> ModuleInfo:
        raise NotImplementedError

    def strip_local(self, module_id: int, strip_id: int) -> np.ndarray:
        """Strip centre in the module frame."""
        raise NotImplementedError

    def module_in_region(self, module_id: int) -> np.ndarray:
        """Module centre in its region frame."""
        raise NotImplementedError

    def world_to_strip(self, module_id: int, strip_id: int, world_point: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def placement(self, module_id: int, strip_id: int) -> Tuple[Optional[int], Optional[int]]:
        """(layer_id, stack_id) for a strip."""
        info = self.classify(module_id)
        return layer_and_stack(
            info.family,
            info.region,
            self.strip_local(module_id, strip_id),
            self.module_in_region(module_id),
        )


@dataclass
class ModuleGeo:
    volume_name: str
    center: np.ndarray           # (3,) world
    rotation: np.ndarray         # (3,3) module -> world
    region_position: np.ndarray  # (3,)
    strip_centers: np.ndarray    # (N,3) module frame
    half_width: float
    half_height: float
    half_length: float

    @classmethod
    def from_cfg(cls, m: ModuleCfg) -> "ModuleGeo":
        rot = np.eye(3) if m.rotation is None else np.asarray(m.rotation, dtype=np.float64)
        strips = np.asarray(m.strips, dtype=np.float64).reshape(-1, 3)
        return cls(
            volume_name=m.volume_name,
            center=np.asarray(m.center, dtype=np.float64),
            rotation=rot,
            region_position=np.asarray(m.region_position, dtype=np.float64),
            strip_centers=strips,
            half_width=float(m.strip_half_width),
            half_height=float(m.strip_half_height),
            half_length=float(m.strip_half_length),
        )


class TabularGeometry(CRTGeometry):
    """
    Geometry backed by an explicit module table.

    Classification results are computed once per module at construction; a
    module whose name cannot be classified raises ClassificationError only
    when it is queried.
    """

    def __init__(self, modules: Mapping[int, ModuleGeo]):
        self._modules: Dict[int, ModuleGeo] = dict(modules)
        self._info: Dict[int, ModuleInfo | ClassificationError] = {}
        for mid, m in self._modules.items():
            try:
                fam = classify_family(m.volume_name)
            except ClassificationError as exc:
                self._info[mid] = exc
                continue
            self._info[mid] = ModuleInfo(
                family=fam,
                region=region_from_volume(m.volume_name),
                strip_count=len(m.strip_centers),
                strip_half_width=m.half_width,
                strip_half_height=m.half_height,
                strip_half_length=m.half_length,
            )

    @classmethod
    def from_cfg(cls, cfg: GeometryCfg) -> "TabularGeometry":
        return cls({m.id: ModuleGeo.from_cfg(m) for m in cfg.modules})

    @classmethod
    def from_description(cls, desc: Mapping) -> "TabularGeometry":
        return cls.from_cfg(GeometryCfg(**desc))

    @classmethod
    def from_file(cls, path: str | Path) -> "TabularGeometry":
        return cls.from_cfg(load_geometry_description(path))

    @property
    def module_ids(self) -> list[int]:
        return sorted(self._modules)

    def _module(self, module_id: int) -> ModuleGeo:
        try:
            return self._modules[module_id]
        except KeyError:
            raise UnknownModuleError(f"Unknown CRT module id {module_id}") from None

    def classify(self, module_id: int) -> ModuleInfo:
        self._module(module_id)
        info = self._info[module_id]
        if isinstance(info, ClassificationError):
            raise info
        return info

    def strip_local(self, module_id: int, strip_id: int) -> np.ndarray:
        m = self._module(module_id)
        if not 0 <= strip_id < len(m.strip_centers):
            raise IndexError(f"strip {strip_id} out of range for module {module_id} ({len(m.strip_centers)} strips)")
        return m.strip_centers[strip_id].copy()

    def module_in_region(self, module_id: int) -> np.ndarray:
        return self._module(module_id).region_position.copy()

    def world_to_module(self, module_id: int, world_point: np.ndarray) -> np.ndarray:
        m = self._module(module_id)
        return m.rotation.T @ (np.asarray(world_point, dtype=np.float64) - m.center)

    def world_to_strip(self, module_id: int, strip_id: int, world_point: np.ndarray) -> np.ndarray:
        return self.world_to_module(module_id, world_point) - self.strip_local(module_id, strip_id)

    def strip_to_world(self, module_id: int, strip_id: int, local_point: np.ndarray) -> np.ndarray:
        m = self._module(module_id)
        in_module = np.asarray(local_point, dtype=np.float64) + self.strip_local(module_id, strip_id)
        return m.center + m.rotation @ in_module
