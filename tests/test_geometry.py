import numpy as np
import pytest

from crtdetsim.geometry.clock import DetectorClock
from crtdetsim.geometry.crt import (
    ClassificationError,
    TabularGeometry,
    UINT32_MAX,
    UnknownModuleError,
    classify_family,
    layer_and_stack,
    region_from_volume,
    region_number,
)


def test_classify_family_tags():
    assert classify_family("volAuxDet_CERN_module_012_Top") == "cern"
    assert classify_family("volAuxDet_DC_module_101_Bottom") == "dchooz"
    assert classify_family("volAuxDet_MINOS_module_203_Left") == "minos"
    with pytest.raises(ClassificationError):
        classify_family("volAuxDet_XYZ_module_001_Top")


def test_region_from_volume_and_number():
    assert region_from_volume("volAuxDet_CERN_module_012_Top") == "Top"
    assert region_from_volume("volAuxDet_MINOS_module_203_SlopeLeft") == "SlopeLeft"
    assert region_from_volume("volAuxDet_DC_module_101_Bottom") == "Bottom"
    assert region_number("Top") == 38
    assert region_number("Left") == 50
    assert region_number("Bottom") == 58
    assert region_number("Nowhere") == UINT32_MAX


def test_layer_from_strip_height_for_cern_and_dc():
    module = np.zeros(3)
    assert layer_and_stack("cern", "Top", np.array([0.0, 0.75, 0.0]), module) == (1, None)
    assert layer_and_stack("dchooz", "Bottom", np.array([0.0, -0.5, 0.0]), module) == (0, None)


def test_minos_side_wall_stacks_and_layers():
    strip = np.zeros(3)
    # stack 0 (z<0) and stack 2 (z>0): inner column is layer 1
    assert layer_and_stack("minos", "Left", strip, np.array([0.0, 0.0, -300.0])) == (1, 0)
    assert layer_and_stack("minos", "Left", strip, np.array([50.0, 0.0, -300.0])) == (0, 0)
    assert layer_and_stack("minos", "Right", strip, np.array([-10.0, 0.0, 300.0])) == (1, 2)
    # stack 1 (z == 0) is inverted
    assert layer_and_stack("minos", "Right", strip, np.array([0.0, 0.0, 0.0])) == (0, 1)
    assert layer_and_stack("minos", "Right", strip, np.array([30.0, 0.0, 0.0])) == (1, 1)


def test_minos_front_back_and_unset_regions():
    strip = np.zeros(3)
    assert layer_and_stack("minos", "Front", strip, np.array([0.0, 0.0, 5.0])) == (1, None)
    assert layer_and_stack("minos", "Back", strip, np.array([0.0, 0.0, -5.0])) == (0, None)
    assert layer_and_stack("minos", "Top", strip, np.array([0.0, 0.0, 5.0])) == (None, None)


def test_tabular_geometry_classification(crt_geometry):
    info = crt_geometry.classify(0)
    assert info.family == "cern"
    assert info.region == "Top"
    assert info.strip_count == 16
    assert info.strip_half_length == pytest.approx(92.0)
    assert crt_geometry.classify(9).family == "minos"
    with pytest.raises(ClassificationError):
        crt_geometry.classify(5)
    with pytest.raises(UnknownModuleError):
        crt_geometry.classify(77)


def test_placement_uses_strip_and_module_positions(crt_geometry):
    assert crt_geometry.placement(0, 3) == (0, None)
    assert crt_geometry.placement(0, 11) == (1, None)
    assert crt_geometry.placement(6, 4) == (1, 0)
    assert crt_geometry.placement(9, 4) == (0, 0)


def test_strip_local_out_of_range(crt_geometry):
    with pytest.raises(IndexError):
        crt_geometry.strip_local(0, 16)


def test_world_to_strip_with_rotation():
    # module z axis points along world x
    geo = TabularGeometry.from_description({
        "modules": [{
            "id": 3,
            "volume_name": "volAuxDet_DC_module_003_Top",
            "center": [10.0, 0.0, 0.0],
            "rotation": [[0.0, 0.0, 1.0], [0.0, 1.0, 0.0], [-1.0, 0.0, 0.0]],
            "strip_half_width": 2.5,
            "strip_half_height": 0.5,
            "strip_half_length": 161.5,
            "strips": [[0.0, 0.0, 0.0], [5.0, 0.0, 0.0]],
        }]
    })
    local = geo.world_to_strip(3, 0, np.array([15.0, 0.0, 0.0]))
    assert np.allclose(local, [0.0, 0.0, 5.0])
    local = geo.world_to_strip(3, 1, np.array([15.0, 0.2, 0.0]))
    assert np.allclose(local, [-5.0, 0.2, 5.0])


def test_clock_ticks_and_time():
    clock = DetectorClock()
    assert clock.frequency() == 16.0
    clock.set_time(1.0)
    assert clock.ticks() == 16
    assert clock.time(16) == pytest.approx(1.0)
    assert clock.tick_period_us() == pytest.approx(0.0625)
    # truncation toward zero
    assert clock.ns_to_ticks(62.4) == 0
    assert clock.ns_to_ticks(130.0) == 2


def test_clock_wraps_to_32_bits():
    clock = DetectorClock(frequency_mhz=1.0)
    clock.set_time(2.0**32 + 5.0)
    assert clock.ticks() == 5
    clock.set_time(-1.0)
    assert clock.ticks() == 0xFFFFFFFF
