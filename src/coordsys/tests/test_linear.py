import numpy as np
import pytest
from affine import Affine

from coordsys.coordinate import CoordinateType, FormatType, find_scale_factor
from coordsys.linear import LinearCoordinate
from coordsys.record import Record
from coordsys.tests.fixtures.stub_coordinates import CountingCoordinate, FailingCoordinate


def _lc():
    return LinearCoordinate(names=['x', 'y'], units=['m', 'm'], crval=[10.0, 20.0],
                            cdelt=[2.0, 4.0], crpix=[1.0, 1.0])


def test_to_world_and_back():
    lc = _lc()
    ok, world = lc.to_world([3.0, 5.0])
    assert ok
    assert np.allclose(world, [14.0, 36.0])
    ok, pixel = lc.to_pixel(world)
    assert ok
    assert np.allclose(pixel, [3.0, 5.0])


def test_pc_matrix_couples_axes():
    lc = LinearCoordinate(pc=[[0.0, 1.0], [1.0, 0.0]])
    ok, world = lc.to_world([1.0, 2.0])
    assert ok
    assert np.allclose(world, [2.0, 1.0])


def test_zero_increment_fails_inverse():
    lc = LinearCoordinate(cdelt=[0.0, 1.0])
    ok, _ = lc.to_pixel([1.0, 1.0])
    assert not ok
    assert 'zero' in lc.error_message


def test_wrong_length_raises():
    with pytest.raises(ValueError):
        _lc().to_world([1.0])
    with pytest.raises(ValueError):
        LinearCoordinate(names=['x'], crval=[0.0, 1.0])


def test_affine_round_trip():
    transform = Affine(30.0, 0.0, 1000.0, 0.0, -30.0, 5000.0)
    lc = LinearCoordinate.from_affine(transform)
    ok, world = lc.to_world([2.0, 3.0])
    assert ok
    assert np.allclose(world, transform * (2.0, 3.0))
    assert lc.to_affine().almost_equals(transform)
    assert lc.world_axis_units() == ['m', 'm']


def test_to_affine_needs_two_axes():
    with pytest.raises(ValueError):
        LinearCoordinate(n_axes=3).to_affine()


def test_many_identical_columns_converted_once():
    lc = CountingCoordinate(names=['x', 'y'], units=['m', 'm'], crval=[1.0, 2.0])
    pixel = np.tile(np.array([[4.0], [5.0]]), (1, 6))
    n_failed, world, failures = lc.to_world_many(pixel)
    assert n_failed == 0
    assert failures.size == 0
    assert world.shape == (2, 6)
    assert np.allclose(world, np.array([[5.0], [7.0]]))
    assert lc.calls['to_world'] == 1


def test_many_reconverts_only_on_change():
    lc = CountingCoordinate(n_axes=2)
    pixel = np.array([[0.0, 1.0, 1.0, 0.0], [0.0, 0.0, 0.0, 0.0]])
    lc.to_world_many(pixel)
    assert lc.calls['to_world'] == 3


def test_many_records_failed_columns():
    fc = FailingCoordinate(n_axes=2)
    pixel = np.array([[-1.0, -1.0, 2.0, -3.0], [0.0, 0.0, 0.0, 0.0]])
    n_failed, world, failures = fc.to_world_many(pixel)
    assert n_failed == 3
    assert list(failures) == [0, 1, 3]
    assert np.allclose(world[:, 2], [2.0, 0.0])
    assert fc.error_message == 'negative pixel on axis 0'


def test_many_shape_checked():
    with pytest.raises(ValueError):
        _lc().to_pixel_many(np.zeros((3, 2)))


def test_to_mix_matches_independent_transforms():
    lc = _lc()
    ok, world_out, pixel_out = lc.to_mix([14.0, 0.0], [0.0, 5.0], [True, False], [False, True])
    assert ok
    _, pixel_ref = lc.to_pixel([14.0, 20.0])
    _, world_ref = lc.to_world([1.0, 5.0])
    assert pixel_out[0] == pytest.approx(pixel_ref[0])
    assert world_out[1] == pytest.approx(world_ref[1])
    assert world_out[0] == 14.0
    assert pixel_out[1] == 5.0


def test_to_mix_rejects_bad_flags():
    lc = _lc()
    ok, world_out, pixel_out = lc.to_mix([0.0, 0.0], [0.0, 0.0], [True, False], [True, True])
    assert not ok
    assert world_out is None and pixel_out is None
    assert 'duplicate' in lc.error_message
    ok, _, _ = lc.to_mix([0.0, 0.0], [0.0, 0.0], [False, False], [True, False])
    assert not ok


def test_absolute_relative():
    lc = _lc()
    assert np.allclose(lc.make_world_relative([14.0, 36.0]), [4.0, 16.0])
    assert np.allclose(lc.make_world_absolute([4.0, 16.0]), [14.0, 36.0])
    assert np.allclose(lc.make_world_absolute_ref([1.0, 1.0], [2.0, 3.0]), [3.0, 4.0])
    assert np.allclose(lc.make_pixel_relative([3.0, 3.0]), [2.0, 2.0])
    values = np.array([[14.0, 14.0, 12.0], [36.0, 36.0, 20.0]])
    out = lc.make_world_relative_many(values)
    assert out is values
    assert np.allclose(values, [[4.0, 4.0, 2.0], [16.0, 16.0, 0.0]])


def test_unit_change_rescales():
    lc = _lc()
    assert lc.set_world_axis_units(['km', 'm'])
    assert lc.world_axis_units() == ['km', 'm']
    assert np.allclose(lc.increment(), [0.002, 4.0])
    assert np.allclose(lc.reference_value(), [0.01, 20.0])


def test_unit_change_rejects_incompatible():
    lc = _lc()
    assert not lc.set_world_axis_units(['s', 'm'])
    assert 'dimensionally' in lc.error_message
    assert lc.world_axis_units() == ['m', 'm']


def test_unit_change_without_adjust():
    lc = _lc()
    assert lc.set_world_axis_units(['km', 'km'], adjust=False)
    assert np.allclose(lc.increment(), [2.0, 4.0])


def test_find_scale_factor():
    ok, factor, error = find_scale_factor(['km', 'm'], ['m', 'cm'])
    assert ok and error == ''
    assert factor == pytest.approx([0.001, 0.01])
    ok, factor, error = find_scale_factor(['km'], ['s'])
    assert not ok and factor is None


def test_format():
    lc = _lc()
    assert lc.format(1500.0, 0) == ('1.500000e+03', 'm')
    assert lc.format(1500.0, 0, 'km', FormatType.FIXED, precision=3) == ('1.500', 'km')
    with pytest.raises(ValueError):
        lc.format(1.0, 0, 's')
    with pytest.raises(IndexError):
        lc.format(1.0, 2)


def test_format_relative_shown_absolute():
    lc = _lc()
    text, _ = lc.format(4.0, 0, fmt=FormatType.FIXED, is_absolute=False, precision=1)
    assert text == '14.0'


def test_preferred_units():
    lc = _lc()
    assert lc.preferred_world_axis_units() == ['', '']
    assert lc.set_preferred_world_axis_units(['km', ''])
    assert lc.format(1500.0, 0, fmt=FormatType.FIXED, precision=2) == ('1.50', 'km')
    assert not lc.set_preferred_world_axis_units(['s', ''])
    assert lc.clone().preferred_world_axis_units() == ['km', '']


def test_mix_ranges():
    lc = LinearCoordinate(n_axes=2)
    ok, world_min, world_max = lc.set_world_mix_ranges([10, 0])
    assert ok
    assert world_min[0] == pytest.approx(-2.5)
    assert world_max[0] == pytest.approx(12.5)
    assert world_min[1] == -1.0e99
    assert world_max[1] == 1.0e99


def test_near_and_exclusions():
    lc = _lc()
    other = lc.clone()
    assert lc.near(other)
    other.set_reference_value([10.001, 20.0])
    assert not lc.near(other)
    assert 'reference values' in lc.error_message
    assert lc.near(other, exclude_pixel_axes=[0])


def test_near_compares_names():
    lc = _lc()
    other = lc.clone()
    other.set_world_axis_names(['x', 'z'])
    assert not lc.near(other)
    assert lc.near(other, exclude_pixel_axes=[1])


def test_save_restore():
    lc = _lc()
    rec = Record()
    assert lc.save(rec, 'linear0')
    assert not lc.save(rec, 'linear0')
    restored = LinearCoordinate.restore(rec, 'linear0')
    assert restored.type is CoordinateType.LINEAR
    assert restored.near(lc)
    assert restored.world_axis_names() == ['x', 'y']
    assert LinearCoordinate.restore(rec, 'linear1') is None


def test_restore_incomplete_record():
    rec = Record()
    partial = Record()
    partial.define('crval', [1.0])
    rec.define_record('linear0', partial)
    assert LinearCoordinate.restore(rec, 'linear0') is None


def test_local_axes_pair_by_position():
    lc = _lc()
    assert lc.pixel_axis_to_world_axis(1) == 1
    assert lc.world_axis_to_pixel_axis(0) == 0
    with pytest.raises(IndexError):
        lc.pixel_axis_to_world_axis(2)
