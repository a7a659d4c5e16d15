import logging

import h5py
import numpy as np
import pytest

from coordsys.io import load_coordinate_system, read_record, save_coordinate_system, write_record
from coordsys.record import Record
from coordsys.tests.fixtures.stub_coordinates import make_system


def test_record_round_trip(tmp_path):
    inner = Record()
    inner.define('pc', np.eye(2))
    inner.define('axes', ['x', 'y'])
    rec = Record()
    rec.define('name', 'sky')
    rec.define('n', 3)
    rec.define('scale', 0.5)
    rec.define('flag', True)
    rec.define('map', np.array([0, -1, 1]))
    rec.define_record('linear0', inner)

    with h5py.File(tmp_path / 'rec.h5', 'w') as h:
        write_record(h.create_group('root'), rec)
    with h5py.File(tmp_path / 'rec.h5', 'r') as h:
        back = read_record(h['root'])

    assert back.get('name') == 'sky'
    assert back.get('n') == 3
    assert back.get('scale') == 0.5
    assert back.get('flag') is True
    assert list(back.get('map')) == [0, -1, 1]
    assert back.as_record('linear0').get('axes') == ['x', 'y']
    assert np.array_equal(back.as_record('linear0').get('pc'), np.eye(2))


def test_save_and_load_system(tmp_path):
    cs = make_system()
    cs.remove_world_axis(0, 150.0)
    cs.transpose([1, 0], [2, 0, 1])
    path = tmp_path / 'cs.h5'
    save_coordinate_system(cs, path)

    loaded = load_coordinate_system(path)
    assert loaded.near(cs)
    assert loaded.world_axis_names() == cs.world_axis_names()
    ok, world = loaded.to_world([5.0, 2.0, 3.0])
    assert ok
    _, expected = cs.to_world([5.0, 2.0, 3.0])
    assert np.allclose(world, expected)


def test_save_twice_to_same_field_fails(tmp_path):
    path = tmp_path / 'cs.h5'
    save_coordinate_system(make_system(), path)
    with pytest.raises(ValueError):
        save_coordinate_system(make_system(), path)
    save_coordinate_system(make_system(), path, field_name='other')
    with h5py.File(path, 'r') as h:
        assert 'coordinates' in h and 'other' in h


def test_load_missing_field(tmp_path):
    path = tmp_path / 'cs.h5'
    save_coordinate_system(make_system(), path)
    with pytest.raises(KeyError):
        load_coordinate_system(path, 'nothing')


def test_failed_write_is_logged_and_raised(tmp_path, caplog):
    with caplog.at_level(logging.ERROR, logger='coordsys'):
        with pytest.raises(OSError):
            save_coordinate_system(make_system(), tmp_path)
    assert 'Failed writing coordinate system' in caplog.text
    assert str(tmp_path) in caplog.text
