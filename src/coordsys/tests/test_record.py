import numpy as np
import pytest

from coordsys.record import Record


def test_define_and_get_copies_arrays():
    rec = Record()
    values = np.array([1.0, 2.0])
    rec.define('crval', values)
    values[0] = 99.0
    got = rec.get('crval')
    assert np.array_equal(got, [1.0, 2.0])
    got[1] = -1.0
    assert rec.get('crval')[1] == 2.0


def test_string_lists_and_scalars():
    rec = Record()
    rec.define('axes', ['x', 'y'])
    rec.define('name', 'sky')
    rec.define('n', 3)
    assert rec.get('axes') == ['x', 'y']
    assert rec.get('name') == 'sky'
    assert rec.get('n') == 3
    assert rec.keys() == ['axes', 'name', 'n']
    assert len(rec) == 3


def test_nested_records():
    inner = Record()
    inner.define('pc', np.eye(2))
    rec = Record()
    rec.define_record('linear0', inner)
    assert rec.is_defined('linear0')
    assert 'linear0' in rec
    assert np.array_equal(rec.as_record('linear0').get('pc'), np.eye(2))


def test_missing_field_and_wrong_kind():
    rec = Record()
    rec.define('n', 1)
    with pytest.raises(KeyError):
        rec.get('missing')
    with pytest.raises(TypeError):
        rec.as_record('n')
    with pytest.raises(TypeError):
        rec.define_record('bad', {'a': 1})
