import logging

import numpy as np
import pytest

from coordsys.utils import as_flags, as_vector, columns_near, configure_logging, near, safe_log_exception


def test_near_is_relative():
    assert near(0.0, 0.0)
    assert near(1.0e6, 1.0e6 * (1.0 + 1.0e-15))
    assert not near(1.0, 1.0 + 1.0e-9)
    assert near(1.0, 1.1, tol=0.1)


def test_columns_near():
    assert columns_near(np.array([1.0, 0.0]), np.array([1.0, 0.0]))
    assert not columns_near(np.array([1.0, 0.0]), np.array([1.0, 1.0e-20]))
    assert not columns_near(np.array([1.0]), np.array([1.0, 2.0]))


def test_as_vector_checks_length():
    v = as_vector([1, 2], 2, 'pixel')
    assert v.dtype == float
    with pytest.raises(ValueError, match='pixel must have 3 elements'):
        as_vector([1, 2], 3, 'pixel')
    assert list(as_flags([1, 0], 2, 'flags')) == [True, False]


def test_configure_logging_adds_one_handler():
    log = configure_logging(logging.DEBUG)
    n = len(log.handlers)
    configure_logging(logging.INFO)
    assert len(log.handlers) == n
    assert log.level == logging.INFO


def test_safe_log_exception_logs(caplog):
    with caplog.at_level(logging.ERROR, logger='coordsys.utils'):
        safe_log_exception('write failed', RuntimeError('disk'), file='a.h5')
    assert 'write failed' in caplog.text
    assert "file='a.h5'" in caplog.text
