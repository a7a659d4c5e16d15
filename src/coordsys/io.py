"""HDF5 persistence for records and coordinate systems.

A `Record` maps onto an HDF5 group: every field becomes a dataset (or a
sub-group for nested records) carrying a ``kind`` attribute so the exact
Python value can be rebuilt on read. Groups are created with
``track_order=True`` so fields come back in the order they were defined.
"""

from typing import Any, Optional
import logging

import h5py
import numpy as np

from coordsys.config import DEFAULT_FIELD_NAME
from coordsys.record import Record
from coordsys.system import CoordinateSystem
from coordsys.utils import safe_log_exception as _safe_log_exception

logger = logging.getLogger(__name__)

_KIND = 'kind'


def _write_value(group: h5py.Group, name: str, value: Any) -> None:
    if isinstance(value, Record):
        sub = group.create_group(name, track_order=True)
        sub.attrs[_KIND] = 'record'
        write_record(sub, value)
    elif isinstance(value, str):
        ds = group.create_dataset(name, data=value, dtype=h5py.string_dtype())
        ds.attrs[_KIND] = 'str'
    elif isinstance(value, list):
        ds = group.create_dataset(name, data=np.array(value, dtype=object), dtype=h5py.string_dtype())
        ds.attrs[_KIND] = 'str_list'
    elif isinstance(value, (bool, np.bool_)):
        ds = group.create_dataset(name, data=np.bool_(value))
        ds.attrs[_KIND] = 'bool'
    elif isinstance(value, (int, np.integer)):
        ds = group.create_dataset(name, data=np.int64(value))
        ds.attrs[_KIND] = 'int'
    elif isinstance(value, (float, np.floating)):
        ds = group.create_dataset(name, data=np.float64(value))
        ds.attrs[_KIND] = 'float'
    else:
        ds = group.create_dataset(name, data=np.asarray(value))
        ds.attrs[_KIND] = 'array'


def _read_value(node) -> Any:
    kind = node.attrs.get(_KIND, 'array')
    if isinstance(kind, bytes):
        kind = kind.decode()
    if isinstance(node, h5py.Group):
        return read_record(node)
    if kind == 'str':
        return node.asstr()[()]
    if kind == 'str_list':
        return [str(v) for v in node.asstr()[()]]
    if kind == 'bool':
        return bool(node[()])
    if kind == 'int':
        return int(node[()])
    if kind == 'float':
        return float(node[()])
    return np.asarray(node[()])


def write_record(group: h5py.Group, record: Record) -> None:
    """Write every field of ``record`` into ``group``."""
    for name, value in record.items():
        _write_value(group, name, value)


def read_record(group: h5py.Group) -> Record:
    """Rebuild a `Record` from a group written by `write_record`."""
    rec = Record()
    for name, node in group.items():
        value = _read_value(node)
        if isinstance(value, Record):
            rec.define_record(name, value)
        else:
            rec.define(name, value)
    return rec


def save_coordinate_system(cs: CoordinateSystem, path: str, field_name: str = DEFAULT_FIELD_NAME) -> None:
    """Save ``cs`` under ``field_name`` in the HDF5 file at ``path``.

    The file is created if needed; an existing ``field_name`` is an error.
    """
    rec = Record()
    if not cs.save(rec, field_name):
        raise ValueError(f"could not save coordinate system: {cs.error_message}")
    try:
        with h5py.File(str(path), 'a') as h:
            if field_name in h:
                raise ValueError(f"'{field_name}' already exists in {path}")
            group = h.create_group(field_name, track_order=True)
            group.attrs[_KIND] = 'record'
            write_record(group, rec.as_record(field_name))
    except ValueError:
        raise
    except Exception as e:
        _safe_log_exception('Failed writing coordinate system', e, file=str(path), field=field_name)
        raise
    logger.info("saved %d coordinates to %s:%s", cs.n_coordinates(), path, field_name)


def load_coordinate_system(path: str, field_name: str = DEFAULT_FIELD_NAME) -> CoordinateSystem:
    """Load a coordinate system written by `save_coordinate_system`."""
    with h5py.File(str(path), 'r') as h:
        if field_name not in h:
            raise KeyError(f"'{field_name}' not found in {path}")
        rec = Record()
        rec.define_record(field_name, read_record(h[field_name]))
    cs: Optional[CoordinateSystem] = CoordinateSystem.restore(rec, field_name)
    assert cs is not None
    logger.debug("loaded %d coordinates from %s:%s", cs.n_coordinates(), path, field_name)
    return cs
