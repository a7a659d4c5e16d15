"""Named-field record store used to persist coordinates.

A `Record` holds numbers, strings, lists of strings, numpy arrays and
nested `Record` instances under string keys. It is the in-memory form of
what `coordsys.io` writes to HDF5.
"""
from typing import Any, Dict, Iterator, Tuple
import numpy as np


class Record:
    """Ordered mapping of field name to value or sub-record."""

    def __init__(self):
        self._fields: Dict[str, Any] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._fields

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f'Record({list(self._fields)})'

    def is_defined(self, name: str) -> bool:
        return name in self._fields

    def keys(self):
        return list(self._fields.keys())

    def items(self) -> Iterator[Tuple[str, Any]]:
        return iter(list(self._fields.items()))

    def define(self, name: str, value: Any) -> None:
        """Store ``value`` under ``name``, replacing any previous value.

        Arrays and sequences of numbers are copied into numpy arrays so later
        changes by the caller do not leak into the record.
        """
        if isinstance(value, Record):
            self.define_record(name, value)
            return
        if isinstance(value, (str, bool, int, float, np.integer, np.floating)):
            self._fields[name] = value
            return
        if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value) and len(value) > 0:
            self._fields[name] = [str(v) for v in value]
            return
        arr = np.array(value)
        if arr.dtype.kind in ('U', 'S', 'O'):
            self._fields[name] = [str(v) for v in arr.tolist()]
        else:
            self._fields[name] = arr

    def define_record(self, name: str, record: 'Record') -> None:
        if not isinstance(record, Record):
            raise TypeError(f"field '{name}' must be a Record")
        self._fields[name] = record

    def get(self, name: str) -> Any:
        if name not in self._fields:
            raise KeyError(f"field '{name}' is not defined")
        value = self._fields[name]
        if isinstance(value, np.ndarray):
            return value.copy()
        if isinstance(value, list):
            return list(value)
        return value

    def as_record(self, name: str) -> 'Record':
        value = self.get(name)
        if not isinstance(value, Record):
            raise TypeError(f"field '{name}' is not a sub-record")
        return value
