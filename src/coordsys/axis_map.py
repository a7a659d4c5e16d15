"""Axis maps: per-coordinate tables of global axis indices.

Each coordinate in a `CoordinateSystem` owns one map for its world axes and
one for its pixel axes. Entry ``j`` holds the global index of the
coordinate's local axis ``j``, or `REMOVED` when that axis has been taken
out of the system.
"""
from typing import Iterable, Optional, Sequence
import numpy as np

REMOVED = -1


class AxisMap:
    """Ordered global indices for the local axes of one coordinate."""

    def __init__(self, values: Iterable[int]):
        self._values = np.array(list(values), dtype=int)
        if self._values.ndim != 1:
            raise ValueError('axis map must be 1-D')
        if np.any(self._values < REMOVED):
            raise ValueError('axis map entries must be >= -1')

    @classmethod
    def identity(cls, n: int, offset: int = 0) -> 'AxisMap':
        """Map local axis ``i`` to global axis ``offset + i``."""
        return cls(range(offset, offset + n))

    def __len__(self) -> int:
        return self._values.shape[0]

    def __iter__(self):
        return iter(int(v) for v in self._values)

    def __getitem__(self, j: int) -> int:
        return int(self._values[j])

    def __eq__(self, other) -> bool:
        if not isinstance(other, AxisMap):
            return NotImplemented
        return np.array_equal(self._values, other._values)

    def __repr__(self) -> str:
        return f'AxisMap({self._values.tolist()})'

    def copy(self) -> 'AxisMap':
        return AxisMap(self._values)

    def as_array(self) -> np.ndarray:
        return self._values.copy()

    def global_index(self, j: int) -> Optional[int]:
        """Global index of local axis ``j``, or None if it was removed."""
        v = int(self._values[j])
        return None if v == REMOVED else v

    def is_removed(self, j: int) -> bool:
        return int(self._values[j]) == REMOVED

    def present_count(self) -> int:
        return int(np.count_nonzero(self._values >= 0))

    def find(self, axis: int) -> int:
        """Local index holding global ``axis``, or -1."""
        hits = np.nonzero(self._values == axis)[0]
        if axis < 0 or hits.size == 0:
            return -1
        return int(hits[0])

    def assign(self, j: int, axis: int) -> None:
        if axis < 0:
            raise ValueError('use remove() to take an axis out of the map')
        self._values[j] = axis

    def remove(self, j: int) -> None:
        self._values[j] = REMOVED

    def shift_down_above(self, axis: int) -> None:
        """Decrement every entry greater than ``axis``."""
        self._values[self._values > axis] -= 1


def check_contiguous(maps: Sequence[AxisMap]) -> bool:
    """True if the present entries across ``maps`` are exactly ``0..n-1``."""
    present = [v for m in maps for v in m if v != REMOVED]
    return sorted(present) == list(range(len(present)))
