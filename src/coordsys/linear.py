"""Linear axis family.

``world = crval + cdelt * (pc @ (pixel - crpix))``

Also converts to and from a 2-axis `affine.Affine` raster geotransform,
where pixel axis 0 is the column and pixel axis 1 the row.
"""
from typing import List, Optional, Sequence, Tuple
import logging

import numpy as np
from affine import Affine

from coordsys.config import TOLERANCES
from coordsys.coordinate import Coordinate, CoordinateType, register_coordinate_type
from coordsys.record import Record

logger = logging.getLogger(__name__)


class LinearCoordinate(Coordinate):
    """N pixel axes mapped linearly onto N world axes."""

    def __init__(self, names: Optional[Sequence[str]] = None, units: Optional[Sequence[str]] = None,
                 crval=None, cdelt=None, pc=None, crpix=None, n_axes: Optional[int] = None):
        super().__init__()
        if n_axes is None:
            for v in (names, units, crval, cdelt, crpix, pc):
                if v is not None:
                    n_axes = len(v)
                    break
            else:
                n_axes = 1
        n = int(n_axes)
        self._names = [str(x) for x in names] if names is not None else [''] * n
        self._units = [str(x) for x in units] if units is not None else [''] * n
        self._crval = self._vector(crval, n, 0.0, 'crval')
        self._cdelt = self._vector(cdelt, n, 1.0, 'cdelt')
        self._crpix = self._vector(crpix, n, 0.0, 'crpix')
        self._pc = np.eye(n) if pc is None else np.array(pc, dtype=float)
        if len(self._names) != n or len(self._units) != n:
            raise ValueError(f'names and units must have {n} elements')
        if self._pc.shape != (n, n):
            raise ValueError(f'pc must have shape ({n}, {n})')
        self._inv_pc: Optional[np.ndarray] = None

    @staticmethod
    def _vector(values, n: int, default: float, what: str) -> np.ndarray:
        if values is None:
            return np.full(n, default, dtype=float)
        v = np.array(values, dtype=float).reshape(-1)
        if v.shape[0] != n:
            raise ValueError(f'{what} must have {n} elements')
        return v

    @classmethod
    def from_affine(cls, transform: Affine, names=('x', 'y'), units=('m', 'm')) -> 'LinearCoordinate':
        """Build a 2-axis coordinate from a raster geotransform.

        The reference pixel is (0, 0) and the reference value the transform
        origin; the 2x2 matrix goes into ``pc`` with unit increments.
        """
        pc = [[transform.a, transform.b], [transform.d, transform.e]]
        return cls(names=names, units=units, crval=[transform.c, transform.f],
                   cdelt=[1.0, 1.0], pc=pc, crpix=[0.0, 0.0])

    def to_affine(self) -> Affine:
        if self.n_pixel_axes() != 2:
            raise ValueError('only 2-axis linear coordinates convert to an Affine')
        m = self._cdelt[:, None] * self._pc
        offset = self._crval - m @ self._crpix
        return Affine(m[0, 0], m[0, 1], offset[0], m[1, 0], m[1, 1], offset[1])

    @property
    def type(self) -> CoordinateType:
        return CoordinateType.LINEAR

    def n_world_axes(self) -> int:
        return self._crval.shape[0]

    def n_pixel_axes(self) -> int:
        return self._crpix.shape[0]

    def _inverse_pc(self) -> Optional[np.ndarray]:
        if self._inv_pc is None:
            try:
                self._inv_pc = np.linalg.inv(self._pc)
            except np.linalg.LinAlgError:
                return None
        return self._inv_pc

    def to_world(self, pixel) -> Tuple[bool, np.ndarray]:
        pixel = np.asarray(pixel, dtype=float).reshape(-1)
        if pixel.shape[0] != self.n_pixel_axes():
            raise ValueError(f'pixel must have {self.n_pixel_axes()} elements')
        world = self._crval + self._cdelt * (self._pc @ (pixel - self._crpix))
        return True, world

    def to_pixel(self, world) -> Tuple[bool, np.ndarray]:
        world = np.asarray(world, dtype=float).reshape(-1)
        n = self.n_world_axes()
        if world.shape[0] != n:
            raise ValueError(f'world must have {n} elements')
        if np.any(self._cdelt == 0.0):
            self.set_error('Linear coordinate has a zero increment')
            return False, np.full(n, np.nan)
        inv = self._inverse_pc()
        if inv is None:
            self.set_error('Linear coordinate PC matrix is singular')
            return False, np.full(n, np.nan)
        pixel = self._crpix + inv @ ((world - self._crval) / self._cdelt)
        return True, pixel

    def world_axis_names(self) -> List[str]:
        return list(self._names)

    def world_axis_units(self) -> List[str]:
        return list(self._units)

    def reference_value(self) -> np.ndarray:
        return self._crval.copy()

    def reference_pixel(self) -> np.ndarray:
        return self._crpix.copy()

    def increment(self) -> np.ndarray:
        return self._cdelt.copy()

    def linear_transform(self) -> np.ndarray:
        return self._pc.copy()

    def set_world_axis_names(self, names: Sequence[str]) -> bool:
        if len(names) != self.n_world_axes():
            self.set_error('names vector must be of length n_world_axes')
            return False
        self._names = [str(x) for x in names]
        return True

    def _store_world_axis_units(self, units: List[str]) -> bool:
        self._units = list(units)
        return True

    def _set_vector(self, attr: str, values, what: str) -> bool:
        v = np.array(values, dtype=float).reshape(-1)
        if v.shape[0] != getattr(self, attr).shape[0]:
            self.set_error(f'{what} vector has the wrong number of elements')
            return False
        setattr(self, attr, v)
        return True

    def set_reference_value(self, refval) -> bool:
        return self._set_vector('_crval', refval, 'reference value')

    def set_reference_pixel(self, refpix) -> bool:
        return self._set_vector('_crpix', refpix, 'reference pixel')

    def set_increment(self, inc) -> bool:
        return self._set_vector('_cdelt', inc, 'increment')

    def set_linear_transform(self, xform) -> bool:
        m = np.array(xform, dtype=float)
        if m.shape != self._pc.shape:
            self.set_error('linear transform has the wrong shape')
            return False
        self._pc = m
        self._inv_pc = None
        return True

    def near(self, other: Coordinate, exclude_pixel_axes: Optional[Sequence[int]] = None,
             tol: float = TOLERANCES['near']) -> bool:
        if other.type != self.type:
            self.set_error('Comparison only allowed for Linear coordinates')
            return False
        n = self.n_pixel_axes()
        axes = np.ones(n, dtype=bool)
        for j in exclude_pixel_axes or []:
            if 0 <= j < n:
                axes[j] = False
        if self.n_pixel_axes() != other.n_pixel_axes():
            self.set_error('Number of pixel axes differs')
            return False
        for j in range(n):
            if axes[j] and self._names[j] != other.world_axis_names()[j]:
                self.set_error(f'The Linear Coordinates have differing world axis names for axis {j}')
                return False
        return self.do_near_pixel(other, axes, axes, tol)

    def save(self, container: Record, field_name: str) -> bool:
        if container.is_defined(field_name):
            return False
        rec = Record()
        rec.define('crval', self._crval)
        rec.define('crpix', self._crpix)
        rec.define('cdelt', self._cdelt)
        rec.define('pc', self._pc)
        rec.define('axes', list(self._names))
        rec.define('units', list(self._units))
        container.define_record(field_name, rec)
        return True

    @classmethod
    def restore(cls, container: Record, field_name: str) -> Optional['LinearCoordinate']:
        if not container.is_defined(field_name):
            return None
        rec = container.as_record(field_name)
        for name in ('crval', 'crpix', 'cdelt', 'pc', 'axes', 'units'):
            if not rec.is_defined(name):
                logger.warning("linear record '%s' is missing field '%s'", field_name, name)
                return None
        crval = np.asarray(rec.get('crval'), dtype=float).reshape(-1)
        n = crval.shape[0]
        return cls(names=_string_list(rec.get('axes'), n), units=_string_list(rec.get('units'), n),
                   crval=crval, cdelt=rec.get('cdelt'),
                   pc=np.asarray(rec.get('pc'), dtype=float).reshape(n, n),
                   crpix=rec.get('crpix'))

    def clone(self) -> 'LinearCoordinate':
        c = LinearCoordinate(self._names, self._units, self._crval, self._cdelt, self._pc, self._crpix)
        c._preferred_units = None if self._preferred_units is None else list(self._preferred_units)
        return c

    def __repr__(self) -> str:
        return f'LinearCoordinate(names={self._names}, units={self._units}, crval={self._crval.tolist()})'


def _string_list(value, n: int) -> List[str]:
    # an all-empty string list may come back from storage as an empty array
    if isinstance(value, np.ndarray) and value.size == 0:
        return [''] * n
    return [str(v) for v in value]


register_coordinate_type(CoordinateType.LINEAR, LinearCoordinate)
