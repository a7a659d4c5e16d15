"""Transform unit contract and the batched transform protocol.

Every axis family (linear, direction, spectral, ...) subclasses
`Coordinate` and supplies single-point conversions plus per-axis
descriptors. The base class builds the batched operations on top of those:

- `to_world_many` / `to_pixel_many`: one conversion per column, reusing the
  previous result when a column repeats the one before it (the usual case
  when walking a scan line where most axes are constant).
- `to_mix`: mixed conversion where each axis is given as either a pixel or
  a world value. The default is only valid for families without coupling
  between axes; coupled families override it.
- absolute/relative conversions for single vectors and for columns.

Transform failures are data errors: conversions return ``(ok, values)`` and
leave the reason in `error_message`. Malformed arguments raise.
"""
import abc
import logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import astropy.units as u

from coordsys.config import TOLERANCES, MIX_RANGES, FORMAT
from coordsys.utils import as_flags, as_vector, columns_near

logger = logging.getLogger(__name__)


class CoordinateType(Enum):
    """Axis families; the value is the persistence tag."""
    LINEAR = 'linear'
    DIRECTION = 'direction'
    SPECTRAL = 'spectral'
    STOKES = 'stokes'
    TABULAR = 'tabular'
    COORDSYS = 'coordsys'

    @property
    def tag(self) -> str:
        return self.value


class FormatType(Enum):
    DEFAULT = 'default'
    SCIENTIFIC = 'scientific'
    FIXED = 'fixed'


_TYPE_NAMES = {
    CoordinateType.LINEAR: 'Linear',
    CoordinateType.DIRECTION: 'Direction',
    CoordinateType.SPECTRAL: 'Spectral',
    CoordinateType.STOKES: 'Stokes',
    CoordinateType.TABULAR: 'Tabular',
    CoordinateType.COORDSYS: 'System',
}

_RESTORERS: Dict[CoordinateType, type] = {}


def type_to_string(ctype: CoordinateType) -> str:
    return _TYPE_NAMES.get(ctype, 'Unknown')


def register_coordinate_type(ctype: CoordinateType, cls: type) -> None:
    """Make ``cls.restore`` the way records tagged with ``ctype`` are rebuilt."""
    _RESTORERS[ctype] = cls


def restorer_for(ctype: CoordinateType) -> Optional[type]:
    return _RESTORERS.get(ctype)


def registered_types() -> List[CoordinateType]:
    return [t for t in CoordinateType if t in _RESTORERS]


def find_scale_factor(units: Sequence[str], old_units: Sequence[str]) -> Tuple[bool, Optional[np.ndarray], str]:
    """Per-axis factors such that ``value_in_units = factor * value_in_old_units``.

    Returns ``(ok, factor, error)``.
    """
    if len(units) != len(old_units):
        return False, None, 'units and old units are different sizes'
    factor = np.ones(len(units), dtype=float)
    for i, (new, old) in enumerate(zip(units, old_units)):
        try:
            before = u.Unit(old)
            after = u.Unit(new)
        except ValueError:
            return False, None, 'Unknown unit - cannot calculate scaling'
        try:
            factor[i] = before.to(after)
        except u.UnitsError:
            return False, None, 'Units are not compatible dimensionally'
    return True, factor, ''


class Coordinate(abc.ABC):
    """Base class for a unit mapping a few pixel axes to world axes.

    Instances are not thread-safe: `error_message` is per-instance state.
    """

    def __init__(self):
        self._error = ''
        self._preferred_units: Optional[List[str]] = None

    # -- contract -----------------------------------------------------------

    @property
    @abc.abstractmethod
    def type(self) -> CoordinateType:
        ...

    @abc.abstractmethod
    def n_world_axes(self) -> int:
        ...

    @abc.abstractmethod
    def n_pixel_axes(self) -> int:
        ...

    @abc.abstractmethod
    def to_world(self, pixel) -> Tuple[bool, np.ndarray]:
        ...

    @abc.abstractmethod
    def to_pixel(self, world) -> Tuple[bool, np.ndarray]:
        ...

    @abc.abstractmethod
    def world_axis_names(self) -> List[str]:
        ...

    @abc.abstractmethod
    def world_axis_units(self) -> List[str]:
        ...

    @abc.abstractmethod
    def reference_value(self) -> np.ndarray:
        ...

    @abc.abstractmethod
    def reference_pixel(self) -> np.ndarray:
        ...

    @abc.abstractmethod
    def increment(self) -> np.ndarray:
        ...

    @abc.abstractmethod
    def linear_transform(self) -> np.ndarray:
        ...

    @abc.abstractmethod
    def set_world_axis_names(self, names: Sequence[str]) -> bool:
        ...

    @abc.abstractmethod
    def set_reference_value(self, refval) -> bool:
        ...

    @abc.abstractmethod
    def set_reference_pixel(self, refpix) -> bool:
        ...

    @abc.abstractmethod
    def set_increment(self, inc) -> bool:
        ...

    @abc.abstractmethod
    def set_linear_transform(self, xform) -> bool:
        ...

    @abc.abstractmethod
    def _store_world_axis_units(self, units: List[str]) -> bool:
        ...

    @abc.abstractmethod
    def near(self, other: 'Coordinate', exclude_pixel_axes: Optional[Sequence[int]] = None,
             tol: float = TOLERANCES['near']) -> bool:
        ...

    @abc.abstractmethod
    def save(self, container, field_name: str) -> bool:
        ...

    @classmethod
    @abc.abstractmethod
    def restore(cls, container, field_name: str) -> Optional['Coordinate']:
        ...

    @abc.abstractmethod
    def clone(self) -> 'Coordinate':
        ...

    # -- errors and names ---------------------------------------------------

    @property
    def error_message(self) -> str:
        return self._error

    def set_error(self, msg: str) -> None:
        self._error = msg

    def show_type(self) -> str:
        return type_to_string(self.type)

    def pixel_axis_to_world_axis(self, pixel_axis: int) -> int:
        """World axis paired with ``pixel_axis``, or -1.

        Local axes pair by position; coordinates with another pairing
        override this.
        """
        if not 0 <= pixel_axis < self.n_pixel_axes():
            raise IndexError(f'pixel axis {pixel_axis} out of range [0, {self.n_pixel_axes()})')
        return pixel_axis if pixel_axis < self.n_world_axes() else -1

    def world_axis_to_pixel_axis(self, world_axis: int) -> int:
        if not 0 <= world_axis < self.n_world_axes():
            raise IndexError(f'world axis {world_axis} out of range [0, {self.n_world_axes()})')
        return world_axis if world_axis < self.n_pixel_axes() else -1

    # -- batched transforms -------------------------------------------------

    def to_world_many(self, pixel) -> Tuple[int, np.ndarray, np.ndarray]:
        """Convert every column of ``pixel`` (shape ``(n_pixel_axes, N)``).

        Returns ``(n_failed, world, failures)`` where ``failures`` holds the
        indices of the columns that failed.
        """
        pixel = np.asarray(pixel, dtype=float)
        if pixel.ndim != 2 or pixel.shape[0] != self.n_pixel_axes():
            raise ValueError(f'pixel must have shape ({self.n_pixel_axes()}, N)')
        return self._transform_many(pixel, self.n_world_axes(), self.to_world)

    def to_pixel_many(self, world) -> Tuple[int, np.ndarray, np.ndarray]:
        """Convert every column of ``world`` (shape ``(n_world_axes, N)``)."""
        world = np.asarray(world, dtype=float)
        if world.ndim != 2 or world.shape[0] != self.n_world_axes():
            raise ValueError(f'world must have shape ({self.n_world_axes()}, N)')
        return self._transform_many(world, self.n_pixel_axes(), self.to_pixel)

    def _transform_many(self, values: np.ndarray, n_out: int,
                        convert: Callable) -> Tuple[int, np.ndarray, np.ndarray]:
        n = values.shape[1]
        out = np.zeros((n_out, n), dtype=float)
        failures = np.zeros(0, dtype=int)
        n_error = 0
        first_error = ''
        last_in = None
        last_out = np.zeros(n_out, dtype=float)
        last_ok = True
        for col in range(n):
            current = values[:, col]
            if last_in is None or not columns_near(current, last_in):
                last_ok, last_out = convert(current)
                last_out = np.asarray(last_out, dtype=float)
                if not last_ok and n_error == 0:
                    first_error = self.error_message
            out[:, col] = last_out
            if not last_ok:
                n_error += 1
                if n_error > failures.shape[0]:
                    grown = np.zeros(2 * n_error, dtype=int)
                    grown[:failures.shape[0]] = failures
                    failures = grown
                failures[n_error - 1] = col
            last_in = current.copy()
        if n_error:
            self.set_error(first_error)
            logger.debug('%s: %d of %d columns failed: %s', self.show_type(), n_error, n, first_error)
        return n_error, out, failures[:n_error]

    def to_mix(self, world_in, pixel_in, world_axes, pixel_axes,
               world_min=None, world_max=None) -> Tuple[bool, Optional[np.ndarray], Optional[np.ndarray]]:
        """Mixed conversion for families with uncoupled axes.

        For each axis exactly one of ``world_axes[i]`` and ``pixel_axes[i]``
        must be set; the matching entry of ``world_in`` or ``pixel_in`` is the
        given value. ``world_min`` and ``world_max`` bound the search for
        coupled families and are unused here.

        Returns ``(ok, world_out, pixel_out)``.
        """
        nw = self.n_world_axes()
        npx = self.n_pixel_axes()
        world_in = as_vector(world_in, nw, 'world_in')
        pixel_in = as_vector(pixel_in, npx, 'pixel_in')
        world_axes = as_flags(world_axes, nw, 'world_axes')
        pixel_axes = as_flags(pixel_axes, npx, 'pixel_axes')
        if nw != npx:
            raise ValueError('default mixed conversion needs equal world and pixel axis counts')

        for i in range(npx):
            if pixel_axes[i] and world_axes[i]:
                self.set_error('duplicate pixel/world axes')
                return False, None, None
            if not pixel_axes[i] and not world_axes[i]:
                self.set_error('each axis must be either pixel or world')
                return False, None, None

        # world -> pixel, starting from the reference value
        world_tmp = self.reference_value()
        world_tmp[world_axes] = world_in[world_axes]
        ok, pixel_tmp = self.to_pixel(world_tmp)
        if not ok:
            return False, None, None
        pixel_out = np.array(pixel_tmp, dtype=float)
        pixel_out[pixel_axes] = pixel_in[pixel_axes]

        # pixel -> world, starting from the reference pixel
        pixel_tmp = self.reference_pixel()
        pixel_tmp[pixel_axes] = pixel_in[pixel_axes]
        ok, world_tmp = self.to_world(pixel_tmp)
        if not ok:
            return False, None, None
        world_out = np.array(world_tmp, dtype=float)
        world_out[world_axes] = world_in[world_axes]
        return True, world_out, pixel_out

    # -- absolute / relative ------------------------------------------------

    def make_world_absolute(self, world) -> np.ndarray:
        return as_vector(world, self.n_world_axes(), 'world') + self.reference_value()

    def make_world_absolute_ref(self, world, refval) -> np.ndarray:
        n = self.n_world_axes()
        return as_vector(world, n, 'world') + as_vector(refval, n, 'refval')

    def make_world_relative(self, world) -> np.ndarray:
        return as_vector(world, self.n_world_axes(), 'world') - self.reference_value()

    def make_pixel_absolute(self, pixel) -> np.ndarray:
        return as_vector(pixel, self.n_pixel_axes(), 'pixel') + self.reference_pixel()

    def make_pixel_relative(self, pixel) -> np.ndarray:
        return as_vector(pixel, self.n_pixel_axes(), 'pixel') - self.reference_pixel()

    def make_world_absolute_many(self, values) -> np.ndarray:
        return self._abs_rel_many(values, self.n_world_axes(), self.make_world_absolute)

    def make_world_relative_many(self, values) -> np.ndarray:
        return self._abs_rel_many(values, self.n_world_axes(), self.make_world_relative)

    def make_pixel_absolute_many(self, values) -> np.ndarray:
        return self._abs_rel_many(values, self.n_pixel_axes(), self.make_pixel_absolute)

    def make_pixel_relative_many(self, values) -> np.ndarray:
        return self._abs_rel_many(values, self.n_pixel_axes(), self.make_pixel_relative)

    @staticmethod
    def _abs_rel_many(values, n: int, convert: Callable) -> np.ndarray:
        """Apply ``convert`` to each column in place; a float array passed in
        is modified and also returned."""
        values = np.asarray(values, dtype=float)
        if values.ndim != 2 or values.shape[0] != n:
            raise ValueError(f'values must have shape ({n}, N)')
        last_in = None
        last_out = None
        for col in range(values.shape[1]):
            current = values[:, col].copy()
            if last_in is not None and columns_near(current, last_in):
                values[:, col] = last_out
            else:
                last_out = convert(current)
                values[:, col] = last_out
            last_in = current
        return values

    # -- units --------------------------------------------------------------

    def set_world_axis_units(self, units: Sequence[str], adjust: bool = True) -> bool:
        """Change the world axis units, rescaling increment and reference
        value when ``adjust`` is set."""
        units = [str(x) for x in units]
        if len(units) != self.n_world_axes():
            self.set_error('Wrong number of elements in units vector')
            return False
        old = list(self.world_axis_units())
        if old == units:
            return True
        if adjust:
            ok, factor, error = find_scale_factor(units, old)
            if not ok:
                self.set_error(error)
                return False
            if not self.set_increment(self.increment() * factor):
                return False
            if not self.set_reference_value(self.reference_value() * factor):
                return False
        return self._store_world_axis_units(units)

    def preferred_world_axis_units(self) -> List[str]:
        n = self.n_world_axes()
        if self._preferred_units is None or len(self._preferred_units) != n:
            return [''] * n
        return list(self._preferred_units)

    def set_preferred_world_axis_units(self, pref_units: Sequence[str]) -> bool:
        """Empty entries mean native units; others must match dimensionally."""
        pref_units = [str(x) for x in pref_units]
        if len(pref_units) != self.n_world_axes():
            self.set_error('Wrong number of elements in preferred units vector')
            return False
        current = self.world_axis_units()
        for pref, cur in zip(pref_units, current):
            if not pref:
                continue
            try:
                compatible = u.Unit(pref).is_equivalent(u.Unit(cur))
            except ValueError:
                compatible = False
            if not compatible:
                self.set_error('Preferred units are not dimensionally consistent with actual units')
                return False
        self._preferred_units = pref_units
        return True

    def format(self, world_value: float, world_axis: int, units: str = '',
               fmt: FormatType = FormatType.DEFAULT, is_absolute: bool = True,
               show_as_absolute: bool = True, precision: Optional[int] = None) -> Tuple[str, str]:
        """Format one world value; returns ``(text, units)``.

        ``units`` empty means the preferred unit, or the native one when no
        preference is set.
        """
        nw = self.n_world_axes()
        if not 0 <= world_axis < nw:
            raise IndexError(f'world axis {world_axis} out of range [0, {nw})')
        form = fmt if fmt in (FormatType.SCIENTIFIC, FormatType.FIXED) else FormatType.SCIENTIFIC
        prec = FORMAT['precision'] if precision is None or precision < 0 else int(precision)

        if show_as_absolute and not is_absolute:
            world = np.zeros(nw)
            world[world_axis] = world_value
            world_value = float(self.make_world_absolute(world)[world_axis])
        elif not show_as_absolute and is_absolute:
            world = self.reference_value()
            world[world_axis] = world_value
            world_value = float(self.make_world_relative(world)[world_axis])

        native = self.world_axis_units()[world_axis]
        if not units:
            units = self.preferred_world_axis_units()[world_axis] or native
        try:
            world_value = (world_value * u.Unit(native)).to_value(u.Unit(units))
        except (ValueError, u.UnitsError) as exc:
            raise ValueError(f"Requested units '{units}' are invalid for world axis {world_axis}") from exc

        if form is FormatType.SCIENTIFIC:
            return f'{world_value:.{prec}e}', units
        return f'{world_value:.{prec}f}', units

    # -- mix ranges ---------------------------------------------------------

    def default_world_mix_ranges(self) -> Tuple[np.ndarray, np.ndarray]:
        n = self.n_world_axes()
        return np.full(n, MIX_RANGES['world_min']), np.full(n, MIX_RANGES['world_max'])

    def set_world_mix_ranges(self, shape: Sequence[int]) -> Tuple[bool, np.ndarray, np.ndarray]:
        """World ranges spanning the image and 25% beyond each edge.

        A shape entry of 0 means unknown (e.g. a removed pixel axis) and
        keeps the default range for that axis.
        """
        shape = np.asarray(shape, dtype=int).reshape(-1)
        world_min, world_max = self.default_world_mix_ranges()
        if shape.shape[0] != self.n_pixel_axes():
            self.set_error('Shape must be of length n_pixel_axes')
            return False, world_min, world_max
        if self.n_pixel_axes() != self.n_world_axes():
            raise ValueError('mix ranges need equal world and pixel axis counts')
        if np.any(shape < 0):
            raise ValueError('shape entries must be >= 0')

        ref_pix = self.reference_pixel()
        half_width = MIX_RANGES['unknown_half_width']
        p_min = np.zeros(shape.shape[0])
        p_max = np.zeros(shape.shape[0])
        for i, s in enumerate(shape):
            s2 = s / 2.0
            if s == 0:
                p_min[i] = ref_pix[i] - half_width
                p_max[i] = ref_pix[i] + half_width
            elif s == 1:
                p_min[i] = -half_width
                p_max[i] = half_width
            else:
                n2 = MIX_RANGES['edge_factor'] * s2
                p_min[i] = s2 - n2
                p_max[i] = s2 + n2
        ok1, w_min = self.to_world(p_min)
        ok2, w_max = self.to_world(p_max)
        if not (ok1 and ok2):
            return False, world_min, world_max
        known = shape > 0
        world_min[known] = np.asarray(w_min)[known]
        world_max[known] = np.asarray(w_max)[known]
        return True, world_min, world_max

    # -- comparison ---------------------------------------------------------

    def do_near_pixel(self, other: 'Coordinate', this_axes, other_axes,
                      tol: float = TOLERANCES['near']) -> bool:
        """Compare descriptors on the pixel axes flagged in both masks."""
        if self.type != other.type:
            self.set_error('Coordinate types differ')
            return False
        this_axes = np.asarray(this_axes, dtype=bool)
        other_axes = np.asarray(other_axes, dtype=bool)
        if not this_axes.any() and not other_axes.any():
            return True
        if self.n_pixel_axes() != other.n_pixel_axes():
            self.set_error('Number of pixel axes differs')
            return False
        if self.n_world_axes() != other.n_world_axes():
            self.set_error('Number of world axes differs')
            return False

        this_ref_val, other_ref_val = self.reference_value(), other.reference_value()
        this_inc, other_inc = self.increment(), other.increment()
        this_ref_pix, other_ref_pix = self.reference_pixel(), other.reference_pixel()
        this_units, other_units = self.world_axis_units(), other.world_axis_units()
        this_pc, other_pc = self.linear_transform(), other.linear_transform()
        if this_pc.shape != other_pc.shape:
            self.set_error('PC matrices have different shapes')
            return False
        assert this_pc.shape[0] == this_pc.shape[1], 'PC matrix must be square'

        def close(a, b):
            return abs(a - b) <= tol

        for i in range(self.n_pixel_axes()):
            if not (this_axes[i] and other_axes[i]):
                continue
            u1 = (this_units[i].upper().split() or [''])[0]
            u2 = (other_units[i].upper().split() or [''])[0]
            if u1 != u2:
                self.set_error(f'The Coordinates have differing axis units for axis {i}')
                return False
            if not close(this_ref_val[i], other_ref_val[i]):
                self.set_error(f'The Coordinates have differing reference values for axis {i}')
                return False
            if not close(this_inc[i], other_inc[i]):
                self.set_error(f'The Coordinates have differing increments for axis {i}')
                return False
            if not close(this_ref_pix[i], other_ref_pix[i]):
                self.set_error(f'The Coordinates have differing reference pixels for axis {i}')
                return False
            # axis i appears in row i and column i of the PC matrix
            if not np.all(np.abs(this_pc[i, :] - other_pc[i, :]) <= tol):
                self.set_error(f'The Coordinates have differing PC matrix rows for axis {i}')
                return False
            if not np.all(np.abs(this_pc[:, i] - other_pc[:, i]) <= tol):
                self.set_error(f'The Coordinates have differing PC matrix columns for axis {i}')
                return False
        return True
