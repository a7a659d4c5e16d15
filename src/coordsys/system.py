"""Composite coordinate system.

A `CoordinateSystem` holds an ordered list of coordinates (axis families)
and presents their axes as one flat world space and one flat pixel space.
For each coordinate it keeps a world `AxisMap` and a pixel `AxisMap` giving
the global index of every local axis, plus replacement values used for
local axes that have been removed from the system.

Structural edits (`add_coordinate`, `remove_world_axis`,
`remove_pixel_axis`, `transpose`) only touch the maps and replacement
values, never the coordinates themselves. Lookups from a global axis to its
owning coordinate are linear scans; axis counts are small.

Transforms allocate their per-coordinate buffers locally, so two threads
may convert through the same system at once. `error_message` is still
per-instance state, and structural edits must never overlap a transform.
"""
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple
import logging
import operator

import numpy as np

from coordsys.axis_map import AxisMap, REMOVED, check_contiguous
from coordsys.config import TOLERANCES, RECORD_FIELDS
from coordsys.coordinate import (Coordinate, CoordinateType, FormatType,
                                 register_coordinate_type, registered_types, restorer_for)
from coordsys.linear import LinearCoordinate
from coordsys.record import Record
from coordsys.utils import as_flags, as_vector

logger = logging.getLogger(__name__)


@dataclass
class _CoordinateSlot:
    """One coordinate with its maps and replacement values."""
    coordinate: Coordinate
    world_map: AxisMap
    pixel_map: AxisMap
    world_replacement: np.ndarray
    pixel_replacement: np.ndarray

    def copy(self) -> '_CoordinateSlot':
        return _CoordinateSlot(self.coordinate.clone(), self.world_map.copy(), self.pixel_map.copy(),
                               self.world_replacement.copy(), self.pixel_replacement.copy())


class CoordinateSystem(Coordinate):
    """Aggregate of coordinates addressed by flat global axis indices."""

    def __init__(self):
        super().__init__()
        self._slots: List[_CoordinateSlot] = []

    def __repr__(self) -> str:
        kinds = ', '.join(s.coordinate.show_type() for s in self._slots)
        return (f'CoordinateSystem([{kinds}], n_world_axes={self.n_world_axes()}, '
                f'n_pixel_axes={self.n_pixel_axes()})')

    @property
    def type(self) -> CoordinateType:
        return CoordinateType.COORDSYS

    def _check_maps(self) -> None:
        assert check_contiguous([s.world_map for s in self._slots]), 'world axis maps are not contiguous'
        assert check_contiguous([s.pixel_map for s in self._slots]), 'pixel axis maps are not contiguous'

    # -- composition --------------------------------------------------------

    def add_coordinate(self, coord: Coordinate) -> None:
        """Append a copy of ``coord``; its axes follow the existing ones."""
        if not isinstance(coord, Coordinate):
            raise TypeError('add_coordinate needs a Coordinate')
        old_world = self.n_world_axes()
        old_pixel = self.n_pixel_axes()
        c = coord.clone()
        nw = c.n_world_axes()
        npx = c.n_pixel_axes()
        self._slots.append(_CoordinateSlot(
            coordinate=c,
            world_map=AxisMap.identity(nw, old_world),
            pixel_map=AxisMap.identity(npx, old_pixel),
            world_replacement=np.zeros(nw),
            pixel_replacement=np.zeros(npx),
        ))
        logger.debug('added %s coordinate %d: world axes %d..%d, pixel axes %d..%d',
                     c.show_type(), len(self._slots) - 1, old_world, old_world + nw - 1,
                     old_pixel, old_pixel + npx - 1)
        self._check_maps()

    @staticmethod
    def _axis_index(axis, n: int, side: str) -> int:
        """``axis`` as a plain int in ``[0, n)``; nothing is coerced."""
        try:
            axis = operator.index(axis)
        except TypeError:
            raise TypeError(f'{side} axis must be an integer, got {axis!r}') from None
        if not 0 <= axis < n:
            raise IndexError(f'{side} axis {axis} out of range [0, {n})')
        return axis

    @staticmethod
    def _permutation(order, n: int, what: str) -> List[int]:
        try:
            order = [operator.index(v) for v in np.asarray(order).reshape(-1)]
        except TypeError:
            raise TypeError(f'{what} must hold integers') from None
        if len(order) != n:
            raise ValueError(f'{what} must have {n} elements, got {len(order)}')
        found = [False] * n
        for which in order:
            if which < 0 or which >= n or found[which]:
                raise ValueError(f'{what} is not a permutation of 0..{n - 1}: {order}')
            found[which] = True
        return order

    def transpose(self, new_world_order, new_pixel_order) -> None:
        """Reorder the present axes.

        Global axis ``i`` after the call is the axis that was at
        ``new_world_order[i]`` (``new_pixel_order[i]``) before it. Removed
        axes are not part of either permutation and stay removed.
        """
        world_order = self._permutation(new_world_order, self.n_world_axes(), 'new_world_order')
        pixel_order = self._permutation(new_pixel_order, self.n_pixel_axes(), 'new_pixel_order')

        # copies, so lookups below still see the old assignment
        new_world_maps = [s.world_map.copy() for s in self._slots]
        new_pixel_maps = [s.pixel_map.copy() for s in self._slots]
        for i, orig in enumerate(world_order):
            coord, axis = self.find_world_axis(orig)
            new_world_maps[coord].assign(axis, i)
        for i, orig in enumerate(pixel_order):
            coord, axis = self.find_pixel_axis(orig)
            new_pixel_maps[coord].assign(axis, i)

        for s, wm, pm in zip(self._slots, new_world_maps, new_pixel_maps):
            s.world_map = wm
            s.pixel_map = pm
        logger.debug('transposed: world %s, pixel %s', world_order, pixel_order)
        self._check_maps()

    def remove_world_axis(self, axis: int, replacement: float) -> None:
        """Take world ``axis`` out of the system, freezing it at ``replacement``.

        Higher-numbered world axes move down by one.
        """
        axis = self._axis_index(axis, self.n_world_axes(), 'world')
        coord, caxis = self._locate_world(axis)
        assert coord >= 0, f'world axis {axis} has no owner'
        slot = self._slots[coord]
        slot.world_replacement[caxis] = float(replacement)
        slot.world_map.remove(caxis)
        for s in self._slots:
            s.world_map.shift_down_above(axis)
        logger.debug('removed world axis %d (coordinate %d axis %d), replacement %r',
                     axis, coord, caxis, replacement)
        self._check_maps()

    def remove_pixel_axis(self, axis: int, replacement: float) -> None:
        """Take pixel ``axis`` out of the system, freezing it at ``replacement``."""
        axis = self._axis_index(axis, self.n_pixel_axes(), 'pixel')
        coord, caxis = self._locate_pixel(axis)
        assert coord >= 0, f'pixel axis {axis} has no owner'
        slot = self._slots[coord]
        slot.pixel_replacement[caxis] = float(replacement)
        slot.pixel_map.remove(caxis)
        for s in self._slots:
            s.pixel_map.shift_down_above(axis)
        logger.debug('removed pixel axis %d (coordinate %d axis %d), replacement %r',
                     axis, coord, caxis, replacement)
        self._check_maps()

    def sub_image(self, origin_shift, pixinc=None) -> 'CoordinateSystem':
        """System for a cropped and/or strided view of the pixel grid.

        ``crpix' = (crpix - shift) / stride`` on every present pixel axis,
        and ``cdelt' = cdelt * stride`` on the world axis paired with it.
        Nested systems are cut through their own maps. Axis maps are
        unchanged.
        """
        npx = self.n_pixel_axes()
        shift = as_vector(origin_shift, npx, 'origin_shift')
        inc = np.ones(npx) if pixinc is None else as_vector(pixinc, npx, 'pixinc')
        if np.any(inc < 1):
            raise ValueError('pixinc entries must be >= 1')

        cs = self.clone()
        for s in cs._slots:
            c = s.coordinate
            n_local = len(s.pixel_map)
            local_shift = np.zeros(n_local)
            local_inc = np.ones(n_local)
            for j in range(n_local):
                where = s.pixel_map.global_index(j)
                if where is not None:
                    local_shift[j] = shift[where]
                    local_inc[j] = inc[where]
            if isinstance(c, CoordinateSystem):
                s.coordinate = c.sub_image(local_shift, local_inc)
                continue

            crpix = c.reference_pixel()
            cdelt = c.increment()
            for j in range(n_local):
                if s.pixel_map.is_removed(j):
                    continue
                crpix[j] = (crpix[j] - local_shift[j]) / local_inc[j]
                world_axis = c.pixel_axis_to_world_axis(j)
                if world_axis >= 0:
                    cdelt[world_axis] *= local_inc[j]
            c.set_reference_pixel(crpix)
            c.set_increment(cdelt)
        return cs

    def restore_original(self) -> None:
        """Discard all axis removals and reorderings."""
        rebuilt = CoordinateSystem()
        for s in self._slots:
            rebuilt.add_coordinate(s.coordinate)
        self._slots = rebuilt._slots
        logger.debug('restored original axis maps for %d coordinates', len(self._slots))

    def remove_coordinate(self, which: int) -> None:
        """Drop coordinate ``which``; the remaining axis maps are reset to identity."""
        which = self._check_coordinate_index(which)
        rebuilt = CoordinateSystem()
        for i, s in enumerate(self._slots):
            if i != which:
                rebuilt.add_coordinate(s.coordinate)
        self._slots = rebuilt._slots
        logger.debug('removed coordinate %d', which)

    def replace_coordinate(self, coord: Coordinate, which: int) -> None:
        """Swap in ``coord`` for coordinate ``which``; maps are kept."""
        which = self._check_coordinate_index(which)
        old = self._slots[which].coordinate
        if coord.n_world_axes() != old.n_world_axes() or coord.n_pixel_axes() != old.n_pixel_axes():
            raise ValueError('replacement coordinate must have the same numbers of world and pixel axes')
        self._slots[which].coordinate = coord.clone()

    # -- lookup -------------------------------------------------------------

    def _check_coordinate_index(self, which: int) -> int:
        return self._axis_index(which, len(self._slots), 'coordinate')

    def n_coordinates(self) -> int:
        return len(self._slots)

    def coordinate(self, which: int) -> Coordinate:
        """The coordinate held at ``which`` (not a copy)."""
        which = self._check_coordinate_index(which)
        return self._slots[which].coordinate

    def coordinate_type(self, which: int) -> CoordinateType:
        return self.coordinate(which).type

    def linear_coordinate(self, which: int) -> LinearCoordinate:
        c = self.coordinate(which)
        if c.type is not CoordinateType.LINEAR:
            raise TypeError(f'coordinate {which} is {c.show_type()}, not Linear')
        return c

    def find_coordinate(self, ctype: CoordinateType, after: int = -1) -> int:
        """Index of the first coordinate of ``ctype`` after ``after``, or -1."""
        for i in range(max(after, -1) + 1, len(self._slots)):
            if self._slots[i].coordinate.type is ctype:
                return i
        return -1

    def _locate_world(self, axis: int) -> Tuple[int, int]:
        for i, s in enumerate(self._slots):
            j = s.world_map.find(axis)
            if j >= 0:
                return i, j
        return -1, -1

    def _locate_pixel(self, axis: int) -> Tuple[int, int]:
        for i, s in enumerate(self._slots):
            j = s.pixel_map.find(axis)
            if j >= 0:
                return i, j
        return -1, -1

    def find_world_axis(self, axis: int) -> Tuple[int, int]:
        """``(coordinate, axis_in_coordinate)`` owning world ``axis``."""
        return self._locate_world(self._axis_index(axis, self.n_world_axes(), 'world'))

    def find_pixel_axis(self, axis: int) -> Tuple[int, int]:
        """``(coordinate, axis_in_coordinate)`` owning pixel ``axis``."""
        return self._locate_pixel(self._axis_index(axis, self.n_pixel_axes(), 'pixel'))

    def world_axes(self, which: int) -> np.ndarray:
        """Global world index of each local axis of coordinate ``which`` (-1 if removed)."""
        which = self._check_coordinate_index(which)
        ret = np.full(self._slots[which].coordinate.n_world_axes(), REMOVED, dtype=int)
        for i in range(self.n_world_axes()):
            coord, axis = self.find_world_axis(i)
            if coord == which:
                ret[axis] = i
        return ret

    def pixel_axes(self, which: int) -> np.ndarray:
        """Global pixel index of each local axis of coordinate ``which`` (-1 if removed)."""
        which = self._check_coordinate_index(which)
        ret = np.full(self._slots[which].coordinate.n_pixel_axes(), REMOVED, dtype=int)
        for i in range(self.n_pixel_axes()):
            coord, axis = self.find_pixel_axis(i)
            if coord == which:
                ret[axis] = i
        return ret

    def pixel_axis_to_world_axis(self, pixel_axis: int) -> int:
        """Global world axis paired with ``pixel_axis`` by its coordinate, or -1."""
        coord, axis = self.find_pixel_axis(pixel_axis)
        slot = self._slots[coord]
        local = slot.coordinate.pixel_axis_to_world_axis(axis)
        return REMOVED if local < 0 else slot.world_map[local]

    def world_axis_to_pixel_axis(self, world_axis: int) -> int:
        coord, axis = self.find_world_axis(world_axis)
        slot = self._slots[coord]
        local = slot.coordinate.world_axis_to_pixel_axis(axis)
        return REMOVED if local < 0 else slot.pixel_map[local]

    def n_world_axes(self) -> int:
        return sum(s.world_map.present_count() for s in self._slots)

    def n_pixel_axes(self) -> int:
        return sum(s.pixel_map.present_count() for s in self._slots)

    # -- transforms ---------------------------------------------------------

    @staticmethod
    def _gather(values: np.ndarray, amap: AxisMap, replacement: np.ndarray) -> np.ndarray:
        local = replacement.copy()
        idx = amap.as_array()
        present = idx >= 0
        local[present] = values[idx[present]]
        return local

    @staticmethod
    def _scatter(out: np.ndarray, amap: AxisMap, local: np.ndarray) -> None:
        idx = amap.as_array()
        present = idx >= 0
        out[idx[present]] = np.asarray(local, dtype=float)[present]

    def _unit_failed(self, i: int, c: Coordinate, first: str) -> str:
        msg = f'{c.show_type()} coordinate {i}: {c.error_message}'
        logger.debug('failure in %s', msg)
        return first or msg

    def to_world(self, pixel) -> Tuple[bool, np.ndarray]:
        """Convert a pixel vector of length `n_pixel_axes`.

        Every coordinate is converted even after one fails, so the returned
        vector holds all results that could be computed.
        """
        pixel = as_vector(pixel, self.n_pixel_axes(), 'pixel')
        world = np.zeros(self.n_world_axes())
        ok = True
        first_error = ''
        for i, s in enumerate(self._slots):
            local_pixel = self._gather(pixel, s.pixel_map, s.pixel_replacement)
            unit_ok, local_world = s.coordinate.to_world(local_pixel)
            if not unit_ok:
                ok = False
                first_error = self._unit_failed(i, s.coordinate, first_error)
            self._scatter(world, s.world_map, local_world)
        if not ok:
            self.set_error(first_error)
        return ok, world

    def to_world_position(self, position: Sequence[int]) -> Tuple[bool, np.ndarray]:
        """`to_world` for an integer pixel position."""
        return self.to_world(np.asarray(position, dtype=int).astype(float))

    def to_pixel(self, world) -> Tuple[bool, np.ndarray]:
        """Convert a world vector of length `n_world_axes`."""
        world = as_vector(world, self.n_world_axes(), 'world')
        pixel = np.zeros(self.n_pixel_axes())
        ok = True
        first_error = ''
        for i, s in enumerate(self._slots):
            local_world = self._gather(world, s.world_map, s.world_replacement)
            unit_ok, local_pixel = s.coordinate.to_pixel(local_world)
            if not unit_ok:
                ok = False
                first_error = self._unit_failed(i, s.coordinate, first_error)
            self._scatter(pixel, s.pixel_map, local_pixel)
        if not ok:
            self.set_error(first_error)
        return ok, pixel

    def to_mix(self, world_in, pixel_in, world_axes, pixel_axes,
               world_min=None, world_max=None) -> Tuple[bool, np.ndarray, np.ndarray]:
        """Mixed conversion, dispatched to each coordinate.

        A removed world axis supplies its replacement as a given world value
        unless the matching pixel axis is given; a removed pixel axis
        likewise supplies its replacement as a given pixel value. A local
        axis removed on both sides is treated as pixel-given.
        """
        nw = self.n_world_axes()
        npx = self.n_pixel_axes()
        world_in = as_vector(world_in, nw, 'world_in')
        pixel_in = as_vector(pixel_in, npx, 'pixel_in')
        world_axes = as_flags(world_axes, nw, 'world_axes')
        pixel_axes = as_flags(pixel_axes, npx, 'pixel_axes')
        default_min, default_max = self.default_world_mix_ranges()
        world_min = default_min if world_min is None else as_vector(world_min, nw, 'world_min')
        world_max = default_max if world_max is None else as_vector(world_max, nw, 'world_max')

        world_out = np.zeros(nw)
        pixel_out = np.zeros(npx)
        ok = True
        first_error = ''
        for i, s in enumerate(self._slots):
            c = s.coordinate
            wmap = s.world_map.as_array()
            pmap = s.pixel_map.as_array()
            l_world = self._gather(world_in, s.world_map, s.world_replacement)
            l_pixel = self._gather(pixel_in, s.pixel_map, s.pixel_replacement)
            l_wflags = np.zeros(wmap.shape[0], dtype=bool)
            l_pflags = np.zeros(pmap.shape[0], dtype=bool)
            l_wflags[wmap >= 0] = world_axes[wmap[wmap >= 0]]
            l_pflags[pmap >= 0] = pixel_axes[pmap[pmap >= 0]]
            l_wmin, l_wmax = c.default_world_mix_ranges()
            l_wmin[wmap >= 0] = world_min[wmap[wmap >= 0]]
            l_wmax[wmap >= 0] = world_max[wmap[wmap >= 0]]
            for j in range(min(wmap.shape[0], pmap.shape[0])):
                if pmap[j] == REMOVED:
                    l_pflags[j] = wmap[j] == REMOVED or not l_wflags[j]
                elif wmap[j] == REMOVED:
                    l_wflags[j] = not l_pflags[j]

            unit_ok, l_world_out, l_pixel_out = c.to_mix(l_world, l_pixel, l_wflags, l_pflags, l_wmin, l_wmax)
            if not unit_ok:
                ok = False
                first_error = self._unit_failed(i, c, first_error)
                continue
            self._scatter(world_out, s.world_map, l_world_out)
            self._scatter(pixel_out, s.pixel_map, l_pixel_out)
        if not ok:
            self.set_error(first_error)
        return ok, world_out, pixel_out

    def set_world_mix_ranges(self, shape: Sequence[int]) -> Tuple[bool, np.ndarray, np.ndarray]:
        shape = np.asarray(shape, dtype=int).reshape(-1)
        world_min, world_max = self.default_world_mix_ranges()
        if shape.shape[0] != self.n_pixel_axes():
            self.set_error('Shape must be of length n_pixel_axes')
            return False, world_min, world_max
        ok = True
        first_error = ''
        for i, s in enumerate(self._slots):
            local_shape = self._gather(shape.astype(float), s.pixel_map,
                                       np.zeros(len(s.pixel_map))).astype(int)
            unit_ok, l_min, l_max = s.coordinate.set_world_mix_ranges(local_shape)
            if not unit_ok:
                ok = False
                first_error = self._unit_failed(i, s.coordinate, first_error)
            self._scatter(world_min, s.world_map, l_min)
            self._scatter(world_max, s.world_map, l_max)
        if not ok:
            self.set_error(first_error)
        return ok, world_min, world_max

    # -- descriptors --------------------------------------------------------

    def _world_descriptor(self, getter: Callable) -> list:
        ret = []
        for i in range(self.n_world_axes()):
            coord, axis = self.find_world_axis(i)
            ret.append(getter(self._slots[coord].coordinate)[axis])
        return ret

    def _pixel_descriptor(self, getter: Callable) -> list:
        ret = []
        for i in range(self.n_pixel_axes()):
            coord, axis = self.find_pixel_axis(i)
            ret.append(getter(self._slots[coord].coordinate)[axis])
        return ret

    def world_axis_names(self) -> List[str]:
        return [str(v) for v in self._world_descriptor(lambda c: c.world_axis_names())]

    def world_axis_units(self) -> List[str]:
        return [str(v) for v in self._world_descriptor(lambda c: c.world_axis_units())]

    def preferred_world_axis_units(self) -> List[str]:
        return [str(v) for v in self._world_descriptor(lambda c: c.preferred_world_axis_units())]

    def reference_value(self) -> np.ndarray:
        return np.array(self._world_descriptor(lambda c: c.reference_value()), dtype=float)

    def increment(self) -> np.ndarray:
        return np.array(self._world_descriptor(lambda c: c.increment()), dtype=float)

    def reference_pixel(self) -> np.ndarray:
        return np.array(self._pixel_descriptor(lambda c: c.reference_pixel()), dtype=float)

    def linear_transform(self) -> np.ndarray:
        """Coupling matrix (world x pixel); zero between different coordinates."""
        nr = self.n_world_axes()
        nc = self.n_pixel_axes()
        ret = np.zeros((nr, nc))
        for i in range(nr):
            world_coord, world_axis = self.find_world_axis(i)
            for j in range(nc):
                pixel_coord, pixel_axis = self.find_pixel_axis(j)
                if world_coord == pixel_coord and world_coord >= 0:
                    ret[i, j] = self._slots[world_coord].coordinate.linear_transform()[world_axis, pixel_axis]
        return ret

    def _write_world(self, values, n: int, getter: Callable, setter: Callable) -> bool:
        if len(values) != n:
            raise ValueError(f'expected {n} world axis values, got {len(values)}')
        ok = True
        first_error = ''
        for i, s in enumerate(self._slots):
            tmp = getter(s.coordinate)
            for j in range(len(s.world_map)):
                which = s.world_map.global_index(j)
                if which is not None:
                    tmp[j] = values[which]
            if not setter(s.coordinate, tmp):
                ok = False
                first_error = self._unit_failed(i, s.coordinate, first_error)
        if not ok:
            self.set_error(first_error)
        return ok

    def set_world_axis_names(self, names: Sequence[str]) -> bool:
        names = [str(v) for v in names]
        return self._write_world(names, self.n_world_axes(), lambda c: c.world_axis_names(),
                                 lambda c, t: c.set_world_axis_names(t))

    def set_world_axis_units(self, units: Sequence[str], adjust: bool = True) -> bool:
        units = [str(v) for v in units]
        return self._write_world(units, self.n_world_axes(), lambda c: c.world_axis_units(),
                                 lambda c, t: c.set_world_axis_units(t, adjust))

    def _store_world_axis_units(self, units: List[str]) -> bool:
        return self.set_world_axis_units(units, adjust=False)

    def set_preferred_world_axis_units(self, pref_units: Sequence[str]) -> bool:
        pref_units = [str(v) for v in pref_units]
        return self._write_world(pref_units, self.n_world_axes(), lambda c: c.preferred_world_axis_units(),
                                 lambda c, t: c.set_preferred_world_axis_units(t))

    def set_reference_value(self, refval) -> bool:
        refval = np.asarray(refval, dtype=float).reshape(-1)
        return self._write_world(refval, self.n_world_axes(), lambda c: c.reference_value(),
                                 lambda c, t: c.set_reference_value(t))

    def set_increment(self, inc) -> bool:
        inc = np.asarray(inc, dtype=float).reshape(-1)
        return self._write_world(inc, self.n_world_axes(), lambda c: c.increment(),
                                 lambda c, t: c.set_increment(t))

    def set_reference_pixel(self, refpix) -> bool:
        refpix = np.asarray(refpix, dtype=float).reshape(-1)
        npx = self.n_pixel_axes()
        if refpix.shape[0] != npx:
            raise ValueError(f'expected {npx} pixel axis values, got {refpix.shape[0]}')
        ok = True
        for s in self._slots:
            tmp = s.coordinate.reference_pixel()
            for j, which in enumerate(s.pixel_map):
                if which != REMOVED:
                    tmp[j] = refpix[which]
            ok = s.coordinate.set_reference_pixel(tmp) and ok
        return ok

    def set_linear_transform(self, xform) -> bool:
        xform = np.asarray(xform, dtype=float)
        shape = (self.n_world_axes(), self.n_pixel_axes())
        if xform.shape != shape:
            raise ValueError(f'linear transform must have shape {shape}, got {xform.shape}')
        ok = True
        for s in self._slots:
            tmp = s.coordinate.linear_transform()
            for j, row in enumerate(s.world_map):
                for k, col in enumerate(s.pixel_map):
                    if row != REMOVED and col != REMOVED:
                        tmp[j, k] = xform[row, col]
            ok = s.coordinate.set_linear_transform(tmp) and ok
        return ok

    def format(self, world_value: float, world_axis: int, units: str = '',
               fmt: FormatType = FormatType.DEFAULT, is_absolute: bool = True,
               show_as_absolute: bool = True, precision: Optional[int] = None) -> Tuple[str, str]:
        coord, axis = self.find_world_axis(world_axis)
        assert coord >= 0 and axis >= 0
        return self._slots[coord].coordinate.format(world_value, axis, units, fmt, is_absolute,
                                                    show_as_absolute, precision)

    # -- comparison ---------------------------------------------------------

    def near(self, other: Coordinate, exclude_pixel_axes: Optional[Sequence[int]] = None,
             tol: float = TOLERANCES['near']) -> bool:
        """Structural and numerical closeness of two systems.

        Axis assignments must match exactly. Descriptors are compared per
        coordinate with absolute tolerance ``tol``, skipping the listed
        pixel axes and any coordinate whose world axes were all removed.
        """
        if other.type is not CoordinateType.COORDSYS:
            self.set_error('Comparison only allowed between coordinate systems')
            return False
        if self.n_coordinates() != other.n_coordinates():
            self.set_error('The systems have different numbers of coordinates')
            return False
        if self.n_pixel_axes() != other.n_pixel_axes():
            self.set_error('The systems have different numbers of pixel axes')
            return False
        if self.n_world_axes() != other.n_world_axes():
            self.set_error('The systems have different numbers of world axes')
            return False

        exclude = [int(v) for v in (exclude_pixel_axes or [])]
        for i in range(self.n_coordinates()):
            this_c = self.coordinate(i)
            other_c = other.coordinate(i)
            if this_c.type is not other_c.type:
                self.set_error(f'Coordinate {i} types differ')
                return False
            if not np.array_equal(self.pixel_axes(i), other.pixel_axes(i)):
                self.set_error(f'Coordinate {i} occupies different pixel axes')
                return False
            world = self.world_axes(i)
            if not np.array_equal(world, other.world_axes(i)):
                self.set_error(f'Coordinate {i} occupies different world axes')
                return False
            if np.all(world == REMOVED):
                continue

            # axes outside the current range are simply not found
            local_exclude = []
            for p in exclude:
                coord, axis = self._locate_pixel(p)
                if coord == i:
                    local_exclude.append(axis)
            if not this_c.near(other_c, local_exclude, tol):
                self.set_error(f'Coordinate {i}: {this_c.error_message}')
                return False
        return True

    # -- persistence --------------------------------------------------------

    def save(self, container: Record, field_name: str) -> bool:
        """Write this system as a sub-record ``field_name`` of ``container``.

        Fails if the field is already defined.
        """
        if container.is_defined(field_name):
            self.set_error(f"field '{field_name}' is already defined")
            return False
        sub = Record()
        for i, s in enumerate(self._slots):
            num = str(i)
            if not s.coordinate.save(sub, s.coordinate.type.tag + num):
                self.set_error(f'could not save coordinate {i}')
                return False
            sub.define(RECORD_FIELDS['world_map'] + num, s.world_map.as_array())
            sub.define(RECORD_FIELDS['world_replace'] + num, s.world_replacement)
            sub.define(RECORD_FIELDS['pixel_map'] + num, s.pixel_map.as_array())
            sub.define(RECORD_FIELDS['pixel_replace'] + num, s.pixel_replacement)
        container.define_record(field_name, sub)
        return True

    @classmethod
    def restore(cls, container: Record, field_name: str) -> Optional['CoordinateSystem']:
        """Rebuild a system saved with `save`, or None if the field is absent."""
        if not container.is_defined(field_name):
            return None
        sub = container.as_record(field_name)

        coords = []
        while True:
            num = str(len(coords))
            for ctype in CoordinateType:
                name = ctype.tag + num
                if not sub.is_defined(name):
                    continue
                if ctype not in registered_types():
                    raise ValueError(f"no coordinate class registered for field '{name}'")
                coord = restorer_for(ctype).restore(sub, name)
                if coord is None:
                    raise ValueError(f"could not restore coordinate field '{name}'")
                coords.append(coord)
                break
            else:
                break

        cs = cls()
        for c in coords:
            cs.add_coordinate(c)
        for i, s in enumerate(cs._slots):
            num = str(i)
            nw = s.coordinate.n_world_axes()
            npx = s.coordinate.n_pixel_axes()
            s.world_map = _restored_map(sub, RECORD_FIELDS['world_map'] + num, nw)
            s.pixel_map = _restored_map(sub, RECORD_FIELDS['pixel_map'] + num, npx)
            s.world_replacement = as_vector(sub.get(RECORD_FIELDS['world_replace'] + num), nw, 'world replacement')
            s.pixel_replacement = as_vector(sub.get(RECORD_FIELDS['pixel_replace'] + num), npx, 'pixel replacement')
        if not (check_contiguous([s.world_map for s in cs._slots])
                and check_contiguous([s.pixel_map for s in cs._slots])):
            raise ValueError(f"axis maps in '{field_name}' are not contiguous")
        logger.debug("restored %d coordinates from '%s'", len(coords), field_name)
        return cs

    def clone(self) -> 'CoordinateSystem':
        cs = CoordinateSystem()
        cs._slots = [s.copy() for s in self._slots]
        cs._error = self._error
        return cs


def _restored_map(sub: Record, name: str, n: int) -> AxisMap:
    values = np.asarray(sub.get(name), dtype=int).reshape(-1)
    if values.shape[0] != n:
        raise ValueError(f"field '{name}' must have {n} entries, got {values.shape[0]}")
    return AxisMap(values)


register_coordinate_type(CoordinateType.COORDSYS, CoordinateSystem)
