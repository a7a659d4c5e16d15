"""Inspect a saved coordinate system.

Usage:
    coordsys-info system.h5 --field coordinates
    coordsys-info system.h5 --pixel 10 20
    coordsys-info system.h5 --world 150.0 -30.0 --verbose

Prints one line per world axis and per pixel axis, then converts the
given pixel (or world) position if one was supplied.
"""

import argparse
import logging
import sys

from coordsys.config import DEFAULT_FIELD_NAME, FORMAT
from coordsys.io import load_coordinate_system
from coordsys.system import CoordinateSystem
from coordsys.utils import configure_logging

logger = logging.getLogger(__name__)

# digits printed for converted positions
_PRECISION = FORMAT["precision"] + 4


def describe(cs: CoordinateSystem) -> list:
    """Text lines for every world and pixel axis of ``cs``."""
    lines = [f'{cs.n_coordinates()} coordinates, {cs.n_world_axes()} world axes, '
             f'{cs.n_pixel_axes()} pixel axes']
    names = cs.world_axis_names()
    units = cs.world_axis_units()
    refval = cs.reference_value()
    inc = cs.increment()
    for i in range(cs.n_world_axes()):
        coord, axis = cs.find_world_axis(i)
        lines.append(f'world {i}: {names[i]!r} [{units[i]}] crval={refval[i]:g} cdelt={inc[i]:g} '
                     f'({cs.coordinate(coord).show_type()} {coord}, axis {axis})')
    refpix = cs.reference_pixel()
    for i in range(cs.n_pixel_axes()):
        coord, axis = cs.find_pixel_axis(i)
        lines.append(f'pixel {i}: crpix={refpix[i]:g} world axis {cs.pixel_axis_to_world_axis(i)} '
                     f'({cs.coordinate(coord).show_type()} {coord}, axis {axis})')
    return lines


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog='coordsys-info', description='Describe a coordinate system saved to HDF5')
    p.add_argument('path', help='HDF5 file written by save_coordinate_system')
    p.add_argument('--field', default=DEFAULT_FIELD_NAME, help='group holding the system')
    group = p.add_mutually_exclusive_group()
    group.add_argument('--pixel', type=float, nargs='+', help='pixel position to convert to world')
    group.add_argument('--world', type=float, nargs='+', help='world position to convert to pixel')
    p.add_argument('--verbose', action='store_true', help='debug logging')
    return p


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        cs = load_coordinate_system(args.path, args.field)
    except (OSError, KeyError, ValueError) as e:
        logger.error('could not load %s:%s: %s', args.path, args.field, e)
        return 1

    for line in describe(cs):
        print(line)

    if args.pixel is not None:
        try:
            ok, world = cs.to_world(args.pixel)
        except ValueError as e:
            logger.error('%s', e)
            return 1
        if not ok:
            logger.error('to_world failed: %s', cs.error_message)
            return 1
        print('world: ' + ' '.join(f'{v:.{_PRECISION}g}' for v in world))
    elif args.world is not None:
        try:
            ok, pixel = cs.to_pixel(args.world)
        except ValueError as e:
            logger.error('%s', e)
            return 1
        if not ok:
            logger.error('to_pixel failed: %s', cs.error_message)
            return 1
        print('pixel: ' + ' '.join(f'{v:.{_PRECISION}g}' for v in pixel))
    return 0


if __name__ == '__main__':
    sys.exit(main())
