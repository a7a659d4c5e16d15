"""Composite pixel/world coordinate systems.

Importing the package registers the built-in coordinate classes so saved
systems can be restored.
"""
from coordsys.axis_map import AxisMap, REMOVED
from coordsys.coordinate import Coordinate, CoordinateType, FormatType, find_scale_factor
from coordsys.linear import LinearCoordinate
from coordsys.record import Record
from coordsys.system import CoordinateSystem
from coordsys.io import load_coordinate_system, save_coordinate_system

__version__ = '0.1.0'

__all__ = [
    'AxisMap', 'REMOVED',
    'Coordinate', 'CoordinateType', 'FormatType', 'find_scale_factor',
    'LinearCoordinate', 'CoordinateSystem', 'Record',
    'load_coordinate_system', 'save_coordinate_system',
]
