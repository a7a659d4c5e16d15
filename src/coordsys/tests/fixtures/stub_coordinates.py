import numpy as np

from coordsys.linear import LinearCoordinate
from coordsys.system import CoordinateSystem


class CountingCoordinate(LinearCoordinate):
    """Linear coordinate that counts single-point conversions.

    `calls` is shared with every clone, so counts survive being added to a
    system.
    """

    def __init__(self, *args, calls=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = calls if calls is not None else {'to_world': 0, 'to_pixel': 0}

    def to_world(self, pixel):
        self.calls['to_world'] += 1
        return super().to_world(pixel)

    def to_pixel(self, world):
        self.calls['to_pixel'] += 1
        return super().to_pixel(world)

    def clone(self):
        return CountingCoordinate(self.world_axis_names(), self.world_axis_units(), self.reference_value(),
                                  self.increment(), self.linear_transform(), self.reference_pixel(),
                                  calls=self.calls)


class FailingCoordinate(LinearCoordinate):
    """Linear coordinate that fails for negative values on axis 0."""

    def to_world(self, pixel):
        ok, world = super().to_world(pixel)
        if np.asarray(pixel, dtype=float)[0] < 0:
            self.set_error('negative pixel on axis 0')
            return False, world
        return ok, world

    def to_pixel(self, world):
        ok, pixel = super().to_pixel(world)
        if np.asarray(world, dtype=float)[0] < 0:
            self.set_error('negative world on axis 0')
            return False, pixel
        return ok, pixel

    def clone(self):
        return FailingCoordinate(self.world_axis_names(), self.world_axis_units(), self.reference_value(),
                                 self.increment(), self.linear_transform(), self.reference_pixel())


def make_linear(n=2, crval=None, cdelt=None, crpix=None, names=None, units=None):
    names = names if names is not None else [f'axis{i}' for i in range(n)]
    units = units if units is not None else ['m'] * n
    return LinearCoordinate(names=names, units=units,
                            crval=crval if crval is not None else np.zeros(n),
                            cdelt=cdelt if cdelt is not None else np.ones(n),
                            crpix=crpix if crpix is not None else np.zeros(n))


def make_system():
    """Two linear coordinates: a 2-axis spatial one and a 1-axis one.

    World and pixel axes 0,1 belong to coordinate 0 and axis 2 to
    coordinate 1.
    """
    cs = CoordinateSystem()
    cs.add_coordinate(make_linear(2, crval=[100.0, 200.0], cdelt=[2.0, 3.0], crpix=[1.0, 1.0],
                                  names=['x', 'y'], units=['m', 'm']))
    cs.add_coordinate(make_linear(1, crval=[1.0e3], cdelt=[10.0], crpix=[0.0],
                                  names=['t'], units=['s']))
    return cs
