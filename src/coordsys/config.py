# -*- coding: utf-8 -*-

"""
coordsys/config.py

Central place for the tolerances, defaults and persistence field names used
by the coordinate units and the composite coordinate system.

Contents:
---------
1. TOLERANCES:
   - `near`: absolute tolerance used when comparing two systems or units.
   - `repeat`: relative tolerance deciding that a column in a batched
     transform repeats the previous one and may reuse its result.

2. MIX_RANGES:
   - Default world range bounds used by mixed transforms when nothing better
     is known, and how far beyond the image edge the ranges extend.

3. FORMAT:
   - Default precision for formatted world values.

4. RECORD_FIELDS:
   - Prefixes of the per-coordinate fields written by `CoordinateSystem.save`.
     Each prefix is followed by the coordinate index, e.g. ``worldmap0``.

Usage:
------
    from coordsys.config import TOLERANCES, RECORD_FIELDS
"""

# ───────────────────────────────────────────────────────────────────────────────
# 1) TOLERANCES
# ───────────────────────────────────────────────────────────────────────────────
TOLERANCES = {
    'near': 1.0e-6,      # absolute, descriptor comparison
    'repeat': 1.0e-13,   # relative, repeated-column detection
}

# ───────────────────────────────────────────────────────────────────────────────
# 2) MIX RANGES
# ───────────────────────────────────────────────────────────────────────────────
MIX_RANGES = {
    'world_min': -1.0e99,
    'world_max': 1.0e99,
    'edge_factor': 1.5,          # 25% off each edge of the image
    'unknown_half_width': 10.0,  # pixels either side when the shape is unknown
}

# ───────────────────────────────────────────────────────────────────────────────
# 3) FORMAT
# ───────────────────────────────────────────────────────────────────────────────
FORMAT = {
    'precision': 6,
}

# ───────────────────────────────────────────────────────────────────────────────
# 4) RECORD FIELDS
# ───────────────────────────────────────────────────────────────────────────────
RECORD_FIELDS = {
    'world_map': 'worldmap',
    'world_replace': 'worldreplace',
    'pixel_map': 'pixelmap',
    'pixel_replace': 'pixelreplace',
}

DEFAULT_FIELD_NAME = 'coordinates'
