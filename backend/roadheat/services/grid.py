"""Zoom-adaptive grid resolution and coordinate snapping."""

import math

# Zoom level -> cell edge in degrees. Checked in ascending max_zoom order;
# the first tier whose max_zoom is >= the requested zoom wins.
ZOOM_CELL_SIZES: tuple[tuple[float, float], ...] = (
    (5, 1.0),  # ~111 km
    (8, 0.25),  # ~28 km
    (11, 0.05),  # ~5.5 km
    (13, 0.01),  # ~1.1 km
    (math.inf, 0.005),  # ~550 m (street level)
)


def cell_size(zoom: int) -> float:
    """Return the grid cell edge length in degrees for a zoom level.

    Total over all integers: anything below the first tier uses the
    coarsest grid, anything above the last finite tier uses the finest.
    """
    for max_zoom, size in ZOOM_CELL_SIZES:
        if zoom <= max_zoom:
            return size
    return ZOOM_CELL_SIZES[-1][1]


def snap(value: float, size: float) -> float:
    """Snap a coordinate to the nearest multiple of ``size``.

    Uses Python's round(), i.e. round-half-to-even, so a value exactly
    halfway between two grid lines goes to the even multiple. This is the
    same rule PostGIS ST_SnapToGrid applies.
    """
    return round(value / size) * size


def cell_key(latitude: float, longitude: float, size: float) -> tuple[float, float]:
    """Snapped (lat, lng) key of the cell containing a point."""
    return snap(latitude, size), snap(longitude, size)
