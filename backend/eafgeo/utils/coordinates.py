"""
Coordinate utilities.

WGS84 <-> local East-North-Up (ENU) conversion, used to lay out circles in
metres around a geographic centre.
"""

import numpy as np
from numpy.typing import NDArray
from typing import Optional

# WGS84 ellipsoid constants
WGS84_A = 6378137.0              # Semi-major axis (meters)
WGS84_F = 1 / 298.257223563      # Flattening
WGS84_B = WGS84_A * (1 - WGS84_F)
WGS84_E2 = 1 - (WGS84_B**2 / WGS84_A**2)  # First eccentricity squared


def _rotation_terms(lat0: float, lon0: float) -> tuple[float, float, float, float]:
    lat0_rad = np.radians(lat0)
    lon0_rad = np.radians(lon0)
    return np.sin(lat0_rad), np.cos(lat0_rad), np.sin(lon0_rad), np.cos(lon0_rad)


def geodetic_to_ecef(
    lat: NDArray[np.float64],
    lon: NDArray[np.float64],
    alt: NDArray[np.float64]
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """
    WGS84 latitude/longitude (degrees) and altitude (metres) to Earth-Centered
    Earth-Fixed X, Y, Z in metres.
    """
    lat_rad = np.radians(lat)
    lon_rad = np.radians(lon)

    # Prime vertical radius of curvature
    N = WGS84_A / np.sqrt(1 - WGS84_E2 * np.sin(lat_rad)**2)

    X = (N + alt) * np.cos(lat_rad) * np.cos(lon_rad)
    Y = (N + alt) * np.cos(lat_rad) * np.sin(lon_rad)
    Z = (N * (1 - WGS84_E2) + alt) * np.sin(lat_rad)
    return X, Y, Z


def ecef_to_geodetic(
    X: NDArray[np.float64],
    Y: NDArray[np.float64],
    Z: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Inverse of geodetic_to_ecef, iterating on latitude."""
    lon = np.degrees(np.arctan2(Y, X))

    p = np.sqrt(X**2 + Y**2)
    lat = np.arctan2(Z, p * (1 - WGS84_E2))
    for _ in range(5):  # converges in 2-3 iterations at ground level
        N = WGS84_A / np.sqrt(1 - WGS84_E2 * np.sin(lat)**2)
        lat = np.arctan2(Z + WGS84_E2 * N * np.sin(lat), p)

    N = WGS84_A / np.sqrt(1 - WGS84_E2 * np.sin(lat)**2)
    alt = p / np.cos(lat) - N
    return np.degrees(lat), lon, alt


def enu_to_gps(
    east: NDArray[np.float64],
    north: NDArray[np.float64],
    up: NDArray[np.float64],
    origin_lat: float,
    origin_lon: float,
    origin_alt: float = 0.0,
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Tangent plane offsets (metres) back to WGS84 (lat, lon, alt)."""
    sin_lat, cos_lat, sin_lon, cos_lon = _rotation_terms(origin_lat, origin_lon)

    # Transpose of the ECEF -> ENU rotation
    dX = -sin_lon * east - sin_lat * cos_lon * north + cos_lat * cos_lon * up
    dY = cos_lon * east - sin_lat * sin_lon * north + cos_lat * sin_lon * up
    dZ = cos_lat * north + sin_lat * up

    X0, Y0, Z0 = geodetic_to_ecef(np.array([origin_lat]), np.array([origin_lon]), np.array([origin_alt]))
    return ecef_to_geodetic(dX + X0[0], dY + Y0[0], dZ + Z0[0])


def circle_around(
    lat: float,
    lon: float,
    radius_m: float,
    vertices: int,
    alt: Optional[float] = None,
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """
    Closed ring of `vertices` evenly spaced points, `radius_m` from a centre.

    The first point (due north of the centre) is repeated at the end, so
    the arrays hold vertices + 1 entries.
    """
    angles = np.linspace(0.0, 2 * np.pi, vertices, endpoint=False)
    east = radius_m * np.sin(angles)
    north = radius_m * np.cos(angles)
    ring_lat, ring_lon, _ = enu_to_gps(
        east, north, np.zeros_like(east), lat, lon, alt if alt is not None else 0.0
    )
    # Altitude of a horizontal ring is the centre's, not the tangent plane's
    ring_alt = np.full_like(ring_lat, alt if alt is not None else np.nan)
    return (
        np.append(ring_lat, ring_lat[0]),
        np.append(ring_lon, ring_lon[0]),
        np.append(ring_alt, ring_alt[0]),
    )
