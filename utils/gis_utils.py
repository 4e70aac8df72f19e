import math
from typing import Optional, Tuple

import rasterio
from pyproj import CRS, Transformer
from shapely.geometry import Point
from shapely.ops import transform as transform_geometry

GEOGRAPHIC_CRS = "EPSG:4326"

# Length of one degree of latitude at the equator, used as the nominal
# metres-per-degree when a scale in metres is applied to a geographic raster.
METERS_PER_DEGREE = 111319.49079327357


def validate_coordinates(lat: float, lon: float) -> bool:
    """
    Validate latitude and longitude values.

    Args:
        lat (float): Latitude value (-90 to 90)
        lon (float): Longitude value (-180 to 180)

    Returns:
        bool: True if coordinates are valid, False otherwise.
    """
    try:
        lat = float(lat)
        lon = float(lon)
        return -90 <= lat <= 90 and -180 <= lon <= 180
    except (ValueError, TypeError):
        return False


def latlon_to_pixel(lat: float, lon: float, transform: rasterio.Affine) -> Tuple[int, int]:
    """
    Convert latitude/longitude to pixel coordinates (row, col) for a given transform.

    Args:
        lat (float): Latitude
        lon (float): Longitude
        transform (rasterio.Affine): Affine transform of the raster

    Returns:
        Tuple[int, int]: (row, column) indices
    """
    # ~transform is the inverse: geo coordinates -> fractional pixel coordinates
    col, row = ~transform * (lon, lat)
    return math.floor(row), math.floor(col)


def pixel_to_latlon(row: float, col: float, transform: rasterio.Affine) -> Tuple[float, float]:
    """
    Convert pixel coordinates (row, col) to latitude/longitude.

    Args:
        row (float): Row index (fractional values address inside the pixel)
        col (float): Column index
        transform (rasterio.Affine): Affine transform of the raster

    Returns:
        Tuple[float, float]: (latitude, longitude)
    """
    lon, lat = transform * (col, row)
    return lat, lon


def is_geographic(crs: Optional[str]) -> bool:
    return crs is not None and CRS.from_user_input(crs).is_geographic


def same_crs(a: Optional[str], b: Optional[str]) -> bool:
    if a is None or b is None:
        return a is b
    return CRS.from_user_input(a) == CRS.from_user_input(b)


def reproject_geometry(geometry, src_crs: str, dst_crs: str):
    """Reproject a shapely geometry; a no-op when both CRS are the same."""
    if same_crs(src_crs, dst_crs):
        return geometry
    transformer = Transformer.from_crs(src_crs, dst_crs, always_xy=True)
    return transform_geometry(transformer.transform, geometry)


def buffer_point_meters(point: Point, radius: float, resolution: int = 16):
    """
    Buffer a lon/lat point by ``radius`` metres.

    The circle is built in an azimuthal equidistant projection centred on the
    point, so the radius is true in every direction, then projected back to
    lon/lat.
    """
    local = f"+proj=aeqd +lat_0={point.y} +lon_0={point.x} +datum=WGS84 +units=m"
    to_local = Transformer.from_crs(GEOGRAPHIC_CRS, local, always_xy=True)
    to_geo = Transformer.from_crs(local, GEOGRAPHIC_CRS, always_xy=True)
    circle = transform_geometry(to_local.transform, point).buffer(radius, resolution)
    return transform_geometry(to_geo.transform, circle)


def scale_to_crs_units(scale_m: float, crs: Optional[str]) -> float:
    """
    Express a nominal scale in metres in the units of ``crs``.

    Rasters without a CRS are treated as already being in the scale's units.
    """
    if crs is None:
        return scale_m
    parsed = CRS.from_user_input(crs)
    if parsed.is_geographic:
        return scale_m / METERS_PER_DEGREE
    unit_factor = parsed.axis_info[0].unit_conversion_factor if parsed.axis_info else 1.0
    return scale_m / unit_factor
