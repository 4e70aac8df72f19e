"""
Random candidate points inside a polygon.
"""
import logging
from typing import List, Optional

import numpy as np
import shapely
from shapely.geometry import Point

logger = logging.getLogger(__name__)

MAX_DRAW_ROUNDS = 1000


def random_points(region, count: int, seed: Optional[int] = None) -> List[Point]:
    """
    Draw ``count`` uniformly distributed points inside ``region``.

    Points are drawn in the bounding box and rejected when outside the
    polygon. The same seed yields the same points.

    Args:
        region: Shapely polygon (lon/lat).
        count (int): Number of points.
        seed (int, optional): Seed for numpy's default generator.

    Returns:
        List[Point]: Points in draw order.
    """
    if count < 0:
        raise ValueError(f"count must be non-negative, got {count}")
    if region.is_empty or region.area == 0:
        raise ValueError("Cannot sample points from an empty or zero-area region")

    rng = np.random.default_rng(seed)
    minx, miny, maxx, maxy = region.bounds
    shapely.prepare(region)

    points: List[Point] = []
    for _ in range(MAX_DRAW_ROUNDS):
        if len(points) >= count:
            break
        batch = max(2 * (count - len(points)), 16)
        xs = rng.uniform(minx, maxx, batch)
        ys = rng.uniform(miny, maxy, batch)
        inside = shapely.contains_xy(region, xs, ys)
        points.extend(Point(x, y) for x, y in zip(xs[inside], ys[inside]))
    else:
        if len(points) < count:
            raise RuntimeError(f"Could only place {len(points)} of {count} points inside region")

    logger.info(f"Sampled {count} random points inside region")
    return points[:count]
