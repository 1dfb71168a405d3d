"""
Spatial helpers shared by the models (index expressions) and the nearby
queries in the ambulance and facility services.

Coordinates are stored as plain latitude/longitude floats. On PostgreSQL a
GiST expression index over ``geography_point(lon, lat)`` backs the radius
queries; the expression used in the index and in the queries must be the
same for the planner to pick the index up.
"""

from __future__ import annotations

from geoalchemy2 import Geography
from sqlalchemy import func


def make_point(longitude, latitude):
    return func.ST_SetSRID(func.ST_MakePoint(longitude, latitude), 4326)


def geography_point(longitude, latitude):
    """``geography(ST_SetSRID(ST_MakePoint(lon, lat), 4326))`` typed as Geography."""
    return func.geography(
        make_point(longitude, latitude),
        type_=Geography(geometry_type="POINT", srid=4326),
    )


def within_radius(longitude_col, latitude_col, longitude: float, latitude: float, radius_m: float):
    return func.ST_DWithin(
        geography_point(longitude_col, latitude_col),
        geography_point(longitude, latitude),
        radius_m,
    )


def distance_m(longitude_col, latitude_col, longitude: float, latitude: float):
    return func.ST_Distance(
        geography_point(longitude_col, latitude_col),
        geography_point(longitude, latitude),
    )

