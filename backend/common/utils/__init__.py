"""Common utility functions."""

from .geo import (
    Coordinate,
    calculate_distance,
    coerce_coordinate,
    distance_between,
    filter_within_radius,
)

__all__ = [
    "Coordinate",
    "calculate_distance",
    "coerce_coordinate",
    "distance_between",
    "filter_within_radius",
]
