"""Utility functions for the backend."""

from app.utils.normalizers import (
    coordinates_of,
    derive_title,
    restaurant_id_of,
    restaurant_name_of,
    time_sort_key,
    vineyard_id_of,
    vineyard_name_of,
)

__all__ = [
    "coordinates_of",
    "derive_title",
    "restaurant_id_of",
    "restaurant_name_of",
    "time_sort_key",
    "vineyard_id_of",
    "vineyard_name_of",
]
