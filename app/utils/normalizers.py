"""
Normalizers for vineyard and restaurant snapshots.

Plans store full catalogue snapshots as loose dicts. Catalogue records come
from different admin screens over time, so ids, names and coordinates are
not always under the same key. These helpers are the single place that
knows the fallbacks.
"""

from typing import Any, Dict, Optional, Sequence, Tuple


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def vineyard_id_of(snapshot: Optional[Dict[str, Any]]) -> Optional[str]:
    """Return the catalogue id of a vineyard snapshot."""
    if not snapshot:
        return None
    return _clean(snapshot.get("vineyard_id")) or _clean(snapshot.get("id"))


def vineyard_name_of(snapshot: Optional[Dict[str, Any]]) -> str:
    if not snapshot:
        return ""
    return _clean(snapshot.get("vineyard")) or _clean(snapshot.get("name")) or ""


def restaurant_id_of(snapshot: Optional[Dict[str, Any]]) -> Optional[str]:
    """
    Return the catalogue id of a restaurant snapshot.

    Older restaurant records have no ``restaurant_id`` and are keyed by their
    display name under ``restaurants``.
    """
    if not snapshot:
        return None
    return (
        _clean(snapshot.get("restaurant_id"))
        or _clean(snapshot.get("restaurants"))
        or _clean(snapshot.get("id"))
    )


def restaurant_name_of(snapshot: Optional[Dict[str, Any]]) -> str:
    if not snapshot:
        return ""
    return _clean(snapshot.get("restaurants")) or _clean(snapshot.get("name")) or ""


def coordinates_of(snapshot: Optional[Dict[str, Any]]) -> Optional[Tuple[float, float]]:
    """
    Extract ``(lat, lng)`` from a snapshot.

    Returns None when either coordinate is missing, zero or not numeric; a
    stop without usable coordinates cannot be placed on the map.
    """
    if not snapshot:
        return None

    lat = snapshot.get("latitude", snapshot.get("lat"))
    lng = snapshot.get("longitude", snapshot.get("lng"))
    try:
        lat = float(lat)
        lng = float(lng)
    except (TypeError, ValueError):
        return None

    if not lat or not lng:
        return None
    return lat, lng


def time_sort_key(time: Optional[str]) -> Optional[str]:
    """``"09:00"`` -> ``"0900"``; empty/None -> None (no preference)."""
    cleaned = _clean(time)
    if cleaned is None:
        return None
    return cleaned.replace(":", "", 1)


def derive_title(vineyard_snapshots: Sequence[Optional[Dict[str, Any]]]) -> Optional[str]:
    """'A & B Tour', with ' +N more' past the second vineyard."""
    names = [vineyard_name_of(snapshot) for snapshot in vineyard_snapshots[:2]]
    names = [name for name in names if name]
    if not names:
        return None
    title = f"{' & '.join(names)} Tour"
    if len(vineyard_snapshots) > 2:
        title += f" +{len(vineyard_snapshots) - 2} more"
    return title
