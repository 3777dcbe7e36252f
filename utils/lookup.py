"""
Location Lookup Utilities

Loads the Steam country/state/city table and resolves profile location codes
into human-readable names.

The table is nested by country -> state -> city:

    {"US": {"name": "United States",
            "states": {"WA": {"name": "Washington",
                              "cities": {"3961": {"name": "Seattle"}}}}}}
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import orjson

logger = logging.getLogger(__name__)

BUNDLED_TABLE = Path(__file__).resolve().parent.parent / "apps" / "crawler" / "data" / "steam_countries.json"


class LocationTable:
    """Nested country/state/city lookup with raw-code fallback."""

    def __init__(self, table: dict[str, Any]) -> None:
        self._table = table

    def __len__(self) -> int:
        return len(self._table)

    def resolve(
        self,
        country: Optional[Any],
        state: Optional[Any] = None,
        city: Optional[Any] = None,
    ) -> dict[str, str]:
        """
        Resolve location codes to names.

        A miss falls back to the raw code as a string. An unknown country
        drops state and city, since those codes only mean something inside
        a known country. An unknown state keeps the raw city code. A level
        whose code is missing is omitted.

        Args:
            country: Country code (e.g. "US")
            state: State code within the country
            city: City id within the state

        Returns:
            Dict with any of the keys country, state, city
        """
        location: dict[str, str] = {}
        if not country:
            return location

        country_entry = _lookup(self._table, country)
        if country_entry is None:
            logger.debug("Could not get country: %s", country)
            location["country"] = str(country)
            return location
        location["country"] = str(country_entry["name"])

        if not state:
            return location
        state_entry = _lookup(country_entry.get("states"), state)
        if state_entry is None:
            logger.debug("Could not get state: %s", state)
            location["state"] = str(state)
            if city:
                location["city"] = str(city)
            return location
        location["state"] = str(state_entry["name"])

        if not city:
            return location
        city_entry = _lookup(state_entry.get("cities"), city)
        if city_entry is None:
            logger.debug("Could not get city: %s", city)
            location["city"] = str(city)
        else:
            location["city"] = str(city_entry["name"])

        return location


def _lookup(table: Optional[dict[str, Any]], code: Any) -> Optional[dict[str, Any]]:
    entry = (table or {}).get(str(code))
    if isinstance(entry, dict) and entry.get("name"):
        return entry
    return None


def load_locations(path: str) -> LocationTable:
    """
    Load the location lookup table from a JSON file.

    Args:
        path: Path to the JSON table

    Returns:
        LocationTable over the parsed file

    Raises:
        FileNotFoundError: If the file doesn't exist
        IOError: If the file can't be read
        ValueError: If the file isn't a JSON object
    """
    table_path = Path(path)

    if not table_path.exists():
        error_msg = f"Location table not found: {path}"
        logger.error(error_msg)
        raise FileNotFoundError(error_msg)

    if not table_path.is_file():
        error_msg = f"Location table path is not a file: {path}"
        logger.error(error_msg)
        raise IOError(error_msg)

    try:
        table = orjson.loads(table_path.read_bytes())
    except orjson.JSONDecodeError as e:
        error_msg = f"Invalid JSON in location table: {path} - {str(e)}"
        logger.error(error_msg)
        raise ValueError(error_msg) from e

    if not isinstance(table, dict):
        error_msg = f"Location table must be a JSON object: {path}"
        logger.error(error_msg)
        raise ValueError(error_msg)

    logger.info("Loaded location table", extra={"file_path": path, "countries": len(table)})
    return LocationTable(table)


@lru_cache(maxsize=4)
def get_locations(path: str = "") -> LocationTable:
    """Cached table for `path`; an empty path means the bundled table."""
    return load_locations(path or str(BUNDLED_TABLE))
