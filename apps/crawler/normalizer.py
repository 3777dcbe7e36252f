"""
Profile normalization.

Maps a raw GetPlayerSummaries player object onto a ProfileRecord. Only values
that are present and non-default are kept: a missing, empty or zero field is
left unset rather than stored as 0. This means a genuine 0 (for example
personastate 0, "offline") is indistinguishable from "not returned".
Readers of the store must treat an absent field as "unknown or zero".

`raw` must carry a `steamid`; callers drop players without one.
"""

import logging
import time
from typing import Any, Callable, Optional

from utils.lookup import LocationTable
from utils.schemas import ProfileRecord

logger = logging.getLogger(__name__)

# Stored values must fit a signed 64-bit integer
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def _int64(value: Any) -> int:
    number = int(value)
    if not INT64_MIN <= number <= INT64_MAX:
        raise ValueError(f"{number} is outside the 64-bit range")
    return number


# Raw API key -> (record field, coercion)
_FIELDS: tuple[tuple[str, str, Callable[[Any], Any]], ...] = (
    ("personastate", "persona_state", _int64),
    ("communityvisibilitystate", "community_visibility_state", _int64),
    ("profilestate", "profile_state", _int64),
    ("lastlogoff", "last_logoff", _int64),
    ("primaryclanid", "primary_clan_id", str),
    ("timecreated", "time_created", _int64),
)


def _is_set(value: Any) -> bool:
    if value is None or value is False:
        return False
    if isinstance(value, str):
        value = value.strip()
        return value not in ("", "0")
    if isinstance(value, (int, float)):
        return value != 0
    return True


def _coerce(raw: dict[str, Any], key: str, cast: Callable[[Any], Any]) -> Optional[Any]:
    value = raw.get(key)
    if not _is_set(value):
        return None
    try:
        return cast(value)
    except (TypeError, ValueError, OverflowError):
        logger.debug("Dropping malformed field %s=%r for %s", key, value, raw.get("steamid"))
        return None


def normalize(
    raw: dict[str, Any],
    *,
    local_account_id: int,
    locations: LocationTable,
    now: Optional[int] = None,
) -> ProfileRecord:
    """
    Normalize one raw player object.

    Args:
        raw: Player object as returned by the profile API
        local_account_id: Ordinal assigned from the row counter
        locations: Location table used to resolve country/state/city codes
        now: Write timestamp in epoch seconds (defaults to the current time)

    Returns:
        ProfileRecord with only known, non-default optional fields set
    """
    fields: dict[str, Any] = {}

    for key, name, cast in _FIELDS:
        value = _coerce(raw, key, cast)
        if value is not None:
            fields[name] = value

    if _is_set(raw.get("loccountrycode")):
        fields.update(
            locations.resolve(
                raw.get("loccountrycode"),
                raw.get("locstatecode") if _is_set(raw.get("locstatecode")) else None,
                raw.get("loccityid") if _is_set(raw.get("loccityid")) else None,
            )
        )

    return ProfileRecord(
        steam_id=str(raw["steamid"]),
        local_account_id=local_account_id,
        last_modified=int(time.time()) if now is None else now,
        **fields,
    )
