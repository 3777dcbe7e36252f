"""
Pydantic Schemas - Persisted Record Shapes

Defines the shape of the profile records written to the record store.

Usage:
    from utils.schemas import ProfileRecord

    record = ProfileRecord(steam_id="76561197960265729", local_account_id=0, last_modified=1700000000)
    item = record.to_item()
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class ProfileRecord(BaseModel):
    """One normalized Steam profile.

    Only `steam_id`, `local_account_id` and `last_modified` are always set;
    every other field is present only when the API returned a non-empty,
    non-zero value for it.
    """

    steam_id: str = Field(..., min_length=1, description="SteamID64 as a decimal string")
    local_account_id: int = Field(..., ge=0, description="Local ordinal from the row counter")
    last_modified: int = Field(..., description="Write time, epoch seconds")

    persona_state: Optional[int] = None
    community_visibility_state: Optional[int] = None
    profile_state: Optional[int] = None
    last_logoff: Optional[int] = None
    time_created: Optional[int] = None
    primary_clan_id: Optional[str] = None

    country: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None

    def to_item(self) -> dict[str, Any]:
        """Record as a store item, without unset optional fields."""
        return self.model_dump(exclude_none=True)
