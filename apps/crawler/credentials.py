"""
API key rotation.

A run binds exactly one key. With round-robin rotation each run takes the next
key in the configured order, whatever happened to the previous run, so one bad
key cannot stall every future run. The rotation position lives in the state
store so it carries across processes and serverless invocations.
"""

import logging
from dataclasses import dataclass
from typing import Literal, Sequence

from utils.state import CREDENTIAL_SLOT_KEY, StateStore

logger = logging.getLogger(__name__)

RotationPolicy = Literal["none", "round_robin"]


@dataclass(frozen=True)
class CredentialSlot:
    index: int
    api_key: str

    def __repr__(self) -> str:
        return f"CredentialSlot(index={self.index})"


class CredentialRotator:
    """Hands out the key for the next run."""

    def __init__(self, keys: Sequence[str], state: StateStore, policy: RotationPolicy = "round_robin") -> None:
        if not keys:
            raise ValueError("At least one API key must be configured (STEAM_API_KEYS)")
        self.keys = list(keys)
        self.state = state
        self.policy = policy

    async def next_slot(self) -> CredentialSlot:
        """Bind the key for the next run."""
        if self.policy == "none" or len(self.keys) == 1:
            return CredentialSlot(0, self.keys[0])

        position = await self.state.incr(CREDENTIAL_SLOT_KEY, 1)
        index = (position - 1) % len(self.keys)
        logger.info("Bound API key %d of %d", index, len(self.keys))
        return CredentialSlot(index, self.keys[index])
