"""Configurable in-memory profile store for development and testing.

Can be told to fail (every call, or only the next N calls) and to delay
writes, which is how the optimistic cart rollback and write ordering are
exercised.
"""

import asyncio
import copy

from checkout.profile.port import ProfileStore, ProfileStoreError


class FakeProfileStore(ProfileStore):
    def __init__(self) -> None:
        self.profiles: dict[str, dict] = {}
        self.calls: list[dict] = []
        self.should_succeed: bool = True
        self.failure_reason: str = "Profile update failed"
        self.delay: float = 0.0
        self._failures_remaining: int = 0

    def configure(self, should_succeed: bool = True, failure_reason: str = "Profile update failed", delay=0.0) -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.delay = delay

    def fail_next(self, count: int = 1) -> None:
        self._failures_remaining = count

    def seed(self, buyer_id: str, **fields) -> None:
        self.profiles.setdefault(buyer_id, {"cart": [], "favorites": []}).update(copy.deepcopy(fields))

    async def fetch_profile(self, buyer_id: str) -> dict:
        self.calls.append({"method": "fetch_profile", "buyer_id": buyer_id})
        return copy.deepcopy(self.profiles.get(buyer_id, {"cart": [], "favorites": []}))

    async def update_profile(self, buyer_id: str, changes: dict) -> dict:
        self.calls.append({"method": "update_profile", "buyer_id": buyer_id, "changes": copy.deepcopy(changes)})
        if self.delay:
            await asyncio.sleep(self.delay)

        if self._failures_remaining > 0:
            self._failures_remaining -= 1
            raise ProfileStoreError(self.failure_reason)
        if not self.should_succeed:
            raise ProfileStoreError(self.failure_reason)

        profile = self.profiles.setdefault(buyer_id, {"cart": [], "favorites": []})
        profile.update(copy.deepcopy(changes))
        return copy.deepcopy(profile)
